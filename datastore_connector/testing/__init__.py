"""
Testing utilities for the Datastore connector.

Provides an in-memory client so the connector can be exercised without a
Datastore project or emulator.
"""

from .client import (
    InMemoryBatch,
    InMemoryDatastoreClient,
    InMemoryQuery,
    InMemoryTransaction,
)

__all__ = [
    "InMemoryBatch",
    "InMemoryDatastoreClient",
    "InMemoryQuery",
    "InMemoryTransaction",
]
