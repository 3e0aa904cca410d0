"""
Datastore connector - Google Cloud Datastore persistence for ORM models.

Translates ORM CRUD calls and LoopBack-style filters (where / order /
limit / skip / fields) into native Datastore lookups, queries and batched
mutations.
"""

from datastore_connector.adapter import DatastoreAdapter
from datastore_connector.config import DatastoreSettings, create_client
from datastore_connector.connector import DatastoreConnector, initialize
from datastore_connector.exceptions import (
    BackendError,
    InvalidFilterError,
    InvalidIdentifierError,
)
from datastore_connector.filters import (
    ComparisonPredicate,
    EqualityPredicate,
    Filter,
    OrderDirective,
    UnsupportedPredicate,
)
from datastore_connector.keys import KeyBuilder, parse_identifier
from datastore_connector.query import CompiledQuery, FilterCompiler

__version__ = "0.1.0"

__all__ = [
    "DatastoreConnector",
    "initialize",
    "DatastoreAdapter",
    "DatastoreSettings",
    "create_client",
    "KeyBuilder",
    "parse_identifier",
    "Filter",
    "EqualityPredicate",
    "ComparisonPredicate",
    "UnsupportedPredicate",
    "OrderDirective",
    "FilterCompiler",
    "CompiledQuery",
    "BackendError",
    "InvalidFilterError",
    "InvalidIdentifierError",
]
