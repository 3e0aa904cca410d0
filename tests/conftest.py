"""
Pytest configuration for connector tests.

Every test runs against the in-memory Datastore client, so no project,
credentials or emulator are needed.
"""

import pytest

from datastore_connector import DatastoreConnector
from datastore_connector.testing import InMemoryDatastoreClient


@pytest.fixture
def client():
    """Fresh in-memory Datastore client."""
    return InMemoryDatastoreClient(project="test-project")


@pytest.fixture
def connector(client):
    """Transactional connector over the in-memory client."""
    return DatastoreConnector(client)


@pytest.fixture
def customers(connector):
    """
    Two stored customers of type Animal, aged 2 and 27.

    Returns the created records (properties plus id) in creation order.
    """
    first = {
        "name": "Clement Oh",
        "emails": ["noreply@example.com", "info@example.com"],
        "type": "Animal",
        "age": 2,
    }
    second = {
        "name": "Clement Oh",
        "emails": ["orion@cruz.com"],
        "type": "Animal",
        "age": 27,
    }
    first["id"] = connector.create("customer", dict(first))
    second["id"] = connector.create("customer", dict(second))
    return [first, second]


class CallbackRecorder:
    """Callback that records every invocation."""

    def __init__(self):
        self.calls = []

    def __call__(self, error, result=None):
        self.calls.append((error, result))

    @property
    def error(self):
        return self.calls[0][0]

    @property
    def result(self):
        return self.calls[0][1]


@pytest.fixture
def callback():
    """Recording callback for the ORM calling convention."""
    return CallbackRecorder()
