"""
Exceptions raised by the Datastore connector.

Errors coming from the native client (``google.api_core.exceptions``) are
not wrapped; they reach the caller's callback unchanged.
"""


class BackendError(Exception):
    """Base exception for connector errors."""
    pass


class InvalidFilterError(BackendError, ValueError):
    """A filter could not be translated into a native query."""
    pass


class InvalidIdentifierError(BackendError, ValueError):
    """An id could not be parsed into a Datastore key id."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid identifier {value!r}: expected a positive integer")
