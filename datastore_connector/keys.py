"""
Key construction for Datastore entities.

A key is the pair ``(kind, id)``. The kind is the ORM model name used
verbatim, so renaming a model points every later operation at a different,
empty kind; records stored under the old name are left behind.
"""

from typing import Any, Iterable, Optional

from google.cloud.datastore import Key

from .exceptions import InvalidIdentifierError

# Key ids are signed 64-bit integers
MAX_IDENTIFIER = 2 ** 63 - 1


def parse_identifier(value: Any) -> int:
    """
    Parse an ORM id into a Datastore key id.

    Args:
        value: Positive integer, or a string of decimal digits

    Returns:
        The id as an int

    Raises:
        InvalidIdentifierError: If the value is not a positive integer

    Example:
        >>> parse_identifier("5629499534213120")
        5629499534213120
    """
    if isinstance(value, bool):
        raise InvalidIdentifierError(value)

    if isinstance(value, int):
        identifier = value
    elif isinstance(value, str) and value.strip().isdecimal():
        identifier = int(value.strip())
    else:
        raise InvalidIdentifierError(value)

    if identifier <= 0 or identifier > MAX_IDENTIFIER:
        raise InvalidIdentifierError(value)
    return identifier


class KeyBuilder:
    """
    Builds keys through the native client.

    Going through ``client.key`` means project, namespace and database come
    from the client configuration.
    """

    def __init__(self, client: Any):
        self.client = client

    def key_for(self, kind: str, identifier: Optional[Any] = None) -> Key:
        """
        Build a key for a kind, optionally naming an existing record.

        Without an identifier the key is partial and the datastore assigns
        the id on insert.

        Args:
            kind: ORM model name
            identifier: Id of an existing record

        Returns:
            Partial or complete key

        Raises:
            InvalidIdentifierError: If identifier is not a positive integer
        """
        if identifier is None:
            return self.client.key(kind)
        return self.client.key(kind, parse_identifier(identifier))

    def keys_for(self, kind: str, identifiers: Iterable[Any]) -> list[Key]:
        """Build complete keys for several ids of the same kind."""
        return [self.key_for(kind, identifier) for identifier in identifiers]
