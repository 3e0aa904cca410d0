"""
Datastore adapter for the connector.

Handles transformation between native entities and ORM records.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from google.cloud.datastore import Entity, Key


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with milliseconds, e.g. ``2024-05-01T09:30:00.000Z``."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class DatastoreAdapter:
    """
    Adapter between Datastore entities and ORM records.

    Entities carry their id out-of-band in ``entity.key``; ORM records
    carry it inline. Three properties are managed here rather than by the
    caller:

    - id - the key's id, merged in on every read
    - createdAt - set once when the record is created
    - updatedAt - None at creation, refreshed on every update
    """

    def __init__(
        self,
        *,
        id_attribute: str = "id",
        created_attribute: str = "createdAt",
        updated_attribute: str = "updatedAt",
    ):
        """
        Initialize Datastore adapter.

        Args:
            id_attribute: Record attribute holding the key id
            created_attribute: Attribute for the creation timestamp
            updated_attribute: Attribute for the last update timestamp
        """
        self.id_attribute = id_attribute
        self.created_attribute = created_attribute
        self.updated_attribute = updated_attribute

    @property
    def reserved_attributes(self) -> tuple[str, str, str]:
        return (self.id_attribute, self.created_attribute, self.updated_attribute)

    def with_identifier(self, entity: Entity) -> dict[str, Any]:
        """
        Transform an entity into an ORM record with an inline id.

        Args:
            entity: Entity returned by a lookup or query

        Returns:
            Copy of the entity's properties plus the id
        """
        record = dict(entity)
        record[self.id_attribute] = entity.key.id if entity.key is not None else None
        return record

    def with_identifiers(self, entities: list[Optional[Entity]]) -> list[dict[str, Any]]:
        """Transform every non-null entity of a result."""
        return [self.with_identifier(entity) for entity in entities if entity is not None]

    def stamp_for_create(self, properties: dict[str, Any], key: Key) -> dict[str, Any]:
        """
        Prepare caller properties for an insert.

        Caller values for the managed properties are replaced. The id is
        only added when the key is already complete.

        Args:
            properties: Record data from the ORM
            key: Key the record will be written under

        Returns:
            New dict ready to be written
        """
        record = {
            name: value for name, value in properties.items()
            if name not in self.reserved_attributes
        }
        record[self.created_attribute] = utc_timestamp()
        record[self.updated_attribute] = None
        if not key.is_partial:
            record[self.id_attribute] = key.id
        return record

    def stamp_for_update(
        self,
        properties: dict[str, Any],
        existing: Optional[Entity] = None,
    ) -> dict[str, Any]:
        """
        Prepare caller properties for an update.

        The id and creation time cannot be changed by an update: caller
        values for them are dropped and the stored creation time, when
        known, is carried over. updatedAt is set to now.

        Args:
            properties: New record data from the ORM
            existing: Entity currently stored under the key

        Returns:
            New dict ready to be written
        """
        record = {
            name: value for name, value in properties.items()
            if name not in self.reserved_attributes
        }
        if existing is not None and self.created_attribute in existing:
            record[self.created_attribute] = existing[self.created_attribute]
        record[self.updated_attribute] = utc_timestamp()
        return record

    def to_entity(
        self,
        key: Key,
        record: dict[str, Any],
        exclude_from_indexes: tuple[str, ...] = (),
    ) -> Entity:
        """Wrap a record into a native entity under ``key``."""
        entity = Entity(key=key, exclude_from_indexes=exclude_from_indexes)
        entity.update(record)
        return entity
