"""
Google Cloud Datastore connector.

Receives CRUD calls from the ORM in its callback convention::

    connector.create("customer", {"name": "Ada"}, options, callback)
    connector.all("customer", {"where": {"age": {"lt": 28}}}, options, callback)
    connector.count("customer", {"id": 42}, options, callback)
    connector.update("customer", {"type": "Animal"}, {"age": 3}, options, callback)
    connector.destroy_all("customer", None, options, callback)

and answers each one through the callback exactly once, with either
``(error, None)`` or ``(None, result)``.
"""

import logging
from typing import Any, Callable, Optional, Union

from google.cloud.datastore import Entity, Key

from .adapter import DatastoreAdapter
from .config import DatastoreSettings, create_client
from .exceptions import InvalidIdentifierError
from .filters import LOOKUP_OPERATORS, Filter
from .keys import KeyBuilder
from .query import CompiledQuery, FilterCompiler

logger = logging.getLogger(__name__)

Callback = Callable[[Optional[BaseException], Any], Any]
FilterLike = Union[Filter, dict[str, Any], None]

# Options forwarded to the native client calls
CALL_OPTIONS = ("timeout", "retry")


class DatastoreConnector:
    """
    Connector between the ORM and Google Cloud Datastore.

    Each ORM model is stored as a Datastore kind of the same name. The
    connector owns one native client, shared by every call.

    Example:
        >>> connector = DatastoreConnector.from_settings({"projectId": "my-project"})
        >>> new_id = connector.create("customer", {"name": "Ada", "age": 36})
        >>> connector.all("customer", {"where": {"id": new_id}})
        [{'name': 'Ada', 'age': 36, 'createdAt': '...', 'updatedAt': None, 'id': ...}]
    """

    def __init__(
        self,
        client: Any,
        adapter: Optional[DatastoreAdapter] = None,
        transactional: bool = True,
        exclude_from_indexes: Optional[dict[str, list[str]]] = None,
    ):
        """
        Initialize the connector.

        Args:
            client: google.cloud.datastore.Client (or a compatible double)
            adapter: DatastoreAdapter instance (uses default if not provided)
            transactional: Wrap bulk read-then-write paths in one transaction
            exclude_from_indexes: Kind -> property names stored unindexed
        """
        self.client = client
        self.adapter = adapter or DatastoreAdapter()
        self.keys = KeyBuilder(client)
        self.compiler = FilterCompiler(client, self.keys)
        self.transactional = transactional
        self.exclude_from_indexes = exclude_from_indexes or {}

    @classmethod
    def from_settings(
        cls,
        settings: Union[DatastoreSettings, dict[str, Any], None],
    ) -> "DatastoreConnector":
        """Build a connector and its native client from data source settings."""
        settings = DatastoreSettings.coerce(settings)
        return cls(
            create_client(settings),
            transactional=settings.transactional,
            exclude_from_indexes=settings.exclude_from_indexes,
        )

    def close(self) -> None:
        """Release the native client's transport."""
        self.client.close()

    # === ORM verbs ===

    def create(
        self,
        model: str,
        data: dict[str, Any],
        options: Any = None,
        callback: Optional[Callback] = None,
    ) -> Optional[int]:
        """
        Insert a new record and answer with the id the datastore assigned.

        The key is always partial, so this never overwrites a record.
        """
        return self._respond("create", model, callback, self._create, model, data, options)

    def all(
        self,
        model: str,
        query_filter: FilterLike = None,
        options: Any = None,
        callback: Optional[Callback] = None,
    ) -> Optional[list[dict[str, Any]]]:
        """
        Find records matching a filter.

        Routing, in order:

        1. ``where.id`` - key lookup, zero or one record (several for
           ``{"in": [...]}``)
        2. any of where/order/limit/fields/skip - compiled query
        3. no filter - every record of the kind
        """
        return self._respond("all", model, callback, self._all, model, query_filter, options)

    find = all

    def find_by_id(
        self,
        model: str,
        identifier: Any,
        options: Any = None,
        callback: Optional[Callback] = None,
    ) -> Optional[list[dict[str, Any]]]:
        """Look up one record by id; answers with an empty or one-element list."""
        return self._respond(
            "find_by_id", model, callback, self._find_by_id, model, identifier, options
        )

    def count(
        self,
        model: str,
        where: FilterLike = None,
        options: Any = None,
        callback: Optional[Callback] = None,
    ) -> Optional[int]:
        """
        Count records matching a where clause.

        Without ``where.id`` every matching key of the kind is fetched and
        counted. That is a full scan for an empty where clause; keep a
        counter entity instead if counts are needed often.
        """
        return self._respond("count", model, callback, self._count, model, where, options)

    def exists(
        self,
        model: str,
        identifier: Any,
        options: Any = None,
        callback: Optional[Callback] = None,
    ) -> Optional[bool]:
        """Whether a record with this id is stored."""
        return self._respond("exists", model, callback, self._exists, model, identifier, options)

    def update(
        self,
        model: str,
        query_filter: FilterLike,
        data: dict[str, Any],
        options: Any = None,
        callback: Optional[Callback] = None,
    ) -> Optional[dict[str, int]]:
        """
        Update matching records and answer with ``{"count": n}``.

        With ``id`` or ``where.id`` the stored record is replaced by ``data``.
        Otherwise matching records are read, ``data`` is merged onto each of
        them and all are written back in one batch. There is no version
        check: a concurrent writer between the read and the write is lost
        unless the connector is transactional.
        """
        return self._respond(
            "update", model, callback, self._update, model, query_filter, data, options
        )

    def destroy_all(
        self,
        model: str,
        where: FilterLike = None,
        options: Any = None,
        callback: Optional[Callback] = None,
    ) -> Optional[dict[str, int]]:
        """
        Delete matching records and answer with ``{"count": n}``.

        An empty kind answers ``{"count": 0}``.
        """
        return self._respond(
            "destroy_all", model, callback, self._destroy_all, model, where, options
        )

    # === Implementation ===

    def _create(self, model: str, data: dict[str, Any], options: Any) -> int:
        key = self.keys.key_for(model)
        record = self.adapter.stamp_for_create(dict(data or {}), key)
        entity = self._entity(model, key, record)

        # The client completes entity.key from the commit's mutation result
        self.client.put(entity, **self._call_kwargs(options))
        identifier: int = entity.key.id
        logger.debug(f"Created {model} {identifier}")
        return identifier

    def _all(self, model: str, query_filter: FilterLike, options: Any) -> list[dict[str, Any]]:
        query_filter = Filter.coerce(query_filter)
        identifier = query_filter.where_identifier

        if identifier is not None:
            logger.debug(f"Finding {model} by id")
            entities = self._lookup(model, identifier, options)
        elif query_filter.has_criteria():
            logger.debug(f"Finding {model} with query")
            entities = self._run(self.compiler.compile(model, query_filter), options)
        else:
            logger.debug(f"Finding every {model}")
            entities = self._run(self.compiler.compile(model, Filter()), options)

        return self.adapter.with_identifiers(entities)

    def _find_by_id(self, model: str, identifier: Any, options: Any) -> list[dict[str, Any]]:
        return self.adapter.with_identifiers(self._lookup(model, identifier, options))

    def _count(self, model: str, where: FilterLike, options: Any) -> int:
        query_filter = Filter.for_where(where)
        identifier = query_filter.where_identifier

        if identifier is not None:
            # Missing keys come back as None and must not be counted
            return len(self._lookup(model, identifier, options))

        compiled = self.compiler.compile(model, query_filter, keys_only=True)
        return len(self._run(compiled, options))

    def _exists(self, model: str, identifier: Any, options: Any) -> bool:
        return self._count(model, {"id": identifier}, options) > 0

    def _update(
        self,
        model: str,
        query_filter: FilterLike,
        data: dict[str, Any],
        options: Any,
    ) -> dict[str, int]:
        query_filter = Filter.for_where(query_filter)
        identifier = query_filter.identifier
        data = dict(data or {})

        with self._mutation_scope() as batch:
            if identifier is not None:
                for existing in self._lookup(model, identifier, options):
                    record = self.adapter.stamp_for_update(data, existing=existing)
                    batch.put(self._entity(model, existing.key, record))
            else:
                compiled = self.compiler.compile(model, query_filter)
                exclude = self.exclude_from_indexes.get(model, ())
                for entity in self._run(compiled, options):
                    entity.update(self.adapter.stamp_for_update(data))
                    # Properties added by data need the kind's unindexed names too
                    entity.exclude_from_indexes.update(exclude)
                    batch.put(entity)
            count = len(batch.mutations)

        logger.debug(f"Updated {count} {model} record(s)")
        return {"count": count}

    def _destroy_all(self, model: str, where: FilterLike, options: Any) -> dict[str, int]:
        query_filter = Filter.for_where(where)
        identifier = query_filter.where_identifier

        with self._mutation_scope() as batch:
            if identifier is not None:
                keys = [entity.key for entity in self._lookup(model, identifier, options)]
            else:
                compiled = self.compiler.compile(model, query_filter, keys_only=True)
                keys = [entity.key for entity in self._run(compiled, options)]
            for key in keys:
                batch.delete(key)
            count = len(batch.mutations)

        logger.debug(f"Deleted {count} {model} record(s)")
        return {"count": count}

    # === Helpers ===

    def _respond(
        self,
        verb: str,
        model: str,
        callback: Optional[Callback],
        operation: Callable[..., Any],
        *args: Any,
    ) -> Any:
        """
        Run an operation and hand its outcome to the callback exactly once.

        Without a callback the result is returned and errors propagate.
        """
        try:
            result = operation(*args)
        except Exception as e:
            logger.error(f"{verb} failed for {model}: {e}", exc_info=True)
            if callback is None:
                raise
            callback(e, None)
            return None

        if callback is not None:
            callback(None, result)
        return result

    def _lookup(self, model: str, identifier: Any, options: Any) -> list[Entity]:
        """Fetch records by id, leaving out keys with no stored record."""
        identifiers = self._target_identifiers(identifier)
        if not identifiers:
            return []

        call_kwargs = self._call_kwargs(options)
        if len(identifiers) == 1:
            entity = self.client.get(self.keys.key_for(model, identifiers[0]), **call_kwargs)
            return [entity] if entity is not None else []

        entities = self.client.get_multi(self.keys.keys_for(model, identifiers), **call_kwargs)
        return [entity for entity in entities if entity is not None]

    @staticmethod
    def _target_identifiers(identifier: Any) -> list[Any]:
        """
        Ids named by a where.id value.

        Accepts a single id, ``{"eq": id}`` or ``{"in": [ids]}``.
        """
        if not isinstance(identifier, dict):
            return [identifier]

        if not identifier or not LOOKUP_OPERATORS.issuperset(identifier):
            raise InvalidIdentifierError(identifier)

        identifiers = []
        for operation, value in identifier.items():
            if operation == "eq":
                identifiers.append(value)
            elif isinstance(value, list):
                identifiers.extend(value)
            else:
                raise InvalidIdentifierError(identifier)
        return identifiers

    def _run(self, compiled: Optional[CompiledQuery], options: Any) -> list[Entity]:
        if compiled is None:
            return []
        return compiled.run(**self._call_kwargs(options))

    def _entity(self, model: str, key: Key, record: dict[str, Any]) -> Entity:
        exclude = tuple(self.exclude_from_indexes.get(model, ()))
        return self.adapter.to_entity(key, record, exclude_from_indexes=exclude)

    def _mutation_scope(self) -> Any:
        """Transaction or plain batch collecting the mutations of one call."""
        if self.transactional:
            return self.client.transaction()
        return self.client.batch()

    @staticmethod
    def _call_kwargs(options: Any) -> dict[str, Any]:
        if not isinstance(options, dict):
            return {}
        return {name: options[name] for name in CALL_OPTIONS if options.get(name) is not None}


def initialize(data_source: Any, callback: Optional[Callable[..., Any]] = None) -> None:
    """
    Attach a connector to an ORM data source.

    Builds the connector from ``data_source.settings`` and stores it on
    ``data_source.connector``.
    """
    try:
        data_source.connector = DatastoreConnector.from_settings(
            getattr(data_source, "settings", None)
        )
    except Exception as e:
        logger.error(f"Failed to initialize Datastore connector: {e}", exc_info=True)
        if callback is None:
            raise
        callback(e)
        return

    if callback is not None:
        callback(None)
