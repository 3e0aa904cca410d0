"""
Filter compilation for the Datastore connector.

Turns a Filter into a native query for one kind: property filters for the
where clause, sort orders, projection, and the limit/offset applied at
fetch time.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from google.cloud.datastore import Entity
from google.cloud.datastore.query import PropertyFilter, Query

from .exceptions import InvalidFilterError
from .filters import Filter, Predicate, UnsupportedPredicate
from .keys import KeyBuilder, parse_identifier

logger = logging.getLogger(__name__)

KEY_PROPERTY = "__key__"


@dataclass
class CompiledQuery:
    """
    A native query plus the paging applied when it is fetched.

    ``offset`` skips results on the server, which still reads them: a large
    offset costs as much as fetching the skipped entities.
    """
    query: Query
    limit: Optional[int] = None
    offset: int = 0

    def run(self, **call_kwargs: Any) -> list[Entity]:
        """Execute the query and return every entity of the result."""
        iterator = self.query.fetch(limit=self.limit, offset=self.offset, **call_kwargs)
        return list(iterator)


class FilterCompiler:
    """
    Compiles ORM filters into native queries.

    Example:
        >>> compiler = FilterCompiler(client, KeyBuilder(client))
        >>> compiled = compiler.compile("customer", Filter.coerce({
        ...     "where": {"age": {"lt": 28}},
        ...     "order": "age DESC",
        ...     "limit": 1,
        ... }))
        >>> compiled.run()
    """

    def __init__(self, client: Any, key_builder: Optional[KeyBuilder] = None):
        self.client = client
        self.key_builder = key_builder or KeyBuilder(client)

    def base_query(self, kind: str) -> Query:
        """Unfiltered query over a whole kind."""
        return self.client.query(kind=kind)

    def compile(
        self,
        kind: str,
        query_filter: Filter,
        keys_only: bool = False,
    ) -> Optional[CompiledQuery]:
        """
        Compile a filter into a query over ``kind``.

        Args:
            kind: ORM model name
            query_filter: Filter to translate
            keys_only: Select only keys, ignoring ``fields``

        Returns:
            The compiled query, or None when ``order`` is an empty list,
            which means there is nothing to run

        Raises:
            InvalidFilterError: If the where clause uses an unsupported operator
            InvalidIdentifierError: If an ``id`` predicate holds a malformed id
        """
        predicates = query_filter.predicates()
        unsupported = [p for p in predicates if isinstance(p, UnsupportedPredicate)]
        if unsupported:
            names = ", ".join(f"{p.field}.{p.operator}" for p in unsupported)
            raise InvalidFilterError(f"Unsupported operator(s) in where clause: {names}")

        if query_filter.has_empty_order:
            logger.debug(f"Empty order for {kind}, nothing to query")
            return None

        query = self.base_query(kind)
        for predicate in predicates:
            query.add_filter(filter=self._property_filter(kind, predicate))

        directives = query_filter.order_directives()
        if directives:
            query.order = [directive.to_native() for directive in directives]

        if keys_only:
            query.keys_only()
        else:
            projection = query_filter.projection()
            if projection:
                query.projection = projection

        return CompiledQuery(
            query=query,
            limit=query_filter.limit or None,
            offset=query_filter.skip or 0,
        )

    def _property_filter(self, kind: str, predicate: Predicate) -> PropertyFilter:
        """Native filter for one predicate; ``id`` is matched against the key."""
        if predicate.field != "id":
            return PropertyFilter(predicate.field, predicate.operator, predicate.value)

        if predicate.operator in ("IN", "NOT_IN"):
            raise InvalidFilterError("List operators on id are only supported as where.id {'in': [...]}")
        # None must not reach key_for, which would build a partial key
        key = self.key_builder.key_for(kind, parse_identifier(predicate.value))
        return PropertyFilter(KEY_PROPERTY, predicate.operator, key)
