"""
Filter model for the Datastore connector.

The ORM hands over loosely shaped filter objects::

    {
        "where": {"type": "Animal", "age": {"lt": 28}},
        "order": ["age DESC"],
        "limit": 10,
        "skip": 20,
        "fields": {"emails": True},
    }

This module validates that shape with pydantic and turns ``where`` into a
flat list of predicates. Each predicate is one of three variants:

- EqualityPredicate: ``field = value``
- ComparisonPredicate: ``field <op> value`` for a recognised operator
- UnsupportedPredicate: an operator the datastore cannot express

Unsupported predicates are kept in the list so the compiler can reject the
whole filter with a message naming the offending field.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .exceptions import InvalidFilterError

logger = logging.getLogger(__name__)

# Keys that mark an object as a full filter rather than a bare where clause
FILTER_KEYS = frozenset({"where", "order", "limit", "skip", "offset", "fields"})

# ORM operator name -> native PropertyFilter operator
OPERATORS = {
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
    "ne": "!=",
    "in": "IN",
    # LoopBack spellings
    "eq": "=",
    "neq": "!=",
    "inq": "IN",
    "nin": "NOT_IN",
}

# Operators under where.id that are answered with a key lookup
LOOKUP_OPERATORS = frozenset({"eq", "in", "inq"})


@dataclass(frozen=True)
class EqualityPredicate:
    """``field = value``"""
    field: str
    value: Any

    @property
    def operator(self) -> str:
        return "="


@dataclass(frozen=True)
class ComparisonPredicate:
    """``field <operator> value`` with a native operator."""
    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class UnsupportedPredicate:
    """An operator with no native counterpart."""
    field: str
    operator: str
    value: Any


Predicate = Union[EqualityPredicate, ComparisonPredicate, UnsupportedPredicate]


@dataclass(frozen=True)
class OrderDirective:
    """Sort on one property."""
    field: str
    descending: bool = False

    def to_native(self) -> str:
        """Native order string (``-field`` for descending)."""
        return f"-{self.field}" if self.descending else self.field


def parse_where(where: Optional[dict[str, Any]]) -> list[Predicate]:
    """
    Flatten a where clause into predicates.

    Every key becomes an independent predicate; all of them are ANDed. An
    ``and`` key holding a list of where clauses is flattened into the same
    list. ``or`` cannot be expressed and is rejected.

    Args:
        where: Where clause mapping field names to literals or operator objects

    Returns:
        List of predicates in clause order

    Raises:
        InvalidFilterError: If the clause uses ``or`` or is malformed

    Example:
        >>> parse_where({"type": "Animal", "age": {"lt": 28}})
        [EqualityPredicate(field='type', value='Animal'),
         ComparisonPredicate(field='age', operator='<', value=28)]
    """
    if not where:
        return []

    predicates: list[Predicate] = []
    for field, value in where.items():
        if field == "and":
            if not isinstance(value, list):
                raise InvalidFilterError("'and' expects a list of where clauses")
            for clause in value:
                if not isinstance(clause, dict):
                    raise InvalidFilterError("'and' expects a list of where clauses")
                predicates.extend(parse_where(clause))
        elif field == "or":
            raise InvalidFilterError("'or' conditions are not supported by Datastore queries")
        elif isinstance(value, dict):
            for operation, comparison in value.items():
                operator = OPERATORS.get(operation)
                if operator is None:
                    predicates.append(UnsupportedPredicate(field, operation, comparison))
                elif operator == "=":
                    predicates.append(EqualityPredicate(field, comparison))
                else:
                    predicates.append(ComparisonPredicate(field, operator, comparison))
        else:
            predicates.append(EqualityPredicate(field, value))

    return predicates


def parse_order(order: Union[str, list[str]]) -> list[OrderDirective]:
    """
    Parse order entries like ``"price DESC"``.

    ``DESC`` in any case sorts descending, any other direction ascending.
    Entries without a direction are skipped with a warning.
    """
    if isinstance(order, str):
        order = [order]

    directives = []
    for option in order:
        parts = option.split()
        if len(parts) < 2:
            logger.warning(
                f"No order provided for property in {option!r}. "
                "Please provide DESC or ASC sort order."
            )
            continue
        field, direction = parts[0], parts[1]
        directives.append(OrderDirective(field, descending=direction.upper() == "DESC"))
    return directives


class Filter(BaseModel):
    """
    Validated ORM filter.

    ``skip`` also accepts ``offset``. ``fields`` is either a mapping of
    field name to bool or a list of field names. ``id`` is only set when a
    caller passes an id next to the filter keys (``updateById``).
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    where: Optional[dict[str, Any]] = None
    order: Optional[Union[str, list[str]]] = None
    limit: Optional[int] = Field(default=None, ge=0)
    skip: Optional[int] = Field(
        default=None, ge=0, validation_alias=AliasChoices("skip", "offset")
    )
    fields: Optional[Union[dict[str, Any], list[str]]] = None
    id: Optional[Any] = None

    @classmethod
    def coerce(cls, value: Union["Filter", dict[str, Any], None]) -> "Filter":
        """
        Build a Filter from whatever the ORM passed.

        An object containing none of the filter keys is a bare where
        clause. Only ``all`` takes a full filter; use ``for_where`` for
        the verbs that take a where clause.

        Raises:
            InvalidFilterError: If the object does not validate
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if not isinstance(value, dict):
            raise InvalidFilterError(f"Expected a filter object, got {type(value).__name__}")

        try:
            if FILTER_KEYS.intersection(value):
                return cls.model_validate(value)
            return cls(where=dict(value)) if value else cls()
        except ValidationError as e:
            raise InvalidFilterError(str(e)) from e

    @classmethod
    def for_where(cls, value: Union["Filter", dict[str, Any], None]) -> "Filter":
        """
        Build a Filter from the argument of ``count``, ``update`` or ``destroy_all``.

        These verbs take a where clause, so properties named ``limit``,
        ``order`` or ``fields`` are matched as properties. An explicit
        ``{"where": {...}}`` wrapper is unwrapped, keeping a top-level
        ``id``; every other key of the wrapper is ignored.

        Raises:
            InvalidFilterError: If the object is not a mapping
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            return cls(where=value.where, id=value.id)
        if not isinstance(value, dict):
            raise InvalidFilterError(f"Expected a where object, got {type(value).__name__}")

        if isinstance(value.get("where"), dict):
            return cls(where=dict(value["where"]), id=value.get("id"))
        return cls(where=dict(value))

    @property
    def identifier(self) -> Optional[Any]:
        """Id targeted by ``where.id`` or, failing that, a top-level ``id``."""
        identifier = self.where_identifier
        return identifier if identifier is not None else self.id

    @property
    def where_identifier(self) -> Optional[Any]:
        """
        Id targeted by ``where.id`` for a key lookup.

        Operator objects other than ``eq``/``in``/``inq`` (``{"gt": 5}``)
        are not lookups; they stay in the where clause and are compiled
        into key comparisons.
        """
        if not self.where:
            return None
        identifier = self.where.get("id")
        if isinstance(identifier, dict) and not LOOKUP_OPERATORS.issuperset(identifier):
            return None
        return identifier

    def has_criteria(self) -> bool:
        """Whether any of where/order/limit/fields/skip is set."""
        return bool(
            self.where is not None
            or self.order is not None
            or self.limit
            or self.skip
            or self.fields is not None
        )

    def predicates(self) -> list[Predicate]:
        """Predicates of the where clause."""
        return parse_where(self.where)

    @property
    def has_empty_order(self) -> bool:
        """Whether order was given as a list with no entries."""
        return isinstance(self.order, list) and not self.order

    def order_directives(self) -> list[OrderDirective]:
        """Ordering for the query, without the skipped entries."""
        if self.order is None:
            return []
        return parse_order(self.order)

    def projection(self) -> list[str]:
        """
        Field names to select.

        Only entries whose value is exactly True are selected. An empty list
        means all fields, so an all-false mapping returns everything.
        """
        if not self.fields:
            return []
        if isinstance(self.fields, list):
            return list(self.fields)
        return [name for name, selected in self.fields.items() if selected is True]
