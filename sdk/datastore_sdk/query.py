"""
Query model for the Datastore SDK.

This module provides query descriptors and their result sequence:
- ResultType: FULL (Entity), KEY_ONLY (Key), PROJECTION (ProjectionEntity)
- StructuredQuery: kind, filters, ordering, projection, grouping, limit/offset
- GqlQuery: a query-language string with named and positional bindings
- PropertyFilter / CompositeFilter, OrderBy, Projection
- QueryResults: lazy, single-pass iterator over typed rows

Descriptors are immutable and built through builders. Running a query is
the job of DatastoreClient.run() or Transaction.run(); both hand back a
QueryResults that fetches further pages from the store only as rows are
consumed.

Invariants:
    - A KEY_ONLY structured query always projects exactly ``__key__``
    - QueryResults is not restartable
    - QueryResults.result_class is resolved even for GqlQuery(UNKNOWN)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .entity import Entity, ProjectionEntity
from .errors import InvalidArgumentError
from .keys import Key
from .values import Value, to_value

if TYPE_CHECKING:
    from .store import QueryPage

logger = logging.getLogger(__name__)

KEY_PROPERTY = "__key__"

R = TypeVar("R")


class ResultType(Enum):
    """Shape of the rows a query produces."""

    UNKNOWN = "unknown"
    FULL = "full"
    KEY_ONLY = "key_only"
    PROJECTION = "projection"

    @property
    def result_class(self) -> type | None:
        return {
            ResultType.FULL: Entity,
            ResultType.KEY_ONLY: Key,
            ResultType.PROJECTION: ProjectionEntity,
        }.get(self)


class Operator(Enum):
    """Property filter operators."""

    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    EQUAL = "="
    HAS_ANCESTOR = "HAS ANCESTOR"


class Direction(Enum):
    ASCENDING = "ASC"
    DESCENDING = "DESC"


class Aggregation(Enum):
    FIRST = "FIRST"


@dataclass(frozen=True)
class PropertyFilter:
    """Comparison of one property against a value.

    Example:
        >>> PropertyFilter.gt("age", 18)
        >>> PropertyFilter.has_ancestor(team_key)
    """

    property: str
    operator: Operator
    value: Value

    @classmethod
    def _of(cls, property: str, operator: Operator, value: Any) -> PropertyFilter:
        if not isinstance(property, str) or not property:
            raise InvalidArgumentError("Filter property must be a non-empty string")
        return cls(property, operator, to_value(value))

    @classmethod
    def lt(cls, property: str, value: Any) -> PropertyFilter:
        return cls._of(property, Operator.LESS_THAN, value)

    @classmethod
    def le(cls, property: str, value: Any) -> PropertyFilter:
        return cls._of(property, Operator.LESS_THAN_OR_EQUAL, value)

    @classmethod
    def gt(cls, property: str, value: Any) -> PropertyFilter:
        return cls._of(property, Operator.GREATER_THAN, value)

    @classmethod
    def ge(cls, property: str, value: Any) -> PropertyFilter:
        return cls._of(property, Operator.GREATER_THAN_OR_EQUAL, value)

    @classmethod
    def eq(cls, property: str, value: Any) -> PropertyFilter:
        return cls._of(property, Operator.EQUAL, value)

    @classmethod
    def is_null(cls, property: str) -> PropertyFilter:
        return cls._of(property, Operator.EQUAL, None)

    @classmethod
    def has_ancestor(cls, key: Key) -> PropertyFilter:
        if not isinstance(key, Key):
            raise InvalidArgumentError("has_ancestor requires a complete Key")
        return cls._of(KEY_PROPERTY, Operator.HAS_ANCESTOR, key)


@dataclass(frozen=True)
class CompositeFilter:
    """Conjunction of filters."""

    filters: tuple[PropertyFilter | CompositeFilter, ...]

    @classmethod
    def and_(cls, first: Filter, *others: Filter) -> CompositeFilter:
        return cls((first, *others))

    def flatten(self) -> Iterator[PropertyFilter]:
        for item in self.filters:
            if isinstance(item, CompositeFilter):
                yield from item.flatten()
            else:
                yield item


Filter = PropertyFilter | CompositeFilter


@dataclass(frozen=True)
class OrderBy:
    property: str
    direction: Direction = Direction.ASCENDING

    @classmethod
    def asc(cls, property: str) -> OrderBy:
        return cls(property, Direction.ASCENDING)

    @classmethod
    def desc(cls, property: str) -> OrderBy:
        return cls(property, Direction.DESCENDING)


@dataclass(frozen=True)
class Projection:
    """A projected property, optionally aggregated within its group."""

    property: str
    aggregation: Aggregation | None = None

    @classmethod
    def property_(cls, name: str) -> Projection:
        return cls(name)

    @classmethod
    def first(cls, name: str) -> Projection:
        return cls(name, Aggregation.FIRST)


@dataclass(frozen=True)
class Query:
    """Base of all query descriptors."""

    result_type: ResultType
    namespace: str | None = None


@dataclass(frozen=True)
class StructuredQuery(Query):
    """Query described field by field.

    Example:
        >>> query = (
        ...     StructuredQuery.projection_builder()
        ...     .kind("Person")
        ...     .projection(Projection.property_("age"), Projection.first("name"))
        ...     .filter(PropertyFilter.gt("age", 18))
        ...     .group_by("age")
        ...     .order_by(OrderBy.asc("age"))
        ...     .limit(10)
        ...     .build()
        ... )
    """

    kind: str | None = None
    filter: Filter | None = None
    order_by: tuple[OrderBy, ...] = ()
    projection: tuple[Projection, ...] = ()
    group_by: tuple[str, ...] = ()
    limit: int | None = None
    offset: int = 0

    @classmethod
    def builder(cls) -> StructuredQueryBuilder:
        """Builder for queries returning full entities."""
        return StructuredQueryBuilder(ResultType.FULL)

    @classmethod
    def key_only_builder(cls) -> StructuredQueryBuilder:
        """Builder for queries returning keys only."""
        return StructuredQueryBuilder(ResultType.KEY_ONLY).projection(
            Projection.property_(KEY_PROPERTY)
        )

    @classmethod
    def projection_builder(cls) -> StructuredQueryBuilder:
        """Builder for queries returning ProjectionEntity rows."""
        return StructuredQueryBuilder(ResultType.PROJECTION)

    def to_builder(self) -> StructuredQueryBuilder:
        builder = StructuredQueryBuilder(self.result_type)
        builder._fields = {
            "namespace": self.namespace,
            "kind": self.kind,
            "filter": self.filter,
            "order_by": self.order_by,
            "projection": self.projection,
            "group_by": self.group_by,
            "limit": self.limit,
            "offset": self.offset,
        }
        return builder

    def property_filters(self) -> list[PropertyFilter]:
        """All filters as a flat list."""
        if self.filter is None:
            return []
        if isinstance(self.filter, CompositeFilter):
            return list(self.filter.flatten())
        return [self.filter]


class StructuredQueryBuilder:
    """Builder for StructuredQuery."""

    def __init__(self, result_type: ResultType) -> None:
        self._result_type = result_type
        self._fields: dict[str, Any] = {
            "namespace": None,
            "kind": None,
            "filter": None,
            "order_by": (),
            "projection": (),
            "group_by": (),
            "limit": None,
            "offset": 0,
        }

    def namespace(self, namespace: str | None) -> StructuredQueryBuilder:
        self._fields["namespace"] = namespace
        return self

    def kind(self, kind: str) -> StructuredQueryBuilder:
        self._fields["kind"] = kind
        return self

    def filter(self, filter: Filter) -> StructuredQueryBuilder:
        self._fields["filter"] = filter
        return self

    def order_by(self, *orders: OrderBy) -> StructuredQueryBuilder:
        self._fields["order_by"] = self._fields["order_by"] + orders
        return self

    def projection(self, *projections: Projection) -> StructuredQueryBuilder:
        if self._result_type is ResultType.KEY_ONLY and self._fields["projection"]:
            raise InvalidArgumentError("Key-only queries always project __key__")
        self._fields["projection"] = self._fields["projection"] + projections
        return self

    def group_by(self, *properties: str) -> StructuredQueryBuilder:
        self._fields["group_by"] = self._fields["group_by"] + properties
        return self

    def limit(self, limit: int | None) -> StructuredQueryBuilder:
        if limit is not None and limit < 0:
            raise InvalidArgumentError("limit cannot be negative")
        self._fields["limit"] = limit
        return self

    def offset(self, offset: int) -> StructuredQueryBuilder:
        if offset < 0:
            raise InvalidArgumentError("offset cannot be negative")
        self._fields["offset"] = offset
        return self

    def build(self) -> StructuredQuery:
        if self._result_type is ResultType.PROJECTION and not self._fields["projection"]:
            raise InvalidArgumentError("Projection queries need at least one projection")
        return StructuredQuery(result_type=self._result_type, **self._fields)


@dataclass(frozen=True)
class GqlQuery(Query):
    """Query written in the store's query language.

    Bindings are referenced as ``@name`` (named) or ``@1`` (positional,
    1-based). Literal values in the string are rejected unless
    ``allow_literal`` is set.
    """

    query_string: str = ""
    allow_literal: bool = True
    named_bindings: tuple[tuple[str, Value], ...] = ()
    positional_bindings: tuple[Value, ...] = ()

    @classmethod
    def builder(cls, result_type_or_query: ResultType | str, query_string: str | None = None) -> GqlQueryBuilder:
        """Start a GqlQuery builder.

        Accepted forms:
            GqlQuery.builder("select * from Task")
            GqlQuery.builder(ResultType.KEY_ONLY, "select __key__ from Task")
        """
        if isinstance(result_type_or_query, ResultType):
            if query_string is None:
                raise InvalidArgumentError("GqlQuery.builder requires a query string")
            return GqlQueryBuilder(result_type_or_query, query_string)
        return GqlQueryBuilder(ResultType.UNKNOWN, result_type_or_query)

    def named_binding(self, name: str) -> Value | None:
        return dict(self.named_bindings).get(name)


class GqlQueryBuilder:
    """Builder for GqlQuery."""

    def __init__(self, result_type: ResultType, query_string: str) -> None:
        if not isinstance(query_string, str) or not query_string.strip():
            raise InvalidArgumentError("GQL query string cannot be empty")
        self._result_type = result_type
        self._query_string = query_string
        self._namespace: str | None = None
        self._allow_literal = True
        self._named: dict[str, Value] = {}
        self._positional: list[Value] = []

    def namespace(self, namespace: str | None) -> GqlQueryBuilder:
        self._namespace = namespace
        return self

    def query_string(self, query_string: str) -> GqlQueryBuilder:
        self._query_string = query_string
        return self

    def allow_literal(self, allow: bool) -> GqlQueryBuilder:
        self._allow_literal = allow
        return self

    def set_binding(self, name: str, value: Any) -> GqlQueryBuilder:
        self._named[name] = to_value(value)
        return self

    def add_binding(self, *values: Any) -> GqlQueryBuilder:
        self._positional.extend(to_value(v) for v in values)
        return self

    def clear_bindings(self) -> GqlQueryBuilder:
        self._named.clear()
        self._positional.clear()
        return self

    def build(self) -> GqlQuery:
        return GqlQuery(
            result_type=self._result_type,
            namespace=self._namespace,
            query_string=self._query_string,
            allow_literal=self._allow_literal,
            named_bindings=tuple(self._named.items()),
            positional_bindings=tuple(self._positional),
        )


class QueryResults(Generic[R]):
    """Lazy, single-pass sequence of query rows.

    Holds the current page and a callable fetching the page after it.
    Further pages are requested only when the current one is exhausted.
    """

    def __init__(self, page: QueryPage, fetch_next: Callable[[Any], QueryPage]) -> None:
        self._page = page
        self._fetch_next = fetch_next
        self._position = 0

    @property
    def result_type(self) -> ResultType:
        return self._page.result_type

    @property
    def result_class(self) -> type:
        """Concrete row class: Entity, Key or ProjectionEntity."""
        return self._page.result_type.result_class  # type: ignore[return-value]

    def has_next(self) -> bool:
        while self._position >= len(self._page.results):
            if self._page.next_page_token is None:
                return False
            logger.debug(f"Fetching next query page at token {self._page.next_page_token!r}")
            self._page = self._fetch_next(self._page.next_page_token)
            self._position = 0
        return True

    def next(self) -> R:
        if not self.has_next():
            raise StopIteration
        row = self._page.results[self._position]
        self._position += 1
        return row

    def __next__(self) -> R:
        return self.next()

    def __iter__(self) -> Iterator[R]:
        return self
