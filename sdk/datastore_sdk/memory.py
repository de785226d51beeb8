"""
In-memory RemoteStore implementation for testing.

This module provides a RemoteStore backend for:
- Unit tests
- Integration tests
- Local development without a remote store

It behaves like the remote store as far as the SDK can observe:
transactions read from a snapshot taken at begin, commits are
all-or-nothing, and a transactional commit is rejected with ABORTED
when a key it read or writes (or an ancestor scope it queried) changed
after the snapshot.

Index semantics:
    - Unindexed values and entity values are invisible to filters,
      ordering and projections
    - List values match filters element-wise
    - Values of different types never satisfy the same comparison
    - Ordering on a property drops entities that lack it

Invariants:
    - All data is lost on process exit
    - Thread-safe for concurrent access
    - Allocated ids never collide with stored ids, or with explicit ids
      written by the same commit, in the same id space
    - At most max_cursors unfinished query cursors are kept; the oldest
      is dropped first

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the RemoteStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import itertools
import logging
import operator
import re
import threading
from collections.abc import Container, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable

from .entity import Entity, ProjectionEntity
from .errors import ErrorCode, FailedPreconditionError, InvalidArgumentError
from .keys import Key, PartialKey
from .query import (
    KEY_PROPERTY,
    CompositeFilter,
    Direction,
    GqlQuery,
    Operator,
    OrderBy,
    Projection,
    PropertyFilter,
    Query,
    ResultType,
    StructuredQuery,
)
from .store import CommitResponse, Mutation, MutationKind, QueryPage, TransactionHandle
from .values import (
    DATE_TIME_MEANING,
    BooleanValue,
    DateTimeValue,
    DoubleValue,
    EntityValue,
    KeyValue,
    ListValue,
    LongValue,
    NullValue,
    StringValue,
    Value,
    ValueType,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_CURSORS = 100

_TYPE_RANKS = {
    ValueType.NULL: 0,
    ValueType.LONG: 1,
    ValueType.DATE_TIME: 1,
    ValueType.BOOLEAN: 2,
    ValueType.BLOB: 3,
    ValueType.RAW_VALUE: 3,
    ValueType.STRING: 4,
    ValueType.DOUBLE: 5,
    ValueType.KEY: 6,
}

_COMPARISONS: dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.LESS_THAN: operator.lt,
    Operator.LESS_THAN_OR_EQUAL: operator.le,
    Operator.GREATER_THAN: operator.gt,
    Operator.GREATER_THAN_OR_EQUAL: operator.ge,
    Operator.EQUAL: operator.eq,
}

IndexEntry = tuple[int, Any]


@dataclass
class InMemoryTransaction:
    """Per-transaction bookkeeping."""

    snapshot: dict[Key, Entity]
    version: int
    read_keys: set[Key] = field(default_factory=set)
    ancestor_scopes: set[Key] = field(default_factory=set)


class InMemoryRemoteStore:
    """In-memory implementation of RemoteStore for testing.

    Attributes:
        page_size: Maximum rows per query page
        calls: Names of the protocol methods invoked, in order

    Example:
        >>> store = InMemoryRemoteStore(page_size=2)
        >>> client = DatastoreClient(store, DatastoreOptions(dataset="d"))
        >>> client.put(entity)
        >>> store.calls
        ['commit']
    """

    def __init__(
        self, page_size: int = DEFAULT_PAGE_SIZE, max_cursors: int = DEFAULT_MAX_CURSORS
    ) -> None:
        """Initialize in-memory store.

        Args:
            page_size: Maximum rows returned per query page
            max_cursors: Maximum unfinished query cursors kept for paging
        """
        if page_size < 1:
            raise InvalidArgumentError("page_size must be positive")
        if max_cursors < 1:
            raise InvalidArgumentError("max_cursors must be positive")
        self.page_size = page_size
        self.max_cursors = max_cursors
        self.calls: list[str] = []
        self._entities: dict[Key, Entity] = {}
        self._versions: dict[Key, int] = {}
        self._version = 0
        self._transactions: dict[TransactionHandle, InMemoryTransaction] = {}
        self._transaction_counter = itertools.count(1)
        self._id_counters: dict[tuple[Any, ...], int] = {}
        self._cursors: dict[int, tuple[ResultType, list[Any]]] = {}
        self._cursor_counter = itertools.count(1)
        self._lock = threading.Lock()

    def entity_count(self) -> int:
        """Number of stored entities."""
        with self._lock:
            return len(self._entities)

    # Protocol

    def lookup(
        self,
        keys: Sequence[Key],
        transaction: TransactionHandle | None = None,
    ) -> list[Entity | None]:
        for key in keys:
            if not isinstance(key, Key):
                raise InvalidArgumentError(f"lookup() expects complete keys, got {key!r}")
        with self._lock:
            self.calls.append("lookup")
            source = self._entities
            if transaction is not None:
                txn = self._transaction(transaction)
                txn.read_keys.update(keys)
                source = txn.snapshot
            found = [source.get(key) for key in keys]
        logger.debug(
            "Lookup served from memory",
            extra={"keys": len(keys), "found": sum(1 for e in found if e is not None)},
        )
        return found

    def run_query(
        self,
        query: Query,
        transaction: TransactionHandle | None = None,
        page_token: Any = None,
    ) -> QueryPage:
        """Run a query and return one page.

        The full result is computed on the first call and served in pages
        of page_size rows; page_token is an opaque cursor into it.

        Raises:
            InvalidArgumentError: If the query is malformed or the token unknown
        """
        with self._lock:
            self.calls.append("run_query")
            if page_token is None:
                result_type, rows = self._execute(query, transaction)
                cursor_id, position = next(self._cursor_counter), 0
                self._cursors[cursor_id] = (result_type, rows)
                while len(self._cursors) > self.max_cursors:
                    evicted = next(iter(self._cursors))
                    del self._cursors[evicted]
                    logger.debug(f"Evicted abandoned query cursor {evicted}")
            else:
                try:
                    cursor_id, position = page_token
                    result_type, rows = self._cursors[cursor_id]
                except (KeyError, TypeError, ValueError):
                    raise InvalidArgumentError(f"Unknown page token {page_token!r}") from None

            end = position + self.page_size
            page_rows = tuple(rows[position:end])
            if end < len(rows):
                next_token: Any = (cursor_id, end)
            else:
                next_token = None
                del self._cursors[cursor_id]

        logger.debug(
            "Query page served from memory",
            extra={"rows": len(page_rows), "more": next_token is not None},
        )
        return QueryPage(results=page_rows, result_type=result_type, next_page_token=next_token)

    def commit(
        self,
        mutations: Sequence[Mutation],
        transaction: TransactionHandle | None = None,
    ) -> CommitResponse:
        with self._lock:
            self.calls.append("commit")
            if transaction is not None:
                txn = self._transactions.pop(transaction, None)
                if txn is None:
                    return CommitResponse(
                        failure_code=ErrorCode.FAILED_PRECONDITION,
                        failure_message="Unknown or finished transaction",
                    )
                conflict = self._find_conflict(txn, mutations)
                if conflict is not None:
                    logger.debug(f"Transaction conflict on {conflict!r}")
                    return CommitResponse(
                        failure_code=ErrorCode.ABORTED,
                        failure_message=f"Concurrent modification of {conflict!r}",
                    )
            response = self._apply(mutations)

        logger.debug(
            "Commit applied in memory" if response.success else "Commit rejected in memory",
            extra={"mutations": len(mutations), "assigned": len(response.assigned_keys)},
        )
        return response

    def begin_transaction(self) -> TransactionHandle:
        with self._lock:
            self.calls.append("begin_transaction")
            handle = f"txn-{next(self._transaction_counter)}".encode()
            version = self._version
            self._transactions[handle] = InMemoryTransaction(
                snapshot=dict(self._entities), version=version
            )
        logger.debug(f"Transaction {handle!r} started at version {version}")
        return handle

    def rollback(self, transaction: TransactionHandle) -> None:
        with self._lock:
            self.calls.append("rollback")
            self._transactions.pop(transaction, None)
        logger.debug(f"Transaction {transaction!r} rolled back")

    def allocate_ids(self, keys: Sequence[PartialKey]) -> list[Key]:
        for key in keys:
            if not isinstance(key, PartialKey) or key.is_complete():
                raise InvalidArgumentError(f"allocate_ids() expects incomplete keys, got {key!r}")
        with self._lock:
            self.calls.append("allocate_ids")
            allocated = [self._allocate(key) for key in keys]
        logger.debug(f"Allocated {len(allocated)} ids")
        return allocated

    # Internals (callers hold self._lock)

    def _transaction(self, handle: TransactionHandle) -> InMemoryTransaction:
        txn = self._transactions.get(handle)
        if txn is None:
            raise FailedPreconditionError(
                "Unknown or finished transaction", details={"handle": handle.decode(errors="replace")}
            )
        return txn

    def _allocate(self, partial: PartialKey, taken: Container[Key] = ()) -> Key:
        """Next free id in the partial key's id space, skipping stored and taken keys."""
        space = (partial.dataset, partial.namespace, partial.ancestors, partial.kind)
        next_id = self._id_counters.get(space, 0) + 1
        while True:
            key = Key(
                partial.dataset,
                partial.kind,
                next_id,
                namespace=partial.namespace,
                ancestors=partial.ancestors,
            )
            if key not in self._entities and key not in taken:
                break
            next_id += 1
        self._id_counters[space] = next_id
        return key

    def _reserve(self, key: Key) -> None:
        """Move the id counter of the key's id space past an explicit id."""
        space = (key.dataset, key.namespace, key.ancestors, key.kind)
        if self._id_counters.get(space, 0) < key.id:  # type: ignore[operator]
            self._id_counters[space] = key.id  # type: ignore[assignment]

    def _find_conflict(
        self, txn: InMemoryTransaction, mutations: Sequence[Mutation]
    ) -> Key | None:
        touched = set(txn.read_keys)
        touched.update(m.key for m in mutations if isinstance(m.key, Key))
        for key in touched:
            if self._versions.get(key, 0) > txn.version:
                return key
        for scope in txn.ancestor_scopes:
            for key, version in self._versions.items():
                if version > txn.version and _is_descendant(key, scope):
                    return scope
        return None

    def _apply(self, mutations: Sequence[Mutation]) -> CommitResponse:
        working = dict(self._entities)
        explicit = {m.key for m in mutations if isinstance(m.key, Key)}
        assigned: list[Key] = []
        touched: set[Key] = set()

        for mutation in mutations:
            if mutation.kind is MutationKind.DELETE:
                working.pop(mutation.key, None)  # type: ignore[arg-type]
                touched.add(mutation.key)  # type: ignore[arg-type]
                continue

            entity = mutation.payload
            if mutation.needs_allocation():
                key = self._allocate(mutation.key, working.keys() | explicit)
                assigned.append(key)
                entity = Entity.builder(entity).key(key).build()  # type: ignore[arg-type]
            elif not isinstance(mutation.key, Key):
                return CommitResponse(
                    failure_code=ErrorCode.INVALID_ARGUMENT,
                    failure_message=f"{mutation} requires a complete key",
                )
            elif not isinstance(entity, Entity):
                entity = Entity.builder(entity).build()  # type: ignore[arg-type]

            key = entity.key  # type: ignore[union-attr]
            if mutation.kind is MutationKind.ADD and key in working:
                return CommitResponse(
                    failure_code=ErrorCode.ALREADY_EXISTS,
                    failure_message=f"Entity already exists: {key!r}",
                )
            if mutation.kind is MutationKind.UPDATE and key not in working:
                return CommitResponse(
                    failure_code=ErrorCode.NOT_FOUND,
                    failure_message=f"No entity to update: {key!r}",
                )
            working[key] = entity  # type: ignore[assignment]
            touched.add(key)

        self._version += 1
        for key in touched:
            self._versions[key] = self._version
            if key.has_id():
                self._reserve(key)
        self._entities = working
        return CommitResponse(assigned_keys=tuple(assigned))

    def _execute(
        self, query: Query, transaction: TransactionHandle | None
    ) -> tuple[ResultType, list[Any]]:
        if isinstance(query, GqlQuery):
            query = parse_gql(query)
        if not isinstance(query, StructuredQuery):
            raise InvalidArgumentError(f"Unsupported query type {type(query).__name__}")

        source = self._entities
        txn = None
        if transaction is not None:
            txn = self._transaction(transaction)
            source = txn.snapshot

        filters = query.property_filters()
        for flt in filters:
            if isinstance(flt.value, (ListValue, EntityValue)):
                raise InvalidArgumentError(
                    f"Cannot filter '{flt.property}' on a {flt.value.type.value} value"
                )
        if query.group_by and query.result_type is not ResultType.PROJECTION:
            raise InvalidArgumentError("group_by requires a projection query")
        projected = [p.property for p in query.projection]
        for name in query.group_by:
            if name not in projected:
                raise InvalidArgumentError(f"group_by property '{name}' is not projected")

        entities = [
            entity
            for entity in sorted(source.values(), key=lambda e: e.key.sort_key())
            if _in_scope(entity, query)
            and all(_matches(entity, flt) for flt in filters)
            and all(_property_entries(entity, o.property) for o in query.order_by)
        ]
        for order in reversed(query.order_by):
            _sort(entities, order)

        if txn is not None:
            txn.read_keys.update(entity.key for entity in entities)
            txn.ancestor_scopes.update(
                flt.value.get() for flt in filters if flt.operator is Operator.HAS_ANCESTOR
            )

        rows: list[Any]
        if query.result_type is ResultType.KEY_ONLY:
            rows = [entity.key for entity in entities]
        elif query.result_type is ResultType.PROJECTION:
            rows = [row for entity in entities for row in _project(entity, projected)]
            if query.group_by:
                rows = _first_per_group(rows, query.group_by)
        else:
            rows = list(entities)

        rows = rows[query.offset :]
        if query.limit is not None:
            rows = rows[: query.limit]
        return query.result_type, rows


def _in_scope(entity: Entity, query: StructuredQuery) -> bool:
    key = entity.key
    if key.namespace != (query.namespace or None):
        return False
    return query.kind is None or key.kind == query.kind


def _is_descendant(key: Key, ancestor: Key) -> bool:
    """Whether ancestor is key itself or one of its ancestors."""
    path = ancestor.path()
    return (
        key.dataset == ancestor.dataset
        and key.namespace == ancestor.namespace
        and key.path()[: len(path)] == path
    )


def _index_entry(value: Value) -> IndexEntry:
    if isinstance(value, DateTimeValue):
        payload: Any = value.timestamp_micros()
    elif isinstance(value, KeyValue):
        payload = value.get().sort_key()
    elif isinstance(value, NullValue):
        payload = 0
    else:
        payload = value.get()
    return (_TYPE_RANKS[value.type], payload)


def _index_entries(value: Value) -> list[IndexEntry]:
    """Index entries of a stored value; empty when it is not indexed."""
    if value.indexed is False or isinstance(value, EntityValue):
        return []
    if isinstance(value, ListValue):
        return [entry for element in value.get() for entry in _index_entries(element)]
    return [_index_entry(value)]


def _property_entries(entity: Entity, name: str) -> list[IndexEntry]:
    if name == KEY_PROPERTY:
        return [_index_entry(KeyValue.of(entity.key))]
    value = entity.properties.get(name)
    if value is None:
        return []
    return _index_entries(value)


def _matches(entity: Entity, flt: PropertyFilter) -> bool:
    if flt.operator is Operator.HAS_ANCESTOR:
        return _is_descendant(entity.key, flt.value.get())
    rank, target = _index_entry(flt.value)
    compare = _COMPARISONS[flt.operator]
    return any(
        entry_rank == rank and compare(payload, target)
        for entry_rank, payload in _property_entries(entity, flt.property)
    )


def _sort(entities: list[Entity], order: OrderBy) -> None:
    # Multi-valued properties sort by their smallest (ascending) or
    # largest (descending) element.
    descending = order.direction is Direction.DESCENDING
    pick = max if descending else min
    entities.sort(key=lambda e: pick(_property_entries(e, order.property)), reverse=descending)


def _projected_values(value: Value) -> list[Value]:
    if value.indexed is False or isinstance(value, EntityValue):
        return []
    if isinstance(value, ListValue):
        return [v for element in value.get() for v in _projected_values(element)]
    if isinstance(value, DateTimeValue):
        # Index rows carry timestamps as tagged integers.
        return [LongValue.builder(value.timestamp_micros()).meaning(DATE_TIME_MEANING).build()]
    return [value]


def _project(entity: Entity, names: Sequence[str]) -> list[ProjectionEntity]:
    """One row per combination of projected values; none if any is missing."""
    choices = []
    for name in names:
        if name == KEY_PROPERTY:
            continue
        value = entity.properties.get(name)
        candidates = _projected_values(value) if value is not None else []
        if not candidates:
            return []
        choices.append([(name, candidate) for candidate in candidates])
    return [ProjectionEntity(entity.key, dict(combo)) for combo in itertools.product(*choices)]


def _first_per_group(rows: list[ProjectionEntity], group_by: Sequence[str]) -> list[ProjectionEntity]:
    seen: set[tuple[Value | None, ...]] = set()
    firsts = []
    for row in rows:
        group = tuple(row.properties.get(name) for name in group_by)
        if group not in seen:
            seen.add(group)
            firsts.append(row)
    return firsts


# GQL subset

_GQL = re.compile(
    r"^\s*SELECT\s+(?P<select>.+?)\s+FROM\s+(?P<kind>\w+)"
    r"(?:\s+WHERE\s+(?P<where>.+?))?"
    r"(?:\s+ORDER\s+BY\s+(?P<order>.+?))?"
    r"(?:\s+LIMIT\s+(?P<limit>\d+))?"
    r"(?:\s+OFFSET\s+(?P<offset>\d+))?\s*$",
    re.IGNORECASE | re.DOTALL,
)
_ANCESTOR_CONDITION = re.compile(r"^__key__\s+HAS\s+ANCESTOR\s+(?P<operand>.+)$", re.IGNORECASE)
_CONDITION = re.compile(r"^(?P<property>\w+)\s*(?P<op><=|>=|<|>|=)\s*(?P<operand>.+)$")
_ORDER = re.compile(r"^(?P<property>\w+)(?:\s+(?P<direction>ASC|DESC))?$", re.IGNORECASE)


def parse_gql(query: GqlQuery) -> StructuredQuery:
    """Translate a GqlQuery into the equivalent StructuredQuery.

    Supported:
        SELECT * | __key__ | p1, p2 FROM kind
        [WHERE p op value AND ... | __key__ HAS ANCESTOR @key]
        [ORDER BY p [ASC|DESC], ...] [LIMIT n] [OFFSET n]

    Values are ``@name`` / ``@1`` bindings, or literals (integers, floats,
    quoted strings, TRUE, FALSE, NULL) when the query allows them.

    Raises:
        InvalidArgumentError: On syntax errors, missing bindings, disallowed
            literals, or a select list contradicting the requested result type
    """
    match = _GQL.match(query.query_string)
    if match is None:
        raise InvalidArgumentError(f"Unsupported GQL: {query.query_string!r}")

    select = match.group("select").strip()
    projection: tuple[Projection, ...] = ()
    if select == "*":
        result_type = ResultType.FULL
    elif select == KEY_PROPERTY:
        # A projection of __key__ alone gives rows with no properties.
        if query.result_type is ResultType.PROJECTION:
            result_type = ResultType.PROJECTION
        else:
            result_type = ResultType.KEY_ONLY
        projection = (Projection.property_(KEY_PROPERTY),)
    else:
        result_type = ResultType.PROJECTION
        projection = tuple(Projection.property_(name.strip()) for name in select.split(","))
    if query.result_type not in (ResultType.UNKNOWN, result_type):
        raise InvalidArgumentError(
            f"GQL selects {result_type.value} rows but {query.result_type.value} were requested"
        )

    filters: list[PropertyFilter] = []
    if match.group("where"):
        for condition in re.split(r"\s+AND\s+", match.group("where").strip(), flags=re.IGNORECASE):
            filters.append(_parse_condition(condition.strip(), query))

    order_by: list[OrderBy] = []
    if match.group("order"):
        for item in match.group("order").split(","):
            order = _ORDER.match(item.strip())
            if order is None:
                raise InvalidArgumentError(f"Bad ORDER BY clause: {item.strip()!r}")
            direction = (order.group("direction") or "ASC").upper()
            order_by.append(OrderBy(order.group("property"), Direction(direction)))

    flt: PropertyFilter | CompositeFilter | None = None
    if len(filters) == 1:
        flt = filters[0]
    elif filters:
        flt = CompositeFilter(tuple(filters))

    return StructuredQuery(
        result_type=result_type,
        namespace=query.namespace,
        kind=match.group("kind"),
        filter=flt,
        order_by=tuple(order_by),
        projection=projection,
        limit=int(match.group("limit")) if match.group("limit") else None,
        offset=int(match.group("offset") or 0),
    )


def _parse_condition(condition: str, query: GqlQuery) -> PropertyFilter:
    ancestor = _ANCESTOR_CONDITION.match(condition)
    if ancestor is not None:
        value = _parse_operand(ancestor.group("operand"), query)
        if not isinstance(value, KeyValue):
            raise InvalidArgumentError("HAS ANCESTOR needs a key value")
        return PropertyFilter.has_ancestor(value.get())

    match = _CONDITION.match(condition)
    if match is None:
        raise InvalidArgumentError(f"Bad WHERE condition: {condition!r}")
    value = _parse_operand(match.group("operand"), query)
    return PropertyFilter(match.group("property"), Operator(match.group("op")), value)


def _parse_operand(text: str, query: GqlQuery) -> Value:
    text = text.strip()
    if text.startswith("@"):
        reference = text[1:]
        if reference.isdigit():
            position = int(reference)
            if not 1 <= position <= len(query.positional_bindings):
                raise InvalidArgumentError(f"No value bound to @{position}")
            return query.positional_bindings[position - 1]
        value = query.named_binding(reference)
        if value is None:
            raise InvalidArgumentError(f"No value bound to @{reference}")
        return value
    if not query.allow_literal:
        raise InvalidArgumentError(f"Literal {text} not allowed, use a binding")
    return _parse_literal(text)


def _parse_literal(text: str) -> Value:
    upper = text.upper()
    if upper == "NULL":
        return NullValue.of()
    if upper in ("TRUE", "FALSE"):
        return BooleanValue.of(upper == "TRUE")
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return StringValue.of(text[1:-1])
    try:
        return LongValue.of(int(text))
    except ValueError:
        pass
    try:
        return DoubleValue.of(float(text))
    except ValueError:
        raise InvalidArgumentError(f"Unrecognized literal: {text}") from None
