"""
RemoteStore protocol and wire-neutral record types.

This module defines the single collaborator the SDK talks to, along with
the records exchanged with it:
- MutationKind / Mutation: one staged write
- CommitResponse: keys assigned by a commit, or its failure code
- QueryPage: one page of typed query rows
- RemoteStore: lookup, run_query, commit, begin_transaction, rollback,
  allocate_ids

Encoding, transport, credentials and retries live behind this protocol;
the SDK core issues exactly one call per public operation and never
retries.

Invariants:
    - lookup() answers in input order, None for missing keys
    - commit() is all-or-nothing and reports assigned keys only for
      ADD mutations with incomplete keys, in submission order
    - allocate_ids() answers in input order; duplicates get distinct ids
    - rollback() is idempotent

How to change safely:
    - Protocol changes require updating InMemoryRemoteStore
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from .entity import Entity, PartialEntity
from .errors import ErrorCode
from .keys import Key, PartialKey
from .query import Query, ResultType

TransactionHandle = bytes


class MutationKind(Enum):
    """Kinds of staged writes."""

    ADD = "add"
    PUT = "put"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Mutation:
    """A staged write.

    Attributes:
        kind: Insert, upsert, replace or delete
        payload: Entity for writes, Key for deletes
    """

    kind: MutationKind
    payload: PartialEntity | Key

    @property
    def key(self) -> PartialKey:
        if isinstance(self.payload, PartialEntity):
            return self.payload.key
        return self.payload

    def needs_allocation(self) -> bool:
        """Whether the store must allocate an id for this mutation."""
        return self.kind is MutationKind.ADD and not self.key.is_complete()

    def __str__(self) -> str:
        return f"{self.kind.value.upper()} {self.key!r}"


@dataclass(frozen=True)
class CommitResponse:
    """Outcome of a commit.

    Attributes:
        assigned_keys: Keys allocated for incomplete ADD mutations, in order
        failure_code: Set when the commit was rejected as a whole
        failure_message: Human-readable reason for the rejection
    """

    assigned_keys: tuple[Key, ...] = ()
    failure_code: ErrorCode | None = None
    failure_message: str = ""

    @property
    def success(self) -> bool:
        return self.failure_code is None


@dataclass(frozen=True)
class QueryPage:
    """One page of query rows.

    Attributes:
        results: Entity, Key or ProjectionEntity rows
        result_type: Resolved row shape
        next_page_token: Opaque token for the following page, None when done
    """

    results: tuple[Any, ...] = field(default_factory=tuple)
    result_type: ResultType = ResultType.FULL
    next_page_token: Any = None


@runtime_checkable
class RemoteStore(Protocol):
    """Protocol for the remote document store.

    Implementations own encoding, transport, authentication and retry
    policy. Transactional reads pass the handle returned by
    begin_transaction() so they observe the transaction's snapshot.
    """

    @abstractmethod
    def lookup(
        self,
        keys: Sequence[Key],
        transaction: TransactionHandle | None = None,
    ) -> list[Entity | None]:
        """Fetch entities by key.

        Returns:
            One entry per input key, in order; None for missing keys
        """
        ...

    @abstractmethod
    def run_query(
        self,
        query: Query,
        transaction: TransactionHandle | None = None,
        page_token: Any = None,
    ) -> QueryPage:
        """Run a query and return one page of rows.

        Raises:
            InvalidArgumentError: If the query cannot be executed
        """
        ...

    @abstractmethod
    def commit(
        self,
        mutations: Sequence[Mutation],
        transaction: TransactionHandle | None = None,
    ) -> CommitResponse:
        """Apply mutations atomically, in order.

        Failures are reported through CommitResponse.failure_code rather
        than raised: ABORTED for transaction conflicts, ALREADY_EXISTS /
        NOT_FOUND for constraint violations.
        """
        ...

    @abstractmethod
    def begin_transaction(self) -> TransactionHandle:
        """Start a transaction and return its opaque handle."""
        ...

    @abstractmethod
    def rollback(self, transaction: TransactionHandle) -> None:
        """Discard a transaction. Unknown or finished handles are ignored."""
        ...

    @abstractmethod
    def allocate_ids(self, keys: Sequence[PartialKey]) -> list[Key]:
        """Allocate one fresh id per incomplete key, in order."""
        ...
