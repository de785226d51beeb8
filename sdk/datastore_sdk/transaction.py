"""
Optimistic-concurrency transactions for the Datastore SDK.

A Transaction stages mutations like a Batch and additionally reads
through the store inside the snapshot taken by begin_transaction().
Reads are answered directly by the store, never staged. On commit the
store rejects the whole transaction with ABORTED if anything it read or
writes changed after the snapshot.

Lifecycle:
    ACTIVE -> COMMITTED      commit() succeeded
    ACTIVE -> ROLLED_BACK    rollback(), or commit() rejected by the store

Invariants:
    - Terminal states reject reads, mutations and commit()
    - rollback() in ROLLED_BACK is a silent no-op, in COMMITTED it fails
    - State checks are local and happen before any store call

Example:
    >>> with client.new_transaction() as txn:
    ...     counter = txn.get(key)
    ...     txn.put(Entity.builder(counter).set("n", counter.get_long("n") + 1).build())
"""

from __future__ import annotations

import logging
from enum import Enum
from types import TracebackType
from typing import TYPE_CHECKING, Any

from .batch import CommitResult, MutationWriter, commit_mutations, complete_keys
from .entity import Entity
from .errors import FailedPreconditionError
from .keys import Key
from .query import Query, QueryResults

if TYPE_CHECKING:
    from .store import RemoteStore, TransactionHandle

logger = logging.getLogger(__name__)


class TransactionState(Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction(MutationWriter):
    """A batch of mutations plus snapshot reads, committed atomically.

    Attributes:
        handle: Opaque transaction handle issued by the store
        state: Current lifecycle state
    """

    _label = "Transaction"

    def __init__(self, store: RemoteStore, handle: TransactionHandle) -> None:
        super().__init__(store)
        self._handle = handle
        self._state = TransactionState.ACTIVE

    @property
    def handle(self) -> TransactionHandle:
        return self._handle

    @property
    def state(self) -> TransactionState:
        return self._state

    def _check_active(self) -> None:
        if self._state is not TransactionState.ACTIVE:
            raise FailedPreconditionError(
                f"Transaction is not usable: {self._state.value}",
                details={"state": self._state.value},
            )

    def get(self, key: Key) -> Entity | None:
        """Read one entity within the transaction snapshot."""
        return self.get_many(key)[0]

    def get_many(self, *keys: Key) -> list[Entity | None]:
        """Read entities within the snapshot; None for missing keys."""
        self._check_active()
        return self._store.lookup(complete_keys("get", keys), self._handle)

    def run(self, query: Query) -> QueryResults[Any]:
        """Run a query within the transaction snapshot."""
        self._check_active()
        page = self._store.run_query(query, self._handle)
        return QueryResults(
            page, lambda token: self._store.run_query(query, self._handle, token)
        )

    def commit(self) -> CommitResult:
        """Send all staged mutations with the transaction handle.

        Returns:
            CommitResult with generated keys

        Raises:
            FailedPreconditionError: If the transaction is not active
            AbortedError: If a concurrent write conflicts with this transaction
        """
        self._check_active()
        self._active = False
        try:
            result = commit_mutations(self._store, self._mutations, self._handle)
        except Exception:
            # The store discards a transaction whose commit it rejected.
            self._state = TransactionState.ROLLED_BACK
            raise
        self._state = TransactionState.COMMITTED
        return result

    def rollback(self) -> None:
        """Discard staged mutations and release the handle.

        Raises:
            FailedPreconditionError: If the transaction was committed
        """
        if self._state is TransactionState.ROLLED_BACK:
            return
        self._check_active()
        self._active = False
        self._state = TransactionState.ROLLED_BACK
        self._mutations.clear()
        logger.debug("Rolling back transaction")
        self._store.rollback(self._handle)

    def __enter__(self) -> Transaction:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._state is not TransactionState.ACTIVE:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
