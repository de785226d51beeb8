"""
Ambient transaction hook.

Lets an external transaction coordinator (an application's own unit of
work, a two-phase-commit manager, ...) enlist datastore transactions.
The SDK depends only on the narrow AmbientCoordinator protocol; the
default coordinator never enlists anything.

Example:
    >>> class UnitOfWork:
    ...     def __init__(self):
    ...         self.syncs = []
    ...     def attach(self, transaction):
    ...         self.syncs.append(TransactionSynchronization(transaction))
    ...         return True
    >>> set_ambient_coordinator(UnitOfWork())
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .batch import CommitResult
    from .transaction import Transaction

logger = logging.getLogger(__name__)

_coordinator: AmbientCoordinator | None = None
_coordinator_lock = threading.Lock()


@runtime_checkable
class AmbientCoordinator(Protocol):
    """Protocol for external transaction coordinators."""

    def attach(self, transaction: Transaction) -> bool:
        """Offer a new transaction to the coordinator.

        Returns:
            True if the coordinator enlisted the transaction and will drive
            its commit or rollback
        """
        ...


class NoAmbientCoordinator:
    """Default coordinator: never enlists."""

    def attach(self, transaction: Transaction) -> bool:
        return False


class TransactionSynchronization:
    """Adapts a Transaction to before/after-completion callbacks.

    The coordinator calls before_completion() while preparing its own
    commit and after_completion() once its outcome is known.
    """

    def __init__(self, transaction: Transaction) -> None:
        self.transaction = transaction
        self.result: CommitResult | None = None

    def before_completion(self) -> None:
        self.result = self.transaction.commit()

    def after_completion(self, committed: bool) -> None:
        if not committed and self.result is None:
            self.transaction.rollback()


def get_ambient_coordinator() -> AmbientCoordinator:
    """Get the process-wide coordinator."""
    global _coordinator
    with _coordinator_lock:
        if _coordinator is None:
            _coordinator = NoAmbientCoordinator()
        return _coordinator


def set_ambient_coordinator(coordinator: AmbientCoordinator | None) -> None:
    """Install a coordinator; None restores the default."""
    global _coordinator
    with _coordinator_lock:
        _coordinator = coordinator
    logger.debug(f"Ambient coordinator set to {type(coordinator).__name__}")


def attach_to_ambient_transaction(transaction: Transaction) -> bool:
    """Offer a transaction to the installed coordinator."""
    return get_ambient_coordinator().attach(transaction)
