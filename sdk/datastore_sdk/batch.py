"""
Mutation staging for the Datastore SDK.

This module provides write staging shared by batches and transactions:
- MutationWriter: Ordered add/put/update/delete staging, single use
- Batch: Mutations submitted together in one all-or-nothing request
- CommitResult: Keys generated for incomplete-keyed adds

Example:
    >>> batch = client.new_batch()
    >>> batch.add(task).put(project).delete(old_key)
    >>> result = batch.submit()
    >>> result.generated_keys

Invariants:
    - Mutations are kept and sent in call order
    - Arguments are validated when staged, before any network call
    - Once submitted (whatever the outcome) a batch rejects every call
    - generated_keys follows the order of the incomplete adds
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .entity import Entity, PartialEntity
from .errors import DatastoreError, ErrorCode, FailedPreconditionError, InvalidArgumentError, error_for_code
from .keys import Key
from .store import CommitResponse, Mutation, MutationKind

if TYPE_CHECKING:
    from .store import RemoteStore, TransactionHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    """Result of submitting a batch or committing a transaction.

    Attributes:
        generated_keys: Keys allocated for incomplete-keyed adds, in add order
    """

    generated_keys: tuple[Key, ...] = ()


class MutationWriter:
    """Ordered, single-use staging of mutations.

    Subclasses decide when the writer stops being active and how the
    staged list is sent.
    """

    _label = "Writer"

    def __init__(self, store: RemoteStore) -> None:
        self._store = store
        self._mutations: list[Mutation] = []
        self._active = True

    @property
    def active(self) -> bool:
        """Whether mutations may still be staged."""
        return self._active

    @property
    def mutations(self) -> tuple[Mutation, ...]:
        return tuple(self._mutations)

    def _check_active(self) -> None:
        if not self._active:
            raise FailedPreconditionError(f"{self._label} is no longer active")

    def _stage(self, kind: MutationKind, payloads: Sequence[PartialEntity | Key]) -> None:
        self._mutations.extend(Mutation(kind, payload) for payload in payloads)

    def add(self, *entities: PartialEntity) -> MutationWriter:
        """Stage inserts. Entities with incomplete keys get ids allocated at commit.

        Raises:
            InvalidArgumentError: If an argument is not an entity
            FailedPreconditionError: If the writer is no longer active
        """
        self._check_active()
        for entity in entities:
            if not isinstance(entity, PartialEntity):
                raise InvalidArgumentError(f"add() expects entities, got {type(entity).__name__}")
        self._stage(MutationKind.ADD, entities)
        return self

    def put(self, *entities: Entity) -> MutationWriter:
        """Stage upserts; the key must be complete."""
        self._check_active()
        self._stage(MutationKind.PUT, _complete_entities("put", entities))
        return self

    def update(self, *entities: Entity) -> MutationWriter:
        """Stage replacements of existing entities; the key must be complete."""
        self._check_active()
        self._stage(MutationKind.UPDATE, _complete_entities("update", entities))
        return self

    def delete(self, *keys: Key) -> MutationWriter:
        """Stage removals. Deleting a missing key is not an error."""
        self._check_active()
        self._stage(MutationKind.DELETE, complete_keys("delete", keys))
        return self

class Batch(MutationWriter):
    """Mutations submitted together in one all-or-nothing request.

    Example:
        >>> batch = client.new_batch()
        >>> batch.add(partial_a, partial_b)
        >>> keys = batch.submit().generated_keys
    """

    _label = "Batch"

    def submit(self) -> CommitResult:
        """Submit all staged mutations.

        Returns:
            CommitResult with generated keys

        Raises:
            FailedPreconditionError: If the batch was already submitted
            AlreadyExistsError: If an add targets an existing key
            EntityNotFoundError: If an update targets a missing key
        """
        self._check_active()
        self._active = False
        return commit_mutations(self._store, self._mutations)


def commit_mutations(
    store: RemoteStore,
    mutations: Sequence[Mutation],
    transaction: TransactionHandle | None = None,
) -> CommitResult:
    """Send mutations in one commit call and map the response.

    Args:
        store: RemoteStore to commit to
        mutations: Staged mutations, in call order
        transaction: Transaction handle, or None for a plain batch

    Returns:
        CommitResult with generated keys

    Raises:
        DatastoreError: The subclass matching the store's failure code
    """
    logger.debug(
        f"Committing {len(mutations)} mutations"
        + (" in transaction" if transaction is not None else "")
    )
    response = store.commit(list(mutations), transaction)
    return _to_commit_result(response, mutations)


def complete_keys(operation: str, keys: Sequence[Key]) -> list[Key]:
    """Check that every argument is a complete Key, before any store call.

    Raises:
        InvalidArgumentError: If an argument is not a complete Key
    """
    for key in keys:
        if not isinstance(key, Key):
            raise InvalidArgumentError(
                f"{operation}() expects complete keys, got {type(key).__name__}"
            )
    return list(keys)


def _complete_entities(operation: str, entities: Sequence[PartialEntity]) -> list[Entity]:
    complete: list[Entity] = []
    for entity in entities:
        if not isinstance(entity, PartialEntity):
            raise InvalidArgumentError(
                f"{operation}() expects entities, got {type(entity).__name__}"
            )
        if not isinstance(entity, Entity):
            if not entity.has_key():
                raise InvalidArgumentError(
                    f"{operation}() requires a complete key, got {entity.key!r}"
                )
            entity = Entity.builder(entity).build()
        complete.append(entity)
    return complete


def _to_commit_result(response: CommitResponse, mutations: Sequence[Mutation]) -> CommitResult:
    """Raise the mapped error for a failed commit, else wrap assigned keys."""
    if not response.success:
        logger.debug(f"Commit rejected: {response.failure_code} {response.failure_message}")
        raise error_for_code(
            response.failure_code,  # type: ignore[arg-type]
            response.failure_message or "Commit failed",
            details={"mutations": [str(m) for m in mutations]},
        )

    expected = sum(1 for m in mutations if m.needs_allocation())
    if len(response.assigned_keys) != expected:
        raise DatastoreError(
            f"Store assigned {len(response.assigned_keys)} keys for {expected} incomplete adds",
            code=ErrorCode.UNKNOWN,
        )
    return CommitResult(generated_keys=tuple(response.assigned_keys))
