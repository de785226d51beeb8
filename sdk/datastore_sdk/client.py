"""
Datastore client for the Python SDK.

This module provides the main client interface:
- DatastoreClient: Synchronous facade over a RemoteStore
- Batch / Transaction factories
- One-shot writes (add, put, update, delete), lookups, queries and
  id allocation

Example:
    >>> client = DatastoreClient(InMemoryRemoteStore(), DatastoreOptions(dataset="d"))
    >>> key = client.new_key_factory().kind("Task").new_key("t1")
    >>> client.put(Entity.builder(key).set("title", "Ship it").build())
    >>> client.get(key).get_string("title")
    'Ship it'

Invariants:
    - Every public call makes exactly one RemoteStore call
    - One-shot writes are all-or-nothing
    - No client-side caching, locking or retrying
"""

from __future__ import annotations

import logging
from typing import Any

from .ambient import attach_to_ambient_transaction
from .batch import Batch, MutationWriter, commit_mutations, complete_keys
from .config import DatastoreOptions
from .entity import Entity, PartialEntity
from .key_factory import KeyFactory
from .keys import Key, PartialKey
from .query import Query, QueryResults
from .store import RemoteStore
from .transaction import Transaction

logger = logging.getLogger(__name__)


class DatastoreClient:
    """Client for a remote document store.

    Thread-safe as long as the RemoteStore is; each Batch or Transaction
    it creates must be used by one flow of control at a time.

    Example:
        >>> txn = client.new_transaction()
        >>> txn.get(key)
        >>> txn.add(entity)
        >>> txn.commit()
    """

    def __init__(self, store: RemoteStore, options: DatastoreOptions) -> None:
        """Initialize client.

        Args:
            store: RemoteStore implementation
            options: Client options
        """
        self._store = store
        self._options = options

    @property
    def options(self) -> DatastoreOptions:
        return self._options

    @property
    def store(self) -> RemoteStore:
        return self._store

    def new_batch(self) -> Batch:
        return Batch(self._store)

    def new_transaction(self) -> Transaction:
        """Begin a transaction and offer it to the ambient coordinator."""
        handle = self._store.begin_transaction()
        logger.debug(f"Began transaction {handle!r}")
        transaction = Transaction(self._store, handle)
        attach_to_ambient_transaction(transaction)
        return transaction

    def new_key_factory(self) -> KeyFactory:
        """KeyFactory bound to the configured dataset and namespace."""
        return KeyFactory(self._store, self._options.dataset, self._options.namespace)

    def get(self, key: Key) -> Entity | None:
        """Get an entity by key.

        Returns:
            Entity if found, None otherwise
        """
        return self.get_many(key)[0]

    def get_many(self, *keys: Key) -> list[Entity | None]:
        """Get entities by key, in input order; None for missing keys.

        Raises:
            InvalidArgumentError: If a key is incomplete (no store call is made)
        """
        return self._store.lookup(complete_keys("get", keys))

    def run(self, query: Query) -> QueryResults[Any]:
        """Run a query outside any transaction."""
        page = self._store.run_query(query)
        return QueryResults(page, lambda token: self._store.run_query(query, None, token))

    def add(self, *entities: PartialEntity) -> list[Entity]:
        """Insert entities; fails if any key already exists.

        Entities with incomplete keys get store-allocated ids.

        Returns:
            Complete entities, in input order

        Raises:
            AlreadyExistsError: If any key already exists (nothing is written)
        """
        writer = MutationWriter(self._store).add(*entities)
        generated = iter(commit_mutations(self._store, writer.mutations).generated_keys)
        added: list[Entity] = []
        for entity in entities:
            if isinstance(entity, Entity):
                added.append(entity)
            elif entity.has_key():
                added.append(Entity.builder(entity).build())
            else:
                added.append(Entity.builder(entity).key(next(generated)).build())
        return added

    def put(self, *entities: Entity) -> None:
        """Insert or replace entities."""
        writer = MutationWriter(self._store).put(*entities)
        commit_mutations(self._store, writer.mutations)

    def update(self, *entities: Entity) -> None:
        """Replace existing entities; fails if any key is missing."""
        writer = MutationWriter(self._store).update(*entities)
        commit_mutations(self._store, writer.mutations)

    def delete(self, *keys: Key) -> None:
        """Delete entities; missing keys are ignored."""
        writer = MutationWriter(self._store).delete(*keys)
        commit_mutations(self._store, writer.mutations)

    def allocate_id(self, key: PartialKey) -> Key:
        """Allocate one id. A complete key is allocated against its incomplete form."""
        return self.allocate_ids(key)[0]

    def allocate_ids(self, *keys: PartialKey) -> list[Key]:
        """Allocate one id per key, in input order; duplicates get distinct ids."""
        partials = [key.to_partial() if isinstance(key, Key) else key for key in keys]
        logger.debug(f"Allocating {len(partials)} ids")
        return self._store.allocate_ids(partials)
