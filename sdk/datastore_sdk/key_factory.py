"""
Stateful key builder bound to a dataset and namespace.

Example:
    >>> factory = client.new_key_factory().kind("Task")
    >>> factory.new_key()          # PartialKey
    >>> factory.new_key("t1")      # Key with a name
    >>> factory.allocate_id()      # Key with a store-allocated id
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import InvalidArgumentError
from .keys import IdOrName, Key, PartialKey, PathElement

if TYPE_CHECKING:
    from .store import RemoteStore

logger = logging.getLogger(__name__)


class KeyFactory:
    """Produces keys for the current dataset, namespace, ancestors and kind.

    Setters mutate the factory and return it, so a factory can be
    re-pointed at another kind between calls.
    """

    def __init__(self, store: RemoteStore, dataset: str, namespace: str | None = None) -> None:
        self._store = store
        self._dataset = dataset
        self._namespace = namespace
        self._ancestors: tuple[PathElement, ...] = ()
        self._kind: str | None = None

    def dataset(self, dataset: str) -> KeyFactory:
        self._dataset = dataset
        return self

    def namespace(self, namespace: str | None) -> KeyFactory:
        self._namespace = namespace
        return self

    def kind(self, kind: str) -> KeyFactory:
        self._kind = kind
        return self

    def ancestors(self, *elements: PathElement) -> KeyFactory:
        self._ancestors = tuple(elements)
        return self

    def add_ancestor(self, *elements: PathElement) -> KeyFactory:
        self._ancestors += elements
        return self

    def _partial(self) -> PartialKey:
        if self._kind is None:
            raise InvalidArgumentError("KeyFactory kind is not set")
        return PartialKey(
            self._dataset, self._kind, namespace=self._namespace, ancestors=self._ancestors
        )

    def new_key(self, id_or_name: IdOrName | None = None) -> PartialKey:
        """A PartialKey, or a Key when an id or name is given."""
        partial = self._partial()
        if id_or_name is None:
            return partial
        return Key.builder(partial, id_or_name).build()

    def allocate_id(self) -> Key:
        """A Key with a fresh id allocated by the store."""
        return self._store.allocate_ids([self._partial()])[0]

    def allocate_ids(self, count: int) -> list[Key]:
        """count distinct store-allocated keys, in one store call."""
        if count < 0:
            raise InvalidArgumentError("count cannot be negative")
        partial = self._partial()
        logger.debug(f"Allocating {count} ids for {partial!r}")
        return self._store.allocate_ids([partial] * count)
