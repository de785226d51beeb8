"""
Key model for the Datastore SDK.

This module provides the identifiers of stored entities:
- PathElement: One (kind, id | name) step of a key path
- PartialKey: Dataset, namespace, ancestor path and kind, without identity
- Key: A PartialKey whose terminal element has an id or a name

Keys are immutable. They are created through builders, either from raw
fields, from an existing key ("copy and override"), or by appending a
child element to a parent key.

Invariants:
    - kind and dataset are non-empty
    - Every ancestor element is complete (has an id or a name)
    - A Key has exactly one of id / name
    - Ids are never generated locally; the store allocates them

Example:
    >>> parent = Key.builder("d", "Team", "core").build()
    >>> child = Key.builder(parent, "Member", 7).build()
    >>> child.ancestors
    (PathElement(kind='Team', id=None, name='core'),)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from .errors import InvalidArgumentError

MAX_ID = 2**63 - 1

IdOrName = Union[int, str]


def _validate_id(id: Any) -> int:
    if isinstance(id, bool) or not isinstance(id, int):
        raise InvalidArgumentError(f"Key id must be an integer, got {type(id).__name__}")
    if id < 1 or id > MAX_ID:
        raise InvalidArgumentError(f"Key id must be 1-{MAX_ID}, got {id}")
    return id


def _validate_name(name: Any) -> str:
    if not isinstance(name, str):
        raise InvalidArgumentError(f"Key name must be a string, got {type(name).__name__}")
    if not name:
        raise InvalidArgumentError("Key name cannot be empty")
    return name


def _validate_kind(kind: Any) -> str:
    if not isinstance(kind, str) or not kind:
        raise InvalidArgumentError("Key kind must be a non-empty string")
    return kind


@dataclass(frozen=True)
class PathElement:
    """A single step of a key path.

    Attributes:
        kind: Entity kind
        id: Numeric identifier, or None
        name: String identifier, or None
    """

    kind: str
    id: int | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        """Validate path element."""
        _validate_kind(self.kind)
        if self.id is not None and self.name is not None:
            raise InvalidArgumentError(
                f"Path element of kind '{self.kind}' cannot have both id and name"
            )
        if self.id is not None:
            _validate_id(self.id)
        if self.name is not None:
            _validate_name(self.name)

    @classmethod
    def of(cls, kind: str, id_or_name: IdOrName | None = None) -> PathElement:
        """Create a path element from a kind and an optional id or name."""
        if id_or_name is None:
            return cls(kind)
        if isinstance(id_or_name, str):
            return cls(kind, name=id_or_name)
        return cls(kind, id=id_or_name)

    def has_id(self) -> bool:
        return self.id is not None

    def has_name(self) -> bool:
        return self.name is not None

    def is_complete(self) -> bool:
        """Whether this element identifies a single entity."""
        return self.id is not None or self.name is not None

    @property
    def id_or_name(self) -> IdOrName | None:
        return self.id if self.id is not None else self.name

    def sort_key(self) -> tuple[Any, ...]:
        """Order by kind, then ids before names."""
        if self.id is not None:
            return (self.kind, 0, self.id, "")
        if self.name is not None:
            return (self.kind, 1, 0, self.name)
        return (self.kind, -1, 0, "")


class PartialKey:
    """An incomplete key: everything but the terminal id or name.

    Attributes:
        dataset: Dataset the key belongs to
        namespace: Optional namespace within the dataset
        ancestors: Complete path elements above this key
        kind: Kind of the keyed entity
    """

    __slots__ = ("_dataset", "_namespace", "_ancestors", "_kind")

    def __init__(
        self,
        dataset: str,
        kind: str,
        namespace: str | None = None,
        ancestors: tuple[PathElement, ...] = (),
    ) -> None:
        if not isinstance(dataset, str) or not dataset:
            raise InvalidArgumentError("Key dataset must be a non-empty string")
        if namespace is not None and not isinstance(namespace, str):
            raise InvalidArgumentError("Key namespace must be a string")
        ancestors = tuple(ancestors)
        for position, element in enumerate(ancestors):
            if not isinstance(element, PathElement):
                raise InvalidArgumentError(
                    f"Ancestor {position} must be a PathElement, got {type(element).__name__}"
                )
            if not element.is_complete():
                raise InvalidArgumentError(
                    f"Ancestor {position} of kind '{element.kind}' has no id or name"
                )
        self._dataset = dataset
        self._namespace = namespace or None
        self._ancestors = ancestors
        self._kind = _validate_kind(kind)

    @property
    def dataset(self) -> str:
        return self._dataset

    @property
    def namespace(self) -> str | None:
        return self._namespace

    @property
    def ancestors(self) -> tuple[PathElement, ...]:
        return self._ancestors

    @property
    def kind(self) -> str:
        return self._kind

    def is_complete(self) -> bool:
        """Whether this key identifies a single entity."""
        return False

    def leaf(self) -> PathElement:
        """The terminal path element of this key."""
        return PathElement(self._kind)

    def path(self) -> tuple[PathElement, ...]:
        """Full path, ancestors first, terminal element last."""
        return self._ancestors + (self.leaf(),)

    def sort_key(self) -> tuple[Any, ...]:
        """Lexical order over dataset, namespace and path elements."""
        return (
            self._dataset,
            self._namespace or "",
            tuple(element.sort_key() for element in self.path()),
        )

    def to_builder(self) -> PartialKeyBuilder:
        return PartialKeyBuilder(self)

    @classmethod
    def builder(cls, dataset_or_key: str | PartialKey, kind: str | None = None) -> PartialKeyBuilder:
        """Start a PartialKey builder.

        Args:
            dataset_or_key: Dataset name, or an existing key to copy
            kind: Kind (required with a dataset name)

        Returns:
            PartialKeyBuilder

        Example:
            >>> PartialKey.builder("d", "Task").namespace("ns").build()
        """
        if isinstance(dataset_or_key, PartialKey):
            builder = PartialKeyBuilder(dataset_or_key)
            if kind is not None:
                builder.kind(kind)
            return builder
        if kind is None:
            raise InvalidArgumentError("PartialKey.builder requires a kind")
        return PartialKeyBuilder().dataset(dataset_or_key).kind(kind)

    def _fields(self) -> tuple[Any, ...]:
        leaf = self.leaf()
        return (self._dataset, self._namespace, self._ancestors, self._kind, leaf.id, leaf.name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PartialKey):
            return NotImplemented
        return self._fields() == other._fields()

    def __hash__(self) -> int:
        return hash(self._fields())

    def __repr__(self) -> str:
        path = ", ".join(
            f"{element.kind}:{element.id_or_name!r}" if element.is_complete() else element.kind
            for element in self.path()
        )
        ns = f", namespace={self._namespace!r}" if self._namespace else ""
        return f"{type(self).__name__}(dataset={self._dataset!r}{ns}, path=[{path}])"


class Key(PartialKey):
    """A complete key: a PartialKey plus exactly one of id or name."""

    __slots__ = ("_id", "_name")

    def __init__(
        self,
        dataset: str,
        kind: str,
        id_or_name: IdOrName,
        namespace: str | None = None,
        ancestors: tuple[PathElement, ...] = (),
    ) -> None:
        super().__init__(dataset, kind, namespace=namespace, ancestors=ancestors)
        if isinstance(id_or_name, str):
            self._id = None
            self._name = _validate_name(id_or_name)
        else:
            self._id = _validate_id(id_or_name)
            self._name = None

    def has_id(self) -> bool:
        return self._id is not None

    def has_name(self) -> bool:
        return self._name is not None

    @property
    def id(self) -> int | None:
        return self._id

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def id_or_name(self) -> IdOrName:
        return self._id if self._id is not None else self._name  # type: ignore[return-value]

    def is_complete(self) -> bool:
        return True

    def leaf(self) -> PathElement:
        return PathElement(self._kind, id=self._id, name=self._name)

    def parent(self) -> Key | None:
        """Key of the closest ancestor, or None for a root key."""
        if not self._ancestors:
            return None
        last = self._ancestors[-1]
        return Key(
            self._dataset,
            last.kind,
            last.id_or_name,  # type: ignore[arg-type]
            namespace=self._namespace,
            ancestors=self._ancestors[:-1],
        )

    def to_partial(self) -> PartialKey:
        """This key without its terminal id or name."""
        return PartialKey(
            self._dataset, self._kind, namespace=self._namespace, ancestors=self._ancestors
        )

    def to_builder(self) -> KeyBuilder:  # type: ignore[override]
        return KeyBuilder(self)

    @classmethod
    def builder(cls, source: str | PartialKey, *args: Any) -> KeyBuilder:  # type: ignore[override]
        """Start a Key builder.

        Accepted forms:
            Key.builder(dataset, kind, id_or_name)
            Key.builder(partial_key, id_or_name)
            Key.builder(parent_key, kind, id_or_name)
            Key.builder(existing_key)

        Returns:
            KeyBuilder

        Raises:
            InvalidArgumentError: If the arguments match none of the forms
        """
        if isinstance(source, Key) and not args:
            return KeyBuilder(source)
        if isinstance(source, Key) and len(args) == 2:
            kind, id_or_name = args
            builder = KeyBuilder(source)
            builder.ancestors(*source.ancestors, source.leaf())
            return builder.kind(kind).id_or_name(id_or_name)
        if isinstance(source, PartialKey) and len(args) == 1:
            return KeyBuilder(source).id_or_name(args[0])
        if isinstance(source, str) and len(args) == 2:
            kind, id_or_name = args
            return KeyBuilder().dataset(source).kind(kind).id_or_name(id_or_name)
        raise InvalidArgumentError(
            f"Unsupported Key.builder arguments: {(type(source).__name__,) + tuple(type(a).__name__ for a in args)}"
        )


class PartialKeyBuilder:
    """Builder for PartialKey, optionally seeded from an existing key."""

    def __init__(self, source: PartialKey | None = None) -> None:
        self._dataset: str | None = None
        self._namespace: str | None = None
        self._ancestors: list[PathElement] = []
        self._kind: str | None = None
        if source is not None:
            self._dataset = source.dataset
            self._namespace = source.namespace
            self._ancestors = list(source.ancestors)
            self._kind = source.kind

    def dataset(self, dataset: str) -> PartialKeyBuilder:
        self._dataset = dataset
        return self

    def namespace(self, namespace: str | None) -> PartialKeyBuilder:
        self._namespace = namespace
        return self

    def kind(self, kind: str) -> PartialKeyBuilder:
        self._kind = kind
        return self

    def ancestors(self, *elements: PathElement) -> PartialKeyBuilder:
        """Replace the ancestor path."""
        self._ancestors = list(elements)
        return self

    def add_ancestor(self, *elements: PathElement) -> PartialKeyBuilder:
        """Append elements to the ancestor path."""
        self._ancestors.extend(elements)
        return self

    def clear_ancestors(self) -> PartialKeyBuilder:
        self._ancestors = []
        return self

    def _check_required(self) -> None:
        if self._dataset is None:
            raise InvalidArgumentError("Key dataset is not set")
        if self._kind is None:
            raise InvalidArgumentError("Key kind is not set")

    def build(self) -> PartialKey:
        self._check_required()
        return PartialKey(
            self._dataset,  # type: ignore[arg-type]
            self._kind,  # type: ignore[arg-type]
            namespace=self._namespace,
            ancestors=tuple(self._ancestors),
        )


class KeyBuilder(PartialKeyBuilder):
    """Builder for Key; setting an id clears the name and vice versa."""

    def __init__(self, source: PartialKey | None = None) -> None:
        super().__init__(source)
        self._id: int | None = None
        self._name: str | None = None
        if isinstance(source, Key):
            self._id = source.id
            self._name = source.name

    def id(self, id: int) -> KeyBuilder:
        self._id = _validate_id(id)
        self._name = None
        return self

    def name(self, name: str) -> KeyBuilder:
        self._name = _validate_name(name)
        self._id = None
        return self

    def id_or_name(self, id_or_name: IdOrName) -> KeyBuilder:
        if isinstance(id_or_name, str):
            return self.name(id_or_name)
        return self.id(id_or_name)

    def build(self) -> Key:
        self._check_required()
        id_or_name = self._id if self._id is not None else self._name
        if id_or_name is None:
            raise InvalidArgumentError("Key requires an id or a name")
        return Key(
            self._dataset,  # type: ignore[arg-type]
            self._kind,  # type: ignore[arg-type]
            id_or_name,
            namespace=self._namespace,
            ancestors=tuple(self._ancestors),
        )
