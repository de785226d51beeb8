"""
Entity model for the Datastore SDK.

This module provides the property containers stored in the datastore:
- PartialEntity: A key (possibly incomplete) plus named property values
- Entity: A PartialEntity whose key is a complete Key
- ProjectionEntity: A read-only query row holding only projected properties
- EntityBuilder: The single builder behind all three

Entities are immutable. The builder copies the property mapping on
construction and on build, so an entity can never reach itself through its
own properties.

Invariants:
    - Property names are unique non-empty strings
    - Insertion order is kept for enumeration, ignored by equality
    - Entity.key is always complete
    - Typed getters raise PropertyNotFoundError / PropertyTypeError, while
      contains() and names() never raise

Example:
    >>> key = Key.builder("d", "Task", "t1").build()
    >>> task = Entity.builder(key).set("title", "Ship it").set("done", False).build()
    >>> task.get_string("title")
    'Ship it'
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from .errors import InvalidArgumentError, PropertyNotFoundError, PropertyTypeError
from .keys import Key, PartialKey
from .values import (
    DATE_TIME_MEANING,
    BlobValue,
    BooleanValue,
    DateTimeValue,
    DoubleValue,
    EntityValue,
    KeyValue,
    ListValue,
    LongValue,
    NullValue,
    RawValue,
    StringValue,
    Value,
    datetime_to_micros,
    micros_to_datetime,
    to_value,
)

E = TypeVar("E", bound="PartialEntity")


class PartialEntity:
    """Key plus property values; the key may be incomplete.

    Attributes:
        key: The entity's key
        properties: Read-only mapping of property name to Value
    """

    __slots__ = ("_key", "_properties")

    def __init__(self, key: PartialKey, properties: Mapping[str, Value]) -> None:
        self._key = key
        self._properties: Mapping[str, Value] = MappingProxyType(dict(properties))

    @classmethod
    def builder(cls: type[E], source: PartialKey | PartialEntity) -> EntityBuilder[E]:
        """Start a builder from a key, or from an existing entity to copy.

        Example:
            >>> PartialEntity.builder(PartialKey.builder("d", "Note").build()).set("n", 1).build()
        """
        return EntityBuilder(cls, source)

    def to_builder(self) -> EntityBuilder[Any]:
        return EntityBuilder(type(self), self)

    @property
    def key(self) -> PartialKey:
        return self._key

    @property
    def properties(self) -> Mapping[str, Value]:
        return self._properties

    def has_key(self) -> bool:
        """Whether the key is complete."""
        return self._key.is_complete()

    def names(self) -> tuple[str, ...]:
        """Property names in insertion order."""
        return tuple(self._properties)

    def contains(self, name: str) -> bool:
        return name in self._properties

    def __contains__(self, name: object) -> bool:
        return name in self._properties

    def get_value(self, name: str) -> Value:
        """Raw Value stored under name.

        Raises:
            PropertyNotFoundError: If name is absent
        """
        try:
            return self._properties[name]
        except KeyError:
            raise PropertyNotFoundError(name, self._properties) from None

    def _typed(self, name: str, value_class: type[Value]) -> Value:
        value = self.get_value(name)
        if not isinstance(value, value_class):
            raise PropertyTypeError(name, value_class.TYPE.value, value.type.value)
        return value

    def is_null(self, name: str) -> bool:
        return isinstance(self.get_value(name), NullValue)

    def get_string(self, name: str) -> str:
        return self._typed(name, StringValue).get()

    def get_long(self, name: str) -> int:
        return self._typed(name, LongValue).get()

    def get_double(self, name: str) -> float:
        return self._typed(name, DoubleValue).get()

    def get_boolean(self, name: str) -> bool:
        return self._typed(name, BooleanValue).get()

    def get_date_time(self, name: str) -> dt.datetime:
        return self._typed(name, DateTimeValue).get()

    def get_key(self, name: str) -> Key:
        return self._typed(name, KeyValue).get()

    def get_blob(self, name: str) -> bytes:
        return self._typed(name, BlobValue).get()

    def get_raw(self, name: str) -> bytes:
        return self._typed(name, RawValue).get()

    def get_entity(self, name: str) -> PartialEntity:
        return self._typed(name, EntityValue).get()

    def get_list(self, name: str) -> tuple[Value, ...]:
        return self._typed(name, ListValue).get()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PartialEntity):
            return NotImplemented
        return self._key == other._key and dict(self._properties) == dict(other._properties)

    def __hash__(self) -> int:
        return hash((self._key, frozenset(self._properties.items())))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self._key!r}, properties={dict(self._properties)!r})"


class Entity(PartialEntity):
    """An entity with a complete key."""

    __slots__ = ()

    def __init__(self, key: Key, properties: Mapping[str, Value]) -> None:
        if not isinstance(key, Key):
            raise InvalidArgumentError(
                f"Entity requires a complete Key, got {type(key).__name__}"
            )
        super().__init__(key, properties)

    @property
    def key(self) -> Key:
        return self._key  # type: ignore[return-value]


class ProjectionEntity(Entity):
    """A projection query row.

    Only projected properties are present; a ``__key__`` projection has an
    empty property set. Timestamps may come back as integers tagged with
    the date-time meaning, so both getters below accept either form.
    """

    __slots__ = ()

    def get_long(self, name: str) -> int:
        value = self.get_value(name)
        if isinstance(value, DateTimeValue):
            return datetime_to_micros(value.get())
        return super().get_long(name)

    def get_date_time(self, name: str) -> dt.datetime:
        value = self.get_value(name)
        if isinstance(value, LongValue) and value.meaning == DATE_TIME_MEANING:
            return micros_to_datetime(value.get())
        return super().get_date_time(name)


class EntityBuilder(Generic[E]):
    """Builder for PartialEntity, Entity and ProjectionEntity.

    Seeded from a key or from an existing entity (whose properties are
    copied). ``key()`` re-keys the staged entity, which is how a
    PartialEntity becomes an Entity once a complete key is known.
    """

    def __init__(self, entity_class: type[E], source: PartialKey | PartialEntity) -> None:
        self._entity_class = entity_class
        self._properties: dict[str, Value] = {}
        if isinstance(source, PartialEntity):
            self._key: PartialKey = source.key
            self._properties = dict(source.properties)
        elif isinstance(source, PartialKey):
            self._key = source
        else:
            raise InvalidArgumentError(
                f"Entity builder needs a key or an entity, got {type(source).__name__}"
            )

    def key(self, key: PartialKey) -> EntityBuilder[E]:
        if not isinstance(key, PartialKey):
            raise InvalidArgumentError(f"Expected a key, got {type(key).__name__}")
        self._key = key
        return self

    def set(self, name: str, value: Any, *more_values: Any) -> EntityBuilder[E]:
        """Set a property.

        Plain Python values are wrapped in the matching Value variant.
        Passing several values stores them as a ListValue.

        Args:
            name: Property name
            value: Value or plain Python value
            *more_values: Further list elements

        Returns:
            Self for chaining
        """
        if not isinstance(name, str) or not name:
            raise InvalidArgumentError("Property name must be a non-empty string")
        if more_values:
            value = ListValue.of([to_value(v) for v in (value, *more_values)])
        self._properties[name] = to_value(value)
        return self

    def set_null(self, name: str) -> EntityBuilder[E]:
        return self.set(name, NullValue.of())

    def remove(self, name: str) -> EntityBuilder[E]:
        self._properties.pop(name, None)
        return self

    def clear(self) -> EntityBuilder[E]:
        """Drop all properties, keep the key."""
        self._properties.clear()
        return self

    def build(self) -> E:
        return self._entity_class(self._key, self._properties)  # type: ignore[arg-type]
