"""
Typed property values for the Datastore SDK.

This module provides the closed set of value variants stored in entity
properties:
- NullValue, BooleanValue, LongValue, DoubleValue, StringValue
- BlobValue, DateTimeValue, KeyValue, EntityValue, RawValue, ListValue

Every value carries its payload plus two index-control attributes:
``indexed`` (None means "use the store default") and ``meaning`` (an
opaque integer passed through to the store).

Values are built through ValueBuilder, one generic builder shared by all
variants. ``Value.to_builder()`` returns a builder pre-populated with the
value's state, so modified copies never expose mutable internals.

Invariants:
    - Values are deeply immutable (list payloads are tuples of values)
    - Two values are equal iff same variant, payload, indexed and meaning
    - Values of different variants are never equal
    - EntityValue defaults to indexed=False, reported by has_indexed()

Example:
    >>> StringValue.of("hello")
    StringValue('hello')
    >>> LongValue.builder(7).indexed(False).meaning(3).build().get()
    7
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from .errors import InvalidArgumentError
from .keys import Key

if TYPE_CHECKING:
    from .entity import PartialEntity

V = TypeVar("V", bound="Value")

MIN_LONG = -(2**63)
MAX_LONG = 2**63 - 1

# Meaning the store attaches to timestamps surfaced as integers in projections.
DATE_TIME_MEANING = 7

_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)

_UNSET: Any = object()


class ValueType(Enum):
    """Supported value variants."""

    NULL = "null"
    KEY = "key"
    BLOB = "blob"
    BOOLEAN = "boolean"
    DATE_TIME = "date_time"
    DOUBLE = "double"
    ENTITY = "entity"
    LIST = "list"
    LONG = "long"
    RAW_VALUE = "raw_value"
    STRING = "string"


def datetime_to_micros(value: dt.datetime) -> int:
    """Microseconds since the Unix epoch."""
    delta = value - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds


def micros_to_datetime(micros: int) -> dt.datetime:
    """Inverse of datetime_to_micros; always timezone-aware UTC."""
    return _EPOCH + dt.timedelta(microseconds=micros)


class Value:
    """Base class of all value variants.

    Subclasses set ``TYPE`` and implement ``_normalize`` to validate and
    freeze their payload. Build values through ``of()`` or a ValueBuilder;
    direct construction runs the same checks.
    """

    __slots__ = ("_payload", "_indexed", "_meaning")

    TYPE: ClassVar[ValueType]
    DEFAULT_INDEXED: ClassVar[bool | None] = None

    def __init__(
        self, payload: Any, indexed: Any = _UNSET, meaning: int | None = None
    ) -> None:
        if indexed is _UNSET:
            indexed = self.DEFAULT_INDEXED
        if indexed is not None and not isinstance(indexed, bool):
            raise InvalidArgumentError("indexed must be a bool")
        if meaning is not None and (isinstance(meaning, bool) or not isinstance(meaning, int)):
            raise InvalidArgumentError("meaning must be an int")
        self._payload = type(self)._normalize(payload)
        self._indexed = indexed
        self._meaning = meaning

    @classmethod
    def _normalize(cls, payload: Any) -> Any:
        raise NotImplementedError

    @classmethod
    def builder(cls: type[V], payload: Any = _UNSET) -> ValueBuilder[V]:
        """Start a builder for this variant, optionally with its payload."""
        builder: ValueBuilder[V] = ValueBuilder(cls)
        if payload is not _UNSET:
            builder.set(payload)
        return builder

    @classmethod
    def of(cls: type[V], payload: Any) -> V:
        """Build a value with default index attributes."""
        return cls.builder(payload).build()

    @property
    def type(self) -> ValueType:
        return self.TYPE

    def get(self) -> Any:
        """The wrapped payload."""
        return self._payload

    @property
    def indexed(self) -> bool | None:
        """Explicit index flag, or None when the store default applies."""
        return self._indexed

    def has_indexed(self) -> bool:
        return self._indexed is not None

    @property
    def meaning(self) -> int | None:
        return self._meaning

    def has_meaning(self) -> bool:
        return self._meaning is not None

    def to_builder(self) -> ValueBuilder[Any]:
        """Builder pre-populated with this value's state."""
        return ValueBuilder(type(self)).merge_from(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return (
            type(self) is type(other)
            and self._indexed == other._indexed
            and self._meaning == other._meaning
            and self._payload == other._payload
        )

    def __hash__(self) -> int:
        return hash((self.TYPE, self._payload, self._indexed, self._meaning))

    def __repr__(self) -> str:
        extras = ""
        if self._indexed is not None and self._indexed != self.DEFAULT_INDEXED:
            extras += f", indexed={self._indexed}"
        if self._meaning is not None:
            extras += f", meaning={self._meaning}"
        return f"{type(self).__name__}({self._payload!r}{extras})"


class NullValue(Value):
    __slots__ = ()
    TYPE = ValueType.NULL

    @classmethod
    def _normalize(cls, payload: Any) -> None:
        if payload is not None:
            raise InvalidArgumentError("NullValue payload must be None")
        return None

    @classmethod
    def of(cls, payload: None = None) -> NullValue:  # type: ignore[override]
        return cls.builder(None).build()


class BooleanValue(Value):
    __slots__ = ()
    TYPE = ValueType.BOOLEAN

    @classmethod
    def _normalize(cls, payload: Any) -> bool:
        if not isinstance(payload, bool):
            raise InvalidArgumentError(
                f"BooleanValue payload must be bool, got {type(payload).__name__}"
            )
        return payload


class LongValue(Value):
    __slots__ = ()
    TYPE = ValueType.LONG

    @classmethod
    def _normalize(cls, payload: Any) -> int:
        if isinstance(payload, bool) or not isinstance(payload, int):
            raise InvalidArgumentError(
                f"LongValue payload must be int, got {type(payload).__name__}"
            )
        if payload < MIN_LONG or payload > MAX_LONG:
            raise InvalidArgumentError(f"LongValue payload {payload} is out of int64 range")
        return payload


class DoubleValue(Value):
    __slots__ = ()
    TYPE = ValueType.DOUBLE

    @classmethod
    def _normalize(cls, payload: Any) -> float:
        if isinstance(payload, bool) or not isinstance(payload, (int, float)):
            raise InvalidArgumentError(
                f"DoubleValue payload must be float, got {type(payload).__name__}"
            )
        return float(payload)


class StringValue(Value):
    __slots__ = ()
    TYPE = ValueType.STRING

    @classmethod
    def _normalize(cls, payload: Any) -> str:
        if not isinstance(payload, str):
            raise InvalidArgumentError(
                f"StringValue payload must be str, got {type(payload).__name__}"
            )
        return payload


class BlobValue(Value):
    __slots__ = ()
    TYPE = ValueType.BLOB

    @classmethod
    def _normalize(cls, payload: Any) -> bytes:
        if not isinstance(payload, (bytes, bytearray, memoryview)):
            raise InvalidArgumentError(
                f"BlobValue payload must be bytes, got {type(payload).__name__}"
            )
        return bytes(payload)


class RawValue(Value):
    """Opaque, already-encoded value passed through to the store untouched."""

    __slots__ = ()
    TYPE = ValueType.RAW_VALUE

    @classmethod
    def _normalize(cls, payload: Any) -> bytes:
        if not isinstance(payload, (bytes, bytearray, memoryview)):
            raise InvalidArgumentError(
                f"RawValue payload must be bytes, got {type(payload).__name__}"
            )
        return bytes(payload)


class DateTimeValue(Value):
    """Timestamp with microsecond precision; naive datetimes are taken as UTC."""

    __slots__ = ()
    TYPE = ValueType.DATE_TIME

    @classmethod
    def _normalize(cls, payload: Any) -> dt.datetime:
        if not isinstance(payload, dt.datetime):
            raise InvalidArgumentError(
                f"DateTimeValue payload must be datetime, got {type(payload).__name__}"
            )
        if payload.tzinfo is None:
            return payload.replace(tzinfo=dt.timezone.utc)
        return payload.astimezone(dt.timezone.utc)

    def timestamp_micros(self) -> int:
        return datetime_to_micros(self._payload)


class KeyValue(Value):
    __slots__ = ()
    TYPE = ValueType.KEY

    @classmethod
    def _normalize(cls, payload: Any) -> Key:
        if not isinstance(payload, Key):
            raise InvalidArgumentError(
                f"KeyValue payload must be a complete Key, got {type(payload).__name__}"
            )
        return payload


class EntityValue(Value):
    """A nested entity. Excluded from indexing unless explicitly indexed."""

    __slots__ = ()
    TYPE = ValueType.ENTITY
    DEFAULT_INDEXED = False

    @classmethod
    def _normalize(cls, payload: Any) -> PartialEntity:
        from .entity import PartialEntity

        if not isinstance(payload, PartialEntity):
            raise InvalidArgumentError(
                f"EntityValue payload must be an entity, got {type(payload).__name__}"
            )
        return payload


class ListValue(Value):
    """Ordered sequence of values. Lists may not directly contain lists."""

    __slots__ = ()
    TYPE = ValueType.LIST

    @classmethod
    def _normalize(cls, payload: Any) -> tuple[Value, ...]:
        if isinstance(payload, (str, bytes)) or not isinstance(payload, Iterable):
            raise InvalidArgumentError(
                f"ListValue payload must be a sequence of values, got {type(payload).__name__}"
            )
        items = tuple(payload)
        for position, item in enumerate(items):
            if not isinstance(item, Value):
                raise InvalidArgumentError(
                    f"ListValue item {position} must be a Value, got {type(item).__name__}"
                )
            if isinstance(item, ListValue):
                raise InvalidArgumentError("ListValue cannot directly contain a ListValue")
        return items

    @classmethod
    def builder(cls, payload: Any = _UNSET) -> ListValueBuilder:  # type: ignore[override]
        builder = ListValueBuilder()
        if payload is not _UNSET:
            builder.set(payload)
        return builder

    @classmethod
    def of(cls, *values: Any) -> ListValue:  # type: ignore[override]
        """Build a list from values, or from a single sequence of values."""
        if len(values) == 1 and not isinstance(values[0], Value):
            return cls.builder(values[0]).build()
        return cls.builder(values).build()

    def to_builder(self) -> ListValueBuilder:
        return ListValueBuilder().merge_from(self)


class ValueBuilder(Generic[V]):
    """Builder shared by every value variant.

    Stages payload and index attributes, validating the payload against
    the target variant when it is set.
    """

    def __init__(self, value_class: type[V]) -> None:
        self._value_class = value_class
        self._payload: Any = _UNSET
        self._indexed: bool | None = value_class.DEFAULT_INDEXED
        self._meaning: int | None = None

    @property
    def value_class(self) -> type[V]:
        return self._value_class

    def set(self, payload: Any) -> ValueBuilder[V]:
        self._payload = self._value_class._normalize(payload)
        return self

    def indexed(self, indexed: bool) -> ValueBuilder[V]:
        if not isinstance(indexed, bool):
            raise InvalidArgumentError("indexed must be a bool")
        self._indexed = indexed
        return self

    def meaning(self, meaning: int) -> ValueBuilder[V]:
        if isinstance(meaning, bool) or not isinstance(meaning, int):
            raise InvalidArgumentError("meaning must be an int")
        self._meaning = meaning
        return self

    def merge_from(self, value: Value) -> ValueBuilder[V]:
        """Copy payload and index attributes from an existing value."""
        if not isinstance(value, self._value_class):
            raise InvalidArgumentError(
                f"Cannot merge {type(value).__name__} into a {self._value_class.__name__} builder"
            )
        self._payload = value.get()
        self._indexed = value.indexed
        self._meaning = value.meaning
        return self

    def build(self) -> V:
        if self._payload is _UNSET:
            if self._value_class is NullValue:
                self._payload = None
            else:
                raise InvalidArgumentError(f"{self._value_class.__name__} payload is not set")
        return self._value_class(self._payload, self._indexed, self._meaning)


class ListValueBuilder(ValueBuilder[ListValue]):
    """ValueBuilder for lists, with incremental element appends."""

    def __init__(self) -> None:
        super().__init__(ListValue)
        self._payload = ()

    def add_value(self, *values: Value) -> ListValueBuilder:
        self._payload = ListValue._normalize(self._payload + values)
        return self


def to_value(obj: Any) -> Value:
    """Wrap a Python object in the matching value variant.

    Values are returned unchanged. Lists and tuples are wrapped element-wise.

    Raises:
        InvalidArgumentError: If no variant matches the object's type
    """
    from .entity import PartialEntity

    if isinstance(obj, Value):
        return obj
    if obj is None:
        return NullValue.of()
    if isinstance(obj, bool):
        return BooleanValue.of(obj)
    if isinstance(obj, int):
        return LongValue.of(obj)
    if isinstance(obj, float):
        return DoubleValue.of(obj)
    if isinstance(obj, str):
        return StringValue.of(obj)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return BlobValue.of(obj)
    if isinstance(obj, dt.datetime):
        return DateTimeValue.of(obj)
    if isinstance(obj, Key):
        return KeyValue.of(obj)
    if isinstance(obj, PartialEntity):
        return EntityValue.of(obj)
    if isinstance(obj, (list, tuple)):
        return ListValue.of([to_value(item) for item in obj])
    raise InvalidArgumentError(f"Cannot convert {type(obj).__name__} to a Value")
