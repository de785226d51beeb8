"""
Unit tests for the entity model.

Tests cover:
- Builder set/remove/clear and re-keying
- Typed getters and their failure modes
- Nested entities and list properties
- Equality independent of insertion order
- ProjectionEntity timestamp accessors
"""

import datetime as dt

import pytest

from datastore_sdk import (
    Entity,
    EntityValue,
    InvalidArgumentError,
    Key,
    ListValue,
    LongValue,
    PartialEntity,
    PartialKey,
    ProjectionEntity,
    PropertyNotFoundError,
    PropertyTypeError,
    StringValue,
)
from datastore_sdk.values import DATE_TIME_MEANING, datetime_to_micros

KEY = Key.builder("d", "Task", "t1").build()
PARTIAL_KEY = PartialKey.builder("d", "Task").build()


@pytest.fixture
def task() -> Entity:
    """Entity with one property of each common type."""
    return (
        Entity.builder(KEY)
        .set("title", "Ship it")
        .set("priority", 3)
        .set("ratio", 0.5)
        .set("done", False)
        .set("due", dt.datetime(2024, 5, 1, tzinfo=dt.timezone.utc))
        .set("owner", Key.builder("d", "User", 9).build())
        .set("payload", b"\x00\x01")
        .set("tags", "a", "b")
        .set_null("notes")
        .build()
    )


class TestEntityBuilder:
    """Tests for EntityBuilder."""

    def test_set_auto_wraps(self, task):
        """Plain Python values are wrapped."""
        assert task.get_value("title") == StringValue.of("Ship it")
        assert task.get_value("priority") == LongValue.of(3)

    def test_multiple_values_make_a_list(self, task):
        """set() with several values stores a list."""
        assert task.get_list("tags") == (StringValue.of("a"), StringValue.of("b"))

    def test_names_keep_insertion_order(self, task):
        """names() enumerates in insertion order."""
        assert task.names()[:3] == ("title", "priority", "ratio")

    def test_remove_and_clear(self, task):
        """remove() drops one property, clear() drops all but keeps the key."""
        without_title = task.to_builder().remove("title").build()
        assert not without_title.contains("title")
        assert task.contains("title")

        empty = task.to_builder().clear().build()
        assert empty.names() == ()
        assert empty.key == KEY

    def test_rekey_preserves_properties(self, task):
        """Re-keying keeps every property."""
        other = Key.builder("d", "Task", "t2").build()
        rekeyed = Entity.builder(task).key(other).build()
        assert rekeyed.key == other
        assert dict(rekeyed.properties) == dict(task.properties)

    def test_partial_entity_to_entity(self):
        """A partial entity becomes an Entity once re-keyed."""
        partial = PartialEntity.builder(PARTIAL_KEY).set("n", 1).build()
        assert not partial.has_key()
        entity = Entity.builder(partial).key(KEY).build()
        assert isinstance(entity, Entity)
        assert entity.get_long("n") == 1

    def test_entity_requires_complete_key(self):
        """Entity rejects incomplete keys."""
        with pytest.raises(InvalidArgumentError, match="complete Key"):
            Entity.builder(PARTIAL_KEY).build()

    def test_empty_property_name_rejected(self):
        """Property names are non-empty."""
        with pytest.raises(InvalidArgumentError):
            Entity.builder(KEY).set("", 1)

    def test_builder_does_not_leak(self):
        """Building twice from one builder yields independent entities."""
        builder = Entity.builder(KEY).set("a", 1)
        first = builder.build()
        second = builder.set("b", 2).build()
        assert first.names() == ("a",)
        assert second.names() == ("a", "b")


class TestTypedGetters:
    """Tests for typed getters."""

    def test_scalar_getters(self, task):
        """Each getter returns the payload."""
        assert task.get_string("title") == "Ship it"
        assert task.get_long("priority") == 3
        assert task.get_double("ratio") == 0.5
        assert task.get_boolean("done") is False
        assert task.get_date_time("due") == dt.datetime(2024, 5, 1, tzinfo=dt.timezone.utc)
        assert task.get_key("owner").id == 9
        assert task.get_blob("payload") == b"\x00\x01"
        assert task.is_null("notes")
        assert not task.is_null("title")

    def test_type_mismatch(self, task):
        """Reading a property as the wrong type raises PropertyTypeError."""
        with pytest.raises(PropertyTypeError) as exc_info:
            task.get_long("title")
        assert exc_info.value.expected == "long"
        assert exc_info.value.actual == "string"

    def test_missing_property(self, task):
        """Reading an absent property raises PropertyNotFoundError."""
        with pytest.raises(PropertyNotFoundError, match="Did you mean: title"):
            task.get_string("titel")

    def test_contains_never_raises(self, task):
        """contains() and names() introspect safely."""
        assert "title" in task
        assert not task.contains("missing")


class TestNestedEntities:
    """Tests for entity values."""

    def test_nested_entity(self):
        """Entities can embed entities."""
        address = PartialEntity.builder(PartialKey("d", "Address")).set("city", "Oslo").build()
        person = Entity.builder(KEY).set("address", address).build()
        assert person.get_entity("address").get_string("city") == "Oslo"
        assert isinstance(person.get_value("address"), EntityValue)

    def test_nested_equality_recurses(self):
        """Equality compares nested entities by value."""
        def build(city):
            inner = PartialEntity.builder(PartialKey("d", "Address")).set("city", city).build()
            return Entity.builder(KEY).set("address", inner).build()

        assert build("Oslo") == build("Oslo")
        assert build("Oslo") != build("Bergen")


class TestEntityEquality:
    """Tests for equality."""

    def test_insertion_order_ignored(self):
        """Same properties in another order are equal."""
        a = Entity.builder(KEY).set("x", 1).set("y", 2).build()
        b = Entity.builder(KEY).set("y", 2).set("x", 1).build()
        assert a == b
        assert hash(a) == hash(b)

    def test_key_matters(self):
        """Entities with different keys differ."""
        other = Key.builder("d", "Task", "t2").build()
        assert Entity.builder(KEY).build() != Entity.builder(other).build()

    def test_properties_are_read_only(self, task):
        """The properties mapping cannot be mutated."""
        with pytest.raises(TypeError):
            task.properties["title"] = StringValue.of("x")  # type: ignore[index]


class TestProjectionEntity:
    """Tests for ProjectionEntity."""

    MOMENT = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)

    def test_timestamp_as_tagged_long(self):
        """A tagged long reads back as a datetime and as micros."""
        micros = datetime_to_micros(self.MOMENT)
        row = ProjectionEntity(
            KEY, {"due": LongValue.builder(micros).meaning(DATE_TIME_MEANING).build()}
        )
        assert row.get_date_time("due") == self.MOMENT
        assert row.get_long("due") == micros

    def test_timestamp_as_datetime(self):
        """A datetime value reads back as micros too."""
        row = ProjectionEntity.builder(KEY).set("due", self.MOMENT).build()
        assert row.get_long("due") == datetime_to_micros(self.MOMENT)
        assert row.get_date_time("due") == self.MOMENT

    def test_untagged_long_is_not_a_datetime(self):
        """Plain longs are not timestamps."""
        row = ProjectionEntity.builder(KEY).set("n", 5).build()
        with pytest.raises(PropertyTypeError):
            row.get_date_time("n")

    def test_missing_projected_property(self):
        """Absent properties raise PropertyNotFoundError."""
        row = ProjectionEntity(KEY, {})
        with pytest.raises(PropertyNotFoundError):
            row.get_string("title")

    def test_list_property(self):
        """List values are exposed as tuples."""
        row = ProjectionEntity(KEY, {"tags": ListValue.of(StringValue.of("a"))})
        assert row.get_list("tags") == (StringValue.of("a"),)
