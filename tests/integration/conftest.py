"""
Integration test fixtures.

Builds a small, nested data set (entities embedding entities and lists of
values) and seeds ENTITY1 and ENTITY2 into a fresh store for every test.
"""

import datetime as dt
from dataclasses import dataclass

import pytest

from datastore_sdk import (
    BooleanValue,
    Entity,
    EntityValue,
    Key,
    KeyValue,
    ListValue,
    NullValue,
    PartialEntity,
    PartialKey,
    StringValue,
)

KIND1 = "kind1"
KIND2 = "kind2"
KIND3 = "kind3"


@dataclass(frozen=True)
class SampleData:
    """Keys and entities shared by the integration tests."""

    key1: Key
    key2: Key
    key3: Key
    key4: Key
    key5: Key
    date_time: dt.datetime
    partial_entity1: PartialEntity
    partial_entity2: PartialEntity
    partial_entity3: PartialEntity
    entity1: Entity
    entity2: Entity
    entity3: Entity


def build_sample(dataset: str) -> SampleData:
    key1 = Key.builder(dataset, KIND1, "name").build()
    key2 = Key.builder(key1, KIND2, 1).build()
    key3 = Key.builder(key2).name("bla").build()
    key4 = Key.builder(key2).name("newName1").build()
    key5 = Key.builder(key2).name("newName2").build()
    partial_key2 = PartialKey.builder(key2).kind(KIND2).build()

    str_value = StringValue.of("str")
    bool_value = BooleanValue.builder(False).indexed(False).build()
    list_value1 = (
        ListValue.builder().add_value(NullValue.of()).add_value(str_value, bool_value).build()
    )
    list_value2 = ListValue.of([KeyValue.of(key1)])
    date_time = dt.datetime(2015, 3, 4, 5, 6, 7, 891011, tzinfo=dt.timezone.utc)

    partial_entity1 = (
        PartialEntity.builder(partial_key2)
        .set("str", str_value)
        .set("bool", bool_value)
        .set("list", list_value1)
        .build()
    )
    partial_entity2 = (
        PartialEntity.builder(partial_entity1)
        .remove("str")
        .set("bool", True)
        .set("list", list(list_value1.get()))
        .build()
    )
    partial_entity3 = (
        PartialEntity.builder(partial_entity1).key(PartialKey.builder(dataset, KIND3).build()).build()
    )
    entity1 = (
        Entity.builder(key1)
        .set("str", str_value)
        .set("date", date_time)
        .set("bool", bool_value)
        .set("partial1", EntityValue.of(partial_entity1))
        .set("list", list_value2)
        .build()
    )
    entity2 = (
        Entity.builder(entity1)
        .key(key2)
        .remove("str")
        .set("name", "Dan")
        .set_null("null")
        .set("age", 20)
        .build()
    )
    entity3 = (
        Entity.builder(entity1)
        .key(key3)
        .remove("str")
        .set("null", NullValue.of())
        .set("partial1", partial_entity2)
        .set("partial2", entity2)
        .build()
    )
    return SampleData(
        key1=key1,
        key2=key2,
        key3=key3,
        key4=key4,
        key5=key5,
        date_time=date_time,
        partial_entity1=partial_entity1,
        partial_entity2=partial_entity2,
        partial_entity3=partial_entity3,
        entity1=entity1,
        entity2=entity2,
        entity3=entity3,
    )


@pytest.fixture
def sample(client) -> SampleData:
    """Sample data with entity1 and entity2 already stored."""
    data = build_sample(client.options.dataset)
    client.add(data.entity1, data.entity2)
    return data
