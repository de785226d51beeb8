"""
Shared test fixtures for the Datastore SDK.

Every fixture works against a fresh InMemoryRemoteStore; nothing touches
the network.
"""

from typing import Generator

import pytest

from datastore_sdk import (
    DatastoreClient,
    DatastoreOptions,
    InMemoryRemoteStore,
    Key,
    KeyFactory,
    set_ambient_coordinator,
)

DATASET = "dataset1"


@pytest.fixture
def store() -> InMemoryRemoteStore:
    """Fresh in-memory store."""
    return InMemoryRemoteStore()


@pytest.fixture
def options() -> DatastoreOptions:
    return DatastoreOptions(dataset=DATASET)


@pytest.fixture
def client(store, options) -> DatastoreClient:
    """Client bound to the fresh store."""
    return DatastoreClient(store, options)


@pytest.fixture
def key_factory(client) -> KeyFactory:
    """Key factory for kind1 in the default namespace."""
    return client.new_key_factory().kind("kind1")


@pytest.fixture
def key1(key_factory) -> Key:
    return key_factory.new_key("name1")


@pytest.fixture
def key2(key_factory) -> Key:
    return key_factory.new_key(1)


@pytest.fixture(autouse=True)
def reset_ambient_coordinator() -> Generator[None, None, None]:
    """Restore the default ambient coordinator after each test."""
    yield
    set_ambient_coordinator(None)
