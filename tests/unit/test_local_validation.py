"""
Unit tests for argument checks made before any RemoteStore call.

Tests cover:
- Reads with incomplete keys through the client and a transaction
- Writes with incomplete keys or non-entities
"""

import pytest

from datastore_sdk import (
    CommitResponse,
    DatastoreClient,
    DatastoreOptions,
    Entity,
    InvalidArgumentError,
    Key,
    PartialEntity,
    PartialKey,
    QueryPage,
    RemoteStore,
    ResultType,
)


class RecordingStore:
    """RemoteStore that records every call and answers trivially."""

    def __init__(self):
        self.calls = []

    def lookup(self, keys, transaction=None):
        self.calls.append("lookup")
        return [None for _ in keys]

    def run_query(self, query, transaction=None, page_token=None):
        self.calls.append("run_query")
        return QueryPage(results=(), result_type=ResultType.FULL)

    def commit(self, mutations, transaction=None):
        self.calls.append("commit")
        return CommitResponse()

    def begin_transaction(self):
        self.calls.append("begin_transaction")
        return b"txn"

    def rollback(self, transaction):
        self.calls.append("rollback")

    def allocate_ids(self, keys):
        self.calls.append("allocate_ids")
        return [Key.builder(key, i + 1).build() for i, key in enumerate(keys)]


@pytest.fixture
def recording_store():
    return RecordingStore()


@pytest.fixture
def recording_client(recording_store):
    return DatastoreClient(recording_store, DatastoreOptions(dataset="d"))


class TestReadValidation:
    """Tests for key checks on reads."""

    def test_stub_is_a_remote_store(self, recording_store):
        """The stub satisfies the RemoteStore protocol."""
        assert isinstance(recording_store, RemoteStore)

    def test_client_get_rejects_partial_key(self, recording_client, recording_store):
        """client.get() with a PartialKey fails without a store call."""
        with pytest.raises(InvalidArgumentError, match="complete keys"):
            recording_client.get(PartialKey("d", "Task"))
        assert recording_store.calls == []

    def test_client_get_many_rejects_non_key(self, recording_client, recording_store):
        """Any non-Key argument fails the whole lookup locally."""
        with pytest.raises(InvalidArgumentError):
            recording_client.get_many(Key("d", "Task", 1), "Task:2")
        assert recording_store.calls == []

    def test_transaction_get_rejects_partial_key(self, recording_client, recording_store):
        """txn.get() with a PartialKey fails without a lookup."""
        txn = recording_client.new_transaction()
        with pytest.raises(InvalidArgumentError, match="complete keys"):
            txn.get(PartialKey("d", "Task"))
        assert recording_store.calls == ["begin_transaction"]

    def test_complete_keys_reach_store(self, recording_client, recording_store):
        """Complete keys are passed through in one lookup."""
        assert recording_client.get_many(Key("d", "Task", 1), Key("d", "Task", "a")) == [None, None]
        assert recording_store.calls == ["lookup"]


class TestWriteValidation:
    """Tests for argument checks on one-shot writes."""

    def test_put_rejects_incomplete_key(self, recording_client, recording_store):
        """put() of an incomplete-keyed entity fails locally."""
        entity = PartialEntity.builder(PartialKey("d", "Task")).build()
        with pytest.raises(InvalidArgumentError, match="complete key"):
            recording_client.put(entity)
        assert recording_store.calls == []

    def test_delete_rejects_partial_key(self, recording_client, recording_store):
        """delete() of a PartialKey fails locally."""
        with pytest.raises(InvalidArgumentError, match="complete keys"):
            recording_client.delete(PartialKey("d", "Task"))
        assert recording_store.calls == []

    def test_add_rejects_non_entity(self, recording_client, recording_store):
        """add() of something other than an entity fails locally."""
        with pytest.raises(InvalidArgumentError):
            recording_client.add(Key("d", "Task", 1))
        assert recording_store.calls == []

    def test_valid_write_is_one_commit(self, recording_client, recording_store):
        """A valid write makes exactly one commit call."""
        recording_client.put(Entity.builder(Key("d", "Task", 1)).build())
        assert recording_store.calls == ["commit"]
