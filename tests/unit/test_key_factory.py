"""
Unit tests for KeyFactory.
"""

import pytest

from datastore_sdk import InvalidArgumentError, Key, KeyFactory, PartialKey, PathElement


class TestKeyFactory:
    """Tests for KeyFactory."""

    def test_defaults_from_options(self, client):
        """Factories start from the configured dataset and namespace."""
        key = client.new_key_factory().kind("Task").new_key()
        assert isinstance(key, PartialKey)
        assert key.dataset == "dataset1"
        assert key.namespace is None

    def test_new_key_with_id_or_name(self, key_factory):
        """An id or name completes the key."""
        assert key_factory.new_key(5) == Key("dataset1", "kind1", 5)
        assert key_factory.new_key("n") == Key("dataset1", "kind1", "n")

    def test_ancestors(self, key_factory):
        """Ancestors are carried into every key."""
        parent = PathElement.of("Team", "core")
        key = key_factory.ancestors(parent).add_ancestor(PathElement.of("Group", 2)).new_key(1)
        assert key.ancestors == (parent, PathElement.of("Group", 2))

    def test_kind_required(self, client):
        """A kind must be set before creating keys."""
        with pytest.raises(InvalidArgumentError, match="kind"):
            client.new_key_factory().new_key()

    def test_allocate_id(self, store, key_factory):
        """allocate_id() asks the store once."""
        key = key_factory.namespace("ns").allocate_id()
        assert key.has_id()
        assert key.namespace == "ns"
        assert store.calls == ["allocate_ids"]

    def test_allocate_ids(self, store, key_factory):
        """allocate_ids(n) returns n distinct keys from one store call."""
        keys = key_factory.allocate_ids(3)
        assert len({k.id for k in keys}) == 3
        assert store.calls == ["allocate_ids"]

    def test_negative_count(self, key_factory):
        """Counts cannot be negative."""
        with pytest.raises(InvalidArgumentError):
            key_factory.allocate_ids(-1)

    def test_rebinding(self, store):
        """Setters re-point the factory."""
        factory = KeyFactory(store, "d1").kind("A")
        key = factory.dataset("d2").kind("B").new_key("x")
        assert key == Key("d2", "B", "x")
