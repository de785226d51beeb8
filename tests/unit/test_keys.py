"""
Unit tests for the key model.

Tests cover:
- PathElement validation
- PartialKey / Key construction paths
- Equality, hashing and ordering
- Parent navigation
"""

import pytest

from datastore_sdk import InvalidArgumentError, Key, KeyBuilder, PartialKey, PathElement
from datastore_sdk.keys import MAX_ID


class TestPathElement:
    """Tests for PathElement."""

    def test_of_id_and_name(self):
        """of() picks id or name by type."""
        assert PathElement.of("k", 5) == PathElement("k", id=5)
        assert PathElement.of("k", "n") == PathElement("k", name="n")
        assert not PathElement.of("k").is_complete()

    def test_both_id_and_name_rejected(self):
        """An element holds at most one of id and name."""
        with pytest.raises(InvalidArgumentError, match="both id and name"):
            PathElement("k", id=1, name="n")

    def test_empty_kind_rejected(self):
        """Kind must be non-empty."""
        with pytest.raises(InvalidArgumentError, match="kind"):
            PathElement("")

    @pytest.mark.parametrize("bad_id", [0, -1, MAX_ID + 1])
    def test_id_range(self, bad_id):
        """Ids are positive int64s."""
        with pytest.raises(InvalidArgumentError):
            PathElement("k", id=bad_id)

    def test_ids_sort_before_names(self):
        """Within a kind, ids order before names."""
        assert PathElement.of("k", 99).sort_key() < PathElement.of("k", "a").sort_key()


class TestPartialKey:
    """Tests for PartialKey."""

    def test_builder_from_fields(self):
        """Builder sets dataset, namespace, ancestors and kind."""
        key = (
            PartialKey.builder("d", "Task")
            .namespace("ns")
            .add_ancestor(PathElement.of("Project", "p1"))
            .build()
        )
        assert key.dataset == "d"
        assert key.namespace == "ns"
        assert key.kind == "Task"
        assert key.ancestors == (PathElement.of("Project", "p1"),)
        assert not key.is_complete()

    def test_incomplete_ancestor_rejected(self):
        """Only the terminal element may be incomplete."""
        with pytest.raises(InvalidArgumentError, match="has no id or name"):
            PartialKey.builder("d", "Task").add_ancestor(PathElement.of("Project")).build()

    def test_empty_dataset_rejected(self):
        """Dataset must be non-empty."""
        with pytest.raises(InvalidArgumentError, match="dataset"):
            PartialKey("", "Task")

    def test_missing_kind_rejected(self):
        """builder() with a dataset needs a kind."""
        with pytest.raises(InvalidArgumentError):
            PartialKey.builder("d")

    def test_empty_namespace_is_default(self):
        """Empty namespace normalizes to the default namespace."""
        assert PartialKey("d", "k", namespace="") == PartialKey("d", "k")

    def test_copy_and_override(self):
        """Builder from an existing key overrides selected fields."""
        original = PartialKey.builder("d", "Task").namespace("ns").build()
        copy = PartialKey.builder(original).kind("Note").build()
        assert copy.namespace == "ns"
        assert copy.kind == "Note"
        assert original.kind == "Task"

    def test_ancestor_order_matters(self):
        """Ancestor paths compare as sequences."""
        a = PathElement.of("A", 1)
        b = PathElement.of("B", 2)
        first = PartialKey.builder("d", "k").ancestors(a, b).build()
        second = PartialKey.builder("d", "k").ancestors(b, a).build()
        assert first != second


class TestKey:
    """Tests for Key."""

    def test_builder_from_fields(self):
        """Key with a name."""
        key = Key.builder("d", "Task", "t1").build()
        assert key.has_name()
        assert not key.has_id()
        assert key.name == "t1"
        assert key.id is None
        assert key.is_complete()

    def test_builder_from_partial(self):
        """A partial key plus an id gives a key."""
        partial = PartialKey.builder("d", "Task").namespace("ns").build()
        key = Key.builder(partial, 42).build()
        assert key.id == 42
        assert key.namespace == "ns"
        assert key.to_partial() == partial

    def test_builder_with_parent(self):
        """Parent key becomes the ancestor path."""
        parent = Key.builder("d", "Team", "core").build()
        child = Key.builder(parent, "Member", 7).build()
        assert child.ancestors == (PathElement.of("Team", "core"),)
        assert child.kind == "Member"
        assert child.id == 7

    def test_builder_copy_and_override(self):
        """Setting a name clears the id."""
        key = Key.builder("d", "Task", 1).build()
        renamed = Key.builder(key).name("n").build()
        assert renamed.name == "n"
        assert renamed.id is None

    def test_builder_requires_id_or_name(self):
        """A key builder without id or name fails."""
        with pytest.raises(InvalidArgumentError, match="id or a name"):
            KeyBuilder(PartialKey("d", "Task")).build()

    def test_builder_rejects_unknown_forms(self):
        """Unsupported argument shapes are rejected."""
        with pytest.raises(InvalidArgumentError, match="Unsupported"):
            Key.builder("d", "Task")

    def test_bool_id_rejected(self):
        """Booleans are not ids."""
        with pytest.raises(InvalidArgumentError):
            Key("d", "Task", True)

    def test_equality_and_hash(self):
        """Keys are equal by value."""
        a = Key.builder("d", "Task", 1).namespace("ns").build()
        b = Key.builder("d", "Task", 1).namespace("ns").build()
        assert a == b
        assert hash(a) == hash(b)
        assert {a: 1}[b] == 1

    def test_key_differs_from_partial(self):
        """A key never equals its incomplete form."""
        key = Key.builder("d", "Task", 1).build()
        assert key != key.to_partial()

    def test_id_and_name_keys_differ(self):
        """Id 1 and name '1' are different keys."""
        assert Key("d", "Task", 1) != Key("d", "Task", "1")

    def test_parent(self):
        """parent() walks one step up the ancestor path."""
        root = Key.builder("d", "A", 1).build()
        child = Key.builder(root, "B", "b").build()
        grandchild = Key.builder(child, "C", 3).build()
        assert grandchild.parent() == child
        assert child.parent() == root
        assert root.parent() is None

    def test_sort_order(self):
        """Keys sort by path, ids before names."""
        keys = [Key("d", "k", "b"), Key("d", "k", 2), Key("d", "k", "a"), Key("d", "k", 1)]
        ordered = sorted(keys, key=lambda k: k.sort_key())
        assert [k.id_or_name for k in ordered] == [1, 2, "a", "b"]

    def test_repr(self):
        """repr shows the path."""
        key = Key.builder("d", "Task", "t1").build()
        assert "Task:'t1'" in repr(key)
