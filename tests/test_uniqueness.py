"""
Tests for export identity resolution.
"""

import pytest

from export import ExportCounters, UniqueConstraintIndex, UniquenessTracker
from graph import ConstraintType, IndexType, MemoryGraphStore, SchemaConflictError


class TestUniqueConstraintIndex:
    """Test UniqueConstraintIndex.from_store()."""

    def test_constraint_backed_indexes_only(self, store):
        store.create_constraint("Person", ["name"])
        store.create_index(["City"], ["name"])
        index = UniqueConstraintIndex.from_store(store)
        assert index.key_for_label("Person") == ("name",)
        assert index.key_for_label("City") is None
        assert len(index) == 1

    def test_smallest_key_wins(self, store):
        store.create_constraint("Person", ["first", "last"], ConstraintType.NODE_KEY, name="full_name")
        store.create_constraint("Person", ["email"], name="email")
        assert UniqueConstraintIndex.from_store(store).key_for_label("Person") == ("email",)

    def test_lookup_indexes_ignored(self, store):
        store.create_index(["Person"], [], IndexType.LOOKUP)
        assert len(UniqueConstraintIndex.from_store(store)) == 0


class TestUniquenessTracker:
    """Test UniquenessTracker."""

    def test_natural_key(self, constrained_store):
        tracker = UniquenessTracker(UniqueConstraintIndex.from_store(constrained_store))
        alice = next(constrained_store.find_nodes("Person"))
        rex = next(constrained_store.find_nodes("Pet"))

        assert tracker.is_naturally_unique(alice)
        assert tracker.node_key(alice) == ("Person", {"name": "Alice"})
        assert not tracker.is_naturally_unique(rex)

    def test_null_key_property_is_not_natural(self, store):
        store.create_constraint("Person", ["name"])
        nameless = store.create_node("Person", age=3)
        tracker = UniquenessTracker(UniqueConstraintIndex.from_store(store))
        assert tracker.natural_key(nameless) is None

    def test_synthetic_ids_are_sequential_and_idempotent(self, store):
        a = store.create_node("A")
        b = store.create_node("B")
        tracker = UniquenessTracker(UniqueConstraintIndex())

        assert tracker.assign_synthetic_id(a) == 0
        assert tracker.assign_synthetic_id(b) == 1
        assert tracker.assign_synthetic_id(a) == 0
        assert tracker.counters.artificial_unique_nodes == 2
        assert tracker.node_key(b) == ("UNIQUE IMPORT LABEL", {"UNIQUE IMPORT ID": 1})

    def test_colliding_property_is_rejected(self, store):
        node = store.create_node("A", **{"UNIQUE IMPORT ID": 7})
        tracker = UniquenessTracker(UniqueConstraintIndex())
        with pytest.raises(SchemaConflictError):
            tracker.assign_synthetic_id(node)

    def test_duplicate_relationships(self, store):
        a = store.create_node("A")
        b = store.create_node("B")
        first = store.create_relationship(a, "T", b)
        second = store.create_relationship(a, "T", b)
        reverse = store.create_relationship(b, "T", a)
        other_type = store.create_relationship(a, "U", b)

        tracker = UniquenessTracker(UniqueConstraintIndex(), store.all_relationships())
        assert not tracker.is_naturally_unique(first)
        assert not tracker.is_naturally_unique(second)
        assert tracker.is_naturally_unique(reverse)
        assert tracker.is_naturally_unique(other_type)

    def test_relationship_ids_counted_separately(self, store):
        a = store.create_node("A")
        rel = store.create_relationship(a, "T", a)
        tracker = UniquenessTracker(UniqueConstraintIndex(), [rel])
        assert tracker.assign_synthetic_id(rel) == 0
        assert tracker.counters.artificial_unique_rels == 1
        assert tracker.counters.artificial_unique_nodes == 0


class TestExportCounters:
    """Test ExportCounters draining."""

    def test_drain_reaches_zero(self):
        counters = ExportCounters(artificial_unique_nodes=25)
        steps = []
        while counters.artificial_unique_nodes > 0:
            steps.append(counters.drain_nodes(10))
        assert steps == [10, 10, 5]
        assert counters.artificial_unique_nodes == 0
