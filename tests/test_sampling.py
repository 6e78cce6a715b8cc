"""
Tests for sampling stride selection, metadata config parsing and the
meta-graph existence check.
"""

import random

import pytest

from graph import Direction, MalformedInputError, MemoryGraphStore
from meta.graph_builder import relationship_exists
from meta.sampling import NO_SKIP, MetaConfig, SampleMetaConfig, is_sampled, sample_stride


class TestSampleStride:
    """Test sample_stride()."""

    def test_sample_everything(self):
        assert sample_stride(1_000_000, -1) == NO_SKIP

    def test_non_positive_desired_is_no_skip(self):
        assert sample_stride(1000, 0) == NO_SKIP

    def test_empty_population(self):
        assert sample_stride(0, 100) == NO_SKIP

    def test_stride_within_jitter_bounds(self):
        rng = random.Random(7)
        for _ in range(200):
            stride = sample_stride(10_000, 100, rng)
            # ideal 100 with 10% jitter
            assert 90 <= stride <= 110

    def test_collapsed_bounds_mean_no_skip(self):
        # ideal stride 0: floor(0) == ceil(0)
        assert sample_stride(50, 100) == NO_SKIP

    def test_small_ideal_stride(self):
        # ideal 1: [floor(0.9), ceil(1.1)) = [0, 2); a zero draw must not leak out
        rng = random.Random(0)
        for _ in range(100):
            assert sample_stride(100, 100, rng) in (NO_SKIP, 1)

    @pytest.mark.parametrize("population,desired", [(1, 1), (7, 3), (1000, 999), (12345, 17), (10, 10000)])
    def test_stride_is_never_zero(self, population, desired):
        rng = random.Random(population)
        for _ in range(50):
            stride = sample_stride(population, desired, rng)
            assert stride == NO_SKIP or stride > 0


class TestIsSampled:
    """Test is_sampled()."""

    def test_no_skip_takes_everything(self):
        assert all(is_sampled(position, NO_SKIP) for position in range(1, 20))

    def test_every_kth(self):
        taken = [p for p in range(1, 11) if is_sampled(p, 3)]
        assert taken == [3, 6, 9]


class TestSampleMetaConfig:
    """Test SampleMetaConfig parsing."""

    def test_defaults(self):
        config = SampleMetaConfig.from_dict(None)
        assert config.sample == 1000
        assert config.max_rels == 100

    def test_camel_case_keys(self):
        config = SampleMetaConfig.from_dict({"sample": 10, "maxRels": -1})
        assert config.sample == 10
        assert config.max_rels == -1

    def test_invalid_value(self):
        with pytest.raises(MalformedInputError):
            SampleMetaConfig.from_dict({"sample": "many"})


class TestMetaConfig:
    """Test label and type filters."""

    def test_include_and_exclude(self):
        config = MetaConfig.from_dict({"includeLabels": ["Person", "City"], "excludeLabels": ["City"]})
        assert config.accepts_label("Person")
        assert not config.accepts_label("City")
        assert not config.accepts_label("Dog")

    def test_empty_include_accepts_all(self):
        config = MetaConfig.from_dict({"excludeRels": "KNOWS"})
        assert config.accepts_rel("LIVES_IN")
        assert not config.accepts_rel("KNOWS")

    def test_rejects_non_list(self):
        with pytest.raises(MalformedInputError):
            MetaConfig.from_dict({"includeLabels": 42})


# ============================================================================
# Existence check
# ============================================================================

class CountingStore(MemoryGraphStore):
    """Memory store that records which nodes the existence check looked at."""

    def __init__(self):
        super().__init__()
        self.visited = []

    def get_relationships(self, node, direction=Direction.BOTH, rel_type=None):
        self.visited.append(node.id)
        return super().get_relationships(node, direction, rel_type)


def _population(size):
    store = CountingStore()
    for i in range(size):
        store.create_node("A", i=i)
    store.create_node("B")
    return store


class TestRelationshipExists:
    """Test relationship_exists()."""

    @pytest.mark.parametrize(
        "sample,population,checked",
        [
            (2, 4, 2),
            (100, 1000, 10),
            (1000, 100, 1),
            (-1, 500, 500),
            (0, 10000, 10000),
            (1, 4, 4),
        ],
    )
    def test_nodes_checked(self, sample, population, checked):
        store = _population(population)
        found = relationship_exists(
            store, "A", "B", "T", Direction.OUTGOING, SampleMetaConfig(sample=sample, max_rels=10),
        )
        assert found is False
        assert len(store.visited) == checked

    def test_finds_outgoing(self):
        store = MemoryGraphStore()
        a = store.create_node("A")
        b = store.create_node("B")
        store.create_relationship(a, "T", b)
        assert relationship_exists(store, "A", "B", "T", Direction.OUTGOING, SampleMetaConfig(sample=1))

    def test_finds_incoming(self):
        store = MemoryGraphStore()
        a = store.create_node("A")
        b = store.create_node("B")
        store.create_relationship(a, "T", b)
        assert relationship_exists(store, "B", "A", "T", Direction.INCOMING, SampleMetaConfig(sample=1))
        assert not relationship_exists(store, "B", "A", "T", Direction.OUTGOING, SampleMetaConfig(sample=1))

    def test_max_rels_caps_traversal(self):
        store = MemoryGraphStore()
        a = store.create_node("A")
        for _ in range(5):
            store.create_relationship(a, "T", store.create_node("C"))
        store.create_relationship(a, "T", store.create_node("B"))

        # the B neighbour is the sixth relationship
        assert not relationship_exists(store, "A", "B", "T", Direction.OUTGOING, SampleMetaConfig(sample=1, max_rels=2))
        assert relationship_exists(store, "A", "B", "T", Direction.OUTGOING, SampleMetaConfig(sample=1, max_rels=5))
        assert relationship_exists(store, "A", "B", "T", Direction.OUTGOING, SampleMetaConfig(sample=1, max_rels=-1))
