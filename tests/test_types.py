"""
Tests for runtime value type names.
"""

import datetime

from neo4j.spatial import CartesianPoint

from graph import GraphNode
from meta.types import Types, is_type, type_name, types_of


class TestTypesOf:
    """Test Types.of()."""

    def test_scalars(self):
        assert Types.of(None) is Types.NULL
        assert Types.of(True) is Types.BOOLEAN
        assert Types.of(1) is Types.INTEGER
        assert Types.of(1.5) is Types.FLOAT
        assert Types.of("x") is Types.STRING

    def test_collections(self):
        assert Types.of([1, 2]) is Types.LIST
        assert Types.of({"a": 1}) is Types.MAP

    def test_temporal(self):
        assert Types.of(datetime.date(2020, 1, 1)) is Types.DATE
        assert Types.of(datetime.datetime(2020, 1, 1, 12)) is Types.LOCAL_DATE_TIME
        assert Types.of(datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)) is Types.DATE_TIME
        assert Types.of(datetime.time(12, 30)) is Types.LOCAL_TIME
        assert Types.of(datetime.timedelta(days=1)) is Types.DURATION

    def test_point_and_entities(self):
        assert Types.of(CartesianPoint((1.0, 2.0))) is Types.POINT
        assert Types.of(GraphNode(1, ("A",))) is Types.NODE


class TestTypeName:
    """Test type_name() and is_type()."""

    def test_homogeneous_list(self):
        assert type_name([1, 2, 3]) == "LIST OF INTEGER"

    def test_mixed_or_empty_list(self):
        assert type_name(["a", 1]) == "LIST OF ANY"
        assert type_name([]) == "LIST OF ANY"

    def test_is_type(self):
        assert is_type(1, "integer")
        assert is_type([1], "LIST")
        assert is_type([1], "LIST OF INTEGER")
        assert not is_type("1", "INTEGER")

    def test_types_of_entity(self):
        node = GraphNode(1, ("A",), {"name": "x", "tags": ["a"], "score": 1.0})
        assert types_of(node) == {"name": "STRING", "tags": "LIST OF STRING", "score": "FLOAT"}
