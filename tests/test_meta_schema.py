"""
Tests for the schema view built from metadata and statistics.
"""

from meta import MetaConfig, MetaItemCollector, SampleMetaConfig, StatsAggregator, build_schema


def _schema(store):
    config = MetaConfig(sampling=SampleMetaConfig(sample=-1))
    return build_schema(MetaItemCollector(store, config).collect(), StatsAggregator(store).collect())


class TestBuildSchema:
    """Test build_schema()."""

    def test_node_entries(self, people_store):
        schema = _schema(people_store)
        person = schema["Person"]

        assert person["type"] == "node"
        assert person["count"] == 2
        assert person["properties"]["name"]["type"] == "STRING"
        assert person["properties"]["age"]["type"] == "INTEGER"

    def test_outgoing_relationships(self, people_store):
        person = _schema(people_store)["Person"]
        knows = person["relationships"]["KNOWS"]
        assert knows["direction"] == "out"
        assert knows["count"] == 1
        assert knows["labels"] == ["Person"]
        assert knows["properties"]["since"]["type"] == "INTEGER"
        assert person["relationships"]["LIVES_IN"]["labels"] == ["City"]

    def test_incoming_relationships(self, people_store):
        city = _schema(people_store)["City"]
        lives_in = city["relationships"]["LIVES_IN"]
        assert lives_in["direction"] == "in"
        assert lives_in["count"] == 2
        assert lives_in["labels"] == ["Person"]

    def test_relationship_entries(self, people_store):
        schema = _schema(people_store)
        assert schema["KNOWS"] == {
            "type": "relationship",
            "count": 1,
            "properties": {
                "since": {"type": "INTEGER", "indexed": False, "unique": False, "existence": False, "array": False},
            },
        }
        assert schema["LIVES_IN"]["count"] == 2
        assert schema["LIVES_IN"]["properties"] == {}

    def test_constraint_flags(self, constrained_store):
        name = _schema(constrained_store)["Person"]["properties"]["name"]
        assert name["unique"] is True
        assert name["indexed"] is True
