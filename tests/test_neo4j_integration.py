"""
Integration tests against a live Neo4j server.

These tests require a running Neo4j instance.
Set TEST_NEO4J_URI, TEST_NEO4J_USER, and TEST_NEO4J_PASSWORD
environment variables or use defaults from .env
"""

import os

import pytest
from neo4j.exceptions import AuthError, ServiceUnavailable

from config.settings import get_settings
from export import CsvLoader, GraphExportEngine
from graph import DatabaseSource, Neo4jGraphStore, QuerySource
from graph.connection import Neo4jConnection
from meta import MetaConfig, MetaGraphBuilder, MetaItemCollector, SampleMetaConfig, StatsAggregator

pytestmark = pytest.mark.integration

SEED = """
    CREATE (alice:Person {name: 'Alice', age: 42})
    CREATE (bob:Person {name: 'Bob', age: 37})
    CREATE (berlin:City {name: 'Berlin'})
    CREATE (alice)-[:KNOWS {since: 2016}]->(bob)
    CREATE (alice)-[:LIVES_IN]->(berlin)
    CREATE (bob)-[:LIVES_IN]->(berlin)
"""


@pytest.fixture(scope="module")
def neo4j_connection():
    """
    Create a Neo4j connection for tests.
    Uses test database or falls back to default settings.
    """
    settings = get_settings()

    uri = os.getenv("TEST_NEO4J_URI", settings.neo4j_uri)
    user = os.getenv("TEST_NEO4J_USER", settings.neo4j_user)
    password = os.getenv("TEST_NEO4J_PASSWORD", settings.neo4j_password)

    connection = Neo4jConnection(uri=uri, user=user, password=password, max_retries=1)
    try:
        connection.connect()
    except (ServiceUnavailable, AuthError, ValueError):
        pytest.skip("Neo4j is not available for testing")

    connection.clear_database()
    yield connection

    connection.clear_database()
    connection.close()


@pytest.fixture
def seeded(neo4j_connection):
    """Small social graph in an otherwise empty database."""
    neo4j_connection.clear_database()
    neo4j_connection.execute_write(SEED)
    yield Neo4jGraphStore(neo4j_connection)


class TestNeo4jConnection:
    """Test Neo4j connection functionality."""

    def test_connection_success(self, neo4j_connection):
        assert neo4j_connection.is_connected()

    def test_execute_query(self, neo4j_connection):
        result = neo4j_connection.execute_query("RETURN 1 AS number", {})
        assert result == [{"number": 1}]

    def test_clear_database(self, neo4j_connection):
        neo4j_connection.execute_write("CREATE (:Scratch {name: 'tmp'})")
        result = neo4j_connection.clear_database()
        assert result["nodes_deleted"] >= 1


class TestMetadata:
    """Test statistics and metadata against the server."""

    def test_stats(self, seeded):
        stats = StatsAggregator(seeded).collect()
        assert stats.node_count == 3
        assert stats.rel_count == 3
        assert stats.labels == {"City": 1, "Person": 2}
        assert stats.rel_types["(:Person)-[:LIVES_IN]->()"] == 2

    def test_metadata_rows(self, seeded):
        config = MetaConfig(sampling=SampleMetaConfig(sample=-1))
        rows = MetaItemCollector(seeded, config).rows()
        age = next(r for r in rows if r.label == "Person" and r.property == "age")
        assert age.type == "INTEGER"

    def test_metagraph(self, seeded):
        graph = MetaGraphBuilder(seeded).build()
        assert {(p.start_label, p.rel_type, p.end_label) for p in graph.patterns()} == {
            ("Person", "KNOWS", "Person"),
            ("Person", "LIVES_IN", "City"),
        }


class TestExport:
    """Test exports and imports against the server."""

    def test_cypher_export(self, seeded):
        info = GraphExportEngine(seeded).export(DatabaseSource(), "cypher", None, {"format": "plain"})
        assert info.nodes == 3
        assert info.relationships == 3
        assert "UNWIND" in info.data

    def test_query_export_csv(self, seeded):
        query = "MATCH (p:Person) RETURN p.name AS name ORDER BY name"
        info = GraphExportEngine(seeded).export(QuerySource(query), "csv")
        assert info.data == '"name"\n"Alice"\n"Bob"\n'

    def test_bulk_round_trip(self, seeded, neo4j_connection, tmp_path):
        GraphExportEngine(seeded).export(DatabaseSource(), "csv", tmp_path / "bulk.csv", {"bulkImport": True})
        neo4j_connection.clear_database()

        info = CsvLoader(seeded).load(
            nodes=[
                {"fileName": tmp_path / "bulk.nodes.Person.csv"},
                {"fileName": tmp_path / "bulk.nodes.City.csv"},
            ],
            relationships=[
                {"fileName": tmp_path / "bulk.relationships.KNOWS.csv"},
                {"fileName": tmp_path / "bulk.relationships.LIVES_IN.csv"},
            ],
        )

        assert info.nodes == 3
        assert info.relationships == 3
        assert seeded.count_relationships("LIVES_IN", "Person", "City") == 2
