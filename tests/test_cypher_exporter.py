"""
Tests for Cypher script export.

The exporter is driven directly with an in-memory sink so the produced
script can be compared statement by statement.
"""

import pytest

from export import CypherExporter, ExportConfig, ExportPhase, ProgressInfo, ProgressReporter, StringExportFileManager
from export.cypher_exporter import group_entities, plan_blocks
from neo4j.spatial import CartesianPoint

from graph import MemoryGraphStore, NodesAndRelsSubGraph, SchemaConflictError, TerminatedError
from utils import TerminationGuard

SINGLE = {"useOptimizations": {"type": "NONE"}}


def run_export(store, options=None, guard=None):
    config = ExportConfig.from_dict(options or {})
    files = StringExportFileManager(config.separate_files)
    reporter = ProgressReporter(ProgressInfo(batch_size=config.batch_size))
    exporter = CypherExporter(store, config, files, reporter, guard or TerminationGuard())
    exporter.export()
    drained = files.drain()
    output = drained if config.separate_files else "".join(drained.values())
    return exporter, output, reporter


def block_sizes(text, begin="BEGIN", commit="COMMIT"):
    """Number of statement lines inside each begin/commit block."""
    sizes = []
    current = None
    for line in text.splitlines():
        if line == begin:
            current = 0
        elif line == commit:
            sizes.append(current)
            current = None
        elif current is not None and line:
            current += 1
    return sizes


def item_store(count, label="Item"):
    store = MemoryGraphStore()
    for i in range(count):
        store.create_node(label, index=i)
    return store


# ============================================================================
# Helpers
# ============================================================================

class TestPlanBlocks:
    """Test plan_blocks()."""

    def test_blocks_and_statements(self):
        groups = {"a": [1, 2, 3, 4, 5], "b": [6, 7, 8]}
        blocks = list(plan_blocks(groups, batch_size=4, unwind_batch_size=3))
        assert blocks == [
            [("a", [1, 2, 3]), ("a", [4])],
            [("a", [5]), ("b", [6, 7, 8])],
        ]

    def test_empty(self):
        assert list(plan_blocks({}, 10, 5)) == []

    def test_group_entities_keeps_order(self):
        groups = group_entities([1, 2, 3, 4, 5], lambda n: n % 2)
        assert list(groups.items()) == [(1, [1, 3, 5]), (0, [2, 4])]


# ============================================================================
# create format, one statement per entity
# ============================================================================

class TestCreateScript:
    """Test the default create format without optimizations."""

    def test_full_script(self, constrained_store):
        exporter, output, _ = run_export(constrained_store, SINGLE)

        assert output == (
            ":begin\n"
            "CREATE CONSTRAINT person_name FOR (node:Person) REQUIRE (node.name) IS UNIQUE;\n"
            "CREATE CONSTRAINT UNIQUE_IMPORT_NAME FOR (node:`UNIQUE IMPORT LABEL`) "
            "REQUIRE (node.`UNIQUE IMPORT ID`) IS UNIQUE;\n"
            ":commit\n"
            "CALL db.awaitIndexes(300);\n"
            ":begin\n"
            'CREATE (:Person {name:"Alice"});\n'
            'CREATE (:Person {name:"Bob"});\n'
            'CREATE (:Pet:`UNIQUE IMPORT LABEL` {name:"Rex", `UNIQUE IMPORT ID`:0});\n'
            ":commit\n"
            ":begin\n"
            'MATCH (n1:Person{name:"Alice"}), (n2:Person{name:"Bob"}) CREATE (n1)-[r:KNOWS]->(n2);\n'
            'MATCH (n1:Person{name:"Alice"}), (n2:`UNIQUE IMPORT LABEL`{`UNIQUE IMPORT ID`:0}) '
            "CREATE (n1)-[r:OWNS]->(n2);\n"
            ":commit\n"
            ":begin\n"
            "MATCH (n:`UNIQUE IMPORT LABEL`)  WITH n LIMIT 20000 "
            "REMOVE n:`UNIQUE IMPORT LABEL` REMOVE n.`UNIQUE IMPORT ID`;\n"
            ":commit\n"
            ":begin\n"
            "DROP CONSTRAINT UNIQUE_IMPORT_NAME;\n"
            ":commit\n"
        )
        assert exporter.phase is ExportPhase.DONE

    def test_no_synthetic_constraint_when_every_node_has_a_key(self, store):
        store.create_constraint("Person", ["name"])
        store.create_node("Person", name="Alice")
        _, output, _ = run_export(store, SINGLE)
        assert "UNIQUE_IMPORT_NAME" not in output
        assert "REMOVE" not in output

    def test_indexes_are_recreated(self, store):
        store.create_index(["Person"], ["email"], name="person_email")
        store.create_index(["KNOWS"], ["since"], for_relationships=True)
        store.create_node("Person", email="a@example.com")
        _, output, _ = run_export(store, dict(SINGLE, saveIndexNames=True, ifNotExists=True))
        assert "CREATE RANGE INDEX person_email IF NOT EXISTS FOR (n:Person) ON (n.email);" in output
        assert "CREATE CONSTRAINT UNIQUE_IMPORT_NAME IF NOT EXISTS" in output

    def test_neo4j_shell_dialect(self, constrained_store):
        _, output, _ = run_export(constrained_store, dict(SINGLE, format="neo4j-shell"))
        assert output.startswith("BEGIN\n")
        assert "SCHEMA AWAIT\n" in output
        assert ":begin" not in output
        assert output.endswith("BEGIN\nDROP CONSTRAINT UNIQUE_IMPORT_NAME;\nCOMMIT\n")

    def test_plain_dialect(self, constrained_store):
        _, output, _ = run_export(constrained_store, dict(SINGLE, format="plain"))
        assert "BEGIN" not in output
        assert ":begin" not in output
        assert "awaitIndexes" not in output
        assert output.startswith("CREATE CONSTRAINT person_name")

    def test_separate_files(self, constrained_store):
        _, output, _ = run_export(constrained_store, dict(SINGLE, separateFiles=True))
        assert set(output) == {"schema", "nodes", "relationships", "cleanup"}
        assert "CREATE (:Person" in output["nodes"]
        assert "DROP CONSTRAINT" in output["cleanup"]

    def test_colliding_property(self, store):
        store.create_node("A", **{"UNIQUE IMPORT ID": 1})
        with pytest.raises(SchemaConflictError):
            run_export(store, SINGLE)

    def test_point_property(self, store):
        store.create_node("Place", location=CartesianPoint((1.0, 2.0)))
        _, output, _ = run_export(store, SINGLE)
        assert "location:point({x: 1.0, y: 2.0, srid: 7203})" in output

    def test_relationships_without_their_nodes(self, people_store):
        knows = [r for r in people_store.all_relationships() if r.type == "KNOWS"]
        exporter, output, _ = run_export(NodesAndRelsSubGraph(people_store, [], knows), SINGLE)

        create = output.index("CREATE CONSTRAINT UNIQUE_IMPORT_NAME")
        drop = output.index("DROP CONSTRAINT UNIQUE_IMPORT_NAME")
        assert create < drop
        assert output.count("LIMIT 20000 REMOVE") == 1
        assert exporter.tracker.counters.artificial_unique_nodes == 0


class TestBatching:
    """Test transaction block boundaries."""

    def test_batch_of_ten_over_twenty_five_nodes(self):
        _, output, reporter = run_export(
            item_store(25),
            dict(SINGLE, format="neo4j-shell", batchSize=10, separateFiles=True),
        )
        assert block_sizes(output["nodes"]) == [10, 10, 5]
        assert reporter.info.nodes == 25

    def test_cleanup_drains_in_batches(self):
        exporter, output, _ = run_export(
            item_store(25),
            dict(SINGLE, format="neo4j-shell", batchSize=10, separateFiles=True),
        )
        cleanup = output["cleanup"]
        assert cleanup.count("LIMIT 10 REMOVE") == 3
        assert block_sizes(cleanup) == [1, 1, 1, 1]
        assert cleanup.endswith("DROP CONSTRAINT UNIQUE_IMPORT_NAME;\nCOMMIT\n")
        assert exporter.tracker.counters.artificial_unique_nodes == 0
        assert exporter.tracker.counters.artificial_unique_rels == 0

    def test_exact_multiple_of_batch(self):
        _, output, _ = run_export(
            item_store(20),
            dict(SINGLE, format="neo4j-shell", batchSize=10, separateFiles=True),
        )
        assert block_sizes(output["nodes"]) == [10, 10]

    def test_empty_store(self):
        exporter, output, reporter = run_export(MemoryGraphStore(), SINGLE)
        assert output == ""
        assert reporter.info.nodes == 0
        assert exporter.phase is ExportPhase.DONE


# ============================================================================
# Update formats
# ============================================================================

class TestUpdateFormats:
    """Test updateAll, addStructure and updateStructure."""

    def test_update_all(self, constrained_store):
        _, output, _ = run_export(constrained_store, dict(SINGLE, cypherFormat="updateAll"))
        assert 'MERGE (n:Person{name:"Alice"});' in output
        assert 'MERGE (n:`UNIQUE IMPORT LABEL`{`UNIQUE IMPORT ID`:0}) SET n.name="Rex", n:Pet;' in output
        assert 'MATCH (n1:Person{name:"Alice"}), (n2:Person{name:"Bob"}) MERGE (n1)-[r:KNOWS]->(n2);' in output
        assert "DROP CONSTRAINT UNIQUE_IMPORT_NAME;" in output

    def test_update_all_sets_relationship_properties(self, people_store):
        _, output, _ = run_export(people_store, dict(SINGLE, cypherFormat="updateAll"))
        assert "MERGE (n1)-[r:KNOWS]->(n2) SET r.since=2016;" in output

    def test_add_structure(self, constrained_store):
        exporter, output, _ = run_export(constrained_store, dict(SINGLE, cypherFormat="addStructure"))
        assert 'MERGE (n:`UNIQUE IMPORT LABEL`{`UNIQUE IMPORT ID`:0}) ON CREATE SET n.name="Rex", n:Pet;' in output
        assert "CREATE (n1)-[r:KNOWS]->(n2);" in output
        assert "CONSTRAINT" not in output
        assert "REMOVE" not in output
        assert exporter.tracker.counters.artificial_unique_nodes == 0

    def test_update_structure(self, people_store):
        _, output, _ = run_export(people_store, dict(SINGLE, cypherFormat="updateStructure"))
        assert "MERGE (n:" not in output
        assert "CREATE (" not in output
        assert "MERGE (n1)-[r:KNOWS]->(n2) SET r.since=2016;" in output
        assert "CONSTRAINT" not in output

    def test_multiple_relationships_with_type(self, store):
        a = store.create_node("A")
        b = store.create_node("B")
        store.create_relationship(a, "T", b)
        store.create_relationship(a, "T", b)
        exporter, output, _ = run_export(
            store, dict(SINGLE, cypherFormat="updateAll", multipleRelationshipsWithType=True),
        )
        assert (
            "MATCH (n1:`UNIQUE IMPORT LABEL`{`UNIQUE IMPORT ID`:0}), "
            "(n2:`UNIQUE IMPORT LABEL`{`UNIQUE IMPORT ID`:1}) "
            "MERGE (n1)-[r:T{`UNIQUE IMPORT ID REL`:0}]->(n2);"
        ) in output
        assert "MERGE (n1)-[r:T{`UNIQUE IMPORT ID REL`:1}]->(n2);" in output
        assert (
            "MATCH ()-[r]->() WHERE r.`UNIQUE IMPORT ID REL` IS NOT NULL "
            "WITH r LIMIT 20000 REMOVE r.`UNIQUE IMPORT ID REL`;"
        ) in output
        assert exporter.tracker.counters.artificial_unique_rels == 0

    def test_duplicates_without_option_get_no_relationship_id(self, store):
        a = store.create_node("A")
        b = store.create_node("B")
        store.create_relationship(a, "T", b)
        store.create_relationship(a, "T", b)
        _, output, _ = run_export(store, dict(SINGLE, cypherFormat="updateAll"))
        assert "UNIQUE IMPORT ID REL" not in output


# ============================================================================
# UNWIND optimizations
# ============================================================================

class TestUnwind:
    """Test UNWIND_BATCH and UNWIND_BATCH_PARAMS."""

    def test_node_statements(self, constrained_store):
        _, output, _ = run_export(constrained_store)
        assert (
            'UNWIND [{name:"Alice", properties:{}}, {name:"Bob", properties:{}}] AS row\n'
            "CREATE (n:Person{name: row.name}) SET n += row.properties;\n"
        ) in output
        assert (
            'UNWIND [{_id:0, properties:{name:"Rex"}}] AS row\n'
            "CREATE (n:`UNIQUE IMPORT LABEL`{`UNIQUE IMPORT ID`: row._id}) SET n += row.properties SET n:Pet;\n"
        ) in output

    def test_relationship_statements(self, constrained_store):
        _, output, _ = run_export(constrained_store)
        assert (
            'UNWIND [{start: {name:"Alice"}, end: {name:"Bob"}, properties:{}}] AS row\n'
            "MATCH (start:Person{name: row.start.name})\n"
            "MATCH (end:Person{name: row.end.name})\n"
            "CREATE (start)-[r:KNOWS]->(end) SET r += row.properties;\n"
        ) in output

    def test_params_variant(self, constrained_store):
        _, output, _ = run_export(constrained_store, {"useOptimizations": {"type": "UNWIND_BATCH_PARAMS"}})
        assert ':param rows => [{name:"Alice", properties:{}}, {name:"Bob", properties:{}}]\nUNWIND $rows AS row\n' in output

    def test_blocks_respect_batch_and_unwind_sizes(self):
        _, output, reporter = run_export(
            item_store(25),
            {"batchSize": 10, "useOptimizations": {"unwindBatchSize": 4}, "separateFiles": True},
        )
        blocks = output["nodes"].split(":begin\n")[1:]
        assert [block.count("UNWIND") for block in blocks] == [3, 3, 2]
        assert reporter.info.nodes == 25

    def test_update_all_merges(self, constrained_store):
        _, output, _ = run_export(constrained_store, {"cypherFormat": "updateAll"})
        assert "MERGE (n:Person{name: row.name}) SET n += row.properties;" in output
        assert "MERGE (start)-[r:KNOWS]->(end) SET r += row.properties;" in output

    def test_add_structure_sets_on_create(self, constrained_store):
        _, output, _ = run_export(constrained_store, {"cypherFormat": "addStructure"})
        assert "MERGE (n:Person{name: row.name}) ON CREATE SET n += row.properties;" in output

    def test_parallel_rendering_keeps_order(self):
        store = item_store(60, "A")
        for i in range(60):
            store.create_node("B", index=i)
        options = {"batchSize": 20, "useOptimizations": {"unwindBatchSize": 5}}
        _, sequential, _ = run_export(store, dict(options, parallel=False))
        _, parallel, _ = run_export(store, dict(options, parallel=True, workers=4))
        assert parallel == sequential


class TestCancellation:
    """Test cooperative cancellation."""

    def test_terminated_guard_aborts(self, people_store):
        guard = TerminationGuard()
        guard.terminate()
        with pytest.raises(TerminatedError):
            run_export(people_store, SINGLE, guard=guard)

    def test_export_schema_only(self, constrained_store):
        config = ExportConfig.from_dict({})
        files = StringExportFileManager()
        exporter = CypherExporter(
            constrained_store, config, files, ProgressReporter(ProgressInfo(batch_size=config.batch_size)),
        )
        exporter.export_schema()
        output = "".join(files.drain().values())
        assert "person_name" in output
        assert "UNIQUE_IMPORT_NAME" not in output
        assert "CREATE (" not in output
