"""
Tests for the neo4j-admin style CSV loader.
"""

import datetime
import io

import pytest

from export import CsvLoader, CsvLoaderConfig, GraphExportEngine
from export.csv_loader import DEFAULT_ID_SPACE, HeaderField, convert_value, parse_header
from graph import DatabaseSource, DuplicateIdentityError, MalformedInputError, MemoryGraphStore

PEOPLE = ":ID,name,age:long,:LABEL\n1,Alice,42,Person\n2,Bob,,Person;Admin\n"


def nodes_by_name(store):
    return {node.properties["name"]: node for node in store.all_nodes()}


class TestHeader:
    """Test parse_header()."""

    def test_fields(self):
        fields = parse_header(["code:ID(Country)", "name", "age:long", "tags:string[]", ":LABEL", "x:IGNORE"])

        assert [(f.name, f.type) for f in fields] == [
            ("code", "ID"), ("name", "string"), ("age", "long"),
            ("tags", "string"), ("", "LABEL"), ("x", "IGNORE"),
        ]
        assert fields[0].id_space == "Country"
        assert fields[1].id_space == DEFAULT_ID_SPACE
        assert fields[3].array

    def test_meta_types_are_case_insensitive(self):
        assert parse_header([":start_id"])[0].type == "START_ID"

    def test_unknown_type(self):
        with pytest.raises(MalformedInputError):
            parse_header(["age:huge"])


class TestConvertValue:
    """Test convert_value()."""

    config = CsvLoaderConfig()

    def field(self, type_, array=False):
        return HeaderField(index=0, name="v", type=type_, array=array)

    def test_scalars(self):
        assert convert_value(self.field("long"), "42", self.config) == (True, 42)
        assert convert_value(self.field("double"), "1.5", self.config) == (True, 1.5)
        assert convert_value(self.field("boolean"), "TRUE", self.config) == (True, True)
        assert convert_value(self.field("date"), "2024-01-31", self.config) == (True, datetime.date(2024, 1, 31))

    def test_datetime_with_zulu(self):
        present, value = convert_value(self.field("datetime"), "2024-01-31T10:00:00Z", self.config)
        assert present
        assert value.tzinfo is not None

    def test_empty_cell_is_absent(self):
        assert convert_value(self.field("long"), "", self.config) == (False, None)

    def test_arrays(self):
        assert convert_value(self.field("long", array=True), "1;2", self.config) == (True, [1, 2])

    def test_empty_array_cell(self):
        assert convert_value(self.field("string", array=True), "", self.config) == (True, [])
        ignoring = CsvLoaderConfig(ignore_empty_cell_array=True)
        assert convert_value(self.field("string", array=True), "", ignoring) == (False, None)

    def test_blank_strings(self):
        ignoring = CsvLoaderConfig(ignore_blank_string=True)
        assert convert_value(self.field("string"), "  ", ignoring) == (False, None)
        assert convert_value(self.field("string"), "  ", self.config) == (True, "  ")

    def test_unparseable(self):
        with pytest.raises(MalformedInputError):
            convert_value(self.field("long"), "forty", self.config)


class TestLoaderConfig:
    """Test CsvLoaderConfig.from_dict()."""

    def test_camel_case_options(self):
        config = CsvLoaderConfig.from_dict({"delimiter": ";", "ignoreDuplicateNodes": True, "batchSize": 10})
        assert config.delimiter == ";"
        assert config.ignore_duplicate_nodes
        assert config.batch_size == 10

    @pytest.mark.parametrize("options", [{"delimiter": ";;"}, {"batchSize": 0}, {"skipLines": 0}])
    def test_invalid(self, options):
        with pytest.raises(MalformedInputError):
            CsvLoaderConfig.from_dict(options)


class TestLoadNodes:
    """Test node files."""

    def test_nodes(self, store):
        created = CsvLoader(store).load_nodes(io.StringIO(PEOPLE))

        assert created == 2
        people = nodes_by_name(store)
        assert people["Alice"].labels == ("Person",)
        assert people["Alice"].properties == {"name": "Alice", "age": 42}
        assert people["Bob"].labels == ("Person", "Admin")
        assert "age" not in people["Bob"].properties

    def test_labels_from_call_come_first(self, store):
        CsvLoader(store).load_nodes(io.StringIO(PEOPLE), labels=["Imported"])
        assert nodes_by_name(store)["Alice"].labels == ("Imported", "Person")

    def test_duplicate_ids(self, store):
        source = ":ID,name\n1,Alice\n1,Again\n"
        with pytest.raises(DuplicateIdentityError):
            CsvLoader(store).load_nodes(io.StringIO(source))
        assert store.count_nodes() == 0

    def test_ignore_duplicate_ids(self, store):
        source = ":ID,name\n1,Alice\n1,Again\n"
        loader = CsvLoader(store, CsvLoaderConfig(ignore_duplicate_nodes=True))
        assert loader.load_nodes(io.StringIO(source)) == 1
        assert list(nodes_by_name(store)) == ["Alice"]

    def test_named_id_is_stored(self, store):
        CsvLoader(store).load_nodes(io.StringIO("code:ID(Country),name\nDE,Germany\n"), ["Country"])
        assert nodes_by_name(store)["Germany"].properties["code"] == "DE"

    def test_batches(self, store):
        rows = "".join(f"{i},N{i}\n" for i in range(5))
        loader = CsvLoader(store, CsvLoaderConfig(batch_size=2))
        loader.load_nodes(io.StringIO(":ID,name\n" + rows))
        assert store.count_nodes() == 5
        assert loader.reporter.info.nodes == 5

    def test_empty_file(self, store):
        with pytest.raises(MalformedInputError):
            CsvLoader(store).load_nodes(io.StringIO(""))


class TestLoadRelationships:
    """Test relationship files."""

    def test_relationships(self, store):
        loader = CsvLoader(store)
        loader.load_nodes(io.StringIO(PEOPLE))
        created = loader.load_relationships(io.StringIO(":START_ID,:END_ID,since:long\n1,2,2016\n"), "KNOWS")

        assert created == 1
        rel = next(store.all_relationships())
        assert rel.type == "KNOWS"
        assert rel.start_node.properties["name"] == "Alice"
        assert rel.end_node.properties["name"] == "Bob"
        assert rel.properties == {"since": 2016}

    def test_type_column_wins(self, store):
        loader = CsvLoader(store)
        loader.load_nodes(io.StringIO(PEOPLE))
        loader.load_relationships(io.StringIO(":START_ID,:END_ID,:TYPE\n1,2,LIKES\n"), "KNOWS")
        assert next(store.all_relationships()).type == "LIKES"

    def test_missing_type(self, store):
        loader = CsvLoader(store)
        loader.load_nodes(io.StringIO(PEOPLE))
        with pytest.raises(MalformedInputError):
            loader.load_relationships(io.StringIO(":START_ID,:END_ID\n1,2\n"))

    def test_unknown_endpoint(self, store):
        loader = CsvLoader(store)
        loader.load_nodes(io.StringIO(PEOPLE))
        with pytest.raises(MalformedInputError):
            loader.load_relationships(io.StringIO(":START_ID,:END_ID\n1,99\n"), "KNOWS")
        assert store.count_relationships() == 0

    def test_id_spaces(self, store):
        loader = CsvLoader(store)
        loader.load_nodes(io.StringIO(":ID(Person),name\n1,Alice\n"), ["Person"])
        loader.load_nodes(io.StringIO("code:ID(Country),name\n1,Germany\n"), ["Country"])
        loader.load_relationships(
            io.StringIO(":START_ID(Person),:END_ID(Country)\n1,1\n"), "LIVES_IN",
        )
        rel = next(store.all_relationships())
        assert rel.start_node.properties["name"] == "Alice"
        assert rel.end_node.properties["name"] == "Germany"

    def test_requires_endpoint_columns(self, store):
        with pytest.raises(MalformedInputError):
            CsvLoader(store).load_relationships(io.StringIO("a,b\n1,2\n"), "KNOWS")


class TestLoad:
    """Test load() and the bulk import round trip."""

    def test_entries_need_file_names(self, store):
        with pytest.raises(MalformedInputError):
            CsvLoader(store).load(nodes=[{"labels": ["Person"]}])

    def test_bulk_export_round_trip(self, people_store, tmp_path):
        GraphExportEngine(people_store).export(DatabaseSource(), "csv", "bulk.csv", {"bulkImport": True})
        exports = tmp_path / "exports"

        target = MemoryGraphStore()
        info = CsvLoader(target).load(
            nodes=[
                {"fileName": exports / "bulk.nodes.Person.csv"},
                {"fileName": exports / "bulk.nodes.City.csv"},
            ],
            relationships=[
                {"fileName": exports / "bulk.relationships.KNOWS.csv"},
                {"fileName": str(exports / "bulk.relationships.LIVES_IN.csv")},
            ],
        )

        assert info.done
        assert info.nodes == 3
        assert info.relationships == 3
        people = nodes_by_name(target)
        assert people["Alice"].properties == {"name": "Alice", "age": 42}
        assert people["Berlin"].labels == ("City",)
        knows = [r for r in target.all_relationships() if r.type == "KNOWS"]
        assert knows[0].properties == {"since": 2016}
        assert target.count_relationships("LIVES_IN", "Person", "City") == 2
