"""
Tests for export option parsing and validation.
"""

import pytest

from export import CypherFormat, ExportConfig, OptimizationType, Quotes
from export.formats import ExportFormat
from graph import MalformedInputError


class TestExportConfig:
    """Test ExportConfig.from_dict()."""

    def test_defaults(self):
        config = ExportConfig.from_dict(None)
        assert config.batch_size == 20000
        assert config.format is ExportFormat.CYPHER_SHELL
        assert config.cypher_format is CypherFormat.CREATE
        assert config.optimization_type is OptimizationType.UNWIND_BATCH
        assert config.unwind_batch_size == 20
        assert config.quotes is Quotes.ALWAYS
        assert config.optimized

    def test_batch_size_from_environment(self, monkeypatch):
        from config import get_settings

        monkeypatch.setenv("BATCH_SIZE", "500")
        get_settings(reload=True)
        assert ExportConfig.from_dict({}).batch_size == 500

    def test_enum_values(self):
        config = ExportConfig.from_dict({
            "format": "neo4j-shell",
            "cypherFormat": "updateAll",
            "useOptimizations": {"type": "NONE"},
            "quotes": "ifNeeded",
        })
        assert config.format is ExportFormat.NEO4J_SHELL
        assert config.cypher_format is CypherFormat.UPDATE_ALL
        assert not config.optimized
        assert config.is_update
        assert config.quotes is Quotes.IF_NEEDED

    def test_boolean_quotes(self):
        assert ExportConfig.from_dict({"quotes": False}, "csv").quotes is Quotes.NONE
        assert ExportConfig.from_dict({"quotes": True}, "csv").quotes is Quotes.ALWAYS

    def test_unknown_format(self):
        with pytest.raises(MalformedInputError, match="format"):
            ExportConfig.from_dict({"format": "gremlin"})

    def test_non_positive_batch_size(self):
        with pytest.raises(MalformedInputError, match="batchSize"):
            ExportConfig.from_dict({"batchSize": 0})

    def test_unwind_larger_than_batch(self):
        with pytest.raises(MalformedInputError, match="unwindBatchSize"):
            ExportConfig.from_dict({"batchSize": 10, "useOptimizations": {"unwindBatchSize": 50}})

    def test_unwind_check_skipped_for_csv(self):
        config = ExportConfig.from_dict({"batchSize": 10, "useOptimizations": {"unwindBatchSize": 50}}, "csv")
        assert config.batch_size == 10

    def test_small_batch_without_unwind(self):
        config = ExportConfig.from_dict({"batchSize": 10, "useOptimizations": {"type": "NONE"}})
        assert config.batch_size == 10
        assert not config.optimized

    def test_params_need_cypher_shell(self):
        with pytest.raises(MalformedInputError, match="UNWIND_BATCH_PARAMS"):
            ExportConfig.from_dict({"format": "plain", "useOptimizations": {"type": "UNWIND_BATCH_PARAMS"}})

    def test_multi_char_delimiter(self):
        with pytest.raises(MalformedInputError, match="delim"):
            ExportConfig.from_dict({"delim": ";;"}, "csv")

    def test_bulk_import_separates_files(self):
        config = ExportConfig.from_dict({"bulkImport": True}, "csv")
        assert config.separate_files is True

    def test_sampling_config(self):
        config = ExportConfig.from_dict({"sampling": True, "samplingConfig": {"sample": 5}}, "csv")
        assert config.sampling
        assert config.sampling_config.sample == 5

    def test_to_dict(self):
        result = ExportConfig.from_dict({"batchSize": 100, "cypherFormat": "addStructure"}).to_dict()
        assert result["batchSize"] == 100
        assert result["cypherFormat"] == "addStructure"
        assert result["useOptimizations"] == {"type": "UNWIND_BATCH", "unwindBatchSize": 20}
