"""
Tests for settings, logging, memory monitoring, cancellation and output sinks.
"""

import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from config import Settings, get_settings
from export import FileExportManager, StringExportFileManager
from graph import TerminatedError
from utils import MemoryMonitor, TerminationGuard, get_logger, setup_logger


class TestSettings:
    """Test Settings loading and validation."""

    def test_defaults(self, monkeypatch):
        for name in ("BATCH_SIZE", "UNWIND_BATCH_SIZE", "SAMPLE_SIZE", "MAX_RELS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings()
        assert settings.batch_size == 20000
        assert settings.unwind_batch_size == 20
        assert settings.sample_size == 1000
        assert settings.max_rels == 100

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BATCH_SIZE", "500")
        monkeypatch.setenv("ENABLE_PARALLEL", "TRUE")
        settings = get_settings(reload=True)
        assert settings.batch_size == 500
        assert settings.enable_parallel

    def test_export_dir_from_fixture(self, tmp_path):
        assert get_settings().export_dir == Path(tmp_path / "exports")

    @pytest.mark.parametrize("name,value", [
        ("BATCH_SIZE", "0"),
        ("SAMPLE_SIZE", "0"),
        ("SAMPLE_SIZE", "-5"),
        ("MAX_MEMORY_PERCENT", "150"),
        ("LOG_LEVEL", "LOUD"),
    ])
    def test_invalid(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValueError):
            Settings()

    def test_sampling_can_be_disabled(self, monkeypatch):
        monkeypatch.setenv("SAMPLE_SIZE", "-1")
        assert Settings().sample_size == -1

    def test_to_dict(self):
        data = get_settings().to_dict()
        assert data["batch_size"] == get_settings().batch_size
        assert isinstance(data["export_dir"], str)


class TestLogging:
    """Test logger setup."""

    def test_child_loggers_share_the_tree(self):
        assert get_logger("export.engine").name == "graphmeta.export.engine"
        assert get_logger("graphmeta.meta").name == "graphmeta.meta"

    def test_setup_is_idempotent(self, tmp_path):
        log_file = tmp_path / "logs" / "graphmeta.log"
        logger = setup_logger("graphmeta.test", "DEBUG", str(log_file))
        logger = setup_logger("graphmeta.test", "DEBUG", str(log_file))

        assert len(logger.handlers) == 2
        assert logger.level == logging.DEBUG
        assert not logger.propagate
        logger.debug("hello")
        for handler in logger.handlers:
            handler.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")
        for handler in logger.handlers:
            handler.close()


class TestMemoryMonitor:
    """Test MemoryMonitor."""

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            MemoryMonitor(max_percent=0)

    def test_warns_over_threshold(self):
        monitor = MemoryMonitor(max_percent=50)
        usage = {"percent": 80.0, "used_mb": 10.0, "available_mb": 100.0, "total_mb": 500.0}
        with patch.object(monitor, "get_current_usage", return_value=usage):
            assert not monitor.check_and_warn("export")
            assert not monitor.is_memory_ok()
        assert monitor.warnings_issued == 1

    def test_ok_under_threshold(self):
        monitor = MemoryMonitor(max_percent=90)
        usage = {"percent": 10.0, "used_mb": 10.0, "available_mb": 100.0, "total_mb": 500.0}
        with patch.object(monitor, "get_current_usage", return_value=usage):
            assert monitor.check_and_warn()
        assert monitor.warnings_issued == 0
        assert monitor.peak_percent == 10.0

    def test_warns_once_per_phase(self):
        monitor = MemoryMonitor(max_percent=50)
        usage = {"percent": 75.0, "used_mb": 10.0, "available_mb": 100.0, "total_mb": 500.0}
        with patch.object(monitor, "get_current_usage", return_value=usage):
            for _ in range(3):
                monitor.check_and_warn("nodes export")
            monitor.check_and_warn("relationships export")
        assert monitor.warnings_issued == 2
        assert monitor.peak_percent == 75.0

    def test_usage_keys(self):
        usage = MemoryMonitor().get_current_usage()
        assert set(usage) == {"percent", "used_mb", "available_mb", "total_mb"}


class TestTerminationGuard:
    """Test cooperative cancellation."""

    def test_terminate(self):
        guard = TerminationGuard()
        guard.check()
        guard.terminate("stop")
        assert guard.is_terminated()
        with pytest.raises(TerminatedError, match="stop"):
            guard.check()

    def test_deadline(self):
        with patch("utils.termination.time.monotonic", side_effect=[0.0, 10.0]):
            guard = TerminationGuard(timeout_seconds=5)
            assert guard.is_terminated()


class TestExportFiles:
    """Test output sinks."""

    def test_string_sink_drains(self):
        files = StringExportFileManager()
        files.get_writer("nodes").write("a")
        files.get_writer("schema").write("b")
        assert files.drain() == {"all": "ab"}
        assert files.drain() == {}

    def test_string_sink_separate(self):
        files = StringExportFileManager(separate_files=True)
        files.get_writer("nodes").write("a")
        files.get_writer("schema").write("b")
        assert files.drain() == {"nodes": "a", "schema": "b"}
        assert files.drain() == {}

    def test_file_names(self, tmp_path):
        files = FileExportManager(tmp_path / "out" / "graph.cypher", separate_files=True)
        assert files.path_for("nodes") == tmp_path / "out" / "graph.nodes.cypher"
        with files:
            files.get_writer("nodes").write("x")
        assert (tmp_path / "out" / "graph.nodes.cypher").read_text(encoding="utf-8") == "x"

    def test_single_file(self, tmp_path):
        target = tmp_path / "graph.cypher"
        with FileExportManager(target) as files:
            files.get_writer("nodes").write("a")
            files.get_writer("relationships").write("b")
            assert files.destination == str(target)
        assert target.read_text(encoding="utf-8") == "ab"
