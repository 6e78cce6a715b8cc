"""
Export module for graphmeta.

- Cypher scripts in three dialects and four update styles
- CSV files, single or neo4j-admin bulk import, and the matching loader
- JSON lines, arrays or node/relationship documents
- Synthetic identity bookkeeping for round-trippable scripts
- Progress rows, synchronous or streamed
"""

from export.config import CypherFormat, ExportConfig, JsonFormat, OptimizationType, Quotes
from export.csv_format import CsvExporter, CsvRowWriter
from export.csv_loader import CsvLoader, CsvLoaderConfig
from export.cypher_exporter import CypherExporter, ExportPhase
from export.engine import GraphExportEngine
from export.files import ExportFileManager, FileExportManager, StringExportFileManager
from export.formats import ExportFormat
from export.json_format import JsonExporter, JsonRecordWriter
from export.progress import ProgressInfo, ProgressReporter
from export.streaming import TOMBSTONE, ExportStream
from export.uniqueness import ExportCounters, UniqueConstraintIndex, UniquenessTracker

__all__ = [
    "CsvExporter",
    "CsvLoader",
    "CsvLoaderConfig",
    "CsvRowWriter",
    "CypherExporter",
    "CypherFormat",
    "ExportConfig",
    "ExportCounters",
    "ExportFileManager",
    "ExportFormat",
    "ExportPhase",
    "ExportStream",
    "FileExportManager",
    "GraphExportEngine",
    "JsonExporter",
    "JsonFormat",
    "JsonRecordWriter",
    "OptimizationType",
    "ProgressInfo",
    "ProgressReporter",
    "Quotes",
    "StringExportFileManager",
    "TOMBSTONE",
    "UniqueConstraintIndex",
    "UniquenessTracker",
]
