"""
Settings management for graphmeta.

This module loads configuration from environment variables and provides
a centralized settings object with validation and defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class Settings:
    """
    Application settings loaded from environment variables.

    All settings have defaults suitable for a local Neo4j instance and can
    be overridden via environment variables or a .env file. Per-call
    options (an ``ExportConfig`` or a ``SampleMetaConfig``) take precedence
    over these values.
    """

    # Neo4j Configuration
    neo4j_uri: str = field(default_factory=lambda: os.getenv("NEO4J_URI", "bolt://localhost:7687"))
    neo4j_user: str = field(default_factory=lambda: os.getenv("NEO4J_USER", "neo4j"))
    neo4j_password: str = field(default_factory=lambda: os.getenv("NEO4J_PASSWORD", "password"))
    neo4j_database: str = field(default_factory=lambda: os.getenv("NEO4J_DATABASE", "neo4j"))

    # Sampling
    sample_size: int = field(default_factory=lambda: int(os.getenv("SAMPLE_SIZE", "1000")))
    max_rels: int = field(default_factory=lambda: int(os.getenv("MAX_RELS", "100")))

    # Export
    batch_size: int = field(default_factory=lambda: int(os.getenv("BATCH_SIZE", "20000")))
    unwind_batch_size: int = field(default_factory=lambda: int(os.getenv("UNWIND_BATCH_SIZE", "20")))
    stream_queue_capacity: int = field(default_factory=lambda: int(os.getenv("STREAM_QUEUE_CAPACITY", "1000")))
    stream_timeout_seconds: int = field(default_factory=lambda: int(os.getenv("STREAM_TIMEOUT_SECONDS", "100")))
    export_dir: Path = field(default_factory=lambda: Path(os.getenv("EXPORT_DIR", "exports")))

    # Performance Settings
    max_memory_percent: float = field(default_factory=lambda: float(os.getenv("MAX_MEMORY_PERCENT", "70.0")))
    enable_parallel: bool = field(default_factory=lambda: os.getenv("ENABLE_PARALLEL", "false").lower() == "true")
    max_workers: int = field(default_factory=lambda: int(os.getenv("MAX_WORKERS", "4")))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE") or None)

    def __post_init__(self):
        """Validate settings after initialization."""
        self._validate()

    def _validate(self):
        """Validate critical settings."""
        if self.batch_size <= 0:
            raise ValueError("BATCH_SIZE must be greater than 0")

        if self.unwind_batch_size <= 0:
            raise ValueError("UNWIND_BATCH_SIZE must be greater than 0")

        # -1 disables sampling, 0 is rejected
        if self.sample_size == 0 or self.sample_size < -1:
            raise ValueError("SAMPLE_SIZE must be positive or -1")

        if self.max_rels == 0 or self.max_rels < -1:
            raise ValueError("MAX_RELS must be positive or -1")

        if self.stream_queue_capacity <= 0:
            raise ValueError("STREAM_QUEUE_CAPACITY must be greater than 0")

        if self.stream_timeout_seconds <= 0:
            raise ValueError("STREAM_TIMEOUT_SECONDS must be greater than 0")

        if not (0 < self.max_memory_percent <= 100):
            raise ValueError("MAX_MEMORY_PERCENT must be between 0 and 100")

        if self.max_workers <= 0:
            raise ValueError("MAX_WORKERS must be greater than 0")

        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid LOG_LEVEL: {self.log_level}")

    def to_dict(self) -> dict:
        """Convert settings to dictionary for display."""
        return {
            "neo4j_uri": self.neo4j_uri,
            "neo4j_user": self.neo4j_user,
            "neo4j_password": self.neo4j_password,
            "neo4j_database": self.neo4j_database,
            "sample_size": self.sample_size,
            "max_rels": self.max_rels,
            "batch_size": self.batch_size,
            "unwind_batch_size": self.unwind_batch_size,
            "stream_queue_capacity": self.stream_queue_capacity,
            "stream_timeout_seconds": self.stream_timeout_seconds,
            "export_dir": str(self.export_dir),
            "max_memory_percent": self.max_memory_percent,
            "enable_parallel": self.enable_parallel,
            "max_workers": self.max_workers,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }


# Global settings instance
_settings: Optional[Settings] = None


def get_settings(reload: bool = False) -> Settings:
    """
    Get the global settings instance (singleton pattern).

    Args:
        reload: If True, reload settings from environment

    Returns:
        Settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = Settings()

    return _settings
