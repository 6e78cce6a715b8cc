"""
Memory monitoring for long-running scans and exports.

Metadata collection and export keep per-run state (uniqueness maps,
grouped UNWIND batches) in memory. The export loops call the monitor once
per batch; it warns once per phase and remembers the peak it saw.
"""

from typing import Dict, Set

import psutil

from utils.logger import get_logger

logger = get_logger(__name__)


class MemoryMonitor:
    """
    Watch system memory between export batches.

    Attributes:
        max_percent: Warning threshold for system memory usage (0-100)
        peak_percent: Highest system usage observed by ``check_and_warn``
        warnings_issued: Number of warnings logged so far
    """

    def __init__(self, max_percent: float = 70.0):
        if not (0 < max_percent <= 100):
            raise ValueError("max_percent must be between 0 and 100")

        self.max_percent = max_percent
        self.process = psutil.Process()
        self.peak_percent = 0.0
        self.warnings_issued = 0
        self._warned_contexts: Set[str] = set()

    def get_current_usage(self) -> Dict[str, float]:
        """
        Get current memory usage statistics.

        Returns:
            Dictionary with ``percent``, ``used_mb``, ``available_mb`` and ``total_mb``
        """
        memory = psutil.virtual_memory()
        rss = self.process.memory_info().rss

        return {
            "percent": memory.percent,
            "used_mb": rss / (1024 * 1024),
            "available_mb": memory.available / (1024 * 1024),
            "total_mb": memory.total / (1024 * 1024),
        }

    def is_memory_ok(self) -> bool:
        """Return True while system memory usage is below the threshold."""
        return self.get_current_usage()["percent"] < self.max_percent

    def check_and_warn(self, context: str = "") -> bool:
        """
        Check memory usage after a batch.

        The first time a given ``context`` crosses the threshold a warning
        is logged; later batches of the same phase only go to DEBUG.

        Args:
            context: Phase being exported, e.g. ``"nodes export"``

        Returns:
            True if memory is OK, False if threshold exceeded
        """
        stats = self.get_current_usage()
        self.peak_percent = max(self.peak_percent, stats["percent"])

        if stats["percent"] < self.max_percent:
            return True

        where = f" during {context}" if context else ""
        message = (
            f"Memory usage high{where}: {stats['percent']:.1f}% "
            f"(threshold: {self.max_percent}%), "
            f"process {stats['used_mb']:.1f}MB, "
            f"available {stats['available_mb']:.1f}MB"
        )
        if context in self._warned_contexts:
            logger.debug(message)
        else:
            self._warned_contexts.add(context)
            self.warnings_issued += 1
            logger.warning(message)
        return False
