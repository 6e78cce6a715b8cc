"""
Utilities module for graphmeta.

This module provides logging setup, memory monitoring and cooperative
cancellation shared by the metadata and export layers.
"""

from .logger import get_logger, setup_logger
from .monitoring import MemoryMonitor
from .termination import NEVER_TERMINATED, TerminationGuard

__all__ = [
    "MemoryMonitor",
    "NEVER_TERMINATED",
    "TerminationGuard",
    "get_logger",
    "setup_logger",
]
