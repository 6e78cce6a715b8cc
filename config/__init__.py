"""
Configuration module for graphmeta.

This module handles application settings loaded from environment
variables: store connection, sampling defaults, export tuning and logging.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
