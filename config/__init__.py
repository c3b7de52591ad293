"""
Configuration module.

Exports:
    Settings: Settings model
    get_settings: Cached settings accessor
    configure_logging: structlog setup
"""

from config.settings import get_settings, Settings
from config.logging_config import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
]
