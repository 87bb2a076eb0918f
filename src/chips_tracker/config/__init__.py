"""Configuration module for the CHIPS tracker."""

from chips_tracker.config.logging import configure_logging, get_logger
from chips_tracker.config.settings import FlatSettings, Settings, get_settings

__all__ = ["FlatSettings", "Settings", "get_settings", "configure_logging", "get_logger"]
