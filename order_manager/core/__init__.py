"""
Core module initialization.
Exports configuration, logging utilities and domain errors.
"""

from order_manager.core.config import get_settings, setup_logging, Settings, EnvironmentMode

__all__ = ["get_settings", "setup_logging", "Settings", "EnvironmentMode"]
