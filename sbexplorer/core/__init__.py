"""Core module initialization."""

from .config_manager import ConfigManager, ExplorerConfig, GatewaySettings
from .logging_config import setup_logging, get_logger

__all__ = [
    "ConfigManager",
    "ExplorerConfig",
    "GatewaySettings",
    "setup_logging",
    "get_logger",
]
