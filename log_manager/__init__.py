"""
Log rotation, retention and live-tail manager for a single log directory.
"""

from .config import LogManagerSettings
from .core.exceptions import (
    ConfigurationError,
    LogManagerError,
    MissingFileError,
    TransientIOError,
)
from .log_manager import LogManager

__all__ = [
    "ConfigurationError",
    "LogManager",
    "LogManagerError",
    "LogManagerSettings",
    "MissingFileError",
    "TransientIOError",
]
