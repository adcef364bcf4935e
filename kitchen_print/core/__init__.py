"""
Core module initialization.
Exports configuration and error types.
"""

from kitchen_print.core.config import get_settings, Settings, EnvironmentMode
from kitchen_print.core.exceptions import (
    PrintServiceError,
    ConfigurationError,
    EncodingError,
    TransportError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "PrintServiceError",
    "ConfigurationError",
    "EncodingError",
    "TransportError",
]
