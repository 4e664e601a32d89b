"""Core components for the POS QA harness."""

from .config import Config
from .exceptions import (
    POSQAError,
    ConfigurationError,
    ValidationError,
    CatalogKeyError,
    SessionAcquisitionError,
    SessionNotInitializedError,
    NotReadyError,
    SoftAssertionError,
    XrayError,
    FileOperationError,
)
from .logging_config import setup_logging, get_logger
from .platform import PlatformMode, SessionKind, resolve_platform_mode
from .properties import PropertySet, ConfigCache

__all__ = [
    "Config",
    "POSQAError",
    "ConfigurationError",
    "ValidationError",
    "CatalogKeyError",
    "SessionAcquisitionError",
    "SessionNotInitializedError",
    "NotReadyError",
    "SoftAssertionError",
    "XrayError",
    "FileOperationError",
    "setup_logging",
    "get_logger",
    "PlatformMode",
    "SessionKind",
    "resolve_platform_mode",
    "PropertySet",
    "ConfigCache",
]
