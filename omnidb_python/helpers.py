"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module provides helper functions for the omnidb_python package.
"""

import os
import re
import sys
import threading
from typing import Any, Optional

from omnidb_python.exceptions import ArgumentError
from omnidb_python.logging import logger


def sanitize_connection_string(conn_str: str) -> str:
    """
    Sanitize the connection string by removing sensitive information.
    Args:
        conn_str (str): The connection string to sanitize.
    Returns:
        str: The sanitized connection string.
    """
    return re.sub(r"((?:Pwd|Password)\s*=\s*)(\{[^}]*\}|[^;]*)", r"\1***", conn_str, flags=re.IGNORECASE)


def is_blank(value: Optional[str]) -> bool:
    """True for None and for strings made only of whitespace."""
    return value is None or not value.strip()


def validate_text(name: str, value: Any) -> str:
    """
    Validate a required text argument such as a SQL statement.

    Raises:
        ArgumentError: If value is not a str or is blank.
    """
    if not isinstance(value, str):
        raise ArgumentError(f"{name} must be a str, got {type(value).__name__}")
    if is_blank(value):
        raise ArgumentError(f"{name} must not be empty")
    return value


def validate_flag(name: str, value: Any) -> bool:
    """
    Raises:
        ArgumentError: If value is not a bool.
    """
    if not isinstance(value, bool):
        raise ArgumentError(f"{name} must be a bool, got {type(value).__name__}")
    return value


def normalize_filter(name: str, value: Any) -> Optional[str]:
    """
    Turn a catalog filter value into what the catalog functions receive.

    None and blank strings mean "match all" and become None (a native NULL
    pointer). Any other string is passed through unchanged.

    Raises:
        ArgumentError: If value is neither a str nor None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ArgumentError(f"{name} must be a str or None, got {type(value).__name__}")
    return None if is_blank(value) else value


def log(level: str, message: str, *args) -> None:
    """
    Universal logging helper.

    Args:
        level: Log level ('debug', 'info', 'warning', 'error')
        message: Log message with optional format placeholders
        *args: Arguments for message formatting
    """
    getattr(logger, level)(message, *args)


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Settings class for omnidb_python package configuration.

    Holds process-wide settings read when the driver manager bindings are
    first loaded: character width, encodings, library location and the
    defaults used by catalog and describe operations.
    """

    def __init__(self) -> None:
        self.wide_chars: bool = _env_flag("OMNIDB_WIDE_CHARS", sys.platform == "win32")
        self.encoding: str = os.environ.get("OMNIDB_ENCODING") or "utf-8"
        # None means "pick from the loaded driver manager"
        self.wide_encoding: Optional[str] = None
        self.odbc_library: Optional[str] = os.environ.get("OMNIDB_ODBC_LIBRARY") or None
        self.default_table_type: str = "TABLE"
        self.fallback_param_size: int = 8000


# Global settings instance
_settings: Settings = Settings()
_settings_lock: threading.Lock = threading.Lock()


def get_settings() -> Settings:
    """Return the global settings object"""
    with _settings_lock:
        return _settings
