"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module initializes the omnidb_python package.
"""

import atexit
import threading
import weakref

# Import settings from helpers module
from .helpers import Settings, get_settings

# Package version
__version__ = "0.1.0"

# Exceptions
from .exceptions import (
    Error,
    InterfaceError,
    ArgumentError,
    DatabaseError,
    ConnectionError,
    DescribeError,
    FetchError,
    UnsupportedOperationError,
    DiagnosticRecord,
)

# Logging Configuration
from .logging import logger, setup_logging, setup_logging_from_env

# Constants
from .constants import ConstantsODBC, GetInfoConstants, SQLTypes

# Type catalog
from .type_catalog import STRING, NUMBER, BINARY, DATE, TIME, DATETIME, GUID

# Native bindings and handles
from .odbc_bindings import OdbcBindings, get_bindings, set_bindings
from .handles import Environment

# Connection Objects
from .connection import Connection, connect, list_drivers

# SQL helpers
from .sql_utils import escape_sql_string, replace_special_chars, quote_literal

# Global registry for tracking active connections (using weak references)
_active_connections = weakref.WeakSet()
_connections_lock = threading.Lock()


def _register_connection(conn):
    """Register a connection for cleanup before shutdown."""
    with _connections_lock:
        _active_connections.add(conn)


def _cleanup_connections():
    """
    Cleanup function called by atexit: disconnect every open connection,
    then free the environment handle once.
    """
    with _connections_lock:
        connections_to_close = list(_active_connections)

    for conn in connections_to_close:
        try:
            if conn.is_connected:
                conn.disconnect()
        except Exception as e:
            logger.error(
                "Error during connection cleanup at shutdown: %s: %s", type(e).__name__, e
            )

    Environment.release()


# Register cleanup function to run before Python exits
atexit.register(_cleanup_connections)

setup_logging_from_env()
