"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module defines the Connection class, the public entry point of the package.
A Connection owns at most one connected ODBC connection handle and runs
catalog, describe and fetch operations on it. Every operation allocates its
own statement handle, so nothing is shared between calls.
"""

import functools
from typing import List, Optional

from omnidb_python import catalog as odbc_catalog
from omnidb_python import describe, records
from omnidb_python.constants import ConstantsODBC, GetInfoConstants, sql_succeeded
from omnidb_python.diagnostics import check_error, explain
from omnidb_python.dialects import Dialect, detect
from omnidb_python.exceptions import ConnectionError
from omnidb_python.handles import Environment, SqlHandle
from omnidb_python.helpers import (
    get_settings,
    log,
    normalize_filter,
    sanitize_connection_string,
    validate_flag,
    validate_text,
)
from omnidb_python.logging import logger
from omnidb_python.odbc_bindings import get_bindings

SQL_HANDLE_DBC = ConstantsODBC.SQL_HANDLE_DBC.value

# Marks "table_type not given" so an explicit None/"" can mean all types
_DEFAULT_TABLE_TYPE = object()


def _operation(method):
    """Run a public method under its own OP trace id."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        token = logger.set_trace_id(logger.generate_trace_id("OP"))
        try:
            logger.debug("%s started on %s", method.__name__, self._trace_id)
            result = method(self, *args, **kwargs)
            logger.debug("%s finished", method.__name__)
            return result
        finally:
            logger.reset_trace_id(token)

    return wrapper


class Connection:
    """
    A connection to a data source through the ODBC driver manager.

    Example:
        with omnidb_python.connect("DSN=sales;UID=report;PWD=secret") as conn:
            tables = conn.list_tables(schema="dbo")
            rows = conn.fetch_all("SELECT id, name FROM dbo.customers")

    Attributes:
        is_connected (bool): True between a successful connect() and disconnect().
        dialect (Dialect): DBMS specific adjustments, chosen from dbms_name().
    """

    def __init__(self) -> None:
        self._hdbc: Optional[SqlHandle] = None
        self._dialect: Optional[Dialect] = None
        self._trace_id = logger.generate_trace_id("CONN")

    @property
    def is_connected(self) -> bool:
        return self._hdbc is not None

    def _require_connection(self, operation: str) -> SqlHandle:
        if self._hdbc is None:
            raise ConnectionError(f"{operation}: not connected", operation=operation)
        return self._hdbc

    @_operation
    def connect(self, connection_string: str) -> bool:
        """
        Open a connection with SQLDriverConnect.

        An already open connection is closed first.

        Args:
            connection_string (str): ODBC connection string, passed to the driver as is.

        Returns:
            bool: True.

        Raises:
            ArgumentError: If connection_string is not a non-blank str.
            ConnectionError: If the handle cannot be allocated or the driver refuses the connection.
        """
        validate_text("connection_string", connection_string)
        self.disconnect()

        henv = Environment.handle()
        hdbc = SqlHandle.allocate(SQL_HANDLE_DBC, henv, ConnectionError)
        try:
            ret = get_bindings().driver_connect(hdbc.value, connection_string)
            check_error("SQLDriverConnect", ret, SQL_HANDLE_DBC, hdbc.value, ConnectionError)
        except Exception:
            hdbc.free()
            raise

        self._hdbc = hdbc
        self._dialect = None
        from omnidb_python import _register_connection

        _register_connection(self)
        log("info", "Connected (%s): %s", self._trace_id, sanitize_connection_string(connection_string))
        return True

    def disconnect(self) -> bool:
        """
        Close the connection and free its handle. Calling it again is a no-op.

        A failing SQLDisconnect is logged; the handle is freed either way.
        """
        hdbc, self._hdbc = self._hdbc, None
        self._dialect = None
        if hdbc is None:
            return True

        ret = get_bindings().disconnect(hdbc.value)
        if not sql_succeeded(ret):
            logger.warning("SQLDisconnect failed: %s", explain("SQLDisconnect", ret, SQL_HANDLE_DBC, hdbc.value))
        hdbc.free()
        log("info", "Disconnected (%s)", self._trace_id)
        return True

    def close(self) -> bool:
        """Same as disconnect()."""
        return self.disconnect()

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *args) -> None:
        self.disconnect()

    def __del__(self):
        """
        Safety net that disconnects a connection nobody closed.
        """
        if self.__dict__.get("_hdbc") is not None:
            try:
                self.disconnect()
            except Exception as e:
                # Don't raise exceptions from __del__
                logger.error("Error during connection cleanup: %s", e)

    # Driver and DBMS information

    @_operation
    def list_drivers(self) -> List[dict]:
        """Installed ODBC drivers as {name, attribute}. Works without a connection."""
        return odbc_catalog.list_drivers(Environment.handle())

    def _get_info(self, info_type: GetInfoConstants) -> str:
        if self._hdbc is None:
            return ""
        ret, value = get_bindings().get_info_text(self._hdbc.value, info_type.value)
        check_error("SQLGetInfo", ret, SQL_HANDLE_DBC, self._hdbc.value, ConnectionError)
        return value

    def driver_name(self) -> str:
        """SQL_DRIVER_NAME of the connected driver, or "" when not connected."""
        return self._get_info(GetInfoConstants.SQL_DRIVER_NAME)

    def dbms_name(self) -> str:
        """SQL_DBMS_NAME of the connected data source, or "" when not connected."""
        return self._get_info(GetInfoConstants.SQL_DBMS_NAME)

    @property
    def dialect(self) -> Dialect:
        if self._hdbc is None:
            return Dialect()
        if self._dialect is None:
            self._dialect = detect(self.dbms_name())
        return self._dialect

    # Catalog

    @_operation
    def list_tables(self, catalog: Optional[str] = None, schema: Optional[str] = None,
                    table: Optional[str] = None, table_type=_DEFAULT_TABLE_TYPE,
                    with_remarks: bool = False) -> List[dict]:
        """
        Tables visible to the connection, as {catalog, schema, name, type, remarks}.

        Filters that are None or blank match everything. table_type defaults
        to "TABLE"; pass None or "" for every table type.

        Raises:
            ArgumentError: If a filter is not a str or None.
            ConnectionError: If not connected.
            FetchError: If SQLTables or the remarks lookup fails.
        """
        if table_type is _DEFAULT_TABLE_TYPE:
            table_type = get_settings().default_table_type
        else:
            table_type = normalize_filter("table_type", table_type)
        filters = (
            normalize_filter("catalog", catalog),
            normalize_filter("schema", schema),
            normalize_filter("table", table),
        )
        validate_flag("with_remarks", with_remarks)
        hdbc = self._require_connection("list_tables")

        tables = odbc_catalog.list_tables(hdbc, *filters, table_type)
        return self.dialect.adjust_tables(self, tables, with_remarks)

    @_operation
    def list_columns(self, catalog: Optional[str] = None, schema: Optional[str] = None,
                     table: Optional[str] = None, column: Optional[str] = None,
                     with_remarks: bool = False) -> List[dict]:
        """
        Columns as {catalog, schema, table, name, type, typeClass, size,
        decimalDigits, numPrec, remarks, default, nullable}.
        """
        filters = (
            normalize_filter("catalog", catalog),
            normalize_filter("schema", schema),
            normalize_filter("table", table),
            normalize_filter("column", column),
        )
        validate_flag("with_remarks", with_remarks)
        hdbc = self._require_connection("list_columns")

        columns = odbc_catalog.list_columns(hdbc, *filters)
        return self.dialect.adjust_columns(self, columns, with_remarks)

    @_operation
    def list_primary_keys(self, catalog: Optional[str] = None, schema: Optional[str] = None,
                          table: Optional[str] = None) -> List[dict]:
        filters = (
            normalize_filter("catalog", catalog),
            normalize_filter("schema", schema),
            normalize_filter("table", table),
        )
        hdbc = self._require_connection("list_primary_keys")
        keys = odbc_catalog.list_primary_keys(hdbc, *filters)
        return self.dialect.adjust_primary_keys(keys)

    @_operation
    def list_schemas(self) -> List[dict]:
        """Schemas as {catalog, name, remarks}."""
        self._require_connection("list_schemas")
        return self.dialect.list_schemas(self)

    @_operation
    def current_schema(self) -> str:
        """The default schema of the session, or "" when the DBMS is not recognised."""
        self._require_connection("current_schema")
        return self.dialect.current_schema(self)

    # Statements

    @_operation
    def describe_query(self, sql: str, label: bool = False) -> dict:
        """
        Describe the result columns and parameters of sql without executing it.

        Returns:
            dict: {"columns": [...], "params": [...]}

        Raises:
            ArgumentError: If sql is blank or label is not a bool.
            ConnectionError: If not connected.
            DescribeError: If the driver cannot prepare or describe the statement.
        """
        validate_text("sql", sql)
        validate_flag("label", label)
        hdbc = self._require_connection("describe_query")
        return self.dialect.adjust_query(self, sql, describe.describe_query(hdbc, sql, label))

    @_operation
    def execute(self, sql: str) -> bool:
        """Execute sql, discarding any result set."""
        validate_text("sql", sql)
        return records.execute(self._require_connection("execute"), sql)

    @_operation
    def fetch_all(self, sql: str) -> dict:
        """
        Execute sql and return every row.

        Returns:
            dict: {"columnIndex": {name: position}, "records": [[value, ...], ...]}
        """
        validate_text("sql", sql)
        return records.fetch_all(self._require_connection("fetch_all"), sql)


def connect(connection_string: str) -> Connection:
    """
    Create a Connection and connect it.

    Args:
        connection_string (str): ODBC connection string.

    Returns:
        Connection: A connected instance; use it as a context manager to disconnect on exit.
    """
    conn = Connection()
    conn.connect(connection_string)
    return conn


def list_drivers() -> List[dict]:
    """Installed ODBC drivers as {name, attribute}."""
    return odbc_catalog.list_drivers(Environment.handle())
