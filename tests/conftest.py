"""
This file contains fixtures for the tests in the omnidb_python package.
Functions:
- FakeOdbc: In-memory driver manager installed in place of the ctypes bindings.
- fake_odbc: Fixture that installs a FakeOdbc and resets the environment handle.
- connected: Fixture that yields a Connection connected through fake_odbc.
- conn_str: Fixture to get the connection string from environment variables.
- db_connection: Fixture to create and yield a real database connection.
- cleanup_logger: Fixture that restores the logger singleton after a test.
"""

import ctypes
import logging
import os

import pytest

from omnidb_python import Connection, connect
from omnidb_python.constants import ConstantsODBC
from omnidb_python.handles import Environment
from omnidb_python.logging import logger
from omnidb_python.odbc_bindings import set_bindings
from omnidb_python.text_marshal import char_width

SQL_SUCCESS = ConstantsODBC.SQL_SUCCESS.value
SQL_SUCCESS_WITH_INFO = ConstantsODBC.SQL_SUCCESS_WITH_INFO.value
SQL_ERROR = ConstantsODBC.SQL_ERROR.value
SQL_NO_DATA = ConstantsODBC.SQL_NO_DATA.value
SQL_NULL_DATA = ConstantsODBC.SQL_NULL_DATA.value


def _records(error):
    """Accept one (sqlstate, native, message) tuple or a list of them."""
    if error is None:
        return None
    if isinstance(error, tuple):
        return [error]
    return list(error)


class Script:
    """What the fake driver does for one SQL text or catalog call."""

    def __init__(self, columns=(), rows=(), params=(), attributes=None, attribute_errors=None,
                 prepare_error=None, exec_error=None, fetch_error_at=None,
                 describe_param_error=None, no_data=False):
        self.columns = [self._column(c) for c in columns]
        self.rows = [list(r) for r in rows]
        self.params = list(params)
        self.attributes = dict(attributes or {})
        self.attribute_errors = dict(attribute_errors or {})
        self.prepare_error = _records(prepare_error)
        self.exec_error = _records(exec_error)
        self.fetch_error_at = fetch_error_at
        self.describe_param_error = _records(describe_param_error)
        self.no_data = no_data

    @staticmethod
    def _column(spec):
        # (name, type, size=0, digits=0, nullable=SQL_NULLABLE)
        defaults = (None, None, 0, 0, ConstantsODBC.SQL_NULLABLE.value)
        return tuple(spec) + defaults[len(spec):]


class FakeOdbc:
    """
    In-memory stand-in for OdbcBindings.

    Follows the same protocol: every method returns the native return code
    first, failures leave diagnostic records on the handle, and get_data
    writes into the caller's NativeBuffer storage and indicator.
    """

    def __init__(self, wide=False):
        self.wide = wide
        self.encoding = "utf-8"
        self.wide_encoding = "utf-16-le"
        self.calls = []
        self.handles = {}
        self.freed = []
        self.diags = {}
        self._next_handle = 1000

        self.alloc_errors = {}
        self.env_attr_ret = SQL_SUCCESS
        self.connect_errors = {}
        self.disconnect_ret = SQL_SUCCESS
        self.free_ret = SQL_SUCCESS
        self.info_values = {6: "fakeodbc.so", 17: "FakeDB"}
        self.driver_list = []
        self._driver_pos = 0
        self.drivers_error = None
        self.describe_param_supported = True
        self.queries = {}
        self.fragments = []
        self.catalog = {}

    @property
    def text_encoding(self):
        return self.wide_encoding if self.wide else self.encoding

    # Scripting helpers used by the tests

    def add_query(self, sql, **kwargs):
        self.queries[sql] = Script(**kwargs)
        return self.queries[sql]

    def add_query_containing(self, fragment, **kwargs):
        """Script every SQL text that contains fragment (first match wins)."""
        script = Script(**kwargs)
        self.fragments.append((fragment, script))
        return script

    def set_catalog(self, function, **kwargs):
        self.catalog[function] = Script(**kwargs)
        return self.catalog[function]

    def live_handles(self, handle_type=None):
        return [
            h for h, info in self.handles.items()
            if handle_type is None or info["type"] == handle_type
        ]

    def called(self, name):
        return [args for call, args in self.calls if call == name]

    # Internals

    def _begin(self, name, handle, *args):
        self.calls.append((name, args))
        self.diags.pop(handle, None)

    def _fail(self, handle, records):
        self.diags[handle] = list(records)
        return SQL_ERROR

    def _statement(self, hstmt):
        return self.handles[hstmt]

    def _run(self, hstmt, script):
        state = self._statement(hstmt)
        state["script"] = script
        state["row"] = -1

    def _script(self, sql):
        if sql in self.queries:
            return self.queries[sql]
        for fragment, script in self.fragments:
            if fragment in sql:
                return script
        return Script()

    # Handles

    def alloc_handle(self, handle_type, parent):
        self._begin("SQLAllocHandle", parent, handle_type)
        error = self.alloc_errors.get(handle_type)
        if error is not None:
            if parent is None:
                return SQL_ERROR, None
            return self._fail(parent, _records(error)), None
        self._next_handle += 1
        handle = self._next_handle
        self.handles[handle] = {"type": handle_type, "parent": parent, "script": None, "row": -1}
        return SQL_SUCCESS, handle

    def free_handle(self, handle_type, handle):
        self.calls.append(("SQLFreeHandle", (handle_type, handle)))
        self.freed.append(handle)
        self.handles.pop(handle, None)
        return self.free_ret

    def set_env_attr(self, henv, attribute, value):
        self._begin("SQLSetEnvAttr", henv, attribute, value)
        return self.env_attr_ret

    # Connections

    def driver_connect(self, hdbc, connection_string):
        self._begin("SQLDriverConnect", hdbc, connection_string)
        # encoded the way OdbcBindings._text does
        connection_string.encode(self.text_encoding)
        error = self.connect_errors.get(connection_string)
        if error is not None:
            return self._fail(hdbc, _records(error))
        return SQL_SUCCESS

    def disconnect(self, hdbc):
        self._begin("SQLDisconnect", hdbc)
        return self.disconnect_ret

    def drivers(self, henv, direction):
        self._begin("SQLDrivers", henv, direction)
        if self.drivers_error is not None:
            return self._fail(henv, _records(self.drivers_error)), "", ""
        if direction == ConstantsODBC.SQL_FETCH_FIRST.value:
            self._driver_pos = 0
        if self._driver_pos >= len(self.driver_list):
            return SQL_NO_DATA, "", ""
        name, attributes = self.driver_list[self._driver_pos]
        self._driver_pos += 1
        return SQL_SUCCESS, name, ";".join(attributes)

    def get_info_text(self, hdbc, info_type):
        self._begin("SQLGetInfo", hdbc, info_type)
        return SQL_SUCCESS, self.info_values.get(info_type, "")

    def get_functions(self, hdbc, function_id):
        self._begin("SQLGetFunctions", hdbc, function_id)
        return SQL_SUCCESS, self.describe_param_supported

    # Diagnostics

    def get_diag_count(self, handle_type, handle):
        return SQL_SUCCESS, len(self.diags.get(handle, []))

    def get_diag_rec(self, handle_type, handle, record):
        records = self.diags.get(handle, [])
        if record > len(records):
            return SQL_NO_DATA, "", 0, ""
        sqlstate, native, message = records[record - 1]
        return SQL_SUCCESS, sqlstate, native, message

    # Statements

    def prepare(self, hstmt, sql):
        self._begin("SQLPrepare", hstmt, sql)
        script = self._script(sql)
        if script.prepare_error:
            return self._fail(hstmt, script.prepare_error)
        self._run(hstmt, script)
        return SQL_SUCCESS

    def exec_direct(self, hstmt, sql):
        self._begin("SQLExecDirect", hstmt, sql)
        script = self._script(sql)
        if script.exec_error:
            return self._fail(hstmt, script.exec_error)
        self._run(hstmt, script)
        return SQL_NO_DATA if script.no_data else SQL_SUCCESS

    def num_result_cols(self, hstmt):
        self._begin("SQLNumResultCols", hstmt)
        return SQL_SUCCESS, len(self._statement(hstmt)["script"].columns)

    def num_params(self, hstmt):
        self._begin("SQLNumParams", hstmt)
        return SQL_SUCCESS, len(self._statement(hstmt)["script"].params)

    def describe_col(self, hstmt, column):
        self._begin("SQLDescribeCol", hstmt, column)
        name, type_code, size, digits, nullable = self._statement(hstmt)["script"].columns[column - 1]
        return SQL_SUCCESS, name, type_code, size, digits, nullable

    def _attribute(self, hstmt, column, field):
        script = self._statement(hstmt)["script"]
        if field in script.attribute_errors:
            return self._fail(hstmt, _records(script.attribute_errors[field])), None
        if (column, field) in script.attributes:
            return SQL_SUCCESS, script.attributes[(column, field)]
        name, _type, size, digits, nullable = script.columns[column - 1]
        defaults = {
            ConstantsODBC.SQL_DESC_NAME.value: name,
            ConstantsODBC.SQL_DESC_LABEL.value: name,
            ConstantsODBC.SQL_DESC_NULLABLE.value: nullable,
            ConstantsODBC.SQL_DESC_AUTO_UNIQUE_VALUE.value: ConstantsODBC.SQL_FALSE.value,
            ConstantsODBC.SQL_DESC_LENGTH.value: size,
            ConstantsODBC.SQL_DESC_SCALE.value: digits,
        }
        return SQL_SUCCESS, defaults.get(field, "")

    def col_attribute_text(self, hstmt, column, field):
        self._begin("SQLColAttribute", hstmt, column, field)
        return self._attribute(hstmt, column, field)

    def col_attribute_number(self, hstmt, column, field):
        self._begin("SQLColAttribute", hstmt, column, field)
        return self._attribute(hstmt, column, field)

    def describe_param(self, hstmt, param):
        self._begin("SQLDescribeParam", hstmt, param)
        script = self._statement(hstmt)["script"]
        if script.describe_param_error:
            return self._fail(hstmt, script.describe_param_error), 0, 0, 0, 0
        type_code, size, digits, nullable = script.params[param - 1]
        return SQL_SUCCESS, type_code, size, digits, nullable

    def fetch(self, hstmt):
        self._begin("SQLFetch", hstmt)
        state = self._statement(hstmt)
        script = state["script"]
        state["row"] += 1
        if script.fetch_error_at is not None and state["row"] == script.fetch_error_at:
            return self._fail(hstmt, [("HY000", 1, "Fetch failed")])
        if state["row"] >= len(script.rows):
            return SQL_NO_DATA
        return SQL_SUCCESS

    def get_data(self, hstmt, column, buffer):
        self._begin("SQLGetData", hstmt, column)
        buffer.reset()
        state = self._statement(hstmt)
        value = state["script"].rows[state["row"]][column - 1]
        if value is None:
            buffer.indicator.value = SQL_NULL_DATA
            return SQL_SUCCESS
        if not buffer.is_text:
            buffer.storage.value = value
            buffer.indicator.value = ctypes.sizeof(buffer.storage)
            return SQL_SUCCESS

        data = str(value).encode(buffer.encoding)
        room = buffer.capacity - char_width(buffer.encoding)
        written = data[:room]
        ctypes.memmove(buffer.storage, written, len(written))
        buffer.indicator.value = len(data)
        return SQL_SUCCESS_WITH_INFO if len(data) > room else SQL_SUCCESS

    # Catalog functions

    def _catalog(self, name, hstmt, args):
        self._begin(name, hstmt, *args)
        script = self.catalog.get(name) or Script()
        if script.exec_error:
            return self._fail(hstmt, script.exec_error)
        self._run(hstmt, script)
        return SQL_SUCCESS

    def tables(self, hstmt, catalog, schema, table, table_type):
        return self._catalog("SQLTables", hstmt, (catalog, schema, table, table_type))

    def columns(self, hstmt, catalog, schema, table, column):
        return self._catalog("SQLColumns", hstmt, (catalog, schema, table, column))

    def primary_keys(self, hstmt, catalog, schema, table):
        return self._catalog("SQLPrimaryKeys", hstmt, (catalog, schema, table))


@pytest.fixture
def fake_odbc():
    fake = FakeOdbc()
    previous = set_bindings(fake)
    Environment._reset_for_testing()
    yield fake
    Environment._reset_for_testing()
    set_bindings(previous)


@pytest.fixture
def connected(fake_odbc):
    conn = Connection()
    conn.connect("DSN=fake;UID=tester;PWD=secret")
    yield conn
    conn.disconnect()


@pytest.fixture(scope="session")
def conn_str():
    conn_str = os.getenv("DB_CONNECTION_STRING")
    return conn_str


@pytest.fixture(scope="module")
def db_connection(conn_str):
    if not conn_str:
        pytest.skip("DB_CONNECTION_STRING is not set")
    try:
        conn = connect(conn_str)
    except Exception as e:
        pytest.fail(f"Database connection failed: {e}")
    yield conn
    conn.close()


@pytest.fixture
def cleanup_logger():
    """Restore the logger singleton after a test changes it."""
    original_level = logger._logger.level
    original_output = logger._output_mode
    original_path = logger._custom_log_path
    original_initialized = logger._handlers_initialized
    yield logger
    for handler in logger._logger.handlers[:]:
        handler.close()
        logger._logger.removeHandler(handler)
    logger._logger.setLevel(original_level if original_level else logging.CRITICAL)
    logger._output_mode = original_output
    logger._custom_log_path = original_path
    logger._handlers_initialized = original_initialized
    logger._file_handler = None
    logger._stdout_handler = None
    logger._log_file = None
    logger.clear_trace_id()
