"""
Tests for OdbcBindings against a stub driver manager whose entry points are
ctypes callbacks, so buffer sizes and length units cross a real foreign call.
Functions:
- StubDriverManager: Library object exporting one callback per bound symbol.
- TestTextLengths: Byte and character length handling of the text outputs.
- TestTextInputs: Encoding of text arguments.
- TestBinding: Symbol lookup for the narrow and wide entry points.
"""

import ctypes

import pytest

from omnidb_python.constants import ConstantsODBC, GetInfoConstants, SQLTypes
from omnidb_python.exceptions import InterfaceError
from omnidb_python.odbc_bindings import _PROTOTYPES, _WIDE_FUNCTIONS, SQLRETURN, OdbcBindings
from omnidb_python.text_marshal import IDENTIFIER_CAP, REMARKS_CAP

SQL_SUCCESS = ConstantsODBC.SQL_SUCCESS.value
SQL_NTS = ConstantsODBC.SQL_NTS.value

# Written after the value with no terminator; only the reported length ends it
JUNK = b"#" * 8


def _success(*args):
    return SQL_SUCCESS


class StubDriverManager:
    """Exports every entry point OdbcBindings binds, as ctypes callbacks."""

    def __init__(self, wide, handlers=None, missing=()):
        handlers = handlers or {}
        for name, argtypes in _PROTOTYPES.items():
            symbol = f"{name}W" if wide and name in _WIDE_FUNCTIONS else name
            if symbol in missing:
                continue
            prototype = ctypes.CFUNCTYPE(SQLRETURN, *argtypes)
            # The attribute keeps the callback alive while it is bound
            setattr(self, symbol, prototype(handlers.get(name, _success)))


def _write(address, data):
    ctypes.memmove(address, data + JUNK, len(data) + len(JUNK))


def make_bindings(wide, handlers, **kwargs):
    return OdbcBindings(
        library=StubDriverManager(wide, handlers, **kwargs),
        wide=wide,
        encoding="utf-8",
        wide_encoding="utf-16-le",
    )


@pytest.fixture(params=[False, True], ids=["narrow", "wide"])
def wide(request):
    return request.param


def _encoding(wide):
    return "utf-16-le" if wide else "utf-8"


class TestTextLengths:
    def test_get_info_text_uses_bytes(self, wide):
        seen = []
        data = "PostgréSQL".encode(_encoding(wide))

        def get_info(hdbc, info_type, value, buffer_length, length):
            seen.append((info_type, buffer_length))
            _write(value, data)
            length[0] = len(data)
            return SQL_SUCCESS

        bindings = make_bindings(wide, {"SQLGetInfo": get_info})
        ret, value = bindings.get_info_text(None, GetInfoConstants.SQL_DBMS_NAME.value)
        assert (ret, value) == (SQL_SUCCESS, "PostgréSQL")
        unit = 2 if wide else 1
        assert seen == [(GetInfoConstants.SQL_DBMS_NAME.value, IDENTIFIER_CAP * unit)]

    def test_col_attribute_text_uses_bytes(self, wide):
        seen = []
        data = "événements".encode(_encoding(wide))

        def col_attribute(hstmt, column, field, value, buffer_length, length, numeric):
            seen.append((column, field, buffer_length, bool(numeric)))
            _write(value, data)
            length[0] = len(data)
            return SQL_SUCCESS

        bindings = make_bindings(wide, {"SQLColAttribute": col_attribute})
        field = ConstantsODBC.SQL_DESC_BASE_TABLE_NAME.value
        assert bindings.col_attribute_text(None, 2, field) == (SQL_SUCCESS, "événements")
        unit = 2 if wide else 1
        assert seen == [(2, field, IDENTIFIER_CAP * unit, False)]

    def test_col_attribute_number(self, wide):
        def col_attribute(hstmt, column, field, value, buffer_length, length, numeric):
            numeric[0] = 42
            return SQL_SUCCESS

        bindings = make_bindings(wide, {"SQLColAttribute": col_attribute})
        field = ConstantsODBC.SQL_DESC_LENGTH.value
        assert bindings.col_attribute_number(None, 1, field) == (SQL_SUCCESS, 42)

    def test_describe_col_uses_characters(self):
        seen = []

        def describe_col(hstmt, column, name, buffer_length, name_length,
                         data_type, size, digits, nullable):
            seen.append(buffer_length)
            _write(name, "prénom".encode("utf-16-le"))
            name_length[0] = len("prénom")
            data_type[0] = SQLTypes.SQL_WVARCHAR.value
            size[0] = 40
            digits[0] = 0
            nullable[0] = ConstantsODBC.SQL_NULLABLE.value
            return SQL_SUCCESS

        bindings = make_bindings(True, {"SQLDescribeCol": describe_col})
        ret, name, data_type, size, digits, nullable = bindings.describe_col(None, 1)
        assert (ret, name) == (SQL_SUCCESS, "prénom")
        assert (data_type, size, digits) == (SQLTypes.SQL_WVARCHAR.value, 40, 0)
        assert nullable == ConstantsODBC.SQL_NULLABLE.value
        assert seen == [IDENTIFIER_CAP]

    def test_get_diag_rec_uses_characters(self, wide):
        seen = []
        encoding = _encoding(wide)
        message = "Table 'réserve' not found"

        def get_diag_rec(handle_type, handle, record, state, native_error,
                         text, buffer_length, text_length):
            seen.append((record, buffer_length))
            ctypes.memmove(state, "42S02".encode(encoding), len("42S02".encode(encoding)))
            native_error[0] = 208
            _write(text, message.encode(encoding))
            text_length[0] = len(message.encode("utf-8")) if not wide else len(message)
            return SQL_SUCCESS

        bindings = make_bindings(wide, {"SQLGetDiagRec": get_diag_rec})
        handle_type = ConstantsODBC.SQL_HANDLE_STMT.value
        assert bindings.get_diag_rec(handle_type, None, 1) == (SQL_SUCCESS, "42S02", 208, message)
        assert seen == [(1, REMARKS_CAP)]

    def test_drivers_splits_attributes(self):
        attributes = "Driver=psqlodbcw.so\0UsageCount=1\0\0".encode("utf-16-le")

        def drivers(henv, direction, name, name_max, name_length,
                    attribute_text, attribute_max, attribute_length):
            _write(name, "PostgreSQL Unicode".encode("utf-16-le"))
            name_length[0] = len("PostgreSQL Unicode")
            ctypes.memmove(attribute_text, attributes, len(attributes))
            attribute_length[0] = len(attributes) // 2
            return SQL_SUCCESS

        bindings = make_bindings(True, {"SQLDrivers": drivers})
        ret, name, attribute = bindings.drivers(None, ConstantsODBC.SQL_FETCH_FIRST.value)
        assert (ret, name) == (SQL_SUCCESS, "PostgreSQL Unicode")
        assert attribute == "Driver=psqlodbcw.so;UsageCount=1"


class TestTextInputs:
    def test_driver_connect_passes_terminated_text(self, wide):
        seen = []
        encoding = _encoding(wide)
        connection_string = "DSN=ventes;UID=zoé"
        expected = connection_string.encode(encoding) + b"\0" * (2 if wide else 1)

        def driver_connect(hdbc, window, text, length, out, out_max, out_length, completion):
            seen.append((ctypes.string_at(text, len(expected)), length, out, completion))
            return SQL_SUCCESS

        bindings = make_bindings(wide, {"SQLDriverConnect": driver_connect})
        assert bindings.driver_connect(None, connection_string) == SQL_SUCCESS
        assert seen == [(expected, SQL_NTS, None, ConstantsODBC.SQL_DRIVER_NOPROMPT.value)]

    def test_null_catalog_filters(self):
        seen = []

        def tables(hstmt, catalog, catalog_length, schema, schema_length,
                   table, table_length, table_type, table_type_length):
            seen.append((
                catalog, catalog_length, schema, schema_length,
                ctypes.string_at(table, 6), table_length, table_type, table_type_length,
            ))
            return SQL_SUCCESS

        bindings = make_bindings(False, {"SQLTables": tables})
        assert bindings.tables(None, None, None, "orders", None) == SQL_SUCCESS
        assert seen == [(None, 0, None, 0, b"orders", SQL_NTS, None, 0)]


class TestBinding:
    def test_wide_symbols_are_bound(self):
        bindings = make_bindings(True, {})
        assert bindings.text_encoding == "utf-16-le"
        assert bindings.exec_direct(None, "SELECT 1") == SQL_SUCCESS

    def test_missing_symbol(self):
        with pytest.raises(InterfaceError) as excinfo:
            make_bindings(True, {}, missing=("SQLExecDirectW",))
        assert "SQLExecDirectW" in str(excinfo.value)

    def test_narrow_bindings_need_narrow_symbols(self):
        with pytest.raises(InterfaceError):
            OdbcBindings(library=StubDriverManager(True), wide=False)
