"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module binds the ODBC driver manager (unixODBC, iODBC or odbc32) with ctypes.

OdbcBindings exposes one method per native function the package uses. Each
method returns the native return code first, followed by any output values
already converted to Python types. Checking return codes and reading
diagnostics is left to the callers.
"""

import ctypes
import ctypes.util
import sys
import threading
from typing import Optional, Tuple

from omnidb_python.constants import ConstantsODBC
from omnidb_python.exceptions import InterfaceError
from omnidb_python.helpers import get_settings
from omnidb_python.logging import logger
from omnidb_python.text_marshal import (
    IDENTIFIER_CAP,
    REMARKS_CAP,
    NativeBuffer,
    char_width,
    from_native,
    split_attribute_list,
    to_native,
)

SQLHANDLE = ctypes.c_void_p
SQLPOINTER = ctypes.c_void_p
SQLSMALLINT = ctypes.c_short
SQLUSMALLINT = ctypes.c_ushort
SQLINTEGER = ctypes.c_int
SQLLEN = ctypes.c_ssize_t
SQLULEN = ctypes.c_size_t
SQLRETURN = ctypes.c_short

_P = ctypes.POINTER

# Text arguments are declared as untyped pointers so one prototype serves
# both the narrow and the wide entry point.
_PROTOTYPES = {
    "SQLAllocHandle": (SQLSMALLINT, SQLHANDLE, _P(SQLHANDLE)),
    "SQLFreeHandle": (SQLSMALLINT, SQLHANDLE),
    "SQLSetEnvAttr": (SQLHANDLE, SQLINTEGER, SQLPOINTER, SQLINTEGER),
    "SQLDriverConnect": (
        SQLHANDLE, SQLPOINTER, SQLPOINTER, SQLSMALLINT,
        SQLPOINTER, SQLSMALLINT, _P(SQLSMALLINT), SQLUSMALLINT,
    ),
    "SQLDisconnect": (SQLHANDLE,),
    "SQLDrivers": (
        SQLHANDLE, SQLUSMALLINT, SQLPOINTER, SQLSMALLINT, _P(SQLSMALLINT),
        SQLPOINTER, SQLSMALLINT, _P(SQLSMALLINT),
    ),
    "SQLGetInfo": (SQLHANDLE, SQLUSMALLINT, SQLPOINTER, SQLSMALLINT, _P(SQLSMALLINT)),
    "SQLGetFunctions": (SQLHANDLE, SQLUSMALLINT, _P(SQLUSMALLINT)),
    "SQLGetDiagField": (
        SQLSMALLINT, SQLHANDLE, SQLSMALLINT, SQLSMALLINT, SQLPOINTER, SQLSMALLINT, _P(SQLSMALLINT),
    ),
    "SQLGetDiagRec": (
        SQLSMALLINT, SQLHANDLE, SQLSMALLINT, SQLPOINTER, _P(SQLINTEGER),
        SQLPOINTER, SQLSMALLINT, _P(SQLSMALLINT),
    ),
    "SQLPrepare": (SQLHANDLE, SQLPOINTER, SQLINTEGER),
    "SQLExecDirect": (SQLHANDLE, SQLPOINTER, SQLINTEGER),
    "SQLNumResultCols": (SQLHANDLE, _P(SQLSMALLINT)),
    "SQLNumParams": (SQLHANDLE, _P(SQLSMALLINT)),
    "SQLDescribeCol": (
        SQLHANDLE, SQLUSMALLINT, SQLPOINTER, SQLSMALLINT, _P(SQLSMALLINT),
        _P(SQLSMALLINT), _P(SQLULEN), _P(SQLSMALLINT), _P(SQLSMALLINT),
    ),
    "SQLColAttribute": (
        SQLHANDLE, SQLUSMALLINT, SQLUSMALLINT, SQLPOINTER, SQLSMALLINT, _P(SQLSMALLINT), _P(SQLLEN),
    ),
    "SQLDescribeParam": (
        SQLHANDLE, SQLUSMALLINT, _P(SQLSMALLINT), _P(SQLULEN), _P(SQLSMALLINT), _P(SQLSMALLINT),
    ),
    "SQLFetch": (SQLHANDLE,),
    "SQLGetData": (SQLHANDLE, SQLUSMALLINT, SQLSMALLINT, SQLPOINTER, SQLLEN, _P(SQLLEN)),
    "SQLTables": (SQLHANDLE,) + (SQLPOINTER, SQLSMALLINT) * 4,
    "SQLColumns": (SQLHANDLE,) + (SQLPOINTER, SQLSMALLINT) * 4,
    "SQLPrimaryKeys": (SQLHANDLE,) + (SQLPOINTER, SQLSMALLINT) * 3,
}

# Functions that take or return text and have a ...W variant
_WIDE_FUNCTIONS = frozenset({
    "SQLDriverConnect", "SQLDrivers", "SQLGetInfo", "SQLGetDiagRec",
    "SQLPrepare", "SQLExecDirect", "SQLDescribeCol", "SQLColAttribute",
    "SQLTables", "SQLColumns", "SQLPrimaryKeys",
})

SQL_NTS = ConstantsODBC.SQL_NTS.value
_SQLSTATE_LENGTH = 5


def _library_candidates():
    settings = get_settings()
    if settings.odbc_library:
        return [settings.odbc_library]
    if sys.platform == "win32":
        return ["odbc32.dll"]

    candidates = []
    for short_name in ("odbc", "iodbc"):
        found = ctypes.util.find_library(short_name)
        if found:
            candidates.append(found)
    if sys.platform == "darwin":
        candidates += ["libiodbc.2.dylib", "libodbc.2.dylib"]
    else:
        candidates += ["libodbc.so.2", "libodbc.so", "libiodbc.so.2"]
    return candidates


def load_library():
    """
    Load the ODBC driver manager shared library.

    Raises:
        InterfaceError: If no candidate library can be loaded.
    """
    failures = []
    for name in _library_candidates():
        try:
            if sys.platform == "win32":
                library = ctypes.WinDLL(name)
            else:
                library = ctypes.CDLL(name)
        except OSError as e:
            failures.append(f"{name}: {e}")
            continue
        logger.info("Loaded ODBC driver manager: %s", name)
        return library
    raise InterfaceError(
        "Could not load the ODBC driver manager library ("
        + ("; ".join(failures) or "no candidates")
        + "). Install unixODBC or set OMNIDB_ODBC_LIBRARY."
    )


def _default_wide_encoding(library) -> str:
    # iODBC uses a 4-byte SQLWCHAR, unixODBC and odbc32 use 2 bytes
    name = getattr(library, "_name", "") or ""
    return "utf-32-le" if "iodbc" in name.lower() else "utf-16-le"


class OdbcBindings:
    """
    ctypes wrapper over the driver manager entry points used by the package.

    Attributes:
        wide (bool): True when the ...W entry points are bound.
        encoding (str): Encoding of narrow (SQL_C_CHAR) text.
        wide_encoding (str): Encoding of wide (SQL_C_WCHAR) text.
    """

    def __init__(self, library=None, wide: Optional[bool] = None,
                 encoding: Optional[str] = None, wide_encoding: Optional[str] = None) -> None:
        settings = get_settings()
        self._lib = library if library is not None else load_library()
        self.wide = settings.wide_chars if wide is None else wide
        self.encoding = encoding or settings.encoding
        self.wide_encoding = (
            wide_encoding or settings.wide_encoding or _default_wide_encoding(self._lib)
        )
        self._unit = char_width(self.text_encoding)
        self._functions = {}
        self._bind()

    @property
    def text_encoding(self) -> str:
        """Encoding of text passed to and from the bound entry points."""
        return self.wide_encoding if self.wide else self.encoding

    def _bind(self) -> None:
        for name, argtypes in _PROTOTYPES.items():
            symbol = f"{name}W" if self.wide and name in _WIDE_FUNCTIONS else name
            try:
                function = getattr(self._lib, symbol)
            except AttributeError as e:
                raise InterfaceError(f"ODBC driver manager does not export {symbol}") from e
            function.argtypes = argtypes
            function.restype = SQLRETURN
            self._functions[name] = function

    def _text(self, value: Optional[str]):
        if value is None:
            return None, 0
        return to_native(value, self.text_encoding), SQL_NTS

    def _out_text(self, chars: int):
        return ctypes.create_string_buffer(chars * self._unit)

    def _decode(self, buffer, length_bytes: int) -> str:
        return from_native(buffer.raw, length_bytes, self.text_encoding)

    # Handles

    def alloc_handle(self, handle_type: int, parent) -> Tuple[int, Optional[int]]:
        handle = SQLHANDLE()
        ret = self._functions["SQLAllocHandle"](handle_type, parent, ctypes.byref(handle))
        return ret, handle.value

    def free_handle(self, handle_type: int, handle) -> int:
        return self._functions["SQLFreeHandle"](handle_type, handle)

    def set_env_attr(self, henv, attribute: int, value: int) -> int:
        return self._functions["SQLSetEnvAttr"](henv, attribute, value, 0)

    # Connections

    def driver_connect(self, hdbc, connection_string: str) -> int:
        text, length = self._text(connection_string)
        return self._functions["SQLDriverConnect"](
            hdbc, None, text, length, None, 0, None,
            ConstantsODBC.SQL_DRIVER_NOPROMPT.value,
        )

    def disconnect(self, hdbc) -> int:
        return self._functions["SQLDisconnect"](hdbc)

    def drivers(self, henv, direction: int) -> Tuple[int, str, str]:
        """One SQLDrivers step: (ret, driver name, ';'-joined attributes)."""
        name = self._out_text(IDENTIFIER_CAP)
        name_length = SQLSMALLINT()
        attributes = self._out_text(REMARKS_CAP)
        attributes_length = SQLSMALLINT()
        ret = self._functions["SQLDrivers"](
            henv, direction,
            name, IDENTIFIER_CAP, ctypes.byref(name_length),
            attributes, REMARKS_CAP, ctypes.byref(attributes_length),
        )
        attribute_list = split_attribute_list(
            attributes.raw, attributes_length.value * self._unit, self.text_encoding
        )
        return ret, self._decode(name, name_length.value * self._unit), ";".join(attribute_list)

    def get_info_text(self, hdbc, info_type: int) -> Tuple[int, str]:
        value = self._out_text(IDENTIFIER_CAP)
        length = SQLSMALLINT()
        # SQLGetInfo lengths are in bytes for both entry points
        ret = self._functions["SQLGetInfo"](hdbc, info_type, value, len(value), ctypes.byref(length))
        return ret, self._decode(value, length.value)

    def get_functions(self, hdbc, function_id: int) -> Tuple[int, bool]:
        supported = SQLUSMALLINT()
        ret = self._functions["SQLGetFunctions"](hdbc, function_id, ctypes.byref(supported))
        return ret, supported.value == ConstantsODBC.SQL_TRUE.value

    # Diagnostics

    def get_diag_count(self, handle_type: int, handle) -> Tuple[int, int]:
        count = SQLINTEGER()
        ret = self._functions["SQLGetDiagField"](
            handle_type, handle, 0, ConstantsODBC.SQL_DIAG_NUMBER.value,
            ctypes.byref(count), 0, None,
        )
        return ret, count.value

    def get_diag_rec(self, handle_type: int, handle, record: int) -> Tuple[int, str, int, str]:
        state = self._out_text(_SQLSTATE_LENGTH + 1)
        native_error = SQLINTEGER()
        message = self._out_text(REMARKS_CAP)
        message_length = SQLSMALLINT()
        ret = self._functions["SQLGetDiagRec"](
            handle_type, handle, record, state, ctypes.byref(native_error),
            message, REMARKS_CAP, ctypes.byref(message_length),
        )
        return (
            ret,
            self._decode(state, _SQLSTATE_LENGTH * self._unit),
            native_error.value,
            self._decode(message, message_length.value * self._unit),
        )

    # Statements

    def prepare(self, hstmt, sql: str) -> int:
        text, length = self._text(sql)
        return self._functions["SQLPrepare"](hstmt, text, length)

    def exec_direct(self, hstmt, sql: str) -> int:
        text, length = self._text(sql)
        return self._functions["SQLExecDirect"](hstmt, text, length)

    def num_result_cols(self, hstmt) -> Tuple[int, int]:
        count = SQLSMALLINT()
        ret = self._functions["SQLNumResultCols"](hstmt, ctypes.byref(count))
        return ret, count.value

    def num_params(self, hstmt) -> Tuple[int, int]:
        count = SQLSMALLINT()
        ret = self._functions["SQLNumParams"](hstmt, ctypes.byref(count))
        return ret, count.value

    def describe_col(self, hstmt, column: int) -> Tuple[int, str, int, int, int, int]:
        """(ret, name, SQL type, column size, decimal digits, nullability)"""
        name = self._out_text(IDENTIFIER_CAP)
        name_length = SQLSMALLINT()
        data_type = SQLSMALLINT()
        size = SQLULEN()
        digits = SQLSMALLINT()
        nullable = SQLSMALLINT()
        ret = self._functions["SQLDescribeCol"](
            hstmt, column, name, IDENTIFIER_CAP, ctypes.byref(name_length),
            ctypes.byref(data_type), ctypes.byref(size), ctypes.byref(digits), ctypes.byref(nullable),
        )
        return (
            ret,
            self._decode(name, name_length.value * self._unit),
            data_type.value,
            size.value,
            digits.value,
            nullable.value,
        )

    def col_attribute_text(self, hstmt, column: int, field: int) -> Tuple[int, str]:
        value = self._out_text(IDENTIFIER_CAP)
        length = SQLSMALLINT()
        # SQLColAttribute lengths are in bytes for both entry points
        ret = self._functions["SQLColAttribute"](
            hstmt, column, field, value, len(value), ctypes.byref(length), None
        )
        return ret, self._decode(value, length.value)

    def col_attribute_number(self, hstmt, column: int, field: int) -> Tuple[int, int]:
        value = SQLLEN()
        ret = self._functions["SQLColAttribute"](
            hstmt, column, field, None, 0, None, ctypes.byref(value)
        )
        return ret, value.value

    def describe_param(self, hstmt, param: int) -> Tuple[int, int, int, int, int]:
        """(ret, SQL type, parameter size, decimal digits, nullability)"""
        data_type = SQLSMALLINT()
        size = SQLULEN()
        digits = SQLSMALLINT()
        nullable = SQLSMALLINT()
        ret = self._functions["SQLDescribeParam"](
            hstmt, param, ctypes.byref(data_type), ctypes.byref(size),
            ctypes.byref(digits), ctypes.byref(nullable),
        )
        return ret, data_type.value, size.value, digits.value, nullable.value

    def fetch(self, hstmt) -> int:
        return self._functions["SQLFetch"](hstmt)

    def get_data(self, hstmt, column: int, buffer: NativeBuffer) -> int:
        """Fill buffer (and its indicator) with the value of one column."""
        buffer.reset()
        return self._functions["SQLGetData"](
            hstmt, column, buffer.c_type, buffer.target(), buffer.capacity, buffer.indicator_ref()
        )

    # Catalog functions. None arguments are passed as NULL pointers.

    def tables(self, hstmt, catalog, schema, table, table_type) -> int:
        args = []
        for value in (catalog, schema, table, table_type):
            args.extend(self._text(value))
        return self._functions["SQLTables"](hstmt, *args)

    def columns(self, hstmt, catalog, schema, table, column) -> int:
        args = []
        for value in (catalog, schema, table, column):
            args.extend(self._text(value))
        return self._functions["SQLColumns"](hstmt, *args)

    def primary_keys(self, hstmt, catalog, schema, table) -> int:
        args = []
        for value in (catalog, schema, table):
            args.extend(self._text(value))
        return self._functions["SQLPrimaryKeys"](hstmt, *args)


_bindings: Optional[OdbcBindings] = None
_bindings_lock = threading.Lock()


def get_bindings():
    """Return the process-wide bindings, loading the driver manager on first use."""
    global _bindings
    if _bindings is None:
        with _bindings_lock:
            if _bindings is None:
                _bindings = OdbcBindings()
    return _bindings


def set_bindings(bindings):
    """
    Replace the process-wide bindings and return the previous ones.

    Any object with the OdbcBindings methods and the wide/encoding/
    wide_encoding attributes can be installed.
    """
    global _bindings
    with _bindings_lock:
        previous = _bindings
        _bindings = bindings
    return previous
