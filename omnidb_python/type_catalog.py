"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module holds the single ordered table of native SQL types. Each entry
gives the catalog name and type class used in introspection output and the
decode rule the record streamer uses to fetch values of that type.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from omnidb_python.constants import ConstantsODBC as C
from omnidb_python.constants import SQLTypes as T
from omnidb_python.text_marshal import GENERIC_TEXT_CAP, IDENTIFIER_CAP, TEXT_CAP

# Type classes
STRING = "String"
NUMBER = "Number"
BINARY = "Binary"
DATE = "Date"
TIME = "Time"
DATETIME = "DateTime"
GUID = "Guid"

# Largest integer a JSON consumer (IEEE double) represents exactly.
MAX_SAFE_INTEGER = 2**53 - 1


def narrow_integer(value):
    """Keep integers within +/-(2**53 - 1); larger magnitudes become floats."""
    if value is None or -MAX_SAFE_INTEGER <= value <= MAX_SAFE_INTEGER:
        return value
    return float(value)


@dataclass(frozen=True)
class DecodeRule:
    """
    How values of a SQL type are fetched.

    c_type is the C type requested from SQLGetData and capacity the buffer
    size in bytes for text. A wide rule is fetched as SQL_C_WCHAR when the
    bindings run in wide mode and as SQL_C_CHAR otherwise.
    """

    name: str
    c_type: int
    capacity: int = 0
    wide: bool = False
    convert: Optional[Callable] = None


DECIMAL_TEXT = DecodeRule("decimal-text", C.SQL_C_CHAR.value, IDENTIFIER_CAP)
TEXT = DecodeRule("text", C.SQL_C_CHAR.value, TEXT_CAP)
WIDE_TEXT = DecodeRule("wide-text", C.SQL_C_WCHAR.value, TEXT_CAP, wide=True)
DOUBLE = DecodeRule("double", C.SQL_C_DOUBLE.value)
SMALL_INTEGER = DecodeRule("small-integer", C.SQL_C_SSHORT.value)
INTEGER = DecodeRule("integer", C.SQL_C_SLONG.value)
BIG_INTEGER = DecodeRule("big-integer", C.SQL_C_SBIGINT.value, convert=narrow_integer)
DEFAULT_TEXT = DecodeRule("default-text", C.SQL_C_CHAR.value, GENERIC_TEXT_CAP)


@dataclass(frozen=True)
class TypeEntry:
    code: int
    name: str
    type_class: str
    decode: DecodeRule = DEFAULT_TEXT


def _entry(constant, type_class, decode=DEFAULT_TEXT):
    return TypeEntry(constant.value, constant.name, type_class, decode)


TYPE_TABLE = (
    _entry(T.SQL_CHAR, STRING, TEXT),
    _entry(T.SQL_VARCHAR, STRING, TEXT),
    _entry(T.SQL_LONGVARCHAR, STRING, TEXT),
    _entry(T.SQL_WCHAR, STRING, WIDE_TEXT),
    _entry(T.SQL_WVARCHAR, STRING, WIDE_TEXT),
    _entry(T.SQL_WLONGVARCHAR, STRING, WIDE_TEXT),
    _entry(T.SQL_DECIMAL, NUMBER, DECIMAL_TEXT),
    _entry(T.SQL_NUMERIC, NUMBER, DECIMAL_TEXT),
    _entry(T.SQL_SMALLINT, NUMBER, SMALL_INTEGER),
    _entry(T.SQL_INTEGER, NUMBER, INTEGER),
    _entry(T.SQL_REAL, NUMBER, DECIMAL_TEXT),
    _entry(T.SQL_FLOAT, NUMBER, DOUBLE),
    _entry(T.SQL_DOUBLE, NUMBER, DOUBLE),
    _entry(T.SQL_BIT, NUMBER),
    _entry(T.SQL_TINYINT, NUMBER, SMALL_INTEGER),
    _entry(T.SQL_BIGINT, NUMBER, BIG_INTEGER),
    _entry(T.SQL_BINARY, BINARY),
    _entry(T.SQL_VARBINARY, BINARY),
    _entry(T.SQL_LONGVARBINARY, BINARY),
    _entry(T.SQL_TYPE_DATE, DATE),
    _entry(T.SQL_TYPE_TIME, TIME),
    _entry(T.SQL_TYPE_TIMESTAMP, DATETIME),
    # ODBC 2.x drivers still report these codes
    _entry(T.SQL_DATE, DATE),
    _entry(T.SQL_TIME, TIME),
    _entry(T.SQL_TIMESTAMP, DATETIME),
    _entry(T.SQL_INTERVAL_MONTH, NUMBER),
    _entry(T.SQL_INTERVAL_YEAR, NUMBER),
    _entry(T.SQL_INTERVAL_YEAR_TO_MONTH, NUMBER),
    _entry(T.SQL_INTERVAL_DAY, NUMBER),
    _entry(T.SQL_INTERVAL_HOUR, NUMBER),
    _entry(T.SQL_INTERVAL_MINUTE, NUMBER),
    _entry(T.SQL_INTERVAL_SECOND, NUMBER),
    _entry(T.SQL_INTERVAL_DAY_TO_HOUR, NUMBER),
    _entry(T.SQL_INTERVAL_DAY_TO_MINUTE, NUMBER),
    _entry(T.SQL_INTERVAL_DAY_TO_SECOND, NUMBER),
    _entry(T.SQL_INTERVAL_HOUR_TO_MINUTE, NUMBER),
    _entry(T.SQL_INTERVAL_HOUR_TO_SECOND, NUMBER),
    _entry(T.SQL_INTERVAL_MINUTE_TO_SECOND, NUMBER),
    _entry(T.SQL_GUID, GUID),
    _entry(T.SQL_SS_XML, STRING, WIDE_TEXT),
    _entry(T.SQL_SS_TIME2, TIME),
    _entry(T.SQL_SS_TIMESTAMPOFFSET, DATETIME),
)


def lookup(code: int) -> Optional[TypeEntry]:
    """Return the first entry for code, or None when the code is unknown."""
    for entry in TYPE_TABLE:
        if entry.code == code:
            return entry
    return None


def lookup_name(code: int) -> str:
    """Catalog name for a native type code ("" when unknown)."""
    entry = lookup(code)
    return entry.name if entry else ""


def lookup_class(code: int) -> str:
    """Type class for a native type code ("" when unknown)."""
    entry = lookup(code)
    return entry.type_class if entry else ""


def decode_rule(code: int) -> DecodeRule:
    """Decode rule for a native type code; unknown codes are fetched as text."""
    entry = lookup(code)
    return entry.decode if entry else DEFAULT_TEXT
