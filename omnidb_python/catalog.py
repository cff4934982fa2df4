"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module wraps the ODBC catalog functions (SQLDrivers, SQLTables,
SQLColumns, SQLPrimaryKeys) and returns their result sets as lists of dicts.

Filter arguments are passed through as given: None becomes a NULL pointer
("match all"). Normalizing caller input is done by the Connection.
"""

from typing import List, Optional

from omnidb_python.constants import ConstantsODBC
from omnidb_python.diagnostics import check_error
from omnidb_python.exceptions import ConnectionError, FetchError
from omnidb_python.handles import SqlHandle, statement
from omnidb_python.logging import logger
from omnidb_python.odbc_bindings import get_bindings
from omnidb_python.records import buffer_for, read_value
from omnidb_python.text_marshal import IDENTIFIER_CAP, REMARKS_CAP, trim_padding
from omnidb_python.type_catalog import DecodeRule, lookup_class, lookup_name

SQL_HANDLE_STMT = ConstantsODBC.SQL_HANDLE_STMT.value
SQL_NO_DATA = ConstantsODBC.SQL_NO_DATA.value

_IDENTIFIER = DecodeRule("identifier", ConstantsODBC.SQL_C_CHAR.value, IDENTIFIER_CAP, wide=True)
_REMARKS = DecodeRule("remarks", ConstantsODBC.SQL_C_CHAR.value, REMARKS_CAP, wide=True)
_SMALLINT = DecodeRule("small-integer", ConstantsODBC.SQL_C_SSHORT.value)
_INTEGER = DecodeRule("integer", ConstantsODBC.SQL_C_SLONG.value)

# Result set layouts: (output key, column number, decode rule, post-processing)
_TEXT, _TRIMMED, _NUMBER, _TYPE, _NULLABLE = "text", "trimmed", "number", "type", "nullable"

TABLE_LAYOUT = (
    ("catalog", 1, _IDENTIFIER, _TEXT),
    ("schema", 2, _IDENTIFIER, _TEXT),
    ("name", 3, _IDENTIFIER, _TEXT),
    ("type", 4, _IDENTIFIER, _TEXT),
    ("remarks", 5, _REMARKS, _TRIMMED),
)

COLUMN_LAYOUT = (
    ("catalog", 1, _IDENTIFIER, _TEXT),
    ("schema", 2, _IDENTIFIER, _TEXT),
    ("table", 3, _IDENTIFIER, _TEXT),
    ("name", 4, _IDENTIFIER, _TEXT),
    ("type", 5, _SMALLINT, _TYPE),
    ("size", 7, _INTEGER, _NUMBER),
    ("decimalDigits", 9, _SMALLINT, _NUMBER),
    ("numPrec", 10, _SMALLINT, _NUMBER),
    ("nullable", 11, _SMALLINT, _NULLABLE),
    ("remarks", 12, _REMARKS, _TRIMMED),
    ("default", 13, _REMARKS, _TRIMMED),
)

PRIMARY_KEY_LAYOUT = (
    ("catalog", 1, _IDENTIFIER, _TEXT),
    ("schema", 2, _IDENTIFIER, _TEXT),
    ("table", 3, _IDENTIFIER, _TEXT),
    ("column", 4, _IDENTIFIER, _TEXT),
    ("seq", 5, _SMALLINT, _NUMBER),
    ("primaryKeyName", 6, _IDENTIFIER, _TEXT),
)

SCHEMA_LAYOUT = (
    ("catalog", 1, _IDENTIFIER, _TEXT),
    ("name", 2, _IDENTIFIER, _TEXT),
    ("remarks", 5, _REMARKS, _TRIMMED),
)


def _read_rows(api, hstmt: SqlHandle, layout) -> List[dict]:
    # SQLGetData is called in ascending column order, as most drivers require
    buffers = [buffer_for(rule, api) for _, _, rule, _ in layout]
    rows = []
    while True:
        ret = api.fetch(hstmt.value)
        if ret == SQL_NO_DATA:
            break
        check_error("SQLFetch", ret, SQL_HANDLE_STMT, hstmt.value, FetchError)

        row = {}
        for (key, number, _rule, kind), buffer in zip(layout, buffers):
            value = read_value(api, hstmt, number, buffer)
            if kind == _TEXT:
                row[key] = value or ""
            elif kind == _TRIMMED:
                row[key] = trim_padding(value)
            elif kind == _NUMBER:
                row[key] = value or 0
            elif kind == _NULLABLE:
                row[key] = value == ConstantsODBC.SQL_NULLABLE.value
            elif kind == _TYPE:
                row[key] = lookup_name(value)
                row["typeClass"] = lookup_class(value)
        rows.append(row)
    return rows


def _run(hdbc: SqlHandle, operation: str, call, layout) -> List[dict]:
    api = get_bindings()
    with statement(hdbc, FetchError) as hstmt:
        ret = call(api, hstmt.value)
        check_error(operation, ret, SQL_HANDLE_STMT, hstmt.value, FetchError)
        rows = _read_rows(api, hstmt, layout)
    logger.debug("%s returned %d rows", operation, len(rows))
    return rows


def list_tables(hdbc: SqlHandle, catalog: Optional[str], schema: Optional[str],
                table: Optional[str], table_type: Optional[str]) -> List[dict]:
    """Rows of SQLTables as {catalog, schema, name, type, remarks}."""
    return _run(
        hdbc, "SQLTables",
        lambda api, h: api.tables(h, catalog, schema, table, table_type),
        TABLE_LAYOUT,
    )


def list_columns(hdbc: SqlHandle, catalog: Optional[str], schema: Optional[str],
                 table: Optional[str], column: Optional[str]) -> List[dict]:
    """
    Rows of SQLColumns as {catalog, schema, table, name, type, typeClass,
    size, decimalDigits, numPrec, remarks, default, nullable}.
    """
    return _run(
        hdbc, "SQLColumns",
        lambda api, h: api.columns(h, catalog, schema, table, column),
        COLUMN_LAYOUT,
    )


def list_primary_keys(hdbc: SqlHandle, catalog: Optional[str], schema: Optional[str],
                      table: Optional[str]) -> List[dict]:
    """Rows of SQLPrimaryKeys as {catalog, schema, table, column, seq, primaryKeyName}."""
    return _run(
        hdbc, "SQLPrimaryKeys",
        lambda api, h: api.primary_keys(h, catalog, schema, table),
        PRIMARY_KEY_LAYOUT,
    )


def list_schemas(hdbc: SqlHandle) -> List[dict]:
    """
    Schemas as {catalog, name, remarks}, using the SQLTables all-schemas call
    (catalog "", schema "%", table ""). Duplicates are dropped, order kept.
    """
    rows = _run(
        hdbc, "SQLTables",
        lambda api, h: api.tables(h, "", "%", "", ""),
        SCHEMA_LAYOUT,
    )
    seen = set()
    schemas = []
    for row in rows:
        key = (row["catalog"], row["name"])
        if key in seen:
            continue
        seen.add(key)
        schemas.append(row)
    return schemas


def list_drivers(henv: SqlHandle) -> List[dict]:
    """
    Installed drivers as {name, attribute}.

    Raises:
        ConnectionError: If SQLDrivers fails.
    """
    api = get_bindings()
    drivers = []
    direction = ConstantsODBC.SQL_FETCH_FIRST.value
    while True:
        ret, name, attribute = api.drivers(henv.value, direction)
        if ret == SQL_NO_DATA:
            break
        check_error("SQLDrivers", ret, ConstantsODBC.SQL_HANDLE_ENV.value, henv.value, ConnectionError)
        drivers.append({"name": name, "attribute": attribute})
        direction = ConstantsODBC.SQL_FETCH_NEXT.value
    return drivers
