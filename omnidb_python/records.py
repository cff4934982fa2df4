"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module executes SQL directly and streams result rows into plain lists.

Each result column is described once before the fetch loop. Its native type
picks a decode rule from the type catalog, and the rule decides the C type
and buffer each value is fetched into.
"""

from typing import Dict, Iterable, List

from omnidb_python.constants import ConstantsODBC
from omnidb_python.diagnostics import check_error
from omnidb_python.exceptions import FetchError
from omnidb_python.handles import SqlHandle, statement
from omnidb_python.logging import compact_sql, logger
from omnidb_python.odbc_bindings import get_bindings
from omnidb_python.text_marshal import NativeBuffer
from omnidb_python.type_catalog import DecodeRule, decode_rule

SQL_HANDLE_STMT = ConstantsODBC.SQL_HANDLE_STMT.value
SQL_NO_DATA = ConstantsODBC.SQL_NO_DATA.value
_TEXT_C_TYPES = (ConstantsODBC.SQL_C_CHAR.value, ConstantsODBC.SQL_C_WCHAR.value)


def buffer_for(rule: DecodeRule, api) -> NativeBuffer:
    """
    Create the retrieval buffer for a decode rule.

    Wide rules use SQL_C_WCHAR only when the bindings run in wide mode;
    otherwise all text is fetched as SQL_C_CHAR in the narrow encoding.
    """
    if rule.c_type in _TEXT_C_TYPES:
        if rule.wide and api.wide:
            return NativeBuffer(ConstantsODBC.SQL_C_WCHAR.value, rule.capacity, api.wide_encoding)
        return NativeBuffer(ConstantsODBC.SQL_C_CHAR.value, rule.capacity, api.encoding)
    return NativeBuffer(rule.c_type)


def read_value(api, hstmt: SqlHandle, ordinal: int, buffer: NativeBuffer):
    """
    Fetch one column of the current row into buffer and decode it.

    Returns None for NULL. Values longer than the buffer are cut at its cap.

    Raises:
        FetchError: If SQLGetData fails.
    """
    ret = api.get_data(hstmt.value, ordinal, buffer)
    if ret == SQL_NO_DATA:
        return None
    check_error("SQLGetData", ret, SQL_HANDLE_STMT, hstmt.value, FetchError)
    if buffer.truncated:
        logger.debug("Column %d truncated at %d bytes", ordinal, buffer.capacity)
    return buffer.value()


def build_column_index(names: Iterable[str]) -> Dict[str, int]:
    """
    Map column names to ordinals (0-based).

    A repeated name is keyed as <name>_<ordinal> (1-based), so the index
    always has one key per column.
    """
    index = {}
    for position, name in enumerate(names):
        key = name
        if key in index:
            key = f"{name}_{position + 1}"
            suffix = 2
            while key in index:
                key = f"{name}_{position + 1}_{suffix}"
                suffix += 1
        index[key] = position
    return index


class _ColumnPlan:
    __slots__ = ("ordinal", "name", "type_code", "rule", "buffer")

    def __init__(self, ordinal, name, type_code, rule, buffer):
        self.ordinal = ordinal
        self.name = name
        self.type_code = type_code
        self.rule = rule
        self.buffer = buffer


def _plan_columns(api, hstmt: SqlHandle) -> List[_ColumnPlan]:
    ret, count = api.num_result_cols(hstmt.value)
    check_error("SQLNumResultCols", ret, SQL_HANDLE_STMT, hstmt.value, FetchError)

    plan = []
    for ordinal in range(1, count + 1):
        ret, name, type_code, _size, _digits, _nullable = api.describe_col(hstmt.value, ordinal)
        check_error("SQLDescribeCol", ret, SQL_HANDLE_STMT, hstmt.value, FetchError)
        rule = decode_rule(type_code)
        plan.append(_ColumnPlan(ordinal, name, type_code, rule, buffer_for(rule, api)))
    return plan


def _decode(api, hstmt: SqlHandle, column: _ColumnPlan):
    value = read_value(api, hstmt, column.ordinal, column.buffer)
    if value is not None and column.rule.convert is not None:
        value = column.rule.convert(value)
    return value


def fetch_all(hdbc: SqlHandle, sql: str) -> dict:
    """
    Execute sql and return every row.

    Returns:
        dict: {"columnIndex": {name: ordinal}, "records": [[value, ...], ...]}

    Raises:
        FetchError: If executing, describing or fetching fails. Rows read
            before the failure are discarded.
    """
    api = get_bindings()
    logger.debug("fetch_all: %s", compact_sql(sql))
    with statement(hdbc, FetchError) as hstmt:
        ret = api.exec_direct(hstmt.value, sql)
        check_error("SQLExecDirect", ret, SQL_HANDLE_STMT, hstmt.value, FetchError,
                    accept=(SQL_NO_DATA,))
        plan = _plan_columns(api, hstmt)
        column_index = build_column_index(column.name for column in plan)

        records = []
        if plan:
            while True:
                ret = api.fetch(hstmt.value)
                if ret == SQL_NO_DATA:
                    break
                check_error("SQLFetch", ret, SQL_HANDLE_STMT, hstmt.value, FetchError)
                records.append([_decode(api, hstmt, column) for column in plan])

    logger.debug("fetch_all: %d columns, %d rows", len(column_index), len(records))
    return {"columnIndex": column_index, "records": records}


def execute(hdbc: SqlHandle, sql: str) -> bool:
    """
    Execute sql without reading results.

    Raises:
        FetchError: If SQLExecDirect fails.
    """
    api = get_bindings()
    logger.debug("execute: %s", compact_sql(sql))
    with statement(hdbc, FetchError) as hstmt:
        ret = api.exec_direct(hstmt.value, sql)
        check_error("SQLExecDirect", ret, SQL_HANDLE_STMT, hstmt.value, FetchError,
                    accept=(SQL_NO_DATA,))
    return True
