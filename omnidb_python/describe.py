"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module prepares a statement without executing it and reads its result
column and parameter descriptors.
"""

from typing import List

from omnidb_python.constants import ConstantsODBC, SQLTypes, sql_succeeded
from omnidb_python.diagnostics import check_error, collect_diagnostics
from omnidb_python.exceptions import DescribeError, UnsupportedOperationError
from omnidb_python.handles import SqlHandle, statement
from omnidb_python.helpers import get_settings
from omnidb_python.logging import compact_sql, logger
from omnidb_python.odbc_bindings import get_bindings
from omnidb_python.type_catalog import lookup_class, lookup_name

SQL_HANDLE_STMT = ConstantsODBC.SQL_HANDLE_STMT.value

# SQLSTATEs meaning "this driver does not provide that"
_NOT_PROVIDED_STATES = frozenset({"HY091", "HYC00", "IM001"})

_TEXT = "text"
_FLAG = "flag"
_NUMBER = "number"

# (output key, descriptor field, kind); the label is only read on request
_COLUMN_ATTRIBUTES = (
    ("name", ConstantsODBC.SQL_DESC_NAME.value, _TEXT),
    ("label", ConstantsODBC.SQL_DESC_LABEL.value, _TEXT),
    ("nullable", ConstantsODBC.SQL_DESC_NULLABLE.value, _NUMBER),
    ("autoIncrement", ConstantsODBC.SQL_DESC_AUTO_UNIQUE_VALUE.value, _FLAG),
    ("size", ConstantsODBC.SQL_DESC_LENGTH.value, _NUMBER),
    ("decimalDigits", ConstantsODBC.SQL_DESC_SCALE.value, _NUMBER),
    ("catalog", ConstantsODBC.SQL_DESC_CATALOG_NAME.value, _TEXT),
    ("schema", ConstantsODBC.SQL_DESC_SCHEMA_NAME.value, _TEXT),
    ("table", ConstantsODBC.SQL_DESC_BASE_TABLE_NAME.value, _TEXT),
    ("column", ConstantsODBC.SQL_DESC_BASE_COLUMN_NAME.value, _TEXT),
)


def _not_provided(operation, ret, handle) -> bool:
    records = collect_diagnostics(operation, ret, SQL_HANDLE_STMT, handle)
    return bool(records) and all(r.sqlstate in _NOT_PROVIDED_STATES for r in records)


def _describe_columns(api, hstmt: SqlHandle, label: bool) -> List[dict]:
    ret, count = api.num_result_cols(hstmt.value)
    check_error("SQLNumResultCols", ret, SQL_HANDLE_STMT, hstmt.value, DescribeError)

    columns = []
    for ordinal in range(1, count + 1):
        # Temporal types are only reliable through SQLDescribeCol
        ret, name, type_code, size, digits, nullable = api.describe_col(hstmt.value, ordinal)
        check_error("SQLDescribeCol", ret, SQL_HANDLE_STMT, hstmt.value, DescribeError)

        column = {
            "name": name,
            "type": lookup_name(type_code),
            "typeClass": lookup_class(type_code),
            "nullable": nullable == ConstantsODBC.SQL_NULLABLE.value,
            "autoIncrement": False,
            "size": size,
            "decimalDigits": digits,
            "catalog": "",
            "schema": "",
            "table": "",
            "column": "",
        }
        if label:
            column["label"] = ""

        for key, field, kind in _COLUMN_ATTRIBUTES:
            if key == "label" and not label:
                continue
            if kind == _TEXT:
                ret, value = api.col_attribute_text(hstmt.value, ordinal, field)
            else:
                ret, value = api.col_attribute_number(hstmt.value, ordinal, field)
            if not sql_succeeded(ret):
                if _not_provided("SQLColAttribute", ret, hstmt.value):
                    logger.debug("Column %d: attribute %d not provided by the driver", ordinal, field)
                    continue
                check_error("SQLColAttribute", ret, SQL_HANDLE_STMT, hstmt.value, DescribeError)

            if key == "nullable":
                value = value == ConstantsODBC.SQL_NULLABLE.value
            elif kind == _FLAG:
                value = value == ConstantsODBC.SQL_TRUE.value
            column[key] = value
        columns.append(column)
    return columns


def _parameter(type_code: int, size: int, digits: int, nullable: int) -> dict:
    return {
        "type": lookup_name(type_code),
        "typeClass": lookup_class(type_code),
        "size": size,
        "decimalDigits": digits,
        "nullable": nullable == ConstantsODBC.SQL_NULLABLE.value,
    }


def fallback_parameter() -> dict:
    """Descriptor used for every parameter when the driver cannot describe them."""
    return _parameter(
        SQLTypes.SQL_VARCHAR.value,
        get_settings().fallback_param_size,
        0,
        ConstantsODBC.SQL_NULLABLE_UNKNOWN.value,
    )


def _check_describe_param_supported(api, hdbc: SqlHandle) -> None:
    ret, supported = api.get_functions(hdbc.value, ConstantsODBC.SQL_API_SQLDESCRIBEPARAM.value)
    if not sql_succeeded(ret) or not supported:
        raise UnsupportedOperationError(
            "SQLDescribeParam is not supported by the driver",
            operation="SQLDescribeParam",
            return_code=ret,
        )


def _describe_params(api, hdbc: SqlHandle, hstmt: SqlHandle) -> List[dict]:
    ret, count = api.num_params(hstmt.value)
    check_error("SQLNumParams", ret, SQL_HANDLE_STMT, hstmt.value, DescribeError)
    if count <= 0:
        return []

    try:
        _check_describe_param_supported(api, hdbc)
        params = []
        for ordinal in range(1, count + 1):
            ret, type_code, size, digits, nullable = api.describe_param(hstmt.value, ordinal)
            if not sql_succeeded(ret) and _not_provided("SQLDescribeParam", ret, hstmt.value):
                raise UnsupportedOperationError(
                    "SQLDescribeParam is not implemented by the driver",
                    operation="SQLDescribeParam",
                    return_code=ret,
                )
            check_error("SQLDescribeParam", ret, SQL_HANDLE_STMT, hstmt.value, DescribeError)
            params.append(_parameter(type_code, size, digits, nullable))
        return params
    except UnsupportedOperationError as e:
        logger.debug("%s; using the fallback parameter descriptor", e.message)
        return [fallback_parameter() for _ in range(count)]


def describe_query(hdbc: SqlHandle, sql: str, label: bool = False) -> dict:
    """
    Prepare sql and describe its result columns and parameters.

    Args:
        hdbc: Connected connection handle.
        sql: Statement text; it is prepared, never executed.
        label: Also read SQL_DESC_LABEL for each column.

    Returns:
        dict: {"columns": [...], "params": [...]}

    Raises:
        DescribeError: If preparing or describing fails. No partial result is returned.
    """
    api = get_bindings()
    logger.debug("describe_query: %s", compact_sql(sql))
    with statement(hdbc, DescribeError) as hstmt:
        ret = api.prepare(hstmt.value, sql)
        check_error("SQLPrepare", ret, SQL_HANDLE_STMT, hstmt.value, DescribeError)
        columns = _describe_columns(api, hstmt, label)
        params = _describe_params(api, hdbc, hstmt)
    return {"columns": columns, "params": params}
