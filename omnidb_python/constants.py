"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module contains the ODBC constants used by the omnidb_python package.
"""

from enum import Enum


class ConstantsODBC(Enum):
    """
    Constants used in the ODBC driver manager interface.
    """

    # Return codes
    SQL_SUCCESS = 0
    SQL_SUCCESS_WITH_INFO = 1
    SQL_NO_DATA = 100
    SQL_ERROR = -1
    SQL_INVALID_HANDLE = -2
    SQL_STILL_EXECUTING = 2
    SQL_NEED_DATA = 99

    # Length indicators
    SQL_NULL_DATA = -1
    SQL_NO_TOTAL = -4
    SQL_NTS = -3

    # Handle types
    SQL_HANDLE_ENV = 1
    SQL_HANDLE_DBC = 2
    SQL_HANDLE_STMT = 3

    # Environment attributes
    SQL_ATTR_ODBC_VERSION = 200
    SQL_OV_ODBC3 = 3

    # Driver connect completion
    SQL_DRIVER_NOPROMPT = 0
    SQL_DRIVER_COMPLETE = 1

    # Fetch directions for SQLDrivers
    SQL_FETCH_NEXT = 1
    SQL_FETCH_FIRST = 2

    # Diagnostic header fields
    SQL_DIAG_NUMBER = 2

    # Nullability
    SQL_NO_NULLS = 0
    SQL_NULLABLE = 1
    SQL_NULLABLE_UNKNOWN = 2

    SQL_FALSE = 0
    SQL_TRUE = 1

    # Function ids for SQLGetFunctions
    SQL_API_SQLDESCRIBEPARAM = 58

    # Descriptor fields for SQLColAttribute
    SQL_DESC_AUTO_UNIQUE_VALUE = 11
    SQL_DESC_SCHEMA_NAME = 16
    SQL_DESC_CATALOG_NAME = 17
    SQL_DESC_LABEL = 18
    SQL_DESC_BASE_COLUMN_NAME = 22
    SQL_DESC_BASE_TABLE_NAME = 23
    SQL_DESC_TYPE = 1002
    SQL_DESC_LENGTH = 1003
    SQL_DESC_SCALE = 1006
    SQL_DESC_NULLABLE = 1008
    SQL_DESC_NAME = 1011

    # C data types
    SQL_C_CHAR = 1
    SQL_C_DOUBLE = 8
    SQL_C_WCHAR = -8
    SQL_C_SSHORT = -15
    SQL_C_SLONG = -16
    SQL_C_SBIGINT = -25
    SQL_C_STINYINT = -26


class SQLTypes(Enum):
    """
    Native SQL data type codes reported by drivers.
    """

    SQL_UNKNOWN_TYPE = 0
    SQL_CHAR = 1
    SQL_NUMERIC = 2
    SQL_DECIMAL = 3
    SQL_INTEGER = 4
    SQL_SMALLINT = 5
    SQL_FLOAT = 6
    SQL_REAL = 7
    SQL_DOUBLE = 8
    SQL_DATE = 9
    SQL_TIME = 10
    SQL_TIMESTAMP = 11
    SQL_VARCHAR = 12
    SQL_TYPE_DATE = 91
    SQL_TYPE_TIME = 92
    SQL_TYPE_TIMESTAMP = 93
    SQL_LONGVARCHAR = -1
    SQL_BINARY = -2
    SQL_VARBINARY = -3
    SQL_LONGVARBINARY = -4
    SQL_BIGINT = -5
    SQL_TINYINT = -6
    SQL_BIT = -7
    SQL_WCHAR = -8
    SQL_WVARCHAR = -9
    SQL_WLONGVARCHAR = -10
    SQL_GUID = -11

    # Interval types
    SQL_INTERVAL_YEAR = 101
    SQL_INTERVAL_MONTH = 102
    SQL_INTERVAL_DAY = 103
    SQL_INTERVAL_HOUR = 104
    SQL_INTERVAL_MINUTE = 105
    SQL_INTERVAL_SECOND = 106
    SQL_INTERVAL_YEAR_TO_MONTH = 107
    SQL_INTERVAL_DAY_TO_HOUR = 108
    SQL_INTERVAL_DAY_TO_MINUTE = 109
    SQL_INTERVAL_DAY_TO_SECOND = 110
    SQL_INTERVAL_HOUR_TO_MINUTE = 111
    SQL_INTERVAL_HOUR_TO_SECOND = 112
    SQL_INTERVAL_MINUTE_TO_SECOND = 113

    # SQL Server specific types
    SQL_SS_VARIANT = -150
    SQL_SS_XML = -152
    SQL_SS_TIME2 = -154
    SQL_SS_TIMESTAMPOFFSET = -155


class GetInfoConstants(Enum):
    """
    Information types for SQLGetInfo.
    """

    SQL_DATA_SOURCE_NAME = 2
    SQL_DRIVER_NAME = 6
    SQL_DRIVER_VER = 7
    SQL_DBMS_NAME = 17
    SQL_DBMS_VER = 18


def sql_succeeded(ret: int) -> bool:
    """Return True for SQL_SUCCESS and SQL_SUCCESS_WITH_INFO."""
    return ret in (
        ConstantsODBC.SQL_SUCCESS.value,
        ConstantsODBC.SQL_SUCCESS_WITH_INFO.value,
    )
