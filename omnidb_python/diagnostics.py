"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module turns failed native calls into error messages and exceptions.

A failure is explained by reading every diagnostic record attached to the
handle and rendering them as one string:

    [ERROR] <message>(API:<operation>, STATE:<sqlstate>, NATIVE:<code>), [ERROR] ...

When the return code is not SQL_ERROR, or no record can be read, the message
falls back to "<operation> error (code <return code>)".
"""

from typing import Iterable, List, Type

from omnidb_python.constants import ConstantsODBC, sql_succeeded
from omnidb_python.exceptions import DatabaseError, DiagnosticRecord
from omnidb_python.logging import logger
from omnidb_python.odbc_bindings import get_bindings


def collect_diagnostics(operation: str, return_code: int, handle_type: int, handle) -> List[DiagnosticRecord]:
    """
    Read the diagnostic records of a handle after a call returned SQL_ERROR.

    Reading stops at the reported record count or at the first SQL_NO_DATA,
    whichever comes first. Never raises; a failure while reading diagnostics
    yields the records read so far.
    """
    if return_code != ConstantsODBC.SQL_ERROR.value or handle is None:
        return []

    records = []
    try:
        api = get_bindings()
        ret, count = api.get_diag_count(handle_type, handle)
        if not sql_succeeded(ret):
            return records
        for number in range(1, count + 1):
            ret, sqlstate, native_error, message = api.get_diag_rec(handle_type, handle, number)
            if ret == ConstantsODBC.SQL_NO_DATA.value or not sql_succeeded(ret):
                break
            records.append(DiagnosticRecord(sqlstate, native_error, message, operation))
    except Exception as e:
        logger.warning("Reading diagnostics for %s failed: %s", operation, e)
    return records


def generic_message(operation: str, return_code: int) -> str:
    return f"{operation} error (code {return_code})"


def render(operation: str, return_code: int, records: Iterable[DiagnosticRecord]) -> str:
    """Join the records into one message, or the generic message if there are none."""
    parts = [
        f"[ERROR] {record.message}(API:{record.operation}, STATE:{record.sqlstate}, "
        f"NATIVE:{record.native_error})"
        for record in records
    ]
    if not parts:
        return generic_message(operation, return_code)
    return ", ".join(parts)


def explain(operation: str, return_code: int, handle_type: int, handle) -> str:
    """
    Describe a failed native call in one non-empty string.

    Args:
        operation: Native function name, e.g. "SQLExecDirect".
        return_code: What the function returned.
        handle_type: SQL_HANDLE_ENV, SQL_HANDLE_DBC or SQL_HANDLE_STMT.
        handle: The native handle the call was made on.
    """
    return render(operation, return_code, collect_diagnostics(operation, return_code, handle_type, handle))


def check_error(operation: str, return_code: int, handle_type: int, handle,
                error_class: Type[DatabaseError] = DatabaseError, accept: Iterable[int] = ()) -> int:
    """
    Raise error_class unless return_code signals success.

    SQL_SUCCESS and SQL_SUCCESS_WITH_INFO always pass, as do the codes
    listed in accept. The raised error carries the operation name, the
    return code and the diagnostic records.

    Returns:
        int: return_code, when it passes.
    """
    if sql_succeeded(return_code) or return_code in accept:
        return return_code

    records = collect_diagnostics(operation, return_code, handle_type, handle)
    message = render(operation, return_code, records)
    logger.error("%s failed: %s", operation, message)
    raise error_class(message, operation=operation, return_code=return_code, diagnostics=records)
