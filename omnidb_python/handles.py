"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module owns native ODBC handles.

- SqlHandle frees its native handle exactly once; later free() calls are no-ops.
- statement() scopes a statement handle to a with-block and frees it on every exit path.
- Environment holds the single process-wide environment handle.
"""

import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Type

from omnidb_python.constants import ConstantsODBC, sql_succeeded
from omnidb_python.diagnostics import check_error, explain
from omnidb_python.exceptions import ConnectionError, DatabaseError
from omnidb_python.logging import logger
from omnidb_python.odbc_bindings import get_bindings

_HANDLE_NAMES = {
    ConstantsODBC.SQL_HANDLE_ENV.value: "ENV",
    ConstantsODBC.SQL_HANDLE_DBC.value: "DBC",
    ConstantsODBC.SQL_HANDLE_STMT.value: "STMT",
}


class SqlHandle:
    """
    Exclusive owner of one native handle.

    The handle value is cleared on free(), so a released handle cannot be
    released again or handed to another native call.
    """

    def __init__(self, handle_type: int, value) -> None:
        self.handle_type = handle_type
        self._value = value

    @property
    def value(self):
        if self._value is None:
            raise DatabaseError(
                f"{_HANDLE_NAMES.get(self.handle_type, self.handle_type)} handle used after release"
            )
        return self._value

    @property
    def freed(self) -> bool:
        return self._value is None

    @classmethod
    def allocate(cls, handle_type: int, parent: Optional["SqlHandle"],
                 error_class: Type[DatabaseError] = DatabaseError) -> "SqlHandle":
        """
        Allocate a handle under parent (None for the environment).

        Raises:
            error_class: If SQLAllocHandle fails; diagnostics come from the parent.
        """
        api = get_bindings()
        parent_value = parent.value if parent is not None else None
        ret, value = api.alloc_handle(handle_type, parent_value)
        if parent is None:
            if not sql_succeeded(ret) or value is None:
                raise error_class(
                    explain("SQLAllocHandle", ret, handle_type, None),
                    operation="SQLAllocHandle",
                    return_code=ret,
                )
        else:
            check_error("SQLAllocHandle", ret, parent.handle_type, parent_value, error_class)
        return cls(handle_type, value)

    def free(self) -> None:
        """
        Release the native handle. Failures are logged, never raised: the
        handle is unusable either way.
        """
        if self._value is None:
            return
        value, self._value = self._value, None
        try:
            ret = get_bindings().free_handle(self.handle_type, value)
        except Exception as e:
            logger.warning("SQLFreeHandle raised for %s handle: %s",
                           _HANDLE_NAMES.get(self.handle_type), e)
            return
        if not sql_succeeded(ret):
            logger.warning("SQLFreeHandle failed for %s handle (code %d)",
                           _HANDLE_NAMES.get(self.handle_type), ret)


@contextmanager
def statement(hdbc: SqlHandle, error_class: Type[DatabaseError] = DatabaseError) -> Iterator[SqlHandle]:
    """
    Allocate a statement handle for the duration of a with-block.

    Example:
        with statement(hdbc, FetchError) as hstmt:
            check_error("SQLExecDirect", api.exec_direct(hstmt.value, sql), ...)
    """
    hstmt = SqlHandle.allocate(ConstantsODBC.SQL_HANDLE_STMT.value, hdbc, error_class)
    try:
        yield hstmt
    finally:
        hstmt.free()


class Environment:
    """
    The process-wide ODBC environment handle.

    Created once on first use, with ODBC 3 behaviour set before any
    connection is allocated from it, and released once at interpreter exit.
    """

    _handle: Optional[SqlHandle] = None
    _lock: threading.Lock = threading.Lock()

    @classmethod
    def handle(cls) -> SqlHandle:
        """
        Return the environment handle, creating it on first call.

        Raises:
            ConnectionError: If the environment cannot be allocated or configured.
        """
        handle = cls._handle
        if handle is not None:
            return handle
        with cls._lock:
            if cls._handle is None:
                cls._handle = cls._create()
            return cls._handle

    @classmethod
    def _create(cls) -> SqlHandle:
        henv = SqlHandle.allocate(ConstantsODBC.SQL_HANDLE_ENV.value, None, ConnectionError)
        try:
            ret = get_bindings().set_env_attr(
                henv.value,
                ConstantsODBC.SQL_ATTR_ODBC_VERSION.value,
                ConstantsODBC.SQL_OV_ODBC3.value,
            )
            check_error("SQLSetEnvAttr", ret, henv.handle_type, henv.value, ConnectionError)
        except Exception:
            henv.free()
            raise
        logger.debug("ODBC environment allocated")
        return henv

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._handle is not None

    @classmethod
    def release(cls) -> None:
        """Free the environment handle. Safe to call more than once."""
        with cls._lock:
            handle, cls._handle = cls._handle, None
        if handle is not None:
            handle.free()
            logger.debug("ODBC environment released")

    @classmethod
    def _reset_for_testing(cls) -> None:
        """Forget the environment handle without freeing it - for testing purposes only"""
        with cls._lock:
            cls._handle = None
