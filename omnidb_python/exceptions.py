"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module contains custom exception classes for the omnidb_python package.
These classes are used to raise exceptions when an error occurs while executing a query.
"""

from dataclasses import dataclass
from typing import List, Optional


# SQLSTATEs a caller can reasonably retry on. Class 08 is matched by prefix.
TRANSIENT_SQLSTATES = frozenset({"HYT00", "HYT01", "40001"})


@dataclass(frozen=True)
class DiagnosticRecord:
    """One diagnostic record read from a native handle after a failed call."""

    sqlstate: str
    native_error: int
    message: str
    operation: str


class Error(Exception):
    """
    Base class for errors.
    This is the base class for all error-related exceptions raised by the package.
    Errors produced by a failed native call carry the operation name, the return
    code and every diagnostic record the driver manager reported.
    """

    def __init__(
        self,
        message: str = "An error occurred",
        operation: Optional[str] = None,
        return_code: Optional[int] = None,
        diagnostics: Optional[List[DiagnosticRecord]] = None,
    ) -> None:
        self.message = message
        self.operation = operation
        self.return_code = return_code
        self.diagnostics = list(diagnostics or [])
        super().__init__(self.message)

    @property
    def sqlstate(self) -> Optional[str]:
        """SQLSTATE of the first diagnostic record, if any."""
        return self.diagnostics[0].sqlstate if self.diagnostics else None

    @property
    def native_error(self) -> Optional[int]:
        """Driver specific error code of the first diagnostic record, if any."""
        return self.diagnostics[0].native_error if self.diagnostics else None

    @property
    def transient(self) -> bool:
        """True when any diagnostic record names a connection or timeout condition."""
        for record in self.diagnostics:
            state = record.sqlstate or ""
            if state.startswith("08") or state in TRANSIENT_SQLSTATES:
                return True
        return False


class InterfaceError(Error):
    """
    Error related to the database interface.
    Raised when the ODBC driver manager library cannot be loaded or bound.
    """

    def __init__(self, message="An interface error occurred", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ArgumentError(Error, TypeError):
    """
    Error related to a caller supplied argument.
    Raised by local validation before any native call is made.
    """

    def __init__(self, message="Invalid argument", **kwargs) -> None:
        super().__init__(message, **kwargs)


class DatabaseError(Error):
    """
    Base class for errors reported by the driver manager or the driver.
    """

    def __init__(self, message="A database error occurred", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ConnectionError(DatabaseError):
    """
    Error raised when connecting fails, when a connection level query fails,
    or when a data access operation is called on a disconnected instance.
    """

    def __init__(self, message="A connection error occurred", **kwargs) -> None:
        super().__init__(message, **kwargs)


class DescribeError(DatabaseError):
    """
    Error raised while preparing a statement or reading its descriptors.
    """

    def __init__(self, message="A describe error occurred", **kwargs) -> None:
        super().__init__(message, **kwargs)


class FetchError(DatabaseError):
    """
    Error raised while executing a statement or fetching its rows.
    """

    def __init__(self, message="A fetch error occurred", **kwargs) -> None:
        super().__init__(message, **kwargs)


class UnsupportedOperationError(DatabaseError):
    """
    Error raised when the driver does not implement an optional function.
    """

    def __init__(self, message="The operation is not supported by the driver", **kwargs) -> None:
        super().__init__(message, **kwargs)
