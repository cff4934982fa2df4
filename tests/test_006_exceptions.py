import pytest

from omnidb_python.exceptions import (
    ArgumentError,
    ConnectionError,
    DatabaseError,
    DescribeError,
    DiagnosticRecord,
    Error,
    FetchError,
    InterfaceError,
    UnsupportedOperationError,
)


def _record(sqlstate, native=0, message="message"):
    return DiagnosticRecord(sqlstate, native, message, "SQLExecDirect")


def test_hierarchy():
    assert issubclass(InterfaceError, Error)
    assert issubclass(ArgumentError, Error)
    assert issubclass(ArgumentError, TypeError)
    assert issubclass(DatabaseError, Error)
    for cls in (ConnectionError, DescribeError, FetchError, UnsupportedOperationError):
        assert issubclass(cls, DatabaseError)


def test_default_messages():
    assert ConnectionError().message == "A connection error occurred"
    assert DescribeError().message == "A describe error occurred"
    assert FetchError().message == "A fetch error occurred"
    assert str(InterfaceError()) == "An interface error occurred"


def test_error_attributes():
    error = FetchError(
        "boom",
        operation="SQLFetch",
        return_code=-1,
        diagnostics=[_record("22003", 8115, "Arithmetic overflow")],
    )
    assert str(error) == "boom"
    assert error.operation == "SQLFetch"
    assert error.return_code == -1
    assert error.sqlstate == "22003"
    assert error.native_error == 8115


def test_no_diagnostics():
    error = DatabaseError("plain")
    assert error.sqlstate is None
    assert error.native_error is None
    assert error.diagnostics == []
    assert not error.transient


@pytest.mark.parametrize(
    "sqlstate, transient",
    [
        ("08S01", True),
        ("08001", True),
        ("HYT00", True),
        ("HYT01", True),
        ("40001", True),
        ("42S02", False),
        ("23000", False),
    ],
)
def test_transient(sqlstate, transient):
    error = DatabaseError("x", diagnostics=[_record("01000"), _record(sqlstate)])
    assert error.transient is transient


def test_diagnostic_record_is_immutable():
    record = _record("HY000")
    with pytest.raises(AttributeError):
        record.sqlstate = "42000"
