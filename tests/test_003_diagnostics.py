"""
Tests for reading diagnostic records and turning failed calls into errors.
"""

import pytest

from omnidb_python.constants import ConstantsODBC
from omnidb_python.diagnostics import (
    check_error,
    collect_diagnostics,
    explain,
    generic_message,
    render,
)
from omnidb_python.exceptions import DatabaseError, DiagnosticRecord, FetchError

SQL_HANDLE_STMT = ConstantsODBC.SQL_HANDLE_STMT.value
SQL_ERROR = ConstantsODBC.SQL_ERROR.value


@pytest.fixture
def failed_handle(fake_odbc):
    fake_odbc.diags[42] = [
        ("42S02", 208, "Invalid object name 'missing'."),
        ("42000", 8180, "Statement(s) could not be prepared."),
    ]
    return 42


def test_collect_reads_every_record(failed_handle):
    records = collect_diagnostics("SQLExecDirect", SQL_ERROR, SQL_HANDLE_STMT, failed_handle)
    assert records == [
        DiagnosticRecord("42S02", 208, "Invalid object name 'missing'.", "SQLExecDirect"),
        DiagnosticRecord("42000", 8180, "Statement(s) could not be prepared.", "SQLExecDirect"),
    ]


def test_collect_only_after_sql_error(failed_handle):
    assert collect_diagnostics("SQLExecDirect", -2, SQL_HANDLE_STMT, failed_handle) == []
    assert collect_diagnostics("SQLExecDirect", SQL_ERROR, SQL_HANDLE_STMT, None) == []


def test_collect_never_raises(fake_odbc):
    def broken(handle_type, handle):
        raise RuntimeError("driver manager crashed")

    fake_odbc.get_diag_count = broken
    assert collect_diagnostics("SQLFetch", SQL_ERROR, SQL_HANDLE_STMT, 1) == []


def test_explain_format(failed_handle):
    message = explain("SQLExecDirect", SQL_ERROR, SQL_HANDLE_STMT, failed_handle)
    assert message == (
        "[ERROR] Invalid object name 'missing'.(API:SQLExecDirect, STATE:42S02, NATIVE:208), "
        "[ERROR] Statement(s) could not be prepared.(API:SQLExecDirect, STATE:42000, NATIVE:8180)"
    )


def test_explain_without_records(fake_odbc):
    assert explain("SQLFetch", SQL_ERROR, SQL_HANDLE_STMT, 7) == "SQLFetch error (code -1)"
    assert explain("SQLFetch", -2, SQL_HANDLE_STMT, 7) == "SQLFetch error (code -2)"


def test_render_and_generic_message():
    assert generic_message("SQLPrepare", -1) == "SQLPrepare error (code -1)"
    assert render("SQLPrepare", -1, []) == "SQLPrepare error (code -1)"
    record = DiagnosticRecord("HY000", 1, "boom", "SQLPrepare")
    assert render("SQLPrepare", -1, [record]) == "[ERROR] boom(API:SQLPrepare, STATE:HY000, NATIVE:1)"


class TestCheckError:
    def test_success_codes_pass(self, fake_odbc):
        assert check_error("SQLFetch", 0, SQL_HANDLE_STMT, 1) == 0
        assert check_error("SQLFetch", 1, SQL_HANDLE_STMT, 1) == 1

    def test_accepted_code_passes(self, fake_odbc):
        assert check_error("SQLExecDirect", 100, SQL_HANDLE_STMT, 1, accept=(100,)) == 100

    def test_no_data_fails_unless_accepted(self, fake_odbc):
        with pytest.raises(DatabaseError) as excinfo:
            check_error("SQLExecDirect", 100, SQL_HANDLE_STMT, 1)
        assert excinfo.value.message == "SQLExecDirect error (code 100)"

    def test_raises_error_class_with_details(self, failed_handle):
        with pytest.raises(FetchError) as excinfo:
            check_error("SQLExecDirect", SQL_ERROR, SQL_HANDLE_STMT, failed_handle, FetchError)
        error = excinfo.value
        assert error.operation == "SQLExecDirect"
        assert error.return_code == SQL_ERROR
        assert error.sqlstate == "42S02"
        assert error.native_error == 208
        assert len(error.diagnostics) == 2
        assert str(error).startswith("[ERROR] Invalid object name")
