"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.

Logging module for omnidb_python.
Logging is off until setup_logging() is called or OMNIDB_DEBUG is set.
"""

import contextvars
import datetime
import logging
import os
import re
import sys
import threading
from logging.handlers import RotatingFileHandler
from typing import Optional


DEBUG = logging.DEBUG

# Output destination constants
STDOUT = "stdout"
FILE = "file"
BOTH = "both"

DEBUG_ENV_VAR = "OMNIDB_DEBUG"
LOG_DIR_NAME = "omnidb_python_logs"

_trace_id_var = contextvars.ContextVar("trace_id", default=None)

_CREDENTIAL_PATTERNS = [
    (re.compile(r"(PWD|Password|pwd|password)\s*=\s*[^;,\s]+"), r"\1=***"),
    (re.compile(r"(TOKEN|Token|token)\s*=\s*[^;,\s]+"), r"\1=***"),
    (re.compile(r"(Authorization:\s*Bearer\s+)[^\s;,]+"), r"\1***"),
]


class TraceIDFilter(logging.Filter):
    """Filter that adds trace_id to all log records."""

    def filter(self, record):
        trace_id = _trace_id_var.get()
        record.trace_id = trace_id if trace_id else "-"
        return True


def compact_sql(sql: Optional[str]) -> str:
    """
    Collapse a multi-line SQL text into a single line for logging.

    Each line is stripped and the lines are joined with one space.
    """
    if not sql:
        return ""
    lines = re.split(r"\r?\n", sql)
    return " ".join(line.strip() for line in lines).strip()


class OmniDbLogger:
    """
    Singleton logger for omnidb_python.

    Features:
    - Disabled by default, DEBUG when enabled
    - File output with rotation (512MB, 5 backups), stdout, or both
    - Credential masking on every message
    - Trace IDs carried through contextvars
    """

    _instance: Optional["OmniDbLogger"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "OmniDbLogger":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(OmniDbLogger, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, "_initialized"):
            return
        self._initialized = True

        self._logger = logging.getLogger("omnidb_python")
        self._logger.setLevel(logging.CRITICAL)
        self._logger.propagate = False
        self._logger.addFilter(TraceIDFilter())

        self._trace_counter = 0
        self._trace_lock = threading.Lock()

        self._output_mode = FILE
        self._file_handler = None
        self._stdout_handler = None
        self._log_file = None
        self._custom_log_path = None
        self._handlers_initialized = False

    def _setup_handlers(self):
        """
        Create the file and/or stdout handler for the current output mode,
        closing whatever handlers were attached before.
        """
        for handler in self._logger.handlers[:]:
            handler.close()
            self._logger.removeHandler(handler)

        self._file_handler = None
        self._stdout_handler = None

        formatter = logging.Formatter(
            "%(asctime)s [%(trace_id)s] - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
        )

        if self._output_mode in (FILE, BOTH):
            if self._custom_log_path:
                self._log_file = self._custom_log_path
                log_dir = os.path.dirname(self._custom_log_path)
                if log_dir:
                    os.makedirs(log_dir, exist_ok=True)
            else:
                log_dir = os.path.join(os.getcwd(), LOG_DIR_NAME)
                os.makedirs(log_dir, exist_ok=True)
                timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
                self._log_file = os.path.join(
                    log_dir, f"omnidb_python_trace_{timestamp}_{os.getpid()}.log"
                )

            self._file_handler = RotatingFileHandler(
                self._log_file, maxBytes=512 * 1024 * 1024, backupCount=5
            )
            self._file_handler.setFormatter(formatter)
            self._logger.addHandler(self._file_handler)
        else:
            self._log_file = None

        if self._output_mode in (STDOUT, BOTH):
            self._stdout_handler = logging.StreamHandler(sys.stdout)
            self._stdout_handler.setFormatter(formatter)
            self._logger.addHandler(self._stdout_handler)

    @staticmethod
    def _sanitize_message(msg: str) -> str:
        """Replace credential values (PWD=, Password=, tokens) with ***."""
        for pattern, replacement in _CREDENTIAL_PATTERNS:
            msg = pattern.sub(replacement, msg)
        return msg

    def generate_trace_id(self, prefix: str = "TRACE") -> str:
        """
        Generate a unique trace ID in the form PREFIX-PID-ThreadID-Counter,
        e.g. CONN-12345-67890-1 or OP-12345-67890-2.
        """
        with self._trace_lock:
            self._trace_counter += 1
            counter = self._trace_counter
        return f"{prefix}-{os.getpid()}-{threading.get_ident()}-{counter}"

    def set_trace_id(self, trace_id: Optional[str]):
        """Set the trace ID for the current context; returns the reset token."""
        return _trace_id_var.set(trace_id)

    def reset_trace_id(self, token) -> None:
        """Restore the trace ID that was active before set_trace_id()."""
        _trace_id_var.reset(token)

    def get_trace_id(self) -> Optional[str]:
        return _trace_id_var.get()

    def clear_trace_id(self):
        _trace_id_var.set(None)

    def _log(self, level: int, msg: str, *args, **kwargs):
        if not self._logger.isEnabledFor(level):
            return
        if args:
            msg = msg % args
        self._logger.log(level, self._sanitize_message(msg), **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        """Log at DEBUG level"""
        self._log(logging.DEBUG, f"[Python] {msg}", *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        """Log at INFO level"""
        self._log(logging.INFO, f"[Python] {msg}", *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        """Log at WARNING level"""
        self._log(logging.WARNING, f"[Python] {msg}", *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        """Log at ERROR level"""
        self._log(logging.ERROR, f"[Python] {msg}", *args, **kwargs)

    def _setLevel(
        self, level: int, output: Optional[str] = None, log_file_path: Optional[str] = None
    ):
        """
        Internal method to set the logging level (use setup_logging() instead).

        Raises:
            ValueError: If output mode is invalid
        """
        if output is not None:
            if output not in (FILE, STDOUT, BOTH):
                raise ValueError(
                    f"Invalid output mode: {output}. "
                    f"Must be one of: {FILE}, {STDOUT}, {BOTH}"
                )
            self._output_mode = output

        if log_file_path is not None:
            self._custom_log_path = log_file_path

        if not self._handlers_initialized or output is not None or log_file_path is not None:
            self._setup_handlers()
            self._handlers_initialized = True

        self._logger.setLevel(level)

    def getLevel(self) -> int:
        return self._logger.level

    def isEnabledFor(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    @property
    def handlers(self) -> list:
        return self._logger.handlers

    @property
    def output(self) -> str:
        return self._output_mode

    @output.setter
    def output(self, mode: str):
        if mode not in (FILE, STDOUT, BOTH):
            raise ValueError(
                f"Invalid output mode: {mode}. "
                f"Must be one of: {FILE}, {STDOUT}, {BOTH}"
            )
        self._output_mode = mode
        if self._handlers_initialized:
            self._setup_handlers()

    @property
    def log_file(self) -> Optional[str]:
        """Current log file path (None if file output is disabled)"""
        return self._log_file


# Singleton logger instance
logger = OmniDbLogger()


def setup_logging(output: str = "file", log_file_path: Optional[str] = None):
    """
    Enable DEBUG logging for troubleshooting.

    Args:
        output: Where to send logs: 'file' (default), 'stdout' or 'both'.
        log_file_path: Optional custom path for the log file. If not given,
            a file is created under ./omnidb_python_logs/.

    Examples:
        import omnidb_python

        omnidb_python.setup_logging()
        omnidb_python.setup_logging(output='stdout')
        omnidb_python.setup_logging(output='both', log_file_path="/tmp/omnidb.log")
    """
    logger._setLevel(logging.DEBUG, output, log_file_path)
    return logger


def setup_logging_from_env() -> bool:
    """Enable stdout logging when OMNIDB_DEBUG is set to a non-empty value."""
    if os.environ.get(DEBUG_ENV_VAR):
        setup_logging(output=STDOUT)
        return True
    return False
