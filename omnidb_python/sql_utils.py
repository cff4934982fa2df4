"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
Helpers for embedding values in SQL text.
"""

import re

_SPECIAL_CHARS = re.compile(r"\r\n|[\r\n\t]")


def escape_sql_string(text: str, backslash: bool = True) -> str:
    """
    Escape text for use inside a single-quoted SQL literal.

    Single quotes are doubled. With backslash=True, backslashes and double
    quotes are also escaped with a backslash (MySQL/PostgreSQL style).
    """
    escaped = text.replace("'", "''")
    if backslash:
        escaped = escaped.replace("\\", "\\\\")
        escaped = escaped.replace('"', '\\"')
    return escaped


def replace_special_chars(text: str) -> str:
    """Replace line breaks and tabs with single spaces."""
    return _SPECIAL_CHARS.sub(" ", text)


def quote_literal(text: str, backslash: bool = True) -> str:
    """Escape text and wrap it in single quotes."""
    return "'" + escape_sql_string(text, backslash) + "'"
