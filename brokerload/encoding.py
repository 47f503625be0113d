"""Render rows as delimited text lines for broker load."""

from __future__ import annotations

import datetime as dt
import json
from typing import Any, Iterable

COLUMN_SEPARATOR = "\t"
LINE_DELIMITER = "\n"
NULL_MARKER = "\\N"


def encode_value(value: Any, column_separator: str = COLUMN_SEPARATOR, null_marker: str = NULL_MARKER) -> str:
    if value is None:
        return null_marker
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dt.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, dt.date):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        text = bytes(value).decode("utf-8", errors="replace")
    elif isinstance(value, (list, tuple, dict)):
        text = json.dumps(value, default=str, ensure_ascii=False)
    else:
        text = str(value)
    return (
        text.replace("\\", "\\\\")
        .replace(column_separator, "\\" + ("t" if column_separator == "\t" else column_separator))
        .replace("\r", "\\r")
        .replace("\n", "\\n")
    )


def encode_row(
    values: Iterable[Any], column_separator: str = COLUMN_SEPARATOR, null_marker: str = NULL_MARKER
) -> str:
    """Encode one row as a newline-terminated line; ``None`` becomes the null marker."""
    line = column_separator.join(encode_value(v, column_separator, null_marker) for v in values)
    return line + LINE_DELIMITER
