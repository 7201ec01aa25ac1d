"""
Row extraction from raw MySQL dump text.

Only ``INSERT INTO `table` VALUES (...),(...);`` statements are understood;
there is no general SQL parser here. Tuple literals are split in a single
linear scan that honours quoted strings (doubled quotes and backslash escapes
included), so embedded commas and parentheses inside strings are safe.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, TypeVar

from pydantic import ValidationError

from audiofast_migration.errors import SourceFileError
from audiofast_migration.logging_config import get_logger
from audiofast_migration.source.csv_reader import clean_value

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from audiofast_migration.source.models import SourceRow

logger = get_logger(__name__)

RowT = TypeVar("RowT", bound="SourceRow")

# MySQL escape sequences inside quoted strings
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "0": "\0", "Z": "\x1a", "b": "\b"}

# Next character that can end or escape a quoted run
_QUOTE_SPECIALS = {
    "'": re.compile(r"['\\]"),
    '"': re.compile(r'["\\]'),
}


def _insert_pattern(table: str) -> re.Pattern[str]:
    return re.compile(
        r"INSERT\s+INTO\s+`?" + re.escape(table) + r"`?\s*(?:\([^)]*\)\s*)?VALUES\s*",
        re.IGNORECASE,
    )


def _finish_value(buf: list[str], quoted: bool) -> str | None:
    value = "".join(buf)
    if quoted:
        return value
    value = value.strip()
    if value.upper() == "NULL":
        return None
    return value


def _scan_values(text: str, pos: int) -> tuple[list[list[str | None]], int]:
    """Scan tuples starting at *pos* until the statement's closing ``;``.

    Returns the parsed tuples and the offset just past the statement.
    """
    n = len(text)
    rows: list[list[str | None]] = []
    row: list[str | None] | None = None
    buf: list[str] = []
    quoted = False
    in_quote: str | None = None
    i = pos

    while i < n:
        if in_quote:
            m = _QUOTE_SPECIALS[in_quote].search(text, i)
            if m is None:
                buf.append(text[i:])
                i = n
                break
            j = m.start()
            buf.append(text[i:j])
            if text[j] == "\\":
                if j + 1 < n:
                    nxt = text[j + 1]
                    buf.append(_ESCAPES.get(nxt, nxt))
                i = j + 2
            elif j + 1 < n and text[j + 1] == in_quote:
                buf.append(in_quote)
                i = j + 2
            else:
                in_quote = None
                i = j + 1
            continue

        ch = text[i]
        if row is None:
            if ch == "(":
                row = []
                buf = []
                quoted = False
            elif ch == ";":
                return rows, i + 1
            i += 1
            continue

        if ch in ("'", '"'):
            in_quote = ch
            quoted = True
        elif ch == ",":
            row.append(_finish_value(buf, quoted))
            buf = []
            quoted = False
        elif ch == ")":
            row.append(_finish_value(buf, quoted))
            rows.append(row)
            row = None
            buf = []
            quoted = False
        else:
            buf.append(ch)
        i += 1

    # Unterminated statement: keep whatever tuples were closed
    if row is not None:
        logger.warning("sql_tuple_unterminated", offset=pos)
    return rows, n


def parse_sql_table(sql_text: str, table: str) -> list[list[str | None]]:
    """
    Extract every value tuple inserted into *table*.

    ``NULL`` becomes ``None``; quoted values are returned verbatim (unescaped).
    Multiple INSERT statements for the same table are concatenated in order.
    """
    pattern = _insert_pattern(table)
    rows: list[list[str | None]] = []
    pos = 0
    statements = 0
    while True:
        m = pattern.search(sql_text, pos)
        if m is None:
            break
        statements += 1
        tuples, pos = _scan_values(sql_text, m.end())
        rows.extend(tuples)

    logger.debug("sql_table_scanned", table=table, statements=statements, rows=len(rows))
    return rows


def read_sql_dump(
    path: Path,
    table: str,
    row_model: type[RowT],
    columns: Sequence[str] | None = None,
) -> list[RowT]:
    """
    Read the rows of *table* from a dump file and map them positionally.

    Args:
        path: SQL dump file
        table: table name as it appears in the INSERT statements
        row_model: model the values are mapped onto
        columns: column order; defaults to the model's field order

    Raises:
        SourceFileError: the file is missing or unreadable.
    """
    if not path.is_file():
        raise SourceFileError(path, "file not found")
    try:
        sql_text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise SourceFileError(path, str(e)) from e

    cols = tuple(columns or row_model.model_fields)
    raw_rows = parse_sql_table(sql_text, table)
    if not raw_rows:
        logger.warning("sql_table_not_found", path=str(path), table=table)
        return []

    rows: list[RowT] = []
    short = 0
    for values in raw_rows:
        if len(values) < len(cols):
            short += 1
            logger.debug("sql_tuple_too_short", table=table, fields=len(values), expected=len(cols))
            continue
        record = {col: clean_value(val) for col, val in zip(cols, values)}
        try:
            rows.append(row_model(**record))
        except ValidationError as e:
            short += 1
            logger.warning("sql_row_rejected", table=table, error=str(e))

    logger.info("sql_table_loaded", path=str(path), table=table, rows=len(rows), skipped=short)
    return rows
