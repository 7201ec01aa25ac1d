"""
Lenient CSV reader for the legacy exports.

The exports come from ad-hoc MySQL queries and are not always well formed:
rows may be ragged, quoted fields may contain stray quotes and ``NULL`` is
written literally. Every row is mapped by header name onto a row model.
"""

from __future__ import annotations

import csv
import sys
from typing import TYPE_CHECKING, TypeVar

from pydantic import ValidationError

from audiofast_migration.errors import SourceFileError
from audiofast_migration.logging_config import get_logger

if TYPE_CHECKING:
    from pathlib import Path

    from audiofast_migration.source.models import SourceRow

logger = get_logger(__name__)

RowT = TypeVar("RowT", bound="SourceRow")

NULL_LITERALS = frozenset({"NULL", "null"})

# Product boxes and article HTML can be far larger than the csv module default
csv.field_size_limit(min(sys.maxsize, 2**31 - 1))


def clean_value(value: str | None) -> str | None:
    """Trim a raw cell and map empty / literal NULL cells to ``None``."""
    if value is None:
        return None
    value = value.strip()
    if not value or value in NULL_LITERALS:
        return None
    return value


def read_csv(path: Path, row_model: type[RowT], *, encoding: str = "utf-8-sig") -> list[RowT]:
    """
    Parse a CSV export with a header row into ``row_model`` instances.

    Short rows are padded with ``None``, surplus cells are dropped and blank
    lines are skipped. Rows the model rejects are logged and skipped.

    Raises:
        SourceFileError: the file is missing or cannot be decoded.
    """
    if not path.is_file():
        raise SourceFileError(path, "file not found")

    try:
        with open(path, encoding=encoding, newline="") as f:
            reader = csv.reader(f, skipinitialspace=True, strict=False)
            header = next(reader, None)
            if header is None:
                logger.warning("csv_empty", path=str(path))
                return []
            columns = [h.strip() for h in header]

            rows: list[RowT] = []
            ragged = 0
            for line_no, raw in enumerate(reader, start=2):
                if not raw or all(not cell.strip() for cell in raw):
                    continue
                if len(raw) != len(columns):
                    ragged += 1
                    raw = (raw + [None] * len(columns))[: len(columns)]
                record = {col: clean_value(cell) for col, cell in zip(columns, raw) if col}
                try:
                    rows.append(row_model(**record))
                except ValidationError as e:
                    logger.warning("csv_row_rejected", path=str(path), line=line_no, error=str(e))
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise SourceFileError(path, str(e)) from e

    logger.info("csv_loaded", path=str(path), rows=len(rows), ragged=ragged, model=row_model.__name__)
    return rows


def read_optional_csv(path: Path, row_model: type[RowT]) -> list[RowT]:
    """Like :func:`read_csv`, but a missing file yields an empty list.

    Used for auxiliary lookup files (link maps) whose absence only degrades
    link resolution.
    """
    try:
        return read_csv(path, row_model)
    except SourceFileError as e:
        logger.warning("optional_csv_missing", path=e.path, reason=e.reason)
        return []
