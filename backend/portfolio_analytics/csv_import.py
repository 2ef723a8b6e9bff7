"""Read broker CSV exports into raw string rows."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Dict, List, Union

import pandas as pd

logger = logging.getLogger(__name__)

_CANDIDATE_DELIMITERS = (";", "\t")


class ExportReadError(RuntimeError):
    """Raised when an export file cannot be read or parsed."""


def detect_delimiter(header_line: str) -> str:
    """Pick ``;`` or tab over ``,`` when it splits the header into more fields."""

    best = ","
    best_count = header_line.count(",")
    for delimiter in _CANDIDATE_DELIMITERS:
        count = header_line.count(delimiter)
        if count > best_count:
            best, best_count = delimiter, count
    return best


def _frame_to_rows(df: pd.DataFrame) -> List[Dict[str, str]]:
    df = df.rename(columns=lambda c: str(c).replace("\ufeff", "").strip())
    if df.empty:
        return []
    df = df.apply(lambda col: col.str.strip())
    return df.to_dict(orient="records")


def parse_export_text(text: str) -> List[Dict[str, str]]:
    """Parse CSV text, tolerating BOMs, blank lines and `;`/tab delimiters."""

    text = text.lstrip("\ufeff")
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return []
    delimiter = detect_delimiter(lines[0])
    try:
        df = pd.read_csv(
            io.StringIO("\n".join(lines)),
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError:
        return []
    except pd.errors.ParserError as exc:
        raise ExportReadError(f"Malformed export: {exc}") from exc
    rows = _frame_to_rows(df)
    logger.info("Parsed %d export rows (delimiter %r)", len(rows), delimiter)
    return rows


def read_export(source: Union[str, Path]) -> List[Dict[str, str]]:
    """Read a CSV export from disk."""

    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise ExportReadError(f"Cannot read export {path}: {exc}") from exc
    return parse_export_text(text)


__all__ = ["ExportReadError", "detect_delimiter", "parse_export_text", "read_export"]
