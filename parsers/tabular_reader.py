"""
Tabular source reader for catalog uploads.

Turns raw CSV / XLS / XLSX bytes into a header row and a list of
sanitized SourceRows, plus a diagnostic log of what was skipped.

Malformed or blank lines never abort the read; they are counted and
reported. Only an empty or unreadable source raises SourceParseError.
"""

import csv
import re
from datetime import date, datetime
from io import BytesIO
from typing import Any, Iterator, Optional

import pandas as pd
import structlog

from exceptions import SourceParseError
from models.source import (
    ReadDiagnostics,
    ReadResult,
    SourceKind,
    SourceRow,
)
from utils.text_utils import sanitize_cell_value

logger = structlog.get_logger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\n|\r")
CANDIDATE_DELIMITERS = (",", ";", "\t")

# Zip container (xlsx) and OLE2 compound file (xls) signatures
_SPREADSHEET_SIGNATURES = (b"PK\x03\x04", b"\xd0\xcf\x11\xe0")


def read_source(
    content: bytes,
    kind: SourceKind,
    delimiter: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> ReadResult:
    """
    Parse an uploaded source file.

    Args:
        content: Raw file bytes
        kind: Delimited text or spreadsheet binary
        delimiter: Force a delimiter for delimited text (auto-detected otherwise)
        max_bytes: Reject files larger than this

    Returns:
        ReadResult with headers, rows and diagnostics

    Raises:
        SourceParseError: If the file is empty, too large, unreadable,
                          or has no header columns
    """
    logger.info("parsing_source", kind=kind.value, size_bytes=len(content or b""))

    if not content:
        raise SourceParseError("Source file is empty")

    if max_bytes is not None and len(content) > max_bytes:
        raise SourceParseError(
            message="Source file is too large",
            details={"size_bytes": len(content), "max_bytes": max_bytes}
        )

    diagnostics = ReadDiagnostics()

    if kind == SourceKind.SPREADSHEET:
        diagnostics.add("info", "Processing spreadsheet file")
        grid = _iter_spreadsheet_lines(content, diagnostics)
    else:
        diagnostics.add("info", "Processing delimited text file")
        grid = _iter_delimited_lines(content, diagnostics, delimiter)

    headers = _read_headers(grid, diagnostics)
    rows = list(_build_rows(headers, grid, diagnostics))

    if diagnostics.blank_lines:
        diagnostics.add("info", f"{diagnostics.blank_lines} blank lines were ignored")
    if diagnostics.malformed_lines:
        diagnostics.add(
            "warning",
            f"{diagnostics.malformed_lines} lines with formatting problems were ignored"
        )
    diagnostics.add("info", f"Processing complete: {len(rows)} records extracted")

    logger.info(
        "source_parsed",
        kind=kind.value,
        columns=len(headers),
        rows=len(rows),
        blank_lines=diagnostics.blank_lines,
        malformed_lines=diagnostics.malformed_lines
    )

    return ReadResult(headers=headers, rows=rows, diagnostics=diagnostics)


# ===================
# DELIMITED TEXT
# ===================

def _decode(content: bytes, diagnostics: ReadDiagnostics) -> str:
    """Decode as UTF-8 (BOM tolerated), falling back to Latin-1."""
    if content.startswith(_SPREADSHEET_SIGNATURES):
        raise SourceParseError(
            message="File looks like a spreadsheet, not delimited text",
            details={"hint": "upload it as .xls/.xlsx"}
        )
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        diagnostics.add("warning", "File is not valid UTF-8; decoded as Latin-1")
        return content.decode("latin-1")


def detect_delimiter(header_line: str) -> str:
    """
    Pick the candidate delimiter occurring most often outside quotes.

    Ties and lines with no candidate resolve to a comma.
    """
    counts = {d: 0 for d in CANDIDATE_DELIMITERS}
    in_quotes = False
    for char in header_line:
        if char == '"':
            in_quotes = not in_quotes
        elif not in_quotes and char in counts:
            counts[char] += 1

    best = ","
    for candidate in CANDIDATE_DELIMITERS:
        if counts[candidate] > counts[best]:
            best = candidate
    return best


def parse_delimited_line(line: str, delimiter: str = ",") -> list[str]:
    """
    Split one line into fields, honoring quotes and "" escapes.

    Raises:
        csv.Error: If quoting is malformed (e.g. unterminated quote)
    """
    reader = csv.reader([line], delimiter=delimiter, quotechar='"', doublequote=True, strict=True)
    return next(reader, [])


def _iter_delimited_lines(
    content: bytes,
    diagnostics: ReadDiagnostics,
    delimiter: Optional[str],
) -> Iterator[tuple[int, list[Any]]]:
    text = _decode(content, diagnostics)
    lines = _LINE_BREAK.split(text)
    if lines and lines[-1] == "":
        lines.pop()  # trailing newline

    diagnostics.total_lines = len(lines)
    diagnostics.add("info", f"Total of {len(lines)} lines found")

    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            diagnostics.blank_lines += 1
            continue

        if delimiter is None:
            # First non-blank line is the header
            delimiter = detect_delimiter(line)
            logger.debug("delimiter_detected", delimiter=repr(delimiter))

        try:
            values = parse_delimited_line(line, delimiter)
        except csv.Error as e:
            diagnostics.malformed_lines += 1
            diagnostics.add("warning", f"Error processing line {line_number}: {e}")
            logger.warning("malformed_line_skipped", line=line_number, error=str(e))
            continue

        yield line_number, values


# ===================
# SPREADSHEET
# ===================

def _load_first_sheet(content: bytes) -> pd.DataFrame:
    """Read the first sheet without headers, trying openpyxl then xlrd."""
    last_error: Optional[Exception] = None
    for engine in ["openpyxl", "xlrd"]:
        try:
            df = pd.read_excel(
                BytesIO(content),
                sheet_name=0,
                header=None,
                dtype=object,
                engine=engine,
            )
            logger.debug("spreadsheet_loaded", engine=engine, rows=len(df), columns=len(df.columns))
            return df
        except Exception as e:
            last_error = e
            continue

    logger.error("spreadsheet_read_failed", error=str(last_error))
    raise SourceParseError(
        message="Failed to read spreadsheet file",
        details={"original_error": str(last_error)}
    )


def cell_to_text(value: Any) -> str:
    """
    Render a spreadsheet cell as text.

    12.0 -> "12", 10.5 -> "10.5", datetimes -> ISO, empty -> "".
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, pd.Timestamp)):
        if value.hour == 0 and value.minute == 0 and value.second == 0:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _iter_spreadsheet_lines(
    content: bytes,
    diagnostics: ReadDiagnostics,
) -> Iterator[tuple[int, list[Any]]]:
    df = _load_first_sheet(content)

    diagnostics.total_lines = len(df)
    diagnostics.add("info", f"Total of {len(df)} lines found")

    for position, row in enumerate(df.itertuples(index=False, name=None), start=1):
        values = [cell_to_text(v) for v in row]
        if all(not v.strip() for v in values):
            diagnostics.blank_lines += 1
            continue
        yield position, values


# ===================
# SHARED
# ===================

def _read_headers(
    grid: Iterator[tuple[int, list[Any]]],
    diagnostics: ReadDiagnostics,
) -> tuple[str, ...]:
    """Consume the first line of grid as the header row."""
    first = next(grid, None)
    if first is None:
        raise SourceParseError("Source has no header row")

    _, raw_headers = first
    headers = normalize_headers(raw_headers, diagnostics)
    if not headers:
        raise SourceParseError("No header columns detected")

    diagnostics.column_count = len(headers)
    diagnostics.add("info", f"{len(headers)} columns identified: {', '.join(headers)}")
    return headers


def normalize_headers(raw_headers: list[Any], diagnostics: ReadDiagnostics) -> tuple[str, ...]:
    """
    Sanitize header cells.

    Every cell of the line is kept, so there are as many headers as
    columns. Blank cells become "column_<n>" and duplicates get a
    numeric suffix. A line with no named cell yields no headers.
    """
    cleaned = [sanitize_cell_value(h) for h in raw_headers]
    if not any(cleaned):
        return ()

    headers: list[str] = []
    seen: dict[str, int] = {}
    for position, header in enumerate(cleaned, start=1):
        if not header:
            header = f"column_{position}"
            diagnostics.add("warning", f"Blank header in column {position} renamed to {header}")
        if header in seen:
            seen[header] += 1
            renamed = f"{header}_{seen[header]}"
            diagnostics.add("warning", f"Duplicate header '{header}' renamed to {renamed}")
            header = renamed
        else:
            seen[header] = 1
        headers.append(header)
    return tuple(headers)


def _build_rows(
    headers: tuple[str, ...],
    grid: Iterator[tuple[int, list[Any]]],
    diagnostics: ReadDiagnostics,
) -> Iterator[SourceRow]:
    index = 0
    for line_number, values in grid:
        cells = {
            header: sanitize_cell_value(values[j] if j < len(values) else "")
            for j, header in enumerate(headers)
        }
        if all(not v for v in cells.values()):
            # Every field empty after sanitizing
            diagnostics.blank_lines += 1
            continue

        if len(values) > len(headers) and any(sanitize_cell_value(v) for v in values[len(headers):]):
            diagnostics.add("warning", "Values beyond the last header column were ignored")

        yield SourceRow(index=index, line_number=line_number, cells=cells)
        index += 1
