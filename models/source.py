"""
Source file models.

Rows read from an uploaded spreadsheet, the reader's diagnostic log,
and the pre-validation report computed before any mapping exists.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Literal, Mapping, Optional


class SourceKind(str, Enum):
    """Declared kind of an uploaded source file."""
    DELIMITED = "delimited"
    SPREADSHEET = "spreadsheet"

    @classmethod
    def from_filename(cls, filename: str) -> "SourceKind":
        """Infer kind from extension (.csv/.txt -> delimited, .xls/.xlsx -> spreadsheet)."""
        lowered = (filename or "").lower()
        if lowered.endswith((".xls", ".xlsx", ".xlsm")):
            return cls.SPREADSHEET
        return cls.DELIMITED


@dataclass(frozen=True)
class SourceRow:
    """
    One data row: header name -> sanitized cell text.

    Immutable once parsed. Corrections produce a new row via replace().
    """
    index: int
    line_number: int
    cells: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "cells", MappingProxyType(dict(self.cells)))

    def get(self, header: Optional[str], default: str = "") -> str:
        if not header:
            return default
        return self.cells.get(header, default)

    def replace(self, header: str, value: str) -> "SourceRow":
        """Copy of this row with one cell changed."""
        cells = dict(self.cells)
        cells[header] = value
        return SourceRow(index=self.index, line_number=self.line_number, cells=cells)

    def is_blank(self) -> bool:
        return all(not v for v in self.cells.values())


@dataclass
class DiagnosticEntry:
    """Single reader log line; repeated messages bump count."""
    level: Literal["info", "warning", "error"]
    message: str
    count: int = 1


@dataclass
class ReadDiagnostics:
    """Ordered log of what the reader saw and skipped."""
    total_lines: int = 0
    blank_lines: int = 0
    malformed_lines: int = 0
    column_count: int = 0
    entries: list[DiagnosticEntry] = field(default_factory=list)

    def add(self, level: Literal["info", "warning", "error"], message: str) -> None:
        for entry in self.entries:
            if entry.message == message:
                entry.count += 1
                return
        self.entries.append(DiagnosticEntry(level=level, message=message))

    @property
    def warnings(self) -> list[DiagnosticEntry]:
        return [e for e in self.entries if e.level != "info"]

    def to_dict(self) -> dict:
        return {
            "total_lines": self.total_lines,
            "blank_lines": self.blank_lines,
            "malformed_lines": self.malformed_lines,
            "column_count": self.column_count,
            "entries": [
                {"level": e.level, "message": e.message, "count": e.count}
                for e in self.entries
            ],
        }


@dataclass
class ReadResult:
    """Output of the tabular reader."""
    headers: tuple[str, ...]
    rows: list[SourceRow]
    diagnostics: ReadDiagnostics


# ===================
# PRE-VALIDATION
# ===================

@dataclass
class ColumnCandidate:
    """A header that looks like it could hold a given kind of value."""
    header: str
    confidence: float
    matches: Optional[int] = None


@dataclass
class ReportMessage:
    severity: Literal["error", "warning", "info"]
    message: str


@dataclass
class PreValidationReport:
    """Heuristic overview of the source before mapping."""
    total_records: int = 0
    valid_records: int = 0
    empty_records: int = 0
    possible_id_columns: list[ColumnCandidate] = field(default_factory=list)
    possible_image_columns: list[ColumnCandidate] = field(default_factory=list)
    possible_name_columns: list[ColumnCandidate] = field(default_factory=list)
    unique_values: dict[str, int] = field(default_factory=dict)
    warnings: list[ReportMessage] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(w.severity == "error" for w in self.warnings)

    def to_dict(self) -> dict:
        def _candidates(items: list[ColumnCandidate]) -> list[dict]:
            return [
                {"header": c.header, "confidence": round(c.confidence, 3), "matches": c.matches}
                for c in items
            ]

        return {
            "total_records": self.total_records,
            "valid_records": self.valid_records,
            "empty_records": self.empty_records,
            "possible_id_columns": _candidates(self.possible_id_columns),
            "possible_image_columns": _candidates(self.possible_image_columns),
            "possible_name_columns": _candidates(self.possible_name_columns),
            "unique_values": dict(self.unique_values),
            "warnings": [{"severity": w.severity, "message": w.message} for w in self.warnings],
            "suggestions": list(self.suggestions),
        }
