"""
Row validation models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Severity(str, Enum):
    FIXABLE = "fixable"
    TERMINAL = "terminal"


class IssueType(str, Enum):
    REQUIRED = "required_field"
    MISSING_NAME_FALLBACK = "missing_name_fallback"
    INVALID_NUMBER = "invalid_number"
    FIXABLE_NUMBER = "fixable_number"
    INVALID_URL = "invalid_url"
    FIXABLE_URL = "fixable_url"


@dataclass(frozen=True)
class ValidationIssue:
    """One violation on one field of one row."""
    row_index: int
    field: str
    severity: Severity
    issue_type: IssueType
    message: str
    suggested_value: Optional[str] = None

    @property
    def fixable(self) -> bool:
        return self.severity == Severity.FIXABLE and self.suggested_value is not None

    def to_dict(self) -> dict:
        return {
            "row_index": self.row_index,
            "field": self.field,
            "severity": self.severity.value,
            "type": self.issue_type.value,
            "message": self.message,
            "suggested_value": self.suggested_value,
        }


@dataclass
class IssueSummary:
    """Issue count grouped by type and field."""
    issue_type: IssueType
    field: str
    count: int
    fixable: bool


@dataclass
class ValidationReport:
    """
    Issues per row index. Rows without issues have no entry.
    """
    row_count: int = 0
    issues: dict[int, list[ValidationIssue]] = field(default_factory=dict)

    def issues_for(self, row_index: int) -> list[ValidationIssue]:
        return self.issues.get(row_index, [])

    def is_importable(self, row_index: int) -> bool:
        return not any(i.severity == Severity.TERMINAL for i in self.issues_for(row_index))

    @property
    def importable_rows(self) -> list[int]:
        return [i for i in range(self.row_count) if self.is_importable(i)]

    @property
    def blocked_rows(self) -> list[int]:
        return [i for i in range(self.row_count) if not self.is_importable(i)]

    @property
    def issue_count(self) -> int:
        return sum(len(items) for items in self.issues.values())

    @property
    def fixable_row_count(self) -> int:
        return sum(1 for items in self.issues.values() if any(i.fixable for i in items))

    @property
    def has_issues(self) -> bool:
        return self.issue_count > 0

    def summary(self) -> list[IssueSummary]:
        counts: dict[tuple[IssueType, str], int] = {}
        for items in self.issues.values():
            for issue in items:
                key = (issue.issue_type, issue.field)
                counts[key] = counts.get(key, 0) + 1
        return [
            IssueSummary(
                issue_type=issue_type,
                field=field_name,
                count=count,
                fixable=issue_type in (
                    IssueType.FIXABLE_NUMBER,
                    IssueType.FIXABLE_URL,
                    IssueType.MISSING_NAME_FALLBACK,
                ),
            )
            for (issue_type, field_name), count in counts.items()
        ]

    def to_dict(self) -> dict:
        return {
            "row_count": self.row_count,
            "issue_count": self.issue_count,
            "importable_rows": len(self.importable_rows),
            "blocked_rows": self.blocked_rows,
            "fixable_rows": self.fixable_row_count,
            "issues": {
                str(row): [i.to_dict() for i in items]
                for row, items in self.issues.items()
            },
            "summary": [
                {
                    "type": s.issue_type.value,
                    "field": s.field,
                    "count": s.count,
                    "fixable": s.fixable,
                }
                for s in self.summary()
            ],
        }
