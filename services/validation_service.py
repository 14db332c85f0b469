"""
Row validation and auto-fix.

Rules, in precedence order, one issue per field at most:

1. Presence: required field blank -> TERMINAL (or FIXABLE with a
   synthesized name when a fallback template is configured)
2. Numeric fields: unparseable value that cleans up into a number
   -> FIXABLE, otherwise TERMINAL
3. URL fields: value not starting with http(s):// but containing a URL
   -> FIXABLE with the first embedded URL, otherwise TERMINAL

Rows are never mutated. Fixes and edits return new rows together with
a fresh report, so the report always describes the rows it came with.
"""

import math
import re
import uuid
from typing import Iterable, Optional

import structlog

from exceptions import ValidationError
from models.catalog import (
    EQUIPMENT_SCHEMA,
    CatalogRecord,
    FieldKind,
    FieldMapping,
    SchemaField,
    TargetField,
    fields_of_kind,
    required_field_names,
)
from models.source import SourceRow
from models.validation import (
    IssueType,
    Severity,
    ValidationIssue,
    ValidationReport,
)
from utils.text_utils import (
    LEADING_URL_PATTERN,
    first_embedded_url,
    is_uuid,
    sanitize_cell_value,
)

logger = structlog.get_logger(__name__)

Schema = tuple[SchemaField, ...]

# Plain decimal, optional sign and exponent; no thousands separators
_PLAIN_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_NOT_NUMERIC = re.compile(r"[^\d.,]")

NAME_ROW_PLACEHOLDER = "{row}"
_TARGET_NAMES = {t.value for t in TargetField}


# ===================
# NUMBERS
# ===================

def parse_number(value: str) -> Optional[float]:
    """Parse a plain decimal string; None if it is not one or not finite."""
    text = (value or "").strip()
    if not _PLAIN_NUMBER.match(text):
        return None
    number = float(text)
    return number if math.isfinite(number) else None


def normalize_number(value: str) -> Optional[str]:
    """
    Clean a messy numeric string into a plain decimal.

    Everything except digits, "." and "," is stripped. With both
    separators present the last one is the decimal point and the other
    is a thousands separator. A single comma is a decimal comma; repeated
    commas or repeated dots are thousands separators.

    "R$ 1.234,56" -> "1234.56", "R$10,5" -> "10.5", "1,234.56" -> "1234.56"

    Returns:
        Normalized string, or None if no number can be recovered
    """
    cleaned = _NOT_NUMERIC.sub("", value or "")
    if not any(ch.isdigit() for ch in cleaned):
        return None

    dots = cleaned.count(".")
    commas = cleaned.count(",")

    if dots and commas:
        decimal = "." if cleaned.rfind(".") > cleaned.rfind(",") else ","
        thousands = "," if decimal == "." else "."
        cleaned = cleaned.replace(thousands, "")
        head, _, tail = cleaned.rpartition(decimal)
        cleaned = f"{head.replace(decimal, '')}.{tail}"
    elif commas == 1:
        cleaned = cleaned.replace(",", ".")
    elif commas > 1:
        cleaned = cleaned.replace(",", "")
    elif dots > 1:
        cleaned = cleaned.replace(".", "")

    return cleaned if parse_number(cleaned) is not None else None


# ===================
# VALIDATION
# ===================

def _missing_name_value(template: str, row: SourceRow) -> str:
    return template.replace(NAME_ROW_PLACEHOLDER, str(row.index + 1))


def validate_row(
    row: SourceRow,
    mapping: FieldMapping,
    required_fields: Iterable[str],
    missing_name_template: Optional[str] = None,
    schema: Schema = EQUIPMENT_SCHEMA,
) -> list[ValidationIssue]:
    """Issues for a single row."""
    issues: list[ValidationIssue] = []
    flagged: set[str] = set()

    for field in required_fields:
        header = mapping.get(field)
        if not header or row.get(header).strip():
            continue
        flagged.add(field)
        if field == TargetField.NAME.value and missing_name_template:
            issues.append(ValidationIssue(
                row_index=row.index,
                field=field,
                severity=Severity.FIXABLE,
                issue_type=IssueType.MISSING_NAME_FALLBACK,
                message="Required field missing (fallback name available)",
                suggested_value=_missing_name_value(missing_name_template, row),
            ))
        else:
            issues.append(ValidationIssue(
                row_index=row.index,
                field=field,
                severity=Severity.TERMINAL,
                issue_type=IssueType.REQUIRED,
                message="Required field missing",
            ))

    for target in fields_of_kind(FieldKind.NUMERIC, schema):
        field = target.value
        header = mapping.get(field)
        value = row.get(header).strip() if header else ""
        if not value or field in flagged or parse_number(value) is not None:
            continue
        normalized = normalize_number(value)
        if normalized is not None:
            issues.append(ValidationIssue(
                row_index=row.index,
                field=field,
                severity=Severity.FIXABLE,
                issue_type=IssueType.FIXABLE_NUMBER,
                message=f"Invalid numeric value (fixable: {normalized})",
                suggested_value=normalized,
            ))
        else:
            issues.append(ValidationIssue(
                row_index=row.index,
                field=field,
                severity=Severity.TERMINAL,
                issue_type=IssueType.INVALID_NUMBER,
                message="Invalid numeric value",
            ))

    for target in fields_of_kind(FieldKind.URL, schema):
        field = target.value
        header = mapping.get(field)
        value = row.get(header).strip() if header else ""
        if not value or field in flagged or LEADING_URL_PATTERN.match(value):
            continue
        embedded = first_embedded_url(value)
        if embedded:
            issues.append(ValidationIssue(
                row_index=row.index,
                field=field,
                severity=Severity.FIXABLE,
                issue_type=IssueType.FIXABLE_URL,
                message=f"Invalid URL (fixable: {embedded})",
                suggested_value=embedded,
            ))
        else:
            issues.append(ValidationIssue(
                row_index=row.index,
                field=field,
                severity=Severity.TERMINAL,
                issue_type=IssueType.INVALID_URL,
                message="Invalid URL",
            ))

    return issues


def validate_all(
    rows: list[SourceRow],
    mapping: FieldMapping,
    required_fields: Optional[Iterable[str]] = None,
    missing_name_template: Optional[str] = None,
    schema: Schema = EQUIPMENT_SCHEMA,
) -> ValidationReport:
    """
    Validate every row.

    Args:
        rows: Source rows (index 0..n-1)
        mapping: Target field -> header
        required_fields: Defaults to the schema's required fields
        missing_name_template: Fallback for a blank name, e.g. "Equipment {row}"
        schema: Target schema

    Returns:
        ValidationReport keyed by row index
    """
    required = list(required_fields) if required_fields is not None else required_field_names(schema)
    report = ValidationReport(row_count=len(rows))

    for row in rows:
        issues = validate_row(row, mapping, required, missing_name_template, schema)
        if issues:
            report.issues[row.index] = issues

    logger.info(
        "rows_validated",
        rows=len(rows),
        issues=report.issue_count,
        blocked_rows=len(report.blocked_rows),
        fixable_rows=report.fixable_row_count
    )
    return report


# ===================
# CORRECTIONS
# ===================

def auto_fix(
    rows: list[SourceRow],
    mapping: FieldMapping,
    report: ValidationReport,
    selection: Optional[Iterable[int]] = None,
    required_fields: Optional[Iterable[str]] = None,
    missing_name_template: Optional[str] = None,
    schema: Schema = EQUIPMENT_SCHEMA,
) -> tuple[list[SourceRow], ValidationReport]:
    """
    Apply every fixable suggestion, then re-validate.

    Args:
        rows: Current rows
        mapping: Target field -> header
        report: Report produced for rows
        selection: Row indexes to fix (all rows when None)

    Returns:
        (fixed rows, fresh report)
    """
    selected = set(selection) if selection is not None else None
    fixed_rows: list[SourceRow] = []
    applied = 0

    for row in rows:
        if selected is None or row.index in selected:
            for issue in report.issues_for(row.index):
                header = mapping.get(issue.field)
                if issue.fixable and header:
                    row = row.replace(header, issue.suggested_value)
                    applied += 1
        fixed_rows.append(row)

    logger.info("auto_fix_applied", fixes=applied, selection=len(selected) if selected is not None else "all")

    new_report = validate_all(fixed_rows, mapping, required_fields, missing_name_template, schema)
    return fixed_rows, new_report


def update_cell(
    rows: list[SourceRow],
    mapping: FieldMapping,
    row_index: int,
    field: str,
    value: str,
    required_fields: Optional[Iterable[str]] = None,
    missing_name_template: Optional[str] = None,
    schema: Schema = EQUIPMENT_SCHEMA,
) -> tuple[list[SourceRow], ValidationReport]:
    """
    Replace one cell and re-validate.

    field may be a mapped target field or a source header.

    Raises:
        ValidationError: If the row or field does not exist
    """
    if row_index < 0 or row_index >= len(rows):
        raise ValidationError(
            message="Row does not exist",
            details={"row_index": row_index, "row_count": len(rows)}
        )

    row = rows[row_index]
    header = mapping.get(field)
    if header is None and field in row.cells:
        header = field
    if header is None:
        raise ValidationError(
            message="Field is neither mapped nor a source column",
            details={"field": field}
        )

    updated = list(rows)
    updated[row_index] = row.replace(header, sanitize_cell_value(value))
    logger.debug("cell_updated", row_index=row_index, field=field, header=header)

    return updated, validate_all(updated, mapping, required_fields, missing_name_template, schema)


# ===================
# RECORDS
# ===================

def build_records(
    rows: list[SourceRow],
    mapping: FieldMapping,
    report: ValidationReport,
) -> list[CatalogRecord]:
    """
    Typed records for every importable row.

    Only schema fields are carried over. The source id becomes the
    record id when it is a UUID not already used by an earlier row;
    otherwise a new UUID is generated.
    """
    targets = {
        TargetField(field): header
        for field, header in mapping.items()
        if field in _TARGET_NAMES
    }

    records: list[CatalogRecord] = []
    used_ids: set[str] = set()

    for row in rows:
        if not report.is_importable(row.index):
            continue

        values = {target: row.get(header).strip() for target, header in targets.items()}
        source_id = values.get(TargetField.ID, "")
        record_id = source_id.lower() if is_uuid(source_id) else ""
        if not record_id or record_id in used_ids:
            if record_id:
                logger.warning("duplicate_record_id_replaced", row_index=row.index, record_id=record_id)
            record_id = str(uuid.uuid4())
        used_ids.add(record_id)

        records.append(CatalogRecord(row_index=row.index, record_id=record_id, values=values))

    logger.info("records_built", records=len(records), skipped=len(rows) - len(records))
    return records
