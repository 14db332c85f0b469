"""
Pre-validation of a freshly loaded source.

Runs before any mapping exists and only looks at headers and raw cell
text: which columns could hold identifiers, names or images, and
whether the file is worth mapping at all.
"""

import re

import structlog

from models.source import (
    ColumnCandidate,
    PreValidationReport,
    ReportMessage,
    SourceRow,
)

logger = structlog.get_logger(__name__)

IMAGE_VALUE_PATTERNS = (
    re.compile(r"https?://"),
    re.compile(r"\.(jpg|jpeg|png|gif|webp)", re.IGNORECASE),
    re.compile(r"image|img|foto|picture", re.IGNORECASE),
)
NAME_HEADER_PATTERN = re.compile(r"name|nome|título|titulo|title|equip", re.IGNORECASE)
NAME_HEADER_CONFIDENCE = 0.8

# Warn when the best image column covers less than this share of records
MIN_IMAGE_COVERAGE = 0.5


def _looks_like_image(value: str) -> bool:
    return any(p.search(value) for p in IMAGE_VALUE_PATTERNS)


def build_report(headers: tuple[str, ...], rows: list[SourceRow]) -> PreValidationReport:
    """
    Profile a source before mapping.

    Args:
        headers: Source headers
        rows: Parsed rows

    Returns:
        PreValidationReport with candidate columns, warnings and suggestions
    """
    total = len(rows)
    report = PreValidationReport(total_records=total)
    report.empty_records = sum(1 for row in rows if row.is_blank())
    report.valid_records = total - report.empty_records

    for header in headers:
        values = [row.get(header) for row in rows if row.get(header)]
        distinct = set(values)
        report.unique_values[header] = len(distinct)

        if values and len(distinct) == len(values):
            report.possible_id_columns.append(
                ColumnCandidate(header=header, confidence=min(1.0, len(values) / total))
            )

        image_matches = sum(1 for v in values if _looks_like_image(v))
        if image_matches:
            report.possible_image_columns.append(
                ColumnCandidate(
                    header=header,
                    confidence=image_matches / total,
                    matches=image_matches,
                )
            )

        if NAME_HEADER_PATTERN.search(header):
            report.possible_name_columns.append(
                ColumnCandidate(header=header, confidence=NAME_HEADER_CONFIDENCE)
            )

    # Highest confidence first; sort is stable so file order breaks ties
    report.possible_id_columns.sort(key=lambda c: c.confidence, reverse=True)
    report.possible_image_columns.sort(key=lambda c: c.confidence, reverse=True)
    report.possible_name_columns.sort(key=lambda c: c.confidence, reverse=True)

    if report.valid_records < 1:
        report.warnings.append(ReportMessage("error", "No valid records found in the file."))

    if not report.possible_id_columns:
        report.warnings.append(
            ReportMessage("error", "Could not identify a column with unique identifiers.")
        )

    if not report.possible_name_columns:
        report.warnings.append(
            ReportMessage("warning", "Could not identify a column holding the equipment name.")
        )

    if not report.possible_image_columns:
        report.warnings.append(
            ReportMessage("warning", "No columns with possible image URLs were found.")
        )
        report.suggestions.append(
            "Consider skipping the media step if no images need to be imported."
        )
    else:
        best = report.possible_image_columns[0]
        if best.matches < report.valid_records * MIN_IMAGE_COVERAGE:
            report.warnings.append(
                ReportMessage(
                    "warning",
                    f"Only {best.matches} of {report.valid_records} records appear "
                    f"to have valid image URLs."
                )
            )

    logger.info(
        "prevalidation_complete",
        total_records=report.total_records,
        valid_records=report.valid_records,
        id_columns=len(report.possible_id_columns),
        image_columns=len(report.possible_image_columns),
        name_columns=len(report.possible_name_columns),
        warnings=len(report.warnings)
    )
    return report
