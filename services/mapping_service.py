"""
Column mapping between source headers and catalog fields.

A mapping is target field name -> source header name. Each target field
points at one header and a header is used by at most one target field.
"""

from typing import Iterable, Optional

import structlog

from exceptions import MappingIncompleteError, ValidationError
from models.catalog import (
    EQUIPMENT_SCHEMA,
    FieldKind,
    FieldMapping,
    SchemaField,
)

logger = structlog.get_logger(__name__)

Schema = tuple[SchemaField, ...]


# ===================
# AUTO-MAPPING
# ===================

def _find_header(field: SchemaField, headers: list[str], taken: set[str]) -> Optional[str]:
    name = field.name.value.lower()
    label = field.label.lower()
    available = [h for h in headers if h and h not in taken]

    # Exact match on machine name or label
    for header in available:
        lowered = header.lower()
        if lowered == name or lowered == label:
            return header

    # Substring match, either direction
    for header in available:
        lowered = header.lower()
        if name in lowered or lowered in name or label in lowered or lowered in label:
            return header

    return None


def suggest_mapping(headers: Iterable[str], schema: Schema = EQUIPMENT_SCHEMA) -> FieldMapping:
    """
    Suggest a header for every schema field.

    Exact case-insensitive matches against the field name or label win,
    then substring matches in either direction. First match wins and a
    header already claimed by an earlier field is not offered again.

    Args:
        headers: Source header names, in file order
        schema: Target schema

    Returns:
        Mapping of target field -> header (unmatched fields omitted)
    """
    headers = list(headers)
    mapping: FieldMapping = {}
    taken: set[str] = set()

    for field in schema:
        header = _find_header(field, headers, taken)
        if header is not None:
            mapping[field.name.value] = header
            taken.add(header)

    logger.info(
        "mapping_suggested",
        headers=len(headers),
        mapped=len(mapping),
        unmapped=[f.name.value for f in schema if f.name.value not in mapping]
    )
    return mapping


# ===================
# NORMALIZATION
# ===================

def normalize_mapping(mapping: FieldMapping, schema: Schema = EQUIPMENT_SCHEMA) -> FieldMapping:
    """
    Clean a user-supplied mapping.

    Empty assignments are treated as unmapped. A key naming a reference
    field with an "_id" suffix (e.g. "category_id") is rewritten to the
    bare field name ("category") unless the bare name is itself mapped,
    in which case the suffixed key is dropped with a warning. Keys with
    no schema counterpart are kept as they are. Applying this twice gives
    the same result as applying it once.
    """
    field_names = {f.name.value for f in schema}
    reference_names = {f.name.value for f in schema if f.kind == FieldKind.REFERENCE}

    normalized: FieldMapping = {}
    for key, header in mapping.items():
        header = (header or "").strip()
        if not header:
            continue

        if key not in field_names and key.endswith("_id") and key[:-3] in reference_names:
            canonical = key[:-3]
            if (mapping.get(canonical) or "").strip():
                logger.warning(
                    "mapping_key_dropped",
                    key=key,
                    canonical=canonical,
                    reason="canonical field already mapped"
                )
                continue
            logger.info("mapping_key_rewritten", key=key, canonical=canonical)
            key = canonical

        elif key not in field_names:
            logger.debug("mapping_key_not_in_schema", key=key)

        normalized[key] = header

    return normalized


# ===================
# VALIDATION
# ===================

def missing_required_fields(mapping: FieldMapping, schema: Schema = EQUIPMENT_SCHEMA) -> list[str]:
    """Required fields with no non-empty header assigned."""
    return [
        f.name.value
        for f in schema
        if f.required and not (mapping.get(f.name.value) or "").strip()
    ]


def validate_mapping(mapping: FieldMapping, schema: Schema = EQUIPMENT_SCHEMA) -> bool:
    """True when every required schema field has a header assigned."""
    return not missing_required_fields(mapping, schema)


def ensure_complete(mapping: FieldMapping, schema: Schema = EQUIPMENT_SCHEMA) -> None:
    """
    Raise if the mapping cannot be used.

    Raises:
        MappingIncompleteError: If required fields are unmapped
    """
    missing = missing_required_fields(mapping, schema)
    if missing:
        logger.warning("mapping_incomplete", missing_fields=missing)
        raise MappingIncompleteError(missing)


def check_sources(mapping: FieldMapping, headers: Iterable[str]) -> None:
    """
    Check mapped headers against the source.

    Raises:
        ValidationError: If a header is not in the source or is
                         assigned to more than one target field
    """
    known = set(headers)
    unknown = {target: header for target, header in mapping.items() if header not in known}
    if unknown:
        raise ValidationError(
            message="Mapping refers to columns that are not in the source",
            details={"unknown_headers": unknown}
        )

    seen: dict[str, str] = {}
    duplicates: dict[str, list[str]] = {}
    for target, header in mapping.items():
        if header in seen:
            duplicates.setdefault(header, [seen[header]]).append(target)
        else:
            seen[header] = target
    if duplicates:
        raise ValidationError(
            message="A source column can be mapped to only one field",
            details={"duplicate_headers": duplicates}
        )
