"""
Equipment catalog schema.

The closed set of target fields a spreadsheet column can be mapped to,
and the typed record produced once a row has passed validation.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import Field

from models.base import BaseSchema


# Mapping from target field name -> source header name
FieldMapping = dict[str, str]


class TargetField(str, Enum):
    """Catalog fields a source column can be mapped to."""
    ID = "id"
    NAME = "name"
    CATEGORY = "category"
    IMAGE = "image"
    DESCRIPTION = "description"
    DAILY_RATE = "daily_rate"
    WEEKLY_RATE = "weekly_rate"
    MONTHLY_RATE = "monthly_rate"
    CONSTRUCTION_PHASE_ID = "construction_phase_id"
    TECHNICAL_SPECS = "technical_specs"


class FieldKind(str, Enum):
    """How a field's raw value is validated and normalized."""
    IDENTIFIER = "identifier"
    TEXT = "text"
    NUMERIC = "numeric"
    URL = "url"
    REFERENCE = "reference"


class SchemaField(BaseSchema):
    """One mappable field of the target schema."""

    name: TargetField
    label: str = Field(..., min_length=1)
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    # Reference fields only: namespace used by the resolver
    reference_namespace: Optional[str] = None


EQUIPMENT_SCHEMA: tuple[SchemaField, ...] = (
    SchemaField(name=TargetField.ID, label="ID", kind=FieldKind.IDENTIFIER),
    SchemaField(name=TargetField.NAME, label="Nome", required=True),
    SchemaField(
        name=TargetField.CATEGORY,
        label="Nome da Categoria",
        kind=FieldKind.REFERENCE,
        reference_namespace="category",
    ),
    SchemaField(name=TargetField.IMAGE, label="URL da Imagem", kind=FieldKind.URL),
    SchemaField(name=TargetField.DESCRIPTION, label="Descrição"),
    SchemaField(name=TargetField.DAILY_RATE, label="Valor Diária", kind=FieldKind.NUMERIC),
    SchemaField(name=TargetField.WEEKLY_RATE, label="Valor Semanal", kind=FieldKind.NUMERIC),
    SchemaField(name=TargetField.MONTHLY_RATE, label="Valor Mensal", kind=FieldKind.NUMERIC),
    SchemaField(
        name=TargetField.CONSTRUCTION_PHASE_ID,
        label="Nome da Fase de Obra",
        kind=FieldKind.REFERENCE,
        reference_namespace="construction_phase",
    ),
    SchemaField(name=TargetField.TECHNICAL_SPECS, label="Especificações Técnicas"),
)


def required_field_names(schema: tuple[SchemaField, ...] = EQUIPMENT_SCHEMA) -> list[str]:
    """Names of schema fields flagged required."""
    return [f.name.value for f in schema if f.required]


def fields_of_kind(
    kind: FieldKind,
    schema: tuple[SchemaField, ...] = EQUIPMENT_SCHEMA,
) -> list[TargetField]:
    """Schema fields with the given kind, in schema order."""
    return [f.name for f in schema if f.kind == kind]


def schema_field(
    name: str,
    schema: tuple[SchemaField, ...] = EQUIPMENT_SCHEMA,
) -> Optional[SchemaField]:
    """Look up a schema field by machine name."""
    for f in schema:
        if f.name.value == name:
            return f
    return None


@dataclass(frozen=True)
class CatalogRecord:
    """
    A validated row keyed by target field.

    record_id is a well-formed UUID: the source ID when it already is one,
    otherwise generated when the record is built. Media results and store
    writes both key on it.
    """
    row_index: int
    record_id: str
    values: Mapping[TargetField, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, target: TargetField, default: str = "") -> str:
        return self.values.get(target, default)
