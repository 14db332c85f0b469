"""
Test data factories.

Builders for uploaded files (CSV / XLSX bytes), parsed rows, catalog
records and HTTP stand-ins.
"""

import csv
from io import BytesIO, StringIO
from typing import Optional
from unittest.mock import MagicMock
from uuid import uuid4

import pandas as pd
import requests

from models.catalog import CatalogRecord, TargetField
from models.source import SourceRow


# Headers as they appear in the equipment spreadsheet template
STANDARD_HEADERS = [
    "ID",
    "Nome",
    "Nome da Categoria",
    "URL da Imagem",
    "Descrição",
    "Valor Diária",
    "Valor Semanal",
    "Valor Mensal",
]

STANDARD_MAPPING = {
    "id": "ID",
    "name": "Nome",
    "category": "Nome da Categoria",
    "image": "URL da Imagem",
    "description": "Descrição",
    "daily_rate": "Valor Diária",
    "weekly_rate": "Valor Semanal",
    "monthly_rate": "Valor Mensal",
}


class MockAPIError(Exception):
    """Stands in for postgrest's APIError (carries a Postgres error code)."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


# ===================
# FILES
# ===================

def csv_bytes(
    headers: list[str],
    rows: list[list[str]],
    delimiter: str = ",",
    encoding: str = "utf-8",
) -> bytes:
    """Delimited file content with a header line."""
    output = StringIO()
    writer = csv.writer(output, delimiter=delimiter, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return output.getvalue().encode(encoding)


def xlsx_bytes(headers: list[str], rows: list[list]) -> bytes:
    """Single-sheet workbook with a header row."""
    output = BytesIO()
    df = pd.DataFrame(rows, columns=headers)
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="Equipamentos", index=False)
    return output.getvalue()


class EquipmentRowFactory:
    """
    Spreadsheet rows for the standard template.

    Usage:
        row = EquipmentRowFactory.create(name="Betoneira 400L")
        rows = EquipmentRowFactory.create_batch(12)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        id: Optional[str] = None,
        name: Optional[str] = None,
        category: str = "Drills",
        image: str = "",
        description: str = "",
        daily_rate: str = "100",
        weekly_rate: str = "",
        monthly_rate: str = "",
    ) -> list[str]:
        """One row in STANDARD_HEADERS order."""
        n = cls._next_counter()
        return [
            id if id is not None else str(uuid4()),
            name if name is not None else f"Equipment Item {n}",
            category,
            image,
            description,
            daily_rate,
            weekly_rate,
            monthly_rate,
        ]

    @classmethod
    def create_batch(cls, count: int, **kwargs) -> list[list[str]]:
        return [cls.create(**kwargs) for _ in range(count)]


# ===================
# PARSED DATA
# ===================

class SourceRowFactory:
    """
    SourceRows keyed by header.

    Usage:
        row = SourceRowFactory.create({"Nome": "Furadeira"}, index=2)
        rows = SourceRowFactory.create_batch([{"Nome": "A"}, {"Nome": "B"}])
    """

    @classmethod
    def create(cls, cells: dict[str, str], index: int = 0) -> SourceRow:
        return SourceRow(index=index, line_number=index + 2, cells=cells)

    @classmethod
    def create_batch(cls, cells_list: list[dict[str, str]]) -> list[SourceRow]:
        return [cls.create(cells, index=i) for i, cells in enumerate(cells_list)]


class CatalogRecordFactory:
    """
    Validated catalog records.

    Usage:
        record = CatalogRecordFactory.create(name="Andaime", category="Scaffolding")
    """

    _counter = 0

    @classmethod
    def create(
        cls,
        name: Optional[str] = None,
        category: str = "",
        image: str = "",
        record_id: Optional[str] = None,
        row_index: Optional[int] = None,
        **extra: str,
    ) -> CatalogRecord:
        cls._counter += 1
        values = {TargetField.NAME: name if name is not None else f"Equipment Item {cls._counter}"}
        if category:
            values[TargetField.CATEGORY] = category
        if image:
            values[TargetField.IMAGE] = image
        for key, value in extra.items():
            values[TargetField(key)] = value
        return CatalogRecord(
            row_index=row_index if row_index is not None else cls._counter,
            record_id=record_id or str(uuid4()),
            values=values,
        )

    @classmethod
    def create_batch(cls, count: int, **kwargs) -> list[CatalogRecord]:
        return [cls.create(row_index=i, **kwargs) for i in range(count)]


# ===================
# HTTP
# ===================

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-bytes"


def make_response(
    status_code: int = 200,
    content: bytes = PNG_BYTES,
    content_type: Optional[str] = "image/png",
    json_data=None,
) -> MagicMock:
    """requests.Response stand-in."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.content = content
    response.headers = {"Content-Type": content_type} if content_type else {}
    response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Client Error"
        )
    else:
        response.raise_for_status.return_value = None
    return response


def make_http_session(routes: Optional[dict] = None) -> MagicMock:
    """
    requests.Session stand-in.

    routes maps URL -> response or exception. Unknown URLs raise
    ConnectionError. Requested URLs are collected in session.requested,
    query params of each call in session.params.
    """
    routes = routes if routes is not None else {}
    session = MagicMock(spec=requests.Session)
    session.routes = routes
    session.requested = []
    session.params = []

    def get(url, params=None, timeout=None, **kwargs):
        session.requested.append(url)
        session.params.append(params)
        result = routes.get(url)
        if result is None:
            raise requests.exceptions.ConnectionError(f"Connection refused: {url}")
        if isinstance(result, Exception):
            raise result
        return result

    session.get.side_effect = get
    return session
