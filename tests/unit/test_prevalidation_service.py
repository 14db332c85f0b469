"""
Unit tests for source pre-validation.
"""

from services.prevalidation_service import build_report
from tests.factories import SourceRowFactory


HEADERS = ("ID", "Nome", "URL da Imagem")


def _rows(*cells_list):
    return SourceRowFactory.create_batch([dict(zip(HEADERS, cells)) for cells in cells_list])


class TestBuildReport:
    """Tests for build_report()"""

    def test_clean_source(self):
        rows = _rows(
            ("1", "Betoneira", "https://cdn.example.com/betoneira.jpg"),
            ("2", "Andaime", "https://cdn.example.com/andaime.jpg"),
            ("3", "Serra", "https://cdn.example.com/serra.png"),
        )

        report = build_report(HEADERS, rows)

        assert report.total_records == 3
        assert report.valid_records == 3
        assert report.empty_records == 0
        assert report.possible_id_columns[0].header == "ID"
        assert report.possible_id_columns[0].confidence == 1.0
        assert [c.header for c in report.possible_name_columns] == ["Nome"]
        assert report.possible_image_columns[0].header == "URL da Imagem"
        assert report.possible_image_columns[0].matches == 3
        assert report.warnings == []
        assert report.has_errors is False

    def test_unique_value_counts(self):
        rows = _rows(("1", "Betoneira", ""), ("2", "Betoneira", ""))

        report = build_report(HEADERS, rows)

        assert report.unique_values == {"ID": 2, "Nome": 1, "URL da Imagem": 0}

    def test_no_unique_column_is_an_error(self):
        rows = _rows(("1", "Betoneira", "x"), ("1", "Betoneira", "x"))

        report = build_report(HEADERS, rows)

        assert report.possible_id_columns == []
        assert report.has_errors is True
        assert any("unique identifiers" in w.message for w in report.warnings)

    def test_no_records_is_an_error(self):
        report = build_report(HEADERS, [])

        assert report.total_records == 0
        assert report.has_errors is True
        assert any("No valid records" in w.message for w in report.warnings)

    def test_no_image_column(self):
        rows = _rows(("1", "Betoneira", ""), ("2", "Andaime", ""))

        report = build_report(HEADERS, rows)

        assert report.possible_image_columns == []
        assert any("image URLs" in w.message for w in report.warnings)
        assert report.suggestions == [
            "Consider skipping the media step if no images need to be imported."
        ]

    def test_low_image_coverage_warns(self):
        rows = _rows(
            ("1", "Betoneira", "https://cdn.example.com/betoneira.jpg"),
            ("2", "Andaime", ""),
            ("3", "Serra", ""),
            ("4", "Martelete", ""),
        )

        report = build_report(HEADERS, rows)

        assert report.possible_image_columns[0].matches == 1
        assert report.possible_image_columns[0].confidence == 0.25
        assert any("Only 1 of 4" in w.message for w in report.warnings)
        assert report.has_errors is False

    def test_image_detected_by_extension_without_scheme(self):
        rows = _rows(("1", "Betoneira", "betoneira.webp"), ("2", "Andaime", "andaime.JPG"))

        report = build_report(HEADERS, rows)

        assert report.possible_image_columns[0].matches == 2

    def test_name_columns_by_header_keyword(self):
        headers = ("Código", "Título", "Equipamento", "Preço")
        rows = SourceRowFactory.create_batch([
            {"Código": "1", "Título": "A", "Equipamento": "B", "Preço": "10"},
        ])

        report = build_report(headers, rows)

        assert [c.header for c in report.possible_name_columns] == ["Título", "Equipamento"]
        assert all(c.confidence == 0.8 for c in report.possible_name_columns)

    def test_missing_name_column_warns(self):
        headers = ("Código", "Preço")
        rows = SourceRowFactory.create_batch([{"Código": "1", "Preço": "10"}])

        report = build_report(headers, rows)

        assert any("equipment name" in w.message for w in report.warnings)

    def test_partially_filled_id_column_confidence(self):
        rows = _rows(("1", "Betoneira", ""), ("2", "Betoneira", ""), ("", "Betoneira", ""), ("", "Betoneira", ""))

        report = build_report(HEADERS, rows)

        assert report.possible_id_columns[0].header == "ID"
        assert report.possible_id_columns[0].confidence == 0.5

    def test_to_dict(self):
        rows = _rows(("1", "Betoneira", "https://cdn.example.com/betoneira.jpg"))

        data = build_report(HEADERS, rows).to_dict()

        assert data["total_records"] == 1
        assert data["possible_image_columns"][0]["matches"] == 1
        assert isinstance(data["warnings"], list)
