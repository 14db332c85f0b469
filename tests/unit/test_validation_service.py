"""
Unit tests for row validation, auto-fix, cell editing and record building.

Run: pytest tests/unit/test_validation_service.py -v
"""

import uuid

import pytest

from services.validation_service import (
    auto_fix,
    build_records,
    normalize_number,
    parse_number,
    update_cell,
    validate_all,
    validate_row,
)
from models.catalog import TargetField
from models.validation import IssueType, Severity
from exceptions import ValidationError
from tests.factories import SourceRowFactory


MAPPING = {
    "id": "ID",
    "name": "Nome",
    "image": "Imagem",
    "daily_rate": "Diária",
    "weekly_rate": "Semanal",
}


def _row(index=0, **cells):
    base = {"ID": "", "Nome": "Betoneira", "Imagem": "", "Diária": "", "Semanal": ""}
    base.update(cells)
    return SourceRowFactory.create(base, index=index)


# ===================
# NUMBERS
# ===================

class TestParseNumber:
    """Tests for parse_number()"""

    @pytest.mark.parametrize("value,expected", [
        ("10", 10.0),
        ("10.5", 10.5),
        ("-3", -3.0),
        (".5", 0.5),
        ("1e3", 1000.0),
        (" 42 ", 42.0),
    ])
    def test_plain_numbers(self, value, expected):
        assert parse_number(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "1,5", "R$ 10", "1.234,56", "inf", "nan", "1e999"])
    def test_rejected(self, value):
        assert parse_number(value) is None


class TestNormalizeNumber:
    """Tests for normalize_number()"""

    @pytest.mark.parametrize("value,expected", [
        ("R$ 1.234,56", "1234.56"),
        ("R$10,5", "10.5"),
        ("1,234.56", "1234.56"),
        ("1.234.567", "1234567"),
        ("1,234,567", "1234567"),
        ("USD 99", "99"),
        ("150,00 reais", "150.00"),
    ])
    def test_recovers_number(self, value, expected):
        assert normalize_number(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "R$", ".,."])
    def test_nothing_to_recover(self, value):
        assert normalize_number(value) is None


# ===================
# VALIDATION
# ===================

class TestValidateRow:
    """Tests for validate_row()"""

    def test_clean_row_has_no_issues(self):
        row = _row(**{"Diária": "150", "Imagem": "https://cdn.example.com/a.jpg"})

        assert validate_row(row, MAPPING, ["name"]) == []

    def test_missing_name_is_terminal(self):
        issues = validate_row(_row(Nome=""), MAPPING, ["name"])

        assert len(issues) == 1
        assert issues[0].severity == Severity.TERMINAL
        assert issues[0].issue_type == IssueType.REQUIRED
        assert issues[0].fixable is False

    def test_missing_name_with_fallback_is_fixable(self):
        issues = validate_row(_row(index=2, Nome="  "), MAPPING, ["name"], "Equipment {row}")

        assert issues[0].severity == Severity.FIXABLE
        assert issues[0].issue_type == IssueType.MISSING_NAME_FALLBACK
        assert issues[0].suggested_value == "Equipment 3"

    def test_fixable_number(self):
        issues = validate_row(_row(**{"Diária": "R$ 1.234,56"}), MAPPING, ["name"])

        assert len(issues) == 1
        assert issues[0].field == "daily_rate"
        assert issues[0].issue_type == IssueType.FIXABLE_NUMBER
        assert issues[0].suggested_value == "1234.56"

    def test_unrecoverable_number_is_terminal(self):
        issues = validate_row(_row(**{"Semanal": "sob consulta"}), MAPPING, ["name"])

        assert issues[0].field == "weekly_rate"
        assert issues[0].severity == Severity.TERMINAL
        assert issues[0].issue_type == IssueType.INVALID_NUMBER

    def test_empty_optional_fields_are_fine(self):
        assert validate_row(_row(), MAPPING, ["name"]) == []

    def test_embedded_url_is_fixable(self):
        issues = validate_row(
            _row(Imagem="Foto: https://cdn.example.com/a.jpg (principal)"),
            MAPPING,
            ["name"],
        )

        assert issues[0].issue_type == IssueType.FIXABLE_URL
        assert issues[0].suggested_value == "https://cdn.example.com/a.jpg"

    @pytest.mark.parametrize("text", [
        "see https://cdn.example.com/a.jpg, thanks",
        "see https://cdn.example.com/a.jpg.",
        "foto: https://cdn.example.com/a.jpg; extra",
        "(https://cdn.example.com/a.jpg:)",
    ])
    def test_embedded_url_drops_trailing_punctuation(self, text):
        issues = validate_row(_row(Imagem=text), MAPPING, ["name"])

        assert issues[0].suggested_value == "https://cdn.example.com/a.jpg"

    def test_no_url_is_terminal(self):
        issues = validate_row(_row(Imagem="sem foto"), MAPPING, ["name"])

        assert issues[0].issue_type == IssueType.INVALID_URL
        assert issues[0].severity == Severity.TERMINAL

    def test_unmapped_fields_not_checked(self):
        row = SourceRowFactory.create({"Nome": "Betoneira", "Diária": "abc"})

        assert validate_row(row, {"name": "Nome"}, ["name"]) == []

    def test_one_issue_per_field(self):
        issues = validate_row(
            _row(Nome="", **{"Diária": "abc", "Semanal": "R$ 5", "Imagem": "nope"}),
            MAPPING,
            ["name"],
        )

        fields = [i.field for i in issues]
        assert sorted(fields) == sorted(set(fields))
        assert len(issues) == 4


class TestValidateAll:
    """Tests for validate_all()"""

    def test_report_only_keeps_rows_with_issues(self):
        rows = [_row(0), _row(1, Nome=""), _row(2, **{"Diária": "R$10,5"})]

        report = validate_all(rows, MAPPING)

        assert set(report.issues) == {1, 2}
        assert report.row_count == 3
        assert report.importable_rows == [0, 2]
        assert report.blocked_rows == [1]
        assert report.fixable_row_count == 1

    def test_required_fields_default_to_schema(self):
        report = validate_all([_row(0, Nome="")], MAPPING)

        assert report.issues_for(0)[0].field == "name"

    def test_summary_groups_by_type_and_field(self):
        rows = [_row(i, **{"Diária": "R$ 1,5"}) for i in range(3)] + [_row(3, Nome="")]

        summary = {(s.issue_type, s.field): s for s in validate_all(rows, MAPPING).summary()}

        assert summary[(IssueType.FIXABLE_NUMBER, "daily_rate")].count == 3
        assert summary[(IssueType.FIXABLE_NUMBER, "daily_rate")].fixable is True
        assert summary[(IssueType.REQUIRED, "name")].fixable is False


# ===================
# CORRECTIONS
# ===================

class TestAutoFix:
    """Tests for auto_fix()"""

    def test_fixes_numbers_and_urls(self):
        rows = [
            _row(0, **{"Diária": "R$ 1.234,56"}),
            _row(1, Imagem="ver https://cdn.example.com/b.png"),
        ]
        report = validate_all(rows, MAPPING)

        fixed_rows, new_report = auto_fix(rows, MAPPING, report)

        assert fixed_rows[0].get("Diária") == "1234.56"
        assert fixed_rows[1].get("Imagem") == "https://cdn.example.com/b.png"
        assert new_report.has_issues is False

    def test_input_rows_unchanged(self):
        rows = [_row(0, **{"Diária": "R$ 10"})]
        report = validate_all(rows, MAPPING)

        auto_fix(rows, MAPPING, report)

        assert rows[0].get("Diária") == "R$ 10"

    def test_terminal_issues_remain(self):
        rows = [_row(0, Nome=""), _row(1, **{"Diária": "R$10,5"})]
        report = validate_all(rows, MAPPING)

        _, new_report = auto_fix(rows, MAPPING, report)

        assert new_report.blocked_rows == [0]
        assert new_report.importable_rows == [1]

    def test_selection_limits_fixes(self):
        rows = [_row(0, **{"Diária": "R$ 5"}), _row(1, **{"Diária": "R$ 6"})]
        report = validate_all(rows, MAPPING)

        fixed_rows, new_report = auto_fix(rows, MAPPING, report, selection=[1])

        assert fixed_rows[0].get("Diária") == "R$ 5"
        assert fixed_rows[1].get("Diária") == "6"
        assert set(new_report.issues) == {0}

    def test_missing_name_fallback_applied(self):
        rows = [_row(0), _row(1, Nome="")]
        report = validate_all(rows, MAPPING, missing_name_template="Equipment {row}")

        fixed_rows, new_report = auto_fix(
            rows, MAPPING, report, missing_name_template="Equipment {row}"
        )

        assert fixed_rows[1].get("Nome") == "Equipment 2"
        assert new_report.importable_rows == [0, 1]

    def test_idempotent(self):
        rows = [_row(0, **{"Diária": "R$ 1.234,56"}), _row(1, Nome="")]
        report = validate_all(rows, MAPPING)

        once_rows, once_report = auto_fix(rows, MAPPING, report)
        twice_rows, twice_report = auto_fix(once_rows, MAPPING, once_report)

        assert [r.cells for r in twice_rows] == [r.cells for r in once_rows]
        assert twice_report.to_dict() == once_report.to_dict()


class TestUpdateCell:
    """Tests for update_cell()"""

    def test_edit_by_field_revalidates(self):
        rows = [_row(0, Nome="")]
        report = validate_all(rows, MAPPING)
        assert report.blocked_rows == [0]

        new_rows, new_report = update_cell(rows, MAPPING, 0, "name", "  Andaime  ")

        assert new_rows[0].get("Nome") == "Andaime"
        assert new_report.blocked_rows == []
        assert rows[0].get("Nome") == ""

    def test_edit_by_header(self):
        rows = [_row(0)]

        new_rows, _ = update_cell(rows, MAPPING, 0, "Diária", "200")

        assert new_rows[0].get("Diária") == "200"

    def test_row_out_of_range_raises(self):
        with pytest.raises(ValidationError):
            update_cell([_row(0)], MAPPING, 5, "name", "x")

    def test_unknown_field_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            update_cell([_row(0)], MAPPING, 0, "color", "red")

        assert exc_info.value.details == {"field": "color"}


# ===================
# RECORDS
# ===================

class TestBuildRecords:
    """Tests for build_records()"""

    def test_only_importable_rows(self):
        rows = [_row(0), _row(1, Nome=""), _row(2, Nome="Andaime")]
        report = validate_all(rows, MAPPING)

        records = build_records(rows, MAPPING, report)

        assert [r.row_index for r in records] == [0, 2]
        assert records[1].get(TargetField.NAME) == "Andaime"

    def test_uuid_source_id_kept_lowercase(self):
        source_id = "3F2B8C1E-9A4D-4E6F-8B7A-1C2D3E4F5A6B"
        rows = [_row(0, ID=source_id)]

        records = build_records(rows, MAPPING, validate_all(rows, MAPPING))

        assert records[0].record_id == source_id.lower()

    def test_non_uuid_source_id_replaced(self):
        rows = [_row(0, ID="EQ-001")]

        records = build_records(rows, MAPPING, validate_all(rows, MAPPING))

        assert str(uuid.UUID(records[0].record_id)) == records[0].record_id
        assert records[0].get(TargetField.ID) == "EQ-001"

    def test_duplicate_uuid_replaced(self):
        source_id = "3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b"
        rows = [_row(0, ID=source_id), _row(1, ID=source_id)]

        records = build_records(rows, MAPPING, validate_all(rows, MAPPING))

        assert records[0].record_id == source_id
        assert records[1].record_id != source_id

    def test_unknown_mapping_keys_ignored(self):
        rows = [SourceRowFactory.create({"Nome": "Betoneira", "Código": "X1"})]
        mapping = {"name": "Nome", "legacy_code": "Código"}

        records = build_records(rows, mapping, validate_all(rows, mapping))

        assert dict(records[0].values) == {TargetField.NAME: "Betoneira"}
