"""
Unit Tests for the Field Calculation Pass

Tests field inclusion rules, per-field GST and section netting.

Run with: pytest tests/test_field_totals.py -v
"""

import pytest
from decimal import Decimal

from entries.field_totals import compute_field_totals, is_expense_section
from entries.schemas import EntryValue, FormFieldDefinition


def make_field(field_id, section="income", field_type="currency", include=True, gst=None, **extra):
    data = {
        "id": field_id,
        "name": field_id.title(),
        "type": field_type,
        "section": section,
        "includeInTotal": include,
        **extra,
    }
    if gst is not None:
        data["gstConfig"] = gst
    return FormFieldDefinition.model_validate(data)


def make_value(field_id, value, manual_gst=None):
    return EntryValue.model_validate({
        "fieldId": field_id,
        "fieldName": field_id.title(),
        "value": value,
        "manualGstAmount": manual_gst,
    })


GST_10_EXCLUSIVE = {"enabled": True, "rate": 10, "type": "exclusive"}


class TestExpenseSection:
    """Test the loose expense-section classification."""

    @pytest.mark.parametrize("section", ["expense", "Expenses", "EXP-lab", "exp"])
    def test_expense_sections(self, section):
        assert is_expense_section(section) is True

    @pytest.mark.parametrize("section", ["income", "", None, "other expense", "revenue"])
    def test_income_sections(self, section):
        assert is_expense_section(section) is False


class TestFieldInclusion:
    """Test which fields take part in the totals."""

    def test_non_numeric_fields_skipped(self):
        fields = [make_field("notes", field_type="text"), make_field("fees")]
        values = [make_value("notes", "100"), make_value("fees", 100)]

        result = compute_field_totals(fields, values, "income")

        assert [fc.field_id for fc in result.field_calculations] == ["fees"]

    def test_excluded_fields_skipped(self):
        fields = [make_field("fees"), make_field("float", include=False)]
        values = [make_value("fees", 100), make_value("float", 50)]

        result = compute_field_totals(fields, values, "income")

        assert len(result.field_calculations) == 1
        assert result.combined.total == Decimal("100")

    def test_field_without_value_skipped(self):
        """A missing value is skipped, not counted as a zero line."""
        fields = [make_field("fees"), make_field("other")]

        result = compute_field_totals(fields, [make_value("fees", 100)], "income")

        assert [fc.field_id for fc in result.field_calculations] == ["fees"]

    def test_number_type_included(self):
        fields = [make_field("visits", field_type="number")]

        result = compute_field_totals(fields, [make_value("visits", 3)], "income")

        assert result.combined.total == Decimal("3")

    def test_later_duplicate_value_wins(self):
        fields = [make_field("fees")]
        values = [make_value("fees", 50), make_value("fees", 80)]

        result = compute_field_totals(fields, values, "income")

        assert result.field_calculations[0].total_amount == Decimal("80")

    def test_string_value_parsed(self):
        fields = [make_field("fees")]

        result = compute_field_totals(fields, [make_value("fees", "125.50")], "income")

        assert result.combined.base == Decimal("125.50")

    def test_output_follows_form_field_order(self):
        fields = [make_field("a"), make_field("b"), make_field("c")]
        values = [make_value("c", 3), make_value("a", 1), make_value("b", 2)]

        result = compute_field_totals(fields, values, "income")

        assert [fc.field_id for fc in result.field_calculations] == ["a", "b", "c"]


class TestFieldGST:
    """Test per-field GST resolution."""

    def test_gst_applied_when_enabled(self):
        fields = [make_field("fees", gst=GST_10_EXCLUSIVE)]

        result = compute_field_totals(fields, [make_value("fees", 100)], "income")
        calc = result.field_calculations[0]

        assert calc.base_amount == Decimal("100")
        assert calc.gst_amount == Decimal("10.00")
        assert calc.total_amount == Decimal("110.00")
        assert calc.gst_rate == Decimal("10")
        assert calc.gst_type == "exclusive"

    def test_disabled_gst_passes_amount_through(self):
        """Disabled GST keeps the configured rate and type for reporting."""
        fields = [make_field("fees", gst={"enabled": False, "rate": 10, "type": "inclusive"})]

        result = compute_field_totals(fields, [make_value("fees", 110)], "income")
        calc = result.field_calculations[0]

        assert calc.base_amount == Decimal("110")
        assert calc.gst_amount == Decimal("0")
        assert calc.total_amount == Decimal("110")
        assert calc.gst_rate == Decimal("10")
        assert calc.gst_type == "inclusive"

    def test_no_gst_config(self):
        fields = [make_field("fees")]

        result = compute_field_totals(fields, [make_value("fees", 100)], "income")
        calc = result.field_calculations[0]

        assert calc.gst_amount == Decimal("0")
        assert calc.gst_rate == Decimal("0")
        assert calc.gst_type == "exclusive"

    def test_manual_gst_from_value(self):
        fields = [make_field("supplies", gst={"enabled": True, "rate": 10, "type": "manual"})]

        result = compute_field_totals(fields, [make_value("supplies", 80, manual_gst=7.5)], "income")

        assert result.field_calculations[0].gst_amount == Decimal("7.50")
        assert result.field_calculations[0].total_amount == Decimal("87.50")

    def test_gst_type_case_insensitive(self):
        fields = [make_field("fees", gst={"enabled": True, "rate": 10, "type": "INCLUSIVE"})]

        result = compute_field_totals(fields, [make_value("fees", 110)], "income")

        assert result.field_calculations[0].gst_amount == Decimal("10.00")


class TestSectionNetting:
    """Test income/expense tracking for the three form types."""

    def test_both_form_nets_expense_from_income(self):
        """Income 500, expense 200 -> combined 300."""
        fields = [
            make_field("fees"),
            make_field("bonus"),
            make_field("lab", section="expense"),
        ]
        values = [make_value("fees", 300), make_value("bonus", 200), make_value("lab", 200)]

        result = compute_field_totals(fields, values, "both")

        assert result.income.total == Decimal("500")
        assert result.expense.total == Decimal("200")
        assert result.combined.total == Decimal("300")
        assert result.combined.base == Decimal("300")

    def test_both_form_nets_gst(self):
        fields = [
            make_field("fees", gst=GST_10_EXCLUSIVE),
            make_field("lab", section="Expenses", gst=GST_10_EXCLUSIVE),
        ]
        values = [make_value("fees", 1000), make_value("lab", 400)]

        result = compute_field_totals(fields, values, "both")

        assert result.income.gst == Decimal("100.00")
        assert result.expense.gst == Decimal("40.00")
        assert result.combined.gst == Decimal("60.00")

    def test_income_form_sums_every_section(self):
        """Non-both forms ignore sections and sum everything."""
        fields = [make_field("fees"), make_field("lab", section="expense")]
        values = [make_value("fees", 300), make_value("lab", 100)]

        result = compute_field_totals(fields, values, "income")

        assert result.combined.total == Decimal("400")
        assert result.income.total == Decimal("0")
        assert result.expense.total == Decimal("0")

    def test_expense_form_sums_every_section(self):
        fields = [make_field("rent", section="expense"), make_field("misc", section="income")]
        values = [make_value("rent", 300), make_value("misc", 100)]

        result = compute_field_totals(fields, values, "expense")

        assert result.combined.total == Decimal("400")

    def test_empty_form(self):
        result = compute_field_totals([], [], "both")

        assert result.field_calculations == []
        assert result.combined.total == Decimal("0")
