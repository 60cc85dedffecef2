"""
Unit Tests for the Normalization Bridge

Tests flat -> normalized -> flat round trips for engine-produced entries
(including net entries that carry a service fee block), row contents,
legacy super holding recompute and the method invariant.

Run with: pytest tests/test_converter.py -v
"""

import json
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from entries import (
    FlatEntry,
    MalformedEntryInputError,
    NormalizationError,
    NormalizedEntry,
    run_entry_calculation,
    to_flat,
    to_normalized,
)
from entries.normalized import (
    EntryGrossDetails,
    EntryGrossReduction,
    EntryHeader,
    EntryNetDetails,
)


CREATED_AT = datetime(2024, 7, 1, 9, 30, tzinfo=timezone.utc)


def build_entry(entry_id, form, values, deductions=None, **header):
    return FlatEntry(
        id=entry_id,
        form_id=form.get("id"),
        form_name=form.get("name", ""),
        form_type=form.get("formType", ""),
        clinic_id="clinic-1",
        quarter_id="2024-Q3",
        entry_date=CREATED_AT,
        description="July takings",
        values=values,
        calculations=run_entry_calculation(form, values, deductions),
        deductions=deductions,
        created_by="user-1",
        created_at=CREATED_AT,
        **header,
    )


def assert_round_trip(entry, form):
    flat = to_flat(to_normalized(entry, form))

    assert flat.values == entry.values
    assert flat.calculations == entry.calculations
    assert flat.deductions == entry.deductions
    return flat


class TestRoundTrip:
    """Test that engine output survives normalization key for key."""

    def test_gross_entry(self, entry_id, gross_form, gross_values):
        entry = build_entry(
            entry_id, gross_form, gross_values,
            {"serviceFeeOverride": 50, "entryPaymentResponsibility": "clinic"},
        )

        assert_round_trip(entry, gross_form)

    def test_gross_entry_with_outwork_and_reimbursements(self, entry_id, gross_form, gross_values):
        gross_form["fields"].append({
            "id": "parking",
            "name": "Parking",
            "type": "currency",
            "section": "expense",
            "includeInTotal": True,
            "paymentResponsibility": "owner",
            "gstConfig": {"enabled": True, "rate": 10, "type": "inclusive"},
        })
        gross_values.append({"fieldId": "parking", "fieldName": "Parking", "value": 22})
        entry = build_entry(
            entry_id, gross_form, gross_values,
            {"outworkEnabled": True, "outworkRatePercent": 12.5},
        )

        flat = assert_round_trip(entry, gross_form)

        assert flat.calculations["outworkEnabled"] is True
        assert [r["fieldId"] for r in flat.calculations["reimbursementBreakdown"]] == ["parking"]

    def test_gross_entry_without_deduction_block(self, entry_id, gross_form, gross_values):
        del gross_form["serviceFacilityFeePercent"]
        entry = build_entry(entry_id, gross_form, gross_values)

        flat = assert_round_trip(entry, gross_form)

        assert "remittedAmount" not in flat.calculations
        assert flat.deductions is None

    def test_net_entry_with_super(self, entry_id, net_form, net_values):
        entry = build_entry(
            entry_id, net_form, net_values,
            {"commissionPercent": 40, "superHoldingEnabled": True, "superComponentPercent": 11.5},
        )

        assert_round_trip(entry, net_form)

    def test_net_entry_with_service_fee(self, entry_id, gross_form, gross_values):
        gross_form["calculationMethod"] = "net"
        entry = build_entry(
            entry_id, gross_form, gross_values,
            {
                "commissionPercent": 30,
                "superHoldingEnabled": True,
                "outworkEnabled": True,
                "outworkRatePercent": 10,
            },
        )

        flat = assert_round_trip(entry, gross_form)

        assert flat.calculations["serviceFeeBase"] == 80.0
        assert flat.calculations["commission"] == 60.0
        assert [r["fieldId"] for r in flat.calculations["reductionBreakdown"]] == ["lab"]

    def test_expense_entry(self, entry_id, expense_form, expense_values):
        entry = build_entry(entry_id, expense_form, expense_values, {})

        flat = assert_round_trip(entry, expense_form)

        assert flat.values[1]["manualGstAmount"] == 7.5
        assert flat.deductions == {}

    def test_header_preserved(self, entry_id, net_form, net_values):
        entry = build_entry(entry_id, net_form, net_values, remarks="checked")

        flat = to_flat(to_normalized(entry, net_form))

        assert flat.id == entry_id
        assert flat.form_id == "form-net"
        assert flat.form_type == "income"
        assert flat.clinic_id == "clinic-1"
        assert flat.quarter_id == "2024-Q3"
        assert flat.entry_date == CREATED_AT
        assert flat.remarks == "checked"
        assert flat.created_by == "user-1"
        assert flat.to_dict()["createdAt"] == CREATED_AT.isoformat()

    def test_raw_json_text_accepted(self, entry_id, net_form, net_values):
        entry = build_entry(entry_id, net_form, net_values, {"commissionPercent": 40})
        as_text = build_entry(entry_id, net_form, net_values, {"commissionPercent": 40})
        as_text.values = json.dumps(entry.values)
        as_text.calculations = json.dumps(entry.calculations)
        as_text.deductions = json.dumps(entry.deductions)

        flat = to_flat(to_normalized(as_text, json.dumps(net_form)))

        assert flat.values == entry.values
        assert flat.calculations == entry.calculations
        assert flat.deductions == entry.deductions


class TestNormalizedRows:
    """Test the rows produced for each table."""

    def test_gross_rows(self, entry_id, gross_form, gross_values):
        entry = build_entry(entry_id, gross_form, gross_values, {"serviceFeeOverride": 50})

        normalized = to_normalized(entry, gross_form)

        assert normalized.header.calculation_method == "gross"
        assert normalized.net_details is None
        assert normalized.gross_details.service_facility_fee_percent == Decimal("40")
        assert normalized.gross_details.remitted_amount == Decimal("136.0")
        assert normalized.gross_outwork is None
        assert normalized.gross_reductions_summary.total_expense_gst == Decimal("9.0")

        lab_calc = normalized.field_calculations[1]
        assert lab_calc.section == "expense"
        assert lab_calc.payment_responsibility == "clinic"
        assert normalized.gross_reductions[0].field_calculation_id == lab_calc.id

    def test_value_columns(self, entry_id, gross_form, gross_values):
        entry = build_entry(entry_id, gross_form, gross_values)

        rows = to_normalized(entry, gross_form).field_values

        assert rows[0].value == Decimal("290")
        assert rows[1].text_value == "90"
        assert rows[1].value is None
        assert rows[2].text_value == "locum week"
        assert [r.display_order for r in rows] == [0, 1, 2]

    def test_boolean_value_column(self, entry_id, net_form, net_values):
        rows = to_normalized(build_entry(entry_id, net_form, net_values), net_form).field_values

        assert rows[1].boolean_value is True
        assert rows[1].value is None

    def test_net_rows(self, entry_id, net_form, net_values):
        entry = build_entry(entry_id, net_form, net_values, {"commissionPercent": 40})

        normalized = to_normalized(entry, net_form)

        assert normalized.gross_details is None
        assert normalized.gross_rows_present() is False
        assert normalized.net_details.commission_percent == Decimal("40")
        assert normalized.net_details.super_holding_enabled is False
        assert normalized.method_details is normalized.net_details
        assert normalized.summary.net_receivable == Decimal("1100.0")
        assert normalized.summary.net_payable is None

    def test_net_rows_with_service_fee(self, entry_id, gross_form, gross_values):
        gross_form["calculationMethod"] = "net"
        entry = build_entry(entry_id, gross_form, gross_values, {"commissionPercent": 30})

        normalized = to_normalized(entry, gross_form)

        assert normalized.gross_details is None
        assert normalized.net_details.service_facility_fee_percent == Decimal("40")
        assert normalized.net_details.service_fee_base == Decimal("80.0")
        assert normalized.net_details.commission == Decimal("60.0")
        assert [r.field_id for r in normalized.gross_reductions] == ["lab"]
        assert normalized.gross_reductions_summary.total_reductions == Decimal("99.0")

    def test_to_flat_orders_by_display_order(self, entry_id, gross_form, gross_values):
        entry = build_entry(entry_id, gross_form, gross_values)
        normalized = to_normalized(entry, gross_form)
        normalized.field_values.reverse()
        normalized.field_calculations.reverse()

        flat = to_flat(normalized)

        assert flat.values == entry.values
        assert flat.calculations["fieldTotals"] == entry.calculations["fieldTotals"]

    def test_empty_calculations(self, entry_id, net_form):
        entry = FlatEntry(id=entry_id, form_type="income", values=[], calculations={})

        normalized = to_normalized(entry, net_form)

        assert normalized.summary is None
        assert normalized.field_calculations == []
        assert to_flat(normalized).calculations == {}


class TestLegacySuperHolding:
    """Test recompute of the super split for entries stored without it."""

    def test_split_derived_from_commission(self, entry_id, net_form, net_values):
        entry = FlatEntry(
            id=entry_id,
            form_type="income",
            values=net_values,
            calculations={
                "commission": 400.0,
                "gstOnCommission": 40.0,
                "totalPaymentReceived": 440.0,
            },
            deductions={"commissionPercent": 40, "superHoldingEnabled": True},
        )

        normalized = to_normalized(entry, net_form)
        calculations = to_flat(normalized).calculations

        assert normalized.net_details.super_component_percent == Decimal("12")
        assert calculations["commissionComponent"] == 357.14
        assert calculations["superComponent"] == 42.86
        assert calculations["totalForReconciliation"] == 400.0

    def test_no_recompute_without_super_holding(self, entry_id, net_form, net_values):
        entry = FlatEntry(
            id=entry_id,
            form_type="income",
            values=net_values,
            calculations={"commission": 400.0},
            deductions={"commissionPercent": 40},
        )

        calculations = to_flat(to_normalized(entry, net_form)).calculations

        assert "commissionComponent" not in calculations


class TestMalformedInput:
    """Test shape errors in the flat entry."""

    def test_calculations_must_be_an_object(self, entry_id, net_form):
        entry = FlatEntry(id=entry_id, calculations=[1, 2])

        with pytest.raises(MalformedEntryInputError) as exc_info:
            to_normalized(entry, net_form)

        assert exc_info.value.source == "calculations"

    def test_values_must_be_valid_json(self, entry_id, net_form):
        entry = FlatEntry(id=entry_id, values="[{", calculations={})

        with pytest.raises(MalformedEntryInputError):
            to_normalized(entry, net_form)

    def test_deductions_must_be_an_object(self, entry_id, net_form):
        entry = FlatEntry(id=entry_id, calculations={}, deductions="[]")

        with pytest.raises(MalformedEntryInputError):
            to_normalized(entry, net_form)


class TestMethodInvariant:
    """Test NormalizedEntry.validate."""

    def header(self, entry_id, method):
        return EntryHeader(id=entry_id, calculation_method=method)

    def test_both_detail_rows_rejected(self, entry_id):
        normalized = NormalizedEntry(
            header=self.header(entry_id, "net"),
            net_details=EntryNetDetails(id="n", entry_id=entry_id),
            gross_details=EntryGrossDetails(id="g", entry_id=entry_id),
        )

        with pytest.raises(NormalizationError):
            normalized.validate()

    def test_gross_entry_needs_gross_details(self, entry_id):
        normalized = NormalizedEntry(header=self.header(entry_id, "gross"))

        with pytest.raises(NormalizationError):
            normalized.validate()

    def test_net_entry_needs_net_details(self, entry_id):
        normalized = NormalizedEntry(header=self.header(entry_id, "net"))

        with pytest.raises(NormalizationError):
            normalized.validate()

    def test_net_entry_may_carry_service_fee_rows(self, entry_id):
        normalized = NormalizedEntry(
            header=self.header(entry_id, "net"),
            net_details=EntryNetDetails(id="n", entry_id=entry_id),
            gross_reductions=[EntryGrossReduction(
                id="r", entry_id=entry_id, field_id="lab", field_name="Lab", display_order=0,
            )],
        )

        assert normalized.validate() is normalized

    def test_valid_entry_returns_itself(self, entry_id):
        normalized = NormalizedEntry(
            header=self.header(entry_id, "gross"),
            gross_details=EntryGrossDetails(id="g", entry_id=entry_id),
        )

        assert normalized.validate() is normalized
        assert normalized.method_details is normalized.gross_details
