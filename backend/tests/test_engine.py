"""
Integration Tests for the Entry Calculation Engine

Runs complete entries through run_entry_calculation and checks the flat
calculation JSON: which keys are present for each form type and method,
and the amounts they carry.

Run with: pytest tests/test_engine.py -v
"""

import json
import pytest
from decimal import Decimal

from entries import (
    CalculationConfig,
    EntryCalculationEngine,
    MalformedEntryInputError,
    run_entry_calculation,
)
from entries.schemas import parse_deductions, parse_entry_values, parse_form


GROSS_KEYS = {
    "serviceFeeBase", "gstOnServiceFee", "totalServiceFee", "totalReductions",
    "totalReductionBase", "totalExpenseGst", "totalReimbursements",
    "reductionBreakdown", "reimbursementBreakdown",
    "subtotalAfterDeductions", "remittedAmount",
}
COMMISSION_KEYS = {"commission", "gstOnCommission", "totalPaymentReceived"}
SUPER_KEYS = {"commissionComponent", "superComponent", "totalForReconciliation"}
OUTWORK_KEYS = {
    "outworkEnabled", "outworkRatePercent",
    "outworkChargeBase", "outworkChargeGst", "outworkChargeTotal",
}


class TestGrossEntries:
    """Test gross-method (service-facility fee) entries."""

    def test_full_gross_calculation(self, gross_form, gross_values):
        """Income 290, clinic lab 90 + 9 GST, fee override 50 -> remitted 136."""
        result = run_entry_calculation(gross_form, gross_values, {"serviceFeeOverride": 50})

        assert result["totalBaseAmount"] == 200.0
        assert result["totalGSTAmount"] == -9.0
        assert result["totalAmount"] == 191.0
        assert result["netFee"] == 200.0
        assert "netPayable" not in result
        assert "netReceivable" not in result

        assert result["serviceFeeBase"] == 50.0
        assert result["gstOnServiceFee"] == 5.0
        assert result["totalServiceFee"] == 55.0
        assert result["subtotalAfterDeductions"] == 150.0
        assert result["remittedAmount"] == 136.0
        assert [r["fieldId"] for r in result["reductionBreakdown"]] == ["lab"]
        assert result["reimbursementBreakdown"] == []

        assert result["basMapping"] == {
            "gstOnSales1A": 0.0,
            "gstCredit1B": 9.0,
            "totalSalesG1": 290.0,
            "expensesG11": 90.0,
        }

    def test_field_totals(self, gross_form, gross_values):
        result = run_entry_calculation(gross_form, gross_values)

        assert result["fieldTotals"] == [
            {
                "fieldId": "fees", "fieldName": "Patient fees",
                "baseAmount": 290.0, "gstAmount": 0.0, "totalAmount": 290.0,
                "gstRate": 0.0, "gstType": "exclusive",
            },
            {
                "fieldId": "lab", "fieldName": "Lab fees",
                "baseAmount": 90.0, "gstAmount": 9.0, "totalAmount": 99.0,
                "gstRate": 10.0, "gstType": "exclusive",
            },
        ]

    def test_form_percentage_applies(self, gross_form, gross_values):
        result = run_entry_calculation(gross_form, gross_values)

        # 40% of 200
        assert result["serviceFeeBase"] == 80.0
        assert result["totalServiceFee"] == 88.0
        assert GROSS_KEYS <= set(result)
        assert not COMMISSION_KEYS & set(result)

    def test_gross_block_omitted_without_percentage(self, gross_form, gross_values):
        del gross_form["serviceFacilityFeePercent"]

        result = run_entry_calculation(gross_form, gross_values)

        assert not GROSS_KEYS & set(result)
        assert result["netFee"] == 200.0

    def test_outwork_from_form(self, gross_form, gross_values):
        gross_form["outworkEnabled"] = True
        gross_form["outworkRatePercent"] = 10

        result = run_entry_calculation(gross_form, gross_values, {"serviceFeeOverride": 50})

        assert OUTWORK_KEYS <= set(result)
        assert result["outworkChargeTotal"] == 9.9
        assert result["remittedAmount"] == 135.1

    def test_outwork_absent_by_default(self, gross_form, gross_values):
        result = run_entry_calculation(gross_form, gross_values)

        assert not OUTWORK_KEYS & set(result)

    def test_entry_payment_responsibility(self, gross_form, gross_values):
        result = run_entry_calculation(
            gross_form, gross_values,
            {"serviceFeeOverride": 50, "entryPaymentResponsibility": "Owner"},
        )

        assert result["reductionBreakdown"] == []
        assert result["totalReimbursements"] == 99.0
        assert result["remittedAmount"] == 244.0


class TestNetEntries:
    """Test net-method (commission) entries."""

    def test_income_with_super_holding(self, net_form, net_values):
        result = run_entry_calculation(
            net_form, net_values,
            {"commissionPercent": 40, "superHoldingEnabled": True},
        )

        assert result["totalBaseAmount"] == 1000.0
        assert result["totalGSTAmount"] == 100.0
        assert result["totalAmount"] == 1100.0
        assert result["netReceivable"] == 1100.0
        assert result["netFee"] == 1000.0

        assert result["commission"] == 400.0
        # GST on the commission component only: 357.14 x 10%
        assert result["gstOnCommission"] == 35.71
        assert result["totalPaymentReceived"] == 392.85
        assert result["commissionComponent"] == 357.14
        assert result["superComponent"] == 42.86
        assert result["totalForReconciliation"] == 400.0

        assert result["basMapping"]["gstOnSales1A"] == 100.0
        assert result["basMapping"]["totalSalesG1"] == 1100.0
        assert not GROSS_KEYS & set(result)

    def test_commission_without_super(self, net_form, net_values):
        result = run_entry_calculation(net_form, net_values, {"commissionPercent": 40})

        assert COMMISSION_KEYS <= set(result)
        assert not SUPER_KEYS & set(result)

    def test_commission_omitted_without_percentage(self, net_form, net_values):
        result = run_entry_calculation(net_form, net_values)

        assert not COMMISSION_KEYS & set(result)
        assert result["netReceivable"] == 1100.0

    def test_expense_form(self, expense_form, expense_values):
        """Expense forms carry netPayable and never a commission block."""
        result = run_entry_calculation(expense_form, expense_values, {"commissionPercent": 40})

        # rent 500 + 50; consumables 80 + 7.50 manual
        assert result["netPayable"] == 637.5
        assert result["totalGSTAmount"] == 57.5
        assert "netFee" not in result
        assert "netReceivable" not in result
        assert not COMMISSION_KEYS & set(result)
        assert result["basMapping"] == {
            "gstOnSales1A": 0.0,
            "gstCredit1B": 57.5,
            "totalSalesG1": 0.0,
            "expensesG11": 580.0,
        }

    def test_unknown_method_treated_as_net(self, net_form, net_values):
        net_form["calculationMethod"] = "hybrid"

        result = run_entry_calculation(net_form, net_values, {"commissionPercent": 10})

        assert result["commission"] == 100.0

    def test_service_fee_applies_under_net_method(self, net_form):
        net_form["serviceFacilityFeePercent"] = 50
        net_form["fields"][0]["gstConfig"] = {"enabled": False}

        result = run_entry_calculation(net_form, [{"fieldId": "fees", "value": 200}])

        assert result["serviceFeeBase"] == 100.0
        assert result["gstOnServiceFee"] == 10.0
        assert result["totalServiceFee"] == 110.0
        assert result["subtotalAfterDeductions"] == 100.0
        assert result["remittedAmount"] == 90.0
        assert result["reductionBreakdown"] == []
        assert not COMMISSION_KEYS & set(result)

    def test_service_fee_and_commission_together(self, net_form, net_values):
        net_form["serviceFacilityFeePercent"] = 50

        result = run_entry_calculation(net_form, net_values, {"commissionPercent": 40})

        assert GROSS_KEYS <= set(result)
        assert COMMISSION_KEYS <= set(result)
        assert result["serviceFeeBase"] == 500.0
        assert result["remittedAmount"] == 450.0
        assert result["commission"] == 400.0

    def test_form_percentage_is_not_a_commission_default(self, net_form, net_values):
        net_form["serviceFacilityFeePercent"] = 30

        result = run_entry_calculation(net_form, net_values)

        assert not COMMISSION_KEYS & set(result)
        assert result["serviceFeeBase"] == 300.0


class TestBothNetting:
    """Test income minus expense for both-type forms."""

    def test_income_500_expense_200(self):
        form = {
            "formType": "both",
            "calculationMethod": "net",
            "fields": [
                {"id": "a", "type": "currency", "section": "income", "includeInTotal": True},
                {"id": "b", "type": "currency", "section": "income", "includeInTotal": True},
                {"id": "c", "type": "currency", "section": "expense", "includeInTotal": True},
            ],
        }
        values = [
            {"fieldId": "a", "value": 300},
            {"fieldId": "b", "value": 200},
            {"fieldId": "c", "value": 200},
        ]

        result = run_entry_calculation(form, values)

        assert result["totalAmount"] == 300.0
        assert result["netFee"] == 300.0
        assert result["basMapping"]["totalSalesG1"] == 500.0
        assert result["basMapping"]["expensesG11"] == 200.0


class TestInputHandling:
    """Test raw JSON input, malformed input and configuration."""

    def test_raw_json_text(self, gross_form, gross_values):
        from_text = run_entry_calculation(
            json.dumps(gross_form), json.dumps(gross_values), json.dumps({"serviceFeeOverride": 50})
        )
        from_objects = run_entry_calculation(gross_form, gross_values, {"serviceFeeOverride": 50})

        assert from_text == from_objects

    def test_empty_values_and_deductions(self, net_form):
        result = run_entry_calculation(net_form, "", "")

        assert result["fieldTotals"] == []
        assert result["totalAmount"] == 0.0

    def test_invalid_form_json(self, net_values):
        with pytest.raises(MalformedEntryInputError) as exc_info:
            run_entry_calculation("{not json", net_values)

        assert exc_info.value.source == "form"

    def test_invalid_values_json(self, net_form):
        with pytest.raises(MalformedEntryInputError) as exc_info:
            run_entry_calculation(net_form, "[{")

        assert exc_info.value.source == "values"

    def test_values_must_be_a_list(self, net_form):
        with pytest.raises(MalformedEntryInputError):
            run_entry_calculation(net_form, {"fieldId": "fees", "value": 1})

    def test_fields_must_be_a_list(self, net_form, net_values):
        net_form["fields"] = "fees"

        with pytest.raises(MalformedEntryInputError):
            run_entry_calculation(net_form, net_values)

    def test_values_not_utf8(self, net_form):
        with pytest.raises(MalformedEntryInputError) as exc_info:
            run_entry_calculation(net_form, b'[{"fieldId":"fees","value":"\xff"}]')

        assert exc_info.value.source == "values"

    def test_amount_out_of_range(self, net_form):
        with pytest.raises(MalformedEntryInputError) as exc_info:
            run_entry_calculation(net_form, [{"fieldId": "fees", "value": "1e30"}])

        assert exc_info.value.source == "values"

    def test_percent_out_of_range(self, net_form, net_values):
        with pytest.raises(MalformedEntryInputError) as exc_info:
            run_entry_calculation(net_form, net_values, {"commissionPercent": 1e300})

        assert exc_info.value.source == "deductions"

    def test_largest_accepted_amount(self, net_form):
        result = run_entry_calculation(
            net_form, [{"fieldId": "fees", "value": "999999999999999"}], {"commissionPercent": 40}
        )

        assert result["totalAmount"] == 999999999999999.0

    def test_deductions_must_be_an_object(self, net_form, net_values):
        with pytest.raises(MalformedEntryInputError) as exc_info:
            run_entry_calculation(net_form, net_values, "[40]")

        assert exc_info.value.source == "deductions"

    def test_result_is_json_serializable(self, gross_form, gross_values):
        result = run_entry_calculation(gross_form, gross_values, {"outworkEnabled": True, "outworkRatePercent": 5})

        assert json.loads(json.dumps(result)) == result

    def test_engine_uses_config(self, net_form, net_values):
        engine = EntryCalculationEngine(CalculationConfig(
            fee_gst_rate=Decimal("0.15"),
            default_super_percent=Decimal("10"),
        ))

        result = engine.calculate(
            parse_form(net_form),
            parse_entry_values(net_values),
            parse_deductions({"commissionPercent": 40, "superHoldingEnabled": True}),
        )

        # 363.64 x 15% = 54.546
        assert result.commission.gst_on_commission == Decimal("54.55")
        assert result.commission.commission_component == Decimal("363.64")
        assert result.service_fee is None
