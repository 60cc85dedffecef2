"""
Entry Engine - BAS Mapper

Maps aggregated entry totals onto Business Activity Statement labels:
- 1A: GST on sales
- 1B: GST credits (GST on purchases)
- G1: Total sales (including GST)
- G11: Non-capital purchases (excluding GST)
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict

from .field_totals import FieldTotalsResult
from .gst import ZERO, round_currency
from .schemas import FormType


@dataclass
class BASMapping:
    gst_on_sales_1a: Decimal = ZERO
    gst_credit_1b: Decimal = ZERO
    total_sales_g1: Decimal = ZERO
    expenses_g11: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gstOnSales1A": float(self.gst_on_sales_1a),
            "gstCredit1B": float(self.gst_credit_1b),
            "totalSalesG1": float(self.total_sales_g1),
            "expensesG11": float(self.expenses_g11),
        }


def map_bas(form_type: str, totals: FieldTotalsResult) -> BASMapping:
    """
    Map totals to BAS labels by form type.

    "both" forms use the separately tracked income/expense sub-totals,
    never the netted combined total.
    """
    if form_type == FormType.EXPENSE.value:
        return BASMapping(
            gst_credit_1b=round_currency(totals.combined.gst),
            expenses_g11=round_currency(totals.combined.base),
        )
    if form_type == FormType.BOTH.value:
        return BASMapping(
            gst_on_sales_1a=round_currency(totals.income.gst),
            gst_credit_1b=round_currency(totals.expense.gst),
            total_sales_g1=round_currency(totals.income.total),
            expenses_g11=round_currency(totals.expense.base),
        )
    return BASMapping(
        gst_on_sales_1a=round_currency(totals.combined.gst),
        total_sales_g1=round_currency(totals.combined.total),
    )
