"""
Entry Engine - Field Calculation Pass

Joins each numeric/currency field of a form against the entry's values,
resolves GST per field and accumulates section totals.

Only fields of type number/currency with includeInTotal set participate.
A field without a value is skipped, not treated as zero.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from .gst import GSTBreakdown, GSTType, ZERO, resolve_gst, to_decimal
from .schemas import EntryValue, FormFieldDefinition, FormType

logger = logging.getLogger(__name__)


def is_expense_section(section: Optional[str]) -> bool:
    """
    Loose section classification: anything starting with "exp"
    (expense, Expenses 1, EXP-lab...) is an expense, everything else income.

    Section values are free-form strings in stored forms.
    """
    return (section or "").lower().startswith("exp")


@dataclass
class FieldCalculation:
    """GST breakdown for one included field."""
    field_id: str
    field_name: str
    base_amount: Decimal
    gst_amount: Decimal
    total_amount: Decimal
    gst_rate: Decimal
    gst_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fieldId": self.field_id,
            "fieldName": self.field_name,
            "baseAmount": float(self.base_amount),
            "gstAmount": float(self.gst_amount),
            "totalAmount": float(self.total_amount),
            "gstRate": float(self.gst_rate),
            "gstType": self.gst_type,
        }


@dataclass
class SectionTotals:
    """Running base / GST / total sums."""
    base: Decimal = ZERO
    gst: Decimal = ZERO
    total: Decimal = ZERO

    def add(self, breakdown: GSTBreakdown) -> None:
        self.base += breakdown.base
        self.gst += breakdown.gst
        self.total += breakdown.total

    def minus(self, other: "SectionTotals") -> "SectionTotals":
        return SectionTotals(
            base=self.base - other.base,
            gst=self.gst - other.gst,
            total=self.total - other.total,
        )


@dataclass
class FieldTotalsResult:
    """Output of the field pass, before rounding of the aggregate totals."""
    field_calculations: List[FieldCalculation] = field(default_factory=list)
    income: SectionTotals = field(default_factory=SectionTotals)
    expense: SectionTotals = field(default_factory=SectionTotals)
    combined: SectionTotals = field(default_factory=SectionTotals)

    def by_field_id(self) -> Dict[str, FieldCalculation]:
        return {fc.field_id: fc for fc in self.field_calculations}


def index_values(values: Sequence[EntryValue]) -> Dict[str, EntryValue]:
    """Key values by field id; a later duplicate replaces an earlier one."""
    by_id: Dict[str, EntryValue] = {}
    for v in values:
        if v.field_id:
            by_id[v.field_id] = v
    return by_id


def calculate_field(form_field: FormFieldDefinition, value: EntryValue) -> FieldCalculation:
    """Resolve GST for a single field/value pair."""
    amount = to_decimal(value.value)
    manual = to_decimal(value.manual_gst_amount) if value.manual_gst_amount is not None else None

    cfg = form_field.gst_config
    rate = to_decimal(cfg.rate) if cfg else ZERO
    gst_type = cfg.gst_type if cfg else GSTType.EXCLUSIVE.value

    if cfg is not None and cfg.enabled:
        breakdown = resolve_gst(amount, rate, gst_type, manual)
    else:
        breakdown = GSTBreakdown(amount, ZERO, amount)

    return FieldCalculation(
        field_id=form_field.id,
        field_name=form_field.name,
        base_amount=breakdown.base,
        gst_amount=breakdown.gst,
        total_amount=breakdown.total,
        gst_rate=rate,
        gst_type=gst_type,
    )


def compute_field_totals(
    fields: Sequence[FormFieldDefinition],
    values: Sequence[EntryValue],
    form_type: str
) -> FieldTotalsResult:
    """
    Run the field pass.

    For "both" forms income and expense are tracked separately and the
    combined total is income minus expense. Any other form type sums every
    included field into one running total regardless of section.
    """
    result = FieldTotalsResult()
    value_by_id = index_values(values)
    track_sections = form_type == FormType.BOTH.value

    for form_field in fields:
        if not form_field.is_numeric or not form_field.include_in_total:
            continue
        value = value_by_id.get(form_field.id)
        if value is None:
            continue

        calc = calculate_field(form_field, value)
        result.field_calculations.append(calc)
        breakdown = GSTBreakdown(calc.base_amount, calc.gst_amount, calc.total_amount)

        if track_sections:
            if is_expense_section(form_field.section):
                result.expense.add(breakdown)
            else:
                result.income.add(breakdown)
        else:
            result.combined.add(breakdown)

    if track_sections:
        result.combined = result.income.minus(result.expense)

    logger.debug(
        f"Field pass: {len(result.field_calculations)} of {len(fields)} fields included "
        f"(form type {form_type})"
    )
    return result
