"""
Entry Engine - Aggregation & Deduction Engine

Derives what the practitioner and the clinic each end up with:

- Net amounts: net payable (expense forms), net receivable (income forms)
  and net fee (income-bearing forms).
- Service fee (any calculation method): a service-facility fee percentage
  of the net fee is deducted, plus GST on the fee. Expense lines are split
  by who paid them: clinic-paid lines are reductions, practitioner-paid
  lines are reimbursements. An optional outwork charge replaces the
  reduction GST.
- Commission (net method only): the entry's commission percentage of the
  net fee, optionally split into commission and superannuation components
  ("super holding"). GST is charged on the commission component when super
  is held back, otherwise on the whole commission.

Remittance:

    remitted = net fee - total service fee + reimbursements - GST on reductions

Reimbursements come back in full while only the GST portion of clinic-paid
reductions is taken off. Accounting has not confirmed the asymmetry, so it
is reproduced exactly rather than corrected.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .calculation_config import CalculationConfig, DEFAULT_CALCULATION_CONFIG
from .field_totals import FieldCalculation, SectionTotals, is_expense_section
from .gst import HUNDRED, ZERO, round_currency, to_decimal
from .schemas import DeductionsInput, FormFieldDefinition, FormType, PaymentResponsibility

logger = logging.getLogger(__name__)


INCOME_BEARING_FORM_TYPES = {FormType.INCOME.value, FormType.BOTH.value}


# ==================== NET AMOUNTS ====================

@dataclass
class NetAmounts:
    net_payable: Optional[Decimal] = None
    net_receivable: Optional[Decimal] = None
    net_fee: Optional[Decimal] = None


def resolve_net_amounts(form_type: str, combined: SectionTotals) -> NetAmounts:
    """Net payable / receivable / fee by form type (all rounded)."""
    amounts = NetAmounts()
    if form_type == FormType.EXPENSE.value:
        amounts.net_payable = round_currency(combined.total)
    if form_type == FormType.INCOME.value:
        amounts.net_receivable = round_currency(combined.total)
    if form_type in INCOME_BEARING_FORM_TYPES:
        amounts.net_fee = round_currency(combined.base)
    return amounts


# ==================== PERCENTAGE RESOLUTION ====================

def _positive(value: Optional[float]) -> Optional[Decimal]:
    if value is None:
        return None
    dec = to_decimal(value)
    return dec if dec > 0 else None


def resolve_service_fee_percent(
    deductions: Optional[DeductionsInput],
    form_percent: Optional[float]
) -> Optional[Decimal]:
    """Entry override if positive, else the form default if positive, else None."""
    if deductions is not None:
        pct = _positive(deductions.service_facility_fee_percent)
        if pct is not None:
            return pct
    return _positive(form_percent)


def resolve_commission_percent(deductions: Optional[DeductionsInput]) -> Optional[Decimal]:
    """Entry commission percent if positive. Forms carry no commission default."""
    if deductions is None:
        return None
    return _positive(deductions.commission_percent)


def resolve_outwork_rate(
    deductions: Optional[DeductionsInput],
    form_enabled: bool,
    form_rate_percent: Optional[float]
) -> Optional[Decimal]:
    """Outwork rate when outwork is enabled with a positive rate; entry settings win."""
    enabled = form_enabled
    rate = form_rate_percent
    if deductions is not None:
        if deductions.outwork_enabled is not None:
            enabled = deductions.outwork_enabled
        if deductions.outwork_rate_percent is not None:
            rate = deductions.outwork_rate_percent
    if not enabled:
        return None
    return _positive(rate)


def _fee_with_gst(base: Decimal, config: CalculationConfig) -> Tuple[Decimal, Decimal]:
    gst = round_currency(base * config.fee_gst_rate)
    return gst, round_currency(base + gst)


# ==================== SERVICE FEE ====================

@dataclass
class OutworkCharge:
    """Surcharge on clinic-paid (outsourced lab) expense lines."""
    rate_percent: Decimal
    charge_base: Decimal
    charge_gst: Decimal
    charge_total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outworkEnabled": True,
            "outworkRatePercent": float(self.rate_percent),
            "outworkChargeBase": float(self.charge_base),
            "outworkChargeGst": float(self.charge_gst),
            "outworkChargeTotal": float(self.charge_total),
        }


@dataclass
class ServiceFeeDeductions:
    """Service-facility fee block for income-bearing entries (either method)."""
    service_fee_percent: Decimal
    service_fee_base: Decimal
    gst_on_service_fee: Decimal
    total_service_fee: Decimal
    total_reductions: Decimal
    total_reduction_base: Decimal
    total_expense_gst: Decimal
    total_reimbursements: Decimal
    subtotal_after_deductions: Decimal
    remitted_amount: Decimal
    reduction_breakdown: List[FieldCalculation] = field(default_factory=list)
    reimbursement_breakdown: List[FieldCalculation] = field(default_factory=list)
    outwork: Optional[OutworkCharge] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "serviceFeeBase": float(self.service_fee_base),
            "gstOnServiceFee": float(self.gst_on_service_fee),
            "totalServiceFee": float(self.total_service_fee),
            "totalReductions": float(self.total_reductions),
            "totalReductionBase": float(self.total_reduction_base),
            "totalExpenseGst": float(self.total_expense_gst),
            "totalReimbursements": float(self.total_reimbursements),
            "reductionBreakdown": [fc.to_dict() for fc in self.reduction_breakdown],
            "reimbursementBreakdown": [fc.to_dict() for fc in self.reimbursement_breakdown],
            "subtotalAfterDeductions": float(self.subtotal_after_deductions),
            "remittedAmount": float(self.remitted_amount),
        }
        if self.outwork is not None:
            data.update(self.outwork.to_dict())
        return data


def split_expense_lines(
    fields: Sequence[FormFieldDefinition],
    field_calculations: Sequence[FieldCalculation],
    entry_payment_responsibility: Optional[str] = None
) -> Tuple[List[FieldCalculation], List[FieldCalculation]]:
    """
    Split expense-section field calculations into (reductions, reimbursements).

    Expense fields are drawn from the form definition and matched by id
    against the already-computed calculations. Clinic-paid lines are
    reductions; everything else (owner, unset, unknown) is a reimbursement.
    An entry-level responsibility overrides every field's own setting.
    """
    calc_by_id: Dict[str, FieldCalculation] = {}
    for fc in field_calculations:
        calc_by_id.setdefault(fc.field_id, fc)

    reductions: List[FieldCalculation] = []
    reimbursements: List[FieldCalculation] = []

    for form_field in fields:
        if not is_expense_section(form_field.section):
            continue
        fc = calc_by_id.get(form_field.id)
        if fc is None:
            continue
        responsibility = (
            entry_payment_responsibility
            or form_field.payment_responsibility
            or PaymentResponsibility.OWNER.value
        )
        if responsibility == PaymentResponsibility.CLINIC.value:
            reductions.append(fc)
        else:
            reimbursements.append(fc)

    return reductions, reimbursements


def compute_outwork_charge(
    reductions: Sequence[FieldCalculation],
    rate_percent: Decimal,
    config: CalculationConfig = DEFAULT_CALCULATION_CONFIG
) -> OutworkCharge:
    """Outwork charge on the base of clinic-paid expense lines."""
    outwork_costs = sum((r.base_amount for r in reductions), ZERO)
    charge_base = round_currency(outwork_costs * (rate_percent / HUNDRED))
    charge_gst, charge_total = _fee_with_gst(charge_base, config)
    return OutworkCharge(
        rate_percent=rate_percent,
        charge_base=charge_base,
        charge_gst=charge_gst,
        charge_total=charge_total,
    )


def aggregate_deductions(
    combined: SectionTotals,
    form_type: str,
    form_service_fee_percent: Optional[float],
    deductions: Optional[DeductionsInput],
    field_calculations: Sequence[FieldCalculation],
    fields: Sequence[FormFieldDefinition],
    outwork_rate_percent: Optional[Decimal] = None,
    config: CalculationConfig = DEFAULT_CALCULATION_CONFIG
) -> Optional[ServiceFeeDeductions]:
    """
    Compute the service-facility fee deduction block.

    Returns None (block omitted entirely) unless the form carries income and
    a positive service-fee percentage resolves.
    """
    if form_type not in INCOME_BEARING_FORM_TYPES:
        return None

    pct = resolve_service_fee_percent(deductions, form_service_fee_percent)
    if pct is None:
        logger.debug("No positive service fee percentage, deduction block omitted")
        return None

    net_fee = round_currency(combined.base)

    service_base = net_fee * (pct / HUNDRED)
    if deductions is not None and deductions.service_fee_override is not None:
        service_base = to_decimal(deductions.service_fee_override)
    service_base = round_currency(service_base)
    gst_on_service_fee, total_service_fee = _fee_with_gst(service_base, config)

    reductions, reimbursements = split_expense_lines(
        fields,
        field_calculations,
        deductions.entry_payment_responsibility if deductions is not None else None,
    )

    total_reductions = round_currency(sum((r.total_amount for r in reductions), ZERO))
    total_reduction_base = round_currency(sum((r.base_amount for r in reductions), ZERO))
    reduction_gst = round_currency(sum((r.gst_amount for r in reductions), ZERO))
    total_reimbursements = round_currency(sum((r.total_amount for r in reimbursements), ZERO))

    outwork = None
    applied_reduction = reduction_gst
    if outwork_rate_percent is not None and outwork_rate_percent > 0:
        outwork = compute_outwork_charge(reductions, outwork_rate_percent, config)
        applied_reduction = outwork.charge_total

    subtotal = round_currency(net_fee - service_base)
    remitted = round_currency(
        net_fee - total_service_fee + total_reimbursements - applied_reduction
    )

    logger.debug(
        f"Service fee {pct}% on net fee {net_fee}: base={service_base}, "
        f"reductions={len(reductions)}, reimbursements={len(reimbursements)}, remitted={remitted}"
    )

    return ServiceFeeDeductions(
        service_fee_percent=pct,
        service_fee_base=service_base,
        gst_on_service_fee=gst_on_service_fee,
        total_service_fee=total_service_fee,
        total_reductions=total_reductions,
        total_reduction_base=total_reduction_base,
        total_expense_gst=reduction_gst,
        total_reimbursements=total_reimbursements,
        subtotal_after_deductions=subtotal,
        remitted_amount=remitted,
        reduction_breakdown=reductions,
        reimbursement_breakdown=reimbursements,
        outwork=outwork,
    )


# ==================== COMMISSION ====================

def super_components(commission: Decimal, super_percent: Decimal) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Split a commission into (commission component, super component, total).

    commission component = commission / (1 + super% / 100)
    super component      = commission component x super% / 100
    """
    commission_component = round_currency(commission / (1 + super_percent / HUNDRED))
    super_component = round_currency(commission_component * super_percent / HUNDRED)
    return commission_component, super_component, round_currency(commission_component + super_component)


@dataclass
class CommissionDetails:
    """Commission block for net-method entries."""
    commission_percent: Decimal
    commission: Decimal
    gst_on_commission: Decimal
    total_payment_received: Decimal
    super_component_percent: Optional[Decimal] = None
    commission_component: Optional[Decimal] = None
    super_component: Optional[Decimal] = None
    total_for_reconciliation: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "commission": float(self.commission),
            "gstOnCommission": float(self.gst_on_commission),
            "totalPaymentReceived": float(self.total_payment_received),
        }
        if self.commission_component is not None:
            data["commissionComponent"] = float(self.commission_component)
            data["superComponent"] = float(self.super_component)
            data["totalForReconciliation"] = float(self.total_for_reconciliation)
        return data


def resolve_super_percent(
    deductions: Optional[DeductionsInput],
    config: CalculationConfig = DEFAULT_CALCULATION_CONFIG
) -> Decimal:
    if deductions is not None and deductions.super_component_percent is not None:
        return to_decimal(deductions.super_component_percent)
    return config.default_super_percent


def aggregate_commission(
    combined: SectionTotals,
    form_type: str,
    deductions: Optional[DeductionsInput],
    config: CalculationConfig = DEFAULT_CALCULATION_CONFIG
) -> Optional[CommissionDetails]:
    """
    Compute the commission block for net-method entries.

    Returns None unless the form carries income and the entry sets a
    positive commission percentage.

    With super holding the commission D is split into a commission
    component F and a super component G, and GST applies to F only:

        gstOnCommission      = F x fee GST rate
        totalPaymentReceived = F + gstOnCommission

    Without super holding GST applies to D.
    """
    if form_type not in INCOME_BEARING_FORM_TYPES:
        return None

    pct = resolve_commission_percent(deductions)
    if pct is None:
        logger.debug("No positive commission percentage, commission block omitted")
        return None

    net_fee = round_currency(combined.base)
    commission = round_currency(net_fee * (pct / HUNDRED))

    if deductions is None or not deductions.super_holding_enabled:
        gst_on_commission, total_payment = _fee_with_gst(commission, config)
        return CommissionDetails(
            commission_percent=pct,
            commission=commission,
            gst_on_commission=gst_on_commission,
            total_payment_received=total_payment,
        )

    super_pct = resolve_super_percent(deductions, config)
    component, super_amount, total = super_components(commission, super_pct)
    gst_on_commission, total_payment = _fee_with_gst(component, config)
    return CommissionDetails(
        commission_percent=pct,
        commission=commission,
        gst_on_commission=gst_on_commission,
        total_payment_received=total_payment,
        super_component_percent=super_pct,
        commission_component=component,
        super_component=super_amount,
        total_for_reconciliation=total,
    )
