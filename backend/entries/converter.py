"""
Entry Engine - Normalization Bridge

Converts between the flat entry (values + calculation JSON + deductions)
and the normalized eleven-table row set.

- to_normalized(entry, form): flat -> rows
- to_flat(normalized): rows -> flat

Each table has its own pair of mapping functions so the JSON keys a row
owns are listed in exactly one place. For any entry whose calculations came
from the engine with the same form, to_flat(to_normalized(entry, form))
reproduces values, calculations and deductions key for key.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, TypeVar, Union

from .calculation_config import CalculationConfig, DEFAULT_CALCULATION_CONFIG
from .deductions import (
    resolve_commission_percent,
    resolve_service_fee_percent,
    resolve_super_percent,
    super_components,
)
from .errors import MalformedEntryInputError
from .gst import ZERO
from .normalized import (
    EntryDeductions,
    EntryFieldCalculation,
    EntryFieldValue,
    EntryGrossAdditionalReduction,
    EntryGrossDetails,
    EntryGrossLineItem,
    EntryGrossOutwork,
    EntryGrossReduction,
    EntryGrossReductionsSummary,
    EntryGrossReimbursement,
    EntryHeader,
    EntryNetDetails,
    EntrySummary,
    FlatEntry,
    NormalizedEntry,
)
from .schemas import (
    CalculationMethod,
    DeductionsInput,
    FormDefinition,
    RawJSON,
    load_json_document,
    parse_deductions,
    parse_form,
)

logger = logging.getLogger(__name__)

LineItem = TypeVar("LineItem", bound=EntryGrossLineItem)


# ==================== HELPERS ====================

def generate_uuid() -> str:
    return str(uuid.uuid4())


def _number(value: Any) -> Optional[Decimal]:
    """JSON number -> Decimal; anything else -> None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        dec = Decimal(str(value))
        return dec if dec.is_finite() else None
    return None


def _amount(data: Dict[str, Any], key: str) -> Decimal:
    found = _number(data.get(key))
    return found if found is not None else ZERO


def _put(target: Dict[str, Any], key: str, value: Any) -> None:
    """Set key only when the column holds a value."""
    if value is None:
        return
    target[key] = float(value) if isinstance(value, Decimal) else value


def _string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _dict_items(items: Any) -> List[Dict[str, Any]]:
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _by_display_order(rows: Iterable[Any]) -> List[Any]:
    return sorted(rows, key=lambda r: r.display_order)


def _load_values(raw: RawJSON) -> List[Dict[str, Any]]:
    doc = load_json_document(raw, "values")
    if doc is None:
        return []
    if not isinstance(doc, list):
        raise MalformedEntryInputError("values", "expected a list")
    return doc


def _load_calculations(raw: RawJSON) -> Dict[str, Any]:
    doc = load_json_document(raw, "calculations")
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise MalformedEntryInputError("calculations", "expected an object")
    return doc


def _load_deductions(raw: RawJSON) -> Optional[Dict[str, Any]]:
    doc = load_json_document(raw, "deductions")
    if doc is None:
        return None
    if not isinstance(doc, dict):
        raise MalformedEntryInputError("deductions", "expected an object")
    return doc


# ==================== HEADER ====================

def header_from_flat(entry: FlatEntry, form: FormDefinition) -> EntryHeader:
    return EntryHeader(
        id=entry.id,
        form_id=entry.form_id,
        form_name=entry.form_name,
        form_type=entry.form_type,
        calculation_method=form.calculation_method,
        clinic_id=entry.clinic_id,
        quarter_id=entry.quarter_id,
        entry_date=entry.entry_date,
        description=entry.description,
        remarks=entry.remarks,
        payment_responsibility=entry.payment_responsibility,
        created_by=entry.created_by,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        deleted_at=entry.deleted_at,
    )


def header_to_flat(header: EntryHeader) -> FlatEntry:
    return FlatEntry(
        id=header.id,
        form_id=header.form_id,
        form_name=header.form_name,
        form_type=header.form_type,
        clinic_id=header.clinic_id,
        quarter_id=header.quarter_id,
        entry_date=header.entry_date,
        description=header.description,
        remarks=header.remarks,
        payment_responsibility=header.payment_responsibility,
        created_by=header.created_by,
        created_at=header.created_at,
        updated_at=header.updated_at,
        deleted_at=header.deleted_at,
    )


# ==================== FIELD VALUES ====================

def field_values_from_flat(entry: FlatEntry, values: Sequence[Dict[str, Any]]) -> List[EntryFieldValue]:
    rows = []
    for order, item in enumerate(_dict_items(list(values))):
        row = EntryFieldValue(
            id=generate_uuid(),
            entry_id=entry.id,
            field_id=_string(item.get("fieldId")),
            field_name=_string(item.get("fieldName")),
            display_order=order,
            manual_gst_amount=_number(item.get("manualGstAmount")),
            created_at=entry.created_at,
        )
        raw = item.get("value")
        if isinstance(raw, bool):
            row.boolean_value = raw
        elif isinstance(raw, str):
            row.text_value = raw
        else:
            row.value = _number(raw)
        rows.append(row)
    return rows


def field_value_to_flat(row: EntryFieldValue) -> Dict[str, Any]:
    data: Dict[str, Any] = {"fieldId": row.field_id, "fieldName": row.field_name}
    if row.value is not None:
        data["value"] = float(row.value)
    elif row.text_value is not None:
        data["value"] = row.text_value
    elif row.boolean_value is not None:
        data["value"] = row.boolean_value
    _put(data, "manualGstAmount", row.manual_gst_amount)
    return data


# ==================== FIELD CALCULATIONS ====================

def field_calculations_from_flat(
    entry: FlatEntry,
    calc: Dict[str, Any],
    form: FormDefinition
) -> List[EntryFieldCalculation]:
    """fieldTotals -> rows, enriched with section and payer from the form."""
    form_fields = {}
    for form_field in form.fields:
        form_fields.setdefault(form_field.id, form_field)

    rows = []
    for order, item in enumerate(_dict_items(calc.get("fieldTotals"))):
        field_id = _string(item.get("fieldId"))
        form_field = form_fields.get(field_id)
        rows.append(EntryFieldCalculation(
            id=generate_uuid(),
            entry_id=entry.id,
            field_id=field_id,
            field_name=_string(item.get("fieldName")),
            display_order=order,
            base_amount=_amount(item, "baseAmount"),
            gst_amount=_amount(item, "gstAmount"),
            total_amount=_amount(item, "totalAmount"),
            gst_rate=_amount(item, "gstRate"),
            gst_type=_string(item.get("gstType")),
            section=form_field.section if form_field else None,
            payment_responsibility=form_field.payment_responsibility if form_field else None,
            created_at=entry.created_at,
        ))
    return rows


def field_calculation_to_flat(row: EntryFieldCalculation) -> Dict[str, Any]:
    return {
        "fieldId": row.field_id,
        "fieldName": row.field_name,
        "baseAmount": float(row.base_amount),
        "gstAmount": float(row.gst_amount),
        "totalAmount": float(row.total_amount),
        "gstRate": float(row.gst_rate),
        "gstType": row.gst_type,
    }


# ==================== SUMMARY ====================

SUMMARY_KEYS = ("totalBaseAmount", "totalGSTAmount", "totalAmount", "basMapping")


def summary_from_flat(entry: FlatEntry, calc: Dict[str, Any]) -> Optional[EntrySummary]:
    if not any(key in calc for key in SUMMARY_KEYS):
        return None
    bas = calc.get("basMapping") if isinstance(calc.get("basMapping"), dict) else {}
    return EntrySummary(
        id=generate_uuid(),
        entry_id=entry.id,
        total_base_amount=_amount(calc, "totalBaseAmount"),
        total_gst_amount=_amount(calc, "totalGSTAmount"),
        total_amount=_amount(calc, "totalAmount"),
        net_payable=_number(calc.get("netPayable")),
        net_receivable=_number(calc.get("netReceivable")),
        net_fee=_number(calc.get("netFee")),
        bas_gst_on_sales_1a=_amount(bas, "gstOnSales1A"),
        bas_gst_credit_1b=_amount(bas, "gstCredit1B"),
        bas_total_sales_g1=_amount(bas, "totalSalesG1"),
        bas_expenses_g11=_amount(bas, "expensesG11"),
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def summary_to_flat(row: EntrySummary) -> Dict[str, Any]:
    data = {
        "totalBaseAmount": float(row.total_base_amount),
        "totalGSTAmount": float(row.total_gst_amount),
        "totalAmount": float(row.total_amount),
        "basMapping": {
            "gstOnSales1A": float(row.bas_gst_on_sales_1a),
            "gstCredit1B": float(row.bas_gst_credit_1b),
            "totalSalesG1": float(row.bas_total_sales_g1),
            "expensesG11": float(row.bas_expenses_g11),
        },
    }
    _put(data, "netPayable", row.net_payable)
    _put(data, "netReceivable", row.net_receivable)
    _put(data, "netFee", row.net_fee)
    return data


# ==================== NET DETAILS ====================

def net_details_from_flat(
    entry: FlatEntry,
    calc: Dict[str, Any],
    form: FormDefinition,
    deductions: Optional[DeductionsInput],
    config: CalculationConfig = DEFAULT_CALCULATION_CONFIG
) -> EntryNetDetails:
    """
    Commission and service fee blocks -> row.

    Legacy entries were stored with super holding enabled but without the
    commission/super split; the split is derived from the commission here.
    """
    super_holding = bool(deductions is not None and deductions.super_holding_enabled)
    super_pct = None
    if super_holding:
        super_pct = resolve_super_percent(deductions, config)
    elif deductions is not None and deductions.super_component_percent is not None:
        super_pct = _number(deductions.super_component_percent)

    row = EntryNetDetails(
        id=generate_uuid(),
        entry_id=entry.id,
        commission_percent=resolve_commission_percent(deductions),
        commission=_number(calc.get("commission")),
        gst_on_commission=_number(calc.get("gstOnCommission")),
        total_payment_received=_number(calc.get("totalPaymentReceived")),
        super_holding_enabled=super_holding,
        super_component_percent=super_pct,
        commission_component=_number(calc.get("commissionComponent")),
        super_component=_number(calc.get("superComponent")),
        total_for_reconciliation=_number(calc.get("totalForReconciliation")),
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )

    if super_holding and row.commission is not None and row.commission_component is None:
        component, super_amount, total = super_components(row.commission, super_pct)
        row.commission_component = component
        row.super_component = super_amount
        row.total_for_reconciliation = total
        logger.info(f"Derived super holding split for legacy entry {entry.id}")

    service_fee_from_flat(row, calc, form, deductions)
    return row


def net_details_to_flat(row: EntryNetDetails) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    _put(data, "commission", row.commission)
    _put(data, "gstOnCommission", row.gst_on_commission)
    _put(data, "totalPaymentReceived", row.total_payment_received)
    _put(data, "commissionComponent", row.commission_component)
    _put(data, "superComponent", row.super_component)
    _put(data, "totalForReconciliation", row.total_for_reconciliation)
    data.update(service_fee_to_flat(row))
    return data


# ==================== SERVICE FEE ====================

SERVICE_FEE_KEYS = {
    "serviceFeeBase": "service_fee_base",
    "gstOnServiceFee": "gst_on_service_fee",
    "totalServiceFee": "total_service_fee",
    "subtotalAfterDeductions": "subtotal_after_deductions",
    "remittedAmount": "remitted_amount",
}

ServiceFeeRow = Union[EntryNetDetails, EntryGrossDetails]


def service_fee_from_flat(
    row: ServiceFeeRow,
    calc: Dict[str, Any],
    form: FormDefinition,
    deductions: Optional[DeductionsInput]
) -> None:
    """Copy the service fee headline amounts onto a method row."""
    for key, attr in SERVICE_FEE_KEYS.items():
        setattr(row, attr, _number(calc.get(key)))
    if row.service_fee_base is not None:
        row.service_facility_fee_percent = resolve_service_fee_percent(
            deductions, form.service_facility_fee_percent
        )


def service_fee_to_flat(row: ServiceFeeRow) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for key, attr in SERVICE_FEE_KEYS.items():
        _put(data, key, getattr(row, attr))
    return data


# ==================== GROSS DETAILS ====================

def gross_details_from_flat(
    entry: FlatEntry,
    calc: Dict[str, Any],
    form: FormDefinition,
    deductions: Optional[DeductionsInput]
) -> EntryGrossDetails:
    row = EntryGrossDetails(
        id=generate_uuid(),
        entry_id=entry.id,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )
    service_fee_from_flat(row, calc, form, deductions)
    return row


# ==================== GROSS LINE ITEMS ====================

def line_items_from_flat(
    row_type: Type[LineItem],
    entry: FlatEntry,
    items: Any,
    calculation_ids: Dict[str, str]
) -> List[LineItem]:
    """Breakdown list -> rows linked to their field-calculation row."""
    rows = []
    for order, item in enumerate(_dict_items(items)):
        field_id = _string(item.get("fieldId"))
        rows.append(row_type(
            id=generate_uuid(),
            entry_id=entry.id,
            field_id=field_id,
            field_name=_string(item.get("fieldName")),
            display_order=order,
            field_calculation_id=calculation_ids.get(field_id),
            base_amount=_amount(item, "baseAmount"),
            gst_amount=_amount(item, "gstAmount"),
            total_amount=_amount(item, "totalAmount"),
            gst_rate=_number(item.get("gstRate")),
            gst_type=item.get("gstType") if isinstance(item.get("gstType"), str) else None,
            created_at=entry.created_at,
        ))
    return rows


def line_item_to_flat(row: EntryGrossLineItem) -> Dict[str, Any]:
    data = {
        "fieldId": row.field_id,
        "fieldName": row.field_name,
        "baseAmount": float(row.base_amount),
        "gstAmount": float(row.gst_amount),
        "totalAmount": float(row.total_amount),
    }
    _put(data, "gstRate", row.gst_rate)
    _put(data, "gstType", row.gst_type)
    return data


# ==================== GROSS REDUCTIONS SUMMARY ====================

REDUCTIONS_SUMMARY_KEYS = {
    "totalReductions": "total_reductions",
    "totalReductionBase": "total_reduction_base",
    "totalExpenseGst": "total_expense_gst",
    "totalReimbursements": "total_reimbursements",
    "totalAdditionalReduction": "total_additional_reduction",
    "totalAdditionalReductionBase": "total_additional_reduction_base",
    "totalAdditionalReductionGst": "total_additional_reduction_gst",
}


def reductions_summary_from_flat(
    entry: FlatEntry,
    calc: Dict[str, Any]
) -> Optional[EntryGrossReductionsSummary]:
    if not any(key in calc for key in REDUCTIONS_SUMMARY_KEYS):
        return None
    row = EntryGrossReductionsSummary(
        id=generate_uuid(),
        entry_id=entry.id,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )
    for key, attr in REDUCTIONS_SUMMARY_KEYS.items():
        setattr(row, attr, _number(calc.get(key)))
    return row


def reductions_summary_to_flat(row: EntryGrossReductionsSummary) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for key, attr in REDUCTIONS_SUMMARY_KEYS.items():
        _put(data, key, getattr(row, attr))
    return data


# ==================== GROSS OUTWORK ====================

def outwork_from_flat(entry: FlatEntry, calc: Dict[str, Any]) -> Optional[EntryGrossOutwork]:
    if "outworkChargeBase" not in calc:
        return None
    return EntryGrossOutwork(
        id=generate_uuid(),
        entry_id=entry.id,
        outwork_enabled=calc.get("outworkEnabled") is True,
        outwork_rate_percent=_number(calc.get("outworkRatePercent")),
        outwork_charge_base=_amount(calc, "outworkChargeBase"),
        outwork_charge_gst=_amount(calc, "outworkChargeGst"),
        outwork_charge_total=_amount(calc, "outworkChargeTotal"),
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def outwork_to_flat(row: EntryGrossOutwork) -> Dict[str, Any]:
    data: Dict[str, Any] = {"outworkEnabled": row.outwork_enabled}
    _put(data, "outworkRatePercent", row.outwork_rate_percent)
    data["outworkChargeBase"] = float(row.outwork_charge_base)
    data["outworkChargeGst"] = float(row.outwork_charge_gst)
    data["outworkChargeTotal"] = float(row.outwork_charge_total)
    return data


# ==================== DEDUCTIONS ====================

DEDUCTION_NUMBER_KEYS = {
    "serviceFacilityFeePercent": "service_facility_fee_percent",
    "serviceFeeOverride": "service_fee_override",
    "commissionPercent": "commission_percent",
    "superComponentPercent": "super_component_percent",
    "outworkRatePercent": "outwork_rate_percent",
}

DEDUCTION_FLAG_KEYS = {
    "superHoldingEnabled": "super_holding_enabled",
    "outworkEnabled": "outwork_enabled",
}


def deductions_from_flat(entry: FlatEntry, doc: Optional[Dict[str, Any]]) -> Optional[EntryDeductions]:
    if doc is None:
        return None
    row = EntryDeductions(id=generate_uuid(), entry_id=entry.id, created_at=entry.created_at)
    for key, attr in DEDUCTION_NUMBER_KEYS.items():
        setattr(row, attr, _number(doc.get(key)))
    for key, attr in DEDUCTION_FLAG_KEYS.items():
        flag = doc.get(key)
        setattr(row, attr, flag if isinstance(flag, bool) else None)
    responsibility = doc.get("entryPaymentResponsibility")
    row.entry_payment_responsibility = responsibility if isinstance(responsibility, str) else None
    return row


def deductions_to_flat(row: EntryDeductions) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for key, attr in DEDUCTION_NUMBER_KEYS.items():
        _put(data, key, getattr(row, attr))
    for key, attr in DEDUCTION_FLAG_KEYS.items():
        _put(data, key, getattr(row, attr))
    _put(data, "entryPaymentResponsibility", row.entry_payment_responsibility)
    return data


# ==================== ENTRY ====================

def to_normalized(
    entry: FlatEntry,
    form: Union[RawJSON, FormDefinition],
    config: CalculationConfig = DEFAULT_CALCULATION_CONFIG
) -> NormalizedEntry:
    """
    Split a flat entry into normalized rows.

    Exactly one method row is built, for the form's calculation method.

    Raises:
        MalformedEntryInputError: values, calculations or deductions are not
            valid JSON of the expected shape
    """
    form_def = parse_form(form)
    values = _load_values(entry.values)
    calc = _load_calculations(entry.calculations)
    deductions_doc = _load_deductions(entry.deductions)
    deduction_input = parse_deductions(deductions_doc)

    field_calculations = field_calculations_from_flat(entry, calc, form_def)
    calculation_ids: Dict[str, str] = {}
    for fc in field_calculations:
        calculation_ids.setdefault(fc.field_id, fc.id)

    normalized = NormalizedEntry(
        header=header_from_flat(entry, form_def),
        field_values=field_values_from_flat(entry, values),
        field_calculations=field_calculations,
        summary=summary_from_flat(entry, calc),
        deductions=deductions_from_flat(entry, deductions_doc),
    )

    if form_def.calculation_method == CalculationMethod.GROSS.value:
        normalized.gross_details = gross_details_from_flat(entry, calc, form_def, deduction_input)
    else:
        normalized.net_details = net_details_from_flat(
            entry, calc, form_def, deduction_input, config
        )

    # Service fee breakdowns are stored for either method
    normalized.gross_reductions = line_items_from_flat(
        EntryGrossReduction, entry, calc.get("reductionBreakdown"), calculation_ids
    )
    normalized.gross_reimbursements = line_items_from_flat(
        EntryGrossReimbursement, entry, calc.get("reimbursementBreakdown"), calculation_ids
    )
    normalized.gross_additional_reductions = line_items_from_flat(
        EntryGrossAdditionalReduction, entry, calc.get("additionalReductionBreakdown"), calculation_ids
    )
    normalized.gross_reductions_summary = reductions_summary_from_flat(entry, calc)
    normalized.gross_outwork = outwork_from_flat(entry, calc)

    logger.debug(
        f"Normalized entry {entry.id}: {len(normalized.field_values)} values, "
        f"{len(field_calculations)} field calculations ({form_def.calculation_method})"
    )
    return normalized.validate()


def calculations_to_flat(normalized: NormalizedEntry) -> Dict[str, Any]:
    """Rebuild the calculation JSON from every table that contributes keys."""
    calc: Dict[str, Any] = {}

    field_calculations = _by_display_order(normalized.field_calculations)
    if normalized.summary is not None or field_calculations:
        calc["fieldTotals"] = [field_calculation_to_flat(fc) for fc in field_calculations]
    if normalized.summary is not None:
        calc.update(summary_to_flat(normalized.summary))

    if normalized.net_details is not None:
        calc.update(net_details_to_flat(normalized.net_details))

    if normalized.gross_details is not None:
        calc.update(service_fee_to_flat(normalized.gross_details))

    reductions_summary = normalized.gross_reductions_summary
    if reductions_summary is not None or normalized.gross_reductions:
        calc["reductionBreakdown"] = [
            line_item_to_flat(r) for r in _by_display_order(normalized.gross_reductions)
        ]
    if reductions_summary is not None or normalized.gross_reimbursements:
        calc["reimbursementBreakdown"] = [
            line_item_to_flat(r) for r in _by_display_order(normalized.gross_reimbursements)
        ]
    if normalized.gross_additional_reductions or (
        reductions_summary is not None and reductions_summary.total_additional_reduction is not None
    ):
        calc["additionalReductionBreakdown"] = [
            line_item_to_flat(r) for r in _by_display_order(normalized.gross_additional_reductions)
        ]
    if reductions_summary is not None:
        calc.update(reductions_summary_to_flat(reductions_summary))

    if normalized.gross_outwork is not None:
        calc.update(outwork_to_flat(normalized.gross_outwork))

    return calc


def to_flat(normalized: NormalizedEntry) -> FlatEntry:
    """Reassemble the flat entry from normalized rows."""
    flat = header_to_flat(normalized.header)
    flat.values = [field_value_to_flat(fv) for fv in _by_display_order(normalized.field_values)]
    flat.calculations = calculations_to_flat(normalized)
    flat.deductions = (
        deductions_to_flat(normalized.deductions) if normalized.deductions is not None else None
    )
    return flat
