"""
Entry Engine - Normalized Row Set

Typed rows for the eleven entry tables. The flat calculation JSON is split
across these for storage and reporting joins; entries/converter.py maps in
both directions.

Money columns are Decimal. Optional columns are None when the flat JSON
did not carry the key, so the flat shape can be rebuilt key for key.

The service fee block is not tied to a calculation method. Its headline
amounts live on whichever method row the entry has, and its breakdowns use
the tbl_entry_gross_* line-item, summary and outwork tables for both methods.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from .errors import NormalizationError
from .gst import ZERO
from .schemas import CalculationMethod


# ==================== HEADER ====================

@dataclass
class EntryHeader:
    """tbl_entry_header - identity and lifecycle of an entry"""
    id: str
    form_id: Optional[str] = None
    form_name: str = ""
    form_type: str = ""
    calculation_method: str = CalculationMethod.NET.value
    clinic_id: Optional[str] = None
    quarter_id: Optional[str] = None
    entry_date: Optional[datetime] = None
    description: str = ""
    remarks: str = ""
    payment_responsibility: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    original_entry_id: Optional[str] = None


# ==================== VALUES & CALCULATIONS ====================

@dataclass
class EntryFieldValue:
    """tbl_entry_field_value - one raw value; exactly one of the value columns is set"""
    id: str
    entry_id: str
    field_id: str
    field_name: str
    display_order: int
    value: Optional[Decimal] = None
    text_value: Optional[str] = None
    boolean_value: Optional[bool] = None
    manual_gst_amount: Optional[Decimal] = None
    created_at: Optional[datetime] = None


@dataclass
class EntryFieldCalculation:
    """tbl_entry_field_calculation"""
    id: str
    entry_id: str
    field_id: str
    field_name: str
    display_order: int
    base_amount: Decimal = ZERO
    gst_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    gst_rate: Decimal = ZERO
    gst_type: str = ""
    section: Optional[str] = None
    payment_responsibility: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class EntrySummary:
    """tbl_entry_summary - aggregate totals and BAS labels"""
    id: str
    entry_id: str
    total_base_amount: Decimal = ZERO
    total_gst_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    net_payable: Optional[Decimal] = None
    net_receivable: Optional[Decimal] = None
    net_fee: Optional[Decimal] = None
    bas_gst_on_sales_1a: Decimal = ZERO
    bas_gst_credit_1b: Decimal = ZERO
    bas_total_sales_g1: Decimal = ZERO
    bas_expenses_g11: Decimal = ZERO
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ==================== METHOD DETAILS ====================

@dataclass
class EntryNetDetails:
    """tbl_entry_net_details - commission and service fee blocks (net method)"""
    id: str
    entry_id: str
    commission_percent: Optional[Decimal] = None
    commission: Optional[Decimal] = None
    gst_on_commission: Optional[Decimal] = None
    total_payment_received: Optional[Decimal] = None
    super_holding_enabled: bool = False
    super_component_percent: Optional[Decimal] = None
    commission_component: Optional[Decimal] = None
    super_component: Optional[Decimal] = None
    total_for_reconciliation: Optional[Decimal] = None
    service_facility_fee_percent: Optional[Decimal] = None
    service_fee_base: Optional[Decimal] = None
    gst_on_service_fee: Optional[Decimal] = None
    total_service_fee: Optional[Decimal] = None
    subtotal_after_deductions: Optional[Decimal] = None
    remitted_amount: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class EntryGrossDetails:
    """tbl_entry_gross_details - service facility fee block (gross method)"""
    id: str
    entry_id: str
    service_facility_fee_percent: Optional[Decimal] = None
    service_fee_base: Optional[Decimal] = None
    gst_on_service_fee: Optional[Decimal] = None
    total_service_fee: Optional[Decimal] = None
    subtotal_after_deductions: Optional[Decimal] = None
    remitted_amount: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class EntryGrossLineItem:
    """Common shape of reduction / reimbursement / additional reduction rows"""
    id: str
    entry_id: str
    field_id: str
    field_name: str
    display_order: int
    field_calculation_id: Optional[str] = None
    base_amount: Decimal = ZERO
    gst_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    gst_rate: Optional[Decimal] = None
    gst_type: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class EntryGrossReduction(EntryGrossLineItem):
    """tbl_entry_gross_reduction - clinic-paid expense line"""


@dataclass
class EntryGrossReimbursement(EntryGrossLineItem):
    """tbl_entry_gross_reimbursement - practitioner-paid expense line"""


@dataclass
class EntryGrossAdditionalReduction(EntryGrossLineItem):
    """tbl_entry_gross_additional_reduction"""


@dataclass
class EntryGrossReductionsSummary:
    """tbl_entry_gross_reductions_summary"""
    id: str
    entry_id: str
    total_reductions: Optional[Decimal] = None
    total_reduction_base: Optional[Decimal] = None
    total_expense_gst: Optional[Decimal] = None
    total_reimbursements: Optional[Decimal] = None
    total_additional_reduction: Optional[Decimal] = None
    total_additional_reduction_base: Optional[Decimal] = None
    total_additional_reduction_gst: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class EntryGrossOutwork:
    """tbl_entry_gross_outwork"""
    id: str
    entry_id: str
    outwork_enabled: bool = False
    outwork_rate_percent: Optional[Decimal] = None
    outwork_charge_base: Decimal = ZERO
    outwork_charge_gst: Decimal = ZERO
    outwork_charge_total: Decimal = ZERO
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class EntryDeductions:
    """tbl_entry_deductions - entry-level deduction settings as entered"""
    id: str
    entry_id: str
    service_facility_fee_percent: Optional[Decimal] = None
    service_fee_override: Optional[Decimal] = None
    commission_percent: Optional[Decimal] = None
    super_holding_enabled: Optional[bool] = None
    super_component_percent: Optional[Decimal] = None
    outwork_enabled: Optional[bool] = None
    outwork_rate_percent: Optional[Decimal] = None
    entry_payment_responsibility: Optional[str] = None
    created_at: Optional[datetime] = None


# ==================== ENTRY ====================

@dataclass
class NormalizedEntry:
    """
    Complete normalized entry.

    net_details and gross_details are mutually exclusive; which one is
    present follows header.calculation_method. Call validate() after
    building or loading a row set.
    """
    header: EntryHeader
    field_values: List[EntryFieldValue] = field(default_factory=list)
    field_calculations: List[EntryFieldCalculation] = field(default_factory=list)
    summary: Optional[EntrySummary] = None
    net_details: Optional[EntryNetDetails] = None
    gross_details: Optional[EntryGrossDetails] = None
    gross_reductions: List[EntryGrossReduction] = field(default_factory=list)
    gross_reimbursements: List[EntryGrossReimbursement] = field(default_factory=list)
    gross_additional_reductions: List[EntryGrossAdditionalReduction] = field(default_factory=list)
    gross_reductions_summary: Optional[EntryGrossReductionsSummary] = None
    gross_outwork: Optional[EntryGrossOutwork] = None
    deductions: Optional[EntryDeductions] = None

    @property
    def entry_id(self) -> str:
        return self.header.id

    @property
    def method_details(self) -> Union[EntryNetDetails, EntryGrossDetails, None]:
        """The populated method-specific row, if any."""
        return self.net_details or self.gross_details

    def validate(self) -> "NormalizedEntry":
        """
        Check the method invariant.

        Raises:
            NormalizationError: both detail rows present, or the row matching
                the header's calculation method is missing
        """
        if self.net_details is not None and self.gross_details is not None:
            raise NormalizationError(
                f"Entry {self.entry_id} has both net and gross details"
            )

        method = self.header.calculation_method
        if method == CalculationMethod.NET.value and self.net_details is None:
            raise NormalizationError(f"Net entry {self.entry_id} is missing net details")
        if method == CalculationMethod.GROSS.value and self.gross_details is None:
            raise NormalizationError(f"Gross entry {self.entry_id} is missing gross details")
        return self

    def gross_rows_present(self) -> bool:
        """Any service-fee breakdown rows, whichever method the entry uses."""
        return bool(
            self.gross_reductions
            or self.gross_reimbursements
            or self.gross_additional_reductions
            or self.gross_reductions_summary is not None
            or self.gross_outwork is not None
        )

    def detail_rows(self) -> Dict[str, Any]:
        """Every row except the header, keyed by attribute name."""
        return {
            "field_values": self.field_values,
            "field_calculations": self.field_calculations,
            "summary": self.summary,
            "net_details": self.net_details,
            "gross_details": self.gross_details,
            "gross_reductions": self.gross_reductions,
            "gross_reimbursements": self.gross_reimbursements,
            "gross_additional_reductions": self.gross_additional_reductions,
            "gross_reductions_summary": self.gross_reductions_summary,
            "gross_outwork": self.gross_outwork,
            "deductions": self.deductions,
        }


# ==================== FLAT ENTRY ====================

@dataclass
class FlatEntry:
    """
    Entry in its flat API/storage shape: raw values, the calculation JSON
    and the entry-level deductions, alongside the header attributes.
    """
    id: str
    form_id: Optional[str] = None
    form_name: str = ""
    form_type: str = ""
    clinic_id: Optional[str] = None
    quarter_id: Optional[str] = None
    entry_date: Optional[datetime] = None
    description: str = ""
    remarks: str = ""
    payment_responsibility: Optional[str] = None
    values: Any = field(default_factory=list)
    calculations: Any = field(default_factory=dict)
    deductions: Any = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "formId": self.form_id,
            "formName": self.form_name,
            "formType": self.form_type,
            "clinicId": self.clinic_id,
            "quarterId": self.quarter_id,
            "entryDate": self.entry_date.isoformat() if self.entry_date else None,
            "description": self.description,
            "remarks": self.remarks,
            "paymentResponsibility": self.payment_responsibility,
            "values": self.values,
            "calculations": self.calculations,
            "deductions": self.deductions,
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "deletedAt": self.deleted_at.isoformat() if self.deleted_at else None,
        }
