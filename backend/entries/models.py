"""
Entry Engine - SQLAlchemy Database Models

One entry is split across eleven tables:
- tbl_entry_header: identity and lifecycle (soft delete via deleted_at)
- tbl_entry_field_value / tbl_entry_field_calculation: per-field rows
- tbl_entry_summary: totals and BAS labels
- tbl_entry_net_details / tbl_entry_gross_details: method-specific block
  (both carry the service fee headline amounts)
- tbl_entry_gross_reduction / _reimbursement / _additional_reduction: service fee line items
- tbl_entry_gross_reductions_summary / tbl_entry_gross_outwork: service fee totals
- tbl_entry_deductions: entry-level deduction settings

Column names match the attributes of the dataclasses in entries/normalized.py.
Detail rows are deleted with their header; updates replace the full row set.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, Boolean, Integer, DateTime,
    ForeignKey, Index, Numeric
)

from database.connection import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def money(nullable: bool = False) -> Column:
    # 26 integer digits, 12 dp. Inputs are capped below 1e15 (amounts) and
    # 1e6 (percentages) when parsed, so every computed amount fits; raw
    # values with more than 12 dp are rounded on write.
    return Column(Numeric(38, 12), nullable=nullable, default=None if nullable else 0)


def rate(nullable: bool = False) -> Column:
    return Column(Numeric(20, 8), nullable=nullable, default=None if nullable else 0)


def entry_fk() -> Column:
    return Column(
        String(36),
        ForeignKey("tbl_entry_header.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )


# ==================== HEADER ====================

class EntryHeaderDB(Base):
    """Entry identity; one per entry, never hard-deleted."""
    __tablename__ = "tbl_entry_header"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    form_id = Column(String(36), nullable=True, index=True)
    form_name = Column(String(255), nullable=False, default="")
    form_type = Column(String(20), nullable=False, default="")
    calculation_method = Column(String(20), nullable=False, default="net")
    clinic_id = Column(String(36), nullable=True, index=True)
    quarter_id = Column(String(36), nullable=True, index=True)
    entry_date = Column(DateTime(timezone=True), nullable=True)
    description = Column(Text, nullable=False, default="")
    remarks = Column(Text, nullable=False, default="")
    payment_responsibility = Column(String(20), nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utc_now)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    original_entry_id = Column(String(36), nullable=True)

    __table_args__ = (
        Index('ix_tbl_entry_header_clinic_quarter', 'clinic_id', 'quarter_id'),
    )


# ==================== VALUES & CALCULATIONS ====================

class EntryFieldValueDB(Base):
    __tablename__ = "tbl_entry_field_value"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = entry_fk()
    field_id = Column(String(100), nullable=False)
    field_name = Column(String(255), nullable=False, default="")
    value = money(nullable=True)
    text_value = Column(Text, nullable=True)
    boolean_value = Column(Boolean, nullable=True)
    manual_gst_amount = money(nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class EntryFieldCalculationDB(Base):
    __tablename__ = "tbl_entry_field_calculation"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = entry_fk()
    field_id = Column(String(100), nullable=False)
    field_name = Column(String(255), nullable=False, default="")
    base_amount = money()
    gst_amount = money()
    total_amount = money()
    gst_rate = rate()
    gst_type = Column(String(20), nullable=False, default="")
    section = Column(String(100), nullable=True)
    payment_responsibility = Column(String(20), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class EntrySummaryDB(Base):
    __tablename__ = "tbl_entry_summary"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = entry_fk()
    total_base_amount = money()
    total_gst_amount = money()
    total_amount = money()
    net_payable = money(nullable=True)
    net_receivable = money(nullable=True)
    net_fee = money(nullable=True)
    bas_gst_on_sales_1a = money()
    bas_gst_credit_1b = money()
    bas_total_sales_g1 = money()
    bas_expenses_g11 = money()
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utc_now)


# ==================== METHOD DETAILS ====================

class EntryNetDetailsDB(Base):
    __tablename__ = "tbl_entry_net_details"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = entry_fk()
    commission_percent = money(nullable=True)
    commission = money(nullable=True)
    gst_on_commission = money(nullable=True)
    total_payment_received = money(nullable=True)
    super_holding_enabled = Column(Boolean, nullable=False, default=False)
    super_component_percent = money(nullable=True)
    commission_component = money(nullable=True)
    super_component = money(nullable=True)
    total_for_reconciliation = money(nullable=True)
    service_facility_fee_percent = money(nullable=True)
    service_fee_base = money(nullable=True)
    gst_on_service_fee = money(nullable=True)
    total_service_fee = money(nullable=True)
    subtotal_after_deductions = money(nullable=True)
    remitted_amount = money(nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utc_now)


class EntryGrossDetailsDB(Base):
    __tablename__ = "tbl_entry_gross_details"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = entry_fk()
    service_facility_fee_percent = money(nullable=True)
    service_fee_base = money(nullable=True)
    gst_on_service_fee = money(nullable=True)
    total_service_fee = money(nullable=True)
    subtotal_after_deductions = money(nullable=True)
    remitted_amount = money(nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utc_now)


# ==================== GROSS LINE ITEMS ====================

class GrossLineItemColumns:
    """Columns shared by the three gross line-item tables"""
    id = Column(String(36), primary_key=True, default=generate_uuid)
    field_id = Column(String(100), nullable=False)
    field_name = Column(String(255), nullable=False, default="")
    base_amount = money()
    gst_amount = money()
    total_amount = money()
    gst_rate = rate(nullable=True)
    gst_type = Column(String(20), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class EntryGrossReductionDB(GrossLineItemColumns, Base):
    __tablename__ = "tbl_entry_gross_reduction"

    entry_id = entry_fk()
    field_calculation_id = Column(
        String(36), ForeignKey("tbl_entry_field_calculation.id", ondelete="SET NULL"), nullable=True
    )


class EntryGrossReimbursementDB(GrossLineItemColumns, Base):
    __tablename__ = "tbl_entry_gross_reimbursement"

    entry_id = entry_fk()
    field_calculation_id = Column(
        String(36), ForeignKey("tbl_entry_field_calculation.id", ondelete="SET NULL"), nullable=True
    )


class EntryGrossAdditionalReductionDB(GrossLineItemColumns, Base):
    __tablename__ = "tbl_entry_gross_additional_reduction"

    entry_id = entry_fk()
    field_calculation_id = Column(
        String(36), ForeignKey("tbl_entry_field_calculation.id", ondelete="SET NULL"), nullable=True
    )


class EntryGrossReductionsSummaryDB(Base):
    __tablename__ = "tbl_entry_gross_reductions_summary"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = entry_fk()
    total_reductions = money(nullable=True)
    total_reduction_base = money(nullable=True)
    total_expense_gst = money(nullable=True)
    total_reimbursements = money(nullable=True)
    total_additional_reduction = money(nullable=True)
    total_additional_reduction_base = money(nullable=True)
    total_additional_reduction_gst = money(nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utc_now)


class EntryGrossOutworkDB(Base):
    __tablename__ = "tbl_entry_gross_outwork"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = entry_fk()
    outwork_enabled = Column(Boolean, nullable=False, default=False)
    outwork_rate_percent = money(nullable=True)
    outwork_charge_base = money()
    outwork_charge_gst = money()
    outwork_charge_total = money()
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utc_now)


class EntryDeductionsDB(Base):
    __tablename__ = "tbl_entry_deductions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = entry_fk()
    service_facility_fee_percent = money(nullable=True)
    service_fee_override = money(nullable=True)
    commission_percent = money(nullable=True)
    super_holding_enabled = Column(Boolean, nullable=True)
    super_component_percent = money(nullable=True)
    outwork_enabled = Column(Boolean, nullable=True)
    outwork_rate_percent = money(nullable=True)
    entry_payment_responsibility = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)


ENTRY_DETAIL_MODELS = [
    EntryFieldValueDB,
    EntryFieldCalculationDB,
    EntrySummaryDB,
    EntryNetDetailsDB,
    EntryGrossDetailsDB,
    EntryGrossReductionDB,
    EntryGrossReimbursementDB,
    EntryGrossAdditionalReductionDB,
    EntryGrossReductionsSummaryDB,
    EntryGrossOutworkDB,
    EntryDeductionsDB,
]

ENTRY_TABLES = [EntryHeaderDB.__tablename__] + [m.__tablename__ for m in ENTRY_DETAIL_MODELS]
