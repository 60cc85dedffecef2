"""
Entry Engine - Input Schemas

Pydantic models for the JSON documents the engine consumes:
- FormDefinition / FormFieldDefinition / GSTConfig: the form being filled in
- EntryValue: one user-entered value per field
- DeductionsInput: entry-level overrides for fees, commission and outwork

JSON keys are camelCase (as stored in the form/entry JSONB columns); Python
attributes are snake_case. String enums are compared case-insensitively.
"""

import json
import logging
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MalformedEntryInputError
from .gst import MAX_AMOUNT, MAX_PERCENT, to_decimal

logger = logging.getLogger(__name__)


# ==================== ENUMS ====================

class FieldType(str, Enum):
    """Form field input types"""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    DROPDOWN = "dropdown"
    CHECKBOX = "checkbox"
    TEXTAREA = "textarea"
    CURRENCY = "currency"


NUMERIC_FIELD_TYPES = {FieldType.NUMBER.value, FieldType.CURRENCY.value}


class FormType(str, Enum):
    """What kind of amounts a form records"""
    INCOME = "income"
    EXPENSE = "expense"
    BOTH = "both"


class CalculationMethod(str, Enum):
    """How income is split between practitioner and clinic"""
    NET = "net"        # Commission on net revenue, optional super holding
    GROSS = "gross"    # Service facility fee deducted from gross revenue


class PaymentResponsibility(str, Enum):
    """Who paid an expense line"""
    OWNER = "owner"
    CLINIC = "clinic"


def _lower(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _within(value: Any, limit: Decimal) -> Any:
    """Reject numbers too large to calculate with or store."""
    if value is None:
        return value
    amount = to_decimal(value)
    if not amount.is_finite() or abs(amount) >= limit:
        raise ValueError(f"{value!r} is out of range (magnitude must be below {limit})")
    return value


# ==================== FORM DEFINITION ====================

class GSTConfig(BaseModel):
    """GST configuration for a single field"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = False
    rate: float = Field(0, description="GST rate as a percentage, e.g. 10")
    gst_type: str = Field(
        "exclusive",
        alias="type",
        description="inclusive, exclusive or manual"
    )

    @field_validator("gst_type", mode="before")
    @classmethod
    def default_gst_type(cls, v):
        v = _lower(v)
        return v or "exclusive"

    @field_validator("rate", mode="before")
    @classmethod
    def null_rate(cls, v):
        return 0 if v is None else v

    @field_validator("rate")
    @classmethod
    def rate_in_range(cls, v):
        return _within(v, MAX_PERCENT)


class FormFieldDefinition(BaseModel):
    """A single field of a form (subset needed for calculation)"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    field_type: str = Field(FieldType.TEXT.value, alias="type")
    section: str = ""
    include_in_total: bool = Field(False, alias="includeInTotal")
    payment_responsibility: Optional[str] = Field(None, alias="paymentResponsibility")
    gst_config: Optional[GSTConfig] = Field(None, alias="gstConfig")

    @field_validator("field_type", "payment_responsibility", mode="before")
    @classmethod
    def lowercase(cls, v):
        return _lower(v)

    @field_validator("name", "section", mode="before")
    @classmethod
    def null_string(cls, v):
        return "" if v is None else v

    @property
    def is_numeric(self) -> bool:
        return self.field_type in NUMERIC_FIELD_TYPES


class FormDefinition(BaseModel):
    """Form definition as looked up by the calling use case"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    name: Optional[str] = None
    form_type: str = Field(FormType.INCOME.value, alias="formType")
    calculation_method: str = Field(CalculationMethod.NET.value, alias="calculationMethod")
    fields: List[FormFieldDefinition] = Field(default_factory=list)
    service_facility_fee_percent: Optional[float] = Field(None, alias="serviceFacilityFeePercent")
    outwork_enabled: bool = Field(False, alias="outworkEnabled")
    outwork_rate_percent: Optional[float] = Field(None, alias="outworkRatePercent")

    @field_validator("form_type", mode="before")
    @classmethod
    def normalise_form_type(cls, v):
        v = _lower(v) or FormType.INCOME.value
        if v not in {t.value for t in FormType}:
            logger.warning(f"Unknown form type {v!r}, treating as income")
            return FormType.INCOME.value
        return v

    @field_validator("calculation_method", mode="before")
    @classmethod
    def normalise_calculation_method(cls, v):
        v = _lower(v) or CalculationMethod.NET.value
        if v not in {m.value for m in CalculationMethod}:
            logger.warning(f"Unknown calculation method {v!r}, treating as net")
            return CalculationMethod.NET.value
        return v

    @field_validator("outwork_enabled", mode="before")
    @classmethod
    def null_flag(cls, v):
        return False if v is None else v

    @field_validator("service_facility_fee_percent", "outwork_rate_percent")
    @classmethod
    def percent_in_range(cls, v):
        return _within(v, MAX_PERCENT)


# ==================== ENTRY INPUT ====================

class EntryValue(BaseModel):
    """A user-entered value for one field"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    field_id: str = Field("", alias="fieldId")
    field_name: str = Field("", alias="fieldName")
    value: Any = None
    manual_gst_amount: Optional[float] = Field(None, alias="manualGstAmount")

    @field_validator("field_id", "field_name", mode="before")
    @classmethod
    def null_string(cls, v):
        return "" if v is None else v

    @field_validator("value", "manual_gst_amount")
    @classmethod
    def amount_in_range(cls, v):
        return _within(v, MAX_AMOUNT)


class DeductionsInput(BaseModel):
    """Entry-level deduction settings and overrides"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    service_facility_fee_percent: Optional[float] = Field(None, alias="serviceFacilityFeePercent")
    service_fee_override: Optional[float] = Field(None, alias="serviceFeeOverride")
    commission_percent: Optional[float] = Field(None, alias="commissionPercent")
    super_holding_enabled: Optional[bool] = Field(None, alias="superHoldingEnabled")
    super_component_percent: Optional[float] = Field(None, alias="superComponentPercent")
    outwork_enabled: Optional[bool] = Field(None, alias="outworkEnabled")
    outwork_rate_percent: Optional[float] = Field(None, alias="outworkRatePercent")
    entry_payment_responsibility: Optional[str] = Field(None, alias="entryPaymentResponsibility")

    @field_validator("entry_payment_responsibility", mode="before")
    @classmethod
    def lowercase(cls, v):
        return _lower(v) or None

    @field_validator("service_fee_override")
    @classmethod
    def amount_in_range(cls, v):
        return _within(v, MAX_AMOUNT)

    @field_validator(
        "service_facility_fee_percent",
        "commission_percent",
        "super_component_percent",
        "outwork_rate_percent",
    )
    @classmethod
    def percent_in_range(cls, v):
        return _within(v, MAX_PERCENT)


# ==================== PARSING ====================

RawJSON = Union[str, bytes, bytearray, list, dict, None]


def load_json_document(raw: RawJSON, source: str) -> Any:
    """
    Decode raw JSON text/bytes; already-decoded documents pass through.

    Raises:
        MalformedEntryInputError: if the bytes are not UTF-8 or the text is
            not valid JSON
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEntryInputError(source, f"not valid UTF-8: {e}") from e
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedEntryInputError(source, str(e)) from e
    return raw


def parse_form(raw: Union[RawJSON, FormDefinition]) -> FormDefinition:
    """Parse a form definition document."""
    if isinstance(raw, FormDefinition):
        return raw
    doc = load_json_document(raw, "form")
    if not isinstance(doc, dict):
        raise MalformedEntryInputError("form", "expected an object")
    try:
        return FormDefinition.model_validate(doc)
    except ValidationError as e:
        raise MalformedEntryInputError("form", str(e)) from e


def parse_entry_values(raw: RawJSON) -> List[EntryValue]:
    """Parse entry values; missing or empty input means no values."""
    doc = load_json_document(raw, "values")
    if doc is None:
        return []
    if not isinstance(doc, list):
        raise MalformedEntryInputError("values", "expected a list")
    try:
        return [
            v if isinstance(v, EntryValue) else EntryValue.model_validate(v)
            for v in doc
        ]
    except ValidationError as e:
        raise MalformedEntryInputError("values", str(e)) from e


def parse_deductions(raw: Union[RawJSON, DeductionsInput]) -> Optional[DeductionsInput]:
    """Parse deductions; missing or empty input means no deductions."""
    if isinstance(raw, DeductionsInput):
        return raw
    doc = load_json_document(raw, "deductions")
    if doc is None:
        return None
    if not isinstance(doc, dict):
        raise MalformedEntryInputError("deductions", "expected an object")
    try:
        return DeductionsInput.model_validate(doc)
    except ValidationError as e:
        raise MalformedEntryInputError("deductions", str(e)) from e
