"""
Clinic Core - Entries API Router

Thin HTTP surface over the entry calculation engine:
- POST /entries/preview: live calculation, nothing stored
- PUT /entries/{entry_id}: calculate and store (create or full replace)
- GET /entries/{entry_id}: reload a stored entry in its flat shape
- DELETE /entries/{entry_id}: soft delete
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query as QueryParam
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from config import get_settings
from database import get_db
from entries import (
    CalculationConfig,
    EntryNormalizedService,
    FlatEntry,
    MalformedEntryInputError,
    NormalizationError,
    run_entry_calculation,
    to_flat,
    to_normalized,
)
from logging_config import set_request_context
from sentry_integration import capture_exception
from utils.validation_errors import (
    raise_malformed_input,
    raise_normalization_error,
    raise_not_found,
    validate_required_uuid,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entries", tags=["Entries"])


# ==================== PYDANTIC MODELS ====================

class EntryPreviewRequest(BaseModel):
    """Form definition plus raw values, as the entry screen holds them"""
    form: Dict[str, Any]
    values: List[Dict[str, Any]] = Field(default_factory=list)
    deductions: Optional[Dict[str, Any]] = None


class EntrySaveRequest(EntryPreviewRequest):
    """Entry to calculate and store"""
    form_id: Optional[str] = None
    form_name: str = ""
    form_type: Optional[str] = None
    clinic_id: Optional[str] = None
    quarter_id: Optional[str] = None
    entry_date: Optional[datetime] = None
    description: str = ""
    remarks: str = ""
    payment_responsibility: Optional[str] = None
    created_by: Optional[str] = None


class EntryPreviewResponse(BaseModel):
    calculations: Dict[str, Any]


# ==================== DEPENDENCIES ====================

def get_calculation_config() -> CalculationConfig:
    return get_settings().calculation_config()


def get_entry_service(db: AsyncSession = Depends(get_db)) -> EntryNormalizedService:
    return EntryNormalizedService(db)


# ==================== ENDPOINTS ====================

@router.post("/preview", response_model=EntryPreviewResponse)
async def preview_entry(
    request: EntryPreviewRequest,
    config: CalculationConfig = Depends(get_calculation_config)
):
    """
    Calculate an entry without storing it.

    Returns the flat calculation JSON exactly as it would be stored.
    """
    try:
        calculations = run_entry_calculation(
            request.form, request.values, request.deductions, config=config
        )
    except MalformedEntryInputError as e:
        logger.info(f"Preview rejected: {e}")
        raise_malformed_input(e)

    return EntryPreviewResponse(calculations=calculations)


@router.put("/{entry_id}")
async def save_entry(
    entry_id: str,
    request: EntrySaveRequest,
    config: CalculationConfig = Depends(get_calculation_config),
    service: EntryNormalizedService = Depends(get_entry_service)
):
    """
    Calculate and store an entry, replacing any previous version in full.

    The header's payment responsibility drives the reduction/reimbursement
    split unless the deductions already carry one.
    """
    validate_required_uuid(entry_id, "entry_id")
    set_request_context(clinic_id=request.clinic_id, entry_id=entry_id)

    deductions = dict(request.deductions) if request.deductions is not None else None
    if request.payment_responsibility:
        deductions = deductions or {}
        deductions.setdefault("entryPaymentResponsibility", request.payment_responsibility)

    form_type = request.form_type or request.form.get("formType") or ""

    try:
        calculations = run_entry_calculation(request.form, request.values, deductions, config=config)
        flat = FlatEntry(
            id=entry_id,
            form_id=request.form_id or request.form.get("id"),
            form_name=request.form_name or request.form.get("name") or "",
            form_type=form_type,
            clinic_id=request.clinic_id,
            quarter_id=request.quarter_id,
            entry_date=request.entry_date,
            description=request.description,
            remarks=request.remarks,
            payment_responsibility=request.payment_responsibility,
            values=request.values,
            calculations=calculations,
            deductions=deductions,
            created_by=request.created_by,
            updated_at=datetime.now(timezone.utc),
        )
        normalized = to_normalized(flat, request.form, config=config)
    except MalformedEntryInputError as e:
        logger.info(f"Entry {entry_id} rejected: {e}")
        raise_malformed_input(e)

    await service.save(normalized)
    return await _load_flat(service, entry_id)


@router.get("/{entry_id}")
async def get_entry(
    entry_id: str,
    include_deleted: bool = QueryParam(False),
    service: EntryNormalizedService = Depends(get_entry_service)
):
    """Reload a stored entry in its flat API shape."""
    validate_required_uuid(entry_id, "entry_id")
    return await _load_flat(service, entry_id, include_deleted)


@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: str,
    service: EntryNormalizedService = Depends(get_entry_service)
):
    """Soft delete: only the header is timestamped, detail rows stay."""
    validate_required_uuid(entry_id, "entry_id")
    deleted = await service.soft_delete(entry_id)
    if not deleted:
        raise_not_found("entry_id", entry_id)
    return {"entry_id": entry_id, "deleted": True}


async def _load_flat(
    service: EntryNormalizedService,
    entry_id: str,
    include_deleted: bool = False
) -> Dict[str, Any]:
    try:
        normalized = await service.get(entry_id, include_deleted=include_deleted)
    except NormalizationError as e:
        logger.error(f"Stored entry {entry_id} is inconsistent: {e}")
        capture_exception(e, entry_id=entry_id)
        raise_normalization_error(entry_id, e)

    if normalized is None:
        raise_not_found("entry_id", entry_id)

    return to_flat(normalized).to_dict()
