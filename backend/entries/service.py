"""
Entry Engine - Normalized Entry Storage

Persists NormalizedEntry row sets across the eleven entry tables.

- save(): full replace of an entry's rows in one transaction
- get(): loads every table, line items ordered by display_order
- soft_delete(): timestamps deleted_at on the header only
"""

import logging
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any, List, Optional, Type

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    EntryDeductionsDB,
    EntryFieldCalculationDB,
    EntryFieldValueDB,
    EntryGrossAdditionalReductionDB,
    EntryGrossDetailsDB,
    EntryGrossOutworkDB,
    EntryGrossReductionDB,
    EntryGrossReductionsSummaryDB,
    EntryGrossReimbursementDB,
    EntryHeaderDB,
    EntryNetDetailsDB,
    EntrySummaryDB,
)
from .normalized import (
    EntryDeductions,
    EntryFieldCalculation,
    EntryFieldValue,
    EntryGrossAdditionalReduction,
    EntryGrossDetails,
    EntryGrossOutwork,
    EntryGrossReduction,
    EntryGrossReductionsSummary,
    EntryGrossReimbursement,
    EntryHeader,
    EntryNetDetails,
    EntrySummary,
    NormalizedEntry,
)

logger = logging.getLogger(__name__)


# (NormalizedEntry attribute, table model, row type, one-to-many)
DETAIL_TABLES = [
    ("field_values", EntryFieldValueDB, EntryFieldValue, True),
    ("field_calculations", EntryFieldCalculationDB, EntryFieldCalculation, True),
    ("summary", EntrySummaryDB, EntrySummary, False),
    ("net_details", EntryNetDetailsDB, EntryNetDetails, False),
    ("gross_details", EntryGrossDetailsDB, EntryGrossDetails, False),
    ("gross_reductions", EntryGrossReductionDB, EntryGrossReduction, True),
    ("gross_reimbursements", EntryGrossReimbursementDB, EntryGrossReimbursement, True),
    ("gross_additional_reductions", EntryGrossAdditionalReductionDB, EntryGrossAdditionalReduction, True),
    ("gross_reductions_summary", EntryGrossReductionsSummaryDB, EntryGrossReductionsSummary, False),
    ("gross_outwork", EntryGrossOutworkDB, EntryGrossOutwork, False),
    ("deductions", EntryDeductionsDB, EntryDeductions, False),
]


# ==================== CONVERSION HELPERS ====================

def row_to_db(row: Any, model: Type[Any]) -> Any:
    """Dataclass row -> table model (attribute names match column names)"""
    return model(**{f.name: getattr(row, f.name) for f in fields(row)})


def db_to_row(db_obj: Any, row_type: Type[Any]) -> Any:
    """Table model -> dataclass row"""
    return row_type(**{f.name: getattr(db_obj, f.name) for f in fields(row_type)})


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class EntryNormalizedService:
    """
    Storage for normalized entries.

    Each write runs in a single transaction on the given session; on any
    failure the session is rolled back and the error re-raised.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(self, normalized: NormalizedEntry) -> NormalizedEntry:
        """
        Create or fully replace an entry.

        The header is inserted or overwritten; every detail row for the
        entry is deleted and the new set inserted.
        """
        normalized.validate()
        entry_id = normalized.entry_id

        try:
            existing = await self.db.get(EntryHeaderDB, entry_id)
            if existing is None:
                self.db.add(row_to_db(normalized.header, EntryHeaderDB))
            else:
                for f in fields(EntryHeader):
                    value = getattr(normalized.header, f.name)
                    if f.name == "created_at" and value is None:
                        continue
                    setattr(existing, f.name, value)

            # Line items reference field calculations, so they go first
            for _, model, _, _ in reversed(DETAIL_TABLES):
                await self.db.execute(delete(model).where(model.entry_id == entry_id))

            # Header and field calculations must exist before rows pointing at them
            await self.db.flush()
            for fc in normalized.field_calculations:
                self.db.add(row_to_db(fc, EntryFieldCalculationDB))
            await self.db.flush()

            for attr, model, _, _ in DETAIL_TABLES:
                if attr == "field_calculations":
                    continue
                for row in _as_list(getattr(normalized, attr)):
                    self.db.add(row_to_db(row, model))

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(f"Failed to save normalized entry {entry_id}")
            raise

        logger.info(f"Saved normalized entry {entry_id} ({normalized.header.calculation_method})")
        return normalized

    async def get(self, entry_id: str, include_deleted: bool = False) -> Optional[NormalizedEntry]:
        """Load an entry; soft-deleted entries are hidden unless include_deleted."""
        result = await self.db.execute(
            select(EntryHeaderDB).where(EntryHeaderDB.id == entry_id)
        )
        db_header = result.scalar_one_or_none()
        if db_header is None:
            return None
        if db_header.deleted_at is not None and not include_deleted:
            return None

        normalized = NormalizedEntry(header=db_to_row(db_header, EntryHeader))

        for attr, model, row_type, many in DETAIL_TABLES:
            query = select(model).where(model.entry_id == entry_id)
            if many:
                query = query.order_by(model.display_order)
            result = await self.db.execute(query)
            rows = [db_to_row(db_obj, row_type) for db_obj in result.scalars().all()]
            if many:
                setattr(normalized, attr, rows)
            elif rows:
                setattr(normalized, attr, rows[0])

        return normalized.validate()

    async def soft_delete(self, entry_id: str) -> bool:
        """Timestamp deleted_at on the header; detail rows are kept."""
        now = datetime.now(timezone.utc)
        try:
            result = await self.db.execute(
                update(EntryHeaderDB)
                .where(EntryHeaderDB.id == entry_id)
                .where(EntryHeaderDB.deleted_at.is_(None))
                .values(deleted_at=now, updated_at=now)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Soft-deleted entry {entry_id}")
        return deleted
