"""
Entry Calculation & Normalization Engine

Computes GST-aware breakdowns for clinic form entries, rolls them into
service facility fee and (net method) commission deduction chains, maps
totals to BAS labels and converts between the flat calculation JSON and
the normalized entry tables.

Module Structure:
- gst.py: GST resolver and currency rounding
- field_totals.py: per-field calculation pass and section totals
- deductions.py: net amounts, service fee / commission / outwork blocks
- bas_mapping.py: BAS label mapping (1A, 1B, G1, G11)
- engine.py: orchestration, flat JSON result
- schemas.py: Pydantic input models and parsers
- normalized.py / converter.py: normalized row set and the flat <-> rows bridge
- models.py: SQLAlchemy database models
- service.py: normalized entry storage
"""

from .calculation_config import CalculationConfig, DEFAULT_CALCULATION_CONFIG
from .converter import to_flat, to_normalized
from .engine import CalculationResult, EntryCalculationEngine, run_entry_calculation
from .errors import EntryCalculationError, MalformedEntryInputError, NormalizationError
from .gst import GSTType, resolve_gst, round_currency
from .models import EntryHeaderDB
from .normalized import FlatEntry, NormalizedEntry
from .schemas import CalculationMethod, DeductionsInput, EntryValue, FormDefinition, FormType
from .service import EntryNormalizedService

__all__ = [
    # Calculation
    "CalculationConfig",
    "DEFAULT_CALCULATION_CONFIG",
    "CalculationResult",
    "EntryCalculationEngine",
    "run_entry_calculation",
    "GSTType",
    "resolve_gst",
    "round_currency",
    # Inputs
    "CalculationMethod",
    "DeductionsInput",
    "EntryValue",
    "FormDefinition",
    "FormType",
    # Normalization
    "FlatEntry",
    "NormalizedEntry",
    "to_flat",
    "to_normalized",
    # Storage
    "EntryHeaderDB",
    "EntryNormalizedService",
    # Errors
    "EntryCalculationError",
    "MalformedEntryInputError",
    "NormalizationError",
]
