"""
Entry Engine - Calculation Configuration

Rates that are business policy rather than field configuration.
Passed explicitly into the engine so callers (and tests) can override them
without touching engine internals.
"""

from dataclasses import dataclass
from decimal import Decimal


# GST charged on service-facility fees, commissions and outwork charges (10%)
FEE_GST_RATE = Decimal("0.10")

# Superannuation component withheld from commission when super holding is on
DEFAULT_SUPER_COMPONENT_PERCENT = Decimal("12")


@dataclass(frozen=True)
class CalculationConfig:
    """Immutable engine configuration."""
    fee_gst_rate: Decimal = FEE_GST_RATE
    default_super_percent: Decimal = DEFAULT_SUPER_COMPONENT_PERCENT


DEFAULT_CALCULATION_CONFIG = CalculationConfig()
