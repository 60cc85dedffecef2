"""
Entry Engine - Orchestration

Runs the full calculation for one entry:

    form + values + deductions
        -> field pass (per-field GST, section totals)
        -> net amounts, service fee (any method), commission (net method)
        -> BAS mapping
        -> single flat JSON result

The result is what preview endpoints return and what the storage layer keeps
verbatim in the entry's calculations column.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union

from .bas_mapping import BASMapping, map_bas
from .calculation_config import CalculationConfig, DEFAULT_CALCULATION_CONFIG
from .deductions import (
    CommissionDetails,
    ServiceFeeDeductions,
    aggregate_commission,
    aggregate_deductions,
    resolve_net_amounts,
    resolve_outwork_rate,
)
from .field_totals import FieldCalculation, compute_field_totals
from .gst import ZERO, round_currency
from .schemas import (
    CalculationMethod,
    DeductionsInput,
    EntryValue,
    FormDefinition,
    RawJSON,
    parse_deductions,
    parse_entry_values,
    parse_form,
)

logger = logging.getLogger(__name__)


@dataclass
class CalculationResult:
    """Complete calculation for one entry"""
    calculation_method: str
    form_type: str
    field_calculations: List[FieldCalculation] = field(default_factory=list)
    total_base_amount: Decimal = ZERO
    total_gst_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    bas_mapping: BASMapping = field(default_factory=BASMapping)
    net_payable: Optional[Decimal] = None
    net_receivable: Optional[Decimal] = None
    net_fee: Optional[Decimal] = None
    service_fee: Optional[ServiceFeeDeductions] = None
    commission: Optional[CommissionDetails] = None

    def to_dict(self) -> Dict[str, Any]:
        """Flat camelCase JSON; absent blocks are absent keys."""
        data: Dict[str, Any] = {
            "fieldTotals": [fc.to_dict() for fc in self.field_calculations],
            "totalBaseAmount": float(self.total_base_amount),
            "totalGSTAmount": float(self.total_gst_amount),
            "totalAmount": float(self.total_amount),
        }
        if self.net_payable is not None:
            data["netPayable"] = float(self.net_payable)
        if self.net_receivable is not None:
            data["netReceivable"] = float(self.net_receivable)
        if self.net_fee is not None:
            data["netFee"] = float(self.net_fee)
        if self.service_fee is not None:
            data.update(self.service_fee.to_dict())
        if self.commission is not None:
            data.update(self.commission.to_dict())
        data["basMapping"] = self.bas_mapping.to_dict()
        return data


class EntryCalculationEngine:
    """
    Stateless calculator for form entries.

    The configuration (fee GST rate, default super percent) is fixed at
    construction; every call is independent and safe to run concurrently.
    """

    def __init__(self, config: CalculationConfig = DEFAULT_CALCULATION_CONFIG):
        self.config = config

    def calculate(
        self,
        form: FormDefinition,
        values: Sequence[EntryValue],
        deductions: Optional[DeductionsInput] = None
    ) -> CalculationResult:
        form_type = form.form_type
        method = form.calculation_method

        totals = compute_field_totals(form.fields, values, form_type)
        combined = totals.combined
        net = resolve_net_amounts(form_type, combined)

        result = CalculationResult(
            calculation_method=method,
            form_type=form_type,
            field_calculations=totals.field_calculations,
            total_base_amount=round_currency(combined.base),
            total_gst_amount=round_currency(combined.gst),
            total_amount=round_currency(combined.total),
            bas_mapping=map_bas(form_type, totals),
            net_payable=net.net_payable,
            net_receivable=net.net_receivable,
            net_fee=net.net_fee,
        )

        outwork_rate = resolve_outwork_rate(
            deductions, form.outwork_enabled, form.outwork_rate_percent
        )
        result.service_fee = aggregate_deductions(
            combined,
            form_type,
            form.service_facility_fee_percent,
            deductions,
            totals.field_calculations,
            form.fields,
            outwork_rate_percent=outwork_rate,
            config=self.config,
        )
        if method != CalculationMethod.GROSS.value:
            result.commission = aggregate_commission(
                combined, form_type, deductions, config=self.config
            )

        logger.debug(
            f"Calculated entry for form {form.id} ({form_type}/{method}): "
            f"total={result.total_amount}, gst={result.total_gst_amount}"
        )
        return result


def run_entry_calculation(
    form: Union[RawJSON, FormDefinition],
    values: Union[RawJSON, Sequence[EntryValue]] = None,
    deductions: Union[RawJSON, DeductionsInput] = None,
    config: CalculationConfig = DEFAULT_CALCULATION_CONFIG
) -> Dict[str, Any]:
    """
    Parse inputs and return the flat calculation JSON.

    All inputs are parsed before any computation, so malformed input raises
    MalformedEntryInputError without a partial result.
    """
    form_def = parse_form(form)
    entry_values = parse_entry_values(values)
    deduction_input = parse_deductions(deductions)

    engine = EntryCalculationEngine(config)
    return engine.calculate(form_def, entry_values, deduction_input).to_dict()
