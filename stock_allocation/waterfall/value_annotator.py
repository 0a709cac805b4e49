"""
Value Annotator
===============
Attaches status labels and reporting-currency values to allocation results.
Purely derivative: allocation quantities are never changed here.

Value columns:
- unit_price_reporting and the quantity-based values: identity for reporting-currency
  lines, else the order's own exchange rate, else the system rate chain
- unit_price_system_fx / net_value_system_fx use the system rate chain (for reconciliation)
"""
import logging
from typing import Iterable, List, Optional

from .currency import ConversionResult, ExchangeRateTable, convert_to_reporting, convert_with_transaction_rate
from .models import AllocationResult, AnnotatedAllocation, DemandLine

logger = logging.getLogger(__name__)


# ==================== STATUS LABELS ====================

FULLY_ALLOCATED = 'Fully Allocated'
PARTIALLY_ALLOCATED = 'Partially Allocated'
NOT_ALLOCATED = 'Not Allocated'

WOULD_BE_FULLY_ALLOCATED = 'Would be Fully Allocated'
WOULD_BE_PARTIALLY_ALLOCATED = 'Would be Partially Allocated'
WOULD_REMAIN_UNALLOCATED = 'Would Remain Unallocated'

FULLY_DESPATCHED = 'Fully Despatched'
PARTIALLY_DESPATCHED = 'Partially Despatched'
NOT_DESPATCHED = 'Not Despatched'


def current_status(quantity_allocated: float, quantity_dispatched: float, quantity_ordered: float) -> str:
    """Allocation state before the run"""
    covered = quantity_allocated + quantity_dispatched
    if covered >= quantity_ordered:
        return FULLY_ALLOCATED
    if covered > 0:
        return PARTIALLY_ALLOCATED
    return NOT_ALLOCATED


def proposed_status(quantity_allocated: float, quantity_dispatched: float, quantity_ordered: float,
                    proposed_allocation: float) -> str:
    """Allocation state if the proposed allocation were applied"""
    covered = quantity_allocated + proposed_allocation + quantity_dispatched
    if covered >= quantity_ordered:
        return WOULD_BE_FULLY_ALLOCATED
    if covered > 0:
        return WOULD_BE_PARTIALLY_ALLOCATED
    return WOULD_REMAIN_UNALLOCATED


def despatch_status(quantity_dispatched: float, quantity_ordered: float) -> str:
    """Shipping state of the line"""
    if quantity_dispatched >= quantity_ordered:
        return FULLY_DESPATCHED
    if quantity_dispatched <= 0:
        return NOT_DESPATCHED
    return PARTIALLY_DESPATCHED


# ==================== ANNOTATOR ====================

class ValueAnnotator:
    """Derives labels and reporting values for allocation results"""

    def __init__(self, rates: Optional[ExchangeRateTable] = None):
        self.rates = rates or ExchangeRateTable()

    def reporting_unit_price(self, line: DemandLine) -> ConversionResult:
        """Unit price in the reporting currency, preferring the order's own rate"""
        if (line.currency_id or "").upper() == self.rates.reporting_currency:
            return convert_to_reporting(line.unit_price, line.currency_id, self.rates)

        unit = convert_with_transaction_rate(line.unit_price, line.exchange_rate)
        if unit.converted:
            return unit
        return convert_to_reporting(line.unit_price, line.currency_id, self.rates, line.system_rate)

    def annotate(self, result: AllocationResult) -> AnnotatedAllocation:
        line = result.line

        unit = self.reporting_unit_price(line)
        unit_price = unit.value

        system_unit = convert_to_reporting(line.unit_price, line.currency_id, self.rates, line.system_rate)
        system_net = convert_to_reporting(line.net_value, line.currency_id, self.rates, line.system_rate)

        if not unit.converted or not system_unit.converted:
            logger.debug(f"Line {line.line_id}: unconvertible value from {line.currency_id}")

        return AnnotatedAllocation(
            allocation=result,
            current_status=current_status(line.quantity_allocated, line.quantity_dispatched,
                                          line.quantity_ordered),
            proposed_status=proposed_status(line.quantity_allocated, line.quantity_dispatched,
                                            line.quantity_ordered, result.proposed_allocation),
            despatch_status=despatch_status(line.quantity_dispatched, line.quantity_ordered),
            unit_price_reporting=unit_price,
            order_value_reporting=unit_price * line.quantity_ordered,
            outstanding_value_reporting=unit_price * line.quantity_due,
            despatched_value_reporting=unit_price * line.quantity_dispatched,
            proposed_value_reporting=unit_price * result.proposed_allocation,
            unit_price_system_fx=system_unit.value,
            net_value_system_fx=system_net.value,
            fx_method=system_unit.method,
            fx_convertible=unit.converted and system_unit.converted,
        )

    def annotate_all(self, results: Iterable[AllocationResult]) -> List[AnnotatedAllocation]:
        annotated = [self.annotate(result) for result in results]
        unconvertible = sum(1 for a in annotated if not a.fx_convertible)
        if unconvertible:
            logger.warning(f"{unconvertible} line(s) have no usable exchange rate; values reported as 0")
        return annotated
