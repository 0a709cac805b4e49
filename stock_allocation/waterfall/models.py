"""
Allocation Data Model
=====================
Value types flowing through the waterfall allocation pipeline:

- DemandLine: one outstanding customer order line competing for stock
- StockPosition: available quantity for one item
- RankedDemandLine: demand line with its priority rank inside its pool
- AllocationResult: ranked line with the waterfall decision
- AnnotatedAllocation: allocation result with status labels and reporting values

All records are immutable and built fresh for every run.
"""
import math
from dataclasses import dataclass, asdict
from datetime import date, datetime
from enum import IntEnum
from typing import Any, Dict, Optional, Union

import pandas as pd

DateLike = Union[date, datetime]


class DocumentStatus(IntEnum):
    """Order header status codes in the source system"""
    LIVE = 0
    ON_HOLD = 1
    COMPLETED = 2
    DISPUTE = 3
    CANCELLED = 4


class LineType(IntEnum):
    """Order line type codes in the source system"""
    STOCK_ITEM = 0
    FREE_TEXT = 1
    ADDITIONAL_CHARGE = 2
    COMMENT = 3


class DocumentType(IntEnum):
    """Document type codes in the source system"""
    SALES_ORDER = 0
    SALES_RETURN = 1


def clamp_quantity(value: Any) -> float:
    """Coerce a stock figure to a non-negative float (None/NaN/negative -> 0)"""
    try:
        qty = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(qty) or qty < 0:
        return 0.0
    return qty


def to_timestamp(value: Any) -> Optional[pd.Timestamp]:
    """
    Parse a date-like value into a tz-naive Timestamp

    Aware values are converted to UTC first. Returns None for missing or
    unparseable input.
    """
    if value is None:
        return None
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


@dataclass(frozen=True)
class DemandLine:
    """One customer order line competing for an item's stock"""
    line_id: Any
    item_code: str
    quantity_ordered: float
    quantity_dispatched: float
    quantity_allocated: float
    promised_date: Optional[DateLike]
    document_date: Optional[DateLike]
    unit_price: float = 0.0
    currency_id: str = "GBP"
    exchange_rate: Optional[float] = 1.0

    # Descriptive fields carried through to the output
    document_no: Optional[str] = None
    line_number: Optional[int] = None
    customer_code: Optional[str] = None
    customer_name: Optional[str] = None
    customer_document_no: Optional[str] = None
    item_description: Optional[str] = None
    requested_date: Optional[DateLike] = None
    line_total_value: Optional[float] = None
    system_rate: Optional[float] = None
    source_document_no: Optional[str] = None

    @property
    def quantity_due(self) -> float:
        """Outstanding quantity still owed to the customer"""
        return self.quantity_ordered - self.quantity_dispatched

    @property
    def has_reserved_stock(self) -> bool:
        """Line already holds reserved stock and does not compete again"""
        return self.quantity_allocated > 0

    @property
    def net_value(self) -> float:
        """Line value in local currency (falls back to price * ordered qty)"""
        if self.line_total_value is not None:
            return self.line_total_value
        return self.unit_price * self.quantity_ordered

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['quantity_due'] = self.quantity_due
        return data


@dataclass(frozen=True)
class StockPosition:
    """Available quantity for one item code"""
    item_code: str
    available_quantity: float

    @property
    def usable_quantity(self) -> float:
        return clamp_quantity(self.available_quantity)


@dataclass(frozen=True)
class RankedDemandLine:
    """Demand line with its dense 1-based rank inside its allocation pool"""
    line: DemandLine
    priority_rank: int

    @property
    def line_id(self) -> Any:
        return self.line.line_id

    @property
    def item_code(self) -> str:
        return self.line.item_code


@dataclass(frozen=True)
class AllocationResult:
    """Waterfall decision for one ranked demand line"""
    line: DemandLine
    priority_rank: int
    available_quantity: float
    eligible_quantity: float
    proposed_allocation: float
    prior_cumulative_demand: float
    running_cumulative_demand: float
    stock_remaining_before_this_line: float

    @property
    def line_id(self) -> Any:
        return self.line.line_id

    @property
    def item_code(self) -> str:
        return self.line.item_code

    @property
    def stock_after_allocation(self) -> float:
        """Stock left for lower-ranked lines once this line is served"""
        return max(self.stock_remaining_before_this_line, 0.0) - self.proposed_allocation

    @property
    def is_partial(self) -> bool:
        return 0 < self.proposed_allocation < self.eligible_quantity

    def to_dict(self) -> Dict[str, Any]:
        data = self.line.to_dict()
        data.update({
            'priority_rank': self.priority_rank,
            'available_quantity': self.available_quantity,
            'eligible_quantity': self.eligible_quantity,
            'proposed_allocation': self.proposed_allocation,
            'prior_cumulative_demand': self.prior_cumulative_demand,
            'running_cumulative_demand': self.running_cumulative_demand,
            'stock_remaining_before_this_line': self.stock_remaining_before_this_line,
            'stock_after_allocation': self.stock_after_allocation,
        })
        return data


@dataclass(frozen=True)
class AnnotatedAllocation:
    """Allocation result with status labels and reporting-currency values"""
    allocation: AllocationResult
    current_status: str
    proposed_status: str
    despatch_status: str
    unit_price_reporting: float
    order_value_reporting: float
    outstanding_value_reporting: float
    despatched_value_reporting: float
    proposed_value_reporting: float
    unit_price_system_fx: float
    net_value_system_fx: float
    fx_method: str
    fx_convertible: bool

    @property
    def line_id(self) -> Any:
        return self.allocation.line_id

    @property
    def item_code(self) -> str:
        return self.allocation.item_code

    @property
    def priority_rank(self) -> int:
        return self.allocation.priority_rank

    @property
    def proposed_allocation(self) -> float:
        return self.allocation.proposed_allocation

    def to_dict(self) -> Dict[str, Any]:
        data = self.allocation.to_dict()
        data.update({
            'current_status': self.current_status,
            'proposed_status': self.proposed_status,
            'despatch_status': self.despatch_status,
            'unit_price_reporting': self.unit_price_reporting,
            'order_value_reporting': self.order_value_reporting,
            'outstanding_value_reporting': self.outstanding_value_reporting,
            'despatched_value_reporting': self.despatched_value_reporting,
            'proposed_value_reporting': self.proposed_value_reporting,
            'unit_price_system_fx': self.unit_price_system_fx,
            'net_value_system_fx': self.net_value_system_fx,
            'fx_method': self.fx_method,
            'fx_convertible': self.fx_convertible,
        })
        return data
