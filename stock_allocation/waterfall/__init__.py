"""
Waterfall Allocation Module
===========================
Priority-ranked waterfall allocation of item stock across outstanding order lines.

Components:
- models: DemandLine, StockPosition, RankedDemandLine, AllocationResult
- priority_ranker: Dense per-item priority ranks
- waterfall_allocator: Stock-bounded, rank-ordered allocation per item
- currency: Reporting-currency conversion with unconvertible fallback
- value_annotator: Status labels and reporting values
- validators: Demand screening and invariant checks
- allocation_data: Snapshot loading (database or DataFrames)
- allocation_engine: End-to-end run orchestration
"""

from .models import (
    DemandLine,
    StockPosition,
    RankedDemandLine,
    AllocationResult,
    AnnotatedAllocation,
)
from .priority_ranker import PriorityRanker, rank_pool, rank_demand
from .waterfall_allocator import WaterfallAllocator, allocate_pool, allocate
from .currency import ExchangeRateTable, ConversionResult, convert_to_reporting, convert_with_transaction_rate
from .value_annotator import ValueAnnotator, current_status, proposed_status, despatch_status
from .validators import AllocationValidator, StockAllocationError, AllocationIntegrityError
from .allocation_data import (
    AllocationSnapshotData,
    demand_lines_from_frame,
    stock_positions_from_frame,
    exchange_rates_from_frame,
)
from .allocation_engine import StockAllocationEngine, AllocationRun, run_allocation

__all__ = [
    # Models
    'DemandLine',
    'StockPosition',
    'RankedDemandLine',
    'AllocationResult',
    'AnnotatedAllocation',

    # Ranking / allocation
    'PriorityRanker',
    'rank_pool',
    'rank_demand',
    'WaterfallAllocator',
    'allocate_pool',
    'allocate',

    # Values
    'ExchangeRateTable',
    'ConversionResult',
    'convert_to_reporting',
    'convert_with_transaction_rate',
    'ValueAnnotator',
    'current_status',
    'proposed_status',
    'despatch_status',

    # Validation
    'AllocationValidator',
    'StockAllocationError',
    'AllocationIntegrityError',

    # Data / engine
    'AllocationSnapshotData',
    'demand_lines_from_frame',
    'stock_positions_from_frame',
    'exchange_rates_from_frame',
    'StockAllocationEngine',
    'AllocationRun',
    'run_allocation',
]
