"""
Stock Allocation Engine
=======================
Runs the full pipeline over one point-in-time snapshot:

    screen -> rank (per pool) -> waterfall (per pool) -> annotate

Pools never read each other's state, so they may be processed on a thread pool
(max_workers > 1). Results are merged in item order, so a parallel run is
identical to a sequential one.
"""
import concurrent.futures
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ..config import config
from .currency import ExchangeRateTable
from .models import AllocationResult, AnnotatedAllocation, DemandLine
from .priority_ranker import PriorityRanker
from .validators import AllocationValidator
from .value_annotator import ValueAnnotator
from .waterfall_allocator import StockInput, allocate_pool, build_stock_lookup

logger = logging.getLogger(__name__)

KEY_COLUMNS = [
    'line_id', 'item_code', 'priority_rank', 'quantity_ordered', 'quantity_dispatched',
    'quantity_due', 'quantity_allocated', 'available_quantity', 'eligible_quantity',
    'proposed_allocation', 'running_cumulative_demand', 'stock_remaining_before_this_line',
    'stock_after_allocation', 'current_status', 'proposed_status',
]


@dataclass
class AllocationRun:
    """Output of one engine run"""
    results: List[AnnotatedAllocation]
    rejected: List[Dict[str, Any]] = field(default_factory=list)
    run_at: datetime = field(default_factory=datetime.now)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per allocated line, sorted by (item_code, priority_rank)"""
        if not self.results:
            return pd.DataFrame(columns=KEY_COLUMNS)

        df = pd.DataFrame([result.to_dict() for result in self.results])
        other = [c for c in df.columns if c not in KEY_COLUMNS]
        df = df[KEY_COLUMNS + other]
        return df.sort_values(['item_code', 'priority_rank'], kind='mergesort').reset_index(drop=True)

    def summary_frame(self) -> pd.DataFrame:
        """Per-item totals for the run"""
        columns = ['item_code', 'available_quantity', 'line_count', 'eligible_quantity',
                   'proposed_allocation', 'proposed_value_reporting', 'fully_served',
                   'partially_served', 'unserved', 'stock_left']
        df = self.to_dataframe()
        if df.empty:
            return pd.DataFrame(columns=columns)

        df = df.assign(
            fully_served=(df['eligible_quantity'] > 0) & (df['proposed_allocation'] >= df['eligible_quantity']),
            partially_served=(df['proposed_allocation'] > 0) & (df['proposed_allocation'] < df['eligible_quantity']),
            unserved=(df['eligible_quantity'] > 0) & (df['proposed_allocation'] == 0),
        )
        summary = df.groupby('item_code', sort=True).agg(
            available_quantity=('available_quantity', 'first'),
            line_count=('line_id', 'count'),
            eligible_quantity=('eligible_quantity', 'sum'),
            proposed_allocation=('proposed_allocation', 'sum'),
            proposed_value_reporting=('proposed_value_reporting', 'sum'),
            fully_served=('fully_served', 'sum'),
            partially_served=('partially_served', 'sum'),
            unserved=('unserved', 'sum'),
        ).reset_index()
        summary['stock_left'] = summary['available_quantity'] - summary['proposed_allocation']
        return summary[columns]


class StockAllocationEngine:
    """
    Main engine for priority-ranked waterfall allocation
    """

    def __init__(self, rates: Optional[ExchangeRateTable] = None, max_workers: Optional[int] = None):
        self.rates = rates or ExchangeRateTable(
            reporting_currency=config.get_app_setting('REPORTING_CURRENCY', 'GBP'),
            reference_currency=config.get_app_setting('REFERENCE_CURRENCY', 'EUR'),
        )
        if max_workers is None:
            max_workers = config.get_app_setting('ALLOCATION_MAX_WORKERS', 1)
        self.max_workers = max(1, int(max_workers))

        self.ranker = PriorityRanker()
        self.validator = AllocationValidator(
            tolerance=config.get_app_setting('QUANTITY_TOLERANCE', 1e-9)
        )
        self.annotator = ValueAnnotator(self.rates)

    # ==================== Pool Processing ====================

    def _process_pool(self, item_code: str, lines: Sequence[DemandLine],
                      available: float) -> List[AllocationResult]:
        """Rank and allocate one pool; raises on broken invariants"""
        ranked = self.ranker.rank_pool(lines)
        self.validator.check_dense_ranks(item_code, ranked)

        results = allocate_pool(ranked, available)
        self.validator.check_conservation(item_code, results, available)
        return results

    def _process_pools(self, pools: Dict[str, List[DemandLine]],
                       stock: Dict[str, float]) -> List[AllocationResult]:
        item_codes = list(pools)

        if self.max_workers == 1 or len(item_codes) < 2:
            results = []
            for item_code in item_codes:
                results.extend(self._process_pool(item_code, pools[item_code], stock.get(item_code, 0.0)))
            return results

        logger.info(f"Allocating {len(item_codes)} pools on {self.max_workers} workers")
        by_item: Dict[str, List[AllocationResult]] = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self._process_pool, item_code, pools[item_code],
                                stock.get(item_code, 0.0)): item_code
                for item_code in item_codes
            }
            for future in concurrent.futures.as_completed(futures):
                by_item[futures[future]] = future.result()

        results = []
        for item_code in item_codes:
            results.extend(by_item[item_code])
        return results

    # ==================== Run ====================

    def run(self, demand_lines: Iterable[DemandLine], stock: StockInput) -> AllocationRun:
        """
        Allocate stock across a demand snapshot

        Args:
            demand_lines: Outstanding order lines
            stock: item_code -> available quantity, or StockPosition records

        Returns:
            AllocationRun with annotated results and screened-out lines
        """
        lines = list(demand_lines)
        run = AllocationRun(results=[])

        if not lines:
            logger.warning("No demand lines provided for allocation")
            return run

        self.validator.check_unique_line_ids(lines)
        accepted, rejected = self.validator.screen_demand(lines)
        run.rejected = rejected

        stock_lookup = build_stock_lookup(stock)
        pools = self.ranker.group_pools(accepted)

        missing = [item_code for item_code in pools if item_code not in stock_lookup]
        if missing:
            logger.info(f"{len(missing)} item(s) have no stock position and receive no allocation")

        results = self._process_pools(pools, stock_lookup)
        run.results = self.annotator.annotate_all(results)

        total_allocated = sum(r.proposed_allocation for r in results)
        logger.info(
            f"Allocated {total_allocated:,.2f} units to {sum(1 for r in results if r.proposed_allocation > 0)} "
            f"of {len(results)} lines across {len(pools)} items"
        )
        return run


def run_allocation(demand_lines: Iterable[DemandLine], stock: StockInput,
                   rates: Optional[ExchangeRateTable] = None,
                   max_workers: Optional[int] = None) -> AllocationRun:
    """Convenience wrapper around StockAllocationEngine.run"""
    return StockAllocationEngine(rates=rates, max_workers=max_workers).run(demand_lines, stock)
