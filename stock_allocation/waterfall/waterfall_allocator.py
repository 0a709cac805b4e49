"""
Waterfall Allocator
===================
Distributes one item's available stock over its ranked demand lines.

ALGORITHM: single pass in rank order carrying (prior_cumulative, running_cumulative)
    1. Line already holds reserved stock      -> 0 (never double-allocate)
    2. available <= prior cumulative demand    -> 0 (pool exhausted above this line)
    3. available >= running cumulative demand  -> eligible quantity (full)
    4. otherwise                               -> available - prior (partial)

EXAMPLE:
    Available stock: 100 units
    Rank 1 needs 60 -> gets 60 (cumulative 60)
    Rank 2 needs 50 -> gets 40 (cumulative 110)
    Rank 3 needs 30 -> gets 0  (cumulative 140)

prior_cumulative excludes the current line, running_cumulative includes it.
Lines holding reserved stock contribute 0 to both totals.
"""
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Union

from .models import AllocationResult, RankedDemandLine, StockPosition, clamp_quantity

logger = logging.getLogger(__name__)

StockInput = Union[Mapping[str, float], Sequence[StockPosition], None]


def eligible_quantity(ranked: RankedDemandLine) -> float:
    """Portion of the line's due quantity that contests the pool"""
    line = ranked.line
    if line.has_reserved_stock:
        return 0.0
    return max(line.quantity_due, 0.0)


def decide_allocation(has_reserved_stock: bool, eligible: float, available: float,
                      prior_cumulative: float, running_cumulative: float) -> float:
    """Allocation for one line given the stock and the cumulative demand around it"""
    if has_reserved_stock:
        return 0.0

    if available <= prior_cumulative:
        return 0.0

    if available >= running_cumulative:
        return eligible

    return max(available - prior_cumulative, 0.0)


def build_stock_lookup(stock: StockInput) -> Dict[str, float]:
    """Normalise stock input to item_code -> non-negative available quantity"""
    if stock is None:
        return {}

    if isinstance(stock, Mapping):
        items = stock.items()
    else:
        items = ((position.item_code, position.available_quantity) for position in stock)

    lookup = {}
    for item_code, available in items:
        if _is_negative(available):
            logger.warning(f"Item {item_code}: negative stock {available} treated as zero")
        lookup[item_code] = clamp_quantity(available)
    return lookup


def allocate_pool(ranked: Sequence[RankedDemandLine], available_quantity: Optional[float]) -> List[AllocationResult]:
    """
    Run the waterfall over one pool

    Args:
        ranked: Lines of one item ordered by priority_rank
        available_quantity: Stock for the item (None/negative treated as 0)

    Returns:
        One AllocationResult per line, in rank order
    """
    available = clamp_quantity(available_quantity)
    results = []
    prior_cumulative = 0.0

    for entry in sorted(ranked, key=lambda r: r.priority_rank):
        eligible = eligible_quantity(entry)
        running_cumulative = prior_cumulative + eligible

        proposed = decide_allocation(
            has_reserved_stock=entry.line.has_reserved_stock,
            eligible=eligible,
            available=available,
            prior_cumulative=prior_cumulative,
            running_cumulative=running_cumulative,
        )

        results.append(AllocationResult(
            line=entry.line,
            priority_rank=entry.priority_rank,
            available_quantity=available,
            eligible_quantity=eligible,
            proposed_allocation=proposed,
            prior_cumulative_demand=prior_cumulative,
            running_cumulative_demand=running_cumulative,
            stock_remaining_before_this_line=available - prior_cumulative,
        ))

        prior_cumulative = running_cumulative

    return results


class WaterfallAllocator:
    """Applies the waterfall to every ranked pool"""

    def __init__(self, stock: StockInput = None):
        self.stock = build_stock_lookup(stock)

    def available_for(self, item_code: str) -> float:
        """Null-safe stock lookup (absent item = 0)"""
        return self.stock.get(item_code, 0.0)

    def allocate_pool(self, item_code: str, ranked: Sequence[RankedDemandLine]) -> List[AllocationResult]:
        if item_code not in self.stock:
            logger.debug(f"No stock position for item {item_code}, pool gets zero allocation")
        return allocate_pool(ranked, self.available_for(item_code))

    def allocate(self, ranked_pools: Mapping[str, Sequence[RankedDemandLine]]) -> List[AllocationResult]:
        results = []
        for item_code, ranked in ranked_pools.items():
            results.extend(self.allocate_pool(item_code, ranked))
        return results


def allocate(ranked_pools: Mapping[str, Sequence[RankedDemandLine]], stock: StockInput) -> List[AllocationResult]:
    """Allocate every pool against its stock position"""
    return WaterfallAllocator(stock).allocate(ranked_pools)


def _is_negative(value) -> bool:
    try:
        return float(value) < 0
    except (TypeError, ValueError):
        return False
