"""
Allocation Validator
====================
Validation rules for the waterfall allocation pipeline.

Two classes of problem are handled here:
- Data-quality anomalies (missing or malformed dates, nothing outstanding, broken quantities):
  the line is screened out of its pool with a logged warning, the run continues.
- Structural violations (duplicate line ids, non-dense ranks, over-committed pool):
  raised as AllocationIntegrityError, the run is aborted.
"""
import logging
import math
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .models import AllocationResult, DemandLine, RankedDemandLine, to_timestamp

logger = logging.getLogger(__name__)


# ==================== CUSTOM EXCEPTIONS ====================

class StockAllocationError(Exception):
    """Base exception for stock allocation errors"""
    pass


class AllocationIntegrityError(StockAllocationError):
    """Raised when a core invariant of the allocation is broken"""
    pass


# ==================== VALIDATOR CLASS ====================

class AllocationValidator:
    """Validator for demand screening and allocation invariants"""

    def __init__(self, tolerance: float = 1e-9):
        self.TOLERANCE = tolerance

    # ==================== Line Screening ====================

    def screen_line(self, line: DemandLine) -> Optional[str]:
        """
        Check whether a demand line may enter its allocation pool

        Returns:
            Rejection reason, or None if the line is accepted
        """
        if not line.item_code:
            return "Missing item code"

        for label, value in (('promised', line.promised_date), ('document', line.document_date)):
            if _is_missing(value):
                return f"Missing {label} date"
            if to_timestamp(value) is None:
                return f"Malformed {label} date"

        for name in ('quantity_ordered', 'quantity_dispatched', 'quantity_allocated'):
            value = getattr(line, name)
            if value is None or (isinstance(value, float) and math.isnan(value)):
                return f"Missing {name}"

        if line.quantity_dispatched < 0:
            return "Negative dispatched quantity"

        if line.quantity_allocated < 0:
            return "Negative allocated quantity"

        if line.quantity_due <= 0:
            return "Nothing outstanding"

        return None

    def screen_demand(self, lines: Iterable[DemandLine]) -> Tuple[List[DemandLine], List[Dict[str, Any]]]:
        """
        Split demand into pool candidates and rejected lines

        Returns:
            Tuple of (accepted lines, list of {'line_id', 'item_code', 'reason'})
        """
        accepted = []
        rejected = []

        for line in lines:
            reason = self.screen_line(line)
            if reason is None:
                accepted.append(line)
            else:
                rejected.append({
                    'line_id': line.line_id,
                    'item_code': line.item_code,
                    'reason': reason
                })

        if rejected:
            logger.warning(f"Excluded {len(rejected)} demand line(s) from allocation pools")
            for entry in rejected[:10]:
                logger.warning(f"   • Line {entry['line_id']} ({entry['item_code']}): {entry['reason']}")
            if len(rejected) > 10:
                logger.warning(f"   ... and {len(rejected) - 10} more")

        return accepted, rejected

    # ==================== Structural Checks ====================

    def check_unique_line_ids(self, lines: Sequence[DemandLine]) -> None:
        """Raise if any line_id appears more than once in the run"""
        counts = Counter(line.line_id for line in lines)
        duplicates = sorted((str(line_id) for line_id, n in counts.items() if n > 1))
        if duplicates:
            raise AllocationIntegrityError(
                f"Duplicate line_id in demand: {', '.join(duplicates[:10])}"
            )

    def check_dense_ranks(self, item_code: str, ranked: Sequence[RankedDemandLine]) -> None:
        """Raise unless ranks in the pool are exactly 1..N in order"""
        ranks = [r.priority_rank for r in ranked]
        expected = list(range(1, len(ranked) + 1))
        if ranks != expected:
            raise AllocationIntegrityError(
                f"Ranks for item {item_code} are not dense 1..{len(ranked)}: {ranks[:10]}"
            )

        foreign = {r.item_code for r in ranked if r.item_code != item_code}
        if foreign:
            raise AllocationIntegrityError(
                f"Pool {item_code} contains lines for other items: {', '.join(sorted(foreign))}"
            )

        line_ids = [r.line_id for r in ranked]
        if len(set(line_ids)) != len(line_ids):
            raise AllocationIntegrityError(f"Duplicate line_id within pool {item_code}")

    def check_conservation(self, item_code: str, results: Sequence[AllocationResult],
                           available_quantity: float) -> None:
        """Raise if a pool hands out more than it holds or a line gets more than it asked"""
        total = sum(r.proposed_allocation for r in results)
        if total > available_quantity + self.TOLERANCE:
            raise AllocationIntegrityError(
                f"Item {item_code}: allocated {total} exceeds available {available_quantity}"
            )

        for r in results:
            if r.proposed_allocation < 0 or r.proposed_allocation > r.eligible_quantity + self.TOLERANCE:
                raise AllocationIntegrityError(
                    f"Line {r.line_id}: allocation {r.proposed_allocation} outside "
                    f"[0, {r.eligible_quantity}]"
                )

    # ==================== Summary ====================

    def generate_rejection_summary(self, rejected: List[Dict[str, Any]]) -> str:
        """Generate human-readable summary of screened-out lines"""
        if not rejected:
            return "✅ All demand lines entered allocation"

        lines = [f"⚠️ {len(rejected)} demand line(s) excluded:"]
        by_reason = Counter(entry['reason'] for entry in rejected)
        for reason, count in by_reason.most_common():
            lines.append(f"  • {reason}: {count}")
        return "\n".join(lines)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False
