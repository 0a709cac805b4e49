"""
Priority Ranker
===============
Imposes a strict, deterministic order on the demand lines of each allocation pool.

Ordering key (ascending):
1. Already holds reserved stock (those lines go last)
2. Promised date (closest deadline first)
3. Document date (oldest order first)
4. Line id (stable final tiebreak; numeric ids before text ids)

Dates are compared as tz-naive UTC timestamps. A date that cannot be parsed
sorts after every real date.
"""
import logging
from collections import OrderedDict
from numbers import Number
from typing import Any, Dict, Iterable, List, Tuple

import pandas as pd

from .models import DemandLine, RankedDemandLine, to_timestamp

logger = logging.getLogger(__name__)


class PriorityRanker:
    """Ranks demand lines inside each item's allocation pool"""

    def get_priority_key(self, line: DemandLine) -> Tuple[int, Tuple, Tuple, Tuple]:
        """Sort key for a line; lower key = served first"""
        return (
            1 if line.has_reserved_stock else 0,
            _date_key(line.promised_date),
            _date_key(line.document_date),
            _line_id_key(line.line_id),
        )

    def group_pools(self, lines: Iterable[DemandLine]) -> Dict[str, List[DemandLine]]:
        """Group lines by item code, pools in sorted item order"""
        pools: Dict[str, List[DemandLine]] = {}
        for line in lines:
            pools.setdefault(line.item_code, []).append(line)
        return OrderedDict((item_code, pools[item_code]) for item_code in sorted(pools))

    def rank_pool(self, lines: Iterable[DemandLine]) -> List[RankedDemandLine]:
        """Assign dense 1-based ranks to the lines of one pool"""
        ordered = sorted(lines, key=self.get_priority_key)
        return [
            RankedDemandLine(line=line, priority_rank=rank)
            for rank, line in enumerate(ordered, start=1)
        ]

    def rank(self, lines: Iterable[DemandLine]) -> Dict[str, List[RankedDemandLine]]:
        """Rank every pool in the demand set"""
        ranked = OrderedDict()
        for item_code, pool in self.group_pools(lines).items():
            ranked[item_code] = self.rank_pool(pool)

        logger.debug(f"Ranked {sum(len(p) for p in ranked.values())} lines across {len(ranked)} pools")
        return ranked


def rank_pool(lines: Iterable[DemandLine]) -> List[RankedDemandLine]:
    """Rank the lines of one pool"""
    return PriorityRanker().rank_pool(lines)


def rank_demand(lines: Iterable[DemandLine]) -> Dict[str, List[RankedDemandLine]]:
    """Rank all pools in the demand set"""
    return PriorityRanker().rank(lines)


def _date_key(value: Any) -> Tuple[int, pd.Timestamp]:
    ts = to_timestamp(value)
    if ts is None:
        return (1, pd.Timestamp.max)
    return (0, ts)


def _line_id_key(line_id: Any) -> Tuple[int, Any, str]:
    if isinstance(line_id, Number) and not isinstance(line_id, bool) and not pd.isna(line_id):
        return (0, line_id, str(line_id))
    return (1, 0, str(line_id))
