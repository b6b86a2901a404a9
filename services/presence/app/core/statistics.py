"""
Lifetime counters of the launcher network.
"""
import asyncio
import logging
from typing import Dict, Mapping

logger = logging.getLogger(__name__)

TOTAL_LAUNCHES = "total_launches"
TOTAL_USERS = "total_users"
TOTAL_PLAYTIME = "total_playtime"

METRICS = (TOTAL_LAUNCHES, TOTAL_USERS, TOTAL_PLAYTIME)


class StatisticsAggregator:
    """Named integer counters that only ever grow by applied deltas."""

    def __init__(self):
        self._values: Dict[str, int] = {metric: 0 for metric in METRICS}
        self._lock = asyncio.Lock()

    async def apply(self, deltas: Mapping[str, int]) -> None:
        """Add every delta atomically with respect to other callers."""
        async with self._lock:
            for metric, delta in deltas.items():
                if delta < 0:
                    raise ValueError(f"Negative delta {delta} for {metric}")
                self._values[metric] = self._values.get(metric, 0) + delta

    def restore(self, values: Mapping[str, int]) -> None:
        self._values.update(values)
        logger.info(f"Restored statistics: {dict(self._values)}")

    def snapshot(self) -> Dict[str, int]:
        return dict(self._values)

    def get(self, metric: str) -> int:
        return self._values.get(metric, 0)
