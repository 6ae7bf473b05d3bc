"""Pool metrics snapshot and allocation latency tracking."""

from collections import deque
from dataclasses import dataclass

from k8s_warm_pool.config import PoolConfig
from k8s_warm_pool.const import ALLOCATION_LATENCY_WINDOW


@dataclass(frozen=True)
class PoolMetrics:
    """Point-in-time view of pool occupancy and allocation outcomes."""

    total_pods: int
    warm_pods: int
    allocated_pods: int
    utilization_percent: float
    total_allocations: int
    warm_pool_hits: int
    warm_pool_misses: int
    hit_rate_percent: float
    avg_warm_allocation_ms: float
    target_size: int
    config: PoolConfig


class AllocationLatencyTracker:
    """Rolling average of the most recent warm allocation latencies."""

    def __init__(self, maxlen: int = ALLOCATION_LATENCY_WINDOW) -> None:
        self._latencies: deque[float] = deque(maxlen=maxlen)

    def record(self, latency_ms: float) -> None:
        self._latencies.append(latency_ms)

    @property
    def average_ms(self) -> float:
        if not self._latencies:
            return 0.0
        return sum(self._latencies) / len(self._latencies)

    def __len__(self) -> int:
        return len(self._latencies)
