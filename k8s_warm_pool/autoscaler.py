"""Target pool size calculation from recent usage."""

import math
import time
from collections.abc import Iterable

from k8s_warm_pool.config import PoolConfig
from k8s_warm_pool.const import SCALE_DOWN_HEADROOM, SCALE_UP_TARGET_UTILIZATION
from k8s_warm_pool.sampler import UsageSample


def calculate_target_size(
    samples: Iterable[UsageSample],
    config: PoolConfig,
    now: float | None = None,
) -> int:
    """Compute the desired number of warm pods from the usage window.

    The scale-up threshold is strictly above the scale-down threshold, so
    utilization between the two holds the pool steady instead of
    oscillating.

    Args:
        samples: Usage samples, in any order
        config: Pool configuration providing thresholds and bounds
        now: Reference time for the window (defaults to ``time.time()``)

    Returns:
        Target size clamped to ``[min_size, max_size]``

    """
    if not config.enable_auto_scaling:
        return config.min_size

    cutoff = (time.time() if now is None else now) - config.usage_window
    window = [s for s in samples if s.timestamp > cutoff]
    if not window:
        return config.min_size

    avg_allocated = sum(s.allocated_count for s in window) / len(window)
    avg_total = sum(s.total_count for s in window) / len(window)
    if avg_total == 0:
        return config.min_size

    utilization = avg_allocated / avg_total

    if utilization > config.scale_up_threshold:
        target = math.ceil(avg_allocated / SCALE_UP_TARGET_UTILIZATION)
    elif utilization < config.scale_down_threshold:
        target = max(config.min_size, math.ceil(avg_allocated * SCALE_DOWN_HEADROOM))
    else:
        target = math.ceil(avg_total)

    return max(config.min_size, min(config.max_size, target))
