"""Rolling window of pool usage samples feeding the auto-scaler."""

import time
from dataclasses import dataclass


@dataclass(frozen=True)
class UsageSample:
    """Pool occupancy at a point in time."""

    timestamp: float
    warm_count: int
    allocated_count: int

    @property
    def total_count(self) -> int:
        """Warm plus allocated pods."""
        return self.warm_count + self.allocated_count


class UsageSampler:
    """In-memory rolling window of usage samples.

    Samples are appended on every state-changing event (allocation, release,
    scale change) and anything older than the window is pruned on write.
    """

    def __init__(self, window: float) -> None:
        """Initialize the sampler.

        Args:
            window: Seconds of history to retain

        """
        self.window = window
        self._samples: list[UsageSample] = []

    def record(self, warm_count: int, allocated_count: int, now: float | None = None) -> UsageSample:
        """Append a sample and prune expired ones.

        Args:
            warm_count: Current number of warm pods
            allocated_count: Current number of allocated pods
            now: Sample time (defaults to ``time.time()``)

        Returns:
            The recorded sample

        """
        timestamp = time.time() if now is None else now
        sample = UsageSample(timestamp=timestamp, warm_count=warm_count, allocated_count=allocated_count)
        self._samples.append(sample)
        self.prune(timestamp)
        return sample

    def prune(self, now: float | None = None) -> None:
        """Drop samples that fall outside the window."""
        cutoff = (time.time() if now is None else now) - self.window
        self._samples = [s for s in self._samples if s.timestamp > cutoff]

    def samples(self) -> list[UsageSample]:
        """Return a snapshot of the retained samples."""
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)
