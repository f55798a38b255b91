"""Concurrency width that follows system load."""

import logging
import time
from collections.abc import Callable

import psutil

logger = logging.getLogger(__name__)

HIGH_CPU_PERCENT = 80.0
LOW_CPU_PERCENT = 40.0
LOW_MEMORY_MB = 1000.0
HIGH_MEMORY_MB = 4000.0
WIDTH_STEP = 2


def sample_system_load() -> tuple[float, float]:
    """Return (cpu percent, available memory in MB)."""
    cpu = psutil.cpu_percent(interval=None)
    available_mb = psutil.virtual_memory().available / 1024**2
    return cpu, available_mb


class AdaptiveThrottle:
    """
    Track how many transfers may run at once.

    The width halves under CPU or memory pressure (never below 1) and grows
    by two when the machine is idle (never above ``max_width``). It is
    re-evaluated at batch boundaries only; each update replaces the value
    in a single assignment.
    """

    def __init__(
        self,
        max_width: int = 10,
        sample_interval: float = 5.0,
        sampler: Callable[[], tuple[float, float]] = sample_system_load,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_width < 1:
            raise ValueError("max_width must be at least 1")
        self.max_width = max_width
        self.sample_interval = sample_interval
        self._sampler = sampler
        self._clock = clock
        self._width = max_width
        self._last_sample: float | None = None

    @property
    def width(self) -> int:
        return self._width

    def adjust(self, cpu_percent: float, available_mb: float) -> int:
        """Apply one load sample and return the new width."""
        current = self._width
        if cpu_percent > HIGH_CPU_PERCENT or available_mb < LOW_MEMORY_MB:
            new_width = max(1, current // 2)
        elif cpu_percent < LOW_CPU_PERCENT and available_mb > HIGH_MEMORY_MB:
            new_width = min(self.max_width, current + WIDTH_STEP)
        else:
            new_width = current

        if new_width != current:
            logger.info(
                "Throttle width %d -> %d (cpu %.0f%%, %.0f MB free)",
                current,
                new_width,
                cpu_percent,
                available_mb,
            )
        self._width = new_width
        return new_width

    def rebalance(self) -> int:
        """Sample system load if the interval has passed and return the width."""
        now = self._clock()
        if self._last_sample is not None and now - self._last_sample < self.sample_interval:
            return self._width
        self._last_sample = now

        try:
            cpu, available_mb = self._sampler()
        except (OSError, psutil.Error) as e:
            logger.warning("Could not sample system load: %s", e)
            return self._width
        return self.adjust(cpu, available_mb)
