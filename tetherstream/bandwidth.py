"""Smoothed throughput from the engine's cumulative byte counters."""

from typing import Optional

import numpy as np

from .common import BANDWIDTH_WINDOW_SIZE, log
from .models import BandwidthSample, EngineStats


class BandwidthEstimator:
    """
    Turns monotonically increasing byte counts into bytes/second, averaged
    over the last few one-second samples. A counter that goes backwards
    (engine rebuilt, counter reset) re-baselines without producing a sample.
    """

    def __init__(self, window_size: int = BANDWIDTH_WINDOW_SIZE):
        self.window_size = window_size
        self._samples    = np.full(window_size, np.nan)
        self._index      = 0
        self._previous: Optional[BandwidthSample] = None
        self.current     = 0

    def reset(self):
        self._samples.fill(np.nan)
        self._index = 0
        self._previous = None
        self.current = 0

    @property
    def sample_count(self) -> int:
        return int(np.count_nonzero(~np.isnan(self._samples)))

    def update(self, cumulative_bytes: int, timestamp: float) -> int:
        """Feed one reading (timestamp in seconds) and return the smoothed rate."""
        sample = BandwidthSample(timestamp=timestamp, cumulative_bytes=int(cumulative_bytes))
        previous = self._previous
        self._previous = sample
        if previous is None:
            return self.current

        elapsed_ms = (sample.timestamp - previous.timestamp) * 1000.0
        if elapsed_ms <= 0:
            self._previous = previous
            return self.current

        delta = sample.cumulative_bytes - previous.cumulative_bytes
        if delta < 0:
            log.debug(f"Byte counter went backwards ({previous.cumulative_bytes} -> "
                      f"{sample.cumulative_bytes}), sample discarded")
            return self.current

        self._samples[self._index] = delta * 1000.0 / elapsed_ms
        self._index = (self._index + 1) % self.window_size
        self.current = int(np.nanmean(self._samples))
        return self.current

    def update_from_stats(self, stats: Optional[EngineStats], timestamp: float) -> int:
        if stats is None:
            log.debug("Engine stats unavailable")
            return self.current
        return self.update(stats.best_counter(), timestamp)
