"""Recency-weighted speed smoothing."""

from collections import deque
from typing import List


class SpeedSmoother:
    """
    Keeps the last N speed samples and averages them with linear weights.

    The oldest sample has weight 1 and the newest has weight N, so recent
    movement dominates.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"SpeedSmoother capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._samples: deque = deque(maxlen=capacity)

    def add_sample(self, speed: float) -> float:
        """Append a sample, evicting the oldest past capacity. Returns the new smoothed speed."""
        self._samples.append(speed)
        return self.smoothed_speed

    @property
    def smoothed_speed(self) -> float:
        if not self._samples:
            return 0.0
        weighted_sum = 0.0
        weight_total = 0
        for weight, speed in enumerate(self._samples, start=1):
            weighted_sum += speed * weight
            weight_total += weight
        return weighted_sum / weight_total

    @property
    def samples(self) -> List[float]:
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def clear(self) -> None:
        self._samples.clear()
