"""Utilities for render-loop timing and fixed-cadence capture."""
from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class FrameTimer:
    """High resolution timer based on :func:`time.perf_counter`."""

    max_dt: Optional[float] = None
    last_time: float = field(default_factory=time.perf_counter)
    elapsed: float = 0.0

    def tick(self) -> float:
        now = time.perf_counter()
        dt = now - self.last_time
        self.last_time = now
        if self.max_dt is not None:
            dt = min(dt, self.max_dt)
        self.elapsed += dt
        return dt


@dataclass
class FixedStepAccumulator:
    """Accumulates wall time and releases it in whole fixed steps."""

    step: float
    max_steps: int
    value: float = 0.0

    def accrue(self, delta: float) -> None:
        if delta > 0.0:
            self.value += delta

    def clear(self) -> None:
        self.value = 0.0

    def consume(self) -> int:
        """Number of whole steps due; the fractional remainder is kept."""

        if self.value < self.step:
            return 0
        steps = math.floor(self.value / self.step)
        self.value -= steps * self.step
        if steps > self.max_steps:
            steps = self.max_steps
        return steps


__all__ = ["FixedStepAccumulator", "FrameTimer"]
