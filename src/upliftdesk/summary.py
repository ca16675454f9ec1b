"""Summary statistics for a decoded height run."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .uart.runner import HeightReading


@dataclass(frozen=True)
class HeightSummary:
    count: int
    minimum: float
    maximum: float
    mean: float
    final: float

    def describe(self) -> str:
        if self.count == 0:
            return "no heights decoded"
        return (
            f"{self.count} heights, min={self.minimum:.1f} max={self.maximum:.1f} "
            f"mean={self.mean:.2f} final={self.final:.1f}"
        )


def summarize(readings: Sequence[HeightReading]) -> HeightSummary:
    if not readings:
        nan = float("nan")
        return HeightSummary(count=0, minimum=nan, maximum=nan, mean=nan, final=nan)
    heights = np.array([reading.height for reading in readings], dtype=float)
    return HeightSummary(
        count=int(heights.size),
        minimum=float(np.min(heights)),
        maximum=float(np.max(heights)),
        mean=float(np.mean(heights)),
        final=float(heights[-1]),
    )
