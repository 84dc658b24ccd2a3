"""Seeded uniform integer source used for ID probes and index picks."""

from __future__ import annotations

import random


class RandomSource:
    """Thin wrapper over ``random.Random`` with inclusive bounds."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def randint(self, low: int, high: int) -> int:
        if high < low:
            raise ValueError(f"empty range low={low} high={high}")
        return self._rng.randint(low, high)
