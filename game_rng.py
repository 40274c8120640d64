"""Sequential GameRNG stream.

The level graph generator is the one stage of the pipeline that draws from a
stateful random stream; every other stage derives its randomness from
:mod:`utils.hashing`.  ``GameRNG`` wraps :func:`numpy.random.default_rng` so
that a given seed always reproduces the same sequence of draws regardless of
platform.
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np


class GameRNG:
    def __init__(self, seed: int) -> None:
        self.initial_seed = seed
        self.rng = np.random.default_rng(seed)

    # ------------------------------------------------------------------
    # basic random helpers
    # ------------------------------------------------------------------
    def get_int(self, a: int, b: int) -> int:
        if a > b:
            raise ValueError("a <= b")
        return int(self.rng.integers(a, b + 1))

    def get_float(self, a: float = 0.0, b: float = 1.0) -> float:
        if a > b:
            raise ValueError("a <= b")
        return a + (b - a) * float(self.rng.random())

    # ------------------------------------------------------------------
    # weighted helpers
    # ------------------------------------------------------------------
    def weighted_choice(self, items: Sequence[Any], weights: Sequence[float]) -> Any:
        if len(items) != len(weights):
            raise ValueError("items/weights length mismatch")
        if not items:
            raise ValueError("items empty")
        total = float(sum(weights))
        if total <= 0:
            raise ValueError("weight sum must be positive")

        cdf = np.cumsum(np.asarray(weights, dtype=float))
        cdf[-1] = total
        r = self.get_float(0.0, total)
        idx = int(np.searchsorted(cdf, r, side="right"))
        idx = min(idx, len(items) - 1)
        return items[idx]


__all__ = ["GameRNG"]
