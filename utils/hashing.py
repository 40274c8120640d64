"""Stateless seeded hash mixer.

Everything outside the level graph draws its randomness from here rather than
from an RNG stream, so any sub-result can be reproduced in isolation from a
``(seed, id, salt)`` tuple.  All arithmetic is unsigned 32-bit; Python ints are
masked after every multiply and the numpy variants run in ``uint64`` with the
same masking, so scalar and array results agree bit for bit.
"""

from __future__ import annotations

from typing import Union

import numpy as np

U32_MASK = 0xFFFFFFFF
_INV_2_24 = 1.0 / 16777216.0
_INV_24_MAX = 1.0 / 16777215.0

# Lattice mixer rounds
_MIX_A = 0x27D4EB2D
_MIX_B = 0x165667B1
_MIX_C = 0x2C1B3C6D

# Catalog sampler rounds
_NODE_MUL = 747796405
_VARIANT_MUL = 2891336453
_FINAL_A = 2246822519
_FINAL_B = 3266489917

ArrayLike = Union[int, np.ndarray]


def mix(x: int, y: int, seed: int) -> int:
    """Avalanche ``(x, y, seed)`` into a uint32."""
    h = x & U32_MASK
    h = ((h * _MIX_A) & U32_MASK) ^ (y & U32_MASK)
    h = ((h * _MIX_B) & U32_MASK) ^ (seed & U32_MASK)
    h ^= h >> 15
    h = (h * _MIX_C) & U32_MASK
    h ^= h >> 12
    return h


def mix01(x: int, y: int, seed: int) -> float:
    """Top 24 bits of :func:`mix` scaled to ``[0, 1)``."""
    return (mix(x, y, seed) >> 8) * _INV_2_24


def _as_u64(value: ArrayLike) -> np.ndarray:
    if isinstance(value, int):
        return np.asarray(value & U32_MASK, dtype=np.uint64)
    arr = np.asarray(value)
    if arr.dtype.kind == "u":
        arr = arr.astype(np.uint64)
    else:
        arr = arr.astype(np.int64).astype(np.uint64)
    return arr & np.uint64(U32_MASK)


def mix_array(x: ArrayLike, y: ArrayLike, seed: ArrayLike) -> np.ndarray:
    """Vectorized :func:`mix`; broadcasts its inputs and returns ``uint32``."""
    mask = np.uint64(U32_MASK)
    h = _as_u64(x)
    h = ((h * np.uint64(_MIX_A)) & mask) ^ _as_u64(y)
    h = ((h * np.uint64(_MIX_B)) & mask) ^ _as_u64(seed)
    h = h ^ (h >> np.uint64(15))
    h = (h * np.uint64(_MIX_C)) & mask
    h = h ^ (h >> np.uint64(12))
    return h.astype(np.uint32)


def mix01_array(x: ArrayLike, y: ArrayLike, seed: ArrayLike) -> np.ndarray:
    """Vectorized :func:`mix01` as ``float64``."""
    return (mix_array(x, y, seed) >> np.uint32(8)).astype(np.float64) * _INV_2_24


def lattice01_array(x: ArrayLike, y: ArrayLike, seed: ArrayLike) -> np.ndarray:
    """Lattice value in ``[0, 1]`` from the low 24 bits, as the noise kernels use it."""
    return (mix_array(x, y, seed) & np.uint32(0xFFFFFF)).astype(np.float64) * _INV_24_MAX


def sample01(seed: int, node_id: int, variant: int, salt: int) -> float:
    """Per-chunk decision roll in ``[0, 1]`` keyed by ``(seed, node_id, variant, salt)``."""
    v = (
        (seed & U32_MASK)
        ^ ((node_id * _NODE_MUL) & U32_MASK)
        ^ ((variant * _VARIANT_MUL) & U32_MASK)
        ^ (salt & U32_MASK)
    )
    v ^= v >> 16
    v = (v * _FINAL_A) & U32_MASK
    v ^= v >> 13
    v = (v * _FINAL_B) & U32_MASK
    v ^= v >> 16
    return (v & 0xFFFFFF) * _INV_24_MAX


def sample_range(
    seed: int, node_id: int, variant: int, salt: int, lo: float, hi: float
) -> float:
    if lo > hi:
        raise ValueError(f"sample_range requires lo <= hi, got {lo} > {hi}")
    return lo + (hi - lo) * sample01(seed, node_id, variant, salt)


def combine_seed(*parts: int) -> int:
    """Fold integers into one uint32 seed with xor (each part pre-masked)."""
    out = 0
    for part in parts:
        out ^= part & U32_MASK
    return out


__all__ = [
    "U32_MASK",
    "mix",
    "mix01",
    "mix_array",
    "mix01_array",
    "lattice01_array",
    "sample01",
    "sample_range",
    "combine_seed",
]
