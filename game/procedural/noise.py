"""Hash-driven 2D noise kernels.

Every sampler takes ``u``/``v`` arrays (any matching shape) and returns an
array of the same shape in ``[0, 1]``.  Lattice randomness comes from
:mod:`utils.hashing`, so a kernel's output depends only on its inputs.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from utils.hashing import U32_MASK, lattice01_array, mix_array

# --- Seed perturbations ---
FBM_OCTAVE_MUL = 0x45D9F3B
SIMPLEX_SEED_XOR = 0x9E3779B9
WORLEY_Y_SEED_XOR = 0xB5297A4D
WARP_OCTAVE_MUL = 0x9E3779B9
WARP_X_SEED_XOR = 0xA341316C
WARP_Y_SEED_XOR = 0x85EBCA6B

# Skew factors for 2D simplex
F2 = 0.5 * (3.0 ** 0.5 - 1.0)
G2 = (3.0 - 3.0 ** 0.5) / 6.0

# 2D projections of the 12 simplex edge gradients
GRAD2 = np.array(
    [
        (1, 1), (-1, 1), (1, -1), (-1, -1),
        (1, 0), (-1, 0), (1, 0), (-1, 0),
        (0, 1), (0, -1), (0, 1), (0, -1),
    ],
    dtype=np.float64,
)

NoiseSampler = Callable[..., np.ndarray]


def uv_grid(width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """Per-pixel ``(u, v)`` with ``u = x / width`` and ``v = y / height``."""
    u = np.arange(width, dtype=np.float64) / float(width)
    v = np.arange(height, dtype=np.float64) / float(height)
    return np.meshgrid(u, v)


def smoothstep(t: np.ndarray) -> np.ndarray:
    return t * t * (3.0 - 2.0 * t)


def frac(x: np.ndarray) -> np.ndarray:
    return x - np.floor(x)


def _octave_seed(seed: int, octave: int, multiplier: int) -> int:
    return (seed ^ ((octave * multiplier) & U32_MASK)) & U32_MASK


# --- Kernels ---


def value_noise(x: np.ndarray, y: np.ndarray, seed: int) -> np.ndarray:
    """Bilinear smoothstep interpolation of hashed lattice values."""
    fx = np.floor(x)
    fy = np.floor(y)
    x0 = fx.astype(np.int64)
    y0 = fy.astype(np.int64)
    tx = smoothstep(x - fx)
    ty = smoothstep(y - fy)

    n00 = lattice01_array(x0, y0, seed)
    n10 = lattice01_array(x0 + 1, y0, seed)
    n01 = lattice01_array(x0, y0 + 1, seed)
    n11 = lattice01_array(x0 + 1, y0 + 1, seed)

    ix0 = n00 + (n10 - n00) * tx
    ix1 = n01 + (n11 - n01) * tx
    return ix0 + (ix1 - ix0) * ty


def simplex_noise(x: np.ndarray, y: np.ndarray, seed: int) -> np.ndarray:
    """2D simplex noise with hashed corner gradients, remapped to ``[0, 1]``."""
    s = (x + y) * F2
    i = np.floor(x + s).astype(np.int64)
    j = np.floor(y + s).astype(np.int64)
    t = (i + j) * G2
    x0 = x - (i - t)
    y0 = y - (j - t)

    # Lower triangle steps (1, 0) first, upper triangle (0, 1).
    i1 = (x0 > y0).astype(np.int64)
    j1 = 1 - i1
    x1 = x0 - i1 + G2
    y1 = y0 - j1 + G2
    x2 = x0 - 1.0 + 2.0 * G2
    y2 = y0 - 1.0 + 2.0 * G2

    total = np.zeros_like(x0)
    for ci, cj, cx, cy in ((i, j, x0, y0), (i + i1, j + j1, x1, y1), (i + 1, j + 1, x2, y2)):
        grad = GRAD2[mix_array(ci, cj, seed) % np.uint32(12)]
        falloff = 0.5 - cx * cx - cy * cy
        falloff = np.where(falloff > 0.0, falloff, 0.0)
        falloff = falloff * falloff
        total += falloff * falloff * (grad[..., 0] * cx + grad[..., 1] * cy)

    return np.clip(70.0 * total * 0.5 + 0.5, 0.0, 1.0)


def fbm(
    u: np.ndarray,
    v: np.ndarray,
    seed: int,
    octaves: int,
    frequency: float,
    kernel: NoiseSampler = value_noise,
) -> np.ndarray:
    """Amplitude-halving, frequency-doubling sum normalized by total amplitude."""
    amplitude = 1.0
    freq = float(frequency)
    total = np.zeros(np.shape(u), dtype=np.float64)
    amplitude_sum = 0.0
    for octave in range(octaves):
        octave_seed = _octave_seed(seed, octave, FBM_OCTAVE_MUL)
        total += kernel(u * freq, v * freq, octave_seed) * amplitude
        amplitude_sum += amplitude
        amplitude *= 0.5
        freq *= 2.0
    return np.clip(total / max(amplitude_sum, np.finfo(np.float32).eps), 0.0, 1.0)


def worley(u: np.ndarray, v: np.ndarray, seed: int, frequency: float) -> np.ndarray:
    """Inverted distance to the nearest feature point over the 3x3 cell block."""
    x = u * frequency
    y = v * frequency
    cell_x = np.floor(x).astype(np.int64)
    cell_y = np.floor(y).astype(np.int64)
    seed_y = seed ^ WORLEY_Y_SEED_XOR

    nearest = np.full(np.shape(x), np.inf)
    for oy in (-1, 0, 1):
        for ox in (-1, 0, 1):
            px = cell_x + ox
            py = cell_y + oy
            fx = px + lattice01_array(px, py, seed)
            fy = py + lattice01_array(py, px, seed_y)
            dist = np.sqrt((fx - x) ** 2 + (fy - y) ** 2)
            nearest = np.minimum(nearest, dist)
    return 1.0 - np.clip(nearest, 0.0, 1.0)


def grid(u: np.ndarray, v: np.ndarray) -> np.ndarray:
    gx = np.abs(np.mod(u * 10.0, 1.0) - 0.5)
    gy = np.abs(np.mod(v * 10.0, 1.0) - 0.5)
    return np.where((gx < 0.05) | (gy < 0.05), 1.0, 0.1)


def brick(u: np.ndarray, v: np.ndarray) -> np.ndarray:
    row = np.floor(v * 8.0).astype(np.int64)
    offset = np.where((row & 1) == 0, 0.0, 0.5)
    cell_u = np.mod(u * 8.0 + offset, 1.0)
    cell_v = np.mod(v * 8.0, 1.0)
    mortar = (cell_u < 0.08) | (cell_v < 0.08)
    return np.where(mortar, 0.05, 0.7)


def stripes(u: np.ndarray) -> np.ndarray:
    band = np.floor(u * 16.0).astype(np.int64)
    return np.where((band & 1) == 0, 0.2, 0.8)


# --- Domain warp ---


def domain_warp(
    u: np.ndarray,
    v: np.ndarray,
    seed: int,
    strength: float,
    frequency: float,
    octaves: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Offset ``(u, v)`` by two independent value-noise FBM fields and wrap."""
    if strength <= 0.0:
        return u, v

    warp_x = np.zeros(np.shape(u), dtype=np.float64)
    warp_y = np.zeros(np.shape(v), dtype=np.float64)
    amplitude = 1.0
    freq = float(frequency)
    amplitude_sum = 0.0
    for octave in range(octaves):
        octave_seed = _octave_seed(seed, octave, WARP_OCTAVE_MUL)
        sample_x = value_noise((u + 13.1) * freq, (v + 5.7) * freq, octave_seed ^ WARP_X_SEED_XOR)
        sample_y = value_noise((u - 7.3) * freq, (v + 11.9) * freq, octave_seed ^ WARP_Y_SEED_XOR)
        warp_x += (sample_x * 2.0 - 1.0) * amplitude
        warp_y += (sample_y * 2.0 - 1.0) * amplitude
        amplitude_sum += amplitude
        amplitude *= 0.5
        freq *= 2.0

    norm = max(amplitude_sum, np.finfo(np.float32).eps)
    return frac(u + warp_x / norm * strength), frac(v + warp_y / norm * strength)


__all__ = [
    "uv_grid",
    "smoothstep",
    "frac",
    "value_noise",
    "simplex_noise",
    "fbm",
    "worley",
    "grid",
    "brick",
    "stripes",
    "domain_warp",
]
