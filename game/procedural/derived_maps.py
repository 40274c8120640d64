"""Maps derived from a height field, and mip pyramids for RGBA8 maps.

Height fields are 2D ``float`` arrays indexed ``[y, x]``.  RGBA8 maps are
``uint8`` arrays shaped ``(height, width, 4)``.  Neighbour lookups clamp at
the borders.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

import numba
import numpy as np
import structlog

from game.procedural.errors import DataFormatError
from utils.hashing import mix01_array

log = structlog.get_logger(__name__)

DEFAULT_BASE_ROUGHNESS = 0.15
METALLIC_THRESHOLD = 0.78
ALBEDO_DETAIL_WEIGHT = 0.18
AO_LUMINANCE_FLOOR = 0.55
DETAIL_NOISE_SALT = 0x68E31DA4


@dataclass(frozen=True)
class TextureMipLevel:
    width: int
    height: int
    rgba8: np.ndarray

    def validate(self) -> "TextureMipLevel":
        if self.width <= 0 or self.height <= 0:
            raise DataFormatError(f"Mip dimensions must be positive, got {self.width}x{self.height}")
        if self.rgba8.dtype != np.uint8 or self.rgba8.shape != (self.height, self.width, 4):
            raise DataFormatError(
                f"Mip payload shape {self.rgba8.shape} does not match {self.width}x{self.height} RGBA8"
            )
        return self

    @property
    def row_pitch(self) -> int:
        return self.width * 4


# --- Helpers ---


def validate_height(height: np.ndarray) -> np.ndarray:
    arr = np.asarray(height)
    if arr.ndim != 2 or arr.shape[0] <= 0 or arr.shape[1] <= 0:
        raise DataFormatError(f"Height field must be a non-empty 2D array, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise DataFormatError("Height field contains non-finite samples")
    return arr.astype(np.float64, copy=False)


def validate_rgba8(rgba8: np.ndarray) -> np.ndarray:
    arr = np.asarray(rgba8)
    if arr.dtype != np.uint8 or arr.ndim != 3 or arr.shape[2] != 4 or arr.size == 0:
        raise DataFormatError(f"Expected a non-empty (h, w, 4) uint8 map, got {arr.dtype} {arr.shape}")
    return arr


def to_unorm8(values: np.ndarray) -> np.ndarray:
    """Round-then-clamp float samples in ``[0, 1]`` to bytes."""
    return np.clip(np.rint(np.asarray(values, dtype=np.float64) * 255.0), 0, 255).astype(np.uint8)


def to_grayscale_rgba(values: np.ndarray) -> np.ndarray:
    gray = to_unorm8(values)
    rgba = np.empty(gray.shape + (4,), dtype=np.uint8)
    rgba[..., 0] = gray
    rgba[..., 1] = gray
    rgba[..., 2] = gray
    rgba[..., 3] = 255
    return rgba


def central_differences(height: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """``(dx, dy)`` as next-minus-previous with edge clamping."""
    padded = np.pad(height, 1, mode="edge")
    dx = padded[1:-1, 2:] - padded[1:-1, :-2]
    dy = padded[2:, 1:-1] - padded[:-2, 1:-1]
    return dx, dy


# --- Normal / roughness / metallic ---


def height_to_normal_map(height: np.ndarray, strength: float = 1.0) -> np.ndarray:
    """Tangent-space normals (Z up) encoded as ``(n * 0.5 + 0.5) * 255``."""
    if strength <= 0.0:
        raise ValueError(f"Normal strength must be greater than zero, got {strength}")
    h = validate_height(height)
    dx, dy = central_differences(h)

    normal = np.stack((-dx * strength, -dy * strength, np.ones_like(h)), axis=-1)
    normal /= np.linalg.norm(normal, axis=-1, keepdims=True)

    rgba = np.empty(h.shape + (4,), dtype=np.uint8)
    rgba[..., :3] = to_unorm8(normal * 0.5 + 0.5)
    rgba[..., 3] = 255
    return rgba


def height_to_roughness(
    height: np.ndarray,
    contrast: float = 2.0,
    base_roughness: float = DEFAULT_BASE_ROUGHNESS,
) -> np.ndarray:
    if contrast <= 0.0:
        raise ValueError(f"Roughness contrast must be greater than zero, got {contrast}")
    if not 0.0 <= base_roughness <= 1.0:
        raise ValueError(f"Base roughness must be within [0, 1], got {base_roughness}")
    h = validate_height(height)
    dx, dy = central_differences(h)
    slope = np.sqrt(dx * dx + dy * dy)
    return np.clip(base_roughness + slope * contrast, 0.0, 1.0)


def height_to_metallic(
    height: np.ndarray,
    threshold: float = METALLIC_THRESHOLD,
    slope_falloff: float = 6.0,
) -> np.ndarray:
    """Flat plateaus above ``threshold`` read as bare metal."""
    if not 0.0 <= threshold < 1.0:
        raise ValueError(f"Metallic threshold must be within [0, 1), got {threshold}")
    h = validate_height(height)
    dx, dy = central_differences(h)
    plateau = np.clip((h - threshold) / (1.0 - threshold), 0.0, 1.0)
    flatness = 1.0 - np.clip(np.sqrt(dx * dx + dy * dy) * slope_falloff, 0.0, 1.0)
    return plateau * flatness


# --- Ambient occlusion ---


@numba.njit(cache=True)
def _occlusion_kernel(height, radius, strength, out):
    rows, cols = height.shape
    for y in range(rows):
        for x in range(cols):
            center = height[y, x]
            occlusion = 0.0
            weight_sum = 0.0
            for oy in range(-radius, radius + 1):
                sy = min(max(y + oy, 0), rows - 1)
                for ox in range(-radius, radius + 1):
                    if ox == 0 and oy == 0:
                        continue
                    sx = min(max(x + ox, 0), cols - 1)
                    delta = height[sy, sx] - center
                    if delta < 0.0:
                        delta = 0.0
                    weight = 1.0 / math.sqrt(ox * ox + oy * oy)
                    occlusion += delta * weight
                    weight_sum += weight
            value = 0.0
            if weight_sum > 0.0:
                value = occlusion / weight_sum * strength
            out[y, x] = 1.0 - min(max(value, 0.0), 1.0)


def height_to_ambient_occlusion(
    height: np.ndarray, radius: int = 2, strength: float = 1.0
) -> np.ndarray:
    """Inverse-distance weighted positive deltas over a square kernel, inverted."""
    if radius <= 0:
        raise ValueError(f"AO radius must be greater than zero, got {radius}")
    if strength <= 0.0:
        raise ValueError(f"AO strength must be greater than zero, got {strength}")
    h = np.ascontiguousarray(validate_height(height), dtype=np.float64)
    out = np.empty_like(h)
    _occlusion_kernel(h, int(radius), float(strength), out)
    return out


# --- Albedo ---


def albedo_from_height(
    height: np.ndarray,
    ambient_occlusion: np.ndarray,
    dark: Sequence[float],
    light: Sequence[float],
    seed: int,
    detail_weight: float = ALBEDO_DETAIL_WEIGHT,
) -> np.ndarray:
    """Palette ramp over height blended with per-pixel detail noise, shaded by AO."""
    h = validate_height(height)
    ao = np.asarray(ambient_occlusion, dtype=np.float64)
    if ao.shape != h.shape:
        raise DataFormatError(f"AO shape {ao.shape} does not match height shape {h.shape}")
    if not 0.0 <= detail_weight <= 1.0:
        raise ValueError(f"Detail weight must be within [0, 1], got {detail_weight}")

    ys, xs = np.indices(h.shape)
    detail = mix01_array(xs, ys, seed ^ DETAIL_NOISE_SALT)
    t = np.clip(h * (1.0 - detail_weight) + detail * detail_weight, 0.0, 1.0)[..., None]

    dark_rgb = np.asarray(dark, dtype=np.float64)
    light_rgb = np.asarray(light, dtype=np.float64)
    color = dark_rgb + (light_rgb - dark_rgb) * t
    luminance = (AO_LUMINANCE_FLOOR + (1.0 - AO_LUMINANCE_FLOOR) * ao)[..., None]

    rgba = np.empty(h.shape + (4,), dtype=np.uint8)
    rgba[..., :3] = to_unorm8(np.clip(color * luminance, 0.0, 1.0))
    rgba[..., 3] = 255
    return rgba


# --- Mip chains ---


def _next_dim(size: int) -> int:
    return max(1, size // 2)


def _box_sources(size: int, next_size: int) -> tuple[np.ndarray, np.ndarray]:
    first = np.minimum(np.arange(next_size) * 2, size - 1)
    second = np.minimum(first + 1, size - 1)
    return first, second


def _downsample_quads(level: np.ndarray) -> List[np.ndarray]:
    rows, cols = level.shape[:2]
    y0, y1 = _box_sources(rows, _next_dim(rows))
    x0, x1 = _box_sources(cols, _next_dim(cols))
    return [
        level[y0][:, x0],
        level[y0][:, x1],
        level[y1][:, x0],
        level[y1][:, x1],
    ]


def generate_mip_chain_rgba8(base: np.ndarray) -> List[TextureMipLevel]:
    """2x2 box-filter chain from ``base`` down to 1x1 (integer average, floored)."""
    current = validate_rgba8(base).copy()
    chain = [TextureMipLevel(current.shape[1], current.shape[0], current).validate()]
    while current.shape[0] > 1 or current.shape[1] > 1:
        quads = _downsample_quads(current.astype(np.uint16))
        current = ((quads[0] + quads[1] + quads[2] + quads[3]) // 4).astype(np.uint8)
        chain.append(TextureMipLevel(current.shape[1], current.shape[0], current).validate())
    return chain


def decode_normals(rgba8: np.ndarray) -> np.ndarray:
    return rgba8[..., :3].astype(np.float64) / 255.0 * 2.0 - 1.0


def encode_normals(normals: np.ndarray, alpha: np.ndarray) -> np.ndarray:
    rgba = np.empty(normals.shape[:-1] + (4,), dtype=np.uint8)
    rgba[..., :3] = to_unorm8(normals * 0.5 + 0.5)
    rgba[..., 3] = alpha
    return rgba


def generate_normal_mip_chain_rgba8(base: np.ndarray) -> List[TextureMipLevel]:
    """Mip chain for encoded normals: decode, average, renormalize, re-encode.

    Each level is built from the decoded vectors of the previous level, so
    quantization error does not compound across levels.
    """
    current = validate_rgba8(base).copy()
    chain = [TextureMipLevel(current.shape[1], current.shape[0], current).validate()]
    vectors = decode_normals(current)
    alpha = current[..., 3].astype(np.uint16)
    while vectors.shape[0] > 1 or vectors.shape[1] > 1:
        quads = _downsample_quads(vectors)
        summed = quads[0] + quads[1] + quads[2] + quads[3]
        length = np.linalg.norm(summed, axis=-1, keepdims=True)
        degenerate = (length[..., 0] < 1e-8) | ~np.isfinite(length[..., 0])
        vectors = np.where(length > 1e-8, summed / np.maximum(length, 1e-8), 0.0)
        vectors[degenerate] = (0.0, 0.0, 1.0)

        alpha_quads = _downsample_quads(alpha)
        alpha = (alpha_quads[0] + alpha_quads[1] + alpha_quads[2] + alpha_quads[3]) // 4

        level = encode_normals(vectors, alpha.astype(np.uint8))
        chain.append(TextureMipLevel(level.shape[1], level.shape[0], level).validate())
    return chain


def validate_mip_chain(chain: Sequence[TextureMipLevel], width: int, height: int) -> None:
    """Level 0 matches ``width x height``; each level halves (floor, min 1) to 1x1."""
    if not chain:
        raise DataFormatError("Mip chain cannot be empty")
    expected_w, expected_h = width, height
    for index, level in enumerate(chain):
        level.validate()
        if index > 0 and (chain[index - 1].width, chain[index - 1].height) == (1, 1):
            raise DataFormatError(f"Mip chain continues past 1x1 at level {index}")
        if (level.width, level.height) != (expected_w, expected_h):
            raise DataFormatError(
                f"Mip {index} is {level.width}x{level.height}, expected {expected_w}x{expected_h}"
            )
        expected_w, expected_h = _next_dim(expected_w), _next_dim(expected_h)
    last = chain[-1]
    if (last.width, last.height) != (1, 1):
        raise DataFormatError(f"Mip chain ends at {last.width}x{last.height}, expected 1x1")


__all__ = [
    "TextureMipLevel",
    "to_unorm8",
    "to_grayscale_rgba",
    "central_differences",
    "height_to_normal_map",
    "height_to_roughness",
    "height_to_metallic",
    "height_to_ambient_occlusion",
    "albedo_from_height",
    "generate_mip_chain_rgba8",
    "generate_normal_mip_chain_rgba8",
    "decode_normals",
    "validate_mip_chain",
]
