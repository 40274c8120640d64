"""Per-chunk texture recipes and surface tuning.

The tables below are hand-tuned content data keyed by node type (and
variant).  Per-chunk jitter uses :func:`utils.hashing.sample01` with the salts
listed under *Salts*, so a chunk's surface depends only on
``(seed, node_id, variant)`` and the requested size.
"""

from __future__ import annotations

from typing import Dict, NamedTuple, Tuple

import structlog

from game.procedural.chunk_tag import LevelChunkTag, LevelNodeType
from game.procedural.texture_builder import (
    MAX_TEXTURE_DIMENSION,
    ProceduralTextureKind,
    ProceduralTextureRecipe,
    ProceduralTextureSurface,
    generate_surface_maps,
)
from utils.hashing import U32_MASK, combine_seed, sample01

log = structlog.get_logger(__name__)

DEFAULT_SURFACE_SIZE = 128

# --- Salts ---
SALT_OCTAVE_BONUS = 101
SALT_FREQUENCY = 103
SALT_WARP_STRENGTH = 105
SALT_WARP_FREQUENCY = 107
SALT_PALETTE = 109

# --- Recipe seed mixing ---
RECIPE_NODE_MUL = 0x9E3779B9
RECIPE_VARIANT_MUL = 0x85EBCA6B
RECIPE_TYPE_MUL = 0xC2B2AE35

Rgb = Tuple[float, float, float]


class DerivedMapSettings(NamedTuple):
    normal_strength: float
    roughness_contrast: float
    ao_radius: int
    ao_strength: float


class PaletteSpec(NamedTuple):
    """Dark/light ramp ends plus per-channel jitter slopes."""

    dark: Rgb
    dark_jitter: Rgb
    light: Rgb
    light_jitter: Rgb


_K = ProceduralTextureKind
TEXTURE_KINDS: Dict[LevelNodeType, Tuple[ProceduralTextureKind, ...]] = {
    LevelNodeType.ROOM: (_K.BRICK, _K.PERLIN, _K.WORLEY, _K.SIMPLEX),
    LevelNodeType.CORRIDOR: (_K.STRIPES, _K.GRID, _K.SIMPLEX, _K.PERLIN),
    LevelNodeType.JUNCTION: (_K.GRID, _K.WORLEY, _K.PERLIN, _K.BRICK),
    LevelNodeType.DEAD_END: (_K.WORLEY, _K.PERLIN, _K.GRID, _K.SIMPLEX),
    LevelNodeType.SHAFT: (_K.STRIPES, _K.WORLEY, _K.GRID, _K.PERLIN),
}

BASE_OCTAVES: Dict[LevelNodeType, int] = {
    LevelNodeType.ROOM: 3,
    LevelNodeType.CORRIDOR: 4,
    LevelNodeType.JUNCTION: 4,
    LevelNodeType.DEAD_END: 5,
    LevelNodeType.SHAFT: 5,
}
OCTAVE_BONUS_ROLL = 0.7
OCTAVE_RANGE = (2, 6)

BASE_FREQUENCY: Dict[LevelNodeType, float] = {
    LevelNodeType.ROOM: 3.2,
    LevelNodeType.CORRIDOR: 5.8,
    LevelNodeType.JUNCTION: 4.6,
    LevelNodeType.DEAD_END: 6.2,
    LevelNodeType.SHAFT: 7.0,
}
VARIANT_FREQUENCY_BIAS = (0.85, 1.00, 1.15, 1.30)

BASE_WARP_STRENGTH: Dict[LevelNodeType, float] = {
    LevelNodeType.ROOM: 0.012,
    LevelNodeType.CORRIDOR: 0.020,
    LevelNodeType.JUNCTION: 0.018,
    LevelNodeType.DEAD_END: 0.026,
    LevelNodeType.SHAFT: 0.028,
}
MAX_WARP_STRENGTH = 0.085
BASE_WARP_FREQUENCY: Dict[LevelNodeType, float] = {
    LevelNodeType.ROOM: 8.0,
    LevelNodeType.CORRIDOR: 10.0,
    LevelNodeType.JUNCTION: 9.0,
    LevelNodeType.DEAD_END: 11.0,
    LevelNodeType.SHAFT: 12.0,
}
DISABLED_WARP = (0.0, 8.0)

DERIVED_MAP_SETTINGS: Dict[LevelNodeType, DerivedMapSettings] = {
    LevelNodeType.ROOM: DerivedMapSettings(1.1, 1.8, 2, 0.8),
    LevelNodeType.CORRIDOR: DerivedMapSettings(1.3, 2.4, 2, 1.0),
    LevelNodeType.JUNCTION: DerivedMapSettings(1.2, 2.0, 2, 0.9),
    LevelNodeType.DEAD_END: DerivedMapSettings(1.5, 2.8, 3, 1.1),
    LevelNodeType.SHAFT: DerivedMapSettings(1.6, 3.0, 3, 1.15),
}

ROUGHNESS_BIAS: Dict[LevelNodeType, float] = {
    LevelNodeType.ROOM: 0.08,
    LevelNodeType.CORRIDOR: 0.14,
    LevelNodeType.JUNCTION: 0.11,
    LevelNodeType.DEAD_END: 0.20,
    LevelNodeType.SHAFT: 0.24,
}

PALETTES: Dict[LevelNodeType, PaletteSpec] = {
    LevelNodeType.ROOM: PaletteSpec(
        (0.28, 0.23, 0.19), (0.04, 0.03, 0.0), (0.70, 0.63, 0.54), (0.05, 0.04, 0.02)
    ),
    LevelNodeType.CORRIDOR: PaletteSpec(
        (0.18, 0.24, 0.29), (0.0, 0.02, 0.03), (0.52, 0.63, 0.68), (0.02, 0.03, 0.04)
    ),
    LevelNodeType.JUNCTION: PaletteSpec(
        (0.24, 0.24, 0.25), (0.03, 0.03, 0.03), (0.63, 0.62, 0.61), (0.04, 0.04, 0.04)
    ),
    LevelNodeType.DEAD_END: PaletteSpec(
        (0.25, 0.17, 0.14), (0.03, 0.0, 0.0), (0.65, 0.43, 0.35), (0.04, 0.02, 0.0)
    ),
    LevelNodeType.SHAFT: PaletteSpec(
        (0.14, 0.20, 0.17), (0.0, 0.03, 0.01), (0.45, 0.60, 0.53), (0.02, 0.04, 0.02)
    ),
}


# --- Selection ---


def recipe_seed(tag: LevelChunkTag, node_id: int, seed: int) -> int:
    return combine_seed(
        seed,
        node_id * RECIPE_NODE_MUL,
        tag.variant * RECIPE_VARIANT_MUL,
        int(tag.node_type) * RECIPE_TYPE_MUL,
    )


def select_octaves(tag: LevelChunkTag, seed: int, node_id: int) -> int:
    bonus = 1 if sample01(seed, node_id, tag.variant, SALT_OCTAVE_BONUS) >= OCTAVE_BONUS_ROLL else 0
    lo, hi = OCTAVE_RANGE
    return min(hi, max(lo, BASE_OCTAVES[tag.node_type] + bonus))


def select_frequency(tag: LevelChunkTag, seed: int, node_id: int) -> float:
    noise_scale = 0.85 + sample01(seed, node_id, tag.variant, SALT_FREQUENCY) * 0.4
    frequency = BASE_FREQUENCY[tag.node_type] * VARIANT_FREQUENCY_BIAS[tag.variant] * noise_scale
    return max(1.0, frequency)


def select_domain_warp(tag: LevelChunkTag, seed: int, node_id: int) -> Tuple[float, float]:
    """``(strength, frequency)`` for the chunk's domain warp."""
    jitter = sample01(seed, node_id, tag.variant, SALT_WARP_STRENGTH) * 0.012
    strength = BASE_WARP_STRENGTH[tag.node_type] + tag.variant * 0.005 + jitter
    strength = min(MAX_WARP_STRENGTH, max(0.0, strength))

    scale = 0.90 + sample01(seed, node_id, tag.variant, SALT_WARP_FREQUENCY) * 0.45
    frequency = max(1.0, BASE_WARP_FREQUENCY[tag.node_type] * scale)
    return strength, frequency


def select_palette(tag: LevelChunkTag, seed: int, node_id: int) -> Tuple[Rgb, Rgb]:
    jitter = sample01(seed, node_id, tag.variant, SALT_PALETTE)
    spec = PALETTES[tag.node_type]
    dark = tuple(c + j * jitter for c, j in zip(spec.dark, spec.dark_jitter))
    light = tuple(c + j * jitter for c, j in zip(spec.light, spec.light_jitter))
    return dark, light


def roughness_tuning(tag: LevelChunkTag) -> Tuple[float, float]:
    """``(scale, bias)`` applied to the slope-derived roughness."""
    return 0.82 + tag.variant * 0.08, ROUGHNESS_BIAS[tag.node_type]


def build_recipe(
    tag: LevelChunkTag,
    node_id: int,
    seed: int,
    width: int,
    height: int,
    enable_domain_warp: bool = True,
) -> ProceduralTextureRecipe:
    warp_strength, warp_frequency = (
        select_domain_warp(tag, seed, node_id) if enable_domain_warp else DISABLED_WARP
    )
    return ProceduralTextureRecipe(
        kind=TEXTURE_KINDS[tag.node_type][tag.variant],
        width=width,
        height=height,
        seed=recipe_seed(tag, node_id, seed),
        fbm_octaves=select_octaves(tag, seed, node_id),
        frequency=select_frequency(tag, seed, node_id),
        domain_warp_strength=warp_strength,
        domain_warp_frequency=warp_frequency,
    ).validate()


def build_chunk_surface(
    chunk,
    seed: int,
    width: int = DEFAULT_SURFACE_SIZE,
    height: int = DEFAULT_SURFACE_SIZE,
    enable_domain_warp: bool = True,
) -> ProceduralTextureSurface:
    """Textured surface for one level mesh chunk."""
    if not 0 < width <= MAX_TEXTURE_DIMENSION:
        raise ValueError(f"Surface width must be within [1, {MAX_TEXTURE_DIMENSION}], got {width}")
    if not 0 < height <= MAX_TEXTURE_DIMENSION:
        raise ValueError(f"Surface height must be within [1, {MAX_TEXTURE_DIMENSION}], got {height}")
    if not 0 <= seed <= U32_MASK:
        raise ValueError(f"seed must be an unsigned 32-bit integer, got {seed}")

    tag = LevelChunkTag.parse(chunk.mesh_tag)
    recipe = build_recipe(tag, chunk.node_id, seed, width, height, enable_domain_warp)
    settings = DERIVED_MAP_SETTINGS[tag.node_type]
    roughness_scale, roughness_bias = roughness_tuning(tag)

    surface = generate_surface_maps(
        recipe,
        normal_strength=settings.normal_strength,
        roughness_contrast=settings.roughness_contrast,
        ao_radius=settings.ao_radius,
        ao_strength=settings.ao_strength,
        palette=select_palette(tag, seed, chunk.node_id),
        roughness_scale=roughness_scale,
        roughness_bias=roughness_bias,
    )
    log.debug(
        "Chunk surface built",
        node_id=chunk.node_id,
        mesh_tag=chunk.mesh_tag,
        kind=recipe.kind.name,
        octaves=recipe.fbm_octaves,
        frequency=round(recipe.frequency, 3),
        warp=round(recipe.domain_warp_strength, 4),
    )
    return surface


__all__ = [
    "DEFAULT_SURFACE_SIZE",
    "DerivedMapSettings",
    "TEXTURE_KINDS",
    "DERIVED_MAP_SETTINGS",
    "recipe_seed",
    "select_octaves",
    "select_frequency",
    "select_domain_warp",
    "select_palette",
    "roughness_tuning",
    "build_recipe",
    "build_chunk_surface",
]
