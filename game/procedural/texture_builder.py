"""Procedural texture recipes and surface synthesis.

A :class:`ProceduralTextureRecipe` fully determines a height field; the
surface maps (albedo, normal, roughness, metallic, AO) and the albedo mip
chain are pure functions of that field.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from game.procedural import derived_maps, noise
from game.procedural.derived_maps import TextureMipLevel
from game.procedural.errors import DataFormatError
from utils.hashing import U32_MASK

log = structlog.get_logger(__name__)

MAX_TEXTURE_DIMENSION = 4096
DEFAULT_PALETTE: Tuple[Tuple[float, float, float], Tuple[float, float, float]] = (
    (0.0, 0.0, 0.0),
    (1.0, 1.0, 1.0),
)


class ProceduralTextureKind(IntEnum):
    PERLIN = 0
    SIMPLEX = 1
    WORLEY = 2
    GRID = 3
    BRICK = 4
    STRIPES = 5


@dataclass(frozen=True)
class ProceduralTextureRecipe:
    kind: ProceduralTextureKind
    width: int
    height: int
    seed: int
    fbm_octaves: int = 4
    frequency: float = 4.0
    domain_warp_strength: float = 0.0
    domain_warp_frequency: float = 8.0
    domain_warp_octaves: int = 2

    def validate(self) -> "ProceduralTextureRecipe":
        try:
            ProceduralTextureKind(self.kind)
        except ValueError as e:
            raise DataFormatError(f"Unsupported procedural texture kind: {self.kind!r}") from e
        if not 0 < self.width <= MAX_TEXTURE_DIMENSION or not 0 < self.height <= MAX_TEXTURE_DIMENSION:
            raise ValueError(
                f"Texture dimensions must be within [1, {MAX_TEXTURE_DIMENSION}], "
                f"got {self.width}x{self.height}"
            )
        if not 0 <= self.seed <= U32_MASK:
            raise ValueError(f"Texture seed must be an unsigned 32-bit integer, got {self.seed}")
        if self.fbm_octaves <= 0:
            raise ValueError(f"FBM octaves must be greater than zero, got {self.fbm_octaves}")
        if not self.frequency > 0.0:
            raise ValueError(f"Frequency must be greater than zero, got {self.frequency}")
        if self.domain_warp_strength < 0.0 or not np.isfinite(self.domain_warp_strength):
            raise ValueError(f"Domain warp strength must be finite and >= 0, got {self.domain_warp_strength}")
        if self.domain_warp_strength > 0.0:
            if not self.domain_warp_frequency > 0.0:
                raise ValueError("Domain warp frequency must be greater than zero")
            if self.domain_warp_octaves <= 0:
                raise ValueError("Domain warp octaves must be greater than zero")
        return self


@dataclass(frozen=True)
class ProceduralTextureSurface:
    width: int
    height: int
    height_map: np.ndarray
    albedo: np.ndarray
    normal: np.ndarray
    roughness: np.ndarray
    metallic: np.ndarray
    ambient_occlusion: np.ndarray
    mip_chain: Tuple[TextureMipLevel, ...]

    def validate(self) -> "ProceduralTextureSurface":
        if self.width <= 0 or self.height <= 0:
            raise DataFormatError(f"Surface dimensions must be positive, got {self.width}x{self.height}")
        if self.height_map.shape != (self.height, self.width):
            raise DataFormatError(
                f"Height map shape {self.height_map.shape} does not match {self.width}x{self.height}"
            )
        if not np.all(np.isfinite(self.height_map)):
            raise DataFormatError("Height map contains non-finite samples")
        for name in ("albedo", "normal", "roughness", "metallic", "ambient_occlusion"):
            payload = getattr(self, name)
            if payload.dtype != np.uint8 or payload.shape != (self.height, self.width, 4):
                raise DataFormatError(
                    f"{name} map shape {payload.shape} does not match {self.width}x{self.height} RGBA8"
                )
        derived_maps.validate_mip_chain(self.mip_chain, self.width, self.height)
        if not np.array_equal(self.mip_chain[0].rgba8, self.albedo):
            raise DataFormatError("Mip level 0 must equal the albedo map")
        return self


# --- Height generation ---


def _perlin(u, v, recipe: ProceduralTextureRecipe) -> np.ndarray:
    return noise.fbm(u, v, recipe.seed, recipe.fbm_octaves, recipe.frequency)


def _simplex(u, v, recipe: ProceduralTextureRecipe) -> np.ndarray:
    seed = (recipe.seed ^ noise.SIMPLEX_SEED_XOR) & U32_MASK
    return noise.fbm(
        u, v, seed, recipe.fbm_octaves, recipe.frequency, kernel=noise.simplex_noise
    )


def _worley(u, v, recipe: ProceduralTextureRecipe) -> np.ndarray:
    return noise.worley(u, v, recipe.seed, recipe.frequency)


def _grid(u, v, recipe: ProceduralTextureRecipe) -> np.ndarray:
    return noise.grid(u, v)


def _brick(u, v, recipe: ProceduralTextureRecipe) -> np.ndarray:
    return noise.brick(u, v)


def _stripes(u, v, recipe: ProceduralTextureRecipe) -> np.ndarray:
    return noise.stripes(u)


HEIGHT_SAMPLERS: Dict[ProceduralTextureKind, Callable[..., np.ndarray]] = {
    ProceduralTextureKind.PERLIN: _perlin,
    ProceduralTextureKind.SIMPLEX: _simplex,
    ProceduralTextureKind.WORLEY: _worley,
    ProceduralTextureKind.GRID: _grid,
    ProceduralTextureKind.BRICK: _brick,
    ProceduralTextureKind.STRIPES: _stripes,
}


def generate_height(recipe: ProceduralTextureRecipe) -> np.ndarray:
    """Height field in ``[0, 1]`` as ``float32[height, width]``."""
    recipe.validate()
    sampler = HEIGHT_SAMPLERS.get(ProceduralTextureKind(recipe.kind))
    if sampler is None:
        raise DataFormatError(f"Unsupported procedural texture kind: {recipe.kind!r}")

    u, v = noise.uv_grid(recipe.width, recipe.height)
    u, v = noise.domain_warp(
        u,
        v,
        recipe.seed,
        recipe.domain_warp_strength,
        recipe.domain_warp_frequency,
        recipe.domain_warp_octaves,
    )
    height = np.clip(sampler(u, v, recipe), 0.0, 1.0)
    return height.astype(np.float32)


def generate_rgba8(recipe: ProceduralTextureRecipe) -> np.ndarray:
    """Grayscale RGBA8 preview of the recipe's height field."""
    return derived_maps.to_grayscale_rgba(generate_height(recipe))


def generate_surface_maps(
    recipe: ProceduralTextureRecipe,
    normal_strength: float = 1.0,
    roughness_contrast: float = 2.0,
    ao_radius: int = 2,
    ao_strength: float = 1.0,
    palette: Optional[Sequence[Sequence[float]]] = None,
    roughness_scale: float = 1.0,
    roughness_bias: float = 0.0,
) -> ProceduralTextureSurface:
    """Build every derived map plus the albedo mip chain for one recipe.

    ``palette`` is a ``(dark_rgb, light_rgb)`` pair for the albedo ramp.  The
    roughness map is ``clamp(roughness * roughness_scale + roughness_bias)``.
    """
    height = generate_height(recipe)
    dark, light = palette if palette is not None else DEFAULT_PALETTE

    ao = derived_maps.height_to_ambient_occlusion(height, ao_radius, ao_strength)
    roughness = derived_maps.height_to_roughness(height, roughness_contrast)
    roughness = np.clip(roughness * roughness_scale + roughness_bias, 0.0, 1.0)
    metallic = derived_maps.height_to_metallic(height)

    albedo = derived_maps.albedo_from_height(height, ao, dark, light, recipe.seed)
    normal = derived_maps.height_to_normal_map(height, normal_strength)
    mip_chain: List[TextureMipLevel] = derived_maps.generate_mip_chain_rgba8(albedo)

    log.debug(
        "Surface maps generated",
        kind=ProceduralTextureKind(recipe.kind).name,
        width=recipe.width,
        height=recipe.height,
        mips=len(mip_chain),
    )
    return ProceduralTextureSurface(
        width=recipe.width,
        height=recipe.height,
        height_map=height,
        albedo=albedo,
        normal=normal,
        roughness=derived_maps.to_grayscale_rgba(roughness),
        metallic=derived_maps.to_grayscale_rgba(metallic),
        ambient_occlusion=derived_maps.to_grayscale_rgba(ao),
        mip_chain=tuple(mip_chain),
    ).validate()


__all__ = [
    "ProceduralTextureKind",
    "ProceduralTextureRecipe",
    "ProceduralTextureSurface",
    "TextureMipLevel",
    "HEIGHT_SAMPLERS",
    "generate_height",
    "generate_rgba8",
    "generate_surface_maps",
]
