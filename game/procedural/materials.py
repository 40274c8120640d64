"""Material templates and the texture bundle a chunk material ships with."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterable, Mapping, Sequence, Tuple

import numpy as np
import structlog

from game.procedural.derived_maps import (
    TextureMipLevel,
    generate_mip_chain_rgba8,
    generate_normal_mip_chain_rgba8,
    validate_mip_chain,
)
from game.procedural.errors import DataFormatError
from game.procedural.texture_builder import ProceduralTextureSurface

log = structlog.get_logger(__name__)

Vec4 = Tuple[float, float, float, float]
ONE: Vec4 = (1.0, 1.0, 1.0, 1.0)

# Texture keys whose payload is data rather than color.
LINEAR_KEY_MARKERS = ("normal", "roughness", "ao")


class MaterialTemplateId(IntEnum):
    LIT_PBR = 0
    UNLIT = 1
    DECAL = 2
    UI = 3


class TextureColorSpace(IntEnum):
    LINEAR = 0
    SRGB = 1


def color_space_for_key(key: str) -> TextureColorSpace:
    """Linear for data maps, sRGB otherwise; judged on the segment after the last dot."""
    slot = key.rsplit(".", 1)[-1].lower()
    if any(marker in slot for marker in LINEAR_KEY_MARKERS):
        return TextureColorSpace.LINEAR
    return TextureColorSpace.SRGB


def _check_texture_key(key: str, name: str) -> None:
    if not isinstance(key, str) or not key.strip():
        raise ValueError(f"{name} texture key cannot be empty")


def _check_unit(value: float, name: str) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {value}")


@dataclass(frozen=True)
class ProceduralMaterial:
    template: MaterialTemplateId
    scalars: Dict[str, float] = field(default_factory=dict)
    vectors: Dict[str, Vec4] = field(default_factory=dict)
    texture_refs: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> "ProceduralMaterial":
        try:
            MaterialTemplateId(self.template)
        except ValueError as e:
            raise DataFormatError(f"Unsupported material template: {self.template!r}") from e
        for name, value in self.scalars.items():
            if not name or not np.isfinite(value):
                raise DataFormatError(f"Material scalar '{name}' must be named and finite")
        for name, value in self.vectors.items():
            if not name or len(value) != 4 or not np.all(np.isfinite(value)):
                raise DataFormatError(f"Material vector '{name}' must be four finite floats")
        for slot, key in self.texture_refs.items():
            if not slot or not key or not key.strip():
                raise DataFormatError(f"Material texture ref '{slot}' must name a texture key")
        return self


# --- Templates ---


def create_lit_pbr(albedo_texture: str, normal_texture: str, roughness: float, metallic: float) -> ProceduralMaterial:
    _check_texture_key(albedo_texture, "Albedo")
    _check_texture_key(normal_texture, "Normal")
    _check_unit(roughness, "Roughness")
    _check_unit(metallic, "Metallic")
    return ProceduralMaterial(
        template=MaterialTemplateId.LIT_PBR,
        scalars={"roughness": float(roughness), "metallic": float(metallic)},
        vectors={"baseColor": ONE},
        texture_refs={"albedo": albedo_texture, "normal": normal_texture},
    ).validate()


def create_unlit(color: Vec4) -> ProceduralMaterial:
    return ProceduralMaterial(
        template=MaterialTemplateId.UNLIT,
        vectors={"color": tuple(float(c) for c in color)},
    ).validate()


def create_decal(mask_texture: str, opacity: float) -> ProceduralMaterial:
    _check_texture_key(mask_texture, "Mask")
    _check_unit(opacity, "Opacity")
    return ProceduralMaterial(
        template=MaterialTemplateId.DECAL,
        scalars={"opacity": float(opacity)},
        texture_refs={"mask": mask_texture},
    ).validate()


def create_ui(tint: Vec4) -> ProceduralMaterial:
    return ProceduralMaterial(
        template=MaterialTemplateId.UI,
        vectors={"tint": tuple(float(c) for c in tint)},
    ).validate()


# --- Bundles ---


@dataclass(frozen=True)
class ProceduralTextureExport:
    key: str
    width: int
    height: int
    mip_chain: Tuple[TextureMipLevel, ...]

    @property
    def color_space(self) -> TextureColorSpace:
        return color_space_for_key(self.key)

    @property
    def rgba8(self) -> np.ndarray:
        return self.mip_chain[0].rgba8

    def validate(self) -> "ProceduralTextureExport":
        if not self.key or not self.key.strip():
            raise DataFormatError("Texture export key cannot be empty")
        validate_mip_chain(self.mip_chain, self.width, self.height)
        return self


@dataclass(frozen=True)
class ProceduralLitMaterialBundle:
    material: ProceduralMaterial
    textures: Tuple[ProceduralTextureExport, ...]

    def texture(self, key: str) -> ProceduralTextureExport:
        for export in self.textures:
            if export.key == key:
                return export
        raise KeyError(key)

    def validate(self) -> "ProceduralLitMaterialBundle":
        self.material.validate()
        if not self.textures:
            raise DataFormatError("Material bundle must contain at least one texture")
        keys = set()
        for export in self.textures:
            export.validate()
            if export.key in keys:
                raise DataFormatError(f"Duplicate texture key in bundle: {export.key}")
            keys.add(export.key)
        for slot, key in self.material.texture_refs.items():
            if key not in keys:
                raise DataFormatError(f"Material slot '{slot}' references missing texture '{key}'")
        return self


def _export(key: str, surface: ProceduralTextureSurface, chain: Sequence[TextureMipLevel]) -> ProceduralTextureExport:
    return ProceduralTextureExport(key, surface.width, surface.height, tuple(chain))


def create_lit_pbr_from_surface(
    surface: ProceduralTextureSurface,
    key_prefix: str,
    roughness: float,
    metallic: float,
) -> ProceduralLitMaterialBundle:
    """Lit PBR material with albedo, normal, roughness and AO exports.

    Keys are ``<prefix>.albedo`` and so on.  The albedo reuses the surface mip
    chain; normal mips are built with the normal-aware filter.
    """
    if not key_prefix or not key_prefix.strip():
        raise ValueError("Texture key prefix cannot be empty")
    surface.validate()
    prefix = key_prefix.strip()
    keys = {slot: f"{prefix}.{slot}" for slot in ("albedo", "normal", "roughness", "ao")}

    material = create_lit_pbr(keys["albedo"], keys["normal"], roughness, metallic)
    refs = dict(material.texture_refs)
    refs["roughness"] = keys["roughness"]
    refs["ao"] = keys["ao"]
    material = ProceduralMaterial(
        template=material.template,
        scalars=dict(material.scalars),
        vectors=dict(material.vectors),
        texture_refs=refs,
    ).validate()

    textures = (
        _export(keys["albedo"], surface, surface.mip_chain),
        _export(keys["normal"], surface, generate_normal_mip_chain_rgba8(surface.normal)),
        _export(keys["roughness"], surface, generate_mip_chain_rgba8(surface.roughness)),
        _export(keys["ao"], surface, generate_mip_chain_rgba8(surface.ambient_occlusion)),
    )
    return ProceduralLitMaterialBundle(material=material, textures=textures).validate()


def sorted_items(mapping: Mapping[str, object]) -> Iterable[Tuple[str, object]]:
    """Ordinal key order, as the binary encoders write maps."""
    return sorted(mapping.items(), key=lambda item: item[0])


__all__ = [
    "MaterialTemplateId",
    "TextureColorSpace",
    "color_space_for_key",
    "ProceduralMaterial",
    "create_lit_pbr",
    "create_unlit",
    "create_decal",
    "create_ui",
    "ProceduralTextureExport",
    "ProceduralLitMaterialBundle",
    "create_lit_pbr_from_surface",
    "sorted_items",
]
