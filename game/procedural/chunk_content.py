"""Chunk content assembler.

Binds a level mesh chunk to its mesh and lit material bundle.  The result is
a pure function of ``(chunk, seed, surface size)``; nothing here holds state,
so independent chunks can be built in any order or in parallel.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import structlog

from game.procedural.chunk_tag import MAX_VARIANT, LevelChunkTag, LevelNodeType
from game.procedural.errors import DataFormatError
from game.procedural.materials import ProceduralLitMaterialBundle, create_lit_pbr_from_surface
from game.procedural.mesh_catalog import LOD_CHAIN, build_chunk_mesh
from game.procedural.mesh_types import ProcMeshData
from game.procedural.surface_catalog import DEFAULT_SURFACE_SIZE, build_chunk_surface

log = structlog.get_logger(__name__)

# (base roughness, roughness per variant, metallic)
MATERIAL_PARAMS: Dict[LevelNodeType, Tuple[float, float, float]] = {
    LevelNodeType.ROOM: (0.55, 0.05, 0.08),
    LevelNodeType.CORRIDOR: (0.62, 0.04, 0.12),
    LevelNodeType.JUNCTION: (0.58, 0.05, 0.10),
    LevelNodeType.DEAD_END: (0.68, 0.04, 0.05),
    LevelNodeType.SHAFT: (0.72, 0.03, 0.16),
}


@dataclass(frozen=True)
class ChunkContent:
    node_id: int
    node_type: LevelNodeType
    variant: int
    mesh: ProcMeshData
    material_bundle: ProceduralLitMaterialBundle

    def validate(self) -> "ChunkContent":
        if self.node_id < 0:
            raise DataFormatError(f"Chunk node id cannot be negative, got {self.node_id}")
        try:
            LevelNodeType(self.node_type)
        except ValueError as e:
            raise DataFormatError(f"Unsupported node type: {self.node_type!r}") from e
        if not 0 <= self.variant <= MAX_VARIANT:
            raise DataFormatError(f"Chunk variant must be within [0, {MAX_VARIANT}], got {self.variant}")
        if self.mesh.vertex_count == 0 or len(self.mesh.indices) == 0:
            raise DataFormatError("Chunk mesh is empty")
        self.mesh.validate()
        self.material_bundle.validate()
        return self


def select_material_params(tag: LevelChunkTag) -> Tuple[float, float]:
    """``(roughness, metallic)`` baseline for a node type and variant."""
    base, per_variant, metallic = MATERIAL_PARAMS[tag.node_type]
    return base + tag.variant * per_variant, metallic


def texture_key_prefix(tag: LevelChunkTag, node_id: int) -> str:
    return f"proc/chunk/{tag.type_tag}/v{tag.variant}/n{node_id}"


def build_chunk_content(
    chunk,
    seed: int,
    surface_width: int = DEFAULT_SURFACE_SIZE,
    surface_height: int = DEFAULT_SURFACE_SIZE,
    enable_domain_warp: bool = True,
    lod_chain: Sequence[float] = LOD_CHAIN,
) -> ChunkContent:
    """Mesh plus lit material bundle for one chunk (``node_id`` + ``mesh_tag``)."""
    tag = LevelChunkTag.parse(chunk.mesh_tag)
    mesh = build_chunk_mesh(chunk, seed, lod_chain)
    surface = build_chunk_surface(
        chunk, seed, surface_width, surface_height, enable_domain_warp=enable_domain_warp
    )
    roughness, metallic = select_material_params(tag)
    bundle = create_lit_pbr_from_surface(
        surface, texture_key_prefix(tag, chunk.node_id), roughness, metallic
    )

    content = ChunkContent(
        node_id=chunk.node_id,
        node_type=tag.node_type,
        variant=tag.variant,
        mesh=mesh,
        material_bundle=bundle,
    ).validate()
    log.debug(
        "Chunk content built",
        node_id=chunk.node_id,
        mesh_tag=chunk.mesh_tag,
        surface=f"{surface_width}x{surface_height}",
    )
    return content


def build_all_chunk_contents(
    level,
    seed: int,
    surface_width: int = DEFAULT_SURFACE_SIZE,
    surface_height: int = DEFAULT_SURFACE_SIZE,
    enable_domain_warp: bool = True,
    lod_chain: Sequence[float] = LOD_CHAIN,
) -> List[ChunkContent]:
    """Build every mesh chunk of a generated level, in chunk order."""
    contents = [
        build_chunk_content(chunk, seed, surface_width, surface_height, enable_domain_warp, lod_chain)
        for chunk in level.mesh_chunks
    ]
    log.info("Level chunk contents built", chunks=len(contents), seed=seed)
    return contents


__all__ = [
    "ChunkContent",
    "MATERIAL_PARAMS",
    "select_material_params",
    "texture_key_prefix",
    "build_chunk_content",
    "build_all_chunk_contents",
]
