"""Seeded procedural chunk content: textures, meshes, materials and their upload."""

from game.procedural.errors import AssetIntegrityError, DataFormatError
from game.procedural.chunk_tag import LevelChunkTag, LevelNodeType, format_mesh_tag
from game.procedural.texture_builder import (
    ProceduralTextureKind,
    ProceduralTextureRecipe,
    ProceduralTextureSurface,
    generate_height,
    generate_rgba8,
    generate_surface_maps,
)
from game.procedural.mesh_types import ProcMeshData, UvProjection
from game.procedural.mesh_builder import MeshBuilder
from game.procedural.mesh_catalog import build_chunk_mesh
from game.procedural.surface_catalog import build_chunk_surface
from game.procedural.materials import ProceduralLitMaterialBundle, create_lit_pbr_from_surface
from game.procedural.chunk_content import ChunkContent, build_all_chunk_contents, build_chunk_content
from game.procedural.render_upload import (
    ChunkUploadOptions,
    ChunkUploadResult,
    RenderingBackend,
    upload_chunk,
)
from game.procedural.net_contracts import NetEntityState, NetProceduralRecipeRef, NetSnapshot
from game.procedural.replicator import ProceduralChunkApplyResult, ProceduralChunkReplicator

__all__ = [
    "AssetIntegrityError",
    "DataFormatError",
    "LevelChunkTag",
    "LevelNodeType",
    "format_mesh_tag",
    "ProceduralTextureKind",
    "ProceduralTextureRecipe",
    "ProceduralTextureSurface",
    "generate_height",
    "generate_rgba8",
    "generate_surface_maps",
    "ProcMeshData",
    "UvProjection",
    "MeshBuilder",
    "build_chunk_mesh",
    "build_chunk_surface",
    "ProceduralLitMaterialBundle",
    "create_lit_pbr_from_surface",
    "ChunkContent",
    "build_chunk_content",
    "build_all_chunk_contents",
    "ChunkUploadOptions",
    "ChunkUploadResult",
    "RenderingBackend",
    "upload_chunk",
    "NetEntityState",
    "NetProceduralRecipeRef",
    "NetSnapshot",
    "ProceduralChunkApplyResult",
    "ProceduralChunkReplicator",
]
