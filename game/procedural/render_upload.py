"""Uploading chunk content through an injected rendering backend.

The pipeline never talks to a GPU.  It encodes blobs (or hands over CPU
buffers) and lets a :class:`RenderingBackend` turn them into opaque integer
handles.  A handle of ``0`` is never valid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Protocol

import numpy as np
import structlog

from game.procedural.blobs import encode_material_blob, encode_mesh_blob, encode_texture_blob
from game.procedural.chunk_content import ChunkContent
from game.procedural.errors import DataFormatError
from game.procedural.materials import ProceduralTextureExport
from game.procedural.mesh_types import ProcMeshData

log = structlog.get_logger(__name__)

ALBEDO_SLOT = "albedo"


class RenderingBackend(Protocol):
    """Resource-creation side of a renderer.

    Every ``create_*`` call returns a non-zero handle that stays valid until
    passed to :meth:`destroy_resource`.
    """

    def create_mesh_from_blob(self, blob: bytes) -> int: ...

    def create_mesh_from_cpu(self, positions: np.ndarray, indices: np.ndarray) -> int: ...

    def create_texture_from_blob(self, blob: bytes) -> int: ...

    def create_texture_from_cpu(self, width: int, height: int, rgba8: bytes, stride_bytes: int) -> int: ...

    def create_material_from_blob(self, blob: bytes) -> int: ...

    def destroy_resource(self, handle: int) -> None: ...


def _check_handle(handle: int, what: str) -> int:
    if not isinstance(handle, (int, np.integer)) or handle <= 0:
        raise DataFormatError(f"{what} handle is invalid: {handle!r}")
    return int(handle)


@dataclass(frozen=True)
class RenderMeshInstance:
    mesh: int
    material: int
    albedo_texture: int

    def validate(self) -> "RenderMeshInstance":
        _check_handle(self.mesh, "Mesh")
        _check_handle(self.material, "Material")
        _check_handle(self.albedo_texture, "Albedo texture")
        return self


@dataclass(frozen=True)
class ChunkUploadOptions:
    use_cpu_mesh_path: bool = False
    use_cpu_texture_path: bool = False


@dataclass(frozen=True)
class ChunkUploadResult:
    instance: RenderMeshInstance
    textures_by_key: Dict[str, int] = field(default_factory=dict)

    @property
    def mesh(self) -> int:
        return self.instance.mesh

    @property
    def material(self) -> int:
        return self.instance.material

    @property
    def albedo_texture(self) -> int:
        return self.instance.albedo_texture

    def validate(self) -> "ChunkUploadResult":
        self.instance.validate()
        if not self.textures_by_key:
            raise DataFormatError("Texture handle map cannot be empty")
        for key, handle in self.textures_by_key.items():
            if not key or not key.strip():
                raise DataFormatError("Texture handle map key cannot be empty")
            _check_handle(handle, f"Texture '{key}'")
        if self.albedo_texture not in self.textures_by_key.values():
            raise DataFormatError("Albedo texture handle is not present in the texture map")
        return self

    def unique_handles(self) -> List[int]:
        """Every handle this upload owns, deduplicated and ascending."""
        handles = {self.mesh, self.material}
        handles.update(self.textures_by_key.values())
        return sorted(handles)

    def destroy(self, backend: RenderingBackend) -> None:
        for handle in self.unique_handles():
            backend.destroy_resource(handle)


def _create_mesh_from_cpu(backend: RenderingBackend, mesh: ProcMeshData) -> int:
    positions = np.ascontiguousarray(mesh.positions, dtype=np.float32).reshape(-1)
    indices = np.ascontiguousarray(mesh.indices, dtype=np.uint32)
    return backend.create_mesh_from_cpu(positions, indices)


def _create_texture_from_cpu(backend: RenderingBackend, texture: ProceduralTextureExport) -> int:
    texture = texture.validate()
    return backend.create_texture_from_cpu(
        texture.width,
        texture.height,
        np.ascontiguousarray(texture.rgba8).tobytes(),
        texture.width * 4,
    )


def upload_chunk(
    backend: RenderingBackend,
    content: ChunkContent,
    options: ChunkUploadOptions = ChunkUploadOptions(),
) -> ChunkUploadResult:
    """Create the mesh, every texture and the material for one chunk.

    Textures are uploaded first so the material blob can carry their handles.
    """
    content = content.validate()
    mesh = content.mesh
    if options.use_cpu_mesh_path:
        mesh_handle = _create_mesh_from_cpu(backend, mesh)
    else:
        mesh_handle = backend.create_mesh_from_blob(encode_mesh_blob(mesh))
    _check_handle(mesh_handle, "Mesh")

    textures: Dict[str, int] = {}
    for export in content.material_bundle.textures:
        if options.use_cpu_texture_path:
            handle = _create_texture_from_cpu(backend, export)
        else:
            handle = backend.create_texture_from_blob(encode_texture_blob(export))
        textures[export.key] = _check_handle(handle, f"Texture '{export.key}'")

    material = content.material_bundle.material
    albedo_key = material.texture_refs.get(ALBEDO_SLOT)
    if albedo_key is None or albedo_key not in textures:
        log.error("Albedo texture missing from upload", node_id=content.node_id, albedo_key=albedo_key)
        raise DataFormatError("Material bundle does not provide an uploaded albedo texture handle")

    material_handle = _check_handle(
        backend.create_material_from_blob(encode_material_blob(material, textures)), "Material"
    )
    result = ChunkUploadResult(
        instance=RenderMeshInstance(mesh_handle, material_handle, textures[albedo_key]),
        textures_by_key=textures,
    ).validate()
    log.debug(
        "Chunk uploaded",
        node_id=content.node_id,
        mesh=mesh_handle,
        material=material_handle,
        textures=len(textures),
        cpu_mesh=options.use_cpu_mesh_path,
        cpu_textures=options.use_cpu_texture_path,
    )
    return result


__all__ = [
    "RenderingBackend",
    "RenderMeshInstance",
    "ChunkUploadOptions",
    "ChunkUploadResult",
    "upload_chunk",
]
