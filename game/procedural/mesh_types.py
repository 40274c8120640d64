"""Geometry records produced by :class:`~game.procedural.mesh_builder.MeshBuilder`."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import NamedTuple, Tuple

import numpy as np

from game.procedural.errors import DataFormatError

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]
Vec4 = Tuple[float, float, float, float]

DEFAULT_COLOR: Vec4 = (1.0, 1.0, 1.0, 1.0)
DEFAULT_TANGENT: Vec4 = (1.0, 0.0, 0.0, 1.0)


class UvProjection(IntEnum):
    PLANAR = 0
    BOX = 1
    CYLINDRICAL = 2


class ProcVertex(NamedTuple):
    position: Vec3
    normal: Vec3
    uv: Vec2 = (0.0, 0.0)
    color: Vec4 = DEFAULT_COLOR
    tangent: Vec4 = DEFAULT_TANGENT


@dataclass(frozen=True)
class ProcBounds:
    min: Vec3
    max: Vec3

    @property
    def size(self) -> Vec3:
        return (
            self.max[0] - self.min[0],
            self.max[1] - self.min[1],
            self.max[2] - self.min[2],
        )

    @classmethod
    def from_positions(cls, positions: np.ndarray) -> "ProcBounds":
        if len(positions) == 0:
            raise DataFormatError("Cannot compute bounds for an empty vertex list")
        lo = positions.min(axis=0)
        hi = positions.max(axis=0)
        return cls(tuple(float(c) for c in lo), tuple(float(c) for c in hi))


@dataclass(frozen=True)
class ProcSubmesh:
    index_start: int
    index_count: int
    material_tag: str

    def validate(self) -> "ProcSubmesh":
        if self.index_start < 0:
            raise DataFormatError(f"Submesh index start cannot be negative, got {self.index_start}")
        if self.index_count <= 0 or self.index_count % 3 != 0:
            raise DataFormatError(
                f"Submesh '{self.material_tag}' index count must be a positive multiple of 3, "
                f"got {self.index_count}"
            )
        if not self.material_tag or not self.material_tag.strip():
            raise DataFormatError("Submesh material tag cannot be empty")
        return self

    @property
    def index_end(self) -> int:
        return self.index_start + self.index_count


@dataclass(frozen=True)
class ProcMeshLod:
    screen_coverage: float
    indices: np.ndarray

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    def validate(self) -> "ProcMeshLod":
        if not 0.0 < self.screen_coverage <= 1.0:
            raise DataFormatError(
                f"LOD screen coverage must be within (0, 1], got {self.screen_coverage}"
            )
        if len(self.indices) == 0 or len(self.indices) % 3 != 0:
            raise DataFormatError("LOD indices must be non-empty and divisible by 3")
        return self


@dataclass(frozen=True)
class ProcMeshData:
    """Finished mesh buffers.

    Vertex attributes are parallel ``float32`` arrays; ``indices`` is a flat
    ``uint32`` triangle list.  Submeshes tile the index buffer in order and
    LODs are sorted by strictly descending coverage.
    """

    positions: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray
    colors: np.ndarray
    tangents: np.ndarray
    indices: np.ndarray
    submeshes: Tuple[ProcSubmesh, ...]
    bounds: ProcBounds
    lods: Tuple[ProcMeshLod, ...] = ()

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    def vertex(self, index: int) -> ProcVertex:
        return ProcVertex(
            tuple(float(c) for c in self.positions[index]),
            tuple(float(c) for c in self.normals[index]),
            tuple(float(c) for c in self.uvs[index]),
            tuple(float(c) for c in self.colors[index]),
            tuple(float(c) for c in self.tangents[index]),
        )

    def validate(self) -> "ProcMeshData":
        count = self.vertex_count
        if count == 0:
            raise DataFormatError("Mesh must contain at least one vertex")
        expected = {
            "positions": (count, 3),
            "normals": (count, 3),
            "uvs": (count, 2),
            "colors": (count, 4),
            "tangents": (count, 4),
        }
        for name, shape in expected.items():
            arr = getattr(self, name)
            if arr.shape != shape:
                raise DataFormatError(f"Mesh {name} shape {arr.shape} does not match {shape}")
            if not np.all(np.isfinite(arr)):
                raise DataFormatError(f"Mesh {name} contain non-finite values")

        if len(self.indices) == 0 or len(self.indices) % 3 != 0:
            raise DataFormatError("Mesh indices must be non-empty and divisible by 3")
        if int(self.indices.max()) >= count:
            raise DataFormatError(
                f"Mesh index {int(self.indices.max())} is outside vertex range [0, {count - 1}]"
            )

        if not self.submeshes:
            raise DataFormatError("Mesh must contain at least one submesh")
        cursor = 0
        for submesh in self.submeshes:
            submesh.validate()
            if submesh.index_start != cursor:
                raise DataFormatError(
                    f"Submesh '{submesh.material_tag}' starts at {submesh.index_start}, expected {cursor}"
                )
            cursor = submesh.index_end
        if cursor != len(self.indices):
            raise DataFormatError(
                f"Submeshes cover {cursor} indices but the mesh has {len(self.indices)}"
            )

        previous_coverage = None
        previous_triangles = self.triangle_count
        for lod in self.lods:
            lod.validate()
            if previous_coverage is not None and lod.screen_coverage >= previous_coverage:
                raise DataFormatError("LOD coverage values must be strictly descending")
            if lod.triangle_count > previous_triangles:
                raise DataFormatError("LOD triangle counts must not increase along the chain")
            if int(lod.indices.max()) >= count:
                raise DataFormatError("LOD index is outside the base vertex range")
            previous_coverage = lod.screen_coverage
            previous_triangles = lod.triangle_count

        if any(lo > hi for lo, hi in zip(self.bounds.min, self.bounds.max)):
            raise DataFormatError(f"Mesh bounds are inverted: {self.bounds}")
        return self


__all__ = [
    "UvProjection",
    "ProcVertex",
    "ProcBounds",
    "ProcSubmesh",
    "ProcMeshLod",
    "ProcMeshData",
    "DEFAULT_COLOR",
    "DEFAULT_TANGENT",
]
