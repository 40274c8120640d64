"""Append-only mesh builder.

Vertices and triangles are appended into growable buffers and addressed by
the integer indices the append calls return.  Submesh ranges open with
:meth:`MeshBuilder.begin_submesh` and close on the next open, on
:meth:`MeshBuilder.end_submesh`, or on :meth:`MeshBuilder.build`.
"""

from __future__ import annotations

import math
from enum import Enum, auto
from typing import List, Optional, Sequence, Tuple

import numpy as np
import structlog

from game.procedural.errors import DataFormatError
from game.procedural.mesh_types import (
    DEFAULT_COLOR,
    ProcBounds,
    ProcMeshData,
    ProcMeshLod,
    ProcSubmesh,
    ProcVertex,
    UvProjection,
    Vec2,
    Vec3,
    Vec4,
)

log = structlog.get_logger(__name__)

DEFAULT_SUBMESH_TAG = "Default"
UV_DETERMINANT_EPSILON = 1e-12
TANGENT_EPSILON = 1e-8


class SubmeshState(Enum):
    NO_SUBMESH = auto()
    SUBMESH_OPEN = auto()


def _finite(values: Sequence[float]) -> bool:
    return all(math.isfinite(float(c)) for c in values)


def _normalized(arr: np.ndarray) -> np.ndarray:
    length = np.linalg.norm(arr, axis=-1, keepdims=True)
    return arr / np.maximum(length, TANGENT_EPSILON)


class MeshBuilder:
    def __init__(self) -> None:
        self._positions: List[Vec3] = []
        self._normals: List[Vec3] = []
        self._uvs: List[Vec2] = []
        self._colors: List[Vec4] = []
        self._tangents: List[Vec4] = []
        self._indices: List[int] = []
        self._submeshes: List[ProcSubmesh] = []
        self._lods: List[ProcMeshLod] = []
        self._state = SubmeshState.NO_SUBMESH
        self._open_tag: Optional[str] = None
        self._open_start = 0
        self._tangents_dirty = False

    # --- Introspection ---
    @property
    def state(self) -> SubmeshState:
        return self._state

    @property
    def vertex_count(self) -> int:
        return len(self._positions)

    @property
    def index_count(self) -> int:
        return len(self._indices)

    @property
    def triangle_count(self) -> int:
        return len(self._indices) // 3

    def vertex(self, index: int) -> ProcVertex:
        self._check_vertex_index(index)
        return ProcVertex(
            self._positions[index],
            self._normals[index],
            self._uvs[index],
            self._colors[index],
            self._tangents[index],
        )

    # --- Appending ---
    def add_vertex(
        self,
        position: Vec3,
        normal: Vec3,
        uv: Vec2 = (0.0, 0.0),
        color: Vec4 = DEFAULT_COLOR,
        tangent: Optional[Vec4] = None,
    ) -> int:
        """Append a vertex and return its index.

        Normals are normalized; a zero or non-finite normal becomes +Y.  Without
        an explicit tangent the vertex is marked for tangent reconstruction.
        """
        if len(position) != 3 or not _finite(position):
            raise ValueError(f"Vertex position must be three finite floats, got {position!r}")
        if len(uv) != 2 or not _finite(uv) or len(color) != 4 or not _finite(color):
            raise ValueError("Vertex uv and color must be finite")

        nx, ny, nz = (float(c) for c in normal)
        length = math.sqrt(nx * nx + ny * ny + nz * nz)
        if not math.isfinite(length) or length <= TANGENT_EPSILON:
            nx, ny, nz, length = 0.0, 1.0, 0.0, 1.0

        if tangent is None:
            tangent = (1.0, 0.0, 0.0, 1.0)
            self._tangents_dirty = True
        elif len(tangent) != 4 or not _finite(tangent):
            raise ValueError(f"Vertex tangent must be four finite floats, got {tangent!r}")

        self._positions.append(tuple(float(c) for c in position))
        self._normals.append((nx / length, ny / length, nz / length))
        self._uvs.append(tuple(float(c) for c in uv))
        self._colors.append(tuple(float(c) for c in color))
        self._tangents.append(tuple(float(c) for c in tangent))
        return len(self._positions) - 1

    def add_triangle(self, a: int, b: int, c: int) -> int:
        """Append a triangle and return its triangle index."""
        if self._lods:
            raise RuntimeError("Cannot append geometry after LODs have been generated")
        for index in (a, b, c):
            self._check_vertex_index(index)
        if self._state is SubmeshState.NO_SUBMESH:
            self.begin_submesh(DEFAULT_SUBMESH_TAG)
        self._indices.extend((int(a), int(b), int(c)))
        return len(self._indices) // 3 - 1

    def add_quad(self, a: int, b: int, c: int, d: int) -> None:
        """Two triangles ``(a, b, c)`` and ``(a, c, d)``."""
        self.add_triangle(a, b, c)
        self.add_triangle(a, c, d)

    def _check_vertex_index(self, index: int) -> None:
        if not 0 <= index < len(self._positions):
            raise ValueError(
                f"Vertex index {index} is outside [0, {len(self._positions) - 1}]"
            )

    # --- Submeshes ---
    def begin_submesh(self, material_tag: str) -> None:
        if not material_tag or not material_tag.strip():
            raise ValueError("Material tag cannot be empty")
        if self._state is SubmeshState.SUBMESH_OPEN:
            self.end_submesh()
        self._open_tag = material_tag.strip()
        self._open_start = len(self._indices)
        self._state = SubmeshState.SUBMESH_OPEN

    def end_submesh(self) -> None:
        if self._state is not SubmeshState.SUBMESH_OPEN:
            return
        count = len(self._indices) - self._open_start
        if count > 0:
            self._submeshes.append(ProcSubmesh(self._open_start, count, self._open_tag))
        self._open_tag = None
        self._state = SubmeshState.NO_SUBMESH

    # --- UVs ---
    def generate_uv(self, projection: UvProjection, scale: float = 1.0) -> None:
        """Overwrite every UV with a planar, box or cylindrical projection."""
        if not scale > 0.0:
            raise ValueError(f"UV scale must be greater than zero, got {scale}")
        if not self._positions:
            raise RuntimeError("Cannot generate UVs for an empty mesh")

        positions = np.asarray(self._positions, dtype=np.float64)
        x, y, z = positions[:, 0], positions[:, 1], positions[:, 2]
        projection = UvProjection(projection)
        if projection is UvProjection.PLANAR:
            uv = np.stack((x, z), axis=-1)
        elif projection is UvProjection.BOX:
            ax, ay, az = np.abs(np.asarray(self._normals, dtype=np.float64)).T
            along_x = (ax >= ay) & (ax >= az)
            along_y = ~along_x & (ay >= ax) & (ay >= az)
            u = np.where(along_x, y, x)
            v = np.where(along_x | along_y, z, y)
            uv = np.stack((u, v), axis=-1)
        else:
            u = np.arctan2(z, x) / (2.0 * math.pi) + 0.5
            uv = np.stack((u, y), axis=-1)

        uv = uv / scale
        self._uvs = [(float(a), float(b)) for a, b in uv]
        self._tangents_dirty = True

    # --- Tangents ---
    def generate_tangents(self) -> None:
        """Rebuild per-vertex tangents from UV derivatives.

        Triangles with a near-zero UV determinant contribute nothing.  The
        accumulated tangent is made orthogonal to the normal; when that leaves
        nothing usable a tangent is built from the normal alone.  ``w`` holds
        the bitangent handedness.
        """
        if not self._indices:
            raise RuntimeError("Cannot generate tangents without triangles")
        positions = np.asarray(self._positions, dtype=np.float64)
        normals = _normalized(np.asarray(self._normals, dtype=np.float64))
        uvs = np.asarray(self._uvs, dtype=np.float64)
        tris = np.asarray(self._indices, dtype=np.int64).reshape(-1, 3)

        p0, p1, p2 = positions[tris[:, 0]], positions[tris[:, 1]], positions[tris[:, 2]]
        w0, w1, w2 = uvs[tris[:, 0]], uvs[tris[:, 1]], uvs[tris[:, 2]]
        e1, e2 = p1 - p0, p2 - p0
        d1, d2 = w1 - w0, w2 - w0
        det = d1[:, 0] * d2[:, 1] - d2[:, 0] * d1[:, 1]
        valid = np.isfinite(det) & (np.abs(det) > UV_DETERMINANT_EPSILON)

        inv = np.zeros_like(det)
        inv[valid] = 1.0 / det[valid]
        tri_tangent = (e1 * d2[:, 1:2] - e2 * d1[:, 1:2]) * inv[:, None]
        tri_bitangent = (e2 * d1[:, 0:1] - e1 * d2[:, 0:1]) * inv[:, None]

        tangent_acc = np.zeros_like(positions)
        bitangent_acc = np.zeros_like(positions)
        for corner in range(3):
            np.add.at(tangent_acc, tris[valid, corner], tri_tangent[valid])
            np.add.at(bitangent_acc, tris[valid, corner], tri_bitangent[valid])

        # Gram-Schmidt against the normal
        ortho = tangent_acc - normals * np.sum(normals * tangent_acc, axis=1, keepdims=True)
        length = np.linalg.norm(ortho, axis=1)
        usable = np.isfinite(length) & (length > TANGENT_EPSILON)

        reference = np.where(
            (np.abs(normals[:, 0]) < 0.9)[:, None],
            np.array([1.0, 0.0, 0.0]),
            np.array([0.0, 1.0, 0.0]),
        )
        fallback = reference - normals * np.sum(normals * reference, axis=1, keepdims=True)
        fallback = _normalized(fallback)

        tangent = np.where(usable[:, None], ortho / np.where(usable, length, 1.0)[:, None], fallback)
        handed = np.sum(np.cross(normals, tangent) * bitangent_acc, axis=1)
        handedness = np.where(handed < 0.0, -1.0, 1.0)

        self._tangents = [
            (float(t[0]), float(t[1]), float(t[2]), float(h))
            for t, h in zip(tangent, handedness)
        ]
        self._tangents_dirty = False
        log.debug(
            "Tangents generated",
            vertices=len(self._positions),
            degenerate_triangles=int(np.count_nonzero(~valid)),
            fallback_vertices=int(np.count_nonzero(~usable)),
        )

    # --- LOD ---
    def _triangle_areas(self) -> np.ndarray:
        positions = np.asarray(self._positions, dtype=np.float64)
        tris = np.asarray(self._indices, dtype=np.int64).reshape(-1, 3)
        cross = np.cross(
            positions[tris[:, 1]] - positions[tris[:, 0]],
            positions[tris[:, 2]] - positions[tris[:, 0]],
        )
        return np.sum(cross * cross, axis=1)

    def generate_lod(self, coverage: float) -> ProcMeshLod:
        """Keep the ``ceil(T * coverage)`` largest triangles in original order."""
        if not 0.0 < coverage < 1.0:
            raise ValueError(f"LOD coverage must be within (0, 1), got {coverage}")
        triangle_count = self.triangle_count
        if triangle_count < 2:
            raise RuntimeError("LOD generation requires at least two triangles")
        if self._lods and coverage >= self._lods[-1].screen_coverage:
            raise ValueError(
                f"LOD coverage {coverage} must be below the previous {self._lods[-1].screen_coverage}"
            )

        keep = min(max(math.ceil(triangle_count * coverage), 1), triangle_count - 1)
        area = self._triangle_areas()
        order = np.lexsort((np.arange(triangle_count), -area))
        selected = np.sort(order[:keep])

        tris = np.asarray(self._indices, dtype=np.uint32).reshape(-1, 3)
        lod = ProcMeshLod(float(coverage), tris[selected].reshape(-1)).validate()
        self._lods.append(lod)
        return lod

    def generate_lod_chain(self, *coverages: float) -> Tuple[ProcMeshLod, ...]:
        if list(coverages) != sorted(set(coverages), reverse=True):
            raise ValueError(f"LOD coverages must be strictly descending, got {coverages}")
        return tuple(self.generate_lod(coverage) for coverage in coverages)

    # --- Build ---
    def build(self) -> ProcMeshData:
        self.end_submesh()
        if not self._positions or not self._indices:
            raise DataFormatError("Mesh must contain vertices and triangles")
        if self._tangents_dirty:
            self.generate_tangents()

        positions = np.asarray(self._positions, dtype=np.float32)
        mesh = ProcMeshData(
            positions=positions,
            normals=np.asarray(self._normals, dtype=np.float32),
            uvs=np.asarray(self._uvs, dtype=np.float32),
            colors=np.asarray(self._colors, dtype=np.float32),
            tangents=np.asarray(self._tangents, dtype=np.float32),
            indices=np.asarray(self._indices, dtype=np.uint32),
            submeshes=tuple(self._submeshes),
            bounds=ProcBounds.from_positions(positions),
            lods=tuple(self._lods),
        )
        return mesh.validate()


__all__ = ["MeshBuilder", "SubmeshState", "DEFAULT_SUBMESH_TAG"]
