"""Per-node-type chunk geometry.

Each chunk is a set of axis-aligned boxes whose sizes come from
:func:`utils.hashing.sample_range` keyed by ``(seed, node_id, variant, salt)``.
Variant bits toggle the accent pieces.  Base geometry goes into the
``chunk/<type>`` submesh and accents into ``chunk/<type>/accent``.
"""

from __future__ import annotations

from typing import Callable, Dict, NamedTuple, Sequence, Tuple

import structlog

from game.procedural.chunk_tag import LevelChunkTag, LevelNodeType
from game.procedural.mesh_builder import MeshBuilder
from game.procedural.mesh_types import ProcMeshData, UvProjection, Vec3, Vec4
from utils.hashing import sample_range

log = structlog.get_logger(__name__)

LOD_CHAIN: Tuple[float, ...] = (0.55, 0.30)

# (salt, min, max) for each sampled dimension
DIMENSIONS: Dict[LevelNodeType, Tuple[Tuple[int, float, float], ...]] = {
    LevelNodeType.ROOM: ((1, 5.5, 8.5), (2, 2.8, 4.2), (3, 5.5, 8.5)),
    LevelNodeType.CORRIDOR: ((4, 2.0, 3.2), (5, 2.2, 3.0), (6, 7.0, 12.5)),
    LevelNodeType.JUNCTION: ((7, 2.4, 3.4), (8, 2.4, 3.2), (9, 5.0, 8.0)),
    LevelNodeType.DEAD_END: ((10, 2.2, 3.0), (11, 2.3, 3.1), (12, 6.0, 9.0)),
    LevelNodeType.SHAFT: ((14, 1.8, 2.8), (15, 7.0, 12.0), (16, 1.8, 2.8)),
}
SALT_END_CAP = 13
SALT_UV_SCALE = 31
SALT_COLOR_VARIATION = 41
SALT_ACCENT_DARKENING = 43
SALTS_ACCENT_BOOST = (45, 47, 49)

UV_PROJECTIONS: Dict[LevelNodeType, UvProjection] = {
    LevelNodeType.ROOM: UvProjection.BOX,
    LevelNodeType.CORRIDOR: UvProjection.CYLINDRICAL,
    LevelNodeType.JUNCTION: UvProjection.BOX,
    LevelNodeType.DEAD_END: UvProjection.BOX,
    LevelNodeType.SHAFT: UvProjection.CYLINDRICAL,
}

BASE_COLORS: Dict[LevelNodeType, Vec3] = {
    LevelNodeType.ROOM: (0.92, 0.89, 0.84),
    LevelNodeType.CORRIDOR: (0.80, 0.87, 0.90),
    LevelNodeType.JUNCTION: (0.86, 0.86, 0.87),
    LevelNodeType.DEAD_END: (0.88, 0.78, 0.72),
    LevelNodeType.SHAFT: (0.76, 0.86, 0.80),
}

ORIGIN: Vec3 = (0.0, 0.0, 0.0)


class ChunkStyle(NamedTuple):
    """Everything a geometry function needs besides the builder."""

    tag: LevelChunkTag
    node_id: int
    seed: int
    base_material: str
    accent_material: str
    base_color: Vec4
    accent_color: Vec4

    def sample(self, salt: int, lo: float, hi: float) -> float:
        return sample_range(self.seed, self.node_id, self.tag.variant, salt, lo, hi)

    def dimensions(self) -> Vec3:
        return tuple(self.sample(*spec) for spec in DIMENSIONS[self.tag.node_type])


# --- Boxes ---


def _add_face(builder: MeshBuilder, corners, normal: Vec3, color: Vec4) -> None:
    uvs = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))
    a, b, c, d = (
        builder.add_vertex(corner, normal, uv, color) for corner, uv in zip(corners, uvs)
    )
    builder.add_quad(a, b, c, d)


def append_box(builder: MeshBuilder, center: Vec3, size: Vec3, color: Vec4) -> None:
    """Six outward-facing CCW quads around ``center``."""
    if min(size) <= 0.0:
        raise ValueError(f"Box size components must be greater than zero, got {size}")
    x0, y0, z0 = (c - s * 0.5 for c, s in zip(center, size))
    x1, y1, z1 = (c + s * 0.5 for c, s in zip(center, size))

    faces = (
        (((x0, y0, z1), (x1, y0, z1), (x1, y1, z1), (x0, y1, z1)), (0.0, 0.0, 1.0)),
        (((x1, y0, z0), (x0, y0, z0), (x0, y1, z0), (x1, y1, z0)), (0.0, 0.0, -1.0)),
        (((x0, y0, z0), (x0, y0, z1), (x0, y1, z1), (x0, y1, z0)), (-1.0, 0.0, 0.0)),
        (((x1, y0, z1), (x1, y0, z0), (x1, y1, z0), (x1, y1, z1)), (1.0, 0.0, 0.0)),
        (((x0, y1, z1), (x1, y1, z1), (x1, y1, z0), (x0, y1, z0)), (0.0, 1.0, 0.0)),
        (((x0, y0, z0), (x1, y0, z0), (x1, y0, z1), (x0, y0, z1)), (0.0, -1.0, 0.0)),
    )
    for corners, normal in faces:
        _add_face(builder, corners, normal, color)


def append_box_in_submesh(
    builder: MeshBuilder, material_tag: str, center: Vec3, size: Vec3, color: Vec4
) -> None:
    builder.begin_submesh(material_tag)
    append_box(builder, center, size, color)
    builder.end_submesh()


# --- Per-type geometry ---


def _build_room(builder: MeshBuilder, style: ChunkStyle) -> None:
    width, height, depth = style.dimensions()
    variant = style.tag.variant
    append_box_in_submesh(builder, style.base_material, ORIGIN, (width, height, depth), style.base_color)

    if variant & 1:
        pillar = height * 0.85
        append_box_in_submesh(
            builder,
            style.accent_material,
            (0.0, -(height - pillar) * 0.5, 0.0),
            (0.8, pillar, 0.8),
            style.accent_color,
        )

    if variant >= 2:
        trim = max(0.10, height * 0.08)
        trim_size = (width * 0.94, trim, depth * 0.94)
        for y in (height * 0.5 - trim * 0.5, -height * 0.5 + trim * 0.5):
            append_box_in_submesh(builder, style.accent_material, (0.0, y, 0.0), trim_size, style.accent_color)


def _build_corridor(builder: MeshBuilder, style: ChunkStyle) -> None:
    width, height, depth = style.dimensions()
    variant = style.tag.variant
    append_box_in_submesh(builder, style.base_material, ORIGIN, (width, height, depth), style.base_color)

    if variant >= 2:
        append_box_in_submesh(
            builder,
            style.accent_material,
            (width * 0.65, 0.0, -depth * 0.2),
            (width * 0.35, height * 0.7, depth * 0.2),
            style.accent_color,
        )

    if variant >= 3:
        rail_w = max(0.12, width * 0.14)
        rail_h = max(0.16, height * 0.10)
        rail_y = -height * 0.5 + rail_h * 0.5
        rail_x = width * 0.5 - rail_w * 0.5
        for x in (rail_x, -rail_x):
            append_box_in_submesh(
                builder,
                style.accent_material,
                (x, rail_y, 0.0),
                (rail_w, rail_h, depth * 0.92),
                style.accent_color,
            )


def _build_junction(builder: MeshBuilder, style: ChunkStyle) -> None:
    width, height, arm = style.dimensions()
    builder.begin_submesh(style.base_material)
    append_box(builder, ORIGIN, (width, height, arm), style.base_color)
    append_box(builder, ORIGIN, (arm, height, width), style.base_color)
    builder.end_submesh()

    if (style.tag.variant & 1) == 0:
        append_box_in_submesh(
            builder,
            style.accent_material,
            (0.0, -height * 0.25, 0.0),
            (width * 0.5, height * 0.5, width * 0.5),
            style.accent_color,
        )


def _build_dead_end(builder: MeshBuilder, style: ChunkStyle) -> None:
    width, height, depth = style.dimensions()
    append_box_in_submesh(builder, style.base_material, ORIGIN, (width, height, depth), style.base_color)

    cap = style.sample(SALT_END_CAP, 0.3, 0.8)
    append_box_in_submesh(
        builder,
        style.accent_material,
        (0.0, 0.0, depth * 0.5 + cap * 0.5),
        (width * 0.98, height * 0.98, cap),
        style.accent_color,
    )


def _build_shaft(builder: MeshBuilder, style: ChunkStyle) -> None:
    width, height, depth = style.dimensions()
    append_box_in_submesh(builder, style.base_material, ORIGIN, (width, height, depth), style.base_color)

    if style.tag.variant >= 1:
        append_box_in_submesh(
            builder,
            style.accent_material,
            (width * 0.45, height * 0.2, 0.0),
            (width * 0.5, 0.35, depth * 0.9),
            style.accent_color,
        )


CHUNK_BUILDERS: Dict[LevelNodeType, Callable[[MeshBuilder, ChunkStyle], None]] = {
    LevelNodeType.ROOM: _build_room,
    LevelNodeType.CORRIDOR: _build_corridor,
    LevelNodeType.JUNCTION: _build_junction,
    LevelNodeType.DEAD_END: _build_dead_end,
    LevelNodeType.SHAFT: _build_shaft,
}


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def select_submesh_colors(tag: LevelChunkTag, seed: int, node_id: int) -> Tuple[Vec4, Vec4]:
    """Seeded base tint and a darker accent tint for one chunk."""
    base_rgb = BASE_COLORS[tag.node_type]
    variation = sample_range(seed, node_id, tag.variant, SALT_COLOR_VARIATION, 0.92, 1.04)
    base = tuple(_clamp01(c * variation) for c in base_rgb)

    darkening = sample_range(seed, node_id, tag.variant, SALT_ACCENT_DARKENING, 0.58, 0.72)
    boost = tuple(sample_range(seed, node_id, tag.variant, salt, 0.01, 0.04) for salt in SALTS_ACCENT_BOOST)
    accent = tuple(_clamp01(c * darkening + b) for c, b in zip(base, boost))
    return base + (1.0,), accent + (1.0,)


def build_chunk_mesh(chunk, seed: int, lod_chain: Sequence[float] = LOD_CHAIN) -> ProcMeshData:
    """Geometry for one level mesh chunk (anything with ``node_id`` and ``mesh_tag``)."""
    tag = LevelChunkTag.parse(chunk.mesh_tag)
    if chunk.node_id < 0:
        raise ValueError(f"node_id must be >= 0, got {chunk.node_id}")
    base_color, accent_color = select_submesh_colors(tag, seed, chunk.node_id)
    base_material = f"chunk/{tag.type_tag}"
    style = ChunkStyle(
        tag=tag,
        node_id=chunk.node_id,
        seed=seed,
        base_material=base_material,
        accent_material=f"{base_material}/accent",
        base_color=base_color,
        accent_color=accent_color,
    )

    builder = MeshBuilder()
    CHUNK_BUILDERS[tag.node_type](builder, style)

    uv_scale = 1.2 + style.sample(SALT_UV_SCALE, 0.0, 0.8)
    builder.generate_uv(UV_PROJECTIONS[tag.node_type], uv_scale)
    builder.generate_tangents()
    builder.generate_lod_chain(*lod_chain)
    mesh = builder.build()

    log.debug(
        "Chunk mesh built",
        node_id=chunk.node_id,
        mesh_tag=chunk.mesh_tag,
        vertices=mesh.vertex_count,
        triangles=mesh.triangle_count,
        submeshes=len(mesh.submeshes),
    )
    return mesh


__all__ = [
    "LOD_CHAIN",
    "append_box",
    "append_box_in_submesh",
    "select_submesh_colors",
    "build_chunk_mesh",
]
