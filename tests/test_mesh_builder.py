import numpy as np
import pytest

from game.procedural.errors import DataFormatError
from game.procedural.mesh_builder import DEFAULT_SUBMESH_TAG, MeshBuilder, SubmeshState
from game.procedural.mesh_types import UvProjection


def _quad_builder(size=1.0, y=0.0):
    builder = MeshBuilder()
    up = (0.0, 1.0, 0.0)
    a = builder.add_vertex((0.0, y, 0.0), up, (0.0, 0.0))
    b = builder.add_vertex((size, y, 0.0), up, (1.0, 0.0))
    c = builder.add_vertex((size, y, size), up, (1.0, 1.0))
    d = builder.add_vertex((0.0, y, size), up, (0.0, 1.0))
    return builder, (a, b, c, d)


def _strip_builder(triangles=8):
    """Triangles of growing area along +X."""
    builder = MeshBuilder()
    up = (0.0, 1.0, 0.0)
    for i in range(triangles):
        scale = 1.0 + i
        a = builder.add_vertex((10.0 * i, 0.0, 0.0), up)
        b = builder.add_vertex((10.0 * i + scale, 0.0, 0.0), up)
        c = builder.add_vertex((10.0 * i, 0.0, scale), up)
        builder.add_triangle(a, c, b)
    return builder


def test_add_vertex_returns_sequential_indices_and_normalizes():
    builder = MeshBuilder()
    first = builder.add_vertex((0.0, 0.0, 0.0), (0.0, 2.0, 0.0))
    second = builder.add_vertex((1.0, 0.0, 0.0), (0.0, 0.0, 0.0))
    assert (first, second) == (0, 1)
    assert builder.vertex(0).normal == (0.0, 1.0, 0.0)
    # Degenerate normals fall back to +Y
    assert builder.vertex(1).normal == (0.0, 1.0, 0.0)


@pytest.mark.parametrize(
    "position",
    [(0.0, 0.0), (float("nan"), 0.0, 0.0), (0.0, float("inf"), 0.0)],
)
def test_add_vertex_rejects_bad_positions(position):
    with pytest.raises(ValueError):
        MeshBuilder().add_vertex(position, (0.0, 1.0, 0.0))


def test_add_triangle_checks_indices():
    builder, _ = _quad_builder()
    with pytest.raises(ValueError):
        builder.add_triangle(0, 1, 4)
    with pytest.raises(ValueError):
        builder.add_triangle(-1, 1, 2)


def test_triangles_open_default_submesh():
    builder, (a, b, c, d) = _quad_builder()
    assert builder.state is SubmeshState.NO_SUBMESH
    builder.add_quad(a, b, c, d)
    assert builder.state is SubmeshState.SUBMESH_OPEN
    mesh = builder.build()
    assert len(mesh.submeshes) == 1
    assert mesh.submeshes[0].material_tag == DEFAULT_SUBMESH_TAG
    assert mesh.submeshes[0].index_count == 6
    assert mesh.indices.tolist() == [a, b, c, a, c, d]


def test_submeshes_tile_the_index_buffer():
    builder, (a, b, c, d) = _quad_builder()
    builder.begin_submesh("floor")
    builder.add_triangle(a, b, c)
    builder.begin_submesh("trim")
    builder.add_triangle(a, c, d)
    builder.end_submesh()
    assert builder.state is SubmeshState.NO_SUBMESH
    mesh = builder.build()
    assert [(s.index_start, s.index_count, s.material_tag) for s in mesh.submeshes] == [
        (0, 3, "floor"),
        (3, 3, "trim"),
    ]


def test_empty_submesh_is_dropped():
    builder, (a, b, c, d) = _quad_builder()
    builder.begin_submesh("unused")
    builder.begin_submesh("floor")
    builder.add_quad(a, b, c, d)
    mesh = builder.build()
    assert [s.material_tag for s in mesh.submeshes] == ["floor"]


def test_begin_submesh_rejects_blank_tag():
    with pytest.raises(ValueError):
        MeshBuilder().begin_submesh("  ")


def test_planar_uvs_follow_xz():
    builder, (a, b, c, d) = _quad_builder(size=2.0)
    builder.add_quad(a, b, c, d)
    builder.generate_uv(UvProjection.PLANAR, scale=2.0)
    assert builder.vertex(c).uv == pytest.approx((1.0, 1.0))
    assert builder.vertex(b).uv == pytest.approx((1.0, 0.0))


def test_box_uvs_pick_dominant_axis():
    builder = MeshBuilder()
    wall = builder.add_vertex((0.0, 3.0, 5.0), (1.0, 0.0, 0.0))
    floor = builder.add_vertex((2.0, 0.0, 7.0), (0.0, 1.0, 0.0))
    front = builder.add_vertex((4.0, 6.0, 0.0), (0.0, 0.0, 1.0))
    builder.add_triangle(wall, floor, front)
    builder.generate_uv(UvProjection.BOX)
    assert builder.vertex(wall).uv == pytest.approx((3.0, 5.0))
    assert builder.vertex(floor).uv == pytest.approx((2.0, 7.0))
    assert builder.vertex(front).uv == pytest.approx((4.0, 6.0))


def test_cylindrical_uvs_wrap_angle():
    builder = MeshBuilder()
    v = builder.add_vertex((1.0, 2.0, 0.0), (1.0, 0.0, 0.0))
    builder.generate_uv(UvProjection.CYLINDRICAL)
    assert builder.vertex(v).uv == pytest.approx((0.5, 2.0))


def test_uv_generation_arguments():
    builder, _ = _quad_builder()
    with pytest.raises(ValueError):
        builder.generate_uv(UvProjection.PLANAR, scale=0.0)
    with pytest.raises(RuntimeError):
        MeshBuilder().generate_uv(UvProjection.PLANAR)


def test_tangents_are_orthonormal_with_handedness():
    builder, (a, b, c, d) = _quad_builder()
    builder.add_quad(a, b, c, d)
    mesh = builder.build()
    tangents = mesh.tangents[:, :3].astype(np.float64)
    normals = mesh.normals.astype(np.float64)
    assert np.allclose(np.linalg.norm(tangents, axis=1), 1.0, atol=1e-5)
    assert np.allclose(np.sum(tangents * normals, axis=1), 0.0, atol=1e-5)
    assert set(np.abs(mesh.tangents[:, 3]).tolist()) == {1.0}
    # u runs along +X on this quad
    assert np.allclose(tangents, [[1.0, 0.0, 0.0]] * 4, atol=1e-5)


def test_degenerate_uvs_still_give_usable_tangents():
    builder = MeshBuilder()
    up = (0.0, 1.0, 0.0)
    a = builder.add_vertex((0.0, 0.0, 0.0), up, (0.5, 0.5))
    b = builder.add_vertex((1.0, 0.0, 0.0), up, (0.5, 0.5))
    c = builder.add_vertex((0.0, 0.0, 1.0), up, (0.5, 0.5))
    builder.add_triangle(a, c, b)
    mesh = builder.build()
    tangents = mesh.tangents[:, :3].astype(np.float64)
    assert np.allclose(np.linalg.norm(tangents, axis=1), 1.0, atol=1e-5)
    assert np.allclose(np.sum(tangents * mesh.normals, axis=1), 0.0, atol=1e-5)


def test_tangent_generation_needs_triangles():
    builder = MeshBuilder()
    builder.add_vertex((0.0, 0.0, 0.0), (0.0, 1.0, 0.0))
    with pytest.raises(RuntimeError):
        builder.generate_tangents()


def test_explicit_tangents_are_kept():
    builder = MeshBuilder()
    up = (0.0, 1.0, 0.0)
    tangent = (0.0, 0.0, 1.0, -1.0)
    a = builder.add_vertex((0.0, 0.0, 0.0), up, tangent=tangent)
    b = builder.add_vertex((1.0, 0.0, 0.0), up, tangent=tangent)
    c = builder.add_vertex((0.0, 0.0, 1.0), up, tangent=tangent)
    builder.add_triangle(a, c, b)
    mesh = builder.build()
    assert mesh.tangents.tolist() == [list(tangent)] * 3


def test_lod_keeps_largest_triangles_in_order():
    builder = _strip_builder(8)
    lod = builder.generate_lod(0.5)
    assert lod.triangle_count == 4
    kept = lod.indices.reshape(-1, 3)[:, 0] // 3
    assert kept.tolist() == [4, 5, 6, 7]


def test_lod_chain_counts_shrink():
    builder = _strip_builder(10)
    lods = builder.generate_lod_chain(0.55, 0.25)
    assert [lod.triangle_count for lod in lods] == [6, 3]
    mesh = builder.build()
    assert [lod.screen_coverage for lod in mesh.lods] == [0.55, 0.25]


def test_lod_never_keeps_every_triangle():
    builder = _strip_builder(2)
    assert builder.generate_lod(0.99).triangle_count == 1


@pytest.mark.parametrize("coverage", [0.0, 1.0, -0.5, 1.5])
def test_lod_coverage_range(coverage):
    with pytest.raises(ValueError):
        _strip_builder().generate_lod(coverage)


def test_lod_needs_two_triangles():
    builder, (a, b, c, _) = _quad_builder()
    builder.add_triangle(a, b, c)
    with pytest.raises(RuntimeError):
        builder.generate_lod(0.5)


def test_lod_chain_must_descend():
    with pytest.raises(ValueError):
        _strip_builder().generate_lod_chain(0.3, 0.5)
    builder = _strip_builder()
    builder.generate_lod(0.5)
    with pytest.raises(ValueError):
        builder.generate_lod(0.5)


def test_geometry_frozen_after_lods():
    builder = _strip_builder()
    builder.generate_lod(0.5)
    with pytest.raises(RuntimeError):
        builder.add_triangle(0, 1, 2)


def test_build_empty_mesh_fails():
    with pytest.raises(DataFormatError):
        MeshBuilder().build()
    builder = MeshBuilder()
    builder.add_vertex((0.0, 0.0, 0.0), (0.0, 1.0, 0.0))
    with pytest.raises(DataFormatError):
        builder.build()


def test_build_output_types_and_bounds():
    builder, (a, b, c, d) = _quad_builder(size=3.0, y=1.5)
    builder.add_quad(a, b, c, d)
    mesh = builder.build()
    assert mesh.positions.dtype == np.float32
    assert mesh.indices.dtype == np.uint32
    assert mesh.vertex_count == 4
    assert mesh.triangle_count == 2
    assert mesh.bounds.min == (0.0, 1.5, 0.0)
    assert mesh.bounds.max == (3.0, 1.5, 3.0)
    assert mesh.bounds.size == (3.0, 0.0, 3.0)
