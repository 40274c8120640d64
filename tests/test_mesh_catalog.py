import numpy as np
import pytest

from game.procedural.chunk_tag import LevelChunkTag, LevelNodeType, format_mesh_tag
from game.procedural.errors import DataFormatError
from game.procedural.mesh_builder import MeshBuilder
from game.procedural.mesh_catalog import (
    LOD_CHAIN,
    append_box,
    build_chunk_mesh,
    select_submesh_colors,
)
from game.world.level_gen import LevelMeshChunk


def _chunk(node_type, variant, node_id=7):
    return LevelMeshChunk(node_id=node_id, mesh_tag=format_mesh_tag(node_type, variant))


def _accent_present(mesh):
    return any(s.material_tag.endswith("/accent") for s in mesh.submeshes)


@pytest.mark.parametrize("node_type", list(LevelNodeType))
@pytest.mark.parametrize("variant", [0, 1, 2, 3])
def test_every_chunk_builds_a_valid_mesh(node_type, variant):
    mesh = build_chunk_mesh(_chunk(node_type, variant), seed=4242)
    mesh.validate()
    base = f"chunk/{node_type.tag}"
    tags = {s.material_tag for s in mesh.submeshes}
    assert base in tags
    assert tags <= {base, f"{base}/accent"}
    assert [lod.screen_coverage for lod in mesh.lods] == list(LOD_CHAIN)
    assert mesh.lods[0].triangle_count < mesh.triangle_count


@pytest.mark.parametrize(
    "node_type, accents",
    [
        (LevelNodeType.ROOM, [False, True, True, True]),
        (LevelNodeType.CORRIDOR, [False, False, True, True]),
        (LevelNodeType.JUNCTION, [True, False, True, False]),
        (LevelNodeType.DEAD_END, [True, True, True, True]),
        (LevelNodeType.SHAFT, [False, True, True, True]),
    ],
)
def test_variant_bits_toggle_accents(node_type, accents):
    for variant, expected in enumerate(accents):
        assert _accent_present(build_chunk_mesh(_chunk(node_type, variant), seed=9)) == expected


def test_chunk_mesh_is_deterministic():
    chunk = _chunk(LevelNodeType.ROOM, 3)
    a = build_chunk_mesh(chunk, seed=11)
    b = build_chunk_mesh(chunk, seed=11)
    assert np.array_equal(a.positions, b.positions)
    assert np.array_equal(a.uvs, b.uvs)
    assert np.array_equal(a.indices, b.indices)
    c = build_chunk_mesh(chunk, seed=12)
    assert not np.array_equal(a.positions, c.positions)


def test_mesh_colors_come_from_submesh_tints():
    chunk = _chunk(LevelNodeType.DEAD_END, 0)
    mesh = build_chunk_mesh(chunk, seed=5)
    base, accent = select_submesh_colors(LevelChunkTag.parse(chunk.mesh_tag), 5, chunk.node_id)
    first = mesh.submeshes[0]
    assert np.allclose(mesh.colors[mesh.indices[first.index_start]], base, atol=1e-6)
    assert all(0.0 <= c <= 1.0 for c in accent)
    assert accent[3] == 1.0


def test_custom_lod_chain():
    mesh = build_chunk_mesh(_chunk(LevelNodeType.SHAFT, 1), seed=3, lod_chain=(0.7,))
    assert [lod.screen_coverage for lod in mesh.lods] == [0.7]


def test_bad_chunks_rejected():
    with pytest.raises(DataFormatError):
        build_chunk_mesh(LevelMeshChunk(node_id=0, mesh_tag="chunk/hall/v0"), seed=1)
    with pytest.raises(ValueError):
        build_chunk_mesh(LevelMeshChunk(node_id=-1, mesh_tag="chunk/room/v0"), seed=1)


def test_append_box_emits_six_faces():
    builder = MeshBuilder()
    append_box(builder, (0.0, 0.0, 0.0), (2.0, 4.0, 6.0), (1.0, 1.0, 1.0, 1.0))
    assert builder.vertex_count == 24
    assert builder.triangle_count == 12
    mesh = builder.build()
    assert mesh.bounds.min == (-1.0, -2.0, -3.0)
    assert mesh.bounds.max == (1.0, 2.0, 3.0)


def test_append_box_rejects_flat_size():
    with pytest.raises(ValueError):
        append_box(MeshBuilder(), (0.0, 0.0, 0.0), (1.0, 0.0, 1.0), (1.0, 1.0, 1.0, 1.0))
