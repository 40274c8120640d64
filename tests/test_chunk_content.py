import numpy as np
import pytest

from game.procedural.chunk_content import (
    ChunkContent,
    build_all_chunk_contents,
    build_chunk_content,
    select_material_params,
    texture_key_prefix,
)
from game.procedural.chunk_tag import LevelChunkTag, LevelNodeType
from game.procedural.errors import DataFormatError
from game.procedural.materials import (
    MaterialTemplateId,
    TextureColorSpace,
    color_space_for_key,
    create_decal,
    create_lit_pbr,
    create_ui,
    create_unlit,
)
from game.world.level_gen import LevelGenOptions, LevelMeshChunk, generate_level

SURFACE = 16


def _content(mesh_tag="chunk/room/v1", node_id=2, seed=77):
    return build_chunk_content(LevelMeshChunk(node_id, mesh_tag), seed, SURFACE, SURFACE)


def test_content_carries_tag_and_validates():
    content = _content()
    assert content.node_id == 2
    assert content.node_type == LevelNodeType.ROOM
    assert content.variant == 1
    assert content.validate() is content


def test_texture_keys_and_color_spaces():
    content = _content("chunk/shaft/v3", node_id=9)
    bundle = content.material_bundle
    prefix = "proc/chunk/shaft/v3/n9"
    assert [t.key for t in bundle.textures] == [
        f"{prefix}.albedo",
        f"{prefix}.normal",
        f"{prefix}.roughness",
        f"{prefix}.ao",
    ]
    spaces = {t.key.rsplit(".", 1)[1]: t.color_space for t in bundle.textures}
    assert spaces == {
        "albedo": TextureColorSpace.SRGB,
        "normal": TextureColorSpace.LINEAR,
        "roughness": TextureColorSpace.LINEAR,
        "ao": TextureColorSpace.LINEAR,
    }
    for texture in bundle.textures:
        assert (texture.width, texture.height) == (SURFACE, SURFACE)
        assert len(texture.mip_chain) == 5


def test_material_refs_and_parameters():
    content = _content("chunk/corridor/v2")
    material = content.material_bundle.material
    assert material.template == MaterialTemplateId.LIT_PBR
    assert set(material.texture_refs) == {"albedo", "normal", "roughness", "ao"}
    roughness, metallic = select_material_params(LevelChunkTag.parse("chunk/corridor/v2"))
    assert material.scalars == {"roughness": roughness, "metallic": metallic}
    assert roughness == pytest.approx(0.62 + 2 * 0.04)
    assert material.vectors["baseColor"] == (1.0, 1.0, 1.0, 1.0)


def test_albedo_export_reuses_surface_chain():
    content = _content()
    albedo = content.material_bundle.texture(content.material_bundle.material.texture_refs["albedo"])
    assert albedo.rgba8.shape == (SURFACE, SURFACE, 4)
    with pytest.raises(KeyError):
        content.material_bundle.texture("missing")


def test_content_is_deterministic():
    a = _content()
    b = _content()
    assert np.array_equal(a.mesh.positions, b.mesh.positions)
    for ta, tb in zip(a.material_bundle.textures, b.material_bundle.textures):
        assert ta.key == tb.key
        assert np.array_equal(ta.rgba8, tb.rgba8)


def test_texture_key_prefix_format():
    assert texture_key_prefix(LevelChunkTag.parse("chunk/deadend/v0"), 12) == "proc/chunk/deadend/v0/n12"


def test_invalid_content_rejected():
    content = _content()
    bad = ChunkContent(
        node_id=-1,
        node_type=content.node_type,
        variant=content.variant,
        mesh=content.mesh,
        material_bundle=content.material_bundle,
    )
    with pytest.raises(DataFormatError):
        bad.validate()
    with pytest.raises(DataFormatError):
        ChunkContent(0, content.node_type, 4, content.mesh, content.material_bundle).validate()


def test_build_all_follows_chunk_order():
    level = generate_level(LevelGenOptions(seed=5, target_nodes=4, density=0.5, danger=0.3))
    contents = build_all_chunk_contents(level, 5, 8, 8)
    assert [c.node_id for c in contents] == [chunk.node_id for chunk in level.mesh_chunks]


@pytest.mark.parametrize(
    "key, space",
    [
        ("a.albedo", TextureColorSpace.SRGB),
        ("a.NormalMap", TextureColorSpace.LINEAR),
        ("a.roughness", TextureColorSpace.LINEAR),
        ("a.ao", TextureColorSpace.LINEAR),
        ("normal.albedo", TextureColorSpace.SRGB),
        ("plain", TextureColorSpace.SRGB),
    ],
)
def test_color_space_for_key(key, space):
    assert color_space_for_key(key) == space


def test_material_templates():
    lit = create_lit_pbr("a", "n", 0.5, 0.1)
    assert lit.texture_refs == {"albedo": "a", "normal": "n"}
    assert create_unlit((1, 0, 0, 1)).vectors["color"] == (1.0, 0.0, 0.0, 1.0)
    assert create_decal("mask", 0.4).scalars == {"opacity": 0.4}
    assert create_ui((0.5, 0.5, 0.5, 1.0)).template == MaterialTemplateId.UI
    with pytest.raises(ValueError):
        create_lit_pbr("a", "n", 1.5, 0.1)
    with pytest.raises(ValueError):
        create_lit_pbr("", "n", 0.5, 0.1)
    with pytest.raises(ValueError):
        create_decal("mask", -0.1)
