import pytest

from game.procedural.chunk_tag import LevelChunkTag, LevelNodeType, format_mesh_tag
from game.procedural.errors import DataFormatError


@pytest.mark.parametrize(
    "tag, node_type, variant",
    [
        ("chunk/room/v0", LevelNodeType.ROOM, 0),
        ("chunk/corridor/v1", LevelNodeType.CORRIDOR, 1),
        ("chunk/junction/v2", LevelNodeType.JUNCTION, 2),
        ("chunk/deadend/v3", LevelNodeType.DEAD_END, 3),
        ("chunk/shaft/v0", LevelNodeType.SHAFT, 0),
        ("CHUNK/Room/V2", LevelNodeType.ROOM, 2),
    ],
)
def test_parse_valid_tags(tag, node_type, variant):
    parsed = LevelChunkTag.parse(tag)
    assert parsed.node_type == node_type
    assert parsed.variant == variant
    assert parsed.type_tag == node_type.tag


@pytest.mark.parametrize(
    "tag",
    [
        "room/v0",
        "chunk/room",
        "chunk/room/v0/extra",
        "mesh/room/v0",
        "chunk/hall/v0",
        "chunk/room/0",
        "chunk/room/v",
        "chunk/room/v4",
        "chunk/room/v-1",
        "chunk/room/vx",
    ],
)
def test_parse_rejects_malformed_tags(tag):
    with pytest.raises(DataFormatError):
        LevelChunkTag.parse(tag)


def test_parse_rejects_empty_tag():
    with pytest.raises(ValueError):
        LevelChunkTag.parse("   ")


def test_format_round_trips():
    for node_type in LevelNodeType:
        for variant in range(4):
            tag = format_mesh_tag(node_type, variant)
            assert str(LevelChunkTag.parse(tag)) == tag


def test_format_rejects_bad_variant():
    with pytest.raises(ValueError):
        format_mesh_tag(LevelNodeType.ROOM, 4)
