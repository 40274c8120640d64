# game/procedural/chunk_tag.py
"""Mesh tag grammar shared by the level generator and the content catalogs.

A tag has the form ``chunk/<type>/v<variant>``, for example ``chunk/room/v2``.
The type segment is case-insensitive; the variant is an integer in ``[0, 3]``.
"""
from __future__ import annotations

from enum import IntEnum
from typing import NamedTuple

import structlog

from game.procedural.errors import DataFormatError

log = structlog.get_logger(__name__)

TAG_PREFIX = "chunk"
MAX_VARIANT = 3


class LevelNodeType(IntEnum):
    ROOM = 0
    CORRIDOR = 1
    JUNCTION = 2
    DEAD_END = 3
    SHAFT = 4

    @property
    def tag(self) -> str:
        return _TYPE_TAGS[self]


_TYPE_TAGS = {
    LevelNodeType.ROOM: "room",
    LevelNodeType.CORRIDOR: "corridor",
    LevelNodeType.JUNCTION: "junction",
    LevelNodeType.DEAD_END: "deadend",
    LevelNodeType.SHAFT: "shaft",
}
_TAG_TYPES = {tag: node_type for node_type, tag in _TYPE_TAGS.items()}


class LevelChunkTag(NamedTuple):
    node_type: LevelNodeType
    type_tag: str
    variant: int

    @classmethod
    def parse(cls, mesh_tag: str) -> "LevelChunkTag":
        """Parse ``chunk/<type>/v<variant>``.

        Raises ``ValueError`` for an empty tag and ``DataFormatError`` for any
        other deviation from the grammar.
        """
        if mesh_tag is None or not str(mesh_tag).strip():
            raise ValueError("Mesh tag cannot be empty")

        parts = [part.strip() for part in str(mesh_tag).split("/")]
        if len(parts) != 3 or parts[0].lower() != TAG_PREFIX:
            log.error("Malformed mesh tag", mesh_tag=mesh_tag)
            raise DataFormatError(f"Mesh tag '{mesh_tag}' must be chunk/<type>/v<variant>")

        type_tag = parts[1].lower()
        node_type = _TAG_TYPES.get(type_tag)
        if node_type is None:
            log.error("Unknown chunk type in mesh tag", mesh_tag=mesh_tag, type_tag=type_tag)
            raise DataFormatError(f"Mesh tag '{mesh_tag}' has unknown chunk type '{parts[1]}'")

        variant_part = parts[2]
        digits = variant_part[1:]
        if (
            len(variant_part) < 2
            or variant_part[0] not in "vV"
            or not digits.isascii()
            or not digits.isdigit()
        ):
            log.error("Malformed variant in mesh tag", mesh_tag=mesh_tag)
            raise DataFormatError(f"Mesh tag '{mesh_tag}' has malformed variant '{variant_part}'")
        variant = int(digits)
        if variant > MAX_VARIANT:
            log.error("Variant out of range in mesh tag", mesh_tag=mesh_tag, variant=variant)
            raise DataFormatError(f"Mesh tag '{mesh_tag}' variant must be in [0, {MAX_VARIANT}]")

        return cls(node_type, type_tag, variant)

    def __str__(self) -> str:
        return format_mesh_tag(self.node_type, self.variant)


def format_mesh_tag(node_type: LevelNodeType, variant: int) -> str:
    if not 0 <= variant <= MAX_VARIANT:
        raise ValueError(f"variant must be in [0, {MAX_VARIANT}], got {variant}")
    return f"{TAG_PREFIX}/{LevelNodeType(node_type).tag}/v{variant}"


__all__ = ["LevelNodeType", "LevelChunkTag", "format_mesh_tag", "MAX_VARIANT"]
