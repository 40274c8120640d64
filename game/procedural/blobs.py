"""Binary upload blobs for meshes, textures and materials.

Every blob starts with a length-prefixed ASCII magic string and continues
with little-endian fields.  Strings are a 7-bit varint byte length followed
by UTF-8.  Decoders are strict: wrong magic, truncated payloads, unknown enum
values and trailing bytes all raise :class:`DataFormatError`.

Mesh::

    magic "DFF_MESH_V1"
    u32 vertex_count, u32 stream_count, u32 index_format, u32 index_bytes,
    u32 submesh_count, f32 x 6 bounds (min xyz, max xyz), u32 lod_count
    stream_count x (str semantic, u32 components, u32 component_size,
                    u32 stride, u32 byte_length, bytes)
    index_bytes of indices
    submesh_count x (u32 index_start, u32 index_count, str material_tag)
    lod_count x (f32 coverage, u32 index_format, u32 byte_length, bytes)

Texture::

    magic "DFF_TEXTURE_V1"
    u32 format, u32 color_space, u32 width, u32 height, u32 mip_count
    mip_count x (u32 width, u32 height, u32 row_pitch, u32 byte_length, bytes)

Material::

    magic "DFF_MATERIAL_V1"
    u32 template, u32 param_block_length, param block, u32 ref_count
    ref_count x (str slot, str texture_key, u64 runtime_handle)

The parameter block is ``u32 count`` plus ``(str, f32)`` scalars followed by
``u32 count`` plus ``(str, f32 x 4)`` vectors, both in ordinal key order.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Mapping, Tuple

import numpy as np

from game.procedural.derived_maps import TextureMipLevel, validate_mip_chain
from game.procedural.errors import DataFormatError
from game.procedural.materials import (
    MaterialTemplateId,
    ProceduralMaterial,
    ProceduralTextureExport,
    TextureColorSpace,
    sorted_items,
)
from game.procedural.mesh_types import ProcBounds, ProcMeshData, ProcMeshLod, ProcSubmesh

MESH_MAGIC = "DFF_MESH_V1"
TEXTURE_MAGIC = "DFF_TEXTURE_V1"
MATERIAL_MAGIC = "DFF_MATERIAL_V1"

U64_MAX = (1 << 64) - 1
_FLOAT32 = np.dtype("<f4")
_UINT32 = np.dtype("<u4")


class IndexFormat(IntEnum):
    UINT16 = 0
    UINT32 = 1


class TextureFormat(IntEnum):
    RGBA8_UNORM = 1


# (semantic, component count, ProcMeshData attribute)
MESH_STREAMS: Tuple[Tuple[str, int, str], ...] = (
    ("POSITION", 3, "positions"),
    ("NORMAL", 3, "normals"),
    ("TEXCOORD0", 2, "uvs"),
    ("COLOR0", 4, "colors"),
    ("TANGENT", 4, "tangents"),
)


# --- Primitive writer / reader ---


class _BlobWriter:
    def __init__(self) -> None:
        self._parts: List[bytes] = []

    def u32(self, value: int) -> None:
        self._parts.append(struct.pack("<I", value))

    def u64(self, value: int) -> None:
        self._parts.append(struct.pack("<Q", value))

    def f32(self, *values: float) -> None:
        self._parts.append(struct.pack(f"<{len(values)}f", *values))

    def string(self, value: str) -> None:
        data = value.encode("utf-8")
        length = len(data)
        prefix = bytearray()
        while length >= 0x80:
            prefix.append((length & 0x7F) | 0x80)
            length >>= 7
        prefix.append(length)
        self._parts.append(bytes(prefix))
        self._parts.append(data)

    def sized_bytes(self, data: bytes) -> None:
        self.u32(len(data))
        self._parts.append(data)

    def raw(self, data: bytes) -> None:
        self._parts.append(data)

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


class _BlobReader:
    def __init__(self, data: bytes, kind: str) -> None:
        self._data = memoryview(bytes(data))
        self._offset = 0
        self._kind = kind

    def _take(self, size: int) -> bytes:
        end = self._offset + size
        if size < 0 or end > len(self._data):
            raise DataFormatError(
                f"Unexpected end of {self._kind} blob at offset {self._offset} (needed {size} bytes)"
            )
        chunk = self._data[self._offset:end].tobytes()
        self._offset = end
        return chunk

    def u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def f32(self, count: int = 1) -> Tuple[float, ...]:
        return struct.unpack(f"<{count}f", self._take(4 * count))

    def string(self) -> str:
        length = 0
        shift = 0
        while True:
            if shift > 28:
                raise DataFormatError(f"Malformed string length in {self._kind} blob")
            byte = self._take(1)[0]
            length |= (byte & 0x7F) << shift
            if not byte & 0x80:
                break
            shift += 7
        try:
            return self._take(length).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DataFormatError(f"Invalid UTF-8 string in {self._kind} blob") from e

    def sized_bytes(self) -> bytes:
        return self._take(self.u32())

    def raw(self, size: int) -> bytes:
        return self._take(size)

    def expect_magic(self, magic: str) -> None:
        try:
            found = self.string()
        except DataFormatError as e:
            raise DataFormatError(f"Missing {self._kind} blob magic '{magic}'") from e
        if found != magic:
            raise DataFormatError(f"Invalid {self._kind} blob magic {found!r}, expected {magic!r}")

    def finish(self) -> None:
        if self._offset != len(self._data):
            raise DataFormatError(
                f"{self._kind.capitalize()} blob contains {len(self._data) - self._offset} trailing bytes"
            )


def _enum_value(enum_type, value: int, kind: str):
    try:
        return enum_type(value)
    except ValueError as e:
        raise DataFormatError(f"Unsupported {kind} value {value}") from e


def _index_bytes(indices: np.ndarray) -> bytes:
    return np.ascontiguousarray(indices, dtype=_UINT32).tobytes()


def _indices_from(data: bytes, index_format: IndexFormat) -> np.ndarray:
    dtype = np.dtype("<u2") if index_format == IndexFormat.UINT16 else _UINT32
    if len(data) % dtype.itemsize:
        raise DataFormatError(f"Index payload of {len(data)} bytes is not a whole number of indices")
    return np.frombuffer(data, dtype=dtype).astype(np.uint32)


# --- Mesh ---


def encode_mesh_blob(mesh: ProcMeshData) -> bytes:
    mesh = mesh.validate()
    index_data = _index_bytes(mesh.indices)

    w = _BlobWriter()
    w.string(MESH_MAGIC)
    w.u32(mesh.vertex_count)
    w.u32(len(MESH_STREAMS))
    w.u32(IndexFormat.UINT32)
    w.u32(len(index_data))
    w.u32(len(mesh.submeshes))
    w.f32(*mesh.bounds.min, *mesh.bounds.max)
    w.u32(len(mesh.lods))

    for semantic, components, attr in MESH_STREAMS:
        payload = np.ascontiguousarray(getattr(mesh, attr), dtype=_FLOAT32).tobytes()
        w.string(semantic)
        w.u32(components)
        w.u32(_FLOAT32.itemsize)
        w.u32(_FLOAT32.itemsize * components)
        w.sized_bytes(payload)

    w.raw(index_data)

    for submesh in mesh.submeshes:
        w.u32(submesh.index_start)
        w.u32(submesh.index_count)
        w.string(submesh.material_tag)

    for lod in mesh.lods:
        w.f32(lod.screen_coverage)
        w.u32(IndexFormat.UINT32)
        w.sized_bytes(_index_bytes(lod.indices))

    return w.getvalue()


def decode_mesh_blob(blob: bytes) -> ProcMeshData:
    """Rebuild :class:`ProcMeshData` from a mesh blob; every stream must be present."""
    if not blob:
        raise DataFormatError("Mesh blob payload cannot be empty")
    r = _BlobReader(blob, "mesh")
    r.expect_magic(MESH_MAGIC)

    vertex_count = r.u32()
    stream_count = r.u32()
    index_format = _enum_value(IndexFormat, r.u32(), "index format")
    index_length = r.u32()
    submesh_count = r.u32()
    bounds = r.f32(6)
    lod_count = r.u32()

    streams: Dict[str, np.ndarray] = {}
    for _ in range(stream_count):
        semantic = r.string()
        components = r.u32()
        component_size = r.u32()
        stride = r.u32()
        payload = r.sized_bytes()
        if component_size != _FLOAT32.itemsize or stride != component_size * components:
            raise DataFormatError(f"Mesh stream '{semantic}' must be tightly packed float32")
        if len(payload) != stride * vertex_count:
            raise DataFormatError(
                f"Mesh stream '{semantic}' holds {len(payload)} bytes, expected {stride * vertex_count}"
            )
        if semantic in streams:
            raise DataFormatError(f"Duplicate mesh stream '{semantic}'")
        streams[semantic] = np.frombuffer(payload, dtype=_FLOAT32).reshape(vertex_count, components).copy()

    indices = _indices_from(r.raw(index_length), index_format)

    submeshes = []
    for _ in range(submesh_count):
        start = r.u32()
        count = r.u32()
        submeshes.append(ProcSubmesh(start, count, r.string()))

    lods = []
    for _ in range(lod_count):
        (coverage,) = r.f32()
        lod_format = _enum_value(IndexFormat, r.u32(), "LOD index format")
        lods.append(ProcMeshLod(coverage, _indices_from(r.sized_bytes(), lod_format)))
    r.finish()

    arrays = {}
    for semantic, components, attr in MESH_STREAMS:
        if semantic not in streams:
            raise DataFormatError(f"Mesh blob is missing the '{semantic}' stream")
        if streams[semantic].shape[1] != components:
            raise DataFormatError(f"Mesh stream '{semantic}' must have {components} components")
        arrays[attr] = streams[semantic]

    return ProcMeshData(
        indices=indices,
        submeshes=tuple(submeshes),
        bounds=ProcBounds(tuple(bounds[:3]), tuple(bounds[3:])),
        lods=tuple(lods),
        **arrays,
    ).validate()


# --- Texture ---


@dataclass(frozen=True)
class TextureBlob:
    format: TextureFormat
    color_space: TextureColorSpace
    width: int
    height: int
    mip_chain: Tuple[TextureMipLevel, ...]


def encode_texture_blob(texture: ProceduralTextureExport) -> bytes:
    texture = texture.validate()
    w = _BlobWriter()
    w.string(TEXTURE_MAGIC)
    w.u32(TextureFormat.RGBA8_UNORM)
    w.u32(texture.color_space)
    w.u32(texture.width)
    w.u32(texture.height)
    w.u32(len(texture.mip_chain))
    for mip in texture.mip_chain:
        w.u32(mip.width)
        w.u32(mip.height)
        w.u32(mip.row_pitch)
        w.sized_bytes(np.ascontiguousarray(mip.rgba8).tobytes())
    return w.getvalue()


def decode_texture_blob(blob: bytes) -> TextureBlob:
    if not blob:
        raise DataFormatError("Texture blob payload cannot be empty")
    r = _BlobReader(blob, "texture")
    r.expect_magic(TEXTURE_MAGIC)

    fmt = _enum_value(TextureFormat, r.u32(), "texture format")
    color_space = _enum_value(TextureColorSpace, r.u32(), "color space")
    width = r.u32()
    height = r.u32()
    mip_count = r.u32()
    if width == 0 or height == 0 or mip_count == 0:
        raise DataFormatError(f"Texture blob has empty dimensions {width}x{height} or no mips")

    mips = []
    for index in range(mip_count):
        mip_w = r.u32()
        mip_h = r.u32()
        row_pitch = r.u32()
        payload = r.sized_bytes()
        if mip_w == 0 or mip_h == 0 or row_pitch != mip_w * 4:
            raise DataFormatError(f"Texture mip {index} has invalid size {mip_w}x{mip_h} pitch {row_pitch}")
        if len(payload) != row_pitch * mip_h:
            raise DataFormatError(
                f"Texture mip {index} holds {len(payload)} bytes, expected {row_pitch * mip_h}"
            )
        rgba8 = np.frombuffer(payload, dtype=np.uint8).reshape(mip_h, mip_w, 4).copy()
        mips.append(TextureMipLevel(mip_w, mip_h, rgba8))
    r.finish()

    validate_mip_chain(mips, width, height)
    return TextureBlob(fmt, color_space, width, height, tuple(mips))


# --- Material ---


@dataclass(frozen=True)
class MaterialTextureRef:
    slot: str
    texture_key: str
    runtime_handle: int


@dataclass(frozen=True)
class MaterialBlob:
    template: MaterialTemplateId
    scalars: Dict[str, float]
    vectors: Dict[str, Tuple[float, float, float, float]]
    texture_refs: Tuple[MaterialTextureRef, ...]

    def handle_for(self, slot: str) -> int:
        for ref in self.texture_refs:
            if ref.slot == slot:
                return ref.runtime_handle
        raise KeyError(slot)


def encode_parameter_block(material: ProceduralMaterial) -> bytes:
    w = _BlobWriter()
    w.u32(len(material.scalars))
    for name, value in sorted_items(material.scalars):
        w.string(name)
        w.f32(value)
    w.u32(len(material.vectors))
    for name, vector in sorted_items(material.vectors):
        w.string(name)
        w.f32(*vector)
    return w.getvalue()


def encode_material_blob(material: ProceduralMaterial, texture_handles: Mapping[str, int]) -> bytes:
    """Material blob whose texture refs carry the uploaded runtime handles.

    ``texture_handles`` maps texture keys to handles; every key the material
    references must be present and map to a non-zero handle.  Consumers bind
    textures by handle; the key written beside each handle is informational.
    """
    material = material.validate()
    w = _BlobWriter()
    w.string(MATERIAL_MAGIC)
    w.u32(material.template)
    w.sized_bytes(encode_parameter_block(material))
    w.u32(len(material.texture_refs))
    for slot, key in sorted_items(material.texture_refs):
        handle = texture_handles.get(key)
        if handle is None:
            raise DataFormatError(f"Material texture slot '{slot}' points to missing texture key '{key}'")
        if not 0 < handle <= U64_MAX:
            raise DataFormatError(f"Material texture slot '{slot}' has invalid handle {handle}")
        w.string(slot)
        w.string(key)
        w.u64(handle)
    return w.getvalue()


def _decode_parameter_block(block: bytes):
    r = _BlobReader(block, "material parameter")
    scalars = {}
    for _ in range(r.u32()):
        name = r.string()
        (scalars[name],) = r.f32()
    vectors = {}
    for _ in range(r.u32()):
        name = r.string()
        vectors[name] = r.f32(4)
    r.finish()
    return scalars, vectors


def decode_material_blob(blob: bytes) -> MaterialBlob:
    if not blob:
        raise DataFormatError("Material blob payload cannot be empty")
    r = _BlobReader(blob, "material")
    r.expect_magic(MATERIAL_MAGIC)

    template = _enum_value(MaterialTemplateId, r.u32(), "material template")
    scalars, vectors = _decode_parameter_block(r.sized_bytes())
    refs = []
    slots = set()
    for _ in range(r.u32()):
        ref = MaterialTextureRef(r.string(), r.string(), r.u64())
        if not ref.slot or not ref.texture_key:
            raise DataFormatError("Material texture ref must name a slot and a texture key")
        if ref.runtime_handle == 0:
            raise DataFormatError(f"Material texture slot '{ref.slot}' carries a zero handle")
        if ref.slot in slots:
            raise DataFormatError(f"Material texture slot '{ref.slot}' is duplicated")
        slots.add(ref.slot)
        refs.append(ref)
    r.finish()
    return MaterialBlob(template, scalars, vectors, tuple(refs))


__all__ = [
    "MESH_MAGIC",
    "TEXTURE_MAGIC",
    "MATERIAL_MAGIC",
    "IndexFormat",
    "TextureFormat",
    "MESH_STREAMS",
    "encode_mesh_blob",
    "decode_mesh_blob",
    "TextureBlob",
    "encode_texture_blob",
    "decode_texture_blob",
    "MaterialTextureRef",
    "MaterialBlob",
    "encode_parameter_block",
    "encode_material_blob",
    "decode_material_blob",
]
