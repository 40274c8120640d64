"""Replication cache for networked procedural chunks.

:class:`ProceduralChunkReplicator` turns snapshots of "entity N uses recipe R
under asset key K" into rendering resources.  Resources are keyed by asset
key and reference counted, so any number of entities sharing a key cause a
single build and upload, and the handles are destroyed when the last entity
lets go.  A replicator is owned by one caller and is not thread-safe.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple

import structlog

from game.procedural.chunk_content import build_chunk_content
from game.procedural.errors import AssetIntegrityError, DataFormatError
from game.procedural.net_contracts import (
    NetEntityState,
    NetProceduralRecipeRef,
    NetSnapshot,
    recipes_equivalent,
)
from game.procedural.render_upload import (
    ChunkUploadOptions,
    ChunkUploadResult,
    RenderingBackend,
    RenderMeshInstance,
    upload_chunk,
)
from game.procedural.surface_catalog import DEFAULT_SURFACE_SIZE
from game.procedural.texture_builder import MAX_TEXTURE_DIMENSION
from utils.hashing import U32_MASK

log = structlog.get_logger(__name__)

CHUNK_GENERATOR_ID = "proc/chunk/content"
MAX_NODE_ID = (1 << 31) - 1

_INTEGER = re.compile(r"\s*[+-]?\d+\s*")


class ChunkRecipe(NamedTuple):
    """Parsed ``proc/chunk/content`` parameters; doubles as the chunk to build."""

    node_id: int
    mesh_tag: str
    surface_width: int
    surface_height: int


@dataclass(frozen=True)
class ProceduralChunkBinding:
    entity_id: int
    asset_key: str
    procedural_seed: int
    recipe: NetProceduralRecipeRef
    instance: RenderMeshInstance


@dataclass(frozen=True)
class ProceduralChunkApplyResult:
    active_entities: Tuple[ProceduralChunkBinding, ...]
    spawned_ids: Tuple[int, ...]
    updated_ids: Tuple[int, ...]
    despawned_ids: Tuple[int, ...]
    cached_asset_count: int


class _CachedAsset:
    __slots__ = ("asset_key", "seed", "recipe", "upload", "ref_count")

    def __init__(self, asset_key: str, seed: int, recipe: NetProceduralRecipeRef, upload: ChunkUploadResult):
        self.asset_key = asset_key
        self.seed = seed
        self.recipe = recipe
        self.upload = upload
        self.ref_count = 1


def is_supported_recipe(recipe: Optional[NetProceduralRecipeRef]) -> bool:
    return recipe is not None and recipe.generator_id.lower() == CHUNK_GENERATOR_ID


def _parse_int(raw: str, key: str, lo: int, hi: int) -> int:
    if not isinstance(raw, str) or not _INTEGER.fullmatch(raw):
        raise DataFormatError(f"Chunk recipe parameter '{key}' must be an integer value")
    value = int(raw)
    if not lo <= value <= hi:
        raise DataFormatError(f"Chunk recipe parameter '{key}' must be within [{lo}..{hi}]")
    return value


def parse_chunk_recipe(
    parameters: Mapping[str, str],
    default_width: int = DEFAULT_SURFACE_SIZE,
    default_height: int = DEFAULT_SURFACE_SIZE,
) -> ChunkRecipe:
    """Read ``meshTag``, ``nodeId`` and the optional surface size."""
    mesh_tag = parameters.get("meshTag")
    if mesh_tag is None or not mesh_tag.strip():
        raise DataFormatError("Chunk recipe parameter 'meshTag' is required")
    if "nodeId" not in parameters:
        raise DataFormatError("Chunk recipe parameter 'nodeId' is required")
    node_id = _parse_int(parameters["nodeId"], "nodeId", 0, MAX_NODE_ID)

    sizes = []
    for key, default in (("surfaceWidth", default_width), ("surfaceHeight", default_height)):
        raw = parameters.get(key)
        sizes.append(default if raw is None else _parse_int(raw, key, 1, MAX_TEXTURE_DIMENSION))
    return ChunkRecipe(node_id, mesh_tag.strip(), sizes[0], sizes[1])


class ProceduralChunkReplicator:
    def __init__(
        self,
        backend: RenderingBackend,
        default_surface_width: int = DEFAULT_SURFACE_SIZE,
        default_surface_height: int = DEFAULT_SURFACE_SIZE,
        upload_options: Optional[ChunkUploadOptions] = None,
    ) -> None:
        if backend is None:
            raise ValueError("A rendering backend is required")
        for name, value in (("width", default_surface_width), ("height", default_surface_height)):
            if not 0 < value <= MAX_TEXTURE_DIMENSION:
                raise ValueError(f"Default surface {name} must be within [1, {MAX_TEXTURE_DIMENSION}], got {value}")
        self._backend = backend
        self._default_width = default_surface_width
        self._default_height = default_surface_height
        self._upload_options = upload_options or ChunkUploadOptions()
        self._assets: Dict[str, _CachedAsset] = {}
        self._entities: Dict[int, ProceduralChunkBinding] = {}
        self._applying = False
        self._closed = False

    # --- Introspection ---

    @property
    def cached_asset_count(self) -> int:
        return len(self._assets)

    @property
    def closed(self) -> bool:
        return self._closed

    def ref_count(self, asset_key: str) -> int:
        entry = self._assets.get(asset_key)
        return entry.ref_count if entry else 0

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("ProceduralChunkReplicator has been closed")

    # --- Snapshot application ---

    def apply(self, snapshot: NetSnapshot) -> ProceduralChunkApplyResult:
        self._ensure_open()
        if self._applying:
            raise RuntimeError("ProceduralChunkReplicator.apply is not reentrant")
        self._applying = True
        try:
            return self._apply(snapshot)
        finally:
            self._applying = False

    def _apply(self, snapshot: NetSnapshot) -> ProceduralChunkApplyResult:
        seen = set()
        spawned: List[int] = []
        updated: List[int] = []
        despawned: List[int] = []

        for entity in snapshot.entities:
            seen.add(entity.entity_id)
            existing = self._entities.get(entity.entity_id)

            if not is_supported_recipe(entity.recipe):
                if existing is not None:
                    self._untrack(existing)
                    despawned.append(entity.entity_id)
                continue

            if existing is not None and self._same_binding(existing, entity):
                continue

            if existing is None:
                spawned.append(entity.entity_id)
            else:
                self._untrack(existing)
                updated.append(entity.entity_id)

            asset = self._acquire(entity.asset_key, entity.procedural_seed, entity.recipe)
            self._entities[entity.entity_id] = ProceduralChunkBinding(
                entity_id=entity.entity_id,
                asset_key=entity.asset_key,
                procedural_seed=entity.procedural_seed,
                recipe=entity.recipe,
                instance=asset.upload.instance,
            )

        for entity_id in [eid for eid in self._entities if eid not in seen]:
            self._untrack(self._entities[entity_id])
            despawned.append(entity_id)

        result = ProceduralChunkApplyResult(
            active_entities=tuple(self._entities[eid] for eid in sorted(self._entities)),
            spawned_ids=tuple(sorted(spawned)),
            updated_ids=tuple(sorted(updated)),
            despawned_ids=tuple(sorted(despawned)),
            cached_asset_count=len(self._assets),
        )
        log.info(
            "Snapshot applied",
            tick=snapshot.tick,
            active=len(result.active_entities),
            spawned=len(spawned),
            updated=len(updated),
            despawned=len(despawned),
            cached_assets=result.cached_asset_count,
        )
        return result

    @staticmethod
    def _same_binding(binding: ProceduralChunkBinding, entity: NetEntityState) -> bool:
        return (
            binding.asset_key == entity.asset_key
            and binding.procedural_seed == entity.procedural_seed
            and recipes_equivalent(binding.recipe, entity.recipe)
        )

    def _untrack(self, binding: ProceduralChunkBinding) -> None:
        del self._entities[binding.entity_id]
        self._release(binding.asset_key)

    # --- Reference counting ---

    def _acquire(self, asset_key: str, seed: int, recipe: NetProceduralRecipeRef) -> _CachedAsset:
        entry = self._assets.get(asset_key)
        if entry is not None:
            if entry.seed != seed or not recipes_equivalent(entry.recipe, recipe):
                log.error("Asset key reused with a different recipe", asset_key=asset_key, seed=seed)
                raise AssetIntegrityError(
                    f"Asset key '{asset_key}' was reused with different procedural recipe metadata"
                )
            entry.ref_count += 1
            return entry

        chunk = parse_chunk_recipe(recipe.parameters, self._default_width, self._default_height)
        if seed > U32_MASK:
            raise DataFormatError(
                f"Procedural seed {seed} for asset '{asset_key}' exceeds the supported 32-bit range"
            )
        content = build_chunk_content(chunk, seed, chunk.surface_width, chunk.surface_height)
        upload = upload_chunk(self._backend, content, self._upload_options)

        entry = _CachedAsset(asset_key, seed, recipe, upload)
        self._assets[asset_key] = entry
        log.info(
            "Chunk asset uploaded",
            asset_key=asset_key,
            mesh_tag=chunk.mesh_tag,
            node_id=chunk.node_id,
            handles=len(upload.unique_handles()),
        )
        return entry

    def _release(self, asset_key: str) -> None:
        entry = self._assets.get(asset_key)
        if entry is None:
            raise RuntimeError(f"Asset key '{asset_key}' was not found while releasing a tracked entity")
        if entry.ref_count <= 0:
            raise RuntimeError(f"Asset key '{asset_key}' has an invalid reference count {entry.ref_count}")
        entry.ref_count -= 1
        if entry.ref_count == 0:
            entry.upload.destroy(self._backend)
            del self._assets[asset_key]
            log.info("Chunk asset destroyed", asset_key=asset_key)

    # --- Teardown ---

    def _destroy_all(self) -> None:
        for entry in self._assets.values():
            entry.upload.destroy(self._backend)
        self._entities.clear()
        self._assets.clear()

    def clear(self) -> None:
        """Destroy every cached asset and forget every tracked entity."""
        self._ensure_open()
        if self._applying:
            raise RuntimeError("Cannot clear while a snapshot is being applied")
        self._destroy_all()

    def close(self) -> None:
        if self._closed:
            return
        self._destroy_all()
        self._closed = True

    def __enter__(self) -> "ProceduralChunkReplicator":
        self._ensure_open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "CHUNK_GENERATOR_ID",
    "ChunkRecipe",
    "ProceduralChunkBinding",
    "ProceduralChunkApplyResult",
    "ProceduralChunkReplicator",
    "is_supported_recipe",
    "parse_chunk_recipe",
]
