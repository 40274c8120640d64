"""Snapshot records delivered by the network layer.

Only the fields the chunk replicator reads are modelled here.  Constructors
normalise their input: asset keys are trimmed, snapshot entities are
deduplicated by id (the last occurrence wins) and sorted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple

U64_MAX = (1 << 64) - 1


@dataclass(frozen=True)
class NetProceduralRecipeRef:
    """Names the generator and parameters that produce an entity's asset."""

    generator_id: str
    generator_version: int = 1
    recipe_version: int = 1
    recipe_hash: str = ""
    parameters: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.generator_id or not self.generator_id.strip():
            raise ValueError("Recipe generator id cannot be empty")
        if self.generator_version < 0 or self.recipe_version < 0:
            raise ValueError("Recipe versions cannot be negative")
        params: Dict[str, str] = {}
        for key, value in self.parameters.items():
            if not key:
                raise ValueError("Recipe parameter names cannot be empty")
            params[str(key)] = str(value)
        object.__setattr__(self, "generator_id", self.generator_id.strip())
        object.__setattr__(self, "parameters", params)


def recipes_equivalent(left: NetProceduralRecipeRef, right: NetProceduralRecipeRef) -> bool:
    """Generator ids compare case-insensitively; everything else must match exactly."""
    return (
        left.generator_id.lower() == right.generator_id.lower()
        and left.generator_version == right.generator_version
        and left.recipe_version == right.recipe_version
        and left.recipe_hash == right.recipe_hash
        and dict(left.parameters) == dict(right.parameters)
    )


@dataclass(frozen=True)
class NetEntityState:
    entity_id: int
    asset_key: str
    procedural_seed: int = 0
    recipe: Optional[NetProceduralRecipeRef] = None
    owner_client_id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.entity_id <= 0:
            raise ValueError(f"Entity id must be greater than zero, got {self.entity_id}")
        if self.owner_client_id is not None and self.owner_client_id <= 0:
            raise ValueError("Owner client id must be greater than zero when specified")
        if not self.asset_key or not self.asset_key.strip():
            raise ValueError("Asset key cannot be empty")
        if not 0 <= self.procedural_seed <= U64_MAX:
            raise ValueError(f"Procedural seed must be an unsigned 64-bit integer, got {self.procedural_seed}")
        object.__setattr__(self, "asset_key", self.asset_key.strip())


@dataclass(frozen=True)
class NetSnapshot:
    tick: int
    entities: Tuple[NetEntityState, ...] = ()

    def __post_init__(self) -> None:
        if self.tick < 0:
            raise ValueError(f"Tick cannot be negative, got {self.tick}")
        by_id = {entity.entity_id: entity for entity in self.entities}
        object.__setattr__(self, "entities", tuple(by_id[key] for key in sorted(by_id)))

    @classmethod
    def of(cls, tick: int, entities: Iterable[NetEntityState]) -> "NetSnapshot":
        return cls(tick, tuple(entities))


__all__ = [
    "NetProceduralRecipeRef",
    "recipes_equivalent",
    "NetEntityState",
    "NetSnapshot",
]
