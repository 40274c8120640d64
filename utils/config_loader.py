"""YAML configuration for the generation pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import structlog
import yaml

from game.procedural.mesh_catalog import LOD_CHAIN
from game.procedural.render_upload import ChunkUploadOptions
from game.procedural.surface_catalog import DEFAULT_SURFACE_SIZE
from game.procedural.texture_builder import MAX_TEXTURE_DIMENSION
from game.world.level_gen import LevelGenOptions
from utils.logging_utils import resolve_level

log = structlog.get_logger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).resolve().parent.parent / "config" / "generation.yaml"


def load_yaml_config(config_path: Path, config_name: str) -> Dict[str, Any]:
    """Loads a YAML configuration file; an empty file yields ``{}``."""
    config_path = Path(config_path)
    if not config_path.is_file():
        log.error(f"{config_name} config file not found", path=str(config_path))
        raise FileNotFoundError(f"{config_name} configuration file not found: {config_path}")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        log.error(f"Error parsing YAML for {config_name}", path=str(config_path), error=str(e))
        raise
    if config_data is None:
        log.warning(f"{config_name} config file is empty.", path=str(config_path))
        return {}
    if not isinstance(config_data, dict):
        log.error(f"{config_name} config must be a mapping", path=str(config_path))
        raise ValueError(f"{config_name} configuration must be a mapping: {config_path}")
    log.info(f"{config_name} config loaded", path=str(config_path))
    return config_data


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return section


def _as_number(value: Any, where: str) -> float:
    # bool is an int subclass; `seed: true` is rejected too.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{where} must be a number, got {value!r}")
    return value


def _number(section: Mapping[str, Any], where: str, key: str, default: float) -> float:
    return float(_as_number(section.get(key, default), f"{where}.{key}"))


def _integer(section: Mapping[str, Any], where: str, key: str, default: int) -> int:
    value = _as_number(section.get(key, default), f"{where}.{key}")
    if not math.isfinite(value) or value != int(value):
        raise ValueError(f"{where}.{key} must be a whole number, got {value!r}")
    return int(value)


def _flag(section: Mapping[str, Any], where: str, key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{where}.{key} must be true or false, got {value!r}")
    return value


@dataclass(frozen=True)
class GenerationSettings:
    level: LevelGenOptions
    surface_width: int = DEFAULT_SURFACE_SIZE
    surface_height: int = DEFAULT_SURFACE_SIZE
    enable_domain_warp: bool = True
    lod_chain: Tuple[float, ...] = LOD_CHAIN
    upload: ChunkUploadOptions = ChunkUploadOptions()
    log_level: str = "INFO"
    bake_dir: Optional[Path] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GenerationSettings":
        level = _section(data, "level")
        surface = _section(data, "surface")
        mesh = _section(data, "mesh")
        upload = _section(data, "upload")
        logging_cfg = _section(data, "logging")
        output = _section(data, "output")

        options = LevelGenOptions(
            seed=_integer(level, "level", "seed", 1337),
            target_nodes=_integer(level, "level", "target_nodes", 24),
            density=_number(level, "level", "density", 0.5),
            danger=_number(level, "level", "danger", 0.3),
            complexity=_number(level, "level", "complexity", 0.5),
        )
        options.validate()

        width = _integer(surface, "surface", "width", DEFAULT_SURFACE_SIZE)
        height = _integer(surface, "surface", "height", DEFAULT_SURFACE_SIZE)
        for name, value in (("width", width), ("height", height)):
            if not 0 < value <= MAX_TEXTURE_DIMENSION:
                raise ValueError(f"surface.{name} must be within [1, {MAX_TEXTURE_DIMENSION}], got {value}")

        raw_chain = mesh.get("lod_chain", LOD_CHAIN)
        if not isinstance(raw_chain, (list, tuple)):
            raise ValueError(f"mesh.lod_chain must be a list, got {raw_chain!r}")
        lod_chain = tuple(float(_as_number(c, "mesh.lod_chain")) for c in raw_chain)
        previous = 1.0
        for coverage in lod_chain:
            if not 0.0 < coverage < previous:
                raise ValueError(f"mesh.lod_chain must be strictly descending within (0, 1), got {lod_chain}")
            previous = coverage

        log_level = str(logging_cfg.get("level", "INFO"))
        resolve_level(log_level)

        bake_dir = output.get("bake_dir")
        return cls(
            level=options,
            surface_width=width,
            surface_height=height,
            enable_domain_warp=_flag(surface, "surface", "enable_domain_warp", True),
            lod_chain=lod_chain,
            upload=ChunkUploadOptions(
                use_cpu_mesh_path=_flag(upload, "upload", "use_cpu_mesh_path", False),
                use_cpu_texture_path=_flag(upload, "upload", "use_cpu_texture_path", False),
            ),
            log_level=log_level,
            bake_dir=Path(bake_dir) if bake_dir else None,
        )


def load_generation_settings(config_path: Path = DEFAULT_CONFIG_FILE) -> GenerationSettings:
    return GenerationSettings.from_mapping(load_yaml_config(config_path, "Generation"))


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "GenerationSettings",
    "load_yaml_config",
    "load_generation_settings",
]
