from pathlib import Path

import pytest
import yaml

from utils.config_loader import (
    DEFAULT_CONFIG_FILE,
    GenerationSettings,
    load_generation_settings,
    load_yaml_config,
)
from utils.logging_utils import resolve_level


def _write(tmp_path, text, name="generation.yaml"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_shipped_config_loads():
    settings = load_generation_settings(DEFAULT_CONFIG_FILE)
    assert settings.level.seed == 1337
    assert settings.level.target_nodes == 24
    assert settings.lod_chain == (0.55, 0.30)
    assert settings.bake_dir is None


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_yaml_config(tmp_path / "nope.yaml", "Generation")


def test_empty_file_is_empty_mapping(tmp_path):
    assert load_yaml_config(_write(tmp_path, ""), "Generation") == {}


def test_invalid_yaml_propagates(tmp_path):
    with pytest.raises(yaml.YAMLError):
        load_yaml_config(_write(tmp_path, "level: [unclosed"), "Generation")


def test_non_mapping_rejected(tmp_path):
    with pytest.raises(ValueError):
        load_yaml_config(_write(tmp_path, "- 1\n- 2\n"), "Generation")


def test_defaults_fill_missing_sections():
    settings = GenerationSettings.from_mapping({})
    assert settings.level.density == 0.5
    assert settings.surface_width == 128
    assert settings.enable_domain_warp is True
    assert settings.upload.use_cpu_mesh_path is False
    assert settings.log_level == "INFO"


def test_sections_are_read(tmp_path):
    path = _write(
        tmp_path,
        """
level: {seed: 9, target_nodes: 6, density: 0.25, danger: 1.0, complexity: 0.0}
surface: {width: 32, height: 16, enable_domain_warp: false}
mesh: {lod_chain: [0.5]}
upload: {use_cpu_mesh_path: true, use_cpu_texture_path: true}
logging: {level: debug}
output: {bake_dir: out/chunks}
""",
    )
    settings = load_generation_settings(path)
    assert settings.level.seed == 9
    assert settings.level.danger == 1.0
    assert (settings.surface_width, settings.surface_height) == (32, 16)
    assert settings.enable_domain_warp is False
    assert settings.lod_chain == (0.5,)
    assert settings.upload.use_cpu_texture_path is True
    assert settings.log_level == "debug"
    assert settings.bake_dir == Path("out/chunks")


@pytest.mark.parametrize(
    "data",
    [
        {"level": {"target_nodes": 1}},
        {"level": {"density": 0.0}},
        {"surface": {"width": 0}},
        {"surface": {"height": 5000}},
        {"mesh": {"lod_chain": [0.3, 0.5]}},
        {"mesh": {"lod_chain": [1.0]}},
        {"logging": {"level": "chatty"}},
        {"level": [1, 2]},
        {"level": {"seed": None}},
        {"level": {"seed": "7"}},
        {"level": {"seed": True}},
        {"level": {"target_nodes": 2.5}},
        {"level": {"density": None}},
        {"surface": {"width": float("inf")}},
        {"surface": {"enable_domain_warp": "false"}},
        {"upload": {"use_cpu_mesh_path": "true"}},
        {"upload": {"use_cpu_texture_path": 1}},
        {"mesh": {"lod_chain": 0.5}},
        {"mesh": {"lod_chain": [None]}},
    ],
)
def test_invalid_settings_rejected(data):
    with pytest.raises(ValueError):
        GenerationSettings.from_mapping(data)


def test_resolve_level():
    assert resolve_level("warning") == 30
    assert resolve_level(10) == 10
    with pytest.raises(ValueError):
        resolve_level("loud")
