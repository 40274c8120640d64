# main.py
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import structlog
import yaml

from game.procedural.chunk_content import ChunkContent, build_all_chunk_contents
from game.procedural.render_upload import ChunkUploadResult, upload_chunk
from game.world.level_gen import LevelGenResult, generate_level
from utils.config_loader import GenerationSettings, load_generation_settings
from utils.logging_utils import setup_logging

# --- Paths relative to this script's location ---
SCRIPT_DIR = Path(__file__).parent.resolve()
CONFIG_DIR = SCRIPT_DIR / "config"
CONFIG_FILE = CONFIG_DIR / "generation.yaml"
# --- End Paths ---

log = structlog.get_logger()  # module-level logger


class DirectoryBakeBackend:
    """Rendering backend that writes every resource it receives to disk.

    Handles count up from 1.  Blob uploads are written verbatim as
    ``<handle>_<kind>.bin``; CPU uploads are written as ``.npy`` arrays.
    ``destroy_resource`` only forgets the handle, baked files stay.
    """

    def __init__(self, out_dir: Path) -> None:
        self.out_dir = Path(out_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self._next_handle = 1
        self.files: Dict[int, List[Path]] = {}

    @property
    def live_handles(self) -> List[int]:
        return sorted(self.files)

    def _allocate(self) -> int:
        handle = self._next_handle
        self._next_handle += 1
        return handle

    def _write_blob(self, kind: str, blob: bytes) -> int:
        handle = self._allocate()
        path = self.out_dir / f"{handle:05d}_{kind}.bin"
        path.write_bytes(blob)
        self.files[handle] = [path]
        return handle

    def create_mesh_from_blob(self, blob: bytes) -> int:
        return self._write_blob("mesh", blob)

    def create_texture_from_blob(self, blob: bytes) -> int:
        return self._write_blob("texture", blob)

    def create_material_from_blob(self, blob: bytes) -> int:
        return self._write_blob("material", blob)

    def create_mesh_from_cpu(self, positions: np.ndarray, indices: np.ndarray) -> int:
        handle = self._allocate()
        paths = [
            self.out_dir / f"{handle:05d}_mesh_positions.npy",
            self.out_dir / f"{handle:05d}_mesh_indices.npy",
        ]
        np.save(paths[0], positions)
        np.save(paths[1], indices)
        self.files[handle] = paths
        return handle

    def create_texture_from_cpu(self, width: int, height: int, rgba8: bytes, stride_bytes: int) -> int:
        handle = self._allocate()
        path = self.out_dir / f"{handle:05d}_texture_{width}x{height}.npy"
        pixels = np.frombuffer(rgba8, dtype=np.uint8).reshape(height, stride_bytes // 4, 4)
        np.save(path, pixels[:, :width])
        self.files[handle] = [path]
        return handle

    def destroy_resource(self, handle: int) -> None:
        if self.files.pop(handle, None) is None:
            log.warning("Destroying unknown resource handle", handle=handle)


def generate_content(settings: GenerationSettings) -> tuple[LevelGenResult, List[ChunkContent]]:
    level = generate_level(settings.level)
    contents = build_all_chunk_contents(
        level,
        settings.level.seed,
        settings.surface_width,
        settings.surface_height,
        settings.enable_domain_warp,
        settings.lod_chain,
    )
    return level, contents


def bake_contents(
    settings: GenerationSettings, contents: Sequence[ChunkContent], out_dir: Path
) -> List[ChunkUploadResult]:
    backend = DirectoryBakeBackend(out_dir)
    uploads = [upload_chunk(backend, content, settings.upload) for content in contents]
    log.info("Chunks baked", chunks=len(uploads), files=sum(len(p) for p in backend.files.values()),
             out_dir=str(out_dir))
    return uploads


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Generate a level from the YAML config and optionally bake its chunks."""
    argv = list(sys.argv[1:] if argv is None else argv)
    config_file = Path(argv[0]) if argv else CONFIG_FILE

    try:
        settings = load_generation_settings(config_file)
    except (FileNotFoundError, ValueError, TypeError) as e:
        setup_logging()
        log.critical("Configuration failed", path=str(config_file), error=str(e))
        return 1
    except yaml.YAMLError as e:
        setup_logging()
        log.critical("Configuration is not valid YAML", path=str(config_file), error=str(e))
        return 1

    setup_logging(settings.log_level)
    log.info("Generation starting", config=str(config_file), seed=settings.level.seed)

    level, contents = generate_content(settings)
    log.info(
        "Level content ready",
        nodes=len(level.graph),
        chunks=len(contents),
        spawns=len(level.spawn_points),
        triangles=sum(c.mesh.triangle_count for c in contents),
    )

    if settings.bake_dir is not None:
        bake_dir = settings.bake_dir if settings.bake_dir.is_absolute() else SCRIPT_DIR / settings.bake_dir
        bake_contents(settings, contents, bake_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
