import numpy as np
import pytest

from game.procedural.blobs import decode_material_blob, decode_mesh_blob, decode_texture_blob


class RecordingRenderingBackend:
    """In-memory backend that decodes every blob it is handed.

    Handles start at 1 and increase by one per created resource.
    """

    def __init__(self):
        self._next = 1
        self.meshes = {}
        self.textures = {}
        self.materials = {}
        self.cpu_meshes = {}
        self.cpu_textures = {}
        self.destroyed = []
        self.calls = []

    def _allocate(self, kind):
        handle = self._next
        self._next += 1
        self.calls.append((kind, handle))
        return handle

    @property
    def live_handles(self):
        live = set(self.meshes) | set(self.textures) | set(self.materials)
        live |= set(self.cpu_meshes) | set(self.cpu_textures)
        return sorted(live - set(self.destroyed))

    def create_mesh_from_blob(self, blob):
        handle = self._allocate("mesh")
        self.meshes[handle] = decode_mesh_blob(blob)
        return handle

    def create_mesh_from_cpu(self, positions, indices):
        handle = self._allocate("cpu_mesh")
        self.cpu_meshes[handle] = (np.array(positions), np.array(indices))
        return handle

    def create_texture_from_blob(self, blob):
        handle = self._allocate("texture")
        self.textures[handle] = decode_texture_blob(blob)
        return handle

    def create_texture_from_cpu(self, width, height, rgba8, stride_bytes):
        handle = self._allocate("cpu_texture")
        self.cpu_textures[handle] = (width, height, bytes(rgba8), stride_bytes)
        return handle

    def create_material_from_blob(self, blob):
        handle = self._allocate("material")
        self.materials[handle] = decode_material_blob(blob)
        return handle

    def destroy_resource(self, handle):
        self.destroyed.append(handle)

    def count(self, kind):
        return sum(1 for k, _ in self.calls if k == kind)


@pytest.fixture
def backend():
    return RecordingRenderingBackend()
