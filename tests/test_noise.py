import numpy as np
import pytest

from game.procedural import noise
from utils.hashing import lattice01_array


def _grid(size=32):
    return noise.uv_grid(size, size)


def test_uv_grid_layout():
    u, v = noise.uv_grid(4, 2)
    assert u.shape == (2, 4)
    assert u[0, 1] == pytest.approx(0.25)
    assert v[1, 0] == pytest.approx(0.5)


@pytest.mark.parametrize(
    "sampler",
    [
        lambda u, v: noise.value_noise(u * 6.0, v * 6.0, 11),
        lambda u, v: noise.simplex_noise(u * 6.0, v * 6.0, 11),
        lambda u, v: noise.fbm(u, v, 11, 4, 5.0),
        lambda u, v: noise.fbm(u, v, 11, 3, 5.0, kernel=noise.simplex_noise),
        lambda u, v: noise.worley(u, v, 11, 6.0),
        lambda u, v: noise.grid(u, v),
        lambda u, v: noise.brick(u, v),
        lambda u, v: noise.stripes(u),
    ],
)
def test_samplers_stay_in_unit_range(sampler):
    u, v = _grid()
    values = sampler(u, v)
    assert values.shape == u.shape
    assert np.all(np.isfinite(values))
    assert values.min() >= 0.0
    assert values.max() <= 1.0


def test_value_noise_hits_lattice_values():
    x = np.array([3.0])
    y = np.array([5.0])
    expected = lattice01_array(np.array([3]), np.array([5]), 9)
    assert noise.value_noise(x, y, 9) == pytest.approx(expected)


def test_fbm_is_deterministic_and_seeded():
    u, v = _grid()
    a = noise.fbm(u, v, 5, 4, 4.0)
    assert np.array_equal(a, noise.fbm(u, v, 5, 4, 4.0))
    assert not np.array_equal(a, noise.fbm(u, v, 6, 4, 4.0))


def test_simplex_varies_across_the_field():
    u, v = _grid(64)
    values = noise.simplex_noise(u * 8.0, v * 8.0, 3)
    assert values.std() > 0.05


def test_domain_warp_zero_strength_is_identity():
    u, v = _grid()
    wu, wv = noise.domain_warp(u, v, 1, 0.0, 8.0, 2)
    assert wu is u and wv is v


def test_domain_warp_stays_wrapped():
    u, v = _grid()
    wu, wv = noise.domain_warp(u, v, 1, 0.05, 8.0, 2)
    assert np.all((wu >= 0.0) & (wu <= 1.0))
    assert np.all((wv >= 0.0) & (wv <= 1.0))
    assert not np.array_equal(wu, u)
