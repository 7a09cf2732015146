"""
Pytest configuration and shared fixtures.
"""

import math
import tempfile
from pathlib import Path

import numpy as np
import pytest

from reliefcam.carve.heightmap import Heightmap, HeightmapConfig


def grid_mesh(size: float, res: float, z_func):
    """
    Triangulate ``z = z_func(x, y)`` sampled on a square grid.

    Returns:
        (vertices, indices, bounds_min, bounds_max) covering [0, size]^2
    """
    n = int(size / res) + 1
    coords = np.arange(n) * res
    xs, ys = np.meshgrid(coords, coords)
    zs = np.vectorize(z_func)(xs, ys)
    vertices = np.column_stack([xs.ravel(), ys.ravel(), zs.ravel()])

    indices = []
    for r in range(n - 1):
        for c in range(n - 1):
            i = r * n + c
            indices.extend([i, i + 1, i + n, i + 1, i + n + 1, i + n])
    return vertices, np.asarray(indices), (0.0, 0.0, float(zs.min())), (size, size, float(zs.max()))


def build_heightmap(size: float, res: float, z_func) -> Heightmap:
    """Rasterize ``grid_mesh`` output at the mesh's own resolution."""
    vertices, indices, bmin, bmax = grid_mesh(size, res, z_func)
    hm = Heightmap()
    hm.build(vertices, indices, bmin, bmax, HeightmapConfig(resolution_mm=res))
    return hm


def conical_pit(cx: float, cy: float, radius: float = 3.0, rim: float = 10.0, depth: float = 8.0):
    """Z function for a cone-shaped pit cut into a flat plane."""

    def z(x, y):
        r = math.hypot(x - cx, y - cy)
        if r < radius:
            return rim - depth * (1.0 - r / radius)
        return rim

    return z


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def flat_quad():
    """10 x 10 mm square at Z = 5 as two triangles."""
    vertices = np.array(
        [[0.0, 0.0, 5.0], [10.0, 0.0, 5.0], [10.0, 10.0, 5.0], [0.0, 10.0, 5.0]]
    )
    indices = np.array([0, 1, 2, 0, 2, 3])
    return vertices, indices, (0.0, 0.0, 5.0), (10.0, 10.0, 5.0)


@pytest.fixture
def pyramid():
    """Square pyramid on [0, 10]^2 with its apex at (5, 5, 4)."""
    vertices = np.array(
        [
            [0.0, 0.0, 0.0],
            [10.0, 0.0, 0.0],
            [10.0, 10.0, 0.0],
            [0.0, 10.0, 0.0],
            [5.0, 5.0, 4.0],
        ]
    )
    indices = np.array([0, 1, 4, 1, 2, 4, 2, 3, 4, 3, 0, 4])
    return vertices, indices, (0.0, 0.0, 0.0), (10.0, 10.0, 4.0)


@pytest.fixture
def bowl_heightmap():
    """Paraboloid bowl z = (dx^2 + dy^2) / 20, concave radius 10 mm."""
    res = 0.5
    coords = np.arange(11) * res
    xs, ys = np.meshgrid(coords, coords)
    z = ((xs - 2.5) ** 2 + (ys - 2.5) ** 2) / 20.0
    return Heightmap.from_grid(z, res)


@pytest.fixture
def sample_config_dir(temp_dir):
    """Create a sample configuration directory structure."""
    config_dir = temp_dir / "config"
    (config_dir / "machines").mkdir(parents=True)
    (config_dir / "tools").mkdir(parents=True)

    machine_config = """
machine:
  name: "Test Router"

travel:
  x: 300
  y: 200
  z: 80
"""
    (config_dir / "machines" / "test_router.yaml").write_text(machine_config)

    vbit_config = """
tool:
  name: "60 deg V-bit"
  type: v_bit
  diameter: 6.35
  included_angle: 60
  flute_length: 12
"""
    (config_dir / "tools" / "vbit_60.yaml").write_text(vbit_config)

    endmill_config = """
tool:
  type: end_mill
  diameter: 3.175
  flute_length: 15
"""
    (config_dir / "tools" / "endmill_3mm.yaml").write_text(endmill_config)

    carve_config = """
carve:
  heightmap:
    resolution_mm: 0.5
  toolpath:
    stepover: rough
    safe_z_mm: 8
    feed_rate_mm_min: 1200
  tool_angle_deg: 60
  min_island_area_mm2: 0.5
"""
    (config_dir / "carve.yaml").write_text(carve_config)

    return config_dir


@pytest.fixture
def make_heightmap():
    """Factory: ``make_heightmap(size, res, z_func) -> Heightmap``."""
    return build_heightmap


@pytest.fixture
def make_grid_mesh():
    """Factory: ``make_grid_mesh(size, res, z_func) -> (vertices, indices, bmin, bmax)``."""
    return grid_mesh


@pytest.fixture
def make_pit():
    """Factory for conical pit Z functions."""
    return conical_pit
