"""
Discrete curvature analysis of a heightmap.

Mean curvature is approximated with central second differences on the
grid. Positive values mark concave regions (valleys), which limit the
largest ball or tip radius that can reach the bottom.
"""

from dataclasses import dataclass

import numpy as np

from reliefcam.carve.heightmap import Heightmap
from reliefcam.core.logging import get_logger

logger = get_logger(__name__)

# Curvatures below NOISE_FLOOR_MM / res^2 are treated as flat.
NOISE_FLOOR_MM = 0.001
MIN_CONCAVE_NEIGHBORS = 2


@dataclass
class CurvatureResult:
    """
    Summary of concave curvature over a heightmap.

    Radii are only meaningful when ``concave_point_count > 0``.
    """

    min_concave_radius: float = 0.0
    min_radius_col: int = 0
    min_radius_row: int = 0
    avg_concave_radius: float = 0.0
    concave_point_count: int = 0


def _mean_curvature(z: np.ndarray, res: float) -> np.ndarray:
    """Mean curvature of every interior cell, shape (rows-2, cols-2)."""
    res_sq = res * res
    center = z[1:-1, 1:-1]
    d2x = (z[1:-1, 2:] - 2.0 * center + z[1:-1, :-2]) / res_sq
    d2y = (z[2:, 1:-1] - 2.0 * center + z[:-2, 1:-1]) / res_sq
    return (d2x + d2y) * 0.5


def analyze_curvature(heightmap: Heightmap) -> CurvatureResult:
    """
    Find the minimum and average concave radius across interior cells.

    A cell counts when its mean curvature exceeds the noise floor and at
    least two of its interior cardinal neighbors do as well. Ties on the
    minimum radius resolve to the first cell in row-major order.
    """
    result = CurvatureResult()
    if heightmap.empty or heightmap.cols < 3 or heightmap.rows < 3:
        return result

    res = heightmap.resolution
    z = heightmap.grid.astype(np.float64)
    h = _mean_curvature(z, res)
    above = h > NOISE_FLOOR_MM / (res * res)

    # Neighbor counts over interior cells only: pad with False so border
    # neighbors never contribute.
    padded = np.pad(above, 1, constant_values=False)
    neighbors = (
        padded[1:-1, :-2].astype(np.int32)
        + padded[1:-1, 2:]
        + padded[:-2, 1:-1]
        + padded[2:, 1:-1]
    )
    concave = above & (neighbors >= MIN_CONCAVE_NEIGHBORS)

    count = int(np.count_nonzero(concave))
    result.concave_point_count = count
    if count == 0:
        return result

    radii = np.where(concave, 1.0 / np.where(concave, h, 1.0), np.inf)
    flat_idx = int(np.argmin(radii))
    inner_row, inner_col = divmod(flat_idx, radii.shape[1])

    result.min_concave_radius = float(radii.flat[flat_idx])
    result.min_radius_col = inner_col + 1
    result.min_radius_row = inner_row + 1
    result.avg_concave_radius = float(radii[concave].mean())

    logger.debug(
        "curvature_analyzed",
        concave_points=count,
        min_radius=round(result.min_concave_radius, 4),
        avg_radius=round(result.avg_concave_radius, 4),
    )
    return result


def compute_local_radius(heightmap: Heightmap, col: int, row: int) -> float:
    """
    Signed curvature radius at one cell.

    Returns:
        Positive radius for concave cells, negative for convex, and 0.0 for
        border cells or curvature below 1e-8.
    """
    if col < 1 or col >= heightmap.cols - 1 or row < 1 or row >= heightmap.rows - 1:
        return 0.0

    res_sq = heightmap.resolution * heightmap.resolution
    z = heightmap.at(col, row)
    d2x = (heightmap.at(col + 1, row) - 2.0 * z + heightmap.at(col - 1, row)) / res_sq
    d2y = (heightmap.at(col, row + 1) - 2.0 * z + heightmap.at(col, row - 1)) / res_sq
    mean_h = (d2x + d2y) * 0.5

    if abs(mean_h) < 1e-8:
        return 0.0
    return 1.0 / mean_h
