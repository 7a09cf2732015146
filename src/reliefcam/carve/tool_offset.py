"""
Drop-cutter offset strategies.

Each strategy answers one question for a batch of XY positions: how far
above the raw heightmap must the tool reference point sit so the cutter
touches the surface without gouging a neighbor. Results are non-negative
lifts in mm, computed with vectorized ``Heightmap.sample`` calls.
"""

import math
from typing import Dict, List, Tuple

import numpy as np

from reliefcam.carve.heightmap import Heightmap
from reliefcam.core.tools import ToolGeometry, ToolType

# Eight neighbor directions at one grid step.
_RING_DIRECTIONS: Tuple[Tuple[int, int], ...] = (
    (1, 0), (-1, 0), (0, 1), (0, -1),
    (1, 1), (1, -1), (-1, 1), (-1, -1),
)


def _disc_offsets(radius: float, res: float) -> List[Tuple[float, float, float]]:
    """Grid offsets (dx, dy, dx^2 + dy^2) within a disc of the given radius."""
    steps = max(1, int(radius / res))
    r_sq = radius * radius
    offsets = []
    for di in range(-steps, steps + 1):
        for dj in range(-steps, steps + 1):
            dx = di * res
            dy = dj * res
            d_sq = dx * dx + dy * dy
            if d_sq <= r_sq:
                offsets.append((dx, dy, d_sq))
    return offsets


class ToolOffset:
    """Base strategy: no compensation."""

    def lift(self, heightmap: Heightmap, xs: np.ndarray, ys: np.ndarray, tool: ToolGeometry) -> np.ndarray:
        return np.zeros(np.shape(xs))


class ConeOffset(ToolOffset):
    """
    V-bit compensation.

    The tip contacts flat areas directly. At distance ``d`` the cone flank
    sits ``d / tan(half_angle)`` above the tip, so any of the eight
    neighbors one cell away that rises above the flank lifts the tool.
    """

    def lift(self, heightmap, xs, ys, tool):
        half_angle = tool.included_angle * 0.5
        if half_angle <= 0.0 or half_angle >= 90.0:
            return np.zeros(np.shape(xs))
        tan_half = math.tan(math.radians(half_angle))

        res = heightmap.resolution
        center_z = heightmap.sample(xs, ys)
        max_raise = np.zeros_like(center_z)
        for di, dj in _RING_DIRECTIONS:
            dx = di * res
            dy = dj * res
            cone_z = center_z + math.hypot(dx, dy) / tan_half
            neighbor_z = heightmap.sample(xs + dx, ys + dy)
            max_raise = np.maximum(max_raise, neighbor_z - cone_z)
        return max_raise


class SphereOffset(ToolOffset):
    """Ball nose drop-cutter: tool center rides R above the highest contact."""

    def lift(self, heightmap, xs, ys, tool):
        radius = tool.tip_radius if tool.tip_radius > 0.0 else tool.diameter * 0.5
        if radius <= 0.0:
            return np.zeros(np.shape(xs))

        center_z = heightmap.sample(xs, ys)
        contact_z = center_z + radius
        for dx, dy, d_sq in _disc_offsets(radius, heightmap.resolution):
            surface = heightmap.sample(xs + dx, ys + dy)
            contact_z = np.maximum(contact_z, surface + math.sqrt(radius * radius - d_sq))
        return contact_z - center_z


class FlatOffset(ToolOffset):
    """Flat-bottom cutter: rests on the highest surface point under its footprint."""

    def lift(self, heightmap, xs, ys, tool):
        radius = tool.diameter * 0.5
        if radius <= 0.0:
            return np.zeros(np.shape(xs))

        center_z = heightmap.sample(xs, ys)
        max_z = center_z.copy()
        for dx, dy, _ in _disc_offsets(radius, heightmap.resolution):
            max_z = np.maximum(max_z, heightmap.sample(xs + dx, ys + dy))
        return max_z - center_z


_FLAT = FlatOffset()
_SPHERE = SphereOffset()

OFFSET_STRATEGIES: Dict[ToolType, ToolOffset] = {
    ToolType.V_BIT: ConeOffset(),
    ToolType.BALL_NOSE: _SPHERE,
    ToolType.TAPERED_BALL_NOSE: _SPHERE,
    ToolType.END_MILL: _FLAT,
}


def offset_for_tool(tool: ToolGeometry) -> ToolOffset:
    """Strategy for a tool family; anything unlisted is treated as flat-bottomed."""
    return OFFSET_STRATEGIES.get(tool.tool_type, _FLAT)
