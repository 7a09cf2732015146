"""
Scan-line toolpath generation over a heightmap.

Lines are laid out at the stepover pitch across the step axis and sampled
at heightmap resolution along the scan axis. Every line starts with a
retract to safe Z and a rapid to its start, so rapid moves bound each cut.
Feed points are then lifted by the tool's drop-cutter offset.
"""

import time
from typing import List, Optional, Tuple

import numpy as np

from reliefcam.carve.heightmap import Heightmap
from reliefcam.carve.island_detector import IslandResult
from reliefcam.carve.tool_offset import offset_for_tool
from reliefcam.carve.toolpath_types import (
    MillDirection,
    ScanAxis,
    Toolpath,
    ToolpathConfig,
    ToolpathPoint,
)
from reliefcam.core.logging import get_logger
from reliefcam.core.tools import ToolGeometry, ToolType

logger = get_logger(__name__)

RAPID_RATE_MM_MIN = 5000.0

# (scan along X?) for each pass of an axis selection
_AXIS_PASSES = {
    ScanAxis.X_ONLY: (True,),
    ScanAxis.Y_ONLY: (False,),
    ScanAxis.X_THEN_Y: (True, False),
    ScanAxis.Y_THEN_X: (False, True),
}


class _PointBuffer:
    """Column-wise accumulation of motion targets."""

    def __init__(self) -> None:
        self.xs: List[np.ndarray] = []
        self.ys: List[np.ndarray] = []
        self.zs: List[np.ndarray] = []
        self.rapid: List[np.ndarray] = []
        self.last: Optional[Tuple[float, float]] = None

    def add_rapid(self, x: float, y: float, z: float) -> None:
        self.xs.append(np.array([x]))
        self.ys.append(np.array([y]))
        self.zs.append(np.array([z]))
        self.rapid.append(np.array([True]))
        self.last = (x, y)

    def add_cuts(self, xs: np.ndarray, ys: np.ndarray, zs: np.ndarray) -> None:
        self.xs.append(xs)
        self.ys.append(ys)
        self.zs.append(zs)
        self.rapid.append(np.zeros(len(xs), dtype=bool))
        self.last = (float(xs[-1]), float(ys[-1]))

    def arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        if not self.xs:
            empty = np.zeros(0)
            return empty, empty, empty, np.zeros(0, dtype=bool)
        return (
            np.concatenate(self.xs),
            np.concatenate(self.ys),
            np.concatenate(self.zs),
            np.concatenate(self.rapid),
        )


class ToolpathGenerator:
    """
    Generates finishing and clearing passes from a heightmap.

    Usage::

        gen = ToolpathGenerator()
        path = gen.generate_finishing(hm, ToolpathConfig(), tool.tip_diameter, tool)
        warnings = gen.validate_limits(path, 600, 400, 100)
    """

    def generate_finishing(
        self,
        heightmap: Heightmap,
        config: ToolpathConfig,
        tool_tip_diameter: float,
        tool: ToolGeometry,
    ) -> Toolpath:
        """
        Raster the heightmap with offset-compensated scan lines.

        Args:
            heightmap: Source height field
            config: Scan axis, direction, stepover and rates
            tool_tip_diameter: Diameter the stepover percentage applies to
            tool: Geometry used for drop-cutter compensation

        Returns:
            Toolpath with metrics filled in; empty for an empty heightmap or
            a non-positive tip diameter
        """
        path = Toolpath()
        if heightmap.empty or tool_tip_diameter <= 0.0:
            return path

        stepover = tool_tip_diameter * config.stepover_pct / 100.0
        if stepover <= 0.0:
            return path

        t0 = time.perf_counter()
        buf = _PointBuffer()
        for scan_x in _AXIS_PASSES[config.axis]:
            self._scan_lines(buf, heightmap, config, stepover, scan_x)

        xs, ys, zs, rapid = buf.arrays()
        feed = ~rapid
        if feed.any():
            zs[feed] += offset_for_tool(tool).lift(heightmap, xs[feed], ys[feed], tool)

        path.points = [
            ToolpathPoint(position=(float(x), float(y), float(z)), rapid=bool(r))
            for x, y, z, r in zip(xs, ys, zs, rapid)
        ]
        self.compute_metrics(path, config)

        logger.info(
            "toolpath_generated",
            tool_type=tool.tool_type.value,
            axis=config.axis.value,
            stepover_mm=round(stepover, 4),
            points=len(path.points),
            lines=path.line_count,
            duration_s=round(time.perf_counter() - t0, 3),
        )
        return path

    def generate_clearing(
        self,
        heightmap: Heightmap,
        islands: IslandResult,
        config: ToolpathConfig,
        tool_diameter: float,
    ) -> Toolpath:
        """
        Clearing pass with a flat end mill of the given diameter.

        Currently rasters the full heightmap; ``islands`` only gates whether
        the caller requests a clearing pass at all.
        """
        clear_tool = ToolGeometry(tool_type=ToolType.END_MILL, diameter=tool_diameter)
        logger.debug("clearing_pass_requested", islands=len(islands.islands), tool_diameter=tool_diameter)
        return self.generate_finishing(heightmap, config, tool_diameter, clear_tool)

    def _scan_lines(
        self,
        buf: _PointBuffer,
        heightmap: Heightmap,
        config: ToolpathConfig,
        stepover: float,
        scan_x: bool,
    ) -> None:
        """Append one axis worth of scan lines (scan along X when ``scan_x``)."""
        bmin, bmax = heightmap.bounds_min, heightmap.bounds_max
        res = heightmap.resolution
        scan_axis, step_axis = (0, 1) if scan_x else (1, 0)
        scan_min, scan_max = bmin[scan_axis], bmax[scan_axis]
        step_min, step_max = bmin[step_axis], bmax[step_axis]

        step_extent = step_max - step_min
        if step_extent <= 0.0:
            return

        num_lines = max(1, int(step_extent / stepover) + 1)
        num_points = max(1, int((scan_max - scan_min) / res) + 1)
        scan_positions = scan_min + np.arange(num_points, dtype=np.float64) * res

        for line in range(num_lines):
            step_pos = step_min + line * stepover
            if step_pos > step_max:
                break

            if config.direction == MillDirection.CLIMB:
                forward = True
            elif config.direction == MillDirection.CONVENTIONAL:
                forward = False
            else:
                forward = line % 2 == 0

            if buf.last is not None:
                buf.add_rapid(buf.last[0], buf.last[1], config.safe_z_mm)

            scan = scan_positions if forward else scan_positions[::-1]
            steps = np.full(num_points, step_pos)
            xs, ys = (scan, steps) if scan_x else (steps, scan)

            buf.add_rapid(float(xs[0]), float(ys[0]), config.safe_z_mm)
            buf.add_cuts(xs, ys, heightmap.sample(xs, ys))

    @staticmethod
    def compute_metrics(path: Toolpath, config: ToolpathConfig) -> None:
        """Fill in path length, estimated time and G-code line count."""
        if len(path.points) < 2:
            path.total_distance_mm = 0.0
            path.estimated_time_sec = 0.0
            path.line_count = 0
            return

        pos = np.array([p.position for p in path.points], dtype=np.float64)
        rapid = np.array([p.rapid for p in path.points[1:]], dtype=bool)
        dist = np.linalg.norm(np.diff(pos, axis=0), axis=1)
        moving = dist > 0.0
        rate = np.where(rapid, RAPID_RATE_MM_MIN, config.feed_rate_mm_min)

        path.total_distance_mm = float(dist.sum())
        path.estimated_time_sec = float((dist[moving] / rate[moving]).sum() * 60.0)
        path.line_count = int(np.count_nonzero(moving))

    @staticmethod
    def validate_limits(
        path: Toolpath, travel_x: float, travel_y: float, travel_z: float
    ) -> List[str]:
        """
        Report each axis that leaves ``[0, travel]`` at most once.

        Returns:
            Warnings in the order the violations were first seen
        """
        travel = (travel_x, travel_y, travel_z)
        seen = [False, False, False]
        warnings: List[str] = []

        for pt in path.points:
            for axis, name in enumerate("XYZ"):
                value = pt.position[axis]
                if not seen[axis] and (value < 0.0 or value > travel[axis]):
                    seen[axis] = True
                    warnings.append(f"{name} axis exceeds travel limit ({travel[axis]:g} mm)")
            if all(seen):
                break

        return warnings
