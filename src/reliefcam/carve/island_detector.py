"""
Island detection for tapered tools.

An island is a connected region of cells that a tapered tool (V-bit or
tapered ball nose) cannot reach because the surrounding walls are steeper
than the tool's half-angle. Islands are what a clearing pass has to remove.
"""

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Tuple

import numpy as np

from reliefcam.carve.heightmap import Heightmap
from reliefcam.core.logging import get_logger

logger = get_logger(__name__)

Cell = Tuple[int, int]

# Cardinal neighbor offsets as (d_col, d_row).
CARDINAL_OFFSETS: Tuple[Cell, ...] = ((-1, 0), (1, 0), (0, -1), (0, 1))

ACCESSIBLE = 0
BURIED = 1

# Absorbs float32 rasterization noise on level ground.
_REACH_TOLERANCE = 1e-6


@dataclass
class Island:
    """One connected buried region."""

    id: int = 0
    cells: List[Cell] = field(default_factory=list)  # (col, row)
    min_z: float = 0.0
    max_z: float = 0.0
    depth: float = 0.0  # max_z - min_z
    area_mm2: float = 0.0
    centroid: Tuple[float, float] = (0.0, 0.0)
    bounds_min: Tuple[float, float] = (0.0, 0.0)
    bounds_max: Tuple[float, float] = (0.0, 0.0)
    min_clear_diameter: float = 0.0  # Smallest tool diameter that clears the region


@dataclass
class IslandResult:
    """Islands plus a per-cell mask (island id, or -1)."""

    islands: List[Island] = field(default_factory=list)
    island_mask: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int32))
    mask_cols: int = 0
    mask_rows: int = 0

    @property
    def has_islands(self) -> bool:
        return bool(self.islands)


def cell_index(col: int, row: int, cols: int) -> int:
    return row * cols + col


def index_cell(index: int, cols: int) -> Cell:
    row, col = divmod(index, cols)
    return col, row


def _neighbors(col: int, row: int, cols: int, rows: int):
    for dc, dr in CARDINAL_OFFSETS:
        nc, nr = col + dc, row + dr
        if 0 <= nc < cols and 0 <= nr < rows:
            yield nc, nr


def compute_burial_mask(heightmap: Heightmap, tool_angle_deg: float) -> np.ndarray:
    """
    Flat uint8 mask: BURIED where the taper cannot reach, ACCESSIBLE elsewhere.

    The open border seeds accessibility. From an accessible cell at ``z`` the
    taper reaches a cardinal neighbor at ``nz`` when ``z - nz <= reach`` with
    ``reach = res * tan(angle / 2)``: climbing is always possible, descending
    more than one taper step per cell is not. Accessibility spreads
    breadth-first until no cell changes.
    """
    cols, rows = heightmap.cols, heightmap.rows
    reach = heightmap.resolution * math.tan(math.radians(tool_angle_deg * 0.5)) + _REACH_TOLERANCE
    flat_z = heightmap.data.astype(np.float64)

    mask = np.full(cols * rows, BURIED, dtype=np.uint8)
    queue: Deque[Cell] = deque()
    for row in range(rows):
        for col in (range(cols) if row in (0, rows - 1) else {0, cols - 1}):
            mask[cell_index(col, row, cols)] = ACCESSIBLE
            queue.append((col, row))

    while queue:
        c, r = queue.popleft()
        cz = flat_z[cell_index(c, r, cols)]
        for nc, nr in _neighbors(c, r, cols, rows):
            nidx = cell_index(nc, nr, cols)
            if mask[nidx] == ACCESSIBLE:
                continue
            if cz - flat_z[nidx] <= reach:
                mask[nidx] = ACCESSIBLE
                queue.append((nc, nr))

    return mask


def _flood_fill(mask: np.ndarray, cols: int, rows: int) -> List[List[Cell]]:
    """4-connected groups of buried cells, discovered in row-major order."""
    groups: List[List[Cell]] = []
    visited = np.zeros(mask.shape, dtype=bool)

    for start in np.flatnonzero(mask == BURIED):
        if visited[start]:
            continue
        visited[start] = True
        group: List[Cell] = []
        queue: Deque[Cell] = deque([index_cell(int(start), cols)])
        while queue:
            c, r = queue.popleft()
            group.append((c, r))
            for nc, nr in _neighbors(c, r, cols, rows):
                nidx = cell_index(nc, nr, cols)
                if mask[nidx] == ACCESSIBLE or visited[nidx]:
                    continue
                visited[nidx] = True
                queue.append((nc, nr))
        groups.append(group)

    return groups


def _max_distance_from_rim(cells: List[Cell], mask: np.ndarray, cols: int, rows: int) -> int:
    """Largest BFS step count from the island rim to any interior cell."""
    dist = np.full(mask.shape, -1, dtype=np.int64)
    queue: Deque[Cell] = deque()

    for c, r in cells:
        on_rim = False
        for dc, dr in CARDINAL_OFFSETS:
            nc, nr = c + dc, r + dr
            if not (0 <= nc < cols and 0 <= nr < rows) or mask[cell_index(nc, nr, cols)] == ACCESSIBLE:
                on_rim = True
                break
        if on_rim:
            dist[cell_index(c, r, cols)] = 0
            queue.append((c, r))

    max_dist = 0
    while queue:
        c, r = queue.popleft()
        cur = dist[cell_index(c, r, cols)]
        for nc, nr in _neighbors(c, r, cols, rows):
            nidx = cell_index(nc, nr, cols)
            if mask[nidx] == ACCESSIBLE or dist[nidx] >= 0:
                continue
            dist[nidx] = cur + 1
            max_dist = max(max_dist, int(cur) + 1)
            queue.append((nc, nr))

    return max_dist


def detect_islands(
    heightmap: Heightmap,
    tool_angle_deg: float,
    min_island_area_mm2: float = 1.0,
) -> IslandResult:
    """
    Find regions a tapered tool of the given included angle cannot reach.

    Args:
        heightmap: Source height field
        tool_angle_deg: Included angle of the tool (degrees)
        min_island_area_mm2: Smaller regions are discarded (not masked)

    Returns:
        IslandResult with ids assigned sequentially from 0
    """
    result = IslandResult()
    if heightmap.empty:
        return result

    cols, rows = heightmap.cols, heightmap.rows
    res = heightmap.resolution
    cell_area = res * res
    origin_x, origin_y = heightmap.bounds_min[0], heightmap.bounds_min[1]

    mask = compute_burial_mask(heightmap, tool_angle_deg)
    groups = _flood_fill(mask, cols, rows)

    result.island_mask = np.full(cols * rows, -1, dtype=np.int32)
    result.mask_cols = cols
    result.mask_rows = rows

    z = heightmap.data
    for group in groups:
        area = len(group) * cell_area
        if area < min_island_area_mm2:
            continue

        island_id = len(result.islands)
        cell_arr = np.asarray(group, dtype=np.int64)
        flat = cell_arr[:, 1] * cols + cell_arr[:, 0]
        cell_z = z[flat].astype(np.float64)
        wx = origin_x + cell_arr[:, 0] * res
        wy = origin_y + cell_arr[:, 1] * res
        result.island_mask[flat] = island_id

        min_z = float(cell_z.min())
        max_z = float(cell_z.max())
        result.islands.append(
            Island(
                id=island_id,
                cells=group,
                min_z=min_z,
                max_z=max_z,
                depth=max_z - min_z,
                area_mm2=area,
                centroid=(float(wx.mean()), float(wy.mean())),
                bounds_min=(float(wx.min()), float(wy.min())),
                bounds_max=(float(wx.max()), float(wy.max())),
                min_clear_diameter=2.0 * res * _max_distance_from_rim(group, mask, cols, rows),
            )
        )

    logger.debug(
        "islands_detected",
        tool_angle_deg=tool_angle_deg,
        buried_groups=len(groups),
        islands=len(result.islands),
    )
    return result
