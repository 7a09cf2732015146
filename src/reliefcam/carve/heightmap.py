"""
Height field rasterization of triangle meshes.

A Heightmap is a regular XY grid holding the highest surface Z found by a
vertical ray cast at each cell. Ray casting is accelerated with a coarse
uniform bin grid so each cell only tests triangles whose XY bounding box
overlaps its bin.

Binary persistence uses the ``.dwhm`` layout (little-endian)::

    magic "DWHM" | u32 version | i32 cols | i32 rows | f32 resolution
    | 3*f32 bounds min | 3*f32 bounds max | f32 min Z | f32 max Z   (52 bytes)
    followed by cols*rows f32 Z values, row-major.
"""

import math
import struct
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from reliefcam.core.logging import get_logger

logger = get_logger(__name__)

Vec3 = Tuple[float, float, float]

# Receives the completed fraction in [0, 1]; returning True requests cancellation.
ProgressCallback = Callable[[float], Optional[bool]]

DWHM_MAGIC = b"DWHM"
DWHM_VERSION = 1
DWHM_HEADER = struct.Struct("<4sIiif3f3fff")

TARGET_BINS = 64
_DET_EPSILON = 1e-7
_BARY_EPSILON = 1e-9
_MIN_SPAN = 1e-6


class BuildStatus(Enum):
    """Outcome of ``Heightmap.build``."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EMPTY = "empty"  # Degenerate input, grid left empty


@dataclass
class HeightmapConfig:
    """
    Rasterization settings.

    Attributes:
        resolution_mm: Grid spacing (mm)
        default_z: Z assigned to cells whose ray hits nothing
    """

    resolution_mm: float = 0.1
    default_z: float = 0.0


@dataclass
class _TriangleSet:
    """Pre-resolved triangle corners plus XY bounding boxes, one row per triangle."""

    a: np.ndarray  # (T, 3)
    e1: np.ndarray  # (T, 3) b - a
    e2: np.ndarray  # (T, 3) c - a
    denom: np.ndarray  # (T,) XY-projected determinant
    min_x: np.ndarray
    max_x: np.ndarray
    min_y: np.ndarray
    max_y: np.ndarray

    def __len__(self) -> int:
        return len(self.denom)


@dataclass
class _SpatialBins:
    """Coarse 2D grid of triangle buckets."""

    bins: List[np.ndarray]  # bin index -> triangle indices
    bin_cols: int
    bin_rows: int
    bin_size: float


class Heightmap:
    """
    Discretized elevation grid built from a triangle mesh.

    Cell ``(col, row)`` samples world XY ``(min_x + col * res, min_y + row * res)``.
    Z values are stored in world space (not normalized) as a flat float32 array.

    Usage::

        hm = Heightmap()
        status = hm.build(vertices, indices, bounds_min, bounds_max,
                          HeightmapConfig(resolution_mm=0.5))
        z = hm.at_mm(12.5, 7.25)
    """

    def __init__(self) -> None:
        self._grid = np.zeros(0, dtype=np.float32)
        self._cols = 0
        self._rows = 0
        self._resolution = 0.1
        self._bounds_min: Vec3 = (0.0, 0.0, 0.0)
        self._bounds_max: Vec3 = (0.0, 0.0, 0.0)
        self._min_z = 0.0
        self._max_z = 0.0
        self._default_z = 0.0

    @classmethod
    def from_grid(
        cls,
        grid: Union[np.ndarray, Sequence[Sequence[float]]],
        resolution: float,
        origin: Tuple[float, float] = (0.0, 0.0),
    ) -> "Heightmap":
        """
        Wrap an existing rows x cols elevation array.

        Args:
            grid: 2D array indexed ``[row, col]``
            resolution: Cell spacing (mm)
            origin: World XY of cell (0, 0)
        """
        arr = np.asarray(grid, dtype=np.float32)
        if arr.ndim != 2:
            raise ValueError(f"Expected a 2D grid, got shape {arr.shape}")
        hm = cls()
        hm._resolution = float(resolution)
        if arr.size == 0:
            return hm
        hm._rows, hm._cols = arr.shape
        hm._grid = arr.reshape(-1).copy()
        hm._min_z = float(hm._grid.min())
        hm._max_z = float(hm._grid.max())
        hm._bounds_min = (float(origin[0]), float(origin[1]), hm._min_z)
        hm._bounds_max = (
            float(origin[0]) + hm._cols * hm._resolution,
            float(origin[1]) + hm._rows * hm._resolution,
            hm._max_z,
        )
        return hm

    # ── Build ─────────────────────────────────────────────────────────

    def build(
        self,
        vertices: Union[np.ndarray, Sequence[Sequence[float]]],
        indices: Union[np.ndarray, Sequence[int]],
        bounds_min: Sequence[float],
        bounds_max: Sequence[float],
        config: HeightmapConfig,
        progress: Optional[ProgressCallback] = None,
    ) -> BuildStatus:
        """
        Rasterize a triangle mesh into this grid.

        Args:
            vertices: (N, 3) vertex positions
            indices: Flat triangle index list (groups of 3)
            bounds_min: Minimum corner of the mesh AABB
            bounds_max: Maximum corner of the mesh AABB
            config: Grid resolution and default Z
            progress: Optional callback receiving the completed fraction;
                      returning True stops the build at the next row boundary

        Returns:
            BuildStatus.COMPLETED, CANCELLED (grid cleared) or EMPTY (degenerate input)
        """
        self._bounds_min = (float(bounds_min[0]), float(bounds_min[1]), float(bounds_min[2]))
        self._bounds_max = (float(bounds_max[0]), float(bounds_max[1]), float(bounds_max[2]))
        self._resolution = float(config.resolution_mm)
        self._default_z = float(config.default_z)

        span_x = self._bounds_max[0] - self._bounds_min[0]
        span_y = self._bounds_max[1] - self._bounds_min[1]
        idx = np.asarray(indices, dtype=np.int64).reshape(-1)

        if span_x < _MIN_SPAN or span_y < _MIN_SPAN or idx.size < 3 or self._resolution <= 0.0:
            self._clear()
            logger.debug("heightmap_degenerate_input", span_x=span_x, span_y=span_y, indices=int(idx.size))
            return BuildStatus.EMPTY

        self._cols = max(1, int(math.ceil(span_x / self._resolution)))
        self._rows = max(1, int(math.ceil(span_y / self._resolution)))

        t0 = time.perf_counter()
        tris = self._prepare_triangles(np.asarray(vertices, dtype=np.float64), idx)
        bins = self._bin_triangles(tris, self._bounds_min, self._bounds_max)
        status = self._build_grid(tris, bins, progress)

        if status == BuildStatus.CANCELLED:
            self._clear()
            logger.info("heightmap_build_cancelled")
            return status

        logger.info(
            "heightmap_built",
            cols=self._cols,
            rows=self._rows,
            triangles=len(tris),
            min_z=round(self._min_z, 4),
            max_z=round(self._max_z, 4),
            duration_s=round(time.perf_counter() - t0, 3),
        )
        return status

    def _clear(self) -> None:
        self._grid = np.zeros(0, dtype=np.float32)
        self._cols = 0
        self._rows = 0
        self._min_z = 0.0
        self._max_z = 0.0

    @staticmethod
    def _prepare_triangles(vertices: np.ndarray, indices: np.ndarray) -> _TriangleSet:
        """Resolve indexed triangles into corner arrays with XY bounding boxes."""
        tri_count = indices.size // 3
        corners = vertices.reshape(-1, 3)[indices[: tri_count * 3].reshape(tri_count, 3)]
        a, b, c = corners[:, 0, :], corners[:, 1, :], corners[:, 2, :]
        e1 = b - a
        e2 = c - a
        xs = corners[:, :, 0]
        ys = corners[:, :, 1]
        return _TriangleSet(
            a=a,
            e1=e1,
            e2=e2,
            denom=e1[:, 0] * e2[:, 1] - e1[:, 1] * e2[:, 0],
            min_x=xs.min(axis=1),
            max_x=xs.max(axis=1),
            min_y=ys.min(axis=1),
            max_y=ys.max(axis=1),
        )

    @staticmethod
    def _bin_triangles(tris: _TriangleSet, bounds_min: Vec3, bounds_max: Vec3) -> _SpatialBins:
        """Bucket triangles into every coarse bin their XY bounding box overlaps."""
        span_x = bounds_max[0] - bounds_min[0]
        span_y = bounds_max[1] - bounds_min[1]
        bin_size = max(span_x, span_y) / TARGET_BINS
        if bin_size < _MIN_SPAN:
            bin_size = 1.0

        bin_cols = max(1, int(math.ceil(span_x / bin_size)))
        bin_rows = max(1, int(math.ceil(span_y / bin_size)))

        c0 = np.clip(np.floor((tris.min_x - bounds_min[0]) / bin_size), 0, bin_cols - 1).astype(np.int64)
        c1 = np.clip(np.floor((tris.max_x - bounds_min[0]) / bin_size), 0, bin_cols - 1).astype(np.int64)
        r0 = np.clip(np.floor((tris.min_y - bounds_min[1]) / bin_size), 0, bin_rows - 1).astype(np.int64)
        r1 = np.clip(np.floor((tris.max_y - bounds_min[1]) / bin_size), 0, bin_rows - 1).astype(np.int64)

        buckets: List[List[int]] = [[] for _ in range(bin_cols * bin_rows)]
        for i in range(len(tris)):
            for r in range(r0[i], r1[i] + 1):
                base = r * bin_cols
                for c in range(c0[i], c1[i] + 1):
                    buckets[base + c].append(i)

        logger.debug("heightmap_bins", bin_cols=bin_cols, bin_rows=bin_rows, bin_size=bin_size)
        return _SpatialBins(
            bins=[np.asarray(b, dtype=np.int64) for b in buckets],
            bin_cols=bin_cols,
            bin_rows=bin_rows,
            bin_size=bin_size,
        )

    def _build_grid(
        self,
        tris: _TriangleSet,
        bins: _SpatialBins,
        progress: Optional[ProgressCallback],
    ) -> BuildStatus:
        """Cast one ray per cell, row by row, polling for cancellation between rows."""
        cols, rows, res = self._cols, self._rows, self._resolution
        min_x, min_y = self._bounds_min[0], self._bounds_min[1]

        grid = np.full(cols * rows, self._default_z, dtype=np.float32)
        world_x = min_x + np.arange(cols, dtype=np.float64) * res
        bin_of_col = np.minimum(
            bins.bin_cols - 1, np.floor((world_x - min_x) / bins.bin_size).astype(np.int64)
        )
        # Columns are sorted, so each bin covers one contiguous run of columns.
        run_starts = np.flatnonzero(np.diff(bin_of_col, prepend=-1))
        run_ends = np.append(run_starts[1:], cols)

        progress_interval = max(1, rows // 100)

        for row in range(rows):
            world_y = min_y + row * res
            bin_row = min(bins.bin_rows - 1, int((world_y - min_y) / bins.bin_size))
            row_z = grid[row * cols : (row + 1) * cols]

            for start, end in zip(run_starts, run_ends):
                bucket = bins.bins[bin_row * bins.bin_cols + bin_of_col[start]]
                if bucket.size == 0:
                    continue
                row_z[start:end] = self._cast_rays(
                    world_x[start:end], world_y, tris, bucket, self._default_z
                )

            if progress is not None and (row % progress_interval == 0 or row == rows - 1):
                if progress((row + 1) / rows):
                    return BuildStatus.CANCELLED

        self._grid = grid
        self._min_z = float(grid.min())
        self._max_z = float(grid.max())
        return BuildStatus.COMPLETED

    @staticmethod
    def _cast_rays(
        ray_x: np.ndarray,
        ray_y: float,
        tris: _TriangleSet,
        bucket: np.ndarray,
        default_z: float,
    ) -> np.ndarray:
        """
        Highest intersection of vertical rays at ``(ray_x[i], ray_y)`` with a bucket.

        The ray direction is -Z, so barycentric coordinates come from the XY
        projection alone. Near-zero projected determinants (vertical or
        degenerate triangles) never hit.
        """
        in_y = (tris.min_y[bucket] <= ray_y) & (ray_y <= tris.max_y[bucket])
        cand = bucket[in_y & (np.abs(tris.denom[bucket]) >= _DET_EPSILON)]
        if cand.size == 0:
            return np.full(ray_x.shape, default_z)

        a = tris.a[cand]
        e1 = tris.e1[cand]
        e2 = tris.e2[cand]
        inv = 1.0 / tris.denom[cand]

        sx = ray_x[:, None] - a[None, :, 0]  # (M, K)
        sy = ray_y - a[:, 1]  # (K,)
        u = (sx * e2[:, 1] - sy * e2[:, 0]) * inv
        v = (e1[:, 0] * sy - e1[:, 1] * sx) * inv

        hit = (
            (ray_x[:, None] >= tris.min_x[cand])
            & (ray_x[:, None] <= tris.max_x[cand])
            & (u >= -_BARY_EPSILON)
            & (v >= -_BARY_EPSILON)
            & (u + v <= 1.0 + _BARY_EPSILON)
        )
        z = a[:, 2] + u * e1[:, 2] + v * e2[:, 2]
        best = np.where(hit, z, -np.inf).max(axis=1)
        return np.where(np.isfinite(best), best, default_z)

    # ── Accessors ─────────────────────────────────────────────────────

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def resolution(self) -> float:
        return self._resolution

    @property
    def bounds_min(self) -> Vec3:
        return self._bounds_min

    @property
    def bounds_max(self) -> Vec3:
        return self._bounds_max

    @property
    def min_z(self) -> float:
        return self._min_z

    @property
    def max_z(self) -> float:
        return self._max_z

    @property
    def empty(self) -> bool:
        return self._grid.size == 0

    @property
    def data(self) -> np.ndarray:
        """Flat row-major Z array (read-only view)."""
        view = self._grid.view()
        view.flags.writeable = False
        return view

    @property
    def grid(self) -> np.ndarray:
        """Z values as a read-only ``[row, col]`` array."""
        return self.data.reshape(self._rows, self._cols)

    def index(self, col: int, row: int) -> int:
        """Flat array index of a cell."""
        return row * self._cols + col

    def in_bounds(self, col: int, row: int) -> bool:
        return 0 <= col < self._cols and 0 <= row < self._rows

    def cell_to_world(self, col: float, row: float) -> Tuple[float, float]:
        """World XY of a (possibly fractional) cell coordinate."""
        return (
            self._bounds_min[0] + col * self._resolution,
            self._bounds_min[1] + row * self._resolution,
        )

    def at(self, col: int, row: int) -> float:
        """Z at a grid cell; out-of-range cells return the bounds minimum Z."""
        if not self.in_bounds(col, row):
            return self._bounds_min[2]
        return float(self._grid[row * self._cols + col])

    def at_mm(self, x: float, y: float) -> float:
        """Bilinearly interpolated Z at world XY (clamped to the grid)."""
        if self.empty:
            return 0.0
        return float(self.sample(np.array([x], dtype=np.float64), np.array([y], dtype=np.float64))[0])

    def sample(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """
        Vectorized ``at_mm``.

        Coordinates are clamped into the grid before interpolation; grids one
        cell wide or tall fall back to nearest-cell lookup.
        """
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)
        if self.empty:
            return np.zeros(np.broadcast(xs, ys).shape)

        cols, rows = self._cols, self._rows
        cx = np.clip((xs - self._bounds_min[0]) / self._resolution, 0.0, cols - 1)
        cy = np.clip((ys - self._bounds_min[1]) / self._resolution, 0.0, rows - 1)
        z = self._grid

        if cols < 2 or rows < 2:
            c = np.rint(cx).astype(np.int64)
            r = np.rint(cy).astype(np.int64)
            return z[r * cols + c].astype(np.float64)

        c0 = np.minimum(np.floor(cx).astype(np.int64), cols - 2)
        r0 = np.minimum(np.floor(cy).astype(np.int64), rows - 2)
        tx = cx - c0
        ty = cy - r0

        base = r0 * cols + c0
        z00 = z[base].astype(np.float64)
        z10 = z[base + 1].astype(np.float64)
        z01 = z[base + cols].astype(np.float64)
        z11 = z[base + cols + 1].astype(np.float64)

        top = z00 * (1.0 - tx) + z10 * tx
        bot = z01 * (1.0 - tx) + z11 * tx
        return top * (1.0 - ty) + bot * ty

    # ── Persistence ───────────────────────────────────────────────────

    def save(self, path: Union[str, Path]) -> bool:
        """Write the grid in ``.dwhm`` format. Returns False for an empty grid or I/O failure."""
        if self.empty:
            return False
        header = DWHM_HEADER.pack(
            DWHM_MAGIC,
            DWHM_VERSION,
            self._cols,
            self._rows,
            self._resolution,
            *self._bounds_min,
            *self._bounds_max,
            self._min_z,
            self._max_z,
        )
        try:
            with open(path, "wb") as f:
                f.write(header)
                f.write(self._grid.astype("<f4").tobytes())
        except OSError as e:
            logger.warning("heightmap_save_failed", path=str(path), error=str(e))
            return False
        return True

    def load(self, path: Union[str, Path]) -> bool:
        """
        Read a ``.dwhm`` file.

        Rejects mismatched magic/version, non-positive dimensions and truncated
        bodies. On failure the current grid is left untouched.
        """
        try:
            with open(path, "rb") as f:
                raw = f.read()
        except OSError as e:
            logger.warning("heightmap_load_failed", path=str(path), error=str(e))
            return False

        if len(raw) < DWHM_HEADER.size:
            logger.warning("heightmap_load_failed", path=str(path), error="truncated header")
            return False

        fields = DWHM_HEADER.unpack_from(raw, 0)
        magic, version, cols, rows, resolution = fields[:5]
        bounds_min = tuple(float(v) for v in fields[5:8])
        bounds_max = tuple(float(v) for v in fields[8:11])
        min_z, max_z = fields[11], fields[12]

        if magic != DWHM_MAGIC or version != DWHM_VERSION or cols <= 0 or rows <= 0:
            logger.warning(
                "heightmap_load_rejected", path=str(path), version=version, cols=cols, rows=rows
            )
            return False

        count = cols * rows
        body = raw[DWHM_HEADER.size :]
        if len(body) < count * 4:
            logger.warning("heightmap_load_failed", path=str(path), error="truncated body")
            return False

        self._grid = np.frombuffer(body, dtype="<f4", count=count).astype(np.float32)
        self._cols = cols
        self._rows = rows
        self._resolution = float(resolution)
        self._bounds_min = bounds_min
        self._bounds_max = bounds_max
        self._min_z = float(min_z)
        self._max_z = float(max_z)
        return True

    def export_png(self, path: Union[str, Path]) -> bool:
        """
        Export a 16-bit grayscale raster for visualization.

        Written as binary PGM (P5, big-endian samples) with the ``.pgm``
        suffix, normalized over [min_z, max_z]. A flat field (range below
        1e-6) exports fully saturated.
        """
        if self.empty:
            return False

        out_path = Path(path).with_suffix(".pgm")
        z_range = self._max_z - self._min_z
        if z_range < 1e-6:
            samples = np.full(self._grid.shape, 65535, dtype=np.uint16)
        else:
            normalized = np.clip((self._grid.astype(np.float64) - self._min_z) / z_range, 0.0, 1.0)
            samples = (normalized * 65535.0).astype(np.uint16)

        try:
            with open(out_path, "wb") as f:
                f.write(f"P5\n{self._cols} {self._rows}\n65535\n".encode("ascii"))
                f.write(samples.astype(">u2").tobytes())
        except OSError as e:
            logger.warning("heightmap_export_failed", path=str(out_path), error=str(e))
            return False
        return True
