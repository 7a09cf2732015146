"""
Stock fitting for relief carving.

Maps a model from its native coordinates onto the top surface of a stock
blank: uniform XY scale, explicit or derived carve depth, and an XY offset
from the stock origin corner. Z = 0 is the stock bottom, Z = thickness is
its top face.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]


@dataclass
class StockDimensions:
    """Stock blank size in mm."""

    width: float = 0.0  # X extent
    height: float = 0.0  # Y extent
    thickness: float = 0.0  # Z extent


@dataclass
class FitParams:
    """
    User-selected placement of the model on the stock.

    Attributes:
        scale: Uniform XY scale (aspect locked)
        depth_mm: Carve depth from the top surface (0 = derive from model)
        offset_x: X offset on stock (mm)
        offset_y: Y offset on stock (mm)
    """

    scale: float = 1.0
    depth_mm: float = 0.0
    offset_x: float = 0.0
    offset_y: float = 0.0


@dataclass
class FitResult:
    """Transformed bounds plus fit verdicts."""

    model_min: Vec3 = (0.0, 0.0, 0.0)
    model_max: Vec3 = (0.0, 0.0, 0.0)
    fits_stock: bool = False
    fits_machine: bool = False
    warning: str = ""


class ModelFitter:
    """
    Stateless-per-call transform from model space to stock space.

    Usage::

        fitter = ModelFitter()
        fitter.set_model_bounds((0, 0, -3), (50, 50, 0))
        fitter.set_stock(StockDimensions(60, 60, 10))
        result = fitter.fit(FitParams(scale=fitter.auto_scale(), depth_mm=5))
    """

    def __init__(self) -> None:
        self._model_min: Vec3 = (0.0, 0.0, 0.0)
        self._model_max: Vec3 = (0.0, 0.0, 0.0)
        self._stock = StockDimensions()
        self._travel = (0.0, 0.0, 0.0)

    def set_model_bounds(self, model_min: Sequence[float], model_max: Sequence[float]) -> None:
        self._model_min = _vec3(model_min)
        self._model_max = _vec3(model_max)

    def set_stock(self, stock: StockDimensions) -> None:
        self._stock = stock

    def set_machine_travel(self, travel_x: float, travel_y: float, travel_z: float) -> None:
        """Set machine travel limits; 0 disables the check for that axis."""
        self._travel = (float(travel_x), float(travel_y), float(travel_z))

    @property
    def model_min(self) -> Vec3:
        return self._model_min

    @property
    def model_max(self) -> Vec3:
        return self._model_max

    @property
    def stock(self) -> StockDimensions:
        return self._stock

    def _extents(self) -> Vec3:
        return (
            self._model_max[0] - self._model_min[0],
            self._model_max[1] - self._model_min[1],
            self._model_max[2] - self._model_min[2],
        )

    def _depth(self, params: FitParams) -> float:
        if params.depth_mm > 0.0:
            return params.depth_mm
        return self._extents()[2] * params.scale

    def fit(self, params: FitParams) -> FitResult:
        """
        Compute fitted bounds and validate them against stock and machine.

        Args:
            params: Placement parameters

        Returns:
            FitResult with transformed bounds, fit flags, and warning text
        """
        ext_x, ext_y, _ = self._extents()
        ext_x *= params.scale
        ext_y *= params.scale
        depth = self._depth(params)
        stock = self._stock

        result = FitResult(
            model_min=(params.offset_x, params.offset_y, stock.thickness - depth),
            model_max=(params.offset_x + ext_x, params.offset_y + ext_y, stock.thickness),
        )

        result.fits_stock = (
            ext_x <= stock.width and ext_y <= stock.height and depth <= stock.thickness
        )

        travel_x, travel_y, travel_z = self._travel
        result.fits_machine = True
        if travel_x > 0.0 and result.model_max[0] > travel_x:
            result.fits_machine = False
        if travel_y > 0.0 and result.model_max[1] > travel_y:
            result.fits_machine = False
        if travel_z > 0.0 and stock.thickness > travel_z:
            result.fits_machine = False

        if not result.fits_stock or not result.fits_machine:
            messages: List[str] = []
            if ext_x > stock.width:
                messages.append(
                    f"Model width ({ext_x:.2f} mm) exceeds stock width ({stock.width:.2f} mm)."
                )
            if ext_y > stock.height:
                messages.append(
                    f"Model height ({ext_y:.2f} mm) exceeds stock height ({stock.height:.2f} mm)."
                )
            if depth > stock.thickness:
                messages.append(
                    f"Carve depth ({depth:.2f} mm) exceeds stock thickness "
                    f"({stock.thickness:.2f} mm)."
                )
            if not result.fits_machine:
                messages.append("Model exceeds machine travel limits.")
            result.warning = " ".join(messages)

        return result

    def auto_scale(self) -> float:
        """Largest uniform scale that fits the stock width and height."""
        ext_x, ext_y, _ = self._extents()
        if ext_x <= 0.0 or ext_y <= 0.0 or self._stock.width <= 0.0 or self._stock.height <= 0.0:
            return 1.0
        return min(self._stock.width / ext_x, self._stock.height / ext_y)

    def auto_depth(self) -> float:
        """Model's native Z extent."""
        return self._extents()[2]

    def transform(self, model_point: Sequence[float], params: FitParams) -> Vec3:
        """
        Transform a model-space point into fitted stock space.

        Uses the same normalize -> scale -> position pipeline as ``fit`` so
        transformed points always land inside the fitted bounds.
        """
        ext = self._extents()
        normalized = [
            (float(model_point[axis]) - self._model_min[axis]) / ext[axis] if ext[axis] > 0.0 else 0.0
            for axis in range(3)
        ]
        depth = self._depth(params)
        return (
            params.offset_x + normalized[0] * ext[0] * params.scale,
            params.offset_y + normalized[1] * ext[1] * params.scale,
            self._stock.thickness - depth + normalized[2] * depth,
        )

    def transform_many(self, points, params: FitParams):
        """Vectorized ``transform`` for an (N, 3) numpy array."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        lo = np.asarray(self._model_min, dtype=np.float64)
        ext = np.asarray(self._extents(), dtype=np.float64)
        safe_ext = np.where(ext > 0.0, ext, 1.0)
        normalized = np.where(ext > 0.0, (pts - lo) / safe_ext, 0.0)
        depth = self._depth(params)
        out = np.empty_like(pts)
        out[:, 0] = params.offset_x + normalized[:, 0] * ext[0] * params.scale
        out[:, 1] = params.offset_y + normalized[:, 1] * ext[1] * params.scale
        out[:, 2] = self._stock.thickness - depth + normalized[:, 2] * depth
        return out


def _vec3(values: Sequence[float]) -> Vec3:
    return (float(values[0]), float(values[1]), float(values[2]))
