"""
Carve job orchestration.

A CarveJob owns one heightmap and runs its construction on a background
worker thread. Analysis, toolpath generation and export then run
synchronously on the caller's thread once the job is READY.

State machine::

    IDLE -> COMPUTING -> READY | ERROR
    COMPUTING --cancel--> IDLE
"""

import threading
import time
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from reliefcam.carve.heightmap import BuildStatus, Heightmap, HeightmapConfig
from reliefcam.carve.island_detector import IslandResult, detect_islands
from reliefcam.carve.model_fitter import FitParams, ModelFitter
from reliefcam.carve.surface_analysis import CurvatureResult, analyze_curvature
from reliefcam.carve.toolpath_generator import ToolpathGenerator
from reliefcam.carve.toolpath_types import MultiPassToolpath, Toolpath, ToolpathConfig
from reliefcam.core.exceptions import JobStateError
from reliefcam.core.logging import get_logger
from reliefcam.core.tools import ToolGeometry

logger = get_logger(__name__)


class CarveJobState(Enum):
    IDLE = "idle"
    COMPUTING = "computing"
    READY = "ready"
    ERROR = "error"


class CarveJob:
    """
    Sequences heightmap build, analysis and toolpath generation.

    ``state`` and ``progress`` may be polled from any thread while a build
    runs; ``cancel()`` is honored at the next row boundary.

    Usage::

        job = CarveJob()
        job.start_heightmap(vertices, indices, fitter, params, HeightmapConfig(0.2))
        job.wait()
        job.analyze_heightmap(tool_angle_deg=60)
        job.generate_toolpath(ToolpathConfig(), v_bit)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancel_flag = threading.Event()
        self._worker: Optional[threading.Thread] = None

        self._state = CarveJobState.IDLE
        self._progress = 0.0
        self._error = ""

        self._heightmap = Heightmap()
        self._curvature = CurvatureResult()
        self._islands = IslandResult()
        self._analyzed = False
        self._toolpath = MultiPassToolpath()

    # ── Thread-safe status ────────────────────────────────────────────

    @property
    def state(self) -> CarveJobState:
        with self._lock:
            return self._state

    @property
    def progress(self) -> float:
        with self._lock:
            return self._progress

    @property
    def error_message(self) -> str:
        with self._lock:
            return self._error

    def _set_state(self, state: CarveJobState, error: str = "") -> None:
        with self._lock:
            self._state = state
            self._error = error

    def _set_progress(self, value: float) -> None:
        with self._lock:
            self._progress = value

    # ── Heightmap build ───────────────────────────────────────────────

    def start_heightmap(
        self,
        vertices: Union[np.ndarray, Sequence[Sequence[float]]],
        indices: Union[np.ndarray, Sequence[int]],
        fitter: ModelFitter,
        fit_params: FitParams,
        hm_config: HeightmapConfig,
    ) -> None:
        """
        Fit the mesh to the stock and rasterize it on a worker thread.

        Any previous build is waited on first. Returns immediately; poll
        ``state``/``progress`` or call ``wait()``.
        """
        self.wait()

        self._cancel_flag.clear()
        with self._lock:
            self._state = CarveJobState.COMPUTING
            self._progress = 0.0
            self._error = ""
        self._analyzed = False

        try:
            transformed = fitter.transform_many(vertices, fit_params)
            fit = fitter.fit(fit_params)
            idx = np.asarray(indices, dtype=np.int64).reshape(-1)
        except Exception as e:
            logger.error("heightmap_job_failed", error=str(e))
            self._set_state(CarveJobState.ERROR, str(e))
            raise

        self._worker = threading.Thread(
            target=self._build_worker,
            args=(transformed, idx, fit.model_min, fit.model_max, hm_config),
            name="carve-heightmap",
            daemon=True,
        )
        self._worker.start()
        logger.info("heightmap_job_started", vertices=len(transformed), triangles=idx.size // 3)

    def _build_worker(
        self,
        vertices: np.ndarray,
        indices: np.ndarray,
        bounds_min: Tuple[float, float, float],
        bounds_max: Tuple[float, float, float],
        config: HeightmapConfig,
    ) -> None:
        def on_progress(fraction: float) -> bool:
            self._set_progress(fraction)
            return self._cancel_flag.is_set()

        t0 = time.perf_counter()
        heightmap = Heightmap()
        try:
            status = heightmap.build(vertices, indices, bounds_min, bounds_max, config, on_progress)
        except Exception as e:
            if self._cancel_flag.is_set():
                self._set_state(CarveJobState.IDLE)
            else:
                logger.error("heightmap_job_failed", error=str(e), exc_info=True)
                self._set_state(CarveJobState.ERROR, str(e))
            return

        if status == BuildStatus.CANCELLED or self._cancel_flag.is_set():
            logger.info("heightmap_job_cancelled")
            self._set_state(CarveJobState.IDLE)
            return

        self._heightmap = heightmap
        with self._lock:
            self._progress = 1.0
            self._state = CarveJobState.READY
        logger.info(
            "heightmap_job_ready",
            status=status.value,
            cols=heightmap.cols,
            rows=heightmap.rows,
            duration_s=round(time.perf_counter() - t0, 3),
        )

    def cancel(self) -> None:
        """Request cancellation of the running build."""
        self._cancel_flag.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the worker. Returns False if it is still running after ``timeout``."""
        worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def set_ready(self) -> None:
        with self._lock:
            self._state = CarveJobState.READY
            self._progress = 1.0
            self._error = ""

    def load_heightmap(self, path: Union[str, Path]) -> bool:
        """Load a saved ``.dwhm`` heightmap and enter READY."""
        self.wait()
        heightmap = Heightmap()
        if not heightmap.load(path):
            return False
        self._heightmap = heightmap
        self._analyzed = False
        self.set_ready()
        return True

    @property
    def heightmap(self) -> Heightmap:
        return self._heightmap

    # ── Analysis and toolpaths ────────────────────────────────────────

    @property
    def curvature(self) -> CurvatureResult:
        return self._curvature

    @property
    def islands(self) -> IslandResult:
        return self._islands

    @property
    def analyzed(self) -> bool:
        return self._analyzed

    @property
    def toolpath(self) -> MultiPassToolpath:
        return self._toolpath

    def analyze_heightmap(self, tool_angle_deg: float, min_island_area_mm2: float = 1.0) -> None:
        """
        Run curvature analysis and island detection on the READY heightmap.

        Raises:
            JobStateError: If the job is not READY
        """
        state = self.state
        if state != CarveJobState.READY:
            raise JobStateError("Heightmap is not ready for analysis", state=state.value)

        self._curvature = analyze_curvature(self._heightmap)
        self._islands = detect_islands(self._heightmap, tool_angle_deg, min_island_area_mm2)
        self._analyzed = True
        logger.info(
            "heightmap_analyzed",
            tool_angle_deg=tool_angle_deg,
            concave_points=self._curvature.concave_point_count,
            islands=len(self._islands.islands),
        )

    def generate_toolpath(
        self,
        config: ToolpathConfig,
        finish_tool: ToolGeometry,
        clear_tool: Optional[ToolGeometry] = None,
        machine_travel: Optional[Tuple[float, float, float]] = None,
    ) -> MultiPassToolpath:
        """
        Build the finishing pass and, when islands exist, a clearing pass.

        Args:
            config: Scan-line settings shared by both passes
            finish_tool: Finishing tool; its tip diameter sets the stepover
            clear_tool: Optional clearing tool
            machine_travel: Optional (x, y, z) travel limits for warnings

        Raises:
            JobStateError: If ``analyze_heightmap`` has not run
        """
        if not self._analyzed:
            raise JobStateError("Heightmap must be analyzed before generating toolpaths", state=self.state.value)

        gen = ToolpathGenerator()
        result = MultiPassToolpath()
        result.finishing = gen.generate_finishing(
            self._heightmap, config, finish_tool.tip_diameter, finish_tool
        )
        if clear_tool is not None and self._islands.has_islands:
            result.clearing = gen.generate_clearing(
                self._heightmap, self._islands, config, clear_tool.diameter
            )
        else:
            result.clearing = Toolpath()
        result.update_totals()

        if machine_travel is not None:
            for path in (result.finishing, result.clearing):
                path.warnings = gen.validate_limits(path, *machine_travel)

        self._toolpath = result
        return result
