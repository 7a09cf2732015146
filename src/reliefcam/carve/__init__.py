"""
Carve module - heightmap rasterization, analysis, toolpaths and G-code.
"""

from reliefcam.carve.carve_job import CarveJob, CarveJobState
from reliefcam.carve.gcode_export import export_gcode, generate_gcode
from reliefcam.carve.heightmap import BuildStatus, Heightmap, HeightmapConfig
from reliefcam.carve.island_detector import Island, IslandResult, detect_islands
from reliefcam.carve.model_fitter import FitParams, FitResult, ModelFitter, StockDimensions
from reliefcam.carve.surface_analysis import CurvatureResult, analyze_curvature, compute_local_radius
from reliefcam.carve.tool_recommender import RecommendationInput, ToolRecommender
from reliefcam.carve.toolpath_generator import ToolpathGenerator
from reliefcam.carve.toolpath_types import (
    MillDirection,
    MultiPassToolpath,
    ScanAxis,
    StepoverPreset,
    Toolpath,
    ToolpathConfig,
    ToolpathPoint,
)

__all__ = [
    "BuildStatus",
    "CarveJob",
    "CarveJobState",
    "CurvatureResult",
    "FitParams",
    "FitResult",
    "Heightmap",
    "HeightmapConfig",
    "Island",
    "IslandResult",
    "MillDirection",
    "ModelFitter",
    "MultiPassToolpath",
    "RecommendationInput",
    "ScanAxis",
    "StepoverPreset",
    "StockDimensions",
    "ToolRecommender",
    "Toolpath",
    "ToolpathConfig",
    "ToolpathGenerator",
    "ToolpathPoint",
    "analyze_curvature",
    "compute_local_radius",
    "detect_islands",
    "export_gcode",
    "generate_gcode",
]
