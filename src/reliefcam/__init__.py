"""
ReliefCAM - 2.5D relief carving toolpaths from triangle meshes.

Rasterizes a mesh into a heightmap, analyzes it for curvature and islands
a tapered tool cannot reach, and emits tool-offset-compensated scan-line
G-code.
"""

__version__ = "0.1.0"
__author__ = "ReliefCAM Contributors"

from reliefcam.carve.carve_job import CarveJob, CarveJobState
from reliefcam.carve.heightmap import Heightmap, HeightmapConfig
from reliefcam.core.config import ConfigManager

__all__ = [
    "__version__",
    "CarveJob",
    "CarveJobState",
    "ConfigManager",
    "Heightmap",
    "HeightmapConfig",
]
