"""
Core module - Exceptions, mesh loading, and tool records. Configuration lives in
reliefcam.core.config, which builds on the carve data types.
"""

from reliefcam.core.exceptions import (
    ReliefCamError,
    ConfigurationError,
    GeometryError,
    JobStateError,
    ToolpathError,
)
from reliefcam.core.geometry import GeometryLoader, MeshData
from reliefcam.core.tools import ToolGeometry, ToolType, ToolUnits

__all__ = [
    # Exceptions
    "ReliefCamError",
    "ConfigurationError",
    "GeometryError",
    "JobStateError",
    "ToolpathError",
    # Geometry
    "GeometryLoader",
    "MeshData",
    # Tools
    "ToolGeometry",
    "ToolType",
    "ToolUnits",
]
