"""
Cutting tool geometry records.

Tool records are supplied by an external tool library; this module only
defines the shape the carve pipeline consumes.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict


class ToolType(Enum):
    """Cutting tool families."""

    BALL_NOSE = "ball_nose"
    END_MILL = "end_mill"
    RADIUSED = "radiused"  # Bull nose / corner radius end mill
    V_BIT = "v_bit"
    TAPERED_BALL_NOSE = "tapered_ball_nose"
    DRILL = "drill"
    THREAD_MILL = "thread_mill"
    FORM_TOOL = "form_tool"
    DIAMOND_DRAG = "diamond_drag"


class ToolUnits(Enum):
    """Units the tool dimensions are expressed in."""

    METRIC = "metric"
    IMPERIAL = "imperial"


TOOL_TYPE_LABELS = {
    ToolType.BALL_NOSE: "Ball Nose",
    ToolType.END_MILL: "End Mill",
    ToolType.RADIUSED: "Radiused",
    ToolType.V_BIT: "V-Bit",
    ToolType.TAPERED_BALL_NOSE: "Tapered Ball Nose",
    ToolType.DRILL: "Drill",
    ToolType.THREAD_MILL: "Thread Mill",
    ToolType.FORM_TOOL: "Form Tool",
    ToolType.DIAMOND_DRAG: "Diamond Drag",
}


@dataclass
class ToolGeometry:
    """
    Geometry of a single cutting tool.

    Attributes:
        tool_type: Tool family
        diameter: Cutting diameter (mm)
        tip_radius: Ball radius for ball nose tools (mm)
        included_angle: Full cone angle for V-bits and tapered tools (degrees)
        flat_diameter: Flat tip diameter for V-bits (mm)
        flute_length: Usable cutting length (mm, 0 = unknown)
        num_flutes: Number of flutes
        units: Units of the dimensions above
        name: Optional catalog name
    """

    tool_type: ToolType = ToolType.END_MILL
    diameter: float = 0.0
    tip_radius: float = 0.0
    included_angle: float = 0.0
    flat_diameter: float = 0.0
    flute_length: float = 0.0
    num_flutes: int = 2
    units: ToolUnits = ToolUnits.METRIC
    name: str = ""

    @property
    def tip_diameter(self) -> float:
        """Effective tip diameter used to size the stepover."""
        if self.flat_diameter > 0.0:
            return self.flat_diameter
        if self.tip_radius > 0.0:
            return 2.0 * self.tip_radius
        return self.diameter

    @property
    def display_name(self) -> str:
        """Human-readable label, e.g. ``V-Bit 60deg 6.35mm``."""
        if self.name:
            return self.name
        label = TOOL_TYPE_LABELS[self.tool_type]
        if self.tool_type in (ToolType.V_BIT, ToolType.TAPERED_BALL_NOSE) and self.included_angle > 0:
            label += f" {self.included_angle:g}deg"
        unit = "mm" if self.units == ToolUnits.METRIC else "in"
        return f"{label} {self.diameter:g}{unit}"

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["tool_type"] = self.tool_type.value
        d["units"] = self.units.value
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ToolGeometry":
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        data = {k: v for k, v in d.items() if k in valid_fields}
        if "tool_type" in data:
            data["tool_type"] = ToolType(data["tool_type"])
        if "units" in data:
            data["units"] = ToolUnits(data["units"])
        return cls(**data)
