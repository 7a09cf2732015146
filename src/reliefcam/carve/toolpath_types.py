"""
Toolpath data structures for relief carving.

A Toolpath is a flat, ordered list of motion targets. Rapid (G0) points
bracket every scan line; everything between them is a feed (G1) move.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple

from reliefcam.core.exceptions import ToolpathError

Vec3 = Tuple[float, float, float]


class ScanAxis(Enum):
    """Scan line orientation."""

    X_ONLY = "x_only"  # Parallel lines along X
    Y_ONLY = "y_only"  # Parallel lines along Y
    X_THEN_Y = "x_then_y"  # Two passes: X first, then Y
    Y_THEN_X = "y_then_x"  # Two passes: Y first, then X


class MillDirection(Enum):
    """Per-line cutting direction policy."""

    CLIMB = "climb"  # All lines forward
    CONVENTIONAL = "conventional"  # All lines reversed
    ALTERNATING = "alternating"  # Zigzag


class StepoverPreset(Enum):
    """Stepover as a percentage of the tool tip diameter."""

    ULTRA_FINE = "ultra_fine"
    FINE = "fine"
    BASIC = "basic"
    ROUGH = "rough"
    ROUGHING = "roughing"


STEPOVER_PERCENT = {
    StepoverPreset.ULTRA_FINE: 1.0,
    StepoverPreset.FINE: 8.0,
    StepoverPreset.BASIC: 12.0,
    StepoverPreset.ROUGH: 25.0,
    StepoverPreset.ROUGHING: 40.0,
}


def stepover_percent(preset: StepoverPreset) -> float:
    """Convert a stepover preset to a percentage of tool tip diameter."""
    return STEPOVER_PERCENT[preset]


@dataclass
class ToolpathConfig:
    """
    Scan-line toolpath settings.

    Attributes:
        axis: Scan axis selection
        direction: Line direction policy
        stepover_preset: Stepover preset (ignored if custom_stepover_pct > 0)
        custom_stepover_pct: Custom stepover percentage of tip diameter
        safe_z_mm: Retract height for rapid moves (mm)
        feed_rate_mm_min: Cutting feed rate (mm/min)
        plunge_rate_mm_min: Plunge feed rate (mm/min)
        spindle_rpm: Spindle speed written to the program header
    """

    axis: ScanAxis = ScanAxis.X_ONLY
    direction: MillDirection = MillDirection.ALTERNATING
    stepover_preset: StepoverPreset = StepoverPreset.BASIC
    custom_stepover_pct: float = 0.0
    safe_z_mm: float = 5.0
    feed_rate_mm_min: float = 1000.0
    plunge_rate_mm_min: float = 300.0
    spindle_rpm: float = 18000.0

    def __post_init__(self) -> None:
        if self.feed_rate_mm_min <= 0:
            raise ToolpathError(
                "Feed rate must be positive",
                details={"feed_rate_mm_min": self.feed_rate_mm_min},
            )
        if self.custom_stepover_pct < 0:
            raise ToolpathError(
                "Custom stepover percentage cannot be negative",
                details={"custom_stepover_pct": self.custom_stepover_pct},
            )

    @property
    def stepover_pct(self) -> float:
        """Effective stepover percentage."""
        if self.custom_stepover_pct > 0.0:
            return self.custom_stepover_pct
        return stepover_percent(self.stepover_preset)


@dataclass
class ToolpathPoint:
    """Single motion target: G0 when rapid, G1 otherwise."""

    position: Vec3
    rapid: bool = False


@dataclass
class Toolpath:
    """
    One machining pass.

    Attributes:
        points: Ordered motion targets
        total_distance_mm: Euclidean path length
        estimated_time_sec: Estimated machining time
        line_count: Number of non-zero-length moves (G-code lines)
        warnings: Travel limit violations
    """

    points: List[ToolpathPoint] = field(default_factory=list)
    total_distance_mm: float = 0.0
    estimated_time_sec: float = 0.0
    line_count: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.points

    def feed_points(self) -> List[ToolpathPoint]:
        return [p for p in self.points if not p.rapid]


@dataclass
class MultiPassToolpath:
    """Complete job output: optional clearing pass followed by finishing."""

    finishing: Toolpath = field(default_factory=Toolpath)
    clearing: Toolpath = field(default_factory=Toolpath)
    total_time_sec: float = 0.0
    total_line_count: int = 0

    def update_totals(self) -> None:
        self.total_time_sec = self.finishing.estimated_time_sec + self.clearing.estimated_time_sec
        self.total_line_count = self.finishing.line_count + self.clearing.line_count
