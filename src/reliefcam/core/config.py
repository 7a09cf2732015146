"""
Configuration management for ReliefCAM.

Handles loading and validation of machine profiles, tool definitions and
carve defaults from a YAML configuration directory::

    config/
        carve.yaml          optional defaults for the carve pipeline
        machines/*.yaml     machine travel profiles
        tools/*.yaml        cutting tool definitions
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from reliefcam.carve.heightmap import HeightmapConfig
from reliefcam.carve.model_fitter import StockDimensions
from reliefcam.carve.toolpath_types import MillDirection, ScanAxis, StepoverPreset, ToolpathConfig
from reliefcam.core.exceptions import ConfigurationError
from reliefcam.core.tools import ToolGeometry, ToolType, ToolUnits


class MachineProfile(BaseModel):
    """Machine travel envelope (mm). Zero disables the check for that axis."""

    name: str
    travel_x: float = Field(default=0.0, ge=0.0)
    travel_y: float = Field(default=0.0, ge=0.0)
    travel_z: float = Field(default=0.0, ge=0.0)

    @property
    def travel(self) -> tuple[float, float, float]:
        return (self.travel_x, self.travel_y, self.travel_z)


class ToolConfig(BaseModel):
    """Tool definition as written in YAML."""

    name: str = ""
    type: ToolType = ToolType.END_MILL
    diameter: float = Field(gt=0.0)
    tip_radius: float = Field(default=0.0, ge=0.0)
    included_angle: float = Field(default=0.0, ge=0.0, lt=180.0)
    flat_diameter: float = Field(default=0.0, ge=0.0)
    flute_length: float = Field(default=0.0, ge=0.0)
    num_flutes: int = Field(default=2, ge=1)
    units: ToolUnits = ToolUnits.METRIC

    def to_geometry(self) -> ToolGeometry:
        return ToolGeometry(
            tool_type=self.type,
            diameter=self.diameter,
            tip_radius=self.tip_radius,
            included_angle=self.included_angle,
            flat_diameter=self.flat_diameter,
            flute_length=self.flute_length,
            num_flutes=self.num_flutes,
            units=self.units,
            name=self.name,
        )


class HeightmapSettings(BaseModel):
    resolution_mm: float = Field(default=0.1, gt=0.0)
    default_z: float = 0.0


class ToolpathSettings(BaseModel):
    axis: ScanAxis = ScanAxis.X_ONLY
    direction: MillDirection = MillDirection.ALTERNATING
    stepover: StepoverPreset = StepoverPreset.BASIC
    custom_stepover_pct: float = Field(default=0.0, ge=0.0)
    safe_z_mm: float = 5.0
    feed_rate_mm_min: float = Field(default=1000.0, gt=0.0)
    plunge_rate_mm_min: float = Field(default=300.0, gt=0.0)
    spindle_rpm: float = Field(default=18000.0, ge=0.0)


class StockSettings(BaseModel):
    width: float = Field(default=0.0, ge=0.0)
    height: float = Field(default=0.0, ge=0.0)
    thickness: float = Field(default=0.0, ge=0.0)


class CarveSettings(BaseModel):
    """Defaults for a carve run, usually from ``carve.yaml``."""

    heightmap: HeightmapSettings = Field(default_factory=HeightmapSettings)
    toolpath: ToolpathSettings = Field(default_factory=ToolpathSettings)
    stock: StockSettings = Field(default_factory=StockSettings)
    tool_angle_deg: float = Field(default=60.0, gt=0.0, lt=180.0)
    min_island_area_mm2: float = Field(default=1.0, ge=0.0)
    machine: Optional[str] = None
    finish_tool: Optional[str] = None
    clear_tool: Optional[str] = None

    @field_validator("machine", "finish_tool", "clear_tool")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def heightmap_config(self) -> HeightmapConfig:
        return HeightmapConfig(
            resolution_mm=self.heightmap.resolution_mm,
            default_z=self.heightmap.default_z,
        )

    def toolpath_config(self) -> ToolpathConfig:
        tp = self.toolpath
        return ToolpathConfig(
            axis=tp.axis,
            direction=tp.direction,
            stepover_preset=tp.stepover,
            custom_stepover_pct=tp.custom_stepover_pct,
            safe_z_mm=tp.safe_z_mm,
            feed_rate_mm_min=tp.feed_rate_mm_min,
            plunge_rate_mm_min=tp.plunge_rate_mm_min,
            spindle_rpm=tp.spindle_rpm,
        )

    def stock_dimensions(self) -> StockDimensions:
        return StockDimensions(self.stock.width, self.stock.height, self.stock.thickness)


def _read_yaml(config_file: Path) -> Any:
    try:
        with open(config_file) as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in config: {config_file}",
            details={"error": str(e)},
        ) from e


@dataclass
class ConfigManager:
    """
    Central configuration manager for ReliefCAM.

    Loads and validates configurations from YAML files on first access.

    Example:
        >>> config = ConfigManager(config_dir=Path("config"))
        >>> machine = config.get_machine("shapeoko")
        >>> vbit = config.get_tool("vbit_60")
    """

    config_dir: Path
    _machines: dict[str, MachineProfile] = field(default_factory=dict, init=False)
    _tools: dict[str, ToolConfig] = field(default_factory=dict, init=False)
    _carve: CarveSettings = field(default_factory=CarveSettings, init=False)
    _loaded: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.config_dir = Path(self.config_dir)
        if not self.config_dir.exists():
            raise ConfigurationError(
                f"Configuration directory not found: {self.config_dir}"
            )

    def load(self) -> None:
        """Load all configurations from disk."""
        self._load_machines()
        self._load_tools()
        self._load_carve()
        self._loaded = True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _load_machines(self) -> None:
        machines_dir = self.config_dir / "machines"
        if not machines_dir.exists():
            return

        for config_file in sorted(machines_dir.glob("*.yaml")):
            data = _read_yaml(config_file)
            if not data or "machine" not in data:
                continue
            machine_data = dict(data["machine"])
            machine_data.setdefault("name", config_file.stem)
            if "travel" in data:
                travel = data["travel"]
                machine_data.update(
                    {f"travel_{axis}": travel[axis] for axis in ("x", "y", "z") if axis in travel}
                )
            try:
                self._machines[config_file.stem] = MachineProfile(**machine_data)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Failed to load machine config: {config_file}",
                    details={"error": str(e)},
                ) from e

    def _load_tools(self) -> None:
        tools_dir = self.config_dir / "tools"
        if not tools_dir.exists():
            return

        for config_file in sorted(tools_dir.glob("*.yaml")):
            data = _read_yaml(config_file)
            if not data or "tool" not in data:
                continue
            tool_data = dict(data["tool"])
            tool_data.setdefault("name", config_file.stem)
            try:
                self._tools[config_file.stem] = ToolConfig(**tool_data)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Failed to load tool config: {config_file}",
                    details={"error": str(e)},
                ) from e

    def _load_carve(self) -> None:
        carve_file = self.config_dir / "carve.yaml"
        if not carve_file.exists():
            return

        data = _read_yaml(carve_file) or {}
        try:
            self._carve = CarveSettings(**data.get("carve", data))
        except ValidationError as e:
            raise ConfigurationError(
                f"Failed to load carve config: {carve_file}",
                details={"error": str(e)},
            ) from e

    def get_machine(self, name: str) -> MachineProfile:
        """
        Get machine profile by name.

        Args:
            name: Machine configuration name (without .yaml extension)

        Raises:
            ConfigurationError: If machine not found
        """
        self._ensure_loaded()
        if name not in self._machines:
            raise ConfigurationError(
                f"Machine configuration not found: {name}",
                details={"available": list(self._machines.keys())},
            )
        return self._machines[name]

    def get_tool(self, name: str) -> ToolGeometry:
        """
        Get tool geometry by name.

        Raises:
            ConfigurationError: If tool not found
        """
        self._ensure_loaded()
        if name not in self._tools:
            raise ConfigurationError(
                f"Tool configuration not found: {name}",
                details={"available": list(self._tools.keys())},
            )
        return self._tools[name].to_geometry()

    @property
    def carve(self) -> CarveSettings:
        self._ensure_loaded()
        return self._carve

    def list_machines(self) -> list[str]:
        """List available machine profiles."""
        self._ensure_loaded()
        return list(self._machines.keys())

    def list_tools(self) -> list[str]:
        """List available tool definitions."""
        self._ensure_loaded()
        return list(self._tools.keys())

    def tool_library(self) -> list[ToolGeometry]:
        """All configured tools as geometry records."""
        self._ensure_loaded()
        return [t.to_geometry() for t in self._tools.values()]
