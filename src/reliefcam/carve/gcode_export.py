"""
G-code serialization for relief toolpaths.

Emits absolute-mode metric programs: a comment header, spindle start, the
optional clearing pass followed by the finishing pass, then spindle stop
and program end.
"""

from pathlib import Path
from typing import List, Union

from reliefcam.carve.toolpath_types import MultiPassToolpath, Toolpath, ToolpathConfig
from reliefcam.core.logging import get_logger

logger = get_logger(__name__)

PROGRAM_TITLE = "ReliefCAM relief carve"


def format_number(value: float) -> str:
    """Up to three decimals, trailing zeros trimmed, at least one decimal kept."""
    value = round(float(value), 3)
    if value == 0.0:
        value = 0.0  # no "-0.0"
    text = f"{value:.3f}".rstrip("0")
    if text.endswith("."):
        text += "0"
    return text


def _xyz(position) -> str:
    x, y, z = position
    return f"X{format_number(x)} Y{format_number(y)} Z{format_number(z)}"


def _emit_pass(lines: List[str], path: Toolpath, config: ToolpathConfig) -> None:
    feed_written = False
    for pt in path.points:
        if pt.rapid:
            lines.append(f"G0 {_xyz(pt.position)}")
        elif not feed_written:
            lines.append(f"G1 {_xyz(pt.position)} F{config.feed_rate_mm_min:g}")
            feed_written = True
        else:
            lines.append(f"G1 {_xyz(pt.position)}")
    lines.append(f"G0 Z{format_number(config.safe_z_mm)}")


def generate_gcode(
    toolpath: MultiPassToolpath,
    config: ToolpathConfig,
    model_name: str = "",
    tool_name: str = "",
) -> str:
    """
    Render a complete program.

    Args:
        toolpath: Passes to emit (clearing is skipped when empty)
        config: Safe Z, feed rate and spindle speed
        model_name: Model label for the header comment
        tool_name: Finishing tool label for the header comment

    Returns:
        Program text with a trailing newline
    """
    safe_z = format_number(config.safe_z_mm)
    lines = [
        f"({PROGRAM_TITLE})",
        f"(Model: {model_name})",
        f"(Tool: {tool_name})",
        f"(Estimated time: {toolpath.total_time_sec / 60.0:.1f} min)",
        f"(Lines: {toolpath.total_line_count})",
        "G90 G21",
        f"G0 Z{safe_z}",
        f"M3 S{config.spindle_rpm:g}",
    ]

    if not toolpath.clearing.empty:
        lines.append("(Clearing pass)")
        _emit_pass(lines, toolpath.clearing, config)

    lines.append("(Finishing pass)")
    _emit_pass(lines, toolpath.finishing, config)

    lines.extend(["M5", "M30"])
    return "\n".join(lines) + "\n"


def export_gcode(
    path: Union[str, Path],
    toolpath: MultiPassToolpath,
    config: ToolpathConfig,
    model_name: str = "",
    tool_name: str = "",
) -> bool:
    """Write ``generate_gcode`` output to a file. Returns False on I/O failure."""
    program = generate_gcode(toolpath, config, model_name, tool_name)
    try:
        Path(path).write_text(program, encoding="ascii", errors="replace")
    except OSError as e:
        logger.warning("gcode_export_failed", path=str(path), error=str(e))
        return False
    logger.info("gcode_exported", path=str(path), lines=program.count("\n"))
    return True
