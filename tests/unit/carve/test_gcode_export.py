"""
Unit tests for G-code serialization.
"""

import pytest

from reliefcam.carve.gcode_export import (
    PROGRAM_TITLE,
    export_gcode,
    format_number,
    generate_gcode,
)
from reliefcam.carve.toolpath_types import MultiPassToolpath, Toolpath, ToolpathConfig, ToolpathPoint


def _pass(z: float) -> Toolpath:
    return Toolpath(
        points=[
            ToolpathPoint((0.0, 0.0, 10.0), rapid=True),
            ToolpathPoint((0.0, 0.0, z)),
            ToolpathPoint((1.0, 0.0, z)),
            ToolpathPoint((2.0, 0.0, z)),
            ToolpathPoint((2.0, 0.0, 10.0), rapid=True),
            ToolpathPoint((0.0, 1.0, 10.0), rapid=True),
            ToolpathPoint((0.0, 1.0, z)),
            ToolpathPoint((2.0, 1.0, z)),
        ],
        estimated_time_sec=90.0,
        line_count=7,
    )


@pytest.fixture
def config():
    return ToolpathConfig(safe_z_mm=10.0, feed_rate_mm_min=1200.0, spindle_rpm=16000.0)


@pytest.fixture
def finishing_only():
    tp = MultiPassToolpath(finishing=_pass(4.5))
    tp.update_totals()
    return tp


@pytest.fixture
def two_pass():
    tp = MultiPassToolpath(finishing=_pass(4.5), clearing=_pass(3.0))
    tp.update_totals()
    return tp


class TestFormatNumber:
    """Tests for format_number."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (8, "8.0"),
            (1.23456, "1.235"),
            (10.1, "10.1"),
            (-2.5, "-2.5"),
            (-0.0001, "0.0"),
            (0.0, "0.0"),
            (1234.5678, "1234.568"),
        ],
    )
    def test_formatting(self, value, expected):
        assert format_number(value) == expected


class TestGenerateGcode:
    """Tests for generate_gcode."""

    def test_header(self, finishing_only, config):
        lines = generate_gcode(finishing_only, config, "relief.stl", "V-Bit 60deg 6.35mm").splitlines()
        assert lines[:8] == [
            f"({PROGRAM_TITLE})",
            "(Model: relief.stl)",
            "(Tool: V-Bit 60deg 6.35mm)",
            "(Estimated time: 1.5 min)",
            "(Lines: 7)",
            "G90 G21",
            "G0 Z10.0",
            "M3 S16000",
        ]

    def test_moves(self, finishing_only, config):
        lines = generate_gcode(finishing_only, config).splitlines()
        assert "G0 X0.0 Y0.0 Z10.0" in lines
        assert "G1 X0.0 Y0.0 Z4.5 F1200" in lines
        assert "G1 X1.0 Y0.0 Z4.5" in lines
        assert any(line.startswith("G0 ") for line in lines)
        assert any(line.startswith("G1 ") for line in lines)

    def test_one_feed_word_per_pass(self, finishing_only, two_pass, config):
        single = generate_gcode(finishing_only, config).splitlines()
        double = generate_gcode(two_pass, config).splitlines()
        assert sum(" F" in line for line in single) == 1
        assert sum(" F" in line for line in double) == 2

    def test_program_end(self, finishing_only, config):
        text = generate_gcode(finishing_only, config)
        assert text.endswith("M5\nM30\n")
        lines = text.splitlines()
        assert lines.index("M5") < lines.index("M30")
        # Each pass ends with a retract.
        assert lines[-3] == "G0 Z10.0"

    def test_clearing_precedes_finishing(self, two_pass, config):
        lines = generate_gcode(two_pass, config).splitlines()
        assert lines.index("(Clearing pass)") < lines.index("(Finishing pass)")
        assert "G1 X0.0 Y0.0 Z3.0 F1200" in lines
        assert "(Lines: 14)" in lines
        assert "(Estimated time: 3.0 min)" in lines

    def test_empty_clearing_is_skipped(self, finishing_only, config):
        lines = generate_gcode(finishing_only, config).splitlines()
        assert "(Clearing pass)" not in lines
        assert "(Finishing pass)" in lines

    def test_motion_follows_unit_setup(self, two_pass, config):
        lines = generate_gcode(two_pass, config).splitlines()
        first_move = next(i for i, line in enumerate(lines) if line.startswith("G1"))
        assert lines.index("G90 G21") < first_move


class TestExportGcode:
    """Tests for export_gcode."""

    def test_writes_program(self, finishing_only, config, temp_dir):
        path = temp_dir / "out.nc"
        assert export_gcode(path, finishing_only, config, "m", "t")
        assert path.read_text() == generate_gcode(finishing_only, config, "m", "t")

    def test_unwritable_path(self, finishing_only, config, temp_dir):
        assert not export_gcode(temp_dir / "missing" / "out.nc", finishing_only, config)
