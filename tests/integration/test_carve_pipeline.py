"""
End-to-end tests: mesh -> heightmap -> analysis -> toolpaths -> G-code.
"""

import numpy as np
import pytest

from reliefcam.carve.carve_job import CarveJob, CarveJobState
from reliefcam.carve.gcode_export import generate_gcode
from reliefcam.carve.heightmap import HeightmapConfig
from reliefcam.carve.model_fitter import FitParams, ModelFitter, StockDimensions
from reliefcam.carve.toolpath_types import StepoverPreset, ToolpathConfig
from reliefcam.core.tools import ToolGeometry, ToolType

VBIT_30 = ToolGeometry(ToolType.V_BIT, diameter=6.35, included_angle=30.0)
END_MILL_1 = ToolGeometry(ToolType.END_MILL, diameter=1.0)


@pytest.fixture
def two_pit_job(make_grid_mesh, make_pit):
    """READY job for a 30 mm plate at Z=10 with two 8 mm conical pits."""
    pit_a = make_pit(7.0, 7.0)
    pit_b = make_pit(23.0, 23.0)
    vertices, indices, bmin, bmax = make_grid_mesh(30.0, 0.5, lambda x, y: min(pit_a(x, y), pit_b(x, y)))

    fitter = ModelFitter()
    fitter.set_model_bounds(bmin, bmax)
    fitter.set_stock(StockDimensions(30.0, 30.0, 10.0))

    job = CarveJob()
    job.start_heightmap(vertices, indices, fitter, FitParams(scale=1.0, depth_mm=8.0), HeightmapConfig(0.5))
    assert job.wait(timeout=60)
    assert job.state == CarveJobState.READY
    return job


@pytest.mark.integration
class TestCarvePipeline:
    """Full relief carving pipeline."""

    def test_fitted_heightmap_matches_model(self, two_pit_job):
        hm = two_pit_job.heightmap
        assert (hm.cols, hm.rows) == (60, 60)
        assert hm.max_z == pytest.approx(10.0, abs=1e-4)
        assert hm.min_z == pytest.approx(2.0, abs=1e-4)
        assert hm.at(14, 14) == pytest.approx(2.0, abs=1e-4)

    def test_two_pits_need_clearing(self, two_pit_job):
        two_pit_job.analyze_heightmap(30.0, 0.5)
        islands = two_pit_job.islands.islands
        assert len(islands) == 2
        assert islands[0].id != islands[1].id
        for island in islands:
            assert 6.5 < island.depth <= 8.0 + 1e-4
            assert island.min_clear_diameter > 0.0
        assert two_pit_job.curvature.concave_point_count > 0

    def test_program_has_clearing_then_finishing(self, two_pit_job):
        two_pit_job.analyze_heightmap(30.0, 0.5)
        config = ToolpathConfig(stepover_preset=StepoverPreset.ROUGHING, safe_z_mm=15.0)
        result = two_pit_job.generate_toolpath(config, VBIT_30, END_MILL_1, machine_travel=(300, 300, 100))

        assert not result.clearing.empty
        assert result.finishing.warnings == []
        assert result.clearing.warnings == []

        lines = generate_gcode(result, config, "two_pits", VBIT_30.display_name).splitlines()
        assert lines.index("(Clearing pass)") < lines.index("(Finishing pass)")
        assert sum(" F" in line for line in lines) == 2
        assert lines[-2:] == ["M5", "M30"]

    def test_finishing_never_gouges(self, two_pit_job):
        two_pit_job.analyze_heightmap(30.0, 0.5)
        config = ToolpathConfig(stepover_preset=StepoverPreset.ROUGHING)
        result = two_pit_job.generate_toolpath(config, VBIT_30)

        feed = np.array([p.position for p in result.finishing.feed_points()])
        surface = two_pit_job.heightmap.sample(feed[:, 0], feed[:, 1])
        assert np.all(feed[:, 2] >= surface - 1e-9)
        # The tip never rides above the rim plus one cone step.
        assert feed[:, 2].max() <= 10.0 + 1e-4

    def test_saved_heightmap_reloads_identically(self, two_pit_job, temp_dir):
        path = temp_dir / "pits.dwhm"
        assert two_pit_job.heightmap.save(path)

        reloaded = CarveJob()
        assert reloaded.load_heightmap(path)
        assert np.array_equal(reloaded.heightmap.data, two_pit_job.heightmap.data)
        reloaded.analyze_heightmap(30.0, 0.5)
        assert len(reloaded.islands.islands) == 2
