"""
Unit tests for tapered-tool island detection.
"""

import numpy as np
import pytest

from reliefcam.carve.heightmap import Heightmap
from reliefcam.carve.island_detector import (
    ACCESSIBLE,
    BURIED,
    cell_index,
    compute_burial_mask,
    detect_islands,
    index_cell,
)


@pytest.fixture
def walled_block():
    """9x9 grid at Z=10 with a 5x5 block sunk to Z=0, origin (10, 20), res 1."""
    z = np.full((9, 9), 10.0)
    z[2:7, 2:7] = 0.0
    return Heightmap.from_grid(z, 1.0, origin=(10.0, 20.0))


class TestIndexHelpers:
    """Tests for flat-array index helpers."""

    def test_round_trip(self):
        assert cell_index(3, 2, 7) == 17
        assert index_cell(17, 7) == (3, 2)


class TestBurialMask:
    """Tests for compute_burial_mask."""

    def test_border_always_accessible(self, walled_block):
        mask = compute_burial_mask(walled_block, 10.0).reshape(9, 9)
        assert np.all(mask[0, :] == ACCESSIBLE)
        assert np.all(mask[:, -1] == ACCESSIBLE)

    def test_sunken_block_is_buried(self, walled_block):
        mask = compute_burial_mask(walled_block, 60.0).reshape(9, 9)
        assert np.all(mask[2:7, 2:7] == BURIED)
        assert np.count_nonzero(mask == BURIED) == 25

    def test_wide_taper_reaches_everything(self, walled_block):
        mask = compute_burial_mask(walled_block, 179.0)
        assert np.all(mask == ACCESSIBLE)


class TestDetectIslands:
    """Tests for detect_islands."""

    def test_empty_heightmap(self):
        result = detect_islands(Heightmap(), 60.0)
        assert result.islands == []
        assert result.island_mask.size == 0
        assert (result.mask_cols, result.mask_rows) == (0, 0)

    @pytest.mark.parametrize("angle", [10.0, 30.0, 60.0, 90.0, 150.0])
    def test_slope_has_no_islands(self, make_heightmap, angle):
        """An open slope has no enclosed depression for any tool angle."""
        hm = make_heightmap(10.0, 0.5, lambda x, y: x * 0.1)
        result = detect_islands(hm, angle)
        assert result.islands == []
        assert (result.mask_cols, result.mask_rows) == (hm.cols, hm.rows)
        assert np.all(result.island_mask == -1)

    def test_block_island_properties(self, walled_block):
        result = detect_islands(walled_block, 60.0)
        assert len(result.islands) == 1
        island = result.islands[0]
        assert island.id == 0
        assert len(island.cells) == 25
        assert island.area_mm2 == pytest.approx(25.0)
        assert island.depth == pytest.approx(0.0)
        assert island.centroid == pytest.approx((14.0, 24.0))
        assert island.bounds_min == pytest.approx((12.0, 22.0))
        assert island.bounds_max == pytest.approx((16.0, 26.0))
        # Center cell is two steps from the rim.
        assert island.min_clear_diameter == pytest.approx(4.0)

        mask = result.island_mask.reshape(9, 9)
        assert np.all(mask[2:7, 2:7] == 0)
        assert np.count_nonzero(mask == 0) == 25

    def test_two_pits_give_two_islands(self, make_heightmap, make_pit):
        """Separated pits become distinct islands spanning rim to floor."""
        pit_a = make_pit(7.0, 7.0)
        pit_b = make_pit(23.0, 23.0)
        hm = make_heightmap(30.0, 0.5, lambda x, y: min(pit_a(x, y), pit_b(x, y)))

        result = detect_islands(hm, 30.0, 0.5)
        assert len(result.islands) == 2
        assert [i.id for i in result.islands] == [0, 1]
        assert result.islands[0].centroid == pytest.approx((7.0, 7.0), abs=0.5)
        assert result.islands[1].centroid == pytest.approx((23.0, 23.0), abs=0.5)
        for island in result.islands:
            assert island.min_z == pytest.approx(2.0, abs=1e-4)
            assert 6.5 < island.depth <= 8.0 + 1e-4

    def test_small_islands_are_dropped_and_unmasked(self, make_heightmap, make_pit):
        hm = make_heightmap(20.0, 0.5, make_pit(10.0, 10.0))
        result = detect_islands(hm, 30.0, 1000.0)
        assert result.islands == []
        assert np.all(result.island_mask == -1)

    def test_wider_pit_needs_larger_clearing_tool(self, make_heightmap):
        def flat_pit(radius):
            return lambda x, y: 2.0 if np.hypot(x - 10.0, y - 10.0) < radius else 10.0

        narrow = detect_islands(make_heightmap(20.0, 0.5, flat_pit(1.5)), 30.0, 0.5)
        wide = detect_islands(make_heightmap(20.0, 0.5, flat_pit(5.0)), 30.0, 0.5)
        assert len(narrow.islands) == 1
        assert len(wide.islands) == 1
        assert narrow.islands[0].min_clear_diameter < wide.islands[0].min_clear_diameter
