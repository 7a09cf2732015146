"""
Unit tests for stock fitting.
"""

import numpy as np
import pytest

from reliefcam.carve.model_fitter import FitParams, ModelFitter, StockDimensions


@pytest.fixture
def fitter():
    f = ModelFitter()
    f.set_model_bounds((0.0, 0.0, -3.0), (50.0, 25.0, 0.0))
    f.set_stock(StockDimensions(100.0, 100.0, 10.0))
    return f


class TestFit:
    """Tests for ModelFitter.fit."""

    def test_fits_stock(self, fitter):
        result = fitter.fit(FitParams(scale=2.0, depth_mm=5.0))
        assert result.model_min == pytest.approx((0.0, 0.0, 5.0))
        assert result.model_max == pytest.approx((100.0, 50.0, 10.0))
        assert result.fits_stock
        assert result.fits_machine
        assert result.warning == ""

    def test_offset_moves_bounds(self, fitter):
        result = fitter.fit(FitParams(scale=1.0, depth_mm=4.0, offset_x=10.0, offset_y=5.0))
        assert result.model_min == pytest.approx((10.0, 5.0, 6.0))
        assert result.model_max == pytest.approx((60.0, 30.0, 10.0))

    def test_too_wide(self, fitter):
        result = fitter.fit(FitParams(scale=3.0, depth_mm=5.0))
        assert not result.fits_stock
        assert "width" in result.warning
        assert "height" not in result.warning

    def test_derived_depth(self, fitter):
        """depth_mm = 0 uses the model's Z extent times the scale."""
        result = fitter.fit(FitParams(scale=2.0))
        assert result.model_min[2] == pytest.approx(10.0 - 6.0)

    def test_depth_exceeds_thickness(self, fitter):
        result = fitter.fit(FitParams(scale=1.0, depth_mm=12.0))
        assert not result.fits_stock
        assert "Carve depth" in result.warning

    def test_machine_travel(self, fitter):
        fitter.set_machine_travel(80.0, 0.0, 0.0)
        result = fitter.fit(FitParams(scale=2.0, depth_mm=5.0))
        assert result.fits_stock
        assert not result.fits_machine
        assert "machine travel" in result.warning

    def test_warning_lists_stock_and_machine_violations(self, fitter):
        fitter.set_machine_travel(80.0, 0.0, 0.0)
        result = fitter.fit(FitParams(scale=3.0, depth_mm=5.0))
        assert not result.fits_stock
        assert not result.fits_machine
        assert result.warning.startswith("Model width (150.00 mm) exceeds stock width (100.00 mm).")
        assert result.warning.endswith("Model exceeds machine travel limits.")

    def test_machine_z_travel_checks_stock_thickness(self, fitter):
        fitter.set_machine_travel(0.0, 0.0, 8.0)
        assert not fitter.fit(FitParams(scale=1.0, depth_mm=2.0)).fits_machine

    def test_disabled_travel_always_fits(self, fitter):
        fitter.set_machine_travel(0.0, 0.0, 0.0)
        assert fitter.fit(FitParams(scale=100.0, depth_mm=1.0)).fits_machine


class TestAutoValues:
    """Tests for auto_scale and auto_depth."""

    def test_auto_scale_limited_by_width(self, fitter):
        assert fitter.auto_scale() == pytest.approx(2.0)

    def test_auto_scale_degenerate(self):
        f = ModelFitter()
        f.set_model_bounds((0, 0, 0), (0, 10, 1))
        f.set_stock(StockDimensions(100, 100, 10))
        assert f.auto_scale() == 1.0
        assert ModelFitter().auto_scale() == 1.0

    def test_auto_depth(self, fitter):
        assert fitter.auto_depth() == pytest.approx(3.0)


class TestTransform:
    """Tests for transform and transform_many."""

    def test_corners_map_to_fitted_bounds(self, fitter):
        params = FitParams(scale=2.0, depth_mm=5.0)
        assert fitter.transform((50.0, 25.0, 0.0), params) == pytest.approx((100.0, 50.0, 10.0))
        assert fitter.transform((0.0, 0.0, -3.0), params) == pytest.approx((0.0, 0.0, 5.0))
        assert fitter.transform((25.0, 12.5, -1.5), params) == pytest.approx((50.0, 25.0, 7.5))

    def test_points_stay_within_fit(self, fitter):
        params = FitParams(scale=1.5, depth_mm=4.0, offset_x=3.0, offset_y=7.0)
        result = fitter.fit(params)
        rng = np.random.default_rng(7)
        pts = rng.uniform((0.0, 0.0, -3.0), (50.0, 25.0, 0.0), size=(50, 3))
        out = fitter.transform_many(pts, params)
        assert np.all(out >= np.asarray(result.model_min) - 1e-9)
        assert np.all(out <= np.asarray(result.model_max) + 1e-9)

    def test_transform_many_matches_transform(self, fitter):
        params = FitParams(scale=1.2, depth_mm=0.0, offset_x=1.0)
        pts = np.array([[0.0, 0.0, -3.0], [10.0, 20.0, -1.0], [50.0, 25.0, 0.0]])
        expected = [fitter.transform(p, params) for p in pts]
        assert np.allclose(fitter.transform_many(pts, params), expected)

    def test_flat_model_sits_at_carve_floor(self):
        f = ModelFitter()
        f.set_model_bounds((0, 0, 2), (10, 10, 2))
        f.set_stock(StockDimensions(20, 20, 10))
        params = FitParams(scale=1.0, depth_mm=4.0)
        assert f.transform((5, 5, 2), params)[2] == pytest.approx(6.0)
        assert f.transform_many([[5, 5, 2]], params)[0, 2] == pytest.approx(6.0)
