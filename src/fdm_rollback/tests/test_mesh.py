"""Tests for the linear layout and the meshers."""

import math

import numpy as np
import pytest

from fdm_rollback.exceptions import ValidationError
from fdm_rollback.finite_differences.layout import FdmLinearOpLayout
from fdm_rollback.finite_differences.meshers import (
    Concentrating1dMesher,
    Fdm1dMesher,
    FdmBlackScholesMesher,
    FdmHullWhiteMesher,
    FdmMesherComposite,
    Uniform1dMesher,
)


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class TestLayout:
    def test_size_and_spacing(self):
        layout = FdmLinearOpLayout([4, 3])
        assert layout.size == len(layout) == 12
        assert layout.spacing == (1, 4)
        assert list(layout) == list(range(12))

    def test_coordinates_round_trip(self):
        layout = FdmLinearOpLayout([4, 3])
        assert layout.coordinates(7) == (3, 1)
        assert layout.index((3, 1)) == 7

    def test_neighbourhood_reflects_at_edges(self):
        layout = FdmLinearOpLayout([4, 3])
        assert layout.neighbourhood(0, 0, -1) == 1
        assert layout.neighbourhood(3, 0, 1) == 2
        assert layout.neighbourhood(5, 1, 1) == 9
        assert layout.neighbourhood(9, 1, 1) == 5

    @pytest.mark.parametrize("direction", [0, 1])
    @pytest.mark.parametrize("offset", [-1, 1])
    def test_neighbourhood_array_matches_scalar(self, direction, offset):
        layout = FdmLinearOpLayout([4, 3])
        expected = [layout.neighbourhood(i, direction, offset) for i in layout]
        np.testing.assert_array_equal(layout.neighbourhood_array(direction, offset), expected)

    def test_non_positive_dimension_raises(self):
        with pytest.raises(ValidationError, match="positive"):
            FdmLinearOpLayout([3, 0])


# ---------------------------------------------------------------------------
# 1-D meshers
# ---------------------------------------------------------------------------


class TestMeshers:
    def test_spacings(self):
        m = Fdm1dMesher([0.0, 1.0, 3.0])
        assert m.dplus(0) == 1.0
        assert m.dminus(2) == 2.0
        assert math.isnan(m.dplus(2))
        assert math.isnan(m.dminus(0))

    def test_non_increasing_locations_raise(self):
        with pytest.raises(ValidationError, match="strictly increasing"):
            Fdm1dMesher([0.0, 1.0, 1.0])

    def test_uniform_mesher(self):
        m = Uniform1dMesher(-1.0, 1.0, 5)
        np.testing.assert_allclose(m.locations, [-1.0, -0.5, 0.0, 0.5, 1.0])

    def test_concentrating_mesher_keeps_end_points_and_concentrates(self):
        m = Concentrating1dMesher(0.0, 10.0, 51, c_point=5.0, density=0.05)
        assert m.location(0) == 0.0
        assert m.location(50) == 10.0
        steps = np.diff(m.locations)
        assert steps.min() < 0.5 * steps.max()
        assert abs(m.locations[np.argmin(steps)] - 5.0) < 0.5

    def test_concentrating_mesher_hits_required_point(self):
        m = Concentrating1dMesher(0.0, 10.0, 51, c_point=3.0, density=0.1, require_c_point=True)
        assert np.min(np.abs(m.locations - 3.0)) < 1e-12

    def test_concentrating_mesher_requires_density(self):
        with pytest.raises(ValidationError, match="density"):
            Concentrating1dMesher(0.0, 10.0, 11, c_point=5.0)

    def test_black_scholes_mesher_covers_spot(self, process):
        m = FdmBlackScholesMesher(100, process, 1.0, 100.0, c_point=(100.0, 0.1))
        assert m.size == 100
        assert m.location(0) < math.log(100.0) < m.location(99)
        # about 1.5 * 3.72 standard deviations either side
        assert m.location(99) - math.log(100.0) > 1.0

    def test_black_scholes_mesher_constraints(self, process):
        m = FdmBlackScholesMesher(50, process, 1.0, 100.0, x_min_constraint=3.0, x_max_constraint=6.0)
        assert m.location(0) == pytest.approx(3.0)
        assert m.location(49) == pytest.approx(6.0)

    def test_hull_white_mesher_symmetric(self, hull_white):
        m = FdmHullWhiteMesher(101, hull_white, 5.0)
        assert m.location(50) == pytest.approx(0.0, abs=1e-15)
        assert m.location(0) == pytest.approx(-m.location(100))


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------


class TestMesherComposite:
    def test_locations_follow_layout(self):
        composite = FdmMesherComposite(Uniform1dMesher(0.0, 3.0, 4), Uniform1dMesher(10.0, 12.0, 3))
        assert composite.layout.dim == (4, 3)
        assert composite.location(7, 0) == 3.0
        assert composite.location(7, 1) == 11.0
        np.testing.assert_allclose(composite.locations(1)[:4], 10.0)
        np.testing.assert_allclose(composite.dplus_array(0)[:3], 1.0)

    def test_layout_mismatch_raises(self):
        with pytest.raises(ValidationError, match="does not fit"):
            FdmMesherComposite(Uniform1dMesher(0.0, 1.0, 5), layout=FdmLinearOpLayout([4]))
