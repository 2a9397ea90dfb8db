import math

import numpy as np
import pytest

from orbit_scene.core.mechanics import (
    barycenter,
    dominant_body,
    gravity_assist,
    gravity_assist_for,
    gravity_field_grid,
    hohmann_for,
    hohmann_transfer,
    lagrange_points,
    orbital_elements,
    perpendicular_unit,
    select_two_body_pair,
)

from conftest import make_body, sun_and_planet


class TestOrbitalElements:
    def test_circular_orbit(self):
        mu = 100.0 * 1000.0
        r = 200.0
        v = math.sqrt(mu / r)
        el = orbital_elements(
            np.array([r, 0.0, 0.0]), np.array([0.0, v, 0.0]), np.zeros(3), 1000.0, g=100.0
        )
        assert el is not None
        assert el.eccentricity == pytest.approx(0.0, abs=1e-9)
        assert el.semi_major_axis == pytest.approx(r)
        assert el.inclination == pytest.approx(0.0)
        assert el.period == pytest.approx(2.0 * math.pi * math.sqrt(r**3 / mu))
        assert el.periapsis == pytest.approx(r)
        assert el.apoapsis == pytest.approx(r)

    def test_inclined_orbit(self):
        mu = 100.0 * 1000.0
        r = 200.0
        v = math.sqrt(mu / r)
        vel = np.array([0.0, v * math.cos(0.5), v * math.sin(0.5)])
        el = orbital_elements(np.array([r, 0.0, 0.0]), vel, np.zeros(3), 1000.0, g=100.0)
        assert el.inclination == pytest.approx(0.5)

    def test_hyperbolic_has_infinite_period(self):
        el = orbital_elements(
            np.array([100.0, 0.0, 0.0]), np.array([0.0, 1000.0, 0.0]), np.zeros(3), 10.0, g=100.0
        )
        assert el.eccentricity > 1.0
        assert math.isinf(el.period)
        assert math.isinf(el.apoapsis)

    def test_degenerate_inputs(self):
        assert orbital_elements(np.zeros(3), np.ones(3), np.zeros(3), 10.0) is None
        assert orbital_elements(np.ones(3), np.ones(3), np.zeros(3), 0.0) is None

    def test_parabolic_returns_none(self):
        mu = 100.0 * 10.0
        r = 50.0
        v = math.sqrt(2.0 * mu / r)
        assert (
            orbital_elements(np.array([r, 0.0, 0.0]), np.array([0.0, v, 0.0]), np.zeros(3), 10.0)
            is None
        )


class TestDominantBody:
    def test_picks_strongest_pull(self):
        sun, planet = sun_and_planet()
        moon = make_body(2, position=(310.0, 0.0, 0.0), mass=0.01)
        assert dominant_body(moon.id, moon.position, [sun, planet, moon]).id == 0

    def test_close_light_neighbour_can_win(self):
        sun, planet = sun_and_planet(planet_mass=100.0)
        moon = make_body(2, position=(301.0, 0.0, 0.0), mass=0.01)
        assert dominant_body(moon.id, moon.position, [sun, planet, moon]).id == 1

    def test_excludes_self(self):
        lone = make_body(1)
        assert dominant_body(1, lone.position, [lone]) is None


class TestLagrange:
    def test_pair_selection(self):
        bodies = [make_body(1, mass=5.0), make_body(2, mass=50.0), make_body(3, mass=10.0)]
        primary, secondary = select_two_body_pair(bodies)
        assert (primary.id, secondary.id) == (2, 3)

    def test_pair_needs_two_bodies(self):
        assert select_two_body_pair([make_body(1)]) is None

    def test_collinear_and_triangular_points(self):
        p = np.zeros(3)
        s = np.array([100.0, 0.0, 0.0])
        pts = lagrange_points(p, 1000.0, s, 1.0)
        assert np.linalg.norm(pts.l1 - s) == pytest.approx(np.linalg.norm(pts.l2 - s))
        assert pts.l1[0] < 100.0 < pts.l2[0]
        assert pts.l3[0] < 0.0
        for tri in (pts.l4, pts.l5):
            assert np.linalg.norm(tri - p) == pytest.approx(100.0)
            assert np.linalg.norm(tri - s) == pytest.approx(100.0)
        assert not pts.is_degenerate

    def test_equal_masses(self):
        p = np.zeros(3)
        s = np.array([0.0, 80.0, 0.0])
        pts = lagrange_points(p, 500.0, s, 500.0)
        hill = (0.5 / 3.0) ** (1.0 / 3.0)
        # L1 and L2 sit either side of the secondary at R * hill
        assert np.linalg.norm(pts.l1 - s) == pytest.approx(80.0 * hill)
        assert np.linalg.norm(pts.l2 - s) == pytest.approx(np.linalg.norm(pts.l1 - s))
        assert pts.l1[1] < 80.0 < pts.l2[1]
        for tri in (pts.l4, pts.l5):
            assert np.linalg.norm(tri - p) == pytest.approx(80.0)
            assert np.linalg.norm(tri - s) == pytest.approx(80.0)
        assert np.linalg.norm(pts.l4 - pts.l5) == pytest.approx(80.0 * math.sqrt(3.0))

    def test_coincident_bodies_are_degenerate(self):
        pts = lagrange_points(np.zeros(3), 1.0, np.zeros(3), 1.0)
        assert pts.is_degenerate

    def test_perpendicular_unit(self):
        for u in (np.array([1.0, 0.0, 0.0]), np.array([0.0, 0.0, 1.0]), np.array([0.6, 0.8, 0.0])):
            perp = perpendicular_unit(u)
            assert np.dot(perp, u) == pytest.approx(0.0, abs=1e-12)
            assert np.linalg.norm(perp) == pytest.approx(1.0)


class TestHohmann:
    def test_reference_transfer(self):
        mu = 100_000.0
        t = hohmann_transfer(100.0, 400.0, mu)
        a = 250.0
        assert t.semi_major_axis == pytest.approx(a)
        assert t.eccentricity == pytest.approx(0.6)
        expected_dv1 = math.sqrt(mu * (2 / 100.0 - 1 / a)) - math.sqrt(mu / 100.0)
        expected_dv2 = math.sqrt(mu / 400.0) - math.sqrt(mu * (2 / 400.0 - 1 / a))
        assert t.delta_v1 == pytest.approx(expected_dv1)
        assert t.delta_v2 == pytest.approx(expected_dv2)
        assert t.total_delta_v == pytest.approx(expected_dv1 + expected_dv2)
        assert t.transfer_time == pytest.approx(math.pi * math.sqrt(a**3 / mu))

    def test_path_runs_periapsis_to_apoapsis(self):
        t = hohmann_transfer(400.0, 100.0, 100_000.0, center=(10.0, 0.0, 0.0), num_points=50)
        assert t.points.shape == (51, 3)
        np.testing.assert_allclose(t.points[0], [110.0, 0.0, 0.0], atol=1e-9)
        np.testing.assert_allclose(t.points[-1], [-390.0, 0.0, 0.0], atol=1e-9)

    def test_rejects_non_positive_inputs(self):
        with pytest.raises(ValueError):
            hohmann_transfer(0.0, 100.0, 1.0)

    def test_non_finite_inputs_give_no_result(self):
        assert hohmann_transfer(math.nan, 400.0, 100_000.0) is None
        assert hohmann_transfer(math.inf, 400.0, 100_000.0) is None
        assert hohmann_transfer(100.0, 400.0, math.inf) is None
        assert hohmann_transfer(100.0, 400.0, 100_000.0, center=(0.0, math.nan, 0.0)) is None

    def test_total_is_exact_sum(self):
        t = hohmann_transfer(100.0, 400.0, 100.0 * 1000.0)
        assert t.delta_v1 + t.delta_v2 == t.total_delta_v
        assert t.transfer_time > 0.0

    def test_sample_count_only_changes_the_path(self):
        coarse = hohmann_transfer(100.0, 400.0, 100_000.0, num_points=100)
        fine = hohmann_transfer(100.0, 400.0, 100_000.0, num_points=200)
        assert (fine.delta_v1, fine.delta_v2, fine.transfer_time) == (
            coarse.delta_v1,
            coarse.delta_v2,
            coarse.transfer_time,
        )
        assert len(fine.points) == 2 * len(coarse.points) - 1

    def test_needs_three_bodies(self):
        sun, planet = sun_and_planet()
        assert hohmann_for([sun, planet]) is None

    def test_pairs_selected_with_other_orbiter(self):
        sun, planet = sun_and_planet()
        outer = make_body(2, position=(0.0, 600.0, 0.0), mass=0.5)
        report = hohmann_for([sun, planet, outer], selected_id=2)
        assert report.central.id == 0
        assert (report.inner.id, report.outer.id) == (1, 2)


class TestGravityAssist:
    def test_deflection(self):
        result = gravity_assist(10.0, 50.0, 100.0, g=100.0)
        e = 1.0 + 50.0 * 100.0 / 10_000.0
        assert result.eccentricity == pytest.approx(e)
        assert result.deflection_angle == pytest.approx(2.0 * math.asin(1.0 / e))
        assert result.exit_speed == 10.0

    def test_massless_body(self):
        assert gravity_assist(10.0, 50.0, 0.0) is None

    def test_requires_heavier_body(self):
        sun, planet = sun_and_planet()
        assert gravity_assist_for(sun, [sun, planet]) is None
        report = gravity_assist_for(planet, [sun, planet])
        assert report.target.id == 0


class TestBarycenterAndField:
    def test_barycenter(self):
        bodies = [make_body(1, (0.0, 0.0, 0.0), mass=3.0), make_body(2, (4.0, 0.0, 0.0), mass=1.0)]
        np.testing.assert_allclose(barycenter(bodies), [1.0, 0.0, 0.0])

    def test_barycenter_without_mass(self):
        assert barycenter([make_body(1, mass=0.0)]) is None

    def test_field_grid_is_normalised(self):
        sun, planet = sun_and_planet()
        grid = gravity_field_grid([sun, planet], (-400.0, -400.0, 400.0, 400.0), 16)
        assert grid.shape == (16, 16)
        assert grid.min() == pytest.approx(0.0)
        assert grid.max() == pytest.approx(1.0)

    def test_field_grid_needs_resolution(self):
        assert gravity_field_grid([make_body(1)], (0, 0, 1, 1), 1) is None
