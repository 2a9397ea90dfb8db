import math

import numpy as np
import pytest

from orbit_scene.core.model import BodyKind
from orbit_scene.data.scenarios import (
    SCENARIO_DISPLAY_ORDER,
    SCENARIOS,
    circular_orbiter_at,
    load_scenario,
)
from orbit_scene.render.reconciler import FrameReconciler


class TestScenarioFeed:
    def test_every_scenario_builds_a_frame(self):
        for key in SCENARIO_DISPLAY_ORDER:
            frame = load_scenario(key).advance(0.1)
            assert frame.find(0).is_fixed
            assert len(frame.bodies) == len(SCENARIOS[key].orbiters) + 1

    def test_unknown_scenario(self):
        with pytest.raises(ValueError):
            load_scenario("andromeda")

    def test_orbits_are_circular(self):
        feed = load_scenario("sun_earth")
        for _ in range(10):
            frame = feed.advance(0.5)
        earth = frame.find(1)
        assert np.linalg.norm(earth.position) == pytest.approx(250.0)
        assert np.dot(earth.position, earth.velocity) == pytest.approx(0.0, abs=1e-6)
        assert earth.speed == pytest.approx(math.sqrt(feed.mu / 250.0))

    def test_pause_freezes_time(self):
        feed = load_scenario("sun_earth")
        feed.advance(1.0)
        feed.paused = True
        before = feed.time
        frame = feed.advance(1.0)
        assert feed.time == before
        assert frame.paused

    def test_trails_grow_to_limit(self):
        feed = load_scenario("sun_earth", trail_length=5, trail_interval=0.1)
        assert len(feed.advance(0.0).find(1).trail) == 1
        for _ in range(10):
            frame = feed.advance(0.1)
        assert len(frame.find(1).trail) == 5
        np.testing.assert_allclose(frame.find(1).trail[-1].position, frame.find(1).position)

    def test_asteroids_are_batched_without_trails(self, scene):
        frame = load_scenario("asteroid_belt").advance(0.1)
        asteroid = frame.find(5)
        assert asteroid.trail == ()
        stats = FrameReconciler(scene).sync_frame(frame)
        assert stats.batched == 400
        assert stats.individual == 5

    def test_energy_is_negative_for_bound_orbits(self):
        frame = load_scenario("inner_solar").advance(0.1)
        assert frame.energy.total < 0.0
        assert frame.energy.total == pytest.approx(frame.energy.kinetic + frame.energy.potential)

    def test_removed_bodies_leave_the_frame(self):
        feed = load_scenario("inner_solar")
        feed.remove(2)
        assert 2 not in feed.frame().ids()
        assert feed.predict(2, 10) == []


class TestPlacement:
    def test_placed_orbiter_passes_through_point(self):
        feed = load_scenario("sun_earth")
        feed.advance(3.0)
        orbiter = circular_orbiter_at(
            np.array([0.0, 200.0, 0.0]), 1.0, 5.0, "#FFFFFF", "Probe", BodyKind.PLANET,
            feed.time, feed.mu,
        )
        body_id = feed.add_orbiter(orbiter)
        np.testing.assert_allclose(feed.frame().find(body_id).position, [0.0, 200.0, 0.0], atol=1e-9)

    def test_inside_radius_is_rejected(self):
        assert circular_orbiter_at(np.zeros(3), 1.0, 5.0, "#FFF", "x", BodyKind.PLANET, 0.0, 1.0) is None

    def test_prediction_covers_one_revolution(self):
        feed = load_scenario("sun_earth")
        path = feed.predict(1, 50)
        assert len(path) == 50
        np.testing.assert_allclose(path[0], path[-1], atol=1e-6)
        assert feed.predict(1, 1) == []
