import numpy as np
import pytest

from orbit_scene.core.config import OverlayCfg, OverlayToggles
from orbit_scene.core.model import TrailSample
from orbit_scene.render.overlays import OverlayLayer, field_bounds, kepler_fan
from orbit_scene.render.reconciler import FrameReconciler

from conftest import make_body, make_frame, make_trail, sun_and_planet

EVERYTHING = OverlayToggles(
    labels=True,
    vectors=True,
    barycenter=True,
    orbital_elements=True,
    lagrange_points=True,
    kepler_areas=True,
    gravity_field=True,
    orbital_planes=True,
    hohmann=True,
    gravity_assist=True,
)


@pytest.fixture
def layer(scene):
    return OverlayLayer(scene)


def solar_frame():
    sun, planet = sun_and_planet()
    trail = tuple(
        TrailSample(position=np.array([300.0 * np.cos(a), 300.0 * np.sin(a), 0.0]), speed=1.0)
        for a in np.linspace(-1.0, 0.0, 40)
    )
    planet = make_body(
        1,
        position=planet.position,
        velocity=planet.velocity,
        mass=planet.mass,
        radius=planet.radius,
        trail=trail,
    )
    outer = make_body(2, position=(0.0, 600.0, 0.0), velocity=(-90.0, 0.0, 0.0), mass=0.5)
    return make_frame(sun, planet, outer)


class TestHelpers:
    def test_field_bounds_are_square(self):
        bodies = [make_body(1, (0.0, 0.0, 0.0)), make_body(2, (100.0, 40.0, 0.0))]
        xmin, ymin, xmax, ymax = field_bounds(bodies, 0.0, 10.0)
        assert xmax - xmin == pytest.approx(ymax - ymin)
        assert (xmin, xmax) == pytest.approx((0.0, 100.0))

    def test_field_bounds_minimum_extent(self):
        xmin, _, xmax, _ = field_bounds([make_body(1)], 0.25, 100.0)
        assert xmax - xmin == pytest.approx(100.0)

    def test_kepler_fan_alternates_colors(self):
        trail = np.array([[float(i), 1.0, 0.0] for i in range(12)])
        positions, colors = kepler_fan(np.zeros(3), trail, 4, 1000)
        assert len(positions) == 4 * 2 * 3
        np.testing.assert_allclose(positions[0], np.zeros(3))
        assert not np.allclose(colors[0], colors[6])

    def test_kepler_fan_respects_vertex_budget(self):
        trail = np.zeros((100, 3))
        positions, _ = kepler_fan(np.zeros(3), trail, 2, 30)
        assert len(positions) <= 30

    def test_short_trail_gives_no_fan(self):
        positions, colors = kepler_fan(np.zeros(3), np.zeros((3, 3)), 8, 100)
        assert len(positions) == 0 and len(colors) == 0


class TestToggles:
    def test_everything_off_hides_everything(self, layer):
        readout = layer.update(solar_frame(), OverlayToggles(), selected_id=1)
        assert readout.elements is None and readout.lagrange is None
        assert not any(m.visible for m in layer.lagrange_markers)
        assert not layer.hohmann_line.visible
        assert not layer.field.visible
        assert not layer.kepler.visible
        assert not layer.barycenter_marker.visible

    def test_everything_on(self, layer):
        readout = layer.update(solar_frame(), EVERYTHING, selected_id=1)
        assert readout.attractor_id == 0
        assert readout.elements.eccentricity == pytest.approx(0.0, abs=1e-9)
        assert readout.lagrange_pair == (0, 1)
        assert all(m.visible for m in layer.lagrange_markers)
        assert readout.transfer is not None and layer.hohmann_line.visible
        assert readout.assist is not None
        assert layer.barycenter_marker.visible
        assert layer.kepler.visible
        assert layer.field.visible and layer.field.values.shape == (24, 24)

    def test_elements_need_a_selection(self, layer):
        readout = layer.update(solar_frame(), EVERYTHING, selected_id=None)
        assert readout.elements is None
        assert not layer.kepler.visible

    def test_lagrange_markers_track_pair(self, layer):
        layer.update(solar_frame(), OverlayToggles(lagrange_points=True))
        l4 = layer.lagrange_markers[3].position
        assert np.linalg.norm(l4) == pytest.approx(300.0)

    def test_kepler_needs_enough_history(self, layer):
        sun, planet = sun_and_planet()
        short = make_body(1, position=planet.position, velocity=planet.velocity, trail=make_trail(5))
        layer.update(make_frame(sun, short), OverlayToggles(kepler_areas=True), selected_id=1)
        assert not layer.kepler.visible

    def test_update_allocates_nothing(self, layer, registry):
        frame = solar_frame()
        layer.update(frame, EVERYTHING, selected_id=1)
        created = registry.created
        layer.update(frame, OverlayToggles(), selected_id=1)
        layer.update(frame, EVERYTHING, selected_id=1)
        assert registry.created == created


class TestSelectionRing:
    def test_ring_follows_selected_group(self, scene, layer):
        reconciler = FrameReconciler(scene)
        frame = solar_frame()
        reconciler.sync_frame(frame)
        layer.update(frame, OverlayToggles(), selected_id=1, groups=reconciler.groups, elapsed=0.0)
        ring = layer.selection_ring
        assert ring.visible
        np.testing.assert_allclose(ring.position, [300.0, 0.0, 0.0])
        assert ring.scale[0] == pytest.approx(8.0 * OverlayCfg().selection_ring_factor * 0.9)

    def test_ring_hidden_without_group(self, layer):
        layer.update(solar_frame(), OverlayToggles(), selected_id=1, groups={})
        assert not layer.selection_ring.visible


class TestPrediction:
    def test_set_and_clear(self, layer):
        layer.set_prediction([(0.0, 0.0), (10.0, 0.0), (10.0, 10.0)])
        assert layer.has_prediction
        assert layer.prediction_line.geometry.draw_count == 3
        layer.set_prediction([(1.0, 2.0)])
        assert not layer.has_prediction

    def test_accepts_mapping_points(self, layer):
        layer.set_prediction([{"x": 0.0, "y": 0.0}, {"x": 5.0, "y": 5.0, "z": 1.0}])
        np.testing.assert_allclose(layer.prediction_line.vertices()[1], [5.0, 5.0, 1.0])

    def test_bad_points_keep_previous_path(self, layer):
        layer.set_prediction([(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)])
        layer.set_prediction([(0.0, 0.0, 0.0), (float("nan"), 0.0, 0.0)])
        assert layer.has_prediction
        np.testing.assert_allclose(layer.prediction_line.vertices()[1], [1.0, 0.0, 0.0])
        layer.set_prediction([(0.0, 0.0, 0.0), "junk"])
        assert layer.prediction_line.geometry.draw_count == 2

    def test_dispose_releases_everything(self, scene, registry):
        baseline = registry.live()
        layer = OverlayLayer(scene)
        layer.dispose()
        assert registry.live() == baseline
