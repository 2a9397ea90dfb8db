import numpy as np
import pytest

from orbit_scene.core.config import InteractionCfg
from orbit_scene.interaction.controller import (
    CreateBodyCommand,
    InteractionController,
    InteractionMode,
    PointerEvent,
    PredictTrajectoryCommand,
    SetThrustCommand,
    SetVelocityCommand,
    pick,
)
from orbit_scene.render.camera import OrbitCamera
from orbit_scene.render.reconciler import FrameReconciler

from conftest import make_body, make_frame

SIZE = (800, 600)
CENTER = PointerEvent(400.0, 300.0)


@pytest.fixture
def world(scene, sink):
    camera = OrbitCamera(SIZE)
    reconciler = FrameReconciler(scene)
    selected = []
    controller = InteractionController(
        scene, camera, reconciler.groups, sink, on_select=selected.append
    )
    return controller, reconciler, camera, selected


def body_at_origin(body_id=1):
    return make_frame(make_body(body_id, position=(0.0, 0.0, 0.0), radius=10.0))


class TestSelect:
    def test_click_on_body_selects_it(self, world):
        controller, reconciler, _, selected = world
        reconciler.sync_frame(body_at_origin())
        controller.pointer_down(CENTER)
        assert selected == [1]

    def test_click_on_empty_space_deselects(self, world):
        controller, reconciler, _, selected = world
        reconciler.sync_frame(body_at_origin())
        controller.pointer_down(PointerEvent(5.0, 5.0))
        assert selected == [None]

    def test_nearest_body_wins(self, world):
        controller, reconciler, camera, _ = world
        near = make_body(1, position=tuple(0.5 * camera.position), radius=10.0)
        far = make_body(2, position=(0.0, 0.0, 0.0), radius=10.0)
        reconciler.sync_frame(make_frame(near, far))
        assert controller.pick_at(CENTER) == 1

    def test_hidden_groups_are_not_pickable(self, world):
        controller, reconciler, camera, _ = world
        reconciler.sync_frame(body_at_origin())
        reconciler.groups[1].visible = False
        assert pick(camera.ray_from_pixel(400.0, 300.0), reconciler.groups) is None

    def test_secondary_buttons_are_ignored(self, world, sink):
        controller, reconciler, _, selected = world
        reconciler.sync_frame(body_at_origin())
        controller.pointer_down(PointerEvent(400.0, 300.0, button=2))
        assert selected == []


class TestPlace:
    def test_place_on_plane(self, world, sink):
        controller, _, _, _ = world
        controller.set_mode(InteractionMode.PLACE)
        controller.pointer_down(CENTER)
        [command] = sink.of_type(CreateBodyCommand)
        np.testing.assert_allclose(command.position, [0.0, 0.0, 0.0], atol=1e-6)
        assert command.mass == InteractionCfg().default_preset.mass
        payload = command.payload()
        assert payload["position"]["x"] == pytest.approx(0.0, abs=1e-6)

    def test_modifier_places_craft(self, world, sink):
        controller, _, _, _ = world
        controller.set_mode("place")
        controller.pointer_down(PointerEvent(400.0, 300.0, modifier=True))
        [command] = sink.of_type(CreateBodyCommand)
        assert command.kind == "spacecraft"

    def test_ray_parallel_to_plane_places_nothing(self, world, sink):
        controller, _, camera, _ = world
        camera.set_position((0.0, -800.0, 0.0))
        controller.set_mode(InteractionMode.PLACE)
        controller.pointer_down(CENTER)
        assert sink.commands == []

    def test_ghost_follows_pointer_only_in_place_mode(self, world):
        controller, _, _, _ = world
        assert not controller.ghost.visible
        controller.set_mode(InteractionMode.PLACE)
        controller.pointer_move(PointerEvent(420.0, 300.0))
        assert controller.ghost.visible
        assert controller.ghost.position[0] > 0.0
        controller.set_mode(InteractionMode.SELECT)
        assert not controller.ghost.visible


class TestSlingshot:
    def test_drag_emits_velocity_opposite_to_pull(self, world, sink):
        controller, reconciler, camera, _ = world
        reconciler.sync_frame(body_at_origin())
        controller.set_mode(InteractionMode.SLINGSHOT)
        controller.pointer_down(CENTER)
        assert controller.is_dragging
        assert not camera.controls_enabled
        controller.pointer_move(PointerEvent(500.0, 300.0))
        assert controller.drag.indicator.visible
        controller.pointer_up(PointerEvent(500.0, 300.0))
        [command] = sink.of_type(SetVelocityCommand)
        assert command.body_id == 1
        _, right, _ = camera.basis()
        assert np.dot(command.velocity, right) < 0.0
        assert not controller.is_dragging
        assert camera.controls_enabled

    def test_orbit_drag_does_not_jump_after_slingshot(self, world):
        controller, reconciler, camera, _ = world
        reconciler.sync_frame(body_at_origin())
        camera.begin_rotate((0, 0))
        controller.set_mode(InteractionMode.SLINGSHOT)
        controller.pointer_down(CENTER)
        controller.pointer_up(PointerEvent(500.0, 300.0))
        before = camera.position.copy()
        camera.rotate((300, 200))
        camera.update()
        np.testing.assert_allclose(camera.position, before)

    def test_release_without_drag_emits_nothing(self, world, sink):
        controller, _, _, _ = world
        controller.set_mode(InteractionMode.SLINGSHOT)
        controller.pointer_up(CENTER)
        assert sink.commands == []

    def test_drag_on_empty_space_does_nothing(self, world, sink):
        controller, reconciler, _, _ = world
        reconciler.sync_frame(body_at_origin())
        controller.set_mode(InteractionMode.SLINGSHOT)
        controller.pointer_down(PointerEvent(5.0, 5.0))
        assert not controller.is_dragging

    def test_mode_switch_mid_drag_disposes_indicator(self, world, sink, registry):
        controller, reconciler, camera, _ = world
        reconciler.sync_frame(body_at_origin())
        controller.set_mode(InteractionMode.SLINGSHOT)
        live = registry.live()
        controller.pointer_down(CENTER)
        indicator = controller.drag.indicator
        controller.set_mode(InteractionMode.SELECT)
        assert indicator.parent is None
        assert indicator.geometry.disposed
        assert registry.live() == live
        assert camera.controls_enabled
        controller.pointer_up(PointerEvent(500.0, 300.0))
        assert sink.commands == []

    def test_vanished_body_cancels_drag(self, world):
        controller, reconciler, _, _ = world
        reconciler.sync_frame(body_at_origin())
        controller.set_mode(InteractionMode.SLINGSHOT)
        controller.pointer_down(CENTER)
        reconciler.sync_frame(make_frame())
        controller.validate_drag()
        assert not controller.is_dragging


class TestCommands:
    def test_payload_shapes(self):
        assert SetVelocityCommand(3, np.array([1.0, 2.0, 3.0])).payload() == {
            "command": "update_body_velocity",
            "id": 3,
            "velocity": {"x": 1.0, "y": 2.0, "z": 3.0},
        }
        assert PredictTrajectoryCommand(4).payload()["steps"] == 500
        assert SetThrustCommand(5, np.zeros(3)).payload()["id"] == 5

    def test_destroy_releases_ghost(self, scene, sink, registry):
        baseline = registry.live()
        controller = InteractionController(scene, OrbitCamera(SIZE), {}, sink)
        controller.destroy()
        assert registry.live() == baseline
