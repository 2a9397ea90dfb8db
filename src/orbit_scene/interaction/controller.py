"""Pointer handling: picking, body placement and slingshot impulses.

The controller never touches simulation state.  It reads the reconciler's
read-only ``groups`` view for picking and reports everything else as command
objects handed to a :class:`CommandSink`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, Union

import numpy as np

from orbit_scene.core.config import INTERACTION_CFG, BodyPreset, InteractionCfg
from orbit_scene.core.model import hex_to_rgb, vec3
from orbit_scene.render.camera import OrbitCamera, Plane, Ray
from orbit_scene.render.scene import Geometry, Group, Line, Material, Mesh, Scene

logger = logging.getLogger(__name__)


class InteractionMode(str, Enum):
    SELECT = "select"
    PLACE = "place"
    SLINGSHOT = "slingshot"


@dataclass(frozen=True)
class PointerEvent:
    """Pointer position in window pixels."""

    x: float
    y: float
    button: int = 0
    modifier: bool = False


def _vector_payload(v: np.ndarray) -> dict[str, float]:
    return {"x": float(v[0]), "y": float(v[1]), "z": float(v[2])}


@dataclass(frozen=True, eq=False)
class CreateBodyCommand:
    position: np.ndarray
    velocity: np.ndarray = field(default_factory=vec3)
    mass: float = 1.0
    radius: float = 6.0
    color: str = "#00FF88"
    name: str = "New Body"
    is_fixed: bool = False
    kind: str = "planet"

    @classmethod
    def from_preset(cls, position: np.ndarray, preset: BodyPreset) -> "CreateBodyCommand":
        return cls(
            position=np.asarray(position, dtype=float).copy(),
            mass=preset.mass,
            radius=preset.radius,
            color=preset.color,
            name=preset.name,
            is_fixed=preset.is_fixed,
            kind=preset.kind,
        )

    def payload(self) -> dict[str, Any]:
        return {
            "command": "add_body",
            "position": _vector_payload(self.position),
            "velocity": _vector_payload(self.velocity),
            "mass": self.mass,
            "radius": self.radius,
            "color": self.color,
            "name": self.name,
            "is_fixed": self.is_fixed,
            "body_type": self.kind,
        }


@dataclass(frozen=True, eq=False)
class SetVelocityCommand:
    body_id: int
    velocity: np.ndarray

    def payload(self) -> dict[str, Any]:
        return {
            "command": "update_body_velocity",
            "id": self.body_id,
            "velocity": _vector_payload(self.velocity),
        }


@dataclass(frozen=True, eq=False)
class SetThrustCommand:
    body_id: int
    thrust: np.ndarray

    def payload(self) -> dict[str, Any]:
        return {"command": "set_thrust", "id": self.body_id, "thrust": _vector_payload(self.thrust)}


@dataclass(frozen=True)
class PredictTrajectoryCommand:
    body_id: int
    steps: int = 500

    def payload(self) -> dict[str, Any]:
        return {"command": "predict_orbit", "id": self.body_id, "steps": self.steps}


Command = Union[CreateBodyCommand, SetVelocityCommand, SetThrustCommand, PredictTrajectoryCommand]


class CommandSink(Protocol):
    def submit(self, command: Command) -> None: ...


@dataclass
class DragState:
    body_id: int
    anchor: np.ndarray
    plane: Plane
    indicator: Line


def pick(
    ray: Ray, groups: Mapping[int, Group], radius_factor: float = 1.0
) -> Optional[int]:
    """Nearest individually rendered body hit by ``ray``."""

    best_t = np.inf
    best_id: Optional[int] = None
    for body_id, group in groups.items():
        for node in group.traverse():
            if not isinstance(node, Mesh) or not node.pickable:
                continue
            if not node.is_effectively_visible():
                continue
            t = ray.intersect_sphere(
                node.world_position(), node.geometry.bounding_radius * radius_factor
            )
            if t is not None and t < best_t:
                best_t = t
                best_id = body_id
    return best_id


class InteractionController:
    """Three-mode pointer state machine (select, place, slingshot)."""

    def __init__(
        self,
        scene: Scene,
        camera: OrbitCamera,
        groups: Mapping[int, Group],
        sink: CommandSink,
        on_select: Optional[Callable[[Optional[int]], None]] = None,
        cfg: InteractionCfg = INTERACTION_CFG,
    ) -> None:
        self._scene = scene
        self._camera = camera
        self._groups = groups
        self._sink = sink
        self._on_select = on_select
        self._cfg = cfg
        self.mode = InteractionMode.SELECT
        self.placement_plane = Plane(
            normal=np.asarray(cfg.placement_normal, dtype=float), constant=-cfg.placement_offset
        )
        self.drag: Optional[DragState] = None

        preset = cfg.default_preset
        self.ghost = Mesh(
            Geometry.sphere(scene.registry, cfg.ghost_radius, segments=16),
            Material(scene.registry, hex_to_rgb(preset.color), opacity=0.3),
            name="ghost",
        )
        self.ghost.visible = False
        scene.add(self.ghost)

    @property
    def is_dragging(self) -> bool:
        return self.drag is not None

    def set_mode(self, mode: Union[InteractionMode, str]) -> None:
        self.mode = InteractionMode(mode)
        self.ghost.visible = self.mode is InteractionMode.PLACE
        self.cancel_drag()

    # helpers ------------------------------------------------------------
    def _ray(self, event: PointerEvent) -> Ray:
        return self._camera.ray_from_pixel(event.x, event.y)

    def _select(self, body_id: Optional[int]) -> None:
        if self._on_select is not None:
            self._on_select(body_id)

    def pick_at(self, event: PointerEvent) -> Optional[int]:
        return pick(self._ray(event), self._groups, self._cfg.pick_radius_factor)

    # pointer events -----------------------------------------------------
    def pointer_down(self, event: PointerEvent) -> None:
        if event.button != 0:
            return
        if self.mode is InteractionMode.SELECT:
            self._select(self.pick_at(event))
        elif self.mode is InteractionMode.PLACE:
            self._place(event)
        elif self.mode is InteractionMode.SLINGSHOT:
            self._begin_drag(event)

    def pointer_move(self, event: PointerEvent) -> None:
        ray = self._ray(event)
        if self.mode is InteractionMode.PLACE:
            point = ray.intersect_plane(self.placement_plane)
            if point is not None:
                self.ghost.position = point
                self.ghost.visible = True
        if self.drag is not None:
            point = ray.intersect_plane(self.drag.plane)
            if point is not None:
                self.drag.indicator.set_points(np.vstack([self.drag.anchor, point]))
                self.drag.indicator.visible = True

    def pointer_up(self, event: PointerEvent) -> None:
        drag = self.drag
        if drag is None:
            return
        try:
            point = self._ray(event).intersect_plane(drag.plane)
            if point is not None:
                velocity = self._cfg.slingshot_scale * (drag.anchor - point)
                self._sink.submit(SetVelocityCommand(body_id=drag.body_id, velocity=velocity))
        finally:
            self.cancel_drag()

    def _place(self, event: PointerEvent) -> None:
        point = self._ray(event).intersect_plane(self.placement_plane)
        if point is None:
            return
        preset = self._cfg.craft_preset if event.modifier else self._cfg.default_preset
        self._sink.submit(CreateBodyCommand.from_preset(point, preset))

    def _begin_drag(self, event: PointerEvent) -> None:
        body_id = self.pick_at(event)
        if body_id is None:
            return
        group = self._groups.get(body_id)
        if group is None:
            return
        self.cancel_drag()
        anchor = group.world_position()
        normal = anchor - self._camera.position
        if np.linalg.norm(normal) < 1e-9:
            return
        indicator = Line(
            Geometry.buffer(self._scene.registry, 2),
            Material(self._scene.registry, self._cfg.drag_indicator_color),
            name="slingshot",
        )
        indicator.visible = False
        self._scene.add(indicator)
        self.drag = DragState(
            body_id=body_id,
            anchor=anchor,
            plane=Plane.from_normal_and_point(normal, anchor),
            indicator=indicator,
        )
        self._camera.controls_enabled = False
        logger.debug("Slingshot drag started on body %d", body_id)

    def cancel_drag(self) -> None:
        drag = self.drag
        if drag is None:
            return
        self.drag = None
        self._scene.remove(drag.indicator)
        drag.indicator.dispose()
        self._camera.controls_enabled = True

    def validate_drag(self) -> None:
        """Drop the drag if its body is no longer individually rendered."""

        if self.drag is not None and self.drag.body_id not in self._groups:
            logger.debug("Dragged body %d vanished; cancelling", self.drag.body_id)
            self.cancel_drag()

    def destroy(self) -> None:
        self.cancel_drag()
        self._scene.remove(self.ghost)
        self.ghost.dispose()


__all__ = [
    "Command",
    "CommandSink",
    "CreateBodyCommand",
    "DragState",
    "InteractionController",
    "InteractionMode",
    "PointerEvent",
    "PredictTrajectoryCommand",
    "SetThrustCommand",
    "SetVelocityCommand",
    "pick",
]
