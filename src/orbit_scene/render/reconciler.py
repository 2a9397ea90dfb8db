"""Keeps the scene graph in step with the latest simulation frame.

Each body that is rendered on its own gets a :class:`BodyVisual`; small,
mobile, non-craft bodies share one :class:`BodyBatch` instead.  A visual is
built the first time its id is seen, edited in place while the id persists and
disposed in the same pass that notices the id is gone.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, Optional

import numpy as np

from orbit_scene.core.config import DEFAULT_TOGGLES, RECONCILE_CFG, OverlayToggles, ReconcileCfg
from orbit_scene.core.mechanics import dominant_body, specific_angular_momentum
from orbit_scene.core.model import BodySnapshot, Frame, hex_to_rgb

from .pools import TrailBuffer
from .scene import (
    Geometry,
    Group,
    InstancedMesh,
    Label,
    Line,
    Material,
    Mesh,
    PointLight,
    ResourceRegistry,
    Scene,
    Sprite,
)

logger = logging.getLogger(__name__)

_rgb = lru_cache(maxsize=1024)(hex_to_rgb)


@dataclass
class SyncStats:
    """Counters describing one reconciliation pass."""

    bodies: int = 0
    individual: int = 0
    batched: int = 0
    created: int = 0
    disposed: int = 0
    skipped: int = 0
    dropped: int = 0


def _body_geometry(registry: ResourceRegistry, body: BodySnapshot, cfg: ReconcileCfg) -> Geometry:
    if body.traits.shape == "cone":
        return Geometry.cone(
            registry, body.radius, body.radius * cfg.cone_height_factor, cfg.cone_segments
        )
    return Geometry.sphere(registry, body.radius, cfg.sphere_segments)


def _segment(registry: ResourceRegistry, color: tuple[float, float, float], name: str) -> Line:
    return Line(Geometry.buffer(registry, 2), Material(registry, color), name=name)


def _set_segment(line: Line, direction: np.ndarray) -> None:
    line.set_points(np.vstack([np.zeros(3), direction]))


class BodyVisual:
    """Graphics owned by one individually rendered body."""

    def __init__(
        self,
        body: BodySnapshot,
        registry: ResourceRegistry,
        trail_root: Group,
        plane_root: Group,
        cfg: ReconcileCfg = RECONCILE_CFG,
    ) -> None:
        self.body_id = body.id
        self._registry = registry
        self._cfg = cfg
        self._plane_root = plane_root
        rgb = _rgb(body.color)

        self.group = Group(f"body-{body.id}")
        self.mesh = Mesh(
            _body_geometry(registry, body, cfg),
            Material(registry, rgb, roughness=cfg.roughness),
            name="shape",
            pickable=True,
        )
        self.group.add(self.mesh)
        self.glow = Sprite(Material(registry, rgb, additive=True), name="glow")
        self.group.add(self.glow)
        self.light: Optional[PointLight] = None

        self.trail = TrailBuffer(
            registry,
            rgb,
            capacity=cfg.max_trail_points,
            opacity=cfg.trail_opacity,
            slow_color=cfg.trail_slow_color,
            fast_color=cfg.trail_fast_color,
            speed_epsilon=cfg.speed_epsilon,
        )
        trail_root.add(self.trail)

        self.label: Optional[Label] = None
        self.velocity_arrow: Optional[Line] = None
        self.acceleration_arrow: Optional[Line] = None
        self.comet_tail: Optional[Line] = None
        self.exhaust: Optional[Line] = None
        self.plane_disc: Optional[Mesh] = None

        self.last_radius = body.radius
        self.last_color = body.color
        self.last_is_fixed = False
        self.last_name = body.name
        self.last_kind = body.kind
        self._apply_fixed(body.is_fixed, rgb)
        self._apply_radius(body.radius)

    # property changes -------------------------------------------------
    def _apply_radius(self, radius: float) -> None:
        cfg = self._cfg
        factor = cfg.fixed_glow_factor if self.last_is_fixed else cfg.glow_factor
        size = radius * factor
        self.glow.scale = np.array([size, size, 1.0])
        if self.label is not None:
            self.label.position = np.array([0.0, radius * cfg.label_offset_factor, 0.0])

    def _apply_fixed(self, is_fixed: bool, rgb: tuple[float, float, float]) -> None:
        cfg = self._cfg
        material = self.mesh.material
        if is_fixed:
            material.emissive = np.array(rgb, dtype=float)
            material.emissive_intensity = cfg.fixed_emissive_intensity
            material.roughness = cfg.fixed_roughness
            self.glow.material.opacity = cfg.fixed_glow_opacity
            if self.light is None:
                self.light = PointLight(
                    self._registry, rgb, cfg.light_intensity, cfg.light_range
                )
                self.group.add(self.light)
        else:
            material.emissive = np.zeros(3)
            material.emissive_intensity = 0.0
            material.roughness = cfg.roughness
            self.glow.material.opacity = cfg.glow_opacity
            if self.light is not None:
                self.group.remove(self.light)
                self.light.dispose()
                self.light = None
        self.last_is_fixed = is_fixed

    def _apply_color(self, rgb: tuple[float, float, float]) -> None:
        color = np.array(rgb, dtype=float)
        self.mesh.material.color = color.copy()
        self.glow.material.color = color.copy()
        self.trail.material.color = color.copy()
        if self.last_is_fixed:
            self.mesh.material.emissive = color.copy()
        if self.light is not None:
            self.light.color = color.copy()

    def _sync_properties(self, body: BodySnapshot) -> None:
        if body.radius != self.last_radius or body.kind is not self.last_kind:
            old = self.mesh.geometry
            self.mesh.geometry = _body_geometry(self._registry, body, self._cfg)
            old.dispose()
            self.last_radius = body.radius
            self.last_kind = body.kind
            self._apply_radius(body.radius)
        if body.color != self.last_color:
            self._apply_color(_rgb(body.color))
            self.last_color = body.color
        if body.is_fixed != self.last_is_fixed:
            self._apply_fixed(body.is_fixed, _rgb(body.color))
            self._apply_radius(body.radius)
        if body.name != self.last_name:
            if self.label is not None:
                self.label.text = body.name
            self.last_name = body.name

    # optional parts ---------------------------------------------------
    def _ensure_label(self, body: BodySnapshot) -> Label:
        if self.label is None:
            self.label = Label(body.name)
            self.group.add(self.label)
            self._apply_radius(body.radius)
        return self.label

    def _update_vectors(self, body: BodySnapshot, show: bool) -> None:
        cfg = self._cfg
        if not show:
            for arrow in (self.velocity_arrow, self.acceleration_arrow):
                if arrow is not None:
                    arrow.visible = False
            return
        if self.velocity_arrow is None:
            self.velocity_arrow = _segment(self._registry, cfg.velocity_arrow_color, "velocity")
            self.group.add(self.velocity_arrow)
        if self.acceleration_arrow is None:
            self.acceleration_arrow = _segment(
                self._registry, cfg.acceleration_arrow_color, "acceleration"
            )
            self.group.add(self.acceleration_arrow)
        _set_segment(self.velocity_arrow, body.velocity * cfg.velocity_arrow_scale)
        _set_segment(self.acceleration_arrow, body.acceleration * cfg.acceleration_arrow_scale)
        self.velocity_arrow.visible = bool(np.linalg.norm(body.velocity) > cfg.velocity_epsilon)
        self.acceleration_arrow.visible = bool(
            np.linalg.norm(body.acceleration) > cfg.velocity_epsilon
        )

    def _update_comet_tail(self, body: BodySnapshot, dominant: Optional[BodySnapshot]) -> None:
        cfg = self._cfg
        eligible = (
            body.traits.comet_tail
            and not body.is_fixed
            and body.radius <= cfg.comet_max_radius
            and dominant is not None
            and dominant.is_fixed
        )
        if not eligible:
            if self.comet_tail is not None:
                self.comet_tail.visible = False
            return
        away = body.position - dominant.position
        distance = float(np.linalg.norm(away))
        if distance <= 0.0:
            return
        if self.comet_tail is None:
            self.comet_tail = _segment(self._registry, _rgb(body.color), "comet-tail")
            self.comet_tail.material.additive = True
            self.group.add(self.comet_tail)
        length = body.radius * cfg.comet_length_factor * min(
            1.0, cfg.comet_reference_distance / distance
        )
        _set_segment(self.comet_tail, away / distance * length)
        self.comet_tail.visible = True

    def _update_exhaust(self, body: BodySnapshot) -> None:
        cfg = self._cfg
        thrust = float(np.linalg.norm(body.thrust)) if body.traits.exhaust else 0.0
        if thrust <= cfg.velocity_epsilon:
            if self.exhaust is not None:
                self.exhaust.visible = False
            return
        if self.exhaust is None:
            self.exhaust = _segment(self._registry, (1.0, 0.6, 0.2), "exhaust")
            self.exhaust.material.additive = True
            self.group.add(self.exhaust)
        _set_segment(self.exhaust, -body.thrust / thrust * body.radius * cfg.exhaust_length_factor)
        self.exhaust.visible = True

    def _update_plane(self, body: BodySnapshot, dominant: Optional[BodySnapshot], show: bool) -> None:
        if not show or body.is_fixed or dominant is None:
            if self.plane_disc is not None:
                self.plane_disc.visible = False
            return
        rel = body.position - dominant.position
        h = specific_angular_momentum(rel, body.velocity)
        hmag = float(np.linalg.norm(h))
        distance = float(np.linalg.norm(rel))
        if hmag <= self._cfg.velocity_epsilon or not math.isfinite(distance):
            if self.plane_disc is not None:
                self.plane_disc.visible = False
            return
        if self.plane_disc is None:
            self.plane_disc = Mesh(
                Geometry.disc(self._registry),
                Material(self._registry, _rgb(body.color), opacity=self._cfg.plane_disc_opacity),
                name=f"plane-{self.body_id}",
            )
            self._plane_root.add(self.plane_disc)
        self.plane_disc.position = dominant.position.copy()
        self.plane_disc.look_along(h / hmag)
        self.plane_disc.scale = np.array([distance, 1.0, distance])
        self.plane_disc.visible = True

    # per frame ----------------------------------------------------------
    def update(self, body: BodySnapshot, frame: Frame, toggles: OverlayToggles, g: float) -> None:
        cfg = self._cfg
        self._sync_properties(body)
        self.group.position = body.position.copy()
        self.trail.write(body.trail)

        if body.traits.orient_along_velocity:
            speed = float(np.linalg.norm(body.velocity))
            if speed > cfg.velocity_epsilon:
                self.mesh.look_along(body.velocity / speed)

        if toggles.labels:
            self._ensure_label(body).visible = True
        elif self.label is not None:
            self.label.visible = False

        self._update_vectors(body, toggles.vectors)

        dominant: Optional[BodySnapshot] = None
        needs_dominant = (
            toggles.orbital_planes and not body.is_fixed
        ) or (body.traits.comet_tail and body.radius <= cfg.comet_max_radius)
        if needs_dominant:
            dominant = dominant_body(body.id, body.position, frame.bodies, g)
        self._update_comet_tail(body, dominant)
        self._update_exhaust(body)
        self._update_plane(body, dominant, toggles.orbital_planes)

    def dispose(self) -> None:
        for node in (self.group, self.trail, self.plane_disc):
            if node is None:
                continue
            if node.parent is not None:
                node.parent.remove(node)
            node.dispose()
        self.light = None
        self.plane_disc = None


class BodyBatch:
    """Instanced low-detail rendering for small bodies.

    Slots are refilled from zero each frame, so ``count`` always equals the
    number of bodies batched in the latest pass.  Bodies past ``capacity`` are
    not drawn at all, and a pass that batches nothing releases the mesh.
    """

    def __init__(
        self, parent: Group, registry: ResourceRegistry, cfg: ReconcileCfg = RECONCILE_CFG
    ) -> None:
        self._parent = parent
        self._registry = registry
        self._cfg = cfg
        self.capacity = cfg.batch_capacity
        self.mesh: Optional[InstancedMesh] = None
        self.slot_ids = np.full(self.capacity, -1, dtype=np.int64)
        self.count = 0
        self.dropped = 0
        self._overflowing = False

    def begin(self) -> None:
        self.count = 0
        self.dropped = 0

    def add(self, body: BodySnapshot) -> bool:
        if self.count >= self.capacity:
            self.dropped += 1
            return False
        if self.mesh is None:
            self.mesh = InstancedMesh(self._registry, self.capacity, name="small-bodies")
            self._parent.add(self.mesh)
        slot = self.count
        self.mesh.offsets[slot] = body.position
        self.mesh.scales[slot] = max(body.radius, self._cfg.batch_scale_floor)
        self.mesh.colors[slot] = _rgb(body.color)
        self.slot_ids[slot] = body.id
        self.count += 1
        return True

    def end(self) -> None:
        self.slot_ids[self.count :] = -1
        if self.mesh is not None:
            self.mesh.count = self.count
            if self.count == 0:
                self._release_mesh()
        if self.dropped and not self._overflowing:
            logger.warning(
                "Small-body batch full (%d slots); %d bodies not drawn",
                self.capacity,
                self.dropped,
            )
        self._overflowing = self.dropped > 0

    def body_at(self, slot: int) -> Optional[int]:
        if 0 <= slot < self.count:
            return int(self.slot_ids[slot])
        return None

    def ids(self) -> set[int]:
        return {int(i) for i in self.slot_ids[: self.count]}

    def _release_mesh(self) -> None:
        if self.mesh is None:
            return
        if self.mesh.parent is not None:
            self.mesh.parent.remove(self.mesh)
        self.mesh.dispose()
        self.mesh = None

    def dispose(self) -> None:
        self._release_mesh()
        self.count = 0


class FrameReconciler:
    """Owns every body visual and the small-body batch."""

    def __init__(self, scene: Scene, cfg: ReconcileCfg = RECONCILE_CFG) -> None:
        self.scene = scene
        self._cfg = cfg
        self.body_root = Group("bodies")
        self.trail_root = Group("trails")
        self.plane_root = Group("orbital-planes")
        for node in (self.plane_root, self.trail_root, self.body_root):
            scene.add(node)
        self.batch = BodyBatch(self.body_root, scene.registry, cfg)
        self._visuals: dict[int, BodyVisual] = {}
        self._groups: dict[int, Group] = {}
        self.groups: Mapping[int, Group] = MappingProxyType(self._groups)
        self._skipping: set[int] = set()
        self.total_skipped = 0
        self.last_stats = SyncStats()

    def is_batch_eligible(self, body: BodySnapshot) -> bool:
        return (
            body.mass < self._cfg.small_body_mass_threshold
            and not body.is_fixed
            and not body.is_craft
        )

    def tracked_ids(self) -> set[int]:
        return set(self._visuals)

    def visual(self, body_id: int) -> Optional[BodyVisual]:
        return self._visuals.get(body_id)

    def sync_frame(self, frame: Frame, toggles: OverlayToggles = DEFAULT_TOGGLES) -> SyncStats:
        cfg = self._cfg
        stats = SyncStats(bodies=len(frame.bodies))
        seen: set[int] = set()
        self.batch.begin()

        for body in frame.bodies:
            if not body.is_finite():
                stats.skipped += 1
                if body.id not in self._skipping:
                    logger.warning("Skipping body %d with non-finite state", body.id)
                    self._skipping.add(body.id)
                # keep the existing visual alive through the skipped frame
                if body.id in self._visuals:
                    seen.add(body.id)
                continue
            self._skipping.discard(body.id)

            if self.is_batch_eligible(body):
                if self.batch.add(body):
                    stats.batched += 1
                else:
                    stats.dropped += 1
                continue

            seen.add(body.id)
            visual = self._visuals.get(body.id)
            if visual is None:
                visual = BodyVisual(
                    body, self.scene.registry, self.trail_root, self.plane_root, cfg
                )
                self.body_root.add(visual.group)
                self._visuals[body.id] = visual
                self._groups[body.id] = visual.group
                stats.created += 1
                logger.debug("Created visual for body %d (%s)", body.id, body.name)
            visual.update(body, frame, toggles, cfg.gravitational_constant)

        for body_id in [i for i in self._visuals if i not in seen]:
            self._dispose_visual(body_id)
            stats.disposed += 1

        self.batch.end()
        stats.individual = len(self._visuals)
        self.total_skipped += stats.skipped
        self.last_stats = stats
        return stats

    def _dispose_visual(self, body_id: int) -> None:
        visual = self._visuals.pop(body_id)
        self._groups.pop(body_id, None)
        visual.dispose()
        logger.debug("Disposed visual for body %d", body_id)

    def clear(self) -> None:
        for body_id in list(self._visuals):
            self._dispose_visual(body_id)
        self.batch.dispose()
        self._skipping.clear()

    def dispose(self) -> None:
        self.clear()
        for node in (self.plane_root, self.trail_root, self.body_root):
            if node.parent is not None:
                node.parent.remove(node)


__all__ = ["BodyBatch", "BodyVisual", "FrameReconciler", "SyncStats"]
