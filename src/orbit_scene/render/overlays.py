"""Scene geometry for the analytic overlays.

All nodes are allocated once; ``OverlayLayer.update`` only rewrites buffers and
visibility from the current frame, toggles and selection.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np

from orbit_scene.core.config import (
    DEFAULT_TOGGLES,
    INTERACTION_CFG,
    OVERLAY_CFG,
    RECONCILE_CFG,
    OverlayCfg,
    OverlayToggles,
)
from orbit_scene.core.mechanics import (
    AssistReport,
    LagrangePoints,
    OrbitalElements,
    TransferReport,
    barycenter,
    dominant_body,
    gravity_assist_for,
    gravity_field_grid,
    hohmann_for,
    lagrange_points,
    orbital_elements,
    select_two_body_pair,
)
from orbit_scene.core.model import BodySnapshot, Frame, PayloadError, as_vec3

from .scene import FieldGrid, Geometry, Group, Line, Material, Mesh, Scene

KEPLER_COLORS = (
    np.array([0x44, 0x88, 0xFF], dtype=np.float32) / 255.0,
    np.array([0xFF, 0x88, 0x44], dtype=np.float32) / 255.0,
)


@dataclass(frozen=True, eq=False)
class OverlayReadout:
    """Numbers behind the overlays drawn this frame, for HUD panels."""

    elements: Optional[OrbitalElements] = None
    attractor_id: Optional[int] = None
    lagrange: Optional[LagrangePoints] = None
    lagrange_pair: Optional[tuple[int, int]] = None
    transfer: Optional[TransferReport] = None
    assist: Optional[AssistReport] = None
    barycenter: Optional[np.ndarray] = None


def field_bounds(
    bodies: Sequence[BodySnapshot], margin: float, min_extent: float
) -> Optional[tuple[float, float, float, float]]:
    """Square ``(xmin, ymin, xmax, ymax)`` around the bodies with a margin."""

    points = [b.position[:2] for b in bodies if b.is_finite()]
    if not points:
        return None
    xy = np.array(points)
    lo = xy.min(axis=0)
    hi = xy.max(axis=0)
    center = 0.5 * (lo + hi)
    half = max(float(np.max(hi - lo)) * 0.5 * (1.0 + margin), 0.5 * min_extent)
    return (center[0] - half, center[1] - half, center[0] + half, center[1] + half)


def kepler_fan(
    center: np.ndarray,
    trail: np.ndarray,
    segments: int,
    max_vertices: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Triangles sweeping from ``center`` along ``trail`` in equal segments.

    Returns ``(positions, colors)`` of shape ``(3 * triangles, 3)``; both are
    empty when the trail is too short to split.
    """

    seg_len = len(trail) // segments
    if seg_len < 2:
        return np.zeros((0, 3)), np.zeros((0, 3), dtype=np.float32)
    positions: list[np.ndarray] = []
    colors: list[np.ndarray] = []
    for s in range(segments):
        start = s * seg_len
        end = min(start + seg_len, len(trail))
        color = KEPLER_COLORS[s % 2]
        for i in range(start, end - 1):
            if len(positions) + 3 > max_vertices:
                break
            positions.extend((center, trail[i], trail[i + 1]))
            colors.extend((color, color, color))
    return np.array(positions, dtype=float), np.array(colors, dtype=np.float32)


class OverlayLayer:
    """Owns the overlay nodes and refreshes them once per frame."""

    def __init__(
        self,
        scene: Scene,
        cfg: OverlayCfg = OVERLAY_CFG,
        *,
        g: float = RECONCILE_CFG.gravitational_constant,
        prediction_capacity: int = INTERACTION_CFG.prediction_steps + 1,
    ) -> None:
        self._cfg = cfg
        self._g = g
        registry = scene.registry
        self.root = Group("overlays")
        scene.add(self.root)

        self.lagrange_markers: list[Mesh] = []
        for label in ("L1", "L2", "L3", "L4", "L5"):
            marker = Mesh(
                Geometry.sphere(registry, cfg.marker_radius, segments=8),
                Material(registry, (0.18, 0.82, 0.76), opacity=0.9),
                name=label,
            )
            marker.visible = False
            self.root.add(marker)
            self.lagrange_markers.append(marker)

        self.barycenter_marker = Mesh(
            Geometry.sphere(registry, cfg.marker_radius * 0.5, segments=8),
            Material(registry, (1.0, 1.0, 1.0)),
            name="barycenter",
        )
        self.hohmann_line = Line(
            Geometry.buffer(registry, cfg.hohmann_points + 1),
            Material(registry, (1.0, 0.78, 0.31), opacity=0.8),
            name="hohmann",
        )
        kepler_vertices = cfg.kepler_segments * cfg.kepler_max_triangles_per_segment * 3
        self.kepler = Line(
            Geometry.buffer(registry, kepler_vertices, shape="triangles"),
            Material(registry, opacity=0.15, vertex_colors=True),
            name="kepler",
        )
        self.field = FieldGrid()
        self.selection_ring = Mesh(
            Geometry.ring(registry, 1.0, 1.15),
            Material(registry, (0.0, 0.67, 1.0), opacity=0.8),
            name="selection",
        )
        self.prediction_line = Line(
            Geometry.buffer(registry, prediction_capacity),
            Material(
                registry,
                (1.0, 1.0, 1.0),
                opacity=0.5,
                dash=(cfg.prediction_dash, cfg.prediction_gap),
            ),
            name="prediction",
        )
        for node in (
            self.field,
            self.kepler,
            self.hohmann_line,
            self.barycenter_marker,
            self.selection_ring,
            self.prediction_line,
        ):
            node.visible = False
            self.root.add(node)
        self.readout = OverlayReadout()

    # prediction ---------------------------------------------------------
    def set_prediction(self, points: Optional[Sequence[Sequence[float]]]) -> None:
        """Replace the dashed prediction path; fewer than two points clears it."""

        if points is None or len(points) < 2:
            self.clear_prediction()
            return
        try:
            arr = np.array([as_vec3(point) for point in points])
        except PayloadError:
            return
        if not np.all(np.isfinite(arr)):
            return
        self.prediction_line.set_points(arr)
        self.prediction_line.visible = True

    def clear_prediction(self) -> None:
        self.prediction_line.geometry.draw_count = 0
        self.prediction_line.visible = False

    @property
    def has_prediction(self) -> bool:
        return self.prediction_line.visible

    # per frame ----------------------------------------------------------
    def update(
        self,
        frame: Frame,
        toggles: OverlayToggles = DEFAULT_TOGGLES,
        selected_id: Optional[int] = None,
        groups: Optional[Mapping[int, Group]] = None,
        elapsed: float = 0.0,
    ) -> OverlayReadout:
        cfg = self._cfg
        g = self._g
        bodies = tuple(b for b in frame.bodies if b.is_finite())
        selected = frame.find(selected_id)
        if selected is not None and not selected.is_finite():
            selected = None

        self._update_selection_ring(selected, groups, elapsed)

        elements = None
        attractor_id = None
        if toggles.orbital_elements and selected is not None:
            attractor = dominant_body(selected.id, selected.position, bodies, g)
            if attractor is not None:
                attractor_id = attractor.id
                elements = orbital_elements(
                    selected.position, selected.velocity, attractor.position, attractor.mass, g
                )

        lagrange = None
        pair_ids = None
        pair = select_two_body_pair(bodies) if toggles.lagrange_points else None
        if pair is not None:
            primary, secondary = pair
            lagrange = lagrange_points(
                primary.position, primary.mass, secondary.position, secondary.mass
            )
            if lagrange.is_degenerate:
                lagrange = None
            else:
                pair_ids = (primary.id, secondary.id)
        for marker, point in zip(
            self.lagrange_markers, lagrange.as_array() if lagrange is not None else [None] * 5
        ):
            marker.visible = point is not None
            if point is not None:
                marker.position = point.copy()

        transfer = None
        if toggles.hohmann:
            transfer = hohmann_for(bodies, selected_id, g, cfg.hohmann_points)
        if transfer is not None:
            self.hohmann_line.set_points(transfer.transfer.points)
            self.hohmann_line.visible = True
        else:
            self.hohmann_line.visible = False

        assist = None
        if toggles.gravity_assist and selected is not None:
            assist = gravity_assist_for(
                selected,
                bodies,
                g,
                min_v_infinity=cfg.assist_min_v_inf,
                periapsis_radius_factor=cfg.assist_periapsis_radius_factor,
                periapsis_distance_factor=cfg.assist_periapsis_distance_factor,
            )

        center = barycenter(bodies) if toggles.barycenter else None
        self.barycenter_marker.visible = center is not None
        if center is not None:
            self.barycenter_marker.position = center

        self._update_kepler(selected, bodies, toggles.kepler_areas)
        self._update_field(bodies, toggles.gravity_field)

        self.readout = OverlayReadout(
            elements=elements,
            attractor_id=attractor_id,
            lagrange=lagrange,
            lagrange_pair=pair_ids,
            transfer=transfer,
            assist=assist,
            barycenter=center,
        )
        return self.readout

    def _update_selection_ring(
        self,
        selected: Optional[BodySnapshot],
        groups: Optional[Mapping[int, Group]],
        elapsed: float,
    ) -> None:
        ring = self.selection_ring
        group = None
        if selected is not None and groups is not None:
            group = groups.get(selected.id)
        if group is None:
            ring.visible = False
            return
        pulse = 0.9 + 0.1 * math.sin(elapsed * self._cfg.selection_pulse_rate)
        size = selected.radius * self._cfg.selection_ring_factor * pulse
        ring.position = group.world_position()
        ring.scale = np.array([size, size, 1.0])
        ring.visible = True

    def _update_kepler(
        self, selected: Optional[BodySnapshot], bodies: Sequence[BodySnapshot], show: bool
    ) -> None:
        cfg = self._cfg
        kepler = self.kepler
        kepler.visible = False
        kepler.geometry.draw_count = 0
        if not show or selected is None or selected.is_fixed:
            return
        if len(selected.trail) < cfg.kepler_min_trail:
            return
        central = dominant_body(selected.id, selected.position, bodies, self._g)
        if central is None:
            return
        trail = np.array([sample.position for sample in selected.trail])
        positions, colors = kepler_fan(
            central.position, trail, cfg.kepler_segments, kepler.geometry.capacity
        )
        if not len(positions):
            return
        kepler.set_points(positions)
        kepler.geometry.colors[: len(colors)] = colors
        kepler.visible = True

    def _update_field(self, bodies: Sequence[BodySnapshot], show: bool) -> None:
        cfg = self._cfg
        self.field.visible = False
        if not show:
            return
        bounds = field_bounds(bodies, cfg.field_margin, cfg.field_min_extent)
        if bounds is None:
            return
        values = gravity_field_grid(bodies, bounds, cfg.field_resolution, self._g)
        if values is None:
            return
        self.field.values = values
        self.field.bounds = bounds
        self.field.visible = True

    def dispose(self) -> None:
        if self.root.parent is not None:
            self.root.parent.remove(self.root)
        self.root.dispose()


__all__ = ["KEPLER_COLORS", "OverlayLayer", "OverlayReadout", "field_bounds", "kepler_fan"]
