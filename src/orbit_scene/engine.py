"""The scene engine: frame delivery, per-tick update and the UI surface."""
from __future__ import annotations

import dataclasses
import logging
import math
from collections import deque
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import numpy as np
import pygame

from orbit_scene.core.config import (
    CAMERA_CFG,
    DEFAULT_TOGGLES,
    INTERACTION_CFG,
    OVERLAY_CFG,
    POOL_CFG,
    RECONCILE_CFG,
    RENDER_CFG,
    CameraCfg,
    InteractionCfg,
    OverlayCfg,
    OverlayToggles,
    PoolCfg,
    ReconcileCfg,
    RenderCfg,
)
from orbit_scene.core.logging_utils import StatsLogger
from orbit_scene.core.mechanics import clamp
from orbit_scene.core.model import (
    CollisionEvent,
    EnergyData,
    Frame,
    FrameMailbox,
    PayloadError,
    hex_to_rgb,
    vec3,
)
from orbit_scene.interaction.controller import (
    CommandSink,
    InteractionController,
    InteractionMode,
    PointerEvent,
    PredictTrajectoryCommand,
    SetThrustCommand,
)
from orbit_scene.render.camera import OrbitCamera
from orbit_scene.render.capture import FrameRecorder, capture_screenshot
from orbit_scene.render.draw import ScenePainter
from orbit_scene.render.overlays import OverlayLayer, OverlayReadout
from orbit_scene.render.pools import FlashPool, ParticlePool
from orbit_scene.render.reconciler import FrameReconciler, SyncStats
from orbit_scene.render.scene import ResourceRegistry, Scene

logger = logging.getLogger(__name__)

TOGGLE_NAMES = tuple(f.name for f in dataclasses.fields(OverlayToggles))


class SceneEngine:
    """Turns delivered frames into a rendered, interactive scene.

    Frames may be delivered from any thread; everything else runs on the
    render thread that calls :meth:`tick` and :meth:`paint`.
    """

    def __init__(
        self,
        sink: CommandSink,
        size: tuple[int, int] = (RENDER_CFG.width, RENDER_CFG.height),
        *,
        reconcile_cfg: ReconcileCfg = RECONCILE_CFG,
        pool_cfg: PoolCfg = POOL_CFG,
        overlay_cfg: OverlayCfg = OVERLAY_CFG,
        interaction_cfg: InteractionCfg = INTERACTION_CFG,
        camera_cfg: CameraCfg = CAMERA_CFG,
        render_cfg: RenderCfg = RENDER_CFG,
        on_select: Optional[Callable[[Optional[int]], None]] = None,
        stats_logger: Optional[StatsLogger] = None,
        recordings_dir: Union[str, Path] = "recordings",
        rng: Any = None,
    ) -> None:
        self._sink = sink
        self._interaction_cfg = interaction_cfg
        self._render_cfg = render_cfg
        self._on_select = on_select
        self.stats_logger = stats_logger

        self.registry = ResourceRegistry()
        self.scene = Scene(self.registry)
        self.mailbox = FrameMailbox()
        self.reconciler = FrameReconciler(self.scene, reconcile_cfg)
        self.overlays = OverlayLayer(
            self.scene,
            overlay_cfg,
            g=reconcile_cfg.gravitational_constant,
            prediction_capacity=interaction_cfg.prediction_steps + 1,
        )
        self.particles = ParticlePool(self.scene, pool_cfg, rng=rng)
        self.flashes = FlashPool(self.scene, pool_cfg)
        self.camera = OrbitCamera(size, camera_cfg)
        self.controller = InteractionController(
            self.scene,
            self.camera,
            self.reconciler.groups,
            sink,
            on_select=self.select,
            cfg=interaction_cfg,
        )
        self.recorder = FrameRecorder(recordings_dir, render_cfg.recording_fps)
        self._painter: Optional[ScenePainter] = None

        self.toggles: OverlayToggles = DEFAULT_TOGGLES
        self.selected_id: Optional[int] = None
        self.follow_id: Optional[int] = None
        self.frame: Optional[Frame] = None
        self.readout = OverlayReadout()
        self.energy_history: deque[EnergyData] = deque(maxlen=overlay_cfg.energy_history_length)
        self.elapsed = 0.0
        self.rejected_payloads = 0

    @property
    def painter(self) -> ScenePainter:
        if self._painter is None:
            self._painter = ScenePainter(self._render_cfg)
        return self._painter

    # external inputs ----------------------------------------------------
    def deliver_frame(self, frame: Union[Frame, Mapping[str, Any]]) -> bool:
        """Store ``frame`` as the latest; invalid payloads are dropped."""

        if not isinstance(frame, Frame):
            try:
                frame = Frame.from_payload(frame)
            except PayloadError as exc:
                self.rejected_payloads += 1
                logger.warning("Dropping frame payload: %s", exc)
                return False
        self.mailbox.deliver(frame)
        return True

    def on_collision(self, event: Union[CollisionEvent, Mapping[str, Any]]) -> None:
        if not isinstance(event, CollisionEvent):
            try:
                event = CollisionEvent.from_payload(event)
            except PayloadError as exc:
                logger.warning("Dropping collision payload: %s", exc)
                return
        if not np.all(np.isfinite(event.position)):
            return
        color = (1.0, 1.0, 1.0)
        survivor = self.frame.find(event.survivor_id) if self.frame is not None else None
        if survivor is not None:
            color = hex_to_rgb(survivor.color)
        self.flashes.spawn(event.position)
        mass = event.combined_mass if math.isfinite(event.combined_mass) else 0.0
        count = int(clamp(int(mass), 4, 16))
        self.particles.spawn(event.position, count, color)

    # per tick -------------------------------------------------------------
    def tick(self, dt: float) -> Optional[SyncStats]:
        """Reconcile the newest frame (if any) and advance effects by ``dt``."""

        dt = max(dt, 0.0)
        self.elapsed += dt
        stats: Optional[SyncStats] = None
        frame, fresh = self.mailbox.latest()
        if fresh and frame is not None:
            stats = self.reconciler.sync_frame(frame, self.toggles)
            self.frame = frame
            self.energy_history.append(frame.energy)
            if self.stats_logger is not None:
                self.stats_logger.log_stats(frame.tick, stats)
            self.controller.validate_drag()
            if self.follow_id is not None and frame.find(self.follow_id) is None:
                logger.debug("Follow target %d disappeared", self.follow_id)
                self.set_follow_target(None)

        if self.frame is not None:
            self.readout = self.overlays.update(
                self.frame,
                self.toggles,
                self.selected_id,
                self.reconciler.groups,
                self.elapsed,
            )
            if self.follow_id is not None:
                body = self.frame.find(self.follow_id)
                if body is not None and body.is_finite():
                    self.camera.set_target(body.position)

        self.particles.tick(dt)
        self.flashes.tick(dt)
        self.camera.update()
        return stats

    # toggles --------------------------------------------------------------
    def set_toggle(self, name: str, enabled: bool) -> OverlayToggles:
        if name not in TOGGLE_NAMES:
            raise ValueError(f"unknown overlay toggle: {name!r}")
        self.toggles = dataclasses.replace(self.toggles, **{name: bool(enabled)})
        return self.toggles

    def flip_toggle(self, name: str) -> OverlayToggles:
        if name not in TOGGLE_NAMES:
            raise ValueError(f"unknown overlay toggle: {name!r}")
        return self.set_toggle(name, not getattr(self.toggles, name))

    def set_toggles(self, toggles: OverlayToggles) -> None:
        self.toggles = toggles

    # selection, follow, prediction ---------------------------------------
    def select(self, body_id: Optional[int]) -> None:
        changed = body_id != self.selected_id
        self.selected_id = body_id
        if changed:
            self.overlays.clear_prediction()
            self.request_prediction()
        if self._on_select is not None:
            self._on_select(body_id)

    def set_follow_target(self, body_id: Optional[int]) -> None:
        self.follow_id = body_id
        if body_id is None:
            self.camera.set_target(vec3())

    def request_prediction(self) -> bool:
        if self.selected_id is None:
            return False
        self._sink.submit(
            PredictTrajectoryCommand(
                body_id=self.selected_id, steps=self._interaction_cfg.prediction_steps
            )
        )
        return True

    def set_prediction_path(self, points: Optional[Sequence[Sequence[float]]]) -> None:
        self.overlays.set_prediction(points)

    def prediction_failed(self, reason: str = "") -> None:
        """A refresh failed; the current path, if any, stays on screen."""

        logger.info("Orbit prediction failed: %s", reason or "no reason given")

    def request_thrust(self, thrust: Sequence[float]) -> bool:
        if self.selected_id is None:
            return False
        self._sink.submit(
            SetThrustCommand(body_id=self.selected_id, thrust=np.asarray(thrust, dtype=float))
        )
        return True

    # interaction ----------------------------------------------------------
    @property
    def mode(self) -> InteractionMode:
        return self.controller.mode

    def set_mode(self, mode: Union[InteractionMode, str]) -> None:
        self.controller.set_mode(mode)

    def pointer_down(self, event: PointerEvent) -> None:
        self.controller.pointer_down(event)

    def pointer_move(self, event: PointerEvent) -> None:
        self.controller.pointer_move(event)

    def pointer_up(self, event: PointerEvent) -> None:
        self.controller.pointer_up(event)

    def resize(self, size: tuple[int, int]) -> None:
        self.camera.update_size(size)

    # output ---------------------------------------------------------------
    def status_lines(self) -> list[str]:
        frame = self.frame
        if frame is None:
            return ["Waiting for simulation frames..."]
        stats = self.reconciler.last_stats
        lines = [
            f"Tick {frame.tick}{'  [paused]' if frame.paused else ''}  x{frame.speed_multiplier:g}",
            f"Bodies {len(frame.bodies)}  individual {stats.individual}  batched {stats.batched}",
            f"Energy {frame.energy.total:.4g}  (K {frame.energy.kinetic:.4g}, U {frame.energy.potential:.4g})",
            f"Mode {self.mode.value}",
        ]
        selected = frame.find(self.selected_id)
        if selected is not None:
            lines.append(f"Selected {selected.name or selected.id}  |v| {selected.speed:.3g}")
            if selected.is_craft and selected.max_fuel > 0:
                lines.append(f"Fuel {selected.fuel:.1f}/{selected.max_fuel:.1f}")
        readout = self.readout
        if readout.elements is not None:
            el = readout.elements
            lines.append(f"a {el.semi_major_axis:.4g}  e {el.eccentricity:.3f}  i {math.degrees(el.inclination):.1f} deg")
            lines.append(f"T {el.period:.4g}  rp {el.periapsis:.4g}  ra {el.apoapsis:.4g}")
        if readout.transfer is not None:
            t = readout.transfer.transfer
            lines.append(f"Hohmann dv1 {t.delta_v1:.3g}  dv2 {t.delta_v2:.3g}  t {t.transfer_time:.4g}")
        if readout.assist is not None:
            a = readout.assist.result
            lines.append(
                f"Assist defl {math.degrees(a.deflection_angle):.1f} deg  dv {a.delta_v:.3g}"
            )
        return lines

    def paint(self, surface: pygame.Surface, dt: float = 0.0, *, hud: bool = True) -> None:
        self.painter.paint(
            surface, self.scene, self.camera, self.status_lines() if hud else ()
        )
        if self.recorder.recording:
            self.recorder.capture(surface, dt)

    def screenshot(self, multiplier: float = 1.0) -> pygame.Surface:
        return capture_screenshot(self.painter, self.scene, self.camera, multiplier)

    def start_recording(self) -> bool:
        return self.recorder.start()

    def stop_recording(self) -> Optional[Path]:
        return self.recorder.stop()

    def close(self) -> None:
        self.recorder.stop()
        self.controller.destroy()
        self.reconciler.dispose()
        self.overlays.dispose()
        self.particles.dispose()
        self.flashes.dispose()
        self.mailbox.clear()
        if self.stats_logger is not None:
            self.stats_logger.close()


__all__ = ["TOGGLE_NAMES", "SceneEngine"]
