"""Interactive pygame viewer driven by an analytic demo scenario.

Controls
--------
1/2/3         select, place and slingshot modes
L V B E G K F2 O H A   toggle labels, vectors, barycenter, elements, Lagrange,
              Kepler areas, gravity field, orbital planes, Hohmann, assist
F             follow the selected body (again to stop)
Space         pause
P             screenshot, R start/stop recording, Tab hide HUD
Right drag    rotate, middle drag pan, wheel zoom
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import pygame

from orbit_scene.core.config import RENDER_CFG
from orbit_scene.core.logging_utils import StatsLogger, setup_logging
from orbit_scene.core.model import BodyKind
from orbit_scene.core.timekeeping import FrameTimer
from orbit_scene.data.scenarios import (
    DEFAULT_SCENARIO_KEY,
    SCENARIO_DISPLAY_ORDER,
    ScenarioFeed,
    circular_orbiter_at,
    load_scenario,
)
from orbit_scene.engine import SceneEngine
from orbit_scene.interaction.controller import (
    Command,
    CreateBodyCommand,
    InteractionMode,
    PointerEvent,
    PredictTrajectoryCommand,
    SetThrustCommand,
    SetVelocityCommand,
)
from orbit_scene.render.capture import save_screenshot

logger = logging.getLogger(__name__)

MODE_KEYS = {
    pygame.K_1: InteractionMode.SELECT,
    pygame.K_2: InteractionMode.PLACE,
    pygame.K_3: InteractionMode.SLINGSHOT,
}

TOGGLE_KEYS = {
    pygame.K_l: "labels",
    pygame.K_v: "vectors",
    pygame.K_b: "barycenter",
    pygame.K_e: "orbital_elements",
    pygame.K_g: "lagrange_points",
    pygame.K_k: "kepler_areas",
    pygame.K_F2: "gravity_field",
    pygame.K_o: "orbital_planes",
    pygame.K_h: "hohmann",
    pygame.K_a: "gravity_assist",
}

# pygame button numbers -> pointer buttons (0 primary, 1 middle, 2 secondary)
POINTER_BUTTONS = {1: 0, 2: 1, 3: 2}


class DemoSink:
    """Applies commands to a :class:`ScenarioFeed` in place of a simulation service."""

    def __init__(self, feed: ScenarioFeed) -> None:
        self.feed = feed
        self.engine: Optional[SceneEngine] = None

    def submit(self, command: Command) -> None:
        logger.debug("Command %s", command.payload())
        if isinstance(command, CreateBodyCommand):
            self._create(command)
        elif isinstance(command, PredictTrajectoryCommand):
            self._predict(command)
        elif isinstance(command, (SetVelocityCommand, SetThrustCommand)):
            # Orbits here are analytic; impulses are reported but not applied.
            logger.info("Ignoring %s for body %d in demo mode", type(command).__name__, command.body_id)

    def _create(self, command: CreateBodyCommand) -> None:
        feed = self.feed
        orbiter = circular_orbiter_at(
            command.position,
            command.mass,
            command.radius,
            command.color,
            command.name,
            BodyKind.parse(command.kind),
            feed.time,
            feed.mu,
        )
        if orbiter is None:
            logger.info("Placement too close to the sun; skipped")
            return
        body_id = feed.add_orbiter(orbiter)
        logger.info("Placed %s as body %d (r=%.1f)", orbiter.name, body_id, orbiter.orbit_radius)

    def _predict(self, command: PredictTrajectoryCommand) -> None:
        if self.engine is None:
            return
        path = self.feed.predict(command.body_id, command.steps)
        if path:
            self.engine.set_prediction_path(path)
        else:
            self.engine.prediction_failed(f"no orbit for body {command.body_id}")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Interactive orbital sandbox viewer.")
    parser.add_argument(
        "--scenario",
        choices=SCENARIO_DISPLAY_ORDER,
        default=DEFAULT_SCENARIO_KEY,
        help="Scenario to load at start-up",
    )
    parser.add_argument("--width", type=int, default=RENDER_CFG.width)
    parser.add_argument("--height", type=int, default=RENDER_CFG.height)
    parser.add_argument("--fps", type=int, default=RENDER_CFG.fps, help="Frame rate cap")
    parser.add_argument("--speed", type=float, default=1.0, help="Simulated seconds per second")
    parser.add_argument("--log-dir", type=Path, default=None, help="Also write a rotating log file here")
    parser.add_argument("--stats", type=Path, default=None, help="Write per-frame sync counts under this directory")
    parser.add_argument("--debug", action="store_true", help="Verbose console logging")
    return parser.parse_args(argv)


def _pointer(event: pygame.event.Event, button: int = 0) -> PointerEvent:
    mods = pygame.key.get_mods()
    return PointerEvent(
        float(event.pos[0]),
        float(event.pos[1]),
        button=button,
        modifier=bool(mods & pygame.KMOD_SHIFT),
    )


def run(args: argparse.Namespace) -> int:
    feed = load_scenario(args.scenario, speed_multiplier=args.speed)
    sink = DemoSink(feed)
    stats_logger = StatsLogger(args.stats) if args.stats is not None else None
    if stats_logger is not None:
        stats_logger.write_meta({"scenario": args.scenario, "speed": args.speed})

    pygame.init()
    pygame.display.set_caption(f"Orbit Scene - {feed.scenario.name}")
    screen = pygame.display.set_mode((args.width, args.height), pygame.RESIZABLE)
    engine = SceneEngine(sink, screen.get_size(), stats_logger=stats_logger)
    sink.engine = engine
    logger.info("Loaded scenario %s with %d orbiters", feed.scenario.key, len(feed.orbiters))

    clock = pygame.time.Clock()
    timer = FrameTimer(max_dt=0.25)
    show_hud = True
    running = True
    try:
        while running:
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif event.type == pygame.VIDEORESIZE:
                    screen = pygame.display.set_mode(event.size, pygame.RESIZABLE)
                    engine.resize(screen.get_size())
                elif event.type == pygame.KEYDOWN:
                    if event.key == pygame.K_ESCAPE:
                        running = False
                    elif event.key in MODE_KEYS:
                        engine.set_mode(MODE_KEYS[event.key])
                    elif event.key in TOGGLE_KEYS:
                        engine.flip_toggle(TOGGLE_KEYS[event.key])
                    elif event.key == pygame.K_f:
                        engine.set_follow_target(
                            None if engine.follow_id is not None else engine.selected_id
                        )
                    elif event.key == pygame.K_SPACE:
                        feed.paused = not feed.paused
                    elif event.key == pygame.K_p:
                        save_screenshot(engine.screenshot(2.0))
                    elif event.key == pygame.K_r:
                        if not engine.start_recording():
                            engine.stop_recording()
                    elif event.key == pygame.K_TAB:
                        show_hud = not show_hud
                elif event.type == pygame.MOUSEBUTTONDOWN:
                    button = POINTER_BUTTONS.get(event.button)
                    if button == 0:
                        engine.pointer_down(_pointer(event))
                    elif button == 1:
                        engine.camera.begin_pan(event.pos)
                    elif button == 2:
                        engine.camera.begin_rotate(event.pos)
                elif event.type == pygame.MOUSEBUTTONUP:
                    button = POINTER_BUTTONS.get(event.button)
                    if button == 0:
                        engine.pointer_up(_pointer(event))
                    elif button == 1:
                        engine.camera.end_pan()
                    elif button == 2:
                        engine.camera.end_rotate()
                elif event.type == pygame.MOUSEMOTION:
                    engine.camera.rotate(event.pos)
                    engine.camera.pan(event.pos)
                    engine.pointer_move(_pointer(event))
                elif event.type == pygame.MOUSEWHEEL:
                    engine.camera.dolly(-event.y)

            dt = timer.tick()
            engine.deliver_frame(feed.advance(dt))
            engine.tick(dt)
            engine.paint(screen, dt, hud=show_hud)
            pygame.display.flip()
            clock.tick(args.fps)
    finally:
        engine.close()
        pygame.quit()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.debug else logging.INFO, args.log_dir)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
