"""Scenario definitions for the bundled demo viewer.

Frames are produced analytically from circular orbits around a fixed sun, so
the viewer can run without a simulation service attached.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from orbit_scene.core.config import G, MAX_TRAIL_POINTS
from orbit_scene.core.model import BodyKind, BodySnapshot, EnergyData, Frame, TrailSample

SUN_MASS = 50_000.0
SUN_RADIUS = 20.0
SUN_COLOR = "#FFD700"


@dataclass(frozen=True)
class Orbiter:
    name: str
    orbit_radius: float
    mass: float
    radius: float
    color: str
    inclination: float = 0.0
    phase: float = 0.0
    kind: BodyKind = BodyKind.PLANET

    def angular_rate(self, mu: float) -> float:
        return math.sqrt(mu / self.orbit_radius**3)

    def state(self, t: float, mu: float) -> tuple[np.ndarray, np.ndarray]:
        """Position and velocity at time ``t`` on the inclined circle."""

        w = self.angular_rate(mu)
        angle = self.phase + w * t
        r = self.orbit_radius
        ci, si = math.cos(self.inclination), math.sin(self.inclination)
        pos = np.array([r * math.cos(angle), r * math.sin(angle) * ci, r * math.sin(angle) * si])
        speed = r * w
        vel = np.array(
            [-speed * math.sin(angle), speed * math.cos(angle) * ci, speed * math.cos(angle) * si]
        )
        return pos, vel


@dataclass(frozen=True)
class Scenario:
    key: str
    name: str
    description: str
    orbiters: tuple[Orbiter, ...]
    sun_mass: float = SUN_MASS


def _asteroid_belt(count: int, inner: float, outer: float, seed: int = 7) -> tuple[Orbiter, ...]:
    rng = random.Random(seed)
    belt = []
    for index in range(count):
        belt.append(
            Orbiter(
                name=f"Asteroid {index + 1}",
                orbit_radius=rng.uniform(inner, outer),
                mass=0.01,
                radius=rng.uniform(0.8, 1.6),
                color="#8C8C8C",
                inclination=math.radians(rng.uniform(-3.0, 3.0)),
                phase=rng.uniform(0.0, 2.0 * math.pi),
            )
        )
    return tuple(belt)


INNER_PLANETS = (
    Orbiter("Mercury", 150.0, 0.055, 4.0, "#B5B5B5"),
    Orbiter("Venus", 220.0, 0.815, 7.0, "#E8CDA0", phase=1.2),
    Orbiter("Earth", 300.0, 1.0, 8.0, "#4A90D9", phase=2.5),
    Orbiter("Mars", 400.0, 0.107, 5.0, "#C1440E", phase=4.0),
)

OUTER_PLANETS = (
    Orbiter("Jupiter", 500.0, 317.8, 16.0, "#C88B3A"),
    Orbiter("Saturn", 700.0, 95.2, 14.0, "#EAD6B8", phase=1.0),
    Orbiter("Uranus", 950.0, 14.5, 10.0, "#72B2C4", phase=2.0),
    Orbiter("Neptune", 1200.0, 17.1, 10.0, "#3B5BA5", phase=3.0),
)

SCENARIO_DEFINITIONS: tuple[Scenario, ...] = (
    Scenario(
        key="sun_earth",
        name="Sun & Earth",
        description="A single planet on a circular orbit.",
        orbiters=(Orbiter("Earth", 250.0, 1.0, 8.0, "#4A90D9"),),
    ),
    Scenario(
        key="inner_solar",
        name="Inner Solar System",
        description="Mercury to Mars with scaled radii.",
        orbiters=INNER_PLANETS,
    ),
    Scenario(
        key="outer_solar",
        name="Outer Solar System",
        description="The four giants on wide orbits.",
        orbiters=OUTER_PLANETS,
    ),
    Scenario(
        key="asteroid_belt",
        name="Asteroid Belt",
        description="Inner planets plus a belt of small bodies drawn as one batch.",
        orbiters=INNER_PLANETS + _asteroid_belt(400, 440.0, 520.0),
    ),
    Scenario(
        key="craft",
        name="Spacecraft",
        description="Earth with a small craft and a comet-sized moonlet.",
        orbiters=(
            Orbiter("Earth", 300.0, 1.0, 8.0, "#4A90D9"),
            Orbiter("Craft", 180.0, 0.001, 2.0, "#E0E0FF", phase=0.5, kind=BodyKind.CRAFT),
            Orbiter("Comet", 120.0, 0.1, 2.5, "#A0E0FF", inclination=math.radians(20.0), phase=3.0),
        ),
    ),
)

SCENARIOS: dict[str, Scenario] = {scenario.key: scenario for scenario in SCENARIO_DEFINITIONS}
SCENARIO_DISPLAY_ORDER: list[str] = [scenario.key for scenario in SCENARIO_DEFINITIONS]
DEFAULT_SCENARIO_KEY = "inner_solar"


@dataclass
class ScenarioFeed:
    """Produces frames for a scenario as simulated time advances."""

    scenario: Scenario
    g: float = G
    trail_length: int = 120
    trail_interval: float = 0.05
    # Bodies lighter than this carry no history.
    trail_min_mass: float = 0.05
    speed_multiplier: float = 1.0
    time: float = 0.0
    tick: int = 0
    paused: bool = False
    orbiters: list[Orbiter] = field(default_factory=list)
    removed: set[int] = field(default_factory=set)

    def __post_init__(self) -> None:
        if not self.orbiters:
            self.orbiters = list(self.scenario.orbiters)
        self.trail_length = min(self.trail_length, MAX_TRAIL_POINTS)

    @property
    def mu(self) -> float:
        return self.g * self.scenario.sun_mass

    def advance(self, dt: float) -> Frame:
        if not self.paused:
            self.time += dt * self.speed_multiplier
            self.tick += 1
        return self.frame()

    def add_orbiter(self, orbiter: Orbiter) -> int:
        self.orbiters.append(orbiter)
        return len(self.orbiters)

    def remove(self, body_id: int) -> None:
        self.removed.add(body_id)

    def orbiter_for(self, body_id: int) -> Optional[Orbiter]:
        index = body_id - 1
        if 0 <= index < len(self.orbiters) and body_id not in self.removed:
            return self.orbiters[index]
        return None

    def predict(self, body_id: int, steps: int) -> list[np.ndarray]:
        """One full revolution of ``body_id`` sampled at ``steps`` points."""

        orbiter = self.orbiter_for(body_id)
        if orbiter is None or steps < 2:
            return []
        period = 2.0 * math.pi / orbiter.angular_rate(self.mu)
        times = np.linspace(self.time, self.time + period, steps)
        return [orbiter.state(float(t), self.mu)[0] for t in times]

    def frame(self) -> Frame:
        mu = self.mu
        sun = BodySnapshot(
            id=0,
            position=np.zeros(3),
            velocity=np.zeros(3),
            acceleration=np.zeros(3),
            mass=self.scenario.sun_mass,
            radius=SUN_RADIUS,
            color=SUN_COLOR,
            is_fixed=True,
            name="Sun",
            kind=BodyKind.STAR,
        )
        bodies = [sun]
        kinetic = 0.0
        potential = 0.0
        for index, orbiter in enumerate(self.orbiters):
            body_id = index + 1
            if body_id in self.removed:
                continue
            pos, vel = orbiter.state(self.time, mu)
            r = float(np.linalg.norm(pos))
            speed = float(np.linalg.norm(vel))
            trail: tuple[TrailSample, ...] = ()
            if orbiter.mass >= self.trail_min_mass or orbiter.kind is BodyKind.CRAFT:
                trail = tuple(
                    TrailSample(position=orbiter.state(t, mu)[0], speed=speed)
                    for t in self._trail_times()
                )
            is_craft = orbiter.kind is BodyKind.CRAFT
            bodies.append(
                BodySnapshot(
                    id=body_id,
                    position=pos,
                    velocity=vel,
                    acceleration=-mu * pos / r**3,
                    mass=orbiter.mass,
                    radius=orbiter.radius,
                    color=orbiter.color,
                    name=orbiter.name,
                    kind=orbiter.kind,
                    fuel=100.0 if is_craft else 0.0,
                    max_fuel=100.0 if is_craft else 0.0,
                    trail=trail,
                )
            )
            kinetic += 0.5 * orbiter.mass * speed * speed
            potential -= mu * orbiter.mass / r
        return Frame(
            bodies=tuple(bodies),
            tick=self.tick,
            paused=self.paused,
            speed_multiplier=self.speed_multiplier,
            energy=EnergyData(kinetic=kinetic, potential=potential, total=kinetic + potential),
        )

    def _trail_times(self) -> list[float]:
        count = min(self.trail_length, int(self.time / self.trail_interval) + 1)
        return [self.time - (count - 1 - k) * self.trail_interval for k in range(count)]


def circular_orbiter_at(
    position: np.ndarray,
    mass: float,
    radius: float,
    color: str,
    name: str,
    kind: BodyKind,
    time: float,
    mu: float,
) -> Optional[Orbiter]:
    """Orbiter passing through ``position`` (in the xy plane) at ``time``."""

    r = float(np.hypot(position[0], position[1]))
    if r < radius:
        return None
    w = math.sqrt(mu / r**3)
    phase = math.atan2(position[1], position[0]) - w * time
    return Orbiter(name, r, mass, radius, color, phase=phase, kind=kind)


def load_scenario(key: str, **kwargs) -> ScenarioFeed:
    try:
        scenario = SCENARIOS[key]
    except KeyError as exc:
        raise ValueError(f"unknown scenario {key!r}; choose from {SCENARIO_DISPLAY_ORDER}") from exc
    return ScenarioFeed(scenario, **kwargs)


__all__ = [
    "DEFAULT_SCENARIO_KEY",
    "SCENARIO_DEFINITIONS",
    "SCENARIO_DISPLAY_ORDER",
    "SCENARIOS",
    "Orbiter",
    "Scenario",
    "ScenarioFeed",
    "circular_orbiter_at",
    "load_scenario",
]
