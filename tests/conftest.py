import os

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

import numpy as np
import pytest

from orbit_scene.core.model import BodyKind, BodySnapshot, EnergyData, Frame, TrailSample
from orbit_scene.render.scene import ResourceRegistry, Scene


def make_body(body_id, position=(0.0, 0.0, 0.0), **overrides):
    """Build a body snapshot with sensible defaults for tests."""
    values = dict(
        id=body_id,
        position=np.asarray(position, dtype=float),
        velocity=np.zeros(3),
        acceleration=np.zeros(3),
        mass=1.0,
        radius=5.0,
        color="#4A90D9",
        name=f"Body {body_id}",
        kind=BodyKind.PLANET,
    )
    values.update(overrides)
    for key in ("velocity", "acceleration", "thrust"):
        if key in values:
            values[key] = np.asarray(values[key], dtype=float)
    return BodySnapshot(**values)


def make_frame(*bodies, tick=0):
    return Frame(bodies=tuple(bodies), tick=tick, energy=EnergyData(1.0, -3.0, -2.0))


def make_trail(count, speed=1.0):
    return tuple(
        TrailSample(position=np.array([float(i), 0.0, 0.0]), speed=speed * (i + 1))
        for i in range(count)
    )


def sun_and_planet(planet_mass=1.0):
    """Fixed star at the origin and one planet on a circular orbit (G=100)."""
    sun = make_body(
        0,
        mass=50_000.0,
        radius=20.0,
        color="#FFD700",
        is_fixed=True,
        kind=BodyKind.STAR,
        name="Sun",
    )
    r = 300.0
    v = np.sqrt(100.0 * 50_000.0 / r)
    planet = make_body(
        1,
        position=(r, 0.0, 0.0),
        velocity=(0.0, v, 0.0),
        acceleration=(-100.0 * 50_000.0 / r**2, 0.0, 0.0),
        mass=planet_mass,
        radius=8.0,
        name="Earth",
    )
    return sun, planet


class RecordingSink:
    """Command sink that keeps everything it receives."""

    def __init__(self):
        self.commands = []

    def submit(self, command):
        self.commands.append(command)

    def of_type(self, cls):
        return [c for c in self.commands if isinstance(c, cls)]


@pytest.fixture
def registry():
    return ResourceRegistry()


@pytest.fixture
def scene(registry):
    return Scene(registry)


@pytest.fixture
def sink():
    return RecordingSink()
