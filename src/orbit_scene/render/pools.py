"""Fixed-capacity pools for transient effects and per-body trail buffers."""
from __future__ import annotations

import colorsys
import math
import random
from typing import Optional, Sequence

import numpy as np

from orbit_scene.core.config import MAX_TRAIL_POINTS, POOL_CFG, PoolCfg
from orbit_scene.core.model import TrailSample

from .scene import Geometry, Line, Material, Points, ResourceRegistry, Scene, Sprite


class SlotArray:
    """Active/free bookkeeping for a static number of slots.

    Claiming and releasing are O(1); occupancy can never exceed ``capacity``.
    """

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self.active = np.zeros(capacity, dtype=bool)
        # Reversed so that slot 0 is claimed first.
        self._free: list[int] = list(range(capacity - 1, -1, -1))

    def claim(self) -> Optional[int]:
        if not self._free:
            return None
        slot = self._free.pop()
        self.active[slot] = True
        return slot

    def release(self, slot: int) -> None:
        if not self.active[slot]:
            return
        self.active[slot] = False
        self._free.append(slot)

    @property
    def occupancy(self) -> int:
        return self.capacity - len(self._free)

    @property
    def free(self) -> int:
        return len(self._free)

    def active_slots(self) -> np.ndarray:
        return np.flatnonzero(self.active)


def _perturb_color(
    color: Sequence[float], jitter: float, rng: random.Random
) -> tuple[float, float, float]:
    h, l, s = colorsys.rgb_to_hls(*(float(c) for c in color[:3]))
    h = (h + (rng.random() - 0.5) * jitter) % 1.0
    return colorsys.hls_to_rgb(h, l, s)


def random_unit_vector(rng: random.Random) -> np.ndarray:
    """Isotropic direction: uniform azimuth, polar angle from ``acos(U[-1, 1])``."""

    theta = rng.random() * 2.0 * math.pi
    phi = math.acos(2.0 * rng.random() - 1.0)
    sin_phi = math.sin(phi)
    return np.array([sin_phi * math.cos(theta), sin_phi * math.sin(theta), math.cos(phi)])


class ParticlePool:
    """Debris particles rendered through a single point cloud."""

    def __init__(
        self,
        scene: Scene,
        cfg: PoolCfg = POOL_CFG,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._cfg = cfg
        self._rng = rng or random.Random()
        capacity = cfg.particle_capacity
        self.slots = SlotArray(capacity)
        self.velocities = np.zeros((capacity, 3), dtype=float)
        self.life = np.zeros(capacity, dtype=float)
        self.base_sizes = np.zeros(capacity, dtype=float)

        registry = scene.registry
        self.points = Points(
            Geometry.buffer(registry, capacity, shape="points"),
            Material(registry, vertex_colors=True, opacity=0.8, additive=True),
            name="particles",
        )
        self.points.geometry.draw_count = capacity
        scene.add(self.points)

    @property
    def positions(self) -> np.ndarray:
        return self.points.geometry.positions

    @property
    def active_count(self) -> int:
        return self.slots.occupancy

    def spawn(
        self,
        origin: Sequence[float],
        count: int,
        color_hint: Sequence[float] = (1.0, 1.0, 1.0),
    ) -> int:
        """Activate up to ``count`` particles at ``origin``; returns how many."""

        cfg = self._cfg
        wanted = max(0, min(int(count), cfg.particles_per_call))
        origin_arr = np.asarray(origin, dtype=float)
        spawned = 0
        while spawned < wanted:
            slot = self.slots.claim()
            if slot is None:
                break
            speed = self._rng.uniform(cfg.particle_speed_min, cfg.particle_speed_max)
            self.velocities[slot] = random_unit_vector(self._rng) * speed
            self.life[slot] = cfg.particle_lifetime
            self.positions[slot] = origin_arr
            self.points.geometry.colors[slot] = _perturb_color(
                color_hint, cfg.hue_jitter, self._rng
            )
            size = self._rng.uniform(cfg.particle_size_min, cfg.particle_size_max)
            self.base_sizes[slot] = size
            self.points.sizes[slot] = size
            self.points.mask[slot] = True
            spawned += 1
        return spawned

    def tick(self, dt: float) -> None:
        cfg = self._cfg
        dt = min(max(dt, 0.0), cfg.max_dt)
        if dt == 0.0:
            return
        for slot in self.slots.active_slots():
            self.positions[slot] += self.velocities[slot] * dt
            self.life[slot] -= dt
            if self.life[slot] <= 0.0:
                self.slots.release(slot)
                self.points.sizes[slot] = 0.0
                self.points.mask[slot] = False
                continue
            self.points.sizes[slot] = self.base_sizes[slot] * (
                self.life[slot] / cfg.particle_lifetime
            )
            self.velocities[slot] *= cfg.particle_damping

    def dispose(self) -> None:
        if self.points.parent is not None:
            self.points.parent.remove(self.points)
        self.points.dispose()


class FlashPool:
    """Expanding, fading impact flashes backed by preallocated sprites."""

    def __init__(self, scene: Scene, cfg: PoolCfg = POOL_CFG) -> None:
        self._cfg = cfg
        self.slots = SlotArray(cfg.flash_capacity)
        self.age = np.zeros(cfg.flash_capacity, dtype=float)
        self.sprites: list[Sprite] = []
        for index in range(cfg.flash_capacity):
            sprite = Sprite(
                Material(scene.registry, additive=True, opacity=1.0), name=f"flash-{index}"
            )
            sprite.visible = False
            scene.add(sprite)
            self.sprites.append(sprite)

    @property
    def active_count(self) -> int:
        return self.slots.occupancy

    def spawn(self, position: Sequence[float]) -> bool:
        slot = self.slots.claim()
        if slot is None:
            return False
        sprite = self.sprites[slot]
        sprite.position = np.asarray(position, dtype=float).copy()
        size = self._cfg.flash_start_size
        sprite.scale = np.array([size, size, 1.0])
        sprite.material.opacity = 1.0
        sprite.visible = True
        self.age[slot] = 0.0
        return True

    def tick(self, dt: float) -> None:
        cfg = self._cfg
        dt = max(dt, 0.0)
        for slot in self.slots.active_slots():
            self.age[slot] += dt
            t = self.age[slot] / cfg.flash_duration
            sprite = self.sprites[slot]
            if t >= 1.0:
                sprite.visible = False
                self.slots.release(slot)
                continue
            size = cfg.flash_start_size + t * (cfg.flash_end_size - cfg.flash_start_size)
            sprite.scale = np.array([size, size, 1.0])
            sprite.material.opacity = 1.0 - t

    def dispose(self) -> None:
        for sprite in self.sprites:
            if sprite.parent is not None:
                sprite.parent.remove(sprite)
            sprite.dispose()
        self.sprites.clear()


class TrailBuffer(Line):
    """Circular vertex buffer mirroring a body's trajectory history.

    Samples are written from the start of the buffer; once more than
    ``capacity`` samples arrive the writer wraps around and ``head`` marks the
    oldest retained vertex.  Colours encode speed normalised to the fastest
    retained sample.
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        base_color: tuple[float, float, float],
        *,
        capacity: int = MAX_TRAIL_POINTS,
        opacity: float = 0.4,
        slow_color: tuple[float, float, float] = (0.25, 0.45, 1.0),
        fast_color: tuple[float, float, float] = (1.0, 0.35, 0.15),
        speed_epsilon: float = 1e-9,
    ) -> None:
        super().__init__(
            Geometry.buffer(registry, capacity),
            Material(registry, base_color, opacity=opacity, vertex_colors=True),
            name="trail",
        )
        self.capacity = capacity
        self.head = 0
        self.speeds = np.zeros(capacity, dtype=float)
        self._slow = np.array(slow_color, dtype=np.float32)
        self._fast = np.array(fast_color, dtype=np.float32)
        self._speed_epsilon = speed_epsilon

    @property
    def draw_count(self) -> int:
        return self.geometry.draw_count

    def write(self, samples: Sequence[TrailSample]) -> int:
        """Copy ``samples`` (oldest first) into the buffer; returns draw count."""

        total = len(samples)
        positions = self.geometry.positions
        for index, sample in enumerate(samples):
            slot = index % self.capacity
            positions[slot] = sample.position
            self.speeds[slot] = sample.speed
        count = min(total, self.capacity)
        self.head = total % self.capacity if total > self.capacity else 0
        self.geometry.draw_count = count
        if count:
            visible = self.speeds[:count]
            max_speed = float(np.max(np.abs(visible)))
            if max_speed < self._speed_epsilon:
                max_speed = 1.0
            t = np.clip(np.abs(visible) / max_speed, 0.0, 1.0)[:, None]
            self.geometry.colors[:count] = self._slow + (self._fast - self._slow) * t
        return count

    def vertices(self) -> np.ndarray:
        """Retained vertices oldest first."""

        count = self.geometry.draw_count
        data = self.geometry.positions[:count]
        if self.head:
            return np.roll(data, -self.head, axis=0)
        return data

    def vertex_colors(self) -> np.ndarray:
        count = self.geometry.draw_count
        data = self.geometry.colors[:count]
        if self.head:
            return np.roll(data, -self.head, axis=0)
        return data


__all__ = [
    "FlashPool",
    "ParticlePool",
    "SlotArray",
    "TrailBuffer",
    "random_unit_vector",
]
