"""Data models for simulation frames delivered to the scene engine."""
from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

import numpy as np


class OrbitSceneError(Exception):
    """Base class for errors raised by the scene engine."""


class PayloadError(OrbitSceneError, ValueError):
    """Raised when a frame or event payload is structurally invalid."""


def vec3(x: float = 0.0, y: float = 0.0, z: float = 0.0) -> np.ndarray:
    return np.array([x, y, z], dtype=float)


def as_vec3(value: Any) -> np.ndarray:
    """Coerce a ``{"x", "y", "z"}`` mapping or a 2/3 element sequence."""

    if isinstance(value, Mapping):
        try:
            return vec3(
                float(value["x"]), float(value["y"]), float(value.get("z", 0.0))
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise PayloadError(f"invalid vector payload: {value!r}") from exc
    try:
        arr = np.asarray(value, dtype=float).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"invalid vector payload: {value!r}") from exc
    if arr.size == 2:
        return vec3(arr[0], arr[1], 0.0)
    if arr.size != 3:
        raise PayloadError(f"expected 2 or 3 components, got {arr.size}")
    return arr.copy()


def hex_to_rgb(color: str) -> tuple[float, float, float]:
    """Convert ``#RRGGBB`` (or ``#RGB``) to floats in ``[0, 1]``."""

    text = color.strip().lstrip("#")
    if len(text) == 3:
        text = "".join(ch * 2 for ch in text)
    if len(text) != 6:
        return (1.0, 1.0, 1.0)
    try:
        value = int(text, 16)
    except ValueError:
        return (1.0, 1.0, 1.0)
    return (
        ((value >> 16) & 0xFF) / 255.0,
        ((value >> 8) & 0xFF) / 255.0,
        (value & 0xFF) / 255.0,
    )


class BodyKind(str, Enum):
    STAR = "star"
    PLANET = "planet"
    CRAFT = "spacecraft"

    @classmethod
    def parse(cls, value: Any) -> "BodyKind":
        if isinstance(value, BodyKind):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as exc:
            raise PayloadError(f"unknown body kind: {value!r}") from exc


@dataclass(frozen=True)
class KindTraits:
    """Per-kind rendering capabilities."""

    shape: str
    orient_along_velocity: bool
    exhaust: bool
    comet_tail: bool


KIND_TRAITS: dict[BodyKind, KindTraits] = {
    BodyKind.STAR: KindTraits(
        shape="sphere", orient_along_velocity=False, exhaust=False, comet_tail=False
    ),
    BodyKind.PLANET: KindTraits(
        shape="sphere", orient_along_velocity=False, exhaust=False, comet_tail=True
    ),
    BodyKind.CRAFT: KindTraits(
        shape="cone", orient_along_velocity=True, exhaust=True, comet_tail=False
    ),
}


@dataclass(frozen=True, eq=False)
class TrailSample:
    position: np.ndarray
    speed: float


def _trail_sample(point: Any) -> TrailSample:
    if isinstance(point, Mapping):
        return TrailSample(position=as_vec3(point), speed=float(point.get("speed", 0.0)))
    values = list(point)
    if len(values) == 4:
        return TrailSample(position=as_vec3(values[:3]), speed=float(values[3]))
    return TrailSample(position=as_vec3(values), speed=0.0)


@dataclass(frozen=True, eq=False)
class BodySnapshot:
    """Immutable state of one body inside a frame."""

    id: int
    position: np.ndarray
    velocity: np.ndarray
    acceleration: np.ndarray
    mass: float
    radius: float
    color: str = "#FFFFFF"
    is_fixed: bool = False
    name: str = ""
    kind: BodyKind = BodyKind.PLANET
    thrust: np.ndarray = field(default_factory=vec3)
    fuel: float = 0.0
    max_fuel: float = 0.0
    trail: tuple[TrailSample, ...] = ()

    @property
    def traits(self) -> KindTraits:
        return KIND_TRAITS[self.kind]

    @property
    def is_craft(self) -> bool:
        return self.kind is BodyKind.CRAFT

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.position))) and math.isfinite(self.radius)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "BodySnapshot":
        try:
            body_id = int(payload["id"])
            position = as_vec3(payload["position"])
            mass = float(payload["mass"])
            radius = float(payload["radius"])
        except (KeyError, TypeError, ValueError) as exc:
            raise PayloadError(f"invalid body payload: {exc}") from exc
        trail = tuple(_trail_sample(point) for point in payload.get("trail", ()))
        return cls(
            id=body_id,
            position=position,
            velocity=as_vec3(payload.get("velocity", (0.0, 0.0, 0.0))),
            acceleration=as_vec3(payload.get("acceleration", (0.0, 0.0, 0.0))),
            mass=mass,
            radius=radius,
            color=str(payload.get("color", "#FFFFFF")),
            is_fixed=bool(payload.get("is_fixed", False)),
            name=str(payload.get("name", "")),
            kind=BodyKind.parse(payload.get("body_type", BodyKind.PLANET)),
            thrust=as_vec3(payload.get("thrust", (0.0, 0.0, 0.0))),
            fuel=float(payload.get("fuel", 0.0)),
            max_fuel=float(payload.get("max_fuel", 0.0)),
            trail=trail,
        )


@dataclass(frozen=True)
class EnergyData:
    kinetic: float = 0.0
    potential: float = 0.0
    total: float = 0.0


@dataclass(frozen=True, eq=False)
class Frame:
    """One immutable snapshot of all simulated bodies."""

    bodies: tuple[BodySnapshot, ...]
    tick: int = 0
    paused: bool = False
    speed_multiplier: float = 1.0
    energy: EnergyData = EnergyData()

    def ids(self) -> set[int]:
        return {body.id for body in self.bodies}

    def find(self, body_id: Optional[int]) -> Optional[BodySnapshot]:
        if body_id is None:
            return None
        for body in self.bodies:
            if body.id == body_id:
                return body
        return None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Frame":
        if not isinstance(payload, Mapping):
            raise PayloadError("frame payload must be a mapping")
        raw_bodies = payload.get("bodies")
        if not isinstance(raw_bodies, Iterable) or isinstance(raw_bodies, (str, bytes)):
            raise PayloadError("frame payload is missing a 'bodies' list")
        energy = payload.get("energy") or {}
        try:
            return cls(
                bodies=tuple(BodySnapshot.from_payload(b) for b in raw_bodies),
                tick=int(payload.get("tick", 0)),
                paused=bool(payload.get("paused", False)),
                speed_multiplier=float(payload.get("speed_multiplier", 1.0)),
                energy=EnergyData(
                    kinetic=float(energy.get("kinetic", 0.0)),
                    potential=float(energy.get("potential", 0.0)),
                    total=float(energy.get("total", 0.0)),
                ),
            )
        except PayloadError:
            raise
        except (AttributeError, TypeError, ValueError) as exc:
            raise PayloadError(f"invalid frame payload: {exc}") from exc


@dataclass(frozen=True, eq=False)
class CollisionEvent:
    position: np.ndarray
    combined_mass: float
    absorbed_id: Optional[int] = None
    survivor_id: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "CollisionEvent":
        try:
            position = as_vec3(payload["position"])
            combined_mass = float(payload.get("combined_mass", 0.0))
        except (KeyError, TypeError, ValueError) as exc:
            raise PayloadError(f"invalid collision payload: {exc}") from exc
        absorbed = payload.get("absorbed_id")
        survivor = payload.get("survivor_id")
        return cls(
            position=position,
            combined_mass=combined_mass,
            absorbed_id=None if absorbed is None else int(absorbed),
            survivor_id=None if survivor is None else int(survivor),
        )


class FrameMailbox:
    """Single-slot, last-value-wins delivery point for frames.

    ``deliver`` may be called from any thread; the render thread calls
    ``latest`` once per tick.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: Optional[Frame] = None
        self._fresh = False
        self.delivered = 0
        self.superseded = 0

    def deliver(self, frame: Frame) -> None:
        with self._lock:
            if self._fresh:
                self.superseded += 1
            self._frame = frame
            self._fresh = True
            self.delivered += 1

    def latest(self) -> tuple[Optional[Frame], bool]:
        """Return the newest frame and whether it arrived since the last call."""

        with self._lock:
            fresh = self._fresh
            self._fresh = False
            return self._frame, fresh

    def clear(self) -> None:
        with self._lock:
            self._frame = None
            self._fresh = False


__all__ = [
    "KIND_TRAITS",
    "BodyKind",
    "BodySnapshot",
    "CollisionEvent",
    "EnergyData",
    "Frame",
    "FrameMailbox",
    "KindTraits",
    "OrbitSceneError",
    "PayloadError",
    "TrailSample",
    "as_vec3",
    "hex_to_rgb",
    "vec3",
]
