from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from orbit_scene.core.config import CAMERA_CFG, CameraCfg

_UP = np.array([0.0, 0.0, 1.0])
_ELEVATION_LIMIT = math.radians(89.0)


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def _normalize(v: np.ndarray) -> np.ndarray:
    n = float(np.linalg.norm(v))
    if n < 1e-12:
        return np.zeros(3)
    return v / n


@dataclass
class Plane:
    """Points ``p`` with ``dot(normal, p) + constant == 0``."""

    normal: np.ndarray
    constant: float = 0.0

    @classmethod
    def from_normal_and_point(cls, normal: Sequence[float], point: Sequence[float]) -> "Plane":
        n = _normalize(np.asarray(normal, dtype=float))
        return cls(normal=n, constant=-float(np.dot(n, np.asarray(point, dtype=float))))

    def distance_to_point(self, point: np.ndarray) -> float:
        return float(np.dot(self.normal, point)) + self.constant


@dataclass
class Ray:
    origin: np.ndarray
    direction: np.ndarray

    def at(self, t: float) -> np.ndarray:
        return self.origin + self.direction * t

    def intersect_plane(self, plane: Plane) -> Optional[np.ndarray]:
        denom = float(np.dot(plane.normal, self.direction))
        if abs(denom) < 1e-9:
            return None
        t = -plane.distance_to_point(self.origin) / denom
        if t < 0.0:
            return None
        return self.at(t)

    def intersect_sphere(self, center: np.ndarray, radius: float) -> Optional[float]:
        """Distance along the ray to the first hit, ``None`` on a miss."""

        oc = self.origin - center
        b = float(np.dot(oc, self.direction))
        c = float(np.dot(oc, oc)) - radius * radius
        disc = b * b - c
        if disc < 0.0:
            return None
        root = math.sqrt(disc)
        t = -b - root
        if t < 0.0:
            t = -b + root
        if t < 0.0:
            return None
        return t


@dataclass
class CameraState:
    target: np.ndarray
    target_goal: np.ndarray
    distance: float
    distance_goal: float
    azimuth: float
    elevation: float


class OrbitCamera:
    """Perspective camera orbiting a target point, z up."""

    def __init__(self, size: tuple[int, int], cfg: CameraCfg = CAMERA_CFG) -> None:
        self._size = size
        self._cfg = cfg
        distance = _clamp(cfg.distance, cfg.min_distance, cfg.max_distance)
        self._state = CameraState(
            target=np.zeros(3),
            target_goal=np.zeros(3),
            distance=distance,
            distance_goal=distance,
            azimuth=-math.pi / 2.0,
            elevation=math.radians(60.0),
        )
        self.fov_deg = cfg.fov_deg
        self.near = cfg.near
        self.far = cfg.far
        self._pan_anchor: tuple[int, int] | None = None
        self._rotate_anchor: tuple[int, int] | None = None
        self._controls_enabled = True

    @property
    def controls_enabled(self) -> bool:
        return self._controls_enabled

    @controls_enabled.setter
    def controls_enabled(self, enabled: bool) -> None:
        # a drag in progress when controls go off must not resume later
        if not enabled:
            self._pan_anchor = None
            self._rotate_anchor = None
        self._controls_enabled = enabled

    @property
    def size(self) -> tuple[int, int]:
        return self._size

    def update_size(self, size: tuple[int, int]) -> None:
        self._size = size

    @property
    def aspect(self) -> float:
        width, height = self._size
        return width / max(height, 1)

    @property
    def target(self) -> np.ndarray:
        return self._state.target

    @property
    def distance(self) -> float:
        return self._state.distance

    @property
    def position(self) -> np.ndarray:
        state = self._state
        ce = math.cos(state.elevation)
        offset = np.array(
            [
                ce * math.cos(state.azimuth),
                ce * math.sin(state.azimuth),
                math.sin(state.elevation),
            ]
        )
        return state.target + offset * state.distance

    def set_position(self, position: Sequence[float]) -> None:
        """Place the eye at ``position`` while keeping the current target."""

        offset = np.asarray(position, dtype=float) - self._state.target
        distance = float(np.linalg.norm(offset))
        if distance < 1e-9:
            return
        state = self._state
        state.distance = state.distance_goal = distance
        state.azimuth = math.atan2(offset[1], offset[0])
        state.elevation = math.asin(_clamp(offset[2] / distance, -1.0, 1.0))

    def set_center(self, position: Sequence[float]) -> None:
        self._state.target[:] = position
        self._state.target_goal[:] = position

    def set_target(self, position: Sequence[float]) -> None:
        self._state.target_goal[:] = position

    def set_distance(self, distance: float) -> None:
        cfg = self._cfg
        clamped = _clamp(distance, cfg.min_distance, cfg.max_distance)
        self._state.distance = clamped
        self._state.distance_goal = clamped

    def update(self, smoothing: Optional[float] = None) -> None:
        if smoothing is None:
            smoothing = self._cfg.smoothing
        state = self._state
        state.distance += (state.distance_goal - state.distance) * smoothing
        state.target += (state.target_goal - state.target) * smoothing

    # basis --------------------------------------------------------------
    def basis(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Forward, right and up unit vectors of the view."""

        forward = _normalize(self._state.target - self.position)
        right = np.cross(forward, _UP)
        if np.linalg.norm(right) < 1e-9:
            right = np.array([1.0, 0.0, 0.0])
        right = _normalize(right)
        up = np.cross(right, forward)
        return forward, right, up

    @property
    def _tan_half_fov(self) -> float:
        return math.tan(math.radians(self.fov_deg) / 2.0)

    # picking ------------------------------------------------------------
    def pixel_to_ndc(self, sx: float, sy: float) -> tuple[float, float]:
        width, height = self._size
        return 2.0 * sx / width - 1.0, 1.0 - 2.0 * sy / height

    def ray_from_ndc(self, ndc_x: float, ndc_y: float) -> Ray:
        forward, right, up = self.basis()
        t = self._tan_half_fov
        direction = forward + right * (ndc_x * t * self.aspect) + up * (ndc_y * t)
        return Ray(origin=self.position, direction=_normalize(direction))

    def ray_from_pixel(self, sx: float, sy: float) -> Ray:
        return self.ray_from_ndc(*self.pixel_to_ndc(sx, sy))

    def project(self, point: Sequence[float]) -> Optional[tuple[float, float, float]]:
        """Screen ``(x, y, depth)`` of a world point, ``None`` behind the eye."""

        forward, right, up = self.basis()
        rel = np.asarray(point, dtype=float) - self.position
        depth = float(np.dot(rel, forward))
        if depth <= self.near or depth >= self.far:
            return None
        t = self._tan_half_fov
        ndc_x = float(np.dot(rel, right)) / (depth * t * self.aspect)
        ndc_y = float(np.dot(rel, up)) / (depth * t)
        width, height = self._size
        return (ndc_x + 1.0) * 0.5 * width, (1.0 - ndc_y) * 0.5 * height, depth

    def project_many(self, points: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Vectorised :meth:`project`: ``(screen_xy, depth, in_front_mask)``."""

        forward, right, up = self.basis()
        rel = np.asarray(points, dtype=float).reshape(-1, 3) - self.position
        depth = rel @ forward
        mask = (depth > self.near) & (depth < self.far)
        safe = np.where(mask, depth, 1.0)
        t = self._tan_half_fov
        ndc_x = (rel @ right) / (safe * t * self.aspect)
        ndc_y = (rel @ up) / (safe * t)
        width, height = self._size
        xy = np.column_stack(((ndc_x + 1.0) * 0.5 * width, (1.0 - ndc_y) * 0.5 * height))
        return xy, depth, mask

    def world_to_screen(self, point: Sequence[float]) -> Optional[tuple[int, int]]:
        projected = self.project(point)
        if projected is None:
            return None
        return int(projected[0]), int(projected[1])

    def pixels_per_unit(self, depth: float) -> float:
        _, height = self._size
        return height / (2.0 * max(depth, 1e-9) * self._tan_half_fov)

    # controls -----------------------------------------------------------
    def zoom_by_factor(self, factor: float) -> None:
        if not self.controls_enabled:
            return
        cfg = self._cfg
        self._state.distance_goal = _clamp(
            self._state.distance_goal * factor, cfg.min_distance, cfg.max_distance
        )

    def dolly(self, steps: float) -> None:
        self.zoom_by_factor(self._cfg.zoom_step ** steps)

    def begin_rotate(self, position: tuple[int, int]) -> None:
        if self.controls_enabled:
            self._rotate_anchor = position

    def rotate(self, position: tuple[int, int]) -> None:
        if self._rotate_anchor is None or not self.controls_enabled:
            return
        dx = position[0] - self._rotate_anchor[0]
        dy = position[1] - self._rotate_anchor[1]
        state = self._state
        state.azimuth -= dx * self._cfg.rotate_speed
        state.elevation = _clamp(
            state.elevation + dy * self._cfg.rotate_speed, -_ELEVATION_LIMIT, _ELEVATION_LIMIT
        )
        self._rotate_anchor = position

    def end_rotate(self) -> None:
        self._rotate_anchor = None

    def begin_pan(self, position: tuple[int, int]) -> None:
        if self.controls_enabled:
            self._pan_anchor = position

    def pan(self, position: tuple[int, int]) -> None:
        if self._pan_anchor is None or not self.controls_enabled:
            return
        dx = position[0] - self._pan_anchor[0]
        dy = position[1] - self._pan_anchor[1]
        if dx == 0 and dy == 0:
            return
        _, right, up = self.basis()
        units = 1.0 / self.pixels_per_unit(self._state.distance)
        shift = (-dx * right + dy * up) * units
        self._state.target += shift
        self._state.target_goal[:] = self._state.target
        self._pan_anchor = position

    def end_pan(self) -> None:
        self._pan_anchor = None


__all__ = ["CameraState", "OrbitCamera", "Plane", "Ray"]
