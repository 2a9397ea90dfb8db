"""Orbital mechanics helpers used to derive overlays from frame state.

Every function here is pure: it reads body state vectors and returns either a
result object or ``None`` when the input is too degenerate to visualise.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Sequence

import numpy as np

from .config import G

DISTANCE_EPSILON = 1e-3
MU_EPSILON = 1e-3
MOMENTUM_EPSILON = 1e-3
ENERGY_EPSILON = 1e-10

_PRINCIPAL_AXES = np.eye(3)


class MassiveBody(Protocol):
    id: int
    position: np.ndarray
    velocity: np.ndarray
    mass: float
    radius: float


def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp *value* between *lo* and *hi*."""

    return max(lo, min(hi, value))


def _finite(*values: object) -> bool:
    for value in values:
        if not np.all(np.isfinite(value)):
            return False
    return True


@dataclass(frozen=True)
class OrbitalElements:
    semi_major_axis: float
    eccentricity: float
    inclination: float
    period: float
    apoapsis: float
    periapsis: float
    specific_energy: float
    specific_angular_momentum: float


def specific_angular_momentum(r: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Angular momentum per unit mass, ``h = r x v``."""

    return np.cross(r, v)


def energy_specific(r_magnitude: float, v_magnitude: float, mu: float) -> float:
    """Specific orbital energy from the vis-viva relation."""

    return 0.5 * v_magnitude * v_magnitude - mu / r_magnitude


def orbital_elements(
    position: np.ndarray,
    velocity: np.ndarray,
    central_position: np.ndarray,
    central_mass: float,
    g: float = G,
) -> Optional[OrbitalElements]:
    """Classical elements of ``position``/``velocity`` about an attractor.

    The position is taken relative to the attractor while the velocity is
    used as given.  Returns ``None`` for a vanishing radius or gravitational
    parameter, and for the parabolic case where the semi-major axis is
    undefined.
    """

    if not _finite(position, velocity, central_position, central_mass, g):
        return None
    r = np.asarray(position, dtype=float) - np.asarray(central_position, dtype=float)
    v = np.asarray(velocity, dtype=float)
    rmag = float(np.linalg.norm(r))
    vmag = float(np.linalg.norm(v))
    mu = g * central_mass
    if rmag < DISTANCE_EPSILON or mu < MU_EPSILON:
        return None

    h = specific_angular_momentum(r, v)
    hmag = float(np.linalg.norm(h))
    if hmag > MOMENTUM_EPSILON:
        inclination = math.acos(min(1.0, abs(float(h[2])) / hmag))
    else:
        inclination = 0.0

    energy = energy_specific(rmag, vmag, mu)
    if abs(energy) < ENERGY_EPSILON:
        return None
    a = -mu / (2.0 * energy)

    e_vec = np.cross(v, h) / mu - r / rmag
    e = float(np.linalg.norm(e_vec))

    period = 2.0 * math.pi * math.sqrt(abs(a**3) / mu) if e < 1.0 else math.inf
    periapsis = abs(a) * (1.0 - e)
    apoapsis = a * (1.0 + e) if e < 1.0 else math.inf

    return OrbitalElements(
        semi_major_axis=a,
        eccentricity=e,
        inclination=inclination,
        period=period,
        apoapsis=apoapsis,
        periapsis=periapsis,
        specific_energy=energy,
        specific_angular_momentum=hmag,
    )


def dominant_body(
    body_id: int,
    position: np.ndarray,
    bodies: Iterable[MassiveBody],
    g: float = G,
) -> Optional[MassiveBody]:
    """Body with the largest ``G*m/d^2`` pull on ``position``.

    This is an influence heuristic rather than a Hill-sphere test; in crowded
    scenes it can favour a close, light neighbour over the true primary.
    """

    best_influence = 0.0
    dominant: Optional[MassiveBody] = None
    for other in bodies:
        if other.id == body_id:
            continue
        offset = other.position - position
        dist = float(np.linalg.norm(offset))
        if not math.isfinite(dist) or dist < DISTANCE_EPSILON:
            continue
        influence = g * other.mass / (dist * dist)
        if influence > best_influence:
            best_influence = influence
            dominant = other
    return dominant


def select_two_body_pair(
    bodies: Sequence[MassiveBody],
) -> Optional[tuple[MassiveBody, MassiveBody]]:
    """Return the heaviest and second heaviest bodies, first seen wins ties."""

    if len(bodies) < 2:
        return None
    primary = bodies[0]
    for body in bodies:
        if body.mass > primary.mass:
            primary = body
    secondary: Optional[MassiveBody] = None
    for body in bodies:
        if body is primary:
            continue
        if secondary is None or body.mass > secondary.mass:
            secondary = body
    if secondary is None:
        return None
    return primary, secondary


@dataclass(frozen=True, eq=False)
class LagrangePoints:
    l1: np.ndarray
    l2: np.ndarray
    l3: np.ndarray
    l4: np.ndarray
    l5: np.ndarray

    def as_dict(self) -> dict[str, np.ndarray]:
        return {"L1": self.l1, "L2": self.l2, "L3": self.l3, "L4": self.l4, "L5": self.l5}

    def as_array(self) -> np.ndarray:
        return np.vstack([self.l1, self.l2, self.l3, self.l4, self.l5])

    @property
    def is_degenerate(self) -> bool:
        return not np.any(self.as_array())


def _zero_lagrange_points() -> LagrangePoints:
    return LagrangePoints(*(np.zeros(3) for _ in range(5)))


def perpendicular_unit(u: np.ndarray) -> np.ndarray:
    """Unit vector perpendicular to ``u``.

    ``u`` is crossed with the principal axis it is least aligned with, which
    keeps the cross product well away from zero.
    """

    axis = _PRINCIPAL_AXES[int(np.argmin(np.abs(u)))]
    perp = np.cross(u, axis)
    return perp / np.linalg.norm(perp)


def lagrange_points(
    primary_position: np.ndarray,
    primary_mass: float,
    secondary_position: np.ndarray,
    secondary_mass: float,
) -> LagrangePoints:
    """Approximate L1..L5 for a primary/secondary pair."""

    p = np.asarray(primary_position, dtype=float)
    s = np.asarray(secondary_position, dtype=float)
    if not _finite(p, s, primary_mass, secondary_mass):
        return _zero_lagrange_points()
    sep = s - p
    R = float(np.linalg.norm(sep))
    if R < DISTANCE_EPSILON:
        return _zero_lagrange_points()
    u = sep / R

    total = primary_mass + secondary_mass
    mu = secondary_mass / total if total > 0.0 else 0.0
    hill = (mu / 3.0) ** (1.0 / 3.0)

    l1 = p + u * R * (1.0 - hill)
    l2 = p + u * R * (1.0 + hill)
    l3 = p - u * R * (1.0 + 5.0 * mu / 12.0)

    perp = perpendicular_unit(u)
    mid = 0.5 * (p + s)
    height = R * math.sqrt(3.0) / 2.0
    l4 = mid + perp * height
    l5 = mid - perp * height
    return LagrangePoints(l1=l1, l2=l2, l3=l3, l4=l4, l5=l5)


@dataclass(frozen=True, eq=False)
class HohmannTransfer:
    delta_v1: float
    delta_v2: float
    total_delta_v: float
    transfer_time: float
    semi_major_axis: float
    eccentricity: float
    points: np.ndarray


def hohmann_transfer(
    r1: float,
    r2: float,
    mu: float,
    center: Sequence[float] = (0.0, 0.0, 0.0),
    num_points: int = 100,
) -> Optional[HohmannTransfer]:
    """Two-impulse transfer between circular orbits of radii ``r1`` and ``r2``.

    Returns ``None`` when any input is not finite.
    """

    if not _finite(r1, r2, mu, np.asarray(center, dtype=float)):
        return None
    if r1 <= 0.0 or r2 <= 0.0 or mu <= 0.0:
        raise ValueError("radii and gravitational parameter must be positive")
    num_points = max(1, int(num_points))
    r_inner, r_outer = (r1, r2) if r1 < r2 else (r2, r1)
    a_transfer = 0.5 * (r_inner + r_outer)

    v1_circular = math.sqrt(mu / r_inner)
    v2_circular = math.sqrt(mu / r_outer)
    v1_transfer = math.sqrt(mu * (2.0 / r_inner - 1.0 / a_transfer))
    v2_transfer = math.sqrt(mu * (2.0 / r_outer - 1.0 / a_transfer))

    delta_v1 = abs(v1_transfer - v1_circular)
    delta_v2 = abs(v2_circular - v2_transfer)
    transfer_time = math.pi * math.sqrt(a_transfer**3 / mu)

    e = (r_outer - r_inner) / (r_outer + r_inner)
    theta = np.linspace(0.0, math.pi, num_points + 1)
    radius = a_transfer * (1.0 - e * e) / (1.0 + e * np.cos(theta))
    cx, cy, cz = (float(c) for c in center)
    points = np.column_stack(
        (cx + radius * np.cos(theta), cy + radius * np.sin(theta), np.full_like(theta, cz))
    )

    return HohmannTransfer(
        delta_v1=delta_v1,
        delta_v2=delta_v2,
        total_delta_v=delta_v1 + delta_v2,
        transfer_time=transfer_time,
        semi_major_axis=a_transfer,
        eccentricity=e,
        points=points,
    )


@dataclass(frozen=True)
class GravityAssist:
    deflection_angle: float
    exit_speed: float
    delta_v: float
    periapsis: float
    eccentricity: float


def gravity_assist(
    v_infinity: float,
    r_periapsis: float,
    body_mass: float,
    g: float = G,
) -> Optional[GravityAssist]:
    """Hyperbolic flyby geometry for approach speed ``v_infinity``."""

    if not _finite(v_infinity, r_periapsis, body_mass, g):
        return None
    mu = g * body_mass
    if mu < MU_EPSILON:
        return None
    e = 1.0 + r_periapsis * v_infinity * v_infinity / mu
    deflection = 2.0 * math.asin(1.0 / e) if e > 1.0 else math.pi
    return GravityAssist(
        deflection_angle=deflection,
        exit_speed=v_infinity,
        delta_v=2.0 * v_infinity * math.sin(deflection / 2.0),
        periapsis=r_periapsis,
        eccentricity=e,
    )


def relative_speed(velocity: np.ndarray, reference_velocity: np.ndarray) -> float:
    return float(np.linalg.norm(np.asarray(velocity) - np.asarray(reference_velocity)))


def barycenter(bodies: Iterable[MassiveBody]) -> Optional[np.ndarray]:
    """Mass-weighted mean position, ``None`` if the total mass vanishes."""

    total = 0.0
    weighted = np.zeros(3)
    for body in bodies:
        if not _finite(body.position, body.mass):
            continue
        total += body.mass
        weighted += body.mass * body.position
    if total <= 0.0:
        return None
    return weighted / total


def nearest_heavier_body(
    body: MassiveBody, bodies: Iterable[MassiveBody]
) -> Optional[MassiveBody]:
    nearest: Optional[MassiveBody] = None
    nearest_dist = math.inf
    for other in bodies:
        if other.id == body.id or other.mass <= body.mass:
            continue
        dist = float(np.linalg.norm(other.position - body.position))
        if dist < nearest_dist:
            nearest_dist = dist
            nearest = other
    return nearest


@dataclass(frozen=True, eq=False)
class AssistReport:
    target: MassiveBody
    v_infinity: float
    distance: float
    result: GravityAssist


def gravity_assist_for(
    body: MassiveBody,
    bodies: Iterable[MassiveBody],
    g: float = G,
    *,
    min_v_infinity: float = 0.01,
    periapsis_radius_factor: float = 1.5,
    periapsis_distance_factor: float = 0.3,
) -> Optional[AssistReport]:
    """Flyby estimate of ``body`` past the nearest heavier body."""

    target = nearest_heavier_body(body, bodies)
    if target is None:
        return None
    v_inf = relative_speed(body.velocity, target.velocity)
    if not math.isfinite(v_inf) or v_inf < min_v_infinity:
        return None
    distance = float(np.linalg.norm(body.position - target.position))
    r_periapsis = max(
        target.radius * periapsis_radius_factor, distance * periapsis_distance_factor
    )
    result = gravity_assist(v_inf, r_periapsis, target.mass, g)
    if result is None:
        return None
    return AssistReport(target=target, v_infinity=v_inf, distance=distance, result=result)


@dataclass(frozen=True, eq=False)
class TransferReport:
    central: MassiveBody
    inner: MassiveBody
    outer: MassiveBody
    transfer: HohmannTransfer


def hohmann_for(
    bodies: Sequence[MassiveBody],
    selected_id: Optional[int] = None,
    g: float = G,
    num_points: int = 100,
) -> Optional[TransferReport]:
    """Hohmann transfer between two orbiters of the heaviest body.

    The selected orbiter (or the first one) is paired with the next orbiter
    in descending mass order.
    """

    if len(bodies) < 3:
        return None
    ordered = sorted(bodies, key=lambda b: b.mass, reverse=True)
    central, orbiters = ordered[0], ordered[1:]
    selected = next((b for b in orbiters if b.id == selected_id), orbiters[0])
    other = next((b for b in orbiters if b.id != selected.id), None)
    if other is None:
        return None

    r_selected = float(np.linalg.norm(selected.position - central.position))
    r_other = float(np.linalg.norm(other.position - central.position))
    mu = g * central.mass
    if (
        not _finite(r_selected, r_other, mu)
        or min(r_selected, r_other) < DISTANCE_EPSILON
        or mu < MU_EPSILON
    ):
        return None
    inner, outer = (selected, other) if r_selected < r_other else (other, selected)
    transfer = hohmann_transfer(
        r_selected, r_other, mu, center=central.position, num_points=num_points
    )
    if transfer is None:
        return None
    return TransferReport(central=central, inner=inner, outer=outer, transfer=transfer)


def gravity_field_grid(
    bodies: Sequence[MassiveBody],
    bounds: tuple[float, float, float, float],
    resolution: int,
    g: float = G,
    plane_z: float = 0.0,
) -> Optional[np.ndarray]:
    """Normalised ``log10`` of field strength sampled on a plane.

    ``bounds`` is ``(xmin, ymin, xmax, ymax)``; the result has shape
    ``(resolution, resolution)`` indexed ``[row=y, col=x]`` with values in
    ``[0, 1]``.
    """

    if resolution < 2 or not bodies:
        return None
    xmin, ymin, xmax, ymax = bounds
    xs = np.linspace(xmin, xmax, resolution)
    ys = np.linspace(ymin, ymax, resolution)
    gx, gy = np.meshgrid(xs, ys)
    strength = np.zeros_like(gx)
    for body in bodies:
        if not _finite(body.position, body.mass) or body.mass <= 0.0:
            continue
        dx = gx - body.position[0]
        dy = gy - body.position[1]
        dz = plane_z - body.position[2]
        d2 = np.maximum(dx * dx + dy * dy + dz * dz, DISTANCE_EPSILON)
        strength += g * body.mass / d2
    positive = strength > 0.0
    if not np.any(positive):
        return None
    log_field = np.full_like(strength, np.nan)
    log_field[positive] = np.log10(strength[positive])
    lo = float(np.nanmin(log_field))
    hi = float(np.nanmax(log_field))
    span = hi - lo if hi - lo > 1e-12 else 1.0
    normalised = (log_field - lo) / span
    return np.nan_to_num(normalised, nan=0.0)


__all__ = [
    "AssistReport",
    "DISTANCE_EPSILON",
    "GravityAssist",
    "HohmannTransfer",
    "LagrangePoints",
    "OrbitalElements",
    "TransferReport",
    "barycenter",
    "clamp",
    "dominant_body",
    "energy_specific",
    "gravity_assist",
    "gravity_assist_for",
    "gravity_field_grid",
    "hohmann_for",
    "hohmann_transfer",
    "lagrange_points",
    "nearest_heavier_body",
    "orbital_elements",
    "perpendicular_unit",
    "relative_speed",
    "select_two_body_pair",
    "specific_angular_momentum",
]
