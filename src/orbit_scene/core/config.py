"""Configuration dataclasses for the orbit scene engine."""
from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


# Gravitational constant used by the sandbox simulation (scaled units).
G = 100.0
MAX_TRAIL_POINTS = 500


@dataclass(frozen=True)
class ReconcileCfg:
    gravitational_constant: float = G
    small_body_mass_threshold: float = 0.05
    batch_capacity: int = 4_096
    max_trail_points: int = MAX_TRAIL_POINTS
    velocity_epsilon: float = 1e-6
    speed_epsilon: float = 1e-9
    sphere_segments: int = 32
    cone_segments: int = 16
    cone_height_factor: float = 2.5
    fixed_glow_factor: float = 6.0
    glow_factor: float = 3.0
    fixed_glow_opacity: float = 0.8
    glow_opacity: float = 0.4
    fixed_emissive_intensity: float = 0.8
    fixed_roughness: float = 0.3
    roughness: float = 0.7
    light_intensity: float = 2.0
    light_range: float = 5_000.0
    trail_opacity: float = 0.4
    trail_slow_color: tuple[float, float, float] = (0.25, 0.45, 1.0)
    trail_fast_color: tuple[float, float, float] = (1.0, 0.35, 0.15)
    label_offset_factor: float = 1.6
    velocity_arrow_scale: float = 2.0
    acceleration_arrow_scale: float = 40.0
    velocity_arrow_color: tuple[float, float, float] = (0.3, 1.0, 0.4)
    acceleration_arrow_color: tuple[float, float, float] = (1.0, 0.8, 0.2)
    comet_max_radius: float = 3.0
    comet_length_factor: float = 12.0
    comet_reference_distance: float = 200.0
    exhaust_length_factor: float = 4.0
    plane_disc_opacity: float = 0.08
    batch_scale_floor: float = 0.5


@dataclass(frozen=True)
class PoolCfg:
    particle_capacity: int = 500
    particles_per_call: int = 16
    particle_lifetime: float = 0.5
    particle_speed_min: float = 30.0
    particle_speed_max: float = 150.0
    particle_damping: float = 0.98
    particle_size_min: float = 2.0
    particle_size_max: float = 6.0
    hue_jitter: float = 0.1
    max_dt: float = 0.05
    flash_capacity: int = 32
    flash_duration: float = 0.5
    flash_start_size: float = 10.0
    flash_end_size: float = 90.0


@dataclass(frozen=True)
class BodyPreset:
    mass: float
    radius: float
    color: str
    name: str
    kind: str
    is_fixed: bool = False


@dataclass(frozen=True)
class InteractionCfg:
    slingshot_scale: float = 0.5
    placement_normal: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, 1.0], dtype=float)
    )
    placement_offset: float = 0.0
    default_preset: BodyPreset = BodyPreset(
        mass=1.0, radius=6.0, color="#00FF88", name="New Body", kind="planet"
    )
    craft_preset: BodyPreset = BodyPreset(
        mass=0.001, radius=2.0, color="#E0E0FF", name="Craft", kind="spacecraft"
    )
    pick_radius_factor: float = 1.0
    ghost_radius: float = 6.0
    drag_indicator_color: tuple[float, float, float] = (1.0, 0.27, 0.27)
    prediction_steps: int = 500


@dataclass(frozen=True)
class OverlayCfg:
    hohmann_points: int = 100
    kepler_segments: int = 8
    kepler_min_trail: int = 10
    kepler_max_triangles_per_segment: int = 100
    field_resolution: int = 24
    field_margin: float = 0.25
    field_min_extent: float = 100.0
    marker_radius: float = 4.0
    selection_ring_factor: float = 1.8
    selection_pulse_rate: float = 5.0
    prediction_dash: float = 5.0
    prediction_gap: float = 3.0
    assist_min_v_inf: float = 0.01
    assist_periapsis_radius_factor: float = 1.5
    assist_periapsis_distance_factor: float = 0.3
    energy_history_length: int = 300


@dataclass(frozen=True)
class CameraCfg:
    fov_deg: float = 60.0
    near: float = 0.1
    far: float = 100_000.0
    distance: float = 800.0
    min_distance: float = 50.0
    max_distance: float = 50_000.0
    smoothing: float = 0.1
    rotate_speed: float = 0.005
    zoom_step: float = 1.1


@dataclass(frozen=True)
class RenderCfg:
    width: int = 1280
    height: int = 800
    fps: int = 60
    background_color: tuple[int, int, int] = (0, 8, 16)
    starfield_count: int = 2_000
    starfield_radius: float = 50_000.0
    starfield_alpha: int = 180
    label_color: tuple[int, int, int] = (234, 241, 255)
    label_font_size: int = 14
    hud_font_size: int = 16
    hud_text_color: tuple[int, int, int] = (234, 241, 255)
    hud_background_color: tuple[int, int, int, int] = (12, 18, 30, int(255 * 0.6))
    selection_color: tuple[int, int, int] = (0, 170, 255)
    marker_color: tuple[int, int, int] = (46, 209, 195)
    barycenter_color: tuple[int, int, int] = (255, 255, 255)
    hohmann_color: tuple[int, int, int] = (255, 200, 80)
    prediction_color: tuple[int, int, int] = (255, 255, 255)
    field_cold_color: tuple[int, int, int] = (10, 20, 80)
    field_hot_color: tuple[int, int, int] = (255, 120, 40)
    field_alpha: int = 70
    min_pixel_radius: int = 1
    glow_texture_size: int = 128
    recording_fps: int = 30


@dataclass(frozen=True)
class OverlayToggles:
    """Visibility switches for every optional overlay layer."""

    labels: bool = True
    vectors: bool = False
    barycenter: bool = False
    orbital_elements: bool = False
    lagrange_points: bool = False
    kepler_areas: bool = False
    gravity_field: bool = False
    orbital_planes: bool = False
    hohmann: bool = False
    gravity_assist: bool = False


RECONCILE_CFG = ReconcileCfg()
POOL_CFG = PoolCfg()
INTERACTION_CFG = InteractionCfg()
OVERLAY_CFG = OverlayCfg()
CAMERA_CFG = CameraCfg()
RENDER_CFG = RenderCfg()
DEFAULT_TOGGLES = OverlayToggles()


__all__ = [
    "CAMERA_CFG",
    "DEFAULT_TOGGLES",
    "G",
    "INTERACTION_CFG",
    "MAX_TRAIL_POINTS",
    "OVERLAY_CFG",
    "POOL_CFG",
    "RECONCILE_CFG",
    "RENDER_CFG",
    "BodyPreset",
    "CameraCfg",
    "InteractionCfg",
    "OverlayCfg",
    "OverlayToggles",
    "PoolCfg",
    "ReconcileCfg",
    "RenderCfg",
]
