"""Scene graph, reconciliation and drawing for the orbit scene."""

from .assets import (
    AssetLibrary,
    get_text_surface,
    load_font,
)
from .camera import OrbitCamera, Plane, Ray
from .capture import FrameRecorder, capture_screenshot, save_screenshot
from .draw import (
    ScenePainter,
    build_text_panel,
    downsample_points,
    draw_starfield,
    generate_starfield,
)
from .overlays import OverlayLayer, OverlayReadout
from .pools import FlashPool, ParticlePool, TrailBuffer
from .reconciler import FrameReconciler, SyncStats
from .scene import ResourceRegistry, Scene

__all__ = [
    "AssetLibrary",
    "FlashPool",
    "FrameReconciler",
    "FrameRecorder",
    "OrbitCamera",
    "OverlayLayer",
    "OverlayReadout",
    "ParticlePool",
    "Plane",
    "Ray",
    "ResourceRegistry",
    "Scene",
    "ScenePainter",
    "SyncStats",
    "TrailBuffer",
    "build_text_panel",
    "capture_screenshot",
    "downsample_points",
    "draw_starfield",
    "generate_starfield",
    "get_text_surface",
    "load_font",
    "save_screenshot",
]
