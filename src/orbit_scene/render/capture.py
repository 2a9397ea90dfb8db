"""Screenshots and PNG-sequence recording of the rendered scene."""
from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import pygame

from orbit_scene.core.config import RENDER_CFG
from orbit_scene.core.logging_utils import make_run_dir
from orbit_scene.core.timekeeping import FixedStepAccumulator

from .camera import OrbitCamera
from .draw import ScenePainter
from .scene import Scene

logger = logging.getLogger(__name__)


def capture_screenshot(
    painter: ScenePainter,
    scene: Scene,
    camera: OrbitCamera,
    multiplier: float = 1.0,
) -> pygame.Surface:
    """Render the scene off-screen at ``multiplier`` times the camera size."""

    if multiplier <= 0.0:
        raise ValueError("resolution multiplier must be positive")
    base_size = camera.size
    size = (max(1, int(base_size[0] * multiplier)), max(1, int(base_size[1] * multiplier)))
    surface = pygame.Surface(size)
    camera.update_size(size)
    try:
        painter.paint(surface, scene, camera)
    finally:
        camera.update_size(base_size)
    return surface


def save_screenshot(surface: pygame.Surface, directory: str | Path = "screenshots") -> Path:
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    path = out_dir / f"orbit_scene_{timestamp}.png"
    pygame.image.save(surface, path.as_posix())
    logger.info("Saved screenshot %s (%dx%d)", path, *surface.get_size())
    return path


class FrameRecorder:
    """Writes rendered frames to numbered PNGs at a fixed cadence."""

    def __init__(
        self,
        root_dir: str | Path = "recordings",
        fps: int = RENDER_CFG.recording_fps,
        *,
        max_catch_up: int = 1,
    ) -> None:
        if fps <= 0:
            raise ValueError("fps must be positive")
        self.root_dir = Path(root_dir)
        self.fps = fps
        self._clock = FixedStepAccumulator(step=1.0 / fps, max_steps=max_catch_up)
        self.session_dir: Optional[Path] = None
        self.frame_count = 0
        self._started: Optional[datetime] = None

    @property
    def recording(self) -> bool:
        return self.session_dir is not None

    def start(self) -> bool:
        if self.session_dir is not None:
            return False
        self.session_dir = make_run_dir(self.root_dir, label="recording")
        self.frame_count = 0
        self._started = datetime.now()
        self._clock.clear()
        # The first frame is written immediately.
        self._clock.accrue(self._clock.step)
        logger.info("Recording started in %s at %d fps", self.session_dir, self.fps)
        return True

    def capture(self, surface: pygame.Surface, dt: float) -> int:
        """Advance the clock by ``dt`` and write the frames that fall due."""

        if self.session_dir is None:
            return 0
        self._clock.accrue(dt)
        due = self._clock.consume()
        for _ in range(due):
            path = self.session_dir / f"frame_{self.frame_count:05d}.png"
            pygame.image.save(surface, path.as_posix())
            self.frame_count += 1
        return due

    def stop(self) -> Optional[Path]:
        session = self.session_dir
        if session is None:
            return None
        meta = {
            "fps": self.fps,
            "frames": self.frame_count,
            "started": self._started.isoformat() if self._started else None,
            "stopped": datetime.now().isoformat(),
        }
        with (session / "meta.json").open("w", encoding="utf-8") as fh:
            json.dump(meta, fh, indent=2, sort_keys=True)
        self.session_dir = None
        logger.info("Recording stopped: %d frames in %s", self.frame_count, session)
        return session


__all__ = ["FrameRecorder", "capture_screenshot", "save_screenshot"]
