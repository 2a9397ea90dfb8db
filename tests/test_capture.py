import json
import random

import pygame
import pytest

from orbit_scene.core.config import RenderCfg
from orbit_scene.render.camera import OrbitCamera
from orbit_scene.render.capture import FrameRecorder, capture_screenshot, save_screenshot
from orbit_scene.render.draw import ScenePainter
from orbit_scene.render.reconciler import FrameReconciler

from conftest import make_frame, sun_and_planet


@pytest.fixture
def painter():
    return ScenePainter(RenderCfg(starfield_count=50), rng=random.Random(0))


class TestScreenshot:
    def test_multiplier_scales_output_and_restores_camera(self, painter, scene):
        FrameReconciler(scene).sync_frame(make_frame(*sun_and_planet()))
        camera = OrbitCamera((200, 100))
        shot = capture_screenshot(painter, scene, camera, 1.5)
        assert shot.get_size() == (300, 150)
        assert camera.size == (200, 100)

    def test_non_positive_multiplier(self, painter, scene):
        with pytest.raises(ValueError):
            capture_screenshot(painter, scene, OrbitCamera((10, 10)), 0.0)

    def test_save_writes_png(self, tmp_path):
        path = save_screenshot(pygame.Surface((8, 8)), tmp_path)
        assert path.exists()
        assert path.suffix == ".png"


class TestRecorder:
    def test_first_frame_is_written_immediately(self, tmp_path):
        recorder = FrameRecorder(tmp_path, fps=10)
        assert recorder.start()
        assert recorder.capture(pygame.Surface((4, 4)), 0.0) == 1

    def test_cadence_follows_fps(self, tmp_path):
        recorder = FrameRecorder(tmp_path, fps=4)
        recorder.start()
        surface = pygame.Surface((4, 4))
        written = sum(recorder.capture(surface, 0.125) for _ in range(8))
        # one second of frames plus the initial one
        assert written == 5
        session = recorder.stop()
        assert len(list(session.glob("frame_*.png"))) == 5
        meta = json.loads((session / "meta.json").read_text(encoding="utf-8"))
        assert meta["frames"] == 5 and meta["fps"] == 4

    def test_start_twice_and_idle_stop(self, tmp_path):
        recorder = FrameRecorder(tmp_path, fps=5)
        assert recorder.stop() is None
        assert recorder.start()
        assert not recorder.start()
        assert recorder.recording
        recorder.stop()
        assert not recorder.recording
        assert recorder.capture(pygame.Surface((4, 4)), 1.0) == 0

    def test_invalid_fps(self, tmp_path):
        with pytest.raises(ValueError):
            FrameRecorder(tmp_path, fps=0)
