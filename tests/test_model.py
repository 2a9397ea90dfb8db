import threading

import numpy as np
import pytest

from orbit_scene.core.model import (
    BodyKind,
    BodySnapshot,
    CollisionEvent,
    Frame,
    FrameMailbox,
    PayloadError,
    as_vec3,
    hex_to_rgb,
)

from conftest import make_body, make_frame


class TestVectors:
    def test_mapping_without_z_lands_on_plane(self):
        np.testing.assert_allclose(as_vec3({"x": 1, "y": 2}), [1.0, 2.0, 0.0])

    def test_two_element_sequence(self):
        np.testing.assert_allclose(as_vec3([3, 4]), [3.0, 4.0, 0.0])

    def test_wrong_length_rejected(self):
        with pytest.raises(PayloadError):
            as_vec3([1, 2, 3, 4])

    def test_bad_mapping_rejected(self):
        with pytest.raises(PayloadError):
            as_vec3({"x": "a", "y": 1})


class TestColors:
    def test_full_hex(self):
        assert hex_to_rgb("#FF0000") == (1.0, 0.0, 0.0)

    def test_short_hex(self):
        assert hex_to_rgb("#0f0") == (0.0, 1.0, 0.0)

    def test_garbage_falls_back_to_white(self):
        assert hex_to_rgb("not-a-color") == (1.0, 1.0, 1.0)


class TestPayloads:
    def test_body_from_payload(self):
        body = BodySnapshot.from_payload(
            {
                "id": 7,
                "position": {"x": 1.0, "y": 2.0, "z": 3.0},
                "velocity": {"x": 0.0, "y": 5.0},
                "mass": 2.0,
                "radius": 4.0,
                "color": "#FFFFFF",
                "body_type": "spacecraft",
                "trail": [{"x": 0.0, "y": 0.0, "speed": 1.5}, [1.0, 0.0, 0.0]],
            }
        )
        assert body.id == 7
        assert body.kind is BodyKind.CRAFT
        assert body.is_craft
        assert body.speed == pytest.approx(5.0)
        assert len(body.trail) == 2
        assert body.trail[0].speed == pytest.approx(1.5)
        assert body.trail[1].speed == 0.0

    def test_missing_mass_rejected(self):
        with pytest.raises(PayloadError):
            BodySnapshot.from_payload({"id": 1, "position": [0, 0, 0], "radius": 1.0})

    def test_unknown_kind_rejected(self):
        with pytest.raises(PayloadError):
            BodyKind.parse("nebula")

    def test_frame_requires_bodies(self):
        with pytest.raises(PayloadError):
            Frame.from_payload({"tick": 3})

    def test_frame_from_payload(self):
        frame = Frame.from_payload(
            {
                "bodies": [{"id": 1, "position": [0, 0, 0], "mass": 1, "radius": 1}],
                "tick": 12,
                "paused": True,
                "energy": {"kinetic": 1.0, "potential": -2.0, "total": -1.0},
            }
        )
        assert frame.ids() == {1}
        assert frame.tick == 12
        assert frame.paused
        assert frame.energy.total == -1.0

    def test_non_finite_values_parse_but_are_flagged(self):
        body = make_body(1, position=(float("nan"), 0.0, 0.0))
        assert not body.is_finite()

    def test_collision_from_payload(self):
        event = CollisionEvent.from_payload(
            {"position": [1, 2, 3], "combined_mass": 5, "survivor_id": 2}
        )
        assert event.survivor_id == 2
        assert event.absorbed_id is None


class TestFrameLookup:
    def test_find(self):
        frame = make_frame(make_body(1), make_body(2))
        assert frame.find(2).id == 2
        assert frame.find(99) is None
        assert frame.find(None) is None


class TestMailbox:
    def test_latest_reports_freshness_once(self):
        box = FrameMailbox()
        assert box.latest() == (None, False)
        frame = make_frame(make_body(1))
        box.deliver(frame)
        assert box.latest() == (frame, True)
        assert box.latest() == (frame, False)

    def test_newest_frame_wins(self):
        box = FrameMailbox()
        first = make_frame(make_body(1), tick=1)
        second = make_frame(make_body(1), tick=2)
        box.deliver(first)
        box.deliver(second)
        latest, fresh = box.latest()
        assert latest is second and fresh
        assert box.superseded == 1

    def test_concurrent_delivery(self):
        box = FrameMailbox()
        frames = [make_frame(make_body(1), tick=i) for i in range(200)]

        def producer(chunk):
            for frame in chunk:
                box.deliver(frame)

        threads = [threading.Thread(target=producer, args=(frames[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        latest, fresh = box.latest()
        assert fresh
        assert latest in frames
        assert box.delivered == 200
