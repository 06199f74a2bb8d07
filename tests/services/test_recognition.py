"""Tests for the recognition acceptance policy."""
import asyncio

import numpy as np
import pytest

from attendance_station.core.exceptions import BackendError
from attendance_station.domain.entities.face import BoundingBox
from attendance_station.domain.value_objects.recognition import (
    CaptureStatus,
    DetectionBatch,
    DetectionMode,
)
from attendance_station.services.matching import DistanceMatcher
from attendance_station.services import recognition
from attendance_station.services.recognition import RecognitionCoordinator
from attendance_station.services.scheduling import Cooldown
from attendance_station.services.submission import AttendanceSubmitter
from tests.conftest import SESSION_ID, at_distance, make_descriptor, make_member, make_observation

FRAME = np.zeros((240, 320, 3), dtype=np.uint8)


def batch_of(*observations, mode=DetectionMode.AUTO) -> DetectionBatch:
    return DetectionBatch(mode=mode, observations=list(observations), frame=FRAME)


@pytest.fixture
def student():
    return make_member("s1", "Student One", make_descriptor(1))


@pytest.fixture
def coordinator(backend, notices):
    submitter = AttendanceSubmitter(backend, SESSION_ID, notices, refresh_cooldown=0.05)
    coordinator = RecognitionCoordinator(
        DistanceMatcher(threshold=0.4),
        submitter,
        notices,
        cooldown=Cooldown(window=0.1),
        confidence_threshold=0.7,
    )
    yield coordinator
    coordinator.cooldown.clear()
    submitter.close()


class TestAutoBatch:
    """Test suite for auto-mode batches."""

    async def test_close_match_is_submitted_with_confidence(self, coordinator, backend, student):
        """Should submit one record for a face 0.1 away, with confidence 0.9."""
        observed = at_distance(student.descriptors[0], 0.1)

        outcome = await coordinator.process_auto_batch(batch_of(make_observation(0, observed)), [student])

        calls = backend.calls_to("verify_attendance")
        assert outcome.submitted == ["s1"]
        assert len(calls) == 1
        assert calls[0]["student_id"] == "s1"
        assert calls[0]["session_id"] == SESSION_ID
        assert calls[0]["confidence"] == pytest.approx(0.9)
        assert calls[0]["face_descriptor"] == pytest.approx(observed.tolist())
        assert calls[0]["image_base64"].startswith("data:image/jpeg;base64,")

    async def test_distant_face_is_not_submitted(self, coordinator, backend, student):
        """Should neither match nor submit a face 0.6 away."""
        observed = at_distance(student.descriptors[0], 0.6)

        outcome = await coordinator.process_auto_batch(batch_of(make_observation(0, observed)), [student])

        assert outcome.results == []
        assert outcome.submitted == []
        assert backend.calls_to("verify_attendance") == []

    async def test_match_below_confidence_threshold_is_not_submitted(self, coordinator, backend, student):
        """Should hold back a match at distance 0.35 (confidence 0.65)."""
        observed = at_distance(student.descriptors[0], 0.35)

        outcome = await coordinator.process_auto_batch(batch_of(make_observation(0, observed)), [student])

        assert len(outcome.results) == 1
        assert outcome.submitted == []
        assert backend.calls_to("verify_attendance") == []

    async def test_cooldown_allows_one_submission_per_window(self, coordinator, backend, student):
        """Should submit once for two cycles inside the window and again after it."""
        observed = at_distance(student.descriptors[0], 0.05)

        first = await coordinator.process_auto_batch(batch_of(make_observation(0, observed)), [student])
        second = await coordinator.process_auto_batch(batch_of(make_observation(0, observed)), [student])

        assert first.submitted == ["s1"]
        assert second.skipped_cooldown == ["s1"]
        assert len(backend.calls_to("verify_attendance")) == 1

        await asyncio.sleep(0.15)
        third = await coordinator.process_auto_batch(batch_of(make_observation(0, observed)), [student])

        assert third.submitted == ["s1"]
        assert len(backend.calls_to("verify_attendance")) == 2

    async def test_failed_write_releases_cooldown(self, coordinator, backend, notices, student):
        """Should retry on the next cycle when the write failed."""
        observed = at_distance(student.descriptors[0], 0.05)
        backend.failures["verify_attendance"] = BackendError("Session is not active")

        failed = await coordinator.process_auto_batch(batch_of(make_observation(0, observed)), [student])
        del backend.failures["verify_attendance"]
        retried = await coordinator.process_auto_batch(batch_of(make_observation(0, observed)), [student])

        assert failed.failed == ["s1"]
        assert "s1" in coordinator.cooldown
        assert retried.submitted == ["s1"]
        assert any("Session is not active" in n.message for n in notices.peek())

    async def test_invalid_box_never_reaches_submitter(self, coordinator, backend, student):
        observation = make_observation(
            0, student.descriptors[0], box=BoundingBox(x=10, y=10, width=0, height=40)
        )

        outcome = await coordinator.process_auto_batch(batch_of(observation), [student])

        assert outcome.dropped == 1
        assert backend.calls_to("verify_attendance") == []

    async def test_batch_abandoned_once_not_live(self, coordinator, backend, student):
        observed = at_distance(student.descriptors[0], 0.05)

        outcome = await coordinator.process_auto_batch(
            batch_of(make_observation(0, observed)), [student], is_live=lambda: False
        )

        assert outcome.submitted == []
        assert backend.calls_to("verify_attendance") == []
        assert "s1" not in coordinator.cooldown

    async def test_several_students_in_one_frame(self, coordinator, backend):
        a = make_member("a", "A", make_descriptor(21))
        b = make_member("b", "B", make_descriptor(22))
        batch = batch_of(
            make_observation(0, at_distance(a.descriptors[0], 0.1)),
            make_observation(1, at_distance(b.descriptors[0], 0.2)),
        )

        outcome = await coordinator.process_auto_batch(batch, [a, b])

        assert sorted(outcome.submitted) == ["a", "b"]
        snapshots = {c["image_base64"] for c in backend.calls_to("verify_attendance")}
        assert len(snapshots) == 1

    async def test_empty_injected_cooldown_is_kept(self, backend, notices):
        cooldown = Cooldown(window=0.05)

        coordinator = RecognitionCoordinator(
            DistanceMatcher(threshold=0.4),
            AttendanceSubmitter(backend, SESSION_ID, notices),
            notices,
            cooldown=cooldown,
        )

        assert coordinator.cooldown is cooldown
        assert coordinator.cooldown.window == 0.05

    async def test_cancelled_write_releases_cooldown(self, coordinator, student, monkeypatch):
        """Should leave the student eligible when auto mode stops mid-write."""
        started = asyncio.Event()

        async def slow_submit(kind, payload):
            started.set()
            await asyncio.sleep(10)

        monkeypatch.setattr(coordinator.submitter, "submit", slow_submit)
        observed = at_distance(student.descriptors[0], 0.05)
        task = asyncio.create_task(
            coordinator.process_auto_batch(batch_of(make_observation(0, observed)), [student])
        )
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert "s1" not in coordinator.cooldown

    async def test_snapshot_failure_still_submits(self, coordinator, backend, student, monkeypatch):
        def broken(*args, **kwargs):
            raise ValueError("Failed to encode frame as JPEG")

        monkeypatch.setattr(recognition, "encode_snapshot", broken)
        observed = at_distance(student.descriptors[0], 0.05)

        outcome = await coordinator.process_auto_batch(batch_of(make_observation(0, observed)), [student])

        assert outcome.submitted == ["s1"]
        assert backend.calls_to("verify_attendance")[0]["image_base64"] is None


class TestCapture:
    """Test suite for manual single-shot capture."""

    async def test_no_face(self, coordinator, student):
        outcome = await coordinator.process_capture(batch_of(mode=DetectionMode.CAPTURE), [student])

        assert outcome.status == CaptureStatus.NO_FACE

    async def test_no_match(self, coordinator, backend, student):
        observed = at_distance(student.descriptors[0], 0.6)

        outcome = await coordinator.process_capture(batch_of(make_observation(0, observed)), [student])

        assert outcome.status == CaptureStatus.NO_MATCH
        assert outcome.message == "Face detected but no matching student"
        assert backend.calls_to("verify_attendance") == []

    async def test_low_confidence_names_closest(self, coordinator, backend, student):
        observed = at_distance(student.descriptors[0], 0.35)

        outcome = await coordinator.process_capture(batch_of(make_observation(0, observed)), [student])

        assert outcome.status == CaptureStatus.LOW_CONFIDENCE
        assert outcome.message == "No matching student (closest: Student One, 65.0%)"
        assert backend.calls_to("verify_attendance") == []

    async def test_submits_most_confident_match_only(self, coordinator, backend):
        a = make_member("a", "A", make_descriptor(31))
        b = make_member("b", "B", make_descriptor(32))
        batch = batch_of(
            make_observation(0, at_distance(a.descriptors[0], 0.25)),
            make_observation(1, at_distance(b.descriptors[0], 0.05)),
        )

        outcome = await coordinator.process_capture(batch, [a, b])

        assert outcome.status == CaptureStatus.SUBMITTED
        assert outcome.match.student_id == "b"
        assert [c["student_id"] for c in backend.calls_to("verify_attendance")] == ["b"]

    async def test_capture_ignores_cooldown(self, coordinator, backend, student):
        observed = at_distance(student.descriptors[0], 0.05)
        coordinator.cooldown.try_acquire("s1")

        outcome = await coordinator.process_capture(batch_of(make_observation(0, observed)), [student])

        assert outcome.status == CaptureStatus.SUBMITTED
        assert len(backend.calls_to("verify_attendance")) == 1

    async def test_failed_write(self, coordinator, backend, student):
        backend.failures["verify_attendance"] = BackendError("Server unavailable")
        observed = at_distance(student.descriptors[0], 0.05)

        outcome = await coordinator.process_capture(batch_of(make_observation(0, observed)), [student])

        assert outcome.status == CaptureStatus.FAILED
        assert "Server unavailable" in outcome.message

    async def test_capture_after_station_stopped_is_discarded(self, coordinator, backend, student):
        """Should write nothing once the station or session is no longer live."""
        observed = at_distance(student.descriptors[0], 0.05)

        outcome = await coordinator.process_capture(
            batch_of(make_observation(0, observed)), [student], is_live=lambda: False
        )

        assert outcome.status == CaptureStatus.REJECTED
        assert backend.calls_to("verify_attendance") == []

    async def test_liveness_checked_again_before_write(self, coordinator, backend, student):
        checks = iter([True, False])
        observed = at_distance(student.descriptors[0], 0.05)

        outcome = await coordinator.process_capture(
            batch_of(make_observation(0, observed)), [student], is_live=lambda: next(checks)
        )

        assert outcome.status == CaptureStatus.REJECTED
        assert backend.calls_to("verify_attendance") == []
