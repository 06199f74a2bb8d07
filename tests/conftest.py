"""Shared fakes and fixtures."""
import asyncio
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pytest

from attendance_station.core.exceptions import AttendanceError, CameraError, CameraNotReadyError
from attendance_station.domain.entities.attendance import (
    AbsenceRequest,
    AbsenceRequestStatus,
    AttendanceLogEntry,
    AttendanceSession,
    AttendanceStatus,
    SessionStatus,
    StudentRef,
)
from attendance_station.domain.entities.face import (
    DESCRIPTOR_LENGTH,
    BoundingBox,
    DetectionObservation,
    RosterMember,
)
from attendance_station.domain.interfaces.backend import AttendanceBackend
from attendance_station.domain.interfaces.camera import Camera
from attendance_station.domain.interfaces.detector import FaceDetector
from attendance_station.services.model_registry import ModelRegistry
from attendance_station.services.notifications import NotificationFeed

CLASS_ID = "class-1"
SESSION_ID = "session-1"


def make_descriptor(seed: int) -> np.ndarray:
    """Deterministic descriptor with unit norm."""
    rng = np.random.default_rng(seed)
    vector = rng.normal(size=DESCRIPTOR_LENGTH)
    return vector / np.linalg.norm(vector)


def at_distance(base: np.ndarray, distance: float, seed: int = 99) -> np.ndarray:
    """A descriptor exactly ``distance`` away from ``base``."""
    rng = np.random.default_rng(seed)
    direction = rng.normal(size=DESCRIPTOR_LENGTH)
    direction /= np.linalg.norm(direction)
    return base + direction * distance


def make_member(student_id: str, name: str, *descriptors: np.ndarray) -> RosterMember:
    return RosterMember(id=student_id, full_name=name, descriptors=list(descriptors))


def make_observation(
    index: int,
    descriptor: Optional[np.ndarray] = None,
    box: Optional[BoundingBox] = None,
) -> DetectionObservation:
    return DetectionObservation(
        index=index,
        box=box or BoundingBox(x=40 + index * 80, y=40, width=60, height=60),
        landmarks={"nose_tip": [(70.0, 70.0)]},
        descriptor=descriptor,
    )


def make_session(status: SessionStatus = SessionStatus.ACTIVE) -> AttendanceSession:
    return AttendanceSession(id=SESSION_ID, status=status, teaching_class_id=CLASS_ID)


def make_log(
    student_id: str,
    status: AttendanceStatus = AttendanceStatus.PRESENT,
    absence_request_id: Optional[str] = None,
) -> AttendanceLogEntry:
    return AttendanceLogEntry(
        id=f"log-{student_id}",
        student=StudentRef(id=student_id),
        status=status,
        absence_request_id=absence_request_id,
    )


def make_request(
    request_id: str,
    student_id: str,
    status: AbsenceRequestStatus = AbsenceRequestStatus.PENDING,
    created_at: Optional[str] = None,
) -> AbsenceRequest:
    return AbsenceRequest.model_validate({
        "_id": request_id,
        "student_id": {"_id": student_id, "full_name": f"Student {student_id}"},
        "session_id": SESSION_ID,
        "status": status.value,
        "reason": "Sick",
        "created_at": created_at,
    })


class FakeBackend(AttendanceBackend):
    """In-memory backend recording every call.

    ``failures`` maps a method name to the error it raises.
    """

    def __init__(self) -> None:
        self.students: List[StudentRef] = []
        self.face_features: List[RosterMember] = []
        self.session = make_session()
        self.logs: List[AttendanceLogEntry] = []
        self.requests: List[AbsenceRequest] = []
        self.failures: Dict[str, AttendanceError] = {}
        self.calls: List[Tuple[str, dict]] = []

    def calls_to(self, name: str) -> List[dict]:
        return [kwargs for called, kwargs in self.calls if called == name]

    def _record(self, name: str, **kwargs) -> None:
        self.calls.append((name, kwargs))
        if name in self.failures:
            raise self.failures[name]

    async def get_class_students(self, class_id: str) -> List[StudentRef]:
        self._record("get_class_students", class_id=class_id)
        return list(self.students)

    async def get_class_face_features(self, class_id: str) -> List[RosterMember]:
        self._record("get_class_face_features", class_id=class_id)
        return list(self.face_features)

    async def get_session(self, session_id: str) -> AttendanceSession:
        self._record("get_session", session_id=session_id)
        return self.session

    async def update_session_status(
        self,
        session_id: str,
        status: SessionStatus,
        students_absent: Optional[Sequence[str]] = None,
    ) -> None:
        self._record(
            "update_session_status",
            session_id=session_id,
            status=status,
            students_absent=students_absent,
        )
        self.session = self.session.model_copy(update={"status": status})

    async def get_attendance_logs(self, session_id: str) -> List[AttendanceLogEntry]:
        self._record("get_attendance_logs", session_id=session_id)
        return list(self.logs)

    async def create_attendance_log(
        self,
        session_id: str,
        student_id: str,
        status: AttendanceStatus,
        note: Optional[str] = None,
        absence_request_id: Optional[str] = None,
    ) -> AttendanceLogEntry:
        self._record(
            "create_attendance_log",
            session_id=session_id,
            student_id=student_id,
            status=status,
            note=note,
            absence_request_id=absence_request_id,
        )
        entry = make_log(student_id, status, absence_request_id)
        self._store(entry)
        return entry

    async def verify_attendance(
        self,
        session_id: str,
        student_id: str,
        face_descriptor: Sequence[float],
        confidence: float,
        image_base64: Optional[str] = None,
    ) -> AttendanceLogEntry:
        self._record(
            "verify_attendance",
            session_id=session_id,
            student_id=student_id,
            face_descriptor=list(face_descriptor),
            confidence=confidence,
            image_base64=image_base64,
        )
        entry = make_log(student_id).model_copy(
            update={"recognized": True, "recognized_confidence": confidence}
        )
        self._store(entry)
        return entry

    async def get_session_absence_requests(self, session_id: str) -> List[AbsenceRequest]:
        self._record("get_session_absence_requests", session_id=session_id)
        return list(self.requests)

    async def update_absence_request_status(
        self,
        request_id: str,
        status: AbsenceRequestStatus,
        reviewer_notes: Optional[str] = None,
    ) -> AbsenceRequest:
        self._record(
            "update_absence_request_status",
            request_id=request_id,
            status=status,
            reviewer_notes=reviewer_notes,
        )
        for i, request in enumerate(self.requests):
            if request.id == request_id:
                self.requests[i] = request.model_copy(
                    update={"status": status, "reviewer_notes": reviewer_notes}
                )
                return self.requests[i]
        raise AttendanceError("Absence request not found")

    def _store(self, entry: AttendanceLogEntry) -> None:
        self.logs = [log for log in self.logs if log.student_id != entry.student_id] + [entry]


Script = Union[List[List[DetectionObservation]], Callable[[int], List[DetectionObservation]]]


class FakeDetector(FaceDetector):
    """Returns scripted observations, one list per call; the last one repeats."""

    def __init__(self, script: Optional[Script] = None) -> None:
        self.script: Script = script if script is not None else [[]]
        self.detect_calls: List[bool] = []
        self.load_calls = 0
        self.load_error: Optional[Exception] = None
        self.detect_error: Optional[Exception] = None
        self.delay = 0.0

    async def load(self) -> None:
        self.load_calls += 1
        if self.load_error is not None:
            raise self.load_error

    async def detect(
        self,
        frame: np.ndarray,
        with_descriptors: bool = True,
    ) -> List[DetectionObservation]:
        call = len(self.detect_calls)
        self.detect_calls.append(with_descriptors)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.detect_error is not None:
            raise self.detect_error
        if callable(self.script):
            return self.script(call)
        return list(self.script[min(call, len(self.script) - 1)])


class FakeCamera(Camera):
    """Synthetic camera producing black frames."""

    def __init__(self, open_error: Optional[CameraError] = None) -> None:
        self.open_error = open_error
        self.open_calls = 0
        self.stop_calls = 0
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self._ready = True

    async def read_frame(self) -> np.ndarray:
        if not self._ready:
            raise CameraNotReadyError("Camera is not ready")
        return np.zeros((240, 320, 3), dtype=np.uint8)

    def stop(self) -> None:
        self.stop_calls += 1
        self._ready = False


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def detector() -> FakeDetector:
    return FakeDetector()


@pytest.fixture
def camera() -> FakeCamera:
    return FakeCamera()


@pytest.fixture
def models(detector: FakeDetector) -> ModelRegistry:
    return ModelRegistry(detector.load)


@pytest.fixture
def notices() -> NotificationFeed:
    return NotificationFeed()
