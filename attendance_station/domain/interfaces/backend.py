"""Attendance backend interface."""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ..entities.attendance import (
    AbsenceRequest,
    AbsenceRequestStatus,
    AttendanceLogEntry,
    AttendanceSession,
    AttendanceStatus,
    SessionStatus,
    StudentRef,
)
from ..entities.face import RosterMember


class AttendanceBackend(ABC):
    """Interface to the attendance REST backend.

    Every method either returns decoded domain objects or raises
    ``BackendError`` (``ResponseDecodeError`` for schema mismatches).
    """

    @abstractmethod
    async def get_class_students(self, class_id: str) -> List[StudentRef]:
        """Full student list of a teaching class."""
        pass

    @abstractmethod
    async def get_class_face_features(self, class_id: str) -> List[RosterMember]:
        """Students of a class that have enrolled face descriptors."""
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> AttendanceSession:
        pass

    @abstractmethod
    async def update_session_status(
        self,
        session_id: str,
        status: SessionStatus,
        students_absent: Optional[Sequence[str]] = None,
    ) -> None:
        pass

    @abstractmethod
    async def get_attendance_logs(self, session_id: str) -> List[AttendanceLogEntry]:
        pass

    @abstractmethod
    async def create_attendance_log(
        self,
        session_id: str,
        student_id: str,
        status: AttendanceStatus,
        note: Optional[str] = None,
        absence_request_id: Optional[str] = None,
    ) -> AttendanceLogEntry:
        """Manual or absence-approval attendance write."""
        pass

    @abstractmethod
    async def verify_attendance(
        self,
        session_id: str,
        student_id: str,
        face_descriptor: Sequence[float],
        confidence: float,
        image_base64: Optional[str] = None,
    ) -> AttendanceLogEntry:
        """Recognition-based attendance write."""
        pass

    @abstractmethod
    async def get_session_absence_requests(self, session_id: str) -> List[AbsenceRequest]:
        pass

    @abstractmethod
    async def update_absence_request_status(
        self,
        request_id: str,
        status: AbsenceRequestStatus,
        reviewer_notes: Optional[str] = None,
    ) -> AbsenceRequest:
        pass
