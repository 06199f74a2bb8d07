"""Attendance domain entities mirrored from the backend."""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SessionStatus(str, Enum):
    """Lifecycle of an attendance session. Transitions only move forward."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _SESSION_RANK[self]

    def can_transition_to(self, target: "SessionStatus") -> bool:
        return target.rank > self.rank


_SESSION_RANK = {
    SessionStatus.PENDING: 0,
    SessionStatus.ACTIVE: 1,
    SessionStatus.COMPLETED: 2,
}


class AttendanceStatus(str, Enum):
    """Status of one student's attendance log."""
    PRESENT = "present"
    LATE = "late_present"
    ABSENT = "absent"

    @classmethod
    def _missing_(cls, value: object) -> Optional["AttendanceStatus"]:
        # Older clients write plain "late"
        if value == "late":
            return cls.LATE
        return None


class AbsenceRequestStatus(str, Enum):
    """Review state of a student's leave request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class _BackendModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class StudentRef(_BackendModel):
    """A student reference, either populated or a bare id."""
    id: str = Field(..., alias="_id")
    full_name: Optional[str] = None


class RoomRef(_BackendModel):
    """A room reference, either populated or a bare id."""
    id: str = Field(..., alias="_id")
    room_number: Optional[str] = None


def as_ref(value: Any) -> Any:
    if isinstance(value, str):
        return {"_id": value}
    return value


class AttendanceSession(_BackendModel):
    """One scheduled class meeting for which attendance is taken."""
    id: str = Field(..., alias="_id")
    status: SessionStatus = SessionStatus.PENDING
    teaching_class_id: Optional[str] = None
    session_number: Optional[int] = None
    date: Optional[datetime] = None
    start_period: Optional[int] = None
    end_period: Optional[int] = None
    room: Optional[RoomRef] = None
    notes: Optional[str] = None

    @field_validator("room", mode="before")
    @classmethod
    def validate_room(cls, v: Any) -> Any:
        return as_ref(v)

    @field_validator("teaching_class_id", mode="before")
    @classmethod
    def validate_class_id(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return v.get("_id")
        return v

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED


class AttendanceLogEntry(_BackendModel):
    """Server-side attendance record of one student in one session."""
    id: str = Field(..., alias="_id")
    student: StudentRef = Field(..., alias="student_id")
    status: AttendanceStatus = AttendanceStatus.ABSENT
    timestamp: Optional[datetime] = None
    absence_request_id: Optional[str] = None
    recognized: bool = False
    recognized_confidence: Optional[float] = None
    note: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="captured_face_image_local_url")

    @field_validator("student", mode="before")
    @classmethod
    def validate_student(cls, v: Any) -> Any:
        return as_ref(v)

    @field_validator("absence_request_id", mode="before")
    @classmethod
    def validate_absence_request(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return v.get("_id")
        return v

    @property
    def student_id(self) -> str:
        return self.student.id

    @property
    def counts_as_attending(self) -> bool:
        """Present or late students are not absent."""
        return self.status in (AttendanceStatus.PRESENT, AttendanceStatus.LATE)

    @property
    def is_excused(self) -> bool:
        return self.status == AttendanceStatus.PRESENT and self.absence_request_id is not None


class AbsenceRequest(_BackendModel):
    """A student's leave request for a session."""
    id: str = Field(..., alias="_id")
    student: StudentRef = Field(..., alias="student_id")
    session_id: Optional[str] = None
    status: AbsenceRequestStatus = AbsenceRequestStatus.PENDING
    reason: str = ""
    evidence_url: Optional[str] = None
    reviewer_notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("student", mode="before")
    @classmethod
    def validate_student(cls, v: Any) -> Any:
        return as_ref(v)

    @field_validator("session_id", mode="before")
    @classmethod
    def validate_session(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return v.get("_id")
        return v

    @property
    def student_id(self) -> str:
        return self.student.id
