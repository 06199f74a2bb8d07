"""Snapshot of a station, as shown to the operator."""
from typing import List, Optional

from pydantic import BaseModel, Field

from attendance_station.domain.entities.attendance import (
    AbsenceRequest,
    AttendanceLogEntry,
    AttendanceSession,
)
from attendance_station.domain.entities.face import RosterMember
from attendance_station.domain.value_objects.attendance import AbsenceAction, AbsentEntry
from attendance_station.domain.value_objects.recognition import DetectionMode, MatchResult


class StudentSummary(BaseModel):
    """Roster member without descriptor data."""
    id: str
    full_name: str = ""
    student_code: Optional[str] = None
    avatar_url: Optional[str] = None
    has_face_data: bool = False

    @classmethod
    def from_member(cls, member: RosterMember) -> "StudentSummary":
        return cls(
            id=member.id,
            full_name=member.full_name,
            student_code=member.student_code,
            avatar_url=member.avatar_url,
            has_face_data=member.has_face_data,
        )


class AbsentSummary(BaseModel):
    student: StudentSummary
    request: Optional[AbsenceRequest] = None
    actions: List[AbsenceAction] = Field(default_factory=list)
    in_flight: bool = Field(False, description="A review of the request is being written")

    @classmethod
    def from_entry(cls, entry: AbsentEntry, in_flight: bool = False) -> "AbsentSummary":
        return cls(
            student=StudentSummary.from_member(entry.member),
            request=entry.request,
            actions=entry.actions,
            in_flight=in_flight,
        )


class StationState(BaseModel):
    """Everything the attendance screen displays."""
    class_id: str
    session_id: str
    session: Optional[AttendanceSession] = None
    session_completed: bool = False
    camera_ready: bool = False
    model_state: str = Field(..., description="unloaded, loading, loaded or failed")
    fatal_error: Optional[str] = Field(None, description="Blocking error, cleared by a retry")
    active_mode: Optional[DetectionMode] = None
    auto_mode: bool = False
    show_landmarks: bool = True
    detected_faces: int = 0
    recognized: List[MatchResult] = Field(default_factory=list)
    roster: List[StudentSummary] = Field(default_factory=list)
    logs: List[AttendanceLogEntry] = Field(default_factory=list)
    absent: List[AbsentSummary] = Field(default_factory=list)
    attending_count: int = 0
    total_students: int = 0
    busy: List[str] = Field(default_factory=list, description="Actions currently in progress")


class ActionResult(BaseModel):
    """Outcome of a station action that has no richer result."""
    success: bool
    message: Optional[str] = None
