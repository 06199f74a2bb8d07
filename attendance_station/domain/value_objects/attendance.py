"""Attendance submission and reconciliation value objects."""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from attendance_station.domain.entities.attendance import (
    AbsenceRequest,
    AbsenceRequestStatus,
    AttendanceLogEntry,
    AttendanceStatus,
)
from attendance_station.domain.entities.face import RosterMember


class SubmissionKind(str, Enum):
    """Paths through which an attendance record is written."""
    AUTO_MATCH = "auto-match"
    MANUAL_ENTRY = "manual-entry"
    ABSENCE_APPROVAL = "absence-approval"


class SubmissionResult(BaseModel):
    """Outcome of one attendance write."""
    success: bool
    message: Optional[str] = None
    entry: Optional[AttendanceLogEntry] = None


class AbsenceAction(str, Enum):
    """Actions offered for a student who is still absent."""
    MANUAL_ENTRY = "manual_entry"
    APPROVE = "approve"
    REJECT = "reject"


class AbsentEntry(BaseModel):
    """A roster member without a present or late record, plus their leave request."""
    member: RosterMember
    request: Optional[AbsenceRequest] = None
    actions: List[AbsenceAction] = Field(default_factory=list)

    @property
    def request_status(self) -> Optional[AbsenceRequestStatus]:
        return self.request.status if self.request else None


class ReviewResult(BaseModel):
    """Outcome of approving or rejecting a leave request."""
    success: bool
    message: str
    request: Optional[AbsenceRequest] = None
    attendance_recorded: bool = False


class AutoMatchPayload(BaseModel):
    """Recognition-based present record."""
    session_id: str
    student_id: str
    descriptor: List[float] = Field(..., description="Observed descriptor that produced the match")
    confidence: float = Field(..., ge=0.0, le=1.0)
    image_base64: Optional[str] = None


class ManualEntryPayload(BaseModel):
    """Teacher-entered record, no descriptor or image."""
    session_id: str
    student_id: str
    status: AttendanceStatus = AttendanceStatus.PRESENT
    note: str = ""


class AbsenceApprovalPayload(BaseModel):
    """Excused present record linked to an approved leave request."""
    session_id: str
    student_id: str
    absence_request_id: str
    note: str = ""
