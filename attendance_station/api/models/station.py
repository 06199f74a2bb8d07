"""API specific station models."""
from typing import List, Optional

from pydantic import BaseModel, Field

from attendance_station.domain.entities.attendance import AttendanceStatus
from attendance_station.services.notifications import Notice


class OpenStationRequest(BaseModel):
    """Request body for opening a station."""
    class_id: str = Field(..., min_length=1, description="Teaching class identifier")
    session_id: str = Field(..., min_length=1, description="Attendance session identifier")
    camera_source: Optional[str] = Field(
        None, description="Device index or stream URL, defaults to CAMERA_SOURCE"
    )


class LandmarksRequest(BaseModel):
    enabled: bool = Field(..., description="Draw landmarks and run the landmark loop when idle")


class ManualEntryRequest(BaseModel):
    """Request body for recording a student by hand."""
    student_id: str = Field(..., min_length=1)
    note: str = Field("", max_length=500)
    status: AttendanceStatus = Field(AttendanceStatus.PRESENT)


class ReviewRequest(BaseModel):
    reviewer_notes: Optional[str] = Field(None, max_length=500)


class NoticesResponse(BaseModel):
    notices: List[Notice] = Field(default_factory=list)
