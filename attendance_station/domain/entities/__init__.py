"""Domain entities package."""
from .attendance import (
    AbsenceRequest,
    AbsenceRequestStatus,
    AttendanceLogEntry,
    AttendanceSession,
    AttendanceStatus,
    RoomRef,
    SessionStatus,
    StudentRef,
)
from .face import (
    DESCRIPTOR_LENGTH,
    BoundingBox,
    DetectionObservation,
    RosterMember,
    extract_descriptors,
    is_valid_descriptor,
)

__all__ = [
    "DESCRIPTOR_LENGTH",
    "AbsenceRequest",
    "AbsenceRequestStatus",
    "AttendanceLogEntry",
    "AttendanceSession",
    "AttendanceStatus",
    "BoundingBox",
    "DetectionObservation",
    "RoomRef",
    "RosterMember",
    "SessionStatus",
    "StudentRef",
    "extract_descriptors",
    "is_valid_descriptor",
]
