"""Value objects package."""
from .attendance import (
    AbsenceAction,
    AbsenceApprovalPayload,
    AbsentEntry,
    AutoMatchPayload,
    ManualEntryPayload,
    ReviewResult,
    SubmissionKind,
    SubmissionResult,
)
from .recognition import (
    CaptureOutcome,
    CaptureStatus,
    DetectionBatch,
    DetectionMode,
    MatchResult,
    NearestMatch,
    RecognitionOutcome,
    confidence_from_distance,
)
from .station import AbsentSummary, ActionResult, StationState, StudentSummary

__all__ = [
    "AbsenceAction",
    "AbsenceApprovalPayload",
    "AbsentEntry",
    "AbsentSummary",
    "ActionResult",
    "AutoMatchPayload",
    "CaptureOutcome",
    "CaptureStatus",
    "DetectionBatch",
    "DetectionMode",
    "ManualEntryPayload",
    "MatchResult",
    "NearestMatch",
    "RecognitionOutcome",
    "ReviewResult",
    "StationState",
    "StudentSummary",
    "SubmissionKind",
    "SubmissionResult",
    "confidence_from_distance",
]
