"""Attendance station services."""
from .absence import AbsenceReconciliationService, derive_absent_list
from .detection_loop import DetectionLoop
from .matching import DistanceMatcher, find_best_match
from .model_registry import ModelRegistry, ModelState
from .notifications import NotificationFeed
from .recognition import RecognitionCoordinator
from .session import SessionLifecycleController
from .station import AttendanceStation
from .submission import AttendanceSubmitter

__all__ = [
    "AbsenceReconciliationService",
    "AttendanceStation",
    "AttendanceSubmitter",
    "DetectionLoop",
    "DistanceMatcher",
    "ModelRegistry",
    "ModelState",
    "NotificationFeed",
    "RecognitionCoordinator",
    "SessionLifecycleController",
    "derive_absent_list",
    "find_best_match",
]
