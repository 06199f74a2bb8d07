"""Custom exceptions for the attendance station."""
from typing import Optional


class AttendanceError(Exception):
    """Base exception for attendance station operations."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize attendance error.

        Args:
            message: Short, human-readable error description
            details: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class PreconditionError(AttendanceError):
    """Raised when an action is attempted before its preconditions hold."""
    pass


class CameraNotReadyError(PreconditionError):
    """Raised when the camera stream is not open or has no frames yet."""
    pass


class ModelNotReadyError(PreconditionError):
    """Raised when the face detector models are not loaded."""
    pass


class EmptyRosterError(PreconditionError):
    """Raised when auto recognition is requested without any enrolled student."""
    pass


class SessionCompletedError(PreconditionError):
    """Raised when detection or capture is requested on a completed session."""
    pass


class StationNotOpenError(PreconditionError):
    """Raised when a station action is requested while no station is open."""
    pass


class ActionInProgressError(AttendanceError):
    """Raised when a mutating action is started while an identical one is in flight."""
    pass


class CameraError(AttendanceError):
    """Raised when the camera cannot be opened or read."""
    pass


class DetectionError(AttendanceError):
    """Raised when the external face detector fails on a frame."""
    pass


class ModelLoadError(AttendanceError):
    """Raised when the face detector models fail to load."""
    pass


class BackendError(AttendanceError):
    """Raised when the attendance backend rejects a call or cannot be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None
    ):
        super().__init__(message, details)
        self.status_code = status_code


class ResponseDecodeError(BackendError):
    """Raised when a backend response does not match the endpoint's schema."""
    pass


class ServiceNotInitializedError(AttendanceError):
    """Raised when a service is requested before the container is initialized."""
    pass
