"""Service interfaces package."""
from .backend import AttendanceBackend
from .camera import Camera
from .detector import FaceDetector

__all__ = ["AttendanceBackend", "Camera", "FaceDetector"]
