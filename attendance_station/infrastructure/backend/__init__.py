"""Attendance REST backend adapter."""
from .client import HttpAttendanceBackend

__all__ = ["HttpAttendanceBackend"]
