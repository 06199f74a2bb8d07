"""Attendance writes and the session's cached attendance log."""
import asyncio
from typing import Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel

from attendance_station.core.config import settings
from attendance_station.core.exceptions import AttendanceError
from attendance_station.core.logging import get_logger
from attendance_station.domain.entities.attendance import (
    AttendanceLogEntry,
    AttendanceSession,
    AttendanceStatus,
)
from attendance_station.domain.interfaces.backend import AttendanceBackend
from attendance_station.domain.value_objects.attendance import (
    AbsenceApprovalPayload,
    AutoMatchPayload,
    ManualEntryPayload,
    SubmissionKind,
    SubmissionResult,
)
from attendance_station.services.notifications import NotificationFeed
from attendance_station.services.scheduling import RefreshDebouncer

logger = get_logger(__name__)

Payload = Union[AutoMatchPayload, ManualEntryPayload, AbsenceApprovalPayload]

PAYLOAD_TYPES: Dict[SubmissionKind, Type[BaseModel]] = {
    SubmissionKind.AUTO_MATCH: AutoMatchPayload,
    SubmissionKind.MANUAL_ENTRY: ManualEntryPayload,
    SubmissionKind.ABSENCE_APPROVAL: AbsenceApprovalPayload,
}

EXCUSED_NOTE = "Excused absence (leave request approved)"


class AttendanceSubmitter:
    """Persists attendance records and keeps the local copy of the session log.

    The local log only changes after the backend confirms a write or a
    refresh succeeds. Refreshes after a write go through a debouncer so that
    a burst of recognitions produces one refresh per cooldown.

    Example:
        ```python
        submitter = AttendanceSubmitter(backend, session_id, notices)
        result = await submitter.submit(
            SubmissionKind.MANUAL_ENTRY,
            ManualEntryPayload(session_id=session_id, student_id=student_id, note="Late bus"),
        )
        ```
    """

    def __init__(
        self,
        backend: AttendanceBackend,
        session_id: str,
        notices: NotificationFeed,
        refresh_cooldown: Optional[float] = None,
    ) -> None:
        """Initialize the submitter.

        Args:
            backend: Attendance backend client
            session_id: Session the records belong to
            notices: Feed receiving refresh failures
            refresh_cooldown: Minimum seconds between refreshes, defaults to settings
        """
        self.backend = backend
        self.session_id = session_id
        self.notices = notices
        self.logs: List[AttendanceLogEntry] = []
        self.session: Optional[AttendanceSession] = None
        self._session_listeners: List[Callable[[AttendanceSession], None]] = []
        self._closed = False
        self._debouncer = RefreshDebouncer(
            settings.REFRESH_COOLDOWN if refresh_cooldown is None else refresh_cooldown,
            self._refresh_action,
        )

    def seed(self, logs: List[AttendanceLogEntry], session: Optional[AttendanceSession] = None) -> None:
        """Install the initially loaded log and session."""
        self.logs = list(logs)
        if session is not None:
            self.session = session

    def on_session_refreshed(self, listener: Callable[[AttendanceSession], None]) -> None:
        self._session_listeners.append(listener)

    def find_log(self, student_id: str) -> Optional[AttendanceLogEntry]:
        for entry in self.logs:
            if entry.student_id == student_id:
                return entry
        return None

    def is_present(self, student_id: str) -> bool:
        entry = self.find_log(student_id)
        return entry is not None and entry.status == AttendanceStatus.PRESENT

    async def submit(self, kind: SubmissionKind, payload: Payload) -> SubmissionResult:
        """
        Persist one attendance record.

        Backend failures are returned, not raised, and leave the local log
        untouched.

        Args:
            kind: Which write path to use
            payload: Payload model matching ``kind``

        Returns:
            SubmissionResult with the confirmed entry on success
        """
        expected = PAYLOAD_TYPES[kind]
        if not isinstance(payload, expected):
            raise TypeError(f"{kind.value} expects {expected.__name__}, got {type(payload).__name__}")

        try:
            entry = await self._write(kind, payload)
        except AttendanceError as e:
            logger.error(
                "Attendance write failed",
                kind=kind.value,
                student_id=payload.student_id,
                error=e.message
            )
            return SubmissionResult(success=False, message=e.message)

        if self._closed:
            logger.info("Discarding write confirmation after teardown", student_id=payload.student_id)
            return SubmissionResult(success=True, entry=entry)

        self._upsert(entry)
        logger.info("Attendance recorded", kind=kind.value, student_id=entry.student_id, status=entry.status.value)
        await self.request_refresh()
        return SubmissionResult(success=True, entry=entry)

    async def refresh(self) -> bool:
        """Reload the attendance log and session info.

        Returns:
            True when both were reloaded
        """
        try:
            logs, session = await asyncio.gather(
                self.backend.get_attendance_logs(self.session_id),
                self.backend.get_session(self.session_id),
            )
        except AttendanceError as e:
            logger.error("Attendance refresh failed", session_id=self.session_id, error=e.message)
            self.notices.error(f"Could not refresh attendance data: {e.message}")
            return False

        if self._closed:
            return False

        self.logs = list(logs)
        self.session = session
        for listener in self._session_listeners:
            listener(session)
        return True

    async def request_refresh(self) -> bool:
        """Refresh now, or once the refresh cooldown has elapsed.

        Returns:
            True if the refresh ran immediately
        """
        return await self._debouncer.request()

    def close(self) -> None:
        """Stop refreshing and ignore late responses."""
        self._closed = True
        self._debouncer.cancel()

    async def _refresh_action(self) -> None:
        await self.refresh()

    async def _write(self, kind: SubmissionKind, payload: Payload) -> AttendanceLogEntry:
        if kind == SubmissionKind.AUTO_MATCH:
            return await self.backend.verify_attendance(
                session_id=payload.session_id,
                student_id=payload.student_id,
                face_descriptor=payload.descriptor,
                confidence=payload.confidence,
                image_base64=payload.image_base64,
            )
        if kind == SubmissionKind.MANUAL_ENTRY:
            return await self.backend.create_attendance_log(
                session_id=payload.session_id,
                student_id=payload.student_id,
                status=payload.status,
                note=payload.note,
            )
        return await self.backend.create_attendance_log(
            session_id=payload.session_id,
            student_id=payload.student_id,
            status=AttendanceStatus.PRESENT,
            note=payload.note or EXCUSED_NOTE,
            absence_request_id=payload.absence_request_id,
        )

    def _upsert(self, entry: AttendanceLogEntry) -> None:
        for i, existing in enumerate(self.logs):
            if existing.student_id == entry.student_id:
                if entry.student.full_name is None and existing.student.full_name:
                    entry = entry.model_copy(update={"student": existing.student})
                self.logs[i] = entry
                return
        self.logs.append(entry)
