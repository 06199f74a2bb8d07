"""Attendance session lifecycle: pending -> active -> completed."""
from typing import Callable, List, Optional, Sequence, Tuple

from attendance_station.core.exceptions import SessionCompletedError
from attendance_station.core.logging import get_logger
from attendance_station.domain.entities.attendance import AttendanceSession, SessionStatus
from attendance_station.domain.interfaces.backend import AttendanceBackend

logger = get_logger(__name__)


class SessionLifecycleController:
    """Tracks the session status and gates detection on it.

    Status only moves forward. Completing runs the teardown callbacks (loops,
    camera, overlay) before the status change is persisted; the local status
    flips to completed once the backend confirms.
    """

    def __init__(self, backend: AttendanceBackend, session: AttendanceSession) -> None:
        self.backend = backend
        self.session = session
        self._teardown: List[Tuple[str, Callable[[], None]]] = []

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def is_completed(self) -> bool:
        return self.session.status == SessionStatus.COMPLETED

    def ensure_can_detect(self) -> None:
        """
        Raises:
            SessionCompletedError: If the session is completed
        """
        if self.is_completed:
            raise SessionCompletedError("Session is completed, attendance can no longer be taken")

    def add_teardown(self, name: str, callback: Callable[[], None]) -> None:
        """Register an idempotent cleanup step run on completion and on close."""
        self._teardown.append((name, callback))

    def teardown(self) -> None:
        """Run every cleanup step. A failing step does not stop the others."""
        for name, callback in self._teardown:
            try:
                callback()
            except Exception as e:
                logger.error("Teardown step failed", step=name, error=str(e), exc_info=True)
        logger.info("Session resources released", session_id=self.session.id)

    async def activate(self) -> bool:
        """Move a pending session to active.

        Returns:
            True if the status changed

        Raises:
            BackendError: If the status update fails
        """
        if self.session.status != SessionStatus.PENDING:
            return False
        await self.backend.update_session_status(self.session.id, SessionStatus.ACTIVE)
        self._apply(SessionStatus.ACTIVE)
        return True

    async def complete(self, students_absent: Optional[Sequence[str]] = None) -> bool:
        """End the session.

        Args:
            students_absent: Ids of the students still absent

        Returns:
            True if the session was completed by this call

        Raises:
            BackendError: If the status update fails; teardown has still run
        """
        if self.is_completed:
            return False
        self.teardown()
        await self.backend.update_session_status(
            self.session.id,
            SessionStatus.COMPLETED,
            students_absent=list(students_absent or []),
        )
        self._apply(SessionStatus.COMPLETED)
        return True

    def sync(self, session: AttendanceSession) -> None:
        """Take refreshed session info without moving the status backwards."""
        if session.status.rank < self.session.status.rank:
            logger.warning(
                "Ignoring backward session status",
                current=self.session.status.value,
                received=session.status.value
            )
            session = session.model_copy(update={"status": self.session.status})
        self.session = session

    def _apply(self, status: SessionStatus) -> None:
        if self.session.status.can_transition_to(status):
            logger.info(
                "Session status changed",
                session_id=self.session.id,
                previous=self.session.status.value,
                status=status.value
            )
            self.session = self.session.model_copy(update={"status": status})
