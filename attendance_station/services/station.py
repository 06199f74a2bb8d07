"""The attendance station: one teacher's live attendance screen for one session."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Sequence, Set

from attendance_station.core.config import settings
from attendance_station.core.exceptions import (
    ActionInProgressError,
    AttendanceError,
    CameraError,
    ModelLoadError,
    PreconditionError,
    StationNotOpenError,
)
from attendance_station.core.logging import get_logger
from attendance_station.domain.entities.attendance import (
    AttendanceSession,
    AttendanceStatus,
    StudentRef,
)
from attendance_station.domain.entities.face import RosterMember
from attendance_station.domain.interfaces.backend import AttendanceBackend
from attendance_station.domain.interfaces.camera import Camera
from attendance_station.domain.interfaces.detector import FaceDetector
from attendance_station.domain.value_objects.attendance import (
    AbsentEntry,
    ManualEntryPayload,
    ReviewResult,
    SubmissionKind,
    SubmissionResult,
)
from attendance_station.domain.value_objects.recognition import (
    CaptureOutcome,
    CaptureStatus,
    DetectionBatch,
    DetectionMode,
    MatchResult,
)
from attendance_station.domain.value_objects.station import (
    AbsentSummary,
    ActionResult,
    StationState,
    StudentSummary,
)
from attendance_station.services.absence import AbsenceReconciliationService
from attendance_station.services.detection_loop import DetectionLoop
from attendance_station.services.matching import DistanceMatcher
from attendance_station.services.model_registry import ModelRegistry
from attendance_station.services.notifications import NotificationFeed
from attendance_station.services.overlay import OverlayRenderer
from attendance_station.services.recognition import RecognitionCoordinator
from attendance_station.services.scheduling import Cooldown
from attendance_station.services.session import SessionLifecycleController
from attendance_station.services.submission import AttendanceSubmitter

logger = get_logger(__name__)


def merge_roster(
    students: Sequence[StudentRef],
    enrolled: Sequence[RosterMember],
) -> List[RosterMember]:
    """Combine the class list with the enrolled face data.

    Students without face data stay on the roster with no descriptors so
    that they still show up as absent. Enrolled students missing from the
    class list are appended.

    Args:
        students: Students of the class, in display order
        enrolled: Students that have face descriptors

    Returns:
        One RosterMember per student
    """
    by_id: Dict[str, RosterMember] = {member.id: member for member in enrolled}
    roster: List[RosterMember] = []
    seen: Set[str] = set()

    for student in students:
        if student.id in seen:
            continue
        seen.add(student.id)
        member = by_id.get(student.id)
        if member is None:
            roster.append(RosterMember(id=student.id, full_name=student.full_name or ""))
        elif not member.full_name and student.full_name:
            roster.append(member.model_copy(update={"full_name": student.full_name}))
        else:
            roster.append(member)

    for member in enrolled:
        if member.id not in seen:
            seen.add(member.id)
            roster.append(member)
    return roster


class AttendanceStation:
    """Composes detection, recognition, submission and reconciliation for a session.

    Every operator action is a method here. Precondition failures and
    backend errors are reported through the notification feed and the
    return value; only programming errors propagate.

    Example:
        ```python
        station = AttendanceStation(class_id, session_id, backend, detector, camera, models)
        await station.open()
        station.start_auto()
        ...
        await station.complete_session()
        station.close()
        ```
    """

    def __init__(
        self,
        class_id: str,
        session_id: str,
        backend: AttendanceBackend,
        detector: FaceDetector,
        camera: Camera,
        models: ModelRegistry,
        notices: Optional[NotificationFeed] = None,
        *,
        auto_interval: Optional[float] = None,
        landmark_interval: Optional[float] = None,
        recognition_cooldown: Optional[float] = None,
        refresh_cooldown: Optional[float] = None,
        recognition_threshold: Optional[float] = None,
        confidence_threshold: Optional[float] = None,
    ) -> None:
        self.class_id = class_id
        self.session_id = session_id
        self.backend = backend
        self.camera = camera
        self.models = models
        self.notices = notices if notices is not None else NotificationFeed()

        self.overlay = OverlayRenderer(confidence_threshold)
        self.loop = DetectionLoop(
            camera,
            detector,
            models,
            self.overlay,
            auto_interval=auto_interval,
            landmark_interval=landmark_interval,
        )
        self.submitter = AttendanceSubmitter(
            backend, session_id, self.notices, refresh_cooldown=refresh_cooldown
        )
        self.coordinator = RecognitionCoordinator(
            DistanceMatcher(recognition_threshold),
            self.submitter,
            self.notices,
            cooldown=Cooldown(
                window=settings.RECOGNITION_COOLDOWN if recognition_cooldown is None else recognition_cooldown
            ),
            confidence_threshold=confidence_threshold,
        )
        self.absences = AbsenceReconciliationService(backend, self.submitter, self.notices)

        self.lifecycle: Optional[SessionLifecycleController] = None
        self.roster: List[RosterMember] = []
        self.show_landmarks = True
        self.fatal_error: Optional[str] = None
        self.last_results: List[MatchResult] = []
        self._live = False
        self._busy: Set[str] = set()
        self._students: List[StudentRef] = []

    @property
    def is_open(self) -> bool:
        return self._live and self.lifecycle is not None

    @property
    def is_completed(self) -> bool:
        return self.lifecycle is not None and self.lifecycle.is_completed

    @property
    def is_auto_mode(self) -> bool:
        return self.loop.is_running(DetectionMode.AUTO)

    async def open(self) -> None:
        """Load the session and, unless it is completed, the camera and models.

        Failures that block recognition are kept in ``fatal_error``; the
        station stays usable for manual entry and absence review when the
        session data itself loaded.
        """
        self._live = True
        self.fatal_error = None
        logger.info("Opening attendance station", class_id=self.class_id, session_id=self.session_id)
        try:
            students, session, logs = await asyncio.gather(
                self.backend.get_class_students(self.class_id),
                self.backend.get_session(self.session_id),
                self.backend.get_attendance_logs(self.session_id),
            )
        except AttendanceError as e:
            self.fatal_error = f"Could not load attendance data: {e.message}"
            logger.error("Station failed to load session data", session_id=self.session_id, error=e.message)
            self.notices.error(self.fatal_error)
            return

        self.lifecycle = SessionLifecycleController(self.backend, session)
        self.lifecycle.add_teardown("detection loops", self.loop.stop_all)
        self.lifecycle.add_teardown("recognition cooldown", self.coordinator.cooldown.clear)
        self.lifecycle.add_teardown("camera", self.camera.stop)
        self.lifecycle.add_teardown("overlay", self.overlay.clear)

        self.submitter.seed(logs, session)
        self.submitter.on_session_refreshed(self._on_session_refreshed)
        self._students = list(students)
        self.roster = merge_roster(self._students, [])
        await self.absences.refresh_requests()

        if self.lifecycle.is_completed:
            logger.info("Session already completed, recognition disabled", session_id=self.session_id)
            return

        await self._prepare_recognition()

    async def retry(self) -> None:
        """Clear a blocking error and redo model, face data and camera setup."""
        if not self._live:
            raise StationNotOpenError("Attendance station is not open")
        if self.lifecycle is None:
            await self.open()
            return
        if self.is_completed:
            self.notices.info("Session is completed, nothing to retry")
            return
        self.loop.stop_all()
        self.camera.stop()
        self.overlay.clear()
        await self._prepare_recognition()
        if self.fatal_error is None:
            self.notices.success("Camera and face recognition ready")

    async def _prepare_recognition(self) -> None:
        self.fatal_error = None
        try:
            await self.models.load()
        except ModelLoadError as e:
            self._fail(e.message)
            return

        try:
            enrolled = await self.backend.get_class_face_features(self.class_id)
        except AttendanceError as e:
            logger.error("Could not load enrolled face data", class_id=self.class_id, error=e.message)
            self.notices.error(f"Could not load face data: {e.message}")
            enrolled = []
        self.roster = merge_roster(self._students, enrolled)
        if not any(member.has_face_data for member in self.roster):
            self.notices.warning("No students in this class have face data, use manual entry")

        try:
            await self.camera.open()
        except CameraError as e:
            self._fail(e.message)
            return

        try:
            await self.lifecycle.activate()
        except AttendanceError as e:
            self.notices.error(f"Could not start the session: {e.message}")

        self._sync_landmark_mode()

    def _fail(self, message: str) -> None:
        self.fatal_error = message
        logger.error("Station not ready", session_id=self.session_id, error=message)
        self.notices.error(message)

    def close(self) -> None:
        """Release everything the station holds. The session status is left as is."""
        if not self._live:
            return
        self._live = False
        if self.lifecycle is not None:
            self.lifecycle.teardown()
        else:
            self.loop.stop_all()
            self.camera.stop()
            self.overlay.clear()
            self.coordinator.cooldown.clear()
        self.submitter.close()
        self.last_results = []
        logger.info("Attendance station closed", session_id=self.session_id)

    def start_auto(self) -> ActionResult:
        """Start continuous recognition.

        A completed session, a missing camera or model, or a roster without
        face data leaves the loop stopped and makes no backend call.
        """
        if self.is_auto_mode:
            return ActionResult(success=True, message="Auto attendance is already running")
        try:
            self._require_open()
            self.lifecycle.ensure_can_detect()
            self.loop.start(DetectionMode.AUTO, on_batch=self._handle_auto_batch, roster=self.roster)
        except PreconditionError as e:
            self.notices.warning(e.message)
            return ActionResult(success=False, message=e.message)
        self.notices.info("Auto attendance started")
        return ActionResult(success=True, message="Auto attendance started")

    def stop_auto(self) -> ActionResult:
        if not self.is_auto_mode:
            return ActionResult(success=True, message="Auto attendance is not running")
        self.loop.stop(DetectionMode.AUTO)
        self.last_results = []
        self.notices.info("Auto attendance stopped")
        self._sync_landmark_mode()
        return ActionResult(success=True, message="Auto attendance stopped")

    def set_show_landmarks(self, enabled: bool) -> None:
        self.show_landmarks = enabled
        self.overlay.show_landmarks = enabled
        self._sync_landmark_mode()

    def _sync_landmark_mode(self) -> None:
        """Run landmark mode exactly when it is wanted and possible."""
        wanted = (
            self._live
            and self.show_landmarks
            and not self.is_auto_mode
            and not self.is_completed
            and self.fatal_error is None
        )
        running = self.loop.is_running(DetectionMode.LANDMARK)
        if wanted and not running:
            try:
                self.loop.start(DetectionMode.LANDMARK)
            except PreconditionError as e:
                logger.debug("Landmark mode not started", reason=e.message)
        elif not wanted and running:
            self.loop.stop(DetectionMode.LANDMARK)

    def _accepts_results(self) -> bool:
        return self._live and not self.is_completed

    def _is_live(self, batch: DetectionBatch) -> bool:
        return self._accepts_results() and self.loop.is_current(batch.generation)

    async def _handle_auto_batch(self, batch: DetectionBatch) -> List[MatchResult]:
        outcome = await self.coordinator.process_auto_batch(
            batch, self.roster, is_live=lambda: self._is_live(batch)
        )
        if self._is_live(batch):
            self.last_results = outcome.results
        return outcome.results

    async def capture(self) -> CaptureOutcome:
        """Recognize the current frame once and record the best match."""
        try:
            self._require_open()
            self.lifecycle.ensure_can_detect()
            async with self._guard("capture", "A capture is already in progress"):
                batch = await self.loop.capture_once(self.roster)
                outcome = await self.coordinator.process_capture(
                    batch, self.roster, is_live=self._accepts_results
                )
                if self._accepts_results():
                    self.last_results = [outcome.match] if outcome.match else []
                    self.overlay.draw(batch.frame, batch.observations, self.last_results)
        except (PreconditionError, ActionInProgressError) as e:
            self.notices.warning(e.message)
            return CaptureOutcome(status=CaptureStatus.REJECTED, message=e.message)
        except AttendanceError as e:
            self.notices.error(e.message)
            return CaptureOutcome(status=CaptureStatus.FAILED, message=e.message)

        if outcome.status == CaptureStatus.SUBMITTED:
            self.notices.success(outcome.message)
        elif outcome.status == CaptureStatus.FAILED:
            self.notices.error(outcome.message)
        else:
            self.notices.warning(outcome.message)
        return outcome

    async def manual_entry(
        self,
        student_id: str,
        note: str = "",
        status: AttendanceStatus = AttendanceStatus.PRESENT,
    ) -> SubmissionResult:
        """Record a student by hand, without a descriptor or image."""
        member = self._find_member(student_id)
        if member is None:
            return SubmissionResult(success=False, message="Student is not in this class")
        try:
            self._require_open()
            async with self._guard(f"manual_entry:{student_id}", "This student is already being recorded"):
                result = await self.submitter.submit(
                    SubmissionKind.MANUAL_ENTRY,
                    ManualEntryPayload(
                        session_id=self.session_id,
                        student_id=student_id,
                        status=status,
                        note=note,
                    ),
                )
        except (PreconditionError, ActionInProgressError) as e:
            self.notices.warning(e.message)
            return SubmissionResult(success=False, message=e.message)

        if result.success:
            self.notices.success(f"Attendance recorded for {member.full_name or student_id}")
        else:
            self.notices.error(f"Could not record attendance for {member.full_name or student_id}: {result.message}")
        return result

    async def refresh(self) -> ActionResult:
        """Reload the leave requests now and the attendance log once the refresh cooldown allows."""
        self._require_open()
        await self.absences.refresh_requests()
        if await self.submitter.request_refresh():
            return ActionResult(success=True, message="Attendance refreshed")
        self.notices.info("Refresh scheduled")
        return ActionResult(success=True, message="Refresh scheduled")

    async def complete_session(self) -> ActionResult:
        """End the session, sending the students still absent.

        Loops, camera and overlay are released before the status is written,
        so nothing can be submitted once completion starts.
        """
        try:
            self._require_open()
            if self.is_completed:
                self.notices.info("Session is already completed")
                return ActionResult(success=False, message="Session is already completed")
            async with self._guard("complete", "The session is already being completed"):
                absent_ids = [entry.member.id for entry in self.absent_list()]
                self.last_results = []
                await self.lifecycle.complete(absent_ids)
        except (PreconditionError, ActionInProgressError) as e:
            self.notices.warning(e.message)
            return ActionResult(success=False, message=e.message)
        except AttendanceError as e:
            message = f"Could not end the session: {e.message}"
            self.notices.error(message)
            return ActionResult(success=False, message=message)

        logger.info("Session completed", session_id=self.session_id, absent=len(absent_ids))
        self.notices.success("Attendance session completed")
        return ActionResult(success=True, message="Attendance session completed")

    async def approve_absence(self, request_id: str, reviewer_notes: Optional[str] = None) -> ReviewResult:
        self._require_open()
        return await self.absences.approve(request_id, reviewer_notes)

    async def reject_absence(self, request_id: str, reviewer_notes: Optional[str] = None) -> ReviewResult:
        self._require_open()
        return await self.absences.reject(request_id, reviewer_notes)

    def absent_list(self) -> List[AbsentEntry]:
        return self.absences.absent_list(self.roster)

    def state(self) -> StationState:
        """Snapshot of everything the attendance screen shows."""
        absent = self.absent_list()
        logs = list(self.submitter.logs)
        return StationState(
            class_id=self.class_id,
            session_id=self.session_id,
            session=self.lifecycle.session if self.lifecycle else None,
            session_completed=self.is_completed,
            camera_ready=self.camera.is_ready,
            model_state=self.models.state.value,
            fatal_error=self.fatal_error,
            active_mode=self.loop.active_mode,
            auto_mode=self.is_auto_mode,
            show_landmarks=self.show_landmarks,
            detected_faces=len(self.loop.detected_faces),
            recognized=self.last_results,
            roster=[StudentSummary.from_member(m) for m in self.roster],
            logs=logs,
            absent=[
                AbsentSummary.from_entry(
                    entry,
                    in_flight=entry.request is not None and self.absences.is_in_flight(entry.request.id),
                )
                for entry in absent
            ],
            attending_count=sum(1 for log in logs if log.counts_as_attending),
            total_students=len(self.roster),
            busy=sorted(self._busy),
        )

    def _require_open(self) -> None:
        if not self.is_open:
            raise StationNotOpenError("Attendance station is not open")

    def _find_member(self, student_id: str) -> Optional[RosterMember]:
        for member in self.roster:
            if member.id == student_id:
                return member
        return None

    def _on_session_refreshed(self, session: AttendanceSession) -> None:
        if self.lifecycle is None:
            return
        was_completed = self.lifecycle.is_completed
        self.lifecycle.sync(session)
        if self.lifecycle.is_completed and not was_completed:
            logger.info("Session completed elsewhere, stopping recognition", session_id=self.session_id)
            self.lifecycle.teardown()
            self.last_results = []

    @asynccontextmanager
    async def _guard(self, action: str, busy_message: str) -> AsyncIterator[None]:
        if action in self._busy:
            raise ActionInProgressError(busy_message)
        self._busy.add(action)
        try:
            yield
        finally:
            self._busy.discard(action)
