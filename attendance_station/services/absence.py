"""Reconciliation of absent students against their leave requests."""
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Set

from attendance_station.core.exceptions import AttendanceError
from attendance_station.core.logging import get_logger
from attendance_station.domain.entities.attendance import (
    AbsenceRequest,
    AbsenceRequestStatus,
    AttendanceLogEntry,
)
from attendance_station.domain.entities.face import RosterMember
from attendance_station.domain.interfaces.backend import AttendanceBackend
from attendance_station.domain.value_objects.attendance import (
    AbsenceAction,
    AbsenceApprovalPayload,
    AbsentEntry,
    ReviewResult,
    SubmissionKind,
)
from attendance_station.services.notifications import NotificationFeed
from attendance_station.services.submission import AttendanceSubmitter

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created(request: AbsenceRequest) -> datetime:
    if request.created_at is None:
        return _EPOCH
    if request.created_at.tzinfo is None:
        return request.created_at.replace(tzinfo=timezone.utc)
    return request.created_at


def actions_for(request: Optional[AbsenceRequest]) -> List[AbsenceAction]:
    """Actions offered for an absent student given their leave request."""
    if request is None:
        return [AbsenceAction.MANUAL_ENTRY]
    if request.status == AbsenceRequestStatus.PENDING:
        return [AbsenceAction.APPROVE, AbsenceAction.REJECT]
    return [AbsenceAction.MANUAL_ENTRY]


def derive_absent_list(
    roster: Sequence[RosterMember],
    logs: Sequence[AttendanceLogEntry],
    requests: Sequence[AbsenceRequest],
) -> List[AbsentEntry]:
    """List roster members with no present or late record, in roster order.

    When a student filed several requests for the session, the most recent
    one is used.

    Args:
        roster: Full class roster
        logs: Attendance log of the session
        requests: Leave requests filed for the session

    Returns:
        One AbsentEntry per absent student, with the actions it allows
    """
    attending = {log.student_id for log in logs if log.counts_as_attending}

    latest: Dict[str, AbsenceRequest] = {}
    for request in requests:
        current = latest.get(request.student_id)
        if current is None or _created(request) >= _created(current):
            latest[request.student_id] = request

    entries: List[AbsentEntry] = []
    for member in roster:
        if member.id in attending:
            continue
        request = latest.get(member.id)
        entries.append(AbsentEntry(member=member, request=request, actions=actions_for(request)))
    return entries


class AbsenceReconciliationService:
    """Quick approve and reject of leave requests for absent students.

    Approving is two writes: the request status, then an excused present
    record linked to the request. They are not transactional. If the second
    write fails the approval stays in place and the failure is reported.
    """

    def __init__(
        self,
        backend: AttendanceBackend,
        submitter: AttendanceSubmitter,
        notices: NotificationFeed,
    ) -> None:
        self.backend = backend
        self.submitter = submitter
        self.notices = notices
        self.requests: List[AbsenceRequest] = []
        self._in_flight: Set[str] = set()

    def is_in_flight(self, request_id: str) -> bool:
        return request_id in self._in_flight

    def find(self, request_id: str) -> Optional[AbsenceRequest]:
        for request in self.requests:
            if request.id == request_id:
                return request
        return None

    def absent_list(self, roster: Sequence[RosterMember]) -> List[AbsentEntry]:
        return derive_absent_list(roster, self.submitter.logs, self.requests)

    async def refresh_requests(self) -> bool:
        try:
            requests = await self.backend.get_session_absence_requests(self.submitter.session_id)
        except AttendanceError as e:
            logger.error("Absence request refresh failed", error=e.message)
            self.notices.error(f"Could not load absence requests: {e.message}")
            return False
        self.requests = list(requests)
        return True

    async def approve(self, request_id: str, reviewer_notes: Optional[str] = None) -> ReviewResult:
        """Approve a pending request and record the student as excused present."""
        rejected = self._check_reviewable(request_id)
        if rejected is not None:
            return rejected

        request = self.find(request_id)
        self._in_flight.add(request_id)
        try:
            try:
                updated = await self.backend.update_absence_request_status(
                    request_id, AbsenceRequestStatus.APPROVED, reviewer_notes
                )
            except AttendanceError as e:
                self.notices.error(f"Could not approve absence request: {e.message}")
                return ReviewResult(success=False, message=e.message, request=request)

            submission = await self.submitter.submit(
                SubmissionKind.ABSENCE_APPROVAL,
                AbsenceApprovalPayload(
                    session_id=self.submitter.session_id,
                    student_id=request.student_id,
                    absence_request_id=request_id,
                ),
            )
            if not submission.success:
                message = f"Request approved but attendance could not be recorded: {submission.message}"
                logger.warning(
                    "Approved absence request has no attendance record",
                    request_id=request_id,
                    student_id=request.student_id
                )
                self.notices.error(message)
                return ReviewResult(success=False, message=message, request=updated)

            message = f"Absence request approved for {request.student.full_name or request.student_id}"
            self.notices.success(message)
            return ReviewResult(success=True, message=message, request=updated, attendance_recorded=True)
        finally:
            self._in_flight.discard(request_id)
            await self._refresh_after_review()

    async def reject(self, request_id: str, reviewer_notes: Optional[str] = None) -> ReviewResult:
        """Reject a pending request. No attendance is written."""
        rejected = self._check_reviewable(request_id)
        if rejected is not None:
            return rejected

        request = self.find(request_id)
        self._in_flight.add(request_id)
        try:
            try:
                updated = await self.backend.update_absence_request_status(
                    request_id, AbsenceRequestStatus.REJECTED, reviewer_notes
                )
            except AttendanceError as e:
                self.notices.error(f"Could not reject absence request: {e.message}")
                return ReviewResult(success=False, message=e.message, request=request)

            message = f"Absence request rejected for {request.student.full_name or request.student_id}"
            self.notices.info(message)
            return ReviewResult(success=True, message=message, request=updated)
        finally:
            self._in_flight.discard(request_id)
            await self._refresh_after_review()

    def _check_reviewable(self, request_id: str) -> Optional[ReviewResult]:
        if request_id in self._in_flight:
            return ReviewResult(success=False, message="This request is already being processed")
        request = self.find(request_id)
        if request is None:
            return ReviewResult(success=False, message="Absence request not found")
        if request.status != AbsenceRequestStatus.PENDING:
            return ReviewResult(
                success=False,
                message=f"Absence request is already {request.status.value}",
                request=request,
            )
        return None

    async def _refresh_after_review(self) -> None:
        await self.refresh_requests()
        await self.submitter.request_refresh()
