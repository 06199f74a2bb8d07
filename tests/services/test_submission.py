"""Tests for attendance writes and the cached session log."""
import asyncio

import pytest

from attendance_station.core.exceptions import BackendError
from attendance_station.domain.entities.attendance import AttendanceStatus, SessionStatus, StudentRef
from attendance_station.domain.value_objects.attendance import (
    AbsenceApprovalPayload,
    AutoMatchPayload,
    ManualEntryPayload,
    SubmissionKind,
)
from attendance_station.services.submission import EXCUSED_NOTE, AttendanceSubmitter
from tests.conftest import SESSION_ID, make_log, make_session


@pytest.fixture
def submitter(backend, notices):
    submitter = AttendanceSubmitter(backend, SESSION_ID, notices, refresh_cooldown=0.05)
    yield submitter
    submitter.close()


def manual(student_id: str, **kwargs) -> ManualEntryPayload:
    return ManualEntryPayload(session_id=SESSION_ID, student_id=student_id, **kwargs)


class TestSubmit:
    """Test suite for AttendanceSubmitter.submit."""

    async def test_failed_write_leaves_log_unchanged(self, submitter, backend):
        """Should report the backend message and keep the cached log as it was."""
        submitter.seed([make_log("s2")])
        backend.failures["create_attendance_log"] = BackendError("Student already marked")

        result = await submitter.submit(SubmissionKind.MANUAL_ENTRY, manual("s1"))

        assert result.success is False
        assert result.message == "Student already marked"
        assert [log.student_id for log in submitter.logs] == ["s2"]
        assert backend.calls_to("get_attendance_logs") == []

    async def test_confirmed_write_is_upserted(self, submitter, backend):
        submitter.seed([make_log("s1", AttendanceStatus.ABSENT)])
        backend.failures["get_attendance_logs"] = BackendError("offline")

        result = await submitter.submit(
            SubmissionKind.MANUAL_ENTRY, manual("s1", status=AttendanceStatus.LATE, note="Bus")
        )

        assert result.success
        assert len(submitter.logs) == 1
        assert submitter.find_log("s1").status == AttendanceStatus.LATE
        assert backend.calls_to("create_attendance_log")[0]["note"] == "Bus"

    async def test_upsert_keeps_known_student_name(self, submitter, backend):
        known = make_log("s1", AttendanceStatus.ABSENT).model_copy(
            update={"student": StudentRef(id="s1", full_name="Student One")}
        )
        submitter.seed([known])
        backend.failures["get_attendance_logs"] = BackendError("offline")

        await submitter.submit(SubmissionKind.MANUAL_ENTRY, manual("s1"))

        assert submitter.find_log("s1").student.full_name == "Student One"
        assert submitter.is_present("s1")

    async def test_auto_match_goes_through_verification(self, submitter, backend):
        payload = AutoMatchPayload(
            session_id=SESSION_ID,
            student_id="s1",
            descriptor=[0.1] * 128,
            confidence=0.92,
            image_base64="data:image/jpeg;base64,AAAA",
        )

        result = await submitter.submit(SubmissionKind.AUTO_MATCH, payload)

        assert result.success
        call = backend.calls_to("verify_attendance")[0]
        assert call["confidence"] == 0.92
        assert call["image_base64"] == "data:image/jpeg;base64,AAAA"
        assert backend.calls_to("create_attendance_log") == []

    async def test_absence_approval_links_request(self, submitter, backend):
        payload = AbsenceApprovalPayload(session_id=SESSION_ID, student_id="s1", absence_request_id="r1")

        result = await submitter.submit(SubmissionKind.ABSENCE_APPROVAL, payload)

        call = backend.calls_to("create_attendance_log")[0]
        assert result.success
        assert call["status"] == AttendanceStatus.PRESENT
        assert call["absence_request_id"] == "r1"
        assert call["note"] == EXCUSED_NOTE
        assert submitter.find_log("s1").is_excused

    async def test_mismatched_payload_is_rejected(self, submitter, backend):
        with pytest.raises(TypeError):
            await submitter.submit(SubmissionKind.AUTO_MATCH, manual("s1"))
        assert backend.calls == []

    async def test_confirmation_after_close_is_discarded(self, submitter, backend):
        submitter.close()

        result = await submitter.submit(SubmissionKind.MANUAL_ENTRY, manual("s1"))

        assert result.success
        assert submitter.logs == []
        assert backend.calls_to("get_attendance_logs") == []


class TestRefresh:
    """Test suite for log refreshes."""

    async def test_refresh_replaces_log_and_notifies_listeners(self, submitter, backend):
        backend.logs = [make_log("s1"), make_log("s2")]
        backend.session = make_session(SessionStatus.COMPLETED)
        seen = []
        submitter.on_session_refreshed(seen.append)

        assert await submitter.refresh() is True

        assert [log.student_id for log in submitter.logs] == ["s1", "s2"]
        assert submitter.session.status == SessionStatus.COMPLETED
        assert [s.status for s in seen] == [SessionStatus.COMPLETED]

    async def test_failed_refresh_keeps_log(self, submitter, backend, notices):
        submitter.seed([make_log("s1")])
        backend.failures["get_session"] = BackendError("timeout")

        assert await submitter.refresh() is False

        assert [log.student_id for log in submitter.logs] == ["s1"]
        assert "timeout" in notices.peek()[-1].message

    async def test_burst_of_writes_refreshes_once_then_once_more(self, submitter, backend):
        """Should refresh right after the first write and collapse the rest into one deferred refresh."""
        for student_id in ("s1", "s2", "s3"):
            await submitter.submit(SubmissionKind.MANUAL_ENTRY, manual(student_id))

        assert len(backend.calls_to("get_attendance_logs")) == 1

        await asyncio.sleep(0.1)

        assert len(backend.calls_to("get_attendance_logs")) == 2
