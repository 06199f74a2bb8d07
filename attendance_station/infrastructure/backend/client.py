"""HTTP client for the attendance REST backend."""
import asyncio
from typing import Any, List, Optional, Sequence

import requests
from pydantic import ValidationError

from attendance_station.core.config import settings
from attendance_station.core.exceptions import BackendError, ResponseDecodeError
from attendance_station.core.logging import get_logger
from attendance_station.domain.entities.attendance import (
    AbsenceRequest,
    AbsenceRequestStatus,
    AttendanceLogEntry,
    AttendanceSession,
    AttendanceStatus,
    SessionStatus,
    StudentRef,
)
from attendance_station.domain.entities.face import RosterMember
from attendance_station.domain.interfaces.backend import AttendanceBackend
from attendance_station.infrastructure.backend.schemas import (
    ApiEnvelope,
    FaceFeatureRecord,
    TeachingClassRecord,
)

logger = get_logger(__name__)


class HttpAttendanceBackend(AttendanceBackend):
    """Attendance backend over HTTP with bearer-token auth.

    Calls are blocking ``requests`` calls run in a worker thread. Every
    response must be ``{success: true, data}``; anything else raises
    ``BackendError``, and a ``data`` that does not fit the endpoint's schema
    raises ``ResponseDecodeError``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Backend base URL including ``/api``, defaults to settings
            token: Bearer token, defaults to settings
            timeout: Seconds per call, defaults to settings
            session: Preconfigured requests session
        """
        self.base_url = (base_url or settings.BACKEND_API_URL).rstrip("/")
        self.timeout = settings.BACKEND_TIMEOUT if timeout is None else timeout
        self.session = session or requests.Session()
        token = settings.BACKEND_API_TOKEN if token is None else token
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.session.headers.setdefault("Accept", "application/json")
        logger.info("Attendance backend client initialized", base_url=self.base_url)

    def close(self) -> None:
        self.session.close()

    async def get_class_students(self, class_id: str) -> List[StudentRef]:
        record = await self._request("GET", f"/classes/teaching/{class_id}", TeachingClassRecord)
        return record.students if record else []

    async def get_class_face_features(self, class_id: str) -> List[RosterMember]:
        records = await self._request(
            "GET", f"/face-recognition/class-features/{class_id}", List[FaceFeatureRecord]
        )
        return [record.to_member() for record in records or []]

    async def get_session(self, session_id: str) -> AttendanceSession:
        session = await self._request("GET", f"/attendance/sessions/{session_id}", AttendanceSession)
        if session is None:
            raise ResponseDecodeError(f"Session {session_id} response has no data")
        return session

    async def update_session_status(
        self,
        session_id: str,
        status: SessionStatus,
        students_absent: Optional[Sequence[str]] = None,
    ) -> None:
        body = {"status": status.value}
        if students_absent is not None:
            body["students_absent"] = list(students_absent)
        await self._request("PUT", f"/attendance/sessions/{session_id}/status", Any, json=body)

    async def get_attendance_logs(self, session_id: str) -> List[AttendanceLogEntry]:
        logs = await self._request("GET", f"/attendance/logs/{session_id}", List[AttendanceLogEntry])
        return logs or []

    async def create_attendance_log(
        self,
        session_id: str,
        student_id: str,
        status: AttendanceStatus,
        note: Optional[str] = None,
        absence_request_id: Optional[str] = None,
    ) -> AttendanceLogEntry:
        body = {"student_id": student_id, "status": status.value, "note": note or ""}
        if absence_request_id is not None:
            body["absence_request_id"] = absence_request_id
        entry = await self._request(
            "POST", f"/attendance/logs/{session_id}", AttendanceLogEntry, json=body
        )
        if entry is None:
            raise ResponseDecodeError("Attendance log response has no data")
        return entry

    async def verify_attendance(
        self,
        session_id: str,
        student_id: str,
        face_descriptor: Sequence[float],
        confidence: float,
        image_base64: Optional[str] = None,
    ) -> AttendanceLogEntry:
        body = {
            "sessionId": session_id,
            "studentId": student_id,
            "faceDescriptor": [float(v) for v in face_descriptor],
            "confidence": confidence,
            "imageBase64": image_base64,
        }
        entry = await self._request(
            "POST", "/face-recognition/verify-attendance", AttendanceLogEntry, json=body
        )
        if entry is None:
            raise ResponseDecodeError("Attendance verification response has no data")
        return entry

    async def get_session_absence_requests(self, session_id: str) -> List[AbsenceRequest]:
        absence_requests = await self._request(
            "GET", f"/absence-requests/session/{session_id}", List[AbsenceRequest]
        )
        return absence_requests or []

    async def update_absence_request_status(
        self,
        request_id: str,
        status: AbsenceRequestStatus,
        reviewer_notes: Optional[str] = None,
    ) -> AbsenceRequest:
        body = {"status": status.value}
        if reviewer_notes:
            body["reviewer_notes"] = reviewer_notes
        request = await self._request(
            "PUT", f"/absence-requests/{request_id}/status", AbsenceRequest, json=body
        )
        if request is None:
            raise ResponseDecodeError("Absence request response has no data")
        return request

    async def _request(self, method: str, path: str, data_type: Any, json: Optional[dict] = None) -> Any:
        return await asyncio.to_thread(self._send, method, path, data_type, json)

    def _send(self, method: str, path: str, data_type: Any, json: Optional[dict]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Backend request failed", method=method, path=path, error=str(e))
            raise BackendError(f"Could not reach the attendance server: {e}")

        try:
            body = response.json()
        except ValueError:
            logger.error(
                "Backend returned a non-JSON response",
                method=method,
                path=path,
                status_code=response.status_code
            )
            raise BackendError(
                f"Unexpected response from the attendance server (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        if not isinstance(body, dict) or body.get("success") is not True:
            message = body.get("message") if isinstance(body, dict) else None
            logger.warning(
                "Backend call unsuccessful",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message
            )
            raise BackendError(
                message or f"Request failed (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        try:
            envelope = ApiEnvelope[data_type].model_validate(body)
        except ValidationError as e:
            logger.error("Backend response does not match its schema", method=method, path=path, error=str(e))
            raise ResponseDecodeError(
                f"Unexpected data from {path}",
                status_code=response.status_code,
                details={"errors": e.errors(include_url=False, include_context=False)},
            )
        return envelope.data
