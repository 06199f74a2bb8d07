"""Attendance station API endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Path
from fastapi.responses import Response

from attendance_station.api.models.station import (
    LandmarksRequest,
    ManualEntryRequest,
    NoticesResponse,
    OpenStationRequest,
    ReviewRequest,
)
from attendance_station.core.container import ServiceContainer
from attendance_station.core.exceptions import (
    AttendanceError,
    BackendError,
    PreconditionError,
    ServiceNotInitializedError,
    StationNotOpenError,
)
from attendance_station.core.logging import get_logger
from attendance_station.domain.value_objects.attendance import ReviewResult, SubmissionResult
from attendance_station.domain.value_objects.recognition import CaptureOutcome
from attendance_station.domain.value_objects.station import ActionResult, StationState
from attendance_station.infrastructure.dependencies import get_container, get_station
from attendance_station.services.station import AttendanceStation

logger = get_logger(__name__)
router = APIRouter()


def http_error_for(e: AttendanceError) -> HTTPException:
    """Map a station error to the HTTP status the operator UI expects."""
    if isinstance(e, StationNotOpenError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, PreconditionError):
        return HTTPException(status_code=409, detail=e.message)
    if isinstance(e, ServiceNotInitializedError):
        return HTTPException(status_code=503, detail=e.message)
    if isinstance(e, BackendError):
        return HTTPException(status_code=502, detail=e.message)
    logger.error("Station action failed", error=e.message, exc_info=True)
    return HTTPException(status_code=500, detail=e.message)


@router.post(
    "",
    response_model=StationState,
    status_code=201,
    summary="Open an attendance station",
    description="Loads the session, the roster and the camera. Any open station is closed first.",
)
async def open_station(
    request: OpenStationRequest,
    container: ServiceContainer = Depends(get_container),
) -> StationState:
    try:
        station = await container.open_station(
            request.class_id,
            request.session_id,
            camera_source=request.camera_source,
        )
    except AttendanceError as e:
        raise http_error_for(e)
    return station.state()


@router.get("/current", response_model=StationState, summary="Current station state")
async def get_state(station: AttendanceStation = Depends(get_station)) -> StationState:
    return station.state()


@router.delete(
    "/current",
    response_model=ActionResult,
    summary="Close the station",
    description="Stops detection and releases the camera. The session status is not changed.",
)
async def close_station(container: ServiceContainer = Depends(get_container)) -> ActionResult:
    if container.station is None:
        return ActionResult(success=True, message="No attendance station is open")
    await container.close_station()
    return ActionResult(success=True, message="Attendance station closed")


@router.post("/current/retry", response_model=StationState, summary="Retry camera and model setup")
async def retry(station: AttendanceStation = Depends(get_station)) -> StationState:
    try:
        await station.retry()
    except AttendanceError as e:
        raise http_error_for(e)
    return station.state()


@router.post("/current/auto/start", response_model=ActionResult, summary="Start auto attendance")
async def start_auto(station: AttendanceStation = Depends(get_station)) -> ActionResult:
    return station.start_auto()


@router.post("/current/auto/stop", response_model=ActionResult, summary="Stop auto attendance")
async def stop_auto(station: AttendanceStation = Depends(get_station)) -> ActionResult:
    return station.stop_auto()


@router.put("/current/landmarks", response_model=StationState, summary="Toggle the landmark overlay")
async def set_landmarks(
    request: LandmarksRequest,
    station: AttendanceStation = Depends(get_station),
) -> StationState:
    station.set_show_landmarks(request.enabled)
    return station.state()


@router.post(
    "/current/capture",
    response_model=CaptureOutcome,
    summary="Capture once",
    description="Recognizes the current frame and records the most confident match.",
)
async def capture(station: AttendanceStation = Depends(get_station)) -> CaptureOutcome:
    return await station.capture()


@router.post("/current/attendance", response_model=SubmissionResult, summary="Manual attendance entry")
async def manual_entry(
    request: ManualEntryRequest,
    station: AttendanceStation = Depends(get_station),
) -> SubmissionResult:
    return await station.manual_entry(request.student_id, note=request.note, status=request.status)


@router.post("/current/refresh", response_model=ActionResult, summary="Refresh attendance data")
async def refresh(station: AttendanceStation = Depends(get_station)) -> ActionResult:
    try:
        return await station.refresh()
    except AttendanceError as e:
        raise http_error_for(e)


@router.post("/current/complete", response_model=ActionResult, summary="End the session")
async def complete(station: AttendanceStation = Depends(get_station)) -> ActionResult:
    return await station.complete_session()


@router.post(
    "/current/absence-requests/{request_id}/approve",
    response_model=ReviewResult,
    summary="Approve a leave request",
    description="Approves the request, then records the student as excused present.",
)
async def approve_absence(
    request_id: str = Path(..., min_length=1),
    review: ReviewRequest = ReviewRequest(),
    station: AttendanceStation = Depends(get_station),
) -> ReviewResult:
    try:
        return await station.approve_absence(request_id, review.reviewer_notes)
    except AttendanceError as e:
        raise http_error_for(e)


@router.post(
    "/current/absence-requests/{request_id}/reject",
    response_model=ReviewResult,
    summary="Reject a leave request",
)
async def reject_absence(
    request_id: str = Path(..., min_length=1),
    review: ReviewRequest = ReviewRequest(),
    station: AttendanceStation = Depends(get_station),
) -> ReviewResult:
    try:
        return await station.reject_absence(request_id, review.reviewer_notes)
    except AttendanceError as e:
        raise http_error_for(e)


@router.get(
    "/current/overlay",
    summary="Latest overlay frame",
    response_class=Response,
    responses={200: {"content": {"image/jpeg": {}}}},
)
async def get_overlay(station: AttendanceStation = Depends(get_station)) -> Response:
    jpeg = station.overlay.to_jpeg()
    if jpeg is None:
        raise HTTPException(status_code=404, detail="No overlay frame available")
    return Response(content=jpeg, media_type="image/jpeg")


@router.get("/current/notices", response_model=NoticesResponse, summary="Drain pending notices")
async def get_notices(station: AttendanceStation = Depends(get_station)) -> NoticesResponse:
    return NoticesResponse(notices=station.notices.drain())
