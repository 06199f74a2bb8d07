"""Turns detection batches into attendance submissions."""
from typing import Callable, Dict, Optional, Sequence, Tuple

import cv2

from attendance_station.core.config import settings
from attendance_station.core.logging import get_logger
from attendance_station.core.utils.image import encode_snapshot
from attendance_station.domain.entities.face import DetectionObservation, RosterMember
from attendance_station.domain.value_objects.attendance import AutoMatchPayload, SubmissionKind
from attendance_station.domain.value_objects.recognition import (
    CaptureOutcome,
    CaptureStatus,
    DetectionBatch,
    MatchResult,
    RecognitionOutcome,
)
from attendance_station.services.matching import DistanceMatcher
from attendance_station.services.notifications import NotificationFeed
from attendance_station.services.scheduling import Cooldown
from attendance_station.services.submission import AttendanceSubmitter

logger = get_logger(__name__)


def _always_live() -> bool:
    return True


class RecognitionCoordinator:
    """Applies the acceptance policy to matched faces.

    Auto mode: a match is submitted when its confidence reaches the
    confidence threshold and the student is not cooling down. The cooldown
    slot is taken before the write and handed back if the write fails.

    Manual capture: the most confident match of the frame is submitted if it
    reaches the threshold, without cooldown gating.
    """

    def __init__(
        self,
        matcher: DistanceMatcher,
        submitter: AttendanceSubmitter,
        notices: NotificationFeed,
        cooldown: Optional[Cooldown[str]] = None,
        confidence_threshold: Optional[float] = None,
        snapshot_size: Optional[Tuple[int, int]] = None,
    ) -> None:
        self.matcher = matcher
        self.submitter = submitter
        self.notices = notices
        self.cooldown: Cooldown[str] = (
            cooldown if cooldown is not None else Cooldown(window=settings.RECOGNITION_COOLDOWN)
        )
        self.confidence_threshold = (
            settings.CONFIDENCE_THRESHOLD if confidence_threshold is None else confidence_threshold
        )
        self.snapshot_size = snapshot_size or (settings.SNAPSHOT_WIDTH, settings.SNAPSHOT_HEIGHT)

    def accepts(self, result: MatchResult) -> bool:
        return result.is_match and result.confidence >= self.confidence_threshold

    async def process_auto_batch(
        self,
        batch: DetectionBatch,
        roster: Sequence[RosterMember],
        is_live: Callable[[], bool] = _always_live,
    ) -> RecognitionOutcome:
        """
        Match a batch and submit accepted, non-cooling-down students.

        Args:
            batch: Observations of one auto-mode cycle
            roster: Roster to match against
            is_live: Checked before each write; once False the rest of the
                batch is abandoned

        Returns:
            RecognitionOutcome describing what was submitted or skipped
        """
        results = self.matcher.match_observations(batch.observations, roster)
        outcome = RecognitionOutcome(
            results=results,
            dropped=sum(1 for o in batch.observations if not _is_matchable(o)),
        )
        by_index = _index(batch.observations)
        snapshot: Optional[str] = None

        for result in results:
            if not self.accepts(result):
                continue
            if not is_live():
                logger.info("Station no longer live, abandoning batch")
                break

            student_id = result.student_id
            if not self.cooldown.try_acquire(student_id):
                outcome.skipped_cooldown.append(student_id)
                continue

            try:
                if snapshot is None:
                    snapshot = self._snapshot(batch)
                submission = await self.submitter.submit(
                    SubmissionKind.AUTO_MATCH,
                    AutoMatchPayload(
                        session_id=self.submitter.session_id,
                        student_id=student_id,
                        descriptor=by_index[result.detection_index].descriptor.tolist(),
                        confidence=result.confidence,
                        image_base64=snapshot,
                    ),
                )
            except BaseException:
                # Cancelled mid-write (auto mode stopped), keep the student eligible
                self.cooldown.release(student_id)
                raise
            if submission.success:
                outcome.submitted.append(student_id)
                self.notices.success(f"Attendance recorded for {result.name}")
            else:
                self.cooldown.release(student_id)
                outcome.failed.append(student_id)
                self.notices.error(
                    f"Could not record attendance for {result.name}: {submission.message}"
                )

        return outcome

    async def process_capture(
        self,
        batch: DetectionBatch,
        roster: Sequence[RosterMember],
        is_live: Callable[[], bool] = _always_live,
    ) -> CaptureOutcome:
        """Resolve a manual single-shot capture into at most one submission.

        ``is_live`` is checked before matching and again right before the
        write; a capture that outlived the station or the session is
        discarded without writing.
        """
        if not is_live():
            return _discarded()
        if not any(_is_matchable(o) for o in batch.observations):
            return CaptureOutcome(status=CaptureStatus.NO_FACE, message="No face detected")

        results = self.matcher.match_observations(batch.observations, roster)
        if not results:
            return CaptureOutcome(
                status=CaptureStatus.NO_MATCH,
                message="Face detected but no matching student"
            )

        top = max(results, key=lambda r: r.confidence)
        if not self.accepts(top):
            return CaptureOutcome(
                status=CaptureStatus.LOW_CONFIDENCE,
                message=f"No matching student (closest: {top.name}, {top.confidence * 100:.1f}%)",
                match=top,
            )

        observation = _index(batch.observations)[top.detection_index]
        snapshot = self._snapshot(batch)
        if not is_live():
            return _discarded()
        submission = await self.submitter.submit(
            SubmissionKind.AUTO_MATCH,
            AutoMatchPayload(
                session_id=self.submitter.session_id,
                student_id=top.student_id,
                descriptor=observation.descriptor.tolist(),
                confidence=top.confidence,
                image_base64=snapshot,
            ),
        )
        if not submission.success:
            return CaptureOutcome(
                status=CaptureStatus.FAILED,
                message=f"Could not record attendance for {top.name}: {submission.message}",
                match=top,
            )
        return CaptureOutcome(
            status=CaptureStatus.SUBMITTED,
            message=f"Attendance recorded for {top.name} ({top.confidence * 100:.1f}%)",
            match=top,
        )

    def _snapshot(self, batch: DetectionBatch) -> Optional[str]:
        """Encode the evidence image; the record is still sent without one if encoding fails."""
        try:
            return encode_snapshot(batch.frame, *self.snapshot_size)
        except (ValueError, cv2.error) as e:
            logger.warning("Could not encode attendance snapshot", error=str(e))
            return None


def _discarded() -> CaptureOutcome:
    logger.info("Station no longer live, discarding capture")
    return CaptureOutcome(
        status=CaptureStatus.REJECTED,
        message="Capture discarded: the station was closed or the session completed",
    )


def _is_matchable(observation: DetectionObservation) -> bool:
    return observation.box.is_valid() and observation.has_valid_descriptor


def _index(observations: Sequence[DetectionObservation]) -> Dict[int, DetectionObservation]:
    return {o.index: o for o in observations}
