"""Periodic face detection over the live camera stream.

Two periodic modes exist and at most one runs at a time:

- ``LANDMARK``: short period, boxes and landmarks only, redraws the overlay.
  No attendance side effects.
- ``AUTO``: longer period, full detection with descriptors, every batch is
  handed to a batch handler (the recognition coordinator).

``capture_once`` is the third, single-shot path used by manual capture.
"""
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from attendance_station.core.config import settings
from attendance_station.core.exceptions import (
    CameraNotReadyError,
    DetectionError,
    EmptyRosterError,
    ModelNotReadyError,
)
from attendance_station.core.logging import get_logger
from attendance_station.domain.entities.face import DetectionObservation, RosterMember
from attendance_station.domain.interfaces.camera import Camera
from attendance_station.domain.interfaces.detector import FaceDetector
from attendance_station.domain.value_objects.recognition import (
    DetectionBatch,
    DetectionMode,
    MatchResult,
)
from attendance_station.services.model_registry import ModelRegistry
from attendance_station.services.overlay import OverlayRenderer
from attendance_station.services.scheduling import CancelToken, start_loop

logger = get_logger(__name__)

BatchHandler = Callable[[DetectionBatch], Awaitable[List[MatchResult]]]


class DetectionLoop:
    """Owns the detection timers of one station.

    Every start bumps a generation counter. Results of a cycle are applied
    only while their generation is still current, so a detection that
    resolves after a stop or a mode switch is discarded.
    """

    def __init__(
        self,
        camera: Camera,
        detector: FaceDetector,
        models: ModelRegistry,
        overlay: OverlayRenderer,
        auto_interval: Optional[float] = None,
        landmark_interval: Optional[float] = None,
    ) -> None:
        self.camera = camera
        self.detector = detector
        self.models = models
        self.overlay = overlay
        self.intervals: Dict[DetectionMode, float] = {
            DetectionMode.AUTO: settings.AUTO_DETECT_INTERVAL if auto_interval is None else auto_interval,
            DetectionMode.LANDMARK: (
                settings.LANDMARK_DETECT_INTERVAL if landmark_interval is None else landmark_interval
            ),
        }
        self.detected_faces: List[DetectionObservation] = []
        self._tokens: Dict[DetectionMode, CancelToken] = {}
        self._generation = 0

    @property
    def active_mode(self) -> Optional[DetectionMode]:
        for mode, token in self._tokens.items():
            if not token.cancelled:
                return mode
        return None

    def is_running(self, mode: DetectionMode) -> bool:
        token = self._tokens.get(mode)
        return token is not None and not token.cancelled

    def check_preconditions(self, mode: DetectionMode, roster: Sequence[RosterMember] = ()) -> None:
        """
        Raise if ``mode`` cannot run right now.

        Raises:
            CameraNotReadyError: Camera stream not ready
            ModelNotReadyError: Detector models not loaded
            EmptyRosterError: Auto or capture mode without any enrolled student
        """
        if not self.camera.is_ready:
            raise CameraNotReadyError("Camera is not ready")
        if not self.models.is_ready():
            raise ModelNotReadyError("Face recognition models are not loaded")
        if mode != DetectionMode.LANDMARK and not any(m.has_face_data for m in roster):
            raise EmptyRosterError("No students with face data in this class")

    def start(
        self,
        mode: DetectionMode,
        on_batch: Optional[BatchHandler] = None,
        roster: Sequence[RosterMember] = (),
    ) -> CancelToken:
        """
        Start a periodic mode, stopping whichever mode is running.

        Args:
            mode: LANDMARK or AUTO
            on_batch: Handler receiving each batch; its results are drawn
            roster: Current roster, checked for auto mode

        Returns:
            CancelToken stopping the loop when called
        """
        if mode == DetectionMode.CAPTURE:
            raise ValueError("Capture is a single-shot path, use capture_once()")

        self.check_preconditions(mode, roster)
        self.stop_all()

        self._generation += 1
        generation = self._generation

        async def tick() -> None:
            batch = await self.run_cycle(mode, generation)
            if batch is None or not self.is_current(generation):
                return
            if not batch.observations:
                self.overlay.clear()
                return

            results: List[MatchResult] = []
            if on_batch is not None:
                results = await on_batch(batch)
            if self.is_current(generation):
                self.overlay.draw(batch.frame, batch.observations, results)

        token = start_loop(self.intervals[mode], tick, name=f"detection-{mode.value}")
        self._tokens[mode] = token
        logger.info("Detection loop started", mode=mode.value, interval=self.intervals[mode])
        return token

    def stop(self, mode: DetectionMode) -> None:
        token = self._tokens.pop(mode, None)
        if token is None:
            return
        token.cancel()
        self._generation += 1
        self.detected_faces = []
        self.overlay.clear()
        logger.info("Detection loop stopped", mode=mode.value)

    def stop_all(self) -> None:
        for mode in list(self._tokens):
            self.stop(mode)

    async def run_cycle(self, mode: DetectionMode, generation: int) -> Optional[DetectionBatch]:
        """Run one detection cycle. Failures are logged and yield None."""
        try:
            frame = await self.camera.read_frame()
            observations = await self.detector.detect(
                frame, with_descriptors=mode != DetectionMode.LANDMARK
            )
        except Exception as e:
            logger.error(
                "Face detection cycle failed",
                mode=mode.value,
                error=str(e),
                exc_info=True
            )
            if self.is_current(generation):
                self.detected_faces = []
                self.overlay.clear()
            return None

        if not self.is_current(generation):
            logger.debug("Discarding detection from a stopped loop", mode=mode.value)
            return None

        self.detected_faces = observations
        logger.debug("Detection cycle", mode=mode.value, faces=len(observations))
        return DetectionBatch(
            mode=mode,
            observations=observations,
            frame=frame,
            generation=generation,
        )

    async def capture_once(self, roster: Sequence[RosterMember] = ()) -> DetectionBatch:
        """
        Run one full detection independent of the periodic loops.

        Raises:
            PreconditionError: If camera, models or roster are not ready
            DetectionError: If the detector fails
        """
        self.check_preconditions(DetectionMode.CAPTURE, roster)
        frame = await self.camera.read_frame()
        try:
            observations = await self.detector.detect(frame, with_descriptors=True)
        except DetectionError:
            raise
        except Exception as e:
            raise DetectionError(f"Face detection failed: {e}") from e

        self.detected_faces = observations
        return DetectionBatch(
            mode=DetectionMode.CAPTURE,
            observations=observations,
            frame=frame,
            generation=self._generation,
        )

    def is_current(self, generation: int) -> bool:
        return generation == self._generation
