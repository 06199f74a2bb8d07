"""
dlib-based implementation of the face detector.

This module wraps the ``face_recognition`` library: HOG or CNN face
detection, the 68-point landmark model and the 128-d face encoder.

Key Features:
    - Detection on a downscaled copy of the frame for speed
    - Boxes and landmarks mapped back to full-frame pixel coordinates
    - Descriptor extraction only when asked for

Example:
    ```python
    detector = FaceRecognitionDetector()
    await detector.load()
    observations = await detector.detect(frame)
    ```

Note:
    ``DETECTION_MODEL=cnn`` needs a CUDA build of dlib; the default HOG
    model runs on the CPU.
"""
import asyncio
from typing import List, Optional, Tuple

import cv2
import face_recognition
import numpy as np

from attendance_station.core.config import settings
from attendance_station.core.exceptions import DetectionError, ModelLoadError
from attendance_station.core.logging import get_logger
from attendance_station.domain.entities.face import BoundingBox, DetectionObservation, Landmarks
from attendance_station.domain.interfaces.detector import FaceDetector

logger = get_logger(__name__)

# (top, right, bottom, left), as returned by face_recognition
Location = Tuple[int, int, int, int]


class FaceRecognitionDetector(FaceDetector):
    """
    Face detector backed by dlib through ``face_recognition``.

    Detection is CPU bound and runs in a worker thread so the event loop
    keeps serving the API and the other timers.

    Attributes:
        model: "hog" or "cnn"
        upsample: Times the image is upsampled when looking for faces
        scale: Factor applied to frames before detection
    """

    def __init__(
        self,
        model: Optional[str] = None,
        upsample: Optional[int] = None,
        scale: Optional[float] = None,
    ) -> None:
        self.model = model or settings.DETECTION_MODEL
        self.upsample = settings.DETECTION_UPSAMPLE if upsample is None else upsample
        self.scale = settings.DETECTION_SCALE if scale is None else scale
        if not 0 < self.scale <= 1:
            raise ValueError(f"Detection scale must be in (0, 1], got {self.scale}")

    async def load(self) -> None:
        """Run one detection on a blank frame so dlib's models are in memory."""
        try:
            await asyncio.to_thread(self._warm_up)
        except Exception as e:
            raise ModelLoadError(f"Could not load face recognition models: {e}") from e
        logger.info("Face detector ready", model=self.model, scale=self.scale)

    def _warm_up(self) -> None:
        blank = np.zeros((120, 160, 3), dtype=np.uint8)
        face_recognition.face_locations(blank, number_of_times_to_upsample=0, model=self.model)
        face_recognition.face_encodings(blank, known_face_locations=[(10, 110, 110, 10)])

    async def detect(
        self,
        frame: np.ndarray,
        with_descriptors: bool = True,
    ) -> List[DetectionObservation]:
        if frame is None or frame.ndim != 3:
            raise DetectionError("Frame must be a colour image")
        try:
            return await asyncio.to_thread(self._detect, frame, with_descriptors)
        except DetectionError:
            raise
        except Exception as e:
            logger.error(
                "Face detection failed",
                error=str(e),
                frame_shape=frame.shape,
                exc_info=True
            )
            raise DetectionError(f"Face detection failed: {e}") from e

    def _detect(self, frame: np.ndarray, with_descriptors: bool) -> List[DetectionObservation]:
        if self.scale < 1:
            small = cv2.resize(frame, (0, 0), fx=self.scale, fy=self.scale, interpolation=cv2.INTER_AREA)
        else:
            small = frame
        rgb = cv2.cvtColor(small, cv2.COLOR_BGR2RGB)

        locations: List[Location] = face_recognition.face_locations(
            rgb, number_of_times_to_upsample=self.upsample, model=self.model
        )
        if not locations:
            return []

        landmarks = face_recognition.face_landmarks(rgb, face_locations=locations)
        descriptors: List[Optional[np.ndarray]] = [None] * len(locations)
        if with_descriptors:
            descriptors = face_recognition.face_encodings(rgb, known_face_locations=locations)

        observations = []
        for index, location in enumerate(locations):
            observations.append(
                DetectionObservation(
                    index=index,
                    box=self._to_box(location),
                    landmarks=self._to_landmarks(landmarks[index]) if index < len(landmarks) else None,
                    descriptor=descriptors[index] if index < len(descriptors) else None,
                )
            )

        logger.debug(
            "Faces detected",
            faces=len(observations),
            with_descriptors=with_descriptors
        )
        return observations

    def _to_box(self, location: Location) -> BoundingBox:
        top, right, bottom, left = location
        return BoundingBox(
            x=left / self.scale,
            y=top / self.scale,
            width=(right - left) / self.scale,
            height=(bottom - top) / self.scale,
        )

    def _to_landmarks(self, points: dict) -> Landmarks:
        return {
            feature: [(x / self.scale, y / self.scale) for x, y in coords]
            for feature, coords in points.items()
        }
