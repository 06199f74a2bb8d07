"""Overlay drawing of detections and recognition results on camera frames."""
from typing import Dict, Optional, Sequence

import cv2
import numpy as np

from attendance_station.core.config import settings
from attendance_station.core.logging import get_logger
from attendance_station.core.utils.image import encode_jpeg
from attendance_station.domain.entities.face import DetectionObservation
from attendance_station.domain.value_objects.recognition import MatchResult

logger = get_logger(__name__)

# BGR
RECOGNIZED_COLOR = (80, 175, 76)   # Confident match
UNCERTAIN_COLOR = (7, 193, 255)    # Match below the confidence threshold
DETECTED_COLOR = (243, 150, 33)    # Face without recognition data
LANDMARK_COLOR = (255, 255, 255)
LABEL_BACKGROUND = (0, 0, 0)
TEXT_COLOR = (255, 255, 255)


class OverlayRenderer:
    """Keeps the latest annotated frame for display.

    ``clear()`` drops it, which is what stopping a mode or an erroring cycle
    does.
    """

    def __init__(self, confidence_threshold: Optional[float] = None) -> None:
        self.confidence_threshold = (
            settings.CONFIDENCE_THRESHOLD if confidence_threshold is None else confidence_threshold
        )
        self.show_landmarks = True
        self._frame: Optional[np.ndarray] = None

    @property
    def has_frame(self) -> bool:
        return self._frame is not None

    def clear(self) -> None:
        self._frame = None

    def draw(
        self,
        frame: np.ndarray,
        observations: Sequence[DetectionObservation],
        results: Sequence[MatchResult] = (),
    ) -> np.ndarray:
        """
        Draw boxes, labels and landmarks for one cycle.

        Args:
            frame: Frame the observations were taken from
            observations: Detections of the cycle
            results: Recognition results, linked by detection index

        Returns:
            The annotated copy, also kept as the current overlay
        """
        img_draw = frame.copy()
        by_index: Dict[int, MatchResult] = {r.detection_index: r for r in results}

        font_scale = 0.5
        thickness = 2
        padding = 5

        for observation in observations:
            box = observation.box
            if not box.is_valid():
                logger.warning("Skipping drawing for invalid box", index=observation.index)
                continue

            x1, y1 = int(box.x), int(box.y)
            x2, y2 = int(box.x + box.width), int(box.y + box.height)

            recognized = by_index.get(observation.index)
            if recognized is None:
                color = DETECTED_COLOR
                label = "Recognizing..."
            else:
                color = RECOGNIZED_COLOR if recognized.confidence > self.confidence_threshold else UNCERTAIN_COLOR
                label = f"{recognized.name or 'Unknown'} ({recognized.confidence * 100:.1f}%)"

            cv2.rectangle(img_draw, (x1, y1), (x2, y2), color, thickness)

            (text_width, text_height), _ = cv2.getTextSize(
                label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, 1
            )
            cv2.rectangle(
                img_draw,
                (x1, y1 - text_height - padding * 2),
                (x1 + text_width + padding * 2, y1),
                LABEL_BACKGROUND,
                -1
            )
            cv2.putText(
                img_draw,
                label,
                (x1 + padding, y1 - padding),
                cv2.FONT_HERSHEY_SIMPLEX,
                font_scale,
                TEXT_COLOR,
                1
            )

            if self.show_landmarks and observation.landmarks:
                for points in observation.landmarks.values():
                    for px, py in points:
                        cv2.circle(img_draw, (int(px), int(py)), 1, LANDMARK_COLOR, -1)

        self._frame = img_draw
        return img_draw

    def to_jpeg(self) -> Optional[bytes]:
        if self._frame is None:
            return None
        return encode_jpeg(self._frame)
