"""Face detector interface."""
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ..entities.face import DetectionObservation


class FaceDetector(ABC):
    """Interface to the external face detector/encoder."""

    @abstractmethod
    async def load(self) -> None:
        """
        Load the detector models.

        Raises:
            ModelLoadError: If the models cannot be loaded
        """
        pass

    @abstractmethod
    async def detect(
        self,
        frame: np.ndarray,
        with_descriptors: bool = True,
    ) -> List[DetectionObservation]:
        """
        Detect faces in a frame.

        Args:
            frame: BGR frame from the camera
            with_descriptors: Also extract a descriptor per face. Landmark-only
                detection skips this step for speed.

        Returns:
            Zero or more observations, indexed in detection order. Boxes and
            descriptors are passed through unvalidated.

        Raises:
            DetectionError: If the detector fails on the frame
        """
        pass
