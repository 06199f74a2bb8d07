"""Camera interface."""
from abc import ABC, abstractmethod

import numpy as np


class Camera(ABC):
    """A live video source owned by exactly one station."""

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """True once the stream is open and has produced a frame."""
        pass

    @abstractmethod
    async def open(self) -> None:
        """
        Open the stream.

        Raises:
            CameraError: If the device cannot be opened or yields no frame
        """
        pass

    @abstractmethod
    async def read_frame(self) -> np.ndarray:
        """
        Grab the current frame.

        Raises:
            CameraNotReadyError: If the stream is not open
            CameraError: If the frame cannot be read
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Release the device. Safe to call more than once."""
        pass
