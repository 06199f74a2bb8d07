"""OpenCV video capture camera."""
import asyncio
import threading
from typing import Optional, Union

import cv2
import numpy as np

from attendance_station.core.config import settings
from attendance_station.core.exceptions import CameraError, CameraNotReadyError
from attendance_station.core.logging import get_logger
from attendance_station.domain.interfaces.camera import Camera

logger = get_logger(__name__)

FIRST_FRAME_ATTEMPTS = 10


def parse_source(source: str) -> Union[int, str]:
    """Device indexes are given as digits, anything else is a stream URL or path."""
    source = source.strip()
    return int(source) if source.isdigit() else source


class OpenCVCamera(Camera):
    """Camera reading from a local device or a video stream.

    Reads are blocking and run in a worker thread; a lock keeps the landmark
    loop, the auto loop and a manual capture from reading concurrently.
    """

    def __init__(self, source: Optional[str] = None) -> None:
        self.source = parse_source(source if source is not None else settings.CAMERA_SOURCE)
        self._capture: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def open(self) -> None:
        if self._ready:
            return
        await asyncio.to_thread(self._open)
        logger.info("Camera opened", source=self.source)

    def _open(self) -> None:
        with self._lock:
            capture = cv2.VideoCapture(self.source)
            if not capture.isOpened():
                capture.release()
                raise CameraError(
                    f"Could not open camera {self.source}: the device is unavailable or in use",
                    details={"source": str(self.source)},
                )
            for _ in range(FIRST_FRAME_ATTEMPTS):
                ok, frame = capture.read()
                if ok and frame is not None:
                    break
            else:
                capture.release()
                raise CameraError(
                    f"Camera {self.source} opened but gives no frames",
                    details={"source": str(self.source)},
                )
            self._capture = capture
            self._ready = True

    async def read_frame(self) -> np.ndarray:
        if not self._ready:
            raise CameraNotReadyError("Camera is not ready")
        return await asyncio.to_thread(self._read)

    def _read(self) -> np.ndarray:
        with self._lock:
            if self._capture is None:
                raise CameraNotReadyError("Camera is not ready")
            ok, frame = self._capture.read()
        if not ok or frame is None:
            raise CameraError(f"Could not read a frame from camera {self.source}")
        return frame

    def stop(self) -> None:
        self._ready = False
        with self._lock:
            if self._capture is not None:
                self._capture.release()
                self._capture = None
                logger.info("Camera released", source=self.source)
