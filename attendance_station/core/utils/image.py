"""
Image processing utility functions.
"""
import base64
from typing import Optional

import cv2
import numpy as np

JPEG_DATA_URL_PREFIX = "data:image/jpeg;base64,"


def encode_jpeg(image: np.ndarray, quality: int = 90) -> bytes:
    """Encode a BGR frame as JPEG bytes.

    Args:
        image: Frame as a numpy array (BGR)
        quality: JPEG quality (0-100)

    Returns:
        bytes: Encoded JPEG data

    Raises:
        ValueError: If the frame cannot be encoded
    """
    ok, buffer = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise ValueError("Failed to encode frame as JPEG")
    return buffer.tobytes()


def encode_snapshot(
    frame: Optional[np.ndarray],
    width: int,
    height: int,
) -> Optional[str]:
    """Build the evidence snapshot sent with an auto-matched attendance record.

    The frame is resized to ``width`` x ``height`` and returned as a JPEG data URL,
    the format the backend strips before writing the image to disk.

    Args:
        frame: Frame the face was detected in (BGR), or None
        width: Snapshot width in pixels
        height: Snapshot height in pixels

    Returns:
        Data URL string, or None when no frame is available
    """
    if frame is None or frame.size == 0:
        return None

    resized = cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)
    encoded = base64.b64encode(encode_jpeg(resized, quality=80)).decode("ascii")
    return f"{JPEG_DATA_URL_PREFIX}{encoded}"
