"""Camera adapters."""
from .opencv_camera import OpenCVCamera

__all__ = ["OpenCVCamera"]
