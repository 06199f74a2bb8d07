"""Face detector adapters."""
from .face_recognition_detector import FaceRecognitionDetector

__all__ = ["FaceRecognitionDetector"]
