"""Configuration settings for the attendance station."""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    These settings are loaded from environment variables with the following precedence:
    1. Environment variables
    2. .env file
    3. Default values

    Attributes:
        BACKEND_API_URL: Base URL of the attendance REST backend (including the /api prefix)
        BACKEND_API_TOKEN: Bearer token used on every backend call
        RECOGNITION_THRESHOLD: Maximum Euclidean distance (exclusive) for a descriptor match
        CONFIDENCE_THRESHOLD: Minimum confidence (1 - distance) for an attendance submission
        RECOGNITION_COOLDOWN: Seconds a student stays in the auto-mode cooldown after submission
        REFRESH_COOLDOWN: Minimum seconds between two attendance log refreshes
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        env_nested_delimiter="__"
    )

    # Core Settings
    PROJECT_NAME: str = "Attendance Station"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins(self) -> List[str]:
        """Get list of allowed origins."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    # Backend Settings
    BACKEND_API_URL: str = "http://localhost:5000/api"
    BACKEND_API_TOKEN: str = ""
    BACKEND_TIMEOUT: float = 10.0

    # Recognition Settings
    RECOGNITION_THRESHOLD: float = 0.4
    CONFIDENCE_THRESHOLD: float = 0.7

    # Detection loop timing (seconds)
    AUTO_DETECT_INTERVAL: float = 1.5
    LANDMARK_DETECT_INTERVAL: float = 0.1
    RECOGNITION_COOLDOWN: float = 10.0
    REFRESH_COOLDOWN: float = 3.0

    # Detector Settings
    DETECTION_MODEL: str = "hog"  # "hog" (CPU) or "cnn" (CUDA builds of dlib)
    DETECTION_UPSAMPLE: int = 1
    DETECTION_SCALE: float = 0.5  # Frames are downscaled before detection

    # Camera Settings
    CAMERA_SOURCE: str = "0"  # Device index or stream URL
    SNAPSHOT_WIDTH: int = 320
    SNAPSHOT_HEIGHT: int = 240

    # Optional settings with defaults
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

settings = Settings()
