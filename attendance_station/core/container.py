"""Service container for dependency injection."""
from typing import Callable, Optional

from attendance_station.core.exceptions import ServiceNotInitializedError
from attendance_station.core.logging import bind_session_context, clear_session_context, get_logger

# Import interfaces
from attendance_station.domain.interfaces.backend import AttendanceBackend
from attendance_station.domain.interfaces.camera import Camera
from attendance_station.domain.interfaces.detector import FaceDetector

# Import concrete implementations used for instantiation
from attendance_station.infrastructure.backend import HttpAttendanceBackend
from attendance_station.infrastructure.camera import OpenCVCamera
from attendance_station.services.model_registry import ModelRegistry
from attendance_station.services.notifications import NotificationFeed
from attendance_station.services.station import AttendanceStation

logger = get_logger(__name__)

CameraFactory = Callable[[Optional[str]], Camera]


def default_detector() -> FaceDetector:
    # Deferred so the API and container import without dlib installed
    from attendance_station.infrastructure.detection import FaceRecognitionDetector

    return FaceRecognitionDetector()


class ServiceContainer:
    """Container for application services.

    Holds the process-wide backend client, detector and model registry, plus
    the single attendance station that may be open at a time. The models are
    loaded once per process and shared by every station.

    Example:
        ```python
        container = ServiceContainer()
        await container.initialize()

        station = await container.open_station(class_id, session_id)
        ...
        await container.cleanup()
        ```
    """

    def __init__(
        self,
        backend_factory: Callable[[], AttendanceBackend] = HttpAttendanceBackend,
        detector_factory: Callable[[], FaceDetector] = default_detector,
        camera_factory: CameraFactory = OpenCVCamera,
    ) -> None:
        """Initialize empty container."""
        self._backend_factory = backend_factory
        self._detector_factory = detector_factory
        self._camera_factory = camera_factory

        # Core services - Use interface type hints
        self.backend: Optional[AttendanceBackend] = None
        self.detector: Optional[FaceDetector] = None
        self.model_registry: Optional[ModelRegistry] = None

        self.station: Optional[AttendanceStation] = None

    @property
    def is_initialized(self) -> bool:
        return self.backend is not None

    async def initialize(self) -> None:
        """Initialize all services in the correct order."""
        self.backend = self._backend_factory()
        self.detector = self._detector_factory()
        self.model_registry = ModelRegistry(self.detector.load)
        logger.info("Service container initialized")

    async def open_station(
        self,
        class_id: str,
        session_id: str,
        camera_source: Optional[str] = None,
    ) -> AttendanceStation:
        """Open a station for a session, closing the current one first.

        Raises:
            ServiceNotInitializedError: If ``initialize()`` has not run
        """
        if not self.is_initialized:
            raise ServiceNotInitializedError("Service container is not initialized")

        await self.close_station()
        bind_session_context(class_id, session_id)
        station = AttendanceStation(
            class_id,
            session_id,
            backend=self.backend,
            detector=self.detector,
            camera=self._camera_factory(camera_source),
            models=self.model_registry,
            notices=NotificationFeed(),
        )
        self.station = station
        await station.open()
        return station

    async def close_station(self) -> None:
        if self.station is not None:
            self.station.close()
            self.station = None
            clear_session_context()

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        await self.close_station()

        self.model_registry = None
        self.detector = None

        if self.backend is not None:
            close = getattr(self.backend, "close", None)
            if close is not None:
                close()
            self.backend = None
        logger.info("Service container cleaned up")


# Global container instance
container = ServiceContainer()
