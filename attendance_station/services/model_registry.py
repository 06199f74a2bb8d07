"""Process-wide registry tracking whether the detector models are loaded."""
import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from attendance_station.core.exceptions import ModelLoadError
from attendance_station.core.logging import get_logger

logger = get_logger(__name__)


class ModelState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class ModelRegistry:
    """Loads the detector models once per process.

    Concurrent ``load()`` calls share the same attempt. A failed attempt
    leaves the registry in ``FAILED``; the next ``load()`` retries.
    """

    def __init__(self, loader: Callable[[], Awaitable[None]]) -> None:
        """Initialize the registry.

        Args:
            loader: Coroutine function that loads the models
        """
        self._loader = loader
        self._state = ModelState.UNLOADED
        self._loading: Optional[asyncio.Future] = None
        self.last_error: Optional[str] = None

    @property
    def state(self) -> ModelState:
        return self._state

    def is_ready(self) -> bool:
        return self._state == ModelState.LOADED

    async def load(self) -> None:
        """Load the models unless already loaded.

        Raises:
            ModelLoadError: If loading fails
        """
        if self._state == ModelState.LOADED:
            return
        if self._loading is not None:
            await asyncio.shield(self._loading)
            return

        self._state = ModelState.LOADING
        self._loading = asyncio.get_running_loop().create_future()
        logger.info("Loading face detection models")
        try:
            await self._loader()
        except Exception as e:
            self._state = ModelState.FAILED
            self.last_error = str(e)
            error = e if isinstance(e, ModelLoadError) else ModelLoadError(
                f"Could not load face recognition models: {e}"
            )
            self._loading.set_exception(error)
            # Waiters re-raise it; mark it retrieved for the loader's own path
            self._loading.exception()
            logger.error("Face detection models failed to load", error=str(e), exc_info=True)
            raise error from e
        else:
            self._state = ModelState.LOADED
            self.last_error = None
            self._loading.set_result(None)
            logger.info("Face detection models loaded")
        finally:
            self._loading = None
