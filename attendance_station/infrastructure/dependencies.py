"""FastAPI dependency providers."""
from typing import AsyncGenerator

from fastapi import Depends, HTTPException

from attendance_station.core.container import ServiceContainer, container
from attendance_station.core.exceptions import ServiceNotInitializedError
from attendance_station.core.logging import bind_session_context
from attendance_station.services.station import AttendanceStation


async def get_container() -> ServiceContainer:
    """Dependency provider for the global ServiceContainer instance."""
    if not container.is_initialized:
        # Attempt to initialize if not already done (e.g., during testing)
        try:
            await container.initialize()
        except Exception as e:
            raise ServiceNotInitializedError(f"Service container could not be initialized: {e}")
    return container


async def get_station(
    cont: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[AttendanceStation, None]:
    """Provide the currently open attendance station.

    Yields:
        AttendanceStation: The open station

    Raises:
        HTTPException: 404 if no station is open
    """
    if cont.station is None:
        raise HTTPException(status_code=404, detail="No attendance station is open")
    bind_session_context(cont.station.class_id, cont.station.session_id)
    yield cont.station
