"""API v1 router initialization."""
from fastapi import APIRouter

from .stations import router as stations_router

# Create v1 router
router = APIRouter()

# Include attendance station endpoints
router.include_router(
    stations_router,
    prefix="/stations",
    tags=["stations"]
)
