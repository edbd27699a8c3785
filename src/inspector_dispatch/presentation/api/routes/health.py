"""Health check endpoints."""

from fastapi import APIRouter

from src.inspector_dispatch.infrastructure.logging import SERVICE_NAME

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Inspector Dispatch API", "version": "0.1.0"}
