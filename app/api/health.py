"""
Health check endpoint.
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import get_service
from domains.image_transcription.service import TranscriptionService

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    watcher_running: bool
    active_jobs: int
    pending_jobs: int
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(service: TranscriptionService = Depends(get_service)):
    """
    Health check endpoint.

    Verifies:
    - API is running
    - Vault watcher is running
    """
    watcher_running = service.watcher.is_running

    return HealthResponse(
        status="healthy" if watcher_running else "degraded",
        timestamp=datetime.now(),
        watcher_running=watcher_running,
        active_jobs=service.queue.active_count,
        pending_jobs=service.queue.pending_count,
        version=service.settings.api_version
    )
