"""
Admin endpoints for queue and history management.

Includes:
- Queue status and manual enqueue
- Concurrency limit
- Processed history listing and reset
- Recent notifications
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from app.api.deps import get_service
from app.models.schemas import (
    ClearHistoryResponse,
    ConcurrencyRequest,
    ConcurrencyResponse,
    EnqueueRequest,
    HistoryResponse,
    JobView,
    Notice,
    QueueStatus,
)
from domains.image_transcription.service import TranscriptionService

router = APIRouter()


@router.get("/queue", response_model=QueueStatus)
async def get_queue_status(service: TranscriptionService = Depends(get_service)):
    """
    Get queue status.

    Returns:
        Concurrency limit, active and pending counts, queued and recently
        finished jobs
    """
    return QueueStatus(**service.queue.snapshot())


@router.post("/queue", response_model=JobView, status_code=202)
async def enqueue_image(request: EnqueueRequest, service: TranscriptionService = Depends(get_service)):
    """
    Queue an image already in the vault.

    Args:
        request: Vault-relative image path

    Returns:
        The queued job
    """
    logger.info(f"Manual enqueue requested: {request.path}")
    try:
        job = await service.submit(request.path)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if job is None:
        raise HTTPException(
            status_code=409,
            detail=f"{request.path} is already queued or is not a file in the vault",
        )

    return JobView(**job.as_dict())


@router.put("/queue/concurrency", response_model=ConcurrencyResponse)
async def set_concurrency(request: ConcurrencyRequest, service: TranscriptionService = Depends(get_service)):
    """
    Change the concurrency limit.

    Values are clamped to the supported range.
    """
    limit = service.queue.set_concurrency_limit(request.limit)
    return ConcurrencyResponse(limit=limit)


@router.get("/history", response_model=HistoryResponse)
async def get_history(service: TranscriptionService = Depends(get_service)):
    """List image paths that were already transcribed."""
    paths = service.history.paths()
    return HistoryResponse(count=len(paths), paths=paths)


@router.delete("/history", response_model=ClearHistoryResponse)
async def clear_history(service: TranscriptionService = Depends(get_service)):
    """
    Clear the processed history so images are transcribed again.

    In-flight jobs are not cancelled.
    """
    logger.info("Processed history reset requested")
    cleared = await service.history.clear()
    return ClearHistoryResponse(status="cleared", cleared=cleared)


@router.get("/notifications", response_model=List[Notice])
async def get_notifications(service: TranscriptionService = Depends(get_service)):
    """Recent user-facing notifications, oldest first."""
    return [Notice(**notice) for notice in service.notifier.recent()]
