"""
Request dependencies shared by the routers.
"""

from fastapi import HTTPException, Request

from domains.image_transcription.service import TranscriptionService


def get_service(request: Request) -> TranscriptionService:
    """Return the service created during application startup."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Transcription service not started")
    return service
