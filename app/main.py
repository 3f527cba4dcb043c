"""
Image Transcriber - Main FastAPI Application

Watches a vault for new images and turns each one into an AI-transcribed note:
- Processing queue with per-path deduplication and a concurrency limit
- Pipeline: HEIC conversion, compression, move, transcription, note creation
- Processed history so images are never transcribed twice
- Admin endpoints for queue, history and notifications
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
import sys

from app.utils.config import get_settings
from app.api import health, admin
from domains.image_transcription.service import build_transcription_service


settings = get_settings()

# Configure logging
logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
    level=settings.log_level.upper()
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(f"Starting {settings.api_title} v{settings.api_version}")

    try:
        service = build_transcription_service(settings)
        await service.start()
        app.state.service = service
        logger.success("Transcription service started")
    except Exception as e:
        logger.error(f"Failed to start transcription service: {e}")
        raise

    yield

    # Cleanup
    logger.info("Shutting down application...")
    await service.stop()
    logger.success("Application shut down complete")


# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="Turns new vault images into AI-transcribed notes",
    lifespan=lifespan
)


# Exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.log_level == "DEBUG" else "An error occurred"
        }
    )


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Image Transcriber",
        "version": settings.api_version,
        "status": "operational",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="127.0.0.1",
        port=settings.api_port,
        log_level=settings.log_level.lower()
    )
