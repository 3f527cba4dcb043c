"""
Pydantic models for the Image Transcriber API.

Shared data models across the application.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# =====================================================
# Queue Models
# =====================================================

class JobView(BaseModel):
    """Processing job as reported by the API."""
    initial_file: str
    working_file: str
    status: str  # pending, processing, done, error
    error: Optional[str] = None
    created_at: datetime
    finished_at: Optional[datetime] = None


class QueueStatus(BaseModel):
    """Queue snapshot."""
    concurrency_limit: int
    active: int
    pending: int
    jobs: List[JobView] = Field(default_factory=list)
    finished: List[JobView] = Field(default_factory=list)


class EnqueueRequest(BaseModel):
    """Manual enqueue request."""
    path: str = Field(..., min_length=1, description="Vault-relative image path")


class ConcurrencyRequest(BaseModel):
    """Concurrency limit update."""
    limit: int = Field(..., ge=1)


class ConcurrencyResponse(BaseModel):
    """Effective concurrency limit."""
    limit: int


# =====================================================
# History Models
# =====================================================

class HistoryResponse(BaseModel):
    """Processed image paths."""
    count: int
    paths: List[str]


class ClearHistoryResponse(BaseModel):
    """Result of clearing the processed history."""
    status: str
    cleared: int


# =====================================================
# Notification Models
# =====================================================

class Notice(BaseModel):
    """User-facing notification."""
    level: str
    message: str
    ts: datetime
