"""
Terminal pipeline failures.

Each stage that can halt a job raises one of these. ``reason`` is the
stage-specific text recorded on the job; ``detail`` carries the underlying
cause when there is one. Compression has no entry here: it degrades instead
of failing the job.
"""

from typing import Optional


class PipelineFailure(Exception):
    """Base class for failures that end a job in the error state."""

    reason = "processing failed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(self.message)

    @property
    def message(self) -> str:
        if self.detail:
            return f"{self.reason}: {self.detail}"
        return self.reason


class ConversionFailure(PipelineFailure):
    reason = "conversion failed"


class CollisionFailure(PipelineFailure):
    reason = "duplicate name in target folder"


class FolderFailure(PipelineFailure):
    reason = "folder handling failed"


class MoveFailure(PipelineFailure):
    reason = "file move error"


class TranscriptionFailure(PipelineFailure):
    reason = "transcription failed"


class NoteCreationFailure(PipelineFailure):
    reason = "note creation failed"


class InternalFailure(PipelineFailure):
    reason = "unexpected processing error"
