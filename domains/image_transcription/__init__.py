"""
Image Transcription Domain

Turns new image files in a vault into AI-transcribed notes:
- Watchers → detect new images and hand them to the processing queue
- Queue → admits, deduplicates and schedules jobs under a concurrency limit
- Pipeline → convert, compress, move, transcribe, write the note, record history
"""

__all__ = [
    "destinations",
    "errors",
    "history",
    "imaging",
    "job",
    "notes",
    "notifications",
    "paths",
    "pipeline",
    "providers",
    "queue",
    "service",
    "storage",
    "watcher",
]
