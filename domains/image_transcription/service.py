"""
Service wiring for the Image Transcription domain.

Builds every collaborator from a single ``Settings`` instance and owns the
watcher and queue lifecycle.
"""

import asyncio
from typing import Optional, Union

import httpx
from loguru import logger

from app.utils.config import Settings

from .history import ProcessedHistory
from .imaging import CompressionOptions, HeicConverter, ImageCompressor
from .job import ProcessingJob
from .notes import NoteCreator
from .notifications import Notifier
from .paths import VaultPath
from .pipeline import ImagePipeline
from .providers import build_transcription_provider
from .queue import ProcessingQueue
from .storage import LocalVaultStorage
from .watcher import VaultWatcher


class TranscriptionService:
    """Queue, pipeline and watcher for one vault."""

    def __init__(
        self,
        settings: Settings,
        storage: LocalVaultStorage,
        history: ProcessedHistory,
        notifier: Notifier,
        pipeline: ImagePipeline,
        queue: ProcessingQueue,
        watcher: VaultWatcher,
    ):
        self.settings = settings
        self.storage = storage
        self.history = history
        self.notifier = notifier
        self.pipeline = pipeline
        self.queue = queue
        self.watcher = watcher

    async def start(self, watch: bool = True):
        """Start watching the vault for new images."""
        logger.info(f"Vault: {self.storage.root}")
        logger.info(f"Max concurrent jobs: {self.queue.concurrency_limit}")
        if watch:
            self.watcher.start(asyncio.get_running_loop())

    async def stop(self):
        """Stop the watcher and let in-flight jobs finish."""
        self.watcher.stop()
        try:
            await asyncio.wait_for(self.queue.join(), timeout=self.settings.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Shutdown timeout reached with {len(self.queue)} job(s) unfinished"
            )

    async def submit(self, path: Union[str, VaultPath]) -> Optional[ProcessingJob]:
        """
        Queue an image by hand (admin API, CLI).

        Args:
            path: Vault-relative path

        Returns:
            The new job, or None if the queue rejected it

        Raises:
            ValueError: If the path leaves the vault, is hidden or is not a
                supported image
        """
        if not isinstance(path, VaultPath):
            path = VaultPath(path)
        if path.is_root or path.is_hidden:
            raise ValueError(f"Not a visible file in the vault: {path}")
        if not path.is_image:
            raise ValueError(f"Not a supported image: {path}")
        return await self.queue.enqueue(path)


def build_transcription_service(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TranscriptionService:
    """
    Create a fully wired service.

    Args:
        settings: Application settings
        transport: Optional httpx transport for the transcription provider

    Returns:
        TranscriptionService (not started)
    """
    storage = LocalVaultStorage(settings.vault_root)
    history = ProcessedHistory(settings.get_state_file())
    notifier = Notifier(
        verbose=settings.verbose_notifications,
        compact=settings.compact_notifications,
    )

    options = CompressionOptions(
        max_size_mb=settings.compression_max_size_mb,
        max_width_or_height=settings.compression_max_dimension,
        quality=settings.compression_quality,
    )

    pipeline = ImagePipeline(
        settings=settings,
        storage=storage,
        converter=HeicConverter(storage, quality=settings.heic_quality),
        compressor=ImageCompressor(storage, options),
        provider=build_transcription_provider(settings, transport=transport),
        notes=NoteCreator(storage, notifier, settings.use_first_line_as_title),
        history=history,
        notifier=notifier,
    )

    queue = ProcessingQueue(
        pipeline,
        concurrency_limit=settings.max_concurrent_jobs,
        admission_filter=storage.is_file,
    )

    watcher = VaultWatcher(queue, storage, ready_delay=settings.ready_delay)

    return TranscriptionService(
        settings=settings,
        storage=storage,
        history=history,
        notifier=notifier,
        pipeline=pipeline,
        queue=queue,
        watcher=watcher,
    )
