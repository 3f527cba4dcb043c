"""
Vault watcher for the Image Transcription domain.

Monitors the vault for new image files and hands them to the processing
queue. Uses watchdog library for cross-platform file system event monitoring;
events arrive on the observer thread and are forwarded to the event loop.
"""

import asyncio
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Optional

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .paths import VaultPath
from .queue import ProcessingQueue
from .storage import LocalVaultStorage


class VaultEventHandler(FileSystemEventHandler):
    """Forwards newly created images to the processing queue."""

    def __init__(
        self,
        queue: ProcessingQueue,
        storage: LocalVaultStorage,
        loop: asyncio.AbstractEventLoop,
        ready_delay: float = 2.0,
    ):
        """
        Initialize event handler.

        Args:
            queue: Processing queue receiving new images
            storage: Vault storage (root and self-written paths)
            loop: Event loop the queue runs on
            ready_delay: Seconds to ignore events after start (initial scan)
        """
        super().__init__()
        self.queue = queue
        self.storage = storage
        self.loop = loop
        self.ready_at = time.monotonic() + ready_delay

    @property
    def is_ready(self) -> bool:
        return time.monotonic() >= self.ready_at

    def to_vault_path(self, raw_path: str) -> Optional[VaultPath]:
        return VaultPath.from_absolute(self.storage.root, Path(raw_path))

    def should_process(self, path: Optional[VaultPath]) -> bool:
        """
        Check if a created path should be transcribed.

        Args:
            path: Vault path of the event (None when outside the vault)

        Returns:
            True if should process, False otherwise
        """
        if path is None or path.is_root:
            return False

        # Skip hidden files and folders (state file lives there)
        if path.is_hidden:
            return False

        if not path.is_image:
            return False

        # Files the pipeline wrote itself (converted JPEGs, moved images)
        if self.storage.consume_self_written(path):
            logger.debug(f"Ignoring self-written file: {path}")
            return False

        if not self.is_ready:
            logger.debug(f"Watcher not ready, ignoring create event for: {path}")
            return False

        return True

    def submit(self, path: VaultPath) -> Future:
        logger.info(f"New image detected: {path}")
        return asyncio.run_coroutine_threadsafe(self.queue.enqueue(path), self.loop)

    def on_created(self, event: FileSystemEvent):
        """Handle file creation."""
        if event.is_directory:
            return

        path = self.to_vault_path(event.src_path)
        if self.should_process(path):
            self.submit(path)

    def on_moved(self, event: FileSystemEvent):
        """Treat a rename from a temporary name to an image name as a creation."""
        if event.is_directory:
            return

        src = self.to_vault_path(event.src_path)
        dest = self.to_vault_path(getattr(event, "dest_path", "") or "")

        # Image-to-image moves are renames of existing files, not new arrivals
        if src is not None and src.is_image:
            return

        if self.should_process(dest):
            self.submit(dest)


class VaultWatcher:
    """File system monitoring orchestrator."""

    def __init__(
        self,
        queue: ProcessingQueue,
        storage: LocalVaultStorage,
        ready_delay: float = 2.0,
    ):
        """Initialize vault watcher."""
        self.queue = queue
        self.storage = storage
        self.ready_delay = ready_delay
        self.observer: Optional[Observer] = None
        self.event_handler: Optional[VaultEventHandler] = None

    @property
    def is_running(self) -> bool:
        return self.observer is not None and self.observer.is_alive()

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """Start watching the vault root."""
        if self.is_running:
            return

        loop = loop or asyncio.get_running_loop()
        root = self.storage.root
        root.mkdir(parents=True, exist_ok=True)

        self.event_handler = VaultEventHandler(self.queue, self.storage, loop, self.ready_delay)
        self.observer = Observer()
        self.observer.schedule(self.event_handler, str(root), recursive=True)
        self.observer.daemon = True
        self.observer.start()
        logger.success(f"Started watching: {root}")

    def stop(self):
        """Stop watching."""
        if self.observer is None:
            return
        self.observer.stop()
        self.observer.join()
        self.observer = None
        logger.info("Vault watcher stopped")
