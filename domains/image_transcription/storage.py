"""
Vault storage adapter.

Filesystem access for the pipeline, expressed in vault-relative paths.
Blocking calls run in worker threads so a slow disk never stalls the
event loop. Paths written or moved here are remembered briefly so the
watcher can tell the pipeline's own files apart from new arrivals.
"""

import asyncio
import os
import threading
import time
from pathlib import Path
from typing import Dict, Protocol

from loguru import logger

from .paths import VaultPath


class Storage(Protocol):
    """Storage operations the pipeline depends on."""

    async def exists(self, path: VaultPath) -> bool: ...

    async def is_file(self, path: VaultPath) -> bool: ...

    async def create_folder(self, path: VaultPath) -> None: ...

    async def move(self, file: VaultPath, new_path: VaultPath) -> VaultPath: ...

    async def read_bytes(self, file: VaultPath) -> bytes: ...

    async def write_bytes(self, path: VaultPath, data: bytes) -> VaultPath: ...

    async def write_note(self, path: VaultPath, content: str) -> VaultPath: ...


class LocalVaultStorage:
    """Storage backed by a directory on the local filesystem."""

    def __init__(self, root: Path, self_write_window: float = 5.0):
        """
        Initialize storage.

        Args:
            root: Vault root directory
            self_write_window: Seconds a self-written path stays recognisable
        """
        self.root = Path(root).expanduser().resolve()
        self.self_write_window = self_write_window
        self._self_written: Dict[str, float] = {}
        self._lock = threading.Lock()

    def absolute(self, path: VaultPath) -> Path:
        return path.to_absolute(self.root)

    def _remember(self, path: VaultPath):
        with self._lock:
            self._self_written[path.key] = time.monotonic()

    def consume_self_written(self, path: VaultPath) -> bool:
        """
        Check whether ``path`` was recently written by this adapter.

        The record is removed on a hit, and stale records are pruned.

        Returns:
            True if the path was written or moved here within the window
        """
        now = time.monotonic()
        with self._lock:
            stale = [k for k, ts in self._self_written.items() if now - ts > self.self_write_window]
            for k in stale:
                del self._self_written[k]
            return self._self_written.pop(path.key, None) is not None

    async def exists(self, path: VaultPath) -> bool:
        return await asyncio.to_thread(self.absolute(path).exists)

    async def is_file(self, path: VaultPath) -> bool:
        return await asyncio.to_thread(self.absolute(path).is_file)

    async def create_folder(self, path: VaultPath) -> None:
        target = self.absolute(path)
        await asyncio.to_thread(target.mkdir, parents=True, exist_ok=True)
        logger.debug(f"Folder ready: {path.path or '/'}")

    async def move(self, file: VaultPath, new_path: VaultPath) -> VaultPath:
        """
        Move a file inside the vault.

        Raises:
            FileExistsError: If something already occupies ``new_path``
            OSError: If the rename fails
        """
        source = self.absolute(file)
        target = self.absolute(new_path)

        def _move():
            if target.exists():
                raise FileExistsError(f"Target already exists: {new_path}")
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, target)

        self._remember(new_path)
        await asyncio.to_thread(_move)
        logger.debug(f"Moved {file} -> {new_path}")
        return new_path

    async def read_bytes(self, file: VaultPath) -> bytes:
        return await asyncio.to_thread(self.absolute(file).read_bytes)

    async def write_bytes(self, path: VaultPath, data: bytes) -> VaultPath:
        """Create or overwrite a binary file."""
        target = self.absolute(path)

        def _write():
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        self._remember(path)
        await asyncio.to_thread(_write)
        return path

    async def write_note(self, path: VaultPath, content: str) -> VaultPath:
        """
        Create a new text note.

        Raises:
            FileExistsError: If the note already exists
        """
        target = self.absolute(path)

        def _write():
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "x", encoding="utf-8") as f:
                f.write(content)

        self._remember(path)
        await asyncio.to_thread(_write)
        return path
