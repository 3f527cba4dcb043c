"""
Processed-image history.

Durable record of final image paths that completed the whole pipeline.
The list lives in the persisted state blob under ``processed_image_paths``;
other keys in the blob are left alone.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List

from loguru import logger

from .paths import VaultPath

HISTORY_KEY = "processed_image_paths"


def load_state(path: Path) -> Dict[str, Any]:
    """Read the state blob, returning an empty dict when missing or unreadable."""
    if not path.is_file():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"State file unreadable, starting fresh: {path} ({e})")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"State file is not an object, starting fresh: {path}")
        return {}
    return data


def dump_state(path: Path, state: Dict[str, Any]) -> None:
    """Persist ``state`` as prettified JSON via an atomic rename."""
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path.write_text(json.dumps(state, indent=2), encoding="utf-8")
    tmp_path.replace(path)


class ProcessedHistory:
    """Set of processed image paths backed by the state file."""

    def __init__(self, state_file: Path):
        """
        Load history from ``state_file``.

        Missing or malformed entries load as an empty history.
        """
        self.state_file = Path(state_file)
        self._state = load_state(self.state_file)
        self._paths: List[str] = self._sanitize(self._state.get(HISTORY_KEY))
        self._members = set(self._paths)
        self._lock = asyncio.Lock()
        logger.info(f"Processed history loaded: {len(self._paths)} entries")

    @staticmethod
    def _sanitize(raw: Any) -> List[str]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("Processed image paths missing or invalid. Initializing as empty list.")
            return []
        paths: List[str] = []
        seen = set()
        for entry in raw:
            if not isinstance(entry, str):
                logger.warning(f"Dropping invalid processed path entry: {entry!r}")
                continue
            try:
                key = VaultPath(entry).key
            except ValueError:
                logger.warning(f"Dropping processed path outside the vault: {entry!r}")
                continue
            if key and key not in seen:
                seen.add(key)
                paths.append(key)
        return paths

    def __len__(self) -> int:
        return len(self._paths)

    def contains(self, path: VaultPath) -> bool:
        return path.key in self._members

    def paths(self) -> List[str]:
        return list(self._paths)

    async def _persist(self):
        self._state[HISTORY_KEY] = list(self._paths)
        await asyncio.to_thread(dump_state, self.state_file, dict(self._state))

    async def add(self, path: VaultPath) -> bool:
        """
        Record ``path`` as processed and persist before returning.

        Returns:
            True if the path was new
        """
        async with self._lock:
            if path.key in self._members:
                return False
            self._paths.append(path.key)
            self._members.add(path.key)
            try:
                await self._persist()
            except Exception:
                self._paths.remove(path.key)
                self._members.discard(path.key)
                raise
            logger.debug(f"Recorded processed path: {path}")
            return True

    async def clear(self) -> int:
        """
        Forget every processed path.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            previous = list(self._paths)
            removed = len(previous)
            self._paths.clear()
            self._members.clear()
            try:
                await self._persist()
            except Exception:
                self._paths.extend(previous)
                self._members.update(previous)
                raise
            logger.info(f"Processed history cleared ({removed} entries)")
            return removed
