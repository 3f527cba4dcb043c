"""User-facing notifications, written to the log and kept for the admin API."""

from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, List

from loguru import logger

from app.utils.helpers import truncate

COMPACT_MAX_LENGTH = 100


class Notifier:
    """Reports progress and failures to the user."""

    def __init__(self, verbose: bool = False, compact: bool = False, keep: int = 50):
        """
        Initialize notifier.

        Args:
            verbose: Whether verbose notices are shown
            compact: Shorten long messages (small screens)
            keep: Number of recent notices to remember
        """
        self.verbose_enabled = verbose
        self.compact = compact
        self._recent: Deque[Dict[str, str]] = deque(maxlen=keep)

    def _format(self, message: str) -> str:
        if self.compact:
            return truncate(message, COMPACT_MAX_LENGTH)
        return message

    def _record(self, level: str, message: str):
        self._recent.append({
            "level": level,
            "message": message,
            "ts": datetime.now(timezone.utc).isoformat(),
        })

    def info(self, message: str):
        message = self._format(message)
        logger.info(message)
        self._record("info", message)

    def success(self, message: str):
        message = self._format(message)
        logger.success(message)
        self._record("success", message)

    def error(self, message: str):
        message = self._format(f"Error: {message}")
        logger.error(message)
        self._record("error", message)

    def verbose(self, message: str):
        """Only shown when verbose notifications are enabled."""
        if not self.verbose_enabled:
            return
        message = self._format(message)
        logger.info(message)
        self._record("verbose", message)

    def recent(self) -> List[Dict[str, str]]:
        return list(self._recent)
