"""
Note creation.

Writes a markdown note holding the transcription and an embed link to the
image, under a title derived from the text or from folder, date and image
name.
"""

import re
from datetime import datetime
from typing import Optional, Protocol

from loguru import logger

from app.utils.helpers import formatted_date, sanitize_filename

from .notifications import Notifier
from .paths import VaultPath
from .storage import Storage

MAX_TITLE_LENGTH = 100
MAX_UNIQUE_ATTEMPTS = 1000


class NoteMaterializer(Protocol):
    async def create_note(
        self, text: str, image: VaultPath, folder: VaultPath
    ) -> Optional[VaultPath]: ...


def first_line_title(transcription: str) -> str:
    """Sanitized first non-empty line, without markdown heading markers."""
    for line in transcription.strip().splitlines():
        line = re.sub(r"^\s*#+\s*", "", line).strip()
        if line:
            return sanitize_filename(line)
    return ""


def folder_date_title(image: VaultPath, moment: Optional[datetime] = None) -> str:
    """Title in the form <folder>_<YYYYMMDD>_<image name>."""
    folder_name = image.parent_name or "Root"
    return f"{folder_name}_{formatted_date(moment)}_{sanitize_filename(image.stem)}"


class NoteCreator:
    """Materializes transcriptions as notes."""

    def __init__(self, storage: Storage, notifier: Notifier, use_first_line_as_title: bool = True):
        self.storage = storage
        self.notifier = notifier
        self.use_first_line_as_title = use_first_line_as_title

    def generate_title(self, transcription: str, image: VaultPath) -> str:
        if self.use_first_line_as_title:
            title = first_line_title(transcription) or f"Transcription for {image.stem}"
        else:
            title = folder_date_title(image)
        return title[:MAX_TITLE_LENGTH].strip() or image.stem

    async def unique_note_path(self, folder: VaultPath, title: str) -> VaultPath:
        """Append _1, _2, ... until the note name is free."""
        candidate = folder / f"{title}.md"
        counter = 0
        while await self.storage.exists(candidate):
            counter += 1
            if counter > MAX_UNIQUE_ATTEMPTS:
                raise FileExistsError(f"No free note name for '{title}' in '{folder}'")
            candidate = folder / f"{title}_{counter}.md"
        return candidate

    @staticmethod
    def render(transcription: str, image: VaultPath) -> str:
        return f"{transcription.strip()}\n\n![[{image.path}]]\n"

    async def create_note(
        self, text: str, image: VaultPath, folder: VaultPath
    ) -> Optional[VaultPath]:
        """
        Create a new note for a transcription.

        Args:
            text: Transcribed text
            image: Final image location
            folder: Folder the note goes into

        Returns:
            Path of the created note or None if creation failed
        """
        try:
            title = self.generate_title(text, image)
            content = self.render(text, image)
            for _ in range(3):
                note_path = await self.unique_note_path(folder, title)
                try:
                    await self.storage.write_note(note_path, content)
                    break
                except FileExistsError:
                    # Another job claimed the name between the check and the write
                    logger.debug(f"Note name taken, retrying: {note_path}")
            else:
                raise FileExistsError(f"Could not claim a note name for '{title}'")

            self.notifier.success(f"Note created: {note_path.stem}")
            return note_path

        except Exception as e:
            logger.error(f"Note creation failed for {image}: {e}")
            return None
