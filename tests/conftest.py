import asyncio
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from app.utils.config import Settings
from domains.image_transcription.history import ProcessedHistory
from domains.image_transcription.notes import NoteCreator
from domains.image_transcription.notifications import Notifier
from domains.image_transcription.paths import VaultPath
from domains.image_transcription.pipeline import ImagePipeline
from domains.image_transcription.queue import ProcessingQueue
from domains.image_transcription.storage import LocalVaultStorage


class FakeProvider:
    """Transcription provider that counts calls and returns canned text."""

    def __init__(self, text: Optional[str] = "# Meeting notes\n\n- first point"):
        self.text = text
        self.calls = 0
        self.images: list[bytes] = []
        self.media_types: list[str] = []

    async def transcribe(self, image, system_prompt, user_prompt, media_type="image/jpeg"):
        self.calls += 1
        self.images.append(image)
        self.media_types.append(media_type)
        return self.text


class PassthroughCompressor:
    def __init__(self, result="same"):
        self.result = result
        self.calls = 0

    async def compress(self, file):
        self.calls += 1
        if self.result == "fail":
            return None
        if self.result == "raise":
            raise OSError("disk full")
        return file


class FakeConverter:
    """Writes ``<stem>.jpg`` beside HEIC files without decoding them."""

    def __init__(self, storage, fail: bool = False):
        self.storage = storage
        self.fail = fail

    def needs_conversion(self, file):
        return file.extension in ("heic", "heif")

    async def convert(self, file):
        if self.fail:
            return None
        target = file.with_extension("jpg")
        await self.storage.write_bytes(target, await self.storage.read_bytes(file))
        return target


class CountingNotes:
    """Wraps a NoteCreator and counts create_note calls."""

    def __init__(self, inner, fail: bool = False):
        self.inner = inner
        self.fail = fail
        self.calls = 0

    async def create_note(self, text, image, folder):
        self.calls += 1
        if self.fail:
            return None
        return await self.inner.create_note(text, image, folder)


class Harness:
    """A pipeline on a temporary vault with fake collaborators."""

    def __init__(
        self,
        settings: Settings,
        transcript: Optional[str] = "# Meeting notes\n\n- first point",
        compression: str = "same",
        converter_fail: bool = False,
        notes_fail: bool = False,
    ):
        self.settings = settings
        self.root = Path(settings.vault_root)
        self.storage = LocalVaultStorage(self.root)
        self.notifier = Notifier(verbose=True)
        self.history = ProcessedHistory(settings.get_state_file())
        self.provider = FakeProvider(transcript)
        self.compressor = PassthroughCompressor(compression)
        self.converter = FakeConverter(self.storage, fail=converter_fail)
        self.notes = CountingNotes(NoteCreator(self.storage, self.notifier), fail=notes_fail)
        self.pipeline = ImagePipeline(
            settings=settings,
            storage=self.storage,
            converter=self.converter,
            compressor=self.compressor,
            provider=self.provider,
            notes=self.notes,
            history=self.history,
            notifier=self.notifier,
        )

    def write(self, relative: str, data: bytes = b"image-bytes") -> Path:
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target

    def process(self, *relative: str):
        """Queue files, wait for the queue to drain and return the jobs."""

        async def scenario():
            queue = ProcessingQueue(self.pipeline, concurrency_limit=2, admission_filter=self.storage.is_file)
            jobs = [await queue.enqueue(VaultPath(path)) for path in relative]
            await queue.join()
            return jobs

        return asyncio.run(scenario())


def write_image(path: Path, size=(64, 48), fmt="JPEG", color=(200, 30, 30), **save_kwargs) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color=color).save(path, fmt, **save_kwargs)
    return path


@pytest.fixture
def vault(tmp_path):
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def settings(vault, tmp_path):
    return Settings(
        vault_root=vault,
        state_file=tmp_path / "state" / "state.json",
        openai_api_key="test-key",
    )


@pytest.fixture
def harness(settings):
    return Harness(settings)


@pytest.fixture
def make_harness(settings):
    def _make(settings=settings, **kwargs):
        return Harness(settings, **kwargs)

    return _make


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def image_writer():
    return write_image
