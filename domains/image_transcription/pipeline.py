"""
Image processing pipeline.

Runs one job through the fixed stage sequence:

1. format normalization (HEIC -> JPEG)
2. size reduction (best effort)
3. destination resolution
4. folder provisioning
5. collision check
6. move
7. idempotency check against the processed history
8. transcription
9. note materialization
10. history commit

Terminal stage failures are raised as ``PipelineFailure`` subclasses and
reported once through the notifier. The file stays wherever the last
successful stage left it.
"""

from loguru import logger

from app.utils.config import Settings
from app.utils.helpers import mime_type_for

from .destinations import DestinationPlan, resolve_destinations
from .errors import (
    CollisionFailure,
    ConversionFailure,
    FolderFailure,
    InternalFailure,
    MoveFailure,
    NoteCreationFailure,
    PipelineFailure,
    TranscriptionFailure,
)
from .history import ProcessedHistory
from .imaging import Compressor, FormatConverter
from .job import ProcessingJob
from .notes import NoteMaterializer
from .notifications import Notifier
from .paths import VaultPath
from .providers import TranscriptionProvider
from .storage import Storage


class ImagePipeline:
    """Drives a single job from raw image to transcribed note."""

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        converter: FormatConverter,
        compressor: Compressor,
        provider: TranscriptionProvider,
        notes: NoteMaterializer,
        history: ProcessedHistory,
        notifier: Notifier,
    ):
        self.settings = settings
        self.storage = storage
        self.converter = converter
        self.compressor = compressor
        self.provider = provider
        self.notes = notes
        self.history = history
        self.notifier = notifier

    async def run(self, job: ProcessingJob) -> None:
        """
        Process ``job``.

        Returns normally when the job is done (including the already-processed
        case).

        Raises:
            PipelineFailure: When a stage fails terminally
        """
        name = job.initial_file.name
        try:
            self.notifier.info(f"Processing {name}...")
            await self._run_stages(job)

        except PipelineFailure as failure:
            logger.error(f"Job for {job.initial_file} failed: {failure}")
            self.notifier.error(f"Failed to process {name}: {failure}")
            raise

        except Exception as e:
            logger.exception(f"Unhandled error while processing {job.initial_file}")
            failure = InternalFailure(str(e))
            self.notifier.error(f"Failed to process {name}: {failure}")
            raise failure from e

    async def _run_stages(self, job: ProcessingJob) -> None:
        await self.normalize_format(job)
        await self.reduce_size(job)

        plan = resolve_destinations(job.working_file, self.settings)
        logger.debug(
            f"Destinations for {job.working_file}: image -> {plan.image_path}, notes -> {plan.note_folder.path or '/'}"
        )

        await self.provision_folders(plan)
        await self.check_collision(job, plan)
        await self.move(job, plan)

        final_path = job.working_file
        if self.history.contains(final_path):
            logger.info(f"Image already processed, skipping transcription: {final_path}")
            return

        text = await self.transcribe(final_path)
        await self.materialize_note(text, final_path, plan)

        await self.history.add(final_path)
        logger.success(f"Finished {job.initial_file} -> {final_path}")

    async def normalize_format(self, job: ProcessingJob) -> None:
        if not self.converter.needs_conversion(job.working_file):
            return
        try:
            converted = await self.converter.convert(job.working_file)
        except Exception as e:
            raise ConversionFailure(str(e)) from e
        if converted is None:
            raise ConversionFailure()
        self.notifier.verbose(f"Converted {job.working_file.name} to {converted.name}")
        job.working_file = converted

    async def reduce_size(self, job: ProcessingJob) -> None:
        try:
            result = await self.compressor.compress(job.working_file)
        except Exception as e:
            logger.warning(f"Compression raised for {job.working_file}: {e}")
            result = None
        if result is None:
            logger.warning(f"Compression failed for {job.working_file}, continuing uncompressed")
            self.notifier.verbose(f"Compression failed for {job.working_file.name}, using the original")

    async def provision_folders(self, plan: DestinationPlan) -> None:
        folders = [plan.note_folder]
        if plan.should_move:
            folders.insert(0, plan.image_folder)
        try:
            for folder in folders:
                if folder.is_root:
                    continue
                if not await self.storage.exists(folder):
                    logger.info(f"Creating folder: {folder}")
                    await self.storage.create_folder(folder)
        except Exception as e:
            raise FolderFailure(str(e)) from e

    async def check_collision(self, job: ProcessingJob, plan: DestinationPlan) -> None:
        if plan.image_path == job.working_file:
            return
        try:
            occupied = await self.storage.exists(plan.image_path)
        except Exception as e:
            raise FolderFailure(str(e)) from e
        if occupied:
            raise CollisionFailure(f"'{plan.image_path.name}' already exists in '{plan.image_folder}'")

    async def move(self, job: ProcessingJob, plan: DestinationPlan) -> None:
        if not plan.should_move or plan.image_path == job.working_file:
            logger.debug(f"Image does not need to be moved: {job.working_file}")
            return
        try:
            job.working_file = await self.storage.move(job.working_file, plan.image_path)
        except Exception as e:
            raise MoveFailure(str(e)) from e
        logger.info(f"Moved image to {job.working_file}")

    async def transcribe(self, image: VaultPath) -> str:
        self.notifier.info(f"Starting transcription for {image.name}...")
        try:
            data = await self.storage.read_bytes(image)
            text = await self.provider.transcribe(
                data,
                self.settings.system_prompt,
                self.settings.user_prompt,
                media_type=mime_type_for(image.extension),
            )
        except Exception as e:
            raise TranscriptionFailure(str(e)) from e
        if text is None or not text.strip():
            raise TranscriptionFailure()
        return text

    async def materialize_note(self, text: str, image: VaultPath, plan: DestinationPlan) -> VaultPath:
        self.notifier.verbose(f"Transcription received for {image.name}. Creating note...")
        try:
            note = await self.notes.create_note(text, image, plan.note_folder)
        except Exception as e:
            raise NoteCreationFailure(str(e)) from e
        if note is None:
            raise NoteCreationFailure()
        return note
