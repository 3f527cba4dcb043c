#!/usr/bin/env python3
"""Headless runner for the image transcription pipeline.

Watches a vault and transcribes new images until interrupted. ``--once``
processes the given files and exits; ``--clear-history`` resets the
processed-image history first.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from app.utils.config import Settings, get_settings
from domains.image_transcription.job import JobStatus
from domains.image_transcription.paths import VaultPath
from domains.image_transcription.service import TranscriptionService, build_transcription_service


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        description="Transcribe new images in a vault into notes.",
    )
    parser.add_argument(
        "--vault",
        type=Path,
        default=None,
        help="Vault root directory (default: VAULT_ROOT or ./vault).",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum number of images processed at once (1-5).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: LOG_LEVEL or INFO).",
    )
    parser.add_argument(
        "--clear-history",
        action="store_true",
        help="Forget which images were already transcribed before starting.",
    )
    parser.add_argument(
        "--once",
        nargs="+",
        metavar="PATH",
        default=None,
        help="Process these files (vault-relative or absolute) and exit.",
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Apply CLI overrides on top of the environment settings."""
    overrides = {}
    if args.vault is not None:
        overrides["vault_root"] = args.vault
    if args.concurrency is not None:
        overrides["max_concurrent_jobs"] = args.concurrency
    if args.log_level:
        overrides["log_level"] = args.log_level

    base = get_settings()
    if not overrides:
        return base
    return Settings(**{**base.model_dump(), **overrides})


def resolve_target(service: TranscriptionService, raw: str) -> Optional[VaultPath]:
    """Map a CLI path argument onto the vault, None when it lies outside."""
    candidate = Path(raw).expanduser()
    if candidate.is_absolute():
        return VaultPath.from_absolute(service.storage.root, candidate.resolve())
    try:
        return VaultPath(raw)
    except ValueError:
        return None


async def run_once(service: TranscriptionService, targets: list[str]) -> int:
    """Process explicit files, wait for the queue to drain."""
    jobs = []
    for raw in targets:
        path = resolve_target(service, raw)
        if path is None:
            logger.error(f"Not inside the vault: {raw}")
            continue
        try:
            job = await service.submit(path)
        except ValueError as e:
            logger.error(str(e))
            continue
        if job is None:
            logger.warning(f"Not queued: {path}")
            continue
        jobs.append(job)

    await service.queue.join()

    failed = [job for job in jobs if job.status is JobStatus.ERROR]
    for job in failed:
        logger.error(f"{job.initial_file}: {job.error}")
    logger.info(f"Processed {len(jobs)} file(s), {len(failed)} failed")
    return 1 if failed or len(jobs) != len(targets) else 0


async def run_watch(service: TranscriptionService) -> int:
    """Watch the vault until SIGINT/SIGTERM."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _signal_handler(signum):
        logger.info(f"Received signal {signum}, shutting down.")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler, sig)
        except NotImplementedError:  # pragma: no cover - Windows
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(stop_event.set))

    await service.start()
    try:
        await stop_event.wait()
    finally:
        await service.stop()

    logger.info("Transcription watcher stopped.")
    return 0


async def run(args: argparse.Namespace, settings: Settings) -> int:
    service = build_transcription_service(settings)

    if args.clear_history:
        await service.history.clear()

    if args.once:
        return await run_once(service, args.once)
    return await run_watch(service)


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    settings = build_settings(args)

    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level=settings.log_level.upper(),
    )

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("Transcription watcher stopped by user")
        return 0


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
