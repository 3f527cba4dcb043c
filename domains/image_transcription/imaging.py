"""
Image transforms used by the pipeline.

Provides:
- HEIC/HEIF to JPEG conversion (pillow-heif registered as a Pillow opener)
- In-place compression with a size cap and a minimum saving threshold

Both follow the collaborator convention of logging failures and returning
None instead of raising.
"""

import asyncio
import io
from dataclasses import dataclass
from typing import Optional, Protocol

import pillow_heif
from loguru import logger
from PIL import Image, ImageOps

from app.utils.helpers import format_bytes

from .paths import VaultPath
from .storage import Storage

pillow_heif.register_heif_opener()

CONVERTIBLE_EXTENSIONS = {"heic", "heif"}
COMPRESSIBLE_EXTENSIONS = {"jpg", "jpeg", "png"}


class FormatConverter(Protocol):
    def needs_conversion(self, file: VaultPath) -> bool: ...

    async def convert(self, file: VaultPath) -> Optional[VaultPath]: ...


class Compressor(Protocol):
    async def compress(self, file: VaultPath) -> Optional[VaultPath]: ...


@dataclass(frozen=True)
class CompressionOptions:
    """Compression parameters."""

    max_size_mb: float = 1.0
    max_width_or_height: int = 1920
    quality: int = 85
    min_quality: int = 40
    quality_step: int = 10
    # Only overwrite when the result is below this fraction of the original size
    min_saving_ratio: float = 0.95

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)


def _to_jpeg_compatible(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "L"):
        return img
    if img.mode in ("RGBA", "LA", "P"):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def decode_heic_to_jpeg(data: bytes, quality: int = 90) -> bytes:
    """Decode HEIC/HEIF bytes and re-encode them as JPEG."""
    with Image.open(io.BytesIO(data)) as img:
        img = ImageOps.exif_transpose(img)
        out = io.BytesIO()
        _to_jpeg_compatible(img).save(out, "JPEG", quality=quality)
        return out.getvalue()


def compress_image_bytes(data: bytes, extension: str, options: CompressionOptions) -> bytes:
    """
    Downscale and re-encode an image.

    JPEG quality is lowered in steps until the result fits under the size cap
    or ``min_quality`` is reached. PNGs keep their format and are saved
    optimized.

    Args:
        data: Original file content
        extension: File extension without dot
        options: Compression parameters

    Returns:
        Encoded bytes (may be larger than the input; the caller decides)
    """
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        img = ImageOps.exif_transpose(img)
        img.thumbnail((options.max_width_or_height, options.max_width_or_height))

        if extension.lower() == "png":
            out = io.BytesIO()
            img.save(out, "PNG", optimize=True)
            return out.getvalue()

        img = _to_jpeg_compatible(img)
        quality = options.quality
        while True:
            out = io.BytesIO()
            img.save(out, "JPEG", quality=quality, optimize=True)
            encoded = out.getvalue()
            if len(encoded) <= options.max_size_bytes or quality <= options.min_quality:
                return encoded
            quality = max(options.min_quality, quality - options.quality_step)


class HeicConverter:
    """Converts camera HEIC/HEIF files into JPEGs beside the original."""

    def __init__(self, storage: Storage, quality: int = 90):
        self.storage = storage
        self.quality = quality

    def needs_conversion(self, file: VaultPath) -> bool:
        return file.extension in CONVERTIBLE_EXTENSIONS

    async def convert(self, file: VaultPath) -> Optional[VaultPath]:
        """
        Convert ``file`` to ``<stem>.jpg`` in the same folder.

        Returns:
            Path of the new JPEG, or None if conversion failed
        """
        logger.info(f"Converting HEIC file: {file}")
        try:
            data = await self.storage.read_bytes(file)
            jpeg = await asyncio.to_thread(decode_heic_to_jpeg, data, self.quality)
            if not jpeg:
                raise ValueError("conversion produced no data")

            target = file.with_extension("jpg")
            if await self.storage.exists(target):
                logger.warning(f"JPG file already exists: {target}. Overwriting.")

            await self.storage.write_bytes(target, jpeg)
            logger.success(f"Converted {file} -> {target}")
            return target

        except Exception as e:
            logger.error(f"HEIC conversion failed for {file}: {e}")
            return None


class ImageCompressor:
    """Compresses JPEG/PNG files in place."""

    def __init__(self, storage: Storage, options: Optional[CompressionOptions] = None):
        self.storage = storage
        self.options = options or CompressionOptions()

    async def compress(self, file: VaultPath) -> Optional[VaultPath]:
        """
        Compress ``file`` in place when it saves enough space.

        Returns:
            The same path (compressed or left as is), or None on failure
        """
        if file.extension not in COMPRESSIBLE_EXTENSIONS:
            logger.debug(f"Skipping compression for non-compressible file type: {file}")
            return file

        try:
            original = await self.storage.read_bytes(file)
            compressed = await asyncio.to_thread(
                compress_image_bytes, original, file.extension, self.options
            )

            if len(compressed) < len(original) * self.options.min_saving_ratio:
                await self.storage.write_bytes(file, compressed)
                logger.success(
                    f"Compressed {file}: {format_bytes(len(original))} -> {format_bytes(len(compressed))}"
                )
            else:
                logger.debug(f"Compression did not significantly reduce size, keeping original: {file}")

            return file

        except Exception as e:
            logger.error(f"Compression failed for {file}: {e}")
            return None
