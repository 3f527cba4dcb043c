"""
Helper utilities for the Image Transcriber.

Common functions used across domains.
"""

import re
from datetime import datetime
from typing import List, Optional

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "heic", "heif"}

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "heic": "image/heic",
    "heif": "image/heif",
}


def sanitize_filename(filename: str) -> str:
    """Sanitize filename by removing invalid characters."""
    # Remove invalid filename characters
    sanitized = re.sub(r'[<>:"/\\|?*]', '', filename)
    # Line breaks become spaces
    sanitized = re.sub(r'[\r\n]+', ' ', sanitized)
    # Remove leading/trailing spaces and dots
    sanitized = sanitized.strip('. ')
    # Limit length
    if len(sanitized) > 255:
        sanitized = sanitized[:255]
    return sanitized


def is_image_extension(extension: str) -> bool:
    """Check whether an extension (without dot) is a supported image type."""
    return extension.lower() in IMAGE_EXTENSIONS


def mime_type_for(extension: str) -> str:
    """Map an image extension to its MIME type."""
    return MIME_TYPES.get(extension.lower(), f"image/{extension.lower()}")


def formatted_date(moment: Optional[datetime] = None) -> str:
    """Format a date as YYYYMMDD (local time)."""
    return (moment or datetime.now()).strftime("%Y%m%d")


def format_bytes(bytes_count: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.1f} PB"


def is_hidden(parts: List[str]) -> bool:
    """Check if any path segment is hidden (starts with dot)."""
    return any(part.startswith('.') for part in parts)


def truncate(text: str, max_length: int) -> str:
    """Shorten text to max_length, marking the cut with an ellipsis."""
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."
