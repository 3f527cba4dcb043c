"""
Vault-relative path value type.

All path identity checks (queue dedup, collision checks, processed history)
go through ``VaultPath`` so normalization rules live in one place.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Union

from app.utils.helpers import is_hidden, is_image_extension

_SPACE_LOOKALIKES = {"\u00a0": " ", "\u202f": " "}


def normalize_vault_path(raw: str) -> str:
    """
    Normalize a vault-relative path string.

    Backslashes become forward slashes, repeated separators collapse, leading
    and trailing separators and ``.`` segments are dropped, non-breaking
    spaces become plain spaces and the result is NFC-normalized. The vault
    root normalizes to the empty string.

    Args:
        raw: Path as received from an event, config value or API call

    Returns:
        Normalized path string

    Raises:
        ValueError: If the path contains a ``..`` segment
    """
    text = unicodedata.normalize("NFC", raw)
    for lookalike, replacement in _SPACE_LOOKALIKES.items():
        text = text.replace(lookalike, replacement)
    text = text.replace("\\", "/")
    segments = [segment for segment in text.split("/") if segment not in ("", ".")]
    if ".." in segments:
        raise ValueError(f"Path escapes the vault: {raw}")
    return "/".join(segments)


@dataclass(frozen=True, order=True)
class VaultPath:
    """Normalized path of a file or folder relative to the vault root."""

    path: str = ""

    def __post_init__(self):
        object.__setattr__(self, "path", normalize_vault_path(self.path))

    def __str__(self) -> str:
        return self.path

    def __truediv__(self, other: Union[str, "VaultPath"]) -> "VaultPath":
        if not self.path:
            return VaultPath(str(other))
        return VaultPath(f"{self.path}/{other}")

    @property
    def key(self) -> str:
        """Identity used for deduplication."""
        return self.path

    @property
    def is_root(self) -> bool:
        return self.path == ""

    @property
    def parts(self) -> list[str]:
        return self.path.split("/") if self.path else []

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def stem(self) -> str:
        return PurePosixPath(self.path).stem

    @property
    def extension(self) -> str:
        """Lower-case extension without the dot."""
        return PurePosixPath(self.path).suffix.lstrip(".").lower()

    @property
    def parent(self) -> "VaultPath":
        parts = self.parts
        return VaultPath("/".join(parts[:-1]))

    @property
    def parent_name(self) -> str:
        return self.parent.name

    @property
    def is_hidden(self) -> bool:
        return is_hidden(self.parts)

    @property
    def is_image(self) -> bool:
        return is_image_extension(self.extension)

    def with_extension(self, extension: str) -> "VaultPath":
        return self.parent / f"{self.stem}.{extension.lstrip('.')}"

    def to_absolute(self, root: Path) -> Path:
        """Map onto the filesystem under ``root``."""
        return root.joinpath(*self.parts) if self.parts else root

    @classmethod
    def from_absolute(cls, root: Path, absolute: Union[str, Path]) -> "VaultPath | None":
        """
        Build a vault path from a filesystem path.

        Returns:
            VaultPath, or None when ``absolute`` lies outside ``root``
        """
        try:
            return cls(Path(absolute).relative_to(root).as_posix())
        except ValueError:
            return None
