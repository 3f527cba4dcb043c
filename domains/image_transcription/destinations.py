"""
Destination resolution.

Decides where an image and its note end up, before anything moves.

Image policies:
- subfolder (default): ``<current folder>/<image_folder_name>``
- fixed: one configured folder for every image

Note policies:
- alongside (default): the folder the image was dropped into
- fixed: one configured folder for every note

An image whose parent folder is already its destination folder stays put,
and an alongside note goes one level up so notes don't land inside the
image folder. Only the immediate parent is compared, so nested folders
sharing the image folder name are all treated as destinations.
"""

from dataclasses import dataclass

from app.utils.config import Settings

from .paths import VaultPath


@dataclass(frozen=True)
class DestinationPlan:
    """Where one job's image and note go."""

    image_folder: VaultPath
    note_folder: VaultPath
    image_path: VaultPath
    should_move: bool


def resolve_destinations(file: VaultPath, settings: Settings) -> DestinationPlan:
    """
    Compute image and note destinations for ``file``.

    Args:
        file: Current location of the image
        settings: Destination settings

    Returns:
        DestinationPlan for the job
    """
    current_folder = file.parent

    if settings.image_destination == "fixed":
        image_folder = VaultPath(settings.image_fixed_folder)
        already_there = current_folder == image_folder
    else:
        already_there = current_folder.name == settings.image_folder_name
        image_folder = current_folder if already_there else current_folder / settings.image_folder_name

    if settings.note_destination == "fixed":
        note_folder = VaultPath(settings.note_fixed_folder)
    elif already_there:
        note_folder = current_folder.parent
    else:
        note_folder = current_folder

    image_path = image_folder / file.name

    return DestinationPlan(
        image_folder=image_folder,
        note_folder=note_folder,
        image_path=image_path,
        should_move=not already_there and image_path != file,
    )
