from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def list_music_files(music_dir: Path, extension: str = ".mp3") -> list[str]:
    """
    List playable tracks in the music directory.

    Only regular files directly inside ``music_dir`` whose suffix matches
    ``extension`` (case-insensitive) are returned, as basenames without the
    extension.
    """
    extension = extension.lower()
    try:
        entries = list(Path(music_dir).iterdir())
    except OSError as exc:
        logger.error(f"Error reading music directory {music_dir}: {exc}")
        return []

    names: list[str] = []
    for entry in entries:
        if entry.suffix.lower() != extension:
            continue
        try:
            if not entry.is_file():
                continue
        except OSError as exc:
            logger.warning(f"Error inspecting {entry}: {exc}")
            continue
        names.append(entry.name[: -len(entry.suffix)])
    return sorted(names)
