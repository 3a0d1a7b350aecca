"""Output directory listing for the ``list_generated_images`` tool.

The output directory is the only store: there is no metadata file, so every
listing is read straight from the file system. Temporary download files
have no extension and never match the image filter.

Ordering is newest first by creation time. Where the platform records a
birth time (macOS, Windows, some BSDs) that is used; elsewhere the
modification time stands in, which matches creation for files this service
writes once and never edits.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".webp", ".gif"})


def format_size(num_bytes: int) -> str:
    """Render a byte count as kilobytes with one decimal, e.g. ``"12.3 KB"``."""
    return f"{num_bytes / 1024:.1f} KB"


def format_percent(value: int) -> str:
    """Render an integer percentage, e.g. ``"42%"``."""
    return f"{value}%"


def created_timestamp(stat: os.stat_result) -> float:
    """Return the creation time of a file, falling back to its mtime."""
    return getattr(stat, "st_birthtime", None) or stat.st_mtime


def isoformat_utc(timestamp: float) -> str:
    """Format a POSIX timestamp as ISO-8601 UTC with milliseconds and ``Z``."""
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def is_image_file(path: Path) -> bool:
    """Return ``True`` for regular files with a recognised image extension."""
    return path.suffix.lower() in IMAGE_EXTENSIONS and path.is_file()


def list_output_images(output_dir: Path) -> list[dict]:
    """List image files in ``output_dir``, newest first.

    Args:
        output_dir: Directory to scan (not recursive).

    Returns:
        One dictionary per image with ``filename``, ``path``, ``size`` and
        ``created``. An absent directory yields an empty list.
    """
    if not output_dir.is_dir():
        return []

    entries: list[tuple[float, dict]] = []
    for path in output_dir.iterdir():
        if not is_image_file(path):
            continue
        stat = path.stat()
        created = created_timestamp(stat)
        entries.append(
            (
                created,
                {
                    "filename": path.name,
                    "path": str(path),
                    "size": format_size(stat.st_size),
                    "created": isoformat_utc(created),
                },
            )
        )

    entries.sort(key=lambda item: item[0], reverse=True)
    return [entry for _, entry in entries]
