"""Filesystem-backed frame store.

Frames live flat in one directory per camera as ``YYYY-MM-DD_HHMM.jpg``.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Tuple

from lawn_lapse.models import Frame

FRAME_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})_(\d{4})\.jpg$")


def frame_filename(day: date, time_of_day: str) -> str:
    return f"{day.isoformat()}_{time_of_day}.jpg"


def frame_key(slot: datetime) -> Tuple[date, str]:
    """Return the ``(date, HHMM)`` key a slot is stored under."""
    return slot.date(), slot.strftime("%H%M")


def parse_frame_filename(name: str) -> Optional[Tuple[date, str]]:
    match = FRAME_PATTERN.match(name)
    if not match:
        return None
    try:
        day = date.fromisoformat(match.group(1))
    except ValueError:
        return None
    return day, match.group(2)


class FrameStore:
    """Read and write captured frames for a single camera."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, day: date, time_of_day: str) -> Path:
        return self.root / frame_filename(day, time_of_day)

    def exists(self, day: date, time_of_day: str) -> bool:
        return self.path_for(day, time_of_day).exists()

    def write(self, day: date, time_of_day: str, data: bytes) -> Path:
        """Atomically write frame bytes, replacing any existing file."""
        target = self.path_for(day, time_of_day)
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_path = target.with_name(f".tmp_{uuid.uuid4().hex}_{target.name}")
        try:
            temp_path.write_bytes(data)
            temp_path.replace(target)
        finally:
            temp_path.unlink(missing_ok=True)
        return target

    def list_all(self) -> List[Frame]:
        """Return every stored frame sorted by date then time of day."""
        if not self.root.exists():
            return []

        frames: List[Frame] = []
        for path in self.root.iterdir():
            if not path.is_file():
                continue
            parsed = parse_frame_filename(path.name)
            if parsed is None:
                continue
            day, time_of_day = parsed
            frames.append(
                Frame(
                    date=day,
                    time_of_day=time_of_day,
                    path=path,
                    mtime=path.stat().st_mtime,
                )
            )
        frames.sort(key=lambda frame: (frame.date, frame.time_of_day))
        return frames

    def latest(self) -> Optional[Frame]:
        frames = self.list_all()
        return frames[-1] if frames else None


__all__ = [
    "FRAME_PATTERN",
    "FrameStore",
    "frame_filename",
    "frame_key",
    "parse_frame_filename",
]
