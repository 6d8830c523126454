from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

import mutagen
from mutagen import File as MutagenFile

from .models import ProcessingError, TrackRecord

logger = logging.getLogger(__name__)

FORMAT_NAMES = {
    ".mp3": "MP3",
    ".flac": "FLAC",
    ".ogg": "Ogg Vorbis",
    ".oga": "Ogg Vorbis",
    ".opus": "Opus",
    ".m4a": "AAC",
    ".aac": "AAC",
    ".alac": "ALAC",
    ".wav": "WAV",
    ".aiff": "AIFF",
    ".aif": "AIFF",
}
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"
YEAR_PATTERN = re.compile(r"(\d{4})")


def is_audio_file(path: Path, extensions: Optional[Iterable[str]] = None) -> bool:
    allowed = {ext.lower() for ext in extensions} if extensions is not None else set(FORMAT_NAMES)
    return path.suffix.lower() in allowed


def format_name(path: Path) -> str:
    return FORMAT_NAMES.get(path.suffix.lower(), "Unknown")


def read_track(path: Path) -> TrackRecord:
    """Read tags and stream info; missing title/artist/album get placeholders."""
    try:
        audio = MutagenFile(path, easy=True)
    except (mutagen.MutagenError, OSError) as exc:
        raise ProcessingError(f"Failed to read tags from {path}: {exc}") from exc
    if audio is None:
        raise ProcessingError(f"Unsupported audio file {path}")
    tags = audio.tags or {}
    info = getattr(audio, "info", None)
    try:
        mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except OSError as exc:
        raise ProcessingError(f"Cannot stat {path}: {exc}") from exc
    try:
        return TrackRecord(
            path=path,
            title=_first_tag(tags, "title") or path.stem,
            artist=_first_tag(tags, "artist") or UNKNOWN_ARTIST,
            album=_first_tag(tags, "album") or UNKNOWN_ALBUM,
            album_artist=_first_tag(tags, "albumartist", "album artist"),
            genre=_first_tag(tags, "genre"),
            year=parse_year(_first_tag(tags, "date", "year", "originaldate")),
            track_number=parse_position(_first_tag(tags, "tracknumber")),
            disc_number=parse_position(_first_tag(tags, "discnumber")),
            duration_seconds=float(getattr(info, "length", 0.0) or 0.0),
            bitrate=int(getattr(info, "bitrate", 0) or 0),
            format=format_name(path),
            mtime=mtime,
        )
    except (TypeError, ValueError) as exc:
        raise ProcessingError(f"Unusable tag values in {path}: {exc}") from exc


def parse_year(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = YEAR_PATTERN.search(value)
    return int(match.group(1)) if match else None


def parse_position(value: Optional[str]) -> Optional[int]:
    """'3', '03/12' and ' 3 / 12 ' all parse as 3."""
    if not value:
        return None
    cleaned = value.split("/", 1)[0].strip()
    # isdigit() also accepts superscript digits, which int() rejects.
    return int(cleaned) if cleaned.isdecimal() else None


def _first_tag(tags: Any, *keys: str) -> Optional[str]:
    for key in keys:
        try:
            values = tags.get(key)
        except (KeyError, ValueError):
            continue
        if not values:
            continue
        value = values[0] if isinstance(values, list) else values
        text = str(value).strip()
        if text:
            return text
    return None
