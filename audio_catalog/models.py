from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class TrackRecord:
    """A locally scanned audio file and the tags read from it."""

    path: Path
    title: str
    artist: str
    album: str
    album_artist: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    duration_seconds: float = 0.0
    bitrate: int = 0
    format: str = "Unknown"
    mb_track_id: Optional[str] = None
    mb_album_id: Optional[str] = None
    added: datetime = field(default_factory=utc_now)
    mtime: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def effective_album_artist(self) -> str:
        return self.album_artist or self.artist


@dataclass(frozen=True, slots=True)
class AlbumCandidate:
    """Local tracks that share a case-folded (album artist, album) key."""

    key: Tuple[str, str]
    artist: str
    album: str
    tracks: Tuple[TrackRecord, ...]

    def __len__(self) -> int:
        return len(self.tracks)


@dataclass(frozen=True, slots=True)
class ArtistCredit:
    name: str
    join_phrase: str = ""


@dataclass(frozen=True, slots=True)
class ExternalTrack:
    title: str
    recording_id: str
    length_ms: Optional[int] = None
    number: Optional[str] = None
    disc_number: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ExternalRelease:
    release_id: str
    title: str
    artist_credit: Tuple[ArtistCredit, ...] = ()
    date: Optional[str] = None
    tracks: Tuple[ExternalTrack, ...] = ()
    track_total: Optional[int] = None
    score: int = 0

    @property
    def artist_name(self) -> str:
        return "".join(f"{credit.name}{credit.join_phrase}" for credit in self.artist_credit)

    @property
    def year(self) -> Optional[int]:
        if not self.date:
            return None
        head = self.date.split("-", 1)[0].strip()
        return int(head) if head.isdigit() else None

    @property
    def track_count(self) -> int:
        """Known track count: the track list when loaded, else the advertised total."""
        if self.tracks:
            return len(self.tracks)
        return self.track_total or 0


@dataclass(frozen=True, slots=True)
class AlbumDescriptor:
    title: str
    artist: str
    year: Optional[int] = None
    mb_album_id: Optional[str] = None
    added: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class AlignmentResult:
    # (local index, external index), sorted by local index; dummy pairs dropped.
    pairs: List[Tuple[int, int]]
    tracks: List[TrackRecord]

    @property
    def matched_count(self) -> int:
        return len(self.pairs)


class AudioCatalogError(Exception):
    """Base class for errors raised by audio_catalog."""


class CatalogError(AudioCatalogError):
    """Raised when the external release catalog cannot be reached or answers with an error."""

    def __init__(self, label: str, message: str) -> None:
        super().__init__(f"{label}: {message}")
        self.label = label


class LibraryError(AudioCatalogError):
    """Raised for failures in the local library store."""


class UnknownFieldError(LibraryError):
    def __init__(self, field_name: str) -> None:
        super().__init__(f"Unknown field: {field_name}")
        self.field_name = field_name


class ProcessingError(AudioCatalogError):
    """Raised when a file cannot be read but the scan should keep going."""


def parse_datetime(value: object) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
