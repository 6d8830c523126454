from __future__ import annotations

import logging
import socket
import time
import urllib.error
from typing import Any, Callable, Dict, List, Optional, TypeVar

import musicbrainzngs

from .. import __version__
from ..config import MusicBrainzSettings
from ..models import ArtistCredit, CatalogError, ExternalRelease, ExternalTrack
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MusicBrainzClient:
    """Release search and lookup against the MusicBrainz web service."""

    def __init__(
        self,
        settings: MusicBrainzSettings,
        limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.settings = settings
        self.limiter = limiter or RateLimiter(settings.rate_limit_seconds)
        musicbrainzngs.set_useragent(
            "audio-catalog",
            __version__,
            contact=settings.useragent,
        )
        # Pacing is done by self.limiter, which is owned per client.
        musicbrainzngs.set_rate_limit(False)

    def search_releases(self, artist: str, album: str, limit: int) -> List[ExternalRelease]:
        query: Dict[str, str] = {}
        if artist:
            query["artist"] = artist
        if album:
            query["release"] = album
        if not query:
            return []
        response = self._call(
            lambda: musicbrainzngs.search_releases(limit=limit, **query),
            label="MusicBrainz release search",
        )
        releases: List[ExternalRelease] = []
        for entry in (response or {}).get("release-list", []):
            if not entry.get("id"):
                continue
            releases.append(release_from_payload(entry))
        logger.debug(
            "Release search for %s - %s returned %d candidates",
            artist,
            album,
            len(releases),
        )
        return releases

    def lookup_release(self, release_id: str) -> ExternalRelease:
        response = self._call(
            lambda: musicbrainzngs.get_release_by_id(
                release_id,
                includes=["recordings", "artist-credits"],
            ),
            label="MusicBrainz release lookup",
        )
        release = (response or {}).get("release")
        if not release:
            raise CatalogError("MusicBrainz release lookup", f"empty response for {release_id}")
        return release_from_payload(release)

    def _call(self, fn: Callable[[], T], *, label: str) -> T:
        attempts = 1 + max(0, int(self.settings.network_retries))
        backoff = max(0.0, float(self.settings.network_retry_backoff_seconds))
        for attempt in range(1, attempts + 1):
            self.limiter.wait()
            try:
                return fn()
            except musicbrainzngs.ResponseError as exc:
                raise CatalogError(label, str(exc)) from exc
            except Exception as exc:
                if not _is_transient_network_error(exc):
                    if isinstance(exc, musicbrainzngs.WebServiceError):
                        raise CatalogError(label, str(exc)) from exc
                    raise
                if attempt >= attempts:
                    raise CatalogError(label, str(exc)) from exc
                sleep_for = backoff * (2 ** (attempt - 1))
                logger.debug(
                    "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                    label,
                    attempt,
                    attempts,
                    sleep_for,
                    exc,
                )
                if sleep_for:
                    time.sleep(sleep_for)
        raise CatalogError(label, "no attempts made")  # pragma: no cover


def _is_transient_network_error(exc: Exception) -> bool:
    if isinstance(exc, (socket.gaierror, urllib.error.URLError, TimeoutError, ConnectionError)):
        return True
    return isinstance(exc, musicbrainzngs.NetworkError)


def release_from_payload(payload: Dict[str, Any]) -> ExternalRelease:
    """Build an ExternalRelease from a musicbrainzngs release dict (search hit or lookup)."""
    tracks: List[ExternalTrack] = []
    advertised = 0
    media = payload.get("medium-list") or []
    for medium_index, medium in enumerate(media, start=1):
        disc_number = _parse_int(medium.get("position")) or medium_index
        advertised += _parse_int(medium.get("track-count")) or 0
        for track in medium.get("track-list") or []:
            recording = track.get("recording") or {}
            recording_id = recording.get("id") or track.get("id")
            if not recording_id:
                continue
            length = _parse_int(track.get("length"))
            if length is None:
                length = _parse_int(recording.get("length"))
            tracks.append(
                ExternalTrack(
                    title=track.get("title") or recording.get("title") or "",
                    recording_id=recording_id,
                    length_ms=length,
                    number=track.get("number"),
                    disc_number=disc_number,
                )
            )
    if not advertised:
        advertised = _parse_int(payload.get("medium-track-count")) or 0
    return ExternalRelease(
        release_id=payload["id"],
        title=payload.get("title") or "",
        artist_credit=tuple(parse_artist_credit(payload.get("artist-credit") or [])),
        date=payload.get("date"),
        tracks=tuple(tracks),
        track_total=advertised or None,
        score=_parse_int(payload.get("ext:score")) or 0,
    )


def parse_artist_credit(credits: List[Any]) -> List[ArtistCredit]:
    """
    musicbrainzngs interleaves credit dicts with bare join-phrase strings:
    [{"artist": {...}}, " & ", {"artist": {...}}]. A dict may also carry
    its own "joinphrase".
    """
    parsed: List[ArtistCredit] = []
    for entry in credits:
        if isinstance(entry, str):
            if parsed:
                last = parsed[-1]
                parsed[-1] = ArtistCredit(last.name, last.join_phrase + entry)
            continue
        if not isinstance(entry, dict):
            continue
        artist = entry.get("artist") or {}
        name = entry.get("name") or artist.get("name") or ""
        parsed.append(ArtistCredit(name, entry.get("joinphrase") or ""))
    return parsed


def _parse_int(value: object) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None
