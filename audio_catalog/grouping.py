from __future__ import annotations

from collections.abc import Iterable
from typing import Dict, List, Tuple

from .models import AlbumCandidate, TrackRecord


def album_key(track: TrackRecord) -> Tuple[str, str]:
    return (track.effective_album_artist.lower(), track.album.lower())


def group_into_albums(tracks: Iterable[TrackRecord]) -> List[AlbumCandidate]:
    """
    Partition tracks into album candidates keyed by (album artist, album).

    Every track lands in exactly one candidate. Candidates come back sorted by
    key; tracks inside a candidate keep their input order. The display artist
    and album are taken from the first track of each group.
    """
    groups: Dict[Tuple[str, str], List[TrackRecord]] = {}
    for track in tracks:
        groups.setdefault(album_key(track), []).append(track)
    candidates: List[AlbumCandidate] = []
    for key in sorted(groups):
        members = groups[key]
        first = members[0]
        candidates.append(
            AlbumCandidate(
                key=key,
                artist=first.effective_album_artist,
                album=first.album,
                tracks=tuple(members),
            )
        )
    return candidates
