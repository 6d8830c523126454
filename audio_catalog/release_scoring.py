from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional

from .match_utils import string_similarity
from .models import AlbumCandidate, ExternalRelease

logger = logging.getLogger(__name__)

TRACK_COUNT_BONUS = 0.2
SCORE_MULTIPLIER = 100.0


def score_release(candidate: AlbumCandidate, release: ExternalRelease) -> int:
    """Integer match score (x100, truncated) of a catalog release for a local candidate."""
    artist_sim = string_similarity(candidate.artist, release.artist_name)
    album_sim = string_similarity(candidate.album, release.title)
    bonus = TRACK_COUNT_BONUS if release.track_count == len(candidate.tracks) else 0.0
    return max(0, int((artist_sim + album_sim + bonus) * SCORE_MULTIPLIER))


def pick_best_release(
    candidate: AlbumCandidate, releases: Sequence[ExternalRelease]
) -> Optional[ExternalRelease]:
    """
    Select the highest scoring release, or None for an empty list.

    Ties go to the release listed first, so the catalog's own ranking only
    matters between equal scores.
    """
    best: Optional[ExternalRelease] = None
    best_score = -1
    for release in releases:
        score = score_release(candidate, release)
        logger.debug(
            "Release %s (%s - %s) scored %d for %s - %s",
            release.release_id,
            release.artist_name,
            release.title,
            score,
            candidate.artist,
            candidate.album,
        )
        if score > best_score:
            best = release
            best_score = score
    return best
