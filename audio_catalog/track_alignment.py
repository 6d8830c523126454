from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from typing import List

from .assignment import hungarian_min_cost
from .match_utils import length_similarity, string_similarity
from .models import AlignmentResult, ExternalRelease, ExternalTrack, TrackRecord

logger = logging.getLogger(__name__)

BASE_COST = 10000.0
SIMILARITY_WEIGHT = 5000.0


def pair_cost(track: TrackRecord, external: ExternalTrack) -> int:
    title_sim = string_similarity(track.title, external.title)
    length_sim = length_similarity(track.duration_seconds, external.length_ms)
    return int(round(BASE_COST - SIMILARITY_WEIGHT * (title_sim + length_sim)))


def build_cost_matrix(
    tracks: Sequence[TrackRecord], external: Sequence[ExternalTrack]
) -> List[List[int]]:
    """Square matrix of size max(m, n); padding cells cost 0."""
    size = max(len(tracks), len(external))
    matrix = [[0] * size for _ in range(size)]
    for i, track in enumerate(tracks):
        for j, candidate in enumerate(external):
            matrix[i][j] = pair_cost(track, candidate)
    return matrix


def align_tracks(
    tracks: Sequence[TrackRecord], release: ExternalRelease
) -> AlignmentResult:
    """
    Pair local tracks with the release's tracks at minimum total cost.

    Matched tracks take the canonical title and recording id. Tracks paired
    with padding stay as they are. A release without tracks, or a matrix the
    solver rejects, leaves every track unmatched.
    """
    local = list(tracks)
    external = list(release.tracks)
    if not external or not local:
        return AlignmentResult(pairs=[], tracks=local)
    try:
        matrix = build_cost_matrix(local, external)
        assignment = hungarian_min_cost(matrix)
    except ValueError as exc:
        logger.warning(
            "Track alignment against release %s failed, keeping tags: %s",
            release.release_id,
            exc,
        )
        return AlignmentResult(pairs=[], tracks=local)

    pairs = [
        (row, col)
        for row, col in enumerate(assignment)
        if row < len(local) and col < len(external)
    ]
    aligned = list(local)
    for row, col in pairs:
        canonical = external[col]
        aligned[row] = dataclasses.replace(
            local[row],
            title=canonical.title,
            mb_track_id=canonical.recording_id,
        )
    logger.debug(
        "Aligned %d of %d local tracks to %d tracks of release %s",
        len(pairs),
        len(local),
        len(external),
        release.release_id,
    )
    return AlignmentResult(pairs=pairs, tracks=aligned)
