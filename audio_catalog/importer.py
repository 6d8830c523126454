from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from .grouping import group_into_albums
from .library import Library
from .models import (
    AlbumCandidate,
    AlbumDescriptor,
    CatalogError,
    ExternalRelease,
    TrackRecord,
)
from .providers import ReleaseCatalog
from .release_scoring import pick_best_release
from .scanner import LibraryScanner
from .track_alignment import align_tracks

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CandidateOutcome:
    candidate: AlbumCandidate
    descriptor: AlbumDescriptor
    release: Optional[ExternalRelease] = None
    matched_count: int = 0
    imported_count: int = 0
    error: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.release is not None


@dataclass(slots=True)
class ImportReport:
    outcomes: List[CandidateOutcome] = field(default_factory=list)

    @property
    def imported_tracks(self) -> int:
        return sum(outcome.imported_count for outcome in self.outcomes)

    @property
    def matched_albums(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.matched)

    @property
    def errors(self) -> List[CandidateOutcome]:
        return [outcome for outcome in self.outcomes if outcome.error]


class Importer:
    """
    Reconciles scanned tracks against the release catalog and stores them.

    Candidates are processed one at a time. A catalog failure for one
    candidate is logged and recorded on its outcome; that candidate is then
    imported with its own tags and the run continues.
    """

    def __init__(
        self,
        catalog: ReleaseCatalog,
        library: Library,
        *,
        scanner: Optional[LibraryScanner] = None,
        search_limit: int = 5,
    ) -> None:
        self.catalog = catalog
        self.library = library
        self.scanner = scanner
        self.search_limit = search_limit

    def import_path(self, path: Path) -> ImportReport:
        if self.scanner is None:
            raise ValueError("Importer was created without a scanner")
        tracks = self.scanner.scan(path)
        if not tracks:
            logger.info("No audio files found in %s", path)
            return ImportReport()
        return self.import_records(tracks)

    def import_records(self, tracks: Iterable[TrackRecord]) -> ImportReport:
        report = ImportReport()
        for candidate in group_into_albums(tracks):
            report.outcomes.append(self.process_candidate(candidate))
        return report

    def process_candidate(self, candidate: AlbumCandidate) -> CandidateOutcome:
        logger.info(
            "Importing: %s - %s (%d tracks)",
            candidate.artist,
            candidate.album,
            len(candidate.tracks),
        )
        error: Optional[str] = None
        try:
            release = self.lookup_release(candidate)
        except CatalogError as exc:
            logger.warning(
                "Catalog lookup failed for %s - %s, importing as-is: %s",
                candidate.artist,
                candidate.album,
                exc,
            )
            release = None
            error = str(exc)

        descriptor = self.create_album(candidate, release)
        tracks = list(candidate.tracks)
        matched_count = 0
        if release is not None:
            alignment = align_tracks(tracks, release)
            matched_count = alignment.matched_count
            tracks = [
                dataclasses.replace(track, mb_album_id=release.release_id)
                for track in alignment.tracks
            ]

        fresh = [track for track in tracks if not self.library.item_exists(track.path)]
        imported: List[int] = []
        if fresh:
            album_id = self.library.add_album(descriptor)
            imported = self.library.add_items(album_id, fresh)
        else:
            logger.info("  All tracks already in library")
        return CandidateOutcome(
            candidate=candidate,
            descriptor=descriptor,
            release=release,
            matched_count=matched_count,
            imported_count=len(imported),
            error=error,
        )

    def lookup_release(self, candidate: AlbumCandidate) -> Optional[ExternalRelease]:
        releases = self.catalog.search_releases(
            candidate.artist, candidate.album, self.search_limit
        )
        if not releases:
            logger.info("  No catalog matches found, importing as-is")
            return None
        best = pick_best_release(candidate, releases)
        if best is None:
            return None
        logger.info(
            "  Matched: %s - %s (%s)",
            best.artist_name,
            best.title,
            best.year or "????",
        )
        return self.catalog.lookup_release(best.release_id)

    @staticmethod
    def create_album(
        candidate: AlbumCandidate, release: Optional[ExternalRelease]
    ) -> AlbumDescriptor:
        if release is None:
            return AlbumDescriptor(title=candidate.album, artist=candidate.artist)
        return AlbumDescriptor(
            title=release.title,
            artist=release.artist_name,
            year=release.year,
            mb_album_id=release.release_id,
        )
