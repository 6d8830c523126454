from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .importer import Importer
from .library import Library
from .providers.musicbrainz import MusicBrainzClient
from .scanner import LibraryScanner


@dataclass
class AudioCatalogApp:
    settings: Settings
    library: Library
    scanner: LibraryScanner
    _musicbrainz: Optional[MusicBrainzClient] = None

    @classmethod
    def create(cls, settings: Settings) -> "AudioCatalogApp":
        library = Library(settings.library.database)
        scanner = LibraryScanner(settings.library, settings.scanner)
        return cls(settings=settings, library=library, scanner=scanner)

    @property
    def musicbrainz(self) -> MusicBrainzClient:
        if self._musicbrainz is None:
            self._musicbrainz = MusicBrainzClient(self.settings.musicbrainz)
        return self._musicbrainz

    def get_importer(self) -> Importer:
        return Importer(
            self.musicbrainz,
            self.library,
            scanner=self.scanner,
            search_limit=self.settings.musicbrainz.search_limit,
        )

    def close(self) -> None:
        self.library.close()
