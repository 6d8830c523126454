from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional

from .config import LibrarySettings, ScannerSettings
from .models import ProcessingError, TrackRecord
from .tagging import is_audio_file, read_track

logger = logging.getLogger(__name__)


class LibraryScanner:
    """Walks an import path and reads tags from every audio file found."""

    def __init__(
        self,
        settings: LibrarySettings,
        scanner_settings: Optional[ScannerSettings] = None,
        reader: Callable[[Path], TrackRecord] = read_track,
    ) -> None:
        self.settings = settings
        self.scanner_settings = scanner_settings or ScannerSettings()
        self._reader = reader
        self._exts = {ext.lower() for ext in self.settings.include_extensions}

    def iter_files(self, root: Path) -> Iterator[Path]:
        if root.is_file():
            if self._should_include(root):
                yield root
            return
        if not root.exists():
            return
        for dirpath, _, filenames in os.walk(root, followlinks=True):
            directory = Path(dirpath)
            for name in filenames:
                file_path = directory / name
                if file_path.is_file() and self._should_include(file_path):
                    yield file_path

    def scan(self, root: Path) -> List[TrackRecord]:
        """
        Read every audio file under root on a worker pool.

        Files that fail to read are skipped. The full result is collected
        before returning, ordered by path.
        """
        files = sorted(self.iter_files(root))
        logger.info("Found %d audio files in %s", len(files), root)
        if not files:
            return []
        workers = min(self.scanner_settings.worker_concurrency, len(files))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(self._read, files))
        tracks = [track for track in results if track is not None]
        logger.info("Scanned %d tracks", len(tracks))
        return tracks

    def _read(self, path: Path) -> Optional[TrackRecord]:
        try:
            return self._reader(path)
        except ProcessingError as exc:
            logger.debug("Skipping %s: %s", path, exc)
            return None

    def _should_include(self, path: Path) -> bool:
        if not is_audio_file(path, self._exts):
            return False
        rel = str(path)
        for pattern in self.settings.exclude_patterns:
            if fnmatch.fnmatch(rel, pattern):
                return False
        return True
