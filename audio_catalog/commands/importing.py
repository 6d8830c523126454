from __future__ import annotations

from pathlib import Path
from typing import List

from ..app import AudioCatalogApp
from ..importer import ImportReport


def run(app: AudioCatalogApp, paths: List[Path]) -> ImportReport:
    importer = app.get_importer()
    report = ImportReport()
    for path in paths:
        report.outcomes.extend(importer.import_path(path).outcomes)
    print(
        f"Imported {report.imported_tracks} tracks in {len(report.outcomes)} albums "
        f"({report.matched_albums} matched)"
    )
    for outcome in report.errors:
        print(f"  {outcome.candidate.artist} - {outcome.candidate.album}: {outcome.error}")
    return report
