from __future__ import annotations

from pathlib import Path
from typing import Callable

from ..library import Library
from ..models import TrackRecord
from ..query import compile_query
from ..tagging import read_track


def run(library: Library, query: str = "", *, reader: Callable[[Path], TrackRecord] = read_track) -> int:
    """Re-read tags from disk for matching items; unreadable files are left as they are."""
    matched, updated = library.update_items(compile_query(query), reader)
    skipped = matched - updated
    suffix = f" ({skipped} unreadable)" if skipped else ""
    print(f"Updated {updated} items{suffix}")
    return updated
