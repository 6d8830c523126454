from __future__ import annotations

from ..library import Library
from .output import format_duration, format_size


def run(library: Library) -> None:
    stats = library.stats()
    print(f"Tracks: {stats.tracks}")
    print(f"Albums: {stats.albums}")
    print(f"Artists: {stats.artists}")
    print(f"Total time: {format_duration(stats.total_length)}")
    print(f"Total size: {format_size(stats.total_size)}")
