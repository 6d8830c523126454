from __future__ import annotations

from ..library import Library
from ..query import compile_query
from .output import format_duration


def run(library: Library, query: str = "", *, album: bool = False, explain: bool = False) -> int:
    if album:
        albums = library.query_albums(query or None)
        for entry in albums:
            year = f" ({entry.year})" if entry.year else ""
            print(f"{entry.artist} - {entry.title}{year}")
        return len(albums)
    compiled = compile_query(query)
    if explain:
        for line in compiled.explain():
            print(line)
    tracks = library.query_items(compiled)
    for track in tracks:
        print(f"{track.artist} - {track.album} - {track.title} [{format_duration(track.duration_seconds)}]")
    return len(tracks)
