"""Release catalog providers."""

from __future__ import annotations

from typing import List, Protocol

from ..models import ExternalRelease


class ReleaseCatalog(Protocol):
    def search_releases(self, artist: str, album: str, limit: int) -> List[ExternalRelease]: ...

    def lookup_release(self, release_id: str) -> ExternalRelease: ...
