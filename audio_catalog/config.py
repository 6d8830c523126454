from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_EXTENSIONS = [
    ".mp3",
    ".flac",
    ".ogg",
    ".oga",
    ".opus",
    ".m4a",
    ".aac",
    ".wav",
    ".aiff",
    ".aif",
]


def _expand(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


class LibrarySettings(BaseModel):
    directory: Path = Field(default_factory=lambda: _expand("~/Music"))
    database: Path = Field(default_factory=lambda: _expand("~/.local/share/audio-catalog/library.db"))
    include_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    exclude_patterns: List[str] = Field(default_factory=list)

    @field_validator("directory", "database", mode="before")
    @classmethod
    def _expand_paths(cls, value: str | Path) -> Path:
        return _expand(value)

    @field_validator("include_extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, values: List[str]) -> List[str]:
        return [v.lower() if v.startswith(".") else f".{v.lower()}" for v in values]


class MusicBrainzSettings(BaseModel):
    useragent: str = "audio-catalog/0.1 (unknown@example.com)"
    search_limit: int = Field(default=5, ge=1, le=100)
    rate_limit_seconds: float = Field(default=1.0, ge=0.0)
    network_retries: int = Field(default=1, ge=0)
    network_retry_backoff_seconds: float = Field(default=0.5, ge=0.0)


class ScannerSettings(BaseModel):
    worker_concurrency: int = Field(default=4, ge=1)


class Settings(BaseModel):
    library: LibrarySettings = Field(default_factory=LibrarySettings)
    musicbrainz: MusicBrainzSettings = Field(default_factory=MusicBrainzSettings)
    scanner: ScannerSettings = Field(default_factory=ScannerSettings)

    @classmethod
    def load(cls, path: Path) -> "Settings":
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
        return cls.model_validate(raw or {})

    @classmethod
    def default(cls) -> "Settings":
        return cls()


def find_config(explicit_path: Optional[Path]) -> Optional[Path]:
    if explicit_path:
        if not explicit_path.exists():
            raise FileNotFoundError(f"Config file {explicit_path} does not exist")
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "config.yaml", cwd / "config.yml"):
        if candidate.exists():
            return candidate
    return None


def load_settings(explicit_path: Optional[Path] = None) -> Settings:
    config_path = find_config(explicit_path)
    if config_path is None:
        return Settings.default()
    return Settings.load(config_path)
