from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import (
    AlbumDescriptor,
    LibraryError,
    ProcessingError,
    TrackRecord,
    UnknownFieldError,
    parse_datetime,
    utc_now,
)
from .query import Clause, CompiledQuery, Operator, SortDirective

logger = logging.getLogger(__name__)

# Query field name (also the items column) -> TrackRecord attribute.
ITEM_FIELDS: Dict[str, str] = {
    "path": "path",
    "title": "title",
    "artist": "artist",
    "album": "album",
    "albumartist": "album_artist",
    "genre": "genre",
    "year": "year",
    "track": "track_number",
    "disc": "disc_number",
    "length": "duration_seconds",
    "bitrate": "bitrate",
    "format": "format",
    "mb_trackid": "mb_track_id",
    "mb_albumid": "mb_album_id",
    "added": "added",
    "mtime": "mtime",
}
MODIFIABLE_FIELDS = {
    "title",
    "artist",
    "album",
    "albumartist",
    "genre",
    "year",
    "track",
    "disc",
    "mb_trackid",
    "mb_albumid",
}
# Columns rewritten from the file's tags by update_items.
TAG_FIELDS = (
    "title",
    "artist",
    "album",
    "albumartist",
    "genre",
    "year",
    "track",
    "disc",
    "bitrate",
    "length",
    "mtime",
)
INTEGER_FIELDS = {"year", "track", "disc", "bitrate"}
NUMERIC_FIELDS = INTEGER_FIELDS | {"length"}
DATE_FIELDS = {"added", "mtime"}
REQUIRED_TEXT_FIELDS = {"title", "artist", "album"}
FULLTEXT_FIELDS = ("title", "artist", "album", "albumartist", "genre")

_ITEM_COLUMNS = ("album_id", *ITEM_FIELDS, "extra")


@dataclass(frozen=True, slots=True)
class LibraryStats:
    tracks: int
    albums: int
    artists: int
    total_length: float
    total_size: int


class Library:
    """
    SQLite-backed item and album store.

    Compiled clauses become WHERE fragments: column names come only from
    ITEM_FIELDS after validation, every operand is bound as a `?` parameter.
    The connection is shared between threads and guarded by one lock.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path
        self._lock = Lock()
        target = ":memory:"
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            target = str(path)
        try:
            self._conn = sqlite3.connect(target, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.create_function("py_lower", 1, _lower_text, deterministic=True)
            self._create_schema()
        except sqlite3.DatabaseError as exc:
            raise LibraryError(f"Cannot open library {target}: {exc}") from exc

    def _create_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS albums (
                id INTEGER PRIMARY KEY,
                album TEXT NOT NULL,
                albumartist TEXT NOT NULL,
                year INTEGER,
                mb_albumid TEXT,
                added TEXT NOT NULL
            )
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY,
                album_id INTEGER REFERENCES albums(id),
                path TEXT NOT NULL UNIQUE,
                title TEXT NOT NULL,
                artist TEXT NOT NULL,
                album TEXT NOT NULL,
                albumartist TEXT,
                genre TEXT,
                year INTEGER,
                track INTEGER,
                disc INTEGER,
                length REAL NOT NULL,
                bitrate INTEGER NOT NULL,
                format TEXT NOT NULL,
                mb_trackid TEXT,
                mb_albumid TEXT,
                added TEXT NOT NULL,
                mtime TEXT,
                extra TEXT NOT NULL DEFAULT '{}'
            )
            """
        )
        for column in ("artist", "album", "year", "genre"):
            self._conn.execute(f"CREATE INDEX IF NOT EXISTS idx_items_{column} ON items({column})")
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -- writes -----------------------------------------------------------

    def add_album(self, descriptor: AlbumDescriptor) -> int:
        with self._lock:
            cursor = self._conn.execute(
                "INSERT INTO albums(album, albumartist, year, mb_albumid, added) VALUES(?, ?, ?, ?, ?)",
                (
                    descriptor.title,
                    descriptor.artist,
                    descriptor.year,
                    descriptor.mb_album_id,
                    _iso(descriptor.added),
                ),
            )
            self._conn.commit()
        return int(cursor.lastrowid)

    def add_items(self, album_id: Optional[int], tracks: Iterable[TrackRecord]) -> List[int]:
        placeholders = ", ".join("?" for _ in _ITEM_COLUMNS)
        sql = (
            f"INSERT INTO items({', '.join(_ITEM_COLUMNS)}) VALUES({placeholders}) "
            "ON CONFLICT(path) DO NOTHING"
        )
        added: List[int] = []
        with self._lock:
            for track in tracks:
                cursor = self._conn.execute(sql, _item_row(album_id, track))
                if cursor.rowcount:
                    added.append(int(cursor.lastrowid))
                else:
                    logger.debug("Skipping %s, already in library", track.path)
            self._conn.commit()
        return added

    def modify_items(self, query: CompiledQuery, assignments: Dict[str, str]) -> int:
        changes: Dict[str, Any] = {}
        for name, raw in assignments.items():
            if name not in MODIFIABLE_FIELDS:
                raise UnknownFieldError(name)
            changes[name] = _coerce_value(name, raw)
        self.validate_query(query)
        if not changes:
            return 0
        where, params = _where(query.clauses)
        assignments_sql = ", ".join(f"{name} = ?" for name in changes)
        with self._lock:
            cursor = self._conn.execute(
                f"UPDATE items SET {assignments_sql} WHERE {where}",
                (*changes.values(), *params),
            )
            self._conn.commit()
        return cursor.rowcount

    def update_items(
        self, query: CompiledQuery, reader: Callable[[Path], TrackRecord]
    ) -> Tuple[int, int]:
        """
        Re-read tags for every matching item and store them.

        Path, album link, MusicBrainz ids and the added date are kept.
        Files the reader rejects are skipped. Returns (matched, updated).
        """
        matched = self._select(query)
        assignments_sql = ", ".join(f"{name} = ?" for name in TAG_FIELDS)
        updated = 0
        for item_id, track in matched:
            try:
                fresh = reader(track.path)
            except ProcessingError as exc:
                logger.warning("Skipping %s: %s", track.path, exc)
                continue
            values = [_column_value(name, fresh) for name in TAG_FIELDS]
            with self._lock:
                self._conn.execute(
                    f"UPDATE items SET {assignments_sql} WHERE id = ?",
                    (*values, item_id),
                )
                self._conn.commit()
            updated += 1
        return len(matched), updated

    def remove_items(self, query: CompiledQuery) -> List[TrackRecord]:
        self.validate_query(query)
        where, params = _where(query.clauses)
        with self._lock:
            rows = self._conn.execute(f"SELECT * FROM items WHERE {where} ORDER BY id", params).fetchall()
            self._conn.execute(f"DELETE FROM items WHERE {where}", params)
            self._conn.commit()
        return [_track_from_row(row) for row in rows]

    # -- reads ------------------------------------------------------------

    def item_exists(self, path: Path) -> bool:
        with self._lock:
            row = self._conn.execute("SELECT 1 FROM items WHERE path = ?", (str(path),)).fetchone()
        return row is not None

    def album_id_for(self, path: Path) -> Optional[int]:
        with self._lock:
            row = self._conn.execute("SELECT album_id FROM items WHERE path = ?", (str(path),)).fetchone()
        if row is None:
            return None
        return row["album_id"]

    def validate_query(self, query: CompiledQuery) -> None:
        for clause in query.clauses:
            if clause.field is not None and clause.field not in ITEM_FIELDS:
                raise UnknownFieldError(clause.field)
        for directive in query.sort:
            if directive.field not in ITEM_FIELDS:
                raise UnknownFieldError(directive.field)

    def query_items(self, query: CompiledQuery) -> List[TrackRecord]:
        return [track for _, track in self._select(query)]

    def query_albums(self, text: Optional[str] = None) -> List[AlbumDescriptor]:
        sql = "SELECT * FROM albums"
        params: Tuple[Any, ...] = ()
        needle = (text or "").lower()
        if needle:
            sql += " WHERE instr(py_lower(album), ?) > 0 OR instr(py_lower(albumartist), ?) > 0"
            params = (needle, needle)
        sql += " ORDER BY albumartist, coalesce(year, 0), album, id"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [
            AlbumDescriptor(
                title=row["album"],
                artist=row["albumartist"],
                year=row["year"],
                mb_album_id=row["mb_albumid"],
                added=parse_datetime(row["added"]) or utc_now(),
            )
            for row in rows
        ]

    def stats(self) -> LibraryStats:
        with self._lock:
            items = self._conn.execute(
                """
                SELECT COUNT(*) AS tracks,
                       COUNT(DISTINCT artist) AS artists,
                       COALESCE(SUM(length), 0.0) AS total_length,
                       COALESCE(SUM(bitrate * length / 8.0), 0.0) AS total_size
                FROM items
                """
            ).fetchone()
            albums = self._conn.execute("SELECT COUNT(*) FROM albums").fetchone()[0]
        return LibraryStats(
            tracks=items["tracks"],
            albums=albums,
            artists=items["artists"],
            total_length=float(items["total_length"]),
            total_size=int(items["total_size"]),
        )

    def _select(self, query: CompiledQuery) -> List[Tuple[int, TrackRecord]]:
        self.validate_query(query)
        where, params = _where(query.clauses)
        order = _order_by(query.sort)
        with self._lock:
            rows = self._conn.execute(f"SELECT * FROM items WHERE {where} ORDER BY {order}", params).fetchall()
        return [(row["id"], _track_from_row(row)) for row in rows]


# -- clause lowering ------------------------------------------------------


def _where(clauses: Sequence[Clause]) -> Tuple[str, List[Any]]:
    if not clauses:
        return "1", []
    fragments: List[str] = []
    params: List[Any] = []
    for clause in clauses:
        sql, values = _clause_sql(clause)
        fragments.append(f"({sql})")
        params.extend(values)
    return " AND ".join(fragments), params


def _clause_sql(clause: Clause) -> Tuple[str, List[Any]]:
    if clause.operator is Operator.FULLTEXT:
        needle = str(clause.operands[0]).lower()
        sql = " OR ".join(f"instr(py_lower(coalesce({name}, '')), ?) > 0" for name in FULLTEXT_FIELDS)
        params = [needle] * len(FULLTEXT_FIELDS)
        return (f"NOT ({sql})" if clause.negated else sql), params

    column = str(clause.field)
    sql, params = _PREDICATES[clause.operator](column, clause.operands)
    if clause.negated:
        sql = f"NOT ({sql})"
    # A missing value satisfies neither a predicate nor its negation.
    return f"{column} IS NOT NULL AND {sql}", params


def _text_expr(column: str) -> str:
    if column in DATE_FIELDS:
        return f"substr({column}, 1, 10)"
    if column == "length":
        return (
            f"CASE WHEN {column} = CAST({column} AS INTEGER) "
            f"THEN CAST(CAST({column} AS INTEGER) AS TEXT) ELSE CAST({column} AS TEXT) END"
        )
    return f"CAST({column} AS TEXT)"


def _substring(column: str, operands: Sequence[object]) -> Tuple[str, List[Any]]:
    return f"instr(py_lower({_text_expr(column)}), ?) > 0", [str(operands[0]).lower()]


def _exact(column: str, operands: Sequence[object]) -> Tuple[str, List[Any]]:
    return f"{_text_expr(column)} = ?", [str(operands[0])]


def _pattern(column: str, operands: Sequence[object]) -> Tuple[str, List[Any]]:
    return f"{_text_expr(column)} GLOB ?", [str(operands[0])]


def _range(column: str, operands: Sequence[object]) -> Tuple[str, List[Any]]:
    parts: List[str] = []
    params: List[Any] = []
    for bound, op in zip(operands, (">=", "<=")):
        if bound is None:
            continue
        number = _to_number(bound) if column in NUMERIC_FIELDS else None
        if number is not None:
            parts.append(f"{column} {op} ?")
            params.append(number)
        else:
            parts.append(f"{_text_expr(column)} {op} ?")
            params.append(str(bound))
    return (" AND ".join(parts) or "1"), params


def _since(column: str, operands: Sequence[object]) -> Tuple[str, List[Any]]:
    since = operands[0]
    if column not in DATE_FIELDS or not hasattr(since, "isoformat"):
        return "0", []
    return f"{_text_expr(column)} >= ?", [since.isoformat()]


_PREDICATES: Dict[Operator, Callable[[str, Sequence[object]], Tuple[str, List[Any]]]] = {
    Operator.SUBSTRING: _substring,
    Operator.EXACT: _exact,
    Operator.PATTERN: _pattern,
    Operator.RANGE: _range,
    Operator.SINCE: _since,
}


def _order_by(directives: Sequence[SortDirective]) -> str:
    # Missing values go last in either direction; ties keep insertion order.
    terms: List[str] = []
    for directive in directives:
        column = directive.field
        key = column if column in NUMERIC_FIELDS | DATE_FIELDS else f"py_lower({column})"
        terms.append(f"{column} IS NULL")
        terms.append(f"{key} {'ASC' if directive.ascending else 'DESC'}")
    terms.append("id")
    return ", ".join(terms)


# -- row mapping ----------------------------------------------------------


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _column_value(name: str, track: TrackRecord) -> Any:
    value = getattr(track, ITEM_FIELDS[name])
    if name == "path":
        return str(value)
    if name in DATE_FIELDS:
        return _iso(value)
    return value


def _item_row(album_id: Optional[int], track: TrackRecord) -> Tuple[Any, ...]:
    return (
        album_id,
        *(_column_value(name, track) for name in ITEM_FIELDS),
        json.dumps(track.extra, sort_keys=True),
    )


def _track_from_row(row: sqlite3.Row) -> TrackRecord:
    return TrackRecord(
        path=Path(row["path"]),
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        album_artist=row["albumartist"],
        genre=row["genre"],
        year=row["year"],
        track_number=row["track"],
        disc_number=row["disc"],
        duration_seconds=float(row["length"]),
        bitrate=int(row["bitrate"]),
        format=row["format"],
        mb_track_id=row["mb_trackid"],
        mb_album_id=row["mb_albumid"],
        added=parse_datetime(row["added"]) or utc_now(),
        mtime=parse_datetime(row["mtime"]),
        extra=json.loads(row["extra"] or "{}"),
    )


def _lower_text(value: object) -> Optional[str]:
    if value is None:
        return None
    return str(value).lower()


def _to_number(value: object) -> Optional[float]:
    try:
        return float(str(value))
    except ValueError:
        return None


def _coerce_value(name: str, raw: str) -> Any:
    text = raw.strip()
    if name in INTEGER_FIELDS:
        if not text:
            return None
        try:
            return int(text)
        except ValueError as exc:
            raise LibraryError(f"Field {name} expects an integer, got {raw!r}") from exc
    if name in REQUIRED_TEXT_FIELDS:
        return text
    return text or None
