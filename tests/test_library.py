import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path

from audio_catalog.library import Library
from audio_catalog.models import AlbumDescriptor, LibraryError, ProcessingError, TrackRecord, UnknownFieldError
from audio_catalog.query import compile_query

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _track(name, artist, album, **kwargs) -> TrackRecord:
    kwargs.setdefault("added", NOW)
    return TrackRecord(path=Path(f"/lib/{name}.flac"), title=name, artist=artist, album=album, **kwargs)


def _titles(tracks) -> list:
    return [t.title for t in tracks]


class TestLibraryQueries(unittest.TestCase):
    def setUp(self) -> None:
        self.library = Library()
        album_id = self.library.add_album(AlbumDescriptor(title="Help!", artist="The Beatles", year=1965))
        self.library.add_items(
            album_id,
            [
                _track("Help!", "The Beatles", "Help!", year=1965, track_number=1, disc_number=1, genre="Rock", duration_seconds=138.0, bitrate=320000),
                _track("Yesterday", "The Beatles", "Help!", year=1965, track_number=13, disc_number=1, genre="Pop", duration_seconds=125.0, bitrate=320000),
                _track("So What", "Miles Davis", "Kind of Blue", year=1959, track_number=1, disc_number=1, genre="Jazz", duration_seconds=562.0, bitrate=256000, added=NOW - timedelta(days=40)),
                _track("Untitled", "Unknown Artist", "Demos"),
            ],
        )

    def test_substring_is_case_insensitive(self) -> None:
        self.assertEqual(_titles(self.library.query_items(compile_query("artist:beatles"))), ["Help!", "Yesterday"])

    def test_exact_match(self) -> None:
        self.assertEqual(_titles(self.library.query_items(compile_query("title:=Help!"))), ["Help!"])
        self.assertEqual(self.library.query_items(compile_query("title:=help!")), [])

    def test_numeric_range(self) -> None:
        self.assertEqual(_titles(self.library.query_items(compile_query("year:1960..1969"))), ["Help!", "Yesterday"])
        self.assertEqual(_titles(self.library.query_items(compile_query("year:..1960"))), ["So What"])

    def test_glob_pattern_is_case_sensitive(self) -> None:
        self.assertEqual(_titles(self.library.query_items(compile_query("genre::^Ro.*"))), ["Help!"])
        self.assertEqual(self.library.query_items(compile_query("genre::^ro.*")), [])

    def test_negation_skips_missing_values(self) -> None:
        self.assertEqual(
            _titles(self.library.query_items(compile_query("^genre:jazz"))),
            ["Help!", "Yesterday"],
        )

    def test_fulltext_searches_several_fields(self) -> None:
        self.assertEqual(_titles(self.library.query_items(compile_query("blue"))), ["So What"])
        self.assertEqual(_titles(self.library.query_items(compile_query("^beatles"))), ["So What", "Untitled"])

    def test_relative_date(self) -> None:
        compiled = compile_query("added:-1m", now=NOW)
        self.assertEqual(_titles(self.library.query_items(compiled)), ["Help!", "Yesterday", "Untitled"])

    def test_default_sort_and_explicit_sort(self) -> None:
        self.assertEqual(
            _titles(self.library.query_items(compile_query(""))),
            ["So What", "Help!", "Yesterday", "Untitled"],
        )
        self.assertEqual(
            _titles(self.library.query_items(compile_query("year- title+"))),
            ["Help!", "Yesterday", "So What", "Untitled"],
        )

    def test_unknown_fields_are_rejected(self) -> None:
        with self.assertRaises(UnknownFieldError):
            self.library.query_items(compile_query("mood:happy"))
        with self.assertRaises(UnknownFieldError):
            self.library.query_items(compile_query("id;drop+"))

    def test_modify_items(self) -> None:
        count = self.library.modify_items(compile_query("artist:beatles"), {"genre": "Beat", "year": "1966"})
        self.assertEqual(count, 2)
        tracks = self.library.query_items(compile_query("genre:=Beat"))
        self.assertEqual([t.year for t in tracks], [1966, 1966])

    def test_modify_rejects_unknown_or_protected_fields(self) -> None:
        with self.assertRaises(UnknownFieldError):
            self.library.modify_items(compile_query("artist:beatles"), {"path": "/tmp/x"})
        with self.assertRaises(LibraryError):
            self.library.modify_items(compile_query("artist:beatles"), {"year": "nineteen"})

    def test_remove_items(self) -> None:
        removed = self.library.remove_items(compile_query("artist:davis"))
        self.assertEqual(_titles(removed), ["So What"])
        self.assertFalse(self.library.item_exists(Path("/lib/So What.flac")))
        self.assertEqual(self.library.stats().tracks, 3)

    def test_stats(self) -> None:
        stats = self.library.stats()
        self.assertEqual(stats.tracks, 4)
        self.assertEqual(stats.albums, 1)
        self.assertEqual(stats.artists, 3)
        self.assertAlmostEqual(stats.total_length, 825.0)
        self.assertEqual(stats.total_size, int((320000 * 138 + 320000 * 125 + 256000 * 562) / 8))

    def test_duplicate_paths_are_skipped(self) -> None:
        added = self.library.add_items(None, [_track("Help!", "The Beatles", "Help!")])
        self.assertEqual(added, [])

    def test_operands_are_bound_not_executed(self) -> None:
        hostile = compile_query("title:x');DROP+TABLE+items;--")
        self.assertEqual(self.library.query_items(hostile), [])
        self.assertEqual(self.library.stats().tracks, 4)

    def test_substring_folds_non_ascii_case(self) -> None:
        self.library.add_items(None, [_track("\u00c9t\u00e9", "Ang\u00e8le", "Nonante-Cinq")])
        self.assertEqual(_titles(self.library.query_items(compile_query("artist:ANG\u00c8LE"))), ["\u00c9t\u00e9"])

    def test_exact_match_on_whole_seconds(self) -> None:
        self.assertEqual(_titles(self.library.query_items(compile_query("length:=138"))), ["Help!"])

    def test_update_items_rereads_tags(self) -> None:
        def reader(path: Path) -> TrackRecord:
            if path.stem == "Yesterday":
                raise ProcessingError("file vanished")
            return TrackRecord(path=path, title=path.stem.upper(), artist="The Beatles", album="Help!", year=1966, track_number=2, duration_seconds=140.0)

        matched, updated = self.library.update_items(compile_query("artist:beatles"), reader)

        self.assertEqual((matched, updated), (2, 1))
        help_track = self.library.query_items(compile_query("title:=HELP!"))[0]
        self.assertEqual((help_track.year, help_track.track_number, help_track.duration_seconds), (1966, 2, 140.0))
        self.assertEqual(help_track.added, NOW)
        self.assertEqual(_titles(self.library.query_items(compile_query("title:=Yesterday"))), ["Yesterday"])

    def test_reads_and_writes_from_worker_threads(self) -> None:
        def add_and_count(index: int) -> int:
            self.library.add_items(None, [_track(f"Take {index}", "Session", "Outtakes")])
            self.assertTrue(self.library.item_exists(Path(f"/lib/Take {index}.flac")))
            return len(self.library.query_items(compile_query("album:outtakes")))

        with ThreadPoolExecutor(max_workers=4) as pool:
            counts = list(pool.map(add_and_count, range(20)))

        self.assertTrue(all(1 <= count <= 20 for count in counts))
        self.assertEqual(self.library.stats().tracks, 24)

    def test_query_albums(self) -> None:
        self.assertEqual([a.title for a in self.library.query_albums("beat")], ["Help!"])
        self.assertEqual(self.library.query_albums("zappa"), [])


class TestLibraryPersistence(unittest.TestCase):
    def test_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "db" / "library.db"
            library = Library(path)
            self.addCleanup(library.close)
            album_id = library.add_album(AlbumDescriptor(title="Help!", artist="The Beatles", year=1965, mb_album_id="rel-1"))
            library.add_items(
                album_id,
                [_track("Help!", "The Beatles", "Help!", mb_track_id="rec-1", duration_seconds=138.5, extra={"comment": "mono"})],
            )

            reopened = Library(path)
            self.addCleanup(reopened.close)
            tracks = reopened.query_items(compile_query("mb_trackid:=rec-1"))
            self.assertEqual(len(tracks), 1)
            self.assertEqual(tracks[0].duration_seconds, 138.5)
            self.assertEqual(tracks[0].added, NOW)
            self.assertEqual(tracks[0].extra, {"comment": "mono"})
            self.assertEqual(reopened.album_id_for(Path("/lib/Help!.flac")), album_id)
            self.assertEqual(reopened.query_albums()[0].mb_album_id, "rel-1")
            next_album = reopened.add_album(AlbumDescriptor(title="Rubber Soul", artist="The Beatles"))
            self.assertEqual(next_album, album_id + 1)

    def test_corrupt_file_raises_library_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "library.db"
            path.write_bytes(b"this is not an sqlite database\n" * 64)
            with self.assertRaises(LibraryError):
                Library(path)


if __name__ == "__main__":
    unittest.main()
