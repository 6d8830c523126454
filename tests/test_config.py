import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from pydantic import ValidationError

from audio_catalog.config import Settings, find_config, load_settings


class TestSettings(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = Settings.default()
        self.assertEqual(settings.musicbrainz.search_limit, 5)
        self.assertEqual(settings.musicbrainz.rate_limit_seconds, 1.0)
        self.assertEqual(settings.scanner.worker_concurrency, 4)
        self.assertIn(".flac", settings.library.include_extensions)
        self.assertTrue(settings.library.database.is_absolute())

    def test_load_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text(
                "library:\n"
                "  directory: ~/Music/lossless\n"
                f"  database: {tmp}/lib.db\n"
                "  include_extensions: [FLAC, .Mp3]\n"
                "musicbrainz:\n"
                "  search_limit: 10\n"
                "  rate_limit_seconds: 0\n",
                encoding="utf-8",
            )
            settings = Settings.load(path)

        self.assertEqual(settings.library.directory, Path("~/Music/lossless").expanduser().resolve())
        self.assertEqual(settings.library.database, (Path(tmp) / "lib.db").resolve())
        self.assertEqual(settings.library.include_extensions, [".flac", ".mp3"])
        self.assertEqual(settings.musicbrainz.search_limit, 10)
        self.assertEqual(settings.musicbrainz.rate_limit_seconds, 0.0)

    def test_empty_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text("", encoding="utf-8")
            self.assertEqual(Settings.load(path), Settings.default())

    def test_invalid_values_are_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text("musicbrainz:\n  search_limit: 0\n", encoding="utf-8")
            with self.assertRaises(ValidationError):
                Settings.load(path)


class TestFindConfig(unittest.TestCase):
    def test_explicit_missing_path_raises(self) -> None:
        with self.assertRaises(FileNotFoundError):
            find_config(Path("/definitely/not/here.yaml"))

    def test_discovers_config_in_cwd(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "config.yml").write_text("scanner:\n  worker_concurrency: 2\n", encoding="utf-8")
            with patch("audio_catalog.config.Path.cwd", return_value=Path(tmp)):
                self.assertEqual(find_config(None), Path(tmp) / "config.yml")
                self.assertEqual(load_settings().scanner.worker_concurrency, 2)

    def test_no_config_found(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with patch("audio_catalog.config.Path.cwd", return_value=Path(tmp)):
                self.assertIsNone(find_config(None))
                self.assertEqual(load_settings(), Settings.default())


if __name__ == "__main__":
    unittest.main()
