import unittest
from unittest.mock import patch

from audio_catalog.config import MusicBrainzSettings
from audio_catalog.models import CatalogError
from audio_catalog.providers.musicbrainz import (
    MusicBrainzClient,
    parse_artist_credit,
    release_from_payload,
)
from audio_catalog.providers.rate_limit import RateLimiter

RELEASE_PAYLOAD = {
    "id": "rel-1",
    "title": "Abbey Road",
    "date": "1969-09-26",
    "ext:score": "97",
    "artist-credit": [{"artist": {"id": "a1", "name": "The Beatles"}}],
    "medium-list": [
        {
            "position": "1",
            "track-count": 2,
            "track-list": [
                {
                    "number": "1",
                    "title": "Come Together",
                    "length": "259000",
                    "recording": {"id": "rec-1", "title": "Come Together"},
                },
                {
                    "number": "2",
                    "recording": {"id": "rec-2", "title": "Something", "length": "182000"},
                },
            ],
        }
    ],
}


def _stub(calls, search=None, lookup=None):
    class _MBStub:
        class WebServiceError(Exception):
            pass

        class NetworkError(WebServiceError):
            pass

        class ResponseError(WebServiceError):
            pass

        @staticmethod
        def set_useragent(*_args, **_kwargs) -> None:
            return None

        @staticmethod
        def set_rate_limit(*_args, **_kwargs) -> None:
            return None

        @staticmethod
        def search_releases(**kwargs):
            calls.append(("search", kwargs))
            return search(_MBStub, kwargs)

        @staticmethod
        def get_release_by_id(release_id, includes=None):
            calls.append(("lookup", release_id))
            return lookup(_MBStub, release_id)

    return _MBStub


def _settings(**overrides) -> MusicBrainzSettings:
    values = {"network_retries": 1, "network_retry_backoff_seconds": 0.0}
    values.update(overrides)
    return MusicBrainzSettings(**values)


class TestReleasePayload(unittest.TestCase):
    def test_release_from_lookup_payload(self) -> None:
        release = release_from_payload(RELEASE_PAYLOAD)

        self.assertEqual(release.release_id, "rel-1")
        self.assertEqual(release.artist_name, "The Beatles")
        self.assertEqual(release.year, 1969)
        self.assertEqual(release.score, 97)
        self.assertEqual([t.title for t in release.tracks], ["Come Together", "Something"])
        self.assertEqual([t.length_ms for t in release.tracks], [259000, 182000])
        self.assertEqual([t.disc_number for t in release.tracks], [1, 1])
        self.assertEqual(release.track_count, 2)

    def test_search_hit_uses_advertised_track_count(self) -> None:
        release = release_from_payload(
            {"id": "rel-2", "title": "Help!", "medium-list": [{"position": "1", "track-count": 14}]}
        )
        self.assertEqual(release.tracks, ())
        self.assertEqual(release.track_count, 14)

    def test_odd_numeric_fields_are_ignored(self) -> None:
        release = release_from_payload(
            {
                "id": "rel-3",
                "title": "Odd",
                "ext:score": "\u00b2",
                "medium-list": [
                    {
                        "position": "\u00b9",
                        "track-count": "many",
                        "track-list": [{"title": "One", "length": "\u00b3", "recording": {"id": "rec-9"}}],
                    }
                ],
            }
        )
        self.assertEqual(release.score, 0)
        self.assertEqual(release.tracks[0].disc_number, 1)
        self.assertIsNone(release.tracks[0].length_ms)
        self.assertEqual(release.track_count, 1)

    def test_artist_credit_join_phrases(self) -> None:
        credits = parse_artist_credit(
            [{"artist": {"name": "Simon"}}, " & ", {"name": "Garfunkel", "artist": {"name": "Art Garfunkel"}}]
        )
        self.assertEqual([(c.name, c.join_phrase) for c in credits], [("Simon", " & "), ("Garfunkel", "")])


class TestMusicBrainzClient(unittest.TestCase):
    def test_search_keeps_service_order(self) -> None:
        calls = []

        def search(_mb, kwargs):
            return {
                "release-list": [
                    {"id": "b", "title": "Second", "ext:score": "80"},
                    {"title": "no id"},
                    {"id": "a", "title": "First", "ext:score": "100"},
                ]
            }

        with patch("audio_catalog.providers.musicbrainz.musicbrainzngs", _stub(calls, search=search)):
            client = MusicBrainzClient(_settings(), limiter=RateLimiter(0))
            releases = client.search_releases("The Beatles", "Help!", 5)

        self.assertEqual([r.release_id for r in releases], ["b", "a"])
        self.assertEqual(calls, [("search", {"limit": 5, "artist": "The Beatles", "release": "Help!"})])

    def test_lookup_returns_full_release(self) -> None:
        calls = []
        with patch(
            "audio_catalog.providers.musicbrainz.musicbrainzngs",
            _stub(calls, lookup=lambda _mb, _rid: {"release": RELEASE_PAYLOAD}),
        ):
            client = MusicBrainzClient(_settings(), limiter=RateLimiter(0))
            release = client.lookup_release("rel-1")

        self.assertEqual(len(release.tracks), 2)
        self.assertEqual(calls, [("lookup", "rel-1")])

    def test_network_error_is_retried_then_raised(self) -> None:
        calls = []

        def search(mb, _kwargs):
            raise mb.NetworkError("dns")

        with patch("audio_catalog.providers.musicbrainz.musicbrainzngs", _stub(calls, search=search)):
            client = MusicBrainzClient(_settings(), limiter=RateLimiter(0))
            with self.assertRaises(CatalogError):
                client.search_releases("A", "B", 5)

        self.assertEqual(len(calls), 2)

    def test_network_error_recovers_on_retry(self) -> None:
        calls = []

        def search(mb, _kwargs):
            if len(calls) == 1:
                raise mb.NetworkError("dns")
            return {"release-list": [{"id": "x", "title": "B"}]}

        with patch("audio_catalog.providers.musicbrainz.musicbrainzngs", _stub(calls, search=search)):
            client = MusicBrainzClient(_settings(), limiter=RateLimiter(0))
            releases = client.search_releases("A", "B", 5)

        self.assertEqual([r.release_id for r in releases], ["x"])
        self.assertEqual(len(calls), 2)

    def test_response_error_is_not_retried(self) -> None:
        calls = []

        def lookup(mb, _rid):
            raise mb.ResponseError("404")

        with patch("audio_catalog.providers.musicbrainz.musicbrainzngs", _stub(calls, lookup=lookup)):
            client = MusicBrainzClient(_settings(network_retries=3), limiter=RateLimiter(0))
            with self.assertRaises(CatalogError):
                client.lookup_release("missing")

        self.assertEqual(len(calls), 1)

    def test_empty_lookup_response_raises(self) -> None:
        calls = []
        with patch(
            "audio_catalog.providers.musicbrainz.musicbrainzngs",
            _stub(calls, lookup=lambda _mb, _rid: {}),
        ):
            client = MusicBrainzClient(_settings(), limiter=RateLimiter(0))
            with self.assertRaises(CatalogError):
                client.lookup_release("rel-1")

    def test_every_attempt_waits_on_the_limiter(self) -> None:
        calls = []
        waits = []

        class _Limiter:
            def wait(self) -> float:
                waits.append(1)
                return 0.0

        def search(mb, _kwargs):
            raise mb.NetworkError("timeout")

        with patch("audio_catalog.providers.musicbrainz.musicbrainzngs", _stub(calls, search=search)):
            client = MusicBrainzClient(_settings(network_retries=2), limiter=_Limiter())
            with self.assertRaises(CatalogError):
                client.search_releases("A", "B", 5)

        self.assertEqual(len(waits), 3)


if __name__ == "__main__":
    unittest.main()
