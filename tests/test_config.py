from __future__ import annotations

from bluos_listenbrainz import config
from bluos_listenbrainz.config import Settings


def test_defaults_from_empty_environment(monkeypatch) -> None:
    for name in ("LISTENBRAINZ_TOKEN", "SCROBBLE_PERCENT", "SCROBBLE_MIN_SECONDS", "MBID_PRELOAD_ENABLED"):
        monkeypatch.delenv(name, raising=False)

    settings = config.from_env()

    assert settings.scrobble_percent == 50
    assert settings.scrobble_min_seconds == 240
    assert settings.mbid_preload_enabled
    assert not settings.can_scrobble


def test_values_are_clamped(monkeypatch) -> None:
    monkeypatch.setenv("SCROBBLE_PERCENT", "150")
    monkeypatch.setenv("SCROBBLE_MIN_SECONDS", "3")
    monkeypatch.setenv("SCROBBLE_QUEUE_LIMIT", "0")
    monkeypatch.setenv("LISTENBRAINZ_TOKEN", "  abc  ")

    settings = config.from_env()

    assert settings.scrobble_percent == 100
    assert settings.scrobble_min_seconds == 10
    assert settings.queue_limit == 1
    assert settings.listenbrainz_token == "abc"
    assert settings.can_scrobble


def test_bad_numbers_and_flags_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("BLUOS_PORT", "eleven")
    monkeypatch.setenv("SCROBBLING_ENABLED", "maybe")

    settings = config.from_env()

    assert settings.bluos_port == 11000
    assert settings.scrobbling_enabled


def test_enrichment_off_turns_preload_off() -> None:
    settings = Settings(mbid_enrichment_enabled=False, mbid_preload_enabled=True)

    assert not settings.mbid_preload_enabled


def test_with_changes_reapplies_clamping() -> None:
    settings = Settings(listenbrainz_token="t").with_changes(scrobble_percent=0, scrobbling_enabled=False)

    assert settings.scrobble_percent == 1
    assert settings.listenbrainz_token == "t"
    assert not settings.can_scrobble
