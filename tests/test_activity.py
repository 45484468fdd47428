from __future__ import annotations

import pytest

from bluos_listenbrainz.activity import ActivityLog
from bluos_listenbrainz.notifier import Notifier
from bluos_listenbrainz.notifier_gotify import GotifyNotifier


class RecordingSink:
    def __init__(self) -> None:
        self.sent: list[tuple] = []

    def send(self, level, title, message, extra=None):
        self.sent.append((level, title, message, extra))


class BrokenSink:
    def send(self, level, title, message, extra=None):
        raise RuntimeError("boom")


def test_entries_are_newest_first_and_bounded() -> None:
    activity = ActivityLog(maxlen=3)
    for n in range(5):
        activity.info(f"event {n}")

    assert [e.message for e in activity.entries()] == ["event 4", "event 3", "event 2"]
    activity.clear()
    assert activity.entries() == []


def test_sinks_get_every_level_outside_a_loop() -> None:
    sink = RecordingSink()
    activity = ActivityLog([BrokenSink(), sink])

    activity.success("Scrobbled: A — B")
    activity.error("Gave up", extra={"attempts": 5}, title="Scrobble dropped")

    assert sink.sent == [
        ("SUCCESS", "Scrobbled: A — B", "Scrobbled: A — B", None),
        ("ERROR", "Scrobble dropped", "Gave up", {"attempts": 5}),
    ]


def test_notifier_respects_min_level(monkeypatch) -> None:
    posted = []
    monkeypatch.setattr("requests.post", lambda url, **kw: posted.append((url, kw)))
    notifier = Notifier("https://hooks.test/x", min_level="WARNING")

    notifier.send("INFO", "t", "quiet")
    notifier.send("ERROR", "Scrobble dropped", "Gave up")

    assert len(posted) == 1
    assert posted[0][1]["json"]["level"] == "ERROR"
    assert posted[0][1]["json"]["title"].endswith(": Scrobble dropped")


@pytest.mark.parametrize("level, priority", [("WARNING", 5), ("ERROR", 8)])
def test_gotify_bumps_error_priority(monkeypatch, level, priority) -> None:
    posted = []
    monkeypatch.setattr("requests.post", lambda url, **kw: posted.append((url, kw)))
    gotify = GotifyNotifier("http://nas:8080/", "app-token")

    gotify.send(level, "t", "msg", extra={"track": "B"})

    url, kwargs = posted[0]
    assert url == "http://nas:8080/message"
    assert kwargs["headers"] == {"X-Gotify-Key": "app-token"}
    assert kwargs["json"]["priority"] == priority
    assert kwargs["json"]["message"] == "msg\n\ntrack: B"
