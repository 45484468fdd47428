from __future__ import annotations

import asyncio

import pytest
import requests

from bluos_listenbrainz.models import IdentifierSet, Provenance
from bluos_listenbrainz.musicbrainz import MetadataResolver, RateLimiter

from conftest import FakeClock, FakeResponse, FakeSession


def _recording(rec_id="rec-1", score=None, with_group=True):
    release = {"id": "rel-1"}
    if with_group:
        release["release-group"] = {"id": "rg-1"}
    rec = {
        "id": rec_id,
        "title": "One More Time",
        "artist-credit": [{"artist": {"id": "art-1", "name": "Daft Punk"}, "joinphrase": " & "},
                          {"artist": {"id": "art-2", "name": "Romanthony"}}],
        "releases": [release],
    }
    if score is not None:
        rec["score"] = score
    return rec


def _resolver(session, clock=None):
    clock = clock or FakeClock()
    limiter = RateLimiter(window=1.0, clock=clock, sleep=clock.sleep)
    return MetadataResolver("https://mb.test/ws/2", user_agent="tests/1.0", session=session, limiter=limiter)


@pytest.mark.asyncio
async def test_isrc_lookup_maps_first_candidate_as_exact() -> None:
    session = FakeSession([FakeResponse(payload={"recordings": [_recording(), _recording("rec-2")]})])

    ids = await _resolver(session).resolve("Daft Punk", "One More Time", isrc="GBDUW0000059")

    assert ids == IdentifierSet("rec-1", ("art-1", "art-2"), "rel-1", "rg-1", Provenance.EXACT)
    method, url, kwargs = session.calls[0]
    assert url == "https://mb.test/ws/2/isrc/GBDUW0000059"
    assert kwargs["params"]["inc"] == "artist-credits+releases+release-groups"
    assert session.headers["User-Agent"] == "tests/1.0"


@pytest.mark.asyncio
async def test_isrc_miss_falls_back_to_text_search() -> None:
    session = FakeSession([
        FakeResponse(payload={"recordings": []}),
        FakeResponse(payload={"recordings": [_recording(score=100, with_group=False)]}),
    ])

    ids = await _resolver(session).resolve("Daft Punk", "One More Time", "Discovery", isrc="XX")

    assert ids.provenance is Provenance.FUZZY
    assert ids.release_group_mbid is None
    _, url, kwargs = session.calls[1]
    assert url == "https://mb.test/ws/2/recording/"
    assert kwargs["params"]["query"] == (
        'recording:"One More Time" AND artist:"Daft Punk" AND release:"Discovery"'
    )
    assert kwargs["params"]["limit"] == 1


@pytest.mark.asyncio
async def test_query_without_album_and_with_quotes() -> None:
    session = FakeSession([FakeResponse(payload={"recordings": []})])

    await _resolver(session).resolve('The "Band"', "Song")

    assert session.calls[0][2]["params"]["query"] == 'recording:"Song" AND artist:"The \\"Band\\""'


@pytest.mark.asyncio
@pytest.mark.parametrize("score, expected", [(84, Provenance.NONE), (85, Provenance.FUZZY)])
async def test_fuzzy_score_threshold(score, expected) -> None:
    session = FakeSession([FakeResponse(payload={"recordings": [_recording(score=score)]})])

    ids = await _resolver(session).resolve("Daft Punk", "One More Time")

    assert ids.provenance is expected


@pytest.mark.asyncio
async def test_below_threshold_returns_empty_identifiers() -> None:
    session = FakeSession([FakeResponse(payload={"recordings": [_recording(score=50)]})])

    assert await _resolver(session).resolve("A", "B") == IdentifierSet.none()


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", [
    requests.ConnectionError("offline"),
    FakeResponse(status_code=503),
    FakeResponse(payload=None),
])
async def test_failures_resolve_to_none(reply) -> None:
    session = FakeSession([reply])

    ids = await _resolver(session).resolve("Artist", "Track")

    assert ids == IdentifierSet.none()
    assert not ids.found


@pytest.mark.asyncio
async def test_rate_limiter_spaces_requests_one_window_apart() -> None:
    waits: list[float] = []

    async def record(delay):
        waits.append(delay)

    limiter = RateLimiter(window=1.0, clock=lambda: 100.0, sleep=record)

    await asyncio.gather(limiter.acquire(), limiter.acquire(), limiter.acquire())

    # first caller goes straight through, the others queue one window apart
    assert waits == [1.0, 2.0]


@pytest.mark.asyncio
async def test_rate_limiter_does_not_wait_after_idle_window() -> None:
    clock = FakeClock(now=100.0)
    limiter = RateLimiter(window=1.0, clock=clock, sleep=clock.sleep)

    await limiter.acquire()
    clock.now += 5
    await limiter.acquire()

    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_resolvers_share_the_default_limiter() -> None:
    first = MetadataResolver(session=FakeSession())
    second = MetadataResolver(session=FakeSession())

    assert first.limiter is second.limiter
