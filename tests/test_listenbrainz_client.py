from __future__ import annotations

import pytest
import requests

from bluos_listenbrainz.listenbrainz_client import (
    ListenBrainzAuthError,
    ListenBrainzClient,
    ListenBrainzNetworkError,
    ListenBrainzRateLimitError,
    ListenBrainzUnknownError,
)
from bluos_listenbrainz.models import Listen

from conftest import FakeResponse, FakeSession

LISTEN = Listen(
    artist="Daft Punk",
    track="One More Time",
    listened_at=1_700_000_000,
    release="Discovery",
    additional_info={"recording_mbid": "rec-1", "tracknumber": 1},
)


@pytest.mark.asyncio
async def test_submit_posts_single_listen_with_token() -> None:
    session = FakeSession([FakeResponse(payload={"status": "ok"})])
    client = ListenBrainzClient("https://lb.test/", session=session)

    result = await client.submit("secret", [LISTEN])

    assert result == {"status": "ok"}
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "https://lb.test/1/submit-listens")
    assert kwargs["headers"] == {"Authorization": "Token secret"}
    assert kwargs["json"] == {
        "listen_type": "single",
        "payload": [{
            "listened_at": 1_700_000_000,
            "track_metadata": {
                "artist_name": "Daft Punk",
                "track_name": "One More Time",
                "release_name": "Discovery",
                "additional_info": {"recording_mbid": "rec-1", "tracknumber": 1},
            },
        }],
    }


@pytest.mark.asyncio
async def test_optional_fields_are_omitted() -> None:
    session = FakeSession([FakeResponse(payload={})])
    client = ListenBrainzClient(session=session)

    await client.submit("t", [Listen(artist="A", track="B", listened_at=5)])

    entry = session.calls[0][2]["json"]["payload"][0]
    assert entry == {"listened_at": 5, "track_metadata": {"artist_name": "A", "track_name": "B"}}


@pytest.mark.asyncio
@pytest.mark.parametrize("status, error", [
    (401, ListenBrainzAuthError),
    (403, ListenBrainzAuthError),
    (429, ListenBrainzRateLimitError),
    (400, ListenBrainzUnknownError),
    (500, ListenBrainzUnknownError),
])
async def test_non_2xx_raises(status, error) -> None:
    session = FakeSession([FakeResponse(status_code=status, text="nope")])
    client = ListenBrainzClient(session=session)

    with pytest.raises(error, match=str(status)):
        await client.submit("t", [LISTEN])


@pytest.mark.asyncio
async def test_transport_error_is_network_error() -> None:
    session = FakeSession([requests.ConnectionError("down")])
    client = ListenBrainzClient(session=session)

    with pytest.raises(ListenBrainzNetworkError):
        await client.submit("t", [LISTEN])


@pytest.mark.asyncio
async def test_playing_now_has_no_timestamp_and_never_raises() -> None:
    session = FakeSession([FakeResponse(payload={}), FakeResponse(status_code=500)])
    client = ListenBrainzClient(session=session)

    await client.submit_playing_now("t", LISTEN)
    await client.submit_playing_now("t", LISTEN)

    body = session.calls[0][2]["json"]
    assert body["listen_type"] == "playing_now"
    assert "listened_at" not in body["payload"][0]
