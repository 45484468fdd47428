"""
MusicBrainz lookups for MBID enrichment.

Resolution order: ISRC lookup (exact), then a recording search over
title/artist/release (fuzzy, accepted only at or above FUZZY_SCORE_THRESHOLD).
All requests share one process-wide rate limiter; MusicBrainz allows one
request per second for anonymous clients.
"""

from __future__ import annotations
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import requests

from .config import DEFAULT_USER_AGENT, FUZZY_SCORE_THRESHOLD, RATE_LIMIT_WINDOW
from .models import IdentifierSet, Provenance

log = logging.getLogger("musicbrainz")


class RateLimiter:
    """At most one acquire() per window.

    Slots are reserved before the first await, so concurrent callers on the
    event loop queue up in call order instead of racing for the same slot.
    """

    def __init__(self, window: float = RATE_LIMIT_WINDOW,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._next_slot = 0.0

    async def acquire(self) -> None:
        now = self._clock()
        slot = max(now, self._next_slot)
        self._next_slot = slot + self.window
        wait = slot - now
        if wait > 0:
            log.debug("Rate limit: waiting %.2fs", wait)
            await self._sleep(wait)


# Shared by every resolver in the process unless one is injected
_limiter = RateLimiter()


def _lucene_quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _to_identifiers(recording: dict[str, Any], provenance: Provenance) -> IdentifierSet:
    artist_ids = []
    for credit in recording.get("artist-credit") or []:
        artist = credit.get("artist") if isinstance(credit, dict) else None
        if artist and artist.get("id"):
            artist_ids.append(artist["id"])
    releases = recording.get("releases") or []
    first = releases[0] if releases else {}
    group = first.get("release-group") or {}
    return IdentifierSet(
        recording_mbid=recording.get("id"),
        artist_mbids=tuple(artist_ids),
        release_mbid=first.get("id"),
        release_group_mbid=group.get("id"),
        provenance=provenance,
    )


class MetadataResolver:
    def __init__(self, base_url: str = "https://musicbrainz.org/ws/2",
                 user_agent: str = DEFAULT_USER_AGENT, timeout: int = 10,
                 session: requests.Session | None = None,
                 limiter: RateLimiter | None = None,
                 score_threshold: int = FUZZY_SCORE_THRESHOLD):
        self.base = base_url.rstrip("/")
        self.timeout = timeout
        self.score_threshold = score_threshold
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
        self.limiter = limiter or _limiter

    async def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any] | None:
        await self.limiter.acquire()
        url = f"{self.base}/{path}"
        try:
            resp = await asyncio.to_thread(self.session.get, url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            log.warning("MusicBrainz request %s failed: %s", path, e)
            return None
        return data if isinstance(data, dict) else None

    async def lookup_isrc(self, isrc: str) -> IdentifierSet | None:
        log.debug("Looking up ISRC %s", isrc)
        data = await self._get_json(
            f"isrc/{quote(isrc, safe='')}",
            {"fmt": "json", "inc": "artist-credits+releases+release-groups"},
        )
        recordings = (data or {}).get("recordings") or []
        if not recordings:
            return None
        # an ISRC identifies one recording; the first candidate is as good as any
        return _to_identifiers(recordings[0], Provenance.EXACT)

    async def search_recording(self, artist: str, track: str,
                               album: str | None = None) -> IdentifierSet | None:
        parts = [f"recording:{_lucene_quote(track)}", f"artist:{_lucene_quote(artist)}"]
        if album:
            parts.append(f"release:{_lucene_quote(album)}")
        query = " AND ".join(parts)
        log.debug("Searching recordings: %s", query)
        data = await self._get_json("recording/", {"query": query, "fmt": "json", "limit": 1})
        recordings = (data or {}).get("recordings") or []
        if not recordings:
            return None

        best = recordings[0]
        try:
            score = int(best.get("score", 0))
        except (TypeError, ValueError):
            score = 0
        if score < self.score_threshold:
            log.info("Low confidence match for %s — %s (score=%s)", artist, track, score)
            return None
        return _to_identifiers(best, Provenance.FUZZY)

    async def resolve(self, artist: str, track: str, album: str | None = None,
                      isrc: str | None = None) -> IdentifierSet:
        """Never raises; an unresolvable track yields IdentifierSet.none()."""
        if isrc:
            found = await self.lookup_isrc(isrc)
            if found:
                log.info("Resolved %s — %s via ISRC", artist, track)
                return found
            log.debug("ISRC lookup found nothing, falling back to text search")

        found = await self.search_recording(artist, track, album)
        if found:
            log.info("Resolved %s — %s via text search", artist, track)
            return found
        log.info("No MBIDs for %s — %s", artist, track)
        return IdentifierSet.none()
