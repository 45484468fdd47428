"""
Scrobble decision engine.

Consumes player notifications (track change, play/pause, 2s position samples)
and hands at most one listen per track to the retry queue, enriched with
MBIDs. MBIDs are preloaded in the background as soon as a track starts so the
hand-off rarely has to wait on MusicBrainz.
"""

from __future__ import annotations
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Coroutine

from . import __version__
from .activity import ActivityLog
from .config import PRELOAD_RETRY_DELAY, PRELOAD_SETTLE_DELAYS, Settings
from .listenbrainz_client import ListenBrainzClient
from .mbid_cache import MetadataCache
from .models import IdentifierSet, Listen, NowPlaying, TrackAttributes
from .musicbrainz import MetadataResolver
from .scrobble_queue import RetryQueue
from .state import EngineState, Eligibility, TrackSession, scrobble_eligible

log = logging.getLogger("engine")


class ScrobbleDecisionEngine:
    def __init__(self, settings: Settings, queue: RetryQueue, cache: MetadataCache,
                 resolver: MetadataResolver, client: ListenBrainzClient | None = None,
                 activity: ActivityLog | None = None,
                 now_playing: Callable[[], NowPlaying | None] | None = None,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.settings = settings
        self.queue = queue
        self.cache = cache
        self.resolver = resolver
        self.client = client
        self.activity = activity or ActivityLog()
        self._now_playing = now_playing
        self._clock = clock
        self._sleep = sleep
        self._session: TrackSession | None = None
        self._progress = 0.0
        self._tasks: set[asyncio.Task] = set()

    # -------- introspection --------
    @property
    def session(self) -> TrackSession | None:
        return self._session

    @property
    def state(self) -> EngineState:
        session = self._session
        if session is None:
            return EngineState.IDLE
        if session.submitted:
            return EngineState.SUBMITTED
        return EngineState.TRACKING if session.playing else EngineState.IDLE

    @property
    def progress(self) -> float:
        return self._progress

    def apply_settings(self, settings: Settings) -> None:
        self.settings = settings
        self.queue.update_token(settings.listenbrainz_token)
        log.info("Settings updated (percent=%s min_seconds=%s enrichment=%s)",
                 settings.scrobble_percent, settings.scrobble_min_seconds,
                 settings.mbid_enrichment_enabled)

    # -------- notifications --------
    def on_track_change(self, track_id: str, attributes: TrackAttributes, playing: bool = True) -> bool:
        """Start a new session; returns False if `track_id` is already the live track."""
        if self._session is not None and self._session.track_id == track_id:
            return False

        session = TrackSession(track_id=track_id, attributes=attributes,
                               started_at=int(self._clock()), playing=playing)
        self._session = session
        self._progress = 0.0
        self.activity.info(f"Track changed: {attributes.artist} - {attributes.track}")

        if self.settings.mbid_enrichment_enabled and self.settings.mbid_preload_enabled:
            self._spawn(self._preload(session, settle=True))
            self._spawn(self._preload_retry(session))
        if self.client and self.settings.now_playing_enabled and self.settings.can_scrobble:
            self._spawn(self.client.submit_playing_now(
                self.settings.listenbrainz_token, self._build_listen(session, None)))
        return True

    def on_playback_state(self, playing: bool, now_playing: NowPlaying | None = None) -> None:
        # Some players only report the new item alongside the state change
        if now_playing is not None:
            self.on_track_change(now_playing.track_id, now_playing.attributes, playing)
        if self._session is not None and self._session.playing != playing:
            self._session.playing = playing
            self.activity.info(f"Playback: {'▶ Playing' if playing else '⏸ Paused'}")

    def forget_position(self) -> None:
        """Drop the last sample so a gap in polling isn't read as a seek."""
        if self._session is not None:
            self._session.forget_position()

    async def sample(self, position: float | None) -> Eligibility | None:
        """Periodic tick. Returns the eligibility verdict when one was computed."""
        session = self._session
        if session is None or session.submitted or not session.playing:
            return None
        if not self.settings.can_scrobble:
            return None

        if session.observe_position(position):
            self.activity.info("Seek detected; using time-based threshold only")

        verdict = scrobble_eligible(
            elapsed=int(self._clock()) - session.started_at,
            duration=session.attributes.duration,
            percent=self.settings.scrobble_percent,
            min_seconds=self.settings.scrobble_min_seconds,
            seek_detected=session.seek_detected,
        )
        self._progress = verdict.progress
        if verdict.eligible:
            await self._hand_off(session, f"{verdict.elapsed:.0f}s / {session.attributes.duration:.0f}s")
        return verdict

    async def scrobble_now(self) -> str | None:
        """Queue the current track right away, ignoring the timing rules."""
        session = self._session
        if session is None or session.submitted or not self.settings.can_scrobble:
            return None
        return await self._hand_off(session, "manual")

    async def close(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # -------- metadata --------
    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _lookup(self, attributes: TrackAttributes) -> IdentifierSet:
        fingerprint = attributes.fingerprint()
        cached = self.cache.get(fingerprint)
        if cached is not None:
            return cached
        ids = await self.resolver.resolve(attributes.artist or "", attributes.track or "",
                                          attributes.album, attributes.isrc)
        self.cache.put(fingerprint, ids)
        return ids

    async def _preload(self, session: TrackSession, settle: bool = False,
                       attributes: TrackAttributes | None = None) -> None:
        try:
            if settle:
                # Give the player a moment to fill in late attributes such as the ISRC
                for delay in PRELOAD_SETTLE_DELAYS:
                    await self._sleep(delay)
            if session is not self._session:
                return
            if session.preloaded is not None or not self.settings.mbid_preload_enabled:
                return
            attrs = attributes or session.attributes
            ids = await self._lookup(attrs)
            if ids.found:
                session.preloaded = ids
                self.activity.info(f"✓ MBIDs preloaded ({ids.provenance.value}): {attrs.track}")
            else:
                log.debug("No MBIDs found during preload for %s", attrs.track)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning("MBID preload failed: %s", e)

    async def _preload_retry(self, session: TrackSession) -> None:
        await self._sleep(PRELOAD_RETRY_DELAY)
        if session is not self._session or session.preloaded is not None:
            return
        attributes = None
        if self._now_playing is not None:
            current = self._now_playing()
            if current is not None and current.track_id == session.track_id:
                attributes = current.attributes
        await self._preload(session, attributes=attributes)

    async def _identifiers_for(self, session: TrackSession) -> IdentifierSet | None:
        if not self.settings.mbid_enrichment_enabled:
            return None
        if session.preloaded is not None:
            return session.preloaded
        try:
            return await self._lookup(session.attributes)
        except Exception as e:
            log.warning("MBID lookup failed: %s", e)
            return None

    # -------- hand-off --------
    def _build_listen(self, session: TrackSession, ids: IdentifierSet | None) -> Listen:
        attrs = session.attributes
        info: dict[str, Any] = {
            "music_service": self.settings.music_service,
            "media_player": "BluOS",
            "submission_client": "bluos-listenbrainz",
            "submission_client_version": __version__,
        }
        if ids is not None:
            info.update(ids.enrichment())
        if attrs.track_number:
            info["tracknumber"] = attrs.track_number
        if attrs.isrc:
            info["isrc"] = attrs.isrc
        if attrs.duration_ms:
            info["duration_ms"] = attrs.duration_ms
        return Listen(
            artist=attrs.artist or "",
            track=attrs.track or "",
            listened_at=session.started_at or int(self._clock()),
            release=attrs.album or None,
            additional_info=info,
        )

    async def _hand_off(self, session: TrackSession, reason: str) -> str:
        # Mark first so an overlapping tick or manual trigger can't queue it twice
        session.submitted = True
        self._progress = 1.0
        ids = await self._identifiers_for(session)
        listen = self._build_listen(session, ids)
        item_id = self.queue.add(listen)
        tag = " [+MBID]" if ids is not None and ids.recording_mbid else ""
        self.activity.info(f"Added to queue: {listen}{tag} ({reason})")
        return item_id
