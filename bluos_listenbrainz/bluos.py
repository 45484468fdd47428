from __future__ import annotations
import asyncio
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass

import requests

from .models import NowPlaying, TrackAttributes

log = logging.getLogger("bluos")


@dataclass
class BluOSStatus:
    title: str | None
    artist: str | None
    album: str | None
    duration: int | None  # seconds
    secs: int | None      # elapsed seconds
    state: str | None     # 'play', 'pause', 'stop', 'stream', 'connecting'
    song_id: str | None = None
    track_number: int | None = None
    isrc: str | None = None

    @property
    def playing(self) -> bool:
        # radio streams report 'stream' while audio is coming out
        return self.state in ("play", "stream")

    @property
    def track_id(self) -> str | None:
        if not self.title or not self.artist:
            return None
        if self.song_id:
            return f"song:{self.song_id}"
        return f"meta:{self.artist}|{self.title}|{self.album or ''}"

    def attributes(self) -> TrackAttributes:
        return TrackAttributes(
            artist=self.artist,
            track=self.title,
            album=self.album,
            duration_ms=self.duration * 1000 if self.duration else None,
            track_number=self.track_number,
            isrc=self.isrc,
        )

    def now_playing(self) -> NowPlaying | None:
        track_id = self.track_id
        if track_id is None:
            return None
        return NowPlaying(track_id, self.attributes())


class BluOSClient:
    """
    Minimal BluOS client that fetches and parses /Status (XML).
    Uses recursive lookup + tag fallbacks: name/title1, artist, album, secs, totlen, state.
    """
    def __init__(self, host: str, port: int = 11000, timeout: int = 5,
                 session: requests.Session | None = None):
        self.base = f"http://{host}:{port}"
        self.timeout = timeout
        self.session = session or requests.Session()

    def _findtext_any(self, root: ET.Element, *tags: str):
        for t in tags:
            el = root.find(f".//{t}")
            if el is not None and el.text:
                return el.text.strip()
        return None

    def _to_int(self, s):
        if s is None: return None
        try:
            return int(float(s))
        except ValueError:
            return None

    def parse_status(self, xml_text: str) -> BluOSStatus | None:
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            log.debug("Status XML parse failed: %s", e)
            return None

        state = self._findtext_any(root, "state", "status", "mode")
        return BluOSStatus(
            # title appears as <name> and also as <title1>
            title=self._findtext_any(root, "name", "title1", "title", "song"),
            artist=self._findtext_any(root, "artist", "title2"),
            album=self._findtext_any(root, "album", "title3"),
            duration=self._to_int(self._findtext_any(root, "totlen", "duration", "total", "trackLength", "length")),
            secs=self._to_int(self._findtext_any(root, "secs", "elapsed", "position", "time")),
            state=state.lower() if state else None,
            song_id=self._findtext_any(root, "songid", "song_id"),
            track_number=self._to_int(self._findtext_any(root, "trackNumber", "tracknumber")),
            isrc=self._findtext_any(root, "isrc", "ISRC"),
        )

    def get_status(self) -> BluOSStatus | None:
        try:
            resp = self.session.get(f"{self.base}/Status", timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            log.debug("Status fetch failed: %s", e)
            return None
        return self.parse_status(resp.text)


class PlaybackWatcher:
    """Turns consecutive /Status snapshots into engine notifications."""

    def __init__(self, client: BluOSClient, engine=None):
        self.client = client
        self.engine = engine
        self.last: BluOSStatus | None = None

    def now_playing(self) -> NowPlaying | None:
        return self.last.now_playing() if self.last else None

    async def poll_once(self) -> BluOSStatus | None:
        status = await asyncio.to_thread(self.client.get_status)
        if status is None:
            log.info("Parsed: status=None (unreachable or XML parse failed)")
            # the next position can't be compared with one from before the gap
            self.engine.forget_position()
            return None
        log.debug("Parsed: state=%s artist=%s title=%s album=%s elapsed=%s duration=%s",
                  status.state, status.artist, status.title, status.album, status.secs, status.duration)

        previous, self.last = self.last, status
        current = status.now_playing()
        if current is None:
            # stopped or no usable metadata
            self.engine.on_playback_state(False)
            self.engine.forget_position()
            return status

        if previous is None or previous.track_id != current.track_id:
            if not self.engine.on_track_change(current.track_id, current.attributes, status.playing):
                # same song back after a stop or an empty snapshot
                self.engine.on_playback_state(status.playing)
        elif previous.playing != status.playing:
            self.engine.on_playback_state(status.playing)

        await self.engine.sample(status.secs)
        return status
