from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Provenance(str, Enum):
    EXACT = "exact"    # ISRC lookup
    FUZZY = "fuzzy"    # text search above the score threshold
    NONE = "none"


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


@dataclass(frozen=True)
class TrackFingerprint:
    """Cache key for a track: the ISRC when known, else normalized text."""
    isrc: str | None = None
    artist: str = ""
    track: str = ""
    album: str = ""

    @classmethod
    def of(cls, artist: str | None, track: str | None, album: str | None = None,
           isrc: str | None = None) -> "TrackFingerprint":
        if isrc:
            return cls(isrc=isrc)
        return cls(artist=_norm(artist), track=_norm(track), album=_norm(album))

    @property
    def key(self) -> str:
        if self.isrc:
            return f"isrc:{self.isrc}"
        return f"text:{self.artist}|{self.track}|{self.album}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class IdentifierSet:
    recording_mbid: str | None = None
    artist_mbids: tuple[str, ...] = ()
    release_mbid: str | None = None
    release_group_mbid: str | None = None
    provenance: Provenance = Provenance.NONE

    @classmethod
    def none(cls) -> "IdentifierSet":
        return cls()

    @property
    def found(self) -> bool:
        return self.provenance is not Provenance.NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "recording_mbid": self.recording_mbid,
            "artist_mbids": list(self.artist_mbids),
            "release_mbid": self.release_mbid,
            "release_group_mbid": self.release_group_mbid,
            "source": self.provenance.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IdentifierSet":
        return cls(
            recording_mbid=data.get("recording_mbid") or None,
            artist_mbids=tuple(data.get("artist_mbids") or ()),
            release_mbid=data.get("release_mbid") or None,
            release_group_mbid=data.get("release_group_mbid") or None,
            provenance=Provenance(data.get("source", "none")),
        )

    def enrichment(self) -> dict[str, Any]:
        """The subset ListenBrainz accepts in additional_info."""
        info: dict[str, Any] = {}
        if self.recording_mbid:
            info["recording_mbid"] = self.recording_mbid
        if self.artist_mbids:
            info["artist_mbids"] = list(self.artist_mbids)
        if self.release_mbid:
            info["release_mbid"] = self.release_mbid
        if self.release_group_mbid:
            info["release_group_mbid"] = self.release_group_mbid
        return info


@dataclass(frozen=True)
class TrackAttributes:
    """Item attributes as reported by the player."""
    artist: str | None = None
    track: str | None = None
    album: str | None = None
    duration_ms: int | None = None
    track_number: int | None = None
    isrc: str | None = None

    @property
    def duration(self) -> float:
        return (self.duration_ms or 0) / 1000.0

    def fingerprint(self) -> TrackFingerprint:
        return TrackFingerprint.of(self.artist, self.track, self.album, self.isrc)


@dataclass
class Listen:
    artist: str
    track: str
    listened_at: int
    release: str | None = None
    additional_info: dict[str, Any] = field(default_factory=dict)

    def to_payload(self, include_timestamp: bool = True) -> dict[str, Any]:
        metadata: dict[str, Any] = {"artist_name": self.artist, "track_name": self.track}
        if self.release:
            metadata["release_name"] = self.release
        if self.additional_info:
            metadata["additional_info"] = dict(self.additional_info)
        entry: dict[str, Any] = {"track_metadata": metadata}
        if include_timestamp:
            entry["listened_at"] = int(self.listened_at)
        return entry

    def to_dict(self) -> dict[str, Any]:
        return {
            "artist": self.artist,
            "track": self.track,
            "listened_at": self.listened_at,
            "release": self.release,
            "additional_info": self.additional_info,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Listen":
        return cls(
            artist=str(data["artist"]),
            track=str(data["track"]),
            listened_at=int(data["listened_at"]),
            release=data.get("release"),
            additional_info=dict(data.get("additional_info") or {}),
        )

    def __str__(self) -> str:
        return f"{self.artist} — {self.track}"


@dataclass
class QueueItem:
    id: str
    listen: Listen
    enqueued_at: float
    retries: int = 0
    last_attempt: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "listen": self.listen.to_dict(),
            "enqueued_at": self.enqueued_at,
            "retries": self.retries,
            "last_attempt": self.last_attempt,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueItem":
        last = data.get("last_attempt")
        return cls(
            id=str(data["id"]),
            listen=Listen.from_dict(data["listen"]),
            enqueued_at=float(data["enqueued_at"]),
            retries=int(data.get("retries", 0)),
            last_attempt=float(last) if last is not None else None,
        )


@dataclass(frozen=True)
class NowPlaying:
    """What the player reports as its current item."""
    track_id: str
    attributes: TrackAttributes
