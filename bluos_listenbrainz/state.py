from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum

from .config import SAMPLE_INTERVAL, SEEK_TOLERANCE
from .models import IdentifierSet, TrackAttributes


class EngineState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    SUBMITTED = "submitted"


# -------------------------
# Mutable state for the track that is playing right now
# -------------------------
@dataclass
class TrackSession:
    track_id: str
    attributes: TrackAttributes
    started_at: int                 # unix seconds at track change
    playing: bool = True
    submitted: bool = False
    seek_detected: bool = False
    last_position: float = 0.0
    preloaded: IdentifierSet | None = field(default=None, repr=False)

    def observe_position(self, position: float | None) -> bool:
        """Record a position sample; returns True when it reveals a seek."""
        if position is None:
            return False
        seeked = False
        if not self.seek_detected and self.last_position > 0:
            delta = position - self.last_position
            # Allow small variance but catch big jumps (forward or backward)
            if abs(delta - SAMPLE_INTERVAL) > SEEK_TOLERANCE:
                self.seek_detected = True
                seeked = True
        self.last_position = position
        return seeked

    def forget_position(self) -> None:
        self.last_position = 0.0


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    threshold: float
    elapsed: float

    @property
    def progress(self) -> float:
        if self.eligible:
            return 1.0
        return max(0.0, min(self.elapsed / max(self.threshold, 1), 1.0))


def scrobble_eligible(*, elapsed: float, duration: float, percent: float,
                      min_seconds: float, seek_detected: bool) -> Eligibility:
    """Scrobble once `percent` of the track or `min_seconds` have passed.

    After a seek the percentage no longer says anything about how much was
    heard, so only the absolute floor applies. Same when the duration is unknown.
    """
    if seek_detected or duration <= 0:
        pct_threshold = min_seconds
    else:
        pct_threshold = duration * (percent / 100.0)
    threshold = min_seconds if seek_detected else min(pct_threshold, min_seconds)
    half_played = not seek_detected and duration > 0 and elapsed >= pct_threshold
    long_enough = elapsed >= min_seconds
    return Eligibility(half_played or long_enough, threshold, elapsed)
