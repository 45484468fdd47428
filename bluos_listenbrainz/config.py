"""
Runtime configuration.

Everything is read from environment variables once, at startup, into a frozen
Settings object that is handed to each component. Components that care about
changes (token, thresholds) expose apply_settings()/update_token().
"""

from __future__ import annotations
import os
from dataclasses import dataclass, replace

from . import __version__

# -------------------------
# Fixed schedules and thresholds
# -------------------------
SAMPLE_INTERVAL = 2.0            # seconds between playback samples
SEEK_TOLERANCE = 5.0             # deviation from SAMPLE_INTERVAL that counts as a seek
RETRY_DELAYS = (5, 15, 60, 300, 900)  # seconds, indexed by prior attempts
MAX_RETRIES = 5
RECHECK_INTERVAL = 30.0          # longest single sleep while waiting on a backoff
SUBMIT_PAUSE = 0.5               # pause between two successful submissions
RATE_LIMIT_WINDOW = 1.0          # MusicBrainz: one request per second
FUZZY_SCORE_THRESHOLD = 85
CACHE_TTL = 30 * 24 * 60 * 60    # 30 days
PRELOAD_SETTLE_DELAYS = (0.6, 0.4)
PRELOAD_RETRY_DELAY = 1.5

DEFAULT_USER_AGENT = (
    f"bluos-listenbrainz/{__version__} ( https://github.com/48lakes/bluos-2-listenbrainz )"
)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    bluos_host: str = "127.0.0.1"
    bluos_port: int = 11000
    log_level: str = "INFO"
    debug_logging: bool = False

    listenbrainz_token: str = ""
    listenbrainz_api_url: str = "https://api.listenbrainz.org"
    scrobbling_enabled: bool = True
    scrobble_percent: int = 50
    scrobble_min_seconds: int = 240
    now_playing_enabled: bool = True
    music_service: str = "BluOS"

    mbid_enrichment_enabled: bool = True
    mbid_preload_enabled: bool = True
    musicbrainz_api_url: str = "https://musicbrainz.org/ws/2"
    musicbrainz_user_agent: str = DEFAULT_USER_AGENT

    queue_path: str = "/data/scrobble_queue.json"
    queue_limit: int = 100
    cache_path: str = "/data/mbid_cache.json"
    cache_limit: int = 1000

    def __post_init__(self):
        # Keep user-supplied values inside their usable ranges
        object.__setattr__(self, "listenbrainz_token", (self.listenbrainz_token or "").strip())
        object.__setattr__(self, "scrobble_percent", max(1, min(100, int(round(self.scrobble_percent)))))
        object.__setattr__(self, "scrobble_min_seconds", max(10, int(round(self.scrobble_min_seconds))))
        object.__setattr__(self, "queue_limit", max(1, int(self.queue_limit)))
        object.__setattr__(self, "cache_limit", max(1, int(self.cache_limit)))
        if not self.mbid_enrichment_enabled:
            object.__setattr__(self, "mbid_preload_enabled", False)

    @property
    def can_scrobble(self) -> bool:
        return self.scrobbling_enabled and bool(self.listenbrainz_token)

    def with_changes(self, **changes) -> "Settings":
        return replace(self, **changes)


def from_env() -> Settings:
    return Settings(
        bluos_host=os.getenv("BLUOS_HOST", "127.0.0.1"),
        bluos_port=_env_int("BLUOS_PORT", 11000),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        debug_logging=_env_bool("DEBUG_LOGGING", False),
        listenbrainz_token=os.getenv("LISTENBRAINZ_TOKEN", ""),
        listenbrainz_api_url=os.getenv("LISTENBRAINZ_API_URL", "https://api.listenbrainz.org").rstrip("/"),
        scrobbling_enabled=_env_bool("SCROBBLING_ENABLED", True),
        scrobble_percent=_env_int("SCROBBLE_PERCENT", 50),
        scrobble_min_seconds=_env_int("SCROBBLE_MIN_SECONDS", 240),
        now_playing_enabled=_env_bool("NOW_PLAYING_ENABLED", True),
        music_service=os.getenv("MUSIC_SERVICE", "BluOS"),
        mbid_enrichment_enabled=_env_bool("MBID_ENRICHMENT_ENABLED", True),
        mbid_preload_enabled=_env_bool("MBID_PRELOAD_ENABLED", True),
        musicbrainz_api_url=os.getenv("MUSICBRAINZ_API_URL", "https://musicbrainz.org/ws/2").rstrip("/"),
        musicbrainz_user_agent=os.getenv("MUSICBRAINZ_USER_AGENT", DEFAULT_USER_AGENT),
        queue_path=os.getenv("SCROBBLE_QUEUE_PATH", "/data/scrobble_queue.json"),
        queue_limit=_env_int("SCROBBLE_QUEUE_LIMIT", 100),
        cache_path=os.getenv("MBID_CACHE_PATH", "/data/mbid_cache.json"),
        cache_limit=_env_int("MBID_CACHE_LIMIT", 1000),
    )
