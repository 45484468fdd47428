"""
Persistent MBID cache.

- Maps a TrackFingerprint to the IdentifierSet found for it (including "none"
  results, so unresolvable tracks are not looked up again).
- Entries expire after CACHE_TTL; the table is capped, oldest entries go first.
- Backed by a JSON file rewritten on every change. Storage problems are logged
  and the cache keeps working in memory.
"""

from __future__ import annotations
import json
import logging
import os
import time
from typing import Any, Callable, Dict

from .config import CACHE_TTL
from .models import IdentifierSet, TrackFingerprint

log = logging.getLogger("mbid-cache")


class MetadataCache:
    def __init__(self, path: str | None, max_entries: int = 1000, ttl: float = CACHE_TTL,
                 clock: Callable[[], float] = time.time):
        self.path = path
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, tuple[IdentifierSet, float]] = {}
        self._load()

    # -------- persistence --------
    def _load(self) -> None:
        if not self.path or not os.path.isfile(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            log.warning("Failed to load MBID cache from %s: %s", self.path, e)
            return
        if not isinstance(data, dict):
            return

        now = self._clock()
        loaded: list[tuple[str, IdentifierSet, float]] = []
        for key, raw in data.items():
            try:
                cached_at = float(raw["cached_at"])
                ids = IdentifierSet.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                continue
            if now - cached_at > self.ttl:
                continue
            loaded.append((key, ids, cached_at))
        # keep the newest entries if the file holds more than we allow
        loaded.sort(key=lambda e: e[2])
        for key, ids, cached_at in loaded[-self.max_entries:]:
            self._entries[key] = (ids, cached_at)
        log.info("Loaded %s MBID cache entries", len(self._entries))

    def _save(self) -> None:
        if not self.path:
            return
        table: Dict[str, Any] = {}
        for key, (ids, cached_at) in self._entries.items():
            row = ids.to_dict()
            row["cached_at"] = cached_at
            table[key] = row
        tmp = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(table, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            log.warning("Failed to save MBID cache to %s: %s", self.path, e)

    # -------- public API --------
    def get(self, fingerprint: TrackFingerprint) -> IdentifierSet | None:
        key = fingerprint.key
        entry = self._entries.get(key)
        if entry is None:
            return None
        ids, cached_at = entry
        if self._clock() - cached_at > self.ttl:
            del self._entries[key]
            self._save()
            return None
        log.debug("Cache hit for %s (%s)", key, ids.provenance.value)
        return ids

    def put(self, fingerprint: TrackFingerprint, ids: IdentifierSet) -> None:
        key = fingerprint.key
        # re-inserting moves the key to the end so dict order tracks age
        self._entries.pop(key, None)
        self._entries[key] = (ids, self._clock())

        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            oldest = sorted(self._entries.items(), key=lambda kv: kv[1][1])[:overflow]
            for old_key, _ in oldest:
                del self._entries[old_key]
            log.debug("Evicted %s old MBID cache entries", overflow)

        self._save()
        log.debug("Cached %s -> %s", key, ids.provenance.value)

    def clear(self) -> None:
        self._entries.clear()
        self._save()
        log.info("MBID cache cleared")

    def stats(self) -> dict[str, Any]:
        stamps = [cached_at for _, cached_at in self._entries.values()]
        return {
            "entry_count": len(stamps),
            "oldest_entry": min(stamps) if stamps else None,
            "newest_entry": max(stamps) if stamps else None,
        }

    def __len__(self) -> int:
        return len(self._entries)
