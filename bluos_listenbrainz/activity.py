"""
User-visible activity log.

Core components report what happened to a track (queued, scrobbled, dropped)
through an ActivityLog they are given at construction. Each entry goes to the
Python logger, into a small ring buffer (newest first) and out to the
configured notifiers, which drop whatever is below their minimum level.
"""

from __future__ import annotations
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Deque, Iterable, Protocol

log = logging.getLogger("activity")

_LEVELS = {"INFO": logging.INFO, "SUCCESS": logging.INFO,
           "WARNING": logging.WARNING, "ERROR": logging.ERROR}


class Sink(Protocol):
    def send(self, level: str, title: str, message: str, extra: dict | None = None): ...


@dataclass(frozen=True)
class ActivityEntry:
    time: datetime
    level: str
    message: str


class ActivityLog:
    def __init__(self, sinks: Iterable[Sink] = (), maxlen: int = 50):
        self.sinks = list(sinks)
        self._entries: Deque[ActivityEntry] = deque(maxlen=maxlen)

    def _add(self, level: str, message: str, extra: dict[str, Any] | None = None, title: str | None = None):
        self._entries.appendleft(ActivityEntry(datetime.now(), level, message))
        log.log(_LEVELS[level], "%s", message)
        if not self.sinks:
            return
        # Sinks do blocking HTTP; keep them off the event loop when there is one
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._fan_out(level, title or message, message, extra)
        else:
            loop.run_in_executor(None, self._fan_out, level, title or message, message, extra)

    def _fan_out(self, level: str, title: str, message: str, extra: dict | None):
        # Each sink ignores levels below its own minimum
        for sink in self.sinks:
            try:
                sink.send(level, title, message, extra)
            except Exception as e:
                log.debug("Activity sink %r failed: %s", sink, e)

    def info(self, message: str, extra: dict | None = None, title: str | None = None):
        self._add("INFO", message, extra, title)

    def success(self, message: str, extra: dict | None = None):
        self._add("SUCCESS", message, extra)

    def warning(self, message: str, extra: dict | None = None, title: str | None = None):
        self._add("WARNING", message, extra, title)

    def error(self, message: str, extra: dict | None = None, title: str | None = None):
        self._add("ERROR", message, extra, title)

    def entries(self) -> list[ActivityEntry]:
        return list(self._entries)

    def clear(self):
        self._entries.clear()
