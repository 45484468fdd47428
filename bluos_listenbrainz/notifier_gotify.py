"""
Gotify notifier: POST /message with an application token.

Env:
- GOTIFY_URL (e.g., http://nas:8080)
- GOTIFY_TOKEN (App token)
- GOTIFY_PRIORITY (1..10; default 5, ERROR alerts are bumped to at least 8)
- GOTIFY_MIN_LEVEL (DEBUG|INFO|WARNING|ERROR|CRITICAL; default WARNING)
"""

from __future__ import annotations
import logging
import os

import requests

from .notifier import APP_TAG, level_value

log = logging.getLogger("notifier")


class GotifyNotifier:
    def __init__(self, url: str | None, token: str | None, min_level: str = "WARNING",
                 default_priority: int = 5, app_tag: str = APP_TAG, timeout: int = 5):
        self.url = url.rstrip("/") if url else None
        self.token = token.strip() if token else None
        self.min_level = level_value(min_level)
        self.default_priority = default_priority
        self.app_tag = app_tag
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.token)

    def priority_for(self, level: str) -> int:
        if level_value(level) >= level_value("ERROR"):
            return max(self.default_priority, 8)
        return self.default_priority

    def send(self, level: str, title: str, message: str, extra: dict | None = None,
             priority: int | None = None):
        if not self.enabled or level_value(level) < self.min_level:
            return
        lines = [message]
        if extra:
            lines.append("")
            lines.extend(f"{k}: {v}" for k, v in extra.items())
        body = {
            "title": f"{self.app_tag}: {title}",
            "message": "\n".join(lines),
            "priority": priority if priority is not None else self.priority_for(level),
        }
        try:
            requests.post(f"{self.url}/message", json=body,
                          headers={"X-Gotify-Key": self.token}, timeout=self.timeout)
        except requests.RequestException as e:
            log.debug("Gotify notification failed: %s", e)


def from_env() -> GotifyNotifier:
    try:
        prio = int(os.getenv("GOTIFY_PRIORITY", "5"))
    except ValueError:
        prio = 5
    return GotifyNotifier(
        os.getenv("GOTIFY_URL"),
        os.getenv("GOTIFY_TOKEN"),
        min_level=os.getenv("GOTIFY_MIN_LEVEL", "WARNING"),
        default_priority=prio,
        app_tag=os.getenv("APP_TAG", APP_TAG),
    )
