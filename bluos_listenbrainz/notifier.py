"""
Webhook notifier for activity-log alerts.

- POSTs a JSON body ({level, title, message, extra}) to NOTIFY_WEBHOOK_URL.
- Only levels at or above NOTIFY_MIN_LEVEL are sent (default WARNING), so
  dropped scrobbles and auth problems get through but routine chatter doesn't.
- Best-effort: a failed POST is logged at DEBUG and otherwise ignored.
"""

from __future__ import annotations
import logging
import os

import requests

APP_TAG = "BluOS→ListenBrainz"

LEVELS = {
    "DEBUG": 10, "INFO": 20, "SUCCESS": 25, "WARNING": 30, "ERROR": 40, "CRITICAL": 50
}

log = logging.getLogger("notifier")


def level_value(level: str, default: int = 30) -> int:
    return LEVELS.get(level.upper(), default)


class Notifier:
    def __init__(self, webhook_url: str | None, min_level: str = "WARNING", app_tag: str = APP_TAG,
                 timeout: int = 5):
        self.webhook_url = webhook_url.strip() if webhook_url else None
        self.min_level = level_value(min_level)
        self.app_tag = app_tag
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def send(self, level: str, title: str, message: str, extra: dict | None = None):
        if not self.enabled or level_value(level) < self.min_level:
            return
        payload = {
            "level": level.upper(),
            "title": f"{self.app_tag}: {title}",
            "message": message,
            "extra": extra or {},
        }
        try:
            requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            log.debug("Webhook notification failed: %s", e)


def from_env() -> Notifier:
    return Notifier(
        webhook_url=os.getenv("NOTIFY_WEBHOOK_URL"),
        min_level=os.getenv("NOTIFY_MIN_LEVEL", "WARNING"),
        app_tag=os.getenv("APP_TAG", APP_TAG),
    )
