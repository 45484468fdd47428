"""
Persistent, capped, retrying scrobble queue.

- Stores pending listens on disk (JSON file), so we don't lose plays on network errors.
- Enforces a max length to avoid unbounded growth; the oldest item is dropped
  to make room for a new one.
- A single background task submits the head item only; nothing is ever
  submitted in parallel or out of order.
- Failed items back off on RETRY_DELAYS and are dropped after MAX_RETRIES attempts.
"""

from __future__ import annotations
import asyncio
import json
import logging
import os
import time
import uuid
from collections import deque
from typing import Any, Awaitable, Callable, Deque

from .activity import ActivityLog
from .config import MAX_RETRIES, RECHECK_INTERVAL, RETRY_DELAYS, SUBMIT_PAUSE
from .listenbrainz_client import ListenBrainzClient, ListenBrainzError
from .models import Listen, QueueItem

log = logging.getLogger("scrobble-queue")


def retry_delay(retries: int) -> float:
    """Backoff owed after `retries` attempts; saturates at the last step."""
    index = min(max(retries - 1, 0), len(RETRY_DELAYS) - 1)
    return float(RETRY_DELAYS[index])


class RetryQueue:
    def __init__(self, client: ListenBrainzClient, path: str | None, maxlen: int = 100,
                 token: str = "", activity: ActivityLog | None = None,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.client = client
        self.path = path
        self.maxlen = maxlen
        self.activity = activity or ActivityLog()
        self._token = token
        self._clock = clock
        self._sleep = sleep
        self._q: Deque[QueueItem] = deque()
        self._task: asyncio.Task | None = None
        self._load()

    # -------- persistence --------
    def _load(self) -> None:
        if not self.path or not os.path.isfile(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            # Corrupt or unreadable file? Start fresh.
            log.warning("Failed to load queue from %s: %s", self.path, e)
            return
        if not isinstance(data, list):
            return
        for raw in data[-self.maxlen:]:
            try:
                self._q.append(QueueItem.from_dict(raw))
            except (KeyError, TypeError, ValueError):
                log.warning("Skipping malformed queue item: %r", raw)
        log.info("Loaded %s queued scrobbles", len(self._q))

    def _save(self) -> None:
        if not self.path:
            return
        # Write atomically to avoid corruption
        tmp = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump([item.to_dict() for item in self._q], f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            log.warning("Failed to save queue to %s: %s", self.path, e)

    # -------- public API --------
    def add(self, listen: Listen) -> str:
        if len(self._q) >= self.maxlen:
            dropped = self._q.popleft()
            log.warning("Queue full, dropping oldest scrobble: %s", dropped.listen)
        item = QueueItem(id=uuid.uuid4().hex, listen=listen, enqueued_at=self._clock())
        self._q.append(item)
        self._save()
        log.info("Queued scrobble %s (%s total)", listen, len(self._q))
        self._start()
        return item.id

    def size(self) -> int:
        return len(self._q)

    def items(self) -> list[QueueItem]:
        return list(self._q)

    def clear(self) -> None:
        self._q.clear()
        self._save()
        log.info("Queue cleared")

    @property
    def is_processing(self) -> bool:
        return self._task is not None and not self._task.done()

    def update_token(self, token: str) -> None:
        self._token = (token or "").strip()
        if self._token:
            self.resume()

    def resume(self) -> None:
        """Restart processing, e.g. once a token is configured or the network is back."""
        if self._q and not self.is_processing:
            log.info("Resuming queue processing (%s pending)", len(self._q))
            self._start()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def join(self) -> None:
        """Wait until the current processing run ends (drained, paused or stopped)."""
        task = self._task
        if task is not None:
            await asyncio.wait([task])

    # -------- processing --------
    def _start(self) -> None:
        if self.is_processing:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="scrobble-queue")

    def _remove(self, item: QueueItem) -> None:
        # The head may have been evicted by add() while it was in flight
        if self._q and self._q[0] is item:
            self._q.popleft()
        self._save()

    async def _run(self) -> None:
        while self._q:
            if not self._token:
                log.info("No ListenBrainz token, pausing queue processing")
                return

            item = self._q[0]
            if item.last_attempt is not None:
                owed = retry_delay(item.retries)
                waited = self._clock() - item.last_attempt
                if waited < owed:
                    remaining = owed - waited
                    log.debug("Waiting %.0fs before retrying %s", remaining, item.listen)
                    await self._sleep(min(remaining, RECHECK_INTERVAL))
                    continue

            item.retries += 1
            item.last_attempt = self._clock()
            log.info("Submitting %s (attempt %s/%s)", item.listen, item.retries, MAX_RETRIES)
            try:
                await self.client.submit(self._token, [item.listen])
            except ListenBrainzError as e:
                log.warning("Submit failed for %s: %s", item.listen, e)
                if item.retries >= MAX_RETRIES:
                    self._remove(item)
                    self.activity.error(
                        f"✗ Failed to scrobble (gave up after {MAX_RETRIES} attempts): {item.listen}",
                        {"error": str(e), "pending_queue_size": len(self._q)},
                        title="Scrobble dropped",
                    )
                    continue
                self._save()
                delay = retry_delay(item.retries)
                log.info("Will retry %s in %.0fs", item.listen, delay)
                await self._sleep(min(delay, RECHECK_INTERVAL))
                continue

            self._remove(item)
            self.activity.success(f"✓ Scrobbled to ListenBrainz: {item.listen}")
            # Small delay between successful submissions
            await self._sleep(SUBMIT_PAUSE)

        log.debug("Queue processing complete")
