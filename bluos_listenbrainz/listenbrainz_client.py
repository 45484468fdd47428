import asyncio
import logging
from typing import Iterable

import requests

from .models import Listen

log = logging.getLogger("listenbrainz")

# Custom error classes so callers can branch
class ListenBrainzError(Exception): ...
class ListenBrainzAuthError(ListenBrainzError): ...
class ListenBrainzRateLimitError(ListenBrainzError): ...
class ListenBrainzNetworkError(ListenBrainzError): ...
class ListenBrainzUnknownError(ListenBrainzError): ...


class ListenBrainzClient:
    """Thin wrapper over the ListenBrainz submit-listens endpoint."""

    def __init__(self, api_url: str = "https://api.listenbrainz.org", timeout: int = 10,
                 session: requests.Session | None = None):
        self.base = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, token: str, body: dict) -> dict:
        try:
            resp = self.session.post(
                f"{self.base}/1/submit-listens",
                json=body,
                headers={"Authorization": f"Token {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ListenBrainzNetworkError(str(e)) from e

        if 200 <= resp.status_code < 300:
            try:
                return resp.json()
            except ValueError:
                return {}

        msg = f"ListenBrainz error {resp.status_code}: {resp.text}"
        # Map the status codes callers care about
        if resp.status_code in (401, 403):
            raise ListenBrainzAuthError(msg)
        elif resp.status_code == 429:
            raise ListenBrainzRateLimitError(msg)
        else:
            raise ListenBrainzUnknownError(msg)

    async def submit(self, token: str, listens: Iterable[Listen], listen_type: str = "single") -> dict:
        """Submit listens; raises a ListenBrainzError subclass on any failure."""
        body = {
            "listen_type": listen_type,
            "payload": [
                listen.to_payload(include_timestamp=listen_type != "playing_now")
                for listen in listens
            ],
        }
        return await asyncio.to_thread(self._post, token, body)

    async def submit_playing_now(self, token: str, listen: Listen) -> None:
        """Push a playing-now notice. Non-fatal on failure."""
        try:
            await self.submit(token, [listen], listen_type="playing_now")
        except ListenBrainzError as e:
            # Playing-now failures aren't critical; log at DEBUG
            log.debug("playing_now failed: %s", e)
