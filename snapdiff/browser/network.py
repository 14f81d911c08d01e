"""Network settle detection for page loads."""

from __future__ import annotations

import asyncio
import logging

from playwright.async_api import Page, Request

logger = logging.getLogger(__name__)


class NetworkSettleWatcher:
    """Tracks in-flight requests on a page.

    The network counts as settled once no more than ``max_inflight``
    requests have been outstanding for ``quiet_ms`` without interruption.
    """

    def __init__(self, max_inflight: int = 2, quiet_ms: int = 500, poll_ms: int = 50):
        self.max_inflight = max_inflight
        self.quiet_ms = quiet_ms
        self.poll_ms = poll_ms
        self._inflight: set[Request] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def attach(self, page: Page) -> None:
        """Attach request listeners to a page. Call before navigating."""
        page.on("request", self._on_request)
        page.on("requestfinished", self._on_done)
        page.on("requestfailed", self._on_done)

    def _on_request(self, request: Request) -> None:
        self._inflight.add(request)

    def _on_done(self, request: Request) -> None:
        self._inflight.discard(request)

    async def wait_until_settled(self) -> None:
        loop = asyncio.get_running_loop()
        quiet_since: float | None = None
        while True:
            now = loop.time()
            if self.inflight <= self.max_inflight:
                if quiet_since is None:
                    quiet_since = now
                elif (now - quiet_since) * 1000 >= self.quiet_ms:
                    logger.debug("Network settled (%d in flight)", self.inflight)
                    return
            else:
                quiet_since = None
            await asyncio.sleep(self.poll_ms / 1000)
