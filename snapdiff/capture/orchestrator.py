"""Capture orchestrator — renders a URL and stores a full-page screenshot."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncContextManager, Callable
from urllib.parse import urlparse

from playwright.async_api import Browser, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from snapdiff.browser.launcher import browser_session, create_capture_context
from snapdiff.browser.network import NetworkSettleWatcher
from snapdiff.errors import CaptureError, NavigationTimeoutError, ValidationError
from snapdiff.models.config import BrowserConfig, ServiceConfig
from snapdiff.models.snapshot import DIFF_LABEL, CaptureRequest, CaptureResult, TemporalLabel
from snapdiff.storage import ImageStore

logger = logging.getLogger(__name__)

SessionFactory = Callable[[BrowserConfig], AsyncContextManager[Browser]]

_ALLOWED_SCHEMES = ("http", "https", "file")


class CaptureOrchestrator:
    """Captures pages into the image store, one browser per call."""

    def __init__(
        self,
        config: ServiceConfig,
        store: ImageStore,
        session_factory: SessionFactory = browser_session,
    ):
        self.config = config
        self.store = store
        self._session_factory = session_factory

    def validate(self, request: CaptureRequest) -> tuple[str, TemporalLabel, str]:
        """Check url, time and testId in that order."""
        url = (request.url or "").strip()
        if not url:
            raise ValidationError("url", "URL is required")
        parsed = urlparse(url)
        if parsed.scheme not in _ALLOWED_SCHEMES or (parsed.scheme != "file" and not parsed.netloc):
            raise ValidationError("url", f"URL must be an absolute http(s) URL: {url}")

        if not request.time:
            raise ValidationError("time", "time is required")
        try:
            label = TemporalLabel(request.time)
        except ValueError:
            raise ValidationError("time", "time must be 'before' or 'after'") from None

        test_id = self.store.validate_test_id(request.test_id)
        return url, label, test_id

    async def capture(self, request: CaptureRequest) -> CaptureResult:
        url, label, test_id = self.validate(request)
        logger.info("Capturing %s as %s/%s", url, label.value, test_id)
        start = time.time()
        try:
            self.store.ensure_dirs(label, DIFF_LABEL)
            async with self._session_factory(self.config.browser) as browser:
                data = await self._render(browser, url)
                self.store.write_bytes(label, test_id, data)
        except CaptureError:
            raise
        except Exception as e:
            logger.exception("Capture failed for %s", url)
            raise CaptureError(details=str(e)) from e

        logger.info("Captured %s/%s (%d bytes, %.1fs)",
                    label.value, test_id, len(data), time.time() - start)
        return CaptureResult(
            image_path=self.store.url_for(label, test_id),
            time=label,
            test_id=test_id,
            timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        )

    async def _render(self, browser: Browser, url: str) -> bytes:
        viewport = self.config.viewport
        context = await create_capture_context(browser, viewport)
        page = await context.new_page()
        await page.set_viewport_size({"width": viewport.width, "height": viewport.height})

        watcher = NetworkSettleWatcher(
            max_inflight=self.config.network_idle_max_inflight,
            quiet_ms=self.config.network_idle_quiet_ms,
        )
        watcher.attach(page)
        await self._navigate(page, url, watcher)

        return await page.screenshot(full_page=True, type="png")

    async def _navigate(self, page: Page, url: str, watcher: NetworkSettleWatcher) -> None:
        """Load ``url`` and wait for the network to settle within the timeout."""
        timeout_ms = self.config.navigation_timeout_ms

        async def _load() -> None:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            await watcher.wait_until_settled()

        try:
            await asyncio.wait_for(_load(), timeout=timeout_ms / 1000)
        except (asyncio.TimeoutError, PlaywrightTimeoutError) as e:
            logger.warning("Navigation to %s timed out after %dms", url, timeout_ms)
            raise NavigationTimeoutError(
                f"Navigation timed out after {timeout_ms}ms",
                details=str(e) or f"{url} did not settle within {timeout_ms}ms",
            ) from e
