"""Browser launcher — builds Chromium launch options and scoped sessions."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from snapdiff.models.config import BrowserConfig, ViewportConfig

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

_NO_SANDBOX_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]

# Packaged Chromium builds for serverless runtimes cannot fork zygotes or use /dev/shm
_SERVERLESS_ARGS = [
    "--single-process",
    "--no-zygote",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


def build_launch_options(config: BrowserConfig) -> dict:
    """Translate a BrowserConfig into ``chromium.launch`` keyword arguments."""
    args: list[str] = []
    if not config.sandbox:
        args.extend(_NO_SANDBOX_ARGS)
    if config.mode == "serverless":
        args.extend(a for a in _SERVERLESS_ARGS if a not in args)
    args.extend(config.extra_args)

    options: dict = {"headless": config.headless, "args": args}
    if config.executable_path:
        options["executable_path"] = config.executable_path
    return options


async def launch_browser(playwright: Playwright, config: BrowserConfig) -> Browser:
    """Launch Chromium according to ``config``."""
    options = build_launch_options(config)
    logger.debug("Launching Chromium (mode=%s, args=%s)", config.mode, options["args"])
    return await playwright.chromium.launch(**options)


@asynccontextmanager
async def browser_session(config: BrowserConfig) -> AsyncIterator[Browser]:
    """Start Playwright and a browser for one request; always tear both down."""
    async with async_playwright() as p:
        browser = await launch_browser(p, config)
        try:
            yield browser
        finally:
            await browser.close()
            logger.debug("Browser closed")


async def create_capture_context(
    browser: Browser,
    viewport: ViewportConfig,
    user_agent: Optional[str] = None,
) -> BrowserContext:
    """Create a context with a fixed viewport and 1:1 device pixels."""
    return await browser.new_context(
        viewport={"width": viewport.width, "height": viewport.height},
        device_scale_factor=1,
        user_agent=user_agent or DEFAULT_USER_AGENT,
        locale="en-US",
        timezone_id="UTC",
    )
