"""Pytest configuration and shared fixtures."""

import io
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock, Mock

import pytest
from PIL import Image
from playwright.async_api import Browser, BrowserContext, Page

from snapdiff.models.config import BrowserConfig, ServiceConfig, ViewportConfig
from snapdiff.storage import ImageStore


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def service_config(tmp_path: Path) -> ServiceConfig:
    """Create a service configuration rooted in a temp directory."""
    return ServiceConfig(
        storage_dir=str(tmp_path / "uploads"),
        viewport=ViewportConfig(width=1280, height=800),
        navigation_timeout_ms=2000,
        network_idle_quiet_ms=10,
        browser=BrowserConfig(mode="local", sandbox=False),
    )


@pytest.fixture
def store(service_config: ServiceConfig) -> ImageStore:
    """Create an image store for the test config."""
    return ImageStore(service_config.storage_path)


# ============================================================================
# Image Helpers
# ============================================================================


def make_png(
    size: tuple[int, int] = (10, 10),
    color: tuple[int, int, int, int] = (255, 255, 255, 255),
    pixels: dict[tuple[int, int], tuple[int, int, int, int]] | None = None,
) -> bytes:
    """Encode a solid-color PNG, optionally with individual pixels changed."""
    img = Image.new("RGBA", size, color)
    for xy, value in (pixels or {}).items():
        img.putpixel(xy, value)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_factory() -> Callable[..., bytes]:
    """Fixture that provides the make_png function."""
    return make_png


@pytest.fixture
def write_capture(store: ImageStore) -> Callable[..., Path]:
    """Write a PNG directly into the store under (label, test_id)."""

    def _write(label: str, test_id: str, data: bytes | None = None, **png_kwargs) -> Path:
        store.ensure_dirs(label)
        return store.write_bytes(label, test_id, data if data is not None else make_png(**png_kwargs))

    return _write


# ============================================================================
# Playwright Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_page(png_factory) -> AsyncMock:
    """Create a mock Playwright page that records listeners."""
    page = AsyncMock(spec=Page)
    page.listeners = {}
    page.on = Mock(side_effect=lambda event, cb: page.listeners.setdefault(event, cb))
    page.goto = AsyncMock()
    page.set_viewport_size = AsyncMock()
    page.screenshot = AsyncMock(return_value=png_factory())
    return page


@pytest.fixture
def mock_context(mock_page: AsyncMock) -> AsyncMock:
    """Create a mock Playwright browser context."""
    context = AsyncMock(spec=BrowserContext)
    context.new_page = AsyncMock(return_value=mock_page)
    return context


@pytest.fixture
def mock_browser(mock_context: AsyncMock) -> AsyncMock:
    """Create a mock Playwright browser."""
    browser = AsyncMock(spec=Browser)
    browser.new_context = AsyncMock(return_value=mock_context)
    return browser


class SessionTracker:
    """Fake browser session factory that counts acquisitions and releases."""

    def __init__(self, browser):
        self.browser = browser
        self.acquired = 0
        self.released = 0
        self.configs: list[BrowserConfig] = []

    @asynccontextmanager
    async def __call__(self, config: BrowserConfig):
        self.acquired += 1
        self.configs.append(config)
        try:
            yield self.browser
        finally:
            self.released += 1


@pytest.fixture
def session_tracker(mock_browser: AsyncMock) -> SessionTracker:
    return SessionTracker(mock_browser)
