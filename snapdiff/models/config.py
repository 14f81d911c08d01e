"""Configuration models for the snapdiff service."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ViewportConfig(BaseModel):
    width: int = 1280
    height: int = 800


class BrowserConfig(BaseModel):
    # "local" uses Playwright's bundled Chromium, "serverless" a packaged binary
    mode: Literal["local", "serverless"] = "local"
    executable_path: Optional[str] = None
    headless: bool = True
    sandbox: bool = False
    extra_args: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def require_serverless_binary(self) -> "BrowserConfig":
        if self.mode == "serverless" and not self.executable_path:
            raise ValueError("serverless mode requires executable_path")
        return self


class ServiceConfig(BaseModel):
    # HTTP
    host: str = "127.0.0.1"
    port: int = 3000

    # Storage
    storage_dir: str = "uploads"
    max_upload_bytes: int = 50 * 1024 * 1024

    # Capture
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    navigation_timeout_ms: int = 30000
    network_idle_max_inflight: int = 2
    network_idle_quiet_ms: int = 500
    browser: BrowserConfig = Field(default_factory=BrowserConfig)

    # Compare
    diff_threshold: float = 0.1

    @field_validator("diff_threshold")
    @classmethod
    def check_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("diff_threshold must be between 0 and 1")
        return v

    @field_validator("navigation_timeout_ms", "network_idle_quiet_ms", "max_upload_bytes")
    @classmethod
    def check_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @property
    def storage_path(self) -> Path:
        return Path(self.storage_dir)

    @classmethod
    def load(cls, path: str | Path) -> "ServiceConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)

    @classmethod
    def from_env(
        cls,
        base: "ServiceConfig | None" = None,
        environ: Mapping[str, str] | None = None,
    ) -> "ServiceConfig":
        """Overlay environment variables on top of ``base`` (or the defaults).

        Called once at startup; request handling only ever sees the
        resulting value.
        """
        env = os.environ if environ is None else environ
        data = (base or cls()).model_dump()

        if "PORT" in env:
            data["port"] = int(env["PORT"])
        if "SNAPDIFF_HOST" in env:
            data["host"] = env["SNAPDIFF_HOST"]
        if "SNAPDIFF_STORAGE_DIR" in env:
            data["storage_dir"] = env["SNAPDIFF_STORAGE_DIR"]
        if "SNAPDIFF_NAV_TIMEOUT_MS" in env:
            data["navigation_timeout_ms"] = int(env["SNAPDIFF_NAV_TIMEOUT_MS"])
        if "SNAPDIFF_DIFF_THRESHOLD" in env:
            data["diff_threshold"] = float(env["SNAPDIFF_DIFF_THRESHOLD"])
        if "SNAPDIFF_BROWSER_MODE" in env:
            data["browser"]["mode"] = env["SNAPDIFF_BROWSER_MODE"].strip().lower()
        if "SNAPDIFF_CHROMIUM_PATH" in env:
            data["browser"]["executable_path"] = env["SNAPDIFF_CHROMIUM_PATH"] or None
        if "SNAPDIFF_BROWSER_SANDBOX" in env:
            data["browser"]["sandbox"] = _parse_bool(env["SNAPDIFF_BROWSER_SANDBOX"])

        return cls(**data)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")
