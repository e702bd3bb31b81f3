"""Pytest fixtures for the UI smoke harness."""
from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from config import SmokeConfig
from diagnostics import DiagnosticsRecorder

SMOKE_ENV_VARS = (
    "CI",
    "PLAYWRIGHT_STRICT",
    "PLAYWRIGHT_SKIP_BROWSER_DOWNLOAD",
    "UI_SMOKE_PORT",
    "UI_SMOKE_ALLOW_HTTP",
    "UI_SMOKE_APP_ROOT",
    "UI_SMOKE_CI_WARN_ONLY",
    "UI_SMOKE_CONFIG",
    "UI_SMOKE_REPORT_FORMAT",
    "UI_SMOKE_VERBOSE",
)

INDEX_HTML = """<!doctype html>
<html>
<head><title>Tracker</title></head>
<body><button data-route="add">Add</button></body>
</html>
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the host environment (CI runners set CI=true) out of the tests."""
    for name in SMOKE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def app_root(temp_dir: Path) -> Path:
    """A served application root containing index.html."""
    root = temp_dir / "app"
    root.mkdir()
    (root / "index.html").write_text(INDEX_HTML, encoding="utf-8")
    return root


def make_config(app_root: Path, **sections: Dict[str, Any]) -> SmokeConfig:
    """Fast-timing config rooted at app_root; sections override defaults."""
    data: Dict[str, Any] = {
        "artifacts": {"app_root": app_root},
        "server": {"startup_timeout": 1.0, "poll_interval": 0.0, "stop_grace": 0.0},
        "navigation": {
            "backoff_base": 0.0,
            "settle_before_click_ms": 0,
            "settle_after_click_ms": 0,
        },
    }
    for name, values in sections.items():
        data.setdefault(name, {}).update(values)
    return SmokeConfig.model_validate(data)


@pytest.fixture
def smoke_config(app_root: Path) -> SmokeConfig:
    return make_config(app_root)


@pytest.fixture
def recorder(smoke_config: SmokeConfig) -> DiagnosticsRecorder:
    return DiagnosticsRecorder(smoke_config)


async def no_sleep(seconds: float) -> None:
    return None


# ─────────────────────────────────────────────────────────────────────────────
# Fake Playwright objects
# ─────────────────────────────────────────────────────────────────────────────


def make_page() -> MagicMock:
    """A page whose screenshots land on disk like the real thing."""
    page = MagicMock()
    page.goto = AsyncMock()
    page.set_content = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.click = AsyncMock()

    async def screenshot(path: Optional[str] = None, full_page: bool = False) -> bytes:
        data = b"\x89PNG fake screenshot"
        if path:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            Path(path).write_bytes(data)
        return data

    page.screenshot = AsyncMock(side_effect=screenshot)
    return page


def make_context(page: MagicMock) -> MagicMock:
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    context.tracing.start = AsyncMock()

    async def stop(path: Optional[str] = None) -> None:
        if path:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            Path(path).write_bytes(b"PK fake trace")

    context.tracing.stop = AsyncMock(side_effect=stop)
    return context


def make_browser(page: Optional[MagicMock] = None) -> MagicMock:
    page = page or make_page()
    browser = MagicMock()
    browser.page = page
    browser.new_context = AsyncMock(side_effect=lambda **options: make_context(page))
    browser.new_page = AsyncMock(return_value=page)
    browser.close = AsyncMock()
    return browser


def make_browser_type(executable_path: str, browser: Optional[MagicMock] = None) -> MagicMock:
    browser_type = MagicMock()
    browser_type.executable_path = executable_path
    browser_type.launch = AsyncMock(return_value=browser or make_browser())
    return browser_type


class FakePlaywright:
    """Stand-in for the object yielded by ``async_playwright()``."""

    def __init__(self, binaries_dir: Path, browser: Optional[MagicMock] = None):
        self.browser = browser or make_browser()
        chromium_exe = binaries_dir / "chrome"
        webkit_exe = binaries_dir / "pw_run.sh"
        chromium_exe.write_text("#!/bin/sh\n")
        webkit_exe.write_text("#!/bin/sh\n")
        self.chromium = make_browser_type(str(chromium_exe), self.browser)
        self.webkit = make_browser_type(str(webkit_exe), self.browser)
        self.devices = {
            "iPhone 13": {
                "user_agent": "Mozilla/5.0 (iPhone)",
                "viewport": {"width": 390, "height": 664},
                "device_scale_factor": 3,
                "is_mobile": True,
                "has_touch": True,
                "default_browser_type": "webkit",
            }
        }
        self.stopped = False

    async def __aenter__(self) -> "FakePlaywright":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stopped = True


class FakeServer:
    """Stand-in for StaticServer that never spawns a process."""

    instances: list = []

    def __init__(self, recorder: DiagnosticsRecorder, selected_host: Optional[str] = "127.0.0.1"):
        self.recorder = recorder
        self.selected_host = selected_host
        self.entered = False
        self.stopped = 0
        FakeServer.instances.append(self)

    def url_for(self, host: str) -> str:
        return f"http://{host}:{self.recorder.config.server.port}/index.html"

    async def __aenter__(self) -> "FakeServer":
        self.entered = True
        self.recorder.record.server = {"selected_host": self.selected_host}
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stopped += 1


@pytest.fixture
def fake_playwright(temp_dir: Path) -> FakePlaywright:
    binaries = temp_dir / "ms-playwright"
    binaries.mkdir()
    return FakePlaywright(binaries)
