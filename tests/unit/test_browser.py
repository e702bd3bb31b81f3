"""Unit tests for browser candidates and the scripted page check."""
from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from browser import SANITY_HTML, BrowserSession, build_candidates, webkit_device
from classifier import APPLICATION_FAILURE
from conftest import FakePlaywright, make_browser, make_config, no_sleep
from diagnostics import DiagnosticsRecorder
from exceptions import BrowserLaunchError
from smoke_types import NavigationStrategy

MISSING_EXECUTABLE = "BrowserType.launch: Executable doesn't exist at /ms-playwright/webkit/pw_run.sh"


class TestCandidates:
    """Tests for build_candidates and device descriptors."""

    def test_local_order_prefers_webkit(self, smoke_config, fake_playwright: FakePlaywright):
        candidates = build_candidates(fake_playwright, smoke_config)
        assert [c.name for c in candidates] == ["webkit", "chromium"]
        assert candidates[0].context_options["is_mobile"] is True
        assert "default_browser_type" not in candidates[0].context_options
        assert candidates[1].context_options["viewport"] == {"width": 390, "height": 844}

    def test_ci_uses_hardened_chromium_only(self, app_root: Path, fake_playwright: FakePlaywright):
        config = make_config(app_root, policy={"ci": True})
        candidates = build_candidates(fake_playwright, config)
        assert [c.name for c in candidates] == ["chromium"]

    @pytest.mark.asyncio
    async def test_chromium_launch_arguments(self, smoke_config, fake_playwright: FakePlaywright):
        chromium = build_candidates(fake_playwright, smoke_config)[1]
        await chromium.launch()
        kwargs = fake_playwright.chromium.launch.await_args.kwargs
        assert kwargs["headless"] is True
        assert "--no-sandbox" in kwargs["args"]

    def test_unknown_device_falls_back_to_viewport(self, app_root: Path, fake_playwright: FakePlaywright):
        config = make_config(app_root, browser={"webkit_device": "Pixel 99"})
        options = webkit_device(fake_playwright, config)
        assert options == {"viewport": {"width": 390, "height": 844}, "is_mobile": True, "has_touch": True}


class TestBrowserSession:
    """Tests for BrowserSession."""

    @pytest.mark.asyncio
    async def test_first_candidate_launches(self, recorder, smoke_config, fake_playwright):
        candidates = build_candidates(fake_playwright, smoke_config)

        async with BrowserSession(candidates, recorder, sleep=no_sleep) as session:
            assert session.candidate.name == "webkit"

        assert recorder.record.browser_used == "webkit"
        assert [a["browser"] for a in recorder.record.browser_attempts] == ["webkit"]
        fake_playwright.chromium.launch.assert_not_awaited()
        fake_playwright.browser.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_falls_back_to_next_candidate(self, recorder, smoke_config, fake_playwright):
        fake_playwright.webkit.launch.side_effect = RuntimeError(MISSING_EXECUTABLE)
        candidates = build_candidates(fake_playwright, smoke_config)

        async with BrowserSession(candidates, recorder, sleep=no_sleep) as session:
            assert session.candidate.name == "chromium"

        record = recorder.record
        assert [a["browser"] for a in record.browser_attempts] == ["webkit", "chromium"]
        assert record.browser_launch_errors[0]["browser"] == "webkit"
        assert record.browser_launch_errors[0]["classification"] == "binary-installation-failure"
        assert record.browser_used == "chromium"

    @pytest.mark.asyncio
    async def test_all_candidates_fail(self, recorder, smoke_config, fake_playwright):
        fake_playwright.webkit.launch.side_effect = RuntimeError(MISSING_EXECUTABLE)
        fake_playwright.chromium.launch.side_effect = RuntimeError("Target page, context or browser has been closed")
        candidates = build_candidates(fake_playwright, smoke_config)

        with pytest.raises(BrowserLaunchError) as exc_info:
            async with BrowserSession(candidates, recorder, sleep=no_sleep):
                pass

        assert len(exc_info.value.errors) == 2
        assert recorder.record.browser_used is None

    @pytest.mark.asyncio
    async def test_close_failure_is_logged(self, recorder, smoke_config, fake_playwright):
        fake_playwright.browser.close.side_effect = RuntimeError("already gone")
        candidates = build_candidates(fake_playwright, smoke_config)

        async with BrowserSession(candidates, recorder, sleep=no_sleep):
            pass

    @pytest.mark.asyncio
    async def test_sanity_screenshot(self, recorder, smoke_config, fake_playwright):
        candidates = build_candidates(fake_playwright, smoke_config)

        async with BrowserSession(candidates, recorder, sleep=no_sleep) as session:
            target = await session.run_sanity()

        page = fake_playwright.browser.page
        page.goto.assert_awaited_with("about:blank")
        page.set_content.assert_awaited_with(SANITY_HTML)
        assert Path(target).read_bytes()
        assert recorder.record.sanity_screenshot == target

    @pytest.mark.asyncio
    async def test_app_check_writes_screenshot_and_trace(self, recorder, smoke_config, fake_playwright):
        candidates = build_candidates(fake_playwright, smoke_config)
        artifacts = smoke_config.artifacts

        async with BrowserSession(candidates, recorder, sleep=no_sleep) as session:
            await session.run_app_check("http://127.0.0.1:4173/index.html")

        page = fake_playwright.browser.page
        page.click.assert_awaited_once_with('button[data-route="add"]')
        assert page.screenshot.await_args.kwargs["full_page"] is True
        assert artifacts.screenshot_path.stat().st_size > 0
        assert artifacts.trace_path.exists()
        record = recorder.record
        assert record.screenshot == str(artifacts.screenshot_path)
        assert record.trace == str(artifacts.trace_path)
        assert record.navigation_strategy_used is NavigationStrategy.FILE

    @pytest.mark.asyncio
    async def test_page_events_recorded(self, recorder, smoke_config, fake_playwright):
        page = fake_playwright.browser.page
        candidates = build_candidates(fake_playwright, smoke_config)

        async with BrowserSession(candidates, recorder, sleep=no_sleep) as session:
            await session.run_app_check(None)

        handlers = {call.args[0]: call.args[1] for call in page.on.call_args_list}
        assert set(handlers) == {"console", "pageerror", "requestfailed"}

        message = type("Msg", (), {"type": "error", "text": "boom"})()
        handlers["console"](message)
        handlers["pageerror"](RuntimeError("Uncaught ReferenceError"))
        request = type("Req", (), {"url": "file:///app/x.js", "method": "GET", "failure": None})()
        handlers["requestfailed"](request)

        record = recorder.record
        assert record.console[0]["type"] == "error"
        assert "ReferenceError" in record.page_errors[0]["error"]
        assert record.request_failed[0]["failure"] == "unknown"

    @pytest.mark.asyncio
    async def test_app_check_failure_is_classified(self, recorder, smoke_config, fake_playwright):
        page = fake_playwright.browser.page
        page.click.side_effect = RuntimeError("page.click: Timeout 30000ms exceeded")
        candidates = build_candidates(fake_playwright, smoke_config)

        with pytest.raises(RuntimeError):
            async with BrowserSession(candidates, recorder, sleep=no_sleep) as session:
                await session.run_app_check(None)

        record = recorder.record
        assert record.failure_classification == APPLICATION_FAILURE
        assert "Timeout 30000ms" in record.error
        assert record.trace == str(smoke_config.artifacts.trace_path)
        fake_playwright.browser.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_trace_failure_does_not_mask_result(self, recorder, smoke_config, temp_dir):
        browser = make_browser()
        binaries = temp_dir / "bin"
        binaries.mkdir()
        playwright = FakePlaywright(binaries, browser)
        context_factory = browser.new_context.side_effect

        def broken_tracing(**options):
            context = context_factory(**options)
            context.tracing.stop = AsyncMock(side_effect=RuntimeError("trace write failed"))
            return context

        browser.new_context.side_effect = broken_tracing
        candidates = build_candidates(playwright, smoke_config)

        async with BrowserSession(candidates, recorder, sleep=no_sleep) as session:
            await session.run_app_check(None)

        assert recorder.record.screenshot
        assert recorder.record.trace is None
