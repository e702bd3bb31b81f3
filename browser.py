"""Browser candidates, sequential launch fallback and the scripted page check."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from classifier import classify_failure, error_text
from config import SmokeConfig
from diagnostics import DiagnosticsRecorder
from exceptions import BrowserLaunchError
from navigation import NavigationEngine
from smoke_types import BrowserCandidate

SANITY_HTML = "<main><h1>ok</h1><p>ui-smoke sanity</p></main>"


def webkit_device(playwright: Any, config: SmokeConfig) -> dict[str, Any]:
    """Device descriptor for WebKit, falling back to the plain mobile viewport."""
    descriptor = playwright.devices.get(config.browser.webkit_device)
    if descriptor:
        # new_context() has no default_browser_type parameter
        return {k: v for k, v in descriptor.items() if k != "default_browser_type"}
    return {
        "viewport": {"width": config.browser.viewport_width, "height": config.browser.viewport_height},
        "is_mobile": True,
        "has_touch": True,
    }


def build_candidates(playwright: Any, config: SmokeConfig) -> List[BrowserCandidate]:
    """Ordered launch preference: one hardened Chromium in CI, WebKit first elsewhere."""
    browser_cfg = config.browser

    chromium = BrowserCandidate(
        name="chromium",
        launch=lambda: playwright.chromium.launch(
            headless=browser_cfg.headless,
            args=list(browser_cfg.chromium_args),
        ),
        context_options={
            "viewport": {"width": browser_cfg.viewport_width, "height": browser_cfg.viewport_height},
        },
    )
    if config.policy.ci:
        return [chromium]

    # WebKit is authoritative for iPhone / Safari rendering
    webkit = BrowserCandidate(
        name="webkit",
        launch=lambda: playwright.webkit.launch(headless=browser_cfg.headless),
        context_options=webkit_device(playwright, config),
    )
    return [webkit, chromium]


class BrowserSession:
    """Owns the one browser used for the run; closed on every exit path."""

    def __init__(
        self,
        candidates: List[BrowserCandidate],
        recorder: DiagnosticsRecorder,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.candidates = candidates
        self.recorder = recorder
        self.config = recorder.config
        self.logger = logger or logging.getLogger("browser")
        self._sleep = sleep
        self.browser: Any = None
        self.candidate: Optional[BrowserCandidate] = None

    async def __aenter__(self) -> "BrowserSession":
        await self.launch()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def launch(self) -> BrowserCandidate:
        """Try each candidate in order; the first that launches is kept."""
        for candidate in self.candidates:
            self.recorder.log_event("browser_attempts", browser=candidate.name)
            try:
                self.browser = await candidate.launch()
            except Exception as exc:
                classification = classify_failure(exc)
                self.recorder.log_event(
                    "browser_launch_errors",
                    browser=candidate.name,
                    classification=classification,
                    error=error_text(exc),
                )
                self.logger.warning(f"{candidate.name} failed to launch ({classification}): {exc}")
                continue

            self.candidate = candidate
            self.recorder.record.browser_used = candidate.name
            self.logger.info(f"Browser started: {candidate.name} (headless={self.config.browser.headless})")
            return candidate

        raise BrowserLaunchError(list(self.recorder.record.browser_launch_errors))

    async def close(self) -> None:
        if self.browser is None:
            return
        browser, self.browser = self.browser, None
        try:
            await browser.close()
        except Exception as exc:
            self.logger.warning(f"Browser close failed: {exc}")
        else:
            self.logger.info("Browser closed")

    def _attach_page_diagnostics(self, page: Any) -> None:
        """Fold console output, page errors and failed requests into the record."""
        recorder = self.recorder
        page.on("console", lambda msg: recorder.log_event("console", type=msg.type, text=msg.text))
        page.on("pageerror", lambda err: recorder.log_event("page_errors", error=error_text(err)))
        page.on(
            "requestfailed",
            lambda req: recorder.log_event(
                "request_failed",
                url=req.url,
                method=req.method,
                failure=req.failure or "unknown",
            ),
        )

    async def run_sanity(self) -> str:
        """Render a static document to prove the browser itself works."""
        target = str(self.config.artifacts.sanity_path)
        context = await self.browser.new_context(**self.candidate.context_options)
        try:
            page = await context.new_page()
            await page.goto("about:blank")
            await page.set_content(SANITY_HTML)
            await page.screenshot(path=target)
        finally:
            await context.close()
        self.recorder.record.sanity_screenshot = target
        return target

    async def run_app_check(self, base_url: Optional[str]) -> str:
        """Load the app, click the known control once and capture the page."""
        artifacts = self.config.artifacts
        navigation = self.config.navigation
        record = self.recorder.record

        context = await self.browser.new_context(**self.candidate.context_options)
        await context.tracing.start(screenshots=True, snapshots=True)
        try:
            page = await context.new_page()
            self._attach_page_diagnostics(page)

            engine = NavigationEngine(page, self.recorder, base_url, sleep=self._sleep)
            await engine.navigate()
            await page.wait_for_timeout(navigation.settle_before_click_ms)
            await page.click(navigation.click_selector)
            await page.wait_for_timeout(navigation.settle_after_click_ms)
            await page.screenshot(path=str(artifacts.screenshot_path), full_page=True)
            record.screenshot = str(artifacts.screenshot_path)
        except Exception as exc:
            record.error = error_text(exc)
            record.failure_classification = classify_failure(exc)
            raise
        finally:
            await self._stop_tracing(context)

        self.logger.info(f"Screenshot created: {record.screenshot}")
        return record.screenshot

    async def _stop_tracing(self, context: Any) -> None:
        trace_path = str(self.config.artifacts.trace_path)
        try:
            await context.tracing.stop(path=trace_path)
            self.recorder.record.trace = trace_path
        except Exception as exc:
            self.logger.warning(f"Trace capture failed: {exc}")
        try:
            await context.close()
        except Exception as exc:
            self.logger.warning(f"Context close failed: {exc}")
