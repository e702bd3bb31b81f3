"""Capability prober: is Playwright importable, and can its browsers launch?"""
from __future__ import annotations

import importlib
import logging
from importlib import metadata
from typing import Any, Callable, Optional, Tuple

from browser import webkit_device
from classifier import (
    BINARY_INSTALLATION_FAILURE,
    classify_preflight_failure,
    error_text,
    is_missing_browser_binary_error,
    is_missing_playwright_error,
)
from config import SmokeConfig
from smoke_types import EngineProbe

ENGINE_MISSING_MESSAGE = "Playwright is not installed. Run: pip install playwright && playwright install"
BINARIES_MISSING_MESSAGE = (
    "Playwright is installed but browser binaries are missing. In restricted environments "
    "(CDN 403), installs may fail. Run this locally on your machine: playwright install. "
    "WebKit is authoritative for iPhone/Safari behavior."
)

logger = logging.getLogger("prober")

EngineLoader = Callable[[], Tuple[Optional[Callable[[], Any]], EngineProbe]]


def engine_version() -> str:
    try:
        return metadata.version("playwright")
    except metadata.PackageNotFoundError:
        return "unknown"


def load_engine() -> Tuple[Optional[Callable[[], Any]], EngineProbe]:
    """Import the async Playwright API.

    Returns the ``async_playwright`` factory (or None) and the probe result.
    Only a missing ``playwright`` package is turned into a result; any other
    import failure propagates.
    """
    try:
        module = importlib.import_module("playwright.async_api")
    except ImportError as exc:
        if not is_missing_playwright_error(exc):
            raise
        logger.error("Playwright package is missing in this environment")
        return None, EngineProbe(
            available=False,
            reason="playwright-missing",
            classification=BINARY_INSTALLATION_FAILURE,
            message=ENGINE_MISSING_MESSAGE,
        )
    return module.async_playwright, EngineProbe(
        available=True,
        reason="loaded",
        classification="ready",
        engine_version=engine_version(),
    )


async def _trial_launch(browser_type: Any, **options: Any) -> None:
    browser = await browser_type.launch(**options)
    try:
        page = await browser.new_page()
        await page.goto("about:blank")
    finally:
        await browser.close()


async def probe(config: SmokeConfig, loader: EngineLoader = load_engine) -> EngineProbe:
    """Preflight: load the engine, then trial-launch every known browser."""
    factory, loaded = loader()
    if factory is None:
        return loaded

    version = loaded.engine_version
    async with factory() as playwright:
        try:
            await _trial_launch(playwright.webkit, headless=config.browser.headless)
            await _trial_launch(
                playwright.chromium,
                headless=config.browser.headless,
                args=list(config.browser.chromium_args),
            )
        except Exception as exc:
            if is_missing_browser_binary_error(exc):
                return EngineProbe(
                    available=False,
                    reason="browser-binaries-missing",
                    classification=BINARY_INSTALLATION_FAILURE,
                    engine_version=version,
                    message=BINARIES_MISSING_MESSAGE,
                )
            return EngineProbe(
                available=False,
                reason="browser-launch-failed",
                classification=classify_preflight_failure(exc),
                engine_version=version,
                message=error_text(exc),
            )

        return EngineProbe(
            available=True,
            reason="ready",
            classification="ready",
            engine_version=version,
            webkit_device=webkit_device(playwright, config).get("viewport"),
        )
