"""Failure classification over raw error text.

Every function here is pure: it looks only at the text of an error (message
plus traceback) so the taxonomy can be exercised against a corpus of known
Playwright / Chromium / pip output without starting a browser.

Priority is fixed: binary installation signatures win over connectivity
signatures, which win over runtime-crash signatures. A navigation timeout
raised while a browser is crashing is therefore reported as the more
actionable category.
"""
from __future__ import annotations

import re
import traceback
from typing import Any

BINARY_INSTALLATION_FAILURE = "binary-installation-failure"
CONNECTIVITY_FAILURE = "connectivity-failure"
BROWSER_RUNTIME_FAILURE = "browser-runtime-failure"
APPLICATION_FAILURE = "application-failure"
UNKNOWN_BROWSER_FAILURE = "unknown-browser-failure"
UNKNOWN = "unknown"

INFRASTRUCTURE_CLASSES = frozenset({BINARY_INSTALLATION_FAILURE, BROWSER_RUNTIME_FAILURE})

_MISSING_PLAYWRIGHT = re.compile(
    r"No module named '?playwright|Cannot find package 'playwright'",
    re.IGNORECASE,
)
_MISSING_BINARY = re.compile(
    r"Executable doesn't exist"
    r"|please run the following command to download new browsers"
    r"|browserType\.launch: Executable"
    r"|browser not found"
    r"|failed to launch browser process"
    r"|No such file or directory.*(playwright|ms-playwright)",
    re.IGNORECASE,
)
_CONNECTIVITY = re.compile(
    r"ERR_EMPTY_RESPONSE|ERR_CONNECTION|ECONNREFUSED|Connection refused|Navigation timeout"
    r"|(Page|Frame)\.goto: Timeout \d+ms exceeded",
    re.IGNORECASE,
)
_HTTP_REACHABILITY = re.compile(
    r"ERR_EMPTY_RESPONSE|ERR_CONNECTION|ECONNREFUSED|Connection refused"
    r"|Connection terminated unexpectedly|Navigation timeout"
    r"|(Page|Frame)\.goto: Timeout \d+ms exceeded",
    re.IGNORECASE,
)
_RUNTIME = re.compile(
    r"TargetClosedError|Target (page, context or browser )?(has been )?closed|has been closed"
    r"|BrowserType\.launch|crash|SIGSEGV|Segmentation fault"
    r"|Connection terminated unexpectedly",
    re.IGNORECASE,
)

_BLOCKED_DOWNLOAD_MARKERS = (
    "403",
    "domain forbidden",
    "failed to download",
    "download failed",
    "eai_again",
    "econnreset",
    "enotfound",
    "getaddrinfo",
    "name or service not known",
    "cdn",
    "network",
)


def error_text(error: Any) -> str:
    """Flatten an exception (or any value) to message + traceback text."""
    if error is None:
        return ""
    if isinstance(error, BaseException):
        parts = traceback.format_exception(type(error), error, error.__traceback__)
        return "".join(parts).strip() or repr(error)
    return str(error)


def is_missing_playwright_error(error: Any) -> bool:
    """True when the automation engine package itself is absent."""
    if isinstance(error, ModuleNotFoundError):
        name = error.name or ""
        if name == "playwright" or name.startswith("playwright."):
            return True
    return bool(_MISSING_PLAYWRIGHT.search(error_text(error)))


def is_missing_browser_binary_error(error: Any) -> bool:
    """True when Playwright is present but a browser executable is not."""
    return bool(_MISSING_BINARY.search(error_text(error)))


def is_http_reachability_error(error: Any) -> bool:
    """True for errors that justify leaving the HTTP strategy for FILE."""
    return bool(_HTTP_REACHABILITY.search(error_text(error)))


def _classify(error: Any, fallback: str) -> str:
    text = error_text(error)
    if _MISSING_BINARY.search(text):
        return BINARY_INSTALLATION_FAILURE
    if _CONNECTIVITY.search(text):
        return CONNECTIVITY_FAILURE
    if _RUNTIME.search(text):
        return BROWSER_RUNTIME_FAILURE
    return fallback


def classify_failure(error: Any) -> str:
    """Classify a failure raised while running the smoke pass."""
    return _classify(error, APPLICATION_FAILURE)


def classify_preflight_failure(error: Any) -> str:
    """Classify a failure raised while trial-launching browsers."""
    return _classify(error, UNKNOWN_BROWSER_FAILURE)


def is_infrastructure_failure(classification: str) -> bool:
    """Binary and runtime failures are environment problems, not app bugs."""
    return classification in INFRASTRUCTURE_CLASSES


def is_blocked_download_error(output: Any) -> bool:
    """Best-effort check for install output that points at a blocked network.

    This is a heuristic over the combined stdout/stderr of the install
    command. A false negative only changes the verdict from "skipped" to
    "failed", never the other way round for a successful install.
    """
    text = str(output or "").lower()
    return any(marker in text for marker in _BLOCKED_DOWNLOAD_MARKERS)
