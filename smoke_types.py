"""Typed objects shared by the smoke-pass phases."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RunResult(str, Enum):
    """Lifecycle of the single smoke run."""
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self is not RunResult.RUNNING


class NavigationStrategy(str, Enum):
    """Ways of presenting the app page, from most to least faithful."""
    HTTP = "HTTP"
    FILE = "FILE"
    INLINE = "INLINE"


@dataclass
class DiagnosticsRecord:
    """Everything observed during one run; serialized to diagnostics.json."""

    cwd: str
    screenshot_target: str
    sanity_target: str
    trace_target: str
    server_log_target: str
    started_at: str = field(default_factory=now_iso)
    finished_at: Optional[str] = None

    # Event logs, in program order
    console: List[Dict[str, Any]] = field(default_factory=list)
    page_errors: List[Dict[str, Any]] = field(default_factory=list)
    request_failed: List[Dict[str, Any]] = field(default_factory=list)
    server_health_checks: List[Dict[str, Any]] = field(default_factory=list)
    navigation_attempts: List[Dict[str, Any]] = field(default_factory=list)
    navigation_errors: List[Dict[str, Any]] = field(default_factory=list)
    navigation_strategy_attempts: List[Dict[str, Any]] = field(default_factory=list)
    navigation_fallbacks: List[Dict[str, Any]] = field(default_factory=list)
    browser_attempts: List[Dict[str, Any]] = field(default_factory=list)
    browser_launch_errors: List[Dict[str, Any]] = field(default_factory=list)
    binary_checks: List[Dict[str, Any]] = field(default_factory=list)

    # Run state
    result: RunResult = RunResult.RUNNING
    classification: str = "unknown"
    failure_classification: Optional[str] = None
    navigation_strategy_used: Optional[NavigationStrategy] = None
    browser_used: Optional[str] = None
    base_url: Optional[str] = None
    error: Optional[str] = None
    instructions: List[str] = field(default_factory=list)

    # Phase details
    playwright_version: Optional[str] = None
    server: Dict[str, Any] = field(default_factory=dict)
    install_attempt: Optional[Dict[str, Any]] = None
    sanity_screenshot: Optional[str] = None
    screenshot: Optional[str] = None
    trace: Optional[str] = None

    # Environment snapshot
    ci: bool = False
    strict: bool = False
    env_skip_browser_download: bool = False
    navigation_http_opt_in: bool = False

    @property
    def missing_browsers(self) -> List[Dict[str, Any]]:
        return [
            {"browser": row["browser"], "executable_path": row["executable_path"]}
            for row in self.binary_checks
            if not row["exists"]
        ]


@dataclass(frozen=True)
class BrowserCandidate:
    """One entry of the ordered launch preference list."""

    name: str
    launch: Callable[[], Awaitable[Any]]
    context_options: Dict[str, Any]


@dataclass(frozen=True)
class EngineProbe:
    """Outcome of loading the automation engine (and optionally launching)."""

    available: bool
    reason: str
    classification: str
    engine_version: Optional[str] = None
    message: Optional[str] = None
    webkit_device: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "ok": self.available,
            "reason": self.reason,
            "classification": self.classification,
            "playwright_version": self.engine_version,
        }
        if self.message:
            payload["message"] = self.message
        if self.webkit_device:
            payload["webkit_device"] = self.webkit_device
        return payload


@dataclass(frozen=True)
class InstallOutcome:
    """Result of the on-demand browser install."""

    ok: bool
    blocked: bool
    status: Optional[int]
    command: str
    output: str = ""


@dataclass(frozen=True)
class Verdict:
    """Final status and exit code chosen by the conclusion policy."""

    status: RunResult
    classification: str
    exit_code: int
