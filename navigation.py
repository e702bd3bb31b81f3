"""Navigation strategy engine: HTTP -> FILE -> INLINE.

Each strategy is a progressively more primitive way of putting the app page
in front of the browser. The per-strategy policy (attempts, backoff, which
failures move on to the next strategy) lives in a table so it can be tested
without a browser.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from classifier import error_text, is_http_reachability_error
from config import NavigationConfig
from diagnostics import DiagnosticsRecorder
from exceptions import NavigationError
from smoke_types import NavigationStrategy

HTTP_DISABLED_REASON = (
    "HTTP strategy disabled unless UI_SMOKE_ALLOW_HTTP=1 "
    "(default is file-safe mode for remote browser sandboxes)."
)
HTTP_NO_BASE_URL_REASON = "HTTP strategy opted in but no server base URL is available."

_HEAD_TAG = re.compile(r"<head(\s[^>]*)?>", re.IGNORECASE)


def _always(error: BaseException) -> bool:
    return True


def _never(error: BaseException) -> bool:
    return False


@dataclass(frozen=True)
class StrategyPolicy:
    """Retry and fallback rules for one navigation strategy."""

    strategy: NavigationStrategy
    max_attempts: int
    backoff: float
    falls_back_to: Optional[NavigationStrategy]
    falls_back_on: Callable[[BaseException], bool]

    def should_fall_back(self, error: BaseException) -> bool:
        return self.falls_back_to is not None and self.falls_back_on(error)


def strategy_policies(config: NavigationConfig) -> Dict[NavigationStrategy, StrategyPolicy]:
    """Transition table for the three strategies."""
    return {
        # Only connectivity problems justify leaving HTTP; anything else is an app bug.
        NavigationStrategy.HTTP: StrategyPolicy(
            NavigationStrategy.HTTP,
            max_attempts=config.http_attempts,
            backoff=config.backoff_base,
            falls_back_to=NavigationStrategy.FILE,
            falls_back_on=is_http_reachability_error,
        ),
        NavigationStrategy.FILE: StrategyPolicy(
            NavigationStrategy.FILE,
            max_attempts=config.file_attempts,
            backoff=config.backoff_base,
            falls_back_to=NavigationStrategy.INLINE,
            falls_back_on=_always,
        ),
        NavigationStrategy.INLINE: StrategyPolicy(
            NavigationStrategy.INLINE,
            max_attempts=1,
            backoff=0.0,
            falls_back_to=None,
            falls_back_on=_never,
        ),
    }


def base_href(app_root: Path) -> str:
    return app_root.as_uri().rstrip("/") + "/"


def build_inline_html(markup: str, app_root: Path) -> str:
    """Inject a <base> so relative resources resolve against the app root."""
    base_tag = f'<base href="{base_href(app_root)}">'
    match = _HEAD_TAG.search(markup)
    if match:
        return markup[: match.end()] + base_tag + markup[match.end():]
    return base_tag + markup


class NavigationEngine:
    """Per-run fallback state machine driving one Playwright page."""

    def __init__(
        self,
        page: Any,
        recorder: DiagnosticsRecorder,
        base_url: Optional[str] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.page = page
        self.recorder = recorder
        self.base_url = base_url
        self.config = recorder.config.navigation
        self.artifacts = recorder.config.artifacts
        self.policies = strategy_policies(self.config)
        self.logger = logger or logging.getLogger("navigation")
        self._sleep = sleep

    def _transition(self, source: NavigationStrategy, target: NavigationStrategy, reason: str) -> None:
        self.recorder.log_event(
            "navigation_fallbacks", **{"from": source.value, "to": target.value, "reason": reason}
        )
        self.logger.info(f"Navigation fallback {source.value} -> {target.value}")

    async def navigate(self) -> NavigationStrategy:
        """Load the app page, falling back as the policy table allows."""
        if self.config.allow_http and self.base_url:
            strategy = NavigationStrategy.HTTP
        else:
            reason = HTTP_NO_BASE_URL_REASON if self.config.allow_http else HTTP_DISABLED_REASON
            self._transition(NavigationStrategy.HTTP, NavigationStrategy.FILE, reason)
            strategy = NavigationStrategy.FILE

        while True:
            policy = self.policies[strategy]
            try:
                await self._run_strategy(policy)
            except Exception as exc:
                if not policy.should_fall_back(exc):
                    raise
                self._transition(strategy, policy.falls_back_to, error_text(exc))
                strategy = policy.falls_back_to
                continue

            self.recorder.record.navigation_strategy_used = strategy
            self.logger.info(f"Navigation succeeded via {strategy.value}")
            return strategy

    def _target(self, strategy: NavigationStrategy) -> str:
        if strategy is NavigationStrategy.HTTP:
            return self.base_url or ""
        if strategy is NavigationStrategy.FILE:
            return self.artifacts.index_path.as_uri()
        return str(self.artifacts.index_path)

    async def _run_strategy(self, policy: StrategyPolicy) -> None:
        target = self._target(policy.strategy)
        self.recorder.log_event(
            "navigation_strategy_attempts", strategy=policy.strategy.value, target=target
        )
        if policy.strategy is NavigationStrategy.INLINE:
            await self._load_inline(target)
        else:
            await self._goto_with_retry(target, policy)

    async def _goto_with_retry(self, url: str, policy: StrategyPolicy) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(multiplier=policy.backoff, max=30),
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                self.recorder.log_event(
                    "navigation_attempts", strategy=policy.strategy.value, url=url, attempt=number
                )
                try:
                    await self.page.goto(url, wait_until="domcontentloaded", timeout=self.config.timeout_ms)
                except Exception as exc:
                    self.recorder.log_event(
                        "navigation_errors",
                        strategy=policy.strategy.value,
                        attempt=number,
                        error=error_text(exc),
                    )
                    self.logger.warning(
                        f"{policy.strategy.value} navigation attempt {number}/{policy.max_attempts} failed: {exc}"
                    )
                    raise

    async def _load_inline(self, index_path: str) -> None:
        path = Path(index_path)
        if not path.is_file():
            raise NavigationError("App entry page not found", strategy="INLINE", target=index_path)
        markup = path.read_text(encoding="utf-8")
        await self.page.set_content(
            build_inline_html(markup, self.artifacts.app_root),
            wait_until="domcontentloaded",
            timeout=self.config.timeout_ms,
        )
