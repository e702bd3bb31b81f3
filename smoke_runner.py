"""Orchestrator for one UI smoke pass, plus the ``ui-smoke`` entry point."""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Dict, Optional

from browser import BrowserSession, build_candidates
from classifier import classify_failure, error_text, is_infrastructure_failure
from conclusion import TEST_FAILURE, Outcome, decide
from config import SmokeConfig, load_config
from diagnostics import DiagnosticsRecorder, summary_payload
from exceptions import BrowserLaunchError, ServerUnreachableError, SmokeError
from installer import BLOCKED_NOTE, check_binaries, install_browsers
from preflight import install_process_diagnostics
from prober import EngineLoader, load_engine
from server import StaticServer
from smoke_types import RunResult, Verdict

LOCAL_RERUN_STEPS = (
    "pip install playwright",
    "playwright install",
    "ui-smoke",
)


class UISmokeRunner:
    """Runs the phases in order and guarantees exactly one conclusion."""

    def __init__(
        self,
        config: SmokeConfig,
        recorder: Optional[DiagnosticsRecorder] = None,
        engine_loader: EngineLoader = load_engine,
        server_factory: Callable[[DiagnosticsRecorder], Any] = StaticServer,
        installer: Callable[..., Awaitable[Any]] = install_browsers,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.logger = logger or logging.getLogger("ui_smoke")
        self.recorder = recorder or DiagnosticsRecorder(config, logger=self.logger)
        self.engine_loader = engine_loader
        self.server_factory = server_factory
        self.installer = installer
        self._sleep = sleep

    @property
    def _ci_warn_only(self) -> bool:
        policy = self.config.policy
        return policy.ci and not policy.strict and policy.ci_warn_only

    def _conclude(
        self,
        outcome: Outcome,
        details: Dict[str, Any],
        failure_classification: Optional[str] = None,
    ) -> Verdict:
        verdict = decide(outcome, self.config.policy, failure_classification)
        self.recorder.conclude(verdict, details)
        return verdict

    async def run(self) -> int:
        """Run the smoke pass; persistence and the summary line always happen."""
        try:
            await self._run()
        except Exception as exc:
            self._conclude_failure(exc)
        finally:
            self.finalize()
        return self.recorder.exit_code

    async def _run(self) -> None:
        config = self.config
        record = self.recorder.record
        config.artifacts.artifacts_dir.mkdir(parents=True, exist_ok=True)

        factory, engine = self.engine_loader()
        if factory is None:
            record.failure_classification = engine.classification
            record.error = engine.message
            self.recorder.add_instructions(
                "Playwright package is missing in this environment.",
                *(f"Run: {step}" for step in LOCAL_RERUN_STEPS),
            )
            self._conclude(Outcome.ENGINE_MISSING, {
                "message": "Playwright package missing.",
                "fix": " && ".join(LOCAL_RERUN_STEPS),
            })
            return
        record.playwright_version = engine.engine_version

        if config.policy.skip_browser_download:
            self.recorder.add_instructions(
                "PLAYWRIGHT_SKIP_BROWSER_DOWNLOAD is set; skipping screenshot execution by policy.",
                "Unset PLAYWRIGHT_SKIP_BROWSER_DOWNLOAD to run screenshot capture.",
                "Run: playwright install && ui-smoke",
            )
            self._conclude(Outcome.SKIP_DOWNLOAD, {
                "reason": "PLAYWRIGHT_SKIP_BROWSER_DOWNLOAD",
                "attempted": record.install_attempt,
                "missing_browsers": record.missing_browsers,
            })
            return

        async with factory() as playwright:
            async with self.server_factory(self.recorder) as server:
                if not server.selected_host:
                    raise ServerUnreachableError(list(config.server.hosts), config.server.port)

                if not await self._ensure_binaries(playwright):
                    return

                base_url = server.url_for(server.selected_host)
                record.base_url = base_url

                candidates = build_candidates(playwright, config)
                async with BrowserSession(candidates, self.recorder, sleep=self._sleep, logger=self.logger) as session:
                    await session.run_sanity()
                    try:
                        await session.run_app_check(base_url)
                    except Exception:
                        self.recorder.flush()
                        raise

            self._conclude(Outcome.SUCCESS, {
                "screenshot": record.screenshot,
                "sanity": record.sanity_screenshot,
                "trace": record.trace,
                "strategy": record.navigation_strategy_used.value if record.navigation_strategy_used else None,
            })

    async def _ensure_binaries(self, playwright: Any) -> bool:
        """Check, install on demand, re-check. Concludes the run when it returns False."""
        config = self.config
        record = self.recorder.record
        targets = config.browser_targets

        if check_binaries(playwright, self.recorder, targets):
            return True

        self.logger.warning("Playwright browsers not installed. Run: playwright install")
        install = await self.installer(
            self.recorder,
            targets,
            with_deps=config.policy.ci,
            timeout=config.browser.install_timeout,
        )

        if not install.ok:
            self.recorder.add_instructions(
                "Playwright browsers not installed. Run: playwright install",
                BLOCKED_NOTE if install.blocked else "Browser install command failed for a non-network reason.",
            )
            if install.blocked:
                self._conclude(Outcome.INSTALL_BLOCKED, {
                    "attempted": record.install_attempt,
                    "missing_browsers": record.missing_browsers,
                    "strict": config.policy.strict,
                    "ci": config.policy.ci,
                })
                return False

            details: Dict[str, Any] = {
                "attempted": record.install_attempt,
                "missing_browsers": record.missing_browsers,
            }
            if self._ci_warn_only:
                details["reason"] = "ci-default-warn-only"
            self._conclude(Outcome.BINARIES_MISSING, details)
            return False

        if check_binaries(playwright, self.recorder, targets):
            return True

        self.recorder.add_instructions("Playwright browsers not installed. Run: playwright install")
        details = {"missing_browsers": record.missing_browsers}
        if self._ci_warn_only:
            details["reason"] = "ci-default-warn-only-after-install"
        self._conclude(Outcome.BINARIES_MISSING, details)
        return False

    def _conclude_failure(self, exc: Exception) -> None:
        """Map an exception that escaped the phases onto the policy table."""
        record = self.recorder.record
        record.error = record.error or error_text(exc)

        if isinstance(exc, ServerUnreachableError):
            record.failure_classification = "connectivity-failure"
            self.logger.error(f"UI smoke failed: {exc.message}")
            self._conclude(Outcome.SERVER_UNREACHABLE, {
                "error": exc.message,
                "hosts": exc.hosts,
                "port": exc.port,
            }, record.failure_classification)
            return

        if isinstance(exc, BrowserLaunchError):
            self.recorder.add_instructions(
                "Browser launch failed in this environment.",
                "If this is a restricted sandbox, run locally:",
                *(f"  {step}" for step in LOCAL_RERUN_STEPS),
                f"Expected screenshot path: {record.screenshot_target}",
            )
            self.logger.error(f"UI smoke failed: {exc.message}")
            self._conclude(Outcome.LAUNCH_FAILED, {
                "message": exc.message,
                "browser_launch_errors": exc.errors,
            })
            return

        classification = record.failure_classification or classify_failure(exc)
        record.failure_classification = classification
        if is_infrastructure_failure(classification):
            self.logger.warning(f"UI smoke best-effort skip: {classification}")
            self.logger.warning("To force screenshot locally: " + " && ".join(LOCAL_RERUN_STEPS))
            details = {"reason": classification, "error": record.error, "strict": self.config.policy.strict}
        else:
            self.logger.error(f"UI smoke failed: {classification}")
            self.logger.error(record.error)
            details = {"error": record.error, "classification": classification}
        self._conclude(Outcome.RUN_FAILED, details, classification)

    def finalize(self) -> None:
        """Guarantee a conclusion, persist the record and print the summary line."""
        if not self.recorder.concluded:
            self.recorder.conclude(
                Verdict(RunResult.FAILED, TEST_FAILURE, 1),
                {"note": "finalize-without-early-conclusion"},
            )
        try:
            self.recorder.flush()
        except OSError as exc:
            self.logger.error(f"Failed to write diagnostics: {exc}")
        finally:
            self.recorder.emit_summary()


async def run_from_env(config: SmokeConfig, logger: logging.Logger) -> int:
    """Entry point shared by the CLI script."""
    install_process_diagnostics(logger)
    if config.verbose:
        logger.info(f"App root: {config.artifacts.app_root}")
        logger.info(f"Artifacts: {config.artifacts.artifacts_dir}")
        logger.info(f"CI={config.policy.ci} strict={config.policy.strict} allow_http={config.navigation.allow_http}")

    runner = UISmokeRunner(config=config, logger=logger)
    return await runner.run()


def main() -> None:
    """Main entry point."""
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    logger = logging.getLogger("ui_smoke")

    try:
        config = load_config()
    except (SmokeError, ValueError) as exc:
        logger.error(f"Failed to load config: {exc}")
        print(json.dumps(summary_payload(RunResult.FAILED.value, TEST_FAILURE, {"error": str(exc)})))
        sys.exit(1)

    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        for handler in logging.getLogger().handlers:
            handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))

    try:
        exit_code = asyncio.run(run_from_env(config, logger))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
