"""Run-scoped diagnostics recorder.

One ``DiagnosticsRecorder`` is created per smoke run and handed to every
phase. Phases append timestamped events; the conclusion is recorded exactly
once (later calls are ignored) and the record is then persisted through the
reporters.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import SmokeConfig
from reporters.base import reporters_for
from smoke_types import DiagnosticsRecord, RunResult, Verdict, now_iso

INSTALL_ACTION = "npx playwright install"


def summary_payload(status: str, classification: str, details: Dict[str, Any]) -> Dict[str, Any]:
    """The single machine-readable line external CI parses."""
    return {
        "ui_smoke": status,
        "classification": classification,
        "action": INSTALL_ACTION,
        "details": details,
    }


class DiagnosticsRecorder:
    """Owns the DiagnosticsRecord for a single run."""

    def __init__(self, config: SmokeConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger("diagnostics")
        artifacts = config.artifacts
        self.record = DiagnosticsRecord(
            cwd=str(artifacts.app_root),
            screenshot_target=str(artifacts.screenshot_path),
            sanity_target=str(artifacts.sanity_path),
            trace_target=str(artifacts.trace_path),
            server_log_target=str(artifacts.server_log_path),
            ci=config.policy.ci,
            strict=config.policy.strict,
            env_skip_browser_download=config.policy.skip_browser_download,
            navigation_http_opt_in=config.navigation.allow_http,
        )
        self.verdict: Optional[Verdict] = None
        self.details: Dict[str, Any] = {}
        self._summary_emitted = False

    # ─────────────────────────────────────────────────────────────────────────
    # Event logging
    # ─────────────────────────────────────────────────────────────────────────

    def log_event(self, log_name: str, **fields: Any) -> Dict[str, Any]:
        """Append a timestamped entry to one of the record's event lists."""
        events: List[Dict[str, Any]] = getattr(self.record, log_name)
        entry = {"ts": now_iso(), **fields}
        events.append(entry)
        return entry

    def add_instructions(self, *steps: str) -> None:
        self.record.instructions.extend(steps)

    # ─────────────────────────────────────────────────────────────────────────
    # Conclusion
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def concluded(self) -> bool:
        return self.verdict is not None

    def conclude(self, verdict: Verdict, details: Optional[Dict[str, Any]] = None) -> bool:
        """Record the terminal verdict. Returns False if one was already recorded."""
        if self.concluded:
            self.logger.debug(
                f"Ignoring second conclusion {verdict.status.value}/{verdict.classification}; "
                f"already {self.verdict.status.value}/{self.verdict.classification}"
            )
            return False
        if not verdict.status.is_terminal:
            raise ValueError("A conclusion must use a terminal status")

        self.verdict = verdict
        self.details = dict(details or {})
        self.record.result = verdict.status
        self.record.classification = verdict.classification
        self.record.finished_at = now_iso()
        return True

    @property
    def exit_code(self) -> int:
        return self.verdict.exit_code if self.verdict else 1

    def summary_line(self) -> Dict[str, Any]:
        status = self.record.result.value if self.concluded else RunResult.FAILED.value
        return summary_payload(status, self.record.classification, self.details)

    # ─────────────────────────────────────────────────────────────────────────
    # Persistence
    # ─────────────────────────────────────────────────────────────────────────

    def flush(self) -> List[Path]:
        """Write the configured reports; safe to call on intermediate failures."""
        output_dir = self.config.artifacts.artifacts_dir
        written = []
        for reporter in reporters_for(self.config.artifacts.report_format):
            path = reporter.generate(self.record, output_dir)
            self.logger.debug(f"{reporter.format.value} report: {path}")
            written.append(path)
        return written

    def emit_summary(self) -> bool:
        """Print the summary line to stdout once per run."""
        if self._summary_emitted:
            return False
        self._summary_emitted = True
        print(json.dumps(self.summary_line(), default=str), flush=True)
        return True
