"""JUnit XML verdict for CI integration."""
from __future__ import annotations

import html
from datetime import datetime
from pathlib import Path
from typing import Optional

from reporters.base import BaseReporter, ReportFormat
from smoke_types import DiagnosticsRecord, RunResult

JUNIT_FILENAME = "junit.xml"


class JUnitReporter(BaseReporter):
    """Report the smoke verdict as a one-test JUnit suite."""

    @property
    def format(self) -> ReportFormat:
        return ReportFormat.JUNIT

    def _escape_xml(self, text: str) -> str:
        """Escape special XML characters."""
        return html.escape(str(text), quote=True)

    def _cdata(self, text: str) -> str:
        """Split any CDATA terminator so error text cannot close the section."""
        return str(text).replace("]]>", "]]]]><![CDATA[>")

    def _duration(self, record: DiagnosticsRecord) -> float:
        if not record.finished_at:
            return 0.0
        started = datetime.fromisoformat(record.started_at)
        finished = datetime.fromisoformat(record.finished_at)
        return max(0.0, (finished - started).total_seconds())

    def _build_testcase_xml(self, record: DiagnosticsRecord) -> str:
        lines = []
        time_sec = f"{self._duration(record):.3f}"
        lines.append(f'    <testcase classname="ui.smoke" name="ui-smoke" time="{time_sec}">')

        message = self._escape_xml(record.classification)
        if record.result is RunResult.FAILED:
            lines.append(f'      <failure message="{message}" type="{message}"><![CDATA[')
            lines.append(f"Classification: {record.classification}")
            if record.failure_classification:
                lines.append(f"Failure class: {record.failure_classification}")
            if record.error:
                lines.append("")
                lines.append(self._cdata(record.error))
            lines.append("]]></failure>")
        elif record.result is RunResult.SKIPPED:
            lines.append(f'      <skipped message="{message}"/>')

        lines.append("      <system-out><![CDATA[")
        lines.append(f"Browser: {record.browser_used or 'N/A'}")
        strategy = record.navigation_strategy_used
        lines.append(f"Navigation strategy: {strategy.value if strategy else 'N/A'}")
        lines.append(f"Screenshot: {record.screenshot or 'N/A'}")
        for step in record.instructions:
            lines.append(self._cdata(f"  - {step}"))
        lines.append("]]></system-out>")
        lines.append("    </testcase>")
        return "\n".join(lines)

    def generate(self, record: DiagnosticsRecord, output_dir: Path) -> Path:
        """Write junit.xml for the run."""
        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / JUNIT_FILENAME

        failures = 1 if record.result is RunResult.FAILED else 0
        skipped = 1 if record.result is RunResult.SKIPPED else 0

        lines = ['<?xml version="1.0" encoding="UTF-8"?>']
        lines.append(
            f'<testsuite name="UI Smoke" '
            f'tests="1" '
            f'failures="{failures}" '
            f'errors="0" '
            f'skipped="{skipped}" '
            f'time="{self._duration(record):.3f}" '
            f'timestamp="{self._escape_xml(record.started_at)}">'
        )
        lines.append("  <properties>")
        lines.append(f'    <property name="ci" value="{str(record.ci).lower()}"/>')
        lines.append(f'    <property name="strict" value="{str(record.strict).lower()}"/>')
        version: Optional[str] = record.playwright_version
        lines.append(f'    <property name="playwright_version" value="{self._escape_xml(version or "unknown")}"/>')
        lines.append("  </properties>")
        lines.append(self._build_testcase_xml(record))
        lines.append("</testsuite>")

        target.write_text("\n".join(lines), encoding="utf-8")
        return target
