"""Unit tests for reporters module."""
from __future__ import annotations

import json
from pathlib import Path
from xml.etree import ElementTree

import pytest

from reporters import JSONReporter, JUnitReporter, ReportFormat
from reporters.base import reporters_for
from smoke_types import DiagnosticsRecord, NavigationStrategy, RunResult


@pytest.fixture
def sample_record(temp_dir: Path) -> DiagnosticsRecord:
    """A finished, passing run."""
    artifacts = temp_dir / "artifacts"
    record = DiagnosticsRecord(
        cwd=str(temp_dir),
        screenshot_target=str(artifacts / "screenshot.png"),
        sanity_target=str(artifacts / "sanity.png"),
        trace_target=str(artifacts / "trace.zip"),
        server_log_target=str(artifacts / "server.log"),
        started_at="2026-10-18T10:00:00+00:00",
        finished_at="2026-10-18T10:00:04.500000+00:00",
        result=RunResult.PASSED,
        classification="success",
        browser_used="webkit",
        navigation_strategy_used=NavigationStrategy.FILE,
        playwright_version="1.48.0",
        screenshot=str(artifacts / "screenshot.png"),
    )
    record.binary_checks = [
        {"browser": "chromium", "executable_path": "/pw/chrome", "exists": True},
        {"browser": "webkit", "executable_path": "/pw/pw_run.sh", "exists": True},
    ]
    return record


class TestJSONReporter:
    """Tests for JSON reporter."""

    def test_generates_valid_json(self, temp_dir: Path, sample_record: DiagnosticsRecord):
        reporter = JSONReporter()
        report_path = reporter.generate(sample_record, temp_dir)

        assert report_path.exists()
        assert report_path.name == "diagnostics.json"

        data = json.loads(report_path.read_text())
        assert data["result"] == "passed"
        assert data["classification"] == "success"
        assert data["navigation_strategy_used"] == "FILE"

    def test_json_structure(self, temp_dir: Path, sample_record: DiagnosticsRecord):
        data = json.loads(JSONReporter().generate(sample_record, temp_dir).read_text())

        for key in (
            "console",
            "page_errors",
            "request_failed",
            "server_health_checks",
            "navigation_attempts",
            "navigation_fallbacks",
            "browser_attempts",
            "browser_launch_errors",
            "binary_checks",
            "instructions",
        ):
            assert data[key] is not None
        assert data["missing_browsers"] == []

    def test_missing_browsers_derived(self, temp_dir: Path, sample_record: DiagnosticsRecord):
        sample_record.binary_checks[1]["exists"] = False
        data = json.loads(JSONReporter().generate(sample_record, temp_dir).read_text())
        assert data["missing_browsers"] == [{"browser": "webkit", "executable_path": "/pw/pw_run.sh"}]

    def test_raw_error_preserved(self, temp_dir: Path, sample_record: DiagnosticsRecord):
        sample_record.error = "Traceback (most recent call last):\n  ...\nRuntimeError: Page crashed"
        data = json.loads(JSONReporter().generate(sample_record, temp_dir).read_text())
        assert data["error"] == sample_record.error

    def test_creates_output_dir(self, temp_dir: Path, sample_record: DiagnosticsRecord):
        output_dir = temp_dir / "nested" / "ui-smoke"
        assert JSONReporter().generate(sample_record, output_dir).exists()


class TestJUnitReporter:
    """Tests for JUnit XML reporter."""

    def test_generates_valid_xml(self, temp_dir: Path, sample_record: DiagnosticsRecord):
        reporter = JUnitReporter()
        report_path = reporter.generate(sample_record, temp_dir)

        assert report_path.exists()
        assert report_path.suffix == ".xml"

        tree = ElementTree.parse(report_path)
        root = tree.getroot()
        assert root.tag == "testsuite"

    def test_xml_attributes(self, temp_dir: Path, sample_record: DiagnosticsRecord):
        root = ElementTree.parse(JUnitReporter().generate(sample_record, temp_dir)).getroot()

        assert root.get("name") == "UI Smoke"
        assert root.get("tests") == "1"
        assert root.get("failures") == "0"
        assert root.get("skipped") == "0"
        assert root.get("time") == "4.500"
        testcase = root.find("testcase")
        assert testcase.get("classname") == "ui.smoke"
        props = {p.get("name"): p.get("value") for p in root.iter("property")}
        assert props["playwright_version"] == "1.48.0"

    def test_failed_run_has_failure_element(self, temp_dir: Path, sample_record: DiagnosticsRecord):
        sample_record.result = RunResult.FAILED
        sample_record.classification = "test-failure"
        sample_record.failure_classification = "application-failure"
        sample_record.error = "page.click: Timeout 30000ms exceeded ]]> <oops>"

        root = ElementTree.parse(JUnitReporter().generate(sample_record, temp_dir)).getroot()

        assert root.get("failures") == "1"
        failure = root.find("testcase/failure")
        assert failure is not None
        assert failure.get("message") == "test-failure"
        assert "]]> <oops>" in failure.text

    def test_skipped_run(self, temp_dir: Path, sample_record: DiagnosticsRecord):
        sample_record.result = RunResult.SKIPPED
        sample_record.classification = "binary-installation-blocked"
        sample_record.instructions = ["Run: playwright install"]

        root = ElementTree.parse(JUnitReporter().generate(sample_record, temp_dir)).getroot()

        assert root.get("skipped") == "1"
        assert root.find("testcase/skipped").get("message") == "binary-installation-blocked"
        assert "playwright install" in root.find("testcase/system-out").text


class TestReportersFor:
    """Tests for reporter selection."""

    @pytest.mark.parametrize("fmt,expected", [
        ("json", [ReportFormat.JSON]),
        ("junit", [ReportFormat.JSON, ReportFormat.JUNIT]),
        ("all", [ReportFormat.JSON, ReportFormat.JUNIT]),
    ])
    def test_selection(self, fmt, expected):
        assert [r.format for r in reporters_for(fmt)] == expected
