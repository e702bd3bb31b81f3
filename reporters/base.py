"""Base reporter interface for smoke diagnostics."""
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

from smoke_types import DiagnosticsRecord


class ReportFormat(str, Enum):
    """Supported report formats."""
    JSON = "json"
    JUNIT = "junit"
    ALL = "all"


class BaseReporter(ABC):
    """Abstract base class for report generators."""

    @abstractmethod
    def generate(self, record: DiagnosticsRecord, output_dir: Path) -> Path:
        """
        Write a report for the run.

        Args:
            record: Diagnostics collected for the run
            output_dir: Directory to write report to

        Returns:
            Path to the generated report file
        """
        pass

    @property
    @abstractmethod
    def format(self) -> ReportFormat:
        """Return the report format this reporter generates."""
        pass


def reporters_for(output_format: str) -> list[BaseReporter]:
    """Reporters to run for a configured format; JSON is always written."""
    from reporters.json_reporter import JSONReporter
    from reporters.junit import JUnitReporter

    selected: list[BaseReporter] = [JSONReporter()]
    if output_format in (ReportFormat.JUNIT, ReportFormat.ALL, "junit", "all"):
        selected.append(JUnitReporter())
    return selected
