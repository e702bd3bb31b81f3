"""JSON diagnostics document for a smoke run."""
from __future__ import annotations

import json
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from reporters.base import BaseReporter, ReportFormat
from smoke_types import DiagnosticsRecord

DIAGNOSTICS_FILENAME = "diagnostics.json"


def _jsonable(value: Any) -> Any:
    """Unwrap enums and paths left inside the record."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class JSONReporter(BaseReporter):
    """Generate the human-readable diagnostics document."""

    @property
    def format(self) -> ReportFormat:
        return ReportFormat.JSON

    def record_to_dict(self, record: DiagnosticsRecord) -> Dict[str, Any]:
        """Convert the record to a JSON-serializable dict."""
        data = _jsonable(asdict(record))
        data["missing_browsers"] = record.missing_browsers
        return data

    def generate(self, record: DiagnosticsRecord, output_dir: Path) -> Path:
        """Write diagnostics.json, replacing any earlier flush of this run."""
        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / DIAGNOSTICS_FILENAME
        target.write_text(
            json.dumps(self.record_to_dict(record), indent=2, default=str),
            encoding="utf-8",
        )
        return target
