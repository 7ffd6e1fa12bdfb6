"""Structured logging and observability helpers.

Records are scoped by pipeline operation, platform and step, and can be echoed
live through a sink (the CLI prints them to stderr) or exported as JSON lines.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

LogSink = Callable[[dict[str, Any]], None]


@dataclass(slots=True)
class StructuredLogger:
    records: list[dict[str, Any]] = field(default_factory=list)
    sink: LogSink | None = None

    def log(
        self,
        *,
        operation: str,
        platform: str | None,
        step: str | None,
        message: str,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "platform": platform,
            "step": step,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)
        if self.sink is not None:
            self.sink(record)

    def records_for_platform(self, platform: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("platform") == platform]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path
