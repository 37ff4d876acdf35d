"""Append-only log of hook events for root method runs."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

ROOT_BEGIN = "root_begin"
ROOT_END = "root_end"
RUN_FAILURE = "run_failure"
LINE_CAPTURE = "line_capture"


@dataclass(frozen=True)
class HookEvent:
    timestamp: str
    event_type: str
    session: str
    message: str


class EventLogger:
    """Tab-separated event log shared by every run of one dispatcher."""

    HEADER = "# Run Result Hook Events\n"

    def __init__(self, log_path: Path):
        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.log_path.exists():
            self.log_path.write_text(self.HEADER, encoding="utf-8")
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}

    def log(self, event_type: str, session: str, message: str | None = None) -> None:
        timestamp = datetime.now(timezone.utc).isoformat()
        cleaned = (message or "").replace("\t", " ").replace("\n", " ")
        line = f"{timestamp}\t{event_type}\t{session}\t{cleaned}\n"
        with self._lock:
            with self.log_path.open("a", encoding="utf-8") as handle:
                handle.write(line)
            self._counts[event_type] = self._counts.get(event_type, 0) + 1

    def count(self, event_type: str) -> int:
        return self._counts.get(event_type, 0)

    def read_events(self) -> List[HookEvent]:
        events: List[HookEvent] = []
        for raw in self.log_path.read_text(encoding="utf-8").splitlines():
            if not raw or raw.startswith("#"):
                continue
            timestamp, event_type, session, message = raw.split("\t", 3)
            events.append(HookEvent(timestamp, event_type, session, message))
        return events
