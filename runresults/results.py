"""Run result records assembled for one root method execution."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from runresults.srctree import LogicalMethod

# execution time recorded for failure captures, which have no duration
INSTANT_EXECUTION_TIME = -1


@dataclass
class StackLine:
    """One logical frame bound to a statement of a tracked method."""

    method: LogicalMethod
    code_body_index: int
    line: int

    def copy(self) -> "StackLine":
        return StackLine(method=self.method, code_body_index=self.code_body_index, line=self.line)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method_key": self.method.key,
            "code_body_index": self.code_body_index,
            "line": self.line,
        }


@dataclass
class LineScreenCapture:
    path: Path
    stack_lines: List[StackLine] = field(default_factory=list)
    execution_time: int = INSTANT_EXECUTION_TIME

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "stack_lines": [line.to_dict() for line in self.stack_lines],
            "execution_time": self.execution_time,
        }


@dataclass
class RunFailure:
    message: str
    stack_trace: str
    stack_lines: List[StackLine] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "stack_trace": self.stack_trace,
            "stack_lines": [line.to_dict() for line in self.stack_lines],
        }


@dataclass
class RootMethodRunResult:
    """Failures and captures of one root method run, in arrival order."""

    root_method: LogicalMethod
    execution_time: int | None = None
    run_failures: List[RunFailure] = field(default_factory=list)
    line_screen_captures: List[LineScreenCapture] = field(default_factory=list)

    @property
    def root_method_key(self) -> str:
        return self.root_method.key

    def add_run_failure(self, failure: RunFailure) -> None:
        self.run_failures.append(failure)

    def add_line_screen_capture(self, capture: LineScreenCapture) -> None:
        self.line_screen_captures.append(capture)

    def finish(self, execution_time: int) -> None:
        if self.execution_time is not None:
            raise ValueError("execution time already set")
        self.execution_time = execution_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root_method_key": self.root_method_key,
            "execution_time": self.execution_time,
            "run_failures": [failure.to_dict() for failure in self.run_failures],
            "line_screen_captures": [
                capture.to_dict() for capture in self.line_screen_captures
            ],
        }
