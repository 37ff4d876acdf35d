"""Hook dispatcher correlating runtime events with the logical source model.

The instrumentation layer calls five hooks on one dispatcher instance:

* ``before_method_hook`` / ``after_method_hook`` around every hooked method,
  of which only the root test method opens and closes a run session;
* ``method_error_hook`` when the root method raises, before its after hook;
* ``before_code_line_hook`` / ``after_code_line_hook`` around every hooked
  statement.

Events are expected on one thread in strict call/return nesting. Use one
dispatcher per concurrently running root method.
"""
from __future__ import annotations

import logging
import time
import traceback
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Sequence

from runresults.capture import CaptureSink, write_capture
from runresults.decision import decide_capture
from runresults.errors import (
    CodeLineKeyNotFoundError,
    DuplicateCodeLineKeyError,
    EmptyStackError,
    RootMethodConflictError,
)
from runresults.events import LINE_CAPTURE, ROOT_BEGIN, ROOT_END, RUN_FAILURE, EventLogger
from runresults.persistence import JsonResultWriter, run_result_path
from runresults.results import (
    INSTANT_EXECUTION_TIME,
    LineScreenCapture,
    RootMethodRunResult,
    RunFailure,
    StackLine,
)
from runresults.srctree import LogicalMethod, SourceModel, generate_method_key
from runresults.stack_lines import (
    FrameRewrite,
    NativeFrame,
    compose,
    current_native_stack,
    exception_native_stack,
    format_stack_lines,
    get_stack_lines,
    pinpoint,
    relabel_method,
)

LOGGER = logging.getLogger(__name__)


@dataclass
class MethodMemo:
    """Remembers the last method lookup, including misses."""

    last_key: str | None = None
    last_method: LogicalMethod | None = None

    def get(self, key: str, loader: Callable[[str], LogicalMethod | None]) -> LogicalMethod | None:
        if key != self.last_key:
            self.last_method = loader(key)
            self.last_key = key
        return self.last_method


@dataclass
class RunSession:
    result: RootMethodRunResult
    actual_root_method_name: str
    start_time: float
    capture_no: int = 1
    step_label_start_time: float | None = None
    pending_line_timers: Dict[str, float] = field(default_factory=dict)
    method_memo: MethodMemo = field(default_factory=MethodMemo)
    token: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def root_method(self) -> LogicalMethod:
        return self.result.root_method

    def owns(self, class_qualified_name: str, method_simple_name: str, token: str | None) -> bool:
        if token is not None and token != self.token:
            return False
        return (
            self.root_method.test_class_key == class_qualified_name
            and self.root_method.simple_name == method_simple_name
        )


class HookDispatcher:
    """Tracks one root method run and writes its result when it ends."""

    def __init__(
        self,
        src_tree: SourceModel,
        run_results_root: Path,
        captures_root: Path,
        capture_sink: CaptureSink,
        result_writer: JsonResultWriter | None = None,
        event_logger: EventLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
        stack_provider: Callable[[], List[NativeFrame]] = current_native_stack,
        error_stack_provider: Callable[[BaseException], List[NativeFrame]] = exception_native_stack,
    ) -> None:
        self.src_tree = src_tree
        self.run_results_root = run_results_root
        self.captures_root = captures_root
        self.capture_sink = capture_sink
        self.result_writer = result_writer or JsonResultWriter()
        self.event_logger = event_logger
        self._clock = clock
        self._stack_provider = stack_provider
        self._error_stack_provider = error_stack_provider
        self._session: RunSession | None = None

    @property
    def session(self) -> RunSession | None:
        return self._session

    def before_method_hook(
        self, class_qualified_name: str, method_simple_name: str, actual_method_simple_name: str
    ) -> str | None:
        """Open a run session when the hooked method is a root method."""
        if self._session is not None:
            return None  # nested call inside the running root method

        root_methods = self.src_tree.lookup_root_methods_by_name(
            class_qualified_name, method_simple_name
        )
        if not root_methods:
            return None
        if len(root_methods) > 1:
            message = (
                f"{len(root_methods)} root methods match "
                f"{class_qualified_name}.{method_simple_name}"
            )
            LOGGER.error(message)
            raise RootMethodConflictError(message)
        root_method = root_methods[0]

        LOGGER.info("before_method_hook: %s", method_simple_name)
        self._session = RunSession(
            result=RootMethodRunResult(root_method=root_method),
            actual_root_method_name=actual_method_simple_name,
            start_time=self._clock(),
        )
        self._log_event(ROOT_BEGIN, root_method.key)
        return self._session.token

    def method_error_hook(
        self,
        class_qualified_name: str,
        method_simple_name: str,
        error: BaseException,
        token: str | None = None,
    ) -> None:
        """Record a failure of the root method and capture the screen at once."""
        session = self._session
        if session is None or not session.owns(class_qualified_name, method_simple_name, token):
            return

        failure = RunFailure(
            message=f"{_exception_name(error)}: {error}",
            stack_trace="".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
        )
        rewrite = relabel_method(
            session.actual_root_method_name, session.root_method.simple_name
        )
        stack_lines = get_stack_lines(self.src_tree, self._error_stack_provider(error), rewrite)
        failure.stack_lines.extend(stack_lines)
        session.result.add_run_failure(failure)
        LOGGER.info("method_error_hook: %s", failure.message)
        self._log_event(RUN_FAILURE, failure.message)

        self._capture_for_stack_lines([stack_lines], [INSTANT_EXECUTION_TIME])

    def after_method_hook(
        self, class_qualified_name: str, method_simple_name: str, token: str | None = None
    ) -> Path | None:
        """Close the session and write the run result document."""
        session = self._session
        if session is None or not session.owns(class_qualified_name, method_simple_name, token):
            return None

        session.result.finish(self._elapsed_ms(session.start_time))
        LOGGER.info(
            "after_method_hook: %s (%d ms)", method_simple_name, session.result.execution_time
        )
        destination = run_result_path(
            self.run_results_root, class_qualified_name, method_simple_name
        )
        try:
            self.result_writer.write(session.result.to_dict(), destination)
            self._log_event(ROOT_END, str(destination))
        finally:
            self._session = None
        return destination

    def before_code_line_hook(
        self,
        class_qualified_name: str,
        method_simple_name: str,
        actual_method_simple_name: str,
        arg_classes: str | None,
        line: int,
        actual_line: int,
    ) -> None:
        session = self._session
        if session is None:
            return
        method = self._hooked_method(session, class_qualified_name, method_simple_name, arg_classes)
        if method is None:
            return
        LOGGER.debug(
            "before_code_line_hook: %s: %d(%d)", method_simple_name, line, actual_line
        )

        # the native stack is not reliable yet at the first line of a method,
        # so the statement is resolved from the hooked line directly
        index = method.code_line_index(line)
        if index is not None and (method.is_step_label(index) or method.is_step_label(index - 1)):
            session.step_label_start_time = self._clock()

        key = self._code_line_key(class_qualified_name, method_simple_name, arg_classes, line)
        if key in session.pending_line_timers:
            LOGGER.error("Code line key is duplicated: %s", key)
            raise DuplicateCodeLineKeyError(f"code line key is duplicated: {key}")
        session.pending_line_timers[key] = self._clock()

    def after_code_line_hook(
        self,
        class_qualified_name: str,
        method_simple_name: str,
        actual_method_simple_name: str,
        arg_classes: str | None,
        line: int,
        actual_line: int,
    ) -> Path | None:
        """Consume the line timer and take a screenshot if the line asks for one."""
        session = self._session
        if session is None:
            return None
        method = self._hooked_method(session, class_qualified_name, method_simple_name, arg_classes)
        if method is None:
            return None
        LOGGER.debug(
            "after_code_line_hook: %s: %d(%d)", method_simple_name, line, actual_line
        )

        key = self._code_line_key(class_qualified_name, method_simple_name, arg_classes, line)
        start_time = session.pending_line_timers.pop(key, None)
        if start_time is None:
            LOGGER.error("Code line key not found: %s", key)
            raise CodeLineKeyNotFoundError(f"code line key not found: {key}")
        execution_time = self._elapsed_ms(start_time)

        stack_lines = self._code_line_stack_lines(
            session, method_simple_name, actual_method_simple_name, line, actual_line
        )
        step_label_time = (
            self._elapsed_ms(session.step_label_start_time)
            if session.step_label_start_time is not None
            else INSTANT_EXECUTION_TIME
        )
        decision = decide_capture(method, stack_lines, execution_time, step_label_time)
        if not decision.should_capture:
            return None

        capture_file = self._capture_for_stack_lines(
            decision.stack_lines_list, decision.execution_times
        )
        if capture_file is not None:
            if decision.captures_this_line:
                LOGGER.info("after_code_line_hook: line capture %s", capture_file.name)
            if decision.captures_step_label:
                LOGGER.info("after_code_line_hook: step label capture %s", capture_file.name)
        return capture_file

    def _hooked_method(
        self,
        session: RunSession,
        class_qualified_name: str,
        method_simple_name: str,
        arg_classes: str | None,
    ) -> LogicalMethod | None:
        key = generate_method_key(class_qualified_name, method_simple_name, arg_classes)
        return session.method_memo.get(key, self.src_tree.lookup_method_by_key)

    def _code_line_key(
        self,
        class_qualified_name: str,
        method_simple_name: str,
        arg_classes: str | None,
        line: int,
    ) -> str:
        # stack depth separates recursive calls hitting the same line
        depth = len(self._stack_provider())
        return f"{class_qualified_name}_{method_simple_name}_{arg_classes}_{line}_{depth}"

    def _code_line_stack_lines(
        self,
        session: RunSession,
        method_simple_name: str,
        actual_method_simple_name: str,
        line: int,
        actual_line: int,
    ) -> List[StackLine]:
        rewrite: FrameRewrite = compose(
            pinpoint(actual_method_simple_name, actual_line, method_simple_name, line),
            relabel_method(session.actual_root_method_name, session.root_method.simple_name),
        )
        stack_lines = get_stack_lines(self.src_tree, self._stack_provider(), rewrite)
        if not stack_lines:
            raise EmptyStackError(
                f"no tracked frame found for {method_simple_name}:{line}"
            )
        LOGGER.debug("Logical stack: %s", format_stack_lines(stack_lines))
        return stack_lines

    def _capture_for_stack_lines(
        self, stack_lines_list: Sequence[List[StackLine]], execution_times: Sequence[int]
    ) -> Path | None:
        """Take one screenshot shared by every stack in ``stack_lines_list``."""
        if not stack_lines_list:
            raise ValueError("empty stack lines list")
        if len(stack_lines_list) != len(execution_times):
            raise ValueError("stack lines and execution times differ in size")
        session = self._session
        assert session is not None

        data = self.capture_sink.capture_screen()
        if data is None:
            LOGGER.debug("No screen data available; capture skipped")
            return None
        root = session.root_method
        capture_file = write_capture(
            self.captures_root, root.test_class_key, root.simple_name, session.capture_no, data
        )
        session.capture_no += 1
        for stack_lines, execution_time in zip(stack_lines_list, execution_times):
            session.result.add_line_screen_capture(
                LineScreenCapture(
                    path=capture_file,
                    stack_lines=list(stack_lines),
                    execution_time=execution_time,
                )
            )
        self._log_event(LINE_CAPTURE, str(capture_file))
        return capture_file

    def _elapsed_ms(self, since: float) -> int:
        return int((self._clock() - since) * 1000)

    def _log_event(self, event_type: str, message: str) -> None:
        if self.event_logger and self._session is not None:
            self.event_logger.log(event_type, self._session.token, message)


def _exception_name(error: BaseException) -> str:
    error_type = type(error)
    if error_type.__module__ == "builtins":
        return error_type.__qualname__
    return f"{error_type.__module__}.{error_type.__qualname__}"
