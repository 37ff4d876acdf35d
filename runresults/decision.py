"""Screenshot decisions for completed code lines."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from runresults.errors import UnresolvedTestStepError
from runresults.results import StackLine
from runresults.srctree import (
    CaptureStyle,
    CodeLine,
    Field,
    LogicalMethod,
    StepLabel,
    StepMarker,
    SubMethodInvoke,
    VarAssign,
)

LOGGER = logging.getLogger(__name__)

LINE_CAPTURE_STYLES = {CaptureStyle.THIS_LINE, CaptureStyle.STEP_IN}
STEP_IN_STYLES = {CaptureStyle.STEP_IN, CaptureStyle.STEP_IN_ONLY}


@dataclass
class CaptureDecision:
    """Stacks and execution times that share one screenshot."""

    captures_this_line: bool = False
    captures_step_label: bool = False
    stack_lines_list: List[List[StackLine]] = field(default_factory=list)
    execution_times: List[int] = field(default_factory=list)

    @property
    def should_capture(self) -> bool:
        return bool(self.stack_lines_list)


def captures_this_line(code_line: CodeLine) -> bool:
    code = code_line.code
    if isinstance(code, SubMethodInvoke):
        return code.sub_method.capture_style in LINE_CAPTURE_STYLES
    if isinstance(code, VarAssign):
        if isinstance(code.value, SubMethodInvoke):
            return code.value.sub_method.capture_style in LINE_CAPTURE_STYLES
        return isinstance(code.variable, Field)
    if isinstance(code, StepMarker):
        raise UnresolvedTestStepError(
            f"test step at line {code_line.start_line} must be resolved before run time"
        )
    return False


def step_label_index_if_last_code(method: LogicalMethod, code_line_index: int) -> int | None:
    """Index of the step label whose block ends at ``code_line_index``.

    Returns None unless the line is the method's last statement or is
    followed by another step label.
    """
    body = method.code_body
    if code_line_index < len(body) - 1 and not method.is_step_label(code_line_index + 1):
        return None
    for index in range(code_line_index, -1, -1):
        if isinstance(body[index].code, StepLabel):
            return index
    return None


def can_step_in_capture_to(stack_lines: Sequence[StackLine]) -> bool:
    # the outermost (root) frame always counts as a step-in frame
    for stack_line in stack_lines[:-1]:
        if stack_line.method.capture_style not in STEP_IN_STYLES:
            return False
    return True


def step_label_stack_lines(
    stack_lines: Sequence[StackLine], method: LogicalMethod, label_index: int
) -> List[StackLine]:
    result = [stack_line.copy() for stack_line in stack_lines]
    top = result[0]
    top.line = method.code_body[label_index].start_line
    top.code_body_index = label_index
    return result


def decide_capture(
    hooked_method: LogicalMethod,
    stack_lines: List[StackLine],
    execution_time: int,
    step_label_execution_time: int,
) -> CaptureDecision:
    """Evaluate line eligibility, step label aggregation and step-in gating."""
    top = stack_lines[0]
    this_line = captures_this_line(top.method.code_body[top.code_body_index])

    label_stack: List[StackLine] | None = None
    label_index = step_label_index_if_last_code(hooked_method, top.code_body_index)
    if label_index is not None:
        label_stack = step_label_stack_lines(stack_lines, hooked_method, label_index)

    decision = CaptureDecision(
        captures_this_line=this_line, captures_step_label=label_stack is not None
    )
    if not this_line and label_stack is None:
        LOGGER.debug("Skip capture: line %d is not a capture line", top.line)
        return decision
    if not can_step_in_capture_to(stack_lines):
        LOGGER.debug("Skip capture: line %d is not reachable by step-in", top.line)
        return decision

    if this_line:
        decision.stack_lines_list.append(stack_lines)
        decision.execution_times.append(execution_time)
    if label_stack is not None:
        decision.stack_lines_list.append(label_stack)
        decision.execution_times.append(step_label_execution_time)
    return decision
