"""Map native Python call stacks onto logical source coordinates."""
from __future__ import annotations

import logging
import sys
import traceback
from dataclasses import dataclass, replace
from types import FrameType
from typing import Callable, Iterable, List, Sequence

from runresults.results import StackLine
from runresults.srctree import SourceModel

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class NativeFrame:
    class_qualified_name: str
    method_simple_name: str
    line: int


FrameRewrite = Callable[[NativeFrame], NativeFrame]


def native_frame_from(frame: FrameType, line: int | None = None) -> NativeFrame:
    """Split a frame's qualified name into owning class and simple name.

    Module-level functions are owned by their module.
    """
    code = frame.f_code
    qualname = getattr(code, "co_qualname", code.co_name)
    module = frame.f_globals.get("__name__", "")
    owner, _, name = qualname.rpartition(".")
    class_name = f"{module}.{owner}" if owner else module
    return NativeFrame(
        class_qualified_name=class_name,
        method_simple_name=name,
        line=frame.f_lineno if line is None else line,
    )


def current_native_stack(skip: int = 0) -> List[NativeFrame]:
    """Frames of the calling thread, innermost first."""
    frame: FrameType | None = sys._getframe(skip + 1)
    frames: List[NativeFrame] = []
    while frame is not None:
        frames.append(native_frame_from(frame))
        frame = frame.f_back
    return frames


def exception_native_stack(error: BaseException) -> List[NativeFrame]:
    """Frames recorded in the traceback of ``error``, innermost first."""
    frames = [
        native_frame_from(frame, line)
        for frame, line in traceback.walk_tb(error.__traceback__)
    ]
    frames.reverse()
    return frames


def relabel_method(actual_name: str | None, logical_name: str) -> FrameRewrite:
    """Rename frames of the method known to the runtime as ``actual_name``."""

    def rewrite(frame: NativeFrame) -> NativeFrame:
        if actual_name is not None and frame.method_simple_name == actual_name:
            return replace(frame, method_simple_name=logical_name)
        return frame

    return rewrite


def pinpoint(actual_name: str, actual_line: int, name: str, line: int) -> FrameRewrite:
    """Attribute the frame at ``actual_name:actual_line`` to ``name:line``."""

    def rewrite(frame: NativeFrame) -> NativeFrame:
        if frame.method_simple_name == actual_name and frame.line == actual_line:
            return replace(frame, method_simple_name=name, line=line)
        return frame

    return rewrite


def compose(*rewrites: FrameRewrite) -> FrameRewrite:
    """Apply ``rewrites`` left to right; each sees the previous result."""

    def rewrite(frame: NativeFrame) -> NativeFrame:
        for step in rewrites:
            frame = step(frame)
        return frame

    return rewrite


def get_stack_lines(
    src_tree: SourceModel,
    native_stack: Iterable[NativeFrame],
    rewrite: FrameRewrite | None = None,
) -> List[StackLine]:
    result: List[StackLine] = []
    for native in native_stack:
        frame = rewrite(native) if rewrite else native
        stack_line = _resolve(src_tree, frame)
        if stack_line is not None:
            result.append(stack_line)
    return result


def _resolve(src_tree: SourceModel, frame: NativeFrame) -> StackLine | None:
    candidates = src_tree.lookup_methods_by_name(
        frame.class_qualified_name, frame.method_simple_name
    )
    for method in candidates:
        index = method.code_line_index(frame.line)
        if index is not None:
            return StackLine(method=method, code_body_index=index, line=frame.line)
    return None


def format_stack_lines(stack_lines: Sequence[StackLine]) -> str:
    return " <- ".join(f"{line.method.key}:{line.line}" for line in stack_lines)
