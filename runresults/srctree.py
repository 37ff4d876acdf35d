"""Logical source model consumed by the hook dispatcher."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

LOGGER = logging.getLogger(__name__)


class IllegalDataStructureError(ValueError):
    """Raised when a source model document is inconsistent."""


class CaptureStyle(Enum):
    NONE = "none"
    THIS_LINE = "thisLine"
    STEP_IN = "stepIn"
    STEP_IN_ONLY = "stepInOnly"

    @classmethod
    def parse(cls, raw: Any) -> "CaptureStyle":
        if raw is None or raw == "":
            return cls.THIS_LINE
        if not isinstance(raw, str):
            raise IllegalDataStructureError(f"capture style must be a string: {raw!r}")
        for style in cls:
            if style.value == raw or style.name == raw.upper():
                return style
        raise IllegalDataStructureError(f"unknown capture style: {raw}")


def generate_method_key(
    class_qualified_name: str, method_simple_name: str, arg_classes: str | None = None
) -> str:
    key = f"{class_qualified_name}.{method_simple_name}"
    if arg_classes:
        return f"{key}-{arg_classes}"
    return key


@dataclass(frozen=True)
class PlainCode:
    original: str = ""


@dataclass(frozen=True)
class StepLabel:
    label: str = ""


@dataclass(frozen=True)
class StepMarker:
    """Test step placeholder that must be resolved before run time."""

    label: str = ""


@dataclass(frozen=True)
class Field:
    name: str


@dataclass(frozen=True)
class LocalVar:
    name: str


@dataclass(eq=False)
class SubMethodInvoke:
    sub_method: "LogicalMethod"
    original: str = ""


@dataclass(eq=False)
class VarAssign:
    variable: Field | LocalVar
    value: Code


Code = PlainCode | StepLabel | StepMarker | SubMethodInvoke | VarAssign


@dataclass
class CodeLine:
    start_line: int
    end_line: int
    code: Code

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


@dataclass(eq=False)
class LogicalMethod:
    test_class_key: str
    simple_name: str
    arg_classes: str | None = None
    capture_style: CaptureStyle = CaptureStyle.THIS_LINE
    code_body: List[CodeLine] = field(default_factory=list)

    @property
    def key(self) -> str:
        return generate_method_key(self.test_class_key, self.simple_name, self.arg_classes)

    def code_line_index(self, line: int) -> int | None:
        """Index of the first statement whose line range contains ``line``."""
        for index, code_line in enumerate(self.code_body):
            if code_line.contains(line):
                return index
        return None

    def is_step_label(self, index: int) -> bool:
        return 0 <= index < len(self.code_body) and isinstance(
            self.code_body[index].code, StepLabel
        )


class SourceModel:
    """Read-only index over the logical methods of the instrumented tests."""

    def __init__(self) -> None:
        self._by_key: Dict[str, LogicalMethod] = {}
        self._by_name: Dict[Tuple[str, str], List[LogicalMethod]] = {}
        self._roots: Dict[Tuple[str, str], List[LogicalMethod]] = {}

    def add_method(self, method: LogicalMethod, *, root: bool = False) -> LogicalMethod:
        if method.key in self._by_key:
            raise IllegalDataStructureError(f"duplicated method key: {method.key}")
        self._by_key[method.key] = method
        name_key = (method.test_class_key, method.simple_name)
        self._by_name.setdefault(name_key, []).append(method)
        if root:
            self._roots.setdefault(name_key, []).append(method)
        return method

    def lookup_root_methods_by_name(
        self, class_qualified_name: str, method_simple_name: str
    ) -> List[LogicalMethod]:
        return list(self._roots.get((class_qualified_name, method_simple_name), []))

    def lookup_methods_by_name(
        self, class_qualified_name: str, method_simple_name: str
    ) -> List[LogicalMethod]:
        return list(self._by_name.get((class_qualified_name, method_simple_name), []))

    def lookup_method_by_key(self, key: str) -> LogicalMethod | None:
        return self._by_key.get(key)

    def __len__(self) -> int:
        return len(self._by_key)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SourceModel":
        """Build a model from a ``{"methods": [...]}`` document.

        Sub-method invocations reference their target by method key, so all
        methods are registered before any code body is read.
        """
        entries = data.get("methods")
        if not isinstance(entries, list):
            raise IllegalDataStructureError("source model requires a 'methods' list")
        model = cls()
        pending: List[Tuple[LogicalMethod, List[Any]]] = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise IllegalDataStructureError("method entries must be objects")
            try:
                method = LogicalMethod(
                    test_class_key=str(entry["class"]),
                    simple_name=str(entry["name"]),
                    arg_classes=entry.get("arg_classes"),
                    capture_style=CaptureStyle.parse(entry.get("capture_style")),
                )
            except KeyError as exc:
                raise IllegalDataStructureError(f"method entry missing {exc}") from exc
            model.add_method(method, root=bool(entry.get("root", False)))
            pending.append((method, entry.get("code_body") or []))
        for method, body in pending:
            method.code_body = [model._parse_code_line(raw) for raw in body]
        LOGGER.info("Loaded source model with %d methods", len(model))
        return model

    def _parse_code_line(self, raw: Mapping[str, Any]) -> CodeLine:
        try:
            start = int(raw["start_line"])
        except (KeyError, TypeError, ValueError) as exc:
            raise IllegalDataStructureError("code line requires an integer start_line") from exc
        try:
            end = int(raw.get("end_line", start))
        except (TypeError, ValueError) as exc:
            raise IllegalDataStructureError("code line end_line must be an integer") from exc
        return CodeLine(start_line=start, end_line=end, code=self._parse_code(raw.get("code")))

    def _parse_code(self, raw: Any) -> Any:
        if raw is None:
            return PlainCode()
        if not isinstance(raw, dict):
            return PlainCode(str(raw))
        kind = raw.get("type", "plain")
        if kind == "plain":
            return PlainCode(str(raw.get("original", "")))
        if kind == "step_label":
            return StepLabel(str(raw.get("label", "")))
        if kind == "test_step":
            return StepMarker(str(raw.get("label", "")))
        if kind == "field":
            return Field(str(raw.get("name", "")))
        if kind == "local_var":
            return LocalVar(str(raw.get("name", "")))
        if kind == "invoke":
            target_key = raw.get("method")
            target = self.lookup_method_by_key(str(target_key))
            if target is None:
                raise IllegalDataStructureError(f"unknown sub method: {target_key}")
            return SubMethodInvoke(sub_method=target, original=str(raw.get("original", "")))
        if kind == "assign":
            variable = self._parse_code(raw.get("variable"))
            if not isinstance(variable, (Field, LocalVar)):
                raise IllegalDataStructureError("assignment target must be a field or local_var")
            return VarAssign(variable=variable, value=self._parse_code(raw.get("value")))
        raise IllegalDataStructureError(f"unknown code type: {kind}")


def load_source_model(path: Path) -> SourceModel:
    """Read a source model JSON document from disk."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise IllegalDataStructureError(f"invalid source model JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise IllegalDataStructureError("source model document must be an object")
    return SourceModel.from_dict(data)
