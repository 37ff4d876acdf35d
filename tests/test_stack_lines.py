"""Tests for native stack reading and logical frame mapping."""
from __future__ import annotations

from runresults.srctree import CodeLine, LogicalMethod, PlainCode, SourceModel
from runresults.stack_lines import (
    NativeFrame,
    compose,
    current_native_stack,
    exception_native_stack,
    get_stack_lines,
    pinpoint,
    relabel_method,
)


class _Probe:
    def where(self) -> NativeFrame:
        return current_native_stack()[0]


def _raise_lookup_error() -> None:
    raise LookupError("missing")


def _model() -> SourceModel:
    model = SourceModel()
    model.add_method(
        LogicalMethod(
            "pkg.Flow",
            "run",
            code_body=[CodeLine(10, 12, PlainCode("a")), CodeLine(13, 13, PlainCode("b"))],
        )
    )
    model.add_method(
        LogicalMethod("pkg.Flow", "helper", code_body=[CodeLine(20, 20, PlainCode("c"))])
    )
    return model


def test_unknown_frames_are_dropped() -> None:
    stack = [
        NativeFrame("pkg.Flow", "helper", 20),
        NativeFrame("pkg.Driver", "click", 5),
        NativeFrame("pkg.Flow", "run", 11),
        NativeFrame("pkg.Flow", "run", 99),
    ]

    lines = get_stack_lines(_model(), stack)

    assert [(line.method.simple_name, line.code_body_index, line.line) for line in lines] == [
        ("helper", 0, 20),
        ("run", 0, 11),
    ]


def test_relabel_and_pinpoint_rewrites() -> None:
    rewrite = compose(
        pinpoint("helper$closure", 70, "helper", 20),
        relabel_method("run_impl", "run"),
    )
    stack = [
        NativeFrame("pkg.Flow", "helper$closure", 70),
        NativeFrame("pkg.Flow", "helper$closure", 71),
        NativeFrame("pkg.Flow", "run_impl", 13),
    ]

    lines = get_stack_lines(_model(), stack, rewrite)

    assert [(line.method.simple_name, line.line) for line in lines] == [
        ("helper", 20),
        ("run", 13),
    ]


def test_relabel_without_actual_name_keeps_frame() -> None:
    frame = NativeFrame("pkg.Flow", "run", 10)

    assert relabel_method(None, "other")(frame) is frame


def test_current_native_stack_reads_calling_frame() -> None:
    frame = current_native_stack()[0]
    nested = _Probe().where()

    assert frame.class_qualified_name == __name__
    assert frame.method_simple_name == "test_current_native_stack_reads_calling_frame"
    assert nested.class_qualified_name == f"{__name__}._Probe"
    assert nested.method_simple_name == "where"


def test_exception_native_stack_is_innermost_first() -> None:
    try:
        _raise_lookup_error()
    except LookupError as exc:
        frames = exception_native_stack(exc)

    assert frames[0].method_simple_name == "_raise_lookup_error"
    assert frames[0].line == _raise_lookup_error.__code__.co_firstlineno + 1
    assert frames[-1].method_simple_name == "test_exception_native_stack_is_innermost_first"


def test_live_stack_maps_onto_model() -> None:
    code = test_live_stack_maps_onto_model.__code__
    model = SourceModel()
    model.add_method(
        LogicalMethod(
            __name__,
            code.co_name,
            code_body=[CodeLine(code.co_firstlineno, code.co_firstlineno + 30, PlainCode())],
        )
    )

    lines = get_stack_lines(model, current_native_stack())

    assert len(lines) == 1
    assert lines[0].method.simple_name == "test_live_stack_maps_onto_model"
