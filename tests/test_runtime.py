"""Tests for building a dispatcher from configuration."""
from __future__ import annotations

import json
import logging

import pytest

from runresults.capture import ScreenCapturer
from runresults.config import HookConfig, HookConfigError
from runresults.runtime import configure_logging, create_dispatcher, dispatcher_from_env
from runresults.srctree import SourceModel


def _write_model(tmp_path):
    path = tmp_path / "model.json"
    path.write_text(
        json.dumps(
            {
                "methods": [
                    {
                        "class": "pkg.SmokeTest",
                        "name": "test_smoke",
                        "root": True,
                        "code_body": [{"start_line": 3, "code": "pass"}],
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    return path


def test_create_dispatcher_uses_config_paths(tmp_path) -> None:
    config = HookConfig(
        data_dir=tmp_path,
        source_model_path=_write_model(tmp_path),
        capture_mode="off",
        events_log_enabled=True,
    )

    dispatcher = create_dispatcher(config)

    assert dispatcher.run_results_root == tmp_path / "run-results"
    assert dispatcher.captures_root == tmp_path / "captures"
    assert isinstance(dispatcher.capture_sink, ScreenCapturer)
    assert dispatcher.capture_sink.capture_mode == "off"
    assert dispatcher.event_logger is not None
    assert dispatcher.event_logger.log_path == tmp_path / "events.log"


def test_full_run_with_capture_disabled(tmp_path) -> None:
    config = HookConfig(data_dir=tmp_path, capture_mode="off")
    model = SourceModel.from_dict(json.loads(_write_model(tmp_path).read_text(encoding="utf-8")))
    dispatcher = create_dispatcher(config, src_tree=model)

    dispatcher.before_method_hook("pkg.SmokeTest", "test_smoke", "test_smoke")
    dispatcher.method_error_hook("pkg.SmokeTest", "test_smoke", RuntimeError("boom"))
    result_path = dispatcher.after_method_hook("pkg.SmokeTest", "test_smoke")

    document = json.loads(result_path.read_text(encoding="utf-8"))
    assert document["root_method_key"] == "pkg.SmokeTest.test_smoke"
    assert document["run_failures"][0]["message"] == "RuntimeError: boom"
    assert document["line_screen_captures"] == []
    assert not (tmp_path / "captures").exists()


def test_missing_source_model_is_a_config_error(tmp_path) -> None:
    with pytest.raises(HookConfigError):
        create_dispatcher(HookConfig(data_dir=tmp_path))


def test_dispatcher_from_env(tmp_path) -> None:
    dispatcher = dispatcher_from_env(
        {
            "RUNRESULTS_DATA_DIR": str(tmp_path),
            "RUNRESULTS_SOURCE_MODEL": str(_write_model(tmp_path)),
            "RUNRESULTS_CAPTURE_MODE": "off",
        }
    )

    assert dispatcher.src_tree.lookup_root_methods_by_name("pkg.SmokeTest", "test_smoke")
    assert dispatcher.session is None


def test_dispatcher_from_env_logs_errors_to_data_dir(tmp_path, monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    dispatcher_from_env(
        {
            "RUNRESULTS_DATA_DIR": str(tmp_path / "data"),
            "RUNRESULTS_SOURCE_MODEL": str(_write_model(tmp_path)),
            "RUNRESULTS_CAPTURE_MODE": "off",
            "RUNRESULTS_DEBUG": "1",
        }
    )

    (kwargs,) = calls
    assert kwargs["level"] == logging.DEBUG
    file_handlers = [h for h in kwargs["handlers"] if isinstance(h, logging.FileHandler)]
    assert len(file_handlers) == 1
    handler = file_handlers[0]
    try:
        assert handler.level == logging.ERROR
        assert handler.baseFilename == str((tmp_path / "data" / "errors.log").resolve())
    finally:
        handler.close()


def test_configure_logging_without_error_log(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    configure_logging(False)

    (kwargs,) = calls
    assert kwargs["level"] == logging.INFO
    assert [type(h) for h in kwargs["handlers"]] == [logging.StreamHandler]
