"""Configuration helpers for the run result hooks."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

LOGGER = logging.getLogger(__name__)
ALLOWED_CAPTURE_MODES = {"desktop", "off"}
DEFAULT_DATA_DIR = Path.cwd() / "runresults_data"
DEFAULT_CAPTURE_MODE = "desktop"
DEFAULT_CAPTURE_MONITOR = 1
RUN_RESULTS_DIR_NAME = "run-results"
CAPTURES_DIR_NAME = "captures"
EVENTS_LOG_NAME = "events.log"
ERRORS_LOG_NAME = "errors.log"


class HookConfigError(Exception):
    """Raised when hook configuration is invalid."""


@dataclass
class HookConfig:
    data_dir: Path
    source_model_path: Path | None = None
    capture_mode: str = DEFAULT_CAPTURE_MODE
    capture_monitor: int = DEFAULT_CAPTURE_MONITOR
    capture_max_width: int | None = None
    events_log_enabled: bool = False
    debug: bool = False

    @property
    def run_results_root(self) -> Path:
        return self.data_dir / RUN_RESULTS_DIR_NAME

    @property
    def captures_root(self) -> Path:
        return self.data_dir / CAPTURES_DIR_NAME

    @property
    def events_log(self) -> Path:
        return self.data_dir / EVENTS_LOG_NAME

    @property
    def error_log(self) -> Path:
        return self.data_dir / ERRORS_LOG_NAME


def load_hook_config(env: Mapping[str, str] | None = None) -> HookConfig:
    """Load environment variables into a HookConfig."""
    env = os.environ if env is None else env

    data_dir = _parse_dir(env.get("RUNRESULTS_DATA_DIR"))
    source_model = _parse_optional_file(env.get("RUNRESULTS_SOURCE_MODEL"), "RUNRESULTS_SOURCE_MODEL")
    capture_mode = _parse_capture_mode(env.get("RUNRESULTS_CAPTURE_MODE"))
    monitor = _parse_non_negative_int(
        env.get("RUNRESULTS_CAPTURE_MONITOR"), DEFAULT_CAPTURE_MONITOR, "RUNRESULTS_CAPTURE_MONITOR"
    )
    max_width = _parse_optional_positive_int(
        env.get("RUNRESULTS_CAPTURE_MAX_WIDTH"), "RUNRESULTS_CAPTURE_MAX_WIDTH"
    )
    events_log = _parse_optional_bool(env.get("RUNRESULTS_EVENTS_LOG"), "RUNRESULTS_EVENTS_LOG")
    debug = _parse_optional_bool(env.get("RUNRESULTS_DEBUG"), "RUNRESULTS_DEBUG")

    return HookConfig(
        data_dir=data_dir,
        source_model_path=source_model,
        capture_mode=capture_mode,
        capture_monitor=monitor,
        capture_max_width=max_width,
        events_log_enabled=bool(events_log),
        debug=bool(debug),
    )


def _parse_dir(raw_value: str | None) -> Path:
    if raw_value is None or raw_value.strip() == "":
        return DEFAULT_DATA_DIR
    candidate = Path(raw_value.strip()).expanduser().resolve()
    if candidate.exists() and not candidate.is_dir():
        raise HookConfigError(f"RUNRESULTS_DATA_DIR must be a directory: {candidate}")
    return candidate


def _parse_optional_file(raw_value: str | None, env_name: str) -> Path | None:
    if raw_value is None or raw_value.strip() == "":
        return None
    candidate = Path(raw_value.strip()).expanduser().resolve()
    if not candidate.exists():
        raise HookConfigError(f"{env_name} path does not exist: {candidate}")
    if not candidate.is_file():
        raise HookConfigError(f"{env_name} must point to a file: {candidate}")
    return candidate


def _parse_capture_mode(raw_value: str | None) -> str:
    if raw_value is None or raw_value.strip() == "":
        return DEFAULT_CAPTURE_MODE
    value = raw_value.strip().lower()
    if value not in ALLOWED_CAPTURE_MODES:
        allowed = ", ".join(sorted(ALLOWED_CAPTURE_MODES))
        raise HookConfigError(f"RUNRESULTS_CAPTURE_MODE must be one of: {allowed}")
    return value


def _parse_non_negative_int(raw_value: str | None, default: int, env_name: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise HookConfigError(f"{env_name} must be an integer") from exc
    if value < 0:
        raise HookConfigError(f"{env_name} must be zero or positive")
    return value


def _parse_optional_positive_int(raw_value: str | None, env_name: str) -> int | None:
    if raw_value is None or raw_value.strip() == "":
        return None
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise HookConfigError(f"{env_name} must be an integer") from exc
    if value <= 0:
        LOGGER.warning("%s must be positive; ignoring", env_name)
        return None
    return value


def _parse_optional_bool(raw_value: str | None, env_name: str) -> bool | None:
    if raw_value is None or raw_value.strip() == "":
        return None
    normalized = raw_value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise HookConfigError(f"{env_name} must be a boolean (0/1, true/false)")
