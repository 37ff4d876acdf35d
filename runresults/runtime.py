"""Build a ready-to-use hook dispatcher from the environment."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Mapping

from runresults.capture import ScreenCapturer
from runresults.config import HookConfig, HookConfigError, load_hook_config
from runresults.events import EventLogger
from runresults.hooks import HookDispatcher
from runresults.persistence import JsonResultWriter
from runresults.srctree import SourceModel, load_source_model

LOGGER = logging.getLogger(__name__)
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(debug: bool, error_log: Path | None = None) -> None:
    level = logging.DEBUG if debug else logging.INFO
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if error_log:
        error_log.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(error_log, encoding="utf-8")
        file_handler.setLevel(logging.ERROR)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


def create_dispatcher(
    config: HookConfig, src_tree: SourceModel | None = None
) -> HookDispatcher:
    """Wire the default screen capturer, JSON writer and event log."""
    if src_tree is None:
        if config.source_model_path is None:
            raise HookConfigError("RUNRESULTS_SOURCE_MODEL is required without a source model")
        src_tree = load_source_model(config.source_model_path)
    event_logger = EventLogger(config.events_log) if config.events_log_enabled else None
    capturer = ScreenCapturer(
        capture_mode=config.capture_mode,
        monitor=config.capture_monitor,
        max_width=config.capture_max_width,
    )
    LOGGER.info(
        "Hook dispatcher ready (results: %s, captures: %s, capture mode: %s)",
        config.run_results_root,
        config.captures_root,
        config.capture_mode,
    )
    return HookDispatcher(
        src_tree,
        run_results_root=config.run_results_root,
        captures_root=config.captures_root,
        capture_sink=capturer,
        result_writer=JsonResultWriter(),
        event_logger=event_logger,
    )


def dispatcher_from_env(env: Mapping[str, str] | None = None) -> HookDispatcher:
    env = os.environ if env is None else env
    config = load_hook_config(env)
    configure_logging(config.debug, error_log=config.error_log)
    return create_dispatcher(config)
