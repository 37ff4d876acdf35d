"""File naming and JSON output for run result documents."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import quote

LOGGER = logging.getLogger(__name__)
RESULT_SUFFIX = ".json"


def encode_to_safe_ascii_file_name(value: str) -> str:
    """Percent-encode ``value`` so it is a valid ASCII file name on any platform.

    Class and method names of generated code may contain characters that are
    illegal in file names, so everything outside ``[A-Za-z0-9_.~-]`` is
    encoded from its UTF-8 bytes.
    """
    encoded = quote(value, safe="", encoding="utf-8")
    if encoded in {".", ".."}:
        return encoded.replace(".", "%2E")
    return encoded


def run_result_path(
    run_results_root: Path, class_qualified_name: str, method_simple_name: str
) -> Path:
    return (
        run_results_root
        / encode_to_safe_ascii_file_name(class_qualified_name)
        / f"{encode_to_safe_ascii_file_name(method_simple_name)}{RESULT_SUFFIX}"
    )


class JsonResultWriter:
    """Persistence sink writing one JSON document per root method."""

    def write(self, tree: Mapping[str, Any], destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(json.dumps(tree, indent=2), encoding="utf-8")
        LOGGER.info("Run result written to %s", destination)
        return destination


def load_run_result(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))
