"""Screenshot capture and capture file storage."""
from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol

import mss
from mss.exception import ScreenShotError
from PIL import Image

from runresults.persistence import encode_to_safe_ascii_file_name

LOGGER = logging.getLogger(__name__)
CAPTURE_EXTENSION = "png"
CAPTURE_DISABLED_WARNING = "Screen capture unavailable; screenshots disabled for this process."


class CaptureSink(Protocol):
    def capture_screen(self) -> bytes | None:
        ...


@dataclass
class ScreenCapturer:
    """Grab the screen with mss and encode it as PNG bytes."""

    capture_mode: str = "desktop"
    monitor: int = 1
    max_width: int | None = None
    _disabled_reason: str | None = field(default=None, init=False)
    _warnings: List[str] = field(default_factory=list, init=False)
    _prepared: bool = field(default=False, init=False)

    @property
    def disabled_reason(self) -> str | None:
        return self._disabled_reason

    @property
    def warnings(self) -> List[str]:
        return list(self._warnings)

    def capture_screen(self) -> bytes | None:
        if not self._prepare_capture_environment():
            return None
        try:
            with mss.mss() as screen:
                monitor = self._select_monitor(screen)
                if monitor is None:
                    return None
                shot = screen.grab(monitor)
        except ScreenShotError as exc:
            self._disable("grab-failed", f"Unable to capture screenshot: {exc}")
            return None
        image = Image.frombytes("RGB", shot.size, shot.rgb)
        return self._encode(image)

    def _prepare_capture_environment(self) -> bool:
        if self._prepared:
            return not bool(self._disabled_reason)
        self._prepared = True
        if self.capture_mode == "off":
            self._disabled_reason = "mode-off"
            LOGGER.info("Screen capture disabled by configuration")
            return False
        if os.environ.get("CI"):
            self._disabled_reason = "ci-environment"
            LOGGER.info("Screen capture skipped (CI environment detected)")
            return False
        return True

    def _select_monitor(self, screen: "mss.base.MSSBase") -> Optional[dict]:
        monitors = screen.monitors
        if self.monitor < len(monitors):
            return monitors[self.monitor]
        warning = f"Monitor {self.monitor} not found; capturing all monitors"
        if warning not in self._warnings:
            self._warnings.append(warning)
            LOGGER.warning(warning)
        return monitors[0] if monitors else None

    def _encode(self, image: Image.Image) -> bytes:
        if self.max_width and image.width > self.max_width:
            ratio = self.max_width / image.width
            image = image.resize((self.max_width, max(1, round(image.height * ratio))))
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    def _disable(self, reason: str, message: str) -> None:
        self._disabled_reason = reason
        self._warnings.append(message)
        LOGGER.warning(message)
        if CAPTURE_DISABLED_WARNING not in self._warnings:
            self._warnings.append(CAPTURE_DISABLED_WARNING)


def capture_path(
    captures_root: Path, class_qualified_name: str, method_simple_name: str, capture_no: int
) -> Path:
    return (
        captures_root
        / encode_to_safe_ascii_file_name(class_qualified_name)
        / encode_to_safe_ascii_file_name(method_simple_name)
        / f"{capture_no:03d}.{CAPTURE_EXTENSION}"
    )


def write_capture(
    captures_root: Path,
    class_qualified_name: str,
    method_simple_name: str,
    capture_no: int,
    data: bytes,
) -> Path:
    """Store screenshot bytes under the root method's capture directory."""
    path = capture_path(captures_root, class_qualified_name, method_simple_name, capture_no)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    LOGGER.debug("Captured screenshot %s", path)
    return path.resolve()
