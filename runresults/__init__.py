"""Run result generation from instrumentation hook events."""

from runresults.hooks import HookDispatcher
from runresults.srctree import CaptureStyle, SourceModel

__all__ = ["CaptureStyle", "HookDispatcher", "SourceModel"]
