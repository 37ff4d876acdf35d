"""Fatal conditions raised while correlating hook events."""
from __future__ import annotations


class HookError(RuntimeError):
    """Base class for errors that abort the current root method run."""


class DuplicateCodeLineKeyError(HookError):
    """A code line timer was registered twice before completing."""


class CodeLineKeyNotFoundError(HookError):
    """A code line completed without a matching registered timer."""


class RootMethodConflictError(HookError):
    """More than one root method matches a class and method name."""


class UnresolvedTestStepError(HookError):
    """A bare test step statement reached the capture decision."""


class EmptyStackError(HookError):
    """No tracked frame was found on the stack of a hooked code line."""
