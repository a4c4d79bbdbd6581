"""
Structured errors raised by tabwright.

Every policy violation names the operation that failed and why, so a failing
test step can be located without a debugger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class TabwrightError(Exception):
    """Structured error with enough context to locate the failing step."""

    tool: str
    action: str
    reason: str
    suggestion: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        msg = f"[{self.tool}] {self.action} failed: {self.reason}"
        if self.suggestion:
            msg += f". Suggestion: {self.suggestion}"
        return msg

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "tool": self.tool,
            "action": self.action,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "details": self.details,
        }


@dataclass
class RootTabCloseError(TabwrightError):
    tool: str = "tab"
    action: str = "close"
    reason: str = "invalid attempt to close the root tab"
    suggestion: str = "The root tab is reused across tests; call prepare() instead"


@dataclass
class ActiveDownloadError(TabwrightError):
    tool: str = "tab"
    action: str = "close"
    reason: str = (
        "cannot close tab because another tab is actively downloading a file "
        "and closing this tab would cause that download to fail"
    )
    suggestion: str = "Retry once the download completes, e.g. eventually(tab.close)"


@dataclass
class ScriptError(TabwrightError):
    """A helper operation or script reported an error (selector missing, guard failed, ...)."""

    tool: str = "script"
    action: str = "run"
    reason: str = "script failed"


@dataclass
class TabFailure(TabwrightError):
    """Raised after a failure has been reported to the test lifecycle."""

    tool: str = "tab"
    action: str = "run"
    reason: str = "failure"


__all__ = [
    "ActiveDownloadError",
    "RootTabCloseError",
    "ScriptError",
    "TabFailure",
    "TabwrightError",
]
