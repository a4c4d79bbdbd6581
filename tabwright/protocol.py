"""Narrow interface to the remote-debugging protocol client.

The orchestration layer never frames wire messages itself; it only needs to
create/attach/close targets, issue commands against one target and receive
that target's events. `CdpClient` (cdp.py) is the production implementation.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

EventCallback = Callable[[dict[str, Any]], None]


@dataclass(frozen=True)
class TargetHandle:
    """An attached target: the protocol-assigned target id plus the session used to talk to it."""

    target_id: str
    session_id: str


@dataclass(frozen=True)
class TargetInfo:
    target_id: str
    type: str = "page"
    url: str = ""
    title: str = ""
    opener_id: str = ""
    browser_context_id: str = ""

    @classmethod
    def from_cdp(cls, raw: dict[str, Any]) -> TargetInfo:
        return cls(
            target_id=str(raw.get("targetId") or ""),
            type=str(raw.get("type") or ""),
            url=str(raw.get("url") or ""),
            title=str(raw.get("title") or ""),
            opener_id=str(raw.get("openerId") or ""),
            browser_context_id=str(raw.get("browserContextId") or ""),
        )


class ProtocolClient(Protocol):
    def create_browser_context(self) -> str: ...

    def dispose_browser_context(self, browser_context_id: str) -> None: ...

    def new_target(self, browser_context_id: str | None, url: str = "about:blank") -> TargetHandle: ...

    def attach(self, target_id: str) -> TargetHandle: ...

    def list_targets(self) -> list[TargetInfo]: ...

    def target_info(self, handle: TargetHandle) -> TargetInfo: ...

    def subscribe(self, handle: TargetHandle, callback: EventCallback) -> Callable[[], None]: ...

    def run_command(
        self,
        handle: TargetHandle,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]: ...

    def close(self, handle: TargetHandle) -> None: ...


__all__ = ["EventCallback", "ProtocolClient", "TargetHandle", "TargetInfo"]
