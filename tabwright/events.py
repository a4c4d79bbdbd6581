"""Typed browser events and the per-tab dispatcher.

Raw protocol events arrive on the connection's reader thread. Each tab owns
one EventDispatcher: it decodes the events the orchestration layer cares
about into small dataclasses and hands them, in arrival order, to the tab's
handler on a dedicated worker thread. Everything else decodes to None and is
dropped.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Union

logger = logging.getLogger("tabwright.events")


@dataclass(frozen=True)
class DialogOpened:
    type: str
    message: str
    default_prompt: str = ""
    url: str = ""


@dataclass(frozen=True)
class ConsoleMessage:
    type: str
    args: list[dict[str, Any]] = field(default_factory=list)
    timestamp: float = 0.0
    stack_trace: dict[str, Any] | None = None


@dataclass(frozen=True)
class FrameNavigated:
    frame_id: str
    url: str = ""
    parent_id: str = ""

    @property
    def is_main_frame(self) -> bool:
        return not self.parent_id


@dataclass(frozen=True)
class DownloadWillBegin:
    guid: str
    url: str = ""
    suggested_filename: str = ""


@dataclass(frozen=True)
class DownloadProgress:
    guid: str
    state: str
    received_bytes: int = 0
    total_bytes: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.state in ("completed", "canceled")


Event = Union[DialogOpened, ConsoleMessage, FrameNavigated, DownloadWillBegin, DownloadProgress]


def _dialog(params: dict[str, Any]) -> DialogOpened:
    return DialogOpened(
        type=str(params.get("type") or ""),
        message=str(params.get("message") or ""),
        default_prompt=str(params.get("defaultPrompt") or ""),
        url=str(params.get("url") or ""),
    )


def _console(params: dict[str, Any]) -> ConsoleMessage:
    args = params.get("args")
    stack = params.get("stackTrace")
    return ConsoleMessage(
        type=str(params.get("type") or ""),
        args=[a for a in args if isinstance(a, dict)] if isinstance(args, list) else [],
        timestamp=float(params.get("timestamp") or 0.0),
        stack_trace=stack if isinstance(stack, dict) else None,
    )


def _frame_navigated(params: dict[str, Any]) -> FrameNavigated:
    frame = params.get("frame") if isinstance(params.get("frame"), dict) else {}
    return FrameNavigated(
        frame_id=str(frame.get("id") or ""),
        url=str(frame.get("url") or ""),
        parent_id=str(frame.get("parentId") or ""),
    )


def _download_will_begin(params: dict[str, Any]) -> DownloadWillBegin:
    return DownloadWillBegin(
        guid=str(params.get("guid") or ""),
        url=str(params.get("url") or ""),
        suggested_filename=str(params.get("suggestedFilename") or ""),
    )


def _download_progress(params: dict[str, Any]) -> DownloadProgress:
    return DownloadProgress(
        guid=str(params.get("guid") or ""),
        state=str(params.get("state") or ""),
        received_bytes=int(params.get("receivedBytes") or 0),
        total_bytes=int(params.get("totalBytes") or 0),
    )


_DECODERS: dict[str, Callable[[dict[str, Any]], Event]] = {
    "Page.javascriptDialogOpening": _dialog,
    "Runtime.consoleAPICalled": _console,
    "Page.frameNavigated": _frame_navigated,
    "Browser.downloadWillBegin": _download_will_begin,
    "Browser.downloadProgress": _download_progress,
}

SUBSCRIBED_METHODS = tuple(_DECODERS)


def decode_event(raw: dict[str, Any]) -> Event | None:
    """Decode a raw protocol event, or return None for kinds nobody handles."""
    decoder = _DECODERS.get(str(raw.get("method") or ""))
    if decoder is None:
        return None
    params = raw.get("params")
    return decoder(params if isinstance(params, dict) else {})


_STOP = object()


class EventDispatcher:
    """One subscription and one worker thread per tab."""

    def __init__(self, name: str, handler: Callable[[Event], None]) -> None:
        self.name = name
        self._handler = handler
        self._queue: queue.Queue = queue.Queue()
        self._unsubscribe: Callable[[], None] | None = None
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"tabwright-events-{name}", daemon=True)
        self._thread.start()

    def bind(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe

    def submit(self, raw: dict[str, Any]) -> None:
        """Entry point for the protocol client's subscription callback."""
        if self._stopped.is_set():
            return
        event = decode_event(raw)
        if event is not None:
            self._queue.put(event)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._handler(item)
            except Exception:  # noqa: BLE001
                logger.exception("[%s] event handler failed for %s", self.name, type(item).__name__)
            finally:
                self._queue.task_done()

    def wait_idle(self) -> None:
        """Block until every event submitted so far has been handled."""
        self._queue.join()

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._queue.put(_STOP)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=2.0)


__all__ = [
    "ConsoleMessage",
    "DialogOpened",
    "DownloadProgress",
    "DownloadWillBegin",
    "Event",
    "EventDispatcher",
    "FrameNavigated",
    "SUBSCRIBED_METHODS",
    "decode_event",
]
