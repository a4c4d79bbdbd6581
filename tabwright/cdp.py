"""Chrome DevTools Protocol client.

One browser-level WebSocket carries every tab: targets are attached in
"flatten" mode, so commands and events for a tab are tagged with its
sessionId. A single background reader thread resolves command futures and
hands events to per-session listeners; listeners must return quickly (the
event dispatcher only enqueues).
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import suppress
from typing import Any

import websocket

from .http_client import HttpClientError
from .protocol import EventCallback, TargetHandle, TargetInfo

logger = logging.getLogger("tabwright.cdp")


class CdpError(HttpClientError):
    def __init__(self, message: str, *, method: str = "") -> None:
        super().__init__(message)
        self.method = method


class CdpConnection:
    """Browser-level CDP WebSocket connection with a background reader."""

    def __init__(self, ws_url: str, timeout: float = 10.0, *, debug: bool = False) -> None:
        try:
            self.ws = websocket.create_connection(ws_url, timeout=timeout)
        except Exception as exc:  # noqa: BLE001
            raise CdpError(f"failed to connect to {ws_url}: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self.debug = debug
        self._next_id = 1
        self._id_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._pending: dict[int, Future] = {}
        self._listeners: dict[str, list[EventCallback]] = {}
        self._listeners_lock = threading.Lock()
        self._stop = threading.Event()
        # Small socket timeout so the reader can notice close() promptly.
        self.ws.settimeout(0.5)
        self._reader = threading.Thread(target=self._run, name="tabwright-cdp-reader", daemon=True)
        self._reader.start()

    @property
    def closed(self) -> bool:
        return self._stop.is_set()

    def add_listener(self, session_id: str, callback: EventCallback) -> Callable[[], None]:
        """Receive every event tagged with session_id ("" for browser-level events)."""
        with self._listeners_lock:
            self._listeners.setdefault(session_id, []).append(callback)

        def _remove() -> None:
            with self._listeners_lock:
                callbacks = self._listeners.get(session_id)
                if callbacks and callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._listeners.pop(session_id, None)

        return _remove

    def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        session_id: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a CDP command and block until its response arrives."""
        if self._stop.is_set():
            raise CdpError("CDP connection is closed", method=method)

        fut: Future = Future()
        with self._id_lock:
            msg_id = self._next_id
            self._next_id += 1
            self._pending[msg_id] = fut

        msg: dict[str, Any] = {"id": msg_id, "method": method, "params": params or {}}
        if session_id:
            msg["sessionId"] = session_id
        if self.debug:
            logger.debug("send id=%d method=%s session=%s", msg_id, method, session_id or "-")

        try:
            with self._send_lock:
                self.ws.send(json.dumps(msg))
        except Exception as exc:  # noqa: BLE001
            with self._id_lock:
                self._pending.pop(msg_id, None)
            raise CdpError(str(exc), method=method) from exc

        wait = self.timeout if timeout is None else timeout
        try:
            return fut.result(timeout=wait)
        except FutureTimeoutError as exc:
            with self._id_lock:
                self._pending.pop(msg_id, None)
            raise CdpError(f"CDP response timed out after {wait:.1f}s", method=method) from exc

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                raw = self.ws.recv()
            except websocket.WebSocketTimeoutException:
                continue
            except Exception as exc:  # noqa: BLE001
                if not self._stop.is_set():
                    logger.warning("CDP connection lost: %s", exc)
                self._stop.set()
                self._fail_pending(CdpError(f"CDP connection lost: {exc}"))
                return

            try:
                data = json.loads(raw)
            except (TypeError, json.JSONDecodeError):
                continue
            if not isinstance(data, dict):
                continue

            if "id" in data:
                self._resolve(data)
            elif isinstance(data.get("method"), str):
                self._route(data)

    def _resolve(self, data: dict[str, Any]) -> None:
        with self._id_lock:
            fut = self._pending.pop(data.get("id"), None)
        if fut is None:
            return
        if "error" in data:
            err = data["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            fut.set_exception(CdpError(str(message)))
        else:
            result = data.get("result")
            fut.set_result(result if isinstance(result, dict) else {})

    def _route(self, event: dict[str, Any]) -> None:
        session_id = str(event.get("sessionId") or "")
        with self._listeners_lock:
            callbacks = list(self._listeners.get(session_id, ()))
        if self.debug:
            logger.debug("event %s session=%s listeners=%d", event.get("method"), session_id or "-", len(callbacks))
        for callback in callbacks:
            try:
                callback(event)
            except Exception:  # noqa: BLE001
                # A broken listener must not take the reader (and every other tab) down.
                logger.exception("event listener failed for %s", event.get("method"))

    def _fail_pending(self, exc: Exception) -> None:
        with self._id_lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(exc)

    def close(self) -> None:
        if self._stop.is_set():
            return
        self._stop.set()
        with suppress(Exception):
            self.ws.close()
        self._fail_pending(CdpError("CDP connection is closed"))


class CdpClient:
    """ProtocolClient over a single browser-level CdpConnection."""

    def __init__(self, connection: CdpConnection) -> None:
        self.conn = connection

    @classmethod
    def connect(cls, ws_url: str, *, timeout: float = 10.0, debug: bool = False) -> CdpClient:
        return cls(CdpConnection(ws_url, timeout=timeout, debug=debug))

    def create_browser_context(self) -> str:
        result = self.conn.send("Target.createBrowserContext", {"disposeOnDetach": True})
        context_id = result.get("browserContextId")
        if not context_id:
            raise CdpError("Failed to create browser context", method="Target.createBrowserContext")
        return str(context_id)

    def dispose_browser_context(self, browser_context_id: str) -> None:
        self.conn.send("Target.disposeBrowserContext", {"browserContextId": browser_context_id})

    def new_target(self, browser_context_id: str | None, url: str = "about:blank") -> TargetHandle:
        params: dict[str, Any] = {"url": url}
        if browser_context_id:
            params["browserContextId"] = browser_context_id
        result = self.conn.send("Target.createTarget", params)
        target_id = result.get("targetId")
        if not target_id:
            raise CdpError("Failed to create browser tab", method="Target.createTarget")
        return self.attach(str(target_id))

    def attach(self, target_id: str) -> TargetHandle:
        result = self.conn.send("Target.attachToTarget", {"targetId": target_id, "flatten": True})
        session_id = result.get("sessionId")
        if not session_id:
            raise CdpError(f"Failed to attach to target {target_id}", method="Target.attachToTarget")
        return TargetHandle(target_id=target_id, session_id=str(session_id))

    def list_targets(self) -> list[TargetInfo]:
        result = self.conn.send("Target.getTargets")
        infos = result.get("targetInfos")
        if not isinstance(infos, list):
            return []
        return [TargetInfo.from_cdp(t) for t in infos if isinstance(t, dict) and t.get("type") == "page"]

    def target_info(self, handle: TargetHandle) -> TargetInfo:
        result = self.conn.send("Target.getTargetInfo", {"targetId": handle.target_id})
        info = result.get("targetInfo")
        return TargetInfo.from_cdp(info if isinstance(info, dict) else {"targetId": handle.target_id})

    def subscribe(self, handle: TargetHandle, callback: EventCallback) -> Callable[[], None]:
        return self.conn.add_listener(handle.session_id, callback)

    def run_command(
        self,
        handle: TargetHandle,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        return self.conn.send(method, params, session_id=handle.session_id, timeout=timeout)

    def close(self, handle: TargetHandle) -> None:
        self.conn.send("Target.closeTarget", {"targetId": handle.target_id})

    def shutdown(self) -> None:
        self.conn.close()


__all__ = ["CdpClient", "CdpConnection", "CdpError"]
