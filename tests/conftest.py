from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from tabwright.config import HarnessConfig
from tabwright.helper_script import HELPER_JS
from tabwright.protocol import TargetHandle, TargetInfo

HELPER_PREFIX = "window._tabwright."


class FakeClock:
    """Injected clock: sleep() advances time instead of blocking."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self.on_sleep: Callable[[float], None] | None = None

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(seconds)


class FakeLifecycle:
    """Records everything a tab asks of the test framework."""

    __test__ = False

    def __init__(self, tmp_path: Path) -> None:
        self.tmp_path = tmp_path
        self.cleanups: list[Callable[[], None]] = []
        self.failures: list[str] = []
        self.logs: list[str] = []
        self.process = 1
        self.marked_failed = False
        self.reporters: list[Callable[[], str]] = []
        self._dirs = itertools.count(1)

    def register_cleanup(self, fn: Callable[[], None]) -> None:
        self.cleanups.append(fn)

    def report_failure(self, message: str) -> None:
        self.failures.append(message)

    def temp_directory(self) -> str:
        path = self.tmp_path / f"tmp-{next(self._dirs)}"
        path.mkdir()
        return str(path)

    def log(self, message: str) -> None:
        self.logs.append(message)

    def parallel_process(self) -> int:
        return self.process

    def failed(self) -> bool:
        return self.marked_failed or bool(self.failures)

    def attach_progress_reporter(self, fn: Callable[[], str]) -> Callable[[], None]:
        self.reporters.append(fn)
        return lambda: self.reporters.remove(fn)

    def run_cleanups(self) -> None:
        while self.cleanups:
            self.cleanups.pop()()


class FakeProtocolClient:
    """In-memory ProtocolClient.

    Targets live in `targets`; `spawn()` simulates a page opening a window.
    Runtime.evaluate answers: location and title come from `targets`, "1" and load/status probes succeed, the helper
    install returns True, and helper calls answer from `helper` (by op name,
    an envelope dict or a callable taking the expression). `responders`
    overrides any method outright.
    """

    def __init__(self) -> None:
        self.commands: list[tuple[str, str, dict[str, Any]]] = []
        self.targets: dict[str, TargetInfo] = {}
        self.sessions: dict[str, str] = {}
        self.disposed: list[str] = []
        self.closed: list[str] = []
        self.attached: list[str] = []
        self.helper: dict[str, Any] = {}
        self.responders: dict[str, Callable[[TargetHandle, dict[str, Any]], dict[str, Any]]] = {}
        self.list_error: Exception | None = None
        self._subscribers: dict[str, list[Callable[[dict[str, Any]], None]]] = {}
        self._ids = itertools.count(1)
        self._cond = threading.Condition()

    # ProtocolClient

    def create_browser_context(self) -> str:
        return f"ctx-{next(self._ids)}"

    def dispose_browser_context(self, browser_context_id: str) -> None:
        self.disposed.append(browser_context_id)

    def new_target(self, browser_context_id: str | None, url: str = "about:blank") -> TargetHandle:
        target_id = f"target-{next(self._ids)}"
        self.targets[target_id] = TargetInfo(target_id=target_id, url=url, browser_context_id=browser_context_id or "")
        return self.attach(target_id)

    def attach(self, target_id: str) -> TargetHandle:
        self.attached.append(target_id)
        session_id = f"session-{next(self._ids)}"
        self.sessions[target_id] = session_id
        return TargetHandle(target_id=target_id, session_id=session_id)

    def list_targets(self) -> list[TargetInfo]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.targets.values())

    def target_info(self, handle: TargetHandle) -> TargetInfo:
        return self.targets[handle.target_id]

    def subscribe(self, handle: TargetHandle, callback: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        self._subscribers.setdefault(handle.session_id, []).append(callback)

        def _unsubscribe() -> None:
            callbacks = self._subscribers.get(handle.session_id, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return _unsubscribe

    def run_command(
        self,
        handle: TargetHandle,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,  # noqa: ARG002
    ) -> dict[str, Any]:
        params = dict(params or {})
        with self._cond:
            self.commands.append((handle.target_id, method, params))
            self._cond.notify_all()
        responder = self.responders.get(method)
        if responder is not None:
            return responder(handle, params)
        if method == "Runtime.evaluate":
            return self._evaluate(handle.target_id, str(params.get("expression") or ""))
        return {}

    def close(self, handle: TargetHandle) -> None:
        self.closed.append(handle.target_id)
        self.targets.pop(handle.target_id, None)

    # Test helpers

    def _evaluate(self, target_id: str, expression: str) -> dict[str, Any]:
        info = self.targets.get(target_id)
        if expression == "window.location.href":
            return {"result": {"type": "string", "value": info.url if info else ""}}
        if expression == "document.title":
            return {"result": {"type": "string", "value": info.title if info else ""}}
        if expression == HELPER_JS:
            return {"result": {"type": "boolean", "value": True}}
        if expression.startswith(HELPER_PREFIX):
            op = expression[len(HELPER_PREFIX) :].split("(", 1)[0]
            answer = self.helper.get(op, {"success": True})
            if callable(answer):
                answer = answer(expression)
            if isinstance(answer, Exception):
                raise answer
            return {"result": {"type": "object", "value": answer}}
        if expression == "1":
            return {"result": {"type": "number", "value": 1}}
        if "responseStatus" in expression:
            return {"result": {"type": "number", "value": 0}}
        return {"result": {"type": "boolean", "value": True}}

    def spawn(self, opener_id: str, url: str = "about:blank") -> str:
        """A page-initiated window: same context as the opener, not attached yet."""
        opener = self.targets[opener_id]
        target_id = f"target-{next(self._ids)}"
        self.targets[target_id] = TargetInfo(
            target_id=target_id,
            url=url,
            opener_id=opener_id,
            browser_context_id=opener.browser_context_id,
        )
        return target_id

    def emit(self, target_id: str, method: str, params: dict[str, Any] | None = None) -> None:
        session_id = self.sessions[target_id]
        event = {"method": method, "params": params or {}, "sessionId": session_id}
        for callback in list(self._subscribers.get(session_id, [])):
            callback(event)

    def calls(self, method: str, target_id: str | None = None) -> list[dict[str, Any]]:
        with self._cond:
            return [p for t, m, p in self.commands if m == method and (target_id is None or t == target_id)]

    def expressions(self, target_id: str | None = None) -> list[str]:
        return [str(p.get("expression")) for p in self.calls("Runtime.evaluate", target_id)]

    def wait_for(self, method: str, count: int = 1, timeout: float = 2.0) -> list[dict[str, Any]]:
        """Block until `method` has been sent `count` times (dialog replies run on a thread)."""
        with self._cond:
            self._cond.wait_for(
                lambda: sum(1 for _, m, _ in self.commands if m == method) >= count,
                timeout=timeout,
            )
            return [p for _, m, p in self.commands if m == method]


@pytest.fixture
def fake_client() -> FakeProtocolClient:
    return FakeProtocolClient()


@pytest.fixture
def lifecycle(tmp_path: Path) -> FakeLifecycle:
    return FakeLifecycle(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> HarnessConfig:
    return HarnessConfig(binary_path="/usr/bin/chromium", failure_screenshots=False)


@pytest.fixture
def manager(fake_client: FakeProtocolClient, lifecycle: FakeLifecycle, config: HarnessConfig, clock: FakeClock):
    from tabwright.registry import RootState
    from tabwright.tab_manager import TabManager

    state = RootState(lifecycle.temp_directory(), download_limit=config.download_limit, clock=clock, sleep=clock.sleep)
    return TabManager(fake_client, lifecycle, config, state)


@pytest.fixture
def root(manager):  # noqa: ANN001
    tab = manager.open_root()
    yield tab
    for t in manager.registry.snapshot():
        t.stop_listening()
