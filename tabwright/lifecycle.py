"""Test lifecycle seam.

Tabs never talk to the test framework directly. They register cleanups,
report failures and write operator-facing log lines through a TestLifecycle.
"""

from __future__ import annotations

import logging
import os
import signal
import sys
import tempfile
import threading
from collections.abc import Callable
from typing import Any, NoReturn, Protocol

import pytest

from .errors import TabFailure

logger = logging.getLogger("tabwright.lifecycle")
_failures_lock = threading.Lock()
_reporters: list[Callable[[], str]] = []
_previous_handler: Any = None


class TestLifecycle(Protocol):
    __test__ = False

    def register_cleanup(self, fn: Callable[[], None]) -> None: ...

    def report_failure(self, message: str) -> None: ...

    def temp_directory(self) -> str: ...

    def log(self, message: str) -> None: ...

    def parallel_process(self) -> int: ...

    def failed(self) -> bool: ...

    def attach_progress_reporter(self, fn: Callable[[], str]) -> Callable[[], None]: ...


def fail(lifecycle: TestLifecycle, message: str, *, action: str = "run") -> NoReturn:
    """Report `message` as a test failure and abort the calling step."""
    lifecycle.report_failure(message)
    raise TabFailure(action=action, reason=message)


def _worker_number() -> int:
    # pytest-xdist names workers gw0, gw1, ...; a plain run is process 1.
    worker = os.environ.get("PYTEST_XDIST_WORKER", "")
    if worker.startswith("gw") and worker[2:].isdigit():
        return int(worker[2:]) + 1
    return 1


def _emit_progress_report(_signum: int, _frame: Any) -> None:
    for reporter in list(_reporters):
        try:
            report = reporter()
        except Exception:  # noqa: BLE001
            logger.exception("progress reporter failed")
            continue
        if report:
            # Bypasses pytest's capture so the report reaches the terminal now.
            sys.__stderr__.write(report + "\n")
            sys.__stderr__.flush()


def attach_progress_reporter(fn: Callable[[], str]) -> Callable[[], None]:
    """Print `fn()` whenever the process receives SIGUSR1; returns the detach callable.

    Only the main thread may install signal handlers, and some platforms have
    no SIGUSR1; the reporter is then never called.
    """
    global _previous_handler
    sig = getattr(signal, "SIGUSR1", None)
    if sig is None or threading.current_thread() is not threading.main_thread():
        return lambda: None
    if not _reporters:
        _previous_handler = signal.signal(sig, _emit_progress_report)
    _reporters.append(fn)

    def detach() -> None:
        global _previous_handler
        if fn not in _reporters:
            return
        _reporters.remove(fn)
        if not _reporters and threading.current_thread() is threading.main_thread():
            signal.signal(sig, _previous_handler if _previous_handler is not None else signal.SIG_DFL)
            _previous_handler = None

    return detach


class PytestLifecycle:
    """TestLifecycle backed by pytest fixtures.

    The root tab usually outlives a single test, so the lifecycle is created
    once and pointed at each test's `request` with `use()` before `prepare()`.
    Cleanups then run as that test's finalizers.
    """

    def __init__(self, request: Any) -> None:
        self.request = request
        self._failures: list[str] = []
        self._background: list[str] = []
        self._failed_before = self._session_failures()
        request.addfinalizer(self._raise_background_failures)

    def use(self, request: Any) -> PytestLifecycle:
        self.request = request
        self._failures = []
        self._background = []
        self._failed_before = self._session_failures()
        request.addfinalizer(self._raise_background_failures)
        return self

    def _session_failures(self) -> int:
        session = getattr(self.request, "session", None)
        return int(getattr(session, "testsfailed", 0) or 0)

    def register_cleanup(self, fn: Callable[[], None]) -> None:
        self.request.addfinalizer(fn)

    def report_failure(self, message: str) -> None:
        with _failures_lock:
            self._failures.append(message)
        logger.error("%s: %s", self.request.node.nodeid, message)
        if threading.current_thread() is threading.main_thread():
            pytest.fail(message, pytrace=False)
        with _failures_lock:
            self._background.append(message)

    def _raise_background_failures(self) -> None:
        # Failures reported from event threads cannot abort the test directly.
        with _failures_lock:
            pending = list(self._background)
            self._background = []
        if pending:
            pytest.fail("\n".join(pending), pytrace=False)

    def temp_directory(self) -> str:
        """A fresh directory on every call."""
        factory = getattr(self.request.config, "_tmp_path_factory", None)
        if factory is not None:
            return str(factory.mktemp("tabwright"))
        return tempfile.mkdtemp(prefix="tabwright-")

    def log(self, message: str) -> None:
        # Captured per test and shown by pytest in the report of a failing test.
        print(message)

    def parallel_process(self) -> int:
        return _worker_number()

    def attach_progress_reporter(self, fn: Callable[[], str]) -> Callable[[], None]:
        return attach_progress_reporter(fn)

    def failed(self) -> bool:
        with _failures_lock:
            if self._failures:
                return True
        return self._session_failures() > self._failed_before


__all__ = ["PytestLifecycle", "TestLifecycle", "attach_progress_reporter", "fail"]
