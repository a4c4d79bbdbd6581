"""Bootstrapping: launch Chrome once per suite and connect tabs to it.

Typical conftest.py::

    @pytest.fixture(scope="session")
    def chrome(request):
        return spin_up_chrome(PytestLifecycle(request))

    @pytest.fixture(scope="session")
    def lifecycle(request, chrome):
        return PytestLifecycle(request)

    @pytest.fixture(scope="session")
    def root(lifecycle, chrome):
        return connect_to_chrome(lifecycle, connection=chrome)

    @pytest.fixture
    def tab(root, lifecycle, request):
        lifecycle.use(request)
        root.prepare()
        return root
"""

from __future__ import annotations

import contextlib
import logging
import subprocess
import time
from pathlib import Path

from .cdp import CdpClient
from .config import HarnessConfig
from .connection import ChromeConnection, read_connection, remove_connection, write_connection
from .http_client import HttpClientError, http_get_json
from .lifecycle import TestLifecycle, fail
from .protocol import ProtocolClient
from .registry import RootState
from .retry import with_retry
from .tab import Tab
from .tab_manager import TabManager

logger = logging.getLogger("tabwright.launcher")


@with_retry(max_attempts=5, delay=0.1)
def browser_ws_url(port: str) -> str:
    """Ask the DevTools HTTP endpoint for the browser WebSocket URL.

    The endpoint can lag a moment behind DevToolsActivePort, so this retries.
    """
    version = http_get_json(f"http://127.0.0.1:{port}/json/version")
    url = version.get("webSocketDebuggerUrl") if isinstance(version, dict) else None
    if not url:
        raise HttpClientError("DevTools endpoint did not report a webSocketDebuggerUrl")
    return str(url)


class BrowserLauncher:
    def __init__(self, config: HarnessConfig, user_data_dir: str) -> None:
        self.config = config
        self.user_data_dir = user_data_dir
        self.process: subprocess.Popen | None = None

    def build_launch_command(self) -> list[str]:
        flags = [
            # Port 0: Chrome picks a free port and reports it in DevToolsActivePort.
            "--remote-debugging-port=0",
            f"--user-data-dir={self.user_data_dir}",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-background-networking",
            "--disable-background-timer-throttling",
            "--disable-backgrounding-occluded-windows",
            "--disable-renderer-backgrounding",
            "--disable-popup-blocking",
            "--disable-sync",
            f"--window-size={self.config.window_width},{self.config.window_height}",
        ]
        if self.config.headless:
            flags.append("--headless=new")
        return [self.config.binary_path, *flags, *self.config.extra_flags, "about:blank"]

    def _active_port_file(self) -> Path:
        return Path(self.user_data_dir) / "DevToolsActivePort"

    def start(self, timeout: float = 15.0) -> ChromeConnection:
        cmd = self.build_launch_command()
        logger.info("launching %s", " ".join(cmd))
        try:
            self.process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as exc:
            raise HttpClientError(f"could not launch {self.config.binary_path}: {exc}") from exc

        port_file = self._active_port_file()
        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.process.poll() is not None:
                raise HttpClientError(f"Chrome exited early with code {self.process.returncode}")
            lines = port_file.read_text(encoding="utf-8").splitlines() if port_file.exists() else []
            if lines and lines[0].strip().isdigit():
                return ChromeConnection(web_socket_url=self._ws_url(lines))
            time.sleep(0.05)
        self.stop()
        raise HttpClientError(f"Chrome did not report a DevTools port within {timeout:.0f}s")

    def _ws_url(self, lines: list[str]) -> str:
        port = lines[0].strip()
        if len(lines) > 1 and lines[1].strip():
            return f"ws://127.0.0.1:{port}{lines[1].strip()}"
        return browser_ws_url(port)

    def stop(self, *, timeout: float = 2.0) -> bool:
        """Best-effort stop of the launcher-owned Chrome process."""
        proc = self.process
        if proc is None:
            return False
        if proc.poll() is not None:
            return True

        with contextlib.suppress(OSError):
            proc.terminate()
        try:
            proc.wait(timeout=max(0.1, float(timeout)))
            return True
        except subprocess.TimeoutExpired:
            pass

        # Escalate to kill.
        with contextlib.suppress(OSError):
            proc.kill()
        return True


def spin_up_chrome(lifecycle: TestLifecycle, config: HarnessConfig | None = None) -> ChromeConnection:
    """Launch Chrome for this test process and publish its connection file.

    The browser is stopped and the connection file removed by lifecycle cleanups.
    """
    config = config or HarnessConfig.from_env()
    launcher = BrowserLauncher(config, lifecycle.temp_directory())
    try:
        conn = launcher.start()
    except HttpClientError as exc:
        fail(lifecycle, f"failed to spin up chrome: {exc}", action="launch")
    lifecycle.register_cleanup(launcher.stop)

    process = lifecycle.parallel_process()
    write_connection(conn, process, config.config_dir)
    lifecycle.register_cleanup(lambda: remove_connection(process, config.config_dir))
    logger.info("chrome ready at %s", conn.web_socket_url)
    return conn


def connect_to_chrome(
    lifecycle: TestLifecycle,
    *,
    connection: ChromeConnection | None = None,
    config: HarnessConfig | None = None,
    client: ProtocolClient | None = None,
) -> Tab:
    """Connect to a running Chrome and return the reusable root tab.

    Without an explicit `connection` the connection file written by
    spin_up_chrome is read (this process's, else process 1's). Passing a
    ready `client` skips the connection entirely.
    """
    config = config or HarnessConfig.from_env()

    if client is None:
        if connection is None:
            try:
                connection = read_connection(lifecycle.parallel_process(), config.config_dir)
            except (OSError, ValueError) as exc:
                fail(lifecycle, f"failed to load ChromeConnection: {exc}", action="connect")
        try:
            cdp = CdpClient.connect(
                connection.web_socket_url,
                timeout=config.command_timeout,
                debug=config.debug_logging,
            )
        except HttpClientError as exc:
            fail(lifecycle, f"failed to connect to chrome: {exc}", action="connect")
        lifecycle.register_cleanup(cdp.shutdown)
        client = cdp

    state = RootState(lifecycle.temp_directory(), download_limit=config.download_limit)
    manager = TabManager(client, lifecycle, config, state)
    return manager.open_root()


__all__ = ["BrowserLauncher", "browser_ws_url", "connect_to_chrome", "spin_up_chrome"]
