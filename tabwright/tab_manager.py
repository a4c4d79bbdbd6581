"""Tab lifecycle: open, adopt, close and prepare tabs.

Every tab a test opens explicitly gets its own browser context. Tabs the page
spawns (window.open, target=_blank) are adopted into their opener's context
the next time tabs are listed.

Downloads are configured per browser context, and Chrome drops that
configuration for the whole context when any one of its tabs closes. Closing
a tab therefore re-applies the download configuration to every remaining tab
in that context, and refuses to close while a sibling is mid-download.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from .config import HarnessConfig
from .errors import ActiveDownloadError, RootTabCloseError, ScriptError
from .http_client import HttpClientError
from .lifecycle import TestLifecycle, fail
from .protocol import ProtocolClient, TargetHandle, TargetInfo
from .registry import RootState, SessionRegistry, Tabs
from .tab import Tab

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger("tabwright.tabs")

INTERACTIVE_PAUSE_MESSAGE = (
    "This test failed and you are running in interactive mode. "
    "tabwright will sleep so you can interact with the browser. "
    "Hit ^C when you're done to shut down the suite"
)


class TabManager:
    def __init__(
        self,
        client: ProtocolClient,
        lifecycle: TestLifecycle,
        config: HarnessConfig,
        state: RootState,
    ) -> None:
        self.client = client
        self.lifecycle = lifecycle
        self.config = config
        self.state = state
        self.root: Tab | None = None

    @property
    def registry(self) -> SessionRegistry:
        return self.state.registry

    # ─────────────────────────────────────────────────────────────────────────
    # Opening
    # ─────────────────────────────────────────────────────────────────────────

    def _start_tab(
        self,
        handle: TargetHandle,
        browser_context_id: str,
        *,
        is_root: bool = False,
        failure: str = "Failed to register new tab",
    ) -> Tab:
        tab = Tab(self, handle, browser_context_id=browser_context_id, is_root=is_root)
        try:
            tab.start()
            tab.run_err("1")
        except (HttpClientError, ScriptError) as exc:
            tab.stop_listening()
            fail(self.lifecycle, f"{failure}: {exc}", action="open")
        return tab

    def _new_target(self, failure: str = "Failed to register new tab") -> tuple[str, TargetHandle]:
        try:
            context_id = self.client.create_browser_context()
            return context_id, self.client.new_target(context_id)
        except HttpClientError as exc:
            fail(self.lifecycle, f"{failure}: {exc}", action="open")

    def open_root(self) -> Tab:
        failure = "failed to connect to chrome"
        context_id, handle = self._new_target(failure)
        root = self._start_tab(handle, context_id, is_root=True, failure=failure)
        self.root = root
        self.registry.add(root)
        logger.info("root tab %s opened in context %s", root.target_id, context_id)
        return root

    def open_tab(self) -> Tab:
        context_id, handle = self._new_target()
        tab = self._start_tab(handle, context_id)
        self.registry.add(tab)
        logger.info("tab %s opened in context %s", tab.target_id, context_id)
        return tab

    def _adopt(self, info: TargetInfo, opener: Tab) -> Tab:
        try:
            handle = self.client.attach(info.target_id)
        except HttpClientError as exc:
            fail(self.lifecycle, f"Failed to register new tab: {exc}", action="open")
        tab = self._start_tab(handle, opener.browser_context_id)
        registered = self.registry.add(tab)
        if registered is not tab:
            # Another thread adopted the same target first.
            tab.stop_listening()
            return registered
        logger.info("adopted tab %s spawned by %s", tab.target_id, opener.target_id)
        return tab

    # ─────────────────────────────────────────────────────────────────────────
    # Discovery
    # ─────────────────────────────────────────────────────────────────────────

    def discover_tabs(self) -> Tabs:
        """Every live tab, adopting targets whose opener is a known tab."""
        try:
            targets = self.client.list_targets()
        except HttpClientError as exc:
            fail(self.lifecycle, f"Failed to list tabs:\n{exc}", action="list")

        tabs = Tabs()
        for info in targets:
            tab = self.registry.get(info.target_id)
            if tab is None:
                opener = self.registry.get(info.opener_id) if info.opener_id else None
                if opener is None:
                    continue
                tab = self._adopt(info, opener)
            tabs.append(tab)
        return tabs

    def spawned_tabs(self, tab: Tab) -> Tabs:
        """Other tabs sharing `tab`'s browser context."""
        return self.discover_tabs().filter(
            lambda other: other is not tab and other.browser_context_id == tab.browser_context_id
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Closing
    # ─────────────────────────────────────────────────────────────────────────

    def close(self, tab: Tab) -> None:
        if tab.is_root:
            raise RootTabCloseError(details={"target_id": tab.target_id})

        context_id = tab.browser_context_id
        siblings = [t for t in self.registry.in_context(context_id) if t is not tab]
        busy = [t.target_id for t in siblings if t.has_active_downloads()]
        if busy:
            raise ActiveDownloadError(details={"target_id": tab.target_id, "downloading": busy})

        if self.registry.remove(tab.target_id) is None:
            logger.debug("tab %s already closed", tab.target_id)
            return
        self._terminate(tab)
        logger.info("tab %s closed", tab.target_id)

        remaining = self.registry.in_context(context_id)
        for other in remaining:
            self.configure_downloads(other)
        if not remaining:
            self._dispose_contexts([context_id])

    def _terminate(self, tab: Tab) -> None:
        tab.stop_listening()
        try:
            self.client.close(tab.handle)
        except HttpClientError as exc:
            logger.debug("closing target %s failed: %s", tab.target_id, exc)

    def _dispose_contexts(self, context_ids: Iterable[str]) -> None:
        root_context = self.root.browser_context_id if self.root is not None else ""
        for context_id in set(context_ids):
            if not context_id or context_id == root_context:
                continue
            try:
                self.client.dispose_browser_context(context_id)
            except HttpClientError as exc:
                logger.debug("disposing browser context %s failed: %s", context_id, exc)

    # ─────────────────────────────────────────────────────────────────────────
    # Downloads
    # ─────────────────────────────────────────────────────────────────────────

    def configure_downloads(self, tab: Tab) -> None:
        params = {
            "behavior": "allowAndName",
            "downloadPath": self.state.download_dir,
            "eventsEnabled": True,
        }
        if tab.browser_context_id:
            params["browserContextId"] = tab.browser_context_id
        try:
            self.client.run_command(tab.handle, "Browser.setDownloadBehavior", params)
        except HttpClientError as exc:
            logger.warning("could not configure downloads for tab %s: %s", tab.target_id, exc)

    # ─────────────────────────────────────────────────────────────────────────
    # Per-test reset
    # ─────────────────────────────────────────────────────────────────────────

    def prepare(self, tab: Tab) -> None:
        if not tab.is_root:
            return

        doomed: dict[str, Tab] = {t.target_id: t for t in self.registry.snapshot() if not t.is_root}
        for t in self.discover_tabs():
            if not t.is_root:
                doomed.setdefault(t.target_id, t)

        for t in doomed.values():
            self.registry.remove(t.target_id)
            self._terminate(t)
        if doomed:
            logger.info("prepare closed %d tab(s)", len(doomed))
            self._dispose_contexts(t.browser_context_id for t in doomed.values())
            self.configure_downloads(tab)

        tab.reset_state()

        if self.config.failure_screenshots:
            self.lifecycle.register_cleanup(tab.attach_screenshots_if_failed)
        if self.config.progress_report_screenshots:
            self.lifecycle.register_cleanup(self.lifecycle.attach_progress_reporter(tab.progress_report))
        if self.config.interactive:
            self.lifecycle.register_cleanup(self._pause_if_failed)

        tab.navigate("about:blank")

    def _pause_if_failed(self) -> None:
        if not self.lifecycle.failed():
            return
        self.lifecycle.log(INTERACTIVE_PAUSE_MESSAGE)
        logger.warning(INTERACTIVE_PAUSE_MESSAGE)
        threading.Event().wait()


__all__ = ["INTERACTIVE_PAUSE_MESSAGE", "TabManager"]
