"""Session registry: which tabs exist for one root.

The root owns a single bookkeeping lock that guards the registry, the download
throttle's recency map and the dialog handler id counter. It is never held
while a protocol command is in flight.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

from .config import CHROME_DOWNLOAD_LIMIT
from .downloads import DownloadThrottle
from .matchers import matcher_or_equal

if TYPE_CHECKING:
    from .tab import Tab

TabFilter = Callable[["Tab"], bool]


class Tabs(list):
    """A snapshot list of tabs."""

    def find(self, f: TabFilter) -> Tab | None:
        for tab in self:
            if f(tab):
                return tab
        return None

    def filter(self, f: TabFilter) -> Tabs:
        return Tabs(tab for tab in self if f(tab))


def tab_with_url(url: Any) -> TabFilter:
    m = matcher_or_equal(url)
    return lambda tab: m(tab.location())


def tab_with_title(title: Any) -> TabFilter:
    m = matcher_or_equal(title)
    return lambda tab: m(tab.title())


def tab_with_dom_element(selector: Any) -> TabFilter:
    return lambda tab: tab.has_element(selector)


class SessionRegistry:
    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock
        self._tabs: dict[str, Tab] = {}

    def __contains__(self, target_id: object) -> bool:
        with self._lock:
            return target_id in self._tabs

    def __len__(self) -> int:
        with self._lock:
            return len(self._tabs)

    def __iter__(self) -> Iterator[Tab]:
        return iter(self.snapshot())

    def get(self, target_id: str) -> Tab | None:
        with self._lock:
            return self._tabs.get(target_id)

    def add(self, tab: Tab) -> Tab:
        """Register `tab`, or return the tab already registered under its target id."""
        with self._lock:
            existing = self._tabs.get(tab.target_id)
            if existing is not None:
                return existing
            self._tabs[tab.target_id] = tab
            return tab

    def remove(self, target_id: str) -> Tab | None:
        with self._lock:
            return self._tabs.pop(target_id, None)

    def snapshot(self) -> list[Tab]:
        with self._lock:
            return list(self._tabs.values())

    def in_context(self, browser_context_id: str) -> list[Tab]:
        return [t for t in self.snapshot() if t.browser_context_id == browser_context_id]


class RootState:
    """State shared by every tab of one connection, owned by the root."""

    def __init__(
        self,
        download_dir: str,
        *,
        download_limit: int = CHROME_DOWNLOAD_LIMIT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.lock = threading.Lock()
        self.download_dir = download_dir
        self.registry = SessionRegistry(self.lock)
        self.throttle = DownloadThrottle(download_limit, lock=self.lock, clock=clock, sleep=sleep)
        self._handler_counter = 0

    def next_handler_id(self) -> int:
        with self.lock:
            self._handler_counter += 1
            return self._handler_counter


__all__ = [
    "RootState",
    "SessionRegistry",
    "TabFilter",
    "Tabs",
    "tab_with_dom_element",
    "tab_with_title",
    "tab_with_url",
]
