"""Download bookkeeping.

Each tab keeps a ledger of the downloads it started. The root additionally
owns a DownloadThrottle: Chrome silently drops downloads once too many are in
flight (or finished within the last second), so every script evaluation
first waits until a slot is free.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .config import CHROME_DOWNLOAD_LIMIT
from .events import DownloadProgress, DownloadWillBegin
from .matchers import matcher_or_equal

logger = logging.getLogger("tabwright.downloads")

# A finished download still occupies a slot for this long.
RECENCY_WINDOW = 1.0


class Download:
    def __init__(self, guid: str, url: str, filename: str, download_dir: str) -> None:
        self.guid = guid
        self.url = url
        self.filename = filename
        self.download_dir = download_dir
        self._lock = threading.Lock()
        self._complete = False
        self._canceled = False
        self._fetched = False
        self._content: bytes | None = None

    def __repr__(self) -> str:
        return f"Download(guid={self.guid!r}, filename={self.filename!r}, state={self.state!r})"

    @property
    def state(self) -> str:
        with self._lock:
            if self._complete:
                return "complete"
            if self._canceled:
                return "canceled"
            return "pending"

    @property
    def is_complete(self) -> bool:
        with self._lock:
            return self._complete

    @property
    def is_canceled(self) -> bool:
        with self._lock:
            return self._canceled

    @property
    def is_active(self) -> bool:
        with self._lock:
            return not (self._complete or self._canceled)

    @property
    def path(self) -> Path:
        return Path(self.download_dir) / self.guid

    def finish(self, state: str) -> bool:
        """Move to a terminal state. Returns False if already terminal."""
        with self._lock:
            if self._complete or self._canceled:
                return False
            if state == "completed":
                self._complete = True
            elif state == "canceled":
                self._canceled = True
            else:
                return False
            return True

    def content(self) -> bytes | None:
        """File content, read once on first access after completion."""
        with self._lock:
            if not self._complete:
                return None
            if not self._fetched:
                try:
                    self._content = self.path.read_bytes()
                except OSError as exc:
                    logger.warning("could not read download %s: %s", self.guid, exc)
                    self._content = None
                self._fetched = True
            return self._content


DownloadFilter = Callable[[Download], bool]


class Downloads(list):
    """A snapshot list of downloads."""

    def find(self, f: DownloadFilter) -> Download | None:
        for dl in self:
            if f(dl):
                return dl
        return None

    def filter(self, f: DownloadFilter) -> Downloads:
        return Downloads(dl for dl in self if f(dl))


def download_with_url(url: Any) -> DownloadFilter:
    m = matcher_or_equal(url)
    return lambda dl: m(dl.url)


def download_with_filename(filename: Any) -> DownloadFilter:
    m = matcher_or_equal(filename)
    return lambda dl: m(dl.filename)


def download_with_content(content: Any) -> DownloadFilter:
    m = matcher_or_equal(content)
    return lambda dl: m(dl.content())


class DownloadThrottle:
    """Recency window over download GUIDs, shared by every tab of one root.

    An entry is None while the download is active and holds the completion
    time once it finishes. `lock` is the root's bookkeeping lock.
    """

    def __init__(
        self,
        limit: int = CHROME_DOWNLOAD_LIMIT,
        *,
        lock: threading.Lock | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.limit = limit
        self._lock = lock or threading.Lock()
        self._clock = clock
        self._sleep = sleep
        self._history: dict[str, float | None] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)

    def began(self, guid: str) -> None:
        with self._lock:
            self._history[guid] = None

    def finished(self, guid: str) -> None:
        with self._lock:
            self._history[guid] = self._clock()

    def block_if_necessary(self) -> None:
        with self._lock:
            if len(self._history) < self.limit:
                return
        while True:
            occupied = 0
            wait = RECENCY_WINDOW
            with self._lock:
                now = self._clock()
                for guid, finished_at in list(self._history.items()):
                    if finished_at is None:
                        occupied += 1
                        continue
                    age = now - finished_at
                    if age < RECENCY_WINDOW:
                        occupied += 1
                        wait = min(wait, RECENCY_WINDOW - age)
                    else:
                        del self._history[guid]
            if occupied < self.limit:
                return
            logger.debug("download throttle: %d slots occupied, waiting %.3fs", occupied, wait)
            self._sleep(wait)


class DownloadLedger:
    """Per-tab downloads, guarded by the owning tab's lock."""

    def __init__(self, lock: threading.Lock, throttle: DownloadThrottle, download_dir: str) -> None:
        self._lock = lock
        self._throttle = throttle
        self.download_dir = download_dir
        self._downloads: dict[str, Download] = {}

    def begin(self, event: DownloadWillBegin) -> Download:
        dl = Download(event.guid, event.url, event.suggested_filename, self.download_dir)
        with self._lock:
            self._downloads[event.guid] = dl
        self._throttle.began(event.guid)
        logger.debug("download %s began: %s", event.guid, event.url)
        return dl

    def progress(self, event: DownloadProgress) -> None:
        if not event.is_terminal:
            return
        with self._lock:
            dl = self._downloads.get(event.guid)
        if dl is not None:
            dl.finish(event.state)
        self._throttle.finished(event.guid)
        logger.debug("download %s %s", event.guid, event.state)

    def all(self) -> Downloads:
        with self._lock:
            return Downloads(self._downloads.values())

    def complete(self) -> Downloads:
        return self.all().filter(lambda dl: dl.is_complete)

    def has_active(self) -> bool:
        return any(dl.is_active for dl in self.all())

    def clear(self) -> None:
        with self._lock:
            self._downloads = {}


__all__ = [
    "Download",
    "DownloadFilter",
    "DownloadLedger",
    "DownloadThrottle",
    "Downloads",
    "RECENCY_WINDOW",
    "download_with_content",
    "download_with_filename",
    "download_with_url",
]
