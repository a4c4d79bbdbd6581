from __future__ import annotations

import base64
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .cdp import CdpError
from .http_client import HttpClientError
from .protocol import ProtocolClient, TargetHandle

if TYPE_CHECKING:
    from .tab import Tab

logger = logging.getLogger("tabwright.screenshots")

IMGCAT_PREFIX = "\033]1337;File=;inline=1:"
IMGCAT_SUFFIX = "\033\\"


def capture_screenshot(
    client: ProtocolClient,
    handle: TargetHandle,
    *,
    size: tuple[int, int] | None = None,
    timeout: float | None = None,
) -> bytes:
    """Full-page PNG of the target (or the top-left `size` region)."""
    if size is None:
        metrics = client.run_command(handle, "Page.getLayoutMetrics", timeout=timeout)
        content = metrics.get("cssContentSize") or metrics.get("contentSize") or {}
        width = int(content.get("width") or 0)
        height = int(content.get("height") or 0)
    else:
        width, height = size
    params: dict[str, Any] = {"format": "png", "captureBeyondViewport": True}
    if width > 0 and height > 0:
        params["clip"] = {"x": 0, "y": 0, "width": width, "height": height, "scale": 1}
    result = client.run_command(handle, "Page.captureScreenshot", params, timeout=timeout)
    data = result.get("data")
    if not isinstance(data, str):
        raise CdpError("screenshot returned no data", method="Page.captureScreenshot")
    return base64.b64decode(data)


def as_imgcat(img: bytes) -> str:
    """Encode an image as an iTerm2 inline-image escape sequence."""
    return IMGCAT_PREFIX + base64.b64encode(img).decode("ascii") + IMGCAT_SUFFIX


@dataclass
class TabScreenshot:
    title: str = ""
    imgcat: str = ""
    failure: str = ""


def _is_timeout(exc: Exception) -> bool:
    return "timed out" in str(exc).lower()


def safe_all_tab_screenshots(
    client: ProtocolClient,
    tabs: Iterable[Tab],
    *,
    timeout: float = 1.0,
    size: tuple[int, int] | None = None,
) -> list[TabScreenshot]:
    """Screenshot every tab; a tab that fails gets a failure string instead of aborting the rest."""
    out: list[TabScreenshot] = []
    for tab in tabs:
        try:
            title = client.run_command(
                tab.handle,
                "Runtime.evaluate",
                {"expression": "document.title", "returnByValue": True},
                timeout=timeout,
            )
            img = capture_screenshot(client, tab.handle, size=size, timeout=timeout)
        except HttpClientError as exc:
            if _is_timeout(exc):
                out.append(TabScreenshot(failure="Timed out attempting to fetch screenshot for tab"))
            else:
                out.append(TabScreenshot(failure=f"Failed to fetch screenshot for tab: {exc}"))
            continue
        value = (title.get("result") or {}).get("value")
        out.append(TabScreenshot(title=str(value or ""), imgcat=as_imgcat(img)))
    return out


__all__ = [
    "IMGCAT_PREFIX",
    "IMGCAT_SUFFIX",
    "TabScreenshot",
    "as_imgcat",
    "capture_screenshot",
    "safe_all_tab_screenshots",
]
