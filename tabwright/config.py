from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BINARY_CANDIDATES: list[str] = [
    # Prefer Chromium for better compatibility.
    # IMPORTANT: Avoid snap versions - they ignore --user-data-dir!
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/local/bin/chromium",
    "/opt/chromium/chromium",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "C:\\Program Files\\Chromium\\Application\\chrome.exe",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/opt/google/chrome/chrome",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    "/snap/bin/chromium",
]

# Chrome silently drops downloads beyond this many in flight per browser process.
CHROME_DOWNLOAD_LIMIT = 10


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def env_flag(raw: str | None, default: bool = False) -> bool:
    v = (raw or "").strip().lower()
    if not v:
        return default
    if v in {"0", "false", "no", "off"}:
        return False
    return True


@dataclass
class HarnessConfig:
    binary_path: str
    headless: bool = True
    interactive: bool = False
    window_width: int = 1024
    window_height: int = 768
    download_limit: int = CHROME_DOWNLOAD_LIMIT
    command_timeout: float = 10.0
    screenshot_timeout: float = 1.0
    debug_logging: bool = False
    failure_screenshots: bool = True
    failure_screenshot_size: tuple[int, int] | None = None
    progress_report_screenshots: bool = True
    progress_report_screenshot_size: tuple[int, int] | None = None
    config_dir: str = "."
    extra_flags: list[str] = field(default_factory=list)

    @classmethod
    def detect_binary(cls) -> str:
        env_path = os.environ.get("TABWRIGHT_BROWSER_BINARY")
        if env_path:
            return expand_path(env_path)
        for candidate in DEFAULT_BINARY_CANDIDATES:
            path = Path(candidate)
            if path.exists() and os.access(str(path), os.X_OK):
                return str(path)
        # Last resort: rely on PATH lookup
        return "google-chrome"

    @classmethod
    def from_env(cls) -> HarnessConfig:
        interactive = env_flag(os.environ.get("TABWRIGHT_INTERACTIVE"))
        # Interactive mode is pointless without a visible window.
        headless = env_flag(os.environ.get("TABWRIGHT_HEADLESS"), default=True) and not interactive
        try:
            limit = int(os.environ.get("TABWRIGHT_DOWNLOAD_LIMIT", str(CHROME_DOWNLOAD_LIMIT)))
        except ValueError:
            limit = CHROME_DOWNLOAD_LIMIT
        try:
            timeout = float(os.environ.get("TABWRIGHT_COMMAND_TIMEOUT", "10"))
        except ValueError:
            timeout = 10.0
        flags_raw = os.environ.get("TABWRIGHT_BROWSER_FLAGS", "")
        extra_flags = [flag.strip() for flag in flags_raw.split(",") if flag.strip()]
        return cls(
            binary_path=cls.detect_binary(),
            headless=headless,
            interactive=interactive,
            download_limit=max(1, limit),
            command_timeout=max(0.5, timeout),
            debug_logging=env_flag(os.environ.get("TABWRIGHT_DEBUG")),
            failure_screenshots=env_flag(os.environ.get("TABWRIGHT_FAILURE_SCREENSHOTS"), default=True),
            progress_report_screenshots=env_flag(os.environ.get("TABWRIGHT_PROGRESS_SCREENSHOTS"), default=True),
            config_dir=expand_path(os.environ.get("TABWRIGHT_CONFIG_DIR", ".")),
            extra_flags=extra_flags,
        )
