"""The Tab: public face of one browser tab.

A test gets the reusable root tab from `connect_to_chrome` and calls
`prepare()` on it before every test. Tabs opened with `open_tab()` or spawned
by the page are separate Tab objects sharing the root's registry, download
directory and download throttle.

Calls come in two flavours. Direct calls (`click`, `inner_text`, `run`, ...)
report a test failure through the lifecycle when something goes wrong.
Predicates (`exists`, `is_visible`, `has_inner_text`, `evaluates_to`, ...)
return a bool and raise ScriptError instead, so they compose with
`eventually()`.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, NoReturn

from .bridge import CommandBridge, ScriptResponse
from .console import ConsoleRelay
from .dialogs import Dialog, DialogHandler, DialogResolver, Dialogs, DialogType
from .downloads import Download, DownloadFilter, DownloadLedger, Downloads
from .downloads import download_with_content, download_with_filename, download_with_url
from .errors import ScriptError
from .events import (
    ConsoleMessage,
    DialogOpened,
    DownloadProgress,
    DownloadWillBegin,
    Event,
    EventDispatcher,
    FrameNavigated,
)
from .helper_script import HELPER_JS
from .http_client import HttpClientError
from .javascript import JSFunc, JSVar
from .lifecycle import fail
from .matchers import matcher_or_equal
from .properties import Properties, SliceOfProperties
from .protocol import TargetHandle
from .registry import TabFilter, Tabs, tab_with_dom_element, tab_with_title, tab_with_url
from .screenshots import as_imgcat, capture_screenshot, safe_all_tab_screenshots
from .xpath import relative_xpath, x_predicate, xpath

if TYPE_CHECKING:
    from .tab_manager import TabManager

logger = logging.getLogger("tabwright.tab")

_LOAD_SCRIPT = (
    "document.readyState === 'complete' ? true : "
    "new Promise(r => window.addEventListener('load', () => r(true), { once: true }))"
)
_STATUS_SCRIPT = (
    "(() => { const e = performance.getEntriesByType('navigation')[0]; "
    "return e && e.responseStatus ? e.responseStatus : 0; })()"
)


def _describe_exception(details: dict[str, Any]) -> str:
    exc = details.get("exception")
    if isinstance(exc, dict) and exc.get("description"):
        return str(exc["description"])
    return str(details.get("text") or "script threw an exception")


class Tab:
    def __init__(
        self,
        manager: TabManager,
        handle: TargetHandle,
        *,
        browser_context_id: str,
        is_root: bool = False,
    ) -> None:
        self._manager = manager
        self._client = manager.client
        self._state = manager.state
        self.lifecycle = manager.lifecycle
        self.config = manager.config

        self.handle = handle
        self.target_id = handle.target_id
        self.browser_context_id = browser_context_id
        self.is_root = is_root

        self._lock = threading.Lock()
        self._scripts_installed = False
        self._navigations = 0

        self._downloads = DownloadLedger(self._lock, self._state.throttle, self._state.download_dir)
        self._dialogs = DialogResolver(self._lock, self._state.next_handler_id)
        self._console = ConsoleRelay(self.lifecycle)
        self._bridge = CommandBridge(self.run_err, self._ensure_helper)
        self._dispatcher = EventDispatcher(self.target_id[:8], self._on_event)

    def __repr__(self) -> str:
        kind = "Root Tab" if self.is_root else "Tab"
        return f"<{kind} target_id={self.target_id} browser_context_id={self.browser_context_id}>"

    # ─────────────────────────────────────────────────────────────────────────
    # Wiring
    # ─────────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Subscribe to this tab's events and enable the domains that emit them."""
        self._dispatcher.bind(self._client.subscribe(self.handle, self._dispatcher.submit))
        self._client.run_command(self.handle, "Page.enable")
        self._client.run_command(self.handle, "Runtime.enable")
        self._manager.configure_downloads(self)

    def stop_listening(self) -> None:
        self._dispatcher.stop()

    def wait_for_events(self) -> None:
        """Block until every event received so far has been handled."""
        self._dispatcher.wait_idle()

    @property
    def scripts_installed(self) -> bool:
        with self._lock:
            return self._scripts_installed

    def _on_event(self, event: Event) -> None:
        if isinstance(event, DialogOpened):
            self._handle_dialog(event)
        elif isinstance(event, ConsoleMessage):
            self._console.handle(event)
        elif isinstance(event, FrameNavigated):
            with self._lock:
                self._scripts_installed = False
                self._navigations += 1
        elif isinstance(event, DownloadWillBegin):
            self._downloads.begin(event)
        elif isinstance(event, DownloadProgress):
            self._downloads.progress(event)

    def fail(self, message: str, *, action: str = "run") -> NoReturn:
        fail(self.lifecycle, message, action=action)

    # ─────────────────────────────────────────────────────────────────────────
    # Tabs
    # ─────────────────────────────────────────────────────────────────────────

    def open_tab(self) -> Tab:
        """Open a new tab in its own browser context."""
        return self._manager.open_tab()

    def all_tabs(self) -> Tabs:
        return self._manager.discover_tabs()

    def all_spawned_tabs(self) -> Tabs:
        """Tabs sharing this tab's browser context: the ones the page opened, and their opener."""
        return self._manager.spawned_tabs(self)

    def find_tab(self, f: TabFilter) -> Tab | None:
        return self.all_tabs().find(f)

    def find_spawned_tab(self, f: TabFilter) -> Tab | None:
        return self.all_spawned_tabs().find(f)

    def has_tab(self, f: TabFilter) -> bool:
        return self.find_tab(f) is not None

    def has_spawned_tab(self, f: TabFilter) -> bool:
        return self.find_spawned_tab(f) is not None

    tab_with_url = staticmethod(tab_with_url)
    tab_with_title = staticmethod(tab_with_title)
    tab_with_dom_element = staticmethod(tab_with_dom_element)

    def close(self) -> None:
        """Close this tab.

        Raises RootTabCloseError for the root tab, and ActiveDownloadError while
        another tab in the same browser context is downloading; in that case
        retry, e.g. ``eventually(tab.close)``.
        """
        self._manager.close(self)

    def prepare(self) -> None:
        """Reset the root tab for the next test. A no-op on other tabs."""
        self._manager.prepare(self)

    def reset_state(self) -> None:
        self._downloads.clear()
        self._dialogs.clear()

    # ─────────────────────────────────────────────────────────────────────────
    # Dialogs
    # ─────────────────────────────────────────────────────────────────────────

    def handle_alert_dialogs(self) -> DialogHandler:
        return self._dialogs.register(DialogType.ALERT)

    def handle_confirm_dialogs(self) -> DialogHandler:
        return self._dialogs.register(DialogType.CONFIRM)

    def handle_prompt_dialogs(self) -> DialogHandler:
        return self._dialogs.register(DialogType.PROMPT)

    def handle_beforeunload_dialogs(self) -> DialogHandler:
        return self._dialogs.register(DialogType.BEFOREUNLOAD)

    def remove_dialog_handler(self, handler: DialogHandler) -> None:
        self._dialogs.remove(handler)

    def dialogs(self) -> Dialogs:
        return self._dialogs.dialogs()

    def _handle_dialog(self, event: DialogOpened) -> None:
        dialog = self._dialogs.resolve(event)
        if dialog.autohandled:
            self.lifecycle.log(
                "tabwright automatically handled an unhandled dialog - "
                f"you should add an explicit dialog handler: {dialog.type} - {dialog.message}"
            )
        self._answer_dialog(dialog)

    def _answer_dialog(self, dialog: Dialog) -> None:
        params: dict[str, Any] = {"accept": dialog.response}
        if dialog.text:
            params["promptText"] = dialog.text

        def _worker() -> None:
            try:
                self._client.run_command(self.handle, "Page.handleJavaScriptDialog", params)
            except HttpClientError as exc:
                logger.warning("answering %s dialog on %s failed: %s", dialog.type, self.target_id, exc)

        threading.Thread(target=_worker, daemon=True, name=f"tabwright-dialog-{self.target_id[:6]}").start()

    # ─────────────────────────────────────────────────────────────────────────
    # Downloads
    # ─────────────────────────────────────────────────────────────────────────

    def all_downloads(self) -> Downloads:
        return self._downloads.all()

    def all_complete_downloads(self) -> Downloads:
        return self._downloads.complete()

    def find_complete_download(self, f: DownloadFilter) -> Download | None:
        return self.all_complete_downloads().find(f)

    def has_complete_download(self, f: DownloadFilter) -> bool:
        return self.find_complete_download(f) is not None

    def has_active_downloads(self) -> bool:
        return self._downloads.has_active()

    download_with_url = staticmethod(download_with_url)
    download_with_filename = staticmethod(download_with_filename)
    download_with_content = staticmethod(download_with_content)

    # ─────────────────────────────────────────────────────────────────────────
    # JavaScript
    # ─────────────────────────────────────────────────────────────────────────

    def run_err(self, script: str) -> Any:
        """Evaluate `script` in the page and return its JSON value.

        Raises ScriptError when the script throws and HttpClientError when the
        protocol call fails. Blocks first while the download throttle is full.
        """
        self._state.throttle.block_if_necessary()
        result = self._client.run_command(
            self.handle,
            "Runtime.evaluate",
            {
                "expression": script,
                "returnByValue": True,
                "awaitPromise": True,
                "userGesture": True,
            },
        )
        details = result.get("exceptionDetails")
        if isinstance(details, dict):
            raise ScriptError(reason=_describe_exception(details), details={"script": script})
        value = result.get("result")
        if not isinstance(value, dict):
            return None
        return value.get("value")

    def run(self, script: str) -> Any:
        try:
            return self.run_err(script)
        except (ScriptError, HttpClientError) as exc:
            self.fail(f"Failed to run script:\n{script}\n\n{exc}")

    def evaluates_to(self, script: str, expected: Any) -> bool:
        """Predicate: does `script` evaluate to (or match) `expected`?"""
        try:
            value = self.run_err(script)
        except HttpClientError as exc:
            raise ScriptError(reason=f"Failed to run script:\n{script}\n\n{exc}") from exc
        return matcher_or_equal(expected)(value)

    js_func = staticmethod(JSFunc)
    js_var = staticmethod(JSVar)

    def _ensure_helper(self) -> None:
        with self._lock:
            if self._scripts_installed:
                return
            generation = self._navigations
        self.run_err(HELPER_JS)
        with self._lock:
            # A navigation that raced the install means the new document lacks the helper.
            if self._navigations == generation:
                self._scripts_installed = True

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    def navigate(self, url: str) -> Tab:
        return self.navigate_with_status(url, 200)

    def navigate_with_status(self, url: str, status: int) -> Tab:
        """Navigate and wait for load; fail unless the main response has `status`."""
        try:
            result = self._client.run_command(self.handle, "Page.navigate", {"url": url})
        except HttpClientError as exc:
            self.fail(f"failed to navigate to {url}: {exc}", action="navigate")
        error_text = result.get("errorText")
        if error_text:
            self.fail(f"failed to navigate to {url}: {error_text}", action="navigate")

        self._wait_for_load(url)
        actual = self._response_status()
        if actual and actual != status:
            self.fail(
                f"failed to navigate to {url}: expected status code {status}, got {actual}",
                action="navigate",
            )
        return self

    def _wait_for_load(self, url: str) -> None:
        attempts = 0
        while True:
            attempts += 1
            try:
                self._client.run_command(
                    self.handle,
                    "Runtime.evaluate",
                    {"expression": _LOAD_SCRIPT, "awaitPromise": True, "returnByValue": True},
                    timeout=self.config.command_timeout,
                )
                return
            except HttpClientError as exc:
                # The execution context is replaced while a redirect or script navigation lands.
                if attempts >= 3:
                    self.fail(f"failed to navigate to {url}: {exc}", action="navigate")

    def _response_status(self) -> int:
        try:
            value = self.run_err(_STATUS_SCRIPT)
        except (ScriptError, HttpClientError):
            return 0
        return int(value or 0)

    def location(self) -> str:
        try:
            return str(self.run_err("window.location.href") or "")
        except (ScriptError, HttpClientError) as exc:
            self.fail(f"Failed to fetch location:\n{exc}")

    def title(self) -> str:
        try:
            return str(self.run_err("document.title") or "")
        except (ScriptError, HttpClientError) as exc:
            self.fail(f"Failed to fetch title:\n{exc}")

    # ─────────────────────────────────────────────────────────────────────────
    # Windows and screenshots
    # ─────────────────────────────────────────────────────────────────────────

    def window_size(self) -> tuple[int, int]:
        dims = self.run("[window.innerWidth, window.innerHeight]")
        return int(dims[0]), int(dims[1])

    def set_window_size(self, width: int, height: int, *, scale: float = 1.0, mobile: bool = False) -> None:
        """Emulate a viewport; the previous size is restored when the test ends."""
        previous = self.window_size()
        self._set_viewport(width, height, scale=scale, mobile=mobile, action="set window size")

        def _reset() -> None:
            self._set_viewport(*previous, scale=1.0, mobile=False, action="reset window size")

        self.lifecycle.register_cleanup(_reset)

    def _set_viewport(self, width: int, height: int, *, scale: float, mobile: bool, action: str) -> None:
        params = {
            "width": int(width),
            "height": int(height),
            "deviceScaleFactor": scale,
            "mobile": mobile,
            "screenOrientation": {"type": "portraitPrimary", "angle": 0},
        }
        try:
            self._client.run_command(self.handle, "Emulation.setDeviceMetricsOverride", params)
        except HttpClientError as exc:
            self.fail(f"failed to {action}: {exc}", action="window")

    def capture_screenshot(self) -> bytes:
        try:
            return capture_screenshot(self._client, self.handle)
        except HttpClientError as exc:
            self.fail(f"Failed to capture screenshot:\n{exc}", action="screenshot")

    def capture_imgcat_screenshot(self) -> str:
        return as_imgcat(self.capture_screenshot())

    def _screenshot_report(self, size: tuple[int, int] | None) -> list[str]:
        shots = safe_all_tab_screenshots(
            self._client,
            self._state.registry.snapshot(),
            timeout=self.config.screenshot_timeout,
            size=size,
        )
        return [shot.failure or f"Screenshot for: '{shot.title}'\n{shot.imgcat}" for shot in shots]

    def attach_screenshots_if_failed(self) -> None:
        if not self.lifecycle.failed():
            return
        for entry in self._screenshot_report(self.config.failure_screenshot_size):
            self.lifecycle.log(entry)

    def progress_report(self) -> str:
        """Screenshots of every tab, for a progress report on a slow or hung test."""
        return "\n".join(self._screenshot_report(self.config.progress_report_screenshot_size))

    # ─────────────────────────────────────────────────────────────────────────
    # DOM
    # ─────────────────────────────────────────────────────────────────────────

    xpath = staticmethod(xpath)
    relative_xpath = staticmethod(relative_xpath)
    x_predicate = staticmethod(x_predicate)

    def _direct(self, what: str, op: str, selector: Any, *args: Any) -> ScriptResponse:
        r = self._bridge.call(op, selector, *args)
        if r.failed:
            self.fail(f"Failed to {what}:\n{r.error}", action=op)
        return r

    def _predicate(self, op: str, selector: Any, *args: Any) -> ScriptResponse:
        r = self._bridge.call(op, selector, *args)
        r.predicate(op, selector)
        return r

    def has_element(self, selector: Any) -> bool:
        return self._direct("check if element exists", "exists", selector).success

    def count(self, selector: Any) -> int:
        return self._direct("count elements", "count", selector).result_int()

    def click(self, selector: Any) -> None:
        self._direct("click", "click", selector)

    def click_each(self, selector: Any) -> None:
        self._direct("click each", "clickEach", selector)

    def inner_text(self, selector: Any) -> str:
        return self._direct("get inner text", "getInnerText", selector).result_str()

    def get_value(self, selector: Any) -> Any:
        return self._direct("get value", "getValue", selector).result

    def set_value(self, selector: Any, value: Any) -> None:
        self._direct("set value", "setValue", selector, value)

    def is_checked(self, selector: Any) -> bool:
        return self._direct("determine if checked", "isChecked", selector).success

    def set_checked(self, selector: Any, checked: bool) -> None:
        self._direct("set checked", "setChecked", selector, checked)

    def class_list(self, selector: Any) -> list[str]:
        return self._direct("get class list", "getClassList", selector).result_str_list()

    def get_property(self, selector: Any, prop: str) -> Any:
        return self._direct(f"get property {prop}", "getProperty", selector, prop).result

    def get_property_for_each(self, selector: Any, prop: str) -> list[Any]:
        return self._direct(f"get property {prop}", "getPropertyForEach", selector, prop).result_list()

    def get_properties(self, selector: Any, *props: str) -> Properties:
        r = self._direct("get properties", "getProperties", selector, list(props))
        return Properties(r.result if isinstance(r.result, dict) else {})

    def get_properties_for_each(self, selector: Any, *props: str) -> SliceOfProperties:
        r = self._direct("get properties", "getPropertiesForEach", selector, list(props))
        return SliceOfProperties.decode(r.result)

    def set_property(self, selector: Any, prop: str, value: Any) -> None:
        self._direct(f"set property {prop}", "setProperty", selector, prop, value)

    def set_property_for_each(self, selector: Any, prop: str, value: Any) -> None:
        self._direct(f"set property {prop}", "setPropertyForEach", selector, prop, value)

    def invoke_on(self, selector: Any, method: str, *args: Any) -> Any:
        return self._direct(f"invoke {method}", "invokeOn", selector, method, *args).result

    def invoke_on_each(self, selector: Any, method: str, *args: Any) -> list[Any]:
        return self._direct(f"invoke {method}", "invokeOnEach", selector, method, *args).result_list()

    def invoke_with(self, selector: Any, script: str, *args: Any) -> Any:
        return self._direct("invoke script", "invokeWith", selector, script, *args).result

    def invoke_with_each(self, selector: Any, script: str, *args: Any) -> list[Any]:
        return self._direct("invoke script", "invokeWithEach", selector, script, *args).result_list()

    # Predicates: raise ScriptError on helper errors, for use with eventually().

    def exists(self, selector: Any) -> bool:
        return self._predicate("exists", selector).success

    def is_visible(self, selector: Any) -> bool:
        return self._predicate("isVisible", selector).success

    def is_enabled(self, selector: Any) -> bool:
        return self._predicate("isEnabled", selector).success

    def has_property(self, selector: Any, prop: str) -> bool:
        return self._predicate("hasProperty", selector, prop).success

    def each_has_property(self, selector: Any, prop: str) -> bool:
        return self._predicate("eachHasProperty", selector, prop).success

    def has_inner_text(self, selector: Any, expected: Any) -> bool:
        return matcher_or_equal(expected)(self._predicate("getInnerText", selector).result_str())

    def has_value(self, selector: Any, expected: Any) -> bool:
        return matcher_or_equal(expected)(self._predicate("getValue", selector).result)

    def has_class(self, selector: Any, class_name: str) -> bool:
        return class_name in self._predicate("getClassList", selector).result_str_list()

    def has_property_value(self, selector: Any, prop: str, expected: Any) -> bool:
        return matcher_or_equal(expected)(self._predicate("getProperty", selector, prop).result)

    def try_click(self, selector: Any) -> bool:
        """Click if the element is clickable; raise ScriptError otherwise."""
        return self._predicate("click", selector).success

    def try_set_value(self, selector: Any, value: Any) -> bool:
        return self._predicate("setValue", selector, value).success

    def try_set_checked(self, selector: Any, checked: bool) -> bool:
        return self._predicate("setChecked", selector, checked).success


__all__ = ["Tab"]
