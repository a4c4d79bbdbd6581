from __future__ import annotations

import threading


def test_decode_known_events() -> None:
    from tabwright.events import DialogOpened, DownloadProgress, FrameNavigated, decode_event

    dialog = decode_event(
        {"method": "Page.javascriptDialogOpening", "params": {"type": "prompt", "message": "?", "defaultPrompt": "x"}}
    )
    assert dialog == DialogOpened(type="prompt", message="?", default_prompt="x")

    nav = decode_event({"method": "Page.frameNavigated", "params": {"frame": {"id": "f2", "parentId": "f1"}}})
    assert isinstance(nav, FrameNavigated) and not nav.is_main_frame

    progress = decode_event(
        {"method": "Browser.downloadProgress", "params": {"guid": "g", "state": "canceled", "receivedBytes": 12}}
    )
    assert progress == DownloadProgress(guid="g", state="canceled", received_bytes=12)
    assert progress.is_terminal


def test_unknown_and_malformed_events() -> None:
    from tabwright.events import ConsoleMessage, decode_event

    assert decode_event({"method": "Network.requestWillBeSent", "params": {}}) is None
    assert decode_event({}) is None

    console = decode_event({"method": "Runtime.consoleAPICalled", "params": {"args": "oops", "stackTrace": []}})
    assert console == ConsoleMessage(type="")


def test_dispatcher_preserves_order_and_survives_handler_errors() -> None:
    from tabwright.events import EventDispatcher

    seen: list[str] = []

    def handler(event) -> None:  # noqa: ANN001
        if event.guid == "bad":
            raise RuntimeError("handler bug")
        seen.append(event.guid)

    dispatcher = EventDispatcher("test", handler)
    try:
        for guid in ("a", "bad", "b", "c"):
            dispatcher.submit({"method": "Browser.downloadWillBegin", "params": {"guid": guid}})
        dispatcher.submit({"method": "Page.loadEventFired", "params": {}})
        dispatcher.wait_idle()
        assert seen == ["a", "b", "c"]
    finally:
        dispatcher.stop()


def test_dispatcher_stop_unsubscribes_and_drops_late_events() -> None:
    from tabwright.events import EventDispatcher

    unsubscribed = threading.Event()
    seen: list[object] = []
    dispatcher = EventDispatcher("test", seen.append)
    dispatcher.bind(unsubscribed.set)

    dispatcher.stop()
    dispatcher.stop()
    dispatcher.submit({"method": "Browser.downloadWillBegin", "params": {"guid": "late"}})

    assert unsubscribed.is_set()
    assert seen == []
