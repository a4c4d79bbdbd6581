from __future__ import annotations

import pytest


def test_open_root_starts_domains_and_registers(root, fake_client, manager) -> None:  # noqa: ANN001
    methods = [m for t, m, _ in fake_client.commands if t == root.target_id]

    assert root.is_root
    assert methods[:3] == ["Page.enable", "Runtime.enable", "Browser.setDownloadBehavior"]
    assert manager.registry.get(root.target_id) is root
    assert "Root Tab" in repr(root)


def test_closing_root_is_refused(root) -> None:  # noqa: ANN001
    from tabwright.errors import RootTabCloseError

    with pytest.raises(RootTabCloseError) as exc:
        root.close()
    assert "invalid attempt to close the root tab" in str(exc.value)


def test_open_tab_gets_its_own_context_and_close_disposes_it(root, fake_client, manager) -> None:  # noqa: ANN001
    tab = root.open_tab()

    assert tab.browser_context_id != root.browser_context_id
    assert len(manager.registry) == 2

    tab.close()

    assert fake_client.closed == [tab.target_id]
    assert fake_client.disposed == [tab.browser_context_id]
    assert tab.target_id not in manager.registry


def test_spawned_tabs_are_adopted_once(root, fake_client) -> None:  # noqa: ANN001
    opener = root.open_tab()
    child_id = fake_client.spawn(opener.target_id, "https://example.test/popup")

    first = opener.all_spawned_tabs()
    second = opener.all_spawned_tabs()

    assert [t.target_id for t in first] == [child_id]
    assert first[0] is second[0]
    assert fake_client.attached.count(child_id) == 1

    child = first[0]
    assert child.browser_context_id == opener.browser_context_id
    assert [t.target_id for t in child.all_spawned_tabs()] == [opener.target_id]
    assert root.all_spawned_tabs() == []
    assert {t.target_id for t in root.all_tabs()} == {root.target_id, opener.target_id, child_id}


def test_unknown_targets_without_known_opener_are_ignored(root, fake_client) -> None:  # noqa: ANN001
    fake_client.new_target(None)
    assert [t.target_id for t in root.all_tabs()] == [root.target_id]


def test_close_blocked_by_sibling_download(root, fake_client, manager) -> None:  # noqa: ANN001
    from tabwright.errors import ActiveDownloadError

    opener = root.open_tab()
    fake_client.spawn(opener.target_id)
    child = opener.all_spawned_tabs()[0]

    fake_client.emit(opener.target_id, "Browser.downloadWillBegin", {"guid": "g1", "url": "u"})
    opener.wait_for_events()

    with pytest.raises(ActiveDownloadError) as exc:
        child.close()
    assert exc.value.details["downloading"] == [opener.target_id]
    assert child.target_id in manager.registry
    assert fake_client.closed == []

    fake_client.emit(opener.target_id, "Browser.downloadProgress", {"guid": "g1", "state": "completed"})
    opener.wait_for_events()
    configured_before = len(fake_client.calls("Browser.setDownloadBehavior", opener.target_id))

    child.close()

    assert fake_client.closed == [child.target_id]
    # The context survives, and its remaining tab gets downloads re-applied.
    assert fake_client.disposed == []
    assert len(fake_client.calls("Browser.setDownloadBehavior", opener.target_id)) == configured_before + 1


def test_closing_twice_is_harmless(root, fake_client) -> None:  # noqa: ANN001
    tab = root.open_tab()
    tab.close()
    tab.close()
    assert fake_client.closed == [tab.target_id]


def test_prepare_closes_everything_but_root(root, fake_client, manager) -> None:  # noqa: ANN001
    tab = root.open_tab()
    fake_client.spawn(tab.target_id)
    fake_client.spawn(root.target_id)

    root.prepare()

    assert manager.registry.snapshot() == [root]
    assert len(fake_client.closed) == 3
    assert tab.browser_context_id in fake_client.disposed
    assert root.browser_context_id not in fake_client.disposed
    assert fake_client.calls("Page.navigate", root.target_id)[-1] == {"url": "about:blank"}


def test_prepare_on_other_tabs_is_a_noop(root, fake_client) -> None:  # noqa: ANN001
    tab = root.open_tab()
    tab.prepare()
    assert fake_client.calls("Page.navigate") == []


def test_prepare_registers_failure_screenshots(root, lifecycle, manager) -> None:  # noqa: ANN001
    manager.config.failure_screenshots = True
    root.prepare()
    assert root.attach_screenshots_if_failed in lifecycle.cleanups


def test_listing_failure_is_reported(root, fake_client, lifecycle) -> None:  # noqa: ANN001
    from tabwright.errors import TabFailure
    from tabwright.http_client import HttpClientError

    fake_client.list_error = HttpClientError("connection reset")

    with pytest.raises(TabFailure):
        root.all_tabs()
    assert lifecycle.failures == ["Failed to list tabs:\nconnection reset"]


def test_tab_filters(root, fake_client) -> None:  # noqa: ANN001
    import re

    fake_client.helper["exists"] = {"success": True}

    assert root.has_tab(root.tab_with_url("about:blank"))
    assert root.find_tab(root.tab_with_title(re.compile("nothing"))) is None
    assert root.find_tab(root.tab_with_dom_element("#app")) is root


def test_attach_screenshots_only_when_failed(root, fake_client, lifecycle) -> None:  # noqa: ANN001
    import base64

    fake_client.responders["Page.captureScreenshot"] = lambda _h, _p: {"data": base64.b64encode(b"png").decode()}
    fake_client.responders["Page.getLayoutMetrics"] = lambda _h, _p: {"cssContentSize": {"width": 10, "height": 20}}

    root.attach_screenshots_if_failed()
    assert lifecycle.logs == []

    lifecycle.marked_failed = True
    root.attach_screenshots_if_failed()

    assert len(lifecycle.logs) == 1
    assert lifecycle.logs[0].startswith("Screenshot for: ''\n\033]1337;File=;inline=1:")


def test_eventually_closes_once_sibling_download_finishes(root, fake_client, manager, clock) -> None:  # noqa: ANN001
    from tabwright.retry import eventually

    opener = root.open_tab()
    fake_client.spawn(opener.target_id)
    child = opener.all_spawned_tabs()[0]
    fake_client.emit(opener.target_id, "Browser.downloadWillBegin", {"guid": "g1", "url": "u"})
    opener.wait_for_events()

    def finish_download(_seconds: float) -> None:
        fake_client.emit(opener.target_id, "Browser.downloadProgress", {"guid": "g1", "state": "completed"})
        opener.wait_for_events()

    clock.on_sleep = finish_download
    eventually(child.close, clock=clock, sleep=clock.sleep)

    assert len(clock.sleeps) == 1
    assert fake_client.closed == [child.target_id]
    assert child.target_id not in manager.registry


def _event_threads() -> int:
    import threading

    return sum(1 for t in threading.enumerate() if t.name.startswith("tabwright-events-"))


def test_open_tab_that_never_responds_is_reported(root, fake_client, lifecycle, manager) -> None:  # noqa: ANN001
    from tabwright.errors import TabFailure
    from tabwright.http_client import HttpClientError

    def unresponsive(_handle, _params):  # noqa: ANN001, ANN202
        raise HttpClientError("CDP response timed out after 1.0s")

    threads_before = _event_threads()
    fake_client.responders["Page.enable"] = unresponsive

    with pytest.raises(TabFailure):
        root.open_tab()

    assert lifecycle.failures == ["Failed to register new tab: CDP response timed out after 1.0s"]
    assert _event_threads() == threads_before
    assert len(manager.registry) == 1


def test_target_creation_failure_is_reported(root, fake_client, lifecycle, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    from tabwright.errors import TabFailure
    from tabwright.http_client import HttpClientError

    def refuse(_browser_context_id, url="about:blank"):  # noqa: ANN001, ANN202, ARG001
        raise HttpClientError("Target closed")

    monkeypatch.setattr(fake_client, "new_target", refuse)

    with pytest.raises(TabFailure):
        root.open_tab()
    assert lifecycle.failures == ["Failed to register new tab: Target closed"]


def test_prepare_attaches_progress_report_screenshots(root, fake_client, lifecycle, manager) -> None:  # noqa: ANN001
    import base64

    fake_client.responders["Page.captureScreenshot"] = lambda _h, _p: {"data": base64.b64encode(b"png").decode()}
    fake_client.responders["Page.getLayoutMetrics"] = lambda _h, _p: {"cssContentSize": {"width": 10, "height": 20}}
    manager.config.progress_report_screenshot_size = (320, 200)

    root.prepare()

    assert lifecycle.reporters == [root.progress_report]
    report = lifecycle.reporters[0]()
    assert report.startswith("Screenshot for: ''\n\033]1337;File=;inline=1:")
    assert fake_client.calls("Page.captureScreenshot")[-1]["clip"]["width"] == 320

    lifecycle.run_cleanups()
    assert lifecycle.reporters == []


def test_progress_report_screenshots_can_be_disabled(root, lifecycle, manager) -> None:  # noqa: ANN001
    manager.config.progress_report_screenshots = False
    root.prepare()
    assert lifecycle.reporters == []
