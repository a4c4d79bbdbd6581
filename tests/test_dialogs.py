from __future__ import annotations

import re
import threading

import pytest


def _resolver():  # noqa: ANN202
    import itertools

    from tabwright.dialogs import DialogResolver

    ids = itertools.count(1)
    return DialogResolver(threading.Lock(), lambda: next(ids))


def _opened(dialog_type: str, message: str = "", default_prompt: str = ""):  # noqa: ANN202
    from tabwright.events import DialogOpened

    return DialogOpened(type=dialog_type, message=message, default_prompt=default_prompt)


def test_unhandled_dialogs_use_default_policy() -> None:
    resolver = _resolver()

    alert = resolver.resolve(_opened("alert", "hi"))
    unload = resolver.resolve(_opened("beforeunload"))
    prompt = resolver.resolve(_opened("prompt", "name?", "bob"))

    assert alert.response is False and alert.autohandled
    assert unload.response is True and unload.autohandled
    assert prompt.response is False and prompt.text == ""
    assert [d.type for d in resolver.dialogs()] == ["alert", "beforeunload", "prompt"]


def test_most_recent_matching_handler_wins() -> None:
    resolver = _resolver()
    resolver.register("confirm").with_response(True)
    resolver.register("confirm").matching_message("Delete?").with_response(False)

    delete = resolver.resolve(_opened("confirm", "Delete?"))
    other = resolver.resolve(_opened("confirm", "Save?"))

    assert delete.response is False and not delete.autohandled
    assert other.response is True and not other.autohandled


def test_removed_handler_no_longer_matches() -> None:
    resolver = _resolver()
    first = resolver.register("confirm").with_response(True)
    second = resolver.register("confirm").with_response(False)

    resolver.remove(second)

    assert resolver.handlers() == [first]
    assert resolver.resolve(_opened("confirm", "ok?")).response is True


def test_prompt_text_and_default_prompt() -> None:
    resolver = _resolver()
    handler = resolver.register("prompt").matching_message(re.compile("^Name")).with_text("alice")

    named = resolver.resolve(_opened("prompt", "Name please", "bob"))
    handler.text = None
    defaulted = resolver.resolve(_opened("prompt", "Name again", "bob"))

    assert handler.response is True
    assert named.response is True and named.text == "alice"
    assert defaulted.text == "bob"


def test_handler_ids_are_unique() -> None:
    resolver = _resolver()
    ids = {resolver.register(t).id for t in ("alert", "alert", "prompt", "confirm")}
    assert len(ids) == 4


def test_dialog_type_rejects_unknown_kind() -> None:
    from tabwright.dialogs import DialogHandler

    with pytest.raises(ValueError):
        DialogHandler("toast")


def test_dialogs_list_queries() -> None:
    from tabwright.dialogs import Dialog, Dialogs, DialogType

    dialogs = Dialogs(
        [
            Dialog(type="alert", message="one"),
            Dialog(type="confirm", message="two"),
            Dialog(type="alert", message="three"),
        ]
    )

    assert dialogs.most_recent().message == "three"
    assert [d.message for d in dialogs.of_type(DialogType.ALERT)] == ["one", "three"]
    assert [d.message for d in dialogs.matching_message(re.compile("t"))] == ["two", "three"]
    assert Dialogs().most_recent() is None


def test_tab_answers_dialog_and_logs_autohandled(root, fake_client, lifecycle) -> None:  # noqa: ANN001
    root.handle_prompt_dialogs().with_text("secret")

    fake_client.emit(root.target_id, "Page.javascriptDialogOpening", {"type": "prompt", "message": "pw?"})
    fake_client.emit(root.target_id, "Page.javascriptDialogOpening", {"type": "alert", "message": "boom"})
    root.wait_for_events()
    replies = fake_client.wait_for("Page.handleJavaScriptDialog", count=2)

    assert {"accept": True, "promptText": "secret"} in replies
    assert {"accept": False} in replies
    assert [d.autohandled for d in root.dialogs()] == [False, True]
    assert any("automatically handled an unhandled dialog" in line and "alert - boom" in line for line in lifecycle.logs)


def test_prepare_forgets_dialog_handlers(root, fake_client) -> None:  # noqa: ANN001
    root.handle_confirm_dialogs().with_response(True)
    root.prepare()

    fake_client.emit(root.target_id, "Page.javascriptDialogOpening", {"type": "confirm", "message": "?"})
    root.wait_for_events()

    assert root.dialogs().most_recent().autohandled


def test_raising_matcher_counts_as_no_match() -> None:
    resolver = _resolver()

    def broken(_message: str) -> bool:
        raise ValueError("bad matcher")

    resolver.register("confirm").with_response(True)
    resolver.register("confirm").matching_message(broken).with_response(False)

    dialog = resolver.resolve(_opened("confirm", "Delete?"))

    assert dialog.response is True and not dialog.autohandled
    assert len(resolver.dialogs()) == 1


def test_tab_answers_dialog_when_matcher_raises(root, fake_client) -> None:  # noqa: ANN001
    def broken(_message: str) -> bool:
        raise ValueError("bad matcher")

    root.handle_confirm_dialogs().matching_message(broken).with_response(True)

    fake_client.emit(root.target_id, "Page.javascriptDialogOpening", {"type": "confirm", "message": "sure?"})
    root.wait_for_events()

    assert fake_client.wait_for("Page.handleJavaScriptDialog") == [{"accept": False}]
    assert root.dialogs().most_recent().autohandled
