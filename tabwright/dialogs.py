"""JavaScript dialog handling.

Dialogs block the page until someone answers them, so every dialog gets an
answer: the most recently registered matching handler decides, and when no
handler matches a default policy applies (accept `beforeunload`, dismiss the
rest) and the dialog is flagged as autohandled.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .events import DialogOpened
from .matchers import Matcher, matcher_or_equal

logger = logging.getLogger("tabwright.dialogs")


class DialogType(str, Enum):
    ALERT = "alert"
    CONFIRM = "confirm"
    PROMPT = "prompt"
    BEFOREUNLOAD = "beforeunload"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Dialog:
    type: str
    message: str
    default_prompt: str = ""
    response: bool = False
    text: str = ""
    # True when no registered handler matched and the default policy answered.
    autohandled: bool = False


class DialogHandler:
    """Returned by Tab.handle_*_dialogs(); configure it fluently.

    >>> tab.handle_confirm_dialogs().matching_message("Delete?").with_response(True)
    """

    def __init__(self, dialog_type: DialogType | str, handler_id: int = 0) -> None:
        self.dialog_type = DialogType(dialog_type)
        self.id = handler_id
        self.response = False
        self.text: str | None = None
        self._matcher: Matcher | None = None

    def __repr__(self) -> str:
        return f"DialogHandler(id={self.id}, type={self.dialog_type.value!r}, response={self.response})"

    def matching_message(self, message: Any) -> DialogHandler:
        """Only handle dialogs whose message equals (or matches) `message`."""
        self._matcher = matcher_or_equal(message)
        return self

    def with_response(self, accept: bool) -> DialogHandler:
        self.response = bool(accept)
        return self

    def with_text(self, text: str) -> DialogHandler:
        """Prompt text to send back. Implies accepting the dialog."""
        self.text = text
        self.response = True
        return self

    def matches(self, dialog_type: str, message: str) -> bool:
        if dialog_type != self.dialog_type.value:
            return False
        if self._matcher is None:
            return True
        try:
            return self._matcher(message)
        except Exception as exc:
            # A broken matcher must not leave the dialog unanswered.
            logger.warning("dialog handler %d matcher raised, treating as no match: %s", self.id, exc)
            return False


class Dialogs(list):
    def most_recent(self) -> Dialog | None:
        return self[-1] if self else None

    def of_type(self, dialog_type: DialogType | str) -> Dialogs:
        wanted = DialogType(dialog_type).value
        return Dialogs(d for d in self if d.type == wanted)

    def matching_message(self, message: Any) -> Dialogs:
        m = matcher_or_equal(message)
        return Dialogs(d for d in self if m(d.message))


def default_response(dialog_type: str) -> bool:
    return dialog_type == DialogType.BEFOREUNLOAD.value


class DialogResolver:
    """Handlers and the dialog log of one tab, guarded by that tab's lock.

    Handler ids come from `next_id`, a counter owned by the root.
    """

    def __init__(self, lock: threading.Lock, next_id: Callable[[], int]) -> None:
        self._lock = lock
        self._next_id = next_id
        self._handlers: list[DialogHandler] = []
        self._dialogs: list[Dialog] = []

    def register(self, dialog_type: DialogType | str) -> DialogHandler:
        handler = DialogHandler(dialog_type, self._next_id())
        with self._lock:
            self._handlers.append(handler)
        return handler

    def remove(self, handler: DialogHandler) -> None:
        with self._lock:
            self._handlers = [h for h in self._handlers if h.id != handler.id]

    def resolve(self, event: DialogOpened) -> Dialog:
        with self._lock:
            handler = next(
                (h for h in reversed(self._handlers) if h.matches(event.type, event.message)),
                None,
            )
            if handler is None:
                dialog = Dialog(
                    type=event.type,
                    message=event.message,
                    default_prompt=event.default_prompt,
                    response=default_response(event.type),
                    text="",
                    autohandled=True,
                )
            else:
                text = ""
                if handler.response:
                    text = handler.text if handler.text is not None else event.default_prompt
                dialog = Dialog(
                    type=event.type,
                    message=event.message,
                    default_prompt=event.default_prompt,
                    response=handler.response,
                    text=text,
                )
            self._dialogs.append(dialog)
        if dialog.autohandled:
            logger.warning(
                "automatically handled an unhandled dialog, add an explicit dialog handler: %s - %s",
                dialog.type,
                dialog.message,
            )
        return dialog

    def dialogs(self) -> Dialogs:
        with self._lock:
            return Dialogs(self._dialogs)

    def handlers(self) -> list[DialogHandler]:
        with self._lock:
            return list(self._handlers)

    def clear(self) -> None:
        with self._lock:
            self._handlers = []
            self._dialogs = []


__all__ = [
    "Dialog",
    "DialogHandler",
    "DialogResolver",
    "DialogType",
    "Dialogs",
    "default_response",
]
