"""Command bridge to the in-page DOM helper.

Each DOM operation is one ``Runtime.evaluate`` of
``window._tabwright.<op>(<selector>, <args...>)``; the helper answers with a
``{success, error, result}`` envelope decoded into ScriptResponse.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .errors import ScriptError
from .http_client import HttpClientError
from .xpath import XPath

logger = logging.getLogger("tabwright.bridge")

HELPER_OPERATIONS = frozenset(
    {
        "exists",
        "count",
        "isVisible",
        "isEnabled",
        "click",
        "clickEach",
        "getInnerText",
        "getValue",
        "setValue",
        "isChecked",
        "setChecked",
        "getClassList",
        "hasProperty",
        "eachHasProperty",
        "getProperty",
        "getPropertyForEach",
        "getProperties",
        "getPropertiesForEach",
        "setProperty",
        "setPropertyForEach",
        "invokeOn",
        "invokeOnEach",
        "invokeWith",
        "invokeWithEach",
    }
)


@dataclass
class ScriptResponse:
    success: bool = False
    error: str = ""
    result: Any = None
    guard: str = ""

    @classmethod
    def from_envelope(cls, raw: Any) -> ScriptResponse:
        if not isinstance(raw, dict):
            return cls(error=f"malformed helper response: {raw!r}")
        return cls(
            success=bool(raw.get("success")),
            error=str(raw.get("error") or ""),
            result=raw.get("result"),
            guard=str(raw.get("guard") or ""),
        )

    @property
    def failed(self) -> bool:
        return bool(self.error)

    def result_str(self) -> str:
        return "" if self.result is None else str(self.result)

    def result_bool(self) -> bool:
        return bool(self.result)

    def result_int(self) -> int:
        return 0 if self.result is None else int(self.result)

    def result_list(self) -> list[Any]:
        return list(self.result) if isinstance(self.result, list) else []

    def result_str_list(self) -> list[str]:
        return ["" if v is None else str(v) for v in self.result_list()]

    def predicate(self, op: str = "", selector: Any = None) -> bool:
        """Outcome for retry-loop style checks: raise on error, else success."""
        if self.error:
            raise ScriptError(
                action=op or "run",
                reason=self.error,
                details={"selector": str(selector) if selector is not None else None},
            )
        return self.success


def encode_selector(selector: Any) -> str:
    if isinstance(selector, XPath):
        return "x" + selector
    if isinstance(selector, str):
        if not selector:
            raise ValueError("empty selector")
        if selector.startswith("/"):
            return "x" + selector
        return "s" + selector
    raise TypeError(f"invalid selector type {type(selector).__name__}")


def build_call(op: str, selector: Any, *args: Any) -> str:
    if op not in HELPER_OPERATIONS:
        raise ValueError(f"unknown helper operation {op!r}")
    params = [json.dumps(encode_selector(selector))]
    params.extend(json.dumps(arg) for arg in args)
    return f"window._tabwright.{op}({', '.join(params)})"


class CommandBridge:
    """Runs helper operations through `run_script`, installing the helper first if needed."""

    def __init__(self, run_script: Callable[[str], Any], ensure_helper: Callable[[], None]) -> None:
        self._run_script = run_script
        self._ensure_helper = ensure_helper

    def call(self, op: str, selector: Any, *args: Any) -> ScriptResponse:
        try:
            expression = build_call(op, selector, *args)
        except (TypeError, ValueError) as exc:
            return ScriptResponse(error=str(exc))
        try:
            self._ensure_helper()
            raw = self._run_script(expression)
        except (ScriptError, HttpClientError) as exc:
            logger.debug("helper call %s failed: %s", op, exc)
            return ScriptResponse(error=str(exc))
        return ScriptResponse.from_envelope(raw)


__all__ = [
    "CommandBridge",
    "HELPER_OPERATIONS",
    "ScriptResponse",
    "build_call",
    "encode_selector",
]
