"""Relay of page console output to the test log."""

from __future__ import annotations

import json
import logging
import textwrap
from datetime import datetime
from typing import Any

from .events import ConsoleMessage
from .lifecycle import TestLifecycle

logger = logging.getLogger("tabwright.console")

# console.* kinds that are relayed; everything else (table, dir, trace, ...) is dropped.
RELAYED_TYPES = frozenset({"log", "debug", "info", "error", "warning", "assert"})
STACK_TRACE_TYPES = frozenset({"error", "warning", "assert"})
WRAP_WIDTH = 80


def render_remote_object(obj: dict[str, Any]) -> str:
    if "value" in obj:
        value = obj["value"]
        return value if isinstance(value, str) else json.dumps(value)
    if obj.get("type") == "undefined":
        return "undefined"
    preview = obj.get("preview")
    if isinstance(preview, dict):
        props = [p for p in preview.get("properties") or [] if isinstance(p, dict)]
        if preview.get("subtype") == "array":
            return "[" + ", ".join(str(p.get("value", "")) for p in props) + "]"
        return "{" + ", ".join(f"{p.get('name', '')}: {p.get('value', '')}" for p in props) + "}"
    description = obj.get("description")
    if isinstance(description, str) and description:
        return description
    return "<nil>"


def render_stack_trace(stack_trace: dict[str, Any]) -> str:
    lines = ["Stack Trace"]
    for frame in stack_trace.get("callFrames") or []:
        if isinstance(frame, dict):
            lines.append(f"{frame.get('functionName', '')} {frame.get('url', '')}:{frame.get('lineNumber', 0)}")
    return "\n".join(lines)


def render_message(event: ConsoleMessage) -> str:
    parts = [render_remote_object(arg) for arg in event.args]
    if sum(len(p) for p in parts) > WRAP_WIDTH and parts:
        rest = [textwrap.fill(p, WRAP_WIDTH, initial_indent=" " * 5, subsequent_indent=" " * 5) for p in parts[1:]]
        return "\n".join([parts[0], *rest])
    return " - ".join(parts)


def _clock(timestamp: float) -> str:
    # Runtime.consoleAPICalled timestamps are milliseconds since the epoch.
    if timestamp <= 0:
        return "--:--"
    return datetime.fromtimestamp(timestamp / 1000.0).strftime("%H:%M")


class ConsoleRelay:
    def __init__(self, lifecycle: TestLifecycle) -> None:
        self.lifecycle = lifecycle

    def handle(self, event: ConsoleMessage) -> None:
        if event.type not in RELAYED_TYPES:
            return
        message = render_message(event)
        self.lifecycle.log(f"[{_clock(event.timestamp)}] {message}")

        frames = (event.stack_trace or {}).get("callFrames") or []
        if event.type in STACK_TRACE_TYPES and len(frames) > 1:
            self.lifecycle.log(textwrap.indent(render_stack_trace(event.stack_trace or {}), "  "))

        if event.type == "assert":
            logger.error("console.assert failed: %s", message)
            self.lifecycle.report_failure(f"Detected console.assert failure:\n{message}")


__all__ = ["ConsoleRelay", "render_message", "render_remote_object", "render_stack_trace"]
