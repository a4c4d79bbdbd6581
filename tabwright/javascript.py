from __future__ import annotations

import json
from typing import Any


class JSVar:
    """A JavaScript expression passed through JSFunc.invoke() unquoted.

    >>> adder = JSFunc("(...nums) => nums.reduce((s, n) => s + n, 0)")
    >>> adder.invoke(15, JSVar("app.numRecords"))
    '((...nums) => nums.reduce((s, n) => s + n, 0))(...[15, app.numRecords])'
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.placeholder = f"__tabwright_var_{id(self):x}"

    def __repr__(self) -> str:
        return f"JSVar({self.expression!r})"


class JSFunc(str):
    def __new__(cls, source: str) -> JSFunc:
        return super().__new__(cls, f"({source})")

    def invoke(self, *args: Any) -> str:
        """Render a call of this function with JSON-encoded arguments."""
        if not args:
            return f"{self}()"
        encoded = json.dumps([a.placeholder if isinstance(a, JSVar) else a for a in args])
        for arg in args:
            if isinstance(arg, JSVar):
                encoded = encoded.replace(json.dumps(arg.placeholder), arg.expression, 1)
        return f"{self}(...{encoded})"


__all__ = ["JSFunc", "JSVar"]
