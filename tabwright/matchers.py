from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

Matcher = Callable[[Any], bool]


def matcher_or_equal(expected: Any) -> Matcher:
    """Turn a filter argument into a predicate.

    Callables are used as-is, compiled regular expressions must `search` a
    string value, anything else is compared with ==.
    """
    if isinstance(expected, re.Pattern):
        return lambda actual: isinstance(actual, (str, bytes)) and expected.search(actual) is not None
    if callable(expected):
        return lambda actual: bool(expected(actual))
    return lambda actual: actual == expected


__all__ = ["Matcher", "matcher_or_equal"]
