"""Decoded element properties with forgiving getters.

Every getter returns the zero value of its type (``""``, ``0``, ``0.0``,
``False``, ``[]``) when the property is missing or null, so assertions read
naturally without None checks.
"""

from __future__ import annotations

from typing import Any

from .matchers import matcher_or_equal


def _to_str(value: Any) -> str:
    return "" if value is None else str(value)


def _to_int(value: Any) -> int:
    return 0 if value is None else int(value)


def _to_float(value: Any) -> float:
    return 0.0 if value is None else float(value)


def _to_bool(value: Any) -> bool:
    return False if value is None else bool(value)


def _to_list(value: Any) -> list[Any]:
    return [] if value is None else list(value)


class Properties(dict):
    def get_string(self, key: str) -> str:
        return _to_str(self.get(key))

    def get_int(self, key: str) -> int:
        return _to_int(self.get(key))

    def get_float(self, key: str) -> float:
        return _to_float(self.get(key))

    def get_bool(self, key: str) -> bool:
        return _to_bool(self.get(key))

    def get_list(self, key: str) -> list[Any]:
        return _to_list(self.get(key))

    def get_string_list(self, key: str) -> list[str]:
        return [_to_str(v) for v in self.get_list(key)]


class SliceOfProperties(list):
    """Properties for each matched element, in document order."""

    @classmethod
    def decode(cls, raw: Any) -> SliceOfProperties:
        if not isinstance(raw, list):
            return cls()
        return cls(Properties(item) if isinstance(item, dict) else Properties() for item in raw)

    def find(self, key: str, search: Any) -> Properties | None:
        m = matcher_or_equal(search)
        for props in self:
            if m(props.get(key)):
                return props
        return None

    def filter(self, key: str, search: Any) -> SliceOfProperties:
        m = matcher_or_equal(search)
        return SliceOfProperties(props for props in self if m(props.get(key)))

    def get(self, key: str) -> list[Any]:
        return [props.get(key) for props in self]

    def get_string(self, key: str) -> list[str]:
        return [props.get_string(key) for props in self]

    def get_int(self, key: str) -> list[int]:
        return [props.get_int(key) for props in self]

    def get_float(self, key: str) -> list[float]:
        return [props.get_float(key) for props in self]

    def get_bool(self, key: str) -> list[bool]:
        return [props.get_bool(key) for props in self]

    def get_list(self, key: str) -> list[list[Any]]:
        return [props.get_list(key) for props in self]

    def get_string_list(self, key: str) -> list[list[str]]:
        return [props.get_string_list(key) for props in self]


__all__ = ["Properties", "SliceOfProperties"]
