"""A small string-building DSL for XPath selectors.

    >>> xpath("button").with_class("primary").with_text("Save")
    "//button[contains(concat(' ',normalize-space(@class),' '),' primary ')][text()='Save']"

XPath values are plain strings, so they can be passed wherever a selector is
accepted. Values are interpolated as-is and must not contain single quotes.
"""

from __future__ import annotations


class XPath(str):
    def _extend(self, suffix: str) -> XPath:
        return XPath(str(self) + suffix)

    @staticmethod
    def _predicate_body(predicate: str) -> str:
        return predicate[1:-1]

    def with_attr(self, attr: str, value: str) -> XPath:
        return self._extend(f"[@{attr}='{value}']")

    def with_attr_starts_with(self, attr: str, value: str) -> XPath:
        return self._extend(f"[starts-with(@{attr}, '{value}')]")

    def with_attr_contains(self, attr: str, value: str) -> XPath:
        return self._extend(f"[contains(@{attr}, '{value}')]")

    def with_text(self, value: str) -> XPath:
        return self._extend(f"[text()='{value}']")

    def with_text_starts_with(self, value: str) -> XPath:
        return self._extend(f"[starts-with(text(), '{value}')]")

    def with_text_contains(self, value: str) -> XPath:
        return self._extend(f"[contains(text(), '{value}')]")

    def with_id(self, id_: str) -> XPath:
        return self.with_attr("id", id_)

    def with_class(self, class_: str) -> XPath:
        return self._extend(f"[contains(concat(' ',normalize-space(@class),' '),' {class_} ')]")

    def with_child_matching(self, child: str) -> XPath:
        return self._extend(f"[{child}]")

    def not_(self, predicate: str) -> XPath:
        """Negate a predicate built from x_predicate()."""
        return self._extend(f"[not({self._predicate_body(predicate)})]")

    def or_(self, *predicates: str) -> XPath:
        joined = " or ".join(f"({self._predicate_body(p)})" for p in predicates)
        return self._extend(f"[{joined}]")

    def and_(self, *predicates: str) -> XPath:
        joined = " and ".join(f"({self._predicate_body(p)})" for p in predicates)
        return self._extend(f"[{joined}]")

    def child(self, tag: str = "*") -> XPath:
        return self._extend(f"/{tag}")

    def parent(self) -> XPath:
        return self._extend("/..")

    def descendant(self, tag: str = "*") -> XPath:
        return self._extend(f"//{tag}")

    def descendant_not_self(self, tag: str = "*") -> XPath:
        return self._extend(f"/descendant::{tag}")

    def ancestor(self, tag: str = "*") -> XPath:
        return self._extend(f"/ancestor-or-self::{tag}")

    def ancestor_not_self(self, tag: str = "*") -> XPath:
        return self._extend(f"/ancestor::{tag}")

    def following_sibling(self, tag: str = "*") -> XPath:
        return self._extend(f"/following-sibling::{tag}")

    def preceding_sibling(self, tag: str = "*") -> XPath:
        return self._extend(f"/preceding-sibling::{tag}")

    def first(self) -> XPath:
        return self._extend("[1]")

    def last(self) -> XPath:
        return self._extend("[last()]")

    def nth(self, n: int) -> XPath:
        """1-based, as in XPath itself."""
        return self._extend(f"[{n}]")


def xpath(path: str | None = None) -> XPath:
    if not path:
        return XPath("//*")
    if path.startswith("/") or path.startswith("./"):
        return XPath(path)
    return XPath("//" + path)


def relative_xpath(path: str | None = None) -> XPath:
    if not path:
        return XPath("./*")
    if path.startswith("/") or path.startswith("./"):
        return XPath(path)
    return XPath("./" + path)


def x_predicate() -> XPath:
    """Empty XPath to build predicates for not_/or_/and_."""
    return XPath("")


__all__ = ["XPath", "relative_xpath", "x_predicate", "xpath"]
