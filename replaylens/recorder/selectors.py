"""Selector hardening: rewrite captured selectors into fallback lists.

Pure string rewriting, no DOM access.  The output is a comma-separated
selector list ordered by ``_STRATEGY_PRIORITY``; the Playwright surface tries
each alternative in turn.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Mapping

from replaylens.executor.resolver import VariableResolver


class SelectorStrategy(str, Enum):
    TEST_ID = "test_id"
    ID = "id"
    CSS = "css"
    TEXT = "text"


# Priority order for selector strategies (most reliable first)
_STRATEGY_PRIORITY: list[SelectorStrategy] = [
    SelectorStrategy.TEST_ID,
    SelectorStrategy.ID,
    SelectorStrategy.CSS,
    SelectorStrategy.TEXT,
]

# Context keys the capture script may use for the same attribute
_TEST_ID_KEYS = ("testId", "data-testid", "dataTestId", "test_id")
_TEXT_KEYS = ("textContent", "text_content", "text")

# #some-id as a whole compound selector
_ID_ONLY_RE = re.compile(r"^#(-?[_a-zA-Z][\w-]*)$")
# id="x" attribute form inside a selector
_ID_ATTR_RE = re.compile(r'\[id="([^"]+)"\]')
# .class token (outside brackets / quotes, see _rewrite_outside)
_CLASS_RE = re.compile(r"\.(-?[_a-zA-Z][\w-]*)")

_MAX_TEXT_LEN = 100


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _rewrite_outside(selector: str, pattern: re.Pattern, repl: str) -> str:
    """Apply *pattern* only to the parts of *selector* not inside [] or quotes."""
    out: list[str] = []
    chunk: list[str] = []
    depth = 0
    quote: str | None = None

    def flush() -> None:
        if chunk:
            out.append(pattern.sub(repl, "".join(chunk)))
            chunk.clear()

    for ch in selector:
        if quote:
            out.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in "\"'":
            flush()
            quote = ch
            out.append(ch)
        elif ch == "[":
            flush()
            depth += 1
            out.append(ch)
        elif ch == "]":
            depth = max(0, depth - 1)
            out.append(ch)
        elif depth:
            out.append(ch)
        else:
            chunk.append(ch)
    flush()
    return "".join(out)


def _first(context: Mapping[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = context.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class SelectorHardener:
    """Builds a stable-first fallback selector list for a captured target."""

    def candidates(
        self, selector: str, context: Mapping[str, Any] | None = None
    ) -> dict[SelectorStrategy, str]:
        context = context or {}
        found: dict[SelectorStrategy, str] = {}

        test_id = _first(context, _TEST_ID_KEYS)
        if test_id:
            found[SelectorStrategy.TEST_ID] = f'[data-testid="{_escape(test_id)}"]'

        element_id = context.get("id") if isinstance(context.get("id"), str) else None
        id_only = _ID_ONLY_RE.match(selector)
        m = id_only or _ID_ATTR_RE.search(selector)
        if m:
            element_id = m.group(1)
            # Elements addressed by id are often also tagged for tests
            found.setdefault(SelectorStrategy.TEST_ID, f'[data-testid="{_escape(element_id)}"]')
        if element_id:
            found[SelectorStrategy.ID] = f'[id="{_escape(element_id)}"]'

        if not id_only:
            css = _rewrite_outside(selector, _CLASS_RE, r'[class*="\1"]')
            if css != found.get(SelectorStrategy.ID):
                found[SelectorStrategy.CSS] = css

        text = _first(context, _TEXT_KEYS)
        if text and len(text) <= _MAX_TEXT_LEN:
            found[SelectorStrategy.TEXT] = f':text("{_escape(text)}")'

        return found

    def harden(self, selector: str | None, context: Mapping[str, Any] | None = None) -> str | None:
        """Return the hardened selector list, or *selector* unchanged if it
        is empty, already hardened, or a variable placeholder."""
        if not selector or not selector.strip():
            return selector
        if self.is_hardened(selector) or VariableResolver.has_variables(selector):
            return selector

        found = self.candidates(selector.strip(), context)
        ordered: list[str] = []
        for strategy in _STRATEGY_PRIORITY:
            value = found.get(strategy)
            if value and value not in ordered:
                ordered.append(value)
        return ", ".join(ordered) if ordered else selector

    @staticmethod
    def is_hardened(selector: str) -> bool:
        return '[class*="' in selector or '[data-testid="' in selector or ':text("' in selector
