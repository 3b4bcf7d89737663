"""Variable substitution shared by template generation and replay."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

# {{name}} or ${name}; substituted in one pass so values are never re-scanned
_SUBST_RE = re.compile(r"\{\{([^}]+)\}\}|\$\{([^}]+)\}")

# Combined scanner; alternation order matters only for overlapping spans.
_ANY_RE = re.compile(
    r"\{\{(?P<mustache>[^}]+)\}\}|\$\{(?P<dollar>[^}]+)\}|\[(?P<bracket>[A-Z_]+)\]"
)

SYNTAX_MUSTACHE = "mustache"
SYNTAX_DOLLAR = "dollar"
SYNTAX_BRACKET = "bracket"

_FORMATS = {
    SYNTAX_MUSTACHE: "{{{{{}}}}}",
    SYNTAX_DOLLAR: "${{{}}}",
    SYNTAX_BRACKET: "[{}]",
}


@dataclass(frozen=True)
class VariableRef:
    name: str
    syntax: str  # mustache | dollar | bracket
    raw: str  # the literal text matched, e.g. "{{user}}"


def placeholder(name: str, syntax: str = SYNTAX_MUSTACHE) -> str:
    """Render *name* in the given variable syntax."""
    return _FORMATS[syntax].format(name)


class VariableResolver:
    """
    Replaces ``{{name}}`` and ``${name}`` with run-time parameters.

    Unknown names are left exactly as written so that a missing parameter
    shows up literally in the dispatched request instead of raising.
    ``[NAME]`` placeholders are recognised by ``find`` (templates) but are
    never substituted at replay time.
    """

    def resolve(self, text: Any, parameters: dict[str, Any]) -> Any:
        if not isinstance(text, str) or not text:
            return text

        def replacer(m: re.Match) -> str:
            key = (m.group(1) or m.group(2)).strip()
            if key in parameters and parameters[key] is not None:
                return str(parameters[key])
            return m.group(0)

        return _SUBST_RE.sub(replacer, text)

    def resolve_value(self, value: Any, parameters: dict[str, Any]) -> Any:
        """Deep-resolve strings inside mappings, lists and tuples."""
        if isinstance(value, str):
            return self.resolve(value, parameters)
        if isinstance(value, Mapping):
            return {k: self.resolve_value(v, parameters) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self.resolve_value(v, parameters) for v in value)
        return value

    @staticmethod
    def find(text: str) -> Iterator[VariableRef]:
        """Yield every variable reference in *text*, in order of appearance."""
        for m in _ANY_RE.finditer(text):
            syntax = m.lastgroup or SYNTAX_MUSTACHE
            yield VariableRef(name=m.group(syntax).strip(), syntax=syntax, raw=m.group(0))

    def names(self, text: str) -> list[str]:
        """Distinct variable names in *text* (first appearance wins)."""
        seen: dict[str, None] = {}
        for ref in self.find(text):
            seen.setdefault(ref.name, None)
        return list(seen)

    @staticmethod
    def has_variables(text: str | None) -> bool:
        return bool(text) and _ANY_RE.search(text) is not None
