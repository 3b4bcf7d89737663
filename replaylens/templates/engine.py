"""Turn a concrete workflow into a reusable, parameterized template."""

from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import replace
from typing import TYPE_CHECKING, Iterable, Sequence
from urllib.parse import urlsplit

from replaylens.core.types import (
    GroupStep,
    InputStep,
    NavigationStep,
    Step,
    Template,
    TemplateVariable,
    VariableType,
    Workflow,
    new_id,
    now_ms,
)
from replaylens.exceptions import WorkflowNotFoundError
from replaylens.executor.resolver import (
    SYNTAX_BRACKET,
    SYNTAX_DOLLAR,
    SYNTAX_MUSTACHE,
    VariableResolver,
    placeholder,
)
from replaylens.logging import get_logger

if TYPE_CHECKING:
    from replaylens.storage.store import WorkflowStore

log = get_logger(__name__)

# Checked in order; first substring hit wins
_TYPE_HINTS: list[tuple[tuple[str, ...], VariableType]] = [
    (("email",), VariableType.EMAIL),
    (("url", "link"), VariableType.URL),
    (("phone",), VariableType.PHONE),
    (("date",), VariableType.DATE),
    (("number", "amount"), VariableType.NUMBER),
]

# Tie-break order when picking the predominant syntax
_SYNTAX_ORDER = (SYNTAX_MUSTACHE, SYNTAX_DOLLAR, SYNTAX_BRACKET)

# Where to look for a readable name inside a target selector
_NAME_HINT_RES = [
    re.compile(r'data-testid="([^"]+)"'),
    re.compile(r'\bid="([^"]+)"'),
    re.compile(r"#([\w-]+)"),
    re.compile(r'name="([^"]+)"'),
]
_WORD_RE = re.compile(r"[A-Za-z]+")

BASE_URL = "BASE_URL"
_FALLBACK_INPUT_NAME = "INPUT_VALUE"


def infer_type(name: str) -> VariableType:
    lowered = name.lower()
    for needles, var_type in _TYPE_HINTS:
        if any(n in lowered for n in needles):
            return var_type
    return VariableType.TEXT


def variable_name_for(target: str | None) -> str:
    """``'#user-email'`` → ``'USER_EMAIL_VALUE'``.

    Names use letters and underscores only so they are valid in every syntax.
    """
    hint = ""
    if target:
        primary = target.split(",")[0]
        for pattern in _NAME_HINT_RES:
            m = pattern.search(primary)
            if m:
                hint = m.group(1)
                break
        else:
            words = _WORD_RE.findall(primary)
            hint = words[-1] if words else ""
    cleaned = re.sub(r"[^A-Za-z]+", "_", hint).strip("_").upper()
    return f"{cleaned}_VALUE" if cleaned else _FALLBACK_INPUT_NAME


class TemplateEngine:
    """Generates templates from stored workflows and persists them."""

    def __init__(self, store: WorkflowStore | None = None, resolver: VariableResolver | None = None) -> None:
        self._store = store
        self._resolver = resolver or VariableResolver()

    def generate_template_from_workflow(self, workflow_id: str, name: str) -> Template:
        """Raises WorkflowNotFoundError when *workflow_id* is unknown."""
        workflow = self._store.get(workflow_id) if self._store is not None else None
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)

        template = self.from_workflow(workflow, name)
        if self._store is not None:
            self._store.save_template(template)
        log.info(
            "template_generated",
            template_id=template.id,
            workflow_id=workflow_id,
            variables=[v.name for v in template.variables],
        )
        return template

    def from_workflow(self, workflow: Workflow, name: str) -> Template:
        syntax = self.predominant_syntax(workflow.steps)
        steps = _Abstractor(syntax, self.scan_variables(workflow.steps)).run(workflow.steps)
        variables = tuple(
            TemplateVariable(
                name=var_name,
                type=infer_type(var_name),
                required=True,
                description=f"Variable for {var_name}",
            )
            for var_name in self.scan_variables(steps)
        )
        return Template(
            id=new_id(),
            name=name,
            description=f"Template generated from {workflow.name}",
            category=workflow.category,
            base_workflow_id=workflow.id,
            variables=variables,
            steps=tuple(steps),
            created=now_ms(),
        )

    def scan_variables(self, steps: Sequence[Step]) -> list[str]:
        """Distinct names across ``{{}}``, ``${}`` and ``[NAME]`` references."""
        names: dict[str, None] = {}
        for step in steps:
            for var_name in self._resolver.names(json.dumps(step.to_dict(), default=str)):
                names.setdefault(var_name, None)
        return list(names)

    def predominant_syntax(self, steps: Sequence[Step]) -> str:
        counts: Counter[str] = Counter()
        for step in steps:
            for ref in self._resolver.find(json.dumps(step.to_dict(), default=str)):
                counts[ref.syntax] += 1
        if not counts:
            return SYNTAX_MUSTACHE
        return max(_SYNTAX_ORDER, key=lambda s: (counts[s], -_SYNTAX_ORDER.index(s)))


class _Abstractor:
    """Replaces literal input values and the navigation origin with placeholders."""

    def __init__(self, syntax: str, reserved: Iterable[str] = ()) -> None:
        self.syntax = syntax
        self.base_origin: str | None = None
        # Names already referenced by the workflow are never reissued
        self._used: set[str] = set(reserved)

    def run(self, steps: Sequence[Step]) -> list[Step]:
        return [self._abstract(step) for step in steps]

    def _unique(self, name: str) -> str:
        candidate, suffix = name, ord("B")
        while candidate in self._used:
            candidate = f"{name}_{chr(suffix)}"
            suffix += 1
        self._used.add(candidate)
        return candidate

    def _abstract(self, step: Step) -> Step:
        if isinstance(step, GroupStep):
            return replace(step, steps=tuple(self._abstract(s) for s in step.steps))
        if isinstance(step, InputStep):
            return self._abstract_input(step)
        if isinstance(step, NavigationStep):
            return self._abstract_navigation(step)
        return step

    def _abstract_input(self, step: InputStep) -> Step:
        if not step.value or VariableResolver.has_variables(step.value):
            return step
        var_name = self._unique(variable_name_for(step.target))
        return replace(step, value=placeholder(var_name, self.syntax))

    def _abstract_navigation(self, step: NavigationStep) -> Step:
        if not step.url or VariableResolver.has_variables(step.url):
            return step
        parts = urlsplit(step.url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            return step
        origin = f"{parts.scheme}://{parts.netloc}"
        if self.base_origin is None:
            self.base_origin = origin
        if origin != self.base_origin:
            return step

        url = placeholder(BASE_URL, self.syntax) + step.url[len(origin):]
        target = url if step.target == step.url else step.target
        return replace(step, url=url, target=target)
