"""Workflow and template persistence."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from replaylens.core.types import Template, Workflow
from replaylens.exceptions import StorageError
from replaylens.logging import get_logger

log = get_logger(__name__)

KIND_WORKFLOWS = "workflows"
KIND_TEMPLATES = "templates"
KIND_STATE = "state"


@runtime_checkable
class PersistenceStore(Protocol):
    """Durable key-value storage of JSON-serializable records, grouped by kind."""

    def get(self, kind: str, record_id: str) -> dict[str, Any] | None: ...

    def put(self, kind: str, record_id: str, record: dict[str, Any]) -> None: ...

    def list(self, kind: str) -> list[dict[str, Any]]: ...

    def delete(self, kind: str, record_id: str) -> bool: ...


class JSONFileStore:
    """
    One JSON file per record.

    Directory layout::

        {data_dir}/
            workflows/{id}.json
            templates/{id}.json
            state/{name}.json

    Writes go to a temp file in the same directory and are moved into place
    with ``os.replace`` so a reader never sees a half-written record.
    """

    def __init__(self, data_dir: str | Path) -> None:
        self._dir = Path(data_dir).expanduser()
        for kind in (KIND_WORKFLOWS, KIND_TEMPLATES, KIND_STATE):
            (self._dir / kind).mkdir(parents=True, exist_ok=True)

    @property
    def data_dir(self) -> Path:
        return self._dir

    def _path(self, kind: str, record_id: str) -> Path:
        if not record_id or "/" in record_id or "\\" in record_id or record_id.startswith("."):
            raise StorageError(f"Invalid record id: {record_id!r}", context={"kind": kind})
        return self._dir / kind / f"{record_id}.json"

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            raise StorageError(
                f"Unreadable record {path.name}: {exc}", context={"path": str(path)}
            ) from exc

    def get(self, kind: str, record_id: str) -> dict[str, Any] | None:
        path = self._path(kind, record_id)
        if not path.exists():
            return None
        return self._read(path)

    def put(self, kind: str, record_id: str, record: dict[str, Any]) -> None:
        path = self._path(kind, record_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{record_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def list(self, kind: str) -> list[dict[str, Any]]:
        folder = self._dir / kind
        if not folder.is_dir():
            return []
        records = []
        for path in sorted(folder.glob("*.json")):
            try:
                records.append(self._read(path))
            except StorageError as exc:
                log.warning("record_skipped", kind=kind, error=exc.message)
        return records

    def delete(self, kind: str, record_id: str) -> bool:
        try:
            self._path(kind, record_id).unlink()
        except FileNotFoundError:
            return False
        return True


class MemoryStore:
    """In-process backend for tests and ephemeral engines."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}

    def get(self, kind: str, record_id: str) -> dict[str, Any] | None:
        record = self._data.get(kind, {}).get(record_id)
        return json.loads(json.dumps(record)) if record is not None else None

    def put(self, kind: str, record_id: str, record: dict[str, Any]) -> None:
        # Round-trip through JSON to keep the same fidelity as the file backend
        self._data.setdefault(kind, {})[record_id] = json.loads(json.dumps(record))

    def list(self, kind: str) -> list[dict[str, Any]]:
        return [json.loads(json.dumps(r)) for r in self._data.get(kind, {}).values()]

    def delete(self, kind: str, record_id: str) -> bool:
        return self._data.get(kind, {}).pop(record_id, None) is not None


class WorkflowStore:
    """
    Typed facade over a PersistenceStore, with an in-memory index of
    everything saved or loaded through it.
    """

    def __init__(self, backend: PersistenceStore | None = None) -> None:
        self._backend: PersistenceStore = backend if backend is not None else MemoryStore()
        self._workflows: dict[str, Workflow] = {}
        self._templates: dict[str, Template] = {}

    @classmethod
    def from_directory(cls, data_dir: str | Path) -> WorkflowStore:
        return cls(JSONFileStore(data_dir))

    @property
    def backend(self) -> PersistenceStore:
        return self._backend

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save(self, record: Workflow | Template) -> None:
        if isinstance(record, Workflow):
            self.save_workflow(record)
        elif isinstance(record, Template):
            self.save_template(record)
        else:
            raise TypeError(f"Cannot store {type(record).__name__}")

    def save_workflow(self, workflow: Workflow) -> None:
        self._backend.put(KIND_WORKFLOWS, workflow.id, workflow.to_dict())
        self._workflows[workflow.id] = workflow
        log.debug("workflow_saved", workflow_id=workflow.id)

    def save_template(self, template: Template) -> None:
        self._backend.put(KIND_TEMPLATES, template.id, template.to_dict())
        self._templates[template.id] = template
        log.debug("template_saved", template_id=template.id)

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load_all(self) -> list[Workflow]:
        """Load every workflow from the backend; undecodable records are skipped."""
        self._workflows = {}
        for record in self._backend.list(KIND_WORKFLOWS):
            try:
                workflow = Workflow.from_dict(record)
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("workflow_record_skipped", id=record.get("id"), error=str(exc))
                continue
            self._workflows[workflow.id] = workflow
        return list(self._workflows.values())

    def load_all_templates(self) -> list[Template]:
        self._templates = {}
        for record in self._backend.list(KIND_TEMPLATES):
            try:
                template = Template.from_dict(record)
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("template_record_skipped", id=record.get("id"), error=str(exc))
                continue
            self._templates[template.id] = template
        return list(self._templates.values())

    def get(self, workflow_id: str) -> Workflow | None:
        if workflow_id in self._workflows:
            return self._workflows[workflow_id]
        record = self._backend.get(KIND_WORKFLOWS, workflow_id)
        if record is None:
            return None
        try:
            workflow = Workflow.from_dict(record)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(
                f"Corrupt workflow record {workflow_id}: {exc}", context={"id": workflow_id}
            ) from exc
        self._workflows[workflow_id] = workflow
        return workflow

    def get_template(self, template_id: str) -> Template | None:
        if template_id in self._templates:
            return self._templates[template_id]
        record = self._backend.get(KIND_TEMPLATES, template_id)
        if record is None:
            return None
        try:
            template = Template.from_dict(record)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(
                f"Corrupt template record {template_id}: {exc}", context={"id": template_id}
            ) from exc
        self._templates[template_id] = template
        return template

    def workflows(self) -> list[Workflow]:
        return list(self._workflows.values())

    def templates(self) -> list[Template]:
        return list(self._templates.values())

    def delete(self, workflow_id: str) -> bool:
        """Delete a workflow. Returns True if it existed."""
        self._workflows.pop(workflow_id, None)
        return self._backend.delete(KIND_WORKFLOWS, workflow_id)

    # ------------------------------------------------------------------
    # Engine state
    # ------------------------------------------------------------------

    def save_state(self, name: str, state: dict[str, Any]) -> None:
        self._backend.put(KIND_STATE, name, state)

    def load_state(self, name: str) -> dict[str, Any] | None:
        return self._backend.get(KIND_STATE, name)
