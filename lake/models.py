"""
Typed records shared across pipeline stages.

Tool-layer rows travel as plain dicts (column -> value) on their way into
SQLite; the types here are what stages hand to each other.
"""

import json
from dataclasses import dataclass, field
from typing import Any


def params_json(connection_id: int, project_id: str) -> str:
    """Canonical raw-params key. Sorted and compact so equal scopes match byte-for-byte."""
    return json.dumps(
        {"ConnectionId": connection_id, "ProjectId": project_id},
        sort_keys=True,
        separators=(",", ":"),
    )


@dataclass
class PipelineOptions:
    """Scope selection for one pipeline run."""

    connection_id: int
    project_id: str
    scope_config_id: int | None = None

    def validate(self) -> "PipelineOptions":
        if not self.project_id:
            raise ValueError("asana project_id is required")
        if not isinstance(self.connection_id, int) or self.connection_id <= 0:
            raise ValueError(f"asana connection_id is invalid: {self.connection_id!r}")
        return self

    @property
    def params(self) -> str:
        return params_json(self.connection_id, self.project_id)


@dataclass
class RawRecord:
    """One verbatim API element as persisted by a collector."""

    id: int
    params: str
    data: bytes
    url: str = ""
    input: dict | None = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row) -> "RawRecord":
        data = row["data"]
        if isinstance(data, str):
            data = data.encode("utf-8")
        raw_input = row["input"]
        return cls(
            id=row["id"],
            params=row["params"],
            data=bytes(data),
            url=row["url"] or "",
            input=json.loads(raw_input) if raw_input else None,
            created_at=row["created_at"] or "",
        )

    def json(self) -> Any:
        return json.loads(self.data)


@dataclass
class AsanaTask:
    """A `_tool_asana_tasks` row as seen by classification and conversion."""

    connection_id: int
    gid: str
    name: str = ""
    notes: str = ""
    resource_type: str = ""
    resource_subtype: str = ""
    completed: bool = False
    completed_at: str | None = None
    due_on: str | None = None
    created_at: str | None = None
    modified_at: str | None = None
    permalink_url: str = ""
    project_gid: str = ""
    section_gid: str = ""
    section_name: str = ""
    assignee_gid: str = ""
    assignee_name: str = ""
    creator_gid: str = ""
    creator_name: str = ""
    parent_gid: str = ""
    num_subtasks: int = 0

    @classmethod
    def from_row(cls, row) -> "AsanaTask":
        keys = row.keys()
        values = {name: row[name] for name in cls.__dataclass_fields__ if name in keys}
        values["completed"] = bool(values.get("completed"))
        return cls(**values)


# ============================================================
# Scope configuration
# ============================================================


@dataclass
class TypeMapping:
    """Maps one Asana resource_subtype to a standard type, plus per-section statuses."""

    standard_type: str
    status_mappings: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, obj: dict) -> "TypeMapping":
        if not isinstance(obj, dict):
            raise ValueError(f"type mapping must be an object, got {type(obj).__name__}")
        raw_statuses = obj.get("statusMappings") or {}
        if not isinstance(raw_statuses, dict):
            raise ValueError("statusMappings must be an object keyed by section name")
        statuses = {}
        for section_name, mapping in raw_statuses.items():
            if not isinstance(mapping, dict):
                raise ValueError(f"status mapping for {section_name!r} must be an object")
            if mapping.get("standardStatus"):
                statuses[section_name] = mapping["standardStatus"]
        return cls(standard_type=obj.get("standardType") or "", status_mappings=statuses)

    def to_json(self) -> dict:
        return {
            "standardType": self.standard_type,
            "statusMappings": {
                name: {"standardStatus": status} for name, status in self.status_mappings.items()
            },
        }


def parse_type_mappings(raw: str | dict | None) -> dict[str, TypeMapping]:
    if not raw:
        return {}
    obj = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(obj, dict):
        raise ValueError("type mappings must be an object keyed by resource_subtype")
    return {subtype: TypeMapping.from_json(mapping) for subtype, mapping in obj.items()}


@dataclass
class ScopeConfig:
    """Classification rules for a project. Read-only to the pipeline."""

    id: int | None = None
    connection_id: int = 0
    name: str = ""
    issue_type_requirement: str = ""
    issue_type_bug: str = ""
    issue_type_incident: str = ""
    type_mappings: dict[str, TypeMapping] = field(default_factory=dict)
    application_type: str = ""
    story_point_field: str = ""
    priority_field: str = ""
    epic_field: str = ""
    severity_field: str = ""
    due_date_field: str = ""

    @classmethod
    def from_row(cls, row) -> "ScopeConfig":
        return cls(
            id=row["id"],
            connection_id=row["connection_id"],
            name=row["name"],
            issue_type_requirement=row["issue_type_requirement"] or "",
            issue_type_bug=row["issue_type_bug"] or "",
            issue_type_incident=row["issue_type_incident"] or "",
            type_mappings=parse_type_mappings(row["type_mappings"]),
            application_type=row["application_type"] or "",
            story_point_field=row["story_point_field"] or "",
            priority_field=row["priority_field"] or "",
            epic_field=row["epic_field"] or "",
            severity_field=row["severity_field"] or "",
            due_date_field=row["due_date_field"] or "",
        )

    def to_row(self) -> dict:
        row = {
            "connection_id": self.connection_id,
            "name": self.name,
            "issue_type_requirement": self.issue_type_requirement,
            "issue_type_bug": self.issue_type_bug,
            "issue_type_incident": self.issue_type_incident,
            "type_mappings": json.dumps(
                {k: v.to_json() for k, v in self.type_mappings.items()}, sort_keys=True
            ),
            "application_type": self.application_type,
            "story_point_field": self.story_point_field,
            "priority_field": self.priority_field,
            "epic_field": self.epic_field,
            "severity_field": self.severity_field,
            "due_date_field": self.due_date_field,
        }
        if self.id is not None:
            row["id"] = self.id
        return row
