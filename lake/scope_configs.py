"""
Scopes and scope configs of an Asana connection.

A scope is a project chosen for collection (a `_tool_asana_projects` row);
a scope config holds the classification rules a project points at through
its scope_config_id. Shared by the HTTP API and the CLI.
"""

import logging
import re
import sqlite3
from datetime import UTC, datetime

from lake.classify import IssueStatus, IssueType
from lake.models import ScopeConfig, parse_type_mappings
from lake.store import LakeStore

logger = logging.getLogger(__name__)

SCOPE_CONFIG_TABLE = "_tool_asana_scope_configs"
PROJECT_TABLE = "_tool_asana_projects"

PATTERN_FIELDS = ("issue_type_requirement", "issue_type_bug", "issue_type_incident")
TEXT_FIELDS = (
    "name",
    *PATTERN_FIELDS,
    "application_type",
    "story_point_field",
    "priority_field",
    "epic_field",
    "severity_field",
    "due_date_field",
)
SCOPE_FIELDS = ("name", "resource_type", "archived", "workspace_gid", "permalink_url")


class ScopeConfigNotFound(Exception):
    pass


class ScopeNotFound(Exception):
    pass


class ScopeConfigConflict(Exception):
    """Name already taken, or the config is still referenced by projects."""


def _now() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")


def validate_scope_config(scope_config: ScopeConfig) -> ScopeConfig:
    """Reject configs the classifier could only half-apply."""
    if not scope_config.name.strip():
        raise ValueError("scope config name is required")
    for field_name in PATTERN_FIELDS:
        pattern = getattr(scope_config, field_name)
        if not pattern:
            continue
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"{field_name}: invalid pattern {pattern!r}: {e}") from e
    for subtype, mapping in scope_config.type_mappings.items():
        if mapping.standard_type and mapping.standard_type not in IssueType.ALL:
            raise ValueError(f"typeMappings[{subtype}]: unknown standard type {mapping.standard_type!r}")
        for section, status in mapping.status_mappings.items():
            if status not in IssueStatus.ALL:
                raise ValueError(
                    f"typeMappings[{subtype}].statusMappings[{section}]: unknown status {status!r}"
                )
    return scope_config


# ============================================================
# Scope configs
# ============================================================


def list_scope_configs(store: LakeStore, connection_id: int) -> list[ScopeConfig]:
    rows = store.find(SCOPE_CONFIG_TABLE, "connection_id = ?", [connection_id], order_by="id")
    return [ScopeConfig.from_row(row) for row in rows]


def get_scope_config(store: LakeStore, connection_id: int, scope_config_id: int) -> ScopeConfig:
    row = store.find_one(
        SCOPE_CONFIG_TABLE, "connection_id = ? AND id = ?", [connection_id, scope_config_id]
    )
    if not row:
        raise ScopeConfigNotFound(
            f"scope config {scope_config_id} not found for connection {connection_id}"
        )
    return ScopeConfig.from_row(row)


def create_scope_config(store: LakeStore, scope_config: ScopeConfig) -> ScopeConfig:
    validate_scope_config(scope_config)
    row = scope_config.to_row()
    row.pop("id", None)
    try:
        new_id = store.insert(SCOPE_CONFIG_TABLE, row)
    except sqlite3.IntegrityError as e:
        raise ScopeConfigConflict(
            f"scope config {scope_config.name!r} already exists for connection "
            f"{scope_config.connection_id}"
        ) from e
    logger.info(
        f"Created scope config {new_id} ({scope_config.name}) "
        f"for connection {scope_config.connection_id}"
    )
    return get_scope_config(store, scope_config.connection_id, new_id)


def update_scope_config(
    store: LakeStore, connection_id: int, scope_config_id: int, changes: dict
) -> ScopeConfig:
    """
    Apply a partial update. `changes` uses column names; type_mappings may be
    given in its JSON shape ({subtype: {standardType, statusMappings}}).
    """
    current = get_scope_config(store, connection_id, scope_config_id)
    for key, value in changes.items():
        if value is None:
            continue
        if key == "type_mappings":
            current.type_mappings = parse_type_mappings(value)
        elif key in TEXT_FIELDS:
            setattr(current, key, value)
        else:
            raise ValueError(f"unknown scope config field {key!r}")
    validate_scope_config(current)

    row = current.to_row()
    row.pop("id", None)
    row["updated_at"] = _now()
    try:
        store.update_where(
            SCOPE_CONFIG_TABLE, row, "connection_id = ? AND id = ?", [connection_id, scope_config_id]
        )
    except sqlite3.IntegrityError as e:
        raise ScopeConfigConflict(f"scope config {current.name!r} already exists") from e
    return get_scope_config(store, connection_id, scope_config_id)


def projects_using(store: LakeStore, connection_id: int, scope_config_id: int) -> list[dict]:
    return store.find(
        PROJECT_TABLE,
        "connection_id = ? AND scope_config_id = ?",
        [connection_id, scope_config_id],
        order_by="gid",
    )


def delete_scope_config(store: LakeStore, connection_id: int, scope_config_id: int) -> None:
    get_scope_config(store, connection_id, scope_config_id)
    in_use = projects_using(store, connection_id, scope_config_id)
    if in_use:
        names = ", ".join(p["name"] or p["gid"] for p in in_use)
        raise ScopeConfigConflict(f"scope config {scope_config_id} is used by: {names}")
    store.delete_where(
        SCOPE_CONFIG_TABLE, "connection_id = ? AND id = ?", [connection_id, scope_config_id]
    )
    logger.info(f"Deleted scope config {scope_config_id} of connection {connection_id}")


# ============================================================
# Scopes
# ============================================================


def list_scopes(store: LakeStore, connection_id: int) -> list[dict]:
    return store.find(PROJECT_TABLE, "connection_id = ?", [connection_id], order_by="gid")


def get_scope(store: LakeStore, connection_id: int, gid: str) -> dict:
    row = store.find_one(PROJECT_TABLE, "connection_id = ? AND gid = ?", [connection_id, gid])
    if not row:
        raise ScopeNotFound(f"project {gid} is not a scope of connection {connection_id}")
    return row


def put_scopes(store: LakeStore, connection_id: int, projects: list[dict]) -> list[dict]:
    """
    Upsert chosen projects (as returned by the remote scope browser).

    An existing project keeps its scope_config_id unless one is given.
    """
    saved = []
    for project in projects:
        gid = project.get("gid") or ""
        if not gid:
            raise ValueError("every scope needs a gid")
        scope_config_id = project.get("scope_config_id")
        if scope_config_id is not None:
            get_scope_config(store, connection_id, scope_config_id)
        existing = store.find_one(
            PROJECT_TABLE, "connection_id = ? AND gid = ?", [connection_id, gid]
        )
        row = dict(existing or {})
        row.update({k: project[k] for k in SCOPE_FIELDS if project.get(k) is not None})
        row["connection_id"] = connection_id
        row["gid"] = gid
        if scope_config_id is not None:
            row["scope_config_id"] = scope_config_id
        store.upsert_many(PROJECT_TABLE, [row])
        saved.append(get_scope(store, connection_id, gid))
    logger.info(f"Saved {len(saved)} scopes for connection {connection_id}")
    return saved


def assign_scope_config(
    store: LakeStore, connection_id: int, gid: str, scope_config_id: int | None
) -> dict:
    """Point a project at a scope config, or clear it with None."""
    get_scope(store, connection_id, gid)
    if scope_config_id is not None:
        get_scope_config(store, connection_id, scope_config_id)
    store.update_where(
        PROJECT_TABLE,
        {"scope_config_id": scope_config_id},
        "connection_id = ? AND gid = ?",
        [connection_id, gid],
    )
    return get_scope(store, connection_id, gid)


def delete_scope(store: LakeStore, connection_id: int, gid: str) -> None:
    get_scope(store, connection_id, gid)
    store.delete_where(PROJECT_TABLE, "connection_id = ? AND gid = ?", [connection_id, gid])
    logger.info(f"Deleted scope {gid} of connection {connection_id}")
