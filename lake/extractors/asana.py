"""
Asana extract stages.

API payloads are parsed into frozen dataclasses first. Every nested reference
(workspace, assignee, created_by, parent, project, section, photo, target) is
optional in the API; each one resolves through GidRef.from_json, so an absent
or null reference becomes an empty gid/name and never an error.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from lake.collectors.asana import (
    RAW_PROJECT_TABLE,
    RAW_SECTION_TABLE,
    RAW_STORY_TABLE,
    RAW_SUBTASK_TABLE,
    RAW_TAG_TABLE,
    RAW_TASK_TABLE,
    RAW_USER_TABLE,
)
from lake.context import PipelineContext
from lake.models import RawRecord

from .base import ApiExtractor, ExtractedRows

logger = logging.getLogger(__name__)


def _text(obj: dict, key: str) -> str:
    value = obj.get(key)
    return value if isinstance(value, str) else ""


def _timestamp(obj: dict, key: str) -> str | None:
    return _text(obj, key) or None


def parse_date(value: str | None) -> str | None:
    """YYYY-MM-DD dates; empty or unparsable values become None."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date().isoformat()
    except (TypeError, ValueError):
        logger.debug(f"Could not parse date {value!r}")
        return None


# ============================================================
# API shapes
# ============================================================


@dataclass(frozen=True)
class GidRef:
    """A compact `{gid, name}` reference to another resource."""

    gid: str = ""
    name: str = ""

    @classmethod
    def from_json(cls, obj) -> "GidRef":
        if not isinstance(obj, dict):
            return cls()
        return cls(gid=_text(obj, "gid"), name=_text(obj, "name"))


@dataclass(frozen=True)
class ApiMembership:
    project: GidRef
    section: GidRef

    @classmethod
    def from_json(cls, obj) -> "ApiMembership":
        obj = obj if isinstance(obj, dict) else {}
        return cls(project=GidRef.from_json(obj.get("project")), section=GidRef.from_json(obj.get("section")))


@dataclass(frozen=True)
class ApiProject:
    gid: str
    name: str
    resource_type: str
    archived: bool
    permalink_url: str
    workspace: GidRef

    @classmethod
    def from_json(cls, obj: dict) -> "ApiProject":
        return cls(
            gid=_text(obj, "gid"),
            name=_text(obj, "name"),
            resource_type=_text(obj, "resource_type"),
            archived=bool(obj.get("archived")),
            permalink_url=_text(obj, "permalink_url"),
            workspace=GidRef.from_json(obj.get("workspace")),
        )


@dataclass(frozen=True)
class ApiSection:
    gid: str
    name: str
    resource_type: str
    project: GidRef

    @classmethod
    def from_json(cls, obj: dict) -> "ApiSection":
        return cls(
            gid=_text(obj, "gid"),
            name=_text(obj, "name"),
            resource_type=_text(obj, "resource_type"),
            project=GidRef.from_json(obj.get("project")),
        )


@dataclass(frozen=True)
class ApiTask:
    gid: str
    name: str
    notes: str
    resource_type: str
    resource_subtype: str
    completed: bool
    completed_at: str | None
    due_on: str | None
    created_at: str | None
    modified_at: str | None
    permalink_url: str
    assignee: GidRef
    created_by: GidRef
    parent: GidRef
    num_subtasks: int
    memberships: tuple[ApiMembership, ...]

    @classmethod
    def from_json(cls, obj: dict) -> "ApiTask":
        memberships = obj.get("memberships")
        num_subtasks = obj.get("num_subtasks")
        return cls(
            gid=_text(obj, "gid"),
            name=_text(obj, "name"),
            notes=_text(obj, "notes"),
            resource_type=_text(obj, "resource_type"),
            resource_subtype=_text(obj, "resource_subtype"),
            completed=bool(obj.get("completed")),
            completed_at=_timestamp(obj, "completed_at"),
            due_on=parse_date(_text(obj, "due_on")),
            created_at=_timestamp(obj, "created_at"),
            modified_at=_timestamp(obj, "modified_at"),
            permalink_url=_text(obj, "permalink_url"),
            assignee=GidRef.from_json(obj.get("assignee")),
            created_by=GidRef.from_json(obj.get("created_by")),
            parent=GidRef.from_json(obj.get("parent")),
            num_subtasks=num_subtasks if isinstance(num_subtasks, int) else 0,
            memberships=tuple(
                ApiMembership.from_json(m) for m in (memberships if isinstance(memberships, list) else [])
            ),
        )

    def placement(self, default_project: str) -> tuple[str, GidRef]:
        """
        (project_gid, section) from memberships.

        Every entry naming a project updates the project; the first entry with
        a section fixes the section and ends the scan. With no project in any
        entry the scope's project is used.
        """
        project_gid = ""
        section = GidRef()
        for membership in self.memberships:
            if membership.project.gid:
                project_gid = membership.project.gid
            if membership.section.gid:
                section = membership.section
                break
        return project_gid or default_project, section


@dataclass(frozen=True)
class ApiTag:
    gid: str
    name: str
    resource_type: str
    color: str
    notes: str
    permalink_url: str

    @classmethod
    def from_json(cls, obj: dict) -> "ApiTag":
        return cls(
            gid=_text(obj, "gid"),
            name=_text(obj, "name"),
            resource_type=_text(obj, "resource_type"),
            color=_text(obj, "color"),
            notes=_text(obj, "notes"),
            permalink_url=_text(obj, "permalink_url"),
        )


@dataclass(frozen=True)
class ApiStory:
    gid: str
    resource_type: str
    resource_subtype: str
    text: str
    html_text: str
    is_pinned: bool
    is_edited: bool
    sticker_name: str
    created_at: str | None
    created_by: GidRef
    target: GidRef

    @classmethod
    def from_json(cls, obj: dict) -> "ApiStory":
        return cls(
            gid=_text(obj, "gid"),
            resource_type=_text(obj, "resource_type"),
            resource_subtype=_text(obj, "resource_subtype"),
            text=_text(obj, "text"),
            html_text=_text(obj, "html_text"),
            is_pinned=bool(obj.get("is_pinned")),
            is_edited=bool(obj.get("is_edited")),
            sticker_name=_text(obj, "sticker_name"),
            created_at=_timestamp(obj, "created_at"),
            created_by=GidRef.from_json(obj.get("created_by")),
            target=GidRef.from_json(obj.get("target")),
        )


@dataclass(frozen=True)
class ApiUser:
    gid: str
    name: str
    email: str
    resource_type: str
    photo_url: str

    @classmethod
    def from_json(cls, obj: dict) -> "ApiUser":
        photo = obj.get("photo")
        return cls(
            gid=_text(obj, "gid"),
            name=_text(obj, "name"),
            email=_text(obj, "email"),
            resource_type=_text(obj, "resource_type"),
            photo_url=_text(photo, "image_128x128") if isinstance(photo, dict) else "",
        )


# ============================================================
# Stages
# ============================================================


def extract_project(ctx: PipelineContext) -> int:
    """Projects keep a scope config set earlier unless the run names one."""
    existing = ctx.store.find_one(
        "_tool_asana_projects", "connection_id = ? AND gid = ?", [ctx.connection_id, ctx.project_id]
    )
    scope_config_id = ctx.options.scope_config_id
    if scope_config_id is None and existing:
        scope_config_id = existing["scope_config_id"]

    def extract(record: RawRecord, payload: dict) -> ExtractedRows:
        project = ApiProject.from_json(payload)
        return [
            (
                "_tool_asana_projects",
                {
                    "connection_id": ctx.connection_id,
                    "gid": project.gid,
                    "name": project.name,
                    "resource_type": project.resource_type,
                    "archived": project.archived,
                    "workspace_gid": project.workspace.gid,
                    "permalink_url": project.permalink_url,
                    "scope_config_id": scope_config_id,
                },
            )
        ]

    return ApiExtractor(ctx, RAW_PROJECT_TABLE, ("_tool_asana_projects",), extract).execute()


def extract_section(ctx: PipelineContext) -> int:
    def extract(record: RawRecord, payload: dict) -> ExtractedRows:
        section = ApiSection.from_json(payload)
        return [
            (
                "_tool_asana_sections",
                {
                    "connection_id": ctx.connection_id,
                    "gid": section.gid,
                    "name": section.name,
                    "resource_type": section.resource_type,
                    "project_gid": section.project.gid or ctx.project_id,
                },
            )
        ]

    return ApiExtractor(ctx, RAW_SECTION_TABLE, ("_tool_asana_sections",), extract).execute()


def _section_names(ctx: PipelineContext) -> dict[str, str]:
    rows = ctx.store.find("_tool_asana_sections", "connection_id = ?", [ctx.connection_id])
    return {row["gid"]: row["name"] for row in rows}


def _task_row(ctx: PipelineContext, task: ApiTask, section_names: dict[str, str], parent_gid: str) -> dict:
    project_gid, section = task.placement(ctx.project_id)
    return {
        "connection_id": ctx.connection_id,
        "gid": task.gid,
        "name": task.name,
        "notes": task.notes,
        "resource_type": task.resource_type,
        "resource_subtype": task.resource_subtype,
        "completed": task.completed,
        "completed_at": task.completed_at,
        "due_on": task.due_on,
        "created_at": task.created_at,
        "modified_at": task.modified_at,
        "permalink_url": task.permalink_url,
        "project_gid": project_gid,
        "section_gid": section.gid,
        "section_name": section.name or section_names.get(section.gid, ""),
        "assignee_gid": task.assignee.gid,
        "assignee_name": task.assignee.name,
        "creator_gid": task.created_by.gid,
        "creator_name": task.created_by.name,
        "parent_gid": parent_gid,
        "num_subtasks": task.num_subtasks,
    }


def extract_task(ctx: PipelineContext) -> int:
    section_names = _section_names(ctx)

    def extract(record: RawRecord, payload: dict) -> ExtractedRows:
        task = ApiTask.from_json(payload)
        return [("_tool_asana_tasks", _task_row(ctx, task, section_names, task.parent.gid))]

    return ApiExtractor(ctx, RAW_TASK_TABLE, ("_tool_asana_tasks",), extract).execute()


def extract_subtask(ctx: PipelineContext) -> int:
    """Subtasks land in the task table, parented to the task they were collected under."""
    section_names = _section_names(ctx)

    def extract(record: RawRecord, payload: dict) -> ExtractedRows:
        task = ApiTask.from_json(payload)
        parent_gid = (record.input or {}).get("gid") or task.parent.gid
        return [("_tool_asana_tasks", _task_row(ctx, task, section_names, parent_gid))]

    return ApiExtractor(ctx, RAW_SUBTASK_TABLE, ("_tool_asana_tasks",), extract).execute()


def extract_tag(ctx: PipelineContext) -> int:
    """Each raw tag yields the tag itself and its link to the input task."""

    def extract(record: RawRecord, payload: dict) -> ExtractedRows:
        tag = ApiTag.from_json(payload)
        rows: ExtractedRows = [
            (
                "_tool_asana_tags",
                {
                    "connection_id": ctx.connection_id,
                    "gid": tag.gid,
                    "name": tag.name,
                    "resource_type": tag.resource_type,
                    "color": tag.color,
                    "notes": tag.notes,
                    "permalink_url": tag.permalink_url,
                },
            )
        ]
        task_gid = (record.input or {}).get("gid", "")
        if task_gid:
            rows.append(
                (
                    "_tool_asana_task_tags",
                    {"connection_id": ctx.connection_id, "task_gid": task_gid, "tag_gid": tag.gid},
                )
            )
        return rows

    return ApiExtractor(
        ctx, RAW_TAG_TABLE, ("_tool_asana_tags", "_tool_asana_task_tags"), extract
    ).execute()


def extract_story(ctx: PipelineContext) -> int:
    def extract(record: RawRecord, payload: dict) -> ExtractedRows:
        story = ApiStory.from_json(payload)
        return [
            (
                "_tool_asana_stories",
                {
                    "connection_id": ctx.connection_id,
                    "gid": story.gid,
                    "resource_type": story.resource_type,
                    "resource_subtype": story.resource_subtype,
                    "text": story.text,
                    "html_text": story.html_text,
                    "is_pinned": story.is_pinned,
                    "is_edited": story.is_edited,
                    "sticker_name": story.sticker_name,
                    "created_at": story.created_at,
                    "created_by_gid": story.created_by.gid,
                    "created_by_name": story.created_by.name,
                    "task_gid": (record.input or {}).get("gid") or story.target.gid,
                    "target_gid": story.target.gid,
                },
            )
        ]

    return ApiExtractor(ctx, RAW_STORY_TABLE, ("_tool_asana_stories",), extract).execute()


def extract_user(ctx: PipelineContext) -> int:
    def extract(record: RawRecord, payload: dict) -> ExtractedRows:
        user = ApiUser.from_json(payload)
        return [
            (
                "_tool_asana_users",
                {
                    "connection_id": ctx.connection_id,
                    "gid": user.gid,
                    "name": user.name,
                    "email": user.email,
                    "resource_type": user.resource_type,
                    "photo_url": user.photo_url,
                },
            )
        ]

    return ApiExtractor(ctx, RAW_USER_TABLE, ("_tool_asana_users",), extract).execute()
