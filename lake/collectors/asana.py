"""
Asana collect stages - one per resource kind, each appending to its raw table.

Root collections page a project-scoped endpoint; dependent collections fan
out over tasks already extracted for the project.
"""

import logging

from lake.context import PipelineContext

from .base import ApiCollector

logger = logging.getLogger(__name__)

RAW_PROJECT_TABLE = "_raw_asana_projects"
RAW_SECTION_TABLE = "_raw_asana_sections"
RAW_TASK_TABLE = "_raw_asana_tasks"
RAW_SUBTASK_TABLE = "_raw_asana_subtasks"
RAW_TAG_TABLE = "_raw_asana_tags"
RAW_STORY_TABLE = "_raw_asana_stories"
RAW_USER_TABLE = "_raw_asana_users"

PROJECT_OPT_FIELDS = "gid,name,resource_type,archived,permalink_url,workspace"
SECTION_OPT_FIELDS = "gid,name,resource_type,project"
TASK_OPT_FIELDS = (
    "gid,name,notes,resource_type,resource_subtype,completed,completed_at,due_on,"
    "created_at,modified_at,permalink_url,assignee,assignee.name,created_by,"
    "created_by.name,parent,num_subtasks,memberships.section,memberships.section.name,"
    "memberships.project"
)
TAG_OPT_FIELDS = "gid,name,resource_type,color,notes,permalink_url"
STORY_OPT_FIELDS = (
    "gid,resource_type,resource_subtype,text,html_text,is_pinned,is_edited,"
    "sticker_name,created_at,created_by,created_by.name,target"
)
USER_OPT_FIELDS = "gid,name,email,resource_type,photo.image_128x128"


def _project_tasks(ctx: PipelineContext, subtasks_only: bool = False) -> list[dict]:
    """Task gids of the project, the input for dependent collections."""
    where = "connection_id = ? AND project_gid = ?"
    if subtasks_only:
        # top-level tasks only, so reruns never descend past one level
        where += " AND num_subtasks > 0 AND parent_gid = ''"
    rows = ctx.store.find(
        "_tool_asana_tasks", where, [ctx.connection_id, ctx.project_id], order_by="gid"
    )
    return [{"gid": row["gid"]} for row in rows]


def collect_project(ctx: PipelineContext) -> int:
    """GET projects/{project_id} as a single raw record."""
    return ApiCollector(
        ctx,
        RAW_PROJECT_TABLE,
        "projects/{project_id}",
        query={"opt_fields": PROJECT_OPT_FIELDS},
        single_object=True,
    ).execute()


def collect_section(ctx: PipelineContext) -> int:
    return ApiCollector(
        ctx,
        RAW_SECTION_TABLE,
        "projects/{project_id}/sections",
        query={"opt_fields": SECTION_OPT_FIELDS},
    ).execute()


def collect_task(ctx: PipelineContext) -> int:
    return ApiCollector(
        ctx,
        RAW_TASK_TABLE,
        "projects/{project_id}/tasks",
        query={"opt_fields": TASK_OPT_FIELDS},
    ).execute()


def collect_subtask(ctx: PipelineContext) -> int:
    """One level of subtasks, for tasks reporting num_subtasks > 0."""
    return ApiCollector(
        ctx,
        RAW_SUBTASK_TABLE,
        "tasks/{gid}/subtasks",
        query={"opt_fields": TASK_OPT_FIELDS},
        input_rows=_project_tasks(ctx, subtasks_only=True),
    ).execute()


def collect_tag(ctx: PipelineContext) -> int:
    return ApiCollector(
        ctx,
        RAW_TAG_TABLE,
        "tasks/{gid}/tags",
        query={"opt_fields": TAG_OPT_FIELDS},
        input_rows=_project_tasks(ctx),
    ).execute()


def collect_story(ctx: PipelineContext) -> int:
    return ApiCollector(
        ctx,
        RAW_STORY_TABLE,
        "tasks/{gid}/stories",
        query={"opt_fields": STORY_OPT_FIELDS},
        input_rows=_project_tasks(ctx),
    ).execute()


def collect_user(ctx: PipelineContext) -> int:
    """Project members."""
    return ApiCollector(
        ctx,
        RAW_USER_TABLE,
        "projects/{project_id}/members",
        query={"opt_fields": USER_OPT_FIELDS},
    ).execute()
