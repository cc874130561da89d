"""
Asana convert stages: projects -> boards, tasks -> issues, comment stories ->
issue comments, users -> accounts.
"""

import logging
from collections import defaultdict

from lake.classify import classify, original_status
from lake.collectors.asana import RAW_PROJECT_TABLE, RAW_STORY_TABLE, RAW_TASK_TABLE, RAW_USER_TABLE
from lake.context import PipelineContext
from lake.ids import project_ids, story_ids, task_ids, user_ids
from lake.models import AsanaTask, ScopeConfig
from lake.store import LakeStore

from .base import ConvertedRows, DataConverter

logger = logging.getLogger(__name__)

BOARD_TYPE = "asana"
COMMENT_SUBTYPE = "comment_added"


# ============================================================
# Lookups, loaded once per pass
# ============================================================


def load_scope_config(ctx: PipelineContext) -> ScopeConfig | None:
    """
    Scope config for the run: the explicit id from the options, else the one
    stored on the project, else none.
    """
    store = ctx.store
    if ctx.options.scope_config_id:
        row = store.find_one(
            "_tool_asana_scope_configs",
            "connection_id = ? AND id = ?",
            [ctx.connection_id, ctx.options.scope_config_id],
        )
        if row:
            logger.info(f"Using scope config {ctx.options.scope_config_id} from run options")
            return ScopeConfig.from_row(row)
        logger.info(f"Scope config {ctx.options.scope_config_id} not found, trying the project")
    else:
        logger.info("No scope config in run options, trying the project")

    project = store.find_one(
        "_tool_asana_projects", "connection_id = ? AND gid = ?", [ctx.connection_id, ctx.project_id]
    )
    if not project:
        logger.info(f"Project {ctx.project_id} not extracted, classifying without scope config")
        return None
    if not project["scope_config_id"]:
        logger.info(f"Project {ctx.project_id} has no scope config")
        return None

    row = store.find_one(
        "_tool_asana_scope_configs",
        "connection_id = ? AND id = ?",
        [ctx.connection_id, project["scope_config_id"]],
    )
    if not row:
        logger.info(f"Scope config {project['scope_config_id']} of project {ctx.project_id} not found")
        return None
    logger.info(f"Using scope config {project['scope_config_id']} from project {ctx.project_id}")
    return ScopeConfig.from_row(row)


def load_task_tags(store: LakeStore, connection_id: int) -> dict[str, list[str]]:
    """task gid -> tag names, for every tagged task of the connection."""
    rows = store.query(
        "SELECT tt.task_gid, t.name FROM _tool_asana_task_tags tt "
        "JOIN _tool_asana_tags t ON t.connection_id = tt.connection_id AND t.gid = tt.tag_gid "
        "WHERE tt.connection_id = ? ORDER BY tt.task_gid, t.name",
        [connection_id],
    )
    tags: dict[str, list[str]] = defaultdict(list)
    for row in rows:
        tags[row["task_gid"]].append(row["name"])
    return dict(tags)


# ============================================================
# Stages
# ============================================================


def convert_project(ctx: PipelineContext) -> int:
    rows = ctx.store.find(
        "_tool_asana_projects", "connection_id = ? AND gid = ?", [ctx.connection_id, ctx.project_id]
    )

    def convert(project: dict) -> ConvertedRows:
        return [
            (
                "boards",
                {
                    "id": project_ids.generate(project["connection_id"], project["gid"]),
                    "name": project["name"],
                    "url": project["permalink_url"],
                    "type": BOARD_TYPE,
                },
            )
        ]

    return DataConverter(ctx, RAW_PROJECT_TABLE, ("boards",), rows, convert).execute()


def task_to_domain(task: AsanaTask, tags: list[str], scope_config: ScopeConfig | None) -> ConvertedRows:
    """One issue, its board link and, when assigned, its assignee link."""
    issue_type, status = classify(task, tags, scope_config)
    connection_id = task.connection_id
    issue_id = task_ids.generate(connection_id, task.gid)
    assignee_id = user_ids.generate(connection_id, task.assignee_gid) if task.assignee_gid else ""

    issue = {
        "id": issue_id,
        "url": task.permalink_url,
        "issue_key": task.gid,
        "title": task.name,
        "description": task.notes,
        "type": issue_type,
        "original_type": task.resource_subtype,
        "status": status,
        "original_status": original_status(task),
        "resolution_date": task.completed_at,
        "created_date": task.created_at,
        "updated_date": task.modified_at,
        "due_date": task.due_on,
        "creator_id": user_ids.generate(connection_id, task.creator_gid) if task.creator_gid else "",
        "creator_name": task.creator_name,
        "assignee_id": assignee_id,
        "assignee_name": task.assignee_name,
        "parent_issue_id": task_ids.generate(connection_id, task.parent_gid) if task.parent_gid else "",
        "is_subtask": bool(task.parent_gid),
    }
    rows: ConvertedRows = [
        ("issues", issue),
        (
            "board_issues",
            {"board_id": project_ids.generate(connection_id, task.project_gid), "issue_id": issue_id},
        ),
    ]
    if task.assignee_gid:
        rows.append(
            (
                "issue_assignees",
                {"issue_id": issue_id, "assignee_id": assignee_id, "assignee_name": task.assignee_name},
            )
        )
    return rows


def convert_task(ctx: PipelineContext) -> int:
    scope_config = load_scope_config(ctx)
    task_tags = load_task_tags(ctx.store, ctx.connection_id)
    rows = ctx.store.find(
        "_tool_asana_tasks",
        "connection_id = ? AND project_gid = ?",
        [ctx.connection_id, ctx.project_id],
        order_by="gid",
    )

    def convert(row: dict) -> ConvertedRows:
        task = AsanaTask.from_row(row)
        return task_to_domain(task, task_tags.get(task.gid, []), scope_config)

    return DataConverter(
        ctx, RAW_TASK_TABLE, ("issues", "board_issues", "issue_assignees"), rows, convert
    ).execute()


def convert_story(ctx: PipelineContext) -> int:
    """User comments on the project's tasks. System stories are skipped."""
    rows = ctx.store.query(
        "SELECT s.* FROM _tool_asana_stories s "
        "JOIN _tool_asana_tasks t ON t.connection_id = s.connection_id AND t.gid = s.task_gid "
        "WHERE s.connection_id = ? AND t.project_gid = ? AND s.resource_subtype = ? "
        "ORDER BY s.gid",
        [ctx.connection_id, ctx.project_id, COMMENT_SUBTYPE],
    )

    def convert(story: dict) -> ConvertedRows:
        connection_id = story["connection_id"]
        created_by = story["created_by_gid"]
        return [
            (
                "issue_comments",
                {
                    "id": story_ids.generate(connection_id, story["gid"]),
                    "issue_id": task_ids.generate(connection_id, story["task_gid"]),
                    "body": story["text"],
                    "account_id": user_ids.generate(connection_id, created_by) if created_by else "",
                    "created_date": story["created_at"],
                },
            )
        ]

    return DataConverter(ctx, RAW_STORY_TABLE, ("issue_comments",), rows, convert).execute()


def convert_user(ctx: PipelineContext) -> int:
    rows = ctx.store.find(
        "_tool_asana_users", "connection_id = ?", [ctx.connection_id], order_by="gid"
    )

    def convert(user: dict) -> ConvertedRows:
        return [
            (
                "accounts",
                {
                    "id": user_ids.generate(user["connection_id"], user["gid"]),
                    "email": user["email"],
                    "full_name": user["name"],
                    "user_name": user["name"],
                    "avatar_url": user["photo_url"],
                },
            )
        ]

    return DataConverter(ctx, RAW_USER_TABLE, ("accounts",), rows, convert).execute()
