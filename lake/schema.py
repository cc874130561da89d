"""
Declarative Schema Definition.

Every table and index of the lake lives here. The schema_engine reads this
and converges any database to match (additive only).

Three layers:
  _raw_asana_*   verbatim API elements, appended by collectors, cleared per scope on recollection
  _tool_asana_*  flattened vendor rows, rebuilt per raw origin by extractors
  domain tables  cross-vendor rows (boards, issues, ...), rebuilt by converters

Format: TABLES[name] = {"columns": [(col_name, col_ddl), ...],
                        "primary_key": (col, ...)   # optional, composite
                        "unique": [(col, ...), ...]} # optional
"""

from collections import OrderedDict

# =============================================================================
# Schema version: bump when you change this file
# =============================================================================
SCHEMA_VERSION = 3

TABLES: dict[str, dict] = OrderedDict()

# Column block shared by every raw table
_RAW_COLUMNS = [
    ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
    ("params", "TEXT NOT NULL"),
    ("data", "BLOB NOT NULL"),
    ("url", "TEXT"),
    ("input", "TEXT"),
    ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
]

# Lineage back to the raw layer
_TOOL_LINEAGE = [
    ("raw_data_params", "TEXT"),
    ("raw_data_table", "TEXT"),
    ("raw_data_id", "INTEGER"),
]

# Domain rows carry their raw origin; converters delete/reinsert by it
_DOMAIN_LINEAGE = [
    ("raw_data_params", "TEXT"),
    ("raw_data_table", "TEXT"),
]

RAW_TABLES = (
    "_raw_asana_projects",
    "_raw_asana_sections",
    "_raw_asana_tasks",
    "_raw_asana_subtasks",
    "_raw_asana_tags",
    "_raw_asana_stories",
    "_raw_asana_users",
)

# ---------------------------------------------------------------------------
# Raw layer
# ---------------------------------------------------------------------------
for _raw in RAW_TABLES:
    TABLES[_raw] = {"columns": list(_RAW_COLUMNS)}

# ---------------------------------------------------------------------------
# Tool layer
# ---------------------------------------------------------------------------
TABLES["_tool_asana_scope_configs"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("connection_id", "INTEGER NOT NULL"),
        ("name", "TEXT NOT NULL"),
        ("issue_type_requirement", "TEXT NOT NULL DEFAULT ''"),
        ("issue_type_bug", "TEXT NOT NULL DEFAULT ''"),
        ("issue_type_incident", "TEXT NOT NULL DEFAULT ''"),
        ("type_mappings", "TEXT NOT NULL DEFAULT '{}'"),  # JSON
        ("application_type", "TEXT NOT NULL DEFAULT ''"),
        ("story_point_field", "TEXT NOT NULL DEFAULT ''"),
        ("priority_field", "TEXT NOT NULL DEFAULT ''"),
        ("epic_field", "TEXT NOT NULL DEFAULT ''"),
        ("severity_field", "TEXT NOT NULL DEFAULT ''"),
        ("due_date_field", "TEXT NOT NULL DEFAULT ''"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
        ("updated_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
    "unique": [("connection_id", "name")],
}

TABLES["_tool_asana_projects"] = {
    "columns": [
        ("connection_id", "INTEGER NOT NULL"),
        ("gid", "TEXT NOT NULL"),
        ("name", "TEXT NOT NULL DEFAULT ''"),
        ("resource_type", "TEXT NOT NULL DEFAULT ''"),
        ("archived", "INTEGER NOT NULL DEFAULT 0"),
        ("workspace_gid", "TEXT NOT NULL DEFAULT ''"),
        ("permalink_url", "TEXT NOT NULL DEFAULT ''"),
        ("scope_config_id", "INTEGER"),
        *_TOOL_LINEAGE,
    ],
    "primary_key": ("connection_id", "gid"),
}

TABLES["_tool_asana_sections"] = {
    "columns": [
        ("connection_id", "INTEGER NOT NULL"),
        ("gid", "TEXT NOT NULL"),
        ("name", "TEXT NOT NULL DEFAULT ''"),
        ("resource_type", "TEXT NOT NULL DEFAULT ''"),
        ("project_gid", "TEXT NOT NULL DEFAULT ''"),
        *_TOOL_LINEAGE,
    ],
    "primary_key": ("connection_id", "gid"),
}

TABLES["_tool_asana_tasks"] = {
    "columns": [
        ("connection_id", "INTEGER NOT NULL"),
        ("gid", "TEXT NOT NULL"),
        ("name", "TEXT NOT NULL DEFAULT ''"),
        ("notes", "TEXT NOT NULL DEFAULT ''"),
        ("resource_type", "TEXT NOT NULL DEFAULT ''"),
        ("resource_subtype", "TEXT NOT NULL DEFAULT ''"),
        ("completed", "INTEGER NOT NULL DEFAULT 0"),
        ("completed_at", "TEXT"),
        ("due_on", "TEXT"),
        ("created_at", "TEXT"),
        ("modified_at", "TEXT"),
        ("permalink_url", "TEXT NOT NULL DEFAULT ''"),
        ("project_gid", "TEXT NOT NULL DEFAULT ''"),
        ("section_gid", "TEXT NOT NULL DEFAULT ''"),
        ("section_name", "TEXT NOT NULL DEFAULT ''"),
        ("assignee_gid", "TEXT NOT NULL DEFAULT ''"),
        ("assignee_name", "TEXT NOT NULL DEFAULT ''"),
        ("creator_gid", "TEXT NOT NULL DEFAULT ''"),
        ("creator_name", "TEXT NOT NULL DEFAULT ''"),
        ("parent_gid", "TEXT NOT NULL DEFAULT ''"),
        ("num_subtasks", "INTEGER NOT NULL DEFAULT 0"),
        *_TOOL_LINEAGE,
    ],
    "primary_key": ("connection_id", "gid"),
}

TABLES["_tool_asana_tags"] = {
    "columns": [
        ("connection_id", "INTEGER NOT NULL"),
        ("gid", "TEXT NOT NULL"),
        ("name", "TEXT NOT NULL DEFAULT ''"),
        ("resource_type", "TEXT NOT NULL DEFAULT ''"),
        ("color", "TEXT NOT NULL DEFAULT ''"),
        ("notes", "TEXT NOT NULL DEFAULT ''"),
        ("permalink_url", "TEXT NOT NULL DEFAULT ''"),
        *_TOOL_LINEAGE,
    ],
    "primary_key": ("connection_id", "gid"),
}

TABLES["_tool_asana_task_tags"] = {
    "columns": [
        ("connection_id", "INTEGER NOT NULL"),
        ("task_gid", "TEXT NOT NULL"),
        ("tag_gid", "TEXT NOT NULL"),
        *_TOOL_LINEAGE,
    ],
    "primary_key": ("connection_id", "task_gid", "tag_gid"),
}

TABLES["_tool_asana_stories"] = {
    "columns": [
        ("connection_id", "INTEGER NOT NULL"),
        ("gid", "TEXT NOT NULL"),
        ("resource_type", "TEXT NOT NULL DEFAULT ''"),
        ("resource_subtype", "TEXT NOT NULL DEFAULT ''"),
        ("text", "TEXT NOT NULL DEFAULT ''"),
        ("html_text", "TEXT NOT NULL DEFAULT ''"),
        ("is_pinned", "INTEGER NOT NULL DEFAULT 0"),
        ("is_edited", "INTEGER NOT NULL DEFAULT 0"),
        ("sticker_name", "TEXT NOT NULL DEFAULT ''"),
        ("created_at", "TEXT"),
        ("created_by_gid", "TEXT NOT NULL DEFAULT ''"),
        ("created_by_name", "TEXT NOT NULL DEFAULT ''"),
        ("task_gid", "TEXT NOT NULL DEFAULT ''"),
        ("target_gid", "TEXT NOT NULL DEFAULT ''"),
        *_TOOL_LINEAGE,
    ],
    "primary_key": ("connection_id", "gid"),
}

TABLES["_tool_asana_users"] = {
    "columns": [
        ("connection_id", "INTEGER NOT NULL"),
        ("gid", "TEXT NOT NULL"),
        ("name", "TEXT NOT NULL DEFAULT ''"),
        ("email", "TEXT NOT NULL DEFAULT ''"),
        ("resource_type", "TEXT NOT NULL DEFAULT ''"),
        ("photo_url", "TEXT NOT NULL DEFAULT ''"),
        *_TOOL_LINEAGE,
    ],
    "primary_key": ("connection_id", "gid"),
}

# ---------------------------------------------------------------------------
# Domain layer
# ---------------------------------------------------------------------------
TABLES["boards"] = {
    "columns": [
        ("id", "TEXT PRIMARY KEY"),
        ("name", "TEXT NOT NULL DEFAULT ''"),
        ("description", "TEXT NOT NULL DEFAULT ''"),
        ("url", "TEXT NOT NULL DEFAULT ''"),
        ("type", "TEXT NOT NULL DEFAULT ''"),
        *_DOMAIN_LINEAGE,
    ],
}

TABLES["issues"] = {
    "columns": [
        ("id", "TEXT PRIMARY KEY"),
        ("url", "TEXT NOT NULL DEFAULT ''"),
        ("issue_key", "TEXT NOT NULL DEFAULT ''"),
        ("title", "TEXT NOT NULL DEFAULT ''"),
        ("description", "TEXT NOT NULL DEFAULT ''"),
        ("type", "TEXT NOT NULL DEFAULT ''"),
        ("original_type", "TEXT NOT NULL DEFAULT ''"),
        ("status", "TEXT NOT NULL DEFAULT ''"),
        ("original_status", "TEXT NOT NULL DEFAULT ''"),
        ("resolution_date", "TEXT"),
        ("created_date", "TEXT"),
        ("updated_date", "TEXT"),
        ("due_date", "TEXT"),
        ("creator_id", "TEXT NOT NULL DEFAULT ''"),
        ("creator_name", "TEXT NOT NULL DEFAULT ''"),
        ("assignee_id", "TEXT NOT NULL DEFAULT ''"),
        ("assignee_name", "TEXT NOT NULL DEFAULT ''"),
        ("parent_issue_id", "TEXT NOT NULL DEFAULT ''"),
        ("is_subtask", "INTEGER NOT NULL DEFAULT 0"),
        *_DOMAIN_LINEAGE,
    ],
}

TABLES["board_issues"] = {
    "columns": [
        ("board_id", "TEXT NOT NULL"),
        ("issue_id", "TEXT NOT NULL"),
        *_DOMAIN_LINEAGE,
    ],
    "primary_key": ("board_id", "issue_id"),
}

TABLES["issue_assignees"] = {
    "columns": [
        ("issue_id", "TEXT NOT NULL"),
        ("assignee_id", "TEXT NOT NULL"),
        ("assignee_name", "TEXT NOT NULL DEFAULT ''"),
        *_DOMAIN_LINEAGE,
    ],
    "primary_key": ("issue_id", "assignee_id"),
}

TABLES["issue_comments"] = {
    "columns": [
        ("id", "TEXT PRIMARY KEY"),
        ("issue_id", "TEXT NOT NULL"),
        ("body", "TEXT NOT NULL DEFAULT ''"),
        ("account_id", "TEXT NOT NULL DEFAULT ''"),
        ("created_date", "TEXT"),
        *_DOMAIN_LINEAGE,
    ],
}

TABLES["accounts"] = {
    "columns": [
        ("id", "TEXT PRIMARY KEY"),
        ("email", "TEXT NOT NULL DEFAULT ''"),
        ("full_name", "TEXT NOT NULL DEFAULT ''"),
        ("user_name", "TEXT NOT NULL DEFAULT ''"),
        ("avatar_url", "TEXT NOT NULL DEFAULT ''"),
        *_DOMAIN_LINEAGE,
    ],
}

# =============================================================================
# Indexes: (name, table, columns, where)
# =============================================================================
INDEXES: list[tuple[str, str, str, str | None]] = [
    *[(f"idx{raw}_params", raw, "params", None) for raw in RAW_TABLES],
    ("idx_tool_asana_tasks_project", "_tool_asana_tasks", "connection_id, project_gid", None),
    ("idx_tool_asana_tasks_parent", "_tool_asana_tasks", "parent_gid", "parent_gid != ''"),
    ("idx_tool_asana_stories_task", "_tool_asana_stories", "connection_id, task_gid", None),
    ("idx_tool_asana_sections_project", "_tool_asana_sections", "connection_id, project_gid", None),
    ("idx_boards_raw", "boards", "raw_data_table, raw_data_params", None),
    ("idx_issues_raw", "issues", "raw_data_table, raw_data_params", None),
    ("idx_board_issues_raw", "board_issues", "raw_data_table, raw_data_params", None),
    ("idx_issue_assignees_raw", "issue_assignees", "raw_data_table, raw_data_params", None),
    ("idx_issue_comments_raw", "issue_comments", "raw_data_table, raw_data_params", None),
    ("idx_issue_comments_issue", "issue_comments", "issue_id", None),
    ("idx_accounts_raw", "accounts", "raw_data_table, raw_data_params", None),
]
