"""
Classification Engine - maps an Asana task to a standard (type, status).

Pure functions: the scope config is always passed in, nothing is looked up.

Order of rules:
  1. status = DONE if completed else TODO
  2. no scope config          -> SUBTASK if parented else TASK
  3. type mapping for subtype -> mapped type; section status mapping overrides status
  4. otherwise tag patterns   -> requirement, bug, incident (last match wins)
  5. parented TASK            -> SUBTASK
"""

import logging
import re
from functools import lru_cache

from lake.models import AsanaTask, ScopeConfig

logger = logging.getLogger(__name__)


class IssueType:
    """Standard issue types."""

    REQUIREMENT = "REQUIREMENT"
    BUG = "BUG"
    INCIDENT = "INCIDENT"
    EPIC = "EPIC"
    TASK = "TASK"
    SUBTASK = "SUBTASK"

    ALL = (REQUIREMENT, BUG, INCIDENT, EPIC, TASK, SUBTASK)


class IssueStatus:
    """Standard issue statuses."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"

    ALL = (TODO, IN_PROGRESS, DONE)


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern | None:
    """Case-insensitive pattern, or None when it does not compile (warned once)."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.warning(f"Ignoring invalid classification pattern {pattern!r}: {e}")
        return None


def match_pattern(text: str, pattern: str) -> bool:
    """An empty or invalid pattern never matches."""
    if not pattern:
        return False
    compiled = compile_pattern(pattern)
    return bool(compiled and compiled.search(text))


def default_type(task: AsanaTask) -> str:
    return IssueType.SUBTASK if task.parent_gid else IssueType.TASK


def default_status(task: AsanaTask) -> str:
    return IssueStatus.DONE if task.completed else IssueStatus.TODO


def original_status(task: AsanaTask) -> str:
    """The vendor-side status shown next to the standard one."""
    if task.completed:
        return "completed"
    if task.section_name:
        return task.section_name
    return "incomplete"


def classify(
    task: AsanaTask,
    tags: list[str],
    scope_config: ScopeConfig | None,
) -> tuple[str, str]:
    """Return (standard_type, standard_status) for one task."""
    status = default_status(task)
    if scope_config is None:
        return default_type(task), status

    issue_type = IssueType.TASK
    mapping = scope_config.type_mappings.get(task.resource_subtype)
    if mapping is not None:
        if task.section_name in mapping.status_mappings:
            status = mapping.status_mappings[task.section_name]

    if mapping is not None and mapping.standard_type:
        issue_type = mapping.standard_type
    else:
        tag_text = " ".join(tags).lower()
        if match_pattern(tag_text, scope_config.issue_type_requirement):
            issue_type = IssueType.REQUIREMENT
        if match_pattern(tag_text, scope_config.issue_type_bug):
            issue_type = IssueType.BUG
        if match_pattern(tag_text, scope_config.issue_type_incident):
            issue_type = IssueType.INCIDENT

    if issue_type == IssueType.TASK and task.parent_gid:
        issue_type = IssueType.SUBTASK

    return issue_type, status
