"""
Remote Scope Browser - walks Asana's containment tree to pick a project.

Group ids are slash-delimited paths, parsed into one of four shapes:

    ""                                  RootPath              -> workspaces
    workspace/{w}                       WorkspacePath         -> team | portfolio | goal
    workspace/{w}/{category}            CategoryPath          -> teams, portfolios or goals
    workspace/{w}/{category}/{gid}      CategoryInstancePath  -> projects (leaves)

Anything else is rejected. Each listing level pages independently.
"""

import base64
import binascii
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Union

from engine.asana_client import AsanaApiError, AsanaClient
from lake import config

logger = logging.getLogger(__name__)

CATEGORY_TEAM = "team"
CATEGORY_PORTFOLIO = "portfolio"
CATEGORY_GOAL = "goal"
CATEGORIES = (CATEGORY_TEAM, CATEGORY_PORTFOLIO, CATEGORY_GOAL)

CATEGORY_LABELS = {
    CATEGORY_TEAM: "Teams",
    CATEGORY_PORTFOLIO: "Portfolios",
    CATEGORY_GOAL: "Goals",
}

ENTRY_GROUP = "group"
ENTRY_SCOPE = "scope"

WORKSPACE_OPT_FIELDS = "name,resource_type,is_organization"
CATEGORY_OPT_FIELDS = {
    CATEGORY_TEAM: "name,resource_type,description,permalink_url",
    CATEGORY_PORTFOLIO: "name,resource_type,permalink_url",
    CATEGORY_GOAL: "name,resource_type,notes",
}
PROJECT_OPT_FIELDS = "name,resource_type,archived,permalink_url,workspace,team"


class InvalidScopePath(ValueError):
    """The group id is not one of the four browsable shapes."""


class InvalidPageToken(ValueError):
    """The page token does not decode to {offset, limit}."""


# ============================================================
# Paths
# ============================================================


@dataclass(frozen=True)
class RootPath:
    pass


@dataclass(frozen=True)
class WorkspacePath:
    workspace_gid: str


@dataclass(frozen=True)
class CategoryPath:
    workspace_gid: str
    category: str


@dataclass(frozen=True)
class CategoryInstancePath:
    workspace_gid: str
    category: str
    gid: str


ScopePath = Union[RootPath, WorkspacePath, CategoryPath, CategoryInstancePath]


def parse_path(group_id: str | None) -> ScopePath:
    if not group_id:
        return RootPath()

    parts = group_id.split("/")
    if parts[0] != "workspace" or len(parts) > 4 or not all(parts[1:]) or len(parts) < 2:
        raise InvalidScopePath(f"invalid groupId format: {group_id!r}")

    workspace_gid = parts[1]
    if len(parts) == 2:
        return WorkspacePath(workspace_gid)

    category = parts[2]
    if category not in CATEGORIES:
        raise InvalidScopePath(f"unknown scope category {category!r} in {group_id!r}")
    if len(parts) == 3:
        return CategoryPath(workspace_gid, category)
    return CategoryInstancePath(workspace_gid, category, parts[3])


def path_id(path: ScopePath) -> str:
    """Inverse of parse_path."""
    if isinstance(path, RootPath):
        return ""
    if isinstance(path, WorkspacePath):
        return f"workspace/{path.workspace_gid}"
    if isinstance(path, CategoryPath):
        return f"workspace/{path.workspace_gid}/{path.category}"
    return f"workspace/{path.workspace_gid}/{path.category}/{path.gid}"


# ============================================================
# Listing types
# ============================================================


@dataclass
class RemotePage:
    offset: str = ""
    limit: int = config.DEFAULT_PAGE_SIZE


@dataclass
class ScopeEntry:
    type: str
    id: str
    name: str
    full_name: str
    parent_id: str | None = None
    data: dict | None = None


@dataclass
class ScopeListing:
    children: list[ScopeEntry] = field(default_factory=list)
    next_page: RemotePage | None = None

    def to_dict(self) -> dict:
        return {
            "children": [asdict(child) for child in self.children],
            "next_page": asdict(self.next_page) if self.next_page else None,
        }


def encode_page_token(page: RemotePage | None) -> str:
    if page is None:
        return ""
    raw = json.dumps({"offset": page.offset, "limit": page.limit}, sort_keys=True)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_page_token(token: str | None) -> RemotePage:
    if not token:
        return RemotePage()
    try:
        obj = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
    except (ValueError, binascii.Error, UnicodeError) as e:
        raise InvalidPageToken(f"invalid pageToken: {e}") from e
    if not isinstance(obj, dict):
        raise InvalidPageToken("invalid pageToken: not an object")
    offset = obj.get("offset") or ""
    limit = obj.get("limit") or config.DEFAULT_PAGE_SIZE
    if not isinstance(offset, str) or not isinstance(limit, int) or limit <= 0:
        raise InvalidPageToken("invalid pageToken: bad offset or limit")
    return RemotePage(offset=offset, limit=limit)


# ============================================================
# Browsing
# ============================================================


def _page_params(page: RemotePage, **extra) -> dict:
    params = {"limit": page.limit, **extra}
    if page.offset:
        params["offset"] = page.offset
    return params


def _next(next_offset: str, page: RemotePage) -> RemotePage | None:
    return RemotePage(offset=next_offset, limit=page.limit) if next_offset else None


def _workspaces(client: AsanaClient, page: RemotePage) -> ScopeListing:
    result = client.get_page("workspaces", _page_params(page, opt_fields=WORKSPACE_OPT_FIELDS))
    children = [
        ScopeEntry(
            type=ENTRY_GROUP,
            id=f"workspace/{ws.get('gid', '')}",
            name=ws.get("name") or "",
            full_name=ws.get("name") or "",
        )
        for ws in result.data
    ]
    return ScopeListing(children, _next(result.next_offset, page))


def _categories(path: WorkspacePath) -> ScopeListing:
    parent_id = path_id(path)
    children = [
        ScopeEntry(
            type=ENTRY_GROUP,
            id=f"{parent_id}/{category}",
            name=CATEGORY_LABELS[category],
            full_name=CATEGORY_LABELS[category],
            parent_id=parent_id,
        )
        for category in CATEGORIES
    ]
    return ScopeListing(children, None)


def _category_members(client: AsanaClient, path: CategoryPath, page: RemotePage) -> ScopeListing:
    opt_fields = CATEGORY_OPT_FIELDS[path.category]
    if path.category == CATEGORY_TEAM:
        result = client.get_page(
            f"workspaces/{path.workspace_gid}/teams", _page_params(page, opt_fields=opt_fields)
        )
    elif path.category == CATEGORY_PORTFOLIO:
        result = client.get_page(
            "portfolios",
            _page_params(page, workspace=path.workspace_gid, owner="me", opt_fields=opt_fields),
        )
    else:
        result = client.get_page(
            "goals", _page_params(page, workspace=path.workspace_gid, opt_fields=opt_fields)
        )

    parent_id = path_id(path)
    children = [
        ScopeEntry(
            type=ENTRY_GROUP,
            id=f"{parent_id}/{item.get('gid', '')}",
            name=item.get("name") or "",
            full_name=item.get("name") or "",
            parent_id=parent_id,
        )
        for item in result.data
    ]
    return ScopeListing(children, _next(result.next_offset, page))


def project_scope_data(project: dict, workspace_gid: str) -> dict:
    """Leaf payload: an AsanaProject, workspace defaulting to the browsed one."""
    workspace = project.get("workspace")
    project_workspace = workspace.get("gid") if isinstance(workspace, dict) else ""
    return {
        "gid": project.get("gid") or "",
        "name": project.get("name") or "",
        "resource_type": project.get("resource_type") or "",
        "archived": bool(project.get("archived")),
        "permalink_url": project.get("permalink_url") or "",
        "workspace_gid": project_workspace or workspace_gid,
    }


def _projects(client: AsanaClient, path: CategoryInstancePath, page: RemotePage) -> ScopeListing:
    params = _page_params(page, opt_fields=PROJECT_OPT_FIELDS)
    if path.category == CATEGORY_TEAM:
        result = client.get_page(f"teams/{path.gid}/projects", params)
    elif path.category == CATEGORY_PORTFOLIO:
        result = client.get_page(f"portfolios/{path.gid}/items", params)
    else:
        # Not every goal exposes supporting work; treat a failed lookup as no projects.
        # A reply that arrives but is malformed still fails.
        try:
            result = client.get_page(f"goals/{path.gid}/supportingWork", params)
        except AsanaApiError as e:
            logger.warning(
                f"Goal {path.gid} supporting work unavailable "
                f"(status={e.status_code}), listing no projects: {e}"
            )
            return ScopeListing([], None)

    parent_id = path_id(path)
    children = []
    for project in result.data:
        data = project_scope_data(project, path.workspace_gid)
        children.append(
            ScopeEntry(
                type=ENTRY_SCOPE,
                id=data["gid"],
                name=data["name"],
                full_name=data["name"],
                parent_id=parent_id,
                data=data,
            )
        )
    return ScopeListing(children, _next(result.next_offset, page))


def browse(client: AsanaClient, group_id: str = "", page: RemotePage | None = None) -> ScopeListing:
    """List the children of one node of the scope tree."""
    path = parse_path(group_id)
    page = page or RemotePage()
    if page.limit <= 0:
        page = RemotePage(offset=page.offset, limit=config.DEFAULT_PAGE_SIZE)

    if isinstance(path, RootPath):
        return _workspaces(client, page)
    if isinstance(path, WorkspacePath):
        return _categories(path)
    if isinstance(path, CategoryPath):
        return _category_members(client, path, page)
    if isinstance(path, CategoryInstancePath):
        return _projects(client, path, page)
    raise InvalidScopePath(f"unhandled scope path {path!r}")
