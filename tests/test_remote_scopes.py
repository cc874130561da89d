"""
Tests for the remote scope browser: path parsing, dispatch, paging, fallbacks.
"""

import logging

import pytest

from engine.asana_client import AsanaApiError, MalformedResponseError
from lake.remote_scopes import (
    CategoryInstancePath,
    CategoryPath,
    InvalidPageToken,
    InvalidScopePath,
    RemotePage,
    RootPath,
    WorkspacePath,
    browse,
    decode_page_token,
    encode_page_token,
    parse_path,
    path_id,
)
from tests.fixtures import FakeAsanaClient


class TestParsePath:
    @pytest.mark.parametrize(
        "group_id,expected",
        [
            ("", RootPath()),
            (None, RootPath()),
            ("workspace/W1", WorkspacePath("W1")),
            ("workspace/W1/team", CategoryPath("W1", "team")),
            ("workspace/W1/goal/G7", CategoryInstancePath("W1", "goal", "G7")),
        ],
    )
    def test_valid(self, group_id, expected):
        assert parse_path(group_id) == expected

    @pytest.mark.parametrize(
        "group_id",
        [
            "workspace",
            "workspace/",
            "workspace//team",
            "workspace/W1/projects",
            "workspace/W1/team/T1/extra",
            "workspace/W1/team/",
            "team/W1",
        ],
    )
    def test_invalid(self, group_id):
        with pytest.raises(InvalidScopePath):
            parse_path(group_id)

    def test_path_id_inverts_parse(self):
        for group_id in ("", "workspace/W1", "workspace/W1/portfolio", "workspace/W1/team/T1"):
            assert path_id(parse_path(group_id)) == group_id


class TestBrowse:
    def test_root_lists_workspaces(self):
        client = FakeAsanaClient(pages={"workspaces": [[{"gid": "W1", "name": "Acme"}]]})
        listing = browse(client, "")

        [entry] = listing.children
        assert entry.type == "group"
        assert entry.id == "workspace/W1"
        assert entry.name == "Acme"
        assert entry.parent_id is None
        assert listing.next_page is None
        _, params = client.calls[0]
        assert params == {"limit": 100, "opt_fields": "name,resource_type,is_organization"}

    def test_workspace_lists_three_categories_without_calls(self):
        client = FakeAsanaClient()
        listing = browse(client, "workspace/W1")
        assert [c.id for c in listing.children] == [
            "workspace/W1/team",
            "workspace/W1/portfolio",
            "workspace/W1/goal",
        ]
        assert [c.name for c in listing.children] == ["Teams", "Portfolios", "Goals"]
        assert all(c.parent_id == "workspace/W1" for c in listing.children)
        assert listing.next_page is None
        assert client.calls == []

    def test_teams(self):
        client = FakeAsanaClient(pages={"workspaces/W1/teams": [[{"gid": "T1", "name": "Eng"}]]})
        listing = browse(client, "workspace/W1/team")
        [entry] = listing.children
        assert entry.id == "workspace/W1/team/T1"
        assert entry.type == "group"
        assert entry.parent_id == "workspace/W1/team"

    def test_portfolios_are_mine(self):
        client = FakeAsanaClient()
        browse(client, "workspace/W1/portfolio")
        endpoint, params = client.calls[0]
        assert endpoint == "portfolios"
        assert params["workspace"] == "W1"
        assert params["owner"] == "me"

    def test_goals(self):
        client = FakeAsanaClient()
        browse(client, "workspace/W1/goal")
        endpoint, params = client.calls[0]
        assert endpoint == "goals"
        assert params["workspace"] == "W1"

    def test_team_projects_are_leaves(self):
        client = FakeAsanaClient(
            pages={
                "teams/T1/projects": [
                    [
                        {"gid": "P1", "name": "Roadmap", "resource_type": "project"},
                        {"gid": "P2", "name": "Ops", "workspace": {"gid": "W2"}, "archived": True},
                    ]
                ]
            }
        )
        listing = browse(client, "workspace/W1/team/T1")
        first, second = listing.children
        assert first.type == "scope"
        assert first.id == "P1"
        assert first.parent_id == "workspace/W1/team/T1"
        assert first.data == {
            "gid": "P1",
            "name": "Roadmap",
            "resource_type": "project",
            "archived": False,
            "permalink_url": "",
            "workspace_gid": "W1",
        }
        assert second.data["workspace_gid"] == "W2"
        assert second.data["archived"] is True

    def test_portfolio_items(self):
        client = FakeAsanaClient()
        browse(client, "workspace/W1/portfolio/F1")
        assert client.endpoints() == ["portfolios/F1/items"]

    def test_goal_supporting_work(self):
        client = FakeAsanaClient(pages={"goals/G1/supportingWork": [[{"gid": "P1", "name": "x"}]]})
        listing = browse(client, "workspace/W1/goal/G1")
        assert [c.id for c in listing.children] == ["P1"]

    def test_goal_lookup_failure_is_empty(self, caplog):
        client = FakeAsanaClient(
            errors={"goals/G1/supportingWork": AsanaApiError("not found", status_code=404)}
        )
        with caplog.at_level(logging.WARNING, logger="lake.remote_scopes"):
            listing = browse(client, "workspace/W1/goal/G1")
        assert listing.children == []
        assert listing.next_page is None
        assert "G1" in caplog.text

    def test_goal_malformed_response_fails(self):
        client = FakeAsanaClient(errors={"goals/G1/supportingWork": MalformedResponseError("bad")})
        with pytest.raises(MalformedResponseError):
            browse(client, "workspace/W1/goal/G1")

    def test_team_lookup_failure_propagates(self):
        client = FakeAsanaClient(errors={"teams/T1/projects": AsanaApiError("denied", status_code=403)})
        with pytest.raises(AsanaApiError):
            browse(client, "workspace/W1/team/T1")

    def test_invalid_path_makes_no_calls(self):
        client = FakeAsanaClient()
        with pytest.raises(InvalidScopePath):
            browse(client, "workspace/W1/bogus")
        assert client.calls == []


class TestPaging:
    def test_next_page_when_more(self):
        client = FakeAsanaClient(pages={"workspaces": [[{"gid": "W1"}], [{"gid": "W2"}]]})
        listing = browse(client, "", RemotePage(limit=1))
        assert listing.next_page == RemotePage(offset="off-1", limit=1)

        listing = browse(client, "", listing.next_page)
        assert [c.id for c in listing.children] == ["workspace/W2"]
        assert listing.next_page is None
        assert client.calls[1][1] == {"limit": 1, "offset": "off-1", "opt_fields": "name,resource_type,is_organization"}

    def test_non_positive_limit_uses_default(self):
        client = FakeAsanaClient()
        browse(client, "", RemotePage(limit=0))
        assert client.calls[0][1]["limit"] == 100

    def test_page_token_round_trip(self):
        page = RemotePage(offset="eyJ0", limit=25)
        assert decode_page_token(encode_page_token(page)) == page
        assert encode_page_token(None) == ""
        assert decode_page_token("") == RemotePage()

    @pytest.mark.parametrize("token", ["%%%", "bm90IGpzb24=", "WzFd"])
    def test_bad_page_token(self, token):
        with pytest.raises(InvalidPageToken):
            decode_page_token(token)
