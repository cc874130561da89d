"""
Tests for the structural extractor: raw records -> _tool_asana_* rows.
"""

import pytest

from lake.extractors import asana as extractors
from lake.extractors.asana import ApiMembership, ApiTask, GidRef, parse_date
from lake.extractors.base import MalformedRecordError


def _task_payload(**overrides):
    payload = {
        "gid": "T1",
        "name": "Write docs",
        "notes": "",
        "resource_type": "task",
        "resource_subtype": "default_task",
        "completed": False,
        "completed_at": None,
        "due_on": "2024-03-01",
        "created_at": "2024-01-01T10:00:00.000Z",
        "modified_at": "2024-01-02T10:00:00.000Z",
        "permalink_url": "https://app.asana.com/0/P1/T1",
        "assignee": {"gid": "U1", "name": "Ada"},
        "created_by": {"gid": "U2", "name": "Grace"},
        "parent": None,
        "num_subtasks": 0,
        "memberships": [
            {"project": {"gid": "P1"}, "section": {"gid": "S1", "name": "Doing"}},
        ],
    }
    payload.update(overrides)
    return payload


def _tool_task(store, gid):
    return store.find_one("_tool_asana_tasks", "connection_id = ? AND gid = ?", [1, gid])


class TestParsing:
    def test_gid_ref_tolerates_null(self):
        assert GidRef.from_json(None) == GidRef()
        assert GidRef.from_json({"gid": "1", "name": "x"}) == GidRef("1", "x")

    def test_placement_first_section_wins(self):
        task = ApiTask.from_json(
            _task_payload(
                memberships=[
                    {"project": {"gid": "P9"}},
                    {"project": {"gid": "P1"}, "section": {"gid": "S1", "name": "Doing"}},
                    {"project": {"gid": "P2"}, "section": {"gid": "S2", "name": "Done"}},
                ]
            )
        )
        project_gid, section = task.placement("P1")
        assert project_gid == "P1"
        assert section == GidRef("S1", "Doing")

    def test_placement_defaults_to_scope_project(self):
        task = ApiTask.from_json(_task_payload(memberships=None))
        assert task.placement("P1") == ("P1", GidRef())
        assert task.memberships == ()

    def test_membership_without_project(self):
        membership = ApiMembership.from_json({"section": {"gid": "S1"}})
        assert membership.project == GidRef()

    def test_parse_date(self):
        assert parse_date("2024-03-01") == "2024-03-01"
        assert parse_date("") is None
        assert parse_date("03/01/2024") is None


class TestExtractTask:
    def test_flattens_task(self, ctx, store):
        store.append_raw("_raw_asana_tasks", ctx.params, [_task_payload()])
        assert extractors.extract_task(ctx) == 1

        row = _tool_task(store, "T1")
        assert row["project_gid"] == "P1"
        assert row["section_gid"] == "S1"
        assert row["section_name"] == "Doing"
        assert row["assignee_gid"] == "U1"
        assert row["creator_name"] == "Grace"
        assert row["parent_gid"] == ""
        assert row["due_on"] == "2024-03-01"
        assert row["completed"] == 0
        assert row["raw_data_table"] == "_raw_asana_tasks"
        assert row["raw_data_params"] == ctx.params
        assert row["raw_data_id"] > 0

    def test_missing_optional_refs_become_empty(self, ctx, store):
        payload = {"gid": "T2", "completed": True}
        store.append_raw("_raw_asana_tasks", ctx.params, [payload])
        extractors.extract_task(ctx)
        row = _tool_task(store, "T2")
        assert row["assignee_gid"] == ""
        assert row["creator_gid"] == ""
        assert row["section_name"] == ""
        assert row["project_gid"] == "P1"
        assert row["completed"] == 1

    def test_section_name_from_extracted_sections(self, ctx, store):
        store.append_raw("_raw_asana_sections", ctx.params, [{"gid": "S1", "name": "Backlog"}])
        extractors.extract_section(ctx)
        payload = _task_payload(memberships=[{"project": {"gid": "P1"}, "section": {"gid": "S1"}}])
        store.append_raw("_raw_asana_tasks", ctx.params, [payload])
        extractors.extract_task(ctx)
        assert _tool_task(store, "T1")["section_name"] == "Backlog"

    def test_idempotent(self, ctx, store):
        store.append_raw("_raw_asana_tasks", ctx.params, [_task_payload(), _task_payload(gid="T2")])
        extractors.extract_task(ctx)
        first = store.find("_tool_asana_tasks", order_by="gid")
        extractors.extract_task(ctx)
        assert store.find("_tool_asana_tasks", order_by="gid") == first
        assert len(first) == 2

    def test_latest_raw_record_wins(self, ctx, store):
        store.append_raw("_raw_asana_tasks", ctx.params, [_task_payload(name="old")])
        store.append_raw("_raw_asana_tasks", ctx.params, [_task_payload(name="new")])
        extractors.extract_task(ctx)
        assert _tool_task(store, "T1")["name"] == "new"

    def test_other_scope_ignored(self, ctx, store):
        store.append_raw("_raw_asana_tasks", '{"ConnectionId":1,"ProjectId":"P2"}', [_task_payload()])
        assert extractors.extract_task(ctx) == 0

    def test_invalid_json_is_fatal(self, ctx, store):
        store.append_raw("_raw_asana_tasks", ctx.params, [b"{not json"])
        with pytest.raises(MalformedRecordError):
            extractors.extract_task(ctx)

    def test_non_object_is_fatal(self, ctx, store):
        store.append_raw("_raw_asana_tasks", ctx.params, [["a", "b"]])
        with pytest.raises(MalformedRecordError):
            extractors.extract_task(ctx)

    def test_missing_gid_is_fatal(self, ctx, store):
        store.append_raw("_raw_asana_tasks", ctx.params, [{"name": "no id"}])
        with pytest.raises(MalformedRecordError, match="no gid"):
            extractors.extract_task(ctx)

    def test_task_gone_from_new_collection_removed(self, ctx, store):
        store.append_raw("_raw_asana_tasks", ctx.params, [_task_payload(), _task_payload(gid="T2")])
        extractors.extract_task(ctx)

        store.clear_raw("_raw_asana_tasks", ctx.params)
        store.append_raw("_raw_asana_tasks", ctx.params, [_task_payload()])
        extractors.extract_task(ctx)

        assert [row["gid"] for row in store.find("_tool_asana_tasks")] == ["T1"]

    def test_rows_from_other_origins_kept(self, ctx, store):
        store.upsert_many("_tool_asana_tasks", [{"connection_id": 1, "gid": "SEED", "project_gid": "P1"}])
        store.append_raw(
            "_raw_asana_subtasks", ctx.params, [_task_payload(gid="T9")], input_row={"gid": "T1"}
        )
        extractors.extract_subtask(ctx)
        store.append_raw("_raw_asana_tasks", ctx.params, [_task_payload()])
        extractors.extract_task(ctx)

        assert [row["gid"] for row in store.find("_tool_asana_tasks", order_by="gid")] == [
            "SEED",
            "T1",
            "T9",
        ]


class TestDependentExtraction:
    def test_subtask_parent_from_input_row(self, ctx, store):
        store.append_raw(
            "_raw_asana_subtasks", ctx.params, [_task_payload(gid="T9", memberships=[])], input_row={"gid": "T1"}
        )
        extractors.extract_subtask(ctx)
        row = _tool_task(store, "T9")
        assert row["parent_gid"] == "T1"
        assert row["project_gid"] == "P1"

    def test_tag_links_task(self, ctx, store):
        store.append_raw(
            "_raw_asana_tags", ctx.params, [{"gid": "G1", "name": "bug"}], input_row={"gid": "T1"}
        )
        assert extractors.extract_tag(ctx) == 2
        assert store.find_one("_tool_asana_tags", "gid = ?", ["G1"])["name"] == "bug"
        link = store.find_one("_tool_asana_task_tags", "task_gid = ?", ["T1"])
        assert link["tag_gid"] == "G1"

    def test_same_tag_on_two_tasks(self, ctx, store):
        store.append_raw("_raw_asana_tags", ctx.params, [{"gid": "G1", "name": "bug"}], input_row={"gid": "T1"})
        store.append_raw("_raw_asana_tags", ctx.params, [{"gid": "G1", "name": "bug"}], input_row={"gid": "T2"})
        extractors.extract_tag(ctx)
        assert store.count("_tool_asana_tags") == 1
        assert store.count("_tool_asana_task_tags") == 2

    def test_removed_tag_link_dropped(self, ctx, store):
        store.append_raw("_raw_asana_tags", ctx.params, [{"gid": "G1", "name": "bug"}], input_row={"gid": "T1"})
        extractors.extract_tag(ctx)

        store.clear_raw("_raw_asana_tags", ctx.params)
        extractors.extract_tag(ctx)

        assert store.count("_tool_asana_tags") == 0
        assert store.count("_tool_asana_task_tags") == 0

    def test_story_task_from_input_else_target(self, ctx, store):
        store.append_raw(
            "_raw_asana_stories",
            ctx.params,
            [{"gid": "S1", "resource_subtype": "comment_added", "text": "hi", "created_by": {"gid": "U1"}}],
            input_row={"gid": "T1"},
        )
        store.append_raw(
            "_raw_asana_stories", ctx.params, [{"gid": "S2", "target": {"gid": "T5"}}]
        )
        extractors.extract_story(ctx)
        assert store.find_one("_tool_asana_stories", "gid = ?", ["S1"])["task_gid"] == "T1"
        assert store.find_one("_tool_asana_stories", "gid = ?", ["S2"])["task_gid"] == "T5"


class TestExtractProjectAndUser:
    def test_project_row(self, ctx, store):
        store.append_raw(
            "_raw_asana_projects",
            ctx.params,
            [{"gid": "P1", "name": "Roadmap", "archived": False, "workspace": {"gid": "W1"}}],
        )
        extractors.extract_project(ctx)
        row = store.find_one("_tool_asana_projects", "gid = ?", ["P1"])
        assert row["name"] == "Roadmap"
        assert row["workspace_gid"] == "W1"
        assert row["scope_config_id"] is None

    def test_project_keeps_assigned_scope_config(self, ctx, store):
        store.upsert_many(
            "_tool_asana_projects", [{"connection_id": 1, "gid": "P1", "scope_config_id": 5}]
        )
        store.append_raw("_raw_asana_projects", ctx.params, [{"gid": "P1", "name": "Roadmap"}])
        extractors.extract_project(ctx)
        row = store.find_one("_tool_asana_projects", "gid = ?", ["P1"])
        assert row["scope_config_id"] == 5
        assert row["name"] == "Roadmap"

    def test_project_takes_scope_config_from_options(self, make_ctx, store, fake_client):
        ctx = make_ctx(client=fake_client, scope_config_id=3)
        store.append_raw("_raw_asana_projects", ctx.params, [{"gid": "P1"}])
        extractors.extract_project(ctx)
        assert store.find_one("_tool_asana_projects", "gid = ?", ["P1"])["scope_config_id"] == 3

    def test_user_photo(self, ctx, store):
        store.append_raw(
            "_raw_asana_users",
            ctx.params,
            [{"gid": "U1", "name": "Ada", "email": "ada@example.com", "photo": {"image_128x128": "https://img"}}],
        )
        extractors.extract_user(ctx)
        row = store.find_one("_tool_asana_users", "gid = ?", ["U1"])
        assert row["photo_url"] == "https://img"
        assert row["email"] == "ada@example.com"
