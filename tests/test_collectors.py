"""
Tests for the paginated collector and the Asana collect stages.

Covers:
- pagination: one request per page, offset echoed, stops on empty offset
- each page persisted before the next request
- single-object collection
- fan-out over extracted tasks, with the input row kept on raw records
- failure and cancellation
"""

import pytest

from engine.asana_client import AsanaApiError
from lake.collectors import asana as collectors
from lake.collectors.base import ApiCollector
from lake.context import CollectionCancelled
from tests.fixtures import FakeAsanaClient, seed_tasks

PARAMS_TASKS = "projects/P1/tasks"


class TestPagination:
    def test_follows_offsets_until_last_page(self, make_ctx, store):
        client = FakeAsanaClient(
            pages={PARAMS_TASKS: [[{"gid": "1"}, {"gid": "2"}], [{"gid": "3"}], [{"gid": "4"}]]}
        )
        ctx = make_ctx(client=client)

        written = collectors.collect_task(ctx)

        assert written == 4
        assert store.count_raw("_raw_asana_tasks", ctx.params) == 4
        offsets = [params.get("offset") for _, params in client.calls]
        assert offsets == [None, "off-1", "off-2"]

    def test_single_page_makes_one_request(self, make_ctx):
        client = FakeAsanaClient(pages={PARAMS_TASKS: [[{"gid": "1"}]]})
        collectors.collect_task(make_ctx(client=client))
        assert len(client.calls) == 1

    def test_sends_limit_and_opt_fields(self, make_ctx):
        client = FakeAsanaClient()
        ctx = make_ctx(client=client, page_size=50)
        collectors.collect_task(ctx)
        _, params = client.calls[0]
        assert params["limit"] == 50
        assert params["opt_fields"] == collectors.TASK_OPT_FIELDS
        assert "offset" not in params

    def test_page_persisted_before_next_request(self, make_ctx, store):
        seen_counts = []

        def before_page(endpoint, params):
            seen_counts.append(store.count_raw("_raw_asana_tasks", make_ctx().params))

        client = FakeAsanaClient(
            pages={PARAMS_TASKS: [[{"gid": "1"}, {"gid": "2"}], [{"gid": "3"}]]},
            before_page=before_page,
        )
        collectors.collect_task(make_ctx(client=client))
        assert seen_counts == [0, 2]

    def test_recollection_replaces_previous_records(self, make_ctx, store):
        other_scope = '{"ConnectionId":1,"ProjectId":"P2"}'
        store.append_raw("_raw_asana_tasks", other_scope, [{"gid": "X"}])
        collectors.collect_task(
            make_ctx(client=FakeAsanaClient(pages={PARAMS_TASKS: [[{"gid": "1"}, {"gid": "2"}]]}))
        )

        ctx = make_ctx(client=FakeAsanaClient(pages={PARAMS_TASKS: [[{"gid": "1"}]]}))
        collectors.collect_task(ctx)

        assert [r.json()["gid"] for r in store.iter_raw("_raw_asana_tasks", ctx.params)] == ["1"]
        assert store.count_raw("_raw_asana_tasks", other_scope) == 1

    def test_empty_listing_writes_nothing(self, make_ctx, store):
        ctx = make_ctx(client=FakeAsanaClient())
        assert collectors.collect_section(ctx) == 0
        assert store.count_raw("_raw_asana_sections", ctx.params) == 0

    def test_raw_record_keeps_url_and_payload(self, make_ctx, store):
        ctx = make_ctx(client=FakeAsanaClient(pages={PARAMS_TASKS: [[{"gid": "9", "name": "x"}]]}))
        collectors.collect_task(ctx)
        [record] = store.iter_raw("_raw_asana_tasks", ctx.params)
        assert record.json() == {"gid": "9", "name": "x"}
        assert record.url == "https://fake.asana/projects/P1/tasks"
        assert record.input is None


class TestSingleObject:
    def test_project_collected_as_one_record(self, make_ctx, store):
        client = FakeAsanaClient(objects={"projects/P1": {"gid": "P1", "name": "Roadmap"}})
        ctx = make_ctx(client=client)
        assert collectors.collect_project(ctx) == 1
        [record] = store.iter_raw("_raw_asana_projects", ctx.params)
        assert record.json()["name"] == "Roadmap"

    def test_missing_project_writes_nothing(self, make_ctx):
        assert collectors.collect_project(make_ctx(client=FakeAsanaClient())) == 0


class TestFanOut:
    @pytest.fixture
    def seeded(self, store):
        seed_tasks(
            store,
            1,
            "P1",
            [
                {"gid": "T1", "num_subtasks": 2},
                {"gid": "T2", "num_subtasks": 0},
                {"gid": "T3", "num_subtasks": 1, "parent_gid": "T1"},
            ],
        )

    def test_one_sub_collection_per_task(self, seeded, make_ctx, store):
        client = FakeAsanaClient(
            pages={
                "tasks/T1/stories": [[{"gid": "S1"}], [{"gid": "S2"}]],
                "tasks/T2/stories": [[{"gid": "S3"}]],
            }
        )
        ctx = make_ctx(client=client, fanout_workers=2)

        assert collectors.collect_story(ctx) == 3
        assert sorted(set(client.endpoints())) == [
            "tasks/T1/stories",
            "tasks/T2/stories",
            "tasks/T3/stories",
        ]
        inputs = {r.json()["gid"]: r.input for r in store.iter_raw("_raw_asana_stories", ctx.params)}
        assert inputs == {"S1": {"gid": "T1"}, "S2": {"gid": "T1"}, "S3": {"gid": "T2"}}

    def test_subtasks_only_for_top_level_parents(self, seeded, make_ctx):
        client = FakeAsanaClient()
        collectors.collect_subtask(make_ctx(client=client))
        assert client.endpoints() == ["tasks/T1/subtasks"]

    def test_no_tasks_makes_no_requests(self, make_ctx):
        client = FakeAsanaClient()
        assert collectors.collect_tag(make_ctx(client=client)) == 0
        assert client.calls == []

    def test_failed_sub_collection_fails_stage(self, seeded, make_ctx):
        client = FakeAsanaClient(errors={"tasks/T2/tags": AsanaApiError("boom", status_code=400)})
        with pytest.raises(AsanaApiError):
            collectors.collect_tag(make_ctx(client=client, fanout_workers=1))


class TestCancellation:
    def test_cancelled_before_start(self, make_ctx, store):
        client = FakeAsanaClient(pages={PARAMS_TASKS: [[{"gid": "1"}]]})
        ctx = make_ctx(client=client)
        store.append_raw("_raw_asana_tasks", ctx.params, [{"gid": "old"}])
        ctx.cancel()
        with pytest.raises(CollectionCancelled):
            collectors.collect_task(ctx)
        assert client.calls == []
        assert store.count_raw("_raw_asana_tasks", ctx.params) == 1

    def test_cancelled_between_pages_keeps_earlier_pages(self, make_ctx, store):
        holder = {}

        def before_page(endpoint, params):
            holder["ctx"].cancel()

        client = FakeAsanaClient(
            pages={PARAMS_TASKS: [[{"gid": "1"}], [{"gid": "2"}]]}, before_page=before_page
        )
        ctx = make_ctx(client=client)
        holder["ctx"] = ctx

        with pytest.raises(CollectionCancelled):
            collectors.collect_task(ctx)
        assert len(client.calls) == 1
        assert store.count_raw("_raw_asana_tasks", ctx.params) == 1

    def test_requires_client(self, make_ctx):
        with pytest.raises(RuntimeError):
            ApiCollector(make_ctx(client=None), "_raw_asana_tasks", "projects/{project_id}/tasks").execute()
