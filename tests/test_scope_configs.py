"""
Tests for scope and scope config storage.
"""

import pytest

from lake import scope_configs
from lake.models import ScopeConfig, TypeMapping, parse_type_mappings
from lake.scope_configs import ScopeConfigConflict, ScopeConfigNotFound, ScopeNotFound


def _create(store, name="default", **kwargs) -> ScopeConfig:
    return scope_configs.create_scope_config(
        store, ScopeConfig(connection_id=1, name=name, **kwargs)
    )


class TestValidation:
    def test_name_required(self):
        with pytest.raises(ValueError, match="name"):
            scope_configs.validate_scope_config(ScopeConfig(connection_id=1, name="  "))

    def test_bad_pattern(self):
        with pytest.raises(ValueError, match="issue_type_bug"):
            scope_configs.validate_scope_config(
                ScopeConfig(connection_id=1, name="c", issue_type_bug="[bug")
            )

    def test_unknown_status(self):
        config = ScopeConfig(
            connection_id=1,
            name="c",
            type_mappings={"default_task": TypeMapping("TASK", {"Doing": "WIP"})},
        )
        with pytest.raises(ValueError, match="WIP"):
            scope_configs.validate_scope_config(config)

    def test_empty_standard_type_allowed(self):
        config = ScopeConfig(
            connection_id=1,
            name="c",
            type_mappings={"default_task": TypeMapping("", {"Doing": "IN_PROGRESS"})},
        )
        assert scope_configs.validate_scope_config(config) is config

    @pytest.mark.parametrize(
        "raw",
        [
            "[1]",
            [1],
            {"default_task": "TASK"},
            {"default_task": {"statusMappings": ["Doing"]}},
            {"default_task": {"statusMappings": {"Doing": "IN_PROGRESS"}}},
        ],
    )
    def test_malformed_type_mappings(self, raw):
        with pytest.raises(ValueError):
            parse_type_mappings(raw)


class TestScopeConfigs:
    def test_create_round_trips_type_mappings(self, store):
        created = _create(
            store,
            issue_type_bug="bug|defect",
            type_mappings={"milestone": TypeMapping("EPIC", {"Done": "DONE"})},
        )
        assert created.id is not None
        fetched = scope_configs.get_scope_config(store, 1, created.id)
        assert fetched.issue_type_bug == "bug|defect"
        assert fetched.type_mappings["milestone"].status_mappings == {"Done": "DONE"}

    def test_duplicate_name(self, store):
        _create(store)
        with pytest.raises(ScopeConfigConflict):
            _create(store)

    def test_same_name_on_other_connection(self, store):
        _create(store)
        other = scope_configs.create_scope_config(store, ScopeConfig(connection_id=2, name="default"))
        assert [c.id for c in scope_configs.list_scope_configs(store, 2)] == [other.id]

    def test_get_is_scoped_to_connection(self, store):
        created = _create(store)
        with pytest.raises(ScopeConfigNotFound):
            scope_configs.get_scope_config(store, 2, created.id)

    def test_update_skips_none_and_parses_mappings(self, store):
        created = _create(store, issue_type_bug="bug")
        updated = scope_configs.update_scope_config(
            store,
            1,
            created.id,
            {
                "issue_type_bug": None,
                "issue_type_incident": "outage",
                "type_mappings": {"milestone": {"standardType": "EPIC"}},
            },
        )
        assert updated.issue_type_bug == "bug"
        assert updated.issue_type_incident == "outage"
        assert updated.type_mappings["milestone"].standard_type == "EPIC"

    def test_update_unknown_field(self, store):
        created = _create(store)
        with pytest.raises(ValueError, match="connection_id"):
            scope_configs.update_scope_config(store, 1, created.id, {"connection_id": 9})

    def test_delete(self, store):
        created = _create(store)
        scope_configs.delete_scope_config(store, 1, created.id)
        assert scope_configs.list_scope_configs(store, 1) == []

    def test_delete_in_use(self, store):
        created = _create(store)
        scope_configs.put_scopes(
            store, 1, [{"gid": "P1", "name": "Roadmap", "scope_config_id": created.id}]
        )
        with pytest.raises(ScopeConfigConflict, match="Roadmap"):
            scope_configs.delete_scope_config(store, 1, created.id)


class TestScopes:
    def test_put_and_list(self, store):
        saved = scope_configs.put_scopes(
            store,
            1,
            [
                {"gid": "P2", "name": "Two", "workspace_gid": "W1", "archived": True},
                {"gid": "P1", "name": "One"},
            ],
        )
        assert [row["gid"] for row in saved] == ["P2", "P1"]
        assert [row["gid"] for row in scope_configs.list_scopes(store, 1)] == ["P1", "P2"]
        assert scope_configs.get_scope(store, 1, "P2")["archived"] == 1

    def test_put_requires_gid(self, store):
        with pytest.raises(ValueError):
            scope_configs.put_scopes(store, 1, [{"name": "nameless"}])

    def test_put_rejects_unknown_config(self, store):
        with pytest.raises(ScopeConfigNotFound):
            scope_configs.put_scopes(store, 1, [{"gid": "P1", "scope_config_id": 42}])

    def test_put_preserves_assignment_and_fields(self, store):
        created = _create(store)
        scope_configs.put_scopes(
            store, 1, [{"gid": "P1", "name": "One", "workspace_gid": "W1", "scope_config_id": created.id}]
        )
        [row] = scope_configs.put_scopes(store, 1, [{"gid": "P1", "name": "Renamed"}])
        assert row["name"] == "Renamed"
        assert row["workspace_gid"] == "W1"
        assert row["scope_config_id"] == created.id

    def test_assign_and_clear(self, store):
        created = _create(store)
        scope_configs.put_scopes(store, 1, [{"gid": "P1"}])

        assert scope_configs.assign_scope_config(store, 1, "P1", created.id)["scope_config_id"] == created.id
        assert [p["gid"] for p in scope_configs.projects_using(store, 1, created.id)] == ["P1"]
        assert scope_configs.assign_scope_config(store, 1, "P1", None)["scope_config_id"] is None

    def test_assign_unknown_scope(self, store):
        with pytest.raises(ScopeNotFound):
            scope_configs.assign_scope_config(store, 1, "nope", None)

    def test_delete_scope(self, store):
        scope_configs.put_scopes(store, 1, [{"gid": "P1"}])
        scope_configs.delete_scope(store, 1, "P1")
        with pytest.raises(ScopeNotFound):
            scope_configs.get_scope(store, 1, "P1")
