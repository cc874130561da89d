"""
Tests for the asana-lake CLI (commands run in-process against a temp lake).
"""

import json
from unittest.mock import patch

import pytest

from cli import main as cli
from engine.asana_client import AsanaApiError, AsanaClient
from tests.fixtures import FakeAsanaClient


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch.object(cli, "configure_logging"):
        yield


@pytest.fixture
def fake():
    return FakeAsanaClient(
        pages={"workspaces": [[{"gid": "W1", "name": "Acme"}], [{"gid": "W2", "name": "Beta"}]]},
        objects={"users/me": {"gid": "U1", "name": "Ada", "email": "ada@example.com"}},
    )


@pytest.fixture
def connected(fake):
    with patch.object(AsanaClient, "for_connection", return_value=fake) as factory:
        yield factory


def test_init_db(capsys, isolated_lake_home):
    assert cli.main(["init-db"]) == cli.EXIT_OK
    assert (isolated_lake_home / "data" / "asana_lake.db").exists()
    assert "Schema version" in capsys.readouterr().out


def test_init_db_fresh(capsys):
    assert cli.main(["init-db", "--fresh"]) == cli.EXIT_OK
    assert "Tables created" in capsys.readouterr().out


def test_stages_lists_in_order(capsys):
    assert cli.main(["stages"]) == cli.EXIT_OK
    out = capsys.readouterr().out
    assert out.index("collect_project") < out.index("convert_user")


class TestBrowse:
    def test_json_listing(self, capsys, connected):
        assert cli.main(["browse", "--connection", "1", "--json"]) == cli.EXIT_OK
        listing = json.loads(capsys.readouterr().out)
        assert listing["children"][0]["id"] == "workspace/W1"
        assert listing["next_page"] == {"offset": "off-1", "limit": 100}
        connected.assert_called_once_with(1)

    def test_table_prints_next_token(self, capsys, connected):
        assert cli.main(["browse", "--connection", "1"]) == cli.EXIT_OK
        assert "--page-token" in capsys.readouterr().out

    def test_invalid_group(self, capsys, connected):
        assert cli.main(["browse", "--connection", "1", "--group", "nope/1"]) == cli.EXIT_USAGE
        assert "invalid groupId" in capsys.readouterr().out

    def test_api_error(self, capsys, connected, fake):
        fake.errors["workspaces"] = AsanaApiError("denied", status_code=403)
        assert cli.main(["browse", "--connection", "1"]) == cli.EXIT_FAILED

    def test_unknown_connection(self, capsys):
        assert cli.main(["browse", "--connection", "99"]) == cli.EXIT_USAGE
        assert "99" in capsys.readouterr().out


class TestScopeConfig:
    def test_set_show_assign(self, capsys, tmp_path):
        mappings = tmp_path / "mappings.json"
        mappings.write_text(json.dumps({"milestone": {"standardType": "EPIC"}}))

        assert (
            cli.main(
                [
                    "scope-config", "set", "--connection", "1", "--name", "default",
                    "--bug", "bug", "--type-mappings", f"@{mappings}",
                ]
            )
            == cli.EXIT_OK
        )
        assert "Scope config 1 (default) saved" in capsys.readouterr().out

        assert cli.main(["scope-config", "set", "--connection", "1", "--id", "1", "--incident", "outage"]) == 0
        capsys.readouterr()

        assert cli.main(["scope-config", "show", "--connection", "1", "--id", "1"]) == cli.EXIT_OK
        shown = json.loads(capsys.readouterr().out)
        assert shown["issue_type_bug"] == "bug"
        assert shown["issue_type_incident"] == "outage"
        assert shown["type_mappings"]["milestone"]["standardType"] == "EPIC"

        assert cli.main(["scope-config", "assign", "--connection", "1", "--project", "P1", "--id", "1"]) == cli.EXIT_USAGE

    def test_set_invalid_pattern(self, capsys):
        args = ["scope-config", "set", "--connection", "1", "--name", "x", "--bug", "("]
        assert cli.main(args) == cli.EXIT_USAGE
        assert "invalid pattern" in capsys.readouterr().out

    @pytest.mark.parametrize("mappings", ["{not json", "[1]", '{"default_task": "TASK"}'])
    def test_set_malformed_type_mappings(self, capsys, mappings):
        args = ["scope-config", "set", "--connection", "1", "--name", "x", "--type-mappings", mappings]
        assert cli.main(args) == cli.EXIT_USAGE
        assert capsys.readouterr().out.startswith("❌")

    def test_set_missing_type_mappings_file(self, capsys, tmp_path):
        args = ["scope-config", "set", "--connection", "1", "--name", "x", "--type-mappings", f"@{tmp_path}/nope.json"]
        assert cli.main(args) == cli.EXIT_USAGE

    def test_show_missing(self, capsys):
        assert cli.main(["scope-config", "show", "--connection", "1", "--id", "5"]) == cli.EXIT_USAGE

    def test_show_list_empty(self, capsys):
        assert cli.main(["scope-config", "show", "--connection", "1"]) == cli.EXIT_OK
        assert "(none)" in capsys.readouterr().out


class TestRun:
    def test_convert_only_run_needs_no_client(self, capsys):
        assert cli.main(["run", "--connection", "1", "--project", "P1", "--stages", "convert_project"]) == 0
        out = capsys.readouterr().out
        assert "Pipeline finished" in out
        assert "convert_project" in out

    def test_unknown_stage(self, capsys):
        assert cli.main(["run", "--connection", "1", "--project", "P1", "--stages", "bogus"]) == cli.EXIT_USAGE
        assert "bogus" in capsys.readouterr().out

    def test_failed_stage(self, capsys, connected, fake):
        fake.errors["projects/P1"] = AsanaApiError("forbidden", status_code=403)
        assert cli.main(["run", "--connection", "1", "--project", "P1", "--stages", "collect_project"]) == 1
        out = capsys.readouterr().out
        assert "failed at collect_project" in out
        assert "forbidden" in out


class TestCheck:
    def test_db_only(self, capsys):
        assert cli.main(["check"]) == cli.EXIT_OK
        assert "Lake DB" in capsys.readouterr().out

    def test_with_connection(self, capsys, connected):
        assert cli.main(["check", "--connection", "1"]) == cli.EXIT_OK
        assert "authenticated as Ada (ada@example.com)" in capsys.readouterr().out

    def test_rejected_token(self, capsys, connected, fake):
        fake.errors["users/me"] = AsanaApiError("Not Authorized", status_code=401)
        assert cli.main(["check", "--connection", "1"]) == cli.EXIT_FAILED
