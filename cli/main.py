#!/usr/bin/env python3
"""
Asana Lake CLI - run pipelines and manage scopes from a terminal.

Commands:
- init-db                     converge (or --fresh recreate) the lake schema
- stages                      list pipeline stages in run order
- run                         run the pipeline for one project
- browse                      walk the remote scope tree of a connection
- scope-config set|show|assign
- check                       verify a connection's token and show DB info
"""

import argparse
import json
import sys
from pathlib import Path

from engine.asana_client import AsanaApiError, AsanaClient, MalformedResponseError
from lake import db as db_module
from lake import scope_configs
from lake.config import ConnectionNotFound
from lake.models import PipelineOptions, ScopeConfig, parse_type_mappings
from lake.observability import configure_logging
from lake.pipeline import SUBTASK_METAS, PipelineError, run_pipeline
from lake.remote_scopes import (
    InvalidPageToken,
    InvalidScopePath,
    browse,
    decode_page_token,
    encode_page_token,
)
from lake.schema_engine import create_fresh
from lake.scope_configs import ScopeConfigConflict, ScopeConfigNotFound, ScopeNotFound
from lake.store import get_store

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def print_header(text: str):
    """Print a section header."""
    print(f"\n{'═' * 50}")
    print(f"  {text}")
    print(f"{'═' * 50}")


def print_table(headers: list, rows: list, widths: list = None):
    """Print a simple table."""
    if not rows:
        print("  (none)")
        return
    if not widths:
        widths = [
            max(len(str(row[i])) for row in [headers] + rows)
            for i in range(len(headers))
        ]

    header_str = " │ ".join(str(h).ljust(w) for h, w in zip(headers, widths))
    print(header_str)
    print("─" * len(header_str))
    for row in rows:
        print(" │ ".join(str(c)[:w].ljust(w) for c, w in zip(row, widths)))


def _client(connection_id: int) -> AsanaClient | None:
    try:
        return AsanaClient.for_connection(connection_id)
    except (ConnectionNotFound, ValueError) as e:
        print(f"❌ {e}")
        return None


# ==== Commands ====


def cmd_init_db(args):
    """Converge the schema, or drop and recreate it with --fresh."""
    path = db_module.get_db_path()
    if args.fresh:
        with db_module.get_connection(path, row_factory=False) as conn:
            results = create_fresh(conn)
    else:
        results = db_module.run_startup_migrations(path)

    print_header(f"Lake DB: {path}")
    print(f"  Schema version: {results['schema_version']}")
    print(f"  Tables created: {len(results.get('tables_created', []))}")
    print(f"  Columns added:  {len(results.get('columns_added', []))}")
    print(f"  Indexes created: {len(results.get('indexes_created', []))}")
    for error in results.get("errors", []):
        print(f"  ⚠️  {error}")
    return EXIT_FAILED if results.get("errors") else EXIT_OK


def cmd_stages(args):
    """List the pipeline stages in run order."""
    print_header("Pipeline stages")
    rows = [
        (stage.name, "yes" if stage.enabled_by_default else "no", stage.description)
        for stage in SUBTASK_METAS
    ]
    print_table(["Stage", "Default", "Description"], rows, [18, 7, 70])
    return EXIT_OK


def cmd_run(args):
    """Run the pipeline for one project."""
    options = PipelineOptions(
        connection_id=args.connection,
        project_id=args.project,
        scope_config_id=args.scope_config,
    )
    stages = [s.strip() for s in args.stages.split(",") if s.strip()] if args.stages else None
    try:
        options.validate()
        result = run_pipeline(options, stages=stages)
    except (ValueError, ConnectionNotFound) as e:
        print(f"❌ {e}")
        return EXIT_USAGE
    except PipelineError as e:
        result = e.result
        print_header(f"Pipeline {'cancelled' if e.cancelled else 'failed'} at {e.stage}")
        print(f"  Cause: {e.__cause__}")
    else:
        print_header(f"Pipeline finished: project {options.project_id}")

    print_table(
        ["Stage", "Status", "Rows", "ms"],
        [(s.name, s.status, s.rows, s.duration_ms) for s in result.stages],
    )
    return EXIT_OK if result.success else EXIT_FAILED


def cmd_browse(args):
    """List one level of the remote scope tree."""
    client = _client(args.connection)
    if client is None:
        return EXIT_USAGE
    try:
        listing = browse(client, args.group, decode_page_token(args.page_token))
    except (InvalidScopePath, InvalidPageToken) as e:
        print(f"❌ {e}")
        return EXIT_USAGE
    except (AsanaApiError, MalformedResponseError) as e:
        print(f"❌ Asana API error: {e}")
        return EXIT_FAILED

    if args.json:
        print(json.dumps(listing.to_dict(), indent=2))
        return EXIT_OK

    print_header(f"Remote scopes under {args.group or '(root)'}")
    print_table(
        ["Type", "Id", "Name"],
        [(child.type, child.id, child.name) for child in listing.children],
    )
    if listing.next_page:
        print(f"\n  More: --page-token {encode_page_token(listing.next_page)}")
    return EXIT_OK


def _load_type_mappings(value: str | None) -> dict | None:
    if value is None:
        return None
    if value.startswith("@"):
        value = Path(value[1:]).read_text()
    return json.loads(value)


def cmd_scope_config_set(args):
    """Create a scope config, or update it with --id."""
    store = get_store()
    try:
        changes = {
            "name": args.name,
            "issue_type_requirement": args.requirement,
            "issue_type_bug": args.bug,
            "issue_type_incident": args.incident,
            "type_mappings": _load_type_mappings(args.type_mappings),
        }
        if args.id:
            saved = scope_configs.update_scope_config(store, args.connection, args.id, changes)
        else:
            type_mappings = parse_type_mappings(changes.pop("type_mappings"))
            fields = {k: v for k, v in changes.items() if v is not None}
            saved = scope_configs.create_scope_config(
                store,
                ScopeConfig(connection_id=args.connection, type_mappings=type_mappings, **fields),
            )
    except (ScopeConfigNotFound, ScopeConfigConflict, ValueError, OSError) as e:
        print(f"❌ {e}")
        return EXIT_USAGE
    print(f"✅ Scope config {saved.id} ({saved.name}) saved")
    return EXIT_OK


def cmd_scope_config_show(args):
    """Show one scope config, or list them all."""
    store = get_store()
    if args.id:
        try:
            scope_config = scope_configs.get_scope_config(store, args.connection, args.id)
        except ScopeConfigNotFound as e:
            print(f"❌ {e}")
            return EXIT_USAGE
        row = scope_config.to_row()
        row["type_mappings"] = json.loads(row["type_mappings"])
        print(json.dumps(row, indent=2))
        return EXIT_OK

    print_header(f"Scope configs of connection {args.connection}")
    print_table(
        ["Id", "Name", "Requirement", "Bug", "Incident", "Mappings"],
        [
            (
                c.id,
                c.name,
                c.issue_type_requirement,
                c.issue_type_bug,
                c.issue_type_incident,
                len(c.type_mappings),
            )
            for c in scope_configs.list_scope_configs(store, args.connection)
        ],
    )
    return EXIT_OK


def cmd_scope_config_assign(args):
    """Point a project at a scope config (0 clears it)."""
    store = get_store()
    try:
        row = scope_configs.assign_scope_config(
            store, args.connection, args.project, args.id or None
        )
    except (ScopeNotFound, ScopeConfigNotFound) as e:
        print(f"❌ {e}")
        return EXIT_USAGE
    print(f"✅ Project {row['gid']} uses scope config {row['scope_config_id']}")
    return EXIT_OK


def cmd_check(args):
    """Check the DB and, with --connection, the Asana token."""
    info = db_module.get_db_info()
    print_header("Lake DB")
    print(f"  Path: {info['resolved_db_path']}")
    print(f"  Schema version: {info['user_version']}")
    print_table(["Table", "Rows"], [(t, "-" if c is None else c) for t, c in info["tables"].items()])

    if args.connection is None:
        return EXIT_OK

    client = _client(args.connection)
    if client is None:
        return EXIT_USAGE
    try:
        me = client.me()
    except (AsanaApiError, MalformedResponseError) as e:
        print(f"❌ Connection {args.connection}: {e}")
        return EXIT_FAILED
    print(f"\n✅ Connection {args.connection} authenticated as {me.get('name')} ({me.get('email')})")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="asana-lake", description="Asana Lake CLI")
    parser.add_argument("--log-level", default="INFO", help="Log level")
    parser.add_argument("--json-logs", action="store_true", default=None, help="JSON log lines")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("init-db", help="Converge the lake schema")
    p.add_argument("--fresh", action="store_true", help="Drop every table and recreate")
    p.set_defaults(func=cmd_init_db)

    p = subparsers.add_parser("stages", help="List pipeline stages")
    p.set_defaults(func=cmd_stages)

    p = subparsers.add_parser("run", help="Run the pipeline for one project")
    p.add_argument("--connection", type=int, required=True, help="Connection id")
    p.add_argument("--project", required=True, help="Asana project gid")
    p.add_argument("--scope-config", type=int, help="Scope config id")
    p.add_argument("--stages", help="Comma-separated stage names (default: all)")
    p.set_defaults(func=cmd_run)

    p = subparsers.add_parser("browse", help="Browse remote scopes")
    p.add_argument("--connection", type=int, required=True, help="Connection id")
    p.add_argument("--group", default="", help="Group id, e.g. workspace/123/team")
    p.add_argument("--page-token", default="", help="Token printed by the previous page")
    p.add_argument("--json", action="store_true", help="Print raw JSON")
    p.set_defaults(func=cmd_browse)

    sc = subparsers.add_parser("scope-config", help="Manage scope configs")
    sc_sub = sc.add_subparsers(dest="action", required=True)

    p = sc_sub.add_parser("set", help="Create or update a scope config")
    p.add_argument("--connection", type=int, required=True, help="Connection id")
    p.add_argument("--id", type=int, help="Update this scope config instead of creating")
    p.add_argument("--name", help="Scope config name")
    p.add_argument("--requirement", help="Tag pattern for REQUIREMENT")
    p.add_argument("--bug", help="Tag pattern for BUG")
    p.add_argument("--incident", help="Tag pattern for INCIDENT")
    p.add_argument("--type-mappings", help="JSON, or @file with JSON")
    p.set_defaults(func=cmd_scope_config_set)

    p = sc_sub.add_parser("show", help="Show scope configs")
    p.add_argument("--connection", type=int, required=True, help="Connection id")
    p.add_argument("--id", type=int, help="Scope config id")
    p.set_defaults(func=cmd_scope_config_show)

    p = sc_sub.add_parser("assign", help="Assign a scope config to a project")
    p.add_argument("--connection", type=int, required=True, help="Connection id")
    p.add_argument("--project", required=True, help="Asana project gid")
    p.add_argument("--id", type=int, required=True, help="Scope config id (0 clears)")
    p.set_defaults(func=cmd_scope_config_assign)

    p = subparsers.add_parser("check", help="Check DB and connection")
    p.add_argument("--connection", type=int, help="Connection id to authenticate")
    p.set_defaults(func=cmd_check)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, json_format=args.json_logs)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
