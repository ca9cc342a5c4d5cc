"""CLI module for schema comparison, migration, and data reconciliation.

Provides commands for profile listing, connection tests, schema diff and
migration between profiles, row-count comparison, table reconciliation,
and instance-group status.

Usage:
    db-reconcile profiles
    db-reconcile test local staging
    db-reconcile diff --from prod --to staging
    db-reconcile migrate --from prod --to staging --output migration.sql
    db-reconcile migrate --from prod --to staging --confirm
    db-reconcile counts --from prod --to staging
    db-reconcile sync --from prod --to staging --table orders --key id --confirm
    db-reconcile status --group replicas

Commands:
    profiles  - List profiles and groups from db.toml
    test      - Test connections to one or more profiles
    diff      - Show schema differences between two profiles
    migrate   - Generate (and optionally apply) migration SQL
    counts    - Compare row key sets table by table
    sync      - Reconcile one table's rows from source to target
    status    - Check every target of an instance group
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.logging import RichHandler
from rich.table import Table

from db_reconcile import operations
from db_reconcile.config.loader import load_db_config
from db_reconcile.config.models import DatabaseConfig
from db_reconcile.errors import ReconcileError
from db_reconcile.factory import (
    ProfileNotFoundError,
    get_connector,
    get_profile,
    profile_schema,
)
from db_reconcile.sync.models import SyncOptions

console = Console()

_STATUS_STYLES = {
    "in_sync": "green",
    "out_of_sync": "yellow",
    "error": "red",
    "unchecked": "dim",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _load_config() -> DatabaseConfig | None:
    """Load db.toml, printing the error and returning None on failure."""
    try:
        return load_db_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"Error: {e}", style="red", markup=False)
        return None


def _schemas(args: argparse.Namespace, config: DatabaseConfig) -> tuple[str, str]:
    """Source and target schema: CLI flags first, then profile settings."""
    source_schema = args.source_schema or profile_schema(get_profile(args.source, config))
    target_schema = args.target_schema or profile_schema(get_profile(args.target, config))
    return source_schema, target_schema


def _styled(status: str) -> str:
    style = _STATUS_STYLES.get(status, "")
    return f"[{style}]{status}[/{style}]" if style else status


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_test(args: argparse.Namespace) -> int:
    """Async implementation for test command.

    Returns:
        0 if every connection succeeded, 1 otherwise.
    """
    config = _load_config()
    if config is None:
        return 1

    names = args.profiles or list(config.profiles)
    table = Table(title="Connection Tests", show_header=True, header_style="bold")
    table.add_column("Profile")
    table.add_column("Result")
    table.add_column("Latency", justify="right")
    table.add_column("Version / Message")

    failed = 0
    for name in names:
        try:
            connector = get_connector(name, config)
        except (ProfileNotFoundError, ValueError) as e:
            table.add_row(name, "[red]x[/red]", "-", str(e))
            failed += 1
            continue
        async with connector:
            result = await connector.test_connection()
        if result.success:
            table.add_row(name, "[green]v[/green]", f"{result.latency_ms} ms", result.server_version or "")
        else:
            table.add_row(name, "[red]x[/red]", f"{result.latency_ms} ms", result.message)
            failed += 1

    console.print(table)
    return 1 if failed else 0


async def _async_diff(args: argparse.Namespace) -> int:
    """Async implementation for diff command.

    Returns:
        0 on success (differences or not), 1 on failure.
    """
    config = _load_config()
    if config is None:
        return 1

    source_schema, target_schema = _schemas(args, config)
    async with get_connector(args.source, config) as source, get_connector(args.target, config) as target:
        diff = await operations.compare_schemas(source, target, source_schema, target_schema)

    if diff.is_empty and not diff.warnings:
        console.print("[bold green]v[/bold green] Schemas are identical.")
        return 0

    table = Table(title="Schema Differences", show_header=True, header_style="bold")
    table.add_column("Kind", style="dim")
    table.add_column("Table")
    table.add_column("Name")
    for item in diff.items:
        table.add_row(item.kind.value, item.table, item.name or "")
    console.print(table)

    for warning in diff.warnings:
        console.print(f"! {warning}", style="yellow", markup=False)

    summary = {kind: count for kind, count in diff.summary.items() if count}
    if summary:
        console.print("[dim]" + ", ".join(f"{k}: {v}" for k, v in summary.items()) + "[/dim]")
    return 0


async def _async_migrate(args: argparse.Namespace) -> int:
    """Async implementation for migrate command.

    Without ``--confirm`` the statements are only printed (or written to
    ``--output``).

    Returns:
        0 on success, 1 on failure.
    """
    config = _load_config()
    if config is None:
        return 1

    source_schema, target_schema = _schemas(args, config)
    async with get_connector(args.source, config) as source, get_connector(args.target, config) as target:
        diff = await operations.compare_schemas(source, target, source_schema, target_schema)
        statements = operations.generate_migration_sql(diff)

        for warning in diff.warnings:
            console.print(f"! {warning}", style="yellow", markup=False)

        if not statements:
            console.print("[bold green]v[/bold green] Nothing to migrate.")
            return 0

        script = ";\n\n".join(statements) + ";\n"
        if args.output:
            Path(args.output).write_text(script)
            console.print(f"Wrote {len(statements)} statement(s) to [cyan]{args.output}[/cyan]")
        else:
            console.print(script, markup=False, highlight=False)

        if not args.confirm:
            console.print()
            console.print("[dim]To apply, add[/dim] [cyan]--confirm[/cyan] [dim]flag.[/dim]")
            return 0

        console.print(f"Applying {len(statements)} statement(s) to [bold cyan]{args.target}[/bold cyan]...", style="dim")
        result = await operations.apply_migration(target, statements)

    if result.success:
        console.print(f"[bold green]v[/bold green] Applied {result.applied_count} statement(s).")
        return 0

    console.print(
        f"[bold red]x[/bold red] Failed after {result.applied_count} statement(s): {escape(str(result.error))}"
    )
    console.print(f"Statement: {result.failed_statement}", style="dim", markup=False)
    console.print(f"[dim]{len(result.remaining)} statement(s) not run.[/dim]")
    return 1


async def _async_counts(args: argparse.Namespace) -> int:
    """Async implementation for counts command.

    Returns:
        0 if every table was counted, 1 if any table failed.
    """
    config = _load_config()
    if config is None:
        return 1

    source_schema, target_schema = _schemas(args, config)
    async with get_connector(args.source, config) as source, get_connector(args.target, config) as target:
        diffs = await operations.get_table_row_counts(source, target, source_schema, target_schema)

    table = Table(title="Row Counts", show_header=True, header_style="bold")
    table.add_column("Table", style="dim")
    table.add_column(f"{args.source} (source)", justify="right")
    table.add_column(f"{args.target} (target)", justify="right")
    table.add_column("Missing in target", justify="right", style="green")
    table.add_column("Missing in source", justify="right", style="yellow")
    table.add_column("Exact")

    failed = 0
    for diff in diffs:
        if diff.error:
            table.add_row(diff.table, "-", "-", "-", "-", f"[red]{escape(diff.error)}[/red]")
            failed += 1
            continue
        table.add_row(
            diff.table,
            str(diff.source_count),
            str(diff.target_count),
            str(diff.missing_in_target) if diff.missing_in_target else "-",
            str(diff.missing_in_source) if diff.missing_in_source else "-",
            "yes" if diff.exact else "[dim]count only[/dim]",
        )

    console.print(table)
    return 1 if failed else 0


async def _async_sync(args: argparse.Namespace) -> int:
    """Async implementation for sync command.

    Without ``--confirm`` nothing is written: every flag is turned off and
    the would-be counts are shown.

    Returns:
        0 on success, 1 on failure or partial failure.
    """
    config = _load_config()
    if config is None:
        return 1

    if args.source == args.target:
        console.print(f"[red]Error: Source and target are the same profile: {args.source}[/red]")
        return 1

    options = SyncOptions(
        insert_missing=args.insert and args.confirm,
        update_different=args.update and args.confirm,
        delete_extra=args.delete and args.confirm,
        primary_keys=args.key,
        batch_size=config.sync.batch_size,
    )

    source_schema, target_schema = _schemas(args, config)
    console.print(f"  Source: [bold]{args.source}[/bold]")
    console.print(f"  Target: [bold cyan]{args.target}[/bold cyan]")
    console.print(f"  Table: [dim]{args.table}[/dim] (key: {', '.join(args.key)})")

    async with get_connector(args.source, config) as source, get_connector(args.target, config) as target:
        result = await operations.sync_table_data(
            source, target, source_schema, args.table, options, target_schema=target_schema
        )

    plan = Table(title="Sync Plan", show_header=True, header_style="bold")
    plan.add_column("", style="dim")
    plan.add_column("Candidates", justify="right")
    plan.add_column("Applied", justify="right")
    plan.add_row("insert", str(result.would_insert), str(result.inserted), style="green")
    plan.add_row("update", str(result.would_update), str(result.updated), style="yellow")
    plan.add_row("delete", str(result.would_delete), str(result.deleted), style="red")
    console.print(plan)

    if not args.confirm:
        console.print()
        console.print("[bold yellow]DRY RUN[/bold yellow] - No changes made.")
        console.print("[dim]To actually sync, add[/dim] [cyan]--confirm[/cyan] [dim]flag.[/dim]")
        return 0

    for reason in result.skipped:
        console.print(f"[dim]skipped: {reason}[/dim]")

    if result.success:
        console.print("[bold green]v[/bold green] Sync complete.")
        return 0

    for error in result.errors:
        console.print(error, style="red", markup=False)
    label = "Partial sync" if result.partial else "Sync failed"
    console.print(f"[bold red]x[/bold red] {label}: {len(result.errors)} failed batch(es).")
    return 1


async def _async_status(args: argparse.Namespace) -> int:
    """Async implementation for status command.

    Returns:
        0 if every target is in sync, 1 otherwise.
    """
    config = _load_config()
    if config is None:
        return 1

    group = config.groups.get(args.group)
    if group is None:
        available = ", ".join(config.groups) or "none"
        console.print(f"[red]Error: Group '{args.group}' not found. Available: {available}[/red]")
        return 1

    schema = group.schema_name or profile_schema(config.profiles[group.source])
    source = get_connector(group.source, config)
    targets = [get_connector(name, config) for name in group.targets]
    target_schemas = {
        name: group.schema_name or profile_schema(config.profiles[name]) for name in group.targets
    }

    try:
        status = await operations.get_group_sync_status(
            source,
            targets,
            schema,
            check_schema=group.check_schema,
            check_data=group.check_data,
            max_workers=config.sync.max_workers,
            target_schemas=target_schemas,
        )
    finally:
        for connector in [source, *targets]:
            await connector.disconnect()

    table = Table(title=f"Group: {args.group} (source: {group.source})", show_header=True, header_style="bold")
    table.add_column("Target")
    table.add_column("Status")
    table.add_column("Schema")
    table.add_column("Data")
    table.add_column("Schema diffs", justify="right")
    table.add_column("Tables out of sync", justify="right")
    table.add_column("Error", style="red")

    for target in status.targets:
        summary = target.data_diff_summary or {}
        table.add_row(
            target.connection,
            _styled(target.status),
            _styled(target.schema_status),
            _styled(target.data_status),
            "-" if target.schema_diff_count is None else str(target.schema_diff_count),
            str(summary.get("tables_out_of_sync", "-")),
            target.error or "",
        )

    console.print(table)
    return 0 if status.status in ("in_sync", "unchecked") else 1


# ============================================================================
# Command wrappers
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles and groups from db.toml.

    Reads only local TOML config -- no database calls.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    config = _load_config()
    if config is None:
        return 1

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("Profile")
    table.add_column("Engine")
    table.add_column("Schema")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        table.add_row(
            name,
            profile.engine.value if profile.engine else "[dim]from URL[/dim]",
            profile.schema_name or "[dim]default[/dim]",
            profile.description or "",
        )
    console.print(table)

    if config.groups:
        groups = Table(title="Instance Groups", show_header=True, header_style="bold")
        groups.add_column("Group")
        groups.add_column("Source")
        groups.add_column("Targets")
        for name, group in config.groups.items():
            groups.add_row(name, group.source, ", ".join(group.targets))
        console.print(groups)

    return 0


def _run(coro_fn, args: argparse.Namespace) -> int:
    """Run an async command, turning library errors into exit code 1."""
    try:
        return asyncio.run(coro_fn(args))
    except (ReconcileError, ProfileNotFoundError, ValueError) as e:
        console.print(f"Error: {e}", style="red", markup=False)
        return 1


def cmd_test(args: argparse.Namespace) -> int:
    """Test connections.  Wraps the async implementation with ``asyncio.run()``."""
    return _run(_async_test, args)


def cmd_diff(args: argparse.Namespace) -> int:
    """Show schema differences.  Wraps the async implementation with ``asyncio.run()``."""
    return _run(_async_diff, args)


def cmd_migrate(args: argparse.Namespace) -> int:
    """Generate and optionally apply migration SQL."""
    return _run(_async_migrate, args)


def cmd_counts(args: argparse.Namespace) -> int:
    """Compare row key sets."""
    return _run(_async_counts, args)


def cmd_sync(args: argparse.Namespace) -> int:
    """Reconcile one table's rows from source to target."""
    return _run(_async_sync, args)


def cmd_status(args: argparse.Namespace) -> int:
    """Check an instance group."""
    return _run(_async_status, args)


# ============================================================================
# Main entry point
# ============================================================================


def _add_pair_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", "-f", dest="source", required=True, help="Source profile")
    parser.add_argument("--to", "-t", dest="target", required=True, help="Target profile")
    parser.add_argument("--source-schema", help="Source schema (default: from profile)")
    parser.add_argument("--target-schema", help="Target schema (default: from profile)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-reconcile",
        description="Schema diff, migration, and data reconciliation across databases",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List profiles and groups")
    p_profiles.set_defaults(func=cmd_profiles)

    # test command
    p_test = subparsers.add_parser("test", help="Test connections (default: every profile)")
    p_test.add_argument("profiles", nargs="*", help="Profile names")
    p_test.set_defaults(func=cmd_test)

    # diff command
    p_diff = subparsers.add_parser("diff", help="Show schema differences")
    _add_pair_arguments(p_diff)
    p_diff.set_defaults(func=cmd_diff)

    # migrate command
    p_migrate = subparsers.add_parser("migrate", help="Generate or apply migration SQL")
    _add_pair_arguments(p_migrate)
    p_migrate.add_argument("--output", "-o", help="Write the SQL script to this file")
    p_migrate.add_argument("--confirm", action="store_true", help="Apply the migration to the target")
    p_migrate.set_defaults(func=cmd_migrate)

    # counts command
    p_counts = subparsers.add_parser("counts", help="Compare row key sets per table")
    _add_pair_arguments(p_counts)
    p_counts.set_defaults(func=cmd_counts)

    # sync command
    p_sync = subparsers.add_parser("sync", help="Reconcile one table's rows")
    _add_pair_arguments(p_sync)
    p_sync.add_argument("--table", required=True, help="Table to reconcile")
    p_sync.add_argument(
        "--key",
        action="append",
        required=True,
        help="Key column (repeat for composite keys)",
    )
    p_sync.add_argument(
        "--insert",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Insert rows missing in the target",
    )
    p_sync.add_argument(
        "--update",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Update rows that differ",
    )
    p_sync.add_argument("--delete", action="store_true", help="Delete rows missing in the source")
    p_sync.add_argument("--confirm", action="store_true", help="Actually write changes")
    p_sync.set_defaults(func=cmd_sync)

    # status command
    p_status = subparsers.add_parser("status", help="Check an instance group")
    p_status.add_argument("--group", "-g", required=True, help="Group name from db.toml")
    p_status.set_defaults(func=cmd_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
