"""Command-line interface.

Import shell history, then search it or print statistics:
    whiskerlog import
    whiskerlog search "docker run" --dangerous
    whiskerlog stats top_dangerous
    whiskerlog aliases --shell bash
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import click

from whiskerlog.classifier import load_rules
from whiskerlog.config import Config, expand_path, load_config
from whiskerlog.errors import WhiskerlogError
from whiskerlog.ingest.coordinator import ImportSummary, run_import
from whiskerlog.ingest.sources import HistorySource, infer_shell
from whiskerlog.logging import setup_logging
from whiskerlog.models import SHELLS, CommandRecord
from whiskerlog.store import AGGREGATE_KINDS, CommandFilter, CommandStore
from whiskerlog.store.aliases import generate_shell_aliases

ALIAS_SHELLS = ("bash", "zsh", "fish")


def format_timestamp(ts: int | None) -> str:
    """Format timestamp for display."""
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def print_record(record: CommandRecord) -> None:
    """Print one stored command."""
    flags = ""
    if record.host_context and record.host_context != "local":
        flags += f" \033[35m[{record.host_context}]\033[0m"
    if record.is_dangerous:
        flags += f" \033[31m[danger {record.danger_score:.1f}]\033[0m"
    if record.is_experiment:
        flags += f" \033[33m[{', '.join(record.experiment_tags)}]\033[0m"

    click.echo(
        f"\033[36m[{format_timestamp(record.timestamp)}]\033[0m "
        f"\033[32m{record.host_id}/{record.shell}\033[0m {record.command}{flags}"
    )


def print_summary(summary: ImportSummary) -> None:
    for report in summary.reports:
        line = (
            f"{report.source} [{report.shell}] {report.state}: "
            f"parsed={report.parsed} inserted={report.inserted} "
            f"duplicates={report.duplicates} skipped={report.skipped} excluded={report.excluded}"
        )
        click.echo(line)
        if report.error:
            click.echo(f"  {report.error}", err=True)

    click.echo(
        f"Total: sources={len(summary.reports)} inserted={summary.inserted} "
        f"duplicates={summary.duplicates} failed={len(summary.failed)}"
    )


def format_row(row: dict[str, Any]) -> str:
    parts = []
    for key, value in row.items():
        if isinstance(value, float):
            value = f"{value:.2f}"
        elif isinstance(value, list):
            value = ", ".join(value)
        parts.append(f"{key}={value}")
    return "  ".join(parts)


def import_sources(config: Config, store: CommandStore, sources: list[HistorySource]) -> ImportSummary:
    rules = load_rules(config.danger_threshold, config.experiment_detection)
    return run_import(
        sources,
        store,
        rules,
        redaction_enabled=config.redaction_enabled,
        batch_size=config.batch_size,
        session_gap_seconds=config.session_gap_seconds,
        max_workers=config.max_workers,
    )


def auto_import(config: Config, store: CommandStore) -> None:
    """Pick up new history before reading, when enabled in config."""
    if config.auto_import and config.history_paths:
        import_sources(config, store, config.history_paths)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to config.toml",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """Shell history analytics."""
    try:
        config = load_config(config_path)
    except WhiskerlogError as e:
        fail(str(e))
    setup_logging("cli", log_dir=config.log_dir, console=False)
    ctx.obj = config


@cli.command("import")
@click.option(
    "--source",
    "source_paths",
    multiple=True,
    help="History file to import instead of the configured ones",
)
@click.option("--shell", type=click.Choice(SHELLS), help="Shell format of --source files")
@click.pass_obj
def import_command(config: Config, source_paths: tuple[str, ...], shell: str | None) -> None:
    """Import new commands from shell history files."""
    if source_paths:
        sources = []
        for source_path in source_paths:
            path = expand_path(source_path)
            sources.append(HistorySource(path, shell or infer_shell(path), config.host_id))
    else:
        sources = config.history_paths

    if not sources:
        click.echo("No history sources configured")
        return

    try:
        with CommandStore(config.database_path) as store:
            summary = import_sources(config, store, sources)
    except WhiskerlogError as e:
        fail(str(e))

    print_summary(summary)
    if summary.failed:
        sys.exit(1)


@cli.command()
@click.argument("query")
@click.option("--host", help="Filter by host id")
@click.option("--shell", type=click.Choice(SHELLS), help="Filter by shell")
@click.option("--host-context", help="Filter by where commands ran, e.g. ssh:deploy@web1")
@click.option("--dangerous", is_flag=True, help="Only dangerous commands")
@click.option("--experiments", is_flag=True, help="Only experiment commands")
@click.option("--limit", "-n", default=20, help="Number of results")
@click.pass_obj
def search(
    config: Config,
    query: str,
    host: str | None,
    shell: str | None,
    host_context: str | None,
    dangerous: bool,
    experiments: bool,
    limit: int,
) -> None:
    """Full-text search over stored commands."""
    command_filter = CommandFilter(
        host_id=host,
        shell=shell,
        host_context=host_context,
        dangerous=True if dangerous else None,
        experiment=True if experiments else None,
        search=query,
        limit=limit,
    )
    try:
        with CommandStore(config.database_path) as store:
            auto_import(config, store)
            records = store.query(command_filter)
    except WhiskerlogError as e:
        fail(str(e))

    click.echo(f"Found {len(records)} commands:\n")
    for record in records:
        print_record(record)


@cli.command()
@click.argument("kind", type=click.Choice(AGGREGATE_KINDS), default="summary")
@click.option("--limit", "-n", default=10, help="Number of entries")
@click.pass_obj
def stats(config: Config, kind: str, limit: int) -> None:
    """Print command statistics."""
    try:
        with CommandStore(config.database_path) as store:
            auto_import(config, store)
            result = store.aggregate(kind, limit=limit)
    except WhiskerlogError as e:
        fail(str(e))

    if isinstance(result, dict):
        for key, value in result.items():
            click.echo(f"{key}: {value}")
        return

    if not result:
        click.echo("No data")
    for row in result:
        click.echo(format_row(row))


@cli.command()
@click.option("--shell", type=click.Choice(ALIAS_SHELLS), help="Print alias definitions for this shell")
@click.option("--limit", "-n", default=10, help="Number of suggestions")
@click.pass_obj
def aliases(config: Config, shell: str | None, limit: int) -> None:
    """Suggest aliases for long commands you type often."""
    try:
        with CommandStore(config.database_path) as store:
            auto_import(config, store)
            suggestions = store.aggregate("alias_suggestions", limit=limit)
    except WhiskerlogError as e:
        fail(str(e))

    if shell is not None:
        click.echo(generate_shell_aliases(suggestions, shell), nl=False)
        return

    if not suggestions:
        click.echo("No alias suggestions")
    for row in suggestions:
        click.echo(
            f"{row['alias']:<8} {row['command']}  "
            f"(used {row['frequency']}x, saves {row['chars_saved']} chars each)"
        )


@cli.command()
@click.pass_obj
def cursors(config: Config) -> None:
    """List import cursors."""
    try:
        with CommandStore(config.database_path) as store:
            items = store.list_cursors()
    except WhiskerlogError as e:
        fail(str(e))

    if not items:
        click.echo("No import cursors")
    for cursor in items:
        click.echo(
            f"{cursor.host_id} {cursor.source} [{cursor.shell}] "
            f"offset={cursor.last_offset} line={cursor.last_line} "
            f"updated={format_timestamp(cursor.updated_at)}"
        )


@cli.command("reset-cursor")
@click.argument("path")
@click.option("--host", help="Host id of the cursor (defaults to configured host_id)")
@click.pass_obj
def reset_cursor(config: Config, path: str, host: str | None) -> None:
    """Forget import progress so PATH is read from the start."""
    source = str(expand_path(path))
    try:
        with CommandStore(config.database_path) as store:
            deleted = store.cursor_reset(host or config.host_id, source)
    except WhiskerlogError as e:
        fail(str(e))

    if deleted:
        click.echo(f"Cursor reset: {source}")
    else:
        click.echo(f"No cursor for {source}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
