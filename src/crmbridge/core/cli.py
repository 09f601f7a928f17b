"""Command line interface for the CRM bridge."""

import sys
import json
import logging
from typing import Optional

import click

from .config import setup_logging, load_environment, load_settings
from ..engine.sync import SyncEngine
from ..exceptions import (
    ConfigurationError,
    ConflictError,
    ConnectorError,
    CrmBridgeError,
    ExecutionError,
)
from ..models.conflict import ConflictDecision
from ..models.mapping import SyncDirection
from ..models.sync import PassStatus


def _get_engine(ctx: click.Context) -> SyncEngine:
    """Build the engine once per invocation, or use one placed on the context."""
    engine = ctx.obj.get("engine")
    if engine is None:
        engine = SyncEngine.from_settings(load_settings())
        ctx.obj["engine"] = engine
    return engine


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


@click.group()
@click.option('--log-level', default='INFO', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set the logging level')
@click.option('--env-file', type=click.Path(exists=True), help='Path to .env file')
@click.pass_context
def cli(ctx: click.Context, log_level: str, env_file: Optional[str]) -> None:
    """Attio to Salesforce record sync tool."""
    setup_logging(log_level)
    load_environment(env_file)
    ctx.ensure_object(dict)


@cli.command()
@click.argument('source_object', required=False)
@click.argument('target_object', required=False)
@click.option('--direction', type=click.Choice([d.value for d in SyncDirection]),
              help='Pass direction (defaults to CRMBRIDGE_DIRECTION)')
@click.option('--output', type=click.Choice(['table', 'json']), default='table', help='Output format')
@click.pass_context
def sync(ctx: click.Context, source_object: Optional[str], target_object: Optional[str],
         direction: Optional[str], output: str) -> None:
    """Run a sync pass for one object pair, or for every mapping when none is given."""
    try:
        engine = _get_engine(ctx)
        if source_object and target_object:
            results = [engine.run_pass(source_object, target_object, direction=direction)]
        elif source_object or target_object:
            _fail("Give both SOURCE_OBJECT and TARGET_OBJECT, or neither")
            return
        else:
            results = engine.run_all(direction=direction)

        if output == 'json':
            click.echo(json.dumps([r.get_summary() for r in results], indent=2, default=str))
        else:
            _display_results(results)

        if any(r.status == PassStatus.FAILED for r in results):
            sys.exit(1)

    except ConfigurationError as e:
        _fail(f"Configuration Error: {e}")
    except ExecutionError as e:
        _fail(f"Execution Error: {e}")
    except CrmBridgeError as e:
        logging.exception("Sync failed")
        _fail(f"Sync failed: {e}")


def _display_results(results) -> None:
    """Display pass results in a table format."""
    if not results:
        click.echo("No enabled mappings.")
        return

    click.echo(f"{'Pair':<28} {'Status':<22} {'Proc':>6} {'New':>6} {'Upd':>6} {'Del':>6} {'Conf':>6} {'Err':>6}")
    click.echo("-" * 92)
    for result in results:
        pair = f"{result.source_object} <-> {result.target_object}"
        click.echo(f"{pair:<28} {result.status.value:<22} {result.processed:>6} {result.created:>6} "
                   f"{result.updated:>6} {result.deleted:>6} {result.conflicted:>6} {result.errored:>6}")
        for error in result.errors:
            record = error.record_id or "-"
            click.echo(f"    {record}: [{error.stage.value}] {error.message}")


@cli.command()
@click.pass_context
def test_connection(ctx: click.Context) -> None:
    """Test connections to both systems."""
    try:
        engine = _get_engine(ctx)
        ok = True
        for role, connector in (("source", engine.source), ("target", engine.target)):
            if connector.test_connection():
                click.echo(f"✅ Connected to {role} ({connector.service_name})")
            else:
                click.echo(f"❌ Could not connect to {role} ({connector.service_name})", err=True)
                ok = False
        if not ok:
            sys.exit(1)
    except ConfigurationError as e:
        _fail(f"Configuration Error: {e}")


@cli.command()
@click.option('--limit', type=int, default=100, help='Maximum conflicts to list')
@click.option('--output', type=click.Choice(['table', 'json']), default='table', help='Output format')
@click.pass_context
def conflicts(ctx: click.Context, limit: int, output: str) -> None:
    """List conflicts waiting for an operator."""
    try:
        pending = _get_engine(ctx).list_pending_conflicts(limit=limit)
    except CrmBridgeError as e:
        _fail(f"Error: {e}")
        return

    if output == 'json':
        click.echo(json.dumps([c.model_dump(mode="json") for c in pending], indent=2))
        return

    if not pending:
        click.echo("No pending conflicts.")
        return

    for conflict in pending:
        click.echo(f"{conflict.id}  {conflict.source_object}/{conflict.source_record_id} <-> "
                   f"{conflict.target_object}/{conflict.target_record_id}  detected {conflict.detected_at.isoformat()}")
        for field in conflict.conflicting_fields:
            click.echo(f"    {field.source_field}={field.source_value!r}  {field.target_field}={field.target_value!r}")


@cli.command()
@click.argument('conflict_id')
@click.argument('decision', type=click.Choice([d.value for d in ConflictDecision]))
@click.option('--by', 'resolved_by', default='operator', help='Who is resolving the conflict')
@click.option('--notes', help='Notes stored with the resolution')
@click.pass_context
def resolve(ctx: click.Context, conflict_id: str, decision: str, resolved_by: str, notes: Optional[str]) -> None:
    """Resolve a pending conflict: source, target, merge or skip."""
    try:
        conflict = _get_engine(ctx).resolve_conflict(conflict_id, decision, resolved_by=resolved_by, notes=notes)
        click.echo(f"✅ Conflict {conflict.id} {conflict.status.value} (winner: {conflict.resolution.winner.value})")
    except ConflictError as e:
        _fail(f"Conflict Error: {e}")
    except ConnectorError as e:
        _fail(f"Write failed, conflict left pending: {e}")
    except CrmBridgeError as e:
        _fail(f"Error: {e}")


@cli.group()
def cursor() -> None:
    """Inspect or reset sync cursors."""


@cursor.command('show')
@click.argument('source_object')
@click.argument('target_object')
@click.pass_context
def cursor_show(ctx: click.Context, source_object: str, target_object: str) -> None:
    """Show the stored cursor for an object pair."""
    try:
        stored = _get_engine(ctx).get_cursor(source_object, target_object)
    except CrmBridgeError as e:
        _fail(f"Error: {e}")
        return

    if stored is None:
        click.echo(f"No cursor stored for {source_object} <-> {target_object}")
        return
    click.echo(json.dumps(stored.model_dump(mode="json"), indent=2))


@cursor.command('reset')
@click.argument('source_object')
@click.argument('target_object')
@click.confirmation_option(prompt='The next pass will re-read the lookback window. Continue?')
@click.pass_context
def cursor_reset(ctx: click.Context, source_object: str, target_object: str) -> None:
    """Delete the stored cursor for an object pair."""
    try:
        if _get_engine(ctx).reset_cursor(source_object, target_object):
            click.echo(f"✅ Cursor reset for {source_object} <-> {target_object}")
        else:
            click.echo(f"No cursor stored for {source_object} <-> {target_object}")
    except CrmBridgeError as e:
        _fail(f"Error: {e}")


@cli.command()
@click.option('--output', type=click.Choice(['table', 'json']), default='table', help='Output format')
@click.pass_context
def mappings(ctx: click.Context, output: str) -> None:
    """Show the configured object mappings."""
    try:
        configured = _get_engine(ctx).mappings
    except CrmBridgeError as e:
        _fail(f"Error: {e}")
        return

    if output == 'json':
        click.echo(json.dumps({k: m.model_dump(mode="json") for k, m in configured.items()}, indent=2))
        return

    for mapping in configured.values():
        state = "enabled" if mapping.enabled else "disabled"
        click.echo(f"{mapping.source_object} -> {mapping.target_object} ({state})")
        for field in mapping.fields:
            click.echo(f"    {field.source_field:<40} {field.target_field:<24} "
                       f"{field.transform.kind:<26} {field.direction.value}")
        for reference in mapping.references:
            click.echo(f"    {reference.source_field:<40} {reference.target_field:<24} "
                       f"{'reference':<26} {reference.direction.value}")


if __name__ == '__main__':
    cli()
