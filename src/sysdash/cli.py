import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional

import typer

from . import __version__
from .config import Settings, load_settings, parse_kind
from .core.filters import file_state_options, status_options, visible
from .core.models import FilterState, Scope
from .errors import ConfigError, SysdashError
from .logsetup import setup_logger
from .source import SystemdDataSource
from .util import is_tty, json_line

log = logging.getLogger(__name__)

app = typer.Typer(
    name="sysdash",
    add_completion=False,
    help=(
        "Terminal dashboard for systemd units and their journal.\n\n"
        "Usage:\n"
        "  sysdash                     Open the dashboard (same as `sysdash dash`)\n"
        "  sysdash list [opts]         Print units (tab-separated, or --json)\n"
        "  sysdash doctor              Check D-Bus and journalctl access\n"
        "  sysdash version             Show version"
    ),
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _settings(
    user: Optional[bool],
    unit_type: Optional[str],
    lines: Optional[int] = None,
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> Settings:
    try:
        return load_settings(
            scope=None if user is None else (Scope.USER if user else Scope.SYSTEM),
            kind=parse_kind(unit_type) if unit_type else None,
            log_limit=lines,
            log_level=log_level,
            log_file=log_file,
        )
    except ConfigError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=2)


_USER_OPT = typer.Option(None, "--user/--system", help="Manage user units instead of system units")
_TYPE_OPT = typer.Option(None, "--type", "-t", help="Unit type: service, timer, socket, target, path")


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        help="Show version and exit",
        is_eager=True,
    ),
):
    if version:
        typer.echo(__version__)
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        dash(user=None, unit_type=None, lines=None, log_level=None, log_file=None)


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def version():
    """Show CLI version (semver)."""
    typer.echo(__version__)


@app.command()
def dash(
    user: Optional[bool] = _USER_OPT,
    unit_type: Optional[str] = _TYPE_OPT,
    lines: Optional[int] = typer.Option(None, "--lines", "-n", help="Journal lines to load per unit"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Diagnostic log level"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Diagnostic log file"),
):
    """Open the interactive dashboard."""
    settings = _settings(user, unit_type, lines, log_level, log_file)
    if not is_tty():
        typer.echo("sysdash dash needs an interactive terminal; try `sysdash list`.", err=True)
        raise typer.Exit(code=1)
    setup_logger(level=settings.log_level, log_file=settings.log_file)

    # Lazy import to avoid importing Textual at module import time
    try:
        from .dash.app import run_dash
    except Exception as e:
        typer.echo(f"Failed to load dashboard: {e}", err=True)
        raise typer.Exit(code=1)
    run_dash(settings)


@app.command("list")
def list_cmd(
    user: Optional[bool] = _USER_OPT,
    unit_type: Optional[str] = _TYPE_OPT,
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Status filter for the unit type"),
    file_state: Optional[str] = typer.Option(None, "--file-state", "-f", help="enabled, disabled, static, ..."),
    search: str = typer.Option("", "--search", "-q", help="Substring of name or description"),
    as_json: bool = typer.Option(False, "--json", help="One JSON object per line"),
):
    """List units. Prints: name\tsub\tfile_state\tdescription"""
    settings = _settings(user, unit_type)
    setup_logger(level=settings.log_level)
    kind = settings.kind

    if status is not None and status not in status_options(kind)[1:]:
        opts = ", ".join(status_options(kind)[1:])
        typer.echo(f"Unknown status {status!r} for {kind.label.lower()}. Choose from: {opts}", err=True)
        raise typer.Exit(code=2)
    if file_state is not None and file_state not in file_state_options()[1:]:
        opts = ", ".join(file_state_options()[1:])
        typer.echo(f"Unknown file state {file_state!r}. Choose from: {opts}", err=True)
        raise typer.Exit(code=2)

    async def _list():
        source = SystemdDataSource(journalctl=settings.journalctl)
        try:
            units = await source.list_units(kind, settings.scope)
            states = await source.list_file_states(kind, settings.scope)
        finally:
            await source.close()
        return [u.with_file_state(states.get(u.name)) for u in units]

    try:
        units = asyncio.run(_list())
    except SysdashError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)

    flt = FilterState(search_text=search, status_filter=status, file_state_filter=file_state)
    indices, _ = visible(units, flt)
    for i in indices:
        u = units[i]
        if as_json:
            typer.echo(
                json_line(
                    {
                        "name": u.name,
                        "load": u.load_state,
                        "active": u.active_state,
                        "sub": u.sub_state,
                        "file_state": u.file_state,
                        "description": u.description,
                    }
                )
            )
        else:
            typer.echo(f"{u.name}\t{u.sub_state}\t{u.file_state or '-'}\t{u.description}")


@app.command()
def doctor(user: Optional[bool] = _USER_OPT):
    """Check D-Bus access to systemd and journalctl availability."""
    settings = _settings(user, None)
    ok = True

    jc = shutil.which(settings.journalctl)
    if jc:
        typer.echo(f"journalctl: OK ({jc})")
    else:
        typer.echo(f"journalctl: not found ({settings.journalctl}). Set SYSDASH_JOURNALCTL.", err=True)
        ok = False

    async def _probe():
        source = SystemdDataSource(journalctl=settings.journalctl)
        try:
            return await source.list_units(settings.kind, settings.scope)
        finally:
            await source.close()

    try:
        units = asyncio.run(_probe())
        typer.echo(f"{settings.scope.value} bus: OK ({len(units)} {settings.kind.label.lower()})")
    except SysdashError as e:
        typer.echo(f"{settings.scope.value} bus: {e}", err=True)
        ok = False

    if not ok:
        raise typer.Exit(code=1)


def main():
    app()
