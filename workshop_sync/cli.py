"""Command-line interface for workshop-sync."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .catalog import CatalogError
from .classify import OutcomeKind
from .config import ConfigError, Settings
from .service import ReconciliationEngine, ReconciliationError, RunResult

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    # requests/urllib3 are noisy at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _engine(ctx: click.Context) -> ReconciliationEngine:
    return ReconciliationEngine(ctx.obj["settings"])


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")
    sys.exit(1)


@click.group()
@click.option("--api-key", envvar="STEAM_API_KEY", help="Steam Web API key (or set STEAM_API_KEY env var)")
@click.option("--modlist-dir", type=click.Path(path_type=Path), help="Folder of launcher .html modlists")
@click.option("--mods-dir", type=click.Path(path_type=Path), help="steamcmd workshop content folder")
@click.option("--keys-dir", type=click.Path(path_type=Path), help="Server keys folder")
@click.option("--data-dir", type=click.Path(path_type=Path), help="Folder for masterlist.json and modParameters.json")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def main(
    ctx: click.Context,
    api_key: str | None,
    modlist_dir: Path | None,
    mods_dir: Path | None,
    keys_dir: Path | None,
    data_dir: Path | None,
    verbose: bool,
) -> None:
    """Keep Arma 3 server workshop mods in sync with launcher modlists."""
    _setup_logging(verbose)
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        _fail(str(e))

    if api_key:
        settings.steam_api_key = api_key
    if modlist_dir:
        settings.modlist_dir = modlist_dir
    if mods_dir:
        settings.mods_dir = mods_dir
    if keys_dir:
        settings.keys_dir = keys_dir
    if data_dir:
        settings.data_dir = data_dir

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@main.command()
@click.option("--deadline", type=float, help="Stop starting new installs after this many seconds")
@click.pass_context
def run(ctx: click.Context, deadline: float | None) -> None:
    """Parse modlists, refresh Steam details, clean up and install what is outdated."""
    console.print("\n[bold]=== Arma 3 Mod Updater ===[/bold]\n")
    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as bar:
        task = bar.add_task("Starting...", total=1.0)

        def on_progress(event: str, pct: float, msg: str) -> None:
            bar.update(task, completed=pct, description=msg)

        try:
            result = _engine(ctx).run(deadline=deadline, on_progress=on_progress)
        except (ReconciliationError, CatalogError) as e:
            _fail(str(e))

    _print_run_summary(result)
    sys.exit(result.exit_code)


@main.command()
@click.pass_context
def parse(ctx: click.Context) -> None:
    """Parse modlists into the catalog and write mod parameters. No network access."""
    try:
        catalog, modlists = _engine(ctx).parse()
    except (ReconciliationError, CatalogError) as e:
        _fail(str(e))

    console.print(
        f"[green]Parsed {len(modlists)} modlist(s), {len(catalog)} mod(s) tracked.[/green]"
    )


@main.command()
@click.argument("mod_id")
@click.option("--target-version", type=int, help="Remote time_updated to record on success")
@click.pass_context
def install(ctx: click.Context, mod_id: str, target_version: int | None) -> None:
    """Install or update a single mod by workshop id."""
    try:
        outcome = _engine(ctx).install_one(mod_id, target_version=target_version)
    except (ReconciliationError, CatalogError) as e:
        _fail(str(e))

    if outcome.succeeded:
        console.print(f"[green]Mod {mod_id} installed.[/green]")
        return

    if outcome.kind is OutcomeKind.PERMANENT:
        console.print(f"[red]Mod {mod_id} blacklisted:[/red] {outcome.error}")
        sys.exit(2)
    console.print(f"[yellow]Mod {mod_id} failed, will retry on next run:[/yellow] {outcome.error}")
    sys.exit(1)


@main.command()
@click.option("--all", "show_all", is_flag=True, help="Show every mod, not just problems")
@click.pass_context
def status(ctx: click.Context, show_all: bool) -> None:
    """Show the tracked catalog."""
    try:
        catalog = _engine(ctx).load_catalog()
    except CatalogError as e:
        _fail(str(e))

    if not len(catalog):
        console.print("[yellow]Catalog is empty.[/yellow]")
        return

    table = Table(title=f"Tracked mods ({len(catalog)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Installed")
    table.add_column("Remote")
    table.add_column("Status")

    shown = 0
    for entry in catalog:
        if entry.blacklisted:
            state = f"[red]blacklisted[/red] {entry.failure.error if entry.failure else ''}"
        elif entry.remote_missing:
            state = "[red]not found on Steam[/red]"
        elif entry.up_to_date:
            state = "[green]up to date[/green]"
        else:
            state = "[yellow]pending[/yellow]"

        if not show_all and entry.up_to_date and not entry.blacklisted:
            continue

        table.add_row(
            entry.mod_id,
            entry.name,
            _fmt_time(entry.local_version),
            _fmt_time(entry.remote_version),
            state,
        )
        shown += 1

    if shown:
        console.print(table)
    else:
        console.print(f"[green]All {len(catalog)} mods are up to date.[/green]")


@main.command()
@click.argument("mod_id")
@click.pass_context
def unblacklist(ctx: click.Context, mod_id: str) -> None:
    """Clear a mod's blacklist flag so the next run retries it."""
    try:
        entry = _engine(ctx).unblacklist(mod_id)
    except CatalogError as e:
        _fail(str(e))
    console.print(f"[green]Mod {entry.mod_id} ({entry.name}) will be retried on the next run.[/green]")


@main.command()
@click.argument("mod_id")
@click.pass_context
def forget(ctx: click.Context, mod_id: str) -> None:
    """Stop tracking a mod. Its folder is removed on the next run."""
    try:
        entry = _engine(ctx).forget(mod_id)
    except CatalogError as e:
        _fail(str(e))
    console.print(f"[green]Removed {entry.mod_id} ({entry.name}) from the catalog.[/green]")


def _fmt_time(epoch: int | None) -> str:
    if not epoch:
        return "-"
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def _print_run_summary(result: RunResult) -> None:
    table = Table(title="Run summary", show_header=False)
    table.add_column("", style="bold")
    table.add_column("")
    table.add_row("Modlists", str(result.modlists))
    table.add_row("Tracked mods", str(result.tracked))
    table.add_row("Install attempts", str(result.attempted))
    table.add_row("Installed", f"[green]{len(result.succeeded)}[/green]")
    table.add_row("Retry next run", f"[yellow]{len(result.retryable_failures)}[/yellow]")
    table.add_row("Blacklisted now", f"[red]{len(result.permanent_failures)}[/red]")
    table.add_row("Skipped (blacklisted)", str(len(result.skipped_blacklisted)))
    table.add_row("Stale folders removed", str(len(result.stale_removed)))
    table.add_row("Key files copied", str(result.keys_copied))
    console.print(table)

    if result.not_attempted:
        console.print(f"[yellow]{len(result.not_attempted)} mod(s) not attempted this run.[/yellow]")
    for error in result.errors:
        console.print(f"[red]Error:[/red] {error}")


if __name__ == "__main__":
    main()
