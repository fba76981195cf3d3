"""Main CLI entry point."""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

app = typer.Typer(
    name="stakeledger",
    help="Indexer stake and delegation ledger CLI",
    add_completion=False,
)

console = Console()


def read_events(path: Path, keep_going: bool) -> tuple[list, list[str]]:
    """Parse a JSON-lines event file. Returns (events, parse errors)."""
    from stakeledger.services.errors import InvalidEventError
    from stakeledger.services.schemas import parse_event

    events: list = []
    errors: list[str] = []
    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                raw = json.loads(line)
                if not isinstance(raw, dict):
                    raise InvalidEventError("Event must be a JSON object")
                events.append(parse_event(raw))
            except (json.JSONDecodeError, InvalidEventError) as e:
                if not keep_going:
                    raise typer.BadParameter(f"{path}:{lineno}: {e}") from e
                errors.append(f"line {lineno}: {e}")
    return events, errors


@app.command()
def init_db(
    force: bool = typer.Option(False, "--force", "-f", help="Drop and recreate tables"),
):
    """Initialize the database schema."""
    from db.connection import init_database

    with console.status("Initializing database..."):
        created = init_database(drop_existing=force)

    if force:
        console.print("[yellow]Dropped existing tables[/yellow]")
    console.print(f"[green]Database initialized[/green] ({len(created)} tables created)")


@app.command()
def replay(
    events_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON-lines event file"),
    keep_going: bool = typer.Option(
        False, "--keep-going", help="Skip bad events instead of stopping"
    ),
    validate: bool = typer.Option(
        True, "--validate/--no-validate", help="Reject out-of-range event values"
    ),
    commit_every: int = typer.Option(0, "--commit-every", min=0, help="Commit every N events"),
):
    """Apply an ordered stream of decoded events to the ledger."""
    from config import get_settings
    from db.connection import get_session, init_database
    from stakeledger.services.errors import EventProcessingError
    from stakeledger.services.processor import EventProcessor

    events, parse_errors = read_events(events_file, keep_going)
    settings = get_settings().ledger.model_copy(
        update={
            "fail_fast": not keep_going,
            "validate_events": validate,
            "commit_every": commit_every,
        }
    )
    init_database()

    try:
        with get_session() as session:
            processor = EventProcessor(session, settings)
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                task = progress.add_task(f"Replaying {len(events)} events...", total=None)
                result = processor.process_events(events, source=str(events_file))
                progress.remove_task(task)
    except EventProcessingError as e:
        console.print(f"[red]Replay aborted:[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(title="Replay Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Run ID", result.run_id)
    table.add_row("Events Processed", str(result.events_processed))
    table.add_row("Events Skipped", str(result.events_skipped + len(parse_errors)))
    table.add_row("Indexers Touched", str(len(result.indexers_touched)))
    table.add_row(
        "Block Range",
        f"{result.first_block} - {result.last_block}" if result.first_block is not None else "-",
    )

    console.print(table)

    errors = parse_errors + result.errors
    if errors:
        console.print("\n[red]Errors:[/red]")
        for err in errors[:5]:
            console.print(f"  {err}")
        if len(errors) > 5:
            console.print(f"  ... and {len(errors) - 5} more")


@app.command()
def show_indexer(
    address: str = typer.Argument(..., help="Indexer address"),
):
    """Show the current ledger state of an indexer."""
    from db.connection import get_session
    from db.models import Indexers
    from stakeledger.services._helpers import normalize_address

    with get_session() as session:
        entity = session.get(Indexers, normalize_address(address))
        if entity is None:
            console.print(f"[red]Indexer {address} not found[/red]")
            raise typer.Exit(code=1)

        table = Table(title=f"Indexer {entity.id}")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        for key, value in entity.to_dict().items():
            if key == "id":
                continue
            table.add_row(key, "-" if value is None else str(value))

    console.print(table)


@app.command()
def snapshots(
    address: str = typer.Argument(..., help="Indexer address"),
):
    """List the monthly snapshots of an indexer."""
    from db.connection import get_session
    from stakeledger.services._helpers import normalize_address
    from stakeledger.services.snapshot import list_snapshots

    with get_session() as session:
        rows = list_snapshots(session, normalize_address(address))

        table = Table(title="Snapshots")
        table.add_column("Period", style="cyan")
        table.add_column("Own Stake Δ", justify="right")
        table.add_column("Delegated Δ", justify="right")
        table.add_column("Pool Rewards", justify="right")
        table.add_column("Param Changes", justify="right")
        for s in rows:
            table.add_row(
                f"{s.period_start:%Y-%m}",
                str(s.own_stake_delta),
                str(s.delegated_stake_delta),
                str(s.delegation_pool_indexing_rewards),
                str(s.parameter_changes_count),
            )

    if not rows:
        console.print("[yellow]No snapshots recorded[/yellow]")
        return
    console.print(table)


@app.command()
def parameter_history(
    address: str = typer.Argument(..., help="Indexer address"),
    limit: int = typer.Option(50, "--limit", "-n", min=1, help="Maximum entries to show"),
):
    """Show the delegation-parameter change log of an indexer."""
    from db.connection import get_session
    from stakeledger.services._helpers import normalize_address
    from stakeledger.services.parameter_update import parameter_history as history

    with get_session() as session:
        entries = history(session, normalize_address(address), limit=limit)

        table = Table(title="Parameter Updates")
        table.add_column("Block", style="cyan")
        table.add_column("Indexing Reward Cut", justify="right")
        table.add_column("Query Fee Cut", justify="right")
        table.add_column("Cooldown Blocks", justify="right")
        for e in entries:
            table.add_row(
                str(e.block_number),
                str(e.indexing_reward_cut_ratio),
                str(e.query_fee_cut_ratio),
                str(e.cooldown_blocks),
            )

    if not entries:
        console.print("[yellow]No parameter updates recorded[/yellow]")
        return
    console.print(table)


if __name__ == "__main__":
    app()
