"""CLI entry point for fleet-sync.

Invoked as::

    fleet-sync [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m fleet_sync.cli.main

Available commands
------------------
* ``run``      — run the replan loop until Ctrl-C (or N ticks) and save the log
* ``inspect``  — summarise a saved run log
* ``config``   — print the effective configuration as YAML
* ``version``  — show detailed version information
"""
from __future__ import annotations

import logging
import signal
import sys

import click
import yaml
from rich.console import Console
from rich.table import Table

console = Console()
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="fleet-sync")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the log level.",
    show_default=True,
)
def cli(log_level: str) -> None:
    """Barrier-synchronised replanning for multi-agent fleets."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(levelname)s %(name)s — %(message)s",
    )


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from fleet_sync import __version__

    console.print(f"[bold]fleet-sync[/bold] v{__version__}")
    console.print(f"Python {sys.version}")


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.command(name="config")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="YAML config file; omitted keys take their defaults.",
)
def config_command(config_path: str | None) -> None:
    """Print the effective configuration as YAML."""
    from fleet_sync.config import load_config

    try:
        config = load_config(config_path)
    except Exception as exc:
        console.print(f"[red]Error loading config:[/red] {exc}")
        raise SystemExit(1) from exc
    click.echo(yaml.safe_dump(config.model_dump(), default_flow_style=False, sort_keys=False))


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@cli.command(name="run")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="YAML config file; omitted keys take their defaults.",
)
@click.option("--ticks", default=None, type=int, help="Stop after this many ticks.")
@click.option(
    "--output",
    "output_path",
    default=None,
    type=click.Path(),
    help="Run-log file (overrides the config's 'file').",
)
@click.option("--no-record", is_flag=True, default=False, help="Discard telemetry at shutdown.")
@click.option("--workers", default=None, type=int, help="Planning threads per tick.")
@click.option(
    "--max-records",
    default=None,
    type=click.IntRange(min=1),
    help="Keep at most this many records per channel.",
)
def run_command(
    config_path: str | None,
    ticks: int | None,
    output_path: str | None,
    no_record: bool,
    workers: int | None,
    max_records: int | None,
) -> None:
    """Run the replan loop until interrupted, then save the run log.

    Press Ctrl-C to stop; the current tick completes and the log is written
    before the command exits.
    """
    from fleet_sync.config import load_config
    from fleet_sync.coordination.fleet import build_scheduler
    from fleet_sync.recording.multiplexer import RecordingError
    from fleet_sync.recording.store import NpzRunLogStore

    try:
        config = load_config(config_path)
    except Exception as exc:
        console.print(f"[red]Error loading config:[/red] {exc}")
        raise SystemExit(1) from exc

    updates: dict[str, object] = {}
    if output_path:
        updates["file"] = output_path
    if no_record:
        updates["record"] = False
    if workers is not None:
        updates["workers"] = max(workers, 1)
    if max_records is not None:
        updates["max_records_per_channel"] = max_records
    if updates:
        config = config.model_copy(update=updates)

    store = NpzRunLogStore(config.file)
    scheduler = build_scheduler(config, persistence=store)

    console.print(
        f"[bold cyan]run[/bold cyan] — agents={len(config.agents)}, "
        f"update_t={config.update_t}, rate={config.rate} Hz, "
        f"ticks={ticks if ticks is not None else 'until Ctrl-C'}"
    )

    def _handle_sigint(signum: int, frame: object) -> None:  # noqa: ARG001
        scheduler.request_stop()

    previous = signal.signal(signal.SIGINT, _handle_sigint)
    try:
        scheduler.start()
        executed = scheduler.run(max_ticks=ticks)
    finally:
        signal.signal(signal.SIGINT, previous)
        try:
            log = scheduler.stop()
        except RecordingError as exc:
            console.print(f"[red]Recording failed:[/red] {exc}")
            raise SystemExit(1) from exc

    table = Table(title="Run Summary", show_header=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Ticks", str(executed))
    table.add_row("Logical time (s)", f"{scheduler.time:.3f}")
    table.add_row("Planning failures", str(sum(scheduler.failures.values())))
    table.add_row("Run log", str(store.path) if log is not None else "(disabled)")
    if log is not None:
        table.add_row("Records", str(log.total_records))
    console.print(table)


# ---------------------------------------------------------------------------
# inspect
# ---------------------------------------------------------------------------


@cli.command(name="inspect")
@click.argument("log_path", type=click.Path(exists=True))
@click.option(
    "--positions-channel",
    default="/states",
    show_default=True,
    help="Channel holding agent positions.",
)
def inspect_command(log_path: str, positions_channel: str) -> None:
    """Summarise the run log at LOG_PATH channel by channel."""
    from fleet_sync.recording.replay import RunLogReplay
    from fleet_sync.recording.store import NpzRunLogStore

    try:
        log = NpzRunLogStore(log_path).load()
    except Exception as exc:
        console.print(f"[red]Error loading run log:[/red] {exc}")
        raise SystemExit(1) from exc

    replay = RunLogReplay(log, positions_channel=positions_channel)
    table = Table(title=f"Run Log {log_path}", show_header=True)
    table.add_column("Channel", style="bold")
    table.add_column("Records")
    table.add_column("First stamp")
    table.add_column("Last stamp")
    for summary in replay.summary():
        table.add_row(
            summary.name,
            str(summary.n_records),
            f"{summary.first_stamp:.3f}",
            f"{summary.last_stamp:.3f}",
        )
    console.print(table)

    try:
        separation = replay.min_separation()
    except ValueError as exc:
        console.print(f"[yellow]Separation unavailable:[/yellow] {exc}")
    else:
        console.print(f"Minimum agent separation: [bold]{separation:.4f}[/bold]")


if __name__ == "__main__":
    cli()
