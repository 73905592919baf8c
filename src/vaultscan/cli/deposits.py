"""`vaultscan deposits`: export DepositProcessed events from the deposit contract."""

from __future__ import annotations

from pathlib import Path

import click

from vaultscan.checksum_cache import get_checksum_address
from vaultscan.cli import cli
from vaultscan.cli.utils import (
    build_fetch_config,
    connect_or_fail,
    current_block_or_fail,
    echo_diagnostics,
    fetch_options,
    start_debug_output,
)
from vaultscan.config import (
    DEPOSIT_CONTRACT_ADDRESS,
    DEPOSIT_FROM_BLOCK,
    DEPOSIT_TO_BLOCK,
    DepositScanConfig,
)
from vaultscan.debug_logger import scan_debug_logger
from vaultscan.reports import (
    DEPOSIT_EVENTS_HEADER,
    GROUPED_DEPOSITS_HEADER,
    deposit_event_rows,
    grouped_deposit_rows,
    write_report,
)
from vaultscan.scans import DepositScanResult, scan_deposits

PREVIEW_COUNT = 3


def parse_to_block(_ctx: click.Context, _param: click.Parameter, value: str) -> int | None:
    """Accept a block number or 'latest'."""
    if value == "latest":
        return None
    if value.isdigit():
        return int(value)
    msg = f"{value!r} is not a block number or 'latest'"
    raise click.BadParameter(msg)


def parse_address(_ctx: click.Context, _param: click.Parameter, value: str) -> str:
    try:
        return get_checksum_address(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@cli.command(
    "deposits",
    help="Export DepositProcessed events from the deposit contract.",
)
@click.option(
    "--contract",
    "contract_address",
    default=DEPOSIT_CONTRACT_ADDRESS,
    show_default=True,
    callback=parse_address,
    help="Address of the deposit-processing contract.",
)
@click.option(
    "--from-block",
    "from_block",
    type=click.IntRange(min=0),
    default=DEPOSIT_FROM_BLOCK,
    show_default=True,
    help="First block to scan.",
)
@click.option(
    "--to-block",
    "to_block",
    default=str(DEPOSIT_TO_BLOCK),
    show_default=True,
    callback=parse_to_block,
    help="Last block to scan, or 'latest'.",
)
@click.option(
    "--events-file",
    "events_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("krates_events.csv"),
    show_default=True,
    help="Output file with one row per event.",
)
@click.option(
    "--grouped-file",
    "grouped_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("kraters_grouped.csv"),
    show_default=True,
    help="Output file with amounts summed per user and asset.",
)
@fetch_options
def deposits(
    *,
    contract_address: str,
    from_block: int,
    to_block: int | None,
    events_path: Path,
    grouped_path: Path,
    rpc_endpoints: tuple[str, ...],
    chunk_size: int,
    chunk_delay: float,
    retries: int,
    timeout: float,
    no_progress: bool,
    debug_output: str | None,
) -> None:
    """
    Fetch every DepositProcessed event in the block range, write them to the events file and
    write the per-(user, asset) totals to the grouped file.
    """
    if to_block is not None and to_block < from_block:
        msg = f"--to-block ({to_block}) is before --from-block ({from_block})"
        raise click.BadParameter(msg)

    source = connect_or_fail(rpc_endpoints, timeout)
    if to_block is None:
        to_block = current_block_or_fail(source)
        click.echo(f"Current block: {to_block}")

    config = DepositScanConfig(
        contract_address=get_checksum_address(contract_address),
        from_block=from_block,
        to_block=to_block,
        fetch=build_fetch_config(
            chunk_size=chunk_size,
            chunk_delay=chunk_delay,
            retries=retries,
            no_progress=no_progress,
        ),
        events_path=events_path,
        grouped_path=grouped_path,
    )

    start_debug_output(debug_output, scan=config.contract_address)
    try:
        click.echo("Fetching events... This may take a while for contracts with many events.")
        result = scan_deposits(source, config)
    finally:
        scan_debug_logger.close()

    echo_diagnostics(result.diagnostics)

    if result.diagnostics.fetched_logs == 0:
        click.echo("No DepositProcessed events found.")
        return

    click.echo(f"Found {result.diagnostics.fetched_logs} DepositProcessed events")

    write_report(config.events_path, DEPOSIT_EVENTS_HEADER, deposit_event_rows(result.events))
    click.echo(f"Saved {len(result.events)} events to {config.events_path}")

    write_report(config.grouped_path, GROUPED_DEPOSITS_HEADER, grouped_deposit_rows(result.grouped))
    click.echo(f"Saved {len(result.grouped)} grouped entries to {config.grouped_path}")

    if result.events:
        _echo_summary(result)


def _echo_summary(result: DepositScanResult) -> None:
    click.echo("\nEvent Summary:")
    click.echo(f"Total individual events: {len(result.events)}")
    click.echo(f"Total unique user-asset pairs: {len(result.grouped)}")

    click.echo("\nFirst few individual events:")
    for i, event in enumerate(result.events[:PREVIEW_COUNT], 1):
        click.echo(f"  Event {i}:")
        click.echo(f"    Asset: {event.asset}")
        click.echo(f"    User: {event.user}")
        click.echo(f"    Amount: {event.amount}")
        click.echo()

    click.echo("\nFirst few grouped entries:")
    for i, entry in enumerate(result.grouped[:PREVIEW_COUNT], 1):
        click.echo(f"  Entry {i}:")
        click.echo(f"    User: {entry.user}")
        click.echo(f"    Asset: {entry.asset}")
        click.echo(f"    Total Amount: {entry.amount}")
        click.echo()
