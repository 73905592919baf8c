"""`vaultscan vaults`: export net deposited assets per user for ERC-4626 vaults."""

from __future__ import annotations

from pathlib import Path

import click

from vaultscan.checksum_cache import get_checksum_address
from vaultscan.cli import cli
from vaultscan.cli.deposits import parse_to_block
from vaultscan.cli.utils import (
    build_fetch_config,
    connect_or_fail,
    current_block_or_fail,
    echo_diagnostics,
    fetch_options,
    start_debug_output,
)
from vaultscan.config import (
    EXCLUDED_USER_ADDRESS,
    VAULT_ADDRESSES,
    VAULT_FROM_BLOCK,
    VaultScanConfig,
)
from vaultscan.debug_logger import scan_debug_logger
from vaultscan.logging import logger
from vaultscan.reports import (
    BALANCE_HISTORY_HEADER,
    VAULT_BALANCES_HEADER,
    balance_history_rows,
    vault_balance_rows,
    vault_history_filename,
    vault_report_filename,
    write_report,
)
from vaultscan.scans import VaultScanResult, scan_vault


def parse_addresses(
    _ctx: click.Context, _param: click.Parameter, values: tuple[str, ...]
) -> tuple[str, ...]:
    try:
        return tuple(get_checksum_address(value) for value in values)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@cli.command(
    "vaults",
    help="Export net deposited assets per user for each ERC-4626 vault.",
)
@click.option(
    "--vault",
    "vault_addresses",
    multiple=True,
    default=VAULT_ADDRESSES,
    show_default=True,
    callback=parse_addresses,
    help="Vault address to process. Can be repeated.",
)
@click.option(
    "--from-block",
    "from_block",
    type=click.IntRange(min=0),
    default=VAULT_FROM_BLOCK,
    show_default=True,
    help="First block to scan.",
)
@click.option(
    "--to-block",
    "to_block",
    default="latest",
    show_default=True,
    callback=parse_to_block,
    help="Last block to scan, or 'latest'.",
)
@click.option(
    "--exclude",
    "excluded_addresses",
    multiple=True,
    default=(EXCLUDED_USER_ADDRESS,),
    show_default=True,
    callback=parse_addresses,
    help="User address left out of the balance reports. Can be repeated.",
)
@click.option(
    "--output-dir",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path(),
    show_default=True,
    help="Directory for the per-vault reports.",
)
@click.option(
    "--history",
    "write_history",
    is_flag=True,
    default=False,
    show_default=True,
    help="Also write the chronological running balance of each vault.",
)
@fetch_options
def vaults(
    *,
    vault_addresses: tuple[str, ...],
    from_block: int,
    to_block: int | None,
    excluded_addresses: tuple[str, ...],
    output_dir: Path,
    write_history: bool,
    rpc_endpoints: tuple[str, ...],
    chunk_size: int,
    chunk_delay: float,
    retries: int,
    timeout: float,
    no_progress: bool,
    debug_output: str | None,
) -> None:
    """
    For each vault, fetch Deposit, Withdraw and share Transfer events and write one row per user
    with a non-zero net deposit (deposited assets minus withdrawn assets).

    A failure while processing one vault is logged and the next vault is processed.
    """
    source = connect_or_fail(rpc_endpoints, timeout)

    if to_block is None:
        to_block = current_block_or_fail(source)
        click.echo(f"Current block: {to_block}")
    if to_block < from_block:
        msg = f"--to-block ({to_block}) is before --from-block ({from_block})"
        raise click.BadParameter(msg)

    config = VaultScanConfig(
        vaults=tuple(get_checksum_address(vault) for vault in vault_addresses),
        from_block=from_block,
        to_block=to_block,
        excluded_addresses=tuple(get_checksum_address(user) for user in excluded_addresses),
        fetch=build_fetch_config(
            chunk_size=chunk_size,
            chunk_delay=chunk_delay,
            retries=retries,
            no_progress=no_progress,
        ),
        output_dir=output_dir,
        write_history=write_history,
    )

    start_debug_output(debug_output, scan="vaults")
    try:
        for vault_address in config.vaults:
            click.echo(f"\n=== Tracking balance changes for vault: {vault_address} ===")
            scan_debug_logger.set_scan(vault_address)
            try:
                result = scan_vault(source, vault_address, config)
                _export_vault(result, config)
            except Exception as e:  # noqa: BLE001
                logger.exception(e)
                click.echo(f"Error processing vault {vault_address}: {e}", err=True)
                click.echo("Continuing with next vault...\n")
    finally:
        scan_debug_logger.close()

    click.echo("=== Finished processing all vaults ===")


def _export_vault(result: VaultScanResult, config: VaultScanConfig) -> None:
    echo_diagnostics(result.diagnostics)

    if result.diagnostics.fetched_logs == 0:
        click.echo("No vault events found.")
        return

    click.echo(f"Found {result.diagnostics.fetched_logs} vault events")

    report_path = write_report(
        config.output_dir / vault_report_filename(result.vault_address),
        VAULT_BALANCES_HEADER,
        vault_balance_rows(result.balances.entries),
    )
    click.echo(f"Saved user balances to {report_path}")
    click.echo(f"Total unique users with non-zero balance: {result.balances.user_count}")

    if config.write_history:
        history_path = write_report(
            config.output_dir / vault_history_filename(result.vault_address),
            BALANCE_HISTORY_HEADER,
            balance_history_rows(result.history),
        )
        click.echo(f"Saved balance history to {history_path}")

    if not result.events:
        click.echo("\nNo deposit/withdrawal events found.")
        click.echo("No user balances to report.")
        return

    balances = result.balances
    click.echo("\nVault User Balance Summary:")
    click.echo(f"Total events processed: {len(result.events)}")
    click.echo(f"Total unique users: {balances.user_count}")
    click.echo(f"Total deposits: {balances.total_deposits} underlying assets")
    click.echo(f"Total withdrawals: {balances.total_withdrawals} underlying assets")
    click.echo(f"Net vault balance: {balances.net_balance} underlying assets")
    if balances.excluded_event_count:
        click.echo(f"Events from excluded addresses: {balances.excluded_event_count}")
    click.echo(f"Running balance at block {result.to_block}: {result.final_running_balance}")

