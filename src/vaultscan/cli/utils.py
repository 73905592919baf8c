"""Options and helpers shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import click

from vaultscan.config import (
    DEFAULT_CHUNK_DELAY,
    DEFAULT_CHUNK_SIZE,
    RPC_URL_ENV,
    FetchConfig,
    default_rpc_endpoints,
)
from vaultscan.debug_logger import DEBUG_OUTPUT_ENV, scan_debug_logger
from vaultscan.exceptions import ProviderConnectionError
from vaultscan.fetcher import DEFAULT_RPC_TIMEOUT, LogSource, Web3LogSource, connect
from vaultscan.logging import logger
from vaultscan.scans import ScanDiagnostics

MAX_ERROR_SAMPLES = 3

F = TypeVar("F", bound=Callable[..., Any])


def fetch_options(func: F) -> F:
    """Attach the options controlling the RPC connection and chunked fetch."""
    options = [
        click.option(
            "--rpc",
            "rpc_endpoints",
            multiple=True,
            help=(
                "RPC endpoint, tried in the order given. Can be repeated. Defaults to "
                f"${RPC_URL_ENV} (comma-separated) or a public mainnet endpoint."
            ),
        ),
        click.option(
            "--chunk",
            "chunk_size",
            type=click.IntRange(min=1),
            default=DEFAULT_CHUNK_SIZE,
            show_default=True,
            help="The maximum number of blocks per eth_getLogs request.",
        ),
        click.option(
            "--delay",
            "chunk_delay",
            type=click.FloatRange(min=0),
            default=DEFAULT_CHUNK_DELAY,
            show_default=True,
            help="Seconds to wait between consecutive requests.",
        ),
        click.option(
            "--retries",
            type=click.IntRange(min=0),
            default=0,
            show_default=True,
            help="Extra attempts for a failed chunk before its logs are given up.",
        ),
        click.option(
            "--timeout",
            type=click.FloatRange(min=0, min_open=True),
            default=DEFAULT_RPC_TIMEOUT,
            show_default=True,
            help="RPC request timeout in seconds.",
        ),
        click.option(
            "--no-progress",
            "no_progress",
            is_flag=True,
            default=False,
            show_default=True,
            help="Disable progress bars.",
        ),
        click.option(
            "--debug-output",
            "debug_output",
            type=click.Path(dir_okay=False),
            envvar=DEBUG_OUTPUT_ENV,
            default=None,
            help="Write JSON Lines debug records (chunks, decode errors, summaries) to this file.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_fetch_config(
    *, chunk_size: int, chunk_delay: float, retries: int, no_progress: bool
) -> FetchConfig:
    return FetchConfig(
        chunk_size=chunk_size,
        chunk_delay=chunk_delay,
        retries=retries,
        show_progress=not no_progress,
    )


def connect_or_fail(rpc_endpoints: tuple[str, ...], timeout: float) -> Web3LogSource:
    """Connect to the first working endpoint; abort the command if none works."""
    endpoints = rpc_endpoints or default_rpc_endpoints()
    try:
        return connect(endpoints, timeout=timeout)
    except ProviderConnectionError as e:
        logger.error(str(e))
        raise click.ClickException(str(e)) from e


def current_block_or_fail(source: LogSource) -> int:
    """Return the latest block number; abort the command if the RPC call fails."""
    try:
        return source.get_block_number()
    except Exception as e:  # noqa: BLE001
        msg = f"Failed to fetch the current block number: {e}"
        logger.error(msg)
        raise click.ClickException(msg) from e


def echo_diagnostics(diagnostics: ScanDiagnostics) -> None:
    """Print the data gaps of a scan, if there were any."""
    if diagnostics.failed_ranges:
        click.echo(
            f"WARNING: {len(diagnostics.failed_ranges)} of {diagnostics.attempted_chunks} "
            f"chunks failed; {diagnostics.missing_blocks} blocks are missing from the output:",
            err=True,
        )
        for block_range, error in diagnostics.failed_ranges[:MAX_ERROR_SAMPLES]:
            click.echo(
                f"  blocks {block_range.from_block}-{block_range.to_block}: {error}", err=True
            )
    if diagnostics.decode_errors:
        click.echo(
            f"WARNING: {diagnostics.decode_error_count} logs could not be decoded:", err=True
        )
        for reason in diagnostics.decode_errors[:MAX_ERROR_SAMPLES]:
            click.echo(f"  {reason}", err=True)


def start_debug_output(debug_output: str | None, scan: str) -> None:
    if scan_debug_logger.configure(output_path=debug_output, scan=scan):
        logger.info(f"Writing debug records to {debug_output}")
