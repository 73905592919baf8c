"""Fetch -> decode -> aggregate pipelines for the deposit contract and vaults."""

from __future__ import annotations

from dataclasses import dataclass, field

from eth_typing import ChecksumAddress

from vaultscan.aggregation import (
    BalanceHistoryEntry,
    DepositTotal,
    VaultBalanceSummary,
    calculate_running_balance,
    calculate_user_balances,
    group_deposits,
    sort_by_block,
)
from vaultscan.config import DepositScanConfig, FetchConfig, VaultScanConfig
from vaultscan.debug_logger import scan_debug_logger
from vaultscan.decoder import (
    DecodeBatch,
    DepositProcessedEvent,
    EventDecoder,
    ShareTransferEvent,
    VaultDepositEvent,
    VaultLedgerEvent,
    VaultWithdrawEvent,
)
from vaultscan.events import DEPOSIT_PROCESSED, DEPOSIT_SHAPES, VAULT_SHAPES
from vaultscan.fetcher import BlockRange, FetchResult, LogSource, TopicFilter, fetch_logs_chunked
from vaultscan.logging import logger


@dataclass(frozen=True)
class ScanDiagnostics:
    """Data gaps recovered from during a scan."""

    fetched_logs: int = 0
    attempted_chunks: int = 0
    failed_ranges: list[tuple[BlockRange, str]] = field(default_factory=list)
    skipped_logs: int = 0
    decode_errors: list[str] = field(default_factory=list)

    @property
    def missing_blocks(self) -> int:
        return sum(block_range.size for block_range, _ in self.failed_ranges)

    @property
    def decode_error_count(self) -> int:
        return len(self.decode_errors)

    @property
    def has_gaps(self) -> bool:
        return bool(self.failed_ranges or self.decode_errors)


@dataclass(frozen=True)
class DepositScanResult:
    from_block: int
    to_block: int
    events: list[DepositProcessedEvent]
    grouped: list[DepositTotal]
    diagnostics: ScanDiagnostics


@dataclass(frozen=True)
class VaultScanResult:
    vault_address: ChecksumAddress
    from_block: int
    to_block: int
    events: list[VaultLedgerEvent]
    history: list[BalanceHistoryEntry]
    balances: VaultBalanceSummary
    diagnostics: ScanDiagnostics

    @property
    def final_running_balance(self) -> int:
        return self.history[-1].running_balance if self.history else 0


def _fetch_and_decode(
    source: LogSource,
    *,
    address: ChecksumAddress,
    topics: TopicFilter,
    decoder: EventDecoder,
    from_block: int,
    to_block: int,
    fetch: FetchConfig,
) -> tuple[DecodeBatch, ScanDiagnostics]:
    fetched: FetchResult = fetch_logs_chunked(
        source,
        address=address,
        topics=topics,
        from_block=from_block,
        to_block=to_block,
        chunk_size=fetch.chunk_size,
        chunk_delay=fetch.chunk_delay,
        retries=fetch.retries,
        show_progress=fetch.show_progress,
    )

    batch = decoder.decode_all(fetched.logs)
    for error in batch.errors:
        logger.error(f"Error parsing event: {error.reason}")
        scan_debug_logger.log_decode_error(reason=error.reason, log=error.log)

    diagnostics = ScanDiagnostics(
        fetched_logs=len(fetched.logs),
        attempted_chunks=fetched.attempted_chunks,
        failed_ranges=list(fetched.failed_ranges),
        skipped_logs=batch.skipped,
        decode_errors=[error.reason for error in batch.errors],
    )
    return batch, diagnostics


def _resolve_to_block(source: LogSource, to_block: int | None) -> int:
    if to_block is not None:
        return to_block
    current_block = source.get_block_number()
    logger.info(f"Current block: {current_block}")
    return current_block


def scan_deposits(source: LogSource, config: DepositScanConfig) -> DepositScanResult:
    """Collect DepositProcessed events and their per-(user, asset) totals."""
    to_block = _resolve_to_block(source, config.to_block)
    logger.info(f"Fetching DepositProcessed events from contract: {config.contract_address}")
    logger.info(f"Searching for events with topic: {DEPOSIT_PROCESSED.topic.to_0x_hex()}")

    batch, diagnostics = _fetch_and_decode(
        source,
        address=config.contract_address,
        topics=[DEPOSIT_PROCESSED.topic],
        decoder=EventDecoder(DEPOSIT_SHAPES),
        from_block=config.from_block,
        to_block=to_block,
        fetch=config.fetch,
    )
    events = [event for event in batch.events if isinstance(event, DepositProcessedEvent)]
    grouped = group_deposits(events)

    scan_debug_logger.log_summary(
        contract=config.contract_address,
        events=len(events),
        grouped_entries=len(grouped),
        failed_chunks=len(diagnostics.failed_ranges),
        decode_errors=diagnostics.decode_error_count,
    )
    return DepositScanResult(
        from_block=config.from_block,
        to_block=to_block,
        events=events,
        grouped=grouped,
        diagnostics=diagnostics,
    )


def scan_vault(
    source: LogSource,
    vault_address: ChecksumAddress,
    config: VaultScanConfig,
) -> VaultScanResult:
    """Collect a vault's Deposit/Withdraw/Transfer events and reconcile balances."""
    to_block = _resolve_to_block(source, config.to_block)
    logger.info(f"Searching for vault events from {vault_address}")

    batch, diagnostics = _fetch_and_decode(
        source,
        address=vault_address,
        # OR filter: any of the vault event signatures at topic position 0
        topics=[[shape.topic for shape in VAULT_SHAPES]],
        decoder=EventDecoder(VAULT_SHAPES),
        from_block=config.from_block,
        to_block=to_block,
        fetch=config.fetch,
    )
    events = sort_by_block(
        event
        for event in batch.events
        if isinstance(event, (ShareTransferEvent, VaultDepositEvent, VaultWithdrawEvent))
    )
    history = calculate_running_balance(events)
    balances = calculate_user_balances(
        events,
        vault_address=vault_address,
        excluded_addresses=config.excluded_addresses,
    )

    scan_debug_logger.log_summary(
        vault=vault_address,
        events=len(events),
        user_count=balances.user_count,
        total_deposits=balances.total_deposits,
        total_withdrawals=balances.total_withdrawals,
        net_balance=balances.net_balance,
        excluded_events=balances.excluded_event_count,
        failed_chunks=len(diagnostics.failed_ranges),
        decode_errors=diagnostics.decode_error_count,
    )
    return VaultScanResult(
        vault_address=vault_address,
        from_block=config.from_block,
        to_block=to_block,
        events=events,
        history=history,
        balances=balances,
        diagnostics=diagnostics,
    )
