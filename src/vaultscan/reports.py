"""CSV report rows and rendering.

Integers are always rendered as decimal strings so that uint256 values survive
serialization unchanged.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

from vaultscan.aggregation import BalanceHistoryEntry, DepositTotal, UserBalance
from vaultscan.decoder import DecodedEvent, DepositProcessedEvent, EventKind, ShareTransferEvent

Row = tuple[str, ...]

DEPOSIT_EVENTS_HEADER: Row = ("asset", "address", "amount")
GROUPED_DEPOSITS_HEADER: Row = ("user", "asset", "total_amount")
VAULT_BALANCES_HEADER: Row = ("vault", "user", "amount")
BALANCE_HISTORY_HEADER: Row = (
    "block_number",
    "transaction_hash",
    "event_type",
    "caller",
    "owner",
    "receiver",
    "assets",
    "shares",
    "balance_change",
    "running_balance",
)

EVENT_TYPE_NAMES = {
    EventKind.DEPOSIT_PROCESSED: "DepositProcessed",
    EventKind.SHARE_TRANSFER: "ShareTransfer",
    EventKind.VAULT_DEPOSIT: "Deposit",
    EventKind.VAULT_WITHDRAW: "Withdraw",
}


def deposit_event_rows(events: Iterable[DecodedEvent]) -> list[Row]:
    """One row per DepositProcessed event: asset, user, amount."""
    return [
        (event.asset, event.user, str(event.amount))
        for event in events
        if isinstance(event, DepositProcessedEvent)
    ]


def grouped_deposit_rows(totals: Iterable[DepositTotal]) -> list[Row]:
    return [(total.user, total.asset, str(total.amount)) for total in totals]


def vault_balance_rows(entries: Iterable[UserBalance]) -> list[Row]:
    return [
        (entry.vault_address, entry.user_address, str(entry.net_balance)) for entry in entries
    ]


def balance_history_rows(history: Iterable[BalanceHistoryEntry]) -> list[Row]:
    rows: list[Row] = []
    for entry in history:
        event = entry.event
        if isinstance(event, ShareTransferEvent):
            # Shares move from -> to; no owner and no underlying assets
            caller, owner, receiver, assets = event.from_address, "", event.to_address, 0
        else:
            caller, owner, receiver = event.caller, event.owner, event.receiver
            assets = event.assets
        rows.append((
            str(event.block_number),
            event.transaction_hash or "",
            EVENT_TYPE_NAMES[event.kind],
            caller,
            owner,
            receiver,
            str(assets),
            str(event.shares),
            str(event.balance_change),
            str(entry.running_balance),
        ))
    return rows


def render_csv(header: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    """Render comma-separated lines joined by LF, with no trailing newline."""
    return "\n".join(",".join(fields) for fields in (header, *rows))


def write_report(path: Path | str, header: Sequence[str], rows: Iterable[Sequence[str]]) -> Path:
    """Write a rendered report as UTF-8 and return its path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_csv(header, rows), encoding="utf-8", newline="")
    return path


def vault_report_filename(vault_address: str) -> str:
    # First 8 characters, including the 0x prefix
    return f"vault_user_balances_{vault_address[:8]}.csv"


def vault_history_filename(vault_address: str) -> str:
    return f"vault_balance_history_{vault_address[:8]}.csv"
