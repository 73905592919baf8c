"""Balance aggregation over decoded events.

All amounts are Python integers, so sums of uint256 values never lose precision
or wrap.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from eth_typing import ChecksumAddress

from vaultscan.decoder import (
    DecodedEvent,
    DepositProcessedEvent,
    EventKind,
    VaultLedgerEvent,
)

_EventT = TypeVar("_EventT", bound=DecodedEvent)


@dataclass(frozen=True)
class DepositTotal:
    """Sum of all DepositProcessed amounts for one (user, asset) pair."""

    user: ChecksumAddress
    asset: ChecksumAddress
    amount: int


@dataclass(frozen=True)
class BalanceHistoryEntry:
    event: VaultLedgerEvent
    running_balance: int


@dataclass
class UserBalance:
    vault_address: ChecksumAddress
    user_address: ChecksumAddress
    total_deposited: int = 0
    total_withdrawn: int = 0

    @property
    def net_balance(self) -> int:
        return self.total_deposited - self.total_withdrawn


@dataclass(frozen=True)
class VaultBalanceSummary:
    """Per-user net positions for one vault plus run-wide totals.

    `entries` holds only users with a non-zero net balance. The totals cover
    every user that was aggregated, including those whose net balance is zero.
    Events owned by an excluded address are left out of both.
    """

    vault_address: ChecksumAddress
    entries: list[UserBalance] = field(default_factory=list)
    total_deposits: int = 0
    total_withdrawals: int = 0
    excluded_event_count: int = 0

    @property
    def user_count(self) -> int:
        return len(self.entries)

    @property
    def net_balance(self) -> int:
        return self.total_deposits - self.total_withdrawals


def group_deposits(events: Iterable[DecodedEvent]) -> list[DepositTotal]:
    """Sum DepositProcessed amounts per (user, asset), sorted by user then asset.

    Events of any other kind are ignored.
    """
    totals: dict[tuple[ChecksumAddress, ChecksumAddress], int] = {}
    for event in events:
        if not isinstance(event, DepositProcessedEvent):
            continue
        key = (event.user, event.asset)
        totals[key] = totals.get(key, 0) + event.amount

    return [
        DepositTotal(user=user, asset=asset, amount=amount)
        for (user, asset), amount in sorted(totals.items())
    ]


def sort_by_block(events: Iterable[_EventT]) -> list[_EventT]:
    """Order events by block number. Events in the same block keep their input order."""
    return sorted(events, key=lambda event: event.block_number)


def calculate_running_balance(events: Sequence[VaultLedgerEvent]) -> list[BalanceHistoryEntry]:
    """Left fold of `balance_change` over events in the given order."""
    running_balance = 0
    history: list[BalanceHistoryEntry] = []
    for event in events:
        running_balance += event.balance_change
        history.append(BalanceHistoryEntry(event=event, running_balance=running_balance))
    return history


def calculate_user_balances(
    events: Iterable[VaultLedgerEvent],
    *,
    vault_address: ChecksumAddress,
    excluded_addresses: Iterable[str] = (),
) -> VaultBalanceSummary:
    """Aggregate deposits and withdrawals per owner.

    Args:
        events: Decoded vault events. Share transfers are ignored.
        vault_address: The vault the events were emitted by.
        excluded_addresses: Owners to leave out entirely, compared
            case-insensitively.

    Returns:
        Summary with one entry per owner whose net balance is non-zero, in
        order of first appearance.
    """
    excluded = {address.lower() for address in excluded_addresses}
    balances: dict[ChecksumAddress, UserBalance] = {}
    excluded_event_count = 0

    for event in events:
        if event.kind is EventKind.SHARE_TRANSFER:
            continue
        if event.owner.lower() in excluded:
            excluded_event_count += 1
            continue

        user = balances.get(event.owner)
        if user is None:
            user = balances[event.owner] = UserBalance(
                vault_address=vault_address,
                user_address=event.owner,
            )

        if event.kind is EventKind.VAULT_DEPOSIT:
            user.total_deposited += event.assets
        elif event.kind is EventKind.VAULT_WITHDRAW:
            user.total_withdrawn += event.assets

    return VaultBalanceSummary(
        vault_address=vault_address,
        entries=[user for user in balances.values() if user.net_balance != 0],
        total_deposits=sum(user.total_deposited for user in balances.values()),
        total_withdrawals=sum(user.total_withdrawn for user in balances.values()),
        excluded_event_count=excluded_event_count,
    )
