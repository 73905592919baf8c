"""Scan configuration.

Defaults reproduce the mainnet deployment the reports were built for. Every
value can be overridden from the command line; the scan functions only read
the configuration object they are given.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from eth_typing import ChecksumAddress

from vaultscan.checksum_cache import get_checksum_address

RPC_URL_ENV = "VAULTSCAN_RPC_URL"

DEFAULT_RPC_ENDPOINTS: tuple[str, ...] = ("https://eth.llamarpc.com",)

DEPOSIT_CONTRACT_ADDRESS = get_checksum_address("0xb01dadec98308528ee57a17b24a473213c1704bb")

# First and last blocks with DepositProcessed events
DEPOSIT_FROM_BLOCK = 22_547_938
DEPOSIT_TO_BLOCK = 22_770_577

VAULT_ADDRESSES: tuple[ChecksumAddress, ...] = (
    get_checksum_address("0x7B5A0182E400b241b317e781a4e9dEdFc1429822"),
    get_checksum_address("0x48c03B6FfD0008460F8657Db1037C7e09dEedfcb"),
    get_checksum_address("0x92C82f5F771F6A44CfA09357DD0575B81BF5F728"),
    get_checksum_address("0xcc6a16Be713f6a714f68b0E1f4914fD3db15fBeF"),
)

# First deposit through the deposit contract
VAULT_FROM_BLOCK = DEPOSIT_FROM_BLOCK

EXCLUDED_USER_ADDRESS = get_checksum_address("0x836304B832687f3811a0dF935934C724B40578eB")

DEFAULT_CHUNK_SIZE = 1_000
DEFAULT_CHUNK_DELAY = 0.1


def default_rpc_endpoints() -> tuple[str, ...]:
    """RPC endpoints from VAULTSCAN_RPC_URL (comma-separated), else the defaults."""
    raw = os.environ.get(RPC_URL_ENV, "")
    endpoints = tuple(url.strip() for url in raw.split(",") if url.strip())
    return endpoints or DEFAULT_RPC_ENDPOINTS


@dataclass(frozen=True)
class FetchConfig:
    """Parameters of the chunked log fetch."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_delay: float = DEFAULT_CHUNK_DELAY
    retries: int = 0
    show_progress: bool = True

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            msg = f"chunk_size must be positive, got {self.chunk_size}"
            raise ValueError(msg)
        if self.chunk_delay < 0:
            msg = f"chunk_delay cannot be negative, got {self.chunk_delay}"
            raise ValueError(msg)
        if self.retries < 0:
            msg = f"retries cannot be negative, got {self.retries}"
            raise ValueError(msg)


@dataclass(frozen=True)
class DepositScanConfig:
    contract_address: ChecksumAddress = DEPOSIT_CONTRACT_ADDRESS
    from_block: int = DEPOSIT_FROM_BLOCK
    # None scans up to the current block
    to_block: int | None = DEPOSIT_TO_BLOCK
    fetch: FetchConfig = field(default_factory=FetchConfig)
    events_path: Path = Path("krates_events.csv")
    grouped_path: Path = Path("kraters_grouped.csv")


@dataclass(frozen=True)
class VaultScanConfig:
    vaults: tuple[ChecksumAddress, ...] = VAULT_ADDRESSES
    from_block: int = VAULT_FROM_BLOCK
    to_block: int | None = None
    excluded_addresses: tuple[ChecksumAddress, ...] = (EXCLUDED_USER_ADDRESS,)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    output_dir: Path = Path()
    write_history: bool = False
