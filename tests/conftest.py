"""Shared factories for synthetic logs and a fake log source."""

from typing import Any

import eth_abi
import pytest
from hexbytes import HexBytes

from vaultscan.checksum_cache import get_checksum_address
from vaultscan.debug_logger import scan_debug_logger
from vaultscan.events import DEPOSIT_PROCESSED, ERC4626_DEPOSIT, ERC4626_WITHDRAW, ERC20_TRANSFER

DEPOSIT_CONTRACT = get_checksum_address("0xb01dadec98308528ee57a17b24a473213c1704bb")
VAULT = get_checksum_address("0x7B5A0182E400b241b317e781a4e9dEdFc1429822")


def address_topic(address: str) -> HexBytes:
    return HexBytes("0x" + "0" * 24 + address[2:])


def uint_topic(value: int) -> HexBytes:
    return HexBytes(value.to_bytes(32, "big"))


class EventFactory:
    """Factory for creating raw test logs, shaped like web3 LogReceipts."""

    @staticmethod
    def _log(
        *,
        address: str,
        topics: list[HexBytes],
        data: bytes,
        block_number: int,
        log_index: int,
    ) -> dict[str, Any]:
        return {
            "address": address,
            "topics": topics,
            "data": HexBytes(data),
            "blockNumber": block_number,
            "logIndex": log_index,
            "transactionHash": HexBytes(block_number.to_bytes(32, "big")),
            "blockHash": HexBytes("0x" + "00" * 32),
        }

    @staticmethod
    def deposit_processed(
        asset: str,
        user: str,
        amount: int,
        *,
        chain_id: int = 1,
        referral: str = "0x" + "0" * 40,
        block_number: int = 22_547_938,
        log_index: int = 0,
        address: str = DEPOSIT_CONTRACT,
    ) -> dict[str, Any]:
        return EventFactory._log(
            address=address,
            topics=[
                DEPOSIT_PROCESSED.topic,
                address_topic(asset),
                address_topic(user),
                uint_topic(amount),
            ],
            data=eth_abi.encode(["uint256", "address"], [chain_id, referral]),
            block_number=block_number,
            log_index=log_index,
        )

    @staticmethod
    def vault_deposit(
        caller: str,
        owner: str,
        assets: int,
        shares: int,
        *,
        block_number: int = 22_600_000,
        log_index: int = 0,
        address: str = VAULT,
    ) -> dict[str, Any]:
        return EventFactory._log(
            address=address,
            topics=[ERC4626_DEPOSIT.topic, address_topic(caller), address_topic(owner)],
            data=eth_abi.encode(["uint256", "uint256"], [assets, shares]),
            block_number=block_number,
            log_index=log_index,
        )

    @staticmethod
    def vault_withdraw(
        caller: str,
        receiver: str,
        owner: str,
        assets: int,
        shares: int,
        *,
        block_number: int = 22_600_000,
        log_index: int = 0,
        address: str = VAULT,
    ) -> dict[str, Any]:
        return EventFactory._log(
            address=address,
            topics=[
                ERC4626_WITHDRAW.topic,
                address_topic(caller),
                address_topic(receiver),
                address_topic(owner),
            ],
            data=eth_abi.encode(["uint256", "uint256"], [assets, shares]),
            block_number=block_number,
            log_index=log_index,
        )

    @staticmethod
    def share_transfer(
        from_address: str,
        to_address: str,
        value: int,
        *,
        block_number: int = 22_600_000,
        log_index: int = 0,
        address: str = VAULT,
    ) -> dict[str, Any]:
        return EventFactory._log(
            address=address,
            topics=[ERC20_TRANSFER.topic, address_topic(from_address), address_topic(to_address)],
            data=eth_abi.encode(["uint256"], [value]),
            block_number=block_number,
            log_index=log_index,
        )


class FakeLogSource:
    """In-memory LogSource serving logs by block number.

    Block ranges listed in `failing_ranges` raise on every request.
    """

    def __init__(
        self,
        logs: list[dict[str, Any]] | None = None,
        *,
        block_number: int = 22_770_577,
        failing_ranges: set[tuple[int, int]] | None = None,
        failures_before_success: int = 0,
    ):
        self.logs = logs or []
        self.block_number = block_number
        self.failing_ranges = failing_ranges or set()
        self.failures_before_success = failures_before_success
        self.requests: list[dict[str, Any]] = []

    def get_block_number(self) -> int:
        return self.block_number

    def get_logs(self, filter_params: dict[str, Any]) -> list[dict[str, Any]]:
        self.requests.append(filter_params)
        from_block = filter_params["fromBlock"]
        to_block = filter_params["toBlock"]
        if (from_block, to_block) in self.failing_ranges:
            msg = "query returned more than 10000 results"
            raise RuntimeError(msg)
        if self.failures_before_success > 0:
            self.failures_before_success -= 1
            msg = "503 Server Error"
            raise ConnectionError(msg)

        topic_filter = filter_params["topics"][0]
        wanted = set(topic_filter) if isinstance(topic_filter, list) else {topic_filter}
        return [
            log
            for log in self.logs
            if from_block <= log["blockNumber"] <= to_block
            and log["address"].lower() == filter_params["address"].lower()
            and log["topics"][0] in wanted
        ]


@pytest.fixture
def event_factory() -> type[EventFactory]:
    return EventFactory


@pytest.fixture(autouse=True)
def _close_debug_logger():
    yield
    scan_debug_logger.close()
