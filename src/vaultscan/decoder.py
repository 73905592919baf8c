"""Decoding of raw event logs into typed records.

Each log is turned into exactly one result:

    Decoded  - the log matched a supported event shape and decoded cleanly
    Skipped  - the log is not one of the supported events (not an error)
    Errored  - the log matched a supported shape but was malformed

Decoding never raises for a bad log. Callers aggregate the `Decoded` values and
tally the `Errored` ones for the end-of-run summary.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, ClassVar

from eth_abi.abi import decode
from eth_abi.exceptions import DecodingError
from eth_typing import ChecksumAddress
from hexbytes import HexBytes

from vaultscan.checksum_cache import get_checksum_address
from vaultscan.events import (
    DEPOSIT_PROCESSED,
    ERC4626_DEPOSIT,
    ERC4626_WITHDRAW,
    ERC20_TRANSFER,
    DepositContractEvent,
    EventShape,
    VaultEvent,
)
from vaultscan.exceptions import LogDecodingError
from vaultscan.logging import logger

WORD_SIZE = 32

RawLog = Mapping[str, Any]


class EventKind(Enum):
    """Kinds of decoded events."""

    DEPOSIT_PROCESSED = auto()
    SHARE_TRANSFER = auto()  # ERC-20 Transfer of vault shares
    VAULT_DEPOSIT = auto()
    VAULT_WITHDRAW = auto()


# ============================================================================
# DECODED EVENTS
# ============================================================================


@dataclass(frozen=True)
class DepositProcessedEvent:
    """A deposit accepted by the deposit-processing contract."""

    contract_address: ChecksumAddress
    block_number: int
    transaction_hash: str | None
    log_index: int | None
    asset: ChecksumAddress
    user: ChecksumAddress
    amount: int
    # Decoded from data, not used by any report
    chain_id: int | None = None
    referral: ChecksumAddress | None = None

    kind: ClassVar[EventKind] = EventKind.DEPOSIT_PROCESSED

    @property
    def balance_change(self) -> int:
        return self.amount


@dataclass(frozen=True)
class ShareTransferEvent:
    """A movement of vault shares. Never changes the underlying asset balance."""

    contract_address: ChecksumAddress
    block_number: int
    transaction_hash: str | None
    log_index: int | None
    from_address: ChecksumAddress
    to_address: ChecksumAddress
    shares: int

    kind: ClassVar[EventKind] = EventKind.SHARE_TRANSFER

    @property
    def balance_change(self) -> int:
        return 0


@dataclass(frozen=True)
class VaultDepositEvent:
    """ERC-4626 Deposit. The owner receives the minted shares."""

    contract_address: ChecksumAddress
    block_number: int
    transaction_hash: str | None
    log_index: int | None
    caller: ChecksumAddress
    owner: ChecksumAddress
    receiver: ChecksumAddress
    assets: int
    shares: int

    kind: ClassVar[EventKind] = EventKind.VAULT_DEPOSIT

    @property
    def balance_change(self) -> int:
        return self.assets


@dataclass(frozen=True)
class VaultWithdrawEvent:
    """ERC-4626 Withdraw. Assets leave the vault towards the receiver."""

    contract_address: ChecksumAddress
    block_number: int
    transaction_hash: str | None
    log_index: int | None
    caller: ChecksumAddress
    owner: ChecksumAddress
    receiver: ChecksumAddress
    assets: int
    shares: int

    kind: ClassVar[EventKind] = EventKind.VAULT_WITHDRAW

    @property
    def balance_change(self) -> int:
        return -self.assets


DecodedEvent = DepositProcessedEvent | ShareTransferEvent | VaultDepositEvent | VaultWithdrawEvent
VaultLedgerEvent = ShareTransferEvent | VaultDepositEvent | VaultWithdrawEvent


# ============================================================================
# DECODE RESULTS
# ============================================================================


@dataclass(frozen=True)
class Decoded:
    event: DecodedEvent


@dataclass(frozen=True)
class Skipped:
    reason: str


@dataclass(frozen=True)
class Errored:
    reason: str
    log: RawLog


DecodeResult = Decoded | Skipped | Errored


@dataclass
class DecodeBatch:
    """Outcome of decoding a sequence of logs, in input order."""

    events: list[DecodedEvent] = field(default_factory=list)
    skipped: int = 0
    errors: list[Errored] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)


# ============================================================================
# FIELD HELPERS
# ============================================================================


def _to_bytes(value: Any, *, name: str) -> HexBytes:
    if isinstance(value, (bytes, bytearray)):
        return HexBytes(value)
    if isinstance(value, str):
        try:
            return HexBytes(value)
        except (TypeError, ValueError) as e:
            msg = f"{name} is not valid hex: {value!r}"
            raise LogDecodingError(msg) from e
    msg = f"{name} must be bytes or a hex string, got {type(value).__name__}"
    raise LogDecodingError(msg)


def _to_int(value: Any, *, name: str) -> int:
    if isinstance(value, bool):
        msg = f"{name} cannot be boolean"
        raise LogDecodingError(msg)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.startswith("0x") else int(value, 10)
        except ValueError as e:
            msg = f"{name} is not an integer: {value!r}"
            raise LogDecodingError(msg) from e
    msg = f"{name} must be an integer, got {type(value).__name__}"
    raise LogDecodingError(msg)


def _topic_address(topic: HexBytes) -> ChecksumAddress:
    """Interpret the low-order 20 bytes of a topic word as an address."""
    if len(topic) != WORD_SIZE:
        msg = f"topic must be {WORD_SIZE} bytes, got {len(topic)}"
        raise LogDecodingError(msg)
    return get_checksum_address(bytes(topic[-20:]))


def _topic_uint(topic: HexBytes) -> int:
    if len(topic) != WORD_SIZE:
        msg = f"topic must be {WORD_SIZE} bytes, got {len(topic)}"
        raise LogDecodingError(msg)
    return int.from_bytes(topic, "big")


def _decode_words(types: tuple[str, ...], data: HexBytes) -> tuple[Any, ...]:
    """Decode the leading 32-byte words of `data` in declaration order."""
    expected = WORD_SIZE * len(types)
    if len(data) < expected:
        msg = f"truncated data: expected at least {expected} bytes, got {len(data)}"
        raise LogDecodingError(msg)
    try:
        return decode(list(types), bytes(data[:expected]), strict=False)
    except DecodingError as e:
        msg = f"invalid ABI data for {types}: {e}"
        raise LogDecodingError(msg) from e


def _require_topics(topics: list[HexBytes], shape: EventShape) -> None:
    if len(topics) < shape.min_topics:
        msg = f"{shape.name} requires {shape.min_topics} topics, got {len(topics)}"
        raise LogDecodingError(msg)


@dataclass(frozen=True)
class _LogContext:
    contract_address: ChecksumAddress
    block_number: int
    transaction_hash: str | None
    log_index: int | None


def _log_context(log: RawLog) -> _LogContext:
    address = log.get("address")
    if address is None:
        msg = "log has no address"
        raise LogDecodingError(msg)
    try:
        contract_address = get_checksum_address(address)
    except ValueError as e:
        msg = f"invalid log address: {address!r}"
        raise LogDecodingError(msg) from e

    block_number = log.get("blockNumber")
    if block_number is None:
        msg = "log has no blockNumber"
        raise LogDecodingError(msg)

    tx_hash = log.get("transactionHash")
    log_index = log.get("logIndex")
    return _LogContext(
        contract_address=contract_address,
        block_number=_to_int(block_number, name="blockNumber"),
        transaction_hash=None
        if tx_hash is None
        else _to_bytes(tx_hash, name="transactionHash").to_0x_hex(),
        log_index=None if log_index is None else _to_int(log_index, name="logIndex"),
    )


# ============================================================================
# DECODER
# ============================================================================


class EventDecoder:
    """Decodes raw logs for a fixed set of supported event shapes."""

    def __init__(self, shapes: Iterable[EventShape]):
        shapes = tuple(shapes)
        self.shapes: dict[HexBytes, EventShape] = {shape.topic: shape for shape in shapes}
        if len(self.shapes) != len(shapes):
            msg = "Event shapes must have unique signature hashes"
            raise ValueError(msg)

        handlers = {
            DepositContractEvent.DEPOSIT_PROCESSED.value: self._decode_deposit_processed,
            VaultEvent.TRANSFER.value: self._decode_share_transfer,
            VaultEvent.DEPOSIT.value: self._decode_vault_deposit,
            VaultEvent.WITHDRAW.value: self._decode_vault_withdraw,
        }
        unsupported = [shape.name for shape in shapes if shape.topic not in handlers]
        if unsupported:
            msg = f"No decoder available for event shapes: {', '.join(unsupported)}"
            raise ValueError(msg)
        self._handlers = {topic: handlers[topic] for topic in self.shapes}

    def decode(self, log: RawLog) -> DecodeResult:
        """Decode a single log."""
        try:
            topics = [_to_bytes(topic, name="topic") for topic in log.get("topics") or []]
        except LogDecodingError as e:
            return Errored(reason=str(e), log=log)

        if not topics:
            return Skipped(reason="log has no topics")

        handler = self._handlers.get(topics[0])
        if handler is None:
            return Skipped(reason=f"unsupported event topic {topics[0].to_0x_hex()}")

        # A DepositProcessed log without the indexed amount is ignored, not reported
        if (
            topics[0] == DepositContractEvent.DEPOSIT_PROCESSED.value
            and len(topics) < DEPOSIT_PROCESSED.min_topics
        ):
            return Skipped(reason=f"DepositProcessed log has only {len(topics)} topics")

        try:
            return Decoded(event=handler(log, topics))
        except LogDecodingError as e:
            return Errored(reason=str(e), log=log)

    def decode_all(self, logs: Iterable[RawLog]) -> DecodeBatch:
        """Decode logs in order, keeping decoded events and tallying the rest."""
        batch = DecodeBatch()
        for log in logs:
            match self.decode(log):
                case Decoded(event=event):
                    batch.events.append(event)
                case Skipped():
                    batch.skipped += 1
                case Errored() as error:
                    batch.errors.append(error)
        return batch

    @staticmethod
    def _decode_deposit_processed(log: RawLog, topics: list[HexBytes]) -> DepositProcessedEvent:
        # topics[1] = asset, topics[2] = user, topics[3] = amount
        # data = chainId (uint256), referral (address)
        context = _log_context(log)
        data = _to_bytes(log.get("data", "0x"), name="data")

        chain_id: int | None = None
        referral: ChecksumAddress | None = None
        if len(data) >= WORD_SIZE * len(DEPOSIT_PROCESSED.data):
            # The amount lives in the topics; a bad trailer only loses chainId and referral
            try:
                chain_id, referral_raw = _decode_words(DEPOSIT_PROCESSED.data, data)
            except LogDecodingError as e:
                logger.debug(f"Ignoring undecodable DepositProcessed data: {e}")
            else:
                referral = get_checksum_address(referral_raw)

        return DepositProcessedEvent(
            contract_address=context.contract_address,
            block_number=context.block_number,
            transaction_hash=context.transaction_hash,
            log_index=context.log_index,
            asset=_topic_address(topics[1]),
            user=_topic_address(topics[2]),
            amount=_topic_uint(topics[3]),
            chain_id=chain_id,
            referral=referral,
        )

    @staticmethod
    def _decode_share_transfer(log: RawLog, topics: list[HexBytes]) -> ShareTransferEvent:
        _require_topics(topics, ERC20_TRANSFER)
        context = _log_context(log)
        data = _to_bytes(log.get("data", "0x"), name="data")
        (shares,) = _decode_words(ERC20_TRANSFER.data, data)

        return ShareTransferEvent(
            contract_address=context.contract_address,
            block_number=context.block_number,
            transaction_hash=context.transaction_hash,
            log_index=context.log_index,
            from_address=_topic_address(topics[1]),
            to_address=_topic_address(topics[2]),
            shares=shares,
        )

    @staticmethod
    def _decode_vault_deposit(log: RawLog, topics: list[HexBytes]) -> VaultDepositEvent:
        _require_topics(topics, ERC4626_DEPOSIT)
        context = _log_context(log)
        data = _to_bytes(log.get("data", "0x"), name="data")
        assets, shares = _decode_words(ERC4626_DEPOSIT.data, data)
        owner = _topic_address(topics[2])

        return VaultDepositEvent(
            contract_address=context.contract_address,
            block_number=context.block_number,
            transaction_hash=context.transaction_hash,
            log_index=context.log_index,
            caller=_topic_address(topics[1]),
            owner=owner,
            receiver=owner,
            assets=assets,
            shares=shares,
        )

    @staticmethod
    def _decode_vault_withdraw(log: RawLog, topics: list[HexBytes]) -> VaultWithdrawEvent:
        _require_topics(topics, ERC4626_WITHDRAW)
        context = _log_context(log)
        data = _to_bytes(log.get("data", "0x"), name="data")
        assets, shares = _decode_words(ERC4626_WITHDRAW.data, data)

        return VaultWithdrawEvent(
            contract_address=context.contract_address,
            block_number=context.block_number,
            transaction_hash=context.transaction_hash,
            log_index=context.log_index,
            caller=_topic_address(topics[1]),
            receiver=_topic_address(topics[2]),
            owner=_topic_address(topics[3]),
            assets=assets,
            shares=shares,
        )
