"""Event shapes and topic hashes for the deposit contract and ERC-4626 vaults."""

from dataclasses import dataclass
from enum import Enum
from functools import cached_property

from hexbytes import HexBytes
from web3 import Web3


@dataclass(frozen=True)
class EventShape:
    """Static description of an event: its signature and parameter placement."""

    name: str
    signature: str
    indexed: tuple[str, ...]
    data: tuple[str, ...]

    @cached_property
    def topic(self) -> HexBytes:
        """keccak-256 of the canonical signature, as found in topics[0]."""
        return HexBytes(Web3.keccak(text=self.signature))

    @property
    def min_topics(self) -> int:
        return 1 + len(self.indexed)


# event DepositProcessed(
#     address indexed asset,
#     address indexed user,
#     uint256 indexed amount,
#     uint256 chainId,
#     address referral
# );
DEPOSIT_PROCESSED = EventShape(
    name="DepositProcessed",
    signature="DepositProcessed(address,address,uint256,uint256,address)",
    indexed=("address", "address", "uint256"),
    data=("uint256", "address"),
)

# event Deposit(
#     address indexed caller,
#     address indexed owner,
#     uint256 assets,
#     uint256 shares
# );
ERC4626_DEPOSIT = EventShape(
    name="Deposit",
    signature="Deposit(address,address,uint256,uint256)",
    indexed=("address", "address"),
    data=("uint256", "uint256"),
)

# event Withdraw(
#     address indexed caller,
#     address indexed receiver,
#     address indexed owner,
#     uint256 assets,
#     uint256 shares
# );
ERC4626_WITHDRAW = EventShape(
    name="Withdraw",
    signature="Withdraw(address,address,address,uint256,uint256)",
    indexed=("address", "address", "address"),
    data=("uint256", "uint256"),
)

# event Transfer(
#     address indexed from,
#     address indexed to,
#     uint256 value
# );
ERC20_TRANSFER = EventShape(
    name="Transfer",
    signature="Transfer(address,address,uint256)",
    indexed=("address", "address"),
    data=("uint256",),
)

DEPOSIT_SHAPES: tuple[EventShape, ...] = (DEPOSIT_PROCESSED,)
VAULT_SHAPES: tuple[EventShape, ...] = (ERC20_TRANSFER, ERC4626_DEPOSIT, ERC4626_WITHDRAW)


class DepositContractEvent(Enum):
    """Deposit-processing contract events."""

    DEPOSIT_PROCESSED = DEPOSIT_PROCESSED.topic


class VaultEvent(Enum):
    """ERC-4626 vault events, including the ERC-20 share transfer."""

    TRANSFER = ERC20_TRANSFER.topic
    DEPOSIT = ERC4626_DEPOSIT.topic
    WITHDRAW = ERC4626_WITHDRAW.topic
