"""Memoised conversion of addresses to their EIP-55 checksum form."""

from functools import lru_cache

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes


@lru_cache(maxsize=4096)
def _checksum(address: str) -> ChecksumAddress:
    return to_checksum_address(address)


def get_checksum_address(address: str | bytes) -> ChecksumAddress:
    """Return the checksummed form of a 20-byte address.

    Raises ValueError if the input is not a 20-byte address.
    """
    if isinstance(address, (bytes, bytearray)):
        raw = bytes(address)
        if len(raw) != 20:
            msg = f"Address must be 20 bytes, got {len(raw)}"
            raise ValueError(msg)
        return _checksum(HexBytes(raw).to_0x_hex())

    text = address.strip()
    if not text.startswith(("0x", "0X")):
        text = "0x" + text
    if len(text) != 42:
        msg = f"Invalid address length: {address!r}"
        raise ValueError(msg)
    # Validate the hex digits before hitting the cache
    int(text[2:], 16)
    return _checksum(text.lower())
