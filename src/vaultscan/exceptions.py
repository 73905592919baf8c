"""Exceptions raised by vaultscan."""


class VaultScanError(Exception):
    """Base exception for all vaultscan errors."""


class ProviderConnectionError(VaultScanError):
    """Raised when no RPC endpoint accepts a connection."""

    def __init__(self, endpoints: list[str], errors: dict[str, str]):
        self.endpoints = endpoints
        self.errors = errors
        details = "; ".join(f"{endpoint}: {message}" for endpoint, message in errors.items())
        super().__init__(f"Failed to connect to any Ethereum RPC endpoint ({details})")


class LogDecodingError(VaultScanError):
    """Raised when a single log cannot be decoded."""
