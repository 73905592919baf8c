"""Fetch, decode and reconcile deposit and ERC-4626 vault events."""

__version__ = "0.1.0"
