"""Command line interface.

CLI Commands:
    vaultscan deposits - Export DepositProcessed events from the deposit contract, individually
        and summed per (user, asset)
    vaultscan vaults - Export net deposited assets per user for each ERC-4626 vault
"""

import click

from vaultscan import __version__


@click.group()
@click.version_option(__version__, prog_name="vaultscan")
def cli() -> None:
    """Fetch and reconcile deposit contract and vault events."""


from vaultscan.cli import deposits, vaults  # noqa: E402, F401
