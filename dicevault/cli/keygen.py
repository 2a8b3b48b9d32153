"""
dicevault keygen: write a new Ed25519 house key as PEM.
"""

import sys
from pathlib import Path

import click

from dicevault.core.crypto import Ed25519KeyManager


@click.command(name="keygen")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing key file.")
def keygen_command(path: str, force: bool) -> None:
    """Generate a house key at PATH and print its public key."""
    key_path = Path(path)
    if key_path.exists() and not force:
        click.echo(f"Key file already exists: {key_path} (use --force)", err=True)
        sys.exit(2)
    key = Ed25519KeyManager.generate()
    key.save(key_path)
    click.echo(key.public_key_hex)
