"""
dicevault verify: check a transaction journal.

Usage:
    dicevault verify <journal>                       Human output (default)
    dicevault verify <journal> --format json         Machine-readable JSON
    dicevault verify <journal> --public-key HEX      Also pin the operator key
    dicevault verify <journal> --quiet               Exit code only

Exit codes:
    0  Journal fully valid (data hashes + chain + signatures)
    1  Journal has a violation
    2  Error (file missing, malformed JSON)
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from dicevault.core.exceptions import JournalError
from dicevault.ledger.journal import load_entries, verify_entries


@click.command(name="verify")
@click.argument("journal", type=click.Path(exists=False))
@click.option("--public-key", default=None, metavar="HEX",
              help="Require every entry to be signed by this operator key.")
@click.option("--format", "fmt", type=click.Choice(["human", "json"]), default="human", show_default=True)
@click.option("--quiet", is_flag=True, default=False, help="Suppress output. Use exit code only.")
def verify_command(journal: str, public_key: Optional[str], fmt: str, quiet: bool) -> None:
    """Verify JOURNAL: chain integrity and operator signatures."""
    path = Path(journal)

    if not path.exists():
        if not quiet:
            click.echo(f"Journal not found: {journal}", err=True)
        sys.exit(2)

    try:
        entries = load_entries(path)
    except JournalError as e:
        if not quiet:
            click.echo(str(e), err=True)
        sys.exit(2)

    violation = None
    try:
        verify_entries(entries, public_key)
    except JournalError as e:
        violation = str(e)

    if quiet:
        sys.exit(0 if violation is None else 1)

    settled = sum(
        1 for entry in entries
        for event in entry.data.get("events", [])
        if event.get("event") == "bet_settled"
    )

    if fmt == "json":
        click.echo(json.dumps({
            "journal":   str(path),
            "entries":   len(entries),
            "settled":   settled,
            "valid":     violation is None,
            "violation": violation,
            "head_hash": entries[-1].compute_hash() if entries else None,
        }))
    else:
        click.echo(f"  journal   {path}")
        click.echo(f"  entries   {len(entries)}")
        click.echo(f"  settled   {settled}")
        if violation is None:
            click.echo("  status    ✅ valid")
        else:
            click.echo(f"  status    ❌ {violation}")

    sys.exit(0 if violation is None else 1)
