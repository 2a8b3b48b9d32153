"""
dicevault roll: recompute the outcome of a settled bet from its signature.

Anyone holding the house signature can check the result:

    dicevault roll <128 hex chars>
    dicevault roll <sig> --roll 50 --amount 1000000
"""

import json
import sys
from typing import Optional

import click

from dicevault.core.exceptions import ArithmeticOverflowError
from dicevault.settlement.outcome import compute_payout, derive_outcome, is_win


@click.command(name="roll")
@click.argument("signature")
@click.option("--roll", "threshold", type=click.IntRange(0, 255), default=None,
              help="Bet threshold; reports win or loss.")
@click.option("--amount", type=click.IntRange(min=0), default=None,
              help="Stake; with --roll, reports the payout.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Machine-readable output.")
def roll_command(signature: str, threshold: Optional[int], amount: Optional[int], as_json: bool) -> None:
    """Derive the outcome for SIGNATURE (64 bytes, hex)."""
    try:
        raw = bytes.fromhex(signature)
        outcome = derive_outcome(raw)
    except ValueError as e:
        click.echo(f"Invalid signature: {e}", err=True)
        sys.exit(2)

    result = {"outcome": outcome}
    if threshold is not None:
        won = is_win(outcome, threshold)
        result["roll"] = threshold
        result["won"] = won
        if amount is not None:
            try:
                result["payout"] = compute_payout(amount, threshold) if won else 0
            except ArithmeticOverflowError as e:
                click.echo(f"Payout error: {e}", err=True)
                sys.exit(1)

    if as_json:
        click.echo(json.dumps(result))
        return

    click.echo(f"outcome  {outcome}")
    if "won" in result:
        click.echo(f"roll     {threshold} ({'win' if result['won'] else 'loss'})")
    if "payout" in result:
        click.echo(f"payout   {result['payout']}")
