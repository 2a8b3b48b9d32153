"""
dicevault simulate: run the full bet lifecycle on a fresh ledger.

    fund vault → place bet → house signs bet → resolve (verify, derive, pay, close)

Exit codes:
    0  Simulation completed
    2  Error  (bad config, insufficient bankroll, ledger failure)
"""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import click

from dicevault.client import House, Player
from dicevault.config import load_config
from dicevault.core.crypto import Ed25519KeyManager
from dicevault.core.exceptions import DiceVaultError
from dicevault.core.models import Bet, SettlementRecord
from dicevault.ledger.journal import Journal
from dicevault.ledger.ledger import Ledger
from dicevault.program.dice import DiceProgram

logger = logging.getLogger(__name__)


def run_simulation(
    ledger:    Ledger,
    house:     House,
    player:    Player,
    bets:      int,
    roll:      int,
    amount:    int,
    bankroll:  int,
) -> List[SettlementRecord]:
    """Fund the vault, then place and resolve ``bets`` bets one after another."""
    reserve = ledger.config.rent_exempt_minimum(Bet.ACCOUNT_SIZE)
    ledger.airdrop(house.address, bankroll)
    ledger.airdrop(player.address, amount * bets + reserve)
    house.fund_vault(bankroll)

    records = []
    for seed in range(1, bets + 1):
        player.place_bet(house.address, seed, roll, amount)
        receipt = house.resolve(seed)
        for event in receipt.events_of("bet_settled"):
            records.append(SettlementRecord.from_dict(event))
    return records


@click.command(name="simulate")
@click.option("--bets", type=click.IntRange(min=1), default=10, show_default=True)
@click.option("--roll", type=click.IntRange(0, 255), default=50, show_default=True,
              help="Win threshold for every bet (valid range 2-99).")
@click.option("--amount", type=click.IntRange(min=0), default=1_000_000, show_default=True,
              help="Stake per bet, in lamports.")
@click.option("--bankroll", type=click.IntRange(min=1), default=1_000_000_000, show_default=True,
              help="Lamports the house moves into its vault.")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="YAML configuration file.")
@click.option("--journal", "journal_path", type=click.Path(dir_okay=False), default=None,
              help="Write committed transactions to this JSONL journal. "
                   "An existing journal can only be extended with the --house-key that wrote it.")
@click.option("--house-key", type=click.Path(dir_okay=False, exists=True), default=None,
              help="PEM house key. A fresh key is generated if omitted.")
@click.option("--format", "fmt", type=click.Choice(["human", "json"]), default="human", show_default=True)
def simulate_command(
    bets:         int,
    roll:         int,
    amount:       int,
    bankroll:     int,
    config_path:  Optional[str],
    journal_path: Optional[str],
    house_key:    Optional[str],
    fmt:          str,
) -> None:
    """Simulate BETS bets of AMOUNT at threshold ROLL against a fresh vault."""
    try:
        config = load_config(Path(config_path) if config_path else None)
        key = Ed25519KeyManager.from_file(Path(house_key)) if house_key else Ed25519KeyManager.generate()

        journal_file = journal_path or config.journal_path
        journal = Journal(key, Path(journal_file)) if journal_file else None
        ledger = Ledger(config, journal=journal)
        DiceProgram(config).install(ledger)

        house = House(key, ledger)
        player = Player(Ed25519KeyManager.generate(), ledger)
        records = run_simulation(ledger, house, player, bets, roll, amount, bankroll)
    except (DiceVaultError, ValueError, OSError) as e:
        click.echo(f"Simulation failed: {e}", err=True)
        sys.exit(2)

    wins = [r for r in records if r.won]
    summary = {
        "bets":          len(records),
        "wins":          len(wins),
        "losses":        len(records) - len(wins),
        "staked":        sum(r.amount for r in records),
        "paid_out":      sum(r.payout for r in records),
        "vault_balance": ledger.balance(house.vault),
        "house":         house.address.hex(),
        "vault":         house.vault.hex(),
    }

    if fmt == "json":
        click.echo(json.dumps({"summary": summary, "settlements": [r.to_dict() for r in records]}))
        return

    for r in records:
        mark = "WIN " if r.won else "LOSS"
        click.echo(f"  seed {r.seed:>4}  outcome {r.outcome:>3} / {r.roll:<3} {mark}  payout {r.payout}")
    click.echo("")
    click.echo(f"  bets      {summary['bets']}  ({summary['wins']} won, {summary['losses']} lost)")
    click.echo(f"  staked    {summary['staked']}")
    click.echo(f"  paid out  {summary['paid_out']}")
    click.echo(f"  vault     {summary['vault_balance']}")
    if journal_file:
        click.echo(f"  journal   {journal_file}")
