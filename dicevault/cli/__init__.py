"""
dicevault/cli/__init__.py

dicevault CLI: root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    dicevault = "dicevault.cli:cli"

Adding a new command:
    1. Create dicevault/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

import click

from dicevault.config import configure_logging
from dicevault.cli.keygen import keygen_command
from dicevault.cli.roll import roll_command
from dicevault.cli.simulate import simulate_command
from dicevault.cli.verify import verify_command


@click.group()
@click.version_option(package_name="dicevault")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def cli(log_level: str) -> None:
    """
    dicevault: provably fair dice settlement.

    \b
    Commands:
      keygen    Create a house key.
      roll      Show the outcome a signature produces.
      simulate  Fund a vault, place and settle bets on a fresh ledger.
      verify    Verify a transaction journal.

    \b
    Quick start:
      dicevault keygen house.pem
      dicevault simulate --bets 20 --roll 50 --journal journal.jsonl
      dicevault verify journal.jsonl
    """
    configure_logging(log_level)


cli.add_command(keygen_command)
cli.add_command(roll_command)
cli.add_command(simulate_command)
cli.add_command(verify_command)
