"""
dicevault/__init__.py

dicevault: provably fair dice wagers against a house vault.

The house resolves each bet by signing the bet's own bytes. The outcome is
derived from that signature, so it is unknown until the house commits and
checkable by anyone afterwards. Settlement verifies the signature, pays out
at a fixed 1.5% house edge and destroys the bet, all in one atomic
transaction.
"""

__version__ = "0.3.0"

from dicevault.client import House, Player
from dicevault.config import DiceConfig, configure_logging, load_config
from dicevault.core.crypto import Ed25519KeyManager
from dicevault.core.models import Bet, SettlementRecord
from dicevault.ledger.journal import Journal
from dicevault.ledger.ledger import Ledger
from dicevault.program.dice import DiceProgram
from dicevault.settlement.outcome import compute_payout, derive_outcome

__all__ = [
    # Parties
    "House",
    "Player",
    # Runtime
    "DiceConfig",
    "DiceProgram",
    "Journal",
    "Ledger",
    # Model
    "Bet",
    "Ed25519KeyManager",
    "SettlementRecord",
    # Helpers
    "compute_payout",
    "configure_logging",
    "derive_outcome",
    "load_config",
]
