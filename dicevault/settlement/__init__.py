"""
dicevault Settlement

Resolves an open bet with the house signature:

- Signature verified against the serialized bet (verification package)
- Outcome derived from the signature alone
- Payout at a fixed 1.5% house edge, overflow-checked
- Bet record closed to the player whether the bet won or lost

Critical Invariants:
- A bet settles at most once (its account is destroyed)
- An aborted settlement changes nothing
"""

from dicevault.settlement.engine import ResolveAccounts, SettlementEngine
from dicevault.settlement.outcome import compute_payout, derive_outcome, is_win

__all__ = [
    "ResolveAccounts",
    "SettlementEngine",
    "compute_payout",
    "derive_outcome",
    "is_win",
]
