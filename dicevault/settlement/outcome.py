"""
Randomness and payout.

The outcome is a pure function of the house signature: unpredictable until
the house signs, reproducible by anyone afterwards.

    h       = sha256(signature)
    outcome = ((u128_le(h[0:16]) + u128_le(h[16:32])) mod 2^128) mod 100 + 1

The payout uses u128 checked arithmetic and must fit back into u64:

    payout  = amount * (10000 - HOUSE_EDGE_BPS) // ((roll - 1) * 100)
"""

import hashlib

from dicevault.core.crypto import SIGNATURE_LENGTH
from dicevault.core.exceptions import ArithmeticOverflowError
from dicevault.core.models import (
    BPS_DENOMINATOR,
    HOUSE_EDGE_BPS,
    U64_MAX,
    U128_MAX,
)

OUTCOME_SIDES = 100


def derive_outcome(signature: bytes) -> int:
    """Map a 64-byte signature to an integer in [1, 100]."""
    if len(signature) != SIGNATURE_LENGTH:
        raise ValueError(f"signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}")
    digest = hashlib.sha256(signature).digest()
    lower = int.from_bytes(digest[:16], "little")
    upper = int.from_bytes(digest[16:], "little")
    return ((lower + upper) & U128_MAX) % OUTCOME_SIDES + 1


def is_win(outcome: int, roll: int) -> bool:
    return outcome <= roll


def compute_payout(amount: int, roll: int) -> int:
    """
    Winning payout for a stake of amount at threshold roll.

    Raises ArithmeticOverflowError when the product exceeds u128, the divisor
    is zero (roll == 1) or the result does not fit in u64.
    """
    product = amount * (BPS_DENOMINATOR - HOUSE_EDGE_BPS)
    if product > U128_MAX:
        raise ArithmeticOverflowError(details={"step": "mul", "amount": amount})
    divisor = (roll - 1) * 100
    if divisor <= 0:
        raise ArithmeticOverflowError(details={"step": "div", "roll": roll})
    payout = product // divisor
    if payout > U64_MAX:
        raise ArithmeticOverflowError(details={"step": "cast", "payout": payout})
    return payout
