"""
dicevault/core/models.py

Data model for the dice program.

CONTRACT 1: Bet serialization
    bet.to_bytes() = player(32) || vault(32) || seed(u128 LE) || slot(u64 LE)
                     || amount(u64 LE) || roll(u8) || bump(u8)
    These 98 bytes are the message the house signs to resolve the bet.
    Account data on the ledger is BET_DISCRIMINATOR || bet.to_bytes().

CONTRACT 2: Addresses
    vault = find_program_address([VAULT_SEED, house], program_id)
    bet   = find_program_address([BET_SEED, vault, seed as u128 LE], program_id)

CONTRACT 3: Economics
    house edge is fixed at HOUSE_EDGE_BPS basis points.
"""

import hashlib
import struct
from dataclasses import asdict, dataclass
from typing import Any, Dict

from dicevault.core.exceptions import ConstraintError

VAULT_SEED = b"vault"
BET_SEED   = b"bet"

HOUSE_EDGE_BPS = 150
BPS_DENOMINATOR = 10_000

MIN_ROLL = 2
MAX_ROLL = 99

U64_MAX  = 2 ** 64 - 1
U128_MAX = 2 ** 128 - 1

BET_DISCRIMINATOR = hashlib.sha256(b"account:Bet").digest()[:8]

_BET_LAYOUT = struct.Struct("<32s32s16sQQBB")


def seed_bytes(seed: int) -> bytes:
    """u128 little-endian encoding of a bet seed, as used in address seeds."""
    return seed.to_bytes(16, "little")


@dataclass(frozen=True)
class Bet:
    """
    One outstanding wager.

    Created by place_bet, read by resolve_bet / refund_bet, destroyed by
    either. The record is never mutated in place.
    """

    player: bytes
    vault:  bytes
    seed:   int
    slot:   int
    amount: int
    roll:   int
    bump:   int

    SIZE = _BET_LAYOUT.size
    ACCOUNT_SIZE = len(BET_DISCRIMINATOR) + _BET_LAYOUT.size

    def to_bytes(self) -> bytes:
        return _BET_LAYOUT.pack(
            self.player,
            self.vault,
            seed_bytes(self.seed),
            self.slot,
            self.amount,
            self.roll,
            self.bump,
        )

    def to_account_data(self) -> bytes:
        return BET_DISCRIMINATOR + self.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "Bet":
        player, vault, seed, slot, amount, roll, bump = _BET_LAYOUT.unpack(data)
        return cls(
            player=player,
            vault=vault,
            seed=int.from_bytes(seed, "little"),
            slot=slot,
            amount=amount,
            roll=roll,
            bump=bump,
        )

    @classmethod
    def from_account_data(cls, data: bytes) -> "Bet":
        """Decode ledger account data. Raises ConstraintError on a foreign account."""
        if len(data) != cls.ACCOUNT_SIZE or data[:8] != BET_DISCRIMINATOR:
            raise ConstraintError(
                "Account is not a Bet",
                {"length": len(data)},
                code="AccountDiscriminatorMismatch",
            )
        return cls.from_bytes(data[8:])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player": self.player.hex(),
            "vault":  self.vault.hex(),
            "seed":   self.seed,
            "slot":   self.slot,
            "amount": self.amount,
            "roll":   self.roll,
            "bump":   self.bump,
        }


@dataclass(frozen=True)
class SettlementRecord:
    """Outcome of one resolve_bet. Emitted as a ``bet_settled`` event."""

    bet:       str
    player:    str
    vault:     str
    seed:      int
    roll:      int
    amount:    int
    outcome:   int
    won:       bool
    payout:    int
    reclaimed: int
    slot:      int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SettlementRecord":
        return cls(**{k: data[k] for k in cls.__dataclass_fields__})
