"""
Dice program instruction encoding and builders.

Instruction data is a one-byte tag followed by little-endian arguments:

    0 initialize   amount: u64
    1 place_bet    seed: u128, roll: u8, amount: u64
    2 resolve_bet  signature: [u8; 64]
    3 refund_bet   (none)

Account order per instruction:

    initialize   house(signer, writable), vault(writable), system_program
    place_bet    player(signer, writable), house, vault(writable), bet(writable), system_program
    resolve_bet  house(signer, writable), player(writable), vault(writable), bet(writable),
                 instructions_sysvar, system_program
    refund_bet   player(signer, writable), house, vault(writable), bet(writable), system_program
"""

import struct
from dataclasses import dataclass
from typing import Tuple, Union

from dicevault.config import DiceConfig
from dicevault.core.addressing import find_program_address
from dicevault.core.crypto import SIGNATURE_LENGTH
from dicevault.core.exceptions import InvalidInstructionError
from dicevault.core.models import BET_SEED, U64_MAX, VAULT_SEED, seed_bytes
from dicevault.ledger.transaction import AccountMeta, Instruction

TAG_INITIALIZE  = 0
TAG_PLACE_BET   = 1
TAG_RESOLVE_BET = 2
TAG_REFUND_BET  = 3

_INITIALIZE  = struct.Struct("<Q")
_PLACE_BET   = struct.Struct("<16sBQ")
_RESOLVE_BET = struct.Struct(f"<{SIGNATURE_LENGTH}s")


@dataclass(frozen=True)
class InitializeArgs:
    amount: int


@dataclass(frozen=True)
class PlaceBetArgs:
    seed:   int
    roll:   int
    amount: int


@dataclass(frozen=True)
class ResolveBetArgs:
    signature: bytes


@dataclass(frozen=True)
class RefundBetArgs:
    pass


InstructionArgs = Union[InitializeArgs, PlaceBetArgs, ResolveBetArgs, RefundBetArgs]


def _check_u64(name: str, value: int) -> None:
    if not 0 <= value <= U64_MAX:
        raise ValueError(f"{name} must fit in u64, got {value}")


def encode_instruction(args: InstructionArgs) -> bytes:
    if isinstance(args, InitializeArgs):
        _check_u64("amount", args.amount)
        return bytes([TAG_INITIALIZE]) + _INITIALIZE.pack(args.amount)
    if isinstance(args, PlaceBetArgs):
        if not 0 <= args.seed < 2 ** 128:
            raise ValueError(f"seed must fit in u128, got {args.seed}")
        if not 0 <= args.roll <= 255:
            raise ValueError(f"roll must fit in u8, got {args.roll}")
        _check_u64("amount", args.amount)
        return bytes([TAG_PLACE_BET]) + _PLACE_BET.pack(seed_bytes(args.seed), args.roll, args.amount)
    if isinstance(args, ResolveBetArgs):
        if len(args.signature) != SIGNATURE_LENGTH:
            raise ValueError(f"signature must be {SIGNATURE_LENGTH} bytes")
        return bytes([TAG_RESOLVE_BET]) + _RESOLVE_BET.pack(args.signature)
    if isinstance(args, RefundBetArgs):
        return bytes([TAG_REFUND_BET])
    raise TypeError(f"Unknown instruction args: {args!r}")


def decode_instruction(data: bytes) -> InstructionArgs:
    """Raises InvalidInstructionError on an unknown tag or a bad argument length."""
    if not data:
        raise InvalidInstructionError("Empty instruction data")
    tag, body = data[0], data[1:]
    try:
        if tag == TAG_INITIALIZE:
            (amount,) = _INITIALIZE.unpack(body)
            return InitializeArgs(amount)
        if tag == TAG_PLACE_BET:
            seed, roll, amount = _PLACE_BET.unpack(body)
            return PlaceBetArgs(int.from_bytes(seed, "little"), roll, amount)
        if tag == TAG_RESOLVE_BET:
            (signature,) = _RESOLVE_BET.unpack(body)
            return ResolveBetArgs(signature)
        if tag == TAG_REFUND_BET and not body:
            return RefundBetArgs()
    except struct.error as exc:
        raise InvalidInstructionError(
            "Malformed instruction arguments", {"tag": tag, "reason": str(exc)}
        ) from exc
    raise InvalidInstructionError("Unknown instruction", {"tag": tag, "length": len(data)})


# ── Addresses ─────────────────────────────────────────────────

def vault_address(config: DiceConfig, house: bytes) -> Tuple[bytes, int]:
    return find_program_address([VAULT_SEED, house], config.program_id)


def bet_address(config: DiceConfig, vault: bytes, seed: int) -> Tuple[bytes, int]:
    return find_program_address([BET_SEED, vault, seed_bytes(seed)], config.program_id)


# ── Builders ──────────────────────────────────────────────────

def initialize(config: DiceConfig, house: bytes, amount: int) -> Instruction:
    vault, _ = vault_address(config, house)
    return Instruction(
        program_id=config.program_id,
        accounts=(
            AccountMeta(house, is_signer=True, is_writable=True),
            AccountMeta(vault, is_writable=True),
            AccountMeta(config.system_program_id),
        ),
        data=encode_instruction(InitializeArgs(amount)),
    )


def place_bet(
    config: DiceConfig,
    player: bytes,
    house:  bytes,
    seed:   int,
    roll:   int,
    amount: int,
) -> Instruction:
    vault, _ = vault_address(config, house)
    bet, _ = bet_address(config, vault, seed)
    return Instruction(
        program_id=config.program_id,
        accounts=(
            AccountMeta(player, is_signer=True, is_writable=True),
            AccountMeta(house),
            AccountMeta(vault, is_writable=True),
            AccountMeta(bet, is_writable=True),
            AccountMeta(config.system_program_id),
        ),
        data=encode_instruction(PlaceBetArgs(seed, roll, amount)),
    )


def resolve_bet(
    config:    DiceConfig,
    house:     bytes,
    player:    bytes,
    seed:      int,
    signature: bytes,
) -> Instruction:
    vault, _ = vault_address(config, house)
    bet, _ = bet_address(config, vault, seed)
    return Instruction(
        program_id=config.program_id,
        accounts=(
            AccountMeta(house, is_signer=True, is_writable=True),
            AccountMeta(player, is_writable=True),
            AccountMeta(vault, is_writable=True),
            AccountMeta(bet, is_writable=True),
            AccountMeta(config.instructions_sysvar_id),
            AccountMeta(config.system_program_id),
        ),
        data=encode_instruction(ResolveBetArgs(signature)),
    )


def refund_bet(config: DiceConfig, player: bytes, house: bytes, seed: int) -> Instruction:
    vault, _ = vault_address(config, house)
    bet, _ = bet_address(config, vault, seed)
    return Instruction(
        program_id=config.program_id,
        accounts=(
            AccountMeta(player, is_signer=True, is_writable=True),
            AccountMeta(house),
            AccountMeta(vault, is_writable=True),
            AccountMeta(bet, is_writable=True),
            AccountMeta(config.system_program_id),
        ),
        data=encode_instruction(RefundBetArgs()),
    )
