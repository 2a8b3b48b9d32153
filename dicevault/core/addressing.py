"""
dicevault/core/addressing.py

Program-derived addresses.

An account address derived from (seeds, program_id) is a SHA-256 digest that
is guaranteed NOT to be a valid Ed25519 public key, so no private key can
ever sign for it. Only the owning program can authorize on its behalf, by
presenting the same seeds plus the bump that pushed the digest off the curve.

    create_program_address(seeds, program_id)
        = sha256(seed_0 || ... || seed_n || program_id || "ProgramDerivedAddress")
        rejected if the digest decodes to a curve point

    find_program_address(seeds, program_id)
        tries bump = 255, 254, ... 0 appended as one extra seed byte and
        returns the first (address, bump) that is off the curve
"""

import hashlib
from typing import Sequence, Tuple

from dicevault.core.exceptions import AddressDerivationError

MAX_SEEDS       = 16
MAX_SEED_LENGTH = 32
PDA_MARKER      = b"ProgramDerivedAddress"

# Curve25519 in twisted Edwards form: -x^2 + y^2 = 1 + d x^2 y^2 (mod p)
_P       = 2 ** 255 - 19
_D       = (-121665 * pow(121666, _P - 2, _P)) % _P
_SQRT_M1 = pow(2, (_P - 1) // 4, _P)


def is_on_curve(point: bytes) -> bool:
    """
    True if ``point`` decompresses to a point on the Ed25519 curve.

    Follows RFC 8032 §5.1.3 decoding: recover x^2 = (y^2 - 1) / (d y^2 + 1)
    and test whether it has a square root mod p.
    """
    if len(point) != 32:
        return False
    y = int.from_bytes(point, "little") & ((1 << 255) - 1)
    if y >= _P:
        return False
    y2 = y * y % _P
    u  = (y2 - 1) % _P
    v  = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    if x2 == 0:
        return True
    x = pow(x2, (_P + 3) // 8, _P)
    if (x * x - x2) % _P != 0:
        x = x * _SQRT_M1 % _P
    return (x * x - x2) % _P == 0


def _check_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) > MAX_SEEDS:
        raise AddressDerivationError(
            "Too many seeds", {"count": len(seeds), "max": MAX_SEEDS}
        )
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise AddressDerivationError(
                "Seed exceeds maximum length",
                {"length": len(seed), "max": MAX_SEED_LENGTH},
            )


def create_program_address(seeds: Sequence[bytes], program_id: bytes) -> bytes:
    """
    Derive the address for exactly these seeds (bump included by the caller).

    Raises AddressDerivationError if the seeds are malformed or the digest
    lands on the curve.
    """
    _check_seeds(seeds)
    digest = hashlib.sha256(b"".join(seeds) + program_id + PDA_MARKER).digest()
    if is_on_curve(digest):
        raise AddressDerivationError("Derived address is on the Ed25519 curve")
    return digest


def find_program_address(seeds: Sequence[bytes], program_id: bytes) -> Tuple[bytes, int]:
    """Return the canonical (address, bump) for seeds under program_id."""
    # The bump occupies one seed slot.
    _check_seeds(list(seeds) + [b""])
    for bump in range(255, -1, -1):
        try:
            return create_program_address(list(seeds) + [bytes([bump])], program_id), bump
        except AddressDerivationError:
            continue
    raise AddressDerivationError("Unable to find a viable program address bump seed")
