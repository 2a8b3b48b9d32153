"""
tests/test_addressing.py

Program-derived addresses: deterministic, off-curve, collision-free per seed.
"""

import pytest

from dicevault.core.addressing import (
    create_program_address,
    find_program_address,
    is_on_curve,
)
from dicevault.core.crypto import Ed25519KeyManager
from dicevault.core.exceptions import AddressDerivationError
from dicevault.core.models import BET_SEED, VAULT_SEED, seed_bytes

PROGRAM_ID = bytes(range(32))


class TestCurveCheck:

    def test_real_public_keys_are_on_curve(self):
        for _ in range(20):
            assert is_on_curve(Ed25519KeyManager.generate().public_key)

    def test_wrong_length_is_not_on_curve(self):
        assert not is_on_curve(b"\x01" * 31)

    def test_non_canonical_y_is_not_on_curve(self):
        # y = 2^255 - 1 >= p
        assert not is_on_curve(b"\xff" * 31 + b"\x7f")


class TestProgramAddress:

    def test_derivation_is_deterministic(self):
        house = Ed25519KeyManager.generate().public_key
        first = find_program_address([VAULT_SEED, house], PROGRAM_ID)
        second = find_program_address([VAULT_SEED, house], PROGRAM_ID)
        assert first == second

    def test_derived_address_is_off_curve(self):
        for n in range(50):
            address, _ = find_program_address([BET_SEED, seed_bytes(n)], PROGRAM_ID)
            assert not is_on_curve(address)

    def test_bump_reproduces_address(self):
        house = Ed25519KeyManager.generate().public_key
        address, bump = find_program_address([VAULT_SEED, house], PROGRAM_ID)
        assert create_program_address([VAULT_SEED, house, bytes([bump])], PROGRAM_ID) == address

    def test_distinct_seeds_give_distinct_addresses(self):
        vault, _ = find_program_address([VAULT_SEED, b"h" * 32], PROGRAM_ID)
        addresses = {
            find_program_address([BET_SEED, vault, seed_bytes(n)], PROGRAM_ID)[0]
            for n in range(100)
        }
        assert len(addresses) == 100

    def test_program_id_scopes_address(self):
        other_program = bytes(reversed(range(32)))
        a, _ = find_program_address([VAULT_SEED, b"h" * 32], PROGRAM_ID)
        b, _ = find_program_address([VAULT_SEED, b"h" * 32], other_program)
        assert a != b

    def test_seed_too_long(self):
        with pytest.raises(AddressDerivationError):
            find_program_address([b"x" * 33], PROGRAM_ID)

    def test_too_many_seeds(self):
        # 16 seeds leave no room for the bump
        with pytest.raises(AddressDerivationError):
            find_program_address([b"s"] * 16, PROGRAM_ID)
