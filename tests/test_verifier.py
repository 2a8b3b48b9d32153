"""
tests/test_verifier.py

Each of the seven co-instruction checks fails with its own error.
"""

import struct

import pytest

from dicevault.core.crypto import Ed25519KeyManager
from dicevault.core.exceptions import (
    Ed25519AccountsError,
    Ed25519DataLengthError,
    Ed25519HeaderError,
    Ed25519MessageError,
    Ed25519ProgramError,
    Ed25519PubkeyError,
    Ed25519SignatureError,
)
from dicevault.core.models import Bet
from dicevault.ledger.ed25519 import (
    CURRENT_INSTRUCTION,
    SIGNATURE_OFFSETS_START,
    Ed25519SignatureOffsets,
    ed25519_instruction_data,
)
from dicevault.ledger.ledger import Ledger, system_transfer_instruction
from dicevault.ledger.transaction import (
    AccountMeta,
    Instruction,
    InstructionContext,
    Transaction,
)
from dicevault.verification.verifier import SignatureVerifier


@pytest.fixture
def house_key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def bet():
    return Bet(
        player=b"p" * 32,
        vault=b"v" * 32,
        seed=12345,
        slot=7,
        amount=100_000_000,
        roll=50,
        bump=254,
    )


@pytest.fixture
def verifier(config):
    return SignatureVerifier(config.ed25519_program_id)


@pytest.fixture
def sysvar(config):
    return AccountMeta(config.instructions_sysvar_id)


@pytest.fixture
def check(config, house_key, verifier, sysvar):
    """Run the verifier with ``first`` placed at index 0 of the transaction."""
    ledger = Ledger(config)

    def _check(first, bet, signature, house=None, sysvar_meta=None):
        resolve = Instruction(config.program_id, (), b"\x02" + signature)
        tx = Transaction(fee_payer=house_key.public_key, instructions=[first, resolve])
        ctx = InstructionContext(ledger, tx, 1, frozenset())
        return verifier.verify(
            bet,
            house or house_key.public_key,
            signature,
            ctx,
            sysvar_meta or sysvar,
        )
    return _check


def signed_ix(config, key, message):
    signature = key.sign(message)
    data = ed25519_instruction_data(key.public_key, signature, message)
    return Instruction(config.ed25519_program_id, (), data), signature


class TestSignatureVerifier:

    def test_valid_signature_authenticates(self, config, check, house_key, bet):
        ix, sig = signed_ix(config, house_key, bet.to_bytes())
        auth = check(ix, bet, sig)
        assert auth.house == house_key.public_key
        assert auth.signature == sig
        assert auth.message == bet.to_bytes()

    def test_wrong_sysvar_account(self, config, check, house_key, bet):
        ix, sig = signed_ix(config, house_key, bet.to_bytes())
        with pytest.raises(Ed25519HeaderError):
            check(ix, bet, sig, sysvar_meta=AccountMeta(b"\x09" * 32))

    def test_wrong_program(self, config, check, house_key, bet):
        _, sig = signed_ix(config, house_key, bet.to_bytes())
        other = system_transfer_instruction(config, house_key.public_key, b"x" * 32, 1)
        with pytest.raises(Ed25519ProgramError):
            check(other, bet, sig)

    def test_instruction_with_accounts(self, config, check, house_key, bet):
        ix, sig = signed_ix(config, house_key, bet.to_bytes())
        with_accounts = Instruction(ix.program_id, (AccountMeta(b"a" * 32),), ix.data)
        with pytest.raises(Ed25519AccountsError):
            check(with_accounts, bet, sig)

    def test_undecodable_data(self, config, check, house_key, bet):
        _, sig = signed_ix(config, house_key, bet.to_bytes())
        with pytest.raises(Ed25519DataLengthError):
            check(Instruction(config.ed25519_program_id, (), b"\x01"), bet, sig)

    def test_zero_records(self, config, check, house_key, bet):
        _, sig = signed_ix(config, house_key, bet.to_bytes())
        with pytest.raises(Ed25519HeaderError):
            check(Instruction(config.ed25519_program_id, (), b"\x00\x00"), bet, sig)

    def test_two_records(self, config, check, house_key, bet):
        message = bet.to_bytes()
        sig = house_key.sign(message)
        payload_start = SIGNATURE_OFFSETS_START + 2 * 14
        offsets = Ed25519SignatureOffsets(
            signature_offset=payload_start + 32,
            signature_instruction_index=CURRENT_INSTRUCTION,
            public_key_offset=payload_start,
            public_key_instruction_index=CURRENT_INSTRUCTION,
            message_data_offset=payload_start + 96,
            message_data_size=len(message),
            message_instruction_index=CURRENT_INSTRUCTION,
        ).pack()
        data = bytes([2, 0]) + offsets + offsets + house_key.public_key + sig + message
        with pytest.raises(Ed25519HeaderError):
            check(Instruction(config.ed25519_program_id, (), data), bet, sig)

    def test_record_not_verifiable(self, config, check, house_key, bet):
        ix, sig = signed_ix(config, house_key, bet.to_bytes())
        data = bytearray(ix.data)
        struct.pack_into("<H", data, 14, 1)
        with pytest.raises(Ed25519HeaderError):
            check(Instruction(ix.program_id, (), bytes(data)), bet, sig)

    def test_tampered_public_key(self, config, check, bet):
        impostor = Ed25519KeyManager.generate()
        ix, sig = signed_ix(config, impostor, bet.to_bytes())
        with pytest.raises(Ed25519PubkeyError):
            check(ix, bet, sig)

    def test_tampered_signature(self, config, check, house_key, bet):
        ix, sig = signed_ix(config, house_key, bet.to_bytes())
        tampered = bytes([sig[0] ^ 0x01]) + sig[1:]
        with pytest.raises(Ed25519SignatureError):
            check(ix, bet, tampered)

    def test_signature_wrong_length(self, config, check, house_key, bet):
        ix, sig = signed_ix(config, house_key, bet.to_bytes())
        with pytest.raises(Ed25519SignatureError):
            check(ix, bet, sig[:63])

    def test_tampered_message(self, config, check, house_key, bet):
        other_terms = Bet(**{**bet.__dict__, "amount": bet.amount + 1})
        ix, sig = signed_ix(config, house_key, other_terms.to_bytes())
        with pytest.raises(Ed25519MessageError):
            check(ix, bet, sig)

    def test_signature_for_another_bet_is_rejected(self, config, check, house_key, bet):
        other_bet = Bet(**{**bet.__dict__, "seed": bet.seed + 1})
        ix, sig = signed_ix(config, house_key, other_bet.to_bytes())
        with pytest.raises(Ed25519MessageError):
            check(ix, bet, sig)

    def test_errors_carry_distinct_codes(self):
        codes = {
            cls.code for cls in (
                Ed25519HeaderError, Ed25519ProgramError, Ed25519AccountsError,
                Ed25519DataLengthError, Ed25519PubkeyError, Ed25519SignatureError,
                Ed25519MessageError,
            )
        }
        assert len(codes) == 7
