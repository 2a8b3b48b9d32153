"""
tests/test_ledger.py

Ledger execution model: signatures, atomicity, slot clock, journal.
"""

import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from dicevault.core.crypto import Ed25519KeyManager
from dicevault.core.exceptions import (
    ConstraintError,
    InsufficientFundsError,
    JournalError,
    LedgerError,
    MissingSignatureError,
    UnknownProgramError,
)
from dicevault.ledger import journal as journal_module
from dicevault.ledger.journal import GENESIS_HASH, Journal, load_entries, verify_entries
from dicevault.ledger.ledger import Ledger, system_transfer_instruction
from dicevault.ledger.transaction import AccountMeta, Instruction, Transaction


@pytest.fixture
def alice():
    return Ed25519KeyManager.generate()


@pytest.fixture
def bob():
    return Ed25519KeyManager.generate()


def transfer_tx(config, key, *legs):
    ixs = [system_transfer_instruction(config, key.public_key, dst, amount) for dst, amount in legs]
    return Transaction(fee_payer=key.public_key, instructions=ixs).sign(key)


class TestSignatures:

    def test_fee_payer_must_sign(self, ledger, alice, bob):
        ledger.airdrop(alice.public_key, 1_000)
        ix = system_transfer_instruction(ledger.config, alice.public_key, bob.public_key, 10)
        tx = Transaction(fee_payer=alice.public_key, instructions=[ix])
        with pytest.raises(MissingSignatureError):
            ledger.process_transaction(tx)

    def test_edit_after_signing_invalidates(self, ledger, alice, bob):
        ledger.airdrop(alice.public_key, 1_000)
        tx = transfer_tx(ledger.config, alice, (bob.public_key, 10))
        tx.instructions.append(
            system_transfer_instruction(ledger.config, alice.public_key, bob.public_key, 900)
        )
        with pytest.raises(MissingSignatureError):
            ledger.process_transaction(tx)
        assert ledger.balance(alice.public_key) == 1_000

    def test_required_signer_missing(self, ledger, alice, bob):
        ledger.airdrop(bob.public_key, 1_000)
        ix = system_transfer_instruction(ledger.config, bob.public_key, alice.public_key, 10)
        tx = Transaction(fee_payer=alice.public_key, instructions=[ix]).sign(alice)
        with pytest.raises(MissingSignatureError):
            ledger.process_transaction(tx)

    def test_two_signers(self, ledger, alice, bob):
        ledger.airdrop(alice.public_key, 1_000)
        ledger.airdrop(bob.public_key, 1_000)
        carol = Ed25519KeyManager.generate().public_key
        tx = Transaction(
            fee_payer=alice.public_key,
            instructions=[
                system_transfer_instruction(ledger.config, alice.public_key, carol, 100),
                system_transfer_instruction(ledger.config, bob.public_key, carol, 200),
            ],
        ).sign(alice, bob)
        ledger.process_transaction(tx)
        assert ledger.balance(carol) == 300


class TestAtomicity:

    def test_failed_leg_reverts_earlier_legs(self, ledger, alice, bob):
        ledger.airdrop(alice.public_key, 1_000)
        carol = Ed25519KeyManager.generate().public_key
        tx = transfer_tx(ledger.config, alice, (bob.public_key, 500), (carol, 900))
        with pytest.raises(InsufficientFundsError):
            ledger.process_transaction(tx)
        assert ledger.balance(alice.public_key) == 1_000
        assert not ledger.account_exists(bob.public_key)
        assert not ledger.account_exists(carol)

    def test_unknown_program_reverts(self, ledger, alice, bob):
        ledger.airdrop(alice.public_key, 1_000)
        tx = Transaction(
            fee_payer=alice.public_key,
            instructions=[
                system_transfer_instruction(ledger.config, alice.public_key, bob.public_key, 10),
                Instruction(b"\x42" * 32, (), b""),
            ],
        ).sign(alice)
        with pytest.raises(UnknownProgramError):
            ledger.process_transaction(tx)
        assert ledger.balance(bob.public_key) == 0

    def test_non_writable_destination(self, ledger, alice, bob):
        ledger.airdrop(alice.public_key, 1_000)
        ix = Instruction(
            ledger.config.system_program_id,
            (
                AccountMeta(alice.public_key, is_signer=True, is_writable=True),
                AccountMeta(bob.public_key),
            ),
            system_transfer_instruction(ledger.config, alice.public_key, bob.public_key, 10).data,
        )
        tx = Transaction(fee_payer=alice.public_key, instructions=[ix]).sign(alice)
        with pytest.raises(ConstraintError) as exc:
            ledger.process_transaction(tx)
        assert exc.value.code == "AccountNotWritable"

    def test_drained_system_account_is_purged(self, ledger, alice, bob):
        ledger.airdrop(alice.public_key, 1_000)
        ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 1_000)))
        assert not ledger.account_exists(alice.public_key)
        assert ledger.balance(bob.public_key) == 1_000

    def test_get_account_returns_copy(self, ledger, alice):
        ledger.airdrop(alice.public_key, 1_000)
        account = ledger.get_account(alice.public_key)
        account.lamports = 0
        assert ledger.balance(alice.public_key) == 1_000

    def test_builtin_programs_cannot_be_replaced(self, ledger):
        with pytest.raises(LedgerError):
            ledger.register_program(ledger.config.system_program_id, lambda ctx: None)
        with pytest.raises(LedgerError):
            ledger.register_program(ledger.config.ed25519_program_id, lambda ctx: None)

    def test_airdrop_must_be_positive(self, ledger, alice):
        with pytest.raises(LedgerError):
            ledger.airdrop(alice.public_key, 0)


class TestSlots:

    def test_commit_advances_slot(self, ledger, alice, bob):
        ledger.airdrop(alice.public_key, 1_000)
        slot = ledger.slot
        receipt = ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 1)))
        assert receipt.slot == slot
        assert ledger.slot == slot + 1

    def test_rollback_keeps_slot(self, ledger, alice, bob):
        ledger.airdrop(alice.public_key, 1_000)
        slot = ledger.slot
        with pytest.raises(InsufficientFundsError):
            ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 5_000)))
        assert ledger.slot == slot

    def test_advance_slots(self, ledger):
        start = ledger.slot
        assert ledger.advance_slots(10) == start + 10


class TestConcurrency:

    def test_parallel_bets_are_serialized(self, ledger, house, player):
        vault_before = ledger.balance(house.vault)
        slot = ledger.slot

        with ThreadPoolExecutor(max_workers=8) as pool:
            receipts = list(pool.map(
                lambda seed: player.place_bet(house.address, seed, 50, 1_000),
                range(1, 33),
            ))

        assert sorted(r.slot for r in receipts) == list(range(slot, slot + 32))
        assert ledger.balance(house.vault) == vault_before + 32 * 1_000
        assert all(ledger.account_exists(house.bet_address(s)) for s in range(1, 33))


class TestJournal:

    @pytest.fixture
    def operator(self):
        return Ed25519KeyManager.generate()

    @pytest.fixture
    def journaled(self, config, operator, tmp_path):
        path = tmp_path / "journal.jsonl"
        return Ledger(config, journal=Journal(operator, path)), path

    def test_commits_are_chained(self, journaled, operator, alice, bob):
        ledger, path = journaled
        ledger.airdrop(alice.public_key, 1_000)
        for _ in range(3):
            ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 1)))

        entries = load_entries(path)
        assert [e.index for e in entries] == [0, 1, 2]
        assert entries[0].previous_hash == GENESIS_HASH
        assert entries[1].previous_hash == entries[0].compute_hash()
        verify_entries(entries, operator.public_key_hex)

    def test_rollback_is_not_journaled(self, journaled, alice, bob):
        ledger, path = journaled
        ledger.airdrop(alice.public_key, 1_000)
        with pytest.raises(InsufficientFundsError):
            ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 5_000)))
        assert not path.exists()

    def test_reopen_continues_chain(self, journaled, operator, alice, bob):
        ledger, path = journaled
        ledger.airdrop(alice.public_key, 1_000)
        ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 1)))

        reopened = Journal(operator, path)
        entry = reopened.append("note", {"text": "restart"})
        assert entry.index == 1
        verify_entries(load_entries(path))

    def test_tampered_entry_detected(self, journaled, operator, alice, bob):
        ledger, path = journaled
        ledger.airdrop(alice.public_key, 1_000)
        tx = transfer_tx(ledger.config, alice, (bob.public_key, 1))
        ledger.process_transaction(tx)

        record = json.loads(path.read_text())
        record["data"]["slot"] = 999
        path.write_text(json.dumps(record) + "\n")

        with pytest.raises(JournalError):
            Journal(operator, path)

    def test_unexpected_signer_detected(self, journaled, alice, bob):
        ledger, path = journaled
        ledger.airdrop(alice.public_key, 1_000)
        ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 1)))
        with pytest.raises(JournalError):
            verify_entries(load_entries(path), Ed25519KeyManager.generate().public_key_hex)

    def test_malformed_line(self, tmp_path):
        path = tmp_path / "journal.jsonl"
        path.write_text("{not json}\n")
        with pytest.raises(JournalError):
            load_entries(path)

    def test_failed_write_leaves_no_line(self, journaled, operator, alice, bob, monkeypatch):
        ledger, path = journaled
        ledger.airdrop(alice.public_key, 1_000)
        ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 1)))
        size, slot = path.stat().st_size, ledger.slot

        def failing_fsync(fd):
            raise OSError("disk full")

        monkeypatch.setattr(journal_module.os, "fsync", failing_fsync)
        with pytest.raises(JournalError):
            ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 2)))
        monkeypatch.undo()

        assert path.stat().st_size == size
        assert ledger.slot == slot
        assert ledger.balance(bob.public_key) == 1

        ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 3)))
        reopened = Journal(operator, path)
        assert [e.index for e in reopened.entries] == [0, 1]
        assert reopened.entries[1].data["slot"] == slot

    def test_reopen_with_other_key_rejected(self, journaled, alice, bob):
        ledger, path = journaled
        ledger.airdrop(alice.public_key, 1_000)
        ledger.process_transaction(transfer_tx(ledger.config, alice, (bob.public_key, 1)))
        with pytest.raises(JournalError):
            Journal(Ed25519KeyManager.generate(), path)
