"""
Client-side helpers for the two parties of a bet.

House   funds its vault and resolves bets: it signs the serialized bet and
        submits [signature-verification instruction, resolve_bet] as one
        transaction, in that order.
Player  places bets and, after the timeout, refunds them.
"""

from typing import Tuple

from dicevault.core.crypto import SIGNATURE_LENGTH, Ed25519KeyManager
from dicevault.core.exceptions import AccountNotFoundError
from dicevault.core.models import Bet
from dicevault.ledger.ed25519 import SIGNATURE_OFFSET, new_ed25519_instruction
from dicevault.ledger.ledger import Ledger, TransactionReceipt
from dicevault.ledger.transaction import Instruction, Transaction
from dicevault.program import instructions


class House:
    """The bet counterparty: owns the vault and the resolving key."""

    def __init__(self, key: Ed25519KeyManager, ledger: Ledger):
        self.key = key
        self.ledger = ledger
        self.config = ledger.config
        self.vault, self.vault_bump = instructions.vault_address(self.config, key.public_key)

    @property
    def address(self) -> bytes:
        return self.key.public_key

    def fund_vault(self, amount: int) -> TransactionReceipt:
        tx = Transaction(
            fee_payer=self.address,
            instructions=[instructions.initialize(self.config, self.address, amount)],
        ).sign(self.key)
        return self.ledger.process_transaction(tx)

    def bet_address(self, seed: int) -> bytes:
        return instructions.bet_address(self.config, self.vault, seed)[0]

    def load_bet(self, seed: int) -> Bet:
        account = self.ledger.get_account(self.bet_address(seed))
        if account is None:
            raise AccountNotFoundError("Bet does not exist", {"seed": seed})
        return Bet.from_account_data(account.data)

    def sign_bet(self, bet: Bet) -> Tuple[Instruction, bytes]:
        """Signature-verification instruction over the bet, plus the raw signature."""
        ix = new_ed25519_instruction(self.config.ed25519_program_id, self.key, bet.to_bytes())
        return ix, ix.data[SIGNATURE_OFFSET:SIGNATURE_OFFSET + SIGNATURE_LENGTH]

    def resolve_transaction(self, seed: int) -> Transaction:
        bet = self.load_bet(seed)
        verify_ix, signature = self.sign_bet(bet)
        return Transaction(
            fee_payer=self.address,
            instructions=[
                verify_ix,
                instructions.resolve_bet(self.config, self.address, bet.player, seed, signature),
            ],
        ).sign(self.key)

    def resolve(self, seed: int) -> TransactionReceipt:
        return self.ledger.process_transaction(self.resolve_transaction(seed))


class Player:
    """The wagering party."""

    def __init__(self, key: Ed25519KeyManager, ledger: Ledger):
        self.key = key
        self.ledger = ledger
        self.config = ledger.config

    @property
    def address(self) -> bytes:
        return self.key.public_key

    def place_bet(self, house: bytes, seed: int, roll: int, amount: int) -> TransactionReceipt:
        tx = Transaction(
            fee_payer=self.address,
            instructions=[instructions.place_bet(self.config, self.address, house, seed, roll, amount)],
        ).sign(self.key)
        return self.ledger.process_transaction(tx)

    def refund_bet(self, house: bytes, seed: int) -> TransactionReceipt:
        tx = Transaction(
            fee_payer=self.address,
            instructions=[instructions.refund_bet(self.config, self.address, house, seed)],
        ).sign(self.key)
        return self.ledger.process_transaction(tx)
