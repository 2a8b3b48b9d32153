"""
In-process ledger.

Holds accounts and the slot clock, and executes transactions one at a time:

    1. Acquire lock (transactions are serialized)
    2. Verify transaction signatures of the fee payer and every is_signer account
    3. Snapshot account state
    4. Run the Ed25519 precompile over every signature-verification instruction
    5. Dispatch remaining instructions to their programs, in order
    6. Journal the committed transaction
    7. Advance the slot

Any exception in steps 4–6 restores the snapshot and re-raises: either every
instruction applies or none does.
"""

import logging
import struct
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence

from dicevault.config import DiceConfig
from dicevault.core.addressing import create_program_address
from dicevault.core.exceptions import (
    AccountExistsError,
    AccountNotFoundError,
    ConstraintError,
    InsufficientFundsError,
    InvalidInstructionError,
    LedgerError,
    MissingSignatureError,
    UnknownProgramError,
)
from dicevault.core.crypto import Ed25519KeyManager
from dicevault.ledger.ed25519 import verify_precompile
from dicevault.ledger.journal import Journal
from dicevault.ledger.transaction import (
    AccountMeta,
    Instruction,
    InstructionContext,
    Transaction,
)

logger = logging.getLogger(__name__)

Program = Callable[[InstructionContext], None]

SYSTEM_TRANSFER = 2
_SYSTEM_TRANSFER_DATA = struct.Struct("<IQ")


@dataclass
class Account:
    """Ledger account. Zero-lamport accounts are purged at commit."""
    address:  bytes
    lamports: int
    owner:    bytes
    data:     bytes = b""


@dataclass
class TransactionReceipt:
    """What a committed transaction left behind."""
    transaction_id: Optional[str]
    slot:           int
    events:         List[Dict[str, Any]] = field(default_factory=list)
    journal_index:  Optional[int] = None

    def events_of(self, name: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["event"] == name]


class Ledger:
    """
    Single-writer account ledger.

    Thread-safe via internal lock (single-process only).
    """

    def __init__(
        self,
        config:     Optional[DiceConfig] = None,
        journal:    Optional[Journal] = None,
        start_slot: int = 1,
    ) -> None:
        self.config  = config or DiceConfig()
        self.journal = journal
        self.slot    = start_slot

        self._lock:     threading.Lock       = threading.Lock()
        self._accounts: Dict[bytes, Account] = {}
        self._programs: Dict[bytes, Program] = {
            self.config.system_program_id: self._process_system_instruction,
        }

    # ── Setup ─────────────────────────────────────────────────

    def register_program(self, program_id: bytes, handler: Program) -> None:
        if program_id in (self.config.system_program_id, self.config.ed25519_program_id):
            raise LedgerError("Cannot replace a builtin program", {"program_id": program_id.hex()})
        self._programs[program_id] = handler

    def airdrop(self, address: bytes, lamports: int) -> None:
        """Mint lamports into a system account. Test and simulation funding only."""
        if lamports <= 0:
            raise LedgerError("Airdrop amount must be positive", {"lamports": lamports})
        with self._lock:
            account = self._accounts.get(address)
            if account is None:
                account = Account(address, 0, self.config.system_program_id)
                self._accounts[address] = account
            account.lamports += lamports

    def advance_slots(self, count: int = 1) -> int:
        with self._lock:
            self.slot += count
            return self.slot

    # ── Reads ─────────────────────────────────────────────────

    def get_account(self, address: bytes) -> Optional[Account]:
        """Copy of the account at address, or None."""
        account = self._accounts.get(address)
        return replace(account) if account is not None else None

    def balance(self, address: bytes) -> int:
        account = self._accounts.get(address)
        return account.lamports if account is not None else 0

    def account_exists(self, address: bytes) -> bool:
        return address in self._accounts

    # ── Execution ─────────────────────────────────────────────

    def process_transaction(self, tx: Transaction) -> TransactionReceipt:
        """
        Execute tx atomically.

        Raises the first error encountered; ledger state is then unchanged.
        """
        with self._lock:
            signers = self._verify_signatures(tx)
            snapshot = {address: replace(account) for address, account in self._accounts.items()}
            events: List[Dict[str, Any]] = []
            try:
                for index, ix in enumerate(tx.instructions):
                    if ix.program_id == self.config.ed25519_program_id:
                        verify_precompile(tx.instructions, index)

                for index, ix in enumerate(tx.instructions):
                    if ix.program_id == self.config.ed25519_program_id:
                        continue
                    handler = self._programs.get(ix.program_id)
                    if handler is None:
                        raise UnknownProgramError(
                            "Instruction targets an unknown program",
                            {"index": index, "program_id": ix.program_id.hex()},
                        )
                    ctx = InstructionContext(self, tx, index, signers)
                    handler(ctx)
                    events.extend(ctx.events)

                self._purge_empty_accounts()
                receipt = TransactionReceipt(tx.transaction_id, self.slot, events)
                if self.journal is not None:
                    entry = self.journal.append(
                        "transaction",
                        {**tx.to_dict(), "slot": self.slot, "events": events},
                    )
                    receipt.journal_index = entry.index
            except Exception as exc:
                self._accounts = snapshot
                logger.warning(
                    "transaction %s rolled back at slot %d: %s",
                    (tx.transaction_id or "unsigned")[:16], self.slot, exc,
                )
                raise

            logger.debug(
                "transaction %s committed at slot %d (%d events)",
                (tx.transaction_id or "")[:16], self.slot, len(events),
            )
            self.slot += 1
            return receipt

    def _verify_signatures(self, tx: Transaction) -> frozenset:
        if tx.fee_payer not in tx.signatures:
            raise MissingSignatureError("Fee payer did not sign", {"fee_payer": tx.fee_payer.hex()})
        message = tx.message_bytes()
        for public_key, signature in tx.signatures.items():
            if not Ed25519KeyManager.verify_detached(message, signature, public_key):
                raise MissingSignatureError(
                    "Transaction signature does not verify",
                    {"signer": public_key.hex()},
                )
        for ix in tx.instructions:
            for meta in ix.accounts:
                if meta.is_signer and meta.address not in tx.signatures:
                    raise MissingSignatureError(
                        "Required signer did not sign",
                        {"signer": meta.address.hex()},
                    )
        return frozenset(tx.signatures)

    def _purge_empty_accounts(self) -> None:
        empty = [
            address for address, account in self._accounts.items()
            if account.lamports == 0
            and account.owner == self.config.system_program_id
            and not account.data
        ]
        for address in empty:
            del self._accounts[address]

    # ── Primitives for programs ───────────────────────────────

    def _authorize(
        self,
        ctx:          InstructionContext,
        address:      bytes,
        signer_seeds: Optional[Sequence[bytes]],
    ) -> None:
        if ctx.is_signer(address):
            return
        if signer_seeds is not None and create_program_address(signer_seeds, ctx.program_id) == address:
            return
        raise MissingSignatureError("Missing authority", {"address": address.hex()})

    def _require_account(self, address: bytes) -> Account:
        account = self._accounts.get(address)
        if account is None:
            raise AccountNotFoundError("Account does not exist", {"address": address.hex()})
        return account

    def transfer(
        self,
        ctx:          InstructionContext,
        source:       bytes,
        destination:  bytes,
        lamports:     int,
        signer_seeds: Optional[Sequence[bytes]] = None,
    ) -> None:
        """
        System transfer. Source must be system-owned, carry no data, and be
        authorized by a transaction signature or by the calling program's seeds.
        """
        if lamports < 0:
            raise LedgerError("Transfer amount must be non-negative", {"lamports": lamports})
        ctx.require_writable(source)
        ctx.require_writable(destination)
        self._authorize(ctx, source, signer_seeds)

        src = self._require_account(source)
        if src.owner != self.config.system_program_id or src.data:
            raise LedgerError("Transfer source must be a system account", {"address": source.hex()})
        if src.lamports < lamports:
            raise InsufficientFundsError(
                "Insufficient funds for transfer",
                {"address": source.hex(), "balance": src.lamports, "needed": lamports},
            )
        dst = self._accounts.get(destination)
        if dst is None:
            dst = Account(destination, 0, self.config.system_program_id)
            self._accounts[destination] = dst
        src.lamports -= lamports
        dst.lamports += lamports

    def create_account(
        self,
        ctx:          InstructionContext,
        payer:        bytes,
        address:      bytes,
        data:         bytes,
        signer_seeds: Sequence[bytes],
    ) -> int:
        """
        Create a rent-exempt account owned by the calling program, funded by
        payer. Returns the lamports reserved.
        """
        ctx.require_writable(payer)
        ctx.require_writable(address)
        if address in self._accounts:
            raise AccountExistsError("Account already in use", {"address": address.hex()})
        self._authorize(ctx, address, signer_seeds)

        reserve = self.config.rent_exempt_minimum(len(data))
        self.transfer(ctx, payer, address, reserve)
        account = self._accounts[address]
        account.owner = ctx.program_id
        account.data = bytes(data)
        return reserve

    def close_account(self, ctx: InstructionContext, address: bytes, destination: bytes) -> int:
        """Delete a program-owned account, crediting its lamports to destination."""
        ctx.require_writable(address)
        ctx.require_writable(destination)
        account = self._require_account(address)
        if account.owner != ctx.program_id:
            raise ConstraintError(
                "Only the owning program can close an account",
                {"address": address.hex()},
                code="ConstraintOwner",
            )
        dst = self._accounts.get(destination)
        if dst is None:
            dst = Account(destination, 0, self.config.system_program_id)
            self._accounts[destination] = dst
        reclaimed = account.lamports
        dst.lamports += reclaimed
        del self._accounts[address]
        return reclaimed

    # ── System program ────────────────────────────────────────

    def _process_system_instruction(self, ctx: InstructionContext) -> None:
        if len(ctx.data) != _SYSTEM_TRANSFER_DATA.size:
            raise InvalidInstructionError("Unsupported system instruction")
        tag, lamports = _SYSTEM_TRANSFER_DATA.unpack(ctx.data)
        if tag != SYSTEM_TRANSFER or len(ctx.accounts) != 2:
            raise InvalidInstructionError("Unsupported system instruction", {"tag": tag})
        source, destination = ctx.accounts
        self.transfer(ctx, source.address, destination.address, lamports)


def system_transfer_instruction(
    config:      DiceConfig,
    source:      bytes,
    destination: bytes,
    lamports:    int,
) -> Instruction:
    """Build a native transfer. source must sign the enclosing transaction."""
    return Instruction(
        program_id=config.system_program_id,
        accounts=(
            AccountMeta(source, is_signer=True, is_writable=True),
            AccountMeta(destination, is_writable=True),
        ),
        data=_SYSTEM_TRANSFER_DATA.pack(SYSTEM_TRANSFER, lamports),
    )
