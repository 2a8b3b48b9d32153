"""
Transactions and instructions.

A Transaction is an ordered list of Instructions plus the signatures of the
keys that authorized it. Signatures cover the RFC 8785 canonical form of the
transaction message (fee payer + instructions), so reordering or editing an
instruction invalidates every signature.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from dicevault.core.canonical import canonicalize
from dicevault.core.crypto import Ed25519KeyManager
from dicevault.core.exceptions import (
    ConstraintError,
    InstructionIntrospectionError,
)

if TYPE_CHECKING:
    from dicevault.ledger.ledger import Ledger


@dataclass(frozen=True)
class AccountMeta:
    """One account reference of an instruction."""
    address:     bytes
    is_signer:   bool = False
    is_writable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address":     self.address.hex(),
            "is_signer":   self.is_signer,
            "is_writable": self.is_writable,
        }


@dataclass(frozen=True)
class Instruction:
    """A call into one program: program id, account references, opaque data."""
    program_id: bytes
    accounts:   Tuple[AccountMeta, ...]
    data:       bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "accounts", tuple(self.accounts))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "program_id": self.program_id.hex(),
            "accounts":   [a.to_dict() for a in self.accounts],
            "data":       self.data.hex(),
        }


@dataclass
class Transaction:
    """
    An atomic unit of execution.

    The fee payer must always sign. Every AccountMeta flagged is_signer must
    have a matching signature when the ledger processes the transaction.
    """
    fee_payer:    bytes
    instructions: List[Instruction]
    signatures:   Dict[bytes, bytes] = field(default_factory=dict)

    def message_bytes(self) -> bytes:
        return canonicalize({
            "fee_payer":    self.fee_payer.hex(),
            "instructions": [ix.to_dict() for ix in self.instructions],
        })

    def sign(self, *keys: Ed25519KeyManager) -> "Transaction":
        """Add signatures from keys. Returns self for chaining."""
        message = self.message_bytes()
        for key in keys:
            self.signatures[key.public_key] = key.sign(message)
        return self

    @property
    def transaction_id(self) -> Optional[str]:
        """Hex of the fee payer's signature, None until signed."""
        sig = self.signatures.get(self.fee_payer)
        return sig.hex() if sig is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "fee_payer":      self.fee_payer.hex(),
            "instructions":   [ix.to_dict() for ix in self.instructions],
        }


class InstructionContext:
    """
    What a program sees while one of its instructions executes.

    Wraps the ledger so that every mutation is attributed to the calling
    program and checked against the instruction's account flags.
    """

    def __init__(
        self,
        ledger:      "Ledger",
        transaction: Transaction,
        index:       int,
        signers:     frozenset,
    ) -> None:
        self.ledger      = ledger
        self.transaction = transaction
        self.index       = index
        self.instruction = transaction.instructions[index]
        self.signers     = signers
        self.events:     List[Dict[str, Any]] = []

    @property
    def program_id(self) -> bytes:
        return self.instruction.program_id

    @property
    def accounts(self) -> Tuple[AccountMeta, ...]:
        return self.instruction.accounts

    @property
    def data(self) -> bytes:
        return self.instruction.data

    @property
    def slot(self) -> int:
        return self.ledger.slot

    def is_signer(self, address: bytes) -> bool:
        return address in self.signers

    def require_signer(self, meta: AccountMeta, name: str) -> None:
        if not (meta.is_signer and self.is_signer(meta.address)):
            raise ConstraintError(
                f"Account '{name}' must sign",
                {"address": meta.address.hex()},
                code="ConstraintSigner",
            )

    def require_writable(self, address: bytes) -> None:
        for meta in self.accounts:
            if meta.address == address and meta.is_writable:
                return
        raise ConstraintError(
            "Account is not writable in this instruction",
            {"address": address.hex()},
            code="AccountNotWritable",
        )

    def load_instruction_at_checked(self, index: int, sysvar: AccountMeta) -> Instruction:
        """
        Read instruction ``index`` of the current transaction through the
        instructions sysvar. ``sysvar`` must be the configured sysvar account.
        """
        if sysvar.address != self.ledger.config.instructions_sysvar_id:
            raise InstructionIntrospectionError(
                "Account is not the instructions sysvar",
                {"address": sysvar.address.hex()},
            )
        instructions = self.transaction.instructions
        if not 0 <= index < len(instructions):
            raise InstructionIntrospectionError(
                "Instruction index out of range",
                {"index": index, "count": len(instructions)},
            )
        return instructions[index]

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        """Attach a structured event to the transaction receipt."""
        self.events.append({"event": event, **payload})
