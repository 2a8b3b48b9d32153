"""
Signature Verifier.

Confirms that the house signed exactly this bet, using the
signature-verification instruction placed at index 0 of the same
transaction. The ledger has already verified that instruction
cryptographically; what remains is to prove it says what we need:

    1. it exists and belongs to the Ed25519 program
    2. it references no accounts
    3. it decodes to exactly one record
    4. the record is self-contained (verifiable)
    5. the record's public key is the house
    6. the record's signature is the signature we were handed
    7. the record's message is the serialized bet

Each check has its own error. Nothing is mutated.
"""

import hmac
import logging
from dataclasses import dataclass

from dicevault.core.crypto import SIGNATURE_LENGTH
from dicevault.core.exceptions import (
    Ed25519AccountsError,
    Ed25519DataLengthError,
    Ed25519HeaderError,
    Ed25519MessageError,
    Ed25519ProgramError,
    Ed25519PubkeyError,
    Ed25519SignatureError,
    InstructionIntrospectionError,
)
from dicevault.core.models import Bet
from dicevault.ledger.ed25519 import Ed25519InstructionSignatures
from dicevault.ledger.transaction import AccountMeta, InstructionContext

logger = logging.getLogger(__name__)

SIGNATURE_INSTRUCTION_INDEX = 0


@dataclass(frozen=True)
class AuthenticatedSignature:
    """A signature proven to be the house's commitment over this bet."""
    house:     bytes
    signature: bytes
    message:   bytes


class SignatureVerifier:
    """Checks the signature-verification co-instruction against a bet."""

    def __init__(self, ed25519_program_id: bytes):
        self.ed25519_program_id = ed25519_program_id

    def verify(
        self,
        bet:       Bet,
        house:     bytes,
        signature: bytes,
        ctx:       InstructionContext,
        sysvar:    AccountMeta,
    ) -> AuthenticatedSignature:
        try:
            ix = ctx.load_instruction_at_checked(SIGNATURE_INSTRUCTION_INDEX, sysvar)
        except InstructionIntrospectionError as exc:
            raise Ed25519HeaderError(details={"reason": exc.message}) from exc

        if ix.program_id != self.ed25519_program_id:
            raise Ed25519ProgramError(details={"program_id": ix.program_id.hex()})

        if len(ix.accounts) != 0:
            raise Ed25519AccountsError(details={"accounts": len(ix.accounts)})

        try:
            records = Ed25519InstructionSignatures.unpack(ix.data)
        except ValueError as exc:
            raise Ed25519DataLengthError(details={"reason": str(exc)}) from exc

        if len(records) != 1:
            raise Ed25519HeaderError(details={"signatures": len(records)})
        record = records[0]

        if not record.is_verifiable:
            raise Ed25519HeaderError(details={"reason": "record references another instruction"})

        if record.public_key is None or record.public_key != house:
            raise Ed25519PubkeyError()

        if len(signature) != SIGNATURE_LENGTH:
            raise Ed25519SignatureError(details={"length": len(signature)})
        if record.signature is None or not hmac.compare_digest(record.signature, signature):
            raise Ed25519SignatureError()

        message = bet.to_bytes()
        if record.message is None or record.message != message:
            raise Ed25519MessageError()

        logger.debug("house signature verified for bet seed=%d", bet.seed)
        return AuthenticatedSignature(house=house, signature=bytes(signature), message=message)
