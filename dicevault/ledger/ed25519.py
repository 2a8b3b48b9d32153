"""
Ed25519 signature-verification instruction.

The ledger treats instructions addressed to the configured Ed25519 program
id as a precompile: their signatures are verified before any program runs,
and a single bad record rejects the whole transaction. Programs that need
"the house signed X" then only have to introspect the instruction and
compare its fields, never redo the curve math.

Data layout:

    [num_signatures: u8][padding: u8]
    num_signatures x offsets, each 14 bytes little-endian:
        signature_offset, signature_instruction_index,
        public_key_offset, public_key_instruction_index,
        message_data_offset, message_data_size, message_instruction_index
    payload

An instruction index of 0xFFFF means "this instruction's own data".
"""

import struct
from dataclasses import dataclass
from typing import List, Optional, Sequence

from dicevault.core.crypto import (
    PUBLIC_KEY_LENGTH,
    SIGNATURE_LENGTH,
    Ed25519KeyManager,
)
from dicevault.core.exceptions import PrecompileError
from dicevault.ledger.transaction import Instruction

CURRENT_INSTRUCTION = 0xFFFF

SIGNATURE_OFFSETS_START = 2
_OFFSETS = struct.Struct("<HHHHHHH")

# Layout produced by the builder for a single record
PUBLIC_KEY_OFFSET = SIGNATURE_OFFSETS_START + _OFFSETS.size
SIGNATURE_OFFSET  = PUBLIC_KEY_OFFSET + PUBLIC_KEY_LENGTH
MESSAGE_OFFSET    = SIGNATURE_OFFSET + SIGNATURE_LENGTH


@dataclass(frozen=True)
class Ed25519SignatureOffsets:
    signature_offset:             int
    signature_instruction_index:  int
    public_key_offset:            int
    public_key_instruction_index: int
    message_data_offset:          int
    message_data_size:            int
    message_instruction_index:    int

    def pack(self) -> bytes:
        return _OFFSETS.pack(
            self.signature_offset,
            self.signature_instruction_index,
            self.public_key_offset,
            self.public_key_instruction_index,
            self.message_data_offset,
            self.message_data_size,
            self.message_instruction_index,
        )


@dataclass(frozen=True)
class Ed25519InstructionSignature:
    """
    One signature record as seen by a consuming program.

    Fields stored in another instruction are None: only self-contained
    records are ``is_verifiable`` by introspection.
    """
    is_verifiable: bool
    offsets:       Ed25519SignatureOffsets
    public_key:    Optional[bytes]
    signature:     Optional[bytes]
    message:       Optional[bytes]


def _slice(data: bytes, offset: int, size: int) -> bytes:
    end = offset + size
    if end > len(data):
        raise ValueError(f"slice [{offset}:{end}] exceeds data length {len(data)}")
    return data[offset:end]


def _read_offsets(data: bytes) -> List[Ed25519SignatureOffsets]:
    if len(data) < SIGNATURE_OFFSETS_START:
        raise ValueError("instruction data shorter than header")
    count = data[0]
    end = SIGNATURE_OFFSETS_START + count * _OFFSETS.size
    if end > len(data):
        raise ValueError(f"{count} offset tables do not fit in {len(data)} bytes")
    return [
        Ed25519SignatureOffsets(*_OFFSETS.unpack_from(data, SIGNATURE_OFFSETS_START + i * _OFFSETS.size))
        for i in range(count)
    ]


class Ed25519InstructionSignatures:
    """Decoded records of a signature-verification instruction."""

    def __init__(self, signatures: List[Ed25519InstructionSignature]) -> None:
        self.signatures = signatures

    def __len__(self) -> int:
        return len(self.signatures)

    def __getitem__(self, index: int) -> Ed25519InstructionSignature:
        return self.signatures[index]

    @classmethod
    def unpack(cls, data: bytes) -> "Ed25519InstructionSignatures":
        """Raises ValueError if the header, offsets or self-referenced slices are malformed."""
        records = []
        for offsets in _read_offsets(data):
            public_key = signature = message = None
            if offsets.public_key_instruction_index == CURRENT_INSTRUCTION:
                public_key = _slice(data, offsets.public_key_offset, PUBLIC_KEY_LENGTH)
            if offsets.signature_instruction_index == CURRENT_INSTRUCTION:
                signature = _slice(data, offsets.signature_offset, SIGNATURE_LENGTH)
            if offsets.message_instruction_index == CURRENT_INSTRUCTION:
                message = _slice(data, offsets.message_data_offset, offsets.message_data_size)
            records.append(Ed25519InstructionSignature(
                is_verifiable=(
                    offsets.public_key_instruction_index == CURRENT_INSTRUCTION
                    and offsets.signature_instruction_index == CURRENT_INSTRUCTION
                    and offsets.message_instruction_index == CURRENT_INSTRUCTION
                ),
                offsets=offsets,
                public_key=public_key,
                signature=signature,
                message=message,
            ))
        return cls(records)


def ed25519_instruction_data(public_key: bytes, signature: bytes, message: bytes) -> bytes:
    """Lay out one self-contained record: pubkey at 16, signature at 48, message at 112."""
    if len(public_key) != PUBLIC_KEY_LENGTH or len(signature) != SIGNATURE_LENGTH:
        raise ValueError("public key must be 32 bytes and signature 64 bytes")
    offsets = Ed25519SignatureOffsets(
        signature_offset=             SIGNATURE_OFFSET,
        signature_instruction_index=  CURRENT_INSTRUCTION,
        public_key_offset=            PUBLIC_KEY_OFFSET,
        public_key_instruction_index= CURRENT_INSTRUCTION,
        message_data_offset=          MESSAGE_OFFSET,
        message_data_size=            len(message),
        message_instruction_index=    CURRENT_INSTRUCTION,
    )
    return bytes([1, 0]) + offsets.pack() + public_key + signature + message


def new_ed25519_instruction(
    program_id: bytes,
    key:        Ed25519KeyManager,
    message:    bytes,
) -> Instruction:
    """Sign message with key and wrap it in a signature-verification instruction."""
    signature = key.sign(message)
    return Instruction(
        program_id=program_id,
        accounts=(),
        data=ed25519_instruction_data(key.public_key, signature, message),
    )


def verify_precompile(instructions: Sequence[Instruction], index: int) -> None:
    """
    Cryptographically verify every record of instructions[index].

    Raises PrecompileError on malformed data or any invalid signature.
    """
    data = instructions[index].data
    try:
        offsets_list = _read_offsets(data)
    except ValueError as exc:
        raise PrecompileError(
            "Malformed signature-verification instruction",
            {"index": index, "reason": str(exc)},
        ) from exc
    if not offsets_list and len(data) > SIGNATURE_OFFSETS_START:
        raise PrecompileError(
            "Trailing data after empty signature table", {"index": index}
        )

    def source(ix_index: int) -> bytes:
        if ix_index == CURRENT_INSTRUCTION:
            return data
        if ix_index >= len(instructions):
            raise PrecompileError(
                "Signature record references a missing instruction",
                {"index": index, "referenced": ix_index},
            )
        return instructions[ix_index].data

    for n, offsets in enumerate(offsets_list):
        try:
            public_key = _slice(source(offsets.public_key_instruction_index),
                                offsets.public_key_offset, PUBLIC_KEY_LENGTH)
            signature = _slice(source(offsets.signature_instruction_index),
                               offsets.signature_offset, SIGNATURE_LENGTH)
            message = _slice(source(offsets.message_instruction_index),
                             offsets.message_data_offset, offsets.message_data_size)
        except ValueError as exc:
            raise PrecompileError(
                "Signature record out of bounds",
                {"index": index, "record": n, "reason": str(exc)},
            ) from exc
        if not Ed25519KeyManager.verify_detached(message, signature, public_key):
            raise PrecompileError(
                "Ed25519 signature verification failed",
                {"index": index, "record": n, "public_key": public_key.hex()},
            )
