"""
Journal of committed transactions.

Append-only JSONL file. Each entry commits to its predecessor:

    previous_hash(entry_0) = GENESIS_HASH
    previous_hash(entry_n) = entry_{n-1}.compute_hash()
    compute_hash()         = SHA-256(JCS(index, previous_hash, timestamp,
                                         entry_type, data_hash, signer_public_key))
    signature              = Ed25519(operator key, bytes.fromhex(compute_hash()))

Only committed transactions are journaled. A rolled-back transaction never
reaches this file.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from dicevault.core.canonical import canonical_hash
from dicevault.core.crypto import Ed25519KeyManager
from dicevault.core.exceptions import JournalError
from dicevault.core.time import utc_timestamp

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


@dataclass
class JournalEntry:
    """A single entry in the journal"""
    index:             int
    previous_hash:     str
    timestamp:         str
    entry_type:        str
    data:              Dict[str, Any]
    data_hash:         str
    signer_public_key: str
    signature:         str

    def to_dict(self) -> dict:
        return {
            "index":             self.index,
            "previous_hash":     self.previous_hash,
            "timestamp":         self.timestamp,
            "entry_type":        self.entry_type,
            "data":              self.data,
            "data_hash":         self.data_hash,
            "signer_public_key": self.signer_public_key,
            "signature":         self.signature,
        }

    @staticmethod
    def from_dict(data: dict) -> "JournalEntry":
        return JournalEntry(
            index=data["index"],
            previous_hash=data["previous_hash"],
            timestamp=data["timestamp"],
            entry_type=data["entry_type"],
            data=data["data"],
            data_hash=data["data_hash"],
            signer_public_key=data["signer_public_key"],
            signature=data["signature"],
        )

    def compute_hash(self) -> str:
        """Compute hash of this entry for chaining"""
        return canonical_hash({
            "index":             self.index,
            "previous_hash":     self.previous_hash,
            "timestamp":         self.timestamp,
            "entry_type":        self.entry_type,
            "data_hash":         self.data_hash,
            "signer_public_key": self.signer_public_key,
        })


class Journal:
    """
    Append-only, hash-chained, signed journal.

    With path=None the journal lives in memory only. An existing file must
    have been written by the same operator key; reopening it under another
    key raises JournalError.
    """

    def __init__(self, key_manager: Ed25519KeyManager, path: Optional[Path] = None):
        self.key_manager = key_manager
        self.path = Path(path) if path is not None else None
        self.entries: List[JournalEntry] = []

        if self.path is not None and self.path.exists():
            self.entries = load_entries(self.path)
            if self.entries and self.entries[0].signer_public_key != key_manager.public_key_hex:
                raise JournalError(
                    "Journal was written by a different operator key",
                    {"path": str(self.path), "operator": self.entries[0].signer_public_key},
                )
            verify_entries(self.entries, key_manager.public_key_hex)

    def append(self, entry_type: str, data: Dict[str, Any]) -> JournalEntry:
        """Create, sign and persist a new entry"""
        index = len(self.entries)
        previous_hash = self.entries[-1].compute_hash() if self.entries else GENESIS_HASH

        entry = JournalEntry(
            index=index,
            previous_hash=previous_hash,
            timestamp=utc_timestamp(),
            entry_type=entry_type,
            data=data,
            data_hash=canonical_hash(data),
            signer_public_key=self.key_manager.public_key_hex,
            signature="",
        )
        entry.signature = self.key_manager.sign(bytes.fromhex(entry.compute_hash())).hex()

        if self.path is not None:
            self._write_entry(entry)
        self.entries.append(entry)
        return entry

    def get_entries_by_type(self, entry_type: str) -> List[JournalEntry]:
        return [e for e in self.entries if e.entry_type == entry_type]

    def verify_or_raise(self, expected_public_key: Optional[str] = None) -> None:
        verify_entries(self.entries, expected_public_key)

    def _write_entry(self, entry: JournalEntry) -> None:
        """
        Append one line and fsync it. On failure the file is truncated back
        to its previous length, so an uncommitted line never stays on disk.
        """
        line = (json.dumps(entry.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.path, "ab", buffering=0) as f:
                size = f.seek(0, os.SEEK_END)
                try:
                    view = memoryview(line)
                    while view:
                        view = view[f.write(view):]
                    os.fsync(f.fileno())
                except OSError:
                    os.ftruncate(f.fileno(), size)
                    raise
        except OSError as e:
            raise JournalError(f"Failed to write journal entry: {e}") from e


def load_entries(path: Path) -> List[JournalEntry]:
    """Parse a JSONL journal. Raises JournalError on unreadable or malformed lines."""
    entries = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(JournalEntry.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, TypeError) as e:
                    raise JournalError(f"Invalid journal entry at line {line_num}: {e}") from e
    except OSError as e:
        raise JournalError(f"Failed to load journal: {e}") from e
    return entries


def verify_entries(
    entries: List[JournalEntry],
    expected_public_key: Optional[str] = None,
) -> None:
    """Check data hashes, chain linkage and signatures. Raises JournalError."""
    previous = GENESIS_HASH
    for position, entry in enumerate(entries):
        if entry.index != position:
            raise JournalError(f"Index gap at position {position}: found {entry.index}")
        if entry.previous_hash != previous:
            raise JournalError(
                f"Chain break at index {entry.index}: "
                f"expected {previous}, got {entry.previous_hash}"
            )
        if canonical_hash(entry.data) != entry.data_hash:
            raise JournalError(f"Data hash mismatch at index {entry.index}")
        if expected_public_key and entry.signer_public_key != expected_public_key:
            raise JournalError(f"Unexpected signer at index {entry.index}")

        entry_hash = entry.compute_hash()
        try:
            public_key = bytes.fromhex(entry.signer_public_key)
            signature = bytes.fromhex(entry.signature)
        except ValueError as e:
            raise JournalError(f"Malformed key or signature at index {entry.index}") from e
        if not Ed25519KeyManager.verify_detached(bytes.fromhex(entry_hash), signature, public_key):
            raise JournalError(f"Invalid signature at index {entry.index}")
        previous = entry_hash
    logger.debug("journal verified: %d entries", len(entries))
