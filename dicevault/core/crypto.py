"""
dicevault/core/crypto.py

Ed25519 key handling for house identities, players and the journal operator.

Key contracts:
    public_key              : @property → raw 32-byte public key (the identity / address)
    public_key_hex          : @property → 64-char lowercase hex
    sign(data)              : bytes → raw 64-byte signature
    verify_detached(...)    : @staticmethod: verifies with ONLY a raw public key

Signatures are raw bytes throughout: they are what the signature-verification
instruction carries and what the randomness deriver hashes. Hex is only used
for display and for the JSON journal.
"""

from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH  = 64


class Ed25519KeyManager:
    """
    Ed25519 key manager.

    Public surface:
        Ed25519KeyManager.generate()                        → new random key
        Ed25519KeyManager.from_file(path)                  → load PEM private key
        Ed25519KeyManager.from_private_bytes(seed)         → load from raw 32-byte seed
        Ed25519KeyManager.verify_detached(data, sig, pub)  → @staticmethod, no instance needed

        key.public_key              (@property) → 32 raw bytes
        key.public_key_hex          (@property) → 64-char lowercase hex
        key.sign(data: bytes)                   → 64 raw bytes
        key.verify(data, sig)                   → bool (instance method)
        key.save(path)                          → write PEM private key
        key.private_bytes_raw()                 → raw 32-byte seed
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key: Ed25519PrivateKey = private_key
        self._public_key:  Ed25519PublicKey  = private_key.public_key()
        self._public_key_bytes: bytes = self._public_key.public_bytes(
            Encoding.Raw, PublicFormat.Raw
        )

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        """Generate a new random Ed25519 key pair."""
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519KeyManager":
        """
        Load an Ed25519 private key from a PEM file.
        Raises FileNotFoundError if path does not exist.
        Raises ValueError if the file is not a valid Ed25519 PEM key.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        pem_bytes = path.read_bytes()
        try:
            private_key = load_pem_private_key(pem_bytes, password=None)
        except (ValueError, TypeError) as exc:
            raise ValueError(
                f"Failed to load Ed25519 key from {path}: {exc}"
            ) from exc
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(
                f"Key file {path} does not contain an Ed25519 private key"
            )
        return cls(private_key)

    @classmethod
    def from_private_bytes(cls, seed: bytes) -> "Ed25519KeyManager":
        """
        Load an Ed25519 key from a raw 32-byte seed.
        Raises ValueError if seed is not exactly 32 bytes.
        """
        if len(seed) != 32:
            raise ValueError(
                f"Ed25519 seed must be 32 bytes, got {len(seed)}"
            )
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    # ── Public Key ────────────────────────────────────────────

    @property
    def public_key(self) -> bytes:
        """Raw 32-byte public key. This is the ledger identity of the key."""
        return self._public_key_bytes

    @property
    def public_key_hex(self) -> str:
        """64-character lowercase hex string of the public key."""
        return self._public_key_bytes.hex()

    # ── Signing ───────────────────────────────────────────────

    def sign(self, data: bytes) -> bytes:
        """
        Sign data with Ed25519. Returns the raw 64-byte signature.

        Ed25519 is deterministic: the same key over the same bytes always
        yields the same signature.
        """
        return self._private_key.sign(data)

    # ── Verification ──────────────────────────────────────────

    def verify(self, data: bytes, signature: bytes) -> bool:
        """Verify a signature against this key manager's public key."""
        return Ed25519KeyManager.verify_detached(data, signature, self._public_key_bytes)

    @staticmethod
    def verify_detached(data: bytes, signature: bytes, public_key: bytes) -> bool:
        """
        Verify an Ed25519 signature using ONLY a raw public key.

        Returns:
            True if the signature is valid over data with the given public key.
            False for wrong key, wrong lengths or corrupted signature. Never raises
            for malformed input.
        """
        if len(public_key) != PUBLIC_KEY_LENGTH or len(signature) != SIGNATURE_LENGTH:
            return False
        try:
            pub = Ed25519PublicKey.from_public_bytes(bytes(public_key))
            pub.verify(bytes(signature), bytes(data))
        except (InvalidSignature, ValueError):
            return False
        return True

    # ── Persistence ───────────────────────────────────────────

    def save(self, path: Path) -> None:
        """
        Write the private key to disk as a PEM file.
        Creates parent directories if needed.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        pem = self._private_key.private_bytes(
            encoding=             Encoding.PEM,
            format=               PrivateFormat.PKCS8,
            encryption_algorithm= NoEncryption(),
        )
        path.write_bytes(pem)

    def private_bytes_raw(self) -> bytes:
        """
        Return the raw 32-byte private key seed.
        Use only for secure backup: never log or transmit.
        """
        return self._private_key.private_bytes(
            encoding=             Encoding.Raw,
            format=               PrivateFormat.Raw,
            encryption_algorithm= NoEncryption(),
        )

    def __repr__(self) -> str:
        return f"Ed25519KeyManager(public_key_hex={self.public_key_hex[:16]}...)"
