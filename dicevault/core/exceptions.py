"""
dicevault Exception Hierarchy

All exceptions inherit from DiceVaultError for easy catching.

Ledger-level failures (missing accounts, insufficient funds, bad signatures
on the transaction itself) derive from LedgerError. Failures raised by the
dice program carry a stable ``code`` so callers can tell them apart without
matching on messages.
"""


class DiceVaultError(Exception):
    """Base exception for all dicevault errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigError(DiceVaultError):
    """Raised when configuration is missing or invalid"""
    pass


# ── Ledger ────────────────────────────────────────────────────

class LedgerError(DiceVaultError):
    """Raised when ledger operations fail"""
    pass


class AccountNotFoundError(LedgerError):
    """Raised when a referenced account does not exist"""
    pass


class AccountExistsError(LedgerError):
    """Raised when creating an account at an address already in use"""
    pass


class InsufficientFundsError(LedgerError):
    """Raised when a transfer exceeds the source balance"""
    pass


class MissingSignatureError(LedgerError):
    """Raised when a required signer did not sign the transaction"""
    pass


class PrecompileError(LedgerError):
    """Raised when a signature-verification instruction fails to verify"""
    pass


class AddressDerivationError(LedgerError):
    """Raised when seeds cannot produce a program-derived address"""
    pass


class InstructionIntrospectionError(LedgerError):
    """Raised when an instruction cannot be loaded from the instructions sysvar"""
    pass


class UnknownProgramError(LedgerError):
    """Raised when an instruction targets a program the ledger does not know"""
    pass


class JournalError(LedgerError):
    """Raised when the journal cannot be written, read or verified"""
    pass


# ── Program ───────────────────────────────────────────────────

class ProgramError(DiceVaultError):
    """Raised by the dice program. ``code`` identifies the failure."""

    code = "ProgramError"

    def __init__(self, message: str = None, details: dict = None, code: str = None):
        if code is not None:
            self.code = code
        super().__init__(message or self.code, details)


class InvalidInstructionError(ProgramError):
    code = "InvalidInstructionData"


class ConstraintError(ProgramError):
    """Raised when an account fails an account constraint"""
    code = "ConstraintRaw"


class SignatureCheckError(ProgramError):
    """Base for failures of the signature-verification co-instruction checks"""
    code = "Ed25519"


class Ed25519HeaderError(SignatureCheckError):
    code = "Ed25519Header"


class Ed25519ProgramError(SignatureCheckError):
    code = "Ed25519Program"


class Ed25519AccountsError(SignatureCheckError):
    code = "Ed25519Accounts"


class Ed25519DataLengthError(SignatureCheckError):
    code = "Ed25519DataLength"


class Ed25519PubkeyError(SignatureCheckError):
    code = "Ed25519Pubkey"


class Ed25519SignatureError(SignatureCheckError):
    code = "Ed25519Signature"


class Ed25519MessageError(SignatureCheckError):
    code = "Ed25519Message"


class ArithmeticOverflowError(ProgramError):
    """Raised when payout arithmetic leaves the safe integer range"""
    code = "Overflow"


class MinimumRollError(ProgramError):
    code = "MinimumRoll"


class MaximumRollError(ProgramError):
    code = "MaximumRoll"


class InvalidAmountError(ProgramError):
    code = "InvalidAmount"


class TimeoutNotReachedError(ProgramError):
    code = "TimeoutNotReached"
