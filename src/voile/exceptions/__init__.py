"""Custom exceptions for the Voile exit-note core."""


class VoileError(Exception):
    """Base exception for all Voile errors."""
    pass


# Cryptography Errors
class CryptoError(VoileError):
    """Base exception for cryptographic errors."""
    pass


class InvalidCommitmentError(CryptoError):
    """Raised when a commitment or its inputs are invalid."""
    pass


class InvalidKeyError(CryptoError):
    """Raised when key material has the wrong format."""
    pass


class EncryptionError(CryptoError):
    """Raised when encryption fails."""
    pass


class DecryptionError(CryptoError):
    """Raised when decryption fails or authentication does not match."""
    pass


# Construction Errors
class InvalidExitNoteError(VoileError):
    """Raised when exit note fields or their encoding are invalid."""
    pass


# Proof Errors
class ProofError(VoileError):
    """Base exception for proof-related errors."""
    pass


class InvalidSecretError(ProofError):
    """Raised when an owner secret is not exactly 32 bytes."""
    pass


class ProofGenerationError(ProofError):
    """Raised when a proof cannot be generated."""
    pass


class InvalidProofError(ProofError):
    """Raised when proof wire data is malformed."""
    pass


class VerificationError(ProofError):
    """Base exception for proof verification failures."""
    pass


class BadTagError(VerificationError):
    """Raised when the tag does not bind to any registered owner."""
    pass


class NullifierReusedError(VerificationError):
    """Raised when a proof's nullifier has already been spent."""

    def __init__(self, nullifier: bytes, message: str = "Nullifier already used - double-spend detected"):
        super().__init__(message)
        self.nullifier = nullifier


# Storage Errors
class StorageError(VoileError):
    """Base exception for storage errors."""
    pass


class NullifierPersistenceError(StorageError):
    """Raised when a spent nullifier could not be durably recorded."""
    pass


class PersistenceTimeoutError(NullifierPersistenceError):
    """Raised when persisting a nullifier timed out; the outcome is unknown."""
    pass
