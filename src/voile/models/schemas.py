"""Pydantic data models for moving proofs and encrypted notes across a boundary."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from voile.core.encryption import EncryptedNote
from voile.core.zkproof import PROOF_SIZE, ExitProof
from voile.utils.encoding import bytes_to_hex, hex_to_bytes

_HEX_PATTERN = r"^0[xX][0-9a-fA-F]*$"


class VerificationStatus(str, Enum):
    """Verification outcome enumeration."""
    ACCEPTED = "accepted"
    BAD_TAG = "bad_tag"
    NULLIFIER_REUSED = "nullifier_reused"
    PERSISTENCE_FAILED = "persistence_failed"


class ProofSubmission(BaseModel):
    """Request model carrying a hex-encoded exit proof."""
    proof: str = Field(..., pattern=_HEX_PATTERN, description="Exit proof (0x hex, 96 bytes)")

    @field_validator("proof")
    @classmethod
    def _proof_length(cls, value: str) -> str:
        if len(value) != 2 + 2 * PROOF_SIZE:
            raise ValueError(f"Proof must be {PROOF_SIZE} bytes")
        return value.lower()

    @classmethod
    def from_proof(cls, proof: ExitProof) -> "ProofSubmission":
        return cls(proof=proof.to_hex())

    def to_proof(self) -> ExitProof:
        """
        Raises:
            InvalidProofError: If the proof does not parse
        """
        return ExitProof.from_hex(self.proof)

    @property
    def commitment(self) -> str:
        return self.proof[:2 + 64]

    @property
    def nullifier(self) -> str:
        return "0x" + self.proof[2 + 64:2 + 128]


class EncryptedNotePayload(BaseModel):
    """Model for an encrypted note shared off-chain."""
    data: str = Field(..., pattern=_HEX_PATTERN, description="nonce || ciphertext || [mac] (0x hex)")
    authenticated: bool = Field(default=True, description="Whether a trailing MAC is present")

    @classmethod
    def from_encrypted(cls, encrypted: EncryptedNote) -> "EncryptedNotePayload":
        return cls(data=bytes_to_hex(encrypted.to_bytes()), authenticated=encrypted.authenticated)

    def to_encrypted(self) -> EncryptedNote:
        """
        Raises:
            DecryptionError: If the payload is too short
        """
        return EncryptedNote.from_bytes(hex_to_bytes(self.data), authenticated=self.authenticated)


class VerificationResult(BaseModel):
    """Response model for a verification attempt."""
    status: VerificationStatus
    nullifier: Optional[str] = Field(default=None, description="Nullifier (hex)")
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def accepted(self) -> bool:
        return self.status is VerificationStatus.ACCEPTED


__all__ = [
    "VerificationStatus",
    "ProofSubmission",
    "EncryptedNotePayload",
    "VerificationResult",
]
