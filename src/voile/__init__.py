"""Main package initialization."""

__version__ = "0.1.0"
__author__ = "Voile Team"
__description__ = "Voile: private exit notes with commitments, encryption and nullifier proofs"

from .core.terms import Immediate, Standard, Delayed, Custom, ExitTerms
from .core.commitment import Commitment
from .core.encryption import EncryptionKey, EncryptedNote
from .core.exit_note import ExitNote
from .core.zkproof import DomainSeparator, ExitProof, ProofGenerator, ProofVerifier

__all__ = [
    "Immediate",
    "Standard",
    "Delayed",
    "Custom",
    "ExitTerms",
    "Commitment",
    "EncryptionKey",
    "EncryptedNote",
    "ExitNote",
    "DomainSeparator",
    "ExitProof",
    "ProofGenerator",
    "ProofVerifier",
]
