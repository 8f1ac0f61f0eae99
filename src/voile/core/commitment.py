"""Commitment engine for exit notes."""

import os
import struct

from voile.core.terms import EXIT_TERMS_TYPES, MAX_U64, ExitTerms
from voile.exceptions import InvalidCommitmentError
from voile.utils.encoding import bytes_to_hex, hex_to_bytes
from voile.utils.hash import HASH_SIZE, TAG_COMMITMENT, hash_concatenate

COMMITMENT_VERSION = 1
BLINDING_SIZE = 32
OWNER_SIZE = 32


def generate_blinding() -> bytes:
    """
    Generate a fresh blinding factor.

    Returns:
        bytes: 32-byte cryptographically secure random value

    Implementation: os.urandom(32)
    """
    return os.urandom(BLINDING_SIZE)


def encode_commitment_fields(amount: int, owner: bytes, terms: ExitTerms) -> bytes:
    """
    Fixed byte layout of the committed fields.

    Layout: version(1) || amount u64 BE || owner(32) || terms encoding

    Raises:
        InvalidCommitmentError: If any field is malformed
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidCommitmentError("Amount must be an integer")
    if not 0 < amount <= MAX_U64:
        raise InvalidCommitmentError("Amount must be a nonzero unsigned 64-bit integer")
    if not isinstance(owner, (bytes, bytearray)) or len(owner) != OWNER_SIZE:
        raise InvalidCommitmentError("Owner must be 32 bytes")
    if not isinstance(terms, EXIT_TERMS_TYPES):
        raise InvalidCommitmentError(f"Unsupported exit terms: {terms!r}")

    return bytes([COMMITMENT_VERSION]) + struct.pack(">Q", amount) + bytes(owner) + terms.to_bytes()


class Commitment:
    """
    A 32-byte hiding and binding commitment to an exit note.

    C = Keccak256("voile_commitment" || fields || blinding)

    Hiding rests on the blinding factor's entropy; binding rests on the
    collision resistance of Keccak-256.
    """

    __slots__ = ("_hash",)

    def __init__(self, digest: bytes):
        if not isinstance(digest, (bytes, bytearray)) or len(digest) != HASH_SIZE:
            length = len(digest) if isinstance(digest, (bytes, bytearray)) else type(digest).__name__
            raise InvalidCommitmentError(f"Expected {HASH_SIZE} bytes, got {length}")
        self._hash = bytes(digest)

    @classmethod
    def compute(cls, amount: int, owner: bytes, terms: ExitTerms, blinding: bytes) -> "Commitment":
        """
        Commit to an exit note's fields.

        Args:
            amount: Quantity being exited (nonzero, fits in u64)
            owner: 32-byte owner identifier
            terms: Exit terms variant
            blinding: 32-byte random blinding factor

        Returns:
            Commitment: The commitment value

        Raises:
            InvalidCommitmentError: If inputs are invalid
        """
        fields = encode_commitment_fields(amount, owner, terms)
        if not isinstance(blinding, (bytes, bytearray)) or len(blinding) != BLINDING_SIZE:
            raise InvalidCommitmentError("Blinding factor must be 32 bytes")

        return cls(hash_concatenate(TAG_COMMITMENT, fields, bytes(blinding)))

    def verify(self, amount: int, owner: bytes, terms: ExitTerms, blinding: bytes) -> bool:
        """
        Open the commitment against claimed fields.

        Returns:
            bool: True if the fields and blinding produce this commitment
        """
        try:
            return Commitment.compute(amount, owner, terms, blinding) == self
        except InvalidCommitmentError:
            return False

    def to_bytes(self) -> bytes:
        return self._hash

    def to_hex(self) -> str:
        return bytes_to_hex(self._hash)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Commitment":
        return cls(data)

    @classmethod
    def from_hex(cls, hex_str: str) -> "Commitment":
        try:
            data = hex_to_bytes(hex_str)
        except ValueError as e:
            raise InvalidCommitmentError(f"Invalid hex: {e}") from e
        return cls(data)

    def __eq__(self, other) -> bool:
        if isinstance(other, Commitment):
            return self._hash == other._hash
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._hash)

    def __bytes__(self) -> bytes:
        return self._hash

    def __repr__(self) -> str:
        return f"Commitment({self.to_hex()})"

    def __str__(self) -> str:
        return self.to_hex()


def compute_commitment(amount: int, owner: bytes, terms: ExitTerms, blinding: bytes) -> Commitment:
    """Module-level shorthand for :meth:`Commitment.compute`."""
    return Commitment.compute(amount, owner, terms, blinding)
