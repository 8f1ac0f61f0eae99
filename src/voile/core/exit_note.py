"""Exit note: a user's private request to exit a position.

The note is created locally, never mutated, and leaves the owner's device
only as a commitment, an encrypted payload, or a proof.
"""

import struct
import time
from dataclasses import dataclass, field
from typing import Optional

from voile.config import get_settings
from voile.core.commitment import (
    BLINDING_SIZE,
    OWNER_SIZE,
    Commitment,
    encode_commitment_fields,
    generate_blinding,
)
from voile.core.encryption import EncryptedNote, EncryptionKey, decrypt, encrypt, seal
from voile.core.terms import EXIT_TERMS_TYPES, MAX_U64, ExitTerms, terms_from_bytes
from voile.exceptions import InvalidCommitmentError, InvalidExitNoteError
from voile.utils.hash import TAG_NOTE_ID, hash_concatenate

NOTE_ENCODING_VERSION = 1
# version(1) + amount(8) + owner(32) + blinding(32) + created_at(8) + terms_len(2)
_HEADER = struct.Struct(">BQ32s32sQH")


@dataclass(frozen=True)
class ExitNote:
    """
    Private exit note.

    Attributes:
        amount: Quantity being exited, 0 < amount < 2**64
        owner: 32-byte opaque owner identifier
        terms: Exit terms variant
        blinding: 32-byte blinding factor, generated once; kept out of repr
        created_at: Unix seconds at construction; metadata only
    """

    amount: int
    owner: bytes
    terms: ExitTerms
    blinding: bytes = field(repr=False)
    created_at: int = field(default_factory=lambda: int(time.time()))

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise InvalidExitNoteError("Amount must be an integer")
        if not 0 < self.amount <= MAX_U64:
            raise InvalidExitNoteError("Amount must be greater than zero and fit in 64 bits")
        if not isinstance(self.owner, bytes) or len(self.owner) != OWNER_SIZE:
            raise InvalidExitNoteError("Owner must be exactly 32 bytes")
        if not isinstance(self.terms, EXIT_TERMS_TYPES):
            raise InvalidExitNoteError(f"Unsupported exit terms: {self.terms!r}")
        if not isinstance(self.blinding, bytes) or len(self.blinding) != BLINDING_SIZE:
            raise InvalidExitNoteError("Blinding factor must be exactly 32 bytes")
        if isinstance(self.created_at, bool) or not isinstance(self.created_at, int) or not 0 <= self.created_at <= MAX_U64:
            raise InvalidExitNoteError("created_at must be an unsigned 64-bit timestamp")

    @classmethod
    def new(cls, amount: int, owner: bytes, terms: ExitTerms) -> "ExitNote":
        """
        Create a note with a fresh random blinding factor.

        Raises:
            InvalidExitNoteError: If amount is zero or owner is not 32 bytes
        """
        return cls(amount=amount, owner=owner, terms=terms, blinding=generate_blinding())

    @property
    def note_id(self) -> bytes:
        """Deterministic identifier: H("voile_note_id" || fields || blinding)."""
        try:
            fields = encode_commitment_fields(self.amount, self.owner, self.terms)
        except InvalidCommitmentError as e:
            raise InvalidExitNoteError(str(e)) from e
        return hash_concatenate(TAG_NOTE_ID, fields, self.blinding)

    def commitment(self) -> Commitment:
        """Commitment that can be published without revealing the note."""
        return Commitment.compute(self.amount, self.owner, self.terms, self.blinding)

    def verify_commitment(self, commitment: Commitment) -> bool:
        """Check that this note opens ``commitment``."""
        return commitment.verify(self.amount, self.owner, self.terms, self.blinding)

    def to_bytes(self) -> bytes:
        """
        Serialize for encryption.

        Layout (big-endian): version || amount || owner || blinding ||
        created_at || terms_len u16 || terms. The blinding factor is included
        so the key holder can reopen the commitment; this encoding must only
        leave the device encrypted.
        """
        terms_bytes = self.terms.to_bytes()
        header = _HEADER.pack(
            NOTE_ENCODING_VERSION, self.amount, self.owner, self.blinding, self.created_at, len(terms_bytes)
        )
        return header + terms_bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> "ExitNote":
        """
        Inverse of :meth:`to_bytes`.

        Raises:
            InvalidExitNoteError: If data is truncated, has trailing bytes,
                or carries invalid fields
        """
        if len(data) < _HEADER.size:
            raise InvalidExitNoteError(f"Exit note too short: {len(data)} bytes")

        version, amount, owner, blinding, created_at, terms_len = _HEADER.unpack_from(data)
        if version != NOTE_ENCODING_VERSION:
            raise InvalidExitNoteError(f"Unsupported exit note encoding version: {version}")
        if len(data) != _HEADER.size + terms_len:
            raise InvalidExitNoteError("Exit note length does not match terms length")

        terms = terms_from_bytes(bytes(data[_HEADER.size:]))
        return cls(amount=amount, owner=owner, terms=terms, blinding=blinding, created_at=created_at)

    def encrypt(self, key: EncryptionKey, authenticated: Optional[bool] = None) -> EncryptedNote:
        """
        Encrypt the note for off-chain storage or sharing.

        Args:
            key: Encryption key
            authenticated: Append a MAC; defaults to the
                ``authenticate_notes`` setting

        Returns:
            EncryptedNote: The encrypted payload
        """
        if authenticated is None:
            authenticated = get_settings().authenticate_notes
        plaintext = self.to_bytes()
        return seal(plaintext, key) if authenticated else encrypt(plaintext, key)

    @classmethod
    def decrypt(cls, encrypted: EncryptedNote, key: EncryptionKey) -> "ExitNote":
        """
        Decrypt and parse a note.

        Raises:
            DecryptionError: If an authenticated note fails its MAC check
            InvalidExitNoteError: If the plaintext does not parse, which is
                how a wrong key usually shows up for unauthenticated notes
        """
        return cls.from_bytes(decrypt(encrypted, key))
