"""Encryption codec for off-chain exit note storage.

Notes are encrypted with a stream cipher built from Keccak-256: keystream
block i is H("voile_keystream" || key || nonce || i) and is XORed into the
plaintext. Ciphertext length always equals plaintext length.

The base scheme (:func:`encrypt` / :func:`decrypt`) carries no integrity
check, so a wrong key or corrupted ciphertext silently decrypts to garbage.
The hardened scheme (:func:`seal` / :func:`open_sealed`) appends an
HMAC-SHA256 tag over nonce || ciphertext and fails closed on mismatch.

A (key, nonce) pair must never be reused: the XOR of two ciphertexts under a
shared keystream is the XOR of their plaintexts. Nonces are drawn fresh from
os.urandom on every call.
"""

import logging
import os
import struct
from dataclasses import dataclass, field
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from voile.exceptions import DecryptionError, EncryptionError, InvalidKeyError
from voile.utils.hash import HASH_SIZE, TAG_KEYSTREAM, TAG_MAC_KEY, hash_concatenate

logger = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 16
MAC_SIZE = 32


class EncryptionKey:
    """
    Symmetric 32-byte key for exit note encryption.

    Generated independently of any note and held by whoever needs to decrypt.
    """

    __slots__ = ("_key",)

    def __init__(self, key: bytes):
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
            length = len(key) if isinstance(key, (bytes, bytearray)) else type(key).__name__
            raise InvalidKeyError(f"Expected {KEY_SIZE} bytes, got {length}")
        self._key = bytes(key)

    @classmethod
    def generate(cls) -> "EncryptionKey":
        """Generate a new random key from os.urandom."""
        return cls(os.urandom(KEY_SIZE))

    @classmethod
    def from_bytes(cls, data: bytes) -> "EncryptionKey":
        return cls(data)

    def as_bytes(self) -> bytes:
        return self._key

    def keystream(self, nonce: bytes, length: int) -> bytes:
        """
        Derive ``length`` keystream bytes for a nonce.

        Block i = Keccak256("voile_keystream" || key || nonce || i as u64 BE)
        """
        blocks = []
        for counter in range((length + HASH_SIZE - 1) // HASH_SIZE):
            blocks.append(hash_concatenate(TAG_KEYSTREAM, self._key, nonce, struct.pack(">Q", counter)))
        return b"".join(blocks)[:length]

    def mac_key(self) -> bytes:
        """Key for the authentication tag, derived so it never equals the stream key."""
        return hash_concatenate(TAG_MAC_KEY, self._key)

    def __eq__(self, other) -> bool:
        if isinstance(other, EncryptionKey):
            return self._key == other._key
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._key)

    def __repr__(self) -> str:
        return "EncryptionKey(<redacted>)"


@dataclass(frozen=True)
class EncryptedNote:
    """
    Ciphertext and nonce produced by encrypting a serialized note.

    ``mac`` is set only by the hardened scheme.
    Wire format: nonce(16) || ciphertext || [mac(32)]
    """

    nonce: bytes
    ciphertext: bytes
    mac: Optional[bytes] = field(default=None)

    def __post_init__(self):
        if not isinstance(self.nonce, bytes) or len(self.nonce) != NONCE_SIZE:
            raise DecryptionError(f"Nonce must be {NONCE_SIZE} bytes")
        if not isinstance(self.ciphertext, bytes):
            raise DecryptionError("Ciphertext must be bytes")
        if self.mac is not None and (not isinstance(self.mac, bytes) or len(self.mac) != MAC_SIZE):
            raise DecryptionError(f"MAC must be {MAC_SIZE} bytes")

    @property
    def authenticated(self) -> bool:
        return self.mac is not None

    def to_bytes(self) -> bytes:
        """Serialize to the wire format."""
        return self.nonce + self.ciphertext + (self.mac or b"")

    @classmethod
    def from_bytes(cls, data: bytes, authenticated: bool = True) -> "EncryptedNote":
        """
        Parse the wire format.

        Args:
            data: Serialized note
            authenticated: Whether a trailing MAC is present

        Raises:
            DecryptionError: If data is too short
        """
        minimum = NONCE_SIZE + (MAC_SIZE if authenticated else 0)
        if len(data) < minimum:
            raise DecryptionError(f"Encrypted note too short: {len(data)} bytes")

        nonce = bytes(data[:NONCE_SIZE])
        if authenticated:
            return cls(nonce=nonce, ciphertext=bytes(data[NONCE_SIZE:-MAC_SIZE]), mac=bytes(data[-MAC_SIZE:]))
        return cls(nonce=nonce, ciphertext=bytes(data[NONCE_SIZE:]))


def _xor(data: bytes, keystream: bytes) -> bytes:
    return bytes(a ^ b for a, b in zip(data, keystream))


def _compute_mac(key: EncryptionKey, nonce: bytes, ciphertext: bytes) -> hmac.HMAC:
    h = hmac.HMAC(key.mac_key(), hashes.SHA256())
    h.update(nonce)
    h.update(ciphertext)
    return h


def _check_inputs(plaintext: bytes, key: EncryptionKey) -> None:
    if not isinstance(key, EncryptionKey):
        raise EncryptionError("Key must be an EncryptionKey")
    if not isinstance(plaintext, (bytes, bytearray)):
        raise EncryptionError("Plaintext must be bytes")


def encrypt(plaintext: bytes, key: EncryptionKey) -> EncryptedNote:
    """
    Encrypt plaintext under the base (unauthenticated) scheme.

    Args:
        plaintext: Data to encrypt
        key: Encryption key

    Returns:
        EncryptedNote: nonce and ciphertext, no MAC

    Raises:
        EncryptionError: If inputs have the wrong type
    """
    _check_inputs(plaintext, key)
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = _xor(bytes(plaintext), key.keystream(nonce, len(plaintext)))
    return EncryptedNote(nonce=nonce, ciphertext=ciphertext)


def decrypt(encrypted: EncryptedNote, key: EncryptionKey) -> bytes:
    """
    Decrypt a note by regenerating the keystream.

    An authenticated note is checked first and rejected on mismatch; an
    unauthenticated one cannot be checked and decrypts to garbage under a
    wrong key.

    Raises:
        DecryptionError: If the note is authenticated and the MAC does not match
    """
    if not isinstance(key, EncryptionKey):
        raise DecryptionError("Key must be an EncryptionKey")
    if encrypted.authenticated:
        return open_sealed(encrypted, key)
    return _xor(encrypted.ciphertext, key.keystream(encrypted.nonce, len(encrypted.ciphertext)))


def seal(plaintext: bytes, key: EncryptionKey) -> EncryptedNote:
    """
    Encrypt plaintext and authenticate nonce || ciphertext with HMAC-SHA256.

    Returns:
        EncryptedNote: nonce, ciphertext and MAC
    """
    base = encrypt(plaintext, key)
    mac = _compute_mac(key, base.nonce, base.ciphertext).finalize()
    return EncryptedNote(nonce=base.nonce, ciphertext=base.ciphertext, mac=mac)


def open_sealed(encrypted: EncryptedNote, key: EncryptionKey) -> bytes:
    """
    Verify and decrypt an authenticated note.

    No plaintext is produced unless the MAC verifies.

    Raises:
        DecryptionError: If the note has no MAC or the MAC does not match
    """
    if not isinstance(key, EncryptionKey):
        raise DecryptionError("Key must be an EncryptionKey")
    if not encrypted.authenticated:
        raise DecryptionError("Note carries no authentication tag")

    try:
        _compute_mac(key, encrypted.nonce, encrypted.ciphertext).verify(encrypted.mac)
    except InvalidSignature:
        logger.debug("Rejected encrypted note with mismatched MAC")
        raise DecryptionError("Authentication tag mismatch - wrong key or corrupted note") from None

    return _xor(encrypted.ciphertext, key.keystream(encrypted.nonce, len(encrypted.ciphertext)))
