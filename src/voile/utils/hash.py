"""Cryptographic hash utilities."""

from typing import Union

from Crypto.Hash import keccak

HASH_SIZE = 32

# Domain tags prefixed to every hash so outputs of different roles never collide
TAG_COMMITMENT = b"voile_commitment"
TAG_NOTE_ID = b"voile_note_id"
TAG_KEYSTREAM = b"voile_keystream"
TAG_MAC_KEY = b"voile_mac_key"
TAG_PROOF_DOMAIN = b"voile_proof_domain"
TAG_NULLIFIER = b"voile_nullifier"
TAG_CHALLENGE = b"voile_challenge"
TAG_TAG = b"voile_tag"
TAG_OWNER_BINDING = b"voile_owner_binding"


def hash_concatenate(*data: Union[bytes, str]) -> bytes:
    """
    Hash concatenated data.

    Args:
        *data: Multiple bytes or strings to concatenate and hash

    Returns:
        bytes: Keccak-256 hash of concatenated data

    This is the original Keccak padding (as used by Ethereum), not the
    NIST SHA3-256 variant.
    """
    hasher = keccak.new(digest_bits=256)
    for item in data:
        if isinstance(item, str):
            item = item.encode('utf-8')
        hasher.update(item)
    return hasher.digest()


def require_hash_size(value: bytes, name: str, error: type = ValueError) -> bytes:
    """Raise ``error`` unless value is exactly 32 bytes."""
    if not isinstance(value, (bytes, bytearray)) or len(value) != HASH_SIZE:
        raise error(f"{name} must be {HASH_SIZE} bytes")
    return bytes(value)
