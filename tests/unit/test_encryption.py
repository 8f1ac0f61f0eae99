"""Tests for the exit note encryption codec."""

import pytest

from voile.core.encryption import (
    MAC_SIZE,
    NONCE_SIZE,
    EncryptedNote,
    EncryptionKey,
    decrypt,
    encrypt,
    open_sealed,
    seal,
)
from voile.exceptions import DecryptionError, EncryptionError, InvalidKeyError

PLAINTEXT = b"exit 1000000 units on the standard schedule" * 3


@pytest.fixture
def key():
    return EncryptionKey.generate()


class TestEncryptionKey:
    """Tests for key handling."""

    def test_generate(self):
        k1, k2 = EncryptionKey.generate(), EncryptionKey.generate()
        assert len(k1.as_bytes()) == 32
        assert k1 != k2

    def test_from_bytes_wrong_length(self):
        with pytest.raises(InvalidKeyError):
            EncryptionKey.from_bytes(b"\x00" * 31)

    def test_repr_redacts_key(self, key):
        assert key.as_bytes().hex() not in repr(key)

    def test_keystream_length(self, key):
        nonce = b"\x00" * NONCE_SIZE
        assert len(key.keystream(nonce, 0)) == 0
        assert len(key.keystream(nonce, 33)) == 33
        assert key.keystream(nonce, 64)[:33] == key.keystream(nonce, 33)

    def test_mac_key_differs_from_key(self, key):
        assert key.mac_key() != key.as_bytes()


class TestBaseScheme:
    """Tests for unauthenticated stream encryption."""

    def test_round_trip(self, key):
        assert decrypt(encrypt(PLAINTEXT, key), key) == PLAINTEXT

    def test_empty_plaintext(self, key):
        encrypted = encrypt(b"", key)
        assert encrypted.ciphertext == b""
        assert decrypt(encrypted, key) == b""

    def test_ciphertext_length_equals_plaintext(self, key):
        for length in (1, 31, 32, 33, 100):
            assert len(encrypt(b"a" * length, key).ciphertext) == length

    def test_ciphertext_differs_from_plaintext(self, key):
        assert encrypt(PLAINTEXT, key).ciphertext != PLAINTEXT

    def test_fresh_nonce_per_call(self, key):
        """Encrypting twice under one key never reuses the keystream."""
        e1, e2 = encrypt(PLAINTEXT, key), encrypt(PLAINTEXT, key)
        assert e1.nonce != e2.nonce
        assert e1.ciphertext != e2.ciphertext

    def test_wrong_key_yields_garbage(self, key):
        """Without a MAC a wrong key is not detected, only visible as garbage."""
        encrypted = encrypt(PLAINTEXT, key)
        recovered = decrypt(encrypted, EncryptionKey.generate())
        assert len(recovered) == len(PLAINTEXT)
        assert recovered != PLAINTEXT

    def test_corrupted_nonce_yields_garbage(self, key):
        encrypted = encrypt(PLAINTEXT, key)
        flipped = bytes([encrypted.nonce[0] ^ 1]) + encrypted.nonce[1:]
        assert decrypt(EncryptedNote(nonce=flipped, ciphertext=encrypted.ciphertext), key) != PLAINTEXT

    def test_rejects_bad_inputs(self, key):
        with pytest.raises(EncryptionError):
            encrypt("text", key)
        with pytest.raises(EncryptionError):
            encrypt(PLAINTEXT, b"\x00" * 32)


class TestAuthenticatedScheme:
    """Tests for the MAC-hardened scheme."""

    def test_round_trip(self, key):
        sealed = seal(PLAINTEXT, key)
        assert sealed.authenticated
        assert len(sealed.mac) == MAC_SIZE
        assert open_sealed(sealed, key) == PLAINTEXT
        assert decrypt(sealed, key) == PLAINTEXT

    def test_wrong_key_fails_closed(self, key):
        with pytest.raises(DecryptionError):
            open_sealed(seal(PLAINTEXT, key), EncryptionKey.generate())

    def test_tampered_ciphertext_fails_closed(self, key):
        sealed = seal(PLAINTEXT, key)
        tampered = bytes([sealed.ciphertext[0] ^ 0x80]) + sealed.ciphertext[1:]
        with pytest.raises(DecryptionError):
            decrypt(EncryptedNote(nonce=sealed.nonce, ciphertext=tampered, mac=sealed.mac), key)

    def test_tampered_nonce_fails_closed(self, key):
        sealed = seal(PLAINTEXT, key)
        tampered = sealed.nonce[:-1] + bytes([sealed.nonce[-1] ^ 0x01])
        with pytest.raises(DecryptionError):
            decrypt(EncryptedNote(nonce=tampered, ciphertext=sealed.ciphertext, mac=sealed.mac), key)

    def test_open_requires_mac(self, key):
        with pytest.raises(DecryptionError):
            open_sealed(encrypt(PLAINTEXT, key), key)


class TestEncryptedNoteWireFormat:
    """Tests for nonce || ciphertext || [mac] serialization."""

    def test_unauthenticated_layout(self, key):
        encrypted = encrypt(PLAINTEXT, key)
        data = encrypted.to_bytes()
        assert len(data) == NONCE_SIZE + len(PLAINTEXT)
        assert data[:NONCE_SIZE] == encrypted.nonce
        assert EncryptedNote.from_bytes(data, authenticated=False) == encrypted

    def test_authenticated_layout(self, key):
        sealed = seal(PLAINTEXT, key)
        data = sealed.to_bytes()
        assert len(data) == NONCE_SIZE + len(PLAINTEXT) + MAC_SIZE
        assert EncryptedNote.from_bytes(data) == sealed

    def test_too_short(self):
        with pytest.raises(DecryptionError):
            EncryptedNote.from_bytes(b"\x00" * (NONCE_SIZE - 1), authenticated=False)
        with pytest.raises(DecryptionError):
            EncryptedNote.from_bytes(b"\x00" * (NONCE_SIZE + MAC_SIZE - 1))

    def test_bad_nonce_size(self):
        with pytest.raises(DecryptionError):
            EncryptedNote(nonce=b"\x00" * 8, ciphertext=b"")
