"""Tests for exit proof generation and verification."""

import threading

import pytest

from voile.core.exit_note import ExitNote
from voile.core.terms import Custom, Standard
from voile.core.zkproof import (
    PROOF_SIZE,
    DomainSeparator,
    ExitProof,
    ProofGenerator,
    ProofVerifier,
    generate_owner_secret,
)
from voile.crypto.nullifier import InMemoryNullifierStore
from voile.exceptions import (
    BadTagError,
    InvalidProofError,
    InvalidSecretError,
    NullifierReusedError,
    ProofGenerationError,
    VerificationError,
)

DOMAIN = b"voile_testnet"


@pytest.fixture
def generator():
    return ProofGenerator(DOMAIN)


@pytest.fixture
def secret():
    return generate_owner_secret()


@pytest.fixture
def note():
    return ExitNote.new(1_000_000, bytes(32), Standard())


@pytest.fixture
def verifier(generator, secret):
    with ProofVerifier(DOMAIN, owner_bindings=[generator.owner_binding(secret)]) as v:
        yield v


def _flip(data: bytes, index: int) -> bytes:
    return data[:index] + bytes([data[index] ^ 0x01]) + data[index + 1:]


class TestDomainSeparator:
    """Tests for the deployment domain separator."""

    def test_accepts_str_and_bytes(self):
        assert DomainSeparator("voile_testnet") == DomainSeparator(b"voile_testnet")

    def test_distinct_labels(self):
        assert DomainSeparator(b"a").digest != DomainSeparator(b"b").digest

    def test_empty_label_rejected(self):
        with pytest.raises(ValueError):
            DomainSeparator(b"")

    def test_defaults_from_settings(self, monkeypatch):
        from voile.config import reset_settings

        monkeypatch.setenv("VOILE_DOMAIN", "voile_devnet")
        reset_settings()
        assert ProofGenerator().domain == DomainSeparator(b"voile_devnet")


class TestProofGeneration:
    """Tests for proof generation."""

    def test_proof_fields(self, generator, note, secret):
        proof = generator.generate(note, secret)
        assert proof.commitment == note.commitment()
        assert len(proof.nullifier) == 32
        assert len(proof.tag) == 32
        assert len(proof.to_bytes()) == PROOF_SIZE

    def test_deterministic(self, generator, note, secret):
        assert generator.generate(note, secret) == generator.generate(note, secret)

    def test_nullifier_is_function_of_note_and_secret(self, generator, note, secret):
        assert generator.generate(note, secret).nullifier == generator.compute_nullifier(note, secret)
        other_note = ExitNote.new(note.amount, note.owner, note.terms)
        assert generator.compute_nullifier(other_note, secret) != generator.compute_nullifier(note, secret)

    def test_proof_hides_note_fields(self, generator, note, secret):
        data = generator.generate(note, secret).to_bytes()
        assert note.blinding not in data
        assert secret not in data

    @pytest.mark.parametrize("bad_secret", [b"", b"\x00" * 31, b"\x00" * 33, "secret"])
    def test_bad_secret_length(self, generator, note, bad_secret):
        with pytest.raises(InvalidSecretError):
            generator.generate(note, bad_secret)

    def test_rejects_non_note(self, generator, secret):
        with pytest.raises(ProofGenerationError):
            generator.generate("not a note", secret)

    def test_concurrent_generation(self, generator, secret):
        notes = [ExitNote.new(i + 1, bytes(32), Custom(100, 50)) for i in range(20)]
        results = {}

        def work(n):
            results[n.note_id] = generator.generate(n, secret)

        threads = [threading.Thread(target=work, args=(n,)) for n in notes]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(results[n.note_id] == generator.generate(n, secret) for n in notes)


class TestProofWireFormat:
    """Tests for the 96-byte proof encoding."""

    def test_layout(self, generator, note, secret):
        proof = generator.generate(note, secret)
        data = proof.to_bytes()
        assert data[:32] == proof.commitment.to_bytes()
        assert data[32:64] == proof.nullifier
        assert data[64:] == proof.tag

    def test_hex_round_trip(self, generator, note, secret):
        proof = generator.generate(note, secret)
        hex_str = proof.to_hex()
        assert hex_str.startswith("0x")
        assert len(hex_str) == 2 + 2 * PROOF_SIZE
        assert ExitProof.from_hex(hex_str) == proof

    def test_wrong_size(self):
        with pytest.raises(InvalidProofError):
            ExitProof.from_bytes(b"\x00" * 95)

    def test_invalid_hex(self):
        with pytest.raises(InvalidProofError):
            ExitProof.from_hex("0x123")


class TestProofVerification:
    """Tests for the verifier state machine."""

    def test_honest_proof_accepted_once(self, generator, verifier, note, secret):
        proof = generator.generate(note, secret)

        assert verifier.verify(proof) is True
        assert verifier.mark_nullifier_used(proof.nullifier) is True

        with pytest.raises(NullifierReusedError) as exc_info:
            verifier.verify(proof)
        assert exc_info.value.nullifier == proof.nullifier

    def test_verify_is_read_only(self, generator, verifier, note, secret):
        proof = generator.generate(note, secret)
        assert verifier.verify(proof)
        assert verifier.verify(proof)
        assert not verifier.is_nullifier_used(proof.nullifier)

    @pytest.mark.parametrize("index", [0, 31, 32, 63, 64, 95])
    def test_tampered_byte_rejected(self, generator, verifier, note, secret, index):
        tampered = ExitProof.from_bytes(_flip(generator.generate(note, secret).to_bytes(), index))
        with pytest.raises(BadTagError):
            verifier.verify(tampered)

    def test_unregistered_owner_rejected(self, generator, verifier, note):
        with pytest.raises(BadTagError):
            verifier.verify(generator.generate(note, generate_owner_secret()))

    def test_bad_tag_checked_before_nullifier(self, generator, verifier, note, secret):
        proof = generator.generate(note, secret)
        verifier.mark_nullifier_used(proof.nullifier)
        tampered = ExitProof(commitment=proof.commitment, nullifier=proof.nullifier, tag=_flip(proof.tag, 0))
        with pytest.raises(BadTagError):
            verifier.verify(tampered)

    def test_errors_share_base(self):
        assert issubclass(BadTagError, VerificationError)
        assert issubclass(NullifierReusedError, VerificationError)

    def test_domain_separation(self, note, secret):
        gen_a, gen_b = ProofGenerator(b"chain-a/v1"), ProofGenerator(b"chain-b/v1")
        verifier_a = ProofVerifier(b"chain-a/v1", owner_bindings=[gen_a.owner_binding(secret)])
        verifier_b = ProofVerifier(b"chain-b/v1", owner_bindings=[gen_b.owner_binding(secret)])

        with pytest.raises(BadTagError):
            verifier_a.verify(gen_b.generate(note, secret))
        with pytest.raises(BadTagError):
            verifier_b.verify(gen_a.generate(note, secret))
        assert verifier_a.verify(gen_a.generate(note, secret))

    def test_two_secrets_two_nullifiers(self, generator, note):
        s1, s2 = generate_owner_secret(), generate_owner_secret()
        verifier = ProofVerifier(DOMAIN, owner_bindings=[generator.owner_binding(s1), generator.owner_binding(s2)])

        p1, p2 = generator.generate(note, s1), generator.generate(note, s2)
        assert p1.nullifier != p2.nullifier

        assert verifier.verify_and_consume(p1)
        assert verifier.verify_and_consume(p2)
        assert len(verifier.store) == 2

    def test_register_binding_validation(self, verifier):
        with pytest.raises(InvalidProofError):
            verifier.register_owner_binding(b"\x00" * 16)

    def test_register_binding_later(self, generator, note):
        secret = generate_owner_secret()
        verifier = ProofVerifier(DOMAIN)
        proof = generator.generate(note, secret)
        with pytest.raises(BadTagError):
            verifier.verify(proof)

        verifier.register_owner_binding(generator.owner_binding(secret))
        assert generator.owner_binding(secret) in verifier.owner_bindings
        assert verifier.verify(proof)

    def test_rejects_non_proof(self, verifier):
        with pytest.raises(InvalidProofError):
            verifier.verify(b"\x00" * PROOF_SIZE)


class TestNullifierMarking:
    """Tests for recording spent nullifiers."""

    def test_mark_idempotent(self, verifier):
        nullifier = b"\x07" * 32
        assert verifier.mark_nullifier_used(nullifier) is True
        assert verifier.mark_nullifier_used(nullifier) is False
        assert verifier.is_nullifier_used(nullifier)
        assert len(verifier.store) == 1

    def test_mark_validates(self, verifier):
        with pytest.raises(InvalidProofError):
            verifier.mark_nullifier_used(b"\x07" * 31)

    def test_injected_store_is_used(self, generator, note, secret):
        store = InMemoryNullifierStore()
        verifier = ProofVerifier(DOMAIN, store=store, owner_bindings=[generator.owner_binding(secret)])
        proof = generator.generate(note, secret)

        verifier.verify_and_consume(proof)
        assert proof.nullifier in store

    def test_shared_store_across_verifiers(self, generator, note, secret):
        store = InMemoryNullifierStore()
        binding = generator.owner_binding(secret)
        v1 = ProofVerifier(DOMAIN, store=store, owner_bindings=[binding])
        v2 = ProofVerifier(DOMAIN, store=store, owner_bindings=[binding])
        proof = generator.generate(note, secret)

        assert v1.verify_and_consume(proof)
        with pytest.raises(NullifierReusedError):
            v2.verify_and_consume(proof)

    def test_racing_consume_exactly_one_wins(self, generator, verifier, note, secret):
        proof = generator.generate(note, secret)
        outcomes = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            try:
                verifier.verify_and_consume(proof)
                result = "ok"
            except NullifierReusedError:
                result = "reused"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("reused") == 7
