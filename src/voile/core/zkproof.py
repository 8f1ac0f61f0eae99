"""Hash-based exit proofs and the nullifier-checking verifier.

Generation (owner side, stateless)::

    commitment = note.commitment()
    nullifier  = H("voile_nullifier" || note_id || owner_secret || domain)
    challenge  = H("voile_challenge" || commitment || nullifier || domain)
    binding    = H("voile_owner_binding" || domain || owner_secret)
    tag        = H("voile_tag" || challenge || binding)

Verification (shared, stateful): the verifier never sees the owner secret.
At account setup it is given the owner's public binding; a proof is accepted
when its tag equals H("voile_tag" || challenge || binding) for some
registered binding and its nullifier has not been spent.

Limitations:
    This is a heuristic proof of knowledge built from a hash chain, not a
    zero-knowledge succinct argument. Because the binding is public, anyone
    holding it can produce a passing tag; the secret only protects the
    nullifier derivation. It proves nothing about the hidden note fields
    (balance sufficiency, time-lock satisfaction); those claims need a
    separate proof system.
"""

import hmac
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Union

from voile.config import get_settings
from voile.core.commitment import Commitment
from voile.core.exit_note import ExitNote
from voile.crypto.nullifier import InMemoryNullifierStore, NullifierStore, validate_nullifier
from voile.exceptions import (
    BadTagError,
    InvalidCommitmentError,
    InvalidProofError,
    InvalidSecretError,
    NullifierPersistenceError,
    NullifierReusedError,
    PersistenceTimeoutError,
    ProofGenerationError,
)
from voile.utils.encoding import bytes_to_hex, ensure_bytes, hex_to_bytes, short_hex
from voile.utils.hash import (
    HASH_SIZE,
    TAG_CHALLENGE,
    TAG_NULLIFIER,
    TAG_OWNER_BINDING,
    TAG_PROOF_DOMAIN,
    TAG_TAG,
    hash_concatenate,
    require_hash_size,
)

logger = logging.getLogger(__name__)

SECRET_SIZE = 32
PROOF_SIZE = 3 * HASH_SIZE


def generate_owner_secret() -> bytes:
    """Generate a random 32-byte owner secret."""
    return os.urandom(SECRET_SIZE)


def _require_secret(owner_secret: bytes) -> bytes:
    if not isinstance(owner_secret, (bytes, bytearray)) or len(owner_secret) != SECRET_SIZE:
        raise InvalidSecretError("Owner secret must be exactly 32 bytes")
    return bytes(owner_secret)


class DomainSeparator:
    """
    Deployment-specific separator mixed into every proof hash.

    The label (for example chain id plus protocol version) is hashed into a
    32-byte digest. Proofs made under one separator never verify under
    another.
    """

    __slots__ = ("label", "digest")

    def __init__(self, label: Union[bytes, str]):
        label = ensure_bytes(label)
        if not label:
            raise ValueError("Domain separator label must be non-empty")
        self.label = label
        self.digest = hash_concatenate(TAG_PROOF_DOMAIN, self.label)

    @classmethod
    def from_settings(cls) -> "DomainSeparator":
        return cls(get_settings().domain_bytes)

    def nullifier(self, note_id: bytes, owner_secret: bytes) -> bytes:
        return hash_concatenate(TAG_NULLIFIER, note_id, owner_secret, self.digest)

    def challenge(self, commitment: Commitment, nullifier: bytes) -> bytes:
        return hash_concatenate(TAG_CHALLENGE, commitment.to_bytes(), nullifier, self.digest)

    def owner_binding(self, owner_secret: bytes) -> bytes:
        return hash_concatenate(TAG_OWNER_BINDING, self.digest, owner_secret)

    def tag(self, challenge: bytes, binding: bytes) -> bytes:
        return hash_concatenate(TAG_TAG, challenge, binding)

    def __eq__(self, other) -> bool:
        if isinstance(other, DomainSeparator):
            return self.digest == other.digest
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.digest)

    def __repr__(self) -> str:
        return f"DomainSeparator({self.label!r})"


def _resolve_domain(domain: Union[DomainSeparator, bytes, str, None]) -> DomainSeparator:
    if domain is None:
        return DomainSeparator.from_settings()
    if isinstance(domain, DomainSeparator):
        return domain
    return DomainSeparator(domain)


@dataclass(frozen=True)
class ExitProof:
    """
    Public proof submitted for an exit.

    Wire format: commitment(32) || nullifier(32) || tag(32), hex encoded
    with a 0x prefix for transport.
    """

    commitment: Commitment
    nullifier: bytes
    tag: bytes

    def __post_init__(self):
        if not isinstance(self.commitment, Commitment):
            raise InvalidProofError("Commitment must be a Commitment")
        validate_nullifier(self.nullifier)
        require_hash_size(self.tag, "Tag", InvalidProofError)

    def to_bytes(self) -> bytes:
        return self.commitment.to_bytes() + self.nullifier + self.tag

    def to_hex(self) -> str:
        return bytes_to_hex(self.to_bytes())

    @classmethod
    def from_bytes(cls, data: bytes) -> "ExitProof":
        """
        Parse a 96-byte proof.

        Raises:
            InvalidProofError: If data is not exactly 96 bytes
        """
        if not isinstance(data, (bytes, bytearray)) or len(data) != PROOF_SIZE:
            size = len(data) if isinstance(data, (bytes, bytearray)) else type(data).__name__
            raise InvalidProofError(f"Invalid proof size: expected {PROOF_SIZE}, got {size}")
        data = bytes(data)
        return cls(
            commitment=Commitment(data[:HASH_SIZE]),
            nullifier=data[HASH_SIZE:2 * HASH_SIZE],
            tag=data[2 * HASH_SIZE:],
        )

    @classmethod
    def from_hex(cls, hex_str: str) -> "ExitProof":
        try:
            data = hex_to_bytes(hex_str)
        except ValueError as e:
            raise InvalidProofError(f"Invalid proof hex: {e}") from e
        return cls.from_bytes(data)


class ProofGenerator:
    """
    Generates exit proofs on the owner's device.

    Stateless apart from the domain separator; safe to share across threads.
    """

    def __init__(self, domain: Union[DomainSeparator, bytes, str, None] = None):
        self.domain = _resolve_domain(domain)

    def owner_binding(self, owner_secret: bytes) -> bytes:
        """
        Public binding of an owner secret, registered with verifiers at
        account setup.

        Raises:
            InvalidSecretError: If the secret is not 32 bytes
        """
        return self.domain.owner_binding(_require_secret(owner_secret))

    def compute_nullifier(self, note: ExitNote, owner_secret: bytes) -> bytes:
        """Nullifier for a (note, secret) pair under this domain."""
        return self.domain.nullifier(note.note_id, _require_secret(owner_secret))

    def generate(self, note: ExitNote, owner_secret: bytes) -> ExitProof:
        """
        Generate a proof for an exit note.

        Args:
            note: The exit note being proved
            owner_secret: 32-byte owner secret

        Returns:
            ExitProof: commitment, nullifier and tag

        Raises:
            InvalidSecretError: If the secret is not 32 bytes
            ProofGenerationError: If the note cannot be committed
        """
        owner_secret = _require_secret(owner_secret)
        if not isinstance(note, ExitNote):
            raise ProofGenerationError(f"Expected ExitNote, got {type(note).__name__}")

        try:
            commitment = note.commitment()
        except InvalidCommitmentError as e:
            raise ProofGenerationError(f"Failed to commit to exit note: {e}") from e

        nullifier = self.domain.nullifier(note.note_id, owner_secret)
        challenge = self.domain.challenge(commitment, nullifier)
        tag = self.domain.tag(challenge, self.domain.owner_binding(owner_secret))

        logger.debug(f"Generated exit proof for commitment {short_hex(commitment.to_bytes())}")
        return ExitProof(commitment=commitment, nullifier=nullifier, tag=tag)


class ProofVerifier:
    """
    Verifies exit proofs and guards against double spends.

    State machine per proof:
        Received -> tag mismatch             -> BadTagError
        Received -> tag ok, nullifier spent  -> NullifierReusedError
        Received -> tag ok, nullifier fresh  -> valid

    ``verify`` is read-only. ``mark_nullifier_used`` commits the spend and
    may be called after ``verify`` across a caller-side transaction
    boundary. ``verify_and_consume`` does both inside one critical section,
    so of two racing proofs with the same nullifier exactly one succeeds.

    Writes to the store run on a worker thread bounded by
    ``persist_timeout``. A timeout raises PersistenceTimeoutError: the
    write may or may not have landed, and the exit must not be reported
    as accepted. The worker of a timed-out write is abandoned and the next
    write starts a new one, so a store call that hangs forever costs one
    thread rather than every later write.
    """

    def __init__(
        self,
        domain: Union[DomainSeparator, bytes, str, None] = None,
        store: Optional[NullifierStore] = None,
        owner_bindings: Iterable[bytes] = (),
        persist_timeout: Optional[float] = None,
        persist_retries: Optional[int] = None,
    ):
        settings = get_settings()
        self.domain = _resolve_domain(domain)
        self.store = store if store is not None else InMemoryNullifierStore()
        self.persist_timeout = settings.persist_timeout_seconds if persist_timeout is None else persist_timeout
        self.persist_retries = settings.persist_retries if persist_retries is None else persist_retries

        self._bindings: FrozenSet[bytes] = frozenset()
        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None

        for binding in owner_bindings:
            self.register_owner_binding(binding)

    # Owner registry
    def register_owner_binding(self, binding: bytes) -> None:
        """
        Register an owner's public binding (see ProofGenerator.owner_binding).

        Raises:
            InvalidProofError: If the binding is not 32 bytes
        """
        binding = require_hash_size(binding, "Owner binding", InvalidProofError)
        with self._lock:
            self._bindings = self._bindings | {binding}

    @property
    def owner_bindings(self) -> FrozenSet[bytes]:
        return self._bindings

    # Verification
    def _tag_matches(self, proof: ExitProof) -> bool:
        challenge = self.domain.challenge(proof.commitment, proof.nullifier)
        matched = False
        for binding in self._bindings:
            if hmac.compare_digest(self.domain.tag(challenge, binding), proof.tag):
                matched = True
        return matched

    def verify(self, proof: ExitProof) -> bool:
        """
        Verify a proof without changing state.

        Returns:
            bool: True if the tag binds to a registered owner and the
            nullifier is unspent

        Raises:
            InvalidProofError: If proof is not an ExitProof
            BadTagError: If the tag binds to no registered owner
            NullifierReusedError: If the nullifier has been spent
        """
        if not isinstance(proof, ExitProof):
            raise InvalidProofError(f"Expected ExitProof, got {type(proof).__name__}")

        if not self._tag_matches(proof):
            logger.info(f"Rejected proof with bad tag for commitment {short_hex(proof.commitment.to_bytes())}")
            raise BadTagError("Proof tag does not bind to any registered owner")

        if self.store.contains(proof.nullifier):
            logger.warning(f"Double-spend attempt detected: nullifier {short_hex(proof.nullifier)} already used")
            raise NullifierReusedError(proof.nullifier)

        return True

    def verify_and_consume(self, proof: ExitProof) -> bool:
        """
        Verify a proof and record its nullifier as one atomic step.

        Returns:
            bool: True once the nullifier is durably recorded

        Raises:
            BadTagError, NullifierReusedError: As for ``verify``
            NullifierPersistenceError: If the spend could not be recorded
            PersistenceTimeoutError: If recording timed out (outcome unknown)
        """
        with self._lock:
            self.verify(proof)
            if not self._persist(proof.nullifier):
                # Another process sharing the store consumed it first
                logger.warning(f"Double-spend attempt detected: nullifier {short_hex(proof.nullifier)} lost insert race")
                raise NullifierReusedError(proof.nullifier)
        logger.info(f"Accepted exit proof, nullifier {short_hex(proof.nullifier)} consumed")
        return True

    # Nullifier state
    def mark_nullifier_used(self, nullifier: bytes) -> bool:
        """
        Record a nullifier as spent after a successful ``verify``.

        Idempotent: marking an already-spent nullifier is a no-op.
        Persistence failures are retried up to ``persist_retries`` times.
        A timeout is never retried: the timed-out write may still land, and a
        retry would then report this call's own spend as already spent.

        Returns:
            bool: True if newly recorded, False if it was already spent

        Raises:
            NullifierPersistenceError: If every attempt failed
            PersistenceTimeoutError: If a write timed out (outcome unknown)
        """
        nullifier = validate_nullifier(nullifier)
        last_error: Optional[NullifierPersistenceError] = None
        with self._lock:
            for attempt in range(self.persist_retries + 1):
                try:
                    return self._persist(nullifier)
                except PersistenceTimeoutError:
                    raise
                except NullifierPersistenceError as e:
                    last_error = e
                    logger.warning(
                        f"Persisting nullifier {short_hex(nullifier)} failed "
                        f"(attempt {attempt + 1}/{self.persist_retries + 1}): {e}"
                    )
        raise last_error

    def is_nullifier_used(self, nullifier: bytes) -> bool:
        """Check if a nullifier has been spent."""
        return self.store.contains(nullifier)

    def _persist(self, nullifier: bytes) -> bool:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="voile-nullifier")
        future = self._executor.submit(self.store.add, nullifier)
        try:
            return future.result(timeout=self.persist_timeout)
        except FutureTimeoutError:
            future.cancel()
            # The worker may be stuck in store.add; later writes get a fresh one
            self._executor.shutdown(wait=False)
            self._executor = None
            raise PersistenceTimeoutError(
                f"Timed out after {self.persist_timeout}s recording nullifier {short_hex(nullifier)}; outcome unknown"
            ) from None

    def close(self) -> None:
        """Shut down the persistence worker."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def __enter__(self) -> "ProofVerifier":
        return self

    def __exit__(self, *args) -> None:
        self.close()
