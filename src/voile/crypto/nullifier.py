"""Nullifier store: the double-spend guard's only mutable state.

A nullifier is H("voile_nullifier" || note_id || owner_secret || domain).
It is deterministic per (note, secret) pair, so replaying a proof always
collides on the same value.

Core Properties:
    - The set grows monotonically; entries are never removed
    - ``add`` is linearizable: of two racing inserts of one value, exactly
      one returns True
    - Re-adding an existing nullifier is a no-op, never an error

Stores are injected into a ``ProofVerifier``; no other component reads or
writes them. Tests use a fresh :class:`InMemoryNullifierStore` per case,
deployments use :class:`voile.storage.SQLNullifierStore`.
"""

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Dict, Iterator, Optional

from voile.exceptions import InvalidProofError
from voile.utils.encoding import bytes_to_hex, hex_to_bytes
from voile.utils.hash import require_hash_size


def validate_nullifier(nullifier: bytes) -> bytes:
    """Return the nullifier as bytes or raise InvalidProofError."""
    return require_hash_size(nullifier, "Nullifier", InvalidProofError)


@dataclass
class NullifierRecord:
    """Record of a spent nullifier."""

    nullifier: bytes
    spent_at: datetime

    def serialize(self) -> str:
        """Serialize to JSON."""
        return json.dumps(
            {
                "nullifier": bytes_to_hex(self.nullifier),
                "spent_at": self.spent_at.isoformat(),
            }
        )

    @classmethod
    def deserialize(cls, json_str: str) -> "NullifierRecord":
        data = json.loads(json_str)
        return cls(
            nullifier=hex_to_bytes(data["nullifier"]),
            spent_at=datetime.fromisoformat(data["spent_at"]),
        )


class NullifierStore(ABC):
    """Set of spent nullifiers."""

    @abstractmethod
    def add(self, nullifier: bytes) -> bool:
        """
        Record a nullifier as spent.

        Returns:
            True if newly recorded, False if it was already present

        Raises:
            NullifierPersistenceError: If the write could not be made durable
        """

    @abstractmethod
    def contains(self, nullifier: bytes) -> bool:
        """Check whether a nullifier has been spent."""

    @abstractmethod
    def get_record(self, nullifier: bytes) -> Optional[NullifierRecord]:
        """Get the spending record for a nullifier."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of spent nullifiers."""

    def __contains__(self, nullifier) -> bool:
        return self.contains(nullifier)


class InMemoryNullifierStore(NullifierStore):
    """
    Process-local nullifier set guarded by a lock.

    Suitable for tests and single-process deployments that do not need the
    set to survive a restart.
    """

    def __init__(self):
        self._records: Dict[bytes, NullifierRecord] = {}
        self._lock = threading.Lock()

    def add(self, nullifier: bytes) -> bool:
        nullifier = validate_nullifier(nullifier)
        with self._lock:
            if nullifier in self._records:
                return False
            self._records[nullifier] = NullifierRecord(nullifier=nullifier, spent_at=datetime.now(UTC))
            return True

    def contains(self, nullifier: bytes) -> bool:
        return bytes(nullifier) in self._records

    def get_record(self, nullifier: bytes) -> Optional[NullifierRecord]:
        return self._records.get(bytes(nullifier))

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[bytes]:
        with self._lock:
            return iter(list(self._records))

    def serialize(self) -> str:
        """Serialize nullifier set to JSON."""
        with self._lock:
            records = [json.loads(record.serialize()) for record in self._records.values()]
        return json.dumps({"records": records, "total_spent": len(records)})

    @classmethod
    def deserialize(cls, json_str: str) -> "InMemoryNullifierStore":
        """Deserialize nullifier set from JSON."""
        data = json.loads(json_str)

        store = cls()
        for record_data in data["records"]:
            record = NullifierRecord.deserialize(json.dumps(record_data))
            store._records[record.nullifier] = record

        return store
