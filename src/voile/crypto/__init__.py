"""Nullifier set primitives"""

from voile.crypto.nullifier import (
    NullifierRecord,
    NullifierStore,
    InMemoryNullifierStore,
    validate_nullifier,
)

__all__ = [
    'NullifierRecord',
    'NullifierStore',
    'InMemoryNullifierStore',
    'validate_nullifier',
]
