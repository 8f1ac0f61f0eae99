"""Exit terms: the tagged variant describing how a position is exited.

Each variant has a canonical, versioned byte encoding that feeds the
commitment. New variants must take a new kind value; existing encodings
never change, so existing commitments stay valid.

Encoding (big-endian)::

    version(1) || kind(1) || payload

    Immediate  kind 0   -
    Standard   kind 1   -
    Delayed    kind 2   blocks u64
    Custom     kind 3   min_rate_bps u16 || max_slippage_bps u16
"""

import enum
import struct
from dataclasses import dataclass
from typing import Union

from voile.exceptions import InvalidExitNoteError

TERMS_ENCODING_VERSION = 1
MAX_BPS = 10_000
MAX_U64 = 2**64 - 1


class TermsKind(enum.IntEnum):
    """Wire tag for each exit terms variant."""
    IMMEDIATE = 0
    STANDARD = 1
    DELAYED = 2
    CUSTOM = 3


@dataclass(frozen=True)
class Immediate:
    """Exit with no waiting period; a penalty is applied downstream."""

    kind = TermsKind.IMMEDIATE

    def to_bytes(self) -> bytes:
        return bytes([TERMS_ENCODING_VERSION, self.kind])


@dataclass(frozen=True)
class Standard:
    """Exit on the normal unlock schedule."""

    kind = TermsKind.STANDARD

    def to_bytes(self) -> bytes:
        return bytes([TERMS_ENCODING_VERSION, self.kind])


@dataclass(frozen=True)
class Delayed:
    """Exit after waiting an additional number of blocks."""

    blocks: int

    kind = TermsKind.DELAYED

    def __post_init__(self):
        if isinstance(self.blocks, bool) or not isinstance(self.blocks, int):
            raise InvalidExitNoteError("Delayed blocks must be an integer")
        if not 0 <= self.blocks <= MAX_U64:
            raise InvalidExitNoteError("Delayed blocks must fit in an unsigned 64-bit integer")

    def to_bytes(self) -> bytes:
        return bytes([TERMS_ENCODING_VERSION, self.kind]) + struct.pack(">Q", self.blocks)


@dataclass(frozen=True)
class Custom:
    """Caller-supplied bounds, both in basis points (0-10000)."""

    min_rate_bps: int
    max_slippage_bps: int

    kind = TermsKind.CUSTOM

    def __post_init__(self):
        for name in ("min_rate_bps", "max_slippage_bps"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidExitNoteError(f"{name} must be an integer")
            if not 0 <= value <= MAX_BPS:
                raise InvalidExitNoteError(f"{name} must be between 0 and {MAX_BPS}, got {value}")

    def to_bytes(self) -> bytes:
        return bytes([TERMS_ENCODING_VERSION, self.kind]) + struct.pack(
            ">HH", self.min_rate_bps, self.max_slippage_bps
        )


ExitTerms = Union[Immediate, Standard, Delayed, Custom]

EXIT_TERMS_TYPES = (Immediate, Standard, Delayed, Custom)

_PAYLOAD_SIZES = {
    TermsKind.IMMEDIATE: 0,
    TermsKind.STANDARD: 0,
    TermsKind.DELAYED: 8,
    TermsKind.CUSTOM: 4,
}


def terms_from_bytes(data: bytes) -> ExitTerms:
    """
    Decode exit terms from their canonical encoding.

    Args:
        data: Exactly one encoded terms value

    Returns:
        ExitTerms: The decoded variant

    Raises:
        InvalidExitNoteError: On unknown version or kind, truncation or
            trailing bytes
    """
    if len(data) < 2:
        raise InvalidExitNoteError("Empty terms data")

    version, raw_kind = data[0], data[1]
    if version != TERMS_ENCODING_VERSION:
        raise InvalidExitNoteError(f"Unsupported terms encoding version: {version}")

    try:
        kind = TermsKind(raw_kind)
    except ValueError:
        raise InvalidExitNoteError(f"Unknown terms type: {raw_kind}") from None

    payload = data[2:]
    if len(payload) != _PAYLOAD_SIZES[kind]:
        raise InvalidExitNoteError(
            f"{kind.name.title()} terms expect {_PAYLOAD_SIZES[kind]} payload bytes, got {len(payload)}"
        )

    if kind is TermsKind.IMMEDIATE:
        return Immediate()
    if kind is TermsKind.STANDARD:
        return Standard()
    if kind is TermsKind.DELAYED:
        (blocks,) = struct.unpack(">Q", payload)
        return Delayed(blocks=blocks)
    min_rate_bps, max_slippage_bps = struct.unpack(">HH", payload)
    return Custom(min_rate_bps=min_rate_bps, max_slippage_bps=max_slippage_bps)
