"""
Token data structures exchanged between client, signer and verifier.

Group elements travel as their canonical encodings (``bytes``); only the
scheme decodes them, so every decoding goes through the same validation.
Client-side secrets live in :class:`ClientState`, which refuses to be
used twice.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from .errors import ClientStateReused, InvalidMetadata, MalformedEncoding
from .hash import TOKEN_ID_BYTES, token_digest

MetadataLike = Union[bytes, bytearray, str]


def validate_metadata(metadata: MetadataLike, max_length: int) -> bytes:
    """
    Normalise metadata to ``bytes`` and enforce format constraints.

    Strings are UTF-8 encoded.  Empty metadata and metadata longer than
    *max_length* bytes are rejected with ``InvalidMetadata``.
    """
    if isinstance(metadata, str):
        metadata = metadata.encode("utf-8")
    if not isinstance(metadata, (bytes, bytearray)):
        raise InvalidMetadata(
            f"metadata must be bytes or str, not {type(metadata).__name__}"
        )
    if not metadata:
        raise InvalidMetadata("metadata must not be empty")
    if len(metadata) > max_length:
        raise InvalidMetadata(
            f"metadata is {len(metadata)} bytes, limit is {max_length}"
        )
    return bytes(metadata)


# ── token identifier ────────────────────────────────────────────────────

@dataclass(frozen=True)
class TokenIdentifier:
    """
    The single-use value a credential is about.

    ``nonce`` is 16 random bytes.  With ``hidden`` metadata the effective
    id becomes  H_hidden(hidden, nonce)[:16]: the signer never sees it,
    the verifier recomputes it when the holder reveals both parts.
    """

    nonce: bytes
    hidden: Optional[bytes] = None

    def __post_init__(self) -> None:
        if len(self.nonce) != TOKEN_ID_BYTES:
            raise MalformedEncoding(
                f"token nonce must be {TOKEN_ID_BYTES} bytes"
            )

    @classmethod
    def generate(
        cls,
        hidden: Optional[bytes] = None,
        randbytes=secrets.token_bytes,
    ) -> TokenIdentifier:
        nonce = randbytes(TOKEN_ID_BYTES)
        if len(nonce) != TOKEN_ID_BYTES:
            raise RuntimeError("randomness source returned short read")
        return cls(nonce=nonce, hidden=None if hidden is None else bytes(hidden))

    def digest(self) -> bytes:
        """The 16-byte id hashed to the curve and stored on redemption."""
        if self.hidden is None:
            return self.nonce
        return token_digest(self.nonce, self.hidden)


# ── messages ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BlindedToken:
    """``r·P_t`` plus the public metadata; safe to send to the signer."""

    point: bytes
    metadata: bytes


@dataclass(frozen=True)
class BlindSignature:
    """Signer output for one blinded token."""

    point: bytes
    proof: Optional[Any] = None        # DLEQProof when proofs are enabled


@dataclass(frozen=True)
class BlindedBatch:
    points: List[bytes]
    metadata: bytes


@dataclass(frozen=True)
class BatchBlindSignature:
    points: List[bytes]
    proof: Optional[Any] = None        # BatchDLEQProof when proofs are enabled


@dataclass(frozen=True)
class Credential:
    """A finished, redeemable token."""

    token: TokenIdentifier
    metadata: bytes
    signature: bytes

    @property
    def token_id(self) -> bytes:
        return self.token.digest()


# ── client-side secrets ─────────────────────────────────────────────────

@dataclass
class ClientState:
    """
    Secret per-issuance state held by the client between ``begin`` and
    ``finish``.  The blinding factor MUST be used exactly once, then erased.
    """

    token: TokenIdentifier
    metadata: bytes
    blinding: Any                      # Scalar r
    token_point: Any                   # P_t
    blinded_point: Any                 # r·P_t
    used: bool = False

    def mark_used(self) -> None:
        if self.used:
            raise ClientStateReused("client state reused: blinding factor is spent")
        self.used = True

    def clear(self) -> None:
        """Drop the blinding factor (best-effort in Python)."""
        self.blinding = None


@dataclass
class BatchClientState:
    metadata: bytes
    states: List[ClientState] = field(default_factory=list)
    used: bool = False

    def mark_used(self) -> None:
        if self.used:
            raise ClientStateReused("client state reused: blinding factors are spent")
        self.used = True

    def clear(self) -> None:
        for st in self.states:
            st.clear()
