"""
Domain-separated hash functions for ATPM.

Every hash call includes a unique domain tag so that outputs for
different protocol roles (metadata offset, token point, proof challenge,
nonce, hidden metadata) are cryptographically independent, even when
fed identical data.

Convention follows BIP-340 tagged hashes:

    H_tag(x) = SHA-256( SHA-256(tag) ‖ SHA-256(tag) ‖ x )

Hash-to-scalar uses a 512-bit "wide" output (two counter-separated
tagged hashes) before reduction, so the bias is negligible even for the
252-bit ed25519 group order.
"""

from __future__ import annotations

import hashlib
from typing import Any, Type, TypeVar

from .field import FieldScalar, RandBytes

S = TypeVar("S", bound=FieldScalar)

# ── domain tags ─────────────────────────────────────────────────────────
TAG_METADATA = b"ATPM/v1/metadata"
TAG_TOKEN    = b"ATPM/v1/token_point"
TAG_HIDDEN   = b"ATPM/v1/hidden_metadata"
TAG_DLEQ     = b"ATPM/v1/dleq_proof"
TAG_BATCH    = b"ATPM/v1/dleq_batch"
TAG_NONCE    = b"ATPM/v1/nonce"
TAG_LOG      = b"ATPM/v1/log_id"

TOKEN_ID_BYTES = 16


# ── internal helpers ────────────────────────────────────────────────────
def _tagged_hasher(tag: bytes) -> "hashlib._Hash":
    """Return a SHA-256 context pre-loaded with the BIP-340 tag prefix."""
    tag_hash = hashlib.sha256(tag).digest()
    h = hashlib.sha256()
    h.update(tag_hash)
    h.update(tag_hash)
    return h


def encode_item(item: Any) -> bytes:
    """
    Canonical encoding of a protocol element for hashing.

    Length-prefixing is used for variable-length items (bytes, lists)
    to ensure unambiguous parsing.  Scalars and points contribute their
    fixed-width canonical encoding.
    """
    if isinstance(item, (bytes, bytearray)):
        return len(item).to_bytes(4, "big") + bytes(item)
    if isinstance(item, int):
        return item.to_bytes(32, "big")
    if isinstance(item, (list, tuple)):
        parts = b"".join(encode_item(x) for x in item)
        return len(item).to_bytes(4, "big") + parts
    if hasattr(item, "to_bytes"):
        return item.to_bytes()
    return str(item).encode("utf-8")


def tagged_hash(tag: bytes, *args: Any) -> bytes:
    """Compute BIP-340 tagged hash over arbitrary protocol elements."""
    h = _tagged_hasher(tag)
    for a in args:
        h.update(encode_item(a))
    return h.digest()


def tagged_scalar(scalar_cls: Type[S], tag: bytes, *args: Any) -> S:
    """Hash to scalar: H_tag(0, *args) ‖ H_tag(1, *args) → Z_q."""
    wide = tagged_hash(tag, 0, *args) + tagged_hash(tag, 1, *args)
    return scalar_cls(int.from_bytes(wide, "big"))


# ── public hash functions ───────────────────────────────────────────────

def hash_metadata(scalar_cls: Type[S], metadata: bytes) -> S:
    """
    Metadata offset  h = H_m(metadata)  used for key derivation.

    ``sk_m = sk + h``  and  ``pk_m = pk + h·G``.
    """
    return tagged_scalar(scalar_cls, TAG_METADATA, metadata)


def token_message(token_id: bytes, metadata: bytes) -> bytes:
    """Input to hash-to-curve: binds the token id to its metadata."""
    return encode_item(token_id) + encode_item(metadata)


def token_digest(nonce: bytes, hidden: bytes) -> bytes:
    """Token id carrying hidden metadata:  H_hidden(hidden, nonce)[:16]."""
    return tagged_hash(TAG_HIDDEN, hidden, nonce)[:TOKEN_ID_BYTES]


def hash_dleq(scalar_cls: Type[S], *elements: Any) -> S:
    """Fiat-Shamir challenge for a DLEQ proof."""
    return tagged_scalar(scalar_cls, TAG_DLEQ, *elements)


def hash_batch_coefficient(scalar_cls: Type[S], seed: bytes, index: int) -> S:
    """Coefficient  c_i  of the batched-proof random linear combination."""
    return tagged_scalar(scalar_cls, TAG_BATCH, seed, index)


def hash_batch_seed(*elements: Any) -> bytes:
    """Seed binding the key and every (blinded, signed) pair of a batch."""
    return tagged_hash(TAG_BATCH, *elements)


def hash_nonce(
    scalar_cls: Type[S],
    secret: FieldScalar,
    statement: bytes,
    randbytes: RandBytes,
) -> S:
    """
    Hedged proof nonce.

    Combines the secret, the full statement and fresh randomness, so a
    repeated or weak randomness source alone never repeats a nonce for
    different statements.
    """
    aux = randbytes(32)
    if len(aux) != 32:
        raise RuntimeError("randomness source returned short read")
    while True:
        k = tagged_scalar(scalar_cls, TAG_NONCE, secret, statement, aux)
        if not k.is_zero():
            return k
        aux = randbytes(32)


def log_id(token_id: bytes) -> str:
    """Short, non-reversible label for a token id in log lines."""
    return tagged_hash(TAG_LOG, token_id)[:6].hex()
