"""
Elliptic curve arithmetic on secp256k1 via libsecp256k1.

Every expensive group operation (scalar multiplication, point addition)
is delegated to the C library ``coincurve``, which wraps Bitcoin Core's
libsecp256k1.  This backs the NIZK token scheme.

Install
-------
    pip install coincurve>=18.0.0

References
----------
- SEC 2 v2 §2.4.1  secp256k1 domain parameters
- BIP-340            tagged hashes
"""

from __future__ import annotations

from typing import Optional

from coincurve import PrivateKey as _SK, PublicKey as _PK

from .field import FieldScalar
from .hash import tagged_hash, TAG_TOKEN

# ── secp256k1 constants ─────────────────────────────────────────────────
ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
FIELD_PRIME = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
SCALAR_BYTES = 32
COMPRESSED_BYTES = 33


# ── Scalar  (Z_q arithmetic, pure Python — field ops are fast) ──────────
class Scalar(FieldScalar):
    """Element of the scalar field  Z_q  where *q* = ``ORDER``."""

    ORDER = ORDER
    BYTES = SCALAR_BYTES
    BYTEORDER = "big"

    __slots__ = ()


# ── Point  (secp256k1 group element via libsecp256k1) ───────────────────
class Point:
    """
    Point on secp256k1.

    The identity (point at infinity) is represented by a flag rather than
    a ``coincurve.PublicKey``; this matches the algebraic convention
    *P + O = P* and avoids library quirks around serialising the identity.
    The identity has no wire encoding: decoding only ever yields proper
    group elements.
    """

    __slots__ = ("_pk", "_inf")

    ENCODED_BYTES = COMPRESSED_BYTES

    def __init__(self, *, pk: Optional[_PK] = None, infinity: bool = False):
        self._pk: Optional[_PK] = pk
        self._inf: bool = infinity

    # constructors -----------------------------------------------------------
    @classmethod
    def generator(cls) -> Point:
        """Standard base point *G*."""
        return cls(pk=_SK(b"\x00" * 31 + b"\x01").public_key)

    @classmethod
    def identity(cls) -> Point:
        """Point at infinity — additive identity."""
        return cls(infinity=True)

    @classmethod
    def from_bytes(cls, data: bytes) -> Point:
        """
        Deserialise a SEC 1 compressed point (33 B).

        Raises ``ValueError`` for anything that is not a point on the
        curve (secp256k1 has cofactor 1, so every curve point is in the
        prime-order group).
        """
        if len(data) != COMPRESSED_BYTES or data[0] not in (2, 3):
            raise ValueError("expected a 33-byte compressed point")
        try:
            return cls(pk=_PK(bytes(data)))
        except Exception as exc:  # coincurve raises bare ValueError/TypeError
            raise ValueError("bytes do not encode a secp256k1 point") from exc

    @classmethod
    def hash_to_curve(cls, data: bytes) -> Point:
        """
        Map arbitrary bytes to a point with unknown discrete log.

        Try-and-increment: hash a counter to a candidate x-coordinate,
        check whether x³ + 7 has a square root mod p, and pick the
        y-parity from a second hash bit.  Variable time in the number of
        attempts, which only depends on public data.
        """
        for counter in range(256):
            digest = tagged_hash(TAG_TOKEN, b"secp256k1", data, counter)
            x_int = int.from_bytes(digest, "big")
            if x_int == 0 or x_int >= FIELD_PRIME:
                continue
            y_sq = (pow(x_int, 3, FIELD_PRIME) + 7) % FIELD_PRIME
            # Euler criterion: y_sq^{(p-1)/2} == 1 mod p iff QR
            if pow(y_sq, (FIELD_PRIME - 1) // 2, FIELD_PRIME) != 1:
                continue
            parity = tagged_hash(TAG_TOKEN, b"parity", data, counter)[0] & 1
            try:
                return cls(pk=_PK(bytes([2 | parity]) + digest))
            except Exception:
                continue
        raise RuntimeError("hash-to-curve failed after 256 attempts")

    # serialisation ----------------------------------------------------------
    def to_bytes(self) -> bytes:
        if self._inf:
            raise ValueError("the identity has no encoding")
        return self._pk.format(compressed=True)  # type: ignore[union-attr]

    def is_inf(self) -> bool:
        return self._inf

    # group operations -------------------------------------------------------
    def _smul(self, s: Scalar) -> Point:
        """Scalar multiplication  s · self  (C speed)."""
        if self._inf or s.is_zero():
            return Point.identity()
        copy = _PK(self._pk.format())  # type: ignore[union-attr]
        return Point(pk=copy.multiply(s.to_bytes()))

    def __neg__(self) -> Point:
        if self._inf:
            return self
        raw = bytearray(self._pk.format(compressed=True))  # type: ignore
        raw[0] ^= 0x01            # 0x02 ↔ 0x03 flip parity
        return Point(pk=_PK(bytes(raw)))

    def __add__(self, o: Point) -> Point:
        if not isinstance(o, Point):
            return NotImplemented
        if self._inf:
            return o
        if o._inf:
            return self
        # check for P + (-P) = O
        if self._pk.format() == (-o)._pk.format():  # type: ignore
            return Point.identity()
        return Point(pk=_PK.combine_keys(
            [self._pk, o._pk]))  # type: ignore[list-item]

    def __sub__(self, o: Point) -> Point:
        return self + (-o)

    def __rmul__(self, s) -> Point:
        if isinstance(s, Scalar):
            return self._smul(s)
        if isinstance(s, int):
            return self._smul(Scalar(s))
        return NotImplemented

    def __eq__(self, o: object) -> bool:
        if not isinstance(o, Point):
            return False
        if self._inf and o._inf:
            return True
        if self._inf or o._inf:
            return False
        return self._pk.format() == o._pk.format()  # type: ignore

    def __hash__(self) -> int:
        return hash(b"" if self._inf else self.to_bytes())

    def __repr__(self) -> str:
        if self._inf:
            return "Point(∞)"
        return f"Point(0x{self.to_bytes().hex()[:16]}…)"


# ── module-level generator ──────────────────────────────────────────────
G = Point.generator()
