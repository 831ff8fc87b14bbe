"""
Prime-order ed25519 subgroup arithmetic via libsodium.

Group operations go through ``nacl.bindings`` (PyNaCl's thin libsodium
wrapper).  Scalars are kept as Python integers modulo the subgroup
order *L* and serialised little-endian, the libsodium convention.

Only points of the prime-order subgroup are ever constructed:
``from_bytes`` rejects non-canonical encodings, small-order points and
points with a torsion component (``crypto_core_ed25519_is_valid_point``),
and hash-to-curve clears the cofactor.

References
----------
- RFC 8032 §5.1      ed25519 parameters
- RFC 9380 §6.7.1    Elligator 2 (used by ``crypto_core_ed25519_from_uniform``)
"""

from __future__ import annotations

from typing import Optional

import nacl.bindings as _sodium

from .field import FieldScalar
from .hash import tagged_hash, TAG_TOKEN

# ── ed25519 constants ───────────────────────────────────────────────────
ORDER = 2**252 + 27742317777372353535851937790883648493
POINT_BYTES = 32
SCALAR_BYTES = 32
_IDENTITY = b"\x01" + b"\x00" * 31


class EdScalar(FieldScalar):
    """Element of  Z_L, little-endian on the wire."""

    ORDER = ORDER
    BYTES = SCALAR_BYTES
    BYTEORDER = "little"

    __slots__ = ()


class EdPoint:
    """
    Element of the prime-order subgroup of edwards25519.

    Stored as its canonical 32-byte compressed encoding; the identity is
    a flag, mirroring :class:`atpm.curve.Point`.
    """

    __slots__ = ("_b", "_inf")

    ENCODED_BYTES = POINT_BYTES

    def __init__(self, *, encoded: Optional[bytes] = None, infinity: bool = False):
        self._b = encoded
        self._inf = infinity

    # constructors -----------------------------------------------------------
    @classmethod
    def generator(cls) -> EdPoint:
        return cls(encoded=_sodium.crypto_scalarmult_ed25519_base_noclamp(
            EdScalar.one().to_bytes()))

    @classmethod
    def identity(cls) -> EdPoint:
        return cls(infinity=True)

    @classmethod
    def _wrap(cls, encoded: bytes) -> EdPoint:
        if encoded == _IDENTITY:
            return cls.identity()
        return cls(encoded=encoded)

    @classmethod
    def from_bytes(cls, data: bytes) -> EdPoint:
        """Decode a canonical prime-order point; ``ValueError`` otherwise."""
        if len(data) != POINT_BYTES:
            raise ValueError(f"need {POINT_BYTES} bytes, got {len(data)}")
        if not _sodium.crypto_core_ed25519_is_valid_point(bytes(data)):
            raise ValueError("bytes do not encode a prime-order ed25519 point")
        return cls(encoded=bytes(data))

    @classmethod
    def hash_to_curve(cls, data: bytes) -> EdPoint:
        """Elligator 2 on a tagged hash, cofactor cleared by libsodium."""
        uniform = tagged_hash(TAG_TOKEN, b"edwards25519", data)
        point = cls._wrap(_sodium.crypto_core_ed25519_from_uniform(uniform))
        if point.is_inf():
            raise RuntimeError("hash-to-curve produced the identity")
        return point

    # serialisation ----------------------------------------------------------
    def to_bytes(self) -> bytes:
        if self._inf:
            raise ValueError("the identity has no encoding")
        return self._b  # type: ignore[return-value]

    def is_inf(self) -> bool:
        return self._inf

    # group operations -------------------------------------------------------
    def _smul(self, s: EdScalar) -> EdPoint:
        if self._inf or s.is_zero():
            return EdPoint.identity()
        return EdPoint(encoded=_sodium.crypto_scalarmult_ed25519_noclamp(
            s.to_bytes(), self._b))

    def __neg__(self) -> EdPoint:
        if self._inf:
            return self
        raw = bytearray(self._b)  # type: ignore[arg-type]
        raw[31] ^= 0x80           # flip the sign of x
        return EdPoint(encoded=bytes(raw))

    def __add__(self, o: EdPoint) -> EdPoint:
        if not isinstance(o, EdPoint):
            return NotImplemented
        if self._inf:
            return o
        if o._inf:
            return self
        return EdPoint._wrap(_sodium.crypto_core_ed25519_add(self._b, o._b))

    def __sub__(self, o: EdPoint) -> EdPoint:
        return self + (-o)

    def __rmul__(self, s) -> EdPoint:
        if isinstance(s, EdScalar):
            return self._smul(s)
        if isinstance(s, int):
            return self._smul(EdScalar(s))
        return NotImplemented

    def __eq__(self, o: object) -> bool:
        if not isinstance(o, EdPoint):
            return False
        if self._inf or o._inf:
            return self._inf and o._inf
        return self._b == o._b

    def __hash__(self) -> int:
        return hash(b"" if self._inf else self._b)

    def __repr__(self) -> str:
        if self._inf:
            return "EdPoint(∞)"
        return f"EdPoint(0x{self._b.hex()[:16]}…)"  # type: ignore[union-attr]


G = EdPoint.generator()
