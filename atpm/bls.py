"""
BLS12-381 groups and pairing via ``py_ecc``.

Tokens and signatures live in G1 (48-byte compressed), issuer keys in
G2 (96-byte compressed).  Verification is a product-of-pairings check
with a single final exponentiation:

    e(σ, U) · e(T, -G2) == 1    ⇔    e(σ, U) == e(T, G2)

``py_ecc`` is pure Python, so a pairing costs on the order of a
second.  This backend trades speed for public verifiability.

References
----------
- draft-irtf-cfrg-pairing-friendly-curves §4.2.1  BLS12-381
- RFC 9380 §8.8.1                                 hash-to-G1 suite
- ZCash serialisation format                      point compression
"""

from __future__ import annotations

import hashlib

from py_ecc.optimized_bls12_381 import (
    FQ12,
    G1 as _G1,
    G2 as _G2,
    Z1,
    Z2,
    add,
    b,
    b2,
    curve_order,
    eq,
    final_exponentiate,
    is_inf,
    is_on_curve,
    multiply,
    neg,
    pairing,
)
from py_ecc.bls.hash_to_curve import hash_to_G1
from py_ecc.bls.point_compression import (
    compress_G1,
    compress_G2,
    decompress_G1,
    decompress_G2,
)
from py_ecc.bls.typing import G1Compressed, G2Compressed

from .field import FieldScalar

ORDER = curve_order
G1_BYTES = 48
G2_BYTES = 96
DST_G1 = b"ATPM-V01-CS01-with-BLS12381G1_XMD:SHA-256_SSWU_RO_"


class BlsScalar(FieldScalar):
    ORDER = curve_order
    BYTES = 32
    BYTEORDER = "big"

    __slots__ = ()


class _BlsPoint:
    """Common wrapper around a ``py_ecc`` optimized (Jacobian) point."""

    __slots__ = ("_p",)

    _ZERO = None

    def __init__(self, pt) -> None:
        self._p = pt

    @classmethod
    def identity(cls):
        return cls(cls._ZERO)

    def is_inf(self) -> bool:
        return is_inf(self._p)

    def _check_subgroup(self) -> None:
        if self.is_inf():
            raise ValueError("the identity is not a valid element here")
        if not is_inf(multiply(self._p, curve_order)):
            raise ValueError("point is not in the prime-order subgroup")

    def __add__(self, o):
        if type(o) is not type(self):
            return NotImplemented
        return type(self)(add(self._p, o._p))

    def __neg__(self):
        return type(self)(neg(self._p))

    def __sub__(self, o):
        return self + (-o)

    def __rmul__(self, s):
        if isinstance(s, BlsScalar):
            s = s.value
        if isinstance(s, int):
            return type(self)(multiply(self._p, s % curve_order))
        return NotImplemented

    def __eq__(self, o: object) -> bool:
        if type(o) is not type(self):
            return False
        return eq(self._p, o._p)  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash(self.to_bytes())

    def __repr__(self) -> str:
        if self.is_inf():
            return f"{type(self).__name__}(∞)"
        return f"{type(self).__name__}(0x{self.to_bytes().hex()[:16]}…)"


class G1Point(_BlsPoint):
    """Element of G1: token points and signatures."""

    __slots__ = ()

    _ZERO = Z1
    ENCODED_BYTES = G1_BYTES

    @classmethod
    def generator(cls) -> G1Point:
        return cls(_G1)

    @classmethod
    def from_bytes(cls, data: bytes) -> G1Point:
        if len(data) != G1_BYTES:
            raise ValueError(f"need {G1_BYTES} bytes, got {len(data)}")
        try:
            pt = decompress_G1(G1Compressed(int.from_bytes(data, "big")))
        except Exception as exc:  # py_ecc raises ValueError or assertion errors
            raise ValueError("bytes do not encode a G1 point") from exc
        if not is_on_curve(pt, b):
            raise ValueError("point is not on the curve")
        point = cls(pt)
        point._check_subgroup()
        return point

    @classmethod
    def hash_to_curve(cls, data: bytes) -> G1Point:
        return cls(hash_to_G1(data, DST_G1, hashlib.sha256))

    def to_bytes(self) -> bytes:
        return int(compress_G1(self._p)).to_bytes(G1_BYTES, "big")


class G2Point(_BlsPoint):
    """Element of G2: issuer public keys."""

    __slots__ = ()

    _ZERO = Z2
    ENCODED_BYTES = G2_BYTES

    @classmethod
    def generator(cls) -> G2Point:
        return cls(_G2)

    @classmethod
    def from_bytes(cls, data: bytes) -> G2Point:
        if len(data) != G2_BYTES:
            raise ValueError(f"need {G2_BYTES} bytes, got {len(data)}")
        z1 = int.from_bytes(data[:48], "big")
        z2 = int.from_bytes(data[48:], "big")
        try:
            pt = decompress_G2(G2Compressed((z1, z2)))
        except Exception as exc:
            raise ValueError("bytes do not encode a G2 point") from exc
        if not is_on_curve(pt, b2):
            raise ValueError("point is not on the twist")
        point = cls(pt)
        point._check_subgroup()
        return point

    def to_bytes(self) -> bytes:
        z1, z2 = compress_G2(self._p)
        return int(z1).to_bytes(48, "big") + int(z2).to_bytes(48, "big")


def pairing_check(sig: G1Point, key: G2Point, token: G1Point) -> bool:
    """Check  e(sig, key) == e(token, G2)  with one final exponentiation."""
    if sig.is_inf() or key.is_inf() or token.is_inf():
        return False
    product = (
        pairing(key._p, sig._p, final_exponentiate=False)
        * pairing(neg(_G2), token._p, final_exponentiate=False)
    )
    return final_exponentiate(product) == FQ12.one()


G1 = G1Point.generator()
G2 = G2Point.generator()
