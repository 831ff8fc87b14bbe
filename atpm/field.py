"""
Prime-field scalars  Z_q  shared by every backend.

Each group module subclasses :class:`FieldScalar` with its own order,
width and byte order.  Arithmetic is pure Python; the group libraries
only ever see serialised scalars.
"""

from __future__ import annotations

import secrets
from typing import Callable, List, Type, TypeVar

RandBytes = Callable[[int], bytes]

S = TypeVar("S", bound="FieldScalar")


class FieldScalar:
    """Element of  Z_q  where *q* is the subclass's ``ORDER``."""

    ORDER: int = 0
    BYTES: int = 32
    BYTEORDER: str = "big"

    __slots__ = ("_v",)

    def __init__(self, value: int) -> None:
        self._v = value % self.ORDER

    # constructors -----------------------------------------------------------
    @classmethod
    def zero(cls: Type[S]) -> S:
        return cls(0)

    @classmethod
    def one(cls: Type[S]) -> S:
        return cls(1)

    @classmethod
    def random(cls: Type[S], randbytes: RandBytes = secrets.token_bytes) -> S:
        """Uniform in [1, q-1] via rejection sampling."""
        mask = (1 << cls.ORDER.bit_length()) - 1
        while True:
            raw = randbytes(cls.BYTES)
            if len(raw) != cls.BYTES:
                raise RuntimeError("randomness source returned short read")
            c = int.from_bytes(raw, "big") & mask
            if 0 < c < cls.ORDER:
                return cls(c)

    @classmethod
    def from_bytes(cls: Type[S], data: bytes) -> S:
        if len(data) != cls.BYTES:
            raise ValueError(f"need {cls.BYTES} bytes, got {len(data)}")
        v = int.from_bytes(data, cls.BYTEORDER)
        if v >= cls.ORDER:
            raise ValueError("scalar out of range")
        return cls(v)

    # serialisation ----------------------------------------------------------
    def to_bytes(self) -> bytes:
        return self._v.to_bytes(self.BYTES, self.BYTEORDER)

    @property
    def value(self) -> int:
        return self._v

    def is_zero(self) -> bool:
        return self._v == 0

    # arithmetic -------------------------------------------------------------
    def _same(self, o: object) -> bool:
        return type(o) is type(self)

    def __add__(self: S, o: S) -> S:
        if not self._same(o):
            return NotImplemented
        return type(self)(self._v + o._v)

    def __radd__(self, o):
        if isinstance(o, int) and o == 0:
            return self                       # for sum()
        return NotImplemented

    def __sub__(self: S, o: S) -> S:
        if not self._same(o):
            return NotImplemented
        return type(self)(self._v - o._v)

    def __mul__(self, o):
        # Scalar · Point falls through to Point.__rmul__
        if self._same(o):
            return type(self)(self._v * o._v)
        return NotImplemented

    def __rmul__(self, o):
        if isinstance(o, int):
            return type(self)(o * self._v)
        return NotImplemented

    def __neg__(self: S) -> S:
        return type(self)(-self._v)

    def inv(self: S) -> S:
        """Multiplicative inverse via Fermat's little theorem."""
        if self._v == 0:
            raise ZeroDivisionError("cannot invert zero scalar")
        return type(self)(pow(self._v, self.ORDER - 2, self.ORDER))

    # comparison / hashing ---------------------------------------------------
    def __eq__(self, o: object) -> bool:
        if self._same(o):
            return self._v == o._v  # type: ignore[attr-defined]
        if isinstance(o, int):
            return self._v == o % self.ORDER
        return False

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._v))

    def __bool__(self) -> bool:
        return self._v != 0

    def __repr__(self) -> str:
        # never print secret material in full
        return f"{type(self).__name__}(…)"


# ── batch inverse (Montgomery's trick) ──────────────────────────────────
def batch_inverse(scalars: List[S]) -> List[S]:
    """
    Invert a list of non-zero scalars using a single modular
    exponentiation (Montgomery's trick).

    Cost: 3(n-1) multiplications + 1 inversion  vs  n inversions naïvely.

    Raises ``ZeroDivisionError`` if any element is zero.
    """
    n = len(scalars)
    if n == 0:
        return []
    if n == 1:
        return [scalars[0].inv()]

    # prefix products  p[i] = s[0] * s[1] * … * s[i]
    prefix = [scalars[0]] * n
    for i in range(1, n):
        prefix[i] = prefix[i - 1] * scalars[i]

    # single inversion of the total product
    inv_all = prefix[-1].inv()

    # back-substitution
    result = [scalars[0]] * n
    for i in range(n - 1, 0, -1):
        result[i] = prefix[i - 1] * inv_all
        inv_all = inv_all * scalars[i]
    result[0] = inv_all
    return result
