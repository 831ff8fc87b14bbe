"""
Zero-knowledge proofs of correct issuance.

1. **DLEQ Proof** — proves that two pairs of points share the same
   discrete-log ratio:  log_G(Y) = log_H(Z).  The signer uses it to show
   that the blind signature  W  was produced with the metadata key:
   ``pk_m = k·G``  and  ``T' = k·W``  for the same secret  k = sk + H(m).

2. **Batched DLEQ Proof** — one DLEQ proof over a random linear
   combination of many  (T'_i, W_i)  pairs.  Coefficients are derived
   from a hash of every pair, so the signer cannot choose them.

Both are made non-interactive via Fiat-Shamir in the Random Oracle
Model.  The proofs are generic: they work over any group whose points
support ``+``, scalar ``*`` and ``to_bytes``.

References
----------
- Chaum & Pedersen (1992). "Wallet Databases with Observers."
  CRYPTO 1992.
- Henry (2014). "Efficient Zero-Knowledge Proofs and Applications."
  (batched DLEQ via random linear combinations)
- Silde & Strand (2022). "Anonymous Tokens with Public Metadata and
  Applications to Private Contact Tracing."  FC 2022.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any, Sequence, Tuple, Type

from .field import FieldScalar, RandBytes
from .hash import (
    encode_item,
    hash_dleq,
    hash_nonce,
    hash_batch_seed,
    hash_batch_coefficient,
)


# ── DLEQ (Discrete-Log Equality) Proof ─────────────────────────────────

@dataclass(frozen=True)
class DLEQProof:
    """
    Proves  log_G(Y) = log_H(Z)  without revealing the common scalar.

    Given:   Y = x·G,   Z = x·H
    Prove:   same x in both.

    Protocol (Fiat-Shamir):
        k  = H_nonce(x, statement, fresh randomness)
        A1 = k·G,   A2 = k·H              (commitment)
        c  = H(G, Y, H, Z, A1, A2, ctx)   (challenge)
        z  = k + c·x                      (response)

    Verify:
        c  == H(G, Y, H, Z, A1, A2, ctx)
        z·G  ==  A1 + c·Y
        z·H  ==  A2 + c·Z
    """

    A1: Any
    A2: Any
    c: FieldScalar
    z: FieldScalar

    @staticmethod
    def prove(
        secret: FieldScalar,
        G_base: Any,
        Y: Any,
        H_base: Any,
        Z: Any,
        context: bytes = b"",
        randbytes: RandBytes = secrets.token_bytes,
    ) -> DLEQProof:
        """
        Prove that  Y = secret·G_base  and  Z = secret·H_base.
        """
        scalar_cls = type(secret)
        statement = encode_item([G_base, Y, H_base, Z, context])
        k = hash_nonce(scalar_cls, secret, statement, randbytes)
        A1 = k * G_base
        A2 = k * H_base
        c = hash_dleq(scalar_cls, G_base, Y, H_base, Z, A1, A2, context)
        z = k + c * secret
        return DLEQProof(A1=A1, A2=A2, c=c, z=z)

    def verify(
        self,
        G_base: Any,
        Y: Any,
        H_base: Any,
        Z: Any,
        context: bytes = b"",
    ) -> bool:
        """
        Verify the DLEQ proof.  Never raises on adversarial input.
        """
        try:
            scalar_cls = type(self.z)
            c = hash_dleq(
                scalar_cls, G_base, Y, H_base, Z, self.A1, self.A2, context,
            )
            if c != self.c:
                return False

            lhs1 = self.z * G_base
            rhs1 = self.A1 + (c * Y)

            lhs2 = self.z * H_base
            rhs2 = self.A2 + (c * Z)

            return (lhs1 == rhs1) and (lhs2 == rhs2)
        except (ValueError, TypeError):
            return False

    def to_bytes(self) -> bytes:
        return (
            self.A1.to_bytes()
            + self.A2.to_bytes()
            + self.c.to_bytes()
            + self.z.to_bytes()
        )

    @classmethod
    def encoded_length(cls, point_cls: Type, scalar_cls: Type[FieldScalar]) -> int:
        return 2 * point_cls.ENCODED_BYTES + 2 * scalar_cls.BYTES

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        point_cls: Type,
        scalar_cls: Type[FieldScalar],
    ) -> DLEQProof:
        """Decode; raises ``ValueError`` on any malformed component."""
        if len(data) != cls.encoded_length(point_cls, scalar_cls):
            raise ValueError("proof has the wrong length")
        pb, sb = point_cls.ENCODED_BYTES, scalar_cls.BYTES
        A1 = point_cls.from_bytes(data[:pb])
        A2 = point_cls.from_bytes(data[pb:2 * pb])
        c = scalar_cls.from_bytes(data[2 * pb:2 * pb + sb])
        z = scalar_cls.from_bytes(data[2 * pb + sb:])
        return cls(A1=A1, A2=A2, c=c, z=z)


# ── Batched DLEQ Proof ──────────────────────────────────────────────────

def combine_pairs(
    scalar_cls: Type[FieldScalar],
    G_base: Any,
    Y: Any,
    blinded: Sequence[Any],
    signed: Sequence[Any],
    context: bytes = b"",
) -> Tuple[Any, Any]:
    """
    Random linear combination  (M, W) = (Σ c_i·T'_i, Σ c_i·W_i).

    If every  T'_i = k·W_i  then  M = k·W; a single cheating pair makes
    the relation fail except with probability 1/q.
    """
    if len(blinded) != len(signed) or not blinded:
        raise ValueError("batch needs equally many blinded and signed points")
    seed = hash_batch_seed(G_base, Y, list(blinded), list(signed), context)
    M = W = None
    for i, (t, w) in enumerate(zip(blinded, signed)):
        c_i = hash_batch_coefficient(scalar_cls, seed, i)
        M = c_i * t if M is None else M + c_i * t
        W = c_i * w if W is None else W + c_i * w
    return M, W


@dataclass(frozen=True)
class BatchDLEQProof:
    """One DLEQ proof covering a whole batch of blind signatures."""

    proof: DLEQProof

    @staticmethod
    def prove(
        secret: FieldScalar,
        G_base: Any,
        Y: Any,
        blinded: Sequence[Any],
        signed: Sequence[Any],
        context: bytes = b"",
        randbytes: RandBytes = secrets.token_bytes,
    ) -> BatchDLEQProof:
        M, W = combine_pairs(type(secret), G_base, Y, blinded, signed, context)
        return BatchDLEQProof(
            DLEQProof.prove(secret, G_base, Y, W, M, context, randbytes)
        )

    def verify(
        self,
        G_base: Any,
        Y: Any,
        blinded: Sequence[Any],
        signed: Sequence[Any],
        context: bytes = b"",
    ) -> bool:
        try:
            M, W = combine_pairs(
                type(self.proof.z), G_base, Y, blinded, signed, context,
            )
        except (ValueError, TypeError):
            return False
        return self.proof.verify(G_base, Y, W, M, context)

    def to_bytes(self) -> bytes:
        return self.proof.to_bytes()

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        point_cls: Type,
        scalar_cls: Type[FieldScalar],
    ) -> BatchDLEQProof:
        return cls(DLEQProof.from_bytes(data, point_cls, scalar_cls))
