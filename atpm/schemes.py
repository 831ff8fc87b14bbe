"""
Interchangeable algebraic backends for anonymous tokens with public
metadata.

Every backend implements the same capability set:

* **DeriveKey** — ``pk_m = pk + H_m(m)·G``,  ``sk_m = sk + H_m(m)``
* **Blind**     — ``T' = r·P_t``  with  ``P_t = H_t(id, m)``
* **Sign**      — ``W' = sk_m⁻¹·T'``
* **Unblind**   — ``W  = r⁻¹·W'``
* **Verify**    — backend specific (see below)

The signature  W = (sk + H_m(m))⁻¹·P_t  is the Boneh-Boyen style
construction of Silde & Strand.  Its inverse form is what binds the
metadata: a signature for  m₁  cannot be shifted into one for  m₂
without knowing  sk.

Backends
--------
``PairingScheme``   BLS12-381, publicly verifiable:
                    e(W, pk_m) == e(P_t, G2).
``EdwardsScheme``   ed25519 subgroup, privately verifiable:
                    sk_m·W == P_t.  DLEQ issuance proofs optional.
``NizkScheme``      secp256k1, privately verifiable, DLEQ issuance
                    proofs always attached.

Hash-to-scalar, hash-to-curve and the randomness source are injected at
construction so that signer and verifier share one definition and tests
can run from a seeded source.
"""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence, Tuple, Type

from . import bls, curve, edwards
from .config import DEFAULT_MAX_METADATA_LENGTH, SchemeKind, TokenConfig
from .errors import InternalError, MalformedEncoding
from .field import FieldScalar, RandBytes, batch_inverse
from .hash import hash_metadata, token_message
from .keys import IssuerKeyPair, MetadataKey
from .proofs import BatchDLEQProof, DLEQProof
from .tokens import MetadataLike, TokenIdentifier, validate_metadata


class TokenScheme(ABC):
    """Common token algebra; subclasses fix the groups and verification."""

    kind: SchemeKind
    publicly_verifiable: bool = False
    supports_proofs: bool = False

    scalar: Type[FieldScalar]
    point: Type                 # group of tokens and signatures
    key_point: Type             # group of issuer public keys
    key_generator: Any

    def __init__(
        self,
        *,
        proofs: bool = False,
        max_metadata_length: int = DEFAULT_MAX_METADATA_LENGTH,
        hash_to_scalar: Optional[Callable[[bytes], FieldScalar]] = None,
        hash_to_curve: Optional[Callable[[bytes], Any]] = None,
        randbytes: Optional[RandBytes] = None,
    ) -> None:
        if proofs and not self.supports_proofs:
            raise ValueError(f"{self.kind.value} scheme has no issuance proofs")
        self.proofs = proofs
        self.max_metadata_length = max_metadata_length
        self._hash_to_scalar = hash_to_scalar or self._default_hash_to_scalar
        self._hash_to_curve = hash_to_curve or self.point.hash_to_curve
        self.randbytes: RandBytes = randbytes or secrets.token_bytes

    def _default_hash_to_scalar(self, metadata: bytes) -> FieldScalar:
        return hash_metadata(self.scalar, metadata)

    # ── helpers ────────────────────────────────────────────────────────

    def metadata(self, metadata: MetadataLike) -> bytes:
        return validate_metadata(metadata, self.max_metadata_length)

    def random_scalar(self) -> FieldScalar:
        """Uniform nonzero scalar; randomness failures become InternalError."""
        try:
            return self.scalar.random(self.randbytes)
        except (OSError, RuntimeError) as exc:
            raise InternalError("randomness source failed") from exc

    def new_token(self, hidden: Optional[bytes] = None) -> TokenIdentifier:
        try:
            return TokenIdentifier.generate(hidden, self.randbytes)
        except (OSError, RuntimeError) as exc:
            raise InternalError("randomness source failed") from exc

    @property
    def proof_context(self) -> bytes:
        return b"ATPM/v1/" + self.kind.value.encode()

    # ── DeriveKey ──────────────────────────────────────────────────────

    def generate_keypair(self) -> IssuerKeyPair:
        sk = self.random_scalar()
        return IssuerKeyPair(secret_key=sk, public_key=sk * self.key_generator)

    def keypair_from_secret(self, secret: bytes) -> IssuerKeyPair:
        try:
            sk = self.scalar.from_bytes(secret)
        except ValueError as exc:
            raise MalformedEncoding(str(exc)) from exc
        if sk.is_zero():
            raise MalformedEncoding("secret key must be nonzero")
        return IssuerKeyPair(secret_key=sk, public_key=sk * self.key_generator)

    def metadata_offset(self, metadata: bytes) -> FieldScalar:
        h = self._hash_to_scalar(metadata)
        if not isinstance(h, self.scalar):
            raise InternalError("hash_to_scalar returned a foreign scalar type")
        return h

    def derive_key(
        self,
        keypair: IssuerKeyPair,
        metadata: MetadataLike,
    ) -> MetadataKey:
        md = self.metadata(metadata)
        h = self.metadata_offset(md)
        sk_m = keypair.secret_key + h
        if sk_m.is_zero():
            # H_m(m) == -sk: negligible, but the key would not be invertible
            raise InternalError("derived metadata key is zero")
        return MetadataKey(
            metadata=md,
            public_key=keypair.public_key + h * self.key_generator,
            secret_key=sk_m,
        )

    def derive_public_key(self, public_key: Any, metadata: MetadataLike) -> MetadataKey:
        md = self.metadata(metadata)
        h = self.metadata_offset(md)
        return MetadataKey(
            metadata=md,
            public_key=public_key + h * self.key_generator,
        )

    # ── Blind ──────────────────────────────────────────────────────────

    def token_point(self, token: TokenIdentifier, metadata: bytes) -> Any:
        """P_t = H_t(id, metadata)."""
        try:
            p = self._hash_to_curve(token_message(token.digest(), metadata))
        except RuntimeError as exc:
            raise InternalError("hash-to-curve failed") from exc
        if p.is_inf():
            raise InternalError("hash-to-curve produced the identity")
        return p

    def blind(self, point: Any) -> Tuple[FieldScalar, Any]:
        r = self.random_scalar()
        return r, r * point

    # ── Sign ───────────────────────────────────────────────────────────

    def sign_point(self, blinded: Any, key: MetadataKey) -> Any:
        if key.secret_key is None:
            raise ValueError("signing needs the secret half of the metadata key")
        return key.secret_key.inv() * blinded

    # ── Unblind ────────────────────────────────────────────────────────

    def unblind(self, r: FieldScalar, signed: Any) -> Any:
        return r.inv() * signed

    def unblind_many(self, rs: Sequence[FieldScalar], signed: Sequence[Any]) -> List[Any]:
        return [ri * w for ri, w in zip(batch_inverse(list(rs)), signed)]

    # ── Verify ─────────────────────────────────────────────────────────

    @abstractmethod
    def check_signature(self, token_point: Any, signature: Any, key: MetadataKey) -> bool:
        """The backend's verification equation."""

    @abstractmethod
    def verification_key(self, keypair: IssuerKeyPair) -> Any:
        """What a verifier must hold for this backend."""

    @abstractmethod
    def verification_metadata_key(self, verification_key: Any, metadata: bytes) -> MetadataKey:
        """Metadata key as seen by a verifier holding *verification_key*."""

    def check_verification_key(self, verification_key: Any) -> None:
        """Raise ``TypeError`` if *verification_key* cannot verify here."""

    # ── encoding ───────────────────────────────────────────────────────

    def encode_point(self, point: Any) -> bytes:
        return point.to_bytes()

    def decode_point(self, data: bytes) -> Any:
        """
        Decode a token-group element.  Off-curve, off-subgroup and identity
        encodings raise ``MalformedEncoding``.
        """
        try:
            p = self.point.from_bytes(bytes(data))
        except (ValueError, TypeError) as exc:
            raise MalformedEncoding(f"not a valid {self.kind.value} group element") from exc
        if p.is_inf():
            raise MalformedEncoding("identity element is not allowed")
        return p

    def encode_public_key(self, public_key: Any) -> bytes:
        return public_key.to_bytes()

    def decode_public_key(self, data: bytes) -> Any:
        try:
            p = self.key_point.from_bytes(bytes(data))
        except (ValueError, TypeError) as exc:
            raise MalformedEncoding("not a valid public key") from exc
        if p.is_inf():
            raise MalformedEncoding("identity element is not a public key")
        return p

    def decode_proof(self, data: bytes) -> DLEQProof:
        if not self.supports_proofs:
            raise MalformedEncoding(f"{self.kind.value} scheme has no proofs")
        try:
            return DLEQProof.from_bytes(bytes(data), self.point, self.scalar)
        except (ValueError, TypeError) as exc:
            raise MalformedEncoding("malformed issuance proof") from exc

    def decode_batch_proof(self, data: bytes) -> BatchDLEQProof:
        if not self.supports_proofs:
            raise MalformedEncoding(f"{self.kind.value} scheme has no proofs")
        try:
            return BatchDLEQProof.from_bytes(bytes(data), self.point, self.scalar)
        except (ValueError, TypeError) as exc:
            raise MalformedEncoding("malformed batch issuance proof") from exc

    # ── proofs ─────────────────────────────────────────────────────────

    def prove(self, key: MetadataKey, blinded: Any, signed: Any) -> DLEQProof:
        raise NotImplementedError(f"{self.kind.value} scheme has no proofs")

    def verify_proof(self, proof: Any, key: MetadataKey, blinded: Any, signed: Any) -> bool:
        return False

    def prove_batch(self, key: MetadataKey, blinded: Sequence[Any], signed: Sequence[Any]) -> BatchDLEQProof:
        raise NotImplementedError(f"{self.kind.value} scheme has no proofs")

    def verify_batch_proof(
        self, proof: Any, key: MetadataKey, blinded: Sequence[Any], signed: Sequence[Any],
    ) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(proofs={self.proofs})"


# ── pairing backend ─────────────────────────────────────────────────────

class PairingScheme(TokenScheme):
    """BLS12-381: tokens in G1, keys in G2, anyone with  pk  can verify."""

    kind = SchemeKind.PAIRING
    publicly_verifiable = True
    supports_proofs = False

    scalar = bls.BlsScalar
    point = bls.G1Point
    key_point = bls.G2Point
    key_generator = bls.G2

    def check_signature(self, token_point: Any, signature: Any, key: MetadataKey) -> bool:
        return bls.pairing_check(signature, key.public_key, token_point)

    def verification_key(self, keypair: IssuerKeyPair) -> Any:
        return keypair.public_key

    def verification_metadata_key(self, verification_key: Any, metadata: bytes) -> MetadataKey:
        if isinstance(verification_key, IssuerKeyPair):
            verification_key = verification_key.public_key
        return self.derive_public_key(verification_key, metadata)

    def check_verification_key(self, verification_key: Any) -> None:
        if isinstance(verification_key, IssuerKeyPair):
            verification_key = verification_key.public_key
        if not isinstance(verification_key, bls.G2Point):
            raise TypeError("pairing verification needs a G2 public key")


# ── discrete-log backends ───────────────────────────────────────────────

class DiscreteLogScheme(TokenScheme):
    """
    Prime-order group without a pairing.  Verification needs  sk_m, so
    the verifier is built with the issuer key pair; clients instead rely
    on the DLEQ proof to know the signer used the right key.
    """

    supports_proofs = True

    def check_signature(self, token_point: Any, signature: Any, key: MetadataKey) -> bool:
        if key.secret_key is None:
            return False
        # W == sk_m⁻¹·P_t  ⇔  sk_m·W == P_t, no inversion needed
        return key.secret_key * signature == token_point

    def verification_key(self, keypair: IssuerKeyPair) -> Any:
        return keypair

    def verification_metadata_key(self, verification_key: Any, metadata: bytes) -> MetadataKey:
        return self.derive_key(verification_key, metadata)

    def check_verification_key(self, verification_key: Any) -> None:
        if not isinstance(verification_key, IssuerKeyPair):
            raise TypeError(
                f"{self.kind.value} verification needs the issuer key pair"
            )

    def prove(self, key: MetadataKey, blinded: Any, signed: Any) -> DLEQProof:
        # pk_m = k·G  and  T' = k·W'
        return DLEQProof.prove(
            key.secret_key, self.key_generator, key.public_key,
            signed, blinded, self.proof_context, self.randbytes,
        )

    def verify_proof(self, proof: Any, key: MetadataKey, blinded: Any, signed: Any) -> bool:
        if not isinstance(proof, DLEQProof):
            return False
        return proof.verify(
            self.key_generator, key.public_key, signed, blinded,
            self.proof_context,
        )

    def prove_batch(self, key: MetadataKey, blinded: Sequence[Any], signed: Sequence[Any]) -> BatchDLEQProof:
        return BatchDLEQProof.prove(
            key.secret_key, self.key_generator, key.public_key,
            blinded, signed, self.proof_context, self.randbytes,
        )

    def verify_batch_proof(
        self, proof: Any, key: MetadataKey, blinded: Sequence[Any], signed: Sequence[Any],
    ) -> bool:
        if not isinstance(proof, BatchDLEQProof):
            return False
        return proof.verify(
            self.key_generator, key.public_key, blinded, signed,
            self.proof_context,
        )


class EdwardsScheme(DiscreteLogScheme):
    kind = SchemeKind.EDWARDS
    scalar = edwards.EdScalar
    point = edwards.EdPoint
    key_point = edwards.EdPoint
    key_generator = edwards.G


class NizkScheme(DiscreteLogScheme):
    kind = SchemeKind.NIZK
    scalar = curve.Scalar
    point = curve.Point
    key_point = curve.Point
    key_generator = curve.G

    def __init__(self, **kwargs: Any) -> None:
        kwargs["proofs"] = True
        super().__init__(**kwargs)


_SCHEMES = {
    SchemeKind.PAIRING: PairingScheme,
    SchemeKind.EDWARDS: EdwardsScheme,
    SchemeKind.NIZK: NizkScheme,
}


def make_scheme(config: Optional[TokenConfig] = None, **injected: Any) -> TokenScheme:
    """
    Build the backend named by *config*.

    ``injected`` may carry ``hash_to_scalar``, ``hash_to_curve`` and
    ``randbytes`` overrides.
    """
    config = config or TokenConfig()
    cls = _SCHEMES[config.scheme]
    return cls(
        proofs=config.proofs_enabled,
        max_metadata_length=config.max_metadata_length,
        **injected,
    )
