"""
Issuer side of blind issuance.

The signer is a pure function of (blinded token, metadata, key): it
performs no authorization of its own.  The caller must have decided
that the requester may obtain a token for the metadata before calling
:meth:`Signer.sign`.

Order of checks matters: metadata is validated and the blinded point
is fully decoded (on-curve, in the prime-order subgroup, not the
identity) *before* the secret metadata key touches it.
"""

from __future__ import annotations

import logging
from typing import Any, Union

from .errors import InternalError
from .keys import IssuerKeyPair, KeyManager
from .schemes import TokenScheme
from .tokens import BatchBlindSignature, BlindedBatch, BlindedToken, BlindSignature

logger = logging.getLogger(__name__)


class Signer:
    """Computes blind signatures (and issuance proofs) for one issuer."""

    def __init__(
        self,
        scheme: TokenScheme,
        keys: Union[KeyManager, IssuerKeyPair],
    ) -> None:
        if isinstance(keys, IssuerKeyPair):
            keys = KeyManager(scheme, keys)
        self._scheme = scheme
        self._keys = keys

    @property
    def public_key(self) -> Any:
        return self._keys.public_key

    def sign(self, blinded: BlindedToken) -> BlindSignature:
        """
        Sign one blinded token.

        Raises ``InvalidMetadata``, ``MalformedEncoding`` or
        ``InternalError``.
        """
        md = self._scheme.metadata(blinded.metadata)
        point = self._scheme.decode_point(blinded.point)

        key = self._keys.derive_metadata_key(md)
        try:
            signed = self._scheme.sign_point(point, key)
            proof = self._scheme.prove(key, point, signed) if self._scheme.proofs else None
        except (ValueError, ZeroDivisionError) as exc:
            raise InternalError("signing arithmetic failed") from exc

        logger.debug(
            "signed blinded token (%s, %d bytes metadata, proof=%s)",
            self._scheme.kind.value, len(md), proof is not None,
        )
        return BlindSignature(point=self._scheme.encode_point(signed), proof=proof)

    def sign_batch(self, batch: BlindedBatch) -> BatchBlindSignature:
        """Sign every point of *batch* under one key snapshot and one proof."""
        md = self._scheme.metadata(batch.metadata)
        if not batch.points:
            raise ValueError("empty batch")
        points = [self._scheme.decode_point(p) for p in batch.points]

        key = self._keys.derive_metadata_key(md)
        try:
            signed = [self._scheme.sign_point(p, key) for p in points]
            proof = (
                self._scheme.prove_batch(key, points, signed)
                if self._scheme.proofs else None
            )
        except (ValueError, ZeroDivisionError) as exc:
            raise InternalError("signing arithmetic failed") from exc

        logger.debug(
            "signed batch of %d blinded tokens (%s)",
            len(points), self._scheme.kind.value,
        )
        return BatchBlindSignature(
            points=[self._scheme.encode_point(s) for s in signed],
            proof=proof,
        )
