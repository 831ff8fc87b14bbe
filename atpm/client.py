"""
Client side of blind issuance.

::

    client = IssuanceClient(scheme, public_key)
    blinded, state = client.begin(b"resource1")
    response = signer.sign(blinded)            # over the wire
    credential = client.finish(state, response)

``begin`` picks a fresh token and blinding factor; only ``r·P_t`` and the
metadata leave the client.  ``finish`` checks that the signer used the
right metadata key (DLEQ proof, or the pairing equation for the
publicly verifiable backend), removes the blinding and erases it.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from .errors import InvalidSignature, MalformedEncoding, ProofVerificationFailed
from .schemes import TokenScheme
from .tokens import (
    BatchBlindSignature,
    BatchClientState,
    BlindedBatch,
    BlindedToken,
    BlindSignature,
    ClientState,
    Credential,
    MetadataLike,
)

logger = logging.getLogger(__name__)


class IssuanceClient:
    """Obtains credentials from a signer without revealing the token."""

    def __init__(self, scheme: TokenScheme, public_key: Any) -> None:
        if isinstance(public_key, (bytes, bytearray)):
            public_key = scheme.decode_public_key(public_key)
        self._scheme = scheme
        self._pk = public_key

    @property
    def public_key(self) -> Any:
        return self._pk

    # ── single token ───────────────────────────────────────────────────

    def begin(
        self,
        metadata: MetadataLike,
        hidden: Optional[bytes] = None,
    ) -> Tuple[BlindedToken, ClientState]:
        """
        Create a token for *metadata* and blind it.

        *hidden* metadata is folded into the token id and never shown to
        the signer.
        """
        md = self._scheme.metadata(metadata)
        token = self._scheme.new_token(hidden)
        P_t = self._scheme.token_point(token, md)
        r, blinded = self._scheme.blind(P_t)
        state = ClientState(
            token=token,
            metadata=md,
            blinding=r,
            token_point=P_t,
            blinded_point=blinded,
        )
        return BlindedToken(self._scheme.encode_point(blinded), md), state

    def finish(self, state: ClientState, response: BlindSignature) -> Credential:
        """
        Check the signer's response and unblind it into a credential.

        Raises ``ProofVerificationFailed`` when the issuance proof is
        missing or wrong, ``InvalidSignature`` when a pairing-checked
        signature does not verify and ``MalformedEncoding`` when the
        response does not decode.  The state is spent either way.
        """
        state.mark_used()
        try:
            signed = self._scheme.decode_point(response.point)
            key = self._scheme.derive_public_key(self._pk, state.metadata)
            self._check_proof(response.proof, key, state.blinded_point, signed)

            signature = self._scheme.unblind(state.blinding, signed)

            if self._scheme.publicly_verifiable and not self._scheme.check_signature(
                state.token_point, signature, key,
            ):
                raise InvalidSignature("issued signature does not verify")
        finally:
            state.clear()

        return Credential(
            token=state.token,
            metadata=state.metadata,
            signature=self._scheme.encode_point(signature),
        )

    def _check_proof(self, proof: Any, key, blinded: Any, signed: Any) -> None:
        if proof is None:
            if self._scheme.proofs:
                raise ProofVerificationFailed("signer response carries no proof")
            return
        if not self._scheme.verify_proof(proof, key, blinded, signed):
            logger.warning("issuance proof rejected for %s token", self._scheme.kind.value)
            raise ProofVerificationFailed("issuance proof does not verify")

    # ── batches ────────────────────────────────────────────────────────

    def begin_batch(
        self,
        metadata: MetadataLike,
        count: int,
    ) -> Tuple[BlindedBatch, BatchClientState]:
        """Blind *count* fresh tokens for the same metadata."""
        if count < 1:
            raise ValueError("batch size must be at least 1")
        md = self._scheme.metadata(metadata)
        batch = BatchClientState(metadata=md)
        points: List[bytes] = []
        for _ in range(count):
            blinded, st = self.begin(md)
            batch.states.append(st)
            points.append(blinded.point)
        return BlindedBatch(points=points, metadata=md), batch

    def finish_batch(
        self,
        state: BatchClientState,
        response: BatchBlindSignature,
    ) -> List[Credential]:
        """Verify the batched proof once and unblind every signature."""
        state.mark_used()
        try:
            if len(response.points) != len(state.states):
                raise MalformedEncoding(
                    f"expected {len(state.states)} signatures, "
                    f"got {len(response.points)}"
                )
            signed = [self._scheme.decode_point(p) for p in response.points]
            blinded = [st.blinded_point for st in state.states]
            key = self._scheme.derive_public_key(self._pk, state.metadata)

            if response.proof is None:
                if self._scheme.proofs:
                    raise ProofVerificationFailed("batch response carries no proof")
            elif not self._scheme.verify_batch_proof(response.proof, key, blinded, signed):
                logger.warning("batch issuance proof rejected (%d tokens)", len(signed))
                raise ProofVerificationFailed("batch issuance proof does not verify")

            signatures = self._scheme.unblind_many(
                [st.blinding for st in state.states], signed,
            )

            if self._scheme.publicly_verifiable:
                for st, sig in zip(state.states, signatures):
                    if not self._scheme.check_signature(st.token_point, sig, key):
                        raise InvalidSignature("issued signature does not verify")
        finally:
            for st in state.states:
                st.used = True
            state.clear()

        return [
            Credential(
                token=st.token,
                metadata=st.metadata,
                signature=self._scheme.encode_point(sig),
            )
            for st, sig in zip(state.states, signatures)
        ]
