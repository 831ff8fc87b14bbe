"""
High-level ATPM protocol orchestration.

Provides a single ``TokenProtocol`` class that ties together key
management, blind issuance, verification and redemption into a clean
API suitable for both integration tests and embedding in a service,
plus the functional API (``generate_keys``, ``derive_metadata_key``,
``begin_issuance``, ``sign``, ``finish_issuance``, ``verify``,
``redeem``) for callers that keep the pieces apart.

Usage
-----
::

    from atpm import TokenProtocol, TokenConfig, SchemeKind

    proto = TokenProtocol.setup(TokenConfig(scheme=SchemeKind.EDWARDS))

    credential = proto.issue(b"resource1")
    assert proto.verify(credential)

    proto.redeem(credential)      # RedemptionStatus.ACCEPTED
    proto.redeem(credential)      # RedemptionStatus.DOUBLE_SPEND
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from .client import IssuanceClient
from .config import TokenConfig
from .errors import DoubleSpend, InvalidSignature
from .hash import log_id
from .keys import IssuerKeyPair, KeyManager, MetadataKey
from .schemes import TokenScheme, make_scheme
from .signer import Signer
from .store import MemoryRedemptionStore, RedemptionStatus, RedemptionStore
from .tokens import BlindedToken, BlindSignature, ClientState, Credential, MetadataLike
from .verifier import Verifier

logger = logging.getLogger(__name__)


# ── redemption ──────────────────────────────────────────────────────────

def redeem(
    credential: Credential,
    verifier: Verifier,
    store: RedemptionStore,
) -> RedemptionStatus:
    """
    Verify, then atomically spend.

    An invalid credential never reaches the store, so it cannot burn the
    slot of the genuine token with the same id.
    """
    if not verifier.verify(credential):
        return RedemptionStatus.INVALID_SIGNATURE
    status = store.check_and_insert(credential.token_id)
    if status.accepted:
        logger.info("token %s redeemed", log_id(credential.token_id))
    return status


def redeem_or_raise(
    credential: Credential,
    verifier: Verifier,
    store: RedemptionStore,
) -> None:
    """Like :func:`redeem` but raises ``InvalidSignature`` / ``DoubleSpend``."""
    status = redeem(credential, verifier, store)
    if status is RedemptionStatus.INVALID_SIGNATURE:
        raise InvalidSignature("credential does not verify")
    if status is RedemptionStatus.DOUBLE_SPEND:
        raise DoubleSpend("token already redeemed")


# ── functional API ──────────────────────────────────────────────────────

def generate_keys(scheme: TokenScheme) -> IssuerKeyPair:
    return scheme.generate_keypair()


def derive_metadata_key(
    scheme: TokenScheme,
    keypair: IssuerKeyPair,
    metadata: MetadataLike,
) -> MetadataKey:
    return scheme.derive_key(keypair, metadata)


def begin_issuance(
    scheme: TokenScheme,
    public_key: Any,
    metadata: MetadataLike,
    hidden: Optional[bytes] = None,
) -> Tuple[BlindedToken, ClientState]:
    return IssuanceClient(scheme, public_key).begin(metadata, hidden)


def sign(
    scheme: TokenScheme,
    blinded: BlindedToken,
    keypair: IssuerKeyPair,
) -> BlindSignature:
    return Signer(scheme, keypair).sign(blinded)


def finish_issuance(
    scheme: TokenScheme,
    public_key: Any,
    state: ClientState,
    response: BlindSignature,
) -> Credential:
    return IssuanceClient(scheme, public_key).finish(state, response)


def verify(
    scheme: TokenScheme,
    credential: Credential,
    verification_key: Any,
) -> bool:
    return Verifier(scheme, verification_key).verify(credential)


# ── protocol facade ─────────────────────────────────────────────────────

class TokenProtocol:
    """
    End-to-end anonymous-token deployment for one issuer.

    Encapsulates the full lifecycle:
    1. Setup — choose a backend and create (or load) the issuer key.
    2. Issue — blind, sign, check and unblind.
    3. Verify — backend-specific verification equation.
    4. Redeem — verify, then atomic first-use check.
    """

    def __init__(
        self,
        scheme: TokenScheme,
        key_manager: Optional[KeyManager] = None,
        store: Optional[RedemptionStore] = None,
    ) -> None:
        self._scheme = scheme
        self._keys = key_manager if key_manager is not None else KeyManager(scheme)
        self._store = store if store is not None else MemoryRedemptionStore()
        self._signer = Signer(scheme, self._keys)
        self._verifier = self._make_verifier()

    def _make_verifier(self) -> Verifier:
        return Verifier(
            self._scheme, self._scheme.verification_key(self._keys.keypair),
        )

    # ── factories ──────────────────────────────────────────────────────

    @classmethod
    def setup(
        cls,
        config: Optional[TokenConfig] = None,
        store: Optional[RedemptionStore] = None,
        secret_key: Optional[bytes] = None,
        **injected: Any,
    ) -> TokenProtocol:
        """
        Build a protocol instance from *config*.

        Parameters
        ----------
        config : TokenConfig or None
            Backend selection; defaults to ``TokenConfig()``.
        store : RedemptionStore or None
            Double-spend ledger; defaults to an in-memory store.
        secret_key : bytes or None
            Existing issuer secret; a fresh key is generated when None.
        injected
            ``hash_to_scalar`` / ``hash_to_curve`` / ``randbytes``
            overrides passed to the scheme.
        """
        scheme = make_scheme(config, **injected)
        keys = (
            KeyManager.load(scheme, secret_key)
            if secret_key is not None else KeyManager(scheme)
        )
        logger.info("token protocol ready (%r)", scheme)
        return cls(scheme, keys, store)

    # ── issuance ───────────────────────────────────────────────────────

    def client(self) -> IssuanceClient:
        return IssuanceClient(self._scheme, self._keys.public_key)

    def issue(
        self,
        metadata: MetadataLike,
        hidden: Optional[bytes] = None,
    ) -> Credential:
        """Run the full blind-issuance round trip locally."""
        client = self.client()
        blinded, state = client.begin(metadata, hidden)
        return client.finish(state, self._signer.sign(blinded))

    def issue_batch(self, metadata: MetadataLike, count: int) -> List[Credential]:
        client = self.client()
        batch, state = client.begin_batch(metadata, count)
        return client.finish_batch(state, self._signer.sign_batch(batch))

    # ── verification / redemption ──────────────────────────────────────

    def verify(self, credential: Credential) -> bool:
        return self._verifier.verify(credential)

    def redeem(self, credential: Credential) -> RedemptionStatus:
        return redeem(credential, self._verifier, self._store)

    def redeem_or_raise(self, credential: Credential) -> None:
        redeem_or_raise(credential, self._verifier, self._store)

    # ── key rotation ───────────────────────────────────────────────────

    def rotate_keys(self, keypair: Optional[IssuerKeyPair] = None) -> IssuerKeyPair:
        new = self._keys.rotate(keypair)
        self._verifier = self._make_verifier()
        return new

    # ── accessors ──────────────────────────────────────────────────────

    @property
    def scheme(self) -> TokenScheme:
        return self._scheme

    @property
    def key_manager(self) -> KeyManager:
        return self._keys

    @property
    def public_key(self) -> Any:
        return self._keys.public_key

    @property
    def signer(self) -> Signer:
        return self._signer

    @property
    def verifier(self) -> Verifier:
        return self._verifier

    @property
    def store(self) -> RedemptionStore:
        return self._store

    def __repr__(self) -> str:
        return f"TokenProtocol({self._scheme!r}, store={type(self._store).__name__})"
