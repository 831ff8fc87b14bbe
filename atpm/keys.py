"""
Issuer key material and metadata-dependent key derivation.

The master key pair never leaves the issuer.  Per-resource keys are
derived on demand and never stored:

    h    = H_m(metadata)
    sk_m = sk + h
    pk_m = pk + h·G

so a signer holding ``sk`` and a verifier holding ``pk`` (or ``sk`` for
the discrete-log backends) agree on ``pk_m`` without any coordination.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .schemes import TokenScheme

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuerKeyPair:
    """Long-term master key:  public_key = secret_key·G."""

    secret_key: Any
    public_key: Any

    def secret_bytes(self) -> bytes:
        """Raw secret scalar, for the deployment's own key storage."""
        return self.secret_key.to_bytes()

    def __repr__(self) -> str:
        return f"IssuerKeyPair(public_key={self.public_key!r})"


@dataclass(frozen=True)
class MetadataKey:
    """
    Per-metadata key pair.  ``secret_key`` is ``None`` when the key was
    derived from public data only (client side, pairing verifier).
    """

    metadata: bytes
    public_key: Any
    secret_key: Optional[Any] = None

    def __repr__(self) -> str:
        return (
            f"MetadataKey(metadata={self.metadata!r}, "
            f"public_key={self.public_key!r})"
        )


class KeyManager:
    """
    Holds the issuer's master key pair for one scheme.

    Readers take a consistent snapshot through :attr:`keypair`;
    :meth:`rotate` swaps the key under the same lock, so a rotation
    never interleaves with a signer fetching its key.
    """

    def __init__(
        self,
        scheme: TokenScheme,
        keypair: Optional[IssuerKeyPair] = None,
    ) -> None:
        self._scheme = scheme
        self._lock = threading.Lock()
        self._keypair = keypair if keypair is not None else self.generate()

    # ── factories ──────────────────────────────────────────────────────

    @classmethod
    def load(cls, scheme: TokenScheme, secret: bytes) -> KeyManager:
        """Wrap existing key material (e.g. from a secrets store)."""
        return cls(scheme, scheme.keypair_from_secret(secret))

    def generate(self) -> IssuerKeyPair:
        """Sample a fresh master key pair (does not install it)."""
        return self._scheme.generate_keypair()

    # ── key access ─────────────────────────────────────────────────────

    @property
    def scheme(self) -> TokenScheme:
        return self._scheme

    @property
    def keypair(self) -> IssuerKeyPair:
        with self._lock:
            return self._keypair

    @property
    def public_key(self) -> Any:
        return self.keypair.public_key

    def rotate(self, keypair: Optional[IssuerKeyPair] = None) -> IssuerKeyPair:
        """
        Install a new master key and return it.  Credentials issued under
        the previous key stop verifying against the new one.
        """
        new = keypair if keypair is not None else self.generate()
        with self._lock:
            self._keypair = new
        logger.info("issuer key rotated (%s scheme)", self._scheme.kind.value)
        return new

    # ── derivation ─────────────────────────────────────────────────────

    def derive_metadata_key(
        self,
        metadata: Any,
        keypair: Optional[IssuerKeyPair] = None,
    ) -> MetadataKey:
        kp = keypair if keypair is not None else self.keypair
        return self._scheme.derive_key(kp, metadata)

    def derive_public_metadata_key(self, metadata: Any) -> MetadataKey:
        return self._scheme.derive_public_key(self.public_key, metadata)

    def __repr__(self) -> str:
        return f"KeyManager(scheme={self._scheme.kind.value})"
