"""
ATPM: Anonymous Tokens with Public Metadata.

Single-use, unlinkable authorization tokens whose issuer key is bound
to a public metadata string (e.g. a resource name):

- **Blind issuance** — the signer never sees the token it signs
- **Metadata binding** — W = (sk + H(m))⁻¹·P_t; a token for one
  resource does not verify for another
- **Three backends** — BLS12-381 pairing (publicly verifiable),
  ed25519 and secp256k1 with DLEQ issuance proofs
  [Silde & Strand, FC 2022]

Quick start
-----------
::

    from atpm import TokenProtocol, TokenConfig, SchemeKind

    proto = TokenProtocol.setup(TokenConfig(scheme=SchemeKind.NIZK))

    credential = proto.issue(b"resource1")
    assert proto.verify(credential)

    status = proto.redeem(credential)
    print(f"first redemption: {status.value}")
"""

__version__ = "0.1.0"

# ── configuration ───────────────────────────────────────────────────────
from .config import SchemeKind, TokenConfig, DEFAULT_MAX_METADATA_LENGTH

# ── errors ──────────────────────────────────────────────────────────────
from .errors import (
    TokenError,
    AuthorizationDenied,
    MalformedEncoding,
    InvalidMetadata,
    ProofVerificationFailed,
    InvalidSignature,
    DoubleSpend,
    InternalError,
    ClientStateReused,
)

# ── protocol ────────────────────────────────────────────────────────────
from .protocol import (
    TokenProtocol,
    generate_keys,
    derive_metadata_key,
    begin_issuance,
    sign,
    finish_issuance,
    verify,
    redeem,
    redeem_or_raise,
)

# ── roles ───────────────────────────────────────────────────────────────
from .keys import IssuerKeyPair, MetadataKey, KeyManager
from .client import IssuanceClient
from .signer import Signer
from .verifier import Verifier

# ── backends ────────────────────────────────────────────────────────────
from .schemes import (
    TokenScheme,
    PairingScheme,
    EdwardsScheme,
    NizkScheme,
    make_scheme,
)

# ── token data ──────────────────────────────────────────────────────────
from .tokens import (
    TokenIdentifier,
    BlindedToken,
    BlindSignature,
    BlindedBatch,
    BatchBlindSignature,
    Credential,
    ClientState,
    BatchClientState,
    validate_metadata,
)

# ── redemption ──────────────────────────────────────────────────────────
from .store import (
    RedemptionStatus,
    RedemptionStore,
    MemoryRedemptionStore,
    SqlRedemptionStore,
)

# ── proofs ──────────────────────────────────────────────────────────────
from .proofs import DLEQProof, BatchDLEQProof

__all__ = [
    # version
    "__version__",
    # config
    "SchemeKind", "TokenConfig", "DEFAULT_MAX_METADATA_LENGTH",
    # errors
    "TokenError", "AuthorizationDenied", "MalformedEncoding",
    "InvalidMetadata", "ProofVerificationFailed", "InvalidSignature",
    "DoubleSpend", "InternalError", "ClientStateReused",
    # protocol
    "TokenProtocol", "generate_keys", "derive_metadata_key",
    "begin_issuance", "sign", "finish_issuance", "verify", "redeem",
    "redeem_or_raise",
    # roles
    "IssuerKeyPair", "MetadataKey", "KeyManager",
    "IssuanceClient", "Signer", "Verifier",
    # backends
    "TokenScheme", "PairingScheme", "EdwardsScheme", "NizkScheme",
    "make_scheme",
    # tokens
    "TokenIdentifier", "BlindedToken", "BlindSignature", "BlindedBatch",
    "BatchBlindSignature", "Credential", "ClientState", "BatchClientState",
    "validate_metadata",
    # redemption
    "RedemptionStatus", "RedemptionStore", "MemoryRedemptionStore",
    "SqlRedemptionStore",
    # proofs
    "DLEQProof", "BatchDLEQProof",
]
