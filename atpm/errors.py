"""
Error taxonomy for token issuance and redemption.

Every error carries a stable ``code`` so that a transport layer can map
it to a response without string matching.  Nothing in the core retries;
errors abort the current request only.
"""

from __future__ import annotations


class TokenError(Exception):
    """Base class for all ATPM errors."""

    code = "token_error"


class AuthorizationDenied(TokenError):
    """Raised by the authorization layer in front of the signer."""

    code = "authorization_denied"


class MalformedEncoding(TokenError, ValueError):
    """Bytes do not decode to a valid scalar or group element."""

    code = "malformed_encoding"


class InvalidMetadata(TokenError, ValueError):
    """Metadata fails format constraints."""

    code = "invalid_metadata"


class ProofVerificationFailed(TokenError):
    """The signer's issuance proof does not hold; do not trust the signature."""

    code = "proof_verification_failed"


class InvalidSignature(TokenError):
    """A credential (or freshly unblinded signature) fails verification."""

    code = "invalid_signature"


class DoubleSpend(TokenError):
    """The token has already been redeemed."""

    code = "double_spend"


class InternalError(TokenError, RuntimeError):
    """Randomness or arithmetic failure inside the core."""

    code = "internal_error"


class ClientStateReused(TokenError, RuntimeError):
    """A client state was finished twice; its blinding factor is spent."""

    code = "client_state_reused"
