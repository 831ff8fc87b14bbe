"""
Credential verification.

``Verifier.verify`` is total: every malformed, off-curve or tampered
input yields ``False``.  When the metadata or the signature fails to
decode, placeholder inputs stand in for them and the hash-to-curve and
verification equation still run, so a rejection costs the same work
whatever its cause.  Timing is as uniform as the underlying Python
arithmetic allows; it is not constant-time.
"""

from __future__ import annotations

from typing import Any

from .errors import TokenError
from .hash import TOKEN_ID_BYTES
from .schemes import TokenScheme
from .tokens import Credential, TokenIdentifier

_PLACEHOLDER_METADATA = b"\x00"
_PLACEHOLDER_TOKEN = TokenIdentifier(nonce=bytes(TOKEN_ID_BYTES))

_REJECT = (TokenError, ValueError, TypeError, AttributeError)


class Verifier:
    """
    Checks credentials against an issuer key.

    For the pairing backend *verification_key* is the issuer's public
    key.  The discrete-log backends are privately verifiable and need
    the issuer key pair.
    """

    def __init__(self, scheme: TokenScheme, verification_key: Any) -> None:
        if isinstance(verification_key, (bytes, bytearray)):
            verification_key = scheme.decode_public_key(verification_key)
        scheme.check_verification_key(verification_key)
        self._scheme = scheme
        self._vk = verification_key
        self._placeholder_signature = scheme.token_point(
            _PLACEHOLDER_TOKEN, _PLACEHOLDER_METADATA,
        )

    def verify(self, credential: Credential) -> bool:
        try:
            md = self._scheme.metadata(credential.metadata)
            signature = self._scheme.decode_point(credential.signature)
            token = credential.token
            well_formed = True
        except _REJECT:
            md = _PLACEHOLDER_METADATA
            signature = self._placeholder_signature
            token = _PLACEHOLDER_TOKEN
            well_formed = False
        try:
            token_point = self._scheme.token_point(token, md)
            key = self._scheme.verification_metadata_key(self._vk, md)
            valid = bool(self._scheme.check_signature(token_point, signature, key))
        except _REJECT:
            return False
        return well_formed and valid
