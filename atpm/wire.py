"""
JSON wire format.

Every message is a flat JSON object described by a pydantic model;
binary fields (points, proofs, token ids, metadata) are lowercase hex.
Decoders validate structure only: group elements stay as bytes and are
checked by the scheme when they are used, so a bad point in a request
fails in exactly the place a bad point from any other source would.

::

    {"public_key": "…"}                                      issuer key
    {"username": "…", "password": "…",
     "blinded_token": "02ab…", "metadata": "7265…"}          sign request
    {"blind_signature": "03cd…", "proof": "…"}               sign response
    {"username": "…", "password": "…",
     "blinded_tokens": ["02ab…", …], "metadata": "…"}        batch request
    {"blind_signatures": ["03cd…", …], "proof": "…"}         batch response
    {"token": "…", "metadata": "…", "signature": "…",
     "hidden_metadata": "…"}                                 credential
    {"error": "double_spend", "message": "token already redeemed"}
"""

from __future__ import annotations

from typing import Any, List, Optional, Type, TypeVar, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
)

from .errors import MalformedEncoding, TokenError
from .schemes import TokenScheme
from .tokens import (
    BatchBlindSignature,
    BlindedBatch,
    BlindedToken,
    BlindSignature,
    Credential,
    TokenIdentifier,
)

JsonInput = Union[str, bytes, bytearray]
M = TypeVar("M", bound="WireMessage")


# ── helpers ─────────────────────────────────────────────────────────────

def _from_hex(value: Any) -> Any:
    if value is None or isinstance(value, (bytes, bytearray)):
        return value
    if not isinstance(value, str):
        raise ValueError("must be a hex string")
    return bytes.fromhex(value)


def _to_hex(value: Optional[bytes]) -> Optional[str]:
    return None if value is None else value.hex()


class WireMessage(BaseModel):
    """Base for every JSON body; unknown fields are ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    @classmethod
    def parse(cls: Type[M], data: JsonInput) -> M:
        try:
            return cls.model_validate_json(data)
        except ValidationError as exc:
            fields = ", ".join(
                ".".join(str(p) for p in err["loc"]) or "body"
                for err in exc.errors()
            )
            raise MalformedEncoding(
                f"malformed {cls.__name__} message ({fields})"
            ) from exc

    def dump(self) -> str:
        return self.model_dump_json(exclude_none=True)


# ── public key ──────────────────────────────────────────────────────────

class PublicKeyMessage(WireMessage):
    public_key: bytes = Field(..., min_length=1)

    @field_validator("public_key", mode="before")
    @classmethod
    def _decode_hex(cls, v):
        return _from_hex(v)

    @field_serializer("public_key")
    def _encode_hex(self, v: bytes) -> str:
        return v.hex()


def encode_public_key(scheme: TokenScheme, public_key: Any) -> str:
    return PublicKeyMessage(public_key=scheme.encode_public_key(public_key)).dump()


def decode_public_key(scheme: TokenScheme, data: JsonInput) -> Any:
    return scheme.decode_public_key(PublicKeyMessage.parse(data).public_key)


# ── issuance messages ───────────────────────────────────────────────────

class SignRequest(WireMessage):
    """
    A ``POST /sign`` body.  ``username`` / ``password`` belong to the
    authorization layer; only ``blinded`` is handed to the signer.
    """

    blinded_token: bytes
    metadata: bytes
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)

    @field_validator("blinded_token", "metadata", mode="before")
    @classmethod
    def _decode_hex(cls, v):
        return _from_hex(v)

    @field_serializer("blinded_token", "metadata")
    def _encode_hex(self, v: bytes) -> str:
        return v.hex()

    @property
    def blinded(self) -> BlindedToken:
        return BlindedToken(point=self.blinded_token, metadata=self.metadata)


class SignResponse(WireMessage):
    blind_signature: bytes
    proof: Optional[bytes] = None

    @field_validator("blind_signature", "proof", mode="before")
    @classmethod
    def _decode_hex(cls, v):
        return _from_hex(v)

    @field_serializer("blind_signature", "proof")
    def _encode_hex(self, v: Optional[bytes]) -> Optional[str]:
        return _to_hex(v)


def encode_sign_request(
    blinded: BlindedToken,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> str:
    return SignRequest(
        blinded_token=blinded.point,
        metadata=blinded.metadata,
        username=username,
        password=password,
    ).dump()


def decode_sign_request(data: JsonInput) -> SignRequest:
    return SignRequest.parse(data)


def encode_sign_response(response: BlindSignature) -> str:
    proof = None if response.proof is None else response.proof.to_bytes()
    return SignResponse(blind_signature=response.point, proof=proof).dump()


def decode_sign_response(scheme: TokenScheme, data: JsonInput) -> BlindSignature:
    """Decode a signer response; the proof, if present, is parsed eagerly."""
    msg = SignResponse.parse(data)
    proof = None if msg.proof is None else scheme.decode_proof(msg.proof)
    return BlindSignature(point=msg.blind_signature, proof=proof)


# ── batch issuance ──────────────────────────────────────────────────────

class BatchSignRequest(WireMessage):
    """``POST /sign`` body for several tokens under one metadata value."""

    blinded_tokens: List[bytes] = Field(..., min_length=1)
    metadata: bytes
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)

    @field_validator("blinded_tokens", mode="before")
    @classmethod
    def _decode_hex_list(cls, v):
        if not isinstance(v, list):
            raise ValueError("must be a list of hex strings")
        return [_from_hex(item) for item in v]

    @field_validator("metadata", mode="before")
    @classmethod
    def _decode_hex(cls, v):
        return _from_hex(v)

    @field_serializer("blinded_tokens")
    def _encode_hex_list(self, v: List[bytes]) -> List[str]:
        return [item.hex() for item in v]

    @field_serializer("metadata")
    def _encode_hex(self, v: bytes) -> str:
        return v.hex()

    @property
    def blinded(self) -> BlindedBatch:
        return BlindedBatch(points=list(self.blinded_tokens), metadata=self.metadata)


class BatchSignResponse(WireMessage):
    blind_signatures: List[bytes] = Field(..., min_length=1)
    proof: Optional[bytes] = None

    @field_validator("blind_signatures", mode="before")
    @classmethod
    def _decode_hex_list(cls, v):
        if not isinstance(v, list):
            raise ValueError("must be a list of hex strings")
        return [_from_hex(item) for item in v]

    @field_validator("proof", mode="before")
    @classmethod
    def _decode_hex(cls, v):
        return _from_hex(v)

    @field_serializer("blind_signatures")
    def _encode_hex_list(self, v: List[bytes]) -> List[str]:
        return [item.hex() for item in v]

    @field_serializer("proof")
    def _encode_hex(self, v: Optional[bytes]) -> Optional[str]:
        return _to_hex(v)


def encode_batch_sign_request(
    batch: BlindedBatch,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> str:
    return BatchSignRequest(
        blinded_tokens=list(batch.points),
        metadata=batch.metadata,
        username=username,
        password=password,
    ).dump()


def decode_batch_sign_request(data: JsonInput) -> BatchSignRequest:
    return BatchSignRequest.parse(data)


def encode_batch_sign_response(response: BatchBlindSignature) -> str:
    proof = None if response.proof is None else response.proof.to_bytes()
    return BatchSignResponse(
        blind_signatures=list(response.points), proof=proof,
    ).dump()


def decode_batch_sign_response(
    scheme: TokenScheme,
    data: JsonInput,
) -> BatchBlindSignature:
    msg = BatchSignResponse.parse(data)
    proof = None if msg.proof is None else scheme.decode_batch_proof(msg.proof)
    return BatchBlindSignature(points=list(msg.blind_signatures), proof=proof)


# ── credentials ─────────────────────────────────────────────────────────

class CredentialMessage(WireMessage):
    token: bytes
    metadata: bytes
    signature: bytes
    hidden_metadata: Optional[bytes] = None

    @field_validator("token", "metadata", "signature", "hidden_metadata", mode="before")
    @classmethod
    def _decode_hex(cls, v):
        return _from_hex(v)

    @field_serializer("token", "metadata", "signature", "hidden_metadata")
    def _encode_hex(self, v: Optional[bytes]) -> Optional[str]:
        return _to_hex(v)


def encode_credential(credential: Credential) -> str:
    return CredentialMessage(
        token=credential.token.nonce,
        metadata=credential.metadata,
        signature=credential.signature,
        hidden_metadata=credential.token.hidden,
    ).dump()


def decode_credential(data: JsonInput) -> Credential:
    msg = CredentialMessage.parse(data)
    return Credential(
        token=TokenIdentifier(nonce=msg.token, hidden=msg.hidden_metadata),
        metadata=msg.metadata,
        signature=msg.signature,
    )


# ── errors ──────────────────────────────────────────────────────────────

class ErrorMessage(WireMessage):
    error: str
    message: str


def encode_error(error: BaseException) -> str:
    """Map an exception to ``{"error": code, "message": text}``."""
    if isinstance(error, TokenError):
        return ErrorMessage(error=error.code, message=str(error)).dump()
    return ErrorMessage(error="internal_error", message="internal error").dump()
