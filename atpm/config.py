"""
Backend selection and tunables.

``TokenConfig`` is a pydantic-settings model handed to
:func:`atpm.schemes.make_scheme`.  Constructed with no arguments it reads
``ATPM_SCHEME``, ``ATPM_PROOFS`` and ``ATPM_MAX_METADATA_LENGTH`` from the
process environment; explicit arguments always win.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_METADATA_LENGTH = 256
ENV_PREFIX = "ATPM_"


class SchemeKind(Enum):
    """Algebraic backend."""

    PAIRING = "pairing"   # BLS12-381, publicly verifiable
    EDWARDS = "edwards"   # ed25519 subgroup, optional DLEQ proofs
    NIZK = "nizk"         # secp256k1, DLEQ proofs always attached


class TokenConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    scheme: SchemeKind = SchemeKind.PAIRING
    proofs: bool = False
    max_metadata_length: int = Field(default=DEFAULT_MAX_METADATA_LENGTH, ge=1)

    @field_validator("scheme", mode="before")
    @classmethod
    def _normalise_scheme(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def _pairing_has_no_proofs(self) -> TokenConfig:
        if self.scheme is SchemeKind.PAIRING and self.proofs:
            raise ValueError(
                "the pairing scheme is publicly verifiable and has no "
                "issuance proof"
            )
        return self

    @property
    def proofs_enabled(self) -> bool:
        return self.proofs or self.scheme is SchemeKind.NIZK

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> TokenConfig:
        """
        Build a config from the process environment, or from *environ*
        alone when given.  Unset variables keep defaults; a bad value
        raises ``pydantic.ValidationError`` (a ``ValueError``).
        """
        if environ is None:
            return cls()
        values = {
            key[len(ENV_PREFIX):].lower(): value
            for key, value in environ.items()
            if key.upper().startswith(ENV_PREFIX)
        }
        return cls.model_validate(values)
