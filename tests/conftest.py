"""
ATPM test fixtures
"""

import hashlib

import pytest

from atpm import (
    EdwardsScheme,
    KeyManager,
    NizkScheme,
    PairingScheme,
    SchemeKind,
    TokenConfig,
    TokenProtocol,
    make_scheme,
)


class SeededRandom:
    """Deterministic byte source: SHA-256 in counter mode over a seed."""

    def __init__(self, seed: bytes) -> None:
        self._seed = seed
        self._counter = 0

    def __call__(self, n: int) -> bytes:
        out = b""
        while len(out) < n:
            out += hashlib.sha256(
                self._seed + self._counter.to_bytes(8, "big")
            ).digest()
            self._counter += 1
        return out[:n]


@pytest.fixture
def seeded():
    """Factory for deterministic randomness sources."""
    return SeededRandom


@pytest.fixture
def edwards_scheme() -> EdwardsScheme:
    return make_scheme(TokenConfig(scheme=SchemeKind.EDWARDS))


@pytest.fixture
def edwards_proof_scheme() -> EdwardsScheme:
    return make_scheme(TokenConfig(scheme=SchemeKind.EDWARDS, proofs=True))


@pytest.fixture
def nizk_scheme() -> NizkScheme:
    return make_scheme(TokenConfig(scheme=SchemeKind.NIZK))


@pytest.fixture(scope="module")
def pairing_scheme() -> PairingScheme:
    return make_scheme(TokenConfig(scheme=SchemeKind.PAIRING))


@pytest.fixture(
    params=[
        TokenConfig(scheme=SchemeKind.EDWARDS),
        TokenConfig(scheme=SchemeKind.EDWARDS, proofs=True),
        TokenConfig(scheme=SchemeKind.NIZK),
    ],
    ids=["edwards", "edwards-proofs", "nizk"],
)
def dl_scheme(request):
    """Every discrete-log backend configuration."""
    return make_scheme(request.param)


@pytest.fixture
def dl_keys(dl_scheme) -> KeyManager:
    return KeyManager(dl_scheme)


@pytest.fixture
def protocol() -> TokenProtocol:
    """Fast in-memory deployment (ed25519 with proofs)."""
    return TokenProtocol.setup(TokenConfig(scheme=SchemeKind.EDWARDS, proofs=True))


@pytest.fixture
def pairing_protocol() -> TokenProtocol:
    """Default deployment: BLS12-381, publicly verifiable."""
    return TokenProtocol.setup(TokenConfig(scheme=SchemeKind.PAIRING))
