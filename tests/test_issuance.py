"""
End-to-end blind issuance and verification tests
"""

import dataclasses

import pytest

from atpm import (
    BlindedBatch,
    BlindedToken,
    BlindSignature,
    ClientStateReused,
    InvalidMetadata,
    InvalidSignature,
    IssuanceClient,
    KeyManager,
    MalformedEncoding,
    ProofVerificationFailed,
    SchemeKind,
    Signer,
    TokenConfig,
    TokenIdentifier,
    Verifier,
    make_scheme,
)
from atpm.edwards import EdScalar


def _issue(scheme, keys, metadata=b"resource1", hidden=None):
    client = IssuanceClient(scheme, keys.public_key)
    blinded, state = client.begin(metadata, hidden)
    response = Signer(scheme, keys).sign(blinded)
    return client.finish(state, response)


def _verifier(scheme, keys):
    return Verifier(scheme, scheme.verification_key(keys.keypair))


def _flip(data: bytes, bit: int) -> bytes:
    out = bytearray(data)
    out[bit // 8] ^= 1 << (bit % 8)
    return bytes(out)


class TestCompleteness:
    """Honest issuance always verifies."""

    def test_issue_and_verify(self, dl_scheme, dl_keys):
        credential = _issue(dl_scheme, dl_keys)
        assert credential.metadata == b"resource1"
        assert len(credential.token_id) == 16
        assert _verifier(dl_scheme, dl_keys).verify(credential)

    @pytest.mark.parametrize("metadata", [b"r", "résumé", b"\x00" * 256])
    def test_metadata_shapes(self, edwards_scheme, metadata):
        keys = KeyManager(edwards_scheme)
        credential = _issue(edwards_scheme, keys, metadata)
        assert _verifier(edwards_scheme, keys).verify(credential)

    def test_proof_attached_when_enabled(self, dl_scheme, dl_keys):
        client = IssuanceClient(dl_scheme, dl_keys.public_key)
        blinded, _ = client.begin(b"resource1")
        response = Signer(dl_scheme, dl_keys).sign(blinded)
        assert (response.proof is not None) == dl_scheme.proofs

    def test_nizk_always_proves(self, nizk_scheme):
        assert nizk_scheme.proofs
        assert make_scheme(TokenConfig(scheme=SchemeKind.NIZK, proofs=False)).proofs

    def test_public_key_as_bytes(self, nizk_scheme):
        keys = KeyManager(nizk_scheme)
        raw = nizk_scheme.encode_public_key(keys.public_key)
        client = IssuanceClient(nizk_scheme, raw)
        blinded, state = client.begin(b"resource1")
        credential = client.finish(state, Signer(nizk_scheme, keys).sign(blinded))
        assert _verifier(nizk_scheme, keys).verify(credential)


class TestMetadataBinding:

    def test_other_metadata_rejected(self, dl_scheme, dl_keys):
        credential = _issue(dl_scheme, dl_keys, b"resource1")
        moved = dataclasses.replace(credential, metadata=b"resource2")
        assert not _verifier(dl_scheme, dl_keys).verify(moved)

    def test_other_issuer_rejected(self, dl_scheme, dl_keys):
        credential = _issue(dl_scheme, dl_keys)
        other = KeyManager(dl_scheme)
        assert not _verifier(dl_scheme, other).verify(credential)

    def test_signatures_differ_per_metadata(self, edwards_scheme):
        keys = KeyManager(edwards_scheme)
        k1 = keys.derive_metadata_key(b"resource1")
        k2 = keys.derive_metadata_key(b"resource2")
        assert k1.public_key != k2.public_key
        assert keys.derive_public_metadata_key(b"resource1").public_key == k1.public_key


class TestTamperResistance:
    """Flipping any bit of token, metadata or signature invalidates."""

    @pytest.mark.parametrize("field", ["token", "metadata", "signature"])
    def test_bit_flips(self, dl_scheme, dl_keys, field):
        credential = _issue(dl_scheme, dl_keys)
        verifier = _verifier(dl_scheme, dl_keys)
        if field == "token":
            data = credential.token.nonce
        else:
            data = getattr(credential, field)
        nbits = len(data) * 8
        for bit in sorted({0, 1, 7, nbits // 2, nbits - 8, nbits - 1}):
            flipped = _flip(data, bit)
            if field == "token":
                tampered = dataclasses.replace(
                    credential, token=TokenIdentifier(nonce=flipped),
                )
            else:
                tampered = dataclasses.replace(credential, **{field: flipped})
            assert not verifier.verify(tampered), f"bit {bit} of {field}"

    def test_garbage_never_raises(self, nizk_scheme):
        keys = KeyManager(nizk_scheme)
        verifier = _verifier(nizk_scheme, keys)
        good = _issue(nizk_scheme, keys)
        bad = [
            dataclasses.replace(good, signature=b""),
            dataclasses.replace(good, signature=b"\x02" + b"\xff" * 32),
            dataclasses.replace(good, metadata=b""),
            dataclasses.replace(good, metadata=b"x" * 1000),
            dataclasses.replace(good, metadata=None),
        ]
        for credential in bad:
            assert verifier.verify(credential) is False

    def test_rejection_does_the_same_work(self, edwards_scheme, monkeypatch):
        keys = KeyManager(edwards_scheme)
        verifier = _verifier(edwards_scheme, keys)
        good = _issue(edwards_scheme, keys)
        calls = []
        check = edwards_scheme.check_signature

        def counting(*args):
            calls.append(args)
            return check(*args)

        monkeypatch.setattr(edwards_scheme, "check_signature", counting)
        results = [
            verifier.verify(dataclasses.replace(good, signature=b"")),
            verifier.verify(dataclasses.replace(good, metadata=b"")),
            verifier.verify(dataclasses.replace(good, metadata=b"resource2")),
            verifier.verify(good),
        ]
        assert results == [False, False, False, True]
        assert len(calls) == 4


class TestHiddenMetadata:

    def test_hidden_metadata_changes_token_id(self, dl_scheme, dl_keys):
        credential = _issue(dl_scheme, dl_keys, hidden=b"country=NO")
        assert credential.token.hidden == b"country=NO"
        assert credential.token_id != credential.token.nonce
        assert _verifier(dl_scheme, dl_keys).verify(credential)

    def test_hidden_metadata_is_bound(self, edwards_scheme):
        keys = KeyManager(edwards_scheme)
        credential = _issue(edwards_scheme, keys, hidden=b"country=NO")
        lied = dataclasses.replace(
            credential,
            token=TokenIdentifier(nonce=credential.token.nonce, hidden=b"country=SE"),
        )
        dropped = dataclasses.replace(
            credential, token=TokenIdentifier(nonce=credential.token.nonce),
        )
        verifier = _verifier(edwards_scheme, keys)
        assert not verifier.verify(lied)
        assert not verifier.verify(dropped)

    def test_signer_never_sees_hidden_metadata(self, edwards_scheme):
        keys = KeyManager(edwards_scheme)
        client = IssuanceClient(edwards_scheme, keys.public_key)
        blinded, _ = client.begin(b"resource1", hidden=b"secret-tag")
        assert b"secret-tag" not in blinded.point
        assert blinded.metadata == b"resource1"


class TestIssuanceProofs:

    def test_proof_verifies_under_used_key_only(self, nizk_scheme):
        keys = KeyManager(nizk_scheme)
        client = IssuanceClient(nizk_scheme, keys.public_key)
        blinded, state = client.begin(b"resource1")
        response = Signer(nizk_scheme, keys).sign(blinded)

        signed = nizk_scheme.decode_point(response.point)
        right = keys.derive_public_metadata_key(b"resource1")
        wrong = keys.derive_public_metadata_key(b"resource2")
        assert nizk_scheme.verify_proof(response.proof, right, state.blinded_point, signed)
        assert not nizk_scheme.verify_proof(response.proof, wrong, state.blinded_point, signed)

    def test_wrong_signer_key_detected(self, nizk_scheme):
        published = KeyManager(nizk_scheme)
        actual = KeyManager(nizk_scheme)
        client = IssuanceClient(nizk_scheme, published.public_key)
        blinded, state = client.begin(b"resource1")
        response = Signer(nizk_scheme, actual).sign(blinded)
        with pytest.raises(ProofVerificationFailed):
            client.finish(state, response)

    def test_missing_proof_rejected(self, edwards_proof_scheme):
        keys = KeyManager(edwards_proof_scheme)
        client = IssuanceClient(edwards_proof_scheme, keys.public_key)
        blinded, state = client.begin(b"resource1")
        response = Signer(edwards_proof_scheme, keys).sign(blinded)
        with pytest.raises(ProofVerificationFailed):
            client.finish(state, BlindSignature(point=response.point))

    def test_substituted_signature_rejected(self, nizk_scheme):
        keys = KeyManager(nizk_scheme)
        client = IssuanceClient(nizk_scheme, keys.public_key)
        blinded_a, state_a = client.begin(b"resource1")
        blinded_b, _ = client.begin(b"resource1")
        signer = Signer(nizk_scheme, keys)
        response_a = signer.sign(blinded_a)
        response_b = signer.sign(blinded_b)
        mixed = BlindSignature(point=response_b.point, proof=response_a.proof)
        with pytest.raises(ProofVerificationFailed):
            client.finish(state_a, mixed)


class TestClientState:

    def test_state_is_single_use(self, edwards_scheme):
        keys = KeyManager(edwards_scheme)
        client = IssuanceClient(edwards_scheme, keys.public_key)
        blinded, state = client.begin(b"resource1")
        response = Signer(edwards_scheme, keys).sign(blinded)
        client.finish(state, response)
        assert state.blinding is None
        with pytest.raises(ClientStateReused) as exc_info:
            client.finish(state, response)
        assert exc_info.value.code == "client_state_reused"

    def test_batch_state_is_single_use(self, edwards_scheme):
        keys = KeyManager(edwards_scheme)
        client = IssuanceClient(edwards_scheme, keys.public_key)
        batch, state = client.begin_batch(b"resource1", 2)
        response = Signer(edwards_scheme, keys).sign_batch(batch)
        client.finish_batch(state, response)
        with pytest.raises(ClientStateReused):
            client.finish_batch(state, response)

    def test_blinding_erased_on_failure(self, nizk_scheme):
        keys = KeyManager(nizk_scheme)
        client = IssuanceClient(nizk_scheme, keys.public_key)
        _, state = client.begin(b"resource1")
        with pytest.raises(MalformedEncoding):
            client.finish(state, BlindSignature(point=b"\x00" * 33))
        assert state.used and state.blinding is None


class TestSignerInputValidation:

    def test_invalid_point(self, dl_scheme, dl_keys):
        signer = Signer(dl_scheme, dl_keys)
        size = dl_scheme.point.ENCODED_BYTES
        for point in (b"", b"\x00" * size, b"\xff" * size):
            with pytest.raises(MalformedEncoding):
                signer.sign(BlindedToken(point=point, metadata=b"resource1"))

    def test_identity_point(self, edwards_scheme):
        signer = Signer(edwards_scheme, KeyManager(edwards_scheme))
        with pytest.raises(MalformedEncoding):
            signer.sign(BlindedToken(point=b"\x01" + b"\x00" * 31, metadata=b"m"))

    @pytest.mark.parametrize("metadata", [b"", "", b"x" * 257, 42])
    def test_invalid_metadata(self, edwards_scheme, metadata):
        keys = KeyManager(edwards_scheme)
        client = IssuanceClient(edwards_scheme, keys.public_key)
        blinded, _ = client.begin(b"resource1")
        with pytest.raises(InvalidMetadata):
            Signer(edwards_scheme, keys).sign(
                BlindedToken(point=blinded.point, metadata=metadata),
            )

    def test_metadata_limit_is_configurable(self):
        scheme = make_scheme(
            TokenConfig(scheme=SchemeKind.EDWARDS, max_metadata_length=4),
        )
        client = IssuanceClient(scheme, KeyManager(scheme).public_key)
        client.begin(b"abcd")
        with pytest.raises(InvalidMetadata):
            client.begin(b"abcde")


class TestBatchIssuance:

    def test_batch(self, dl_scheme, dl_keys):
        client = IssuanceClient(dl_scheme, dl_keys.public_key)
        batch, state = client.begin_batch(b"resource1", 5)
        response = Signer(dl_scheme, dl_keys).sign_batch(batch)
        assert (response.proof is not None) == dl_scheme.proofs
        credentials = client.finish_batch(state, response)
        assert len(credentials) == 5
        assert len({c.token_id for c in credentials}) == 5
        verifier = _verifier(dl_scheme, dl_keys)
        assert all(verifier.verify(c) for c in credentials)

    def test_batch_proof_catches_one_bad_signature(self, nizk_scheme):
        keys = KeyManager(nizk_scheme)
        client = IssuanceClient(nizk_scheme, keys.public_key)
        batch, state = client.begin_batch(b"resource1", 3)
        response = Signer(nizk_scheme, keys).sign_batch(batch)
        points = list(response.points)
        points[1] = points[0]
        tampered = dataclasses.replace(response, points=points)
        with pytest.raises(ProofVerificationFailed):
            client.finish_batch(state, tampered)

    def test_batch_size_mismatch(self, edwards_scheme):
        keys = KeyManager(edwards_scheme)
        client = IssuanceClient(edwards_scheme, keys.public_key)
        batch, state = client.begin_batch(b"resource1", 3)
        response = Signer(edwards_scheme, keys).sign_batch(batch)
        short = dataclasses.replace(response, points=response.points[:2])
        with pytest.raises(MalformedEncoding):
            client.finish_batch(state, short)

    def test_empty_batch(self, edwards_scheme):
        keys = KeyManager(edwards_scheme)
        client = IssuanceClient(edwards_scheme, keys.public_key)
        with pytest.raises(ValueError):
            client.begin_batch(b"resource1", 0)
        with pytest.raises(ValueError):
            Signer(edwards_scheme, keys).sign_batch(
                BlindedBatch(points=[], metadata=b"resource1"),
            )


class TestDeterminism:
    """Injected randomness makes a whole run reproducible."""

    def test_seeded_runs_match(self, seeded):
        def run():
            scheme = make_scheme(
                TokenConfig(scheme=SchemeKind.NIZK), randbytes=seeded(b"run"),
            )
            keys = KeyManager(scheme)
            client = IssuanceClient(scheme, keys.public_key)
            blinded, state = client.begin(b"resource1")
            response = Signer(scheme, keys).sign(blinded)
            return blinded, response, client.finish(state, response)

        b1, r1, c1 = run()
        b2, r2, c2 = run()
        assert b1 == b2
        assert r1.point == r2.point
        assert c1 == c2

    def test_injected_hash_to_scalar(self):
        scheme = make_scheme(
            TokenConfig(scheme=SchemeKind.EDWARDS),
            hash_to_scalar=lambda m: EdScalar(len(m)),
        )
        keys = KeyManager(scheme)
        # equal-length metadata now share a key
        assert (
            keys.derive_metadata_key(b"aaa").public_key
            == keys.derive_metadata_key(b"bbb").public_key
        )


class TestPairingScheme:
    """Publicly verifiable backend; few cases because pairings are slow."""

    def test_issue_verify_and_binding(self, pairing_scheme):
        keys = KeyManager(pairing_scheme)
        credential = _issue(pairing_scheme, keys)
        verifier = Verifier(pairing_scheme, keys.public_key)
        assert verifier.verify(credential)
        assert not verifier.verify(
            dataclasses.replace(credential, metadata=b"resource2"),
        )

    def test_verifier_from_public_key_bytes(self, pairing_scheme):
        keys = KeyManager(pairing_scheme)
        credential = _issue(pairing_scheme, keys)
        raw = pairing_scheme.encode_public_key(keys.public_key)
        assert Verifier(pairing_scheme, raw).verify(credential)

    def test_wrong_issuer_key_detected_by_client(self, pairing_scheme):
        published = KeyManager(pairing_scheme)
        actual = KeyManager(pairing_scheme)
        client = IssuanceClient(pairing_scheme, published.public_key)
        blinded, state = client.begin(b"resource1")
        with pytest.raises(InvalidSignature):
            client.finish(state, Signer(pairing_scheme, actual).sign(blinded))

    def test_no_proofs(self):
        with pytest.raises(ValueError):
            TokenConfig(scheme=SchemeKind.PAIRING, proofs=True)

    def test_bit_flips(self, pairing_protocol):
        credential = pairing_protocol.issue(b"resource1")
        tampered = [
            dataclasses.replace(credential, signature=_flip(credential.signature, bit))
            for bit in (0, 5, 100, 383)
        ]
        tampered.append(dataclasses.replace(
            credential, token=TokenIdentifier(nonce=_flip(credential.token.nonce, 0)),
        ))
        tampered.append(dataclasses.replace(
            credential, metadata=_flip(credential.metadata, 0),
        ))
        assert pairing_protocol.verify(credential)
        for forged in tampered:
            assert not pairing_protocol.verify(forged)

    def test_batch(self, pairing_protocol):
        credentials = pairing_protocol.issue_batch(b"resource1", 2)
        assert len({c.token_id for c in credentials}) == 2
        assert all(pairing_protocol.verify(c) for c in credentials)
