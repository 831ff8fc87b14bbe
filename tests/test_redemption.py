"""
Redemption and double-spend ledger tests
"""

import dataclasses
import threading

import pytest

from atpm import (
    DoubleSpend,
    InternalError,
    InvalidSignature,
    MemoryRedemptionStore,
    RedemptionStatus,
    SqlRedemptionStore,
    redeem,
    redeem_or_raise,
)
from atpm.store import RedeemedToken


def _race(fn, n=16):
    """Run *fn* from *n* threads released at once; collect results."""
    barrier = threading.Barrier(n)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        r = fn()
        with lock:
            results.append(r)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


@pytest.fixture(params=["memory", "sqlite-memory", "sqlite-file"])
def store(request, tmp_path):
    if request.param == "memory":
        yield MemoryRedemptionStore()
        return
    url = "sqlite://" if request.param == "sqlite-memory" else f"sqlite:///{tmp_path / 'ledger.db'}"
    s = SqlRedemptionStore(url)
    yield s
    s.close()


class TestRedemptionStore:
    """Atomic insert-if-absent."""

    def test_first_use_then_double_spend(self, store):
        tid = bytes(range(16))
        assert tid not in store
        assert store.check_and_insert(tid) is RedemptionStatus.ACCEPTED
        assert store.check_and_insert(tid) is RedemptionStatus.DOUBLE_SPEND
        assert tid in store
        assert len(store) == 1

    def test_distinct_ids(self, store):
        for i in range(5):
            assert store.check_and_insert(bytes([i]) * 16).accepted
        assert len(store) == 5

    def test_rejects_malformed_ids(self, store):
        with pytest.raises(ValueError):
            store.check_and_insert(b"short")
        assert "not bytes" not in store

    def test_concurrent_single_winner(self, store):
        tid = b"\x42" * 16
        results = _race(lambda: store.check_and_insert(tid), n=8)
        assert results.count(RedemptionStatus.ACCEPTED) == 1
        assert results.count(RedemptionStatus.DOUBLE_SPEND) == 7
        assert len(store) == 1


class TestSharedDatabase:

    def test_two_stores_one_database(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'shared.db'}"
        a, b = SqlRedemptionStore(url), SqlRedemptionStore(url)
        try:
            tid = b"\x07" * 16
            assert a.check_and_insert(tid).accepted
            assert b.check_and_insert(tid) is RedemptionStatus.DOUBLE_SPEND
            assert tid in b
        finally:
            a.close()
            b.close()

    def test_survives_reopen(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"
        first = SqlRedemptionStore(url)
        first.check_and_insert(b"\x09" * 16)
        first.close()
        second = SqlRedemptionStore(url)
        try:
            assert second.check_and_insert(b"\x09" * 16) is RedemptionStatus.DOUBLE_SPEND
        finally:
            second.close()

    def test_database_failure_is_internal_error(self, tmp_path, caplog):
        store = SqlRedemptionStore(f"sqlite:///{tmp_path / 'ledger.db'}")
        try:
            RedeemedToken.__table__.drop(store.engine)
            with pytest.raises(InternalError) as exc_info:
                store.check_and_insert(b"\x0a" * 16)
            assert exc_info.value.code == "internal_error"
            with pytest.raises(InternalError):
                len(store)
            assert "redemption store failed" in caplog.text
        finally:
            store.close()


class TestRedeem:
    """Verify-then-spend orchestration."""

    def test_accept_then_double_spend(self, protocol):
        credential = protocol.issue(b"resource1")
        assert protocol.redeem(credential) is RedemptionStatus.ACCEPTED
        assert protocol.redeem(credential) is RedemptionStatus.DOUBLE_SPEND

    def test_invalid_credential_does_not_burn(self, protocol):
        credential = protocol.issue(b"resource1")
        forged = dataclasses.replace(credential, metadata=b"resource2")
        assert protocol.redeem(forged) is RedemptionStatus.INVALID_SIGNATURE
        assert credential.token_id not in protocol.store
        assert len(protocol.store) == 0
        # the real owner can still spend it
        assert protocol.redeem(credential) is RedemptionStatus.ACCEPTED

    def test_concurrent_redemption(self, protocol):
        credential = protocol.issue(b"resource1")
        results = _race(lambda: protocol.redeem(credential))
        assert results.count(RedemptionStatus.ACCEPTED) == 1
        assert set(results) == {RedemptionStatus.ACCEPTED, RedemptionStatus.DOUBLE_SPEND}

    def test_redeem_or_raise(self, protocol):
        credential = protocol.issue(b"resource1")
        forged = dataclasses.replace(credential, signature=credential.signature[::-1])
        with pytest.raises(InvalidSignature):
            protocol.redeem_or_raise(forged)
        protocol.redeem_or_raise(credential)
        with pytest.raises(DoubleSpend) as exc_info:
            protocol.redeem_or_raise(credential)
        assert exc_info.value.code == "double_spend"

    def test_functional_redeem_with_sql_store(self, protocol):
        store = SqlRedemptionStore()
        try:
            credential = protocol.issue(b"resource1")
            assert redeem(credential, protocol.verifier, store).accepted
            with pytest.raises(DoubleSpend):
                redeem_or_raise(credential, protocol.verifier, store)
        finally:
            store.close()

    def test_hidden_metadata_token_id_is_spent(self, protocol):
        credential = protocol.issue(b"resource1", hidden=b"group=a")
        assert protocol.redeem(credential).accepted
        assert credential.token_id in protocol.store
        assert credential.token.nonce not in protocol.store


class TestPairingRedeem:
    """Redemption through the default, publicly verifiable deployment."""

    def test_accept_then_double_spend(self, pairing_protocol):
        credential = pairing_protocol.issue(b"resource1")
        assert pairing_protocol.redeem(credential) is RedemptionStatus.ACCEPTED
        assert pairing_protocol.redeem(credential) is RedemptionStatus.DOUBLE_SPEND

    def test_invalid_credential_does_not_burn(self, pairing_protocol):
        credential = pairing_protocol.issue(b"resource1")
        forged = dataclasses.replace(credential, metadata=b"resource2")
        assert pairing_protocol.redeem(forged) is RedemptionStatus.INVALID_SIGNATURE
        assert len(pairing_protocol.store) == 0
        assert pairing_protocol.redeem(credential) is RedemptionStatus.ACCEPTED
