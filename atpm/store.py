"""
Double-spend ledger.

A redemption store answers exactly one question atomically: *was this
token id absent, and is it now recorded?*  Under any interleaving of
concurrent ``check_and_insert`` calls for the same id, exactly one
observes ``ACCEPTED``.

Two implementations:

* :class:`MemoryRedemptionStore` — a lock-guarded set, per process.
* :class:`SqlRedemptionStore` — a SQLAlchemy table keyed by the token
  id; the primary-key constraint is the test-and-set, so several
  processes can share one database.
"""

from __future__ import annotations

import enum
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from typing import Optional, Set, Union

from sqlalchemy import Column, DateTime, LargeBinary, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import InternalError
from .hash import TOKEN_ID_BYTES, log_id

logger = logging.getLogger(__name__)


class RedemptionStatus(str, enum.Enum):
    """Outcome of a redemption attempt."""

    ACCEPTED = "accepted"
    DOUBLE_SPEND = "double_spend"
    INVALID_SIGNATURE = "invalid_signature"

    @property
    def accepted(self) -> bool:
        return self is RedemptionStatus.ACCEPTED


def _check_token_id(token_id: bytes) -> bytes:
    if not isinstance(token_id, (bytes, bytearray)) or len(token_id) != TOKEN_ID_BYTES:
        raise ValueError(f"token id must be {TOKEN_ID_BYTES} bytes")
    return bytes(token_id)


class RedemptionStore(ABC):
    """Atomic insert-if-absent set of spent token ids."""

    @abstractmethod
    def check_and_insert(self, token_id: bytes) -> RedemptionStatus:
        """Record *token_id*; ``DOUBLE_SPEND`` if it was already present."""

    @abstractmethod
    def contains(self, token_id: bytes) -> bool:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    def __contains__(self, token_id: object) -> bool:
        return isinstance(token_id, (bytes, bytearray)) and self.contains(bytes(token_id))


class MemoryRedemptionStore(RedemptionStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._spent: Set[bytes] = set()

    def check_and_insert(self, token_id: bytes) -> RedemptionStatus:
        tid = _check_token_id(token_id)
        with self._lock:
            if tid in self._spent:
                status = RedemptionStatus.DOUBLE_SPEND
            else:
                self._spent.add(tid)
                status = RedemptionStatus.ACCEPTED
        if status is RedemptionStatus.DOUBLE_SPEND:
            logger.warning("double spend of token %s", log_id(tid))
        return status

    def contains(self, token_id: bytes) -> bool:
        with self._lock:
            return bytes(token_id) in self._spent

    def __len__(self) -> int:
        with self._lock:
            return len(self._spent)


# ── SQL-backed store ────────────────────────────────────────────────────

class Base(DeclarativeBase):
    """Declarative base for the ledger table."""


class RedeemedToken(Base):
    """One spent token.  Rows are inserted once and never removed."""

    __tablename__ = "redeemed_tokens"

    token_id = Column(LargeBinary(TOKEN_ID_BYTES), primary_key=True)
    redeemed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


def _make_engine(url: str) -> Engine:
    if url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every thread gets its own empty db
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    if url.startswith("sqlite"):
        # pooled connections move between threads
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


@contextmanager
def _database_errors(action: str):
    """Re-raise driver and connection failures as ``InternalError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("redemption store failed to %s: %s", action, type(exc).__name__)
        raise InternalError(f"redemption store failed to {action}") from exc


class SqlRedemptionStore(RedemptionStore):
    """
    Ledger in any SQLAlchemy-supported database.

    The insert is the check: a duplicate primary key raises
    ``IntegrityError``, which is reported as ``DOUBLE_SPEND``.
    """

    def __init__(self, bind: Union[str, Engine] = "sqlite://") -> None:
        self._engine = _make_engine(bind) if isinstance(bind, str) else bind
        with _database_errors("create the ledger table"):
            Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(
            self._engine,
            expire_on_commit=False,
            autoflush=False,
        )
        self._shared_conn_lock: Optional[threading.Lock] = None
        if isinstance(self._engine.pool, StaticPool):
            # a single shared connection cannot hold concurrent transactions
            self._shared_conn_lock = threading.Lock()

    def _guard(self):
        return self._shared_conn_lock or nullcontext()

    @property
    def engine(self) -> Engine:
        return self._engine

    def check_and_insert(self, token_id: bytes) -> RedemptionStatus:
        tid = _check_token_id(token_id)
        with self._guard(), _database_errors("record a redemption"):
            return self._insert(tid)

    def _insert(self, tid: bytes) -> RedemptionStatus:
        with self._session_factory() as session:
            session.add(RedeemedToken(token_id=tid))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.warning("double spend of token %s", log_id(tid))
                return RedemptionStatus.DOUBLE_SPEND
        logger.debug("token %s recorded as spent", log_id(tid))
        return RedemptionStatus.ACCEPTED

    def contains(self, token_id: bytes) -> bool:
        with self._guard(), _database_errors("look up a token"), self._session_factory() as session:
            return session.get(RedeemedToken, bytes(token_id)) is not None

    def __len__(self) -> int:
        with self._guard(), _database_errors("count tokens"), self._session_factory() as session:
            return session.scalar(select(func.count()).select_from(RedeemedToken)) or 0

    def close(self) -> None:
        self._engine.dispose()
