"""
Per-user admission control for analysis requests.

Each user has one RequestLock row: an availability flag that is cleared while
a request is in flight, and a count of remaining analysis tokens. This is a
best-effort single-flight gate, not a distributed mutex. Exclusivity comes
only from conditional single-row UPDATEs.

Tokens are never replenished automatically; `grant_tokens` is the only way
they go back up.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .database import RequestLock
from .errors import PersistenceError
from .logger import get_logger
from .normalize import utcnow

logger = get_logger()

DEFAULT_INITIAL_TOKENS = 3

NO_TOKENS = "no_tokens"
BUSY = "busy"
ERROR = "error"


@dataclass
class AdmissionResult:
    granted: bool
    tokens_remaining: int
    reason: Optional[str] = None  # no_tokens, busy or error when not granted


class AdmissionController:
    """
    Lock-plus-token gate.

    Args:
        session_factory: Session factory bound to the shared engine
        initial_tokens: Allotment for a user seen for the first time
        atomic: Flip availability and decrement tokens in one conditional
            UPDATE. When False, flip first and decrement second, restoring
            availability if the decrement fails.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        initial_tokens: int = DEFAULT_INITIAL_TOKENS,
        atomic: bool = True,
    ):
        self._session_factory = session_factory
        self.initial_tokens = initial_tokens
        self.atomic = atomic

    def _get_or_create(self, session: Session, user_id: str) -> RequestLock:
        lock = session.get(RequestLock, user_id)
        if lock is not None:
            return lock
        lock = RequestLock(user_id=user_id, is_available=True, tokens_remaining=self.initial_tokens)
        session.add(lock)
        try:
            session.commit()
            logger.info("Created request lock", user_id=user_id, tokens=self.initial_tokens)
        except IntegrityError:
            # Another request created the row first
            session.rollback()
            lock = session.get(RequestLock, user_id)
        return lock

    def get_lock(self, user_id: str) -> RequestLock:
        """Return the user's lock row, creating it with the initial allotment."""
        with self._session_factory() as session:
            lock = self._get_or_create(session, user_id)
            session.refresh(lock)
            return lock

    def acquire(self, user_id: str) -> AdmissionResult:
        """Try to start a request for ``user_id``; consumes one token on success."""
        try:
            with self._session_factory() as session:
                lock = self._get_or_create(session, user_id)
                if self.atomic:
                    result = self._acquire_atomic(session, lock)
                else:
                    result = self._acquire_two_step(session, lock)
        except SQLAlchemyError as e:
            logger.error("Admission check failed", user_id=user_id, error=str(e))
            logger.record_error("AdmissionStorageError")
            raise PersistenceError("Unable to check your request allowance. Please try again later.") from e

        logger.record_admission(result.granted)
        if result.granted:
            logger.info("Request admitted", user_id=user_id, tokens_remaining=result.tokens_remaining)
        else:
            logger.info(
                "Request denied",
                user_id=user_id,
                reason=result.reason,
                tokens_remaining=result.tokens_remaining,
            )
        return result

    def _available_filter(self, session: Session, user_id: str):
        return session.query(RequestLock).filter(
            RequestLock.user_id == user_id,
            RequestLock.is_available.is_(True),
            RequestLock.tokens_remaining > 0,
        )

    def _denied(self, session: Session, lock: RequestLock) -> AdmissionResult:
        session.refresh(lock)
        reason = NO_TOKENS if lock.tokens_remaining <= 0 else BUSY
        return AdmissionResult(granted=False, tokens_remaining=lock.tokens_remaining, reason=reason)

    def _acquire_atomic(self, session: Session, lock: RequestLock) -> AdmissionResult:
        changed = self._available_filter(session, lock.user_id).update(
            {
                RequestLock.is_available: False,
                RequestLock.tokens_remaining: RequestLock.tokens_remaining - 1,
                RequestLock.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        session.commit()
        if changed != 1:
            return self._denied(session, lock)
        session.refresh(lock)
        return AdmissionResult(granted=True, tokens_remaining=lock.tokens_remaining)

    def _acquire_two_step(self, session: Session, lock: RequestLock) -> AdmissionResult:
        flipped = self._available_filter(session, lock.user_id).update(
            {RequestLock.is_available: False, RequestLock.updated_at: utcnow()},
            synchronize_session=False,
        )
        session.commit()
        if flipped != 1:
            return self._denied(session, lock)

        try:
            decremented = self._decrement_tokens(session, lock.user_id)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Token decrement failed, restoring lock", user_id=lock.user_id, error=str(e))
            logger.record_error("TokenDecrementFailed")
            self._restore_availability(session, lock.user_id)
            session.refresh(lock)
            return AdmissionResult(granted=False, tokens_remaining=lock.tokens_remaining, reason=ERROR)

        if decremented != 1:
            # Tokens ran out between the flip and the decrement
            self._restore_availability(session, lock.user_id)
            return self._denied(session, lock)

        session.refresh(lock)
        return AdmissionResult(granted=True, tokens_remaining=lock.tokens_remaining)

    def _decrement_tokens(self, session: Session, user_id: str) -> int:
        changed = session.query(RequestLock).filter(
            RequestLock.user_id == user_id,
            RequestLock.tokens_remaining > 0,
        ).update(
            {RequestLock.tokens_remaining: RequestLock.tokens_remaining - 1},
            synchronize_session=False,
        )
        session.commit()
        return changed

    def _restore_availability(self, session: Session, user_id: str) -> None:
        try:
            session.query(RequestLock).filter(RequestLock.user_id == user_id).update(
                {RequestLock.is_available: True, RequestLock.updated_at: utcnow()},
                synchronize_session=False,
            )
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Failed to restore request lock", user_id=user_id, error=str(e))
            logger.record_error("LockRestoreFailed")

    def release(self, user_id: str) -> None:
        """Mark the user's lock available again. Failures are logged, not retried."""
        try:
            with self._session_factory() as session:
                session.query(RequestLock).filter(RequestLock.user_id == user_id).update(
                    {RequestLock.is_available: True, RequestLock.updated_at: utcnow()},
                    synchronize_session=False,
                )
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to release request lock", user_id=user_id, error=str(e))
            logger.record_error("LockReleaseFailed")
            return
        logger.debug("Request lock released", user_id=user_id)

    def grant_tokens(self, user_id: str, amount: int) -> int:
        """Add ``amount`` tokens to the user's allowance and return the new total."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        with self._session_factory() as session:
            lock = self._get_or_create(session, user_id)
            session.query(RequestLock).filter(RequestLock.user_id == user_id).update(
                {
                    RequestLock.tokens_remaining: RequestLock.tokens_remaining + amount,
                    RequestLock.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
            session.commit()
            session.refresh(lock)
            logger.info("Granted tokens", user_id=user_id, amount=amount, tokens_remaining=lock.tokens_remaining)
            return lock.tokens_remaining
