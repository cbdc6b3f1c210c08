from dataclasses import dataclass
from datetime import datetime, timezone
from functools import wraps
from typing import Optional
import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.models.otp import OTP, OtpPurpose
from app.utils.errors import StoreUnavailable

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class OtpRecord:
    identity: str
    purpose: OtpPurpose
    code: str
    issue_id: str
    created_or_resent_at: datetime
    expires_at: datetime
    attempts: int = 0
    verified: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @classmethod
    def from_row(cls, row: OTP) -> "OtpRecord":
        return cls(
            identity=row.email,
            purpose=OtpPurpose(row.purpose),
            code=row.code,
            issue_id=row.issue_id,
            created_or_resent_at=as_utc(row.last_sent_at),
            expires_at=as_utc(row.expires_at),
            attempts=row.attempts or 0,
            verified=bool(row.verified),
        )


def _store_operation(func):
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"OTP store operation '{func.__name__}' failed: {e}", exc_info=True)
            raise StoreUnavailable() from e
    return wrapper


class OtpStore:
    """
    Persistence for OTP records keyed by (email, purpose) on the otp_codes table.

    Every method runs in its own transaction. Mutations are single conditional
    statements guarded on issue_id, so they either apply to the generation the
    caller read or do nothing and report False.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _key(db, identity: str, purpose: OtpPurpose):
        return db.query(OTP).filter(OTP.email == identity, OTP.purpose == OtpPurpose(purpose).value)

    @_store_operation
    def get(self, identity: str, purpose: OtpPurpose) -> Optional[OtpRecord]:
        with self._session_factory() as db:
            row = self._key(db, identity, purpose).first()
            return OtpRecord.from_row(row) if row else None

    @_store_operation
    def upsert(self, record: OtpRecord, resend_after: Optional[datetime] = None) -> bool:
        """
        Make `record` the live code for its key, replacing any previous one.

        With `resend_after`, an existing unexpired row is only replaced when it was
        last sent at or before that instant. Returns False when a row was left in
        place, either because it is still cooling down or because a concurrent
        issuance created it first.
        """
        values = {
            "code": record.code,
            "issue_id": record.issue_id,
            "last_sent_at": record.created_or_resent_at,
            "expires_at": record.expires_at,
            "attempts": record.attempts,
            "verified": record.verified,
        }
        with self._session_factory() as db:
            query = self._key(db, record.identity, record.purpose)
            if resend_after is not None:
                query = query.filter(
                    or_(OTP.last_sent_at <= resend_after, OTP.expires_at <= record.created_or_resent_at)
                )
            if query.update(values, synchronize_session=False):
                db.commit()
                return True

            db.add(OTP(email=record.identity, purpose=OtpPurpose(record.purpose).value, **values))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                if resend_after is not None:
                    return False
                # Lost an insert race on an unconditional write; overwrite the winner
                updated = self._key(db, record.identity, record.purpose).update(values, synchronize_session=False)
                db.commit()
                return bool(updated)
            return True

    @_store_operation
    def increment_attempts(
        self, identity: str, purpose: OtpPurpose, issue_id: str, expected_attempts: int, verified: bool = False
    ) -> bool:
        with self._session_factory() as db:
            updated = (
                self._key(db, identity, purpose)
                .filter(
                    OTP.issue_id == issue_id,
                    OTP.verified.is_(verified),
                    OTP.attempts == expected_attempts,
                )
                .update({"attempts": OTP.attempts + 1}, synchronize_session=False)
            )
            db.commit()
            return bool(updated)

    @_store_operation
    def mark_verified(self, identity: str, purpose: OtpPurpose, issue_id: str, max_attempts: int, now: datetime) -> bool:
        with self._session_factory() as db:
            updated = (
                self._key(db, identity, purpose)
                .filter(
                    OTP.issue_id == issue_id,
                    OTP.verified.is_(False),
                    OTP.attempts < max_attempts,
                    OTP.expires_at > now,
                )
                .update({"verified": True}, synchronize_session=False)
            )
            db.commit()
            return bool(updated)

    @_store_operation
    def delete(self, identity: str, purpose: OtpPurpose, issue_id: Optional[str] = None) -> bool:
        with self._session_factory() as db:
            query = self._key(db, identity, purpose)
            if issue_id is not None:
                query = query.filter(OTP.issue_id == issue_id)
            deleted = query.delete(synchronize_session=False)
            db.commit()
            return bool(deleted)

    @_store_operation
    def purge_expired(self, now: datetime) -> int:
        with self._session_factory() as db:
            deleted = db.query(OTP).filter(OTP.expires_at <= now).delete(synchronize_session=False)
            db.commit()
            return deleted
