"""
One-time passcode issuance and verification for registration and password reset.

State per (email, purpose):

    absent --request_code--> pending --verify_code(match)--> verified --consume + caller discard--> absent

A pending code is deleted when it is found expired or after the attempt cap is
hit. A wrong code presented at finalisation counts against the same cap.
Re-requesting once the cooldown has passed overwrites the record with a fresh
code, zero attempts and verified=False.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Protocol
import asyncio
import logging
import math
import uuid

from app.core.config import settings
from app.core.security import generate_otp, otp_matches
from app.models.otp import OtpPurpose
from app.models.user import ROLE_OWNER
from app.services.otp_store import OtpRecord, OtpStore
from app.utils.errors import (
    AccountNotFound,
    AlreadyRegistered,
    AlreadyVerified,
    CooldownActive,
    DeliveryFailed,
    IncorrectCode,
    NotVerified,
    OtpExpired,
    OtpNotFound,
    StoreUnavailable,
    TooManyAttempts,
)

logger = logging.getLogger(__name__)

# How many times a state transition is re-evaluated after losing a write race
_MAX_RACE_RETRIES = 3


class IdentityLookup(Protocol):
    def exists(self, identity: str, role: str) -> bool: ...


class OtpDeliveryChannel(Protocol):
    async def send(self, identity: str, code: str, context: Dict[str, Any]) -> bool: ...


@dataclass(frozen=True)
class OtpPolicy:
    cooldown: timedelta = timedelta(seconds=120)
    register_expiry: timedelta = timedelta(minutes=5)
    reset_expiry: timedelta = timedelta(minutes=10)
    max_attempts: int = 5

    def expiry_for(self, purpose: OtpPurpose) -> timedelta:
        if purpose is OtpPurpose.REGISTER:
            return self.register_expiry
        return self.reset_expiry

    @classmethod
    def from_settings(cls) -> "OtpPolicy":
        return cls(
            cooldown=timedelta(seconds=settings.OTP_COOLDOWN_SECONDS),
            register_expiry=timedelta(minutes=settings.OTP_REGISTER_EXPIRY_MINUTES),
            reset_expiry=timedelta(minutes=settings.OTP_RESET_EXPIRY_MINUTES),
            max_attempts=settings.OTP_MAX_ATTEMPTS,
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_identity(identity: str) -> str:
    return (identity or "").strip().lower()


class OtpManager:
    def __init__(
        self,
        store: OtpStore,
        identities: IdentityLookup,
        delivery: OtpDeliveryChannel,
        policy: Optional[OtpPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        role: str = ROLE_OWNER,
    ):
        self._store = store
        self._identities = identities
        self._delivery = delivery
        self._policy = policy or OtpPolicy()
        self._clock = clock
        self._role = role

    @property
    def policy(self) -> OtpPolicy:
        return self._policy

    def _check_precondition(self, identity: str, purpose: OtpPurpose) -> None:
        registered = self._identities.exists(identity, self._role)
        if purpose is OtpPurpose.REGISTER and registered:
            raise AlreadyRegistered()
        if purpose is OtpPurpose.RESET_PASSWORD and not registered:
            raise AccountNotFound()

    def _remaining_cooldown(self, record: OtpRecord, now: datetime) -> int:
        remaining = self._policy.cooldown - (now - record.created_or_resent_at)
        return max(1, math.ceil(remaining.total_seconds()))

    def _roll_back(self, record: OtpRecord) -> None:
        # Only removes the issuance we wrote; a newer one stays untouched
        self._store.delete(record.identity, record.purpose, issue_id=record.issue_id)
        logger.warning(f"Rolled back {record.purpose.value} code for {record.identity} after failed delivery")

    async def request_code(
        self, identity: str, purpose: OtpPurpose, context: Optional[Dict[str, Any]] = None
    ) -> OtpRecord:
        """
        Issue a fresh code for (identity, purpose) and deliver it.

        Raises CooldownActive while the previous code is younger than the cooldown
        window, AlreadyRegistered / AccountNotFound when the purpose precondition
        fails and DeliveryFailed when the channel could not send. A failed delivery
        removes the record again so the caller is not held back by a cooldown for a
        code nobody received.
        """
        identity = normalize_identity(identity)
        purpose = OtpPurpose(purpose)
        self._check_precondition(identity, purpose)

        now = self._clock()
        expiry = self._policy.expiry_for(purpose)
        record = OtpRecord(
            identity=identity,
            purpose=purpose,
            code=generate_otp(),
            issue_id=str(uuid.uuid4()),
            created_or_resent_at=now,
            expires_at=now + expiry,
        )

        for _ in range(_MAX_RACE_RETRIES):
            if self._store.upsert(record, resend_after=now - self._policy.cooldown):
                break
            existing = self._store.get(identity, purpose)
            if existing is not None and not existing.is_expired(now):
                remaining = self._remaining_cooldown(existing, now)
                logger.info(f"Cooldown active for {purpose.value} code to {identity}: {remaining}s left")
                raise CooldownActive(remaining)
        else:
            raise StoreUnavailable("Could not issue a verification code, please retry")

        delivery_context = dict(context or {})
        delivery_context.setdefault("purpose", purpose)
        delivery_context.setdefault("expires_in_minutes", int(expiry.total_seconds() // 60))

        try:
            delivered = await self._delivery.send(identity, record.code, delivery_context)
        except asyncio.CancelledError:
            self._roll_back(record)
            raise
        except Exception as e:
            logger.error(f"Delivery of {purpose.value} code to {identity} raised: {e}", exc_info=True)
            self._roll_back(record)
            raise DeliveryFailed() from e

        if not delivered:
            self._roll_back(record)
            raise DeliveryFailed()

        logger.info(f"Issued {purpose.value} code to {identity}, expires at {record.expires_at.isoformat()}")
        return record

    async def verify_code(self, identity: str, purpose: OtpPurpose, submitted_code: str) -> OtpRecord:
        identity = normalize_identity(identity)
        purpose = OtpPurpose(purpose)
        max_attempts = self._policy.max_attempts

        for _ in range(_MAX_RACE_RETRIES):
            record = self._store.get(identity, purpose)
            now = self._clock()

            if record is None:
                raise OtpNotFound()
            if record.verified:
                raise AlreadyVerified()

            if record.is_expired(now):
                if self._store.delete(identity, purpose, issue_id=record.issue_id):
                    logger.info(f"Expired {purpose.value} code for {identity} removed on verification")
                    raise OtpExpired()
                continue

            if record.attempts >= max_attempts:
                if self._store.delete(identity, purpose, issue_id=record.issue_id):
                    logger.warning(f"Attempt cap reached for {purpose.value} code for {identity}")
                    raise TooManyAttempts()
                continue

            if otp_matches(submitted_code, record.code):
                if self._store.mark_verified(identity, purpose, record.issue_id, max_attempts, now):
                    logger.info(f"Verified {purpose.value} code for {identity}")
                    return replace(record, verified=True)
            elif self._store.increment_attempts(identity, purpose, record.issue_id, record.attempts):
                remaining = max_attempts - (record.attempts + 1)
                logger.info(f"Incorrect {purpose.value} code for {identity}, {remaining} attempt(s) left")
                raise IncorrectCode(remaining)
            # The row moved on between read and write; re-evaluate

        raise StoreUnavailable("Could not verify the code, please retry")

    async def consume_verified(
        self, identity: str, purpose: OtpPurpose, submitted_code: Optional[str] = None
    ) -> OtpRecord:
        """
        Return the verified record gating a downstream change.

        When `submitted_code` is given it must match the verified code. A mismatch
        counts against the same attempt budget as verify_code, so a verified record
        cannot be used to keep guessing. The record is not removed on success: the
        caller discards it once its own write has succeeded.
        """
        identity = normalize_identity(identity)
        purpose = OtpPurpose(purpose)
        max_attempts = self._policy.max_attempts

        for _ in range(_MAX_RACE_RETRIES):
            record = self._store.get(identity, purpose)
            now = self._clock()
            if record is None or not record.verified:
                raise NotVerified()
            if record.is_expired(now):
                self._store.delete(identity, purpose, issue_id=record.issue_id)
                raise NotVerified()

            if record.attempts >= max_attempts:
                if self._store.delete(identity, purpose, issue_id=record.issue_id):
                    logger.warning(f"Attempt cap reached for verified {purpose.value} code for {identity}")
                    raise TooManyAttempts()
                continue

            if submitted_code is None or otp_matches(submitted_code, record.code):
                return record

            if self._store.increment_attempts(identity, purpose, record.issue_id, record.attempts, verified=True):
                remaining = max_attempts - (record.attempts + 1)
                logger.info(f"Incorrect code at {purpose.value} finalisation for {identity}, {remaining} attempt(s) left")
                raise IncorrectCode(remaining)

        raise StoreUnavailable("Could not check the code, please retry")

    def discard(self, record: OtpRecord) -> bool:
        return self._store.delete(record.identity, record.purpose, issue_id=record.issue_id)

    def purge_expired(self) -> int:
        purged = self._store.purge_expired(self._clock())
        if purged:
            logger.info(f"Purged {purged} expired OTP record(s)")
        return purged
