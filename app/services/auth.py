from typing import Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.core.security import create_access_token, get_password_hash, verify_password
from app.db.base import SessionLocal
from app.models.otp import OtpPurpose
from app.models.user import ROLE_OWNER, User
from app.schemas.user import OwnerRegister
from app.services.otp import OtpManager, OtpPolicy, normalize_identity
from app.services.otp_store import OtpStore
from app.utils.email import EmailOtpDelivery
from app.utils.errors import AlreadyRegistered, AuthError, StoreUnavailable
from app.utils.supabase import create_supabase_user, update_supabase_password

logger = logging.getLogger(__name__)


class UserDirectory:
    """Account lookups and writes against the users table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _run(self, operation):
        try:
            with self._session_factory() as db:
                return operation(db)
        except SQLAlchemyError as e:
            logger.error(f"User store operation failed: {e}", exc_info=True)
            raise StoreUnavailable("Account service temporarily unavailable") from e

    def get_by_email(self, email: str, role: str = ROLE_OWNER) -> Optional[User]:
        email = normalize_identity(email)
        return self._run(lambda db: db.query(User).filter(User.email == email, User.role == role).first())

    def exists(self, identity: str, role: str = ROLE_OWNER) -> bool:
        return self.get_by_email(identity, role) is not None

    def nic_taken(self, nic: str, role: str = ROLE_OWNER) -> bool:
        nic = nic.strip()
        return self._run(
            lambda db: db.query(User.id).filter(User.nic == nic, User.role == role).first() is not None
        )

    def create_user(self, data: OwnerRegister, password_hash: str, supabase_id: Optional[str] = None) -> User:
        def _create(db):
            user = User(
                email=normalize_identity(data.email),
                password_hash=password_hash,
                role=ROLE_OWNER,
                name=data.name.strip(),
                age=data.age,
                phone=data.phone.strip(),
                nic=data.nic.strip(),
                supabase_id=supabase_id,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            return user
        return self._run(_create)

    def update_password(self, user_id: str, password_hash: str) -> bool:
        def _update(db):
            updated = (
                db.query(User)
                .filter(User.id == user_id)
                .update({"password_hash": password_hash}, synchronize_session=False)
            )
            db.commit()
            return bool(updated)
        return self._run(_update)


def validate_new_password(password: str) -> None:
    if len((password or "").strip()) < settings.MIN_PASSWORD_LENGTH:
        raise AuthError(
            f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters.",
            code="weak_password",
            status=400,
        )


async def complete_registration(
    manager: OtpManager, users: UserDirectory, data: OwnerRegister
) -> Tuple[User, str]:
    email = normalize_identity(data.email)
    validate_new_password(data.password)
    record = await manager.consume_verified(email, OtpPurpose.REGISTER)

    if users.exists(email, ROLE_OWNER):
        raise AlreadyRegistered()
    if users.nic_taken(data.nic, ROLE_OWNER):
        raise AuthError("NIC already registered", code="nic_taken", status=409)

    supabase_id = None
    try:
        supabase_id = await create_supabase_user(email, data.password)
    except Exception as e:
        # Supabase Auth is a mirror; local registration proceeds without it
        logger.error(f"Supabase signup error for {email}: {e}")

    user = users.create_user(data, get_password_hash(data.password), supabase_id=supabase_id)

    if not manager.discard(record):
        logger.warning(f"Registration code for {email} was already gone when discarding")

    logger.info(f"Registered owner {user.id} ({email})")
    return user, create_access_token(user.id)


async def authenticate_user(users: UserDirectory, email: str, password: str) -> Tuple[User, str]:
    user = users.get_by_email(email, ROLE_OWNER)
    if not user:
        raise AuthError("No account found. Please register first.", code="invalid_credentials", status=401)
    if not user.password_hash:
        raise AuthError("This account has no password set.", code="invalid_credentials", status=401)
    if not verify_password(password, user.password_hash):
        raise AuthError("Invalid email or password", code="invalid_credentials", status=401)
    return user, create_access_token(user.id)


async def complete_password_reset(
    manager: OtpManager, users: UserDirectory, email: str, otp: str, new_password: str
) -> User:
    email = normalize_identity(email)
    # The final step must present the same code that was verified
    record = await manager.consume_verified(email, OtpPurpose.RESET_PASSWORD, submitted_code=otp)
    validate_new_password(new_password)

    user = users.get_by_email(email, ROLE_OWNER)
    if user is None or not users.update_password(user.id, get_password_hash(new_password)):
        raise AuthError("Failed to reset password. Please try again.", code="reset_failed", status=500)

    if user.supabase_id:
        try:
            await update_supabase_password(user.supabase_id, new_password)
        except Exception as e:
            logger.error(f"Supabase password update error for {email}: {e}")

    manager.discard(record)
    logger.info(f"Password reset for owner {user.id}")
    return user


def get_user_directory() -> UserDirectory:
    return UserDirectory(SessionLocal)


def build_otp_manager(session_factory: sessionmaker = SessionLocal) -> OtpManager:
    return OtpManager(
        store=OtpStore(session_factory),
        identities=UserDirectory(session_factory),
        delivery=EmailOtpDelivery(),
        policy=OtpPolicy.from_settings(),
    )


def get_otp_manager() -> OtpManager:
    return build_otp_manager()
