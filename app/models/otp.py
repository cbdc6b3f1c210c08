from sqlalchemy import Boolean, Column, String, DateTime, Integer, UniqueConstraint
from sqlalchemy.sql import func
import enum
import uuid

from app.db.base import Base


class OtpPurpose(str, enum.Enum):
    REGISTER = "register"
    RESET_PASSWORD = "reset_password"


class OTP(Base):
    """
    One live code per (email, purpose). Re-issuing overwrites the row in place.

    issue_id changes on every issuance and guards every per-row mutation, so an
    update prepared against an older code can never land on a newer one.
    """
    __tablename__ = "otp_codes"
    __table_args__ = (
        UniqueConstraint("email", "purpose", name="uq_otp_codes_email_purpose"),
    )

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, index=True, nullable=False)
    purpose = Column(String(32), nullable=False)  # OtpPurpose value
    code = Column(String(6), nullable=False)
    issue_id = Column(String, nullable=False, default=lambda: str(uuid.uuid4()))
    last_sent_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
