from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.sql import func
import uuid

from app.db.base import Base

ROLE_OWNER = "owner"

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, index=True, nullable=False)
    password_hash = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ROLE_OWNER, index=True)
    name = Column(String, nullable=False)
    age = Column(Integer, nullable=True)
    phone = Column(String, nullable=True)
    nic = Column(String, nullable=True, index=True)
    supabase_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
