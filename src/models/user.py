"""User model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, String

from src.database import Base
from src.models.enums import UserRole
from src.models.mixins import SoftDeleteMixin, TimestampMixin


class User(Base, TimestampMixin, SoftDeleteMixin):
    """Registered account that can request payments.

    The refresh token columns double as the session state: both NULL means
    logged out, a value with a past expiry means the session has expired.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    full_name = Column(String(100), nullable=False)
    email = Column(String(150), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    password_salt = Column(String(255), nullable=False)
    mobile_number = Column(String(20), nullable=False)
    role = Column(
        Enum(
            UserRole,
            name="userrole",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=UserRole.INDIVIDUAL,
        nullable=False,
    )
    is_email_verified = Column(Boolean, default=False, nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    refresh_token = Column(String(500), nullable=True)
    refresh_token_expires_at = Column(DateTime(timezone=True), nullable=True)
