"""Authentication schemas."""

import re
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from src.models.enums import UserRole

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^\da-zA-Z]).{8,}$")
PHONE_PATTERN = re.compile(r"^\+?\d{9,15}$")


class UserRegister(BaseModel):
    """User registration request."""

    full_name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr = Field(..., max_length=150)
    password: str = Field(..., min_length=8, max_length=100)
    confirm_password: str
    mobile_number: str = Field(..., max_length=20)
    role: UserRole = UserRole.INDIVIDUAL

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not PASSWORD_PATTERN.match(value):
            raise ValueError(
                "Password must include at least one uppercase letter, one lowercase letter, "
                "one number, and one special character"
            )
        return value

    @field_validator("mobile_number")
    @classmethod
    def phone_format(cls, value: str) -> str:
        value = value.strip().replace(" ", "")
        if not PHONE_PATTERN.match(value):
            raise ValueError("Invalid phone number format")
        return value

    @model_validator(mode="after")
    def passwords_match(self) -> "UserRegister":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class UserLogin(BaseModel):
    """User login request."""

    email: EmailStr = Field(..., max_length=150)
    password: str = Field(..., min_length=1, max_length=100)


class RefreshTokenRequest(BaseModel):
    """Expired access token plus the refresh token issued with it."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)


class AuthResponse(BaseModel):
    """Authentication response with tokens and user info."""

    is_success: bool = True
    message: str
    access_token: str
    token_type: str = "bearer"  # noqa: S105
    token_expiration: datetime
    refresh_token: str
    user_id: uuid.UUID
    email: str
    full_name: str
    role: UserRole


class UserProfileResponse(BaseModel):
    """User profile without password or token material."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    email: str
    mobile_number: str
    role: UserRole
    is_email_verified: bool
    created_at: datetime
    last_login_at: datetime | None


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str
