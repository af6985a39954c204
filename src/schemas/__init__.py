"""Pydantic schemas for API requests and responses."""

from src.schemas.auth import (
    AuthResponse,
    MessageResponse,
    RefreshTokenRequest,
    UserLogin,
    UserProfileResponse,
    UserRegister,
)
from src.schemas.mpesa import StkCallback, StkPushResponse
from src.schemas.payment import PaymentInitiatedResponse, PaymentStatusResponse, StkPushRequest

__all__ = [
    "UserRegister",
    "UserLogin",
    "RefreshTokenRequest",
    "AuthResponse",
    "UserProfileResponse",
    "MessageResponse",
    "StkPushRequest",
    "PaymentInitiatedResponse",
    "PaymentStatusResponse",
    "StkCallback",
    "StkPushResponse",
]
