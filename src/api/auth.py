"""Authentication API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import get_auth_coordinator, get_current_user
from src.api.errors import raise_for_result
from src.models.user import User
from src.schemas.auth import (
    AuthResponse,
    MessageResponse,
    RefreshTokenRequest,
    UserLogin,
    UserProfileResponse,
    UserRegister,
)
from src.services.auth import AuthCoordinator, AuthSession
from src.services.results import ServiceResult

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _auth_response(result: ServiceResult[AuthSession]) -> AuthResponse:
    raise_for_result(result)
    session = result.value
    return AuthResponse(
        message=result.message,
        access_token=session.access_token,
        token_expiration=session.access_token_expires_at,
        refresh_token=session.refresh_token,
        user_id=session.user.id,
        email=session.user.email,
        full_name=session.user.full_name,
        role=session.user.role,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    auth: Annotated[AuthCoordinator, Depends(get_auth_coordinator)],
):
    """Register a new user."""
    result = auth.register(
        full_name=user_data.full_name,
        email=user_data.email,
        password=user_data.password,
        confirm_password=user_data.confirm_password,
        mobile_number=user_data.mobile_number,
        role=user_data.role,
    )
    return _auth_response(result)


@router.post("/login", response_model=AuthResponse)
async def login(
    credentials: UserLogin,
    auth: Annotated[AuthCoordinator, Depends(get_auth_coordinator)],
):
    """Login with email and password."""
    return _auth_response(auth.login(credentials.email, credentials.password))


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    tokens: RefreshTokenRequest,
    auth: Annotated[AuthCoordinator, Depends(get_auth_coordinator)],
):
    """Exchange an expired access token and a refresh token for new tokens."""
    return _auth_response(auth.refresh_token(tokens.access_token, tokens.refresh_token))


@router.get("/me", response_model=UserProfileResponse)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
    auth: Annotated[AuthCoordinator, Depends(get_auth_coordinator)],
):
    """Get current user profile."""
    profile = auth.get_profile(current_user.id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return profile


@router.delete("/me", response_model=MessageResponse)
async def delete_me(
    current_user: Annotated[User, Depends(get_current_user)],
    auth: Annotated[AuthCoordinator, Depends(get_auth_coordinator)],
):
    """Request deletion of the current account."""
    result = auth.request_account_deletion(current_user.id)
    raise_for_result(result)
    return MessageResponse(message=result.message)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    current_user: Annotated[User, Depends(get_current_user)],
    auth: Annotated[AuthCoordinator, Depends(get_auth_coordinator)],
):
    """Logout by revoking the refresh token."""
    result = auth.revoke_session(current_user.id)
    raise_for_result(result)
    return MessageResponse(message=result.message)
