"""FastAPI dependencies for authentication, database and services."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.database import get_db
from src.models.user import User
from src.services.auth import AuthCoordinator
from src.services.credential_store import CredentialStore
from src.services.mpesa import MpesaClient
from src.services.payments import PaymentCoordinator
from src.services.token_issuer import TokenIssuer

security = HTTPBearer()

CREDENTIALS_EXCEPTION_DETAIL = "Invalid authentication credentials"


def get_token_issuer(settings: Annotated[Settings, Depends(get_settings)]) -> TokenIssuer:
    """Get token issuer bound to the application settings."""
    return TokenIssuer(settings)


def get_mpesa_client(settings: Annotated[Settings, Depends(get_settings)]) -> MpesaClient:
    """Get M-Pesa gateway client."""
    return MpesaClient(settings)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    token_issuer: Annotated[TokenIssuer, Depends(get_token_issuer)],
) -> User:
    """Get the current authenticated user from JWT token."""
    payload = token_issuer.decode_access_token(credentials.credentials)

    user_id = payload.get("sub") if payload else None
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=CREDENTIALS_EXCEPTION_DETAIL,
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = CredentialStore(db).get_by_id(str(user_id))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=CREDENTIALS_EXCEPTION_DETAIL,
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


def get_auth_coordinator(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    token_issuer: Annotated[TokenIssuer, Depends(get_token_issuer)],
) -> AuthCoordinator:
    """Get auth coordinator with dependencies."""
    return AuthCoordinator(db, settings, token_issuer=token_issuer)


def get_payment_coordinator(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    gateway: Annotated[MpesaClient, Depends(get_mpesa_client)],
) -> PaymentCoordinator:
    """Get payment coordinator with dependencies."""
    return PaymentCoordinator(db, settings, gateway=gateway)
