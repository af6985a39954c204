"""Authentication workflows: registration, login, token refresh and logout."""

import base64
import hashlib
import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.config import Settings
from src.models.enums import UserRole
from src.models.mixins import as_utc, utcnow
from src.models.user import User
from src.services.credential_store import CredentialStore, normalize_email
from src.services.results import ErrorKind, ServiceResult
from src.services.token_issuer import InvalidTokenError, TokenIssuer

logger = logging.getLogger(__name__)

# Same message for unknown email and wrong password
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
INVALID_TOKEN_MESSAGE = "Invalid token"
INVALID_REFRESH_TOKEN_MESSAGE = "Invalid refresh token"
DUPLICATE_EMAIL_MESSAGE = "Email already registered"

# HMAC-SHA512 key size, used as the per-password salt
SALT_BYTES = 128


def create_password_hash(password: str) -> tuple[str, str]:
    """Hash a password with HMAC-SHA512 under a fresh random key.

    Returns (hash, salt), both base64 encoded.
    """
    salt = secrets.token_bytes(SALT_BYTES)
    digest = hmac.new(salt, password.encode("utf-8"), hashlib.sha512).digest()
    return base64.b64encode(digest).decode("ascii"), base64.b64encode(salt).decode("ascii")


def verify_password(password: str, password_hash: str, password_salt: str) -> bool:
    """Recompute the MAC with the stored salt and compare it to the stored hash."""
    try:
        salt = base64.b64decode(password_salt)
        expected = base64.b64decode(password_hash)
    except ValueError:
        return False
    computed = hmac.new(salt, password.encode("utf-8"), hashlib.sha512).digest()
    return hmac.compare_digest(computed, expected)


def _tokens_match(stored: str | None, supplied: str) -> bool:
    """Constant-time comparison of a supplied refresh token with the stored one."""
    if stored is None:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), supplied.encode("utf-8"))


@dataclass(frozen=True)
class AuthSession:
    """Tokens handed back to a client after register, login or refresh."""

    user: User
    access_token: str
    access_token_expires_at: datetime
    refresh_token: str


class AuthCoordinator:
    """Runs the session lifecycle on top of the credential store and token issuer."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        token_issuer: TokenIssuer | None = None,
    ):
        self.settings = settings
        self.store = CredentialStore(db)
        self.token_issuer = token_issuer or TokenIssuer(settings)

    def _refresh_token_expiry(self, now: datetime) -> datetime:
        return now + timedelta(days=self.settings.refresh_token_days)

    def register(
        self,
        full_name: str,
        email: str,
        password: str,
        confirm_password: str,
        mobile_number: str,
        role: UserRole = UserRole.INDIVIDUAL,
    ) -> ServiceResult[AuthSession]:
        """Create an account and start its first session."""
        logger.info(f"Processing registration request for email: {email}")

        if password != confirm_password:
            return ServiceResult.fail(ErrorKind.VALIDATION_ERROR, "Passwords do not match")

        if self.store.email_exists(email):
            logger.warning(f"Registration failed: email {email} already registered")
            return ServiceResult.fail(ErrorKind.DUPLICATE_EMAIL, DUPLICATE_EMAIL_MESSAGE)

        password_hash, password_salt = create_password_hash(password)
        now = utcnow()
        refresh_token = self.token_issuer.issue_refresh_token()

        user = User(
            id=str(uuid.uuid4()),
            full_name=full_name.strip(),
            email=normalize_email(email),
            password_hash=password_hash,
            password_salt=password_salt,
            mobile_number=mobile_number.strip(),
            role=role,
            is_email_verified=False,
            refresh_token=refresh_token,
            refresh_token_expires_at=self._refresh_token_expiry(now),
        )
        try:
            self.store.add(user)
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            logger.warning(f"Registration failed: email {email} registered concurrently")
            return ServiceResult.fail(ErrorKind.DUPLICATE_EMAIL, DUPLICATE_EMAIL_MESSAGE)

        access_token, expires_at = self.token_issuer.issue_access_token(user)
        logger.info(f"User registered successfully: {user.id}")
        return ServiceResult.ok(
            AuthSession(user, access_token, expires_at, refresh_token),
            message="Registration successful",
        )

    def login(self, email: str, password: str) -> ServiceResult[AuthSession]:
        """Verify credentials and rotate the user's refresh token."""
        user = self.store.get_by_email(email)
        if user is None:
            logger.warning(f"Login failed: no account for email {normalize_email(email)}")
            return ServiceResult.fail(ErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

        if not verify_password(password, user.password_hash, user.password_salt):
            logger.warning(f"Login failed: invalid password for user {user.id}")
            return ServiceResult.fail(ErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

        now = utcnow()
        refresh_token = self.token_issuer.issue_refresh_token()
        user.refresh_token = refresh_token
        user.refresh_token_expires_at = self._refresh_token_expiry(now)
        user.last_login_at = now
        self.store.save(user)

        access_token, expires_at = self.token_issuer.issue_access_token(user)
        logger.info(f"User logged in successfully: {user.id}")
        return ServiceResult.ok(
            AuthSession(user, access_token, expires_at, refresh_token),
            message="Authentication successful",
        )

    def refresh_token(self, access_token: str, refresh_token: str) -> ServiceResult[AuthSession]:
        """Exchange an expired access token plus the live refresh token for new tokens.

        The refresh token is single use: the stored value is replaced in the
        same statement that checks it.
        """
        if not access_token or not refresh_token:
            return ServiceResult.fail(ErrorKind.INVALID_TOKEN, INVALID_TOKEN_MESSAGE)

        try:
            claims = self.token_issuer.extract_claims_ignoring_expiry(access_token)
        except InvalidTokenError as e:
            logger.warning(f"Token refresh rejected: {e}")
            return ServiceResult.fail(ErrorKind.INVALID_TOKEN, INVALID_TOKEN_MESSAGE)

        user_id = claims.get("sub")
        try:
            user_id = str(uuid.UUID(str(user_id)))
        except ValueError:
            logger.warning("Token refresh rejected: subject is not a valid user id")
            return ServiceResult.fail(ErrorKind.INVALID_TOKEN, INVALID_TOKEN_MESSAGE)

        user = self.store.get_by_id(user_id)
        if user is None:
            logger.warning(f"Token refresh rejected: user {user_id} not found")
            return ServiceResult.fail(ErrorKind.INVALID_TOKEN, INVALID_TOKEN_MESSAGE)

        now = utcnow()
        expires_at = as_utc(user.refresh_token_expires_at)
        if (
            not _tokens_match(user.refresh_token, refresh_token)
            or expires_at is None
            or expires_at <= now
        ):
            logger.warning(f"Invalid or expired refresh token for user {user_id}")
            return ServiceResult.fail(
                ErrorKind.INVALID_REFRESH_TOKEN, INVALID_REFRESH_TOKEN_MESSAGE
            )

        new_refresh_token = self.token_issuer.issue_refresh_token()
        rotated = self.store.rotate_refresh_token(
            user_id,
            current_token=refresh_token,
            new_token=new_refresh_token,
            new_expires_at=self._refresh_token_expiry(now),
            now=now,
        )
        if not rotated:
            # Another refresh consumed the same token first
            logger.warning(f"Concurrent refresh lost for user {user_id}")
            return ServiceResult.fail(
                ErrorKind.INVALID_REFRESH_TOKEN, INVALID_REFRESH_TOKEN_MESSAGE
            )

        self.store.db.refresh(user)
        new_access_token, access_expires_at = self.token_issuer.issue_access_token(user)
        logger.info(f"Tokens refreshed for user {user_id}")
        return ServiceResult.ok(
            AuthSession(user, new_access_token, access_expires_at, new_refresh_token),
            message="Token refreshed",
        )

    def revoke_session(self, user_id: str) -> ServiceResult[None]:
        """Clear the refresh token. Revoking an already revoked session succeeds."""
        user = self.store.get_by_id(user_id)
        if user is None:
            logger.warning(f"Token revocation failed: user {user_id} not found")
            return ServiceResult.fail(ErrorKind.USER_NOT_FOUND, "User not found")

        if user.refresh_token is not None or user.refresh_token_expires_at is not None:
            self.store.clear_refresh_token(user)
        logger.info(f"Session revoked for user {user_id}")
        return ServiceResult.ok(message="Logged out successfully")

    def get_profile(self, user_id: str) -> User | None:
        """Return the user, or None for a stale or unknown id.

        Password material stays on the model; callers project it through
        ``UserProfileResponse``, which has no field for it.
        """
        return self.store.get_by_id(user_id)

    def request_account_deletion(self, user_id: str) -> ServiceResult[None]:
        """Soft delete the account and end its session.

        Deleted users are invisible to every lookup, so they can no longer
        log in, refresh, or authenticate. Their payments are kept.
        """
        user = self.store.get_by_id(user_id)
        if user is None:
            return ServiceResult.fail(ErrorKind.USER_NOT_FOUND, "User not found")

        user.soft_delete()
        user.refresh_token = None
        user.refresh_token_expires_at = None
        self.store.save(user)
        logger.info(f"Account deletion requested for user: {user_id}")
        return ServiceResult.ok(message="Account deletion requested")
