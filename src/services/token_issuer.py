"""JWT access tokens and opaque rotating refresh tokens."""

import base64
import logging
import secrets
import uuid
from datetime import datetime, timedelta

from jose import JWTError, jwt

from src.config import Settings
from src.models.mixins import utcnow
from src.models.user import User

logger = logging.getLogger(__name__)

# 64 random bytes = 512 bits of entropy
REFRESH_TOKEN_BYTES = 64


class InvalidTokenError(Exception):
    """Raised when a token fails signature, issuer, audience or algorithm checks."""


class TokenIssuer:
    """Mints and validates bearer tokens.

    Signing and validation share ``settings.jwt_algorithm`` so a token can
    never be signed with one algorithm and checked against another.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.algorithm = settings.jwt_algorithm

    def issue_access_token(self, user: User) -> tuple[str, datetime]:
        """Create a signed access token for the user and return it with its expiry."""
        now = utcnow()
        expire = now + timedelta(minutes=self.settings.jwt_expiration_minutes)
        role = user.role.value if hasattr(user.role, "value") else user.role
        to_encode = {
            "sub": str(user.id),
            "name": user.full_name,
            "email": user.email,
            "role": role,
            "jti": str(uuid.uuid4()),
            "iss": self.settings.jwt_issuer,
            "aud": self.settings.jwt_audience,
            "iat": now,
            "exp": expire,
        }
        token = jwt.encode(to_encode, self.settings.jwt_secret, algorithm=self.algorithm)
        return token, expire

    @staticmethod
    def issue_refresh_token() -> str:
        """Create an opaque refresh token with no embedded claims."""
        return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")

    def decode_access_token(self, token: str) -> dict | None:
        """Decode and fully validate a bearer token, expiry included."""
        try:
            return self._decode(token, verify_exp=True)
        except InvalidTokenError:
            return None

    def extract_claims_ignoring_expiry(self, token: str) -> dict:
        """Validate a possibly expired access token and return its claims.

        Signature, issuer, audience and header algorithm are all checked;
        only the expiry is skipped so the token can be refreshed.
        """
        return self._decode(token, verify_exp=False)

    def _decode(self, token: str, verify_exp: bool) -> dict:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise InvalidTokenError("Malformed token header") from e

        if str(header.get("alg", "")).upper() != self.algorithm.upper():
            logger.warning(f"Rejected token signed with unexpected algorithm {header.get('alg')}")
            raise InvalidTokenError("Unexpected signing algorithm")

        try:
            return jwt.decode(
                token,
                self.settings.jwt_secret,
                algorithms=[self.algorithm],
                audience=self.settings.jwt_audience,
                issuer=self.settings.jwt_issuer,
                options={"verify_exp": verify_exp},
            )
        except JWTError as e:
            raise InvalidTokenError("Token validation failed") from e
