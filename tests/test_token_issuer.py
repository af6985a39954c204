"""Tests for access and refresh token handling."""

import base64
from datetime import timedelta

import pytest
from jose import jwt

from src.models.enums import UserRole
from src.models.mixins import utcnow
from src.models.user import User
from src.services.token_issuer import InvalidTokenError, TokenIssuer


@pytest.fixture
def token_user() -> User:
    return User(
        id="6f1c2a3e-9b1d-4d7e-8a53-2f0e4b7c1d90",
        full_name="Jane Wanjiku",
        email="jane@example.com",
        role=UserRole.BUSINESS,
    )


@pytest.fixture
def issuer(settings) -> TokenIssuer:
    return TokenIssuer(settings)


class TestIssueAccessToken:
    """Tests for access token issuance."""

    def test_embeds_identity_claims(self, issuer, token_user, settings):
        token, expires_at = issuer.issue_access_token(token_user)
        claims = issuer.extract_claims_ignoring_expiry(token)

        assert claims["sub"] == token_user.id
        assert claims["name"] == "Jane Wanjiku"
        assert claims["email"] == "jane@example.com"
        assert claims["role"] == "Business"
        assert claims["iss"] == settings.jwt_issuer
        assert claims["aud"] == settings.jwt_audience
        assert claims["jti"]
        assert expires_at > utcnow()

    def test_token_ids_are_unique(self, issuer, token_user):
        first, _ = issuer.issue_access_token(token_user)
        second, _ = issuer.issue_access_token(token_user)
        assert jwt.get_unverified_claims(first)["jti"] != jwt.get_unverified_claims(second)["jti"]

    def test_signed_with_configured_algorithm(self, issuer, token_user, settings):
        token, _ = issuer.issue_access_token(token_user)
        assert jwt.get_unverified_header(token)["alg"] == settings.jwt_algorithm


class TestIssueRefreshToken:
    """Tests for opaque refresh tokens."""

    def test_has_512_bits_of_entropy(self):
        token = TokenIssuer.issue_refresh_token()
        assert len(base64.b64decode(token)) == 64

    def test_tokens_are_unique(self):
        tokens = {TokenIssuer.issue_refresh_token() for _ in range(50)}
        assert len(tokens) == 50


class TestExtractClaimsIgnoringExpiry:
    """Tests for validating expired access tokens."""

    def _expired_token(self, settings, token_user, **overrides):
        claims = {
            "sub": token_user.id,
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
            "exp": utcnow() - timedelta(hours=1),
        }
        claims.update(overrides)
        return claims

    def test_accepts_expired_token(self, issuer, settings, token_user):
        token = jwt.encode(
            self._expired_token(settings, token_user), settings.jwt_secret, algorithm="HS256"
        )
        assert issuer.extract_claims_ignoring_expiry(token)["sub"] == token_user.id
        # Full validation still rejects it
        assert issuer.decode_access_token(token) is None

    def test_rejects_wrong_signature(self, issuer, settings, token_user):
        token = jwt.encode(
            self._expired_token(settings, token_user), "another-secret", algorithm="HS256"
        )
        with pytest.raises(InvalidTokenError):
            issuer.extract_claims_ignoring_expiry(token)

    def test_rejects_wrong_issuer(self, issuer, settings, token_user):
        token = jwt.encode(
            self._expired_token(settings, token_user, iss="someone-else"),
            settings.jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            issuer.extract_claims_ignoring_expiry(token)

    def test_rejects_wrong_audience(self, issuer, settings, token_user):
        token = jwt.encode(
            self._expired_token(settings, token_user, aud="another-app"),
            settings.jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            issuer.extract_claims_ignoring_expiry(token)

    def test_rejects_substituted_algorithm(self, issuer, settings, token_user):
        token = jwt.encode(
            self._expired_token(settings, token_user), settings.jwt_secret, algorithm="HS512"
        )
        with pytest.raises(InvalidTokenError):
            issuer.extract_claims_ignoring_expiry(token)

    def test_rejects_garbage(self, issuer):
        with pytest.raises(InvalidTokenError):
            issuer.extract_claims_ignoring_expiry("definitely.not.a-token")
