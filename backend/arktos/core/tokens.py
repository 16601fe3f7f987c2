"""Token issuer for access, refresh and purpose-scoped JWTs.

Three independent token classes are produced here:

1. ACCESS (short-lived, ``JWT_SECRET``):
   sent as ``Authorization: Bearer`` on every API request.
2. REFRESH (long-lived, ``JWT_REFRESH_SECRET``):
   persisted in ``refresh_tokens`` and redeemable exactly once.
3. PURPOSE (``email_verify`` / ``password_reset``, purpose secret):
   only valid for the flow named in their ``purpose`` claim.

Every token carries ``purpose`` and ``verify`` checks it, so a token minted
for one flow is rejected by another even when signature and expiry are
valid. Access and refresh tokens use different secrets, so leaking the
access secret does not allow refresh-token forgery.
"""

import enum
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from config.config import Settings
from core.errors import TokenExpiredError, TokenInvalidError, TokenPurposeMismatchError
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import BaseModel, ConfigDict


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    EMAIL_VERIFY = "email_verify"
    PASSWORD_RESET = "password_reset"


class TokenClaims(BaseModel):
    """Claims extracted from a verified token."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    purpose: TokenKind
    expires_at: datetime
    role: str | None = None
    session_id: str | None = None
    jti: str | None = None


class TokenIssuer:
    """Creates and verifies the three token classes.

    Args:
        access_secret: Secret for access tokens.
        refresh_secret: Secret for refresh tokens.
        purpose_secret: Secret for purpose-scoped tokens.
        algorithm: JWT algorithm shared by all classes.
        access_ttl: Access token lifetime.
        refresh_ttl: Refresh token lifetime.
    """

    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        purpose_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        self._secrets = {
            TokenKind.ACCESS: access_secret,
            TokenKind.REFRESH: refresh_secret,
            TokenKind.EMAIL_VERIFY: purpose_secret,
            TokenKind.PASSWORD_RESET: purpose_secret,
        }
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(
            access_secret=settings.JWT_SECRET,
            refresh_secret=settings.JWT_REFRESH_SECRET,
            purpose_secret=settings.purpose_secret,
            algorithm=settings.ALGORITHM,
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )

    def _encode(self, claims: dict, kind: TokenKind, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        to_encode = claims.copy()
        # NOTE: jti keeps two tokens minted in the same second distinct;
        # refresh tokens are stored under a unique constraint.
        to_encode.update(
            {
                "purpose": kind.value,
                "iat": now,
                "exp": now + ttl,
                "jti": secrets.token_urlsafe(16),
            }
        )
        return jwt.encode(to_encode, self._secrets[kind], algorithm=self.algorithm)

    def issue_access_token(
        self, user_id: str, email: str, role: str, session_id: str
    ) -> str:
        """Create a short-lived access token for API requests."""
        return self._encode(
            {"userId": user_id, "email": email, "role": role, "sessionId": session_id},
            TokenKind.ACCESS,
            self.access_ttl,
        )

    def issue_refresh_token(
        self, user_id: str, email: str, role: str, session_id: str
    ) -> str:
        """Create a long-lived refresh token with the same claim shape."""
        return self._encode(
            {"userId": user_id, "email": email, "role": role, "sessionId": session_id},
            TokenKind.REFRESH,
            self.refresh_ttl,
        )

    def issue_purpose_token(
        self, user_id: str, email: str, purpose: TokenKind, ttl: timedelta
    ) -> str:
        """Create a token usable only for ``purpose`` (verify/reset flows)."""
        if purpose not in (TokenKind.EMAIL_VERIFY, TokenKind.PASSWORD_RESET):
            raise ValueError(f"{purpose.value} is not a purpose-scoped token kind")
        return self._encode({"userId": user_id, "email": email}, purpose, ttl)

    def verify(self, token: str, expected_kind: TokenKind) -> TokenClaims:
        """Verify signature, expiry and purpose of ``token``.

        Args:
            token: Encoded JWT.
            expected_kind: The class the caller is willing to accept.

        Returns:
            TokenClaims: The decoded claims.

        Raises:
            TokenExpiredError: The token is past its expiry.
            TokenInvalidError: Signature or format is wrong.
            TokenPurposeMismatchError: The token was minted for another flow.
        """
        try:
            payload = jwt.decode(
                token,
                self._secrets[expected_kind],
                algorithms=[self.algorithm],
                options={"require": ["exp", "purpose", "userId"]},
            )
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except InvalidTokenError:
            raise TokenInvalidError()

        if payload.get("purpose") != expected_kind.value:
            raise TokenPurposeMismatchError()

        return TokenClaims(
            user_id=str(payload["userId"]),
            email=payload.get("email", ""),
            purpose=expected_kind,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            role=payload.get("role"),
            session_id=payload.get("sessionId"),
            jti=payload.get("jti"),
        )
