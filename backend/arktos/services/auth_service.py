"""Authentication flows: register, login, refresh, logout, verification.

AUTH FLOW OVERVIEW:

1. REGISTER:
   - Email (lowercased) and optional username must be unused
   - Password is stored as a bcrypt hash
   - An email-verification token (24h) is stored and emailed
     in the background; a failed send never fails registration

2. LOGIN:
   - Unknown email and wrong password produce the same error
   - Every attempt against a known account is written to ``login_logs``
   - Success returns an access token and a stored refresh token

3. REFRESH:
   - The presented refresh token must verify AND be claimed in the DB
     by a conditional update (live, unrevoked, unexpired -> revoked)
   - The successor token is inserted in the same transaction, so each
     refresh token is redeemable exactly once

4. LOGOUT / CHANGE PASSWORD / RESET PASSWORD:
   - Logout revokes the presented token (idempotent)
   - Changing or resetting the password revokes every session of the user

State is re-read from the store on every call; nothing is cached between
requests.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import timedelta

from core.errors import (
    AccountDisabledError,
    EmailTakenError,
    InternalError,
    InvalidCredentialsError,
    InvalidPasswordError,
    TokenExpiredError,
    TokenInvalidError,
    UsernameTakenError,
    UserNotFoundError,
    VerificationTokenExpiredError,
    VerificationTokenInvalidError,
)
from core.logging import logger, redact_email
from core.security import hash_password, verify_password
from core.tokens import TokenIssuer, TokenKind
from db.session import as_utc, utcnow
from models.auth import User, VerificationStatus
from pwdlib import PasswordHash
from schemas.auth import LoginLogPublic, TokenPair, UserPublic
from services.credential_store import CredentialStore, normalize_email
from services.email_service import EmailService

PROFILE_FIELDS = ("first_name", "last_name", "avatar")


@dataclass(frozen=True)
class ClientInfo:
    """Request origin recorded on audit entries and refresh tokens."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class LoginResult:
    user: UserPublic
    tokens: TokenPair


class AuthService:
    """Orchestrates the credential store, token issuer and email service.

    Args:
        store: Request-scoped credential store.
        issuer: Token issuer shared by the application.
        password_hash: Configured pwdlib hasher.
        email_service: Application-wide email service.
        email_verification_ttl: Lifetime of email-verification tokens.
        password_reset_ttl: Lifetime of password-reset tokens.
    """

    def __init__(
        self,
        store: CredentialStore,
        issuer: TokenIssuer,
        password_hash: PasswordHash,
        email_service: EmailService,
        *,
        email_verification_ttl: timedelta = timedelta(hours=24),
        password_reset_ttl: timedelta = timedelta(hours=1),
    ):
        self.store = store
        self.issuer = issuer
        self.password_hash = password_hash
        self.email_service = email_service
        self.email_verification_ttl = email_verification_ttl
        self.password_reset_ttl = password_reset_ttl

    # Helpers

    async def _hash(self, password: str) -> str:
        # NOTE: bcrypt is CPU bound; keep it off the event loop.
        return await asyncio.to_thread(hash_password, self.password_hash, password)

    async def _verify(self, password: str, hashed: str) -> bool:
        return await asyncio.to_thread(
            verify_password, self.password_hash, password, hashed
        )

    async def _record_attempt(
        self,
        user_id: str,
        is_success: bool,
        fail_reason: str | None,
        client: ClientInfo | None,
    ):
        """Append a login log entry; a failed write never aborts the caller."""
        client = client or ClientInfo()
        try:
            await self.store.add_login_log(
                user_id=user_id,
                is_success=is_success,
                fail_reason=fail_reason,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
            )
            await self.store.commit()
        except InternalError:
            logger.warning(
                "Failed to log login attempt user_id={} reason={}", user_id, fail_reason
            )

    def _issue_pair(self, user: User, session_id: str) -> TokenPair:
        role = user.role.value
        return TokenPair(
            access_token=self.issuer.issue_access_token(
                user.id, user.email, role, session_id
            ),
            refresh_token=self.issuer.issue_refresh_token(
                user.id, user.email, role, session_id
            ),
            expires_in=int(self.issuer.access_ttl.total_seconds()),
        )

    async def _store_refresh_token(
        self,
        user: User,
        tokens: TokenPair,
        session_id: str,
        client: ClientInfo | None,
    ):
        client = client or ClientInfo()
        await self.store.add_refresh_token(
            user_id=user.id,
            token=tokens.refresh_token,
            expires_at=utcnow() + self.issuer.refresh_ttl,
            session_id=session_id,
            device_info=client.user_agent,
            ip_address=client.ip_address,
        )

    async def _issue_email_verification(self, user: User):
        token = self.issuer.issue_purpose_token(
            user.id, user.email, TokenKind.EMAIL_VERIFY, self.email_verification_ttl
        )
        await self.store.create_email_verification(
            user_id=user.id,
            token=token,
            email=user.email,
            expires_at=utcnow() + self.email_verification_ttl,
        )
        return token

    # Flows

    async def register(
        self,
        *,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        username: str | None = None,
        client: ClientInfo | None = None,
    ) -> UserPublic:
        """Create an unverified account and send its verification email.

        Raises:
            EmailTakenError: The normalized email is already registered.
            UsernameTakenError: The username belongs to another account.
        """
        email = normalize_email(email)
        if await self.store.get_user_by_email(email):
            raise EmailTakenError()
        if username and await self.store.get_user_by_username(username):
            raise UsernameTakenError()

        user = await self.store.create_user(
            email=email,
            password=await self._hash(password),
            first_name=first_name,
            last_name=last_name,
            username=username,
        )
        token = await self._issue_email_verification(user)
        await self.store.commit()

        public = UserPublic.model_validate(user)
        await self._record_attempt(
            public.id, False, "REGISTRATION_PENDING_VERIFICATION", client
        )

        self.email_service.send_in_background(
            self.email_service.send_verification_email(
                public.email, token, public.first_name, self.email_verification_ttl
            )
        )
        logger.info("New user registered: {}", redact_email(public.email))
        return public

    async def login(
        self, *, email: str, password: str, client: ClientInfo | None = None
    ) -> LoginResult:
        """Check credentials and open a new session.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
            AccountDisabledError: The account is deactivated.
        """
        user = await self.store.get_user_by_email(email)
        if user is None:
            # NOTE: no user id to attach, so no audit row is written.
            logger.warning("Failed login: USER_NOT_FOUND {}", redact_email(email))
            raise InvalidCredentialsError()

        user_id = user.id
        if not user.is_active:
            await self._record_attempt(user_id, False, "ACCOUNT_DEACTIVATED", client)
            raise AccountDisabledError()

        if not await self._verify(password, user.password):
            await self._record_attempt(user_id, False, "INVALID_PASSWORD", client)
            logger.warning("Failed login: INVALID_PASSWORD user_id={}", user_id)
            raise InvalidCredentialsError()

        session_id = str(uuid.uuid4())
        await self.store.update_user(user, last_login_at=utcnow())
        tokens = self._issue_pair(user, session_id)
        await self._store_refresh_token(user, tokens, session_id, client)
        await self.store.commit()

        result = LoginResult(user=UserPublic.model_validate(user), tokens=tokens)
        await self._record_attempt(user_id, True, None, client)
        logger.info("User logged in user_id={} session_id={}", user_id, session_id)
        return result

    async def refresh(
        self, refresh_token: str, *, client: ClientInfo | None = None
    ) -> TokenPair:
        """Redeem a refresh token for a new pair (single-use rotation).

        Raises:
            TokenInvalidError: Bad signature, expired, unknown, revoked,
                already redeemed, or owned by a missing or deactivated user.
                The cases are not distinguished.
        """
        try:
            claims = self.issuer.verify(refresh_token, TokenKind.REFRESH)
        except (TokenExpiredError, TokenInvalidError):
            raise TokenInvalidError("Invalid refresh token")

        if not await self.store.claim_refresh_token(refresh_token):
            await self.store.rollback()
            logger.warning("Refresh token rejected user_id={}", claims.user_id)
            raise TokenInvalidError("Invalid or expired refresh token")

        user = await self.store.get_user_by_id(claims.user_id)
        if user is None or not user.is_active:
            await self.store.rollback()
            raise TokenInvalidError("Invalid or expired refresh token")

        session_id = claims.session_id or str(uuid.uuid4())
        tokens = self._issue_pair(user, session_id)
        await self._store_refresh_token(user, tokens, session_id, client)
        await self.store.commit()
        logger.info("Rotated refresh token user_id={} session_id={}", user.id, session_id)
        return tokens

    async def logout(self, refresh_token: str | None = None):
        """Revoke the given refresh token; unknown or revoked tokens are fine."""
        if not refresh_token:
            return
        revoked = await self.store.revoke_refresh_token(refresh_token)
        await self.store.commit()
        logger.info("Logout revoked {} refresh token(s)", revoked)

    async def logout_all(self, user_id: str) -> int:
        revoked = await self.store.revoke_all_user_tokens(user_id)
        await self.store.commit()
        logger.info(
            "Revoked all refresh tokens for user_id={} (count={})", user_id, revoked
        )
        return revoked

    async def verify_email(self, token: str) -> bool:
        """Mark the account behind ``token`` as verified.

        Returns:
            bool: True if this call verified the email, False if it was
                already verified (the call is idempotent).

        Raises:
            VerificationTokenInvalidError: Unknown or forged token.
            VerificationTokenExpiredError: Token past its expiry.
        """
        verification = await self.store.get_email_verification(token)
        if verification is None:
            raise VerificationTokenInvalidError()
        if as_utc(verification.expires_at) < utcnow():
            raise VerificationTokenExpiredError()
        if verification.status == VerificationStatus.VERIFIED:
            return False

        try:
            claims = self.issuer.verify(token, TokenKind.EMAIL_VERIFY)
        except TokenExpiredError:
            raise VerificationTokenExpiredError()
        except TokenInvalidError:
            raise VerificationTokenInvalidError()

        user = await self.store.get_user_by_id(verification.user_id)
        if user is None or claims.user_id != user.id:
            raise VerificationTokenInvalidError()

        await self.store.mark_email_verified(verification, user)
        await self.store.commit()

        self.email_service.send_in_background(
            self.email_service.send_welcome_email(user.email, user.first_name)
        )
        logger.info("Email verified user_id={}", user.id)
        return True

    async def resend_verification(self, email: str):
        """Issue a fresh verification token; silent for unknown addresses."""
        user = await self.store.get_user_by_email(email)
        if user is None or not user.is_active or user.is_email_verified:
            logger.info("Verification resend skipped for {}", redact_email(email))
            return

        await self.store.expire_pending_verifications(user.id)
        token = await self._issue_email_verification(user)
        await self.store.commit()

        self.email_service.send_in_background(
            self.email_service.send_verification_email(
                user.email, token, user.first_name, self.email_verification_ttl
            )
        )

    async def forgot_password(self, email: str):
        """Create a password reset and email it; silent for unknown addresses."""
        user = await self.store.get_user_by_email(email)
        if user is None or not user.is_active:
            logger.info("Password reset skipped for {}", redact_email(email))
            return

        token = self.issuer.issue_purpose_token(
            user.id, user.email, TokenKind.PASSWORD_RESET, self.password_reset_ttl
        )
        await self.store.create_password_reset(
            user_id=user.id,
            token=token,
            email=user.email,
            expires_at=utcnow() + self.password_reset_ttl,
        )
        await self.store.commit()

        self.email_service.send_in_background(
            self.email_service.send_password_reset_email(
                user.email, token, user.first_name, self.password_reset_ttl
            )
        )

    async def reset_password(self, token: str, new_password: str):
        """Consume a password reset token and set a new password.

        Raises:
            VerificationTokenInvalidError: Forged, unknown or already used.
            VerificationTokenExpiredError: Token past its expiry.
        """
        try:
            claims = self.issuer.verify(token, TokenKind.PASSWORD_RESET)
        except TokenExpiredError:
            raise VerificationTokenExpiredError("Password reset token has expired")
        except TokenInvalidError:
            raise VerificationTokenInvalidError("Invalid password reset token")

        reset = await self.store.get_password_reset(token)
        if reset is None or reset.used_at is not None:
            raise VerificationTokenInvalidError("Invalid password reset token")
        if as_utc(reset.expires_at) < utcnow():
            raise VerificationTokenExpiredError("Password reset token has expired")

        user = await self.store.get_user_by_id(reset.user_id)
        if user is None or claims.user_id != user.id:
            raise VerificationTokenInvalidError("Invalid password reset token")

        await self.store.update_user(user, password=await self._hash(new_password))
        await self.store.consume_password_reset(reset)
        await self.store.revoke_all_user_tokens(user.id)
        await self.store.commit()
        logger.info("Password reset completed user_id={}", user.id)

    async def change_password(
        self, user_id: str, current_password: str, new_password: str
    ):
        """Replace the password and revoke every session of the user.

        Raises:
            UserNotFoundError: The account no longer exists.
            InvalidPasswordError: ``current_password`` does not match.
        """
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError()
        if not await self._verify(current_password, user.password):
            raise InvalidPasswordError()

        await self.store.update_user(user, password=await self._hash(new_password))
        revoked = await self.store.revoke_all_user_tokens(user.id)
        await self.store.commit()
        logger.info(
            "Password changed user_id={} (revoked {} refresh tokens)", user.id, revoked
        )

    async def get_profile(self, user_id: str) -> UserPublic:
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError()
        return UserPublic.model_validate(user)

    async def update_profile(self, user_id: str, fields: dict) -> UserPublic:
        """Apply a partial profile update.

        Args:
            user_id: Account to update.
            fields: Only the keys the caller supplied (``first_name``,
                ``last_name``, ``username``, ``avatar``).

        Raises:
            UsernameTakenError: ``username`` belongs to another account.
        """
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError()

        changes = {name: fields[name] for name in PROFILE_FIELDS if name in fields}
        if "avatar" in changes and changes["avatar"] is not None:
            changes["avatar"] = str(changes["avatar"])

        username = fields.get("username")
        if username is not None and username != user.username:
            owner = await self.store.get_user_by_username(username)
            if owner is not None and owner.id != user.id:
                raise UsernameTakenError()
            changes["username"] = username

        await self.store.update_user(user, **changes)
        await self.store.commit()
        logger.info("Profile updated user_id={} fields={}", user.id, sorted(changes))
        return UserPublic.model_validate(user)

    async def login_history(
        self, user_id: str, *, page: int, limit: int
    ) -> tuple[list[LoginLogPublic], int]:
        entries, total = await self.store.list_login_logs(
            user_id, offset=(page - 1) * limit, limit=limit
        )
        return [LoginLogPublic.model_validate(entry) for entry in entries], total

    async def list_users(self, *, page: int, limit: int) -> tuple[list[UserPublic], int]:
        users, total = await self.store.list_users(offset=(page - 1) * limit, limit=limit)
        return [UserPublic.model_validate(user) for user in users], total
