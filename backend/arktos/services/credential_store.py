"""Credential store: data access for users, audit logs and auth tokens.

:class:`CredentialStore` wraps one ``AsyncSession`` and is the only code
that touches the auth tables. Write methods flush but do not commit; the
caller decides where a logical operation ends by calling :meth:`commit`,
so multi-row changes such as refresh-token rotation land in one
transaction. Any unexpected ``SQLAlchemyError`` is rolled back, logged in
full and re-raised as :class:`core.errors.InternalError`.
"""

import functools
from datetime import datetime

from core.errors import AppError, ConflictError, InternalError
from core.logging import logger
from db.session import utcnow
from models.auth import (
    EmailVerification,
    LoginLog,
    PasswordReset,
    RefreshToken,
    User,
    VerificationStatus,
)
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _translate_errors(method):
    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except AppError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Persistence error in CredentialStore.{}", method.__name__)
            await self.session.rollback()
            raise InternalError() from exc

    return wrapper


class CredentialStore:
    """Data access for the authentication tables.

    Args:
        session: Request-scoped async session.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        await self.session.rollback()

    # Users

    @_translate_errors
    async def get_user_by_id(self, user_id: str) -> User | None:
        result = await self.session.execute(select(User).filter(User.id == user_id))
        return result.scalars().first()

    @_translate_errors
    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.session.execute(
            select(User).filter(User.email == normalize_email(email))
        )
        return result.scalars().first()

    @_translate_errors
    async def get_user_by_username(self, username: str) -> User | None:
        result = await self.session.execute(
            select(User).filter(User.username == username)
        )
        return result.scalars().first()

    @_translate_errors
    async def create_user(self, *, email: str, password: str, **fields) -> User:
        """Insert a user; a unique-constraint race surfaces as ``ConflictError``."""
        user = User(email=normalize_email(email), password=password, **fields)
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            logger.warning("User insert hit a unique constraint: {}", exc.orig)
            raise ConflictError("User already exists") from exc
        return user

    @_translate_errors
    async def update_user(self, user: User, **fields) -> User:
        for name, value in fields.items():
            setattr(user, name, value)
        if fields:
            user.updated_at = utcnow()
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            logger.warning("User update hit a unique constraint: {}", exc.orig)
            raise ConflictError("Username already taken") from exc
        return user

    @_translate_errors
    async def list_users(self, *, offset: int, limit: int) -> tuple[list[User], int]:
        total = await self.session.scalar(select(func.count()).select_from(User))
        result = await self.session.execute(
            select(User).order_by(User.created_at.desc(), User.id).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total or 0

    # Audit log

    @_translate_errors
    async def add_login_log(
        self,
        *,
        user_id: str,
        is_success: bool,
        fail_reason: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginLog:
        entry = LoginLog(
            user_id=user_id,
            is_success=is_success,
            fail_reason=fail_reason,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    @_translate_errors
    async def list_login_logs(
        self, user_id: str, *, offset: int = 0, limit: int = 100
    ) -> tuple[list[LoginLog], int]:
        total = await self.session.scalar(
            select(func.count()).select_from(LoginLog).filter(LoginLog.user_id == user_id)
        )
        result = await self.session.execute(
            select(LoginLog)
            .filter(LoginLog.user_id == user_id)
            .order_by(LoginLog.created_at.desc(), LoginLog.id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    # Email verification

    @_translate_errors
    async def create_email_verification(
        self, *, user_id: str, token: str, email: str, expires_at: datetime
    ) -> EmailVerification:
        verification = EmailVerification(
            user_id=user_id, token=token, email=email, expires_at=expires_at
        )
        self.session.add(verification)
        await self.session.flush()
        return verification

    @_translate_errors
    async def get_email_verification(self, token: str) -> EmailVerification | None:
        result = await self.session.execute(
            select(EmailVerification).filter(EmailVerification.token == token)
        )
        return result.scalars().first()

    @_translate_errors
    async def mark_email_verified(
        self, verification: EmailVerification, user: User
    ) -> None:
        now = utcnow()
        verification.status = VerificationStatus.VERIFIED
        user.is_email_verified = True
        user.email_verified_at = now
        user.updated_at = now
        await self.session.flush()

    @_translate_errors
    async def expire_pending_verifications(self, user_id: str) -> int:
        result = await self.session.execute(
            update(EmailVerification)
            .where(
                EmailVerification.user_id == user_id,
                EmailVerification.status == VerificationStatus.PENDING,
            )
            .values(expires_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    # Password reset

    @_translate_errors
    async def create_password_reset(
        self, *, user_id: str, token: str, email: str, expires_at: datetime
    ) -> PasswordReset:
        reset = PasswordReset(
            user_id=user_id, token=token, email=email, expires_at=expires_at
        )
        self.session.add(reset)
        await self.session.flush()
        return reset

    @_translate_errors
    async def get_password_reset(self, token: str) -> PasswordReset | None:
        result = await self.session.execute(
            select(PasswordReset).filter(PasswordReset.token == token)
        )
        return result.scalars().first()

    @_translate_errors
    async def consume_password_reset(self, reset: PasswordReset) -> None:
        reset.used_at = utcnow()
        await self.session.flush()

    # Refresh tokens

    @_translate_errors
    async def add_refresh_token(
        self,
        *,
        user_id: str,
        token: str,
        expires_at: datetime,
        session_id: str | None = None,
        device_info: str | None = None,
        ip_address: str | None = None,
    ) -> RefreshToken:
        refresh_token = RefreshToken(
            user_id=user_id,
            token=token,
            expires_at=expires_at,
            session_id=session_id,
            device_info=device_info,
            ip_address=ip_address,
        )
        self.session.add(refresh_token)
        await self.session.flush()
        return refresh_token

    @_translate_errors
    async def claim_refresh_token(self, token: str) -> bool:
        """Revoke ``token`` only if it is still live.

        Returns:
            bool: True when exactly one live row was revoked by this call.
                A concurrent redemption of the same token sees False.
        """
        result = await self.session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token == token,
                RefreshToken.revoked == False,  # noqa: E712
                RefreshToken.expires_at > utcnow(),
            )
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @_translate_errors
    async def revoke_refresh_token(self, token: str) -> int:
        result = await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.token == token)
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @_translate_errors
    async def revoke_all_user_tokens(self, user_id: str) -> int:
        """Mark every refresh token of ``user_id`` as revoked."""
        result = await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
