"""Authentication models: users, audit log and token lifecycle tables.

``User`` rows are never physically deleted by the auth flows (accounts are
soft-deactivated through ``is_active``). ``LoginLog`` rows are append-only.
``EmailVerification`` and ``PasswordReset`` rows are kept after they expire
or are consumed. ``RefreshToken`` stores the signed refresh JWT itself so a
presented token can be matched and revoked exactly.
"""

import enum
import uuid

from db.session import Base, utcnow
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func


def _uuid() -> str:
    return str(uuid.uuid4())


class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"


class VerificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"


class LoginType(str, enum.Enum):
    EMAIL = "EMAIL"


class User(Base):
    """Database model representing an application user.

    Attributes:
        id: Primary key (UUID string).
        email: Unique, lowercase email address.
        username: Optional unique login name.
        password: Salted bcrypt hash.
        first_name: Optional given name.
        last_name: Optional family name.
        avatar: Optional avatar URL.
        role: One of USER, ADMIN, MODERATOR.
        is_active: Soft-deactivation flag.
        is_email_verified: Whether the email address was confirmed.
        email_verified_at: When the email address was confirmed.
        last_login_at: Timestamp of the last successful login.
        created_at: Account creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True, index=True)
    username = Column(String(30), nullable=True, unique=True, index=True)
    password = Column(String(255), nullable=False)
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)
    avatar = Column(String(2048), nullable=True)
    role = Column(Enum(Role, name="role"), nullable=False, default=Role.USER)
    is_active = Column(Boolean, nullable=False, default=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class LoginLog(Base):
    """Append-only audit entry for a login attempt.

    Attributes:
        id: Primary key.
        user_id: Foreign key to ``users.id``.
        login_type: How the user tried to authenticate.
        ip_address: Originating client address.
        user_agent: Client user agent.
        is_success: Whether the attempt succeeded.
        fail_reason: Reason tag for failed attempts.
        created_at: When the attempt happened.
    """

    __tablename__ = "login_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    login_type = Column(
        Enum(LoginType, name="login_type"), nullable=False, default=LoginType.EMAIL
    )
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(255), nullable=True)
    is_success = Column(Boolean, nullable=False)
    fail_reason = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )

    user = relationship("User", backref="login_logs")


class EmailVerification(Base):
    """Pending or completed email verification.

    Attributes:
        id: Primary key.
        user_id: Foreign key to ``users.id``.
        token: Unique verification token sent by email.
        email: Address being verified.
        status: PENDING until verified, then VERIFIED.
        expires_at: Expiration timestamp.
        created_at: Record creation timestamp.
    """

    __tablename__ = "email_verifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    token = Column(Text, nullable=False, unique=True)
    email = Column(String(255), nullable=False)
    status = Column(
        Enum(VerificationStatus, name="verification_status"),
        nullable=False,
        default=VerificationStatus.PENDING,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    user = relationship("User", backref="email_verifications")


class PasswordReset(Base):
    """Password reset request; consumed once through ``used_at``."""

    __tablename__ = "password_resets"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    token = Column(Text, nullable=False, unique=True)
    email = Column(String(255), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    user = relationship("User", backref="password_resets")


class RefreshToken(Base):
    """Revocable refresh token used for rotation and session tracking.

    Attributes:
        id: Primary key.
        token: The signed refresh JWT.
        user_id: Foreign key to ``users.id``.
        session_id: Login session the token belongs to (kept across rotation).
        expires_at: Expiration timestamp.
        created_at: Record creation timestamp.
        revoked: Boolean flag indicating revocation status.
        device_info: Optional device description (browser/OS).
        ip_address: Optional originating IP address.
    """

    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, default=_uuid)
    token = Column(Text, unique=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    session_id = Column(String(36), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    revoked = Column(Boolean, default=False, nullable=False)

    # NOTE: Device/session tracking (optional but useful for audits)
    device_info = Column(String(255), nullable=True)
    ip_address = Column(String(64), nullable=True)

    user = relationship("User", backref="refresh_tokens")
