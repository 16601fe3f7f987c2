"""Authentication routes.

Register, login and refresh-token are additionally limited per client on
failed attempts (see ``core.rate_limit``).

Endpoints:
    - POST /auth/register: Create an account (sends verification email)
    - POST /auth/login: Email + password login (returns access + refresh)
    - POST /auth/refresh-token: Rotate a refresh token into a new pair
    - POST /auth/logout: Revoke a refresh token (always succeeds)
    - POST /auth/logout-all: Revoke every refresh token of the caller
    - GET  /auth/verify-email/{token}: Confirm an email address
    - POST /auth/resend-verification: Send a fresh verification email
    - POST /auth/forgot-password: Email a password reset link
    - POST /auth/reset-password: Set a new password from a reset token
    - GET  /auth/profile: Current user's profile
    - PUT  /auth/profile: Partial profile update
    - PUT  /auth/change-password: Change password (revokes all sessions)
    - GET  /auth/login-history: Caller's login attempts (paginated)
"""

from typing import Annotated

from api.dependencies import PageParams, get_auth_service
from core.auth_helper import AuthContext, get_client_info, get_current_user
from core.rate_limit import limit_auth_attempts
from fastapi import APIRouter, Depends, Request, status
from schemas.auth import (
    ChangePasswordRequest,
    EmailRequest,
    LoginData,
    LoginLogPublic,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokensData,
    UpdateProfileRequest,
    UserData,
)
from schemas.common import ApiResponse, PaginatedResponse, paginated_response, success_response
from services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])

Service = Annotated[AuthService, Depends(get_auth_service)]
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
AuthAttempt = [Depends(limit_auth_attempts)]


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[UserData],
    dependencies=AuthAttempt,
)
async def register(body: RegisterRequest, request: Request, service: Service):
    """Register a new account.

    Returns the public user projection; the verification email is sent in
    the background and its failure does not affect this response.
    """
    user = await service.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        username=body.username,
        client=get_client_info(request),
    )
    return success_response(
        UserData(user=user),
        "Registration successful. Please check your email to verify your account.",
        "REGISTRATION_SUCCESS",
    )


@router.post("/login", response_model=ApiResponse[LoginData], dependencies=AuthAttempt)
async def login(body: LoginRequest, request: Request, service: Service):
    """Authenticate with email and password and open a session."""
    result = await service.login(
        email=body.email, password=body.password, client=get_client_info(request)
    )
    return success_response(
        LoginData(user=result.user, tokens=result.tokens),
        "Login successful",
        "LOGIN_SUCCESS",
    )


@router.post(
    "/refresh-token", response_model=ApiResponse[TokensData], dependencies=AuthAttempt
)
async def refresh_token(body: RefreshTokenRequest, request: Request, service: Service):
    """Exchange a refresh token for a new access + refresh pair.

    The presented refresh token is revoked; replaying it fails with 401.
    """
    tokens = await service.refresh(body.refresh_token, client=get_client_info(request))
    return success_response(
        TokensData(tokens=tokens), "Tokens refreshed successfully", "TOKEN_REFRESH_SUCCESS"
    )


@router.post("/logout", response_model=ApiResponse[None])
async def logout(service: Service, body: LogoutRequest | None = None):
    """Revoke the given refresh token, if any."""
    await service.logout(body.refresh_token if body else None)
    return success_response(None, "Logged out successfully", "LOGOUT_SUCCESS")


@router.post("/logout-all", response_model=ApiResponse[None])
async def logout_all(current_user: CurrentUser, service: Service):
    """Revoke all refresh tokens for the current user (logout everywhere)."""
    await service.logout_all(current_user.user_id)
    return success_response(
        None, "Logged out from all devices", "LOGOUT_ALL_SUCCESS"
    )


@router.get("/verify-email/{token}", response_model=ApiResponse[None])
async def verify_email(token: str, service: Service):
    """Confirm the email address behind ``token`` (idempotent)."""
    if await service.verify_email(token):
        return success_response(
            None, "Email verified successfully", "EMAIL_VERIFICATION_SUCCESS"
        )
    return success_response(None, "Email already verified", "EMAIL_ALREADY_VERIFIED")


@router.post("/resend-verification", response_model=ApiResponse[None])
async def resend_verification(body: EmailRequest, service: Service):
    await service.resend_verification(body.email)
    return success_response(
        None,
        "If the account exists and is unverified, a new verification email has been sent.",
        "VERIFICATION_RESENT",
    )


@router.post("/forgot-password", response_model=ApiResponse[None])
async def forgot_password(body: EmailRequest, service: Service):
    await service.forgot_password(body.email)
    return success_response(
        None,
        "If the account exists, a password reset email has been sent.",
        "PASSWORD_RESET_REQUESTED",
    )


@router.post("/reset-password", response_model=ApiResponse[None])
async def reset_password(body: ResetPasswordRequest, service: Service):
    await service.reset_password(body.token, body.new_password)
    return success_response(
        None,
        "Password reset successfully. Please log in again.",
        "PASSWORD_RESET_SUCCESS",
    )


@router.get("/profile", response_model=ApiResponse[UserData])
async def get_profile(current_user: CurrentUser, service: Service):
    """Return the authenticated user's profile."""
    user = await service.get_profile(current_user.user_id)
    return success_response(
        UserData(user=user), "Profile retrieved successfully", "PROFILE_SUCCESS"
    )


@router.put("/profile", response_model=ApiResponse[UserData])
async def update_profile(
    body: UpdateProfileRequest, current_user: CurrentUser, service: Service
):
    """Update only the supplied profile fields."""
    user = await service.update_profile(
        current_user.user_id, body.model_dump(exclude_unset=True)
    )
    return success_response(
        UserData(user=user), "Profile updated successfully", "PROFILE_UPDATE_SUCCESS"
    )


@router.put("/change-password", response_model=ApiResponse[None])
async def change_password(
    body: ChangePasswordRequest, current_user: CurrentUser, service: Service
):
    """Change the password; every existing session is revoked."""
    await service.change_password(
        current_user.user_id, body.current_password, body.new_password
    )
    return success_response(
        None,
        "Password changed successfully. Please log in again.",
        "PASSWORD_CHANGE_SUCCESS",
    )


@router.get("/login-history", response_model=PaginatedResponse[LoginLogPublic])
async def login_history(
    current_user: CurrentUser,
    service: Service,
    params: Annotated[PageParams, Depends()],
):
    entries, total = await service.login_history(
        current_user.user_id, page=params.page, limit=params.limit
    )
    return paginated_response(
        entries, total=total, page=params.page, limit=params.limit
    )
