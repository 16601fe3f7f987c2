"""Error taxonomy shared by the token issuer, auth flows and request gate.

Every error carries a stable HTTP status and a machine-readable ``code``
that end up in the response envelope rendered by
``api.error_handling``. Authentication failures use deliberately generic
messages so callers cannot tell which half of a credential pair was wrong.
"""


class AppError(Exception):
    """Base class for domain errors mapped to HTTP responses."""

    status_code: int = 400
    code: str = "GENERIC_ERROR"
    message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.message
        super().__init__(self.message)


class InvalidCredentialsError(AppError):
    status_code = 401
    code = "AUTH_INVALID_CREDENTIALS"
    message = "Invalid credentials"


class AccountDisabledError(AppError):
    status_code = 403
    code = "AUTH_ACCOUNT_DEACTIVATED"
    message = "Account is deactivated"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    message = "Resource already exists"


class EmailTakenError(ConflictError):
    code = "AUTH_USER_EXISTS"
    message = "User already exists with this email"


class UsernameTakenError(ConflictError):
    code = "AUTH_USERNAME_TAKEN"
    message = "Username already taken"


class TokenRequiredError(AppError):
    status_code = 401
    code = "AUTH_TOKEN_REQUIRED"
    message = "Access token required"


class TokenExpiredError(AppError):
    status_code = 401
    code = "AUTH_TOKEN_EXPIRED"
    message = "Token expired"


class TokenInvalidError(AppError):
    status_code = 401
    code = "AUTH_TOKEN_INVALID"
    message = "Invalid token"


class TokenPurposeMismatchError(TokenInvalidError):
    code = "AUTH_TOKEN_PURPOSE_MISMATCH"
    message = "Token not valid for this operation"


class VerificationTokenInvalidError(AppError):
    """Email-verification or password-reset token is unknown or spent."""

    status_code = 400
    code = "AUTH_INVALID_TOKEN"
    message = "Invalid verification token"


class VerificationTokenExpiredError(AppError):
    status_code = 400
    code = "AUTH_TOKEN_EXPIRED"
    message = "Verification token has expired"


class InsufficientPermissionsError(AppError):
    status_code = 403
    code = "AUTH_INSUFFICIENT_PERMISSIONS"
    message = "Insufficient permissions"


class EmailNotVerifiedError(AppError):
    status_code = 403
    code = "AUTH_EMAIL_NOT_VERIFIED"
    message = "Email verification required"


class UserNotFoundError(AppError):
    status_code = 401
    code = "AUTH_USER_NOT_FOUND"
    message = "User not found"


class InvalidPasswordError(AppError):
    status_code = 400
    code = "AUTH_INVALID_PASSWORD"
    message = "Current password is incorrect"


class InternalError(AppError):
    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Internal server error"


class RateLimitExceededError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    message = "Too many requests, please try again later."
