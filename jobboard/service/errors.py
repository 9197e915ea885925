from __future__ import annotations

from typing import Optional

from jobboard.logging import get_logger

logger = get_logger(__name__)


class ServiceError(Exception):
    """Base class for domain errors surfaced to API callers.

    Every error carries a stable ``error_code`` and an HTTP ``status_code``:
    - unauthenticated (401)
    - invalid_token (400)
    - bad_user_input (400)
    - validation_error (400)
    - forbidden (403)
    - not_found (404)
    - internal_server_error (500)
    """

    status_code: int = 400
    error_code: str = "bad_user_input"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class AuthenticationError(ServiceError):
    """Missing, invalid or expired access credential, or unresolvable owner (401)."""

    status_code = 401
    error_code = "unauthenticated"

    def __init__(self, message: str = "Not Authenticated", **kwargs) -> None:
        super().__init__(message, **kwargs)


class TokenError(ServiceError):
    """Stateful token (refresh, reset, verification) rejected (400)."""

    status_code = 400
    error_code = "invalid_token"


class BadUserInputError(ServiceError):
    """Well-formed input that the operation refuses, e.g. bad credentials (400)."""

    status_code = 400
    error_code = "bad_user_input"


class ValidationError(ServiceError):
    """Input-shape check failed; ``detail`` holds field-keyed messages (400)."""

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        invalid_args: dict[str, list[str]],
        message: str = "Arguments validation failed",
    ) -> None:
        super().__init__(message, detail={"invalid_args": invalid_args})
        self.invalid_args = invalid_args


class ForbiddenError(ServiceError):
    """Authenticated caller does not own the target (403)."""

    status_code = 403
    error_code = "forbidden"

    def __init__(self, message: str = "Not Authorized", **kwargs) -> None:
        super().__init__(message, **kwargs)


class NotFoundError(ServiceError):
    """Requested entity does not exist (404)."""

    status_code = 404
    error_code = "not_found"


class InternalError(ServiceError):
    """Unexpected collaborator failure; the original detail is only logged (500)."""

    status_code = 500
    error_code = "internal_server_error"

    def __init__(self, message: str = "Internal Server Error", **kwargs) -> None:
        super().__init__(message, **kwargs)


def to_service_error(exc: BaseException) -> ServiceError:
    """Map any failure onto the closed set of domain errors."""
    if isinstance(exc, ServiceError):
        return exc
    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error=str(exc),
        exc_info=exc,
    )
    return InternalError()


__all__ = [
    "ServiceError",
    "AuthenticationError",
    "TokenError",
    "BadUserInputError",
    "ValidationError",
    "ForbiddenError",
    "NotFoundError",
    "InternalError",
    "to_service_error",
]
