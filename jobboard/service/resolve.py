from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from jobboard.logging import get_logger
from jobboard.service.errors import ServiceError, ValidationError, to_service_error
from jobboard.service.guard import AuthGuard
from jobboard.storage.models import Company

logger = get_logger(__name__)


@dataclass
class RequestContext:
    """Per-operation state shared by the wrapper and the handler.

    ``response`` is any object with Starlette's ``set_cookie``/``delete_cookie``;
    it is optional so handlers can run outside HTTP.
    """

    guard: Optional[AuthGuard] = None
    authorization: Optional[str] = None
    cookies: Dict[str, str] = field(default_factory=dict)
    response: Any = None
    refresh_cookie_name: str = "__Host-token"
    company: Optional[Company] = None
    issued_refresh_token: Optional[str] = None
    refresh_cookie_cleared: bool = False

    @property
    def refresh_cookie(self) -> Optional[str]:
        return self.cookies.get(self.refresh_cookie_name)

    def set_refresh_cookie(self, value: str, *, max_age: int) -> None:
        self.issued_refresh_token = value
        if self.response is not None:
            self.response.set_cookie(
                self.refresh_cookie_name,
                value,
                max_age=max_age,
                httponly=True,
                secure=True,
                samesite="lax",
                path="/",
            )

    def clear_refresh_cookie(self, response: Any = None) -> None:
        """Expire the refresh cookie on ``response`` (defaults to ``self.response``)."""
        self.refresh_cookie_cleared = True
        target = response if response is not None else self.response
        if target is not None:
            target.delete_cookie(
                self.refresh_cookie_name,
                path="/",
                secure=True,
                httponly=True,
                samesite="lax",
            )


Handler = Callable[[Any, RequestContext], Awaitable[Any]]


def _message_for(error: Dict[str, Any]) -> str:
    # Field validators raise ValueError with caller-facing text; pydantic
    # prefixes it with "Value error, " in ``msg``.
    if error.get("type") == "value_error":
        ctx_error = (error.get("ctx") or {}).get("error")
        if ctx_error is not None:
            return str(ctx_error)
    return error.get("msg", "invalid value")


def invalid_args_from(exc: PydanticValidationError) -> Dict[str, List[str]]:
    invalid: Dict[str, List[str]] = {}
    for error in exc.errors():
        key = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
        invalid.setdefault(key, []).append(_message_for(error))
    return invalid


def validate(args: Optional[Dict[str, Any]], schema: Type[BaseModel]) -> BaseModel:
    try:
        return schema.model_validate(args or {})
    except PydanticValidationError as exc:
        raise ValidationError(invalid_args_from(exc)) from exc


def resolve(
    handler: Handler,
    *,
    requires_auth: bool = False,
    requires_verified_email: bool = False,
    input_schema: Optional[Type[BaseModel]] = None,
) -> Callable[[Optional[Dict[str, Any]], RequestContext], Awaitable[Any]]:
    """Wrap ``handler`` with authentication, input validation and error conversion.

    The returned coroutine function authenticates the caller (setting
    ``ctx.company``) when ``requires_auth`` is set, validates ``args`` against
    ``input_schema`` and passes the parsed model to the handler (the raw dict
    when no schema is given). Whatever escapes is mapped onto the domain error
    set, so callers only ever see ``ServiceError`` subclasses.
    """

    @functools.wraps(handler)
    async def wrapped(args: Optional[Dict[str, Any]], ctx: RequestContext) -> Any:
        try:
            if requires_auth or requires_verified_email:
                if ctx.guard is None:
                    raise RuntimeError("authentication requested without a guard")
                ctx.company = ctx.guard.authenticate(
                    ctx.authorization,
                    requires_verified_email=requires_verified_email,
                )
            parsed = validate(args, input_schema) if input_schema else (args or {})
            return await handler(parsed, ctx)
        except ServiceError:
            raise
        except Exception as exc:
            raise to_service_error(exc) from exc

    return wrapped
