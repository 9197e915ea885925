from __future__ import annotations

import re
import unicodedata
import uuid
from typing import Any, Optional
from urllib.parse import urlparse
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from jobboard.logging import get_correlation_id
from jobboard.storage.models import JobType

_VALID_ERROR_CODES = frozenset({
    "unauthenticated",
    "invalid_token",
    "bad_user_input",
    "validation_error",
    "forbidden",
    "not_found",
    "internal_server_error",
})


class ErrorBody(BaseModel):
    """Error envelope body with stable code values."""

    code: str = Field(..., description="Stable error code")
    message: str
    details: Optional[Any] = None  # object, array, or null

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(_VALID_ERROR_CODES))}"
            )
        return value


class Envelope(BaseModel):
    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: get_correlation_id() or str(uuid4()))


_EMAIL_LOCAL_PART = re.compile(r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+$")
_EMAIL_DOMAIN_LABEL = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")


def _normalize_unicode(value: str) -> str:
    """Strip zero-width characters and apply NFKC normalization."""
    zero_width = "\u200b\u200c\u200d\ufeff"
    cleaned = "".join(c for c in value if c not in zero_width)
    return unicodedata.normalize("NFKC", cleaned)


def _validate_email(value: str) -> str:
    message = "email must be a valid email address"
    normalized = _normalize_unicode(value.strip().lower())
    if len(normalized) > 254:
        raise ValueError(message)
    local, sep, domain = normalized.partition("@")
    if not sep or not local or not domain or len(local) > 64:
        raise ValueError(message)
    if not _EMAIL_LOCAL_PART.match(local):
        raise ValueError(message)
    domain_parts = domain.split(".")
    if len(domain_parts) < 2:
        raise ValueError(message)
    for label in domain_parts:
        if len(label) > 63 or not _EMAIL_DOMAIN_LABEL.match(label):
            raise ValueError(message)
    return normalized


def _validate_url(value: Optional[str], message: str) -> Optional[str]:
    if value is None:
        return None
    parsed = urlparse(value.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(message)
    return value.strip()


def _validate_uuid(value: str, message: str) -> str:
    try:
        return str(uuid.UUID(value))
    except (ValueError, AttributeError, TypeError):
        raise ValueError(message) from None


def _min_length(value: Optional[str], minimum: int, field: str) -> Optional[str]:
    if value is None:
        return None
    if len(value) < minimum:
        raise ValueError(f"{field} must be at least {minimum} characters")
    return value


def _validate_password(value: str, field: str = "password") -> str:
    if len(value) < 8:
        raise ValueError(f"{field} must be more than 8 characters")
    if len(value) > 64:
        raise ValueError(f"{field} must be less than 64 characters")
    return value


MAX_PAGE = 1_000_000
MAX_SEARCH_LENGTH = 100


class Pagination(BaseModel):
    """Listing window; out-of-range values fall back to the defaults.

    Pages past ``MAX_PAGE`` are clamped to it, which keeps the row offset
    inside bigint and still yields an empty page.
    """

    page: Optional[int] = Field(default=None, validate_default=True)
    limit: Optional[int] = Field(default=None, validate_default=True)
    search: Optional[str] = None

    @field_validator("page")
    @classmethod
    def _page_or_first(cls, value: Optional[int]) -> int:
        if not value or value < 1:
            return 1
        return min(value, MAX_PAGE)

    @field_validator("limit")
    @classmethod
    def _limit_or_default(cls, value: Optional[int]) -> int:
        return value if value and 0 < value <= 100 else 20

    @field_validator("search")
    @classmethod
    def _blank_search(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if len(value) > MAX_SEARCH_LENGTH:
            raise ValueError(f"search must be at most {MAX_SEARCH_LENGTH} characters")
        return value or None


class IdArgs(BaseModel):
    id: str

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        return _validate_uuid(value, "id must be a valid uuid")


class CompanyIdArgs(BaseModel):
    id: str

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        return _validate_uuid(value, "company id must be a valid uuid")


class CompanyJobsArgs(Pagination, CompanyIdArgs):
    pass


class LoginArgs(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _validate_login_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("password")
    @classmethod
    def _validate_login_password(cls, value: str) -> str:
        return _min_length(value, 8, "password")


class CompanyProfile(BaseModel):
    name: str
    website: str
    headquarter: str
    logo: str
    description: str

    @field_validator("name", "headquarter", "description")
    @classmethod
    def _validate_text(cls, value: str, info: ValidationInfo) -> str:
        return _min_length(value, 3, info.field_name)

    @field_validator("website", "logo")
    @classmethod
    def _validate_links(cls, value: str, info: ValidationInfo) -> str:
        return _validate_url(value, f"{info.field_name} must be a valid url")


class SignupCompany(CompanyProfile):
    email: str
    password: str
    confirm: str

    @field_validator("email")
    @classmethod
    def _validate_signup_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("password")
    @classmethod
    def _validate_signup_password(cls, value: str) -> str:
        return _validate_password(value)

    @field_validator("confirm")
    @classmethod
    def _passwords_match(cls, value: str, info: ValidationInfo) -> str:
        _validate_password(value, "confirm password")
        # Only compare when the password itself passed validation.
        password = info.data.get("password")
        if password is not None and value != password:
            raise ValueError("passwords don't match")
        return value


class SignupArgs(BaseModel):
    company: SignupCompany


class UpdateCompanyProfile(CompanyProfile):
    name: Optional[str] = None
    website: Optional[str] = None
    headquarter: Optional[str] = None
    logo: Optional[str] = None
    description: Optional[str] = None


class UpdateCompanyArgs(BaseModel):
    company: UpdateCompanyProfile = Field(default_factory=UpdateCompanyProfile)


class ChangePasswordArgs(BaseModel):
    old_password: str
    new_password: str

    @field_validator("old_password", "new_password")
    @classmethod
    def _validate_passwords(cls, value: str, info: ValidationInfo) -> str:
        return _min_length(value, 8, info.field_name)


class ForgotPasswordArgs(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _validate_forgot_email(cls, value: str) -> str:
        return _validate_email(value)


class ResetPasswordArgs(BaseModel):
    token: str
    password: str

    @field_validator("password")
    @classmethod
    def _validate_new_password(cls, value: str) -> str:
        return _min_length(value, 8, "password")


class VerifyEmailArgs(BaseModel):
    token: str


_JOB_TYPE_MESSAGE = "job type must be either " + " or ".join(t.value for t in JobType)


class JobFields(BaseModel):
    title: str
    description: str
    type: JobType
    application_link: str

    @field_validator("title", "description")
    @classmethod
    def _not_empty(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value is not None and not value:
            raise ValueError(f"job {info.field_name} must not be empty")
        return value

    @field_validator("type", mode="before")
    @classmethod
    def _validate_type(cls, value: Any) -> Any:
        if value is None:
            return value
        try:
            return JobType(value)
        except ValueError:
            raise ValueError(_JOB_TYPE_MESSAGE) from None

    @field_validator("application_link")
    @classmethod
    def _validate_application_link(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value:
            raise ValueError("job application link must not be empty")
        return _validate_url(value, "job application link must be a valid url")


class JobPatch(JobFields):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[JobType] = None
    application_link: Optional[str] = None


class CreateJobArgs(BaseModel):
    job: JobFields


class UpdateJobArgs(IdArgs):
    job: JobPatch = Field(default_factory=JobPatch)
