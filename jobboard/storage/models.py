from __future__ import annotations

import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenType(str, Enum):
    """Closed set of stateful token kinds."""

    REFRESH = "REFRESH"
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    RESET_PASSWORD = "RESET_PASSWORD"


class JobType(str, Enum):
    FULL_TIME = "FULL_TIME"
    PART_TIME = "PART_TIME"
    CONTRACT = "CONTRACT"
    INTERNSHIP = "INTERNSHIP"


@dataclass
class PersistedToken:
    id: str
    secret: str
    type: TokenType
    owner_id: str
    expires_at: datetime
    blacklisted: bool = False
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(
        cls,
        secret: str,
        token_type: TokenType,
        owner_id: str,
        expires_at: datetime,
    ) -> "PersistedToken":
        return cls(
            id=str(uuid.uuid4()),
            secret=secret,
            type=TokenType(token_type),
            owner_id=owner_id,
            expires_at=expires_at,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now


@dataclass
class Company:
    id: str
    name: str
    website: str
    headquarter: str
    logo: str
    description: str
    email: str
    password_hash: str
    email_verified_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_verified(self) -> bool:
        return self.email_verified_at is not None


@dataclass
class Job:
    id: str
    title: str
    description: str
    type: JobType
    application_link: str
    company_id: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


T = TypeVar("T")


@dataclass
class PageInfo:
    total: int
    current_page: int
    next_page: Optional[int]
    prev_page: Optional[int]
    last_page: int
    per_page: int

    @classmethod
    def compute(cls, total: int, page: int, limit: int) -> "PageInfo":
        last_page = math.ceil(total / limit) if limit else 0
        return cls(
            total=total,
            current_page=page,
            next_page=None if page + 1 > last_page else page + 1,
            prev_page=None if page - 1 <= 0 else page - 1,
            last_page=last_page,
            per_page=limit,
        )


@dataclass
class Page(Generic[T]):
    info: PageInfo
    data: List[T]

    def to_dict(self, project=None) -> Dict[str, Any]:
        return {
            "info": asdict(self.info),
            "data": [project(item) if project else item for item in self.data],
        }


def offset_for(page: int, limit: int) -> int:
    return limit * (page - 1)


def token_expiry(ttl: timedelta) -> datetime:
    return utcnow() + ttl
