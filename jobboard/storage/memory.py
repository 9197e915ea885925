from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from jobboard.logging import get_logger
from jobboard.storage.errors import ConstraintViolation
from jobboard.storage.models import (
    Company,
    Job,
    JobType,
    Page,
    PageInfo,
    PersistedToken,
    TokenType,
    offset_for,
    utcnow,
)

T = TypeVar("T")

_COMPANY_FIELDS = {"name", "website", "headquarter", "logo", "description", "password_hash", "email_verified_at"}
_JOB_FIELDS = {"title", "description", "type", "application_link"}


def _matches(search: Optional[str], *values: Optional[str]) -> bool:
    if not search:
        return True
    needle = search.lower()
    return any(needle in (value or "").lower() for value in values)


def _paginate(rows: Iterable[T], page: int, limit: int, key: Callable[[T], datetime]) -> Page[T]:
    ordered = sorted(rows, key=key, reverse=True)
    start = offset_for(page, limit)
    return Page(
        info=PageInfo.compute(len(ordered), page, limit),
        data=[replace(row) for row in ordered[start : start + limit]],
    )


class MemoryStore:
    """In-process store for companies, jobs and stateful tokens.

    Mirrors the PostgresStore contract closely enough for tests and local
    development; every public method takes the store lock and hands back
    copies so callers never alias stored rows.
    """

    def __init__(self) -> None:
        self.companies: Dict[str, Company] = {}
        self.jobs: Dict[str, Job] = {}
        self.tokens: Dict[str, PersistedToken] = {}
        self._data_lock = threading.RLock()
        self.logger = get_logger(__name__)

    def verify_connection(self) -> None:
        return None

    # companies
    def create_company(
        self,
        *,
        name: str,
        website: str,
        headquarter: str,
        logo: str,
        description: str,
        email: str,
        password_hash: str,
    ) -> Company:
        with self._data_lock:
            if any(existing.email == email for existing in self.companies.values()):
                raise ConstraintViolation("email already exists", {"field": "email"})
            company = Company(
                id=str(uuid.uuid4()),
                name=name,
                website=website,
                headquarter=headquarter,
                logo=logo,
                description=description,
                email=email,
                password_hash=password_hash,
            )
            self.companies[company.id] = company
            return replace(company)

    def get_company(self, company_id: str) -> Optional[Company]:
        with self._data_lock:
            company = self.companies.get(company_id)
            return replace(company) if company else None

    def get_company_by_email(self, email: str) -> Optional[Company]:
        with self._data_lock:
            company = next((c for c in self.companies.values() if c.email == email), None)
            return replace(company) if company else None

    def update_company(self, company_id: str, **fields) -> Optional[Company]:
        unknown = set(fields) - _COMPANY_FIELDS
        if unknown:
            raise ValueError(f"unknown company fields: {sorted(unknown)}")
        with self._data_lock:
            company = self.companies.get(company_id)
            if not company:
                return None
            updated = replace(company, **fields, updated_at=utcnow())
            self.companies[company_id] = updated
            return replace(updated)

    def list_companies(
        self, page: int, limit: int, search: Optional[str] = None
    ) -> Page[Company]:
        with self._data_lock:
            rows = [
                c for c in self.companies.values() if _matches(search, c.name, c.description)
            ]
            return _paginate(rows, page, limit, key=lambda c: c.created_at)

    # jobs
    def create_job(
        self,
        company_id: str,
        *,
        title: str,
        description: str,
        type: JobType,
        application_link: str,
    ) -> Job:
        with self._data_lock:
            if company_id not in self.companies:
                raise ConstraintViolation("company does not exist", {"company_id": company_id})
            job = Job(
                id=str(uuid.uuid4()),
                title=title,
                description=description,
                type=JobType(type),
                application_link=application_link,
                company_id=company_id,
            )
            self.jobs[job.id] = job
            return replace(job)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._data_lock:
            job = self.jobs.get(job_id)
            return replace(job) if job else None

    def update_job(self, job_id: str, **fields) -> Optional[Job]:
        unknown = set(fields) - _JOB_FIELDS
        if unknown:
            raise ValueError(f"unknown job fields: {sorted(unknown)}")
        if "type" in fields:
            fields["type"] = JobType(fields["type"])
        with self._data_lock:
            job = self.jobs.get(job_id)
            if not job:
                return None
            updated = replace(job, **fields, updated_at=utcnow())
            self.jobs[job_id] = updated
            return replace(updated)

    def delete_job(self, job_id: str) -> bool:
        with self._data_lock:
            return self.jobs.pop(job_id, None) is not None

    def list_jobs(
        self,
        page: int,
        limit: int,
        search: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> Page[Job]:
        with self._data_lock:
            rows = [
                j
                for j in self.jobs.values()
                if (company_id is None or j.company_id == company_id)
                and _matches(search, j.title, j.description)
            ]
            return _paginate(rows, page, limit, key=lambda j: j.created_at)

    # tokens
    def create_token(
        self,
        secret: str,
        token_type: TokenType,
        owner_id: str,
        expires_at: datetime,
    ) -> PersistedToken:
        with self._data_lock:
            if owner_id not in self.companies:
                raise ConstraintViolation("token owner does not exist", {"owner_id": owner_id})
            token = PersistedToken.new(secret, token_type, owner_id, expires_at)
            self.tokens[token.id] = token
            return replace(token)

    def find_token(self, secret: str, token_type: TokenType) -> Optional[PersistedToken]:
        with self._data_lock:
            token = next(
                (
                    t
                    for t in self.tokens.values()
                    if t.secret == secret and t.type == token_type
                ),
                None,
            )
            return replace(token) if token else None

    def delete_token(self, token_id: str) -> bool:
        with self._data_lock:
            return self.tokens.pop(token_id, None) is not None

    def blacklist_token(self, token_id: str) -> bool:
        # Check and flip under one lock acquisition: only one caller wins.
        with self._data_lock:
            token = self.tokens.get(token_id)
            if not token or token.blacklisted:
                return False
            token.blacklisted = True
            return True

    def delete_tokens_for(self, owner_id: str, token_type: TokenType) -> int:
        with self._data_lock:
            stale = [
                tid
                for tid, t in self.tokens.items()
                if t.owner_id == owner_id and t.type == token_type
            ]
            for tid in stale:
                self.tokens.pop(tid, None)
            return len(stale)

    def list_tokens_for(
        self, owner_id: str, token_type: Optional[TokenType] = None
    ) -> List[PersistedToken]:
        with self._data_lock:
            return [
                replace(t)
                for t in self.tokens.values()
                if t.owner_id == owner_id and (token_type is None or t.type == token_type)
            ]
