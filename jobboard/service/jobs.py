from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from jobboard.logging import get_logger
from jobboard.service.cache import (
    CacheAsideReader,
    InvalidationCoordinator,
    entity_key,
    listing_key,
    listing_pattern,
)
from jobboard.service.companies import CompanyService
from jobboard.service.errors import ForbiddenError, NotFoundError
from jobboard.service.projection import public_job
from jobboard.storage.models import Job, JobType, Page

logger = get_logger(__name__)


class JobStore(Protocol):
    def create_job(
        self,
        company_id: str,
        *,
        title: str,
        description: str,
        type: JobType,
        application_link: str,
    ) -> Job: ...

    def get_job(self, job_id: str) -> Optional[Job]: ...

    def update_job(self, job_id: str, **fields) -> Optional[Job]: ...

    def delete_job(self, job_id: str) -> bool: ...

    def list_jobs(
        self,
        page: int,
        limit: int,
        search: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> Page[Job]: ...


class JobService:
    """Job postings behind the cache.

    Every mutation commits first and then, in order, overwrites ``job_{id}``
    (or removes it on delete) and drops the global and per-company job
    listings.
    """

    def __init__(
        self,
        store: JobStore,
        reader: CacheAsideReader,
        invalidator: InvalidationCoordinator,
        companies: CompanyService,
    ) -> None:
        self.store = store
        self.reader = reader
        self.invalidator = invalidator
        self.companies = companies

    def _fetch(self, job_id: str) -> Optional[Dict[str, Any]]:
        job = self.store.get_job(job_id)
        return public_job(job) if job else None

    @staticmethod
    def _listing_patterns(company_id: str) -> List[str]:
        return [
            listing_pattern("jobs"),
            listing_pattern("jobs", scope="company", scope_id=company_id),
        ]

    async def get(self, job_id: str) -> Dict[str, Any]:
        job = await self.reader.read(entity_key("job", job_id), lambda: self._fetch(job_id))
        if job is None:
            raise NotFoundError(f"Job with id '{job_id}' doesn't exist")
        return job

    async def get_with_company(self, job_id: str) -> Dict[str, Any]:
        job = await self.get(job_id)
        return {**job, "company": await self.companies.get(job["company_id"])}

    async def list(
        self, page: int, limit: int, search: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.reader.read(
            listing_key("jobs", page, limit, search),
            lambda: self.store.list_jobs(page, limit, search).to_dict(public_job),
        )

    async def list_for_company(
        self, company_id: str, page: int, limit: int, search: Optional[str] = None
    ) -> Dict[str, Any]:
        await self.companies.get(company_id)
        return await self.reader.read(
            listing_key("jobs", page, limit, search, scope="company", scope_id=company_id),
            lambda: self.store.list_jobs(page, limit, search, company_id=company_id).to_dict(
                public_job
            ),
        )

    async def _owned(self, job_id: str, company_id: str) -> Job:
        job = self.store.get_job(job_id)
        if not job:
            raise NotFoundError(f"Job with id '{job_id}' doesn't exist")
        if job.company_id != company_id:
            logger.warning(
                "job_access_denied", job_id=job_id, company_id=company_id, owner_id=job.company_id
            )
            raise ForbiddenError()
        return job

    async def post_job(
        self,
        company_id: str,
        *,
        title: str,
        description: str,
        type: JobType,
        application_link: str,
    ) -> Dict[str, Any]:
        job = self.store.create_job(
            company_id,
            title=title,
            description=description,
            type=type,
            application_link=application_link,
        )
        logger.info("job_posted", job_id=job.id, company_id=company_id)
        projected = public_job(job)
        await self.reader.store(entity_key("job", job.id), projected)
        await self.invalidator.invalidate(patterns=self._listing_patterns(company_id))
        return projected

    async def edit_job(self, job_id: str, company_id: str, **fields: Any) -> Dict[str, Any]:
        await self._owned(job_id, company_id)
        changes = {key: value for key, value in fields.items() if value is not None}
        job = self.store.update_job(job_id, **changes) if changes else self.store.get_job(job_id)
        if not job:
            raise NotFoundError(f"Job with id '{job_id}' doesn't exist")
        logger.info("job_updated", job_id=job_id, company_id=company_id, fields=sorted(changes))
        projected = public_job(job)
        await self.reader.store(entity_key("job", job.id), projected)
        await self.invalidator.invalidate(patterns=self._listing_patterns(company_id))
        return projected

    async def delete_job(self, job_id: str, company_id: str) -> bool:
        await self._owned(job_id, company_id)
        deleted = self.store.delete_job(job_id)
        logger.info("job_deleted", job_id=job_id, company_id=company_id, deleted=deleted)
        await self.invalidator.invalidate(
            patterns=self._listing_patterns(company_id),
            exact_keys=[entity_key("job", job_id)],
        )
        return deleted
