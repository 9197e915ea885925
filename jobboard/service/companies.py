from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from jobboard.logging import get_logger
from jobboard.service.cache import (
    CacheAsideReader,
    InvalidationCoordinator,
    entity_key,
    listing_key,
    listing_pattern,
)
from jobboard.service.errors import NotFoundError
from jobboard.service.projection import public_company
from jobboard.storage.models import Company, Page

logger = get_logger(__name__)


class CompanyStore(Protocol):
    def get_company(self, company_id: str) -> Optional[Company]: ...

    def update_company(self, company_id: str, **fields) -> Optional[Company]: ...

    def list_companies(
        self, page: int, limit: int, search: Optional[str] = None
    ) -> Page[Company]: ...


class CompanyService:
    """Cached company reads; writes refresh the entity key and drop listings."""

    def __init__(
        self,
        store: CompanyStore,
        reader: CacheAsideReader,
        invalidator: InvalidationCoordinator,
    ) -> None:
        self.store = store
        self.reader = reader
        self.invalidator = invalidator

    def _fetch(self, company_id: str) -> Optional[Dict[str, Any]]:
        company = self.store.get_company(company_id)
        return public_company(company) if company else None

    async def get(self, company_id: str) -> Dict[str, Any]:
        company = await self.reader.read(
            entity_key("company", company_id), lambda: self._fetch(company_id)
        )
        if company is None:
            raise NotFoundError(f"Company with id '{company_id}' doesn't exist")
        return company

    async def list(
        self, page: int, limit: int, search: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.reader.read(
            listing_key("companies", page, limit, search),
            lambda: self.store.list_companies(page, limit, search).to_dict(public_company),
        )

    async def refresh(self, company: Company) -> Dict[str, Any]:
        """Publish a committed company: overwrite its entry, drop stale listings."""
        projected = public_company(company)
        await self.reader.store(entity_key("company", company.id), projected)
        await self.invalidator.invalidate(patterns=[listing_pattern("companies")])
        return projected

    async def edit_company(self, company_id: str, **fields: Any) -> Dict[str, Any]:
        changes = {key: value for key, value in fields.items() if value is not None}
        company = (
            self.store.update_company(company_id, **changes)
            if changes
            else self.store.get_company(company_id)
        )
        if not company:
            raise NotFoundError(f"Company with id '{company_id}' doesn't exist")
        logger.info("company_updated", company_id=company_id, fields=sorted(changes))
        return await self.refresh(company)
