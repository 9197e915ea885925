from __future__ import annotations

from typing import Optional, Protocol

from jobboard.logging import get_logger
from jobboard.service.errors import AuthenticationError
from jobboard.service.tokens import TokenManager
from jobboard.storage.models import Company

logger = get_logger(__name__)


class CompanyLookup(Protocol):
    def get_company(self, company_id: str) -> Optional[Company]: ...


def extract_bearer(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, credential = header.partition(" ")
    if scheme.lower() != "bearer" or not credential.strip():
        return None
    return credential.strip()


class AuthGuard:
    """Resolves the calling company from a bearer access token.

    Every failure raises the same AuthenticationError so callers cannot tell
    a bad token from an unknown or unverified owner.
    """

    def __init__(self, tokens: TokenManager, companies: CompanyLookup) -> None:
        self.tokens = tokens
        self.companies = companies

    def authenticate(
        self, authorization: Optional[str], *, requires_verified_email: bool = False
    ) -> Company:
        credential = extract_bearer(authorization)
        if not credential:
            raise AuthenticationError()
        check = self.tokens.verify_access_token(credential)
        if not check.valid or not check.owner_id:
            raise AuthenticationError()
        company = self.companies.get_company(check.owner_id)
        if not company:
            logger.info("auth_owner_missing", owner_id=check.owner_id)
            raise AuthenticationError()
        if requires_verified_email and not company.is_verified:
            logger.info("auth_owner_unverified", owner_id=company.id)
            raise AuthenticationError()
        return company
