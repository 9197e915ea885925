from __future__ import annotations

import asyncio
import hashlib
import secrets
from typing import Optional, Protocol

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from jobboard.logging import get_logger
from jobboard.service.email import EmailService
from jobboard.service.errors import BadUserInputError, TokenError
from jobboard.service.tokens import TokenManager
from jobboard.storage.errors import ConstraintViolation
from jobboard.storage.models import Company, TokenType, utcnow

logger = get_logger(__name__)


class AccountStore(Protocol):
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
    ) -> Company: ...

    def get_company(self, company_id: str) -> Optional[Company]: ...

    def get_company_by_email(self, email: str) -> Optional[Company]: ...

    def update_company(self, company_id: str, **fields) -> Optional[Company]: ...


def _email_hash(email: str) -> str:
    return hashlib.sha256(email.encode()).hexdigest()


class AuthService:
    """Credential checks and the one-shot token flows (verify email, reset password)."""

    def __init__(
        self,
        store: AccountStore,
        tokens: TokenManager,
        email: EmailService,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.email = email
        self._pwd_hasher = PasswordHasher(type=Type.ID)
        # Unknown emails still pay for one verify so response time does not
        # reveal which addresses are registered.
        self._dummy_hash = self._pwd_hasher.hash(secrets.token_urlsafe(16))
        self.logger = logger

    def _hash_password(self, password: str) -> str:
        return self._pwd_hasher.hash(password)

    def _check_password(self, stored_hash: str, password: str) -> bool:
        try:
            return self._pwd_hasher.verify(stored_hash, password)
        except (InvalidHash, VerifyMismatchError, VerificationError):
            return False

    async def login(self, email: str, password: str) -> Company:
        company = self.store.get_company_by_email(email)
        if not company:
            self._check_password(self._dummy_hash, password)
            self.logger.info("login_failed", email_hash=_email_hash(email), reason="unknown")
            raise BadUserInputError("Invalid email or password")
        if not self._check_password(company.password_hash, password):
            self.logger.info("login_failed", company_id=company.id, reason="password")
            raise BadUserInputError("Invalid email or password")
        return company

    async def signup(
        self,
        *,
        name: str,
        website: str,
        headquarter: str,
        logo: str,
        description: str,
        email: str,
        password: str,
    ) -> Optional[Company]:
        """Create a company and send its verification link.

        A duplicate email is swallowed and returns None so the caller answers
        identically for new and existing addresses.
        """
        try:
            company = self.store.create_company(
                name=name,
                website=website,
                headquarter=headquarter,
                logo=logo,
                description=description,
                email=email,
                password_hash=self._hash_password(password),
            )
        except ConstraintViolation:
            self.logger.info("signup_duplicate_email", email_hash=_email_hash(email))
            return None
        self.logger.info("company_signed_up", company_id=company.id)
        await self._send_verification(company)
        return company

    async def _send_verification(self, company: Company) -> bool:
        token = self.tokens.issue_stateful_token(company.id, TokenType.EMAIL_VERIFICATION)
        return await asyncio.to_thread(self.email.send_email_verification, company.email, token)

    async def send_verification_email(self, company: Company) -> bool:
        if company.is_verified:
            return False
        return await self._send_verification(company)

    async def send_reset_password_email(self, email: str) -> bool:
        company = self.store.get_company_by_email(email)
        if not company:
            self.logger.info("password_reset_unknown_email", email_hash=_email_hash(email))
            return False
        token = self.tokens.issue_stateful_token(company.id, TokenType.RESET_PASSWORD)
        self.logger.info("password_reset_requested", company_id=company.id)
        return await asyncio.to_thread(self.email.send_password_reset, company.email, token)

    async def verify_email(self, token: str) -> Company:
        row = self.tokens.resolve_stateful_token(token, TokenType.EMAIL_VERIFICATION)
        if not row or row.blacklisted:
            self.logger.warning("email_verification_invalid_token")
            raise TokenError("Email verification failed")
        if not self.tokens.blacklist(row.id):
            self.logger.warning("email_verification_token_spent", token_id=row.id)
            raise TokenError("Email verification failed")
        if row.is_expired():
            self.logger.info("email_verification_expired", token_id=row.id)
            raise TokenError("Email verification failed")
        company = self.store.update_company(row.owner_id, email_verified_at=utcnow())
        if not company:
            self.logger.warning("email_verification_missing_company", company_id=row.owner_id)
            raise TokenError("Email verification failed")
        self.logger.info("email_verified", company_id=company.id)
        return company

    async def reset_password(self, token: str, password: str) -> None:
        row = self.tokens.resolve_stateful_token(token, TokenType.RESET_PASSWORD)
        if not row or not self.tokens.consume(row.id):
            self.logger.warning("password_reset_invalid_token")
            raise TokenError("Password reset failed")
        if row.is_expired():
            self.logger.info("password_reset_expired", token_id=row.id)
            raise TokenError("Password reset failed")
        company = self.store.update_company(
            row.owner_id, password_hash=self._hash_password(password)
        )
        if not company:
            self.logger.warning("password_reset_missing_company", company_id=row.owner_id)
            raise TokenError("Password reset failed")
        self.tokens.revoke_all_for(company.id, TokenType.REFRESH)
        self.logger.info("password_reset_completed", company_id=company.id)

    async def change_password(self, company_id: str, old_password: str, new_password: str) -> None:
        company = self.store.get_company(company_id)
        if not company or not self._check_password(company.password_hash, old_password):
            self.logger.info("password_change_rejected", company_id=company_id)
            raise BadUserInputError("Password change failed")
        self.store.update_company(company.id, password_hash=self._hash_password(new_password))
        self.tokens.revoke_all_for(company.id, TokenType.REFRESH)
        self.logger.info("password_changed", company_id=company.id)
