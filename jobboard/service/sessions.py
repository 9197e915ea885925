from __future__ import annotations

from typing import Optional

from jobboard.logging import get_logger
from jobboard.service.errors import TokenError
from jobboard.service.tokens import AuthTokens, TokenManager
from jobboard.storage.models import PersistedToken, TokenType

logger = get_logger(__name__)


class SessionReuseDetector:
    """Refresh-token rotation with replay (breach) detection.

    A REFRESH row moves ACTIVE -> BLACKLISTED when it is spent by a rotation,
    and is deleted on logout, on login replacement or when a replay revokes
    the owner's whole token family.
    """

    def __init__(self, tokens: TokenManager) -> None:
        self.tokens = tokens

    def _breach(self, row: PersistedToken, *, reason: str) -> TokenError:
        revoked = self.tokens.revoke_all_for(row.owner_id, TokenType.REFRESH)
        logger.warning(
            "refresh_token_reuse_detected",
            owner_id=row.owner_id,
            token_id=row.id,
            reason=reason,
            revoked=revoked,
        )
        return TokenError("Invalid token")

    def rotate(self, presented: Optional[str]) -> AuthTokens:
        if not presented:
            raise TokenError("Token is missing")
        row = self.tokens.resolve_stateful_token(presented, TokenType.REFRESH)
        if not row:
            raise TokenError("Invalid token")
        if row.blacklisted:
            raise self._breach(row, reason="replayed")
        if row.is_expired():
            self.tokens.consume(row.id)
            logger.info("refresh_token_expired", owner_id=row.owner_id, token_id=row.id)
            raise TokenError("Invalid token")
        # Conditional flip: losing the race means another request already spent it.
        if not self.tokens.blacklist(row.id):
            raise self._breach(row, reason="concurrent_rotation")
        logger.info("refresh_token_rotated", owner_id=row.owner_id, token_id=row.id)
        return self.tokens.generate_auth_tokens(row.owner_id)

    def begin_session(self, owner_id: str, presented: Optional[str] = None) -> AuthTokens:
        if presented:
            self._discard(presented)
        return self.tokens.generate_auth_tokens(owner_id)

    def end_session(self, presented: Optional[str]) -> bool:
        if not presented:
            return False
        return self._discard(presented)

    def _discard(self, presented: str) -> bool:
        row = self.tokens.resolve_stateful_token(presented, TokenType.REFRESH)
        if not row:
            return False
        return self.tokens.consume(row.id)
