from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Protocol

from jobboard.config import Settings
from jobboard.logging import get_logger
from jobboard.service.envelope import EnvelopeCodec
from jobboard.storage.models import PersistedToken, TokenType, token_expiry

logger = get_logger(__name__)

# 24 random bytes, base64 encoded: 32 printable characters per secret.
OPAQUE_TOKEN_BYTES = 24


class TokenStore(Protocol):
    def create_token(
        self,
        secret: str,
        token_type: TokenType,
        owner_id: str,
        expires_at: datetime,
    ) -> PersistedToken: ...

    def find_token(self, secret: str, token_type: TokenType) -> Optional[PersistedToken]: ...

    def delete_token(self, token_id: str) -> bool: ...

    def blacklist_token(self, token_id: str) -> bool: ...

    def delete_tokens_for(self, owner_id: str, token_type: TokenType) -> int: ...


@dataclass(frozen=True)
class AccessTokenCheck:
    owner_id: Optional[str]
    valid: bool


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    refresh_token: str


class TokenManager:
    """Issues, verifies and retires access and stateful tokens.

    Access tokens are HS256 JWTs ``{sub, iat, exp}`` wrapped by the envelope
    codec and never persisted. Stateful tokens are random opaque secrets
    stored through ``TokenStore``; only their envelope form is handed out.
    """

    def __init__(
        self,
        store: TokenStore,
        codec: EnvelopeCodec,
        settings: Settings,
    ) -> None:
        self.store = store
        self.codec = codec
        self.settings = settings
        self.logger = logger

    def ttl_for(self, token_type: TokenType) -> timedelta:
        minutes = {
            TokenType.REFRESH: self.settings.refresh_token_ttl_minutes,
            TokenType.EMAIL_VERIFICATION: self.settings.email_verification_token_ttl_minutes,
            TokenType.RESET_PASSWORD: self.settings.reset_password_token_ttl_minutes,
        }[TokenType(token_type)]
        return timedelta(minutes=minutes)

    # access tokens
    def issue_access_token(self, owner_id: str, *, ttl_seconds: Optional[int] = None) -> str:
        if ttl_seconds is None:
            ttl_seconds = self.settings.access_token_ttl_minutes * 60
        now = int(time.time())
        payload = {"sub": owner_id, "iat": now, "exp": now + int(ttl_seconds)}
        return self.codec.encrypt(self._encode_jwt(payload))

    def verify_access_token(self, token: Optional[str]) -> AccessTokenCheck:
        raw = self.codec.decrypt(token)
        if not raw:
            return AccessTokenCheck(owner_id=None, valid=False)
        payload = self._decode_jwt(raw)
        if not payload:
            return AccessTokenCheck(owner_id=None, valid=False)
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            return AccessTokenCheck(owner_id=None, valid=False)
        return AccessTokenCheck(owner_id=subject, valid=True)

    # stateful tokens
    def _generate_opaque_token(self) -> str:
        return base64.b64encode(secrets.token_bytes(OPAQUE_TOKEN_BYTES)).decode("ascii")

    def issue_stateful_token(
        self,
        owner_id: str,
        token_type: TokenType,
        ttl: Optional[timedelta] = None,
    ) -> str:
        secret = self._generate_opaque_token()
        row = self.store.create_token(
            secret,
            TokenType(token_type),
            owner_id,
            token_expiry(ttl if ttl is not None else self.ttl_for(token_type)),
        )
        self.logger.info(
            "stateful_token_issued",
            token_id=row.id,
            token_type=row.type.value,
            owner_id=owner_id,
        )
        return self.codec.encrypt(secret)

    def resolve_stateful_token(
        self, envelope: Optional[str], token_type: TokenType
    ) -> Optional[PersistedToken]:
        secret = self.codec.decrypt(envelope)
        if not secret:
            return None
        return self.store.find_token(secret, TokenType(token_type))

    def consume(self, token_id: str) -> bool:
        return self.store.delete_token(token_id)

    def blacklist(self, token_id: str) -> bool:
        """Flip ACTIVE to BLACKLISTED; False when the row was already spent or gone."""
        return self.store.blacklist_token(token_id)

    def revoke_all_for(self, owner_id: str, token_type: TokenType) -> int:
        removed = self.store.delete_tokens_for(owner_id, TokenType(token_type))
        self.logger.info(
            "stateful_tokens_revoked",
            owner_id=owner_id,
            token_type=TokenType(token_type).value,
            count=removed,
        )
        return removed

    def generate_auth_tokens(self, owner_id: str) -> AuthTokens:
        return AuthTokens(
            access_token=self.issue_access_token(owner_id),
            refresh_token=self.issue_stateful_token(owner_id, TokenType.REFRESH),
        )

    # jwt
    def _encode_segment(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    def _decode_segment(self, segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def _sign(self, signing_input: str) -> str:
        return self._encode_segment(
            hmac.new(
                self.settings.jwt_secret.encode(), signing_input.encode(), hashlib.sha256
            ).digest()
        )

    def _encode_jwt(self, payload: Dict[str, Any]) -> str:
        header = {"alg": "HS256", "typ": "JWT"}
        header_enc = self._encode_segment(json.dumps(header, separators=(",", ":")).encode())
        payload_enc = self._encode_segment(json.dumps(payload, separators=(",", ":")).encode())
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def _decode_jwt(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None

        # Only HS256 is accepted; anything else is an algorithm confusion attempt.
        try:
            header = json.loads(self._decode_segment(header_b64))
        except ValueError:
            logger.warning("jwt_header_decode_failed")
            return None
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            logger.warning("jwt_invalid_algorithm")
            return None

        expected_sig = self._sign(f"{header_b64}.{payload_b64}")
        if not hmac.compare_digest(expected_sig.encode(), sig_b64.encode()):
            return None
        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except ValueError as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            return None
        if not isinstance(payload, dict):
            return None
        exp = payload.get("exp")
        if exp is None or isinstance(exp, bool):
            return None
        try:
            exp_ts = float(exp)
        except (TypeError, ValueError):
            return None
        if exp_ts <= time.time():
            return None
        return payload
