from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from jobboard.logging import get_logger

logger = get_logger(__name__)


def _derive_cipher_key(material: str) -> bytes:
    return base64.urlsafe_b64encode(hashlib.sha256(material.encode()).digest())


class EnvelopeCodec:
    """Reversible symmetric wrapping of secrets that leave the server.

    Encryption is randomized per call (Fernet IV); decryption fails soft and
    returns None for anything it cannot open, since cookies and query
    parameters are untrusted input.
    """

    def __init__(self, key: str) -> None:
        if not key:
            raise ValueError("envelope key is required")
        self._fernet = Fernet(_derive_cipher_key(key))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        if not ciphertext or not isinstance(ciphertext, str):
            return None
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except (InvalidToken, ValueError, TypeError) as exc:
            logger.debug("envelope_decrypt_failed", error_type=type(exc).__name__)
            return None
