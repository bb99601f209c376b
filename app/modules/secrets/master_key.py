import base64
import binascii
import logging
import threading
from typing import Optional

from app.config import settings
from app.core.exceptions import MasterKeyError

logger = logging.getLogger(__name__)

VALID_KEY_LENGTHS = (16, 32)  # AES-128 / AES-256
BASE64_PREFIX = "base64:"


class MasterKeyProvider:
    """
    Supplies the process-wide AES key used to encrypt kubeconfigs at rest.

    The key is resolved once, validated, and then held for the lifetime of the
    process. Accepts either raw key material (its UTF-8 bytes are the key) or a
    "base64:" prefixed value for binary keys.
    """

    def __init__(self, raw_key: Optional[str] = None):
        self._raw_key = raw_key
        self._key: Optional[bytes] = None
        self._lock = threading.Lock()

    def key(self) -> bytes:
        if self._key is None:
            with self._lock:
                if self._key is None:
                    self._key = self._resolve()
        return self._key

    def _resolve(self) -> bytes:
        raw = self._raw_key if self._raw_key is not None else settings.paas_master_key
        if not raw:
            raise MasterKeyError("PAAS_MASTER_KEY env variable missing")
        if raw.startswith(BASE64_PREFIX):
            try:
                key_bytes = base64.b64decode(raw[len(BASE64_PREFIX):], validate=True)
            except (binascii.Error, ValueError):
                raise MasterKeyError("PAAS_MASTER_KEY is not valid base64")
        else:
            key_bytes = raw.encode("utf-8")
        if len(key_bytes) not in VALID_KEY_LENGTHS:
            raise MasterKeyError("Master key must be 16 or 32 bytes for AES")
        logger.info(f"Master key loaded (AES-{len(key_bytes) * 8})")
        return key_bytes

    def __repr__(self) -> str:
        return "MasterKeyProvider(<redacted>)"
