"""
Kubeconfig secret store contract and the AES-GCM envelope shared by every backend.

Blob layout: 12-byte random nonce followed by ciphertext with its 16-byte GCM tag.
"""
import os
import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.core.exceptions import SecretIntegrityError, SecretStoreError
from app.modules.secrets.master_key import MasterKeyProvider

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
TAG_SIZE = 16
_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass(frozen=True)
class KubeconfigRef:
    """Opaque handle to a stored blob: backend tag plus backend-specific id."""
    backend: str
    id: str

    def __str__(self) -> str:
        return f"{self.backend}:{self.id}"

    @classmethod
    def parse(cls, value: str) -> "KubeconfigRef":
        backend, sep, ref_id = (value or "").partition(":")
        if not sep or not backend or not ref_id:
            raise ValueError(f"Malformed kubeconfig reference: {value!r}")
        return cls(backend=backend, id=ref_id)


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, None)


def decrypt(blob: bytes, key: bytes) -> bytes:
    if len(blob) < NONCE_SIZE + TAG_SIZE:
        raise SecretIntegrityError("Encrypted blob is truncated")
    nonce, payload = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    try:
        return AESGCM(key).decrypt(nonce, payload, None)
    except InvalidTag:
        raise SecretIntegrityError("Encrypted blob failed authentication")


class KubeconfigSecretStore(ABC):
    backend: str = ""

    def __init__(self, master_key_provider: MasterKeyProvider):
        self.master_key_provider = master_key_provider

    def store(self, key: str, kubeconfig_yaml: str) -> KubeconfigRef:
        """Encrypt and persist under `key` (last writer wins). Returns the reference."""
        self._validate_key(key)
        blob = encrypt(kubeconfig_yaml.encode("utf-8"), self.master_key_provider.key())
        ref = self._write(key, blob)
        logger.info(f"Stored kubeconfig {ref}")
        return ref

    def load(self, ref: KubeconfigRef) -> str:
        self._check_backend(ref)
        blob = self._read(ref)
        return decrypt(blob, self.master_key_provider.key()).decode("utf-8")

    def delete(self, ref: KubeconfigRef) -> None:
        self._check_backend(ref)
        self._remove(ref)

    def _check_backend(self, ref: KubeconfigRef) -> None:
        if ref.backend != self.backend:
            raise SecretStoreError(f"Reference {ref} does not belong to the {self.backend} store")

    @staticmethod
    def _validate_key(key: str) -> None:
        if not key or not _KEY_PATTERN.match(key) or ".." in key:
            raise SecretStoreError(f"Invalid secret key: {key!r}")

    @abstractmethod
    def _write(self, key: str, blob: bytes) -> KubeconfigRef:
        ...

    @abstractmethod
    def _read(self, ref: KubeconfigRef) -> bytes:
        """Return the blob or raise SecretNotFoundError."""

    @abstractmethod
    def _remove(self, ref: KubeconfigRef) -> None:
        """Remove the blob; absence is not an error."""
