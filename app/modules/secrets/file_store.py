import os
import tempfile
import logging
from pathlib import Path

from app.core.exceptions import SecretNotFoundError, SecretStoreError
from app.modules.secrets.master_key import MasterKeyProvider
from app.modules.secrets.store import KubeconfigRef, KubeconfigSecretStore

logger = logging.getLogger(__name__)


class FileKubeconfigSecretStore(KubeconfigSecretStore):
    """Encrypted blobs as `<base_dir>/<key>.enc` files readable only by the service user."""

    backend = "file"

    def __init__(self, base_dir: str, master_key_provider: MasterKeyProvider):
        super().__init__(master_key_provider)
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, ref: KubeconfigRef) -> Path:
        name = os.path.basename(ref.id)
        if not name or name != ref.id:
            raise SecretStoreError(f"Invalid file reference: {ref}")
        return self.base_dir / name

    def _write(self, key: str, blob: bytes) -> KubeconfigRef:
        ref = KubeconfigRef(self.backend, f"{key}.enc")
        target = self._path_for(ref)
        # Write-then-rename so readers never observe a partial blob
        fd, tmp_path = tempfile.mkstemp(dir=self.base_dir, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, target)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return ref

    def _read(self, ref: KubeconfigRef) -> bytes:
        path = self._path_for(ref)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise SecretNotFoundError(f"Kubeconfig not found: {ref.id}")

    def _remove(self, ref: KubeconfigRef) -> None:
        try:
            self._path_for(ref).unlink()
            logger.info(f"Deleted kubeconfig {ref}")
        except FileNotFoundError:
            pass
