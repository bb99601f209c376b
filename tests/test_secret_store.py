import base64
import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from app.config import settings
from app.core.exceptions import MasterKeyError, SecretIntegrityError, SecretNotFoundError, SecretStoreError
from app.modules.secrets.file_store import FileKubeconfigSecretStore
from app.modules.secrets.master_key import MasterKeyProvider
from app.modules.secrets.s3_store import S3KubeconfigSecretStore
from app.modules.secrets.store import NONCE_SIZE, KubeconfigRef


class TestFileStore:
    def test_round_trip(self, secret_store):
        ref = secret_store.store("env-1", "hello")
        assert ref == KubeconfigRef("file", "env-1.enc")
        assert secret_store.load(ref) == "hello"

    def test_round_trip_utf8_and_large(self, secret_store):
        text = "apiVersion: v1\nclusters: [] # ñandú ✓\n" + "x" * 200_000
        assert secret_store.load(secret_store.store("env-2", text)) == text

    def test_blob_never_contains_plaintext(self, secret_store, secret_dir):
        secret_store.store("env-1", "super-secret-kubeconfig")
        raw = (secret_dir / "env-1.enc").read_bytes()
        assert b"super-secret-kubeconfig" not in raw

    def test_same_plaintext_encrypts_differently(self, secret_store, secret_dir):
        secret_store.store("env-1", "hello")
        first = (secret_dir / "env-1.enc").read_bytes()
        secret_store.store("env-1", "hello")
        second = (secret_dir / "env-1.enc").read_bytes()
        assert first != second
        assert first[:NONCE_SIZE] != second[:NONCE_SIZE]

    @pytest.mark.parametrize("offset", [0, NONCE_SIZE, -1])
    def test_tampered_byte_fails_integrity(self, secret_store, secret_dir, offset):
        ref = secret_store.store("env-1", "hello")
        path = secret_dir / "env-1.enc"
        blob = bytearray(path.read_bytes())
        blob[offset] ^= 0x01
        path.write_bytes(bytes(blob))
        with pytest.raises(SecretIntegrityError):
            secret_store.load(ref)

    def test_truncated_blob_fails_integrity(self, secret_store, secret_dir):
        ref = secret_store.store("env-1", "hello")
        (secret_dir / "env-1.enc").write_bytes(b"short")
        with pytest.raises(SecretIntegrityError):
            secret_store.load(ref)

    def test_wrong_key_fails_integrity(self, secret_store, secret_dir):
        ref = secret_store.store("env-1", "hello")
        other = FileKubeconfigSecretStore(str(secret_dir), MasterKeyProvider("fedcba9876543210"))
        with pytest.raises(SecretIntegrityError):
            other.load(ref)

    def test_missing_blob_is_not_found(self, secret_store):
        with pytest.raises(SecretNotFoundError):
            secret_store.load(KubeconfigRef("file", "nope.enc"))

    def test_delete_is_idempotent(self, secret_store):
        ref = secret_store.store("env-1", "hello")
        secret_store.delete(ref)
        secret_store.delete(ref)
        with pytest.raises(SecretNotFoundError):
            secret_store.load(ref)

    @pytest.mark.parametrize("key", ["", "../escape", "a/b", ".hidden"])
    def test_rejects_unsafe_keys(self, secret_store, key):
        with pytest.raises(SecretStoreError):
            secret_store.store(key, "hello")

    def test_rejects_path_traversal_reference(self, secret_store):
        with pytest.raises(SecretStoreError):
            secret_store.load(KubeconfigRef("file", "../etc/passwd"))

    def test_rejects_reference_from_other_backend(self, secret_store):
        with pytest.raises(SecretStoreError):
            secret_store.load(KubeconfigRef("s3", "kubeconfigs/env-1.enc"))


class TestKubeconfigRef:
    def test_string_form_parses_back(self):
        ref = KubeconfigRef("s3", "kubeconfigs/env-1.enc")
        assert str(ref) == "s3:kubeconfigs/env-1.enc"
        assert KubeconfigRef.parse(str(ref)) == ref

    @pytest.mark.parametrize("value", ["", "file", ":id", "file:"])
    def test_malformed(self, value):
        with pytest.raises(ValueError):
            KubeconfigRef.parse(value)


class TestS3Store:
    def _store(self, master_key_provider):
        objects = {}
        s3 = MagicMock()

        def put_object(Bucket, Key, Body, ContentType):
            objects[Key] = Body

        def get_object(Bucket, Key):
            if Key not in objects:
                raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
            return {"Body": io.BytesIO(objects[Key])}

        s3.put_object.side_effect = put_object
        s3.get_object.side_effect = get_object
        return S3KubeconfigSecretStore(master_key_provider, s3_client=s3, bucket_name="bucket"), s3, objects

    def test_round_trip(self, master_key_provider):
        store, s3, objects = self._store(master_key_provider)
        ref = store.store("env-1", "kubeconfig-A")
        assert ref == KubeconfigRef("s3", "kubeconfigs/env-1.enc")
        assert b"kubeconfig-A" not in objects["kubeconfigs/env-1.enc"]
        assert store.load(ref) == "kubeconfig-A"

    def test_missing_object_is_not_found(self, master_key_provider):
        store, _, _ = self._store(master_key_provider)
        with pytest.raises(SecretNotFoundError):
            store.load(KubeconfigRef("s3", "kubeconfigs/missing.enc"))

    def test_delete(self, master_key_provider):
        store, s3, _ = self._store(master_key_provider)
        store.delete(KubeconfigRef("s3", "kubeconfigs/env-1.enc"))
        s3.delete_object.assert_called_once_with(Bucket="bucket", Key="kubeconfigs/env-1.enc")


class TestMasterKeyProvider:
    @pytest.mark.parametrize("raw", ["a" * 16, "b" * 32])
    def test_accepts_aes_key_sizes(self, raw):
        assert MasterKeyProvider(raw).key() == raw.encode()

    def test_accepts_base64_keys(self):
        key = bytes(range(32))
        raw = "base64:" + base64.b64encode(key).decode()
        assert MasterKeyProvider(raw).key() == key

    @pytest.mark.parametrize("raw", ["short", "c" * 24, "d" * 33, "base64:!!notb64!!"])
    def test_rejects_bad_keys(self, raw):
        with pytest.raises(MasterKeyError):
            MasterKeyProvider(raw).key()

    def test_missing_key_fails_fast(self, monkeypatch):
        monkeypatch.setattr(settings, "paas_master_key", None)
        with pytest.raises(MasterKeyError, match="PAAS_MASTER_KEY"):
            MasterKeyProvider().key()

    def test_key_is_resolved_once(self, monkeypatch):
        monkeypatch.setattr(settings, "paas_master_key", "e" * 16)
        provider = MasterKeyProvider()
        first = provider.key()
        monkeypatch.setattr(settings, "paas_master_key", "f" * 16)
        assert provider.key() == first

    def test_repr_hides_key(self):
        assert "a" * 16 not in repr(MasterKeyProvider("a" * 16))
