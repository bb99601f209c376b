import boto3
from botocore.exceptions import ClientError
from app.config import settings
from app.core.exceptions import SecretNotFoundError
from app.modules.secrets.master_key import MasterKeyProvider
from app.modules.secrets.store import KubeconfigRef, KubeconfigSecretStore
import logging

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class S3KubeconfigSecretStore(KubeconfigSecretStore):
    """Encrypted blobs as S3 objects under `<prefix>/<key>.enc`. Encryption happens client-side."""

    backend = "s3"

    def __init__(self, master_key_provider: MasterKeyProvider, s3_client=None, bucket_name: str = None):
        super().__init__(master_key_provider)
        self.bucket_name = bucket_name or settings.s3_bucket_name
        if s3_client is None:
            if not all([settings.aws_access_key_id, settings.aws_secret_access_key, self.bucket_name]):
                raise ValueError("AWS S3 credentials and bucket name must be configured")
            s3_client = boto3.client(
                's3',
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                region_name=settings.aws_region
            )
        self.s3_client = s3_client
        self.prefix = settings.secret_store_s3_prefix.strip("/")

    def _write(self, key: str, blob: bytes) -> KubeconfigRef:
        object_key = f"{self.prefix}/{key}.enc" if self.prefix else f"{key}.enc"
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=object_key,
                Body=blob,
                ContentType="application/octet-stream"
            )
        except ClientError as e:
            logger.error(f"Failed to upload kubeconfig to S3: {str(e)}")
            raise
        return KubeconfigRef(self.backend, object_key)

    def _read(self, ref: KubeconfigRef) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=ref.id)
            return response['Body'].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise SecretNotFoundError(f"Kubeconfig not found: {ref.id}")
            logger.error(f"Failed to download kubeconfig from S3: {str(e)}")
            raise

    def _remove(self, ref: KubeconfigRef) -> None:
        # S3 DeleteObject succeeds for missing keys
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=ref.id)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return
            logger.error(f"Failed to delete kubeconfig from S3: {str(e)}")
            raise
