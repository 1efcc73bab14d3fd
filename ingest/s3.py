import logging

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import SourceBlobUnavailable

logger = logging.getLogger(__name__)


def _client_for(endpoint_url: str):
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=endpoint_url,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


def get_s3_client():
    """
    SDK client for server-side object access (exists/delete).
    """
    return _client_for(settings.S3_ENDPOINT_URL)


def get_presign_client():
    """
    Separate client for generating presigned URLs that the encoding engine will call.
    Uses S3_PUBLIC_ENDPOINT so the URL host matches what the engine reaches.
    """
    return _client_for(settings.S3_PUBLIC_ENDPOINT)


def create_presigned_get(key: str, expires: int | None = None) -> str:
    """
    Create a presigned GET URL to download an object.
    """
    s3 = get_presign_client()
    return s3.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": settings.S3_BUCKET, "Key": key},
        ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
        HttpMethod="GET",
    )


class SourceBlob:
    """
    Handle to an uploaded video under ENCODE_INPUT_PREFIX.

    `name` is what the queue message calls blobName; `key` is the full object key.
    """

    def __init__(self, name: str, *, bucket: str | None = None, prefix: str | None = None, client=None):
        self.name = name
        self.bucket = bucket or settings.S3_BUCKET
        prefix = settings.ENCODE_INPUT_PREFIX if prefix is None else prefix
        self.key = f"{prefix}{name}"
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_s3_client()
        return self._client

    def exists(self) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self.key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise SourceBlobUnavailable(self.key, str(e)) from e
        except BotoCoreError as e:
            raise SourceBlobUnavailable(self.key, str(e)) from e
        return True

    def read_url(self) -> str:
        """Time-limited URL the encoding engine uses to ingest the upload."""
        try:
            return create_presigned_get(self.key)
        except (BotoCoreError, ClientError) as e:
            raise SourceBlobUnavailable(self.key, str(e)) from e

    def delete_if_exists(self) -> None:
        # S3 DeleteObject succeeds for missing keys, so repeated deletes are fine.
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self.key)
        except (BotoCoreError, ClientError) as e:
            raise SourceBlobUnavailable(self.key, str(e)) from e
        logger.info("Deleted source blob s3://%s/%s", self.bucket, self.key)

    def __repr__(self):
        return f"SourceBlob({self.bucket!r}, {self.key!r})"
