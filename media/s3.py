import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from urllib.parse import quote
from uuid import uuid4

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .exceptions import StorageError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _client(endpoint_url: str):
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
            max_pool_connections=max(10, settings.MEDIA_MAX_WORKERS * 2),
        ),
    )


def get_s3_client():
    """
    SDK client for server-side upload/download.
    """
    return _client(settings.S3_ENDPOINT_URL)


def get_presign_client():
    """
    Separate client for generating presigned URLs that the browser/curl will call.
    Uses S3_PUBLIC_ENDPOINT so the URL host matches what the client reaches.
    """
    return _client(settings.S3_PUBLIC_ENDPOINT or settings.S3_ENDPOINT_URL)


def generate_key(owner_id: str, extension: str, prefix: str = "", now: datetime | None = None) -> str:
    """
    Partitioned key: {prefix}{owner_id}/{YYYY}/{MM}/{DD}/{uuid}.{ext}
    """
    now = now or datetime.now(timezone.utc)
    return f"{prefix}{owner_id}/{now:%Y}/{now:%m}/{now:%d}/{uuid4()}.{extension}"


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _s3_metadata(metadata: dict | None) -> dict:
    # S3 user metadata must be ASCII strings
    return {str(k): quote(str(v), safe=" ./-_:") for k, v in (metadata or {}).items() if v is not None}


class S3Storage:
    """
    Thin wrapper over one S3/MinIO bucket. No business logic lives here.

    boto3 clients are thread-safe, so one instance is shared by the
    concurrent upload branches of a derivative engine.
    """

    def __init__(self, bucket: str | None = None, client=None, presign_client=None, public_endpoint: str | None = None):
        self.bucket = bucket or settings.S3_BUCKET
        self.client = client or get_s3_client()
        self.presign_client = presign_client or get_presign_client()
        self.public_endpoint = (public_endpoint or settings.S3_PUBLIC_ENDPOINT or settings.S3_ENDPOINT_URL).rstrip("/")

    def put(self, key: str, data: bytes, content_type: str, metadata: dict | None = None) -> dict:
        """Upload (or overwrite) one object."""
        try:
            resp = self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=_s3_metadata(metadata),
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload {key}: {e}") from e
        return {"key": key, "etag": resp.get("ETag"), "size": len(data), "url": self.object_url(key)}

    def put_file(self, key: str, local_path, content_type: str, metadata: dict | None = None) -> dict:
        """Upload a local file (multipart for large objects)."""
        local_path = Path(local_path)
        extra = {"ContentType": content_type, "Metadata": _s3_metadata(metadata)}
        try:
            self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload {key}: {e}") from e
        return {"key": key, "size": local_path.stat().st_size, "url": self.object_url(key)}

    def get(self, key: str) -> bytes:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
            return resp["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    def download(self, key: str, dest) -> Path:
        """Download an object to a local path and return it."""
        dest = Path(dest)
        try:
            self.client.download_file(self.bucket, key, str(dest))
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to download {key}: {e}") from e
        return dest

    def presigned_put(self, key: str, content_type: str | None = None, expires: int | None = None) -> dict:
        """
        Create a presigned PUT URL to upload a single object directly to S3/MinIO.

        ContentType is deliberately not part of the signature so clients that
        omit or alter the header do not get 'signature does not match'. The
        header is suggested back to the client instead.
        """
        expires = expires or settings.MEDIA_UPLOAD_URL_TTL
        try:
            url = self.presign_client.generate_presigned_url(
                ClientMethod="put_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires,
                HttpMethod="PUT",
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to presign upload for {key}: {e}") from e
        headers = {"Content-Type": content_type} if content_type else {}
        return {"url": url, "headers": headers, "expires_in": expires}

    def presigned_get(self, key: str, expires: int | None = None) -> str:
        try:
            return self.presign_client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
                HttpMethod="GET",
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to presign download for {key}: {e}") from e

    def head(self, key: str) -> dict | None:
        """Object metadata, or None if the key does not exist."""
        try:
            resp = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return None
            raise StorageError(f"Failed to stat {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to stat {key}: {e}") from e
        return {
            "key": key,
            "content_type": resp.get("ContentType"),
            "size": resp.get("ContentLength"),
            "etag": resp.get("ETag"),
            "last_modified": resp.get("LastModified"),
            "metadata": resp.get("Metadata", {}),
        }

    def delete(self, key: str) -> None:
        """Delete one object. S3 treats a missing key as success."""
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return
            raise StorageError(f"Failed to delete {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e

    def list(self, prefix: str = "") -> list[dict]:
        out = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    out.append({"key": obj["Key"], "size": obj.get("Size"), "last_modified": obj.get("LastModified")})
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to list {prefix!r}: {e}") from e
        return out

    def object_url(self, key: str) -> str:
        """
        Direct object URL against the PUBLIC endpoint.
        Prefer presigned_get for private buckets.
        """
        return f"{self.public_endpoint}/{self.bucket}/{quote(key)}"


@lru_cache(maxsize=1)
def get_storage() -> S3Storage:
    return S3Storage()
