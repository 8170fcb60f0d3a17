from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings

logger = logging.getLogger(__name__)


class S3Client:
    """Object storage for rendered tax report documents.

    Uses S3 (or an S3-compatible endpoint) when credentials or an endpoint are
    configured. Otherwise, and outside production when S3 is unreachable,
    objects are kept on the local filesystem and served as ``file://`` URLs.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        bucket: str | None = None,
        presign_ttl: int | None = None,
        local_root: str | None = None,
    ) -> None:
        self.bucket = bucket or settings.S3_BUCKET
        self._explicit_endpoint = endpoint or settings.S3_ENDPOINT or None
        self._access_key = access_key or settings.S3_ACCESS_KEY or None
        self._secret_key = secret_key or settings.S3_SECRET_KEY or None
        self._presign_ttl = presign_ttl or settings.S3_PRESIGN_TTL
        self._local_root = Path(local_root or settings.STORAGE_LOCAL_DIR)
        self._filesystem_root: Path | None = None
        self._client = self._initialize_client()

    @property
    def uses_filesystem(self) -> bool:
        return self._client is None

    def upload_bytes(self, data: bytes, key: str, content_type: str = "application/pdf") -> str:
        """Store ``data`` under ``key`` and return the key."""
        if self._client is not None:
            try:
                self._client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
                logger.debug("Uploaded %s to bucket %s", key, self.bucket)
                return key
            except (BotoCoreError, ClientError) as exc:
                logger.exception("S3 upload failed for %s: %s", key, exc)
                if settings.ENV.lower() == "prod":
                    raise RuntimeError("Failed to upload report document to object storage") from exc
        local_uri = self._write_to_filesystem(data, key)
        logger.debug("Stored %s locally at %s", key, local_uri)
        return key

    def generate_download_url(self, key: str, ttl: int | None = None) -> tuple[str, datetime]:
        """Signed, time-limited GET URL for ``key`` and the instant it expires."""
        expires_in = ttl or self._presign_ttl
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        if self._client is not None:
            url = self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
            return url, expires_at
        target = self._ensure_filesystem_root() / key
        return target.resolve().as_uri(), expires_at

    def _initialize_client(self):
        if not (self._explicit_endpoint or self._access_key):
            logger.info("No object storage configured; using filesystem for bucket %s", self.bucket)
            return None
        try:
            session = boto3.session.Session(
                aws_access_key_id=self._access_key,
                aws_secret_access_key=self._secret_key,
            )
            client_kwargs = {
                "service_name": "s3",
                "region_name": settings.S3_REGION,
                "config": Config(signature_version="s3v4"),
            }
            # Only set endpoint_url for non-AWS S3-compatible services
            if self._explicit_endpoint:
                client_kwargs["endpoint_url"] = self._explicit_endpoint

            client = session.client(**client_kwargs)
            client.head_bucket(Bucket=self.bucket)
            return client
        except (BotoCoreError, ClientError) as exc:
            if settings.ENV.lower() == "prod":
                raise
            logger.warning("Falling back to filesystem storage for bucket %s: %s", self.bucket, exc)
            return None

    def _write_to_filesystem(self, data: bytes, key: str) -> str:
        target = self._ensure_filesystem_root() / key
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target.resolve().as_uri()

    def _ensure_filesystem_root(self) -> Path:
        if self._filesystem_root is None:
            root = self._local_root / self.bucket
            root.mkdir(parents=True, exist_ok=True)
            self._filesystem_root = root
            logger.info("Using filesystem storage fallback at %s", root)
        return self._filesystem_root


@lru_cache
def get_report_storage() -> S3Client:
    return S3Client()
