"""S3-compatible object store used to publish artifacts.

Works against AWS S3 and any S3-compatible endpoint (MinIO, R2). boto3 is
synchronous, so every client call is pushed to a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from engine.publisher import guess_content_type

logger = logging.getLogger(__name__)

# SigV4 presigned URLs are capped at seven days.
PRESIGNED_URL_EXPIRATION_SECONDS = 7 * 24 * 60 * 60

_REQUIRED_ENV = (
    ("S3_ACCESS_KEY_ID", "access_key_id"),
    ("S3_SECRET_ACCESS_KEY", "secret_access_key"),
    ("S3_BUCKET_NAME", "bucket_name"),
)


class StorageError(RuntimeError):
    """Raised when the object store rejects an operation."""


@dataclass(frozen=True)
class S3Settings:
    bucket_name: str
    access_key_id: str
    secret_access_key: str
    region: str = "us-east-1"
    endpoint_url: str | None = None
    public_url_base: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "S3Settings":
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        missing = []
        for env_name, field_name in _REQUIRED_ENV:
            value = (env.get(env_name) or "").strip()
            if not value:
                missing.append(env_name)
            values[field_name] = value
        if missing:
            raise ValueError(f"missing required storage settings: {', '.join(missing)}")
        return cls(
            region=(env.get("S3_REGION") or "").strip() or "us-east-1",
            endpoint_url=(env.get("S3_ENDPOINT") or "").strip() or None,
            public_url_base=(env.get("S3_PUBLIC_URL_BASE") or "").strip().rstrip("/") or None,
            **values,
        )


class S3ObjectStore:
    def __init__(self, settings: S3Settings, client: Any = None) -> None:
        self.settings = settings
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=settings.endpoint_url,
                region_name=settings.region,
                aws_access_key_id=settings.access_key_id,
                aws_secret_access_key=settings.secret_access_key,
                config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
            )
        self._client = client

    @staticmethod
    def build_key(local_path: Path, key_prefix: str) -> str:
        return f"{key_prefix}{uuid4()}{Path(local_path).suffix.lower()}"

    async def upload(self, local_path: Path, key_prefix: str) -> str:
        """Upload ``local_path`` under a fresh random key and return a URL for it."""
        local_path = Path(local_path)
        key = self.build_key(local_path, key_prefix)
        extra_args = {"ContentType": guess_content_type(local_path)}
        try:
            await asyncio.to_thread(
                self._client.upload_file,
                str(local_path),
                self.settings.bucket_name,
                key,
                ExtraArgs=extra_args,
            )
            url = await asyncio.to_thread(self.object_url, key)
        except ClientError as exc:
            message = exc.response.get("Error", {}).get("Message") or str(exc)
            raise StorageError(f"failed to upload {key}: {message}") from exc
        except (BotoCoreError, S3UploadFailedError) as exc:
            raise StorageError(f"failed to upload {key}: {exc}") from exc
        logger.info("uploaded object bucket=%s key=%s", self.settings.bucket_name, key)
        return url

    def object_url(self, key: str) -> str:
        if self.settings.public_url_base:
            return f"{self.settings.public_url_base}/{key}"
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.settings.bucket_name, "Key": key},
            ExpiresIn=PRESIGNED_URL_EXPIRATION_SECONDS,
        )

    async def check_connection(self) -> bool:
        """Return whether the configured bucket is reachable with these credentials."""
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=self.settings.bucket_name)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            logger.error("storage bucket check failed bucket=%s code=%s", self.settings.bucket_name, code)
            return False
        except BotoCoreError as exc:
            logger.error("storage endpoint unreachable bucket=%s error=%s", self.settings.bucket_name, exc)
            return False
        return True
