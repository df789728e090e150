"""
Object storage for re-hosted media.

Two backends share the MediaStorage interface:
- LocalMediaStorage writes under MEDIA_DIR and is served by routes_files.
- S3MediaStorage talks to any S3-compatible bucket (AWS, R2, MinIO) via boto3.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import boto3
import httpx
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from trendscout.errors import PersistError, UpstreamFetchError
from trendscout.settings import Settings

logger = logging.getLogger(__name__)


class MediaStorage(ABC):
    @abstractmethod
    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under key and return their public URL."""


class LocalMediaStorage(MediaStorage):
    def __init__(self, root: str | Path, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, key: str) -> Path:
        if ".." in key or "/" in key:
            raise PersistError(f"Invalid storage key: {key}")
        return self.root / key

    def _write(self, key: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        with self.path_for(key).open("xb") as fh:
            fh.write(data)

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        try:
            await asyncio.to_thread(self._write, key, data)
        except FileExistsError as exc:
            raise PersistError(f"Storage object already exists: {key}") from exc
        except OSError as exc:
            raise PersistError(f"Failed to store {key}: {exc}") from exc
        logger.info("[storage] stored %s (%d bytes)", key, len(data))
        return f"{self.public_base_url}/{key}"


class S3MediaStorage(MediaStorage):
    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None,
        access_key: str | None,
        secret_key: str | None,
        region: str = "auto",
        public_base_url: str | None = None,
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        config = Config(
            region_name=region,
            retries={"max_attempts": 3, "mode": "adaptive"},
        )
        self.s3_client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=config,
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000",
            )
        except (BotoCoreError, ClientError) as exc:
            raise PersistError(f"Failed to upload {key} to bucket {self.bucket}: {exc}") from exc
        logger.info("[storage] uploaded s3://%s/%s (%d bytes)", self.bucket, key, len(data))
        return self.public_url(key)


def build_media_storage(settings: Settings) -> MediaStorage:
    if settings.storage_backend == "s3":
        return S3MediaStorage(
            settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            region=settings.s3_region,
            public_base_url=settings.s3_public_base_url,
        )
    return LocalMediaStorage(settings.media_dir, settings.media_public_base_url)


async def download_media(http: httpx.AsyncClient, url: str) -> tuple[bytes, str | None]:
    """GET a media URL and return (bytes, content type)."""
    try:
        resp = await http.get(url, follow_redirects=True)
    except httpx.HTTPError as exc:
        raise UpstreamFetchError(f"Download failed for {url}: {exc}") from exc
    if resp.status_code >= 400:
        raise UpstreamFetchError(f"Failed to download media: {resp.status_code}")
    content_type = resp.headers.get("content-type")
    if content_type:
        content_type = content_type.split(";")[0].strip() or None
    return resp.content, content_type
