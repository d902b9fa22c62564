"""Durable object storage backends for uploaded audio."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, Protocol

import boto3
from fastapi.concurrency import run_in_threadpool

from docnote.metrics.observability import get_logger


class ObjectStorage(Protocol):
    """Protocol for durable audio storage."""

    async def put(self, source: Path, destination: str, content_type: str) -> str:
        """Store the file at ``source`` under ``destination`` and return its URL."""


class LocalObjectStorage:
    """Stores objects under a local directory, served from ``base_url``."""

    def __init__(self, root: str | Path, base_url: str) -> None:
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")
        self._logger = get_logger("storage")

    @property
    def root(self) -> Path:
        return self._root

    async def put(self, source: Path, destination: str, content_type: str) -> str:
        target = self._resolve(destination)
        await run_in_threadpool(self._copy, source, target)
        self._logger.info("storage.put", destination=destination, content_type=content_type)
        return f"{self._base_url}/{destination}"

    def _resolve(self, destination: str) -> Path:
        root = self._root.resolve()
        target = (root / destination).resolve()
        if root not in target.parents:
            raise ValueError(f"Invalid storage destination: {destination}")
        return target

    @staticmethod
    def _copy(source: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)


class S3ObjectStorage:
    """S3-compatible storage (AWS S3, MinIO) via boto3."""

    def __init__(
        self,
        bucket: str,
        *,
        client: Any | None = None,
        endpoint_url: str | None = None,
        region: str | None = None,
        public_base_url: str | None = None,
    ) -> None:
        self._bucket = bucket
        self._client = client or boto3.client("s3", endpoint_url=endpoint_url, region_name=region)
        if public_base_url:
            self._base_url = public_base_url.rstrip("/")
        elif endpoint_url:
            self._base_url = f"{endpoint_url.rstrip('/')}/{bucket}"
        else:
            self._base_url = f"https://{bucket}.s3.amazonaws.com"
        self._logger = get_logger("storage")

    async def put(self, source: Path, destination: str, content_type: str) -> str:
        await run_in_threadpool(
            self._client.upload_file,
            str(source),
            self._bucket,
            destination,
            ExtraArgs={"ContentType": content_type},
        )
        self._logger.info("storage.put", bucket=self._bucket, destination=destination, content_type=content_type)
        return f"{self._base_url}/{destination}"


__all__ = ["LocalObjectStorage", "ObjectStorage", "S3ObjectStorage"]
