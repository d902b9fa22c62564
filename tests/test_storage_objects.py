from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from docnote.storage import LocalObjectStorage, S3ObjectStorage


class RecordingS3Client:
    def __init__(self) -> None:
        self.uploads: list[tuple[str, str, str, dict]] = []

    def upload_file(self, filename, bucket, key, ExtraArgs=None):  # noqa: N803 - boto3 signature
        self.uploads.append((Path(filename).read_bytes().decode(), bucket, key, ExtraArgs or {}))


def test_local_storage_copies_and_returns_url(tmp_path: Path) -> None:
    source = tmp_path / "merged.m4a"
    source.write_bytes(b"AABBCC")
    storage = LocalObjectStorage(tmp_path / "objects", "http://localhost:8000/files/")

    url = asyncio.run(storage.put(source, "audio/1700000000000-abcd1234.m4a", "audio/m4a"))

    assert url == "http://localhost:8000/files/audio/1700000000000-abcd1234.m4a"
    assert (tmp_path / "objects" / "audio" / "1700000000000-abcd1234.m4a").read_bytes() == b"AABBCC"
    assert source.exists()


def test_local_storage_rejects_escaping_destination(tmp_path: Path) -> None:
    source = tmp_path / "merged.m4a"
    source.write_bytes(b"x")
    storage = LocalObjectStorage(tmp_path / "objects", "http://localhost/files")

    with pytest.raises(ValueError):
        asyncio.run(storage.put(source, "../outside.m4a", "audio/m4a"))
    assert not (tmp_path / "outside.m4a").exists()


def test_s3_storage_uploads_with_content_type(tmp_path: Path) -> None:
    source = tmp_path / "merged.m4a"
    source.write_bytes(b"AABB")
    client = RecordingS3Client()
    storage = S3ObjectStorage("recordings", client=client, endpoint_url="http://minio:9000/")

    url = asyncio.run(storage.put(source, "audio/a.m4a", "audio/m4a"))

    assert client.uploads == [("AABB", "recordings", "audio/a.m4a", {"ContentType": "audio/m4a"})]
    assert url == "http://minio:9000/recordings/audio/a.m4a"


def test_s3_storage_prefers_public_base_url() -> None:
    storage = S3ObjectStorage("recordings", client=RecordingS3Client(), public_base_url="https://cdn.example.com/")
    default = S3ObjectStorage("recordings", client=RecordingS3Client())

    source = Path(__file__)
    assert asyncio.run(storage.put(source, "audio/a.m4a", "audio/m4a")) == "https://cdn.example.com/audio/a.m4a"
    assert asyncio.run(default.put(source, "audio/a.m4a", "audio/m4a")) == "https://recordings.s3.amazonaws.com/audio/a.m4a"
