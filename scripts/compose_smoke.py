#!/usr/bin/env python3
"""Smoke test against a running DocNote service: checks health, then a small chunked upload."""

from __future__ import annotations

import sys
import tempfile
import time
from pathlib import Path

import httpx

from docnote.client import APIError, DocNoteClient


def main() -> int:
    client = DocNoteClient()
    try:
        print("/healthz:", client.health())
        # Give the service a moment to finish boot
        time.sleep(0.5)
        print("/healthz/ready:", client.readiness())
        with tempfile.TemporaryDirectory() as tmp:
            sample = Path(tmp) / "smoke.wav"
            sample.write_bytes(b"RIFF" + bytes(range(256)) * 4)
            result = client.upload_in_chunks(sample, chunk_size=256)
            print("chunked upload:", result.recording_id, result.file.storage_url if result.file else "-")
            client.delete_recording(result.recording_id)
    except (APIError, httpx.HTTPError) as exc:
        print(f"Compose smoke failed: {exc}", file=sys.stderr)
        return 1
    finally:
        client.close()
    print("Compose smoke passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
