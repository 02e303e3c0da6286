from __future__ import annotations

import hashlib
import io
import time
from pathlib import Path
from typing import Callable

import pytest

from app import create_app
from sharing import ChunkUpload, FileShareService

FILE_ID = "12345678"  # digits 1..7 sum to 28 -> checksum 8
OTHER_FILE_ID = "11111117"

HOUR_MS = 60 * 60 * 1000


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: int | None = None) -> None:
        self.now = start if start is not None else int(time.time() * 1000)

    def __call__(self) -> int:
        return self.now

    def advance(self, hours: float = 0, ms: int = 0) -> None:
        self.now += int(hours * HOUR_MS) + ms


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def split(data: bytes, parts: int) -> list[bytes]:
    size = -(-len(data) // parts)
    return [data[i * size : (i + 1) * size] for i in range(parts)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path, clock: FakeClock) -> dict:
    return {
        "TESTING": True,
        "UPLOAD_DIR": tmp_path / "uploads",
        "TEMP_DIR": tmp_path / "temp_uploads",
        "LOCK_DIR": tmp_path / "locks",
        "DB_PATH": tmp_path / "db" / "history.db",
        "LOCK_BACKEND": "file",
        "LOCK_STALE_SECONDS": 30.0,
        "LOCK_MAX_ATTEMPTS": 200,
        "LOCK_BACKOFF_BASE": 0.001,
        "LOCK_BACKOFF_MAX": 0.02,
        "TEMP_STALE_HOURS": 24.0,
        "CLEANUP_TOKEN": "test-token",
        "CLOCK": clock,
    }


@pytest.fixture
def app(settings: dict):
    return create_app(settings)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app) -> FileShareService:
    return app.extensions["sharing"]


@pytest.fixture
def make_chunk() -> Callable[..., ChunkUpload]:
    """Build a ChunkUpload for one slice of ``chunks``."""

    def _make(chunks: list[bytes], index: int, file_id: str = FILE_ID, **overrides) -> ChunkUpload:
        fields = dict(
            file_id=file_id,
            file_name="report.pdf",
            original_file_size=sum(len(c) for c in chunks),
            total_chunks=len(chunks),
            chunk_index=index,
            duration=1,
            data=chunks[index],
            chunk_digest=sha256_hex(chunks[index]),
        )
        fields.update(overrides)
        return ChunkUpload(**fields)

    return _make


@pytest.fixture
def post_chunk(client):
    """POST one chunk to the upload endpoint as the browser form does."""

    def _post(chunks: list[bytes], index: int, file_id: str = FILE_ID, **overrides):
        form = {
            "fileId": file_id,
            "fileName": "report.pdf",
            "originalFileSize": str(sum(len(c) for c in chunks)),
            "totalChunks": str(len(chunks)),
            "chunkIndex": str(index),
            "duration": "1",
            "isProtected": "false",
            "chunkDigest": sha256_hex(chunks[index]),
        }
        form.update({k: v for k, v in overrides.items() if v is not None})
        form["chunk"] = (io.BytesIO(chunks[index]), "blob")
        return client.post("/api/upload", data=form, content_type="multipart/form-data")

    return _post
