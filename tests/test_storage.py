from __future__ import annotations

from pathlib import Path

import pytest

from sharing import ArtifactStore, AssemblyError, ChunkStore, StorageError, UploadMetadata

FILE_ID = "12345678"


def _meta() -> UploadMetadata:
    return UploadMetadata(
        file_id=FILE_ID,
        file_name="a.bin",
        original_file_size=6,
        total_chunks=2,
        duration=1,
        created_at=1000,
        expires_at=1000 + 3_600_000,
    )


def test_put_and_get_chunk(tmp_path: Path) -> None:
    store = ChunkStore(tmp_path)
    store.put_chunk(FILE_ID, 0, b"abc")
    assert store.has_chunk(FILE_ID, 0)
    assert b"".join(store.get_chunk(FILE_ID, 0)) == b"abc"


def test_retransmission_overwrites(tmp_path: Path) -> None:
    store = ChunkStore(tmp_path)
    store.put_chunk(FILE_ID, 1, b"old")
    store.put_chunk(FILE_ID, 1, b"new")
    assert b"".join(store.get_chunk(FILE_ID, 1)) == b"new"
    # no leftover temp names
    assert sorted(p.name for p in store.session_dir(FILE_ID).iterdir()) == ["chunk-00000001"]


def test_missing_chunk_fails_loudly(tmp_path: Path) -> None:
    store = ChunkStore(tmp_path)
    store.put_chunk(FILE_ID, 0, b"abc")
    with pytest.raises(AssemblyError) as exc:
        list(store.get_chunk(FILE_ID, 1))
    assert exc.value.details["chunk_index"] == 1


def test_purge_is_idempotent(tmp_path: Path) -> None:
    store = ChunkStore(tmp_path)
    store.put_chunk(FILE_ID, 0, b"abc")
    assert store.purge(FILE_ID) is True
    assert store.purge(FILE_ID) is False
    assert not store.session_dir(FILE_ID).exists()


def test_metadata_round_trip(tmp_path: Path) -> None:
    store = ChunkStore(tmp_path)
    store.session_dir(FILE_ID).mkdir(parents=True)
    meta = _meta()
    meta.mark_received(1)
    store.write_metadata(meta)
    loaded = store.read_metadata(FILE_ID)
    assert loaded == meta
    assert store.read_metadata("11111117") is None


def test_corrupt_metadata_raises_storage_error(tmp_path: Path) -> None:
    store = ChunkStore(tmp_path)
    store.session_dir(FILE_ID).mkdir(parents=True)
    store.meta_path(FILE_ID).write_text("{not json")
    with pytest.raises(StorageError):
        store.read_metadata(FILE_ID)


def test_artifact_path_is_sanitized(tmp_path: Path) -> None:
    artifacts = ArtifactStore(tmp_path)
    assert artifacts.artifact_path(FILE_ID, "../x/evil.sh").parent == tmp_path / FILE_ID
    assert artifacts.artifact_path(FILE_ID, "meta.json").name != "meta.json"
