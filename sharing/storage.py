# sharing/storage.py
"""On-disk layout for sessions.

Temp side (one directory per upload)::

    TEMP_DIR/<fileId>/meta.json
    TEMP_DIR/<fileId>/chunk-00000000

Final side (one directory per completed upload)::

    UPLOAD_DIR/<fileId>/meta.json
    UPLOAD_DIR/<fileId>/<sanitized file name>
"""
import json
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Iterator, Optional

from utils import sanitize_filename

from .errors import AssemblyError, StaleSessionError, StorageError
from .models import UploadMetadata

logger = logging.getLogger(__name__)

META_NAME = "meta.json"
CHUNK_PREFIX = "chunk-"
READ_BLOCK = 1024 * 1024


def write_json_atomic(path: Path, data: dict) -> None:
    """Write JSON next to ``path`` then rename over it."""
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise StorageError(f"Could not write {path.name}: {e}") from e


def read_json(path: Path) -> Optional[dict]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        raise StorageError(f"Could not read {path}: {e}") from e


def remove_tree(path: Path) -> bool:
    """Recursive delete; False when there was nothing to delete."""
    try:
        shutil.rmtree(path)
        return True
    except FileNotFoundError:
        return False


class ChunkStore:
    """Per-session temporary chunk files plus the in-progress metadata record."""

    def __init__(self, root):
        self.root = Path(root)

    def session_dir(self, file_id: str) -> Path:
        return self.root / file_id

    def chunk_path(self, file_id: str, index: int) -> Path:
        return self.session_dir(file_id) / f"{CHUNK_PREFIX}{index:08d}"

    def meta_path(self, file_id: str) -> Path:
        return self.session_dir(file_id) / META_NAME

    def put_chunk(self, file_id: str, index: int, data: bytes) -> Path:
        """Store chunk bytes; a retransmission overwrites the same index."""
        return self.commit_chunk(file_id, index, self.stage_chunk(file_id, index, data))

    def stage_chunk(self, file_id: str, index: int, data: bytes) -> Path:
        """Write chunk bytes under a private name, invisible to assembly."""
        session_dir = self.session_dir(file_id)
        session_dir.mkdir(parents=True, exist_ok=True)
        staged = session_dir / f".{CHUNK_PREFIX}{index:08d}.{uuid.uuid4().hex}.part"
        try:
            with open(staged, "wb") as f:
                f.write(data)
        except FileNotFoundError as e:
            # the session directory was swept away under us
            raise StaleSessionError(
                f"Upload {file_id} is no longer active", file_id=file_id, chunk_index=index
            ) from e
        except OSError as e:
            staged.unlink(missing_ok=True)
            raise StorageError(f"Could not store chunk {index}: {e}", file_id=file_id, chunk_index=index) from e
        logger.debug("staged chunk %s/%s (%d bytes)", file_id, index, len(data))
        return staged

    def commit_chunk(self, file_id: str, index: int, staged: Path) -> Path:
        final = self.chunk_path(file_id, index)
        try:
            os.replace(staged, final)
        except FileNotFoundError as e:
            raise StaleSessionError(
                f"Upload {file_id} is no longer active", file_id=file_id, chunk_index=index
            ) from e
        except OSError as e:
            self.discard(staged)
            raise StorageError(f"Could not store chunk {index}: {e}", file_id=file_id, chunk_index=index) from e
        return final

    def discard(self, staged: Path) -> None:
        try:
            staged.unlink(missing_ok=True)
        except OSError:
            logger.warning("could not remove staged chunk %s", staged, exc_info=True)

    def has_chunk(self, file_id: str, index: int) -> bool:
        return self.chunk_path(file_id, index).is_file()

    def open_chunk(self, file_id: str, index: int):
        try:
            return open(self.chunk_path(file_id, index), "rb")
        except FileNotFoundError as e:
            raise AssemblyError(f"Chunk {index} of {file_id} is missing", file_id=file_id, chunk_index=index) from e

    def get_chunk(self, file_id: str, index: int) -> Iterator[bytes]:
        """Yield a chunk's bytes in blocks; missing chunks fail loudly."""
        with self.open_chunk(file_id, index) as f:
            while True:
                buf = f.read(READ_BLOCK)
                if not buf:
                    break
                yield buf

    def read_metadata(self, file_id: str) -> Optional[UploadMetadata]:
        data = read_json(self.meta_path(file_id))
        return UploadMetadata.from_dict(data) if data is not None else None

    def write_metadata(self, meta: UploadMetadata) -> None:
        session_dir = self.session_dir(meta.file_id)
        if not session_dir.is_dir():
            raise StaleSessionError(f"Upload {meta.file_id} is no longer active", file_id=meta.file_id)
        write_json_atomic(self.meta_path(meta.file_id), meta.to_dict())

    def purge(self, file_id: str) -> bool:
        removed = remove_tree(self.session_dir(file_id))
        if removed:
            logger.info("temporary files cleaned: %s", file_id)
        return removed

    def sessions(self) -> Iterator[Path]:
        if not self.root.is_dir():
            return iter(())
        return (p for p in sorted(self.root.iterdir()) if p.is_dir())


class ArtifactStore:
    """Final-side directories holding one assembled artifact and its metadata."""

    def __init__(self, root):
        self.root = Path(root)

    def session_dir(self, file_id: str) -> Path:
        return self.root / file_id

    def meta_path(self, file_id: str) -> Path:
        return self.session_dir(file_id) / META_NAME

    def artifact_path(self, file_id: str, file_name: str) -> Path:
        name = sanitize_filename(file_name)
        if name == META_NAME:
            name = f"file-{name}"
        return self.session_dir(file_id) / name

    def exists(self, file_id: str) -> bool:
        return self.session_dir(file_id).exists()

    def read_metadata(self, file_id: str) -> Optional[UploadMetadata]:
        data = read_json(self.meta_path(file_id))
        return UploadMetadata.from_dict(data) if data is not None else None

    def write_metadata(self, meta: UploadMetadata) -> None:
        write_json_atomic(self.meta_path(meta.file_id), meta.to_dict())

    def remove(self, file_id: str) -> bool:
        return remove_tree(self.session_dir(file_id))

    def sessions(self) -> Iterator[Path]:
        if not self.root.is_dir():
            return iter(())
        return (p for p in sorted(self.root.iterdir()) if p.is_dir())
