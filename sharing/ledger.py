# sharing/ledger.py
"""Serialized read-modify-write of session metadata.

Every chunk arrival updates the session record under that session's lock.
The chunk that brings the count to ``total_chunks`` flips the status to
``assembling`` inside the same critical section; later callers see that
status and cannot trigger assembly again. The assembly itself runs after the
lock is released, and its outcome is written back under the lock.
"""
import logging
from pathlib import Path
from typing import Callable, Optional

from utils import now_ms

from .assembly import AssemblyEngine
from .errors import AssemblyError, ShareError, StaleSessionError, StorageError
from .locks import SessionLocks
from .models import ChunkReceipt, ChunkUpload, UploadMetadata, UploadStatus
from .storage import ArtifactStore, ChunkStore

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = (
    ("file_name", "fileName"),
    ("original_file_size", "originalFileSize"),
    ("total_chunks", "totalChunks"),
    ("is_protected", "isProtected"),
)


class MetadataLedger:
    def __init__(
        self,
        chunks: ChunkStore,
        artifacts: ArtifactStore,
        engine: AssemblyEngine,
        locks: SessionLocks,
        clock: Callable[[], int] = now_ms,
    ):
        self.chunks = chunks
        self.artifacts = artifacts
        self.engine = engine
        self.locks = locks
        self.clock = clock

    def record_chunk(
        self,
        chunk: ChunkUpload,
        staged: Optional[Path] = None,
        credential_digest: Optional[Callable[[], str]] = None,
    ) -> ChunkReceipt:
        """Count a stored chunk and assemble the upload when it is the last one.

        ``staged`` is the chunk as written by :meth:`ChunkStore.stage_chunk`;
        it is renamed into place only once this session accepts it, so a
        rejected or duplicate delivery never replaces recorded bytes.
        ``credential_digest`` is called only for a chunk that creates the
        session, before the lock is taken.
        """
        file_id, index = chunk.file_id, chunk.chunk_index
        digest = None
        if chunk.is_protected and credential_digest and not self.chunks.meta_path(file_id).exists():
            # hashed before locking; only the chunk that creates the session needs it
            digest = credential_digest()
        try:
            with self.locks.hold(file_id):
                now = self.clock()
                meta = self.chunks.read_metadata(file_id)
                created = meta is None
                if created:
                    if self.artifacts.exists(file_id):
                        raise StaleSessionError(
                            f"Upload {file_id} is already completed", file_id=file_id, chunk_index=index
                        )
                    if digest is None and chunk.is_protected and credential_digest:
                        digest = credential_digest()
                    meta = UploadMetadata.new(
                        chunk, now, credential_digest=digest, temp_dir=str(self.chunks.session_dir(file_id))
                    )
                else:
                    self._check_same_session(meta, chunk)

                if staged is not None and not meta.has_chunk(index):
                    self.chunks.commit_chunk(file_id, index, staged)
                    staged = None
                if not self.chunks.has_chunk(file_id, index):
                    raise StaleSessionError(
                        f"Chunk {index} of {file_id} vanished before it was recorded",
                        file_id=file_id,
                        chunk_index=index,
                    )

                duplicate = not meta.mark_received(index)
                meta.updated_at = now
                trigger = meta.is_complete and meta.status is UploadStatus.PENDING
                if trigger:
                    meta.transition(UploadStatus.ASSEMBLING)
                if not duplicate or trigger:
                    self.chunks.write_metadata(meta)
        finally:
            if staged is not None:
                self.chunks.discard(staged)

        if created:
            logger.info("session %s created: %s, %d chunks", file_id, meta.file_name, meta.total_chunks)
        if duplicate:
            logger.info("duplicate chunk %s/%d ignored", file_id, index)
        else:
            logger.debug("chunk %s/%d accepted (%d/%d)", file_id, index, meta.received_chunks, meta.total_chunks)

        receipt = ChunkReceipt(
            file_id=file_id,
            chunk_index=index,
            received=meta.received_chunks,
            total=meta.total_chunks,
            status=meta.status,
            duplicate=duplicate,
            created=created,
        )
        if not trigger:
            return receipt

        meta = self._assemble(meta)
        receipt.status = meta.status
        receipt.completed = True
        return receipt

    def _check_same_session(self, meta: UploadMetadata, chunk: ChunkUpload) -> None:
        if meta.status is not UploadStatus.PENDING:
            raise StaleSessionError(
                f"Upload {meta.file_id} is {meta.status.value}, not accepting chunks",
                file_id=meta.file_id,
                chunk_index=chunk.chunk_index,
            )
        for attr, label in _IMMUTABLE_FIELDS:
            if getattr(meta, attr) != getattr(chunk, attr):
                raise StaleSessionError(
                    f"Chunk {chunk.chunk_index} declares {label}={getattr(chunk, attr)!r}, "
                    f"session {meta.file_id} has {getattr(meta, attr)!r}",
                    file_id=meta.file_id,
                    chunk_index=chunk.chunk_index,
                )

    def _assemble(self, meta: UploadMetadata) -> UploadMetadata:
        file_id = meta.file_id
        try:
            final_path = self.engine.assemble(meta)
        except Exception as e:
            logger.exception("assembly of %s failed", file_id)
            self._mark_failed(file_id, str(e))
            if isinstance(e, ShareError):
                raise
            raise AssemblyError(f"Assembly of {file_id} failed: {e}", file_id=file_id) from e

        with self.locks.hold(file_id):
            meta = self.chunks.read_metadata(file_id) or meta
            done = UploadMetadata.from_dict(meta.to_dict())
            done.transition(UploadStatus.COMPLETED)
            done.final_dir = str(self.artifacts.session_dir(file_id))
            done.final_path = str(final_path)
            done.completed_at = done.updated_at = self.clock()
            try:
                self.artifacts.write_metadata(done)
            except StorageError as e:
                self.artifacts.remove(file_id)
                self._write_failed(meta, str(e))
                raise AssemblyError(f"Could not persist final metadata for {file_id}", file_id=file_id) from e
            self.chunks.write_metadata(done)
            meta = done

        self.chunks.purge(file_id)
        logger.info("upload %s completed", file_id)
        return meta

    def _mark_failed(self, file_id: str, reason: str) -> None:
        with self.locks.hold(file_id):
            meta = self.chunks.read_metadata(file_id)
            if meta is None:
                logger.error("cannot mark %s failed: metadata is gone", file_id)
                return
            self._write_failed(meta, reason)

    def _write_failed(self, meta: UploadMetadata, reason: str) -> None:
        meta.transition(UploadStatus.FAILED)
        meta.error = reason
        meta.updated_at = self.clock()
        self.chunks.write_metadata(meta)

    def lookup(self, file_id: str) -> Optional[UploadMetadata]:
        """Completed record if any, else the in-progress one."""
        return self.artifacts.read_metadata(file_id) or self.chunks.read_metadata(file_id)
