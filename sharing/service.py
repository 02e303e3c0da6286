# sharing/service.py
"""Facade wiring the core components for the transport layer."""
import logging
from typing import Callable, Dict, Optional

from db import UploadHistory
from utils import is_valid_file_id, now_ms

from .assembly import AssemblyEngine
from .credentials import CredentialCheck
from .errors import AssemblyError, NotFoundError, ValidationError
from .gate import DownloadGate, DownloadHandle
from .integrity import IntegrityVerifier
from .ledger import MetadataLedger
from .locks import build_locks
from .models import ChunkReceipt, ChunkUpload, SweepReport
from .retention import RetentionManager
from .storage import ArtifactStore, ChunkStore

logger = logging.getLogger(__name__)

SWEEPS = ("expired", "temp")


class FileShareService:
    def __init__(
        self,
        chunks: ChunkStore,
        artifacts: ArtifactStore,
        ledger: MetadataLedger,
        retention: RetentionManager,
        gate: DownloadGate,
        credentials: CredentialCheck,
        verifier: IntegrityVerifier,
        history: Optional[UploadHistory] = None,
        max_file_size: int = 10 * 1024 * 1024 * 1024,
        chunk_size_max: int = 16 * 1024 * 1024,
        max_duration_hours: int = 24,
        clock: Callable[[], int] = now_ms,
    ):
        self.chunks = chunks
        self.artifacts = artifacts
        self.ledger = ledger
        self.retention = retention
        self.gate = gate
        self.credentials = credentials
        self.verifier = verifier
        self.history = history
        self.max_file_size = max_file_size
        self.chunk_size_max = chunk_size_max
        self.max_duration_hours = max_duration_hours
        self.clock = clock

    @classmethod
    def from_config(cls, config, clock: Callable[[], int] = None) -> "FileShareService":
        """Build the whole component graph from an app.config-like mapping."""
        clock = clock or config.get("CLOCK") or now_ms
        chunks = ChunkStore(config["TEMP_DIR"])
        artifacts = ArtifactStore(config["UPLOAD_DIR"])
        locks = build_locks(
            config["LOCK_BACKEND"],
            lock_dir=config["LOCK_DIR"],
            stale_seconds=config["LOCK_STALE_SECONDS"],
            max_attempts=config["LOCK_MAX_ATTEMPTS"],
            backoff_base=config["LOCK_BACKOFF_BASE"],
            backoff_max=config["LOCK_BACKOFF_MAX"],
        )
        credentials = CredentialCheck(length=config["CREDENTIAL_LENGTH"])
        engine = AssemblyEngine(chunks, artifacts)
        history = UploadHistory(config["DB_PATH"]) if config.get("DB_PATH") else None
        return cls(
            chunks=chunks,
            artifacts=artifacts,
            ledger=MetadataLedger(chunks, artifacts, engine, locks, clock=clock),
            retention=RetentionManager(
                chunks,
                artifacts,
                locks,
                temp_stale_hours=config["TEMP_STALE_HOURS"],
                orphan_grace_seconds=config["TEMP_ORPHAN_GRACE_SECONDS"],
                clock=clock,
            ),
            gate=DownloadGate(artifacts, credentials, clock=clock),
            credentials=credentials,
            verifier=IntegrityVerifier(),
            history=history,
            max_file_size=config["MAX_FILE_SIZE"],
            chunk_size_max=config["CHUNK_SIZE_MAX"],
            max_duration_hours=config["MAX_DURATION_HOURS"],
            clock=clock,
        )

    # upload path

    def validate_chunk(self, chunk: ChunkUpload) -> None:
        idx = chunk.chunk_index

        def fail(message):
            raise ValidationError(message, file_id=chunk.file_id, chunk_index=idx)

        if not is_valid_file_id(chunk.file_id):
            fail("Invalid file ID format")
        if not chunk.file_name or len(chunk.file_name) > 255:
            fail("File name must be 1-255 characters")
        if chunk.original_file_size <= 0 or chunk.original_file_size > self.max_file_size:
            fail(f"File size must be between 1 and {self.max_file_size} bytes")
        if chunk.total_chunks < 1 or chunk.total_chunks > chunk.original_file_size:
            fail("Invalid total chunk count")
        if idx < 0 or idx >= chunk.total_chunks:
            fail(f"Chunk index must be between 0 and {chunk.total_chunks - 1}")
        if chunk.duration < 1 or chunk.duration > self.max_duration_hours:
            fail(f"Duration must be between 1 and {self.max_duration_hours} hours")
        if not chunk.data:
            fail(f"Chunk {idx} is empty")
        if len(chunk.data) > self.chunk_size_max:
            fail(f"Chunk {idx} exceeds {self.chunk_size_max} bytes")
        if chunk.is_protected:
            try:
                self.credentials.validate(chunk.credential)
            except ValidationError as e:
                fail(e.message)

    def receive_chunk(self, chunk: ChunkUpload) -> ChunkReceipt:
        self.validate_chunk(chunk)
        self.verifier.verify(chunk.data, chunk.chunk_digest, file_id=chunk.file_id, chunk_index=chunk.chunk_index)
        staged = self.chunks.stage_chunk(chunk.file_id, chunk.chunk_index, chunk.data)
        try:
            receipt = self.ledger.record_chunk(
                chunk,
                staged=staged,
                credential_digest=lambda: self.credentials.digest(chunk.credential),
            )
        except AssemblyError:
            self._record_history(chunk.file_id)
            raise
        if receipt.created or receipt.completed:
            self._record_history(chunk.file_id)
        return receipt

    def _record_history(self, file_id: str) -> None:
        if self.history is None:
            return
        meta = self.ledger.lookup(file_id)
        if meta is not None:
            self.history.record(meta)

    # read path

    def file_info(self, file_id: str) -> dict:
        self._require_file_id(file_id)
        meta = self.ledger.lookup(file_id)
        if meta is None:
            raise NotFoundError(f"File {file_id} not found", file_id=file_id)
        info = meta.public_view()
        info["expired"] = meta.is_expired(self.clock())
        return info

    def verify_access(self, file_id: str, credential: Optional[str] = None) -> dict:
        self._require_file_id(file_id)
        meta = self.gate.authorize(file_id, credential)
        return {"success": True, "fileName": meta.file_name, "isProtected": meta.is_protected}

    def open_download(self, file_id: str, credential: Optional[str] = None) -> DownloadHandle:
        self._require_file_id(file_id)
        return self.gate.open_download(file_id, credential)

    def _require_file_id(self, file_id: str) -> None:
        if not is_valid_file_id(file_id):
            raise ValidationError("Invalid file ID", file_id=file_id)

    # maintenance

    def cleanup(self, which: str = "all") -> Dict[str, SweepReport]:
        if which == "all":
            reports = self.retention.sweep()
        elif which == "expired":
            reports = {"expired": self.retention.sweep_expired()}
        elif which == "temp":
            reports = {"temp": self.retention.sweep_temp()}
        else:
            raise ValidationError(f"Unknown sweep {which!r}, expected one of all, {', '.join(SWEEPS)}")
        if self.history is not None:
            if "expired" in reports:
                self.history.set_status(reports["expired"].removed_ids, "removed")
            if "temp" in reports:
                abandoned = [fid for fid in reports["temp"].removed_ids if not self.artifacts.exists(fid)]
                self.history.set_status(abandoned, "abandoned")
        return reports

    def recent_uploads(self, limit: int = 20) -> list:
        if self.history is None:
            return []
        return self.history.recent(limit)
