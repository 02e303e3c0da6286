# sharing/models.py
"""Session records and the value types passed between core components."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import List, Optional

SCHEMA_VERSION = 1


class UploadStatus(str, Enum):
    PENDING = "pending"
    ASSEMBLING = "assembling"
    COMPLETED = "completed"
    FAILED = "failed"


# forward-only lifecycle
_NEXT = {
    UploadStatus.PENDING: {UploadStatus.ASSEMBLING},
    UploadStatus.ASSEMBLING: {UploadStatus.COMPLETED, UploadStatus.FAILED},
    UploadStatus.COMPLETED: set(),
    UploadStatus.FAILED: set(),
}


@dataclass
class ChunkUpload:
    """One chunk request as handed over by the transport layer."""

    file_id: str
    file_name: str
    original_file_size: int
    total_chunks: int
    chunk_index: int
    duration: int
    data: bytes
    chunk_digest: str
    is_protected: bool = False
    credential: Optional[str] = None


@dataclass
class UploadMetadata:
    """Authoritative record of an in-progress or completed upload."""

    file_id: str
    file_name: str
    original_file_size: int
    total_chunks: int
    duration: int
    created_at: int
    expires_at: int
    received_chunks: int = 0
    received_indices: List[int] = field(default_factory=list)
    is_protected: bool = False
    credential_digest: Optional[str] = None
    status: UploadStatus = UploadStatus.PENDING
    temp_dir: Optional[str] = None
    final_dir: Optional[str] = None
    final_path: Optional[str] = None
    updated_at: Optional[int] = None
    completed_at: Optional[int] = None
    error: Optional[str] = None
    schema_version: int = SCHEMA_VERSION

    @classmethod
    def new(cls, chunk: ChunkUpload, now: int, credential_digest=None, temp_dir=None) -> "UploadMetadata":
        return cls(
            file_id=chunk.file_id,
            file_name=chunk.file_name,
            original_file_size=chunk.original_file_size,
            total_chunks=chunk.total_chunks,
            duration=chunk.duration,
            created_at=now,
            expires_at=now + chunk.duration * 60 * 60 * 1000,
            is_protected=chunk.is_protected,
            credential_digest=credential_digest,
            temp_dir=temp_dir,
            updated_at=now,
        )

    @property
    def is_complete(self) -> bool:
        return self.received_chunks >= self.total_chunks

    def is_expired(self, now: int) -> bool:
        return self.expires_at < now

    def has_chunk(self, index: int) -> bool:
        return index in self.received_indices

    def mark_received(self, index: int) -> bool:
        """Record a chunk index; False when it was already recorded."""
        if index in self.received_indices:
            return False
        if self.received_chunks >= self.total_chunks:
            raise ValueError(f"session {self.file_id} already holds {self.total_chunks} chunks")
        self.received_indices.append(index)
        self.received_indices.sort()
        self.received_chunks = len(self.received_indices)
        return True

    def transition(self, status: UploadStatus) -> None:
        if status not in _NEXT[self.status]:
            raise ValueError(f"illegal status change {self.status.value} -> {status.value}")
        self.status = status

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UploadMetadata":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known["status"] = UploadStatus(known.get("status", UploadStatus.PENDING.value))
        known["received_indices"] = sorted(int(i) for i in known.get("received_indices") or [])
        return cls(**known)

    def public_view(self) -> dict:
        """Fields safe to hand to clients; never the credential digest."""
        return {
            "fileId": self.file_id,
            "fileName": self.file_name,
            "fileSize": self.original_file_size,
            "totalChunks": self.total_chunks,
            "receivedChunks": self.received_chunks,
            "status": self.status.value,
            "duration": self.duration,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
            "isProtected": self.is_protected,
        }


@dataclass
class ChunkReceipt:
    file_id: str
    chunk_index: int
    received: int
    total: int
    status: UploadStatus
    duplicate: bool = False
    created: bool = False
    completed: bool = False

    @property
    def final_reference(self) -> Optional[str]:
        return self.file_id if self.completed else None

    def to_dict(self) -> dict:
        payload = {
            "accepted": True,
            "fileId": self.file_id,
            "chunkIndex": self.chunk_index,
            "received": self.received,
            "total": self.total,
            "status": self.status.value,
            "duplicate": self.duplicate,
        }
        if self.completed:
            payload["finalReference"] = self.final_reference
        return payload


@dataclass
class SweepReport:
    """Counts for one sweep; ``removed_ids`` feeds the history index."""

    name: str
    checked: int = 0
    removed: int = 0
    failed: int = 0
    removed_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"checked": self.checked, "removed": self.removed, "failed": self.failed}
