# sharing/__init__.py
from .assembly import AssemblyEngine
from .credentials import CredentialCheck
from .errors import (
    AssemblyError,
    AuthRequiredError,
    ConcurrencyBusyError,
    ExpiredError,
    IntegrityError,
    InvalidCredentialError,
    NotFoundError,
    ShareError,
    StaleSessionError,
    StorageError,
    ValidationError,
)
from .gate import DownloadGate, DownloadHandle
from .integrity import IntegrityVerifier
from .ledger import MetadataLedger
from .locks import FileSessionLocks, MemorySessionLocks, SessionLocks, build_locks
from .models import ChunkReceipt, ChunkUpload, SweepReport, UploadMetadata, UploadStatus
from .retention import CleanupScheduler, RetentionManager
from .service import FileShareService
from .storage import ArtifactStore, ChunkStore

__all__ = [
    "ArtifactStore",
    "AssemblyEngine",
    "AssemblyError",
    "AuthRequiredError",
    "ChunkReceipt",
    "ChunkStore",
    "ChunkUpload",
    "CleanupScheduler",
    "ConcurrencyBusyError",
    "CredentialCheck",
    "DownloadGate",
    "DownloadHandle",
    "ExpiredError",
    "FileSessionLocks",
    "FileShareService",
    "IntegrityError",
    "IntegrityVerifier",
    "InvalidCredentialError",
    "MemorySessionLocks",
    "MetadataLedger",
    "NotFoundError",
    "RetentionManager",
    "SessionLocks",
    "ShareError",
    "StaleSessionError",
    "StorageError",
    "SweepReport",
    "UploadMetadata",
    "UploadStatus",
    "ValidationError",
    "build_locks",
]
