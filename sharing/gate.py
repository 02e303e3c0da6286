# sharing/gate.py
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from utils import now_ms

from .credentials import CredentialCheck
from .errors import AuthRequiredError, ExpiredError, InvalidCredentialError, NotFoundError, StorageError
from .models import UploadMetadata, UploadStatus
from .storage import READ_BLOCK, ArtifactStore

logger = logging.getLogger(__name__)


@dataclass
class DownloadHandle:
    meta: UploadMetadata
    path: Path
    size: int

    @property
    def file_name(self) -> str:
        return self.meta.file_name

    def iter_bytes(self, block_size: int = READ_BLOCK) -> Iterator[bytes]:
        """Stream the artifact; a client hanging up mid-stream is not an error."""
        sent = 0
        f = open(self.path, "rb")
        try:
            while True:
                buf = f.read(block_size)
                if not buf:
                    break
                sent += len(buf)
                yield buf
        except GeneratorExit:
            logger.info("download of %s aborted by client after %d/%d bytes", self.meta.file_id, sent, self.size)
            raise
        finally:
            f.close()


class DownloadGate:
    """Existence, expiry and credential checks in front of every artifact read."""

    def __init__(self, artifacts: ArtifactStore, credentials: CredentialCheck, clock: Callable[[], int] = now_ms):
        self.artifacts = artifacts
        self.credentials = credentials
        self.clock = clock

    def authorize(self, file_id: str, credential: Optional[str] = None) -> UploadMetadata:
        meta = self.artifacts.read_metadata(file_id)
        if meta is None or meta.status is not UploadStatus.COMPLETED:
            raise NotFoundError(f"File {file_id} not found", file_id=file_id)
        if meta.is_expired(self.clock()):
            raise ExpiredError(f"File {file_id} has expired", file_id=file_id)
        if meta.is_protected:
            if not credential:
                raise AuthRequiredError(f"File {file_id} requires a password", file_id=file_id, is_protected=True)
            if not self.credentials.verify(credential, meta.credential_digest):
                raise InvalidCredentialError(f"Invalid password for {file_id}", file_id=file_id, is_protected=True)
        return meta

    def open_download(self, file_id: str, credential: Optional[str] = None) -> DownloadHandle:
        meta = self.authorize(file_id, credential)
        if meta.final_path:
            path = self.artifacts.session_dir(file_id) / Path(meta.final_path).name
        else:
            path = self.artifacts.artifact_path(file_id, meta.file_name)
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            raise NotFoundError(f"File {file_id} not found", file_id=file_id) from None
        except OSError as e:
            raise StorageError(f"Could not read {file_id}: {e}", file_id=file_id) from e
        logger.info("download of %s started (%d bytes)", file_id, size)
        return DownloadHandle(meta=meta, path=path, size=size)
