# sharing/assembly.py
import logging
import os
import time
from pathlib import Path

from .errors import AssemblyError, ShareError
from .models import UploadMetadata
from .storage import ArtifactStore, ChunkStore

logger = logging.getLogger(__name__)


class AssemblyEngine:
    """Concatenate a session's chunks, in index order, into its final artifact.

    Bytes are streamed into ``<artifact>.assembling`` and renamed into place
    only once every chunk was copied and the byte count matches the declared
    size, so the final path never holds a truncated file.
    """

    def __init__(self, chunks: ChunkStore, artifacts: ArtifactStore):
        self.chunks = chunks
        self.artifacts = artifacts

    def assemble(self, meta: UploadMetadata) -> Path:
        file_id = meta.file_id
        final_dir = self.artifacts.session_dir(file_id)
        created_dir = not final_dir.exists()
        final_dir.mkdir(parents=True, exist_ok=True)
        final_path = self.artifacts.artifact_path(file_id, meta.file_name)
        tmp_path = final_path.with_name(final_path.name + ".assembling")

        logger.info("assembling %s (%d chunks) -> %s", file_id, meta.total_chunks, final_path)
        started = time.time()
        written = 0
        try:
            with open(tmp_path, "wb") as out:
                for i in range(meta.total_chunks):
                    for buf in self.chunks.get_chunk(file_id, i):
                        out.write(buf)
                        written += len(buf)
                out.flush()
                os.fsync(out.fileno())
            if written != meta.original_file_size:
                raise AssemblyError(
                    f"Assembled size {written} does not match declared size {meta.original_file_size}",
                    file_id=file_id,
                )
            os.replace(tmp_path, final_path)
        except ShareError:
            self._discard(tmp_path, final_dir if created_dir else None)
            raise
        except OSError as e:
            self._discard(tmp_path, final_dir if created_dir else None)
            raise AssemblyError(f"I/O failure while assembling {file_id}: {e}", file_id=file_id) from e

        logger.info(
            "assembled %s: %d bytes in %.3fs", file_id, written, max(0.0, time.time() - started)
        )
        return final_path

    def _discard(self, tmp_path: Path, final_dir) -> None:
        tmp_path.unlink(missing_ok=True)
        if final_dir is not None:
            self.artifacts.remove(final_dir.name)
