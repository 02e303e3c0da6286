# sharing/integrity.py
import hashlib
import hmac
import re

from .errors import IntegrityError, ValidationError

_HEX_DIGEST = re.compile(r"[0-9a-f]{64}")


class IntegrityVerifier:
    """SHA-256 check of chunk bytes against the client-declared digest."""

    algorithm = "sha256"

    def digest(self, data: bytes) -> str:
        return hashlib.new(self.algorithm, data).hexdigest()

    def verify(self, data: bytes, declared: str, file_id: str = None, chunk_index: int = None) -> str:
        if not declared:
            raise ValidationError(
                f"Chunk {chunk_index} is missing its digest",
                file_id=file_id,
                chunk_index=chunk_index,
            )
        declared = declared.strip().lower()
        if not _HEX_DIGEST.fullmatch(declared):
            raise ValidationError(
                f"Chunk {chunk_index} digest must be 64 hex characters",
                file_id=file_id,
                chunk_index=chunk_index,
            )
        calc = self.digest(data)
        if not hmac.compare_digest(calc.encode("ascii"), declared.encode("ascii")):
            raise IntegrityError(
                f"Chunk {chunk_index} digest mismatch: expected {declared}, got {calc}",
                file_id=file_id,
                chunk_index=chunk_index,
            )
        return calc
