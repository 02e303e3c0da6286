# utils.py
import random
import re
import time
import uuid
from datetime import datetime, timezone
from werkzeug.utils import secure_filename

FILE_ID_RE = re.compile(r"^\d{8}$")


def sanitize_filename(name: str) -> str:
    """Wrap secure_filename and ensure non-empty, bounded length result."""
    base = secure_filename(name or "")
    return base[:255] if base else f"upload-{uuid.uuid4().hex}"


def now_iso() -> str:
    """UTC ISO timestamp with millisecond precision and trailing Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_iso(value: int) -> str:
    return datetime.fromtimestamp(value / 1000, timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def file_id_checksum(digits: str) -> int:
    """Checksum digit for the first seven digits of a file id."""
    return sum(int(d) for d in digits) % 10


def is_valid_file_id(file_id) -> bool:
    """8 digits, the last being the sum of the first seven mod 10."""
    if not isinstance(file_id, str) or not FILE_ID_RE.match(file_id):
        return False
    return file_id_checksum(file_id[:7]) == int(file_id[7])


def generate_file_id(rng=None) -> str:
    rng = rng or random.SystemRandom()
    head = "".join(str(rng.randrange(10)) for _ in range(7))
    return head + str(file_id_checksum(head))
