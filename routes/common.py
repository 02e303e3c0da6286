# routes/common.py
import logging
import unicodedata
from urllib.parse import quote

from flask import current_app, jsonify, request

from sharing.errors import ShareError, StorageError, ValidationError

logger = logging.getLogger(__name__)

UPLOAD_ENDPOINT = "upload.upload_chunk"


def get_service():
    return current_app.extensions["sharing"]


def form_int(name: str, source=None) -> int:
    source = request.form if source is None else source
    raw = source.get(name)
    if raw is None or raw == "":
        raise ValidationError(f"Missing field: {name}")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Field {name} must be an integer") from None


def form_str(name: str, required: bool = True, source=None):
    source = request.form if source is None else source
    value = source.get(name)
    if required and not value:
        raise ValidationError(f"Missing field: {name}")
    return value


def form_bool(name: str, source=None) -> bool:
    source = request.form if source is None else source
    return str(source.get(name, "")).strip().lower() in ("1", "true", "yes", "on")


def content_disposition(file_name: str) -> str:
    """attachment header with an ASCII fallback plus the RFC 5987 UTF-8 name."""
    ascii_name = unicodedata.normalize("NFKD", file_name).encode("ascii", "ignore").decode("ascii")
    ascii_name = ascii_name.replace("\\", "_").replace('"', "_").strip() or "download"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(file_name, safe='')}"


def handle_share_error(err: ShareError):
    key = "accepted" if request.endpoint == UPLOAD_ENDPOINT else "success"
    payload = {key: False}
    payload.update(err.to_dict())
    if err.status >= 500:
        logger.error("%s %s failed: %s", request.method, request.path, err.message)
    resp = jsonify(payload)
    resp.status_code = err.status
    retry_after = getattr(err, "retry_after", None)
    if retry_after:
        resp.headers["Retry-After"] = str(retry_after)
    return resp


def handle_os_error(err: OSError):
    logger.exception("storage failure on %s %s", request.method, request.path)
    return handle_share_error(StorageError(f"Storage failure: {err.strerror or err}"))
