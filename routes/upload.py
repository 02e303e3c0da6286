# routes/upload.py
from flask import Blueprint, current_app, jsonify, request, url_for

from sharing.errors import ValidationError
from sharing.models import ChunkUpload

from .common import form_bool, form_int, form_str, get_service

bp = Blueprint("upload", __name__)


@bp.get("/health")
def health():
    return jsonify(status="healthy", title=current_app.config["APP_TITLE"])


@bp.post("/api/upload")
def upload_chunk():
    part = request.files.get("chunk")
    if part is None:
        raise ValidationError("Missing chunk data")

    chunk = ChunkUpload(
        file_id=form_str("fileId"),
        file_name=form_str("fileName"),
        original_file_size=form_int("originalFileSize"),
        total_chunks=form_int("totalChunks"),
        chunk_index=form_int("chunkIndex"),
        duration=form_int("duration"),
        data=part.read(),
        chunk_digest=form_str("chunkDigest", required=False) or "",
        is_protected=form_bool("isProtected"),
        credential=form_str("credential", required=False),
    )
    receipt = get_service().receive_chunk(chunk)

    payload = receipt.to_dict()
    if receipt.completed:
        payload["message"] = "All chunks received and file merged"
        payload["downloadUrl"] = url_for("files.download", file_id=receipt.file_id)
    else:
        payload["message"] = f"Chunk {receipt.chunk_index + 1}/{receipt.total} uploaded."
    return jsonify(payload)
