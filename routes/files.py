# routes/files.py
from flask import Blueprint, Response, jsonify, request

from .common import content_disposition, get_service

bp = Blueprint("files", __name__)


def _credential_arg():
    return request.args.get("credential") or request.args.get("password")


@bp.get("/api/files/<file_id>")
def file_info(file_id: str):
    info = get_service().file_info(file_id)
    return jsonify(success=True, **info)


@bp.post("/api/files/<file_id>/verify")
def verify(file_id: str):
    """Credential probe: checks access without sending any bytes."""
    data = request.get_json(silent=True) or {}
    credential = data.get("credential") or data.get("password")
    return jsonify(get_service().verify_access(file_id, credential))


@bp.get("/api/download/<file_id>")
def download(file_id: str):
    handle = get_service().open_download(file_id, _credential_arg())
    resp = Response(handle.iter_bytes(), mimetype="application/octet-stream", direct_passthrough=True)
    resp.headers["Content-Length"] = str(handle.size)
    resp.headers["Content-Disposition"] = content_disposition(handle.file_name)
    resp.headers["Cache-Control"] = "no-store"
    return resp
