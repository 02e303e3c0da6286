# routes/cleanup.py
import hmac

from flask import Blueprint, current_app, jsonify, request

from .common import get_service

bp = Blueprint("cleanup", __name__)


def _authorized() -> bool:
    expected = current_app.config.get("CLEANUP_TOKEN")
    token = request.args.get("token") or request.headers.get("X-Cleanup-Token") or ""
    if not expected:
        return False
    return hmac.compare_digest(token.encode("utf-8"), str(expected).encode("utf-8"))


def _run(which: str):
    if not _authorized():
        return jsonify(success=False, error="unauthorized", message="Invalid cleanup token"), 401
    reports = get_service().cleanup(which)
    return jsonify(success=True, **{name: report.to_dict() for name, report in reports.items()})


@bp.route("/api/cleanup", methods=["GET", "POST"])
def cleanup_all():
    return _run("all")


@bp.route("/api/cleanup/expired", methods=["GET", "POST"])
def cleanup_expired():
    return _run("expired")


@bp.route("/api/cleanup/temp", methods=["GET", "POST"])
def cleanup_temp():
    return _run("temp")
