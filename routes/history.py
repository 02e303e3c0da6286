# routes/history.py
from flask import Blueprint, jsonify, request

from .common import get_service

bp = Blueprint("history", __name__)

MAX_HISTORY = 100


@bp.get("/api/history")
def get_history():
    """Return the most recent uploads from the history index."""
    limit = request.args.get("limit", default=20, type=int)
    limit = max(1, min(limit, MAX_HISTORY))
    return jsonify(uploads=get_service().recent_uploads(limit))
