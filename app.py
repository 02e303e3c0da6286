# app.py
import logging
import os

from flask import Flask

import config
from routes import register_routes
from sharing import CleanupScheduler, FileShareService

logger = logging.getLogger(__name__)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.update(config.defaults())
    if overrides:
        app.config.update(overrides)
    # allow some multipart overhead beyond chunk max
    app.config.update(MAX_CONTENT_LENGTH=app.config["CHUNK_SIZE_MAX"] + 1024 * 1024)

    config.ensure_dirs(app.config["UPLOAD_DIR"], app.config["TEMP_DIR"])
    if app.config["LOCK_BACKEND"] == "file":
        config.ensure_dirs(app.config["LOCK_DIR"])

    app.extensions["sharing"] = FileShareService.from_config(app.config)
    register_routes(app)
    return app


def build_scheduler(app):
    """Periodic sweep driver; the caller owns start/stop."""
    service = app.extensions["sharing"]
    return CleanupScheduler(service.cleanup, app.config["CLEANUP_INTERVAL_SECONDS"])


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("filelock").setLevel(logging.INFO)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    app = create_app()
    scheduler = build_scheduler(app)
    scheduler.start()
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "5000"))
    logger.info("Starting %s on http://%s:%s", app.config["APP_TITLE"], host, port)
    try:
        app.run(host=host, port=port, threaded=True)
    finally:
        scheduler.stop(wait=False)
