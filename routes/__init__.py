# routes/__init__.py
from sharing.errors import ShareError

from .cleanup import bp as cleanup_bp
from .common import handle_os_error, handle_share_error
from .files import bp as files_bp
from .history import bp as history_bp
from .upload import bp as upload_bp


def register_routes(app):
    app.register_blueprint(upload_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(cleanup_bp)
    app.register_blueprint(history_bp)
    app.register_error_handler(ShareError, handle_share_error)
    app.register_error_handler(OSError, handle_os_error)
