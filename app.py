"""
CardLead Scanning API - Flask Application Entry Point.

Extracts normalized contact leads from business card photos, OCR text
and QR codes using AI vision providers with automatic fallback.
"""

import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import Config, get_config
from api.routes import api_bp

logger = logging.getLogger(__name__)

API_INFO = {
    "name": "CardLead Scanning API",
    "version": "1.0.0",
    "description": "Extract normalized contact leads from business cards and QR codes",
    "endpoints": {
        "health": "/api/health",
        "status": "/api/status",
        "scan_card": "POST /api/scan-card",
        "scan_qr": "POST /api/scan-qr",
        "compare": "POST /api/compare"
    }
}

# Messages for HTTP errors raised by Flask itself
HTTP_ERROR_MESSAGES = {
    404: "Not found",
    405: "Method not allowed",
}


def _error(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def register_error_handlers(app: Flask) -> None:
    """Attach JSON error handlers so no error leaks an HTML page or a traceback."""

    @app.errorhandler(413)
    def request_entity_too_large(error):
        limit_mb = Config.MAX_CONTENT_LENGTH // (1024 * 1024)
        return _error(f"Request too large. Maximum size: {limit_mb}MB", 413)

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        if error.code == 413:
            return request_entity_too_large(error)
        if error.code >= 500:
            logger.error(f"Internal error: {error}")
            return _error("Internal server error", error.code)
        return _error(HTTP_ERROR_MESSAGES.get(error.code, error.name), error.code)

    @app.errorhandler(Exception)
    def handle_exception(error):
        logger.error(f"Uncaught exception: {error}", exc_info=True)
        return _error("An unexpected error occurred", 500)


def create_app(config_name: str = None) -> Flask:
    """Application factory for creating Flask app.

    Args:
        config_name: Configuration name (development, production, testing)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    config_class = get_config(config_name)
    config_class.init_app(app)

    CORS(app, resources={
        r"/api/*": {
            "origins": "*",
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"]
        }
    })

    app.register_blueprint(api_bp)

    @app.route("/")
    @app.route("/api/info")
    def api_info():
        return jsonify(API_INFO)

    # Browsers ask for it on every page load
    @app.route("/favicon.ico")
    def favicon():
        return "", 204

    register_error_handlers(app)

    logger.info(f"Application created with config: {config_class.__name__}")
    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("CARD_API_DEBUG", "True").lower() == "true"

    logger.info(f"Starting CardLead API on port {port}, debug={debug}")
    app.run(host="0.0.0.0", port=port, debug=debug)
