"""
N4Y Backend Service - Web Interface v1.0.0
Demo backend for the N4Y LOGOS task marketplace.
+ Local task ledger (JSON file) with a background poller
+ AI completion → IPFS pinning pipeline
+ Pinata connectivity probe

Run:
    python backend_web.py
"""

import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from api_tasks import tasks_bp
from service_config import Settings, configure_logging, startup_warnings
from service_context import build_context
from task_poller import LedgerPoller

logger = logging.getLogger(__name__)


def create_app(context=None):
    """Build the Flask app around a service context (built from env when omitted)."""
    context = context or build_context()
    settings = context.settings

    app = Flask(__name__)
    app.extensions["n4y"] = context

    CORS(app, origins=settings.cors_origins)

    # =========================================================================
    # RATE LIMITING (Flask-Limiter)
    # =========================================================================
    limiter = Limiter(
        key_func=get_remote_address,
        app=app,
        default_limits=["1000 per hour", "100 per minute"],
        storage_uri=settings.limiter_storage_uri,
        strategy="fixed-window",
        headers_enabled=True,
    )
    # Task creation runs a paid completion call synchronously
    limiter.limit(settings.tasks_rate_limit, methods=["POST"])(tasks_bp)
    app.register_blueprint(tasks_bp)

    @app.errorhandler(429)
    def ratelimit_handler(e):
        logger.warning("rate limit exceeded | ip=%s path=%s", request.remote_addr, request.path)
        return jsonify({
            "error": "Rate limit exceeded",
            "message": "Too many requests. Please slow down and try again later.",
            "retry_after": getattr(e, "description", "60 seconds"),
        }), 429

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "message": f"No route for {request.path}"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": f"{request.method} {request.path}"}), 405

    @app.errorhandler(500)
    def internal_error(e):
        logger.error("unhandled error | path=%s error=%s", request.path, e)
        return jsonify({"error": "Internal server error", "message": str(getattr(e, "original_exception", e))}), 500

    return app


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    for warning in startup_warnings(settings):
        logger.warning(warning)

    context = build_context(settings)
    app = create_app(context)

    poller = LedgerPoller(context.ledger, context.pipeline, interval=settings.poll_interval_seconds)
    poller.start()

    logger.info("N4Y Backend Service running on port %d", settings.port)
    logger.info("Health check: http://localhost:%d/health", settings.port)
    try:
        app.run(host='0.0.0.0', port=settings.port, debug=False)
    finally:
        logger.info("shutting down poller")
        poller.stop(timeout=30)


if __name__ == '__main__':
    main()
