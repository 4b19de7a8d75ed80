# FILE: ecorewards-backend/main.py

import logging
from flask import Flask, jsonify
from dotenv import load_dotenv
from pydantic import ValidationError

from exceptions import EcoRewardsError
from logging_config import setup_logging
from api.error_utils import domain_error_response

# Upper bound on a request body: a 100MB verification video plus form overhead.
MAX_CONTENT_LENGTH = 110 * 1024 * 1024


def create_app(services=None):
    """
    Builds the Flask app. Tests pass a ready `services` bundle; in production it is
    built from the environment (gunicorn 'main:create_app()').
    """
    # --- SETUP & CONFIG ---
    load_dotenv()
    setup_logging()

    if services is None:
        from dependencies import build_services
        from tasks import dispatch_post_award
        services = build_services(on_points_awarded=dispatch_post_award)

    app = Flask(__name__)
    app.config['SERVICES'] = services
    app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH

    # --- Import and Register Blueprints ---
    from api.auth import auth_bp
    from api.items import items_bp
    from api.gamification import gamification_bp
    from api.social import social_bp
    from api.status import status_bp

    app.register_blueprint(auth_bp, url_prefix='/')
    app.register_blueprint(items_bp, url_prefix='/items')
    app.register_blueprint(gamification_bp, url_prefix='/')
    app.register_blueprint(social_bp, url_prefix='/posts')
    app.register_blueprint(status_bp, url_prefix='/')

    # --- Global Error Handlers ---
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"error_code": "BAD_REQUEST", "details": e.errors(include_url=False, include_context=False)}), 400

    @app.errorhandler(EcoRewardsError)
    def handle_domain_error(e):
        return domain_error_response(e)

    @app.errorhandler(404)
    def resource_not_found(e):
        """Handles 404 Not Found errors for a clean API response."""
        return jsonify(error_code="NOT_FOUND", message="The requested resource was not found."), 404

    @app.errorhandler(413)
    def payload_too_large(e):
        return jsonify(error_code="VALIDATION_ERROR", message="The uploaded file is too large."), 413

    @app.errorhandler(500)
    def internal_server_error(e):
        """Handles unexpected 500 Internal Server Errors for a clean API response."""
        logging.critical(f"An unhandled exception occurred: {e}", exc_info=True)
        return jsonify(error_code="SERVER_ERROR", message="An unexpected error occurred on the server."), 500

    return app
