"""
JSON error rendering for the API.

Service errors carry their own status code; anything unexpected is rolled
back, logged and reported as a 500 without internal detail.
"""
import logging
from flask import jsonify
from werkzeug.exceptions import HTTPException
from app import db
from services.exceptions import ServiceError

logger = logging.getLogger(__name__)


def register_error_handlers(app):

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            logger.error(f"Service error: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'success': False, 'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        logger.exception(f"Unhandled error: {str(error)}")
        return jsonify({'success': False, 'error': 'Internal server error'}), 500
