"""
JSON error responses for the API.

Route handlers raise APIError for expected failures; everything else that
escapes a handler is logged and turned into a generic 500.
"""
import logging
import traceback
from flask import jsonify, current_app, request
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class APIError(Exception):
    """API exception carrying an HTTP status code and optional details."""

    def __init__(self, message, status_code=400, details=None, **extra):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details
        self.extra = extra

    def to_dict(self):
        error_dict = {'error': self.message}
        if self.details:
            error_dict['details'] = self.details
        error_dict.update(self.extra)
        return error_dict


class ValidationError(APIError):
    def __init__(self, details):
        super().__init__("Validation failed", status_code=400, details=details)


def configure_error_handlers(app):
    """Register the JSON error handlers on the Flask app."""

    @app.errorhandler(APIError)
    def handle_api_error(error):
        if error.status_code >= 500:
            logger.error(f"API Error: {error.message} [Status: {error.status_code}]")
        else:
            logger.info(f"API Error: {error.message} [Status: {error.status_code}]")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_handler(error):
        return jsonify({'error': 'Resource not found', 'path': request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'error': 'Method not allowed',
            'message': f"Method {request.method} is not allowed for this endpoint"
        }), 405

    @app.errorhandler(413)
    def payload_too_large(error):
        max_length = current_app.config.get('MAX_CONTENT_LENGTH') or 0
        return jsonify({
            'error': 'Payload too large',
            'message': f"Request exceeds the maximum size of {max_length // (1024 * 1024)}MB"
        }), 413

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        logger.info(f"HTTP Exception: {error.description} [Status: {error.code}]")
        return jsonify({'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_generic_exception(error):
        logger.error(f"Unhandled Exception: {error}", exc_info=True)
        response = {'error': 'Internal server error'}
        if app.debug:
            response['message'] = str(error)
            response['traceback'] = ''.join(traceback.format_exception(
                type(error), error, error.__traceback__))
        return jsonify(response), 500
