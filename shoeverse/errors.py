import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """an error with a message meant for the caller and an http status"""

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}

    def to_dict(self):
        return {**self.payload, 'message': self.message}


class AuthenticationRequired(ApiError):
    """raised by the client when the session can't be recovered"""

    def __init__(self, message='Please log in again'):
        super().__init__(message, 401)


# ============== ERROR HANDLERS ==============

def register_error_handlers(app):

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            'message': 'Route not found',
            'method': request.method,
            'path': request.full_path.rstrip('?'),
        }), 404

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({'message': 'Upload too large'}), 413

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'message': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        # in debug mode, let it bubble up
        if app.debug:
            raise e
        logger.exception('Server error on %s %s', request.method, request.path)
        body = {'message': 'Internal server error'}
        if app.config.get('ENV_NAME') == 'development':
            body['error'] = str(e)
        return jsonify(body), 500
