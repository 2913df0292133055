from flask import jsonify, request
from werkzeug.exceptions import HTTPException


class MealPrepError(Exception):
    """Base error carrying the HTTP status it maps to at the request boundary."""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(MealPrepError):
    status_code = 400


class Unauthorized(MealPrepError):
    status_code = 401


class Forbidden(MealPrepError):
    status_code = 403


class NotFound(MealPrepError):
    status_code = 404


class PreconditionFailed(MealPrepError):
    """The target exists but holds nothing the operation can work with."""
    status_code = 400


class DependencyFailure(MealPrepError):
    """A storage or external service call failed; no partial state was kept."""
    status_code = 500


def register_error_handlers(app):
    @app.errorhandler(MealPrepError)
    def handle_mealprep_error(error):
        return jsonify({'error': error.message}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        # Keep the API JSON-only; anything else falls back to werkzeug's page
        if request.path.startswith('/api/') or request.path.startswith('/auth/'):
            return jsonify({'error': error.description}), error.code
        return error
