"""
RoadmapMirror - Custom Exceptions and Exception Handlers
"""
import structlog
from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = structlog.get_logger('exceptions')


class RoadmapMirrorException(Exception):
    """Base exception for RoadmapMirror"""
    def __init__(self, message: str, code: str = "ROADMAP_MIRROR_ERROR", details=None):
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self):
        response = {
            'code': self.code,
            'success': False,
            'message': self.message
        }
        if self.details:
            response['details'] = self.details
        return response


class DatabaseException(RoadmapMirrorException):
    """Database-related exceptions"""
    def __init__(self, message: str):
        super().__init__(message, code="DATABASE_ERROR")
        logger.error("Database error", error=message)


class RoadmapFetchException(RoadmapMirrorException):
    """The remote catalog could not be retrieved"""
    def __init__(self, message: str, url: str = None, attempts: int = 0):
        super().__init__(message, code="FETCH_ERROR", details={'url': url, 'attempts': attempts})
        self.url = url
        self.attempts = attempts


class SyncWriteException(RoadmapMirrorException):
    """A record failed inside the sync transaction; the whole batch was rolled back"""
    def __init__(self, message: str, feature_id=None):
        super().__init__(message, code="SYNC_WRITE_ERROR", details={'feature_id': feature_id})
        self.feature_id = feature_id


class SyncLockLostException(RoadmapMirrorException):
    """The checkpoint lock no longer belongs to this sync"""
    def __init__(self, message: str = "Sync lock was taken over by another sync"):
        super().__init__(message, code="SYNC_LOCK_LOST")


class ValidationException(RoadmapMirrorException):
    """Validation-related exceptions"""
    def __init__(self, message: str, field: str = None):
        super().__init__(message, code="VALIDATION_ERROR", details={'field': field} if field else None)
        self.field = field
        logger.warning("Validation error", field=field, error=message)


class NotFoundException(RoadmapMirrorException):
    """Unknown resource identifier"""
    def __init__(self, message: str, resource_id=None):
        super().__init__(message, code="NOT_FOUND", details={'id': resource_id} if resource_id is not None else None)
        self.resource_id = resource_id


def register_exception_handlers(app):
    """Register exception handlers with Flask app"""

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """Handle HTTP exceptions"""
        return jsonify({
            'code': e.name.upper().replace(' ', '_'),
            'success': False,
            'message': e.description
        }), e.code

    @app.errorhandler(RoadmapMirrorException)
    def handle_roadmap_mirror_exception(e):
        """Handle RoadmapMirror custom exceptions"""
        return jsonify(e.to_dict()), 400

    @app.errorhandler(DatabaseException)
    def handle_database_exception(e):
        """Handle database exceptions"""
        return jsonify(e.to_dict()), 500

    @app.errorhandler(RoadmapFetchException)
    def handle_fetch_exception(e):
        """Handle remote catalog exceptions"""
        return jsonify(e.to_dict()), 502

    @app.errorhandler(ValidationException)
    def handle_validation_exception(e):
        """Handle validation exceptions"""
        return jsonify(e.to_dict()), 400

    @app.errorhandler(NotFoundException)
    def handle_not_found_exception(e):
        """Handle unknown identifiers"""
        return jsonify(e.to_dict()), 404

    @app.errorhandler(Exception)
    def handle_generic_exception(e):
        """Handle all other exceptions"""
        logger.error("Unhandled exception", error=str(e), exc_info=True)
        return jsonify({
            'code': 'INTERNAL_ERROR',
            'success': False,
            'message': 'An unexpected error occurred'
        }), 500
