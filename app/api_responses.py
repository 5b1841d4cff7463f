"""
API Response Utilities - Standardized error handling and responses
"""

from flask import jsonify
from functools import wraps

import structlog

from exceptions import RoadmapMirrorException, ValidationException, NotFoundException, RoadmapFetchException

logger = structlog.get_logger("api")


# API Error Codes
class ErrorCode:
    SUCCESS = "SUCCESS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SYNC_FAILED = "SYNC_FAILED"
    FETCH_ERROR = "FETCH_ERROR"


def success_response(data=None, message=None, status_code=200):
    """
    Standard success response format for API endpoints
    """
    response = {"code": ErrorCode.SUCCESS, "success": True}

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    return jsonify(response), status_code


def error_response(
    error_code=ErrorCode.INTERNAL_ERROR,
    message=None,
    details=None,
    status_code=400,
    log_error=True,
):
    """
    Standard error response format for API endpoints
    """
    response = {"code": error_code, "success": False}

    if message:
        response["message"] = message
    elif error_code == ErrorCode.NOT_FOUND:
        response["message"] = "Resource not found"
    elif error_code == ErrorCode.VALIDATION_ERROR:
        response["message"] = "Invalid request parameters"
    elif error_code == ErrorCode.INTERNAL_ERROR:
        response["message"] = "An unexpected error occurred"
    elif error_code == ErrorCode.SYNC_FAILED:
        response["message"] = "Sync failed"

    if details:
        response["details"] = details

    if log_error and error_code in [ErrorCode.INTERNAL_ERROR, ErrorCode.SYNC_FAILED]:
        logger.error("API error", code=error_code, message=message, details=details)

    return jsonify(response), status_code


def handle_api_errors(f):
    """
    Decorator to standardize error handling for API endpoints
    Automatically catches exceptions and returns consistent error responses
    """

    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ValidationException as e:
            return error_response(ErrorCode.VALIDATION_ERROR, message=e.message, details=e.details, status_code=400)
        except NotFoundException as e:
            return error_response(ErrorCode.NOT_FOUND, message=e.message, details=e.details, status_code=404)
        except RoadmapFetchException as e:
            return error_response(ErrorCode.FETCH_ERROR, message=e.message, details=e.details, status_code=502)
        except RoadmapMirrorException as e:
            return error_response(e.code, message=e.message, details=e.details, status_code=500)
        except Exception as e:
            logger.error("Unhandled exception in endpoint", endpoint=f.__name__, error=str(e), exc_info=True)
            return error_response(
                ErrorCode.INTERNAL_ERROR,
                message="An unexpected error occurred",
                status_code=500,
            )

    return wrapper


def paginated_response(items, total, offset, limit, has_more=None):
    """
    Offset based paginated response for list endpoints
    """
    if has_more is None:
        has_more = offset + len(items) < total

    response = {
        "code": ErrorCode.SUCCESS,
        "success": True,
        "data": {
            "results": items,
            "total_count": total,
            "has_more": has_more,
        },
        "pagination": {
            "total": total,
            "offset": offset,
            "limit": limit,
            "returned": len(items),
            "next_offset": offset + len(items) if has_more else None,
        },
    }

    return jsonify(response), 200

