"""
Roadmap Routes - search, feature detail, sync and guide endpoints
"""

from flask import Blueprint, current_app, request

import structlog

from api_responses import ErrorCode, error_response, handle_api_errors, paginated_response, success_response
from exceptions import ValidationException
from validation import parse_feature_id, parse_search_args, parse_search_filters, parse_sync_request

logger = structlog.get_logger("routes.roadmap")

roadmap_bp = Blueprint("roadmap", __name__, url_prefix="/api/v1/roadmap")


def _json_body():
    """Decoded JSON body, None when empty; a non-JSON body is a validation error"""
    if not request.get_data():
        return None
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationException("Request body must be valid JSON")
    return data


def _settings():
    return current_app.extensions["roadmap_settings"]


@roadmap_bp.route("/search", methods=["POST"])
@handle_api_errors
def search_api():
    """Search features with a JSON filter object"""
    filters = parse_search_filters(_json_body(), max_limit=_settings()["search"]["max_limit"])
    return _search(filters)


@roadmap_bp.route("/search", methods=["GET"])
@handle_api_errors
def search_get_api():
    """Search features from query string parameters (comma separated tag lists)"""
    filters = parse_search_args(request.args, max_limit=_settings()["search"]["max_limit"])
    return _search(filters)


def _search(filters):
    query_service = current_app.extensions["query_service"]
    response = query_service.search(filters)
    limit = filters.limit if filters.limit is not None else query_service.default_limit
    return paginated_response(
        response.results, response.total_count, filters.offset, limit, has_more=response.has_more
    )


@roadmap_bp.route("/features/<feature_id>", methods=["GET"])
@handle_api_errors
def get_feature_api(feature_id):
    """Full detail of one feature, with reference URLs"""
    feature_id = parse_feature_id(feature_id)
    feature = current_app.extensions["query_service"].get_feature(feature_id)
    return success_response(feature)


@roadmap_bp.route("/sync", methods=["POST"])
@handle_api_errors
def sync_api():
    """Trigger a sync unless the data is fresh or another sync is running"""
    sync_request = parse_sync_request(_json_body())
    sync_service = current_app.extensions["sync_service"]

    if not sync_request.force:
        status = sync_service.get_sync_status()
        threshold = _settings()["sync"]["fresh_threshold_hours"]
        hours = status["hours_since_sync"] if status else None
        if hours is not None and hours < threshold:
            logger.info("Sync skipped, data is fresh", hours_since_sync=hours)
            return success_response(
                {
                    "skipped": True,
                    "reason": "fresh",
                    "last_sync": status["last_sync"],
                    "record_count": status["record_count"],
                    "hours_since_sync": hours,
                },
                message=f"Data is fresh (synced {hours} hours ago). Use force=true to sync anyway.",
            )

    result = sync_service.perform_sync(force=sync_request.force)

    if result.skipped:
        data = result.to_dict()
        data["reason"] = "sync_in_progress"
        return success_response(data, message=result.error)

    if not result.success:
        return error_response(
            ErrorCode.SYNC_FAILED, message=result.error, details=result.to_dict(), status_code=502
        )

    return success_response(result.to_dict())


@roadmap_bp.route("/guide", methods=["GET"])
@handle_api_errors
def guide_api():
    """Available products, platforms, statuses and data freshness"""
    freshness = current_app.extensions["sync_service"].get_sync_status()
    return success_response(current_app.extensions["query_service"].get_guide(freshness))
