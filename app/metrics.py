from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from flask import Response, request, current_app
import time
from functools import wraps

import structlog

logger = structlog.get_logger("metrics")

# Store Metrics
db_features_total = Gauge("roadmap_mirror_features_total", "Total number of stored features")

db_query_duration_seconds = Histogram(
    "roadmap_mirror_db_query_duration_seconds", "Database query duration", ["operation"]
)

db_query_total = Counter("roadmap_mirror_db_queries_total", "Total database queries", ["operation", "status"])

# Sync Metrics
sync_runs_total = Counter("roadmap_mirror_sync_runs_total", "Sync runs by outcome", ["outcome"])

sync_duration_seconds = Histogram("roadmap_mirror_sync_duration_seconds", "Time spent in a sync run")

sync_records_processed_total = Counter(
    "roadmap_mirror_sync_records_processed_total", "Feature records written by sync"
)

fetch_attempts_total = Counter("roadmap_mirror_fetch_attempts_total", "Remote fetch attempts", ["outcome"])

ACTIVE_SYNCS = Gauge("roadmap_mirror_active_syncs", "Number of syncs currently running in this process")


class ActiveSyncTracker:
    """Context manager for tracking running syncs.

    Example:
        with ACTIVE_SYNCS.track_inprogress():
            perform_sync()
    """

    def __enter__(self):
        ACTIVE_SYNCS.inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        ACTIVE_SYNCS.dec()
        return False


ACTIVE_SYNCS.track_inprogress = ActiveSyncTracker

# API Metrics
api_request_duration_seconds = Histogram(
    "roadmap_mirror_api_request_duration_seconds", "API request duration", ["endpoint", "method"]
)

api_requests_total = Counter(
    "roadmap_mirror_api_requests_total", "Total API requests", ["endpoint", "method", "status_code"]
)


def init_metrics(app):
    @app.route("/api/metrics")
    def metrics():
        update_store_metrics(current_app.extensions.get("feature_store"))
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)

    @app.before_request
    def before_request():
        request.start_time = time.time()

    @app.after_request
    def after_request(response):
        duration = time.time() - getattr(request, "start_time", time.time())
        api_request_duration_seconds.labels(endpoint=request.endpoint or "unknown", method=request.method).observe(
            duration
        )
        api_requests_total.labels(
            endpoint=request.endpoint or "unknown", method=request.method, status_code=response.status_code
        ).inc()
        return response

    logger.info("Prometheus metrics initialized at /api/metrics")


def update_store_metrics(store):
    """Refresh gauges that are read from the store"""
    if store is None or not store.is_open:
        return
    try:
        db_features_total.set(store.count_features())
    except Exception as e:
        logger.warning("Could not refresh store metrics", error=str(e))


def record_sync_result(result):
    """Count one finished sync run by outcome"""
    if result.skipped:
        outcome = "skipped"
    elif not result.success:
        outcome = "failed"
    elif result.not_modified:
        outcome = "not_modified"
    else:
        outcome = "success"
    sync_runs_total.labels(outcome=outcome).inc()
    if not result.skipped:
        sync_duration_seconds.observe(result.duration_ms / 1000.0)
    if result.records_processed:
        sync_records_processed_total.inc(result.records_processed)


def track_db_query(operation):
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                db_query_total.labels(operation=operation, status="success").inc()
                return result
            except Exception:
                db_query_total.labels(operation=operation, status="error").inc()
                raise
            finally:
                duration = time.time() - start_time
                db_query_duration_seconds.labels(operation=operation).observe(duration)

        return wrapper

    return decorator
