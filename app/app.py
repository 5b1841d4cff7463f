"""
RoadmapMirror - local, searchable mirror of the Microsoft 365 Roadmap
"""
import signal
import sys

from flask import Flask

import structlog

from constants import BUILD_VERSION
from exceptions import register_exception_handlers
from metrics import init_metrics
from roadmap_client import RoadmapClient
from routes.roadmap import roadmap_bp
from routes.system import system_bp
from services.query_service import QueryService
from services.sync_service import SyncService
from settings import load_settings
from store import FeatureStore
from utils import configure_logging, now_utc

logger = structlog.get_logger('main')


def create_app(settings=None, store=None, client=None, start_scheduler=True, clock=now_utc):
    """Application factory"""
    app = Flask(__name__)
    app.json.sort_keys = False

    settings = settings or load_settings()

    # Initialize storage and services
    store = store or FeatureStore.from_settings(settings)
    if not store.is_open:
        store.open()
    client = client or RoadmapClient.from_settings(settings)

    sync_service = SyncService.from_settings(store, client, settings, clock=clock)
    query_service = QueryService(store, settings, clock=clock)

    app.extensions['roadmap_settings'] = settings
    app.extensions['feature_store'] = store
    app.extensions['roadmap_client'] = client
    app.extensions['sync_service'] = sync_service
    app.extensions['query_service'] = query_service

    # Register exception handlers
    register_exception_handlers(app)

    # Register blueprints
    app.register_blueprint(roadmap_bp)
    app.register_blueprint(system_bp)

    # Initialize metrics
    init_metrics(app)

    # Initialize job scheduler
    if start_scheduler:
        from jobs.scheduler import JobScheduler
        job_scheduler = JobScheduler(sync_service, settings)
        job_scheduler.init_app(app)

    return app


def shutdown_app(app):
    """Stop background jobs and close the store"""
    scheduler = app.extensions.get('job_scheduler')
    if scheduler is not None:
        scheduler.shutdown()
    store = app.extensions.get('feature_store')
    if store is not None:
        store.close()


def main():
    configure_logging()
    settings = load_settings()
    app = create_app(settings)

    def handle_signal(signum, frame):
        logger.info("Shutdown signal received", signal=signum)
        shutdown_app(app)
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    host = settings['server']['host']
    port = settings['server']['port']
    logger.info('Build Version', version=BUILD_VERSION)
    logger.info('Starting server', host=host, port=port)
    app.run(host=host, port=port, debug=False, use_reloader=False, threaded=True)


if __name__ == '__main__':
    main()
