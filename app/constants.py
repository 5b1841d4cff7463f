import os

APP_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_DIR = os.path.dirname(APP_DIR)
DATA_DIR = os.environ.get('ROADMAP_MIRROR_HOME', os.path.join(os.path.expanduser('~'), '.roadmap-mirror'))
DB_FILE = os.path.join(DATA_DIR, 'roadmap.db')
CONFIG_FILE = os.path.join(DATA_DIR, 'settings.yaml')
RESOURCES_DIR = os.path.join(PROJECT_DIR, 'resources')
SEED_DB_FILE = os.path.join(RESOURCES_DIR, 'seed.db')

BUILD_VERSION = '0.4.0'
USER_AGENT = f'RoadmapMirror/{BUILD_VERSION}'

ROADMAP_API_URL = 'https://www.microsoft.com/releasecommunications/api/v2/m365'
ROADMAP_URL_TEMPLATE = 'https://www.microsoft.com/{locale}/microsoft-365/roadmap?filters=&searchterms={id}'
LEARN_SEARCH_URL_TEMPLATE = 'https://learn.microsoft.com/{locale}/search/?terms={id}'

# Checkpoint value of a store that has never completed a sync
EPOCH_SENTINEL = '1970-01-01T00:00:00.000Z'

SYNC_STATUS_IDLE = 'idle'
SYNC_STATUS_SYNCING = 'syncing'

CHECKPOINT_ID = 1
API_CACHE_ID = 1
SCHEMA_VERSION = 2

# Also the upper bound accepted for `limit`
SEARCH_LIMIT_SENTINEL = 10000
DESCRIPTION_SUMMARY_LENGTH = 200
TRUNCATION_MARKER = '...'

ASSOCIATION_PRODUCT = 'product'
ASSOCIATION_PLATFORM = 'platform'
ASSOCIATION_CLOUD_INSTANCE = 'cloud_instance'
ASSOCIATION_RELEASE_RING = 'release_ring'

ASSOCIATION_KINDS = [
    ASSOCIATION_PRODUCT,
    ASSOCIATION_PLATFORM,
    ASSOCIATION_CLOUD_INSTANCE,
    ASSOCIATION_RELEASE_RING,
]

DEFAULT_SETTINGS = {
    "roadmap": {
        "api_url": ROADMAP_API_URL,
        "timeout_seconds": 30,
        "max_retries": 3,
        "retry_delay_seconds": 1.0,
        "user_agent": USER_AGENT,
    },
    "database": {
        "path": DB_FILE,
        "seed_path": SEED_DB_FILE,
        "busy_timeout_ms": 5000,
    },
    "sync": {
        "on_startup": True,
        "staleness_hours": 1,
        "fresh_threshold_hours": 1,
        "interval_minutes": 60,
        "lock_timeout_minutes": 30,
    },
    "search": {
        "max_limit": SEARCH_LIMIT_SENTINEL,
        "default_limit": SEARCH_LIMIT_SENTINEL,
        "summary_length": DESCRIPTION_SUMMARY_LENGTH,
    },
    "references": {
        "locale": "en-us",
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8365,
    },
}
