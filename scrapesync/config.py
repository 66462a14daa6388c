"""
Environment-driven settings, monitor limits and the Apify actor map.
"""
import os


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing or unusable."""


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Environment ──────────────────────────────────────────────────────────────
ENVIRONMENT = os.getenv('ENVIRONMENT', 'development')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Apify ─────────────────────────────────────────────────────────────────────
APIFY_API_TOKEN = os.getenv('APIFY_API_TOKEN')

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── Auth ─────────────────────────────────────────────────────────────────────
API_TOKEN = os.getenv('API_TOKEN')

# ── Monitor ──────────────────────────────────────────────────────────────────
MONITOR_INTERVAL_SECS = int(os.getenv('MONITOR_INTERVAL_SECS', '60'))
TICK_LOCK_TTL = int(os.getenv('TICK_LOCK_TTL', '300'))

MAX_RESURRECT_ATTEMPTS = 3
DATASET_PAGE_SIZE = 1000
DATASET_SAFETY_CAP = 50000
UPSERT_BATCH_SIZE = 500

# ── Apify actors — producer kind → actor refs ────────────────────────────────
ACTOR_IDS = {
    'telegram':  ['bhansalisoft/telegram-group-member-scraper'],
    'facebook':  ['easyapi/facebook-group-members-scraper'],
    'instagram': [
        'scraping_solutions/instagram-scraper-followers-following-no-cookies',
        'thenetaji/instagram-followers-scraper',
    ],
}

PRODUCER_KINDS = ['telegram', 'instagram', 'facebook', 'generic']

# ── Run status values ─────────────────────────────────────────────────────────
RUN_STATUSES = [
    'pending',
    'running',
    'succeeded',
    'failed',
    'timed_out',
    'aborted',
]


def require_setting(name):
    """Return a module-level setting, raising ConfigurationError when it is empty."""
    value = globals().get(name)
    if not value:
        raise ConfigurationError(f"{name} must be set")
    return value


def check_store_config():
    """
    Fail fast when the store would silently fall back to local SQLite.

    In production DATABASE_URL must be set explicitly; the SQLite default is a
    development convenience and writes there never reach the real store.
    """
    if ENVIRONMENT == 'production' and not os.getenv('DATABASE_URL'):
        raise ConfigurationError("DATABASE_URL must be set in production")
