"""
Shared client construction — Redis connection and the Apify platform client.

Importing this module never opens a connection: redis.from_url() only builds
a pool, and the platform client is constructed explicitly by callers.
"""
import logging
import redis

from scrapesync.config import REDIS_URL

logger = logging.getLogger('scrapesync.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


# ── Apify ─────────────────────────────────────────────────────────────────────

def make_platform_client(token=None):
    """
    Build an ApifyPlatform bound to the 'apify' circuit breaker.

    Raises ConfigurationError when no token is given and APIFY_API_TOKEN is unset.
    """
    from scrapesync.config import require_setting
    from scrapesync.services.apify import ApifyPlatform
    from scrapesync.services.circuit_breaker import get_breaker

    token = token or require_setting('APIFY_API_TOKEN')
    return ApifyPlatform(token, breaker=get_breaker('apify', redis_client))
