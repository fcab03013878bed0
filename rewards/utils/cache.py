"""
Cache utilities for the rewards engine.

Provides Redis-backed caching with graceful fallback to simple in-memory caching.
Uses Flask-Caching for integration with Flask app.

The tier table is the main customer: it is read in full on every award and
adjustment, and changes only when an admin edits tiers.

Environment Variables:
    REDIS_URL: Redis connection URL (e.g., redis://localhost:6379/0)
              Falls back to simple cache if not set or unavailable.
"""
import os
import logging
from flask_caching import Cache

logger = logging.getLogger(__name__)

# Global cache instance - initialized in init_cache()
cache = Cache()

TIER_TABLE_KEY = 'rewards:tiers'


def init_cache(app):
    """
    Initialize Flask-Caching with Redis or fallback to simple cache.

    A CACHE_TYPE already present in the app config (e.g. NullCache under
    TestingConfig) is left alone.

    Returns:
        bool: True if Redis connected, False otherwise
    """
    if app.config.get('CACHE_TYPE'):
        cache.init_app(app)
        logger.info('[Rewards] Using configured cache: %s', app.config['CACHE_TYPE'])
        return False

    redis_url = os.getenv('REDIS_URL')

    if redis_url:
        try:
            # Test Redis connection before configuring
            import redis
            r = redis.from_url(redis_url, socket_connect_timeout=2)
            r.ping()

            app.config['CACHE_TYPE'] = 'RedisCache'
            app.config['CACHE_REDIS_URL'] = redis_url
            app.config['CACHE_DEFAULT_TIMEOUT'] = 300
            app.config['CACHE_KEY_PREFIX'] = 'rewards:'

            cache.init_app(app)
            logger.info('[Rewards] Redis cache connected: %s', redis_url.split('@')[-1])
            return True

        except Exception as e:
            logger.warning('[Rewards] Redis unavailable (%s), using simple cache', str(e))

    # Fallback to simple in-memory cache
    app.config['CACHE_TYPE'] = 'SimpleCache'
    app.config['CACHE_DEFAULT_TIMEOUT'] = 300

    cache.init_app(app)
    logger.info('[Rewards] Using simple in-memory cache (no Redis)')
    return False


def invalidate_tier_table():
    """Drop the cached tier table after tiers are created or edited."""
    try:
        cache.delete(TIER_TABLE_KEY)
    except Exception as e:
        logger.warning('Tier cache invalidation failed: %s', e)
