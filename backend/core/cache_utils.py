"""
Caching utilities for expensive aggregate queries
Backed by Redis (django-redis) in production and local memory otherwise
"""
import hashlib
import logging

from django.conf import settings
from django.core.cache import cache
from django.db import transaction

logger = logging.getLogger(__name__)

DASHBOARD_VERSION_KEY = 'dashboard:version'


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def _dashboard_version():
    version = cache.get(DASHBOARD_VERSION_KEY)
    if version is None:
        version = 1
        cache.set(DASHBOARD_VERSION_KEY, version, None)
    return version


def get_or_compute_dashboard(prefix, compute, *args):
    """
    Return a cached dashboard payload, computing and storing it on a miss.

    Keys embed a version number so invalidation is a single counter bump.
    """
    cache_key = make_cache_key(f"dashboard:{prefix}:v{_dashboard_version()}", *args)
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        logger.debug(f"Cache HIT for {prefix}: {cache_key}")
        return cached_data

    logger.debug(f"Cache MISS for {prefix}: {cache_key}")
    result = compute(*args)
    cache.set(cache_key, result, settings.DASHBOARD_CACHE_TTL)
    return result


def _bump_dashboard_version():
    try:
        cache.incr(DASHBOARD_VERSION_KEY)
    except ValueError:
        # Key expired or was never set
        cache.set(DASHBOARD_VERSION_KEY, 2, None)
    except Exception as e:
        logger.warning(f"Failed to invalidate dashboard cache: {str(e)}")


def invalidate_dashboard_cache():
    """Drop cached dashboard data once the current transaction commits"""
    transaction.on_commit(_bump_dashboard_version)
