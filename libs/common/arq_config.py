"""arq connection settings for the schedule worker."""

from typing import Optional

from arq.connections import RedisSettings
from libs.common.config import get_settings

# Startup attempts before the worker gives up on Redis.
CONNECT_RETRIES = 5


def get_redis_settings(redis_url: Optional[str] = None) -> RedisSettings:
    """Build arq ``RedisSettings`` from REDIS_URL, or from ``redis_url`` if given."""
    redis_settings = RedisSettings.from_dsn(redis_url or get_settings().REDIS_URL)
    redis_settings.conn_retries = CONNECT_RETRIES
    return redis_settings
