"""
api/limiter.py -- Shared slowapi rate limiter for the login endpoint.

api/main.py mounts it as middleware; api/routes/v1/auth.py applies the login
limit with @limiter.limit(). A single instance means both share one counter
store. Counters live in memory by default; point RATE_LIMIT_STORAGE_URI at
redis:// when running more than one worker process. RATE_LIMIT_ENABLED=false
turns the limiter off (test runs, trusted internal deployments).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_settings.rate_limit_storage_uri,
    enabled=_settings.rate_limit_enabled,
)
