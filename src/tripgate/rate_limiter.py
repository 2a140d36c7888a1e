"""
Login rate limiting on top of the `limits` library.

Handles:
- Fixed-window counting per key (login:<client ip>)
- Policy strings in the usual "10 per minute" notation
- Storage selected by URI (memory:// by default, redis:// etc. in production)

The limiter is created once per app and kept in app.extensions.
"""
import logging
import math
import time
from datetime import datetime
from typing import NamedTuple, Optional

from flask import current_app
from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from .config_defaults import get_bool, get_config

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'tripgate_rate_limiter'
DEFAULT_LOGIN_POLICY = '10 per minute'


class RateLimitStatus(NamedTuple):
    """Outcome of one counted attempt."""
    limited: bool
    reset_at: Optional[datetime] = None

    def retry_after(self, now: Optional[float] = None) -> int:
        """Whole seconds until the window resets (at least 1)."""
        if self.reset_at is None:
            return 1
        remaining = self.reset_at.timestamp() - (now if now is not None else time.time())
        return max(1, math.ceil(remaining))


class RateLimiter:
    """Thin wrapper so callers only deal in keys and policy strings."""

    def __init__(self, storage_uri: str = 'memory://', enabled: bool = True):
        self.storage_uri = storage_uri
        self.enabled = enabled
        self._storage = storage_from_string(storage_uri)
        self._strategy = FixedWindowRateLimiter(self._storage)

    def check(self, key: str, policy: str) -> RateLimitStatus:
        """Count one attempt for `key` and report whether it is over `policy`."""
        if not self.enabled:
            return RateLimitStatus(limited=False)

        item = parse(policy)
        allowed = self._strategy.hit(item, key)
        stats = self._strategy.get_window_stats(item, key)
        reset_at = datetime.fromtimestamp(stats.reset_time)

        if not allowed:
            logger.info(f"Rate limit exceeded for {key} ({policy})")
        return RateLimitStatus(limited=not allowed, reset_at=reset_at)

    def reset(self):
        """Drop all counters (tests and admin tooling)."""
        self._storage.reset()


def init_rate_limiter(app) -> RateLimiter:
    limiter = RateLimiter(
        storage_uri=get_config('RATE_LIMIT_STORAGE_URI', 'memory://'),
        enabled=get_bool('RATE_LIMIT_ENABLED', True),
    )
    app.extensions[EXTENSION_KEY] = limiter
    logger.info(f"Login rate limiter ready (storage={limiter.storage_uri}, enabled={limiter.enabled})")
    return limiter


def get_rate_limiter() -> RateLimiter:
    return current_app.extensions[EXTENSION_KEY]


def login_policy() -> str:
    return get_config('LOGIN_RATE_LIMIT', DEFAULT_LOGIN_POLICY)


def login_key(client_ip: Optional[str]) -> str:
    return f"login:{client_ip or 'unknown'}"
