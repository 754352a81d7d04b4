"""
api/limiter.py -- The one slowapi Limiter shared by every route module.

api/main.py registers it on app.state and mounts SlowAPIMiddleware; the user
routes decorate login, getuser and getallusers with @limiter.limit(RATE_LIMIT).
A second Limiter would keep its own counters, so nothing else may build one.

Fixed window keyed by client address, 10 requests per minute by default
(RATE_LIMIT setting). The limits library's memory storage locks each counter
key, so concurrent requests from one client still count exactly once each.
A throttled request gets the full window as Retry-After.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

RATE_LIMIT: str = get_settings().rate_limit
RETRY_AFTER_SECONDS = 60

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://", strategy="fixed-window")
