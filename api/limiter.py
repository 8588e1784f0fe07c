"""
api/limiter.py -- The one slowapi Limiter for the process.

api/main.py mounts it (app.state.limiter + SlowAPIMiddleware) and
api/routes/v1/auth.py decorates register/login with it. Counters live in the
limiter's storage, so a second Limiter instance would count separately and
never trip.

Limits are callables, not strings, so LOGIN_RATE_LIMIT / REGISTER_RATE_LIMIT
are read from Settings when a request arrives rather than at import.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    return get_settings().login_rate_limit


def register_limit() -> str:
    return get_settings().register_rate_limit
