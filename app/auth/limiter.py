"""Shared rate limiter for KeyGate panel and send endpoints.

Uses slowapi (Starlette-compatible rate limiting), keyed by client address.
Panel login is throttled hardest — it is the only brute-forceable surface.

The Limiter instance is created here and shared between:
  - app/auth/router.py, app/keys/router.py, app/relay/router.py (route decorators)
  - app/main.py (app.state.limiter + SlowAPIMiddleware registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

LOGIN_RATE_LIMIT = "10/minute"

KEY_MANAGEMENT_RATE_LIMIT = "30/minute"

SEND_RATE_LIMIT = "120/minute"
