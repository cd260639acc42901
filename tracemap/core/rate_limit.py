"""
rate_limit.py — Login throttling.

One slowapi Limiter for the process, keyed on the client address. Only
POST /api/auth is decorated (limit string from settings.login_rate_limit),
so guessing the operator secret is capped per IP. main.py registers the
limiter on app.state together with the 429 handler.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
