"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware) and api/routes/auth.py
(to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Limits are per client address and complement, not replace, the per-account
lockout in auth/lockout.py: the limiter slows one client hammering many
accounts, the lockout protects one account from many clients.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

LOGIN_LIMIT = "10 per 15 minutes"
REGISTER_LIMIT = "5 per 10 minutes"
FORGOT_PASSWORD_LIMIT = "5 per hour"
RESET_PASSWORD_LIMIT = "5 per hour"

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
