"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware) and by api/routes/auth.py
(per-route limits on login, register, forgot-password and reset-password with
@limiter.limit()).

A single shared instance means every route counts against the same in-memory
store. Keys are the client IP address.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
