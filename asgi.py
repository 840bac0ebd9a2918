"""
asgi.py -- ASGI entry point for Folio.

The catalog front end is served separately and talks to this app over
/api/*. Keeping the server target here (rather than api.main:app) leaves room
to mount more routers without touching the API layer.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
